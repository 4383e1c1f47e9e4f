"""Remote taxonomy oracle over NCBI E-utilities.

Requests go through CachedAPIClient (rate limit, retry with backoff, SQLite
response cache); XML responses are parsed with Biopython's Entrez parser.
Node records (names and lineage) are fetched in batches with efetch and kept
in memory for the lifetime of the oracle.
"""

import io
import logging
from collections.abc import Iterable
from typing import Any

from Bio import Entrez

from virus_host_census.api_clients.base import RETRYABLE_ERRORS, CachedAPIClient
from virus_host_census.errors import OracleUnavailable, TaxonNotFoundError
from virus_host_census.taxonomy.base import ROOT_TAXID, TaxonomyOracle

logger = logging.getLogger(__name__)

EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"

# Page size for subtree listings
SUBTREE_PAGE_SIZE = 10000


def _parse_xml(response) -> Any:
    return Entrez.read(io.BytesIO(response.content))


class EntrezTaxonomyOracle(TaxonomyOracle):
    """Taxonomy oracle answering from the NCBI taxonomy database."""

    def __init__(
        self,
        client: CachedAPIClient,
        batch_size: int = 100,
        email: str | None = None,
        api_key: str | None = None,
        tool: str = "virus_host_census",
    ):
        """Initialize oracle.

        Args:
            client: HTTP client providing rate limiting, retries and caching
            batch_size: Taxids per efetch request
            email: Contact email sent with every request (NCBI policy)
            api_key: Optional NCBI API key
            tool: Tool name sent with every request
        """
        self.client = client
        self.batch_size = batch_size
        self.email = email
        self.api_key = api_key
        self.tool = tool
        # taxid -> parsed efetch record, or None when NCBI returned nothing
        self._records: dict[int, dict[str, Any] | None] = {}
        logger.info(
            f"Initialized EntrezTaxonomyOracle with batch_size={batch_size}, "
            f"rate_limit={client.rate_limit}/s"
        )

    @classmethod
    def from_config(cls, config) -> "EntrezTaxonomyOracle":
        """Create oracle and its HTTP client from census configuration."""
        return cls(
            client=CachedAPIClient.from_config(config),
            batch_size=config.oracle.batch_size,
            email=config.oracle.email,
            api_key=config.oracle.api_key,
        )

    def _request(self, endpoint: str, params: dict[str, Any], pending: list) -> Any:
        """Call one E-utility and parse its XML.

        NCBI sometimes answers HTTP 200 with an <ERROR> payload; Entrez.read
        rejects it and the client retries it like a transport failure.

        Raises:
            OracleUnavailable: If retries are exhausted; ``pending`` is attached
        """
        params = {"db": "taxonomy", "tool": self.tool, **params}
        if self.email:
            params["email"] = self.email
        if self.api_key:
            params["api_key"] = self.api_key

        try:
            return self.client.get(
                f"{EUTILS_BASE_URL}/{endpoint}.fcgi",
                params=params,
                parse=_parse_xml,
            )
        except RETRYABLE_ERRORS as e:
            logger.error(f"NCBI {endpoint} failed after retries: {e}")
            raise OracleUnavailable(f"NCBI {endpoint} unavailable: {e}", pending=pending) from e

    def resolve_names(self, names: Iterable[str]) -> dict[str, set[int]]:
        names = list(dict.fromkeys(names))
        results: dict[str, set[int]] = {}

        for i, name in enumerate(names):
            term_name = name.replace('"', " ").strip()
            if not term_name:
                results[name] = set()
                continue

            record = self._request(
                "esearch",
                {"term": f'"{term_name}"[All Names]', "retmax": 100},
                pending=names[i:],
            )
            results[name] = {int(taxid) for taxid in record.get("IdList", [])}
            logger.debug(f"Resolved '{name}' to {sorted(results[name])}")

        return results

    def prefetch(self, taxids: Iterable[int]) -> None:
        missing = sorted({int(t) for t in taxids} - self._records.keys())
        total_batches = (len(missing) + self.batch_size - 1) // self.batch_size

        for i in range(0, len(missing), self.batch_size):
            batch = missing[i:i + self.batch_size]
            logger.info(
                f"Fetching taxonomy records batch {i // self.batch_size + 1}/"
                f"{total_batches} ({len(batch)} taxids)"
            )
            records = self._request(
                "efetch",
                {"id": ",".join(str(t) for t in batch), "retmode": "xml"},
                pending=missing[i:],
            )

            for record in records:
                taxid = int(record["TaxId"])
                self._records[taxid] = record
                # Merged taxids come back under their current id
                for alias in record.get("AkaTaxIds", []):
                    self._records[int(alias)] = record

            for taxid in batch:
                self._records.setdefault(taxid, None)

    def _record(self, taxid: int) -> dict[str, Any]:
        if taxid not in self._records:
            self.prefetch([taxid])
        record = self._records.get(taxid)
        if record is None:
            raise TaxonNotFoundError(taxid)
        return record

    def canonical_name(self, taxid: int) -> str:
        return str(self._record(taxid)["ScientificName"])

    def common_name(self, taxid: int) -> str | None:
        other_names = self._record(taxid).get("OtherNames") or {}
        genbank = other_names.get("GenbankCommonName")
        if genbank:
            return str(genbank)
        common = other_names.get("CommonName") or []
        return str(common[0]) if common else None

    def ancestor_path(self, taxid: int) -> list[int]:
        record = self._record(taxid)
        lineage = [int(node["TaxId"]) for node in record.get("LineageEx", [])]
        node = int(record["TaxId"])
        if node == ROOT_TAXID:
            return [ROOT_TAXID]
        # LineageEx omits the root node
        return [ROOT_TAXID] + [t for t in lineage if t != ROOT_TAXID] + [node]

    def descendants(self, taxid: int) -> set[int]:
        found = {taxid}
        retstart = 0

        while True:
            record = self._request(
                "esearch",
                {
                    "term": f"txid{taxid}[Subtree]",
                    "retstart": retstart,
                    "retmax": SUBTREE_PAGE_SIZE,
                },
                pending=[taxid],
            )
            ids = record.get("IdList", [])
            found.update(int(t) for t in ids)
            retstart += len(ids)
            if not ids or retstart >= int(record.get("Count", 0)):
                break

        logger.info(f"Subtree of taxid {taxid} has {len(found)} nodes")
        return found
