"""Local taxonomy oracle backed by an NCBI taxdump mirror.

Reads ``nodes.dmp`` and ``names.dmp`` (fields separated by ``\\t|\\t``, rows
terminated by ``\\t|``) into memory. No rate limiting applies, so this backend
is preferred whenever a mirror is available.
"""

import logging
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from virus_host_census.errors import TaxonNotFoundError
from virus_host_census.taxonomy.base import ROOT_TAXID, TaxonomyOracle

logger = logging.getLogger(__name__)

# names.dmp name classes that never identify a taxon on their own
IGNORED_NAME_CLASSES = {"authority"}


def _split_dmp_line(line: str) -> list[str]:
    """Split one taxdump row into its fields."""
    return line.rstrip("\n").removesuffix("\t|").split("\t|\t")


def _normalize_name(name: str) -> str:
    return " ".join(name.split()).casefold()


class LocalTaxonomyOracle(TaxonomyOracle):
    """In-memory taxonomy built from parent links and name tables.

    Name lookups are case-insensitive and whitespace-normalized, matching
    how NCBI E-utilities treats search terms.
    """

    def __init__(
        self,
        parents: dict[int, int],
        scientific_names: dict[int, str],
        other_names: dict[str, set[int]] | None = None,
        common_names: dict[int, str] | None = None,
    ):
        """Initialize oracle from in-memory tables.

        Args:
            parents: Child taxid -> parent taxid (the root is its own parent)
            scientific_names: Taxid -> canonical scientific name
            other_names: Synonym or alternative name -> taxids it denotes
            common_names: Taxid -> preferred common name
        """
        self.parents = dict(parents)
        self.scientific_names = dict(scientific_names)
        self.common_names = dict(common_names or {})
        self._children: dict[int, list[int]] | None = None

        self._name_index: dict[str, set[int]] = {}
        for taxid, name in self.scientific_names.items():
            self._name_index.setdefault(_normalize_name(name), set()).add(taxid)
        for name, taxids in (other_names or {}).items():
            self._name_index.setdefault(_normalize_name(name), set()).update(taxids)

        logger.info(
            f"Initialized LocalTaxonomyOracle with {len(self.parents)} nodes, "
            f"{len(self._name_index)} distinct names"
        )

    @classmethod
    def from_dmp(cls, nodes_path: Path | str, names_path: Path | str) -> "LocalTaxonomyOracle":
        """Load oracle from NCBI taxdump ``nodes.dmp`` and ``names.dmp``.

        Args:
            nodes_path: Path to nodes.dmp
            names_path: Path to names.dmp

        Returns:
            LocalTaxonomyOracle over the full dump

        Raises:
            FileNotFoundError: If either file doesn't exist
        """
        nodes_path = Path(nodes_path)
        names_path = Path(names_path)
        for path in (nodes_path, names_path):
            if not path.exists():
                raise FileNotFoundError(f"Taxdump file not found: {path}")

        logger.info(f"Loading taxonomy nodes from {nodes_path}")
        parents: dict[int, int] = {}
        with open(nodes_path) as inf:
            for line in inf:
                if not line.strip():
                    continue
                child_taxid, parent_taxid, *_ = _split_dmp_line(line)
                parents[int(child_taxid)] = int(parent_taxid)

        logger.info(f"Loading taxonomy names from {names_path}")
        scientific_names: dict[int, str] = {}
        other_names: dict[str, set[int]] = {}
        genbank_common: dict[int, str] = {}
        common: dict[int, str] = {}
        with open(names_path) as inf:
            for line in inf:
                if not line.strip():
                    continue
                taxid, name, _unique_name, name_class = _split_dmp_line(line)[:4]
                taxid = int(taxid)
                if name_class in IGNORED_NAME_CLASSES:
                    continue
                if name_class == "scientific name":
                    scientific_names[taxid] = name
                    continue
                other_names.setdefault(name, set()).add(taxid)
                if name_class == "genbank common name":
                    genbank_common.setdefault(taxid, name)
                elif name_class == "common name":
                    common.setdefault(taxid, name)

        common_names = {**common, **genbank_common}
        return cls(parents, scientific_names, other_names, common_names)

    def resolve_names(self, names: Iterable[str]) -> dict[str, set[int]]:
        return {
            name: set(self._name_index.get(_normalize_name(name), ()))
            for name in names
        }

    def canonical_name(self, taxid: int) -> str:
        try:
            return self.scientific_names[taxid]
        except KeyError:
            raise TaxonNotFoundError(taxid) from None

    def common_name(self, taxid: int) -> str | None:
        if taxid not in self.parents:
            raise TaxonNotFoundError(taxid)
        return self.common_names.get(taxid)

    def ancestor_path(self, taxid: int) -> list[int]:
        if taxid not in self.parents:
            raise TaxonNotFoundError(taxid)

        path = [taxid]
        seen = {taxid}
        while taxid != ROOT_TAXID:
            parent = self.parents.get(taxid)
            if parent is None:
                raise TaxonNotFoundError(taxid)
            if parent == taxid:
                # Detached root other than 1
                break
            if parent in seen:
                raise ValueError(f"Cycle in taxonomy at taxid {parent}")
            path.append(parent)
            seen.add(parent)
            taxid = parent

        path.reverse()
        return path

    def descendants(self, taxid: int) -> set[int]:
        if taxid not in self.parents:
            raise TaxonNotFoundError(taxid)

        children = self._child_index()
        found = {taxid}
        queue = deque([taxid])
        while queue:
            node = queue.popleft()
            for child in children.get(node, ()):
                if child not in found:
                    found.add(child)
                    queue.append(child)
        return found

    def _child_index(self) -> dict[int, list[int]]:
        if self._children is None:
            children: dict[int, list[int]] = {}
            for child, parent in self.parents.items():
                if child != parent:
                    children.setdefault(parent, []).append(child)
            self._children = children
        return self._children
