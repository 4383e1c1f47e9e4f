"""Identity catalog: one canonical taxid per resolved key.

Merges unambiguous resolver answers with LCA-reduced keys, enforces that each
key contributes exactly one row, and attaches the canonical taxon name.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import polars as pl

from virus_host_census.errors import CatalogInvariantError, TaxonNotFoundError
from virus_host_census.resolution.reducer import AmbiguityReducer
from virus_host_census.resolution.resolver import CheckpointCallback, NameResolver
from virus_host_census.taxonomy.base import TaxonomyOracle

logger = logging.getLogger(__name__)

CATALOG_SCHEMA = {
    "key": pl.Utf8,
    "taxid": pl.Int64,
    "taxon_name": pl.Utf8,
    "resolution": pl.Utf8,
}

# Reasons recorded for keys that end up outside the catalog
UNRESOLVED_NO_MATCH = "no_match"
UNRESOLVED_LCA_FAILED = "lca_failed"


@dataclass
class ResolutionReport:
    """Summary of one resolution pass.

    Attributes:
        total_keys: Distinct keys queried
        unambiguous: Keys with exactly one candidate
        ambiguous: Keys with more than one candidate
        reduced: Ambiguous keys successfully collapsed to their LCA
        unresolved: Key -> reason ("no_match" or "lca_failed")
    """
    total_keys: int
    unambiguous: int
    ambiguous: int
    reduced: int
    unresolved: dict[str, str] = field(default_factory=dict)

    @property
    def resolved(self) -> int:
        return self.unambiguous + self.reduced

    @property
    def success_rate(self) -> float:
        if self.total_keys == 0:
            return 0.0
        return self.resolved / self.total_keys

    def to_dict(self) -> dict:
        return {
            "total_keys": self.total_keys,
            "unambiguous": self.unambiguous,
            "ambiguous": self.ambiguous,
            "reduced": self.reduced,
            "unresolved": len(self.unresolved),
            "success_rate": round(self.success_rate, 6),
        }


def build_identity_catalog(
    unambiguous: dict[str, int],
    reduced: dict[str, int],
    oracle: TaxonomyOracle,
) -> pl.DataFrame:
    """Union unambiguous and LCA-reduced mappings and attach taxon names.

    Args:
        unambiguous: Key -> its single candidate taxid
        reduced: Key -> LCA taxid
        oracle: Oracle used for canonical names

    Returns:
        DataFrame with columns key, taxid, taxon_name, resolution
        ("unique" or "lca"), sorted by key

    Raises:
        CatalogInvariantError: If a key appears in both inputs
    """
    overlap = sorted(unambiguous.keys() & reduced.keys())
    if overlap:
        raise CatalogInvariantError(
            f"{len(overlap)} keys are both unambiguous and LCA-reduced: {overlap[:10]}"
        )

    rows = [(k, t, "unique") for k, t in unambiguous.items()]
    rows += [(k, t, "lca") for k, t in reduced.items()]
    rows.sort(key=lambda row: row[0])

    oracle.prefetch({taxid for _, taxid, _ in rows})
    names: dict[int, str | None] = {}
    for _, taxid, _ in rows:
        if taxid in names:
            continue
        try:
            names[taxid] = oracle.canonical_name(taxid)
        except TaxonNotFoundError:
            logger.warning(f"No canonical name for taxid {taxid}")
            names[taxid] = None

    catalog = pl.DataFrame(
        {
            "key": [k for k, _, _ in rows],
            "taxid": [t for _, t, _ in rows],
            "taxon_name": [names[t] for _, t, _ in rows],
            "resolution": [r for _, _, r in rows],
        },
        schema=CATALOG_SCHEMA,
    )

    logger.info(
        f"Identity catalog built: {catalog.height} keys -> "
        f"{catalog['taxid'].n_unique()} distinct taxa"
    )
    return catalog


def resolve_keys(
    keys: Iterable[str],
    oracle: TaxonomyOracle,
    batch_size: int = 100,
    resolved: dict[str, set[int]] | None = None,
    checkpoint_callback: CheckpointCallback | None = None,
) -> tuple[pl.DataFrame, ResolutionReport]:
    """Resolve keys, reduce ambiguous ones, and build the identity catalog.

    Args:
        keys: Keys to resolve (deduplicated internally)
        oracle: Taxonomy oracle
        batch_size: Names per oracle batch
        resolved: Candidate sets from an interrupted earlier run
        checkpoint_callback: Receives each completed batch of answers

    Returns:
        Tuple of (catalog, report)
    """
    resolution = NameResolver(oracle, batch_size=batch_size).resolve(
        keys,
        resolved=resolved,
        checkpoint_callback=checkpoint_callback,
    )
    ambiguous = resolution.ambiguous
    reduction = AmbiguityReducer(oracle).reduce(ambiguous)
    catalog = build_identity_catalog(resolution.unambiguous, reduction.reduced, oracle)

    unresolved = {k: UNRESOLVED_NO_MATCH for k in resolution.unresolved}
    unresolved.update({k: UNRESOLVED_LCA_FAILED for k in reduction.failures})

    report = ResolutionReport(
        total_keys=len(resolution.candidates),
        unambiguous=len(resolution.unambiguous),
        ambiguous=len(ambiguous),
        reduced=len(reduction.reduced),
        unresolved=dict(sorted(unresolved.items())),
    )

    logger.info(
        f"Resolution complete: {report.resolved}/{report.total_keys} keys "
        f"({report.success_rate:.1%}), {len(report.unresolved)} unresolved"
    )
    return catalog, report


def save_unresolved_report(report: ResolutionReport, output_path: Path) -> None:
    """Write unresolved keys and their reasons for manual review.

    Args:
        report: ResolutionReport with unresolved keys
        output_path: Path to output file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    with output_path.open("w") as f:
        f.write("# Unresolved taxon keys\n")
        f.write(f"# Generated: {timestamp}\n")
        f.write(f"# Total unresolved: {len(report.unresolved)}\n")
        f.write(f"# Success rate: {report.success_rate:.1%}\n")
        f.write("#\n")
        for key, reason in report.unresolved.items():
            f.write(f"{key}\t{reason}\n")

    logger.info(f"Saved {len(report.unresolved)} unresolved keys to {output_path}")
