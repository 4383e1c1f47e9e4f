"""Coverage summary and singleton sampling for census reports."""

import random
from dataclasses import asdict, dataclass

import polars as pl
import structlog

logger = structlog.get_logger()


@dataclass
class CoverageSummary:
    """How much of a record set the rankings account for.

    Attributes:
        total_records: All records in the set
        records_with_host: Records with a non-blank host annotation
        resolved_host_records: Records with a resolved host taxid
        unresolved_host_records: Records with a host annotation whose key
            did not resolve
        unresolved_host_fraction: unresolved_host_records / records_with_host
        resolved_virus_records: Records with a resolved virus taxid
        unresolved_virus_records: Records whose species label did not resolve
        unresolved_virus_fraction: unresolved_virus_records / total_records
    """
    total_records: int
    records_with_host: int
    resolved_host_records: int
    unresolved_host_records: int
    unresolved_host_fraction: float
    resolved_virus_records: int
    unresolved_virus_records: int
    unresolved_virus_fraction: float

    def to_dict(self) -> dict:
        return asdict(self)


def summarize_coverage(df: pl.DataFrame) -> CoverageSummary:
    """Count resolved and unresolved records in an enriched record set."""
    total = df.height
    with_host = df.filter(pl.col("host_key").is_not_null()).height
    resolved_host = df.filter(pl.col("host_taxid").is_not_null()).height
    resolved_virus = df.filter(pl.col("virus_taxid").is_not_null()).height
    unresolved_host = with_host - resolved_host
    unresolved_virus = total - resolved_virus

    summary = CoverageSummary(
        total_records=total,
        records_with_host=with_host,
        resolved_host_records=resolved_host,
        unresolved_host_records=unresolved_host,
        unresolved_host_fraction=unresolved_host / with_host if with_host else 0.0,
        resolved_virus_records=resolved_virus,
        unresolved_virus_records=unresolved_virus,
        unresolved_virus_fraction=unresolved_virus / total if total else 0.0,
    )
    logger.info("coverage_summary", **summary.to_dict())
    return summary


def sample_singletons(ranking: pl.DataFrame, n: int, seed: int = 0) -> pl.DataFrame:
    """Sample up to n groups observed exactly once.

    Sampling is reproducible for a given seed; sampled rows are returned in
    rank order.
    """
    singles = ranking.filter(pl.col("count") == 1)
    if n >= singles.height:
        return singles

    chosen = random.Random(seed).sample(range(singles.height), n)
    return (
        singles.with_row_index("_i")
        .filter(pl.col("_i").is_in(chosen))
        .drop("_i")
    )
