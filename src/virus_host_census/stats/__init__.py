"""Ranked per-taxon statistics over record sets."""

from virus_host_census.stats.ranking import (
    GROUP_COLUMNS,
    add_taxon_names,
    rank_by,
    ranking_schema,
)
from virus_host_census.stats.summary import (
    CoverageSummary,
    sample_singletons,
    summarize_coverage,
)

__all__ = [
    "GROUP_COLUMNS",
    "add_taxon_names",
    "rank_by",
    "ranking_schema",
    "CoverageSummary",
    "sample_singletons",
    "summarize_coverage",
]
