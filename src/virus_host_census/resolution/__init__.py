"""Taxonomic name resolution.

Extracts binomial keys from host annotations, resolves keys to candidate
taxids in batches, collapses ambiguous matches to their lowest common
ancestor, and builds the key -> taxid identity catalog.
"""

from virus_host_census.resolution.catalog import (
    ResolutionReport,
    build_identity_catalog,
    resolve_keys,
    save_unresolved_report,
)
from virus_host_census.resolution.extractor import extract_binomial_key, is_blank
from virus_host_census.resolution.reducer import (
    AmbiguityReducer,
    ReductionResult,
    lowest_common_ancestor,
)
from virus_host_census.resolution.resolver import NameResolution, NameResolver

__all__ = [
    "ResolutionReport",
    "build_identity_catalog",
    "resolve_keys",
    "save_unresolved_report",
    "extract_binomial_key",
    "is_blank",
    "AmbiguityReducer",
    "ReductionResult",
    "lowest_common_ancestor",
    "NameResolution",
    "NameResolver",
]
