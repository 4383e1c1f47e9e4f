"""Sequence record set: ingestion, enrichment and subtree filtering."""

from virus_host_census.records.enrich import enrich_records, resolve_virus_species
from virus_host_census.records.filter import excluded_taxids, filter_subtrees
from virus_host_census.records.load import (
    add_host_keys,
    build_record_frame,
    parse_sequence_metadata,
)
from virus_host_census.records.models import (
    COLUMN_VARIANTS,
    ENRICHED_SCHEMA,
    RECORD_SCHEMA,
    SequenceRecord,
)

__all__ = [
    "enrich_records",
    "resolve_virus_species",
    "excluded_taxids",
    "filter_subtrees",
    "add_host_keys",
    "build_record_frame",
    "parse_sequence_metadata",
    "COLUMN_VARIANTS",
    "ENRICHED_SCHEMA",
    "RECORD_SCHEMA",
    "SequenceRecord",
]
