"""Persistence layer for resolution checkpoints and provenance tracking."""

from virus_host_census.persistence.duckdb_store import PipelineStore
from virus_host_census.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker"]
