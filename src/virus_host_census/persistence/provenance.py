"""Run provenance: what was counted, with which settings, in which order."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

PROVENANCE_DDL = """
    CREATE TABLE IF NOT EXISTS _provenance (
        version VARCHAR,
        config_hash VARCHAR,
        created_at TIMESTAMP,
        steps_json VARCHAR
    )
"""

# Credentials never leave the config object
PRIVATE_ORACLE_FIELDS = {"api_key", "email"}


class ProvenanceTracker:
    """
    Collects one entry per census stage plus the settings that shape the
    counts: package version, config hash and the oracle settings (rate
    limit, batch size, backend) minus credentials.
    """

    def __init__(self, pipeline_version: str, config: "PipelineConfig"):
        self.pipeline_version = pipeline_version
        self.config_hash = config.config_hash()
        self.oracle_settings = config.oracle.model_dump(
            mode="json",
            exclude=PRIVATE_ORACLE_FIELDS,
        )
        self.processing_steps: list[dict] = []
        self.created_at = datetime.now(timezone.utc)

    def record_step(self, step_name: str, details: Optional[dict] = None) -> None:
        """Append a stage with a UTC timestamp and optional counts."""
        step = {
            "step_name": step_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            step["details"] = details
        self.processing_steps.append(step)

    def create_metadata(self) -> dict:
        return {
            "pipeline_version": self.pipeline_version,
            "oracle_settings": self.oracle_settings,
            "config_hash": self.config_hash,
            "created_at": self.created_at.isoformat(),
            "processing_steps": self.processing_steps,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """
        Write metadata next to an exported table.

        ``rankings/host_ranking.parquet`` gets
        ``rankings/host_ranking.provenance.json``.
        """
        sidecar_path = Path(output_path).with_suffix(".provenance.json")
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)
        sidecar_path.write_text(json.dumps(self.create_metadata(), indent=2, default=str))
        return sidecar_path

    def save_to_store(self, store: "PipelineStore") -> None:
        """Append this run as one row of the store's ``_provenance`` table."""
        store.conn.execute(PROVENANCE_DDL)
        store.conn.execute(
            "INSERT INTO _provenance (version, config_hash, created_at, steps_json) "
            "VALUES (?, ?, ?, ?)",
            [
                self.pipeline_version,
                self.config_hash,
                self.created_at.isoformat(),
                json.dumps(self.processing_steps, default=str),
            ],
        )

    @classmethod
    def from_config(
        cls,
        config: "PipelineConfig",
        version: Optional[str] = None,
    ) -> "ProvenanceTracker":
        """Tracker stamped with ``version`` or the installed package version."""
        if version is None:
            from virus_host_census import __version__
            version = __version__

        return cls(version, config)
