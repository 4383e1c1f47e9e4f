"""Pydantic models for census configuration."""

import hashlib
import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class OracleConfig(BaseModel):
    """Configuration for the taxonomy oracle client."""

    backend: Literal["entrez", "local"] = Field(
        default="entrez",
        description="Remote NCBI E-utilities or a local NCBI taxdump mirror",
    )
    rate_limit_per_second: float = Field(
        default=10.0,
        gt=0,
        description="Maximum remote oracle queries per second",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum retry attempts for failed oracle requests",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Names or taxids per oracle batch",
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Request timeout in seconds",
    )
    cache_ttl_seconds: int = Field(
        default=86400,
        ge=0,
        description="Response cache time-to-live in seconds (0 = infinite)",
    )
    email: Optional[str] = Field(
        default=None,
        description="Contact email sent to NCBI E-utilities",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="NCBI API key (raises the NCBI ceiling from 3 to 10 req/s)",
    )
    nodes_path: Optional[Path] = Field(
        default=None,
        description="Path to NCBI taxdump nodes.dmp (local backend)",
    )
    names_path: Optional[Path] = Field(
        default=None,
        description="Path to NCBI taxdump names.dmp (local backend)",
    )

    @model_validator(mode="after")
    def check_local_paths(self) -> "OracleConfig":
        """Local backend needs both taxdump files."""
        if self.backend == "local" and (self.nodes_path is None or self.names_path is None):
            raise ValueError("Local oracle backend requires nodes_path and names_path")
        return self


class AnalysisConfig(BaseModel):
    """Parameters of the census analysis itself."""

    excluded_virus_roots: list[int] = Field(
        default_factory=list,
        description="Taxids whose subtrees are removed for filtered statistics",
    )
    singleton_sample_size: int = Field(
        default=10,
        ge=0,
        description="Number of single-occurrence taxa to sample for display",
    )
    sample_seed: int = Field(
        default=0,
        description="Seed for singleton sampling",
    )


class PipelineConfig(BaseModel):
    """Main census configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory holding metadata tables and reports",
    )
    cache_dir: Path = Field(
        ...,
        description="Directory for oracle response caching",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB checkpoint database",
    )
    oracle: OracleConfig = Field(
        default_factory=OracleConfig,
        description="Taxonomy oracle configuration",
    )
    analysis: AnalysisConfig = Field(
        default_factory=AnalysisConfig,
        description="Census analysis parameters",
    )

    @field_validator("data_dir", "cache_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        The API key is excluded so that the hash can be published alongside
        results without leaking credentials.
        """
        config_dict = self.model_dump(mode="python")
        config_dict["oracle"].pop("api_key", None)
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
