"""Pydantic models for pipeline configuration."""

import hashlib
import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class SearchConfig(BaseModel):
    """Configuration for the remote HMMER search service."""

    base_url: str = Field(
        default="https://www.ebi.ac.uk/Tools/hmmer",
        description="HMMER web service base URL",
    )
    algorithm: Literal["phmmer", "jackhmmer", "hmmscan"] = Field(
        default="phmmer",
        description="Search algorithm endpoint",
    )
    databases: list[str] = Field(
        default_factory=lambda: ["swissprot"],
        min_length=1,
        description="Target sequence databases",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Initial delay between status polls",
    )
    max_poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Upper bound for the exponential poll backoff",
    )
    max_wait_seconds: float = Field(
        default=1800.0,
        gt=0.0,
        description="Give up polling after this many seconds",
    )
    max_polls: int = Field(
        default=200,
        ge=1,
        description="Give up polling after this many status checks",
    )

    @field_validator("databases")
    @classmethod
    def strip_databases(cls, v: list[str]) -> list[str]:
        """Normalize database names to lowercase without whitespace."""
        return [db.strip().lower() for db in v if db.strip()]


class APIConfig(BaseModel):
    """Configuration for API clients."""

    rate_limit_per_second: int = Field(
        default=5,
        ge=1,
        description="Maximum API requests per second",
    )
    max_retries: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum retry attempts for failed requests",
    )
    cache_ttl_seconds: int = Field(
        default=86400,
        ge=0,
        description="Cache time-to-live in seconds (0 = infinite)",
    )
    timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Request timeout in seconds",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum concurrent remote calls during enrichment",
    )


class TaxonomyConfig(BaseModel):
    """Configuration for taxonomy lineage resolution."""

    mode: Literal["local", "remote"] = Field(
        default="remote",
        description="Taxonomy backend used for an enrichment run",
    )
    local_index_path: Path | None = Field(
        default=None,
        description="TSV or Parquet lineage index for local mode",
    )
    entrez_email: str | None = Field(
        default=None,
        description="Contact email sent to NCBI E-utilities",
    )
    entrez_api_key: str | None = Field(
        default=None,
        description="Optional NCBI API key (raises rate limit to 10 req/s)",
    )


class PropertyConfig(BaseModel):
    """Configuration for physicochemical property indices."""

    indices: list[str] = Field(
        default_factory=lambda: [
            "length",
            "molecular_weight",
            "isoelectric_point",
            "net_charge",
            "instability_index",
            "aliphatic_index",
            "gravy",
            "boman_index",
        ],
        description="Names of indices to compute for each sequence",
    )


class CurationConfig(BaseModel):
    """Thresholds and choices for the curation step."""

    evalue_threshold: float = Field(
        default=1e-3,
        gt=0.0,
        description="Maximum e-value kept for hits and domains",
    )
    deduplicate: bool = Field(
        default=True,
        description="Drop repeated (sequence, taxon) hits",
    )
    reannotate_taxonomy: Literal["none", "original", "filtered"] = Field(
        default="original",
        description=(
            "Taxonomy lineage after filtering: 'none' drops lineage columns, "
            "'original' keeps enrichment-time lineage, 'filtered' re-resolves "
            "lineage for the filtered rows"
        ),
    )


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    data_dir: Path = Field(
        ...,
        description="Directory for storing downloaded data and exports",
    )
    cache_dir: Path = Field(
        ...,
        description="Directory for API response caching",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file",
    )
    search: SearchConfig = Field(
        default_factory=SearchConfig,
        description="Remote search service configuration",
    )
    api: APIConfig = Field(
        default_factory=APIConfig,
        description="API client configuration",
    )
    taxonomy: TaxonomyConfig = Field(
        default_factory=TaxonomyConfig,
        description="Taxonomy resolver configuration",
    )
    properties: PropertyConfig = Field(
        default_factory=PropertyConfig,
        description="Physicochemical property configuration",
    )
    curation: CurationConfig = Field(
        default_factory=CurationConfig,
        description="Curation thresholds",
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

        Returns a deterministic hash based on all config values,
        useful for tracking config changes and cache invalidation.
        """
        config_dict = self.model_dump(mode="python")
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()
