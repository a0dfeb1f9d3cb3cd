"""Data models for enrichment results and per-row failures."""

from dataclasses import dataclass, field

import polars as pl

# DuckDB table name for accumulated enrichment failures
FAILURES_TABLE_NAME = "enrichment_failures"

FAILURE_SCHEMA = {
    "step": pl.String,
    "key": pl.String,
    "error_type": pl.String,
    "message": pl.String,
}


@dataclass(frozen=True)
class Failure:
    """One row-level enrichment failure.

    Attributes:
        step: Enrichment step ("sequence", "taxonomy", "properties")
        key: Accession, taxon id or sequence owner the failure concerns
        error_type: Exception class name
        message: Exception message
    """
    step: str
    key: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, step: str, key, error: Exception) -> "Failure":
        return cls(
            step=step,
            key=str(key),
            error_type=type(error).__name__,
            message=str(error),
        )


@dataclass
class EnrichmentResult:
    """Best-effort enriched tables plus the failures met along the way.

    Attributes:
        hits: Hits with full_sequence, lineage_* and property columns
        domains: Domains table, returned unchanged
        failures: Row-level failures; callers decide if they are acceptable
        cancelled: True when the run stopped early; completed rows are kept
    """
    hits: pl.DataFrame
    domains: pl.DataFrame
    failures: list[Failure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def is_complete(self) -> bool:
        return not self.failures and not self.cancelled

    def failures_by_step(self) -> dict[str, list[Failure]]:
        grouped: dict[str, list[Failure]] = {}
        for failure in self.failures:
            grouped.setdefault(failure.step, []).append(failure)
        return grouped


def failures_frame(failures: list[Failure]) -> pl.DataFrame:
    """Render failures as a table for persistence or display."""
    return pl.DataFrame(
        [
            {
                "step": f.step,
                "key": f.key,
                "error_type": f.error_type,
                "message": f.message,
            }
            for f in failures
        ],
        schema=FAILURE_SCHEMA,
    )
