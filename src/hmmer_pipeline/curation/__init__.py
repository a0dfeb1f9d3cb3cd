"""Curation of enriched hits: deduplication, e-value thresholds, red flags."""

from hmmer_pipeline.curation.filters import (
    DEFAULT_DEDUP_KEY,
    annotate_domain_support,
    deduplicate,
    drop_missing_sequences,
    filter_by_evalue,
    flagged_hits,
)
from hmmer_pipeline.curation.pipeline import CurationResult, curate

__all__ = [
    "DEFAULT_DEDUP_KEY",
    "annotate_domain_support",
    "deduplicate",
    "drop_missing_sequences",
    "filter_by_evalue",
    "flagged_hits",
    "CurationResult",
    "curate",
]
