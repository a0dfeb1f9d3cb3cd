"""Enrichment of normalized hits with sequences, lineage and properties.

The domains table passes through untouched. Row-level failures are
accumulated in EnrichmentResult.failures instead of aborting the batch.
"""

from hmmer_pipeline.enrichment.models import (
    FAILURES_TABLE_NAME,
    EnrichmentResult,
    Failure,
    failures_frame,
)
from hmmer_pipeline.enrichment.pipeline import (
    LINEAGE_COLUMNS,
    attach_lineage,
    enrich,
    fill_taxon_ids,
    reannotate_taxonomy,
    resolve_lineages,
    strip_enrichment,
)

__all__ = [
    "FAILURES_TABLE_NAME",
    "EnrichmentResult",
    "Failure",
    "failures_frame",
    "LINEAGE_COLUMNS",
    "attach_lineage",
    "enrich",
    "fill_taxon_ids",
    "reannotate_taxonomy",
    "resolve_lineages",
    "strip_enrichment",
]
