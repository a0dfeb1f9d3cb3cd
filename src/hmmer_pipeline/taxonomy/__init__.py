"""Taxonomy lineage resolution.

Two backends share the TaxonomySource interface:
- LocalTaxonomySource: pre-loaded TSV/Parquet lineage index
- RemoteTaxonomySource: NCBI Taxonomy through Biopython Entrez

TaxonomyResolver selects a backend per call and caches lineages with
at-most-once lookups per taxon id.
"""

from hmmer_pipeline.taxonomy.models import (
    CANONICAL_RANKS,
    LINEAGE_COLUMN_PREFIX,
    TaxonLineage,
    TaxonomyMode,
)
from hmmer_pipeline.taxonomy.sources import (
    LocalTaxonomySource,
    RemoteTaxonomySource,
    TaxonomySource,
)
from hmmer_pipeline.taxonomy.resolver import TaxonomyResolver

__all__ = [
    "CANONICAL_RANKS",
    "LINEAGE_COLUMN_PREFIX",
    "TaxonLineage",
    "TaxonomyMode",
    "LocalTaxonomySource",
    "RemoteTaxonomySource",
    "TaxonomySource",
    "TaxonomyResolver",
]
