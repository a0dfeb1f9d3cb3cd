"""Run the configured curation steps over enriched tables."""

from dataclasses import dataclass, field
from typing import Optional

import polars as pl
import structlog

from hmmer_pipeline.config.schema import CurationConfig
from hmmer_pipeline.curation.filters import (
    annotate_domain_support,
    deduplicate,
    filter_by_evalue,
    flagged_hits,
)
from hmmer_pipeline.enrichment.models import Failure
from hmmer_pipeline.enrichment.pipeline import LINEAGE_COLUMNS, reannotate_taxonomy
from hmmer_pipeline.taxonomy.models import TaxonomyMode
from hmmer_pipeline.taxonomy.resolver import TaxonomyResolver

logger = structlog.get_logger()


@dataclass
class CurationResult:
    """Curated tables with the hits needing manual inspection.

    Attributes:
        hits: Curated hits with significant_domain_count and red_flag
        domains: Domains of curated hits passing the e-value threshold
        flagged: Hits significant at full-sequence level with no
            significant domain
        failures: Taxonomy failures from re-annotation, if it ran
    """
    hits: pl.DataFrame
    domains: pl.DataFrame
    flagged: pl.DataFrame
    failures: list[Failure] = field(default_factory=list)


def curate(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
    config: CurationConfig,
    resolver: Optional[TaxonomyResolver] = None,
    taxonomy_mode: TaxonomyMode | str | None = None,
) -> CurationResult:
    """Deduplicate, filter by e-value and flag domain/sequence disagreement.

    Lineage after filtering follows ``config.reannotate_taxonomy``:
    "original" keeps the lineage attached during enrichment, "filtered"
    re-resolves it for the surviving rows (needs a resolver), "none" drops
    the lineage columns.
    """
    logger.info(
        "curation_start",
        hits=hits.height,
        domains=domains.height,
        evalue_threshold=config.evalue_threshold,
        deduplicate=config.deduplicate,
        reannotate_taxonomy=config.reannotate_taxonomy,
    )

    if config.deduplicate:
        hits, domains = deduplicate(hits, domains)

    hits, domains = filter_by_evalue(hits, domains, config.evalue_threshold)
    hits = annotate_domain_support(hits, domains, config.evalue_threshold)

    failures: list[Failure] = []
    if config.reannotate_taxonomy == "filtered":
        if resolver is None:
            raise ValueError("reannotate_taxonomy='filtered' requires a TaxonomyResolver")
        hits, failures = reannotate_taxonomy(hits, resolver, taxonomy_mode)
    elif config.reannotate_taxonomy == "none":
        hits = hits.drop([c for c in LINEAGE_COLUMNS if c in hits.columns])

    flagged = flagged_hits(hits)

    logger.info(
        "curation_complete",
        hits=hits.height,
        domains=domains.height,
        red_flags=flagged.height,
        failures=len(failures),
    )

    return CurationResult(hits=hits, domains=domains, flagged=flagged, failures=failures)
