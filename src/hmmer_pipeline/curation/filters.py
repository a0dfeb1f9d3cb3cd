"""Deduplication and e-value filters over linked hits/domains tables.

Every filter returns a (hits, domains) pair that satisfies referential
integrity: domains of removed hits are removed with them. Filtering never
cascades the other way; a hit whose domains were all filtered out stays.
"""

from typing import Sequence

import polars as pl
import structlog

from hmmer_pipeline.normalize.normalizer import check_referential_integrity

logger = structlog.get_logger()

DEFAULT_DEDUP_KEY = ("full_sequence", "taxon_id")

# Columns whose filters need sequence content
SEQUENCE_COLUMNS = {"full_sequence"}


def _domains_of(domains: pl.DataFrame, hits: pl.DataFrame) -> pl.DataFrame:
    return domains.filter(pl.col("hit_id").is_in(hits["hit_id"].to_list()))


def drop_missing_sequences(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Drop hits without a full sequence, with their domains."""
    kept = hits.filter(pl.col("full_sequence").is_not_null())
    dropped = hits.height - kept.height
    if dropped:
        logger.info("drop_missing_sequences", dropped_hits=dropped)
    return kept, _domains_of(domains, kept)


def deduplicate(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
    key: Sequence[str] = DEFAULT_DEDUP_KEY,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Keep the first hit per key in table order; drop the rest and their domains.

    When the key includes the sequence, hits without a sequence are dropped
    first rather than being treated as equal to each other. Hits with a null
    in any other key column (an unresolved taxon_id, say) are kept: two
    unknown organisms are not known to be the same one.

    Args:
        hits: Hits table (enriched with full_sequence when keyed on it)
        domains: Domains table
        key: Columns identifying duplicates

    Returns:
        (hits, domains) with duplicates removed
    """
    key = list(key)
    missing = [c for c in key if c not in hits.columns]
    if missing:
        raise ValueError(f"Deduplication key columns not in hits table: {missing}")

    if SEQUENCE_COLUMNS.intersection(key):
        hits, domains = drop_missing_sequences(hits, domains)

    other_columns = [c for c in key if c not in SEQUENCE_COLUMNS]
    has_null = (
        pl.any_horizontal([pl.col(c).is_null() for c in other_columns])
        if other_columns
        else pl.lit(False)
    )
    kept = hits.filter(has_null | pl.struct(key).is_first_distinct())
    kept_domains = _domains_of(domains, kept)
    check_referential_integrity(kept, kept_domains)

    logger.info(
        "deduplicate_complete",
        key=key,
        hits_before=hits.height,
        hits_after=kept.height,
        domains_removed=domains.height - kept_domains.height,
    )
    return kept, kept_domains


def filter_by_evalue(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
    threshold: float,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Keep hits and domains whose own e-value is at or below threshold.

    Hits are judged on full_sequence_evalue, domains on domain_evalue
    (the independent e-value). A hit stays even if none of its domains
    pass; use annotate_domain_support to surface those hits. Domains of
    hits that fail are removed. Null e-values never pass.
    """
    if threshold <= 0:
        raise ValueError(f"E-value threshold must be positive, got {threshold}")

    kept_hits = hits.filter(
        pl.col("full_sequence_evalue").is_not_null()
        & (pl.col("full_sequence_evalue") <= threshold)
    )
    kept_domains = _domains_of(domains, kept_hits).filter(
        pl.col("domain_evalue").is_not_null()
        & (pl.col("domain_evalue") <= threshold)
    )
    check_referential_integrity(kept_hits, kept_domains)

    logger.info(
        "filter_by_evalue_complete",
        threshold=threshold,
        hits_before=hits.height,
        hits_after=kept_hits.height,
        domains_before=domains.height,
        domains_after=kept_domains.height,
    )
    return kept_hits, kept_domains


def annotate_domain_support(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
    threshold: float | None = None,
) -> pl.DataFrame:
    """Add significant_domain_count and red_flag columns to hits.

    significant_domain_count counts the hit's domains in ``domains`` (with
    domain_evalue <= threshold when a threshold is given). red_flag marks
    hits that are significant at full-sequence level but have no
    significant domain, i.e. sequence-level and domain-level significance
    disagree.
    """
    counted = domains
    if threshold is not None:
        counted = domains.filter(pl.col("domain_evalue") <= threshold)

    counts = counted.group_by("hit_id").agg(
        pl.len().cast(pl.Int64).alias("significant_domain_count")
    )

    hits = hits.drop(
        [c for c in ("significant_domain_count", "red_flag") if c in hits.columns]
    )
    significant_hit = pl.lit(True)
    if threshold is not None:
        significant_hit = pl.col("full_sequence_evalue") <= threshold

    annotated = (
        hits.with_row_index("__row")
        .join(counts, on="hit_id", how="left")
        .sort("__row")
        .drop("__row")
        .with_columns(pl.col("significant_domain_count").fill_null(0))
        .with_columns(
            (significant_hit & (pl.col("significant_domain_count") == 0))
            .fill_null(False)
            .alias("red_flag")
        )
    )
    return annotated


def flagged_hits(hits: pl.DataFrame) -> pl.DataFrame:
    """Return hits marked red_flag by annotate_domain_support."""
    if "red_flag" not in hits.columns:
        raise ValueError("Hits have no red_flag column; run annotate_domain_support first")
    return hits.filter(pl.col("red_flag"))
