"""Attach sequences, lineage and physicochemical profiles to hits.

Remote work (sequence fetch, taxonomy lookups) runs on a bounded thread
pool, one task per distinct accession or taxon id. Property computation is
pure and runs once per distinct sequence after fetching finishes. Results
are attached by left joins, so the original hit columns are never
overwritten except to fill null sequences and taxon ids.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Optional

import polars as pl
import structlog

from hmmer_pipeline.errors import (
    InvalidSequenceError,
    SequenceNotFoundError,
    ServiceError,
    TransientError,
    UnknownTaxonError,
)
from hmmer_pipeline.enrichment.models import EnrichmentResult, Failure
from hmmer_pipeline.normalize.normalizer import check_referential_integrity
from hmmer_pipeline.properties.calculator import PropertyCalculator
from hmmer_pipeline.sequences.fetch import SequenceFetcher
from hmmer_pipeline.sequences.header import taxon_id_from_header
from hmmer_pipeline.taxonomy.models import (
    CANONICAL_RANKS,
    LINEAGE_COLUMN_PREFIX,
    TaxonLineage,
    TaxonomyMode,
)
from hmmer_pipeline.taxonomy.resolver import TaxonomyResolver

logger = structlog.get_logger()

# Failures isolated per row; anything else stops the run
ROW_ERRORS = (
    SequenceNotFoundError,
    UnknownTaxonError,
    TransientError,
    ServiceError,
    InvalidSequenceError,
)

LINEAGE_COLUMNS = [f"{LINEAGE_COLUMN_PREFIX}{rank}" for rank in CANONICAL_RANKS]

_ROW_INDEX = "__row"


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def fill_taxon_ids(hits: pl.DataFrame) -> pl.DataFrame:
    """Fill null taxon_id values from OX= tags in the hit description."""
    if "description" not in hits.columns:
        return hits
    return hits.with_columns(
        pl.coalesce(
            pl.col("taxon_id"),
            pl.col("description").map_elements(
                taxon_id_from_header,
                return_dtype=pl.Int64,
                skip_nulls=True,
            ),
        ).alias("taxon_id")
    )


def _run_remote_tasks(
    tasks: list[tuple[str, Any, Callable[[], Any]]],
    max_workers: int,
    cancel_event: Optional[threading.Event],
) -> tuple[dict[tuple[str, Any], Any], list[Failure], bool]:
    """Run (step, key, call) tasks concurrently with per-task isolation.

    Returns:
        (results keyed by (step, key), failures, cancelled)
    """
    results: dict[tuple[str, Any], Any] = {}
    failures: list[Failure] = []
    cancelled = False
    if not tasks:
        return results, failures, cancelled

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="enrich")
    futures: dict[Future, tuple[str, Any]] = {}
    handled: set[Future] = set()

    def collect(future: Future) -> None:
        handled.add(future)
        step, key = futures[future]
        try:
            results[(step, key)] = future.result()
        except ROW_ERRORS as e:
            logger.warning("enrichment_row_failed", step=step, key=str(key), error=str(e))
            failures.append(Failure.from_exception(step, key, e))

    try:
        for step, key, call in tasks:
            if _is_cancelled(cancel_event):
                cancelled = True
                break
            futures[executor.submit(call)] = (step, key)

        for future in as_completed(futures):
            if _is_cancelled(cancel_event):
                cancelled = True
                break
            collect(future)
    finally:
        executor.shutdown(wait=True, cancel_futures=cancelled)

    # Keep whatever finished before cancellation took effect
    for future in futures:
        if future not in handled and future.done() and not future.cancelled():
            collect(future)

    return results, failures, cancelled


def lineage_frame(lineages: dict[int, TaxonLineage]) -> pl.DataFrame:
    """One row per taxon id with lineage_<rank> columns."""
    schema = {"taxon_id": pl.Int64, **{c: pl.String for c in LINEAGE_COLUMNS}}
    rows = [
        {"taxon_id": taxon_id, **lineage.canonical_columns()}
        for taxon_id, lineage in lineages.items()
    ]
    return pl.DataFrame(rows, schema=schema)


def profile_frame(
    profiles: dict[str, dict[str, float]],
    index_names: list[str],
) -> pl.DataFrame:
    """One row per sequence string with one column per property index."""
    schema = {"full_sequence": pl.String, **{name: pl.Float64 for name in index_names}}
    rows = [
        {"full_sequence": sequence, **profile}
        for sequence, profile in profiles.items()
    ]
    return pl.DataFrame(rows, schema=schema)


def strip_enrichment(hits: pl.DataFrame, index_names: list[str]) -> pl.DataFrame:
    """Drop lineage and property columns so enrichment can be re-joined."""
    drop = [c for c in hits.columns if c in LINEAGE_COLUMNS or c in index_names]
    return hits.drop(drop)


def attach_lineage(hits: pl.DataFrame, lineages: dict[int, TaxonLineage]) -> pl.DataFrame:
    """Left-join lineage columns onto hits by taxon_id, keeping row order."""
    hits = hits.drop([c for c in LINEAGE_COLUMNS if c in hits.columns])
    return (
        hits.with_row_index(_ROW_INDEX)
        .join(lineage_frame(lineages), on="taxon_id", how="left")
        .sort(_ROW_INDEX)
        .drop(_ROW_INDEX)
    )


def resolve_lineages(
    taxon_ids: list[int],
    resolver: TaxonomyResolver,
    taxonomy_mode: TaxonomyMode | str | None = None,
    max_workers: int = 4,
    cancel_event: Optional[threading.Event] = None,
) -> tuple[dict[int, TaxonLineage], list[Failure], bool]:
    """Resolve distinct taxon ids concurrently through the resolver cache."""
    tasks = [
        ("taxonomy", tid, lambda tid=tid: resolver.resolve(tid, taxonomy_mode))
        for tid in dict.fromkeys(taxon_ids)
    ]
    results, failures, cancelled = _run_remote_tasks(tasks, max_workers, cancel_event)
    lineages = {key: value for (_, key), value in results.items()}
    return lineages, failures, cancelled


def reannotate_taxonomy(
    hits: pl.DataFrame,
    resolver: TaxonomyResolver,
    taxonomy_mode: TaxonomyMode | str | None = None,
    max_workers: int = 4,
) -> tuple[pl.DataFrame, list[Failure]]:
    """Re-resolve lineage for the taxon ids present in hits and re-attach it."""
    taxon_ids = hits["taxon_id"].drop_nulls().unique(maintain_order=True).to_list()
    lineages, failures, _ = resolve_lineages(taxon_ids, resolver, taxonomy_mode, max_workers)
    return attach_lineage(hits, lineages), failures


def enrich(
    hits: pl.DataFrame,
    domains: pl.DataFrame,
    sequence_fetcher: SequenceFetcher,
    taxonomy_mode: TaxonomyMode | str | None,
    resolver: TaxonomyResolver,
    calculator: PropertyCalculator,
    max_workers: int = 4,
    cancel_event: Optional[threading.Event] = None,
) -> EnrichmentResult:
    """Attach full sequences, lineage and property columns to hits.

    Steps:
    1. Fill null taxon_id values from OX= tags in descriptions
    2. Fetch one sequence per distinct target_accession lacking one, and
       resolve lineage per distinct taxon_id, concurrently
    3. Compute one profile per distinct available sequence

    Each failure is isolated to its rows and recorded; failed values stay
    null. Setting cancel_event stops new work; rows already enriched keep
    their values and the result is marked cancelled.

    Args:
        hits: Hits table from normalize()
        domains: Domains table from normalize(), returned unchanged
        sequence_fetcher: Sequence source used for missing sequences
        taxonomy_mode: Backend for this run ("local" or "remote"); None
            uses the resolver's default
        resolver: Taxonomy resolver (its cache is shared across calls)
        calculator: Property calculator (memoized by sequence)
        max_workers: Concurrency bound for remote calls
        cancel_event: Optional event to cancel the run

    Raises:
        ReferentialIntegrityError: If the input tables are inconsistent
    """
    check_referential_integrity(hits, domains)
    index_names = calculator.index_names

    hits = strip_enrichment(hits, index_names)
    hits = fill_taxon_ids(hits)

    missing = hits.filter(pl.col("full_sequence").is_null())
    accessions = missing["target_accession"].unique(maintain_order=True).to_list()
    taxon_ids = hits["taxon_id"].drop_nulls().unique(maintain_order=True).to_list()

    logger.info(
        "enrichment_start",
        hits=hits.height,
        accessions_to_fetch=len(accessions),
        taxa_to_resolve=len(taxon_ids),
        taxonomy_mode=TaxonomyMode(taxonomy_mode or resolver.default_mode).value,
        max_workers=max_workers,
    )

    tasks = [
        ("sequence", acc, lambda acc=acc: sequence_fetcher.fetch(acc))
        for acc in accessions
    ]
    tasks.extend(
        ("taxonomy", tid, lambda tid=tid: resolver.resolve(tid, taxonomy_mode))
        for tid in taxon_ids
    )
    results, failures, cancelled = _run_remote_tasks(tasks, max_workers, cancel_event)

    fetched = {key: value for (step, key), value in results.items() if step == "sequence"}
    lineages = {key: value for (step, key), value in results.items() if step == "taxonomy"}

    # Sequences: fill nulls only
    sequence_map = pl.DataFrame(
        {
            "target_accession": list(fetched.keys()),
            "__fetched_sequence": list(fetched.values()),
        },
        schema={"target_accession": pl.String, "__fetched_sequence": pl.String},
    )
    hits = (
        hits.with_row_index(_ROW_INDEX)
        .join(sequence_map, on="target_accession", how="left")
        .with_columns(
            pl.coalesce(pl.col("full_sequence"), pl.col("__fetched_sequence")).alias("full_sequence")
        )
        .drop("__fetched_sequence")
        .sort(_ROW_INDEX)
        .drop(_ROW_INDEX)
    )

    hits = attach_lineage(hits, lineages)

    # Properties: one computation per distinct sequence
    profiles: dict[str, dict[str, float]] = {}
    owners = (
        hits.filter(pl.col("full_sequence").is_not_null())
        .unique(subset="full_sequence", keep="first", maintain_order=True)
        .select("full_sequence", "target_accession")
    )
    for sequence, accession in owners.iter_rows():
        if _is_cancelled(cancel_event):
            cancelled = True
            break
        try:
            profiles[sequence] = calculator.compute(sequence)
        except InvalidSequenceError as e:
            logger.warning("enrichment_row_failed", step="properties", key=accession, error=str(e))
            failures.append(Failure.from_exception("properties", accession, e))

    hits = (
        hits.with_row_index(_ROW_INDEX)
        .join(profile_frame(profiles, index_names), on="full_sequence", how="left")
        .sort(_ROW_INDEX)
        .drop(_ROW_INDEX)
    )

    logger.info(
        "enrichment_complete",
        hits=hits.height,
        sequences_available=hits.filter(pl.col("full_sequence").is_not_null()).height,
        lineages_resolved=len(lineages),
        profiles_computed=len(profiles),
        failures=len(failures),
        cancelled=cancelled,
    )

    return EnrichmentResult(
        hits=hits,
        domains=domains,
        failures=failures,
        cancelled=cancelled,
    )
