"""Flatten nested query -> hit -> domain results into linked tables."""

import math
from typing import Any, Iterable

import polars as pl
import structlog

from hmmer_pipeline.errors import NormalizationError, ReferentialIntegrityError
from hmmer_pipeline.normalize.models import (
    DOMAIN_FIELDS,
    DOMAIN_SCHEMA,
    HIT_FIELDS,
    HIT_SCHEMA,
)

logger = structlog.get_logger()


def _first(record: dict, names: tuple[str, ...]) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any, field: str) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise NormalizationError(f"Field {field} is not numeric: {value!r}") from e
    return None if math.isnan(result) else result


def _to_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise NormalizationError(f"Field {field} is not an integer: {value!r}") from e


def _to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _hit_row(hit_id: int, query_id: str, database: str, hit: dict) -> dict:
    accession = _first(hit, HIT_FIELDS["target_accession"])
    if accession is None:
        raise NormalizationError(f"Hit under query {query_id} has no accession")

    return {
        "hit_id": hit_id,
        "query_id": query_id,
        "database": database,
        "target_accession": str(accession),
        "target_name": _first(hit, HIT_FIELDS["target_name"]),
        "description": _first(hit, HIT_FIELDS["description"]),
        "species": _first(hit, HIT_FIELDS["species"]),
        "full_sequence_evalue": _to_float(
            _first(hit, HIT_FIELDS["full_sequence_evalue"]), "full_sequence_evalue"
        ),
        "full_sequence_score": _to_float(
            _first(hit, HIT_FIELDS["full_sequence_score"]), "full_sequence_score"
        ),
        "full_sequence": _first(hit, HIT_FIELDS["full_sequence"]),
        "taxon_id": _to_int(_first(hit, HIT_FIELDS["taxon_id"]), "taxon_id"),
    }


def _domain_row(domain_id: int, hit_id: int, accession: str, domain: dict) -> dict:
    align_start = _to_int(_first(domain, DOMAIN_FIELDS["align_start"]), "align_start")
    align_end = _to_int(_first(domain, DOMAIN_FIELDS["align_end"]), "align_end")
    if align_start is None or align_end is None:
        raise NormalizationError(f"Domain of {accession} lacks alignment coordinates")
    if align_start < 1 or align_end < align_start:
        raise NormalizationError(
            f"Domain of {accession} has invalid alignment {align_start}-{align_end}"
        )

    return {
        "domain_id": domain_id,
        "hit_id": hit_id,
        "domain_evalue": _to_float(_first(domain, DOMAIN_FIELDS["domain_evalue"]), "domain_evalue"),
        "conditional_evalue": _to_float(
            _first(domain, DOMAIN_FIELDS["conditional_evalue"]), "conditional_evalue"
        ),
        "align_start": align_start,
        "align_end": align_end,
        "env_start": _to_int(_first(domain, DOMAIN_FIELDS["env_start"]), "env_start"),
        "env_end": _to_int(_first(domain, DOMAIN_FIELDS["env_end"]), "env_end"),
        "score": _to_float(_first(domain, DOMAIN_FIELDS["score"]), "score"),
        "is_included": _to_bool(_first(domain, DOMAIN_FIELDS["is_included"])),
    }


def normalize(
    raw: dict[str, Any],
    start: int = 1,
) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Flatten one raw search result into hits and domains tables.

    Traverses query -> hit -> domain depth-first in input order, assigning
    hit_id and domain_id from independent counters starting at ``start``.
    A hit without domains yields one hit row and no domain rows.

    Args:
        raw: Raw nested result as returned by SearchClient.fetch_results
        start: First key value for both counters

    Returns:
        (hits, domains) with HIT_SCHEMA and DOMAIN_SCHEMA columns

    Raises:
        NormalizationError: If the structure cannot be traversed or a
            domain has missing or inverted coordinates
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("queries"), list):
        raise NormalizationError("Raw result must be a dict with a 'queries' list")

    hit_rows: list[dict] = []
    domain_rows: list[dict] = []
    next_hit_id = start
    next_domain_id = start

    for entry in raw["queries"]:
        query_id = entry.get("query_id")
        if query_id is None:
            raise NormalizationError("Query entry has no query_id")
        database = entry.get("database")

        for hit in entry.get("hits") or []:
            row = _hit_row(next_hit_id, str(query_id), database, hit)
            hit_rows.append(row)

            for domain in hit.get("domains") or []:
                domain_rows.append(
                    _domain_row(next_domain_id, next_hit_id, row["target_accession"], domain)
                )
                next_domain_id += 1

            next_hit_id += 1

    hits = pl.DataFrame(hit_rows, schema=HIT_SCHEMA)
    domains = pl.DataFrame(domain_rows, schema=DOMAIN_SCHEMA)

    check_referential_integrity(hits, domains)

    logger.info(
        "normalize_complete",
        job_id=raw.get("job_id"),
        queries=len(raw["queries"]),
        hits=hits.height,
        domains=domains.height,
        hits_without_domains=hits.join(domains, on="hit_id", how="anti").height,
    )

    return hits, domains


def normalize_many(raws: Iterable[dict[str, Any]]) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Normalize several raw results and concatenate them.

    Each raw result is normalized on its own, then its keys are shifted past
    the keys already used so hit_id and domain_id stay unique across the
    concatenation.
    """
    hit_frames = []
    domain_frames = []
    hit_offset = 0
    domain_offset = 0

    for raw in raws:
        hits, domains = normalize(raw)
        hit_frames.append(hits.with_columns(pl.col("hit_id") + hit_offset))
        domain_frames.append(domains.with_columns(
            pl.col("domain_id") + domain_offset,
            pl.col("hit_id") + hit_offset,
        ))
        if hits.height:
            hit_offset += hits["hit_id"].max()
        if domains.height:
            domain_offset += domains["domain_id"].max()

    if not hit_frames:
        return pl.DataFrame(schema=HIT_SCHEMA), pl.DataFrame(schema=DOMAIN_SCHEMA)

    hits = pl.concat(hit_frames, how="vertical")
    domains = pl.concat(domain_frames, how="vertical")
    check_referential_integrity(hits, domains)
    return hits, domains


def check_referential_integrity(hits: pl.DataFrame, domains: pl.DataFrame) -> None:
    """Verify hit keys are unique and every domain points at a hit.

    Raises:
        ReferentialIntegrityError: On duplicate or null hit ids, or on
            domains whose hit_id is absent from hits
    """
    if hits["hit_id"].null_count() or hits["hit_id"].n_unique() != hits.height:
        raise ReferentialIntegrityError("hit_id values must be unique and non-null")

    if domains["hit_id"].null_count():
        raise ReferentialIntegrityError("Domain rows with null hit_id")

    orphans = domains.join(hits.select("hit_id"), on="hit_id", how="anti")
    if orphans.height:
        sample = orphans["domain_id"].head(5).to_list()
        raise ReferentialIntegrityError(
            f"{orphans.height} domain rows reference missing hits (domain_id {sample})"
        )
