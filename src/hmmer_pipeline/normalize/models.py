"""Table schemas for normalized hits and domains."""

import polars as pl

# DuckDB table names
HITS_TABLE_NAME = "hits"
DOMAINS_TABLE_NAME = "domains"

HIT_SCHEMA = {
    "hit_id": pl.Int64,
    "query_id": pl.String,
    "database": pl.String,
    "target_accession": pl.String,
    "target_name": pl.String,
    "description": pl.String,
    "species": pl.String,
    "full_sequence_evalue": pl.Float64,
    "full_sequence_score": pl.Float64,
    "full_sequence": pl.String,
    "taxon_id": pl.Int64,
}

DOMAIN_SCHEMA = {
    "domain_id": pl.Int64,
    "hit_id": pl.Int64,
    "domain_evalue": pl.Float64,
    "conditional_evalue": pl.Float64,
    "align_start": pl.Int64,
    "align_end": pl.Int64,
    "env_start": pl.Int64,
    "env_end": pl.Int64,
    "score": pl.Float64,
    "is_included": pl.Boolean,
}

# Raw field names in priority order. The first names are what the HMMER
# web service returns; later ones accept already-renamed input.
HIT_FIELDS = {
    "target_accession": ("acc", "accession", "target_accession"),
    "target_name": ("name", "target_name"),
    "description": ("desc", "description"),
    "species": ("species",),
    "full_sequence_evalue": ("evalue", "full_sequence_evalue"),
    "full_sequence_score": ("score", "full_sequence_score"),
    "full_sequence": ("sequence", "full_sequence"),
    "taxon_id": ("taxid", "taxon_id"),
}

DOMAIN_FIELDS = {
    "domain_evalue": ("ievalue", "i_evalue", "domain_evalue"),
    "conditional_evalue": ("cevalue", "c_evalue", "conditional_evalue"),
    "align_start": ("alisqfrom", "ali_from", "align_start"),
    "align_end": ("alisqto", "ali_to", "align_end"),
    "env_start": ("ienv", "env_from", "env_start"),
    "env_end": ("jenv", "env_to", "env_end"),
    "score": ("bitscore", "score"),
    "is_included": ("is_included",),
}


def empty_hits() -> pl.DataFrame:
    return pl.DataFrame(schema=HIT_SCHEMA)


def empty_domains() -> pl.DataFrame:
    return pl.DataFrame(schema=DOMAIN_SCHEMA)
