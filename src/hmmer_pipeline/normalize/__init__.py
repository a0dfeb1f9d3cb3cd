"""Nested search results flattened into hits and domains tables.

hits.hit_id is the primary key; domains.hit_id references it. Keys are
assigned depth-first in input order, so the same raw result always yields
the same tables.
"""

from hmmer_pipeline.normalize.models import (
    DOMAIN_SCHEMA,
    DOMAINS_TABLE_NAME,
    HIT_SCHEMA,
    HITS_TABLE_NAME,
    empty_domains,
    empty_hits,
)
from hmmer_pipeline.normalize.normalizer import (
    check_referential_integrity,
    normalize,
    normalize_many,
)

__all__ = [
    "DOMAIN_SCHEMA",
    "DOMAINS_TABLE_NAME",
    "HIT_SCHEMA",
    "HITS_TABLE_NAME",
    "empty_domains",
    "empty_hits",
    "check_referential_integrity",
    "normalize",
    "normalize_many",
]
