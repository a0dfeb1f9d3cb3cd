"""Remote profile-HMM search: job submission, polling and retrieval.

A SearchJob moves PENDING -> RUNNING -> COMPLETE/FAILED only through
SearchClient.poll. SearchClient.wait drives the poll loop with backoff,
a deadline and cooperative cancellation.
"""

from hmmer_pipeline.search.models import (
    JobStatus,
    Query,
    RemoteTask,
    SearchJob,
    aggregate_status,
)
from hmmer_pipeline.search.client import HMMER_API_BASE, SearchClient
from hmmer_pipeline.search.queries import read_queries

__all__ = [
    "JobStatus",
    "Query",
    "RemoteTask",
    "SearchJob",
    "aggregate_status",
    "HMMER_API_BASE",
    "SearchClient",
    "read_queries",
]
