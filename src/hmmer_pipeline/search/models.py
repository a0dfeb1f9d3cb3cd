"""Data models for search queries and remote job lifecycle."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Lifecycle state of a search job or one of its remote tasks."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


# Remote status strings reported by the HMMER web service
REMOTE_STATUS_MAP = {
    "PEND": JobStatus.PENDING,
    "PENDING": JobStatus.PENDING,
    "QUEUED": JobStatus.PENDING,
    "RUN": JobStatus.RUNNING,
    "RUNNING": JobStatus.RUNNING,
    "DONE": JobStatus.COMPLETE,
    "SUCCESS": JobStatus.COMPLETE,
    "FINISHED": JobStatus.COMPLETE,
    "ERROR": JobStatus.FAILED,
    "FAIL": JobStatus.FAILED,
    "FAILURE": JobStatus.FAILED,
}

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PENDING, JobStatus.RUNNING, JobStatus.COMPLETE, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.RUNNING, JobStatus.COMPLETE, JobStatus.FAILED},
    JobStatus.COMPLETE: {JobStatus.COMPLETE},
    JobStatus.FAILED: {JobStatus.FAILED},
}


@dataclass(frozen=True)
class Query:
    """One protein query sequence.

    Attributes:
        query_id: Identifier unique within a submission
        sequence: Amino acid sequence
        organism: Source organism parsed from the header (optional)
        description: Free-text description parsed from the header (optional)
        metadata: Opaque header-parser output
    """
    query_id: str
    sequence: str
    organism: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_fasta(self) -> str:
        return f">{self.query_id}\n{self.sequence}\n"


@dataclass
class RemoteTask:
    """One remote search for a (query, database) pair."""
    query_id: str
    database: str
    remote_id: str
    status: JobStatus = JobStatus.PENDING
    payload: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class SearchJob:
    """Submitted search covering one or more queries and databases.

    Status changes only through SearchClient.poll; see ALLOWED_TRANSITIONS.
    """
    query_ids: list[str]
    target_databases: list[str]
    tasks: list[RemoteTask] = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    submission_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    poll_count: int = 0

    def transition(self, new_status: JobStatus) -> None:
        """Move to new_status, rejecting transitions out of terminal states."""
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Invalid job transition {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    @property
    def remote_ids(self) -> list[str]:
        return [task.remote_id for task in self.tasks]


def aggregate_status(statuses: list[JobStatus]) -> JobStatus:
    """Combine task statuses into a job status.

    FAILED if any task failed, COMPLETE if all completed, RUNNING once any
    task has started, otherwise PENDING.
    """
    if not statuses:
        return JobStatus.PENDING
    if any(s == JobStatus.FAILED for s in statuses):
        return JobStatus.FAILED
    if all(s == JobStatus.COMPLETE for s in statuses):
        return JobStatus.COMPLETE
    if any(s in (JobStatus.RUNNING, JobStatus.COMPLETE) for s in statuses):
        return JobStatus.RUNNING
    return JobStatus.PENDING
