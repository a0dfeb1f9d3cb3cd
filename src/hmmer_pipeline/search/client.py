"""Client for the HMMER web search service.

The service accepts one sequence per search, so a SearchJob fans out into
one remote task per (query, database) pair. Results are merged back in
submission order by fetch_results.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hmmer_pipeline.api_clients.base import is_retryable_status
from hmmer_pipeline.config.schema import PipelineConfig
from hmmer_pipeline.errors import (
    NotReadyError,
    SearchCancelledError,
    SearchTimeoutError,
    ServiceError,
    TransientError,
)
from hmmer_pipeline.search.models import (
    REMOTE_STATUS_MAP,
    JobStatus,
    Query,
    RemoteTask,
    SearchJob,
    aggregate_status,
)

logger = structlog.get_logger()

# HMMER web service base URL
HMMER_API_BASE = "https://www.ebi.ac.uk/Tools/hmmer"

# Form field naming the target database, per single-sequence search endpoint
DATABASE_FIELDS = {
    "phmmer": "seqdb",
    "jackhmmer": "seqdb",
    "hmmscan": "hmmdb",
}


class SearchClient:
    """Submit searches, poll their status and retrieve nested results.

    Remote tasks are submitted, polled and fetched on a thread pool of at
    most ``max_concurrency`` workers.
    """

    def __init__(
        self,
        base_url: str = HMMER_API_BASE,
        algorithm: str = "phmmer",
        max_retries: int = 5,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        max_poll_interval: float = 30.0,
        max_wait: float = 1800.0,
        max_polls: int = 200,
        max_concurrency: int = 4,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if algorithm not in DATABASE_FIELDS:
            raise ValueError(
                f"Unsupported search algorithm: {algorithm}. "
                f"Available: {sorted(DATABASE_FIELDS)}"
            )
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.algorithm = algorithm
        self.database_field = DATABASE_FIELDS[algorithm]
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval
        self.max_wait = max_wait
        self.max_polls = max_polls
        self.http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _create_retry_decorator(self):
        """Create retry decorator with exponential backoff for transient errors."""
        return retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=60),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, mapping failures onto Transient/ServiceError."""
        @self._create_retry_decorator()
        def _send():
            try:
                response = self.http.request(method, url, **kwargs)
                # Submission answers with a redirect to the results URL
                if response.is_error:
                    response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if is_retryable_status(status):
                    logger.warning("hmmer_transient_http_error", url=url, status=status)
                    raise TransientError(f"HTTP {status} from {url}") from e
                raise ServiceError(
                    f"HMMER service rejected request to {url}: HTTP {status}",
                    status_code=status,
                ) from e
            except httpx.TransportError as e:
                logger.warning("hmmer_network_error", url=url, error=str(e))
                raise TransientError(f"Network error for {url}: {e}") from e
            return response

        return _send()

    def _map(self, func: Callable[[Any], Any], items: list) -> list:
        """Apply func to items on the worker pool, keeping input order."""
        if len(items) <= 1 or self.max_concurrency == 1:
            return [func(item) for item in items]
        workers = min(self.max_concurrency, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hmmer") as executor:
            return list(executor.map(func, items))

    def _results_url(self, remote_id: str) -> str:
        return f"{self.base_url}/results/{remote_id}/score"

    @staticmethod
    def _remote_id_from_response(response: httpx.Response) -> str:
        """Extract the job id from a JSON body or a redirect Location."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            for key in ("uuid", "job_id", "id"):
                if body.get(key):
                    return str(body[key])

        location = response.headers.get("location", "")
        parts = [p for p in location.split("/") if p]
        if "results" in parts:
            idx = parts.index("results")
            if idx + 1 < len(parts):
                return parts[idx + 1]

        raise ServiceError("HMMER submission response carried no job id")

    def submit(self, queries: list[Query], target_databases: list[str]) -> SearchJob:
        """Submit every query against every database.

        Returns:
            SearchJob in PENDING state with one RemoteTask per pair

        Raises:
            ValueError: On empty inputs or duplicate query ids
            ServiceError: If the service rejects a submission
            TransientError: If the service stays unreachable after retries
        """
        if not queries:
            raise ValueError("At least one query is required")
        if not target_databases:
            raise ValueError("At least one target database is required")

        query_ids = [q.query_id for q in queries]
        if len(set(query_ids)) != len(query_ids):
            raise ValueError("Query ids must be unique within a submission")

        job = SearchJob(query_ids=query_ids, target_databases=list(target_databases))
        url = f"{self.base_url}/search/{self.algorithm}"

        logger.info(
            "hmmer_submit_start",
            job_id=job.job_id,
            queries=len(queries),
            databases=target_databases,
        )

        def submit_task(pair: tuple[Query, str]) -> RemoteTask:
            query, database = pair
            response = self._request(
                "POST",
                url,
                data={"seq": query.to_fasta(), self.database_field: database},
                follow_redirects=False,
            )
            remote_id = self._remote_id_from_response(response)
            logger.debug(
                "hmmer_task_submitted",
                job_id=job.job_id,
                query_id=query.query_id,
                database=database,
                remote_id=remote_id,
            )
            return RemoteTask(query_id=query.query_id, database=database, remote_id=remote_id)

        pairs = [(query, database) for query in queries for database in target_databases]
        job.tasks = self._map(submit_task, pairs)

        logger.info("hmmer_submit_complete", job_id=job.job_id, tasks=len(job.tasks))
        return job

    def _poll_task(self, task: RemoteTask) -> JobStatus:
        response = self._request("GET", self._results_url(task.remote_id))
        payload: Any = response.json()

        if isinstance(payload, dict) and "results" in payload:
            task.payload = payload
            return JobStatus.COMPLETE

        remote_status = ""
        if isinstance(payload, dict):
            remote_status = str(payload.get("status", "")).upper()
        status = REMOTE_STATUS_MAP.get(remote_status)
        if status is None:
            logger.warning(
                "hmmer_unknown_status",
                remote_id=task.remote_id,
                remote_status=remote_status,
            )
            return JobStatus.PENDING
        if status == JobStatus.FAILED:
            task.error = str(payload.get("error") or payload.get("message") or remote_status)
        return status

    def poll(self, job: SearchJob) -> JobStatus:
        """Refresh every non-terminal task and return the aggregate status."""
        if job.status.is_terminal:
            return job.status

        open_tasks = [task for task in job.tasks if not task.status.is_terminal]
        for task, status in zip(open_tasks, self._map(self._poll_task, open_tasks)):
            # Task status never moves backwards
            if status == JobStatus.PENDING and task.status == JobStatus.RUNNING:
                status = JobStatus.RUNNING
            task.status = status

        job.poll_count += 1
        job.transition(aggregate_status([t.status for t in job.tasks]))

        logger.debug(
            "hmmer_poll",
            job_id=job.job_id,
            status=job.status.value,
            poll_count=job.poll_count,
        )
        return job.status

    def wait(
        self,
        job: SearchJob,
        max_wait: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchJob:
        """Poll with exponential backoff until the job reaches a terminal state.

        Args:
            job: Submitted job
            max_wait: Deadline in seconds (defaults to the client's max_wait)
            cancel_event: Set from another thread to stop polling

        Raises:
            SearchTimeoutError: If max_wait or max_polls is exceeded
            SearchCancelledError: If cancel_event is set; the job keeps its
                remote ids so polling can resume later
            ServiceError: If the remote job failed
        """
        max_wait = self.max_wait if max_wait is None else max_wait
        start = time.monotonic()
        delay = self.poll_interval
        polls = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("hmmer_wait_cancelled", job_id=job.job_id, remote_ids=job.remote_ids)
                raise SearchCancelledError(f"Polling cancelled for job {job.job_id}", job=job)

            status = self.poll(job)
            polls += 1

            if status == JobStatus.COMPLETE:
                logger.info("hmmer_job_complete", job_id=job.job_id, polls=polls)
                return job
            if status == JobStatus.FAILED:
                errors = [f"{t.query_id}/{t.database}: {t.error}" for t in job.tasks if t.error]
                raise ServiceError(f"Search job {job.job_id} failed: {'; '.join(errors)}")

            elapsed = time.monotonic() - start
            if polls >= self.max_polls or elapsed >= max_wait:
                raise SearchTimeoutError(
                    f"Search job {job.job_id} not complete after {polls} polls "
                    f"({elapsed:.1f}s)",
                    job=job,
                )

            # Last sleep is shortened so one more poll lands on the deadline
            pause = min(delay, max_wait - elapsed)
            if cancel_event is not None:
                if cancel_event.wait(pause):
                    continue
            else:
                time.sleep(pause)
            delay = min(delay * 2, self.max_poll_interval)

    def fetch_results(self, job: SearchJob) -> dict[str, Any]:
        """Return the raw nested result for a completed job.

        Returns:
            {"job_id": ..., "queries": [{"query_id", "database",
            "remote_id", "hits": [...]}, ...]} in submission order

        Raises:
            NotReadyError: If the job status is not COMPLETE
        """
        if job.status != JobStatus.COMPLETE:
            raise NotReadyError(
                f"Search job {job.job_id} is {job.status.value}, not complete"
            )

        def load_payload(task: RemoteTask) -> dict[str, Any]:
            if task.payload is None:
                task.payload = self._request("GET", self._results_url(task.remote_id)).json()
            return task.payload

        entries = []
        for task, payload in zip(job.tasks, self._map(load_payload, job.tasks)):
            hits = (payload.get("results") or {}).get("hits") or []
            entries.append({
                "query_id": task.query_id,
                "database": task.database,
                "remote_id": task.remote_id,
                "hits": hits,
            })

        logger.info(
            "hmmer_results_fetched",
            job_id=job.job_id,
            tasks=len(entries),
            hits=sum(len(e["hits"]) for e in entries),
        )
        return {"job_id": job.job_id, "queries": entries}

    def search(
        self,
        queries: list[Query],
        target_databases: list[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> dict[str, Any]:
        """Submit, wait for completion and fetch results in one call."""
        job = self.submit(queries, target_databases)
        self.wait(job, cancel_event=cancel_event)
        return self.fetch_results(job)

    @classmethod
    def from_config(cls, config: PipelineConfig, **kwargs) -> "SearchClient":
        return cls(
            base_url=config.search.base_url,
            algorithm=config.search.algorithm,
            max_retries=config.api.max_retries,
            timeout=config.api.timeout_seconds,
            poll_interval=config.search.poll_interval_seconds,
            max_poll_interval=config.search.max_poll_interval_seconds,
            max_wait=config.search.max_wait_seconds,
            max_polls=config.search.max_polls,
            max_concurrency=config.api.max_concurrency,
            **kwargs,
        )
