"""Tests for the HMMER search client using a mocked HTTP transport."""

import threading
from unittest.mock import patch
from urllib.parse import parse_qs

import httpx
import pytest

from hmmer_pipeline.errors import (
    NotReadyError,
    SearchCancelledError,
    SearchTimeoutError,
    ServiceError,
    TransientError,
)
from hmmer_pipeline.search import (
    JobStatus,
    Query,
    SearchClient,
    SearchJob,
    aggregate_status,
    read_queries,
)

BASE_URL = "https://hmmer.test/Tools/hmmer"


class FakeHmmerService:
    """In-memory stand-in for the HMMER web API.

    Each submitted job reports the statuses in ``schedule`` on successive
    polls, then returns its results.
    """

    def __init__(self, schedule=("PEND", "RUN"), hits_per_job=1, fail_jobs=()):
        self.schedule = list(schedule)
        self.hits_per_job = hits_per_job
        self.fail_jobs = set(fail_jobs)
        self.submissions = []
        self.polls = {}
        self.on_submit = None
        self.on_poll = None
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and "/search/" in path:
            form = parse_qs(request.content.decode())
            with self._lock:
                job = f"job-{len(self.submissions) + 1}"
                self.submissions.append({
                    "job": job,
                    "algorithm": path.rsplit("/", 1)[1],
                    **{name: values[0] for name, values in form.items()},
                })
            if self.on_submit is not None:
                self.on_submit(job)
            return httpx.Response(200, json={"uuid": job})

        if request.method == "GET" and "/results/" in path:
            job = path.split("/results/")[1].split("/")[0]
            with self._lock:
                count = self.polls.get(job, 0)
                self.polls[job] = count + 1
            if self.on_poll is not None:
                self.on_poll(job, count)
            if job in self.fail_jobs:
                return httpx.Response(200, json={"status": "ERROR", "error": "bad sequence"})
            if count < len(self.schedule):
                return httpx.Response(200, json={"status": self.schedule[count]})
            hits = [
                {"acc": f"{job}-T{i}", "name": f"T{i}_HUMAN", "evalue": 1e-10, "domains": []}
                for i in range(self.hits_per_job)
            ]
            return httpx.Response(200, json={"results": {"hits": hits}})

        return httpx.Response(404)


class FakeClock:
    """Replaces the client's time module so deadlines need no real sleeping."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _client(service, **kwargs):
    params = dict(
        base_url=BASE_URL,
        poll_interval=0.001,
        max_poll_interval=0.002,
        max_wait=5.0,
        max_polls=50,
        max_retries=3,
        # Sequential unless a test asks otherwise, so job ids follow task order
        max_concurrency=1,
        transport=httpx.MockTransport(service.handler),
    )
    params.update(kwargs)
    return SearchClient(**params)


@pytest.fixture
def queries():
    return [
        Query(query_id="q1", sequence="MKTAYIAKQR"),
        Query(query_id="q2", sequence="MVLSPADKTN"),
    ]


def test_submit_fans_out_per_query_and_database(queries):
    service = FakeHmmerService()
    with _client(service) as client:
        job = client.submit(queries, ["swissprot", "pdb"])

    assert job.status == JobStatus.PENDING
    assert len(job.tasks) == 4
    assert [(t.query_id, t.database) for t in job.tasks] == [
        ("q1", "swissprot"), ("q1", "pdb"), ("q2", "swissprot"), ("q2", "pdb"),
    ]
    assert job.remote_ids == ["job-1", "job-2", "job-3", "job-4"]
    assert service.submissions[0]["seq"] == ">q1\nMKTAYIAKQR\n"
    assert service.submissions[1]["seqdb"] == "pdb"


@pytest.mark.parametrize("algorithm,database,field", [
    ("phmmer", "swissprot", "seqdb"),
    ("jackhmmer", "uniprotrefprot", "seqdb"),
    ("hmmscan", "pfam", "hmmdb"),
])
def test_submit_uses_database_field_per_algorithm(queries, algorithm, database, field):
    service = FakeHmmerService(schedule=())
    with _client(service, algorithm=algorithm) as client:
        raw = client.search(queries[:1], [database])

    submission = service.submissions[0]
    assert submission["algorithm"] == algorithm
    assert submission[field] == database
    assert set(submission) == {"job", "algorithm", "seq", field}
    assert raw["queries"][0]["database"] == database


def test_unsupported_algorithm_rejected():
    with pytest.raises(ValueError):
        SearchClient(base_url=BASE_URL, algorithm="hmmsearch")


def test_tasks_submitted_polled_and_fetched_concurrently(queries):
    """Two tasks must be in flight together to get past the barrier."""
    service = FakeHmmerService(schedule=("RUN",))
    barrier = threading.Barrier(2, timeout=5)
    service.on_submit = lambda job: barrier.wait()
    service.on_poll = lambda job, count: barrier.wait()

    with _client(service, max_concurrency=2) as client:
        job = client.submit(queries, ["swissprot"])
        assert client.poll(job) == JobStatus.RUNNING
        assert client.poll(job) == JobStatus.COMPLETE
        raw = client.fetch_results(job)

    assert sorted(job.remote_ids) == ["job-1", "job-2"]
    # Results stay in submission order regardless of completion order
    assert [e["query_id"] for e in raw["queries"]] == ["q1", "q2"]
    assert not barrier.broken


def test_from_config_uses_max_concurrency(test_config):
    with SearchClient.from_config(test_config) as client:
        assert client.max_concurrency == test_config.api.max_concurrency
        assert client.algorithm == "phmmer"


def test_submit_validates_inputs(queries):
    service = FakeHmmerService()
    with _client(service) as client:
        with pytest.raises(ValueError):
            client.submit([], ["swissprot"])
        with pytest.raises(ValueError):
            client.submit(queries, [])
        with pytest.raises(ValueError):
            client.submit([queries[0], queries[0]], ["swissprot"])

    assert service.submissions == []


def test_submit_reads_job_id_from_redirect(queries):
    def handler(request):
        return httpx.Response(
            302,
            headers={"Location": f"{BASE_URL}/results/ABC-123/score"},
        )

    client = SearchClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    job = client.submit(queries[:1], ["swissprot"])
    client.close()

    assert job.remote_ids == ["ABC-123"]


def test_poll_moves_through_lifecycle(queries):
    service = FakeHmmerService(schedule=("PEND", "RUN"))
    with _client(service) as client:
        job = client.submit(queries[:1], ["swissprot"])

        assert client.poll(job) == JobStatus.PENDING
        assert client.poll(job) == JobStatus.RUNNING
        assert client.poll(job) == JobStatus.COMPLETE
        # Terminal: further polls make no requests
        assert client.poll(job) == JobStatus.COMPLETE

    assert job.poll_count == 3
    assert service.polls["job-1"] == 3


def test_fetch_results_before_completion_raises(queries):
    service = FakeHmmerService()
    with _client(service) as client:
        job = client.submit(queries[:1], ["swissprot"])
        with pytest.raises(NotReadyError):
            client.fetch_results(job)


def test_wait_then_fetch_results(queries):
    service = FakeHmmerService(hits_per_job=2)
    with _client(service) as client:
        job = client.submit(queries, ["swissprot"])
        client.wait(job)
        raw = client.fetch_results(job)

    assert job.status == JobStatus.COMPLETE
    assert raw["job_id"] == job.job_id
    assert [e["query_id"] for e in raw["queries"]] == ["q1", "q2"]
    assert [h["acc"] for h in raw["queries"][0]["hits"]] == ["job-1-T0", "job-1-T1"]


def test_search_convenience(queries):
    service = FakeHmmerService(schedule=())
    with _client(service) as client:
        raw = client.search(queries[:1], ["swissprot"])

    assert len(raw["queries"]) == 1
    assert len(raw["queries"][0]["hits"]) == 1


def test_wait_times_out_after_max_polls(queries):
    service = FakeHmmerService(schedule=["PEND"] * 100)
    with _client(service, max_polls=3) as client:
        job = client.submit(queries[:1], ["swissprot"])
        with pytest.raises(SearchTimeoutError) as exc_info:
            client.wait(job)

    assert isinstance(exc_info.value, TimeoutError)
    assert exc_info.value.job is job
    assert job.poll_count == 3
    assert job.remote_ids == ["job-1"]


def test_wait_times_out_after_deadline(queries):
    service = FakeHmmerService(schedule=["PEND"] * 100)
    clock = FakeClock()
    with _client(service, poll_interval=0.4, max_poll_interval=10.0) as client:
        job = client.submit(queries[:1], ["swissprot"])
        with patch("hmmer_pipeline.search.client.time", clock):
            with pytest.raises(SearchTimeoutError):
                client.wait(job, max_wait=1.0)

    # 0.4 s, then the 0.8 s step is cut to the remaining 0.6 s
    assert clock.sleeps == [pytest.approx(0.4), pytest.approx(0.6)]
    assert job.poll_count == 3


def test_wait_polls_once_more_at_deadline(queries):
    """A job finishing inside max_wait is seen even when the backoff overshoots."""
    service = FakeHmmerService(schedule=("PEND", "RUN"))
    clock = FakeClock()
    with _client(service, poll_interval=0.5, max_poll_interval=30.0) as client:
        job = client.submit(queries[:1], ["swissprot"])
        with patch("hmmer_pipeline.search.client.time", clock):
            client.wait(job, max_wait=1.2)

    assert job.status == JobStatus.COMPLETE
    assert job.poll_count == 3
    assert sum(clock.sleeps) == pytest.approx(1.2)


def test_wait_cancelled_keeps_remote_ids(queries):
    service = FakeHmmerService(schedule=["PEND"] * 100)
    cancel = threading.Event()
    service.on_poll = lambda job, count: cancel.set()

    with _client(service, poll_interval=1.0, max_poll_interval=1.0) as client:
        job = client.submit(queries[:1], ["swissprot"])
        with pytest.raises(SearchCancelledError) as exc_info:
            client.wait(job, cancel_event=cancel)

    assert exc_info.value.job is job
    assert job.remote_ids == ["job-1"]
    assert not job.status.is_terminal


def test_wait_raises_on_failed_job(queries):
    service = FakeHmmerService(fail_jobs={"job-2"})
    with _client(service) as client:
        job = client.submit(queries, ["swissprot"])
        with pytest.raises(ServiceError) as exc_info:
            client.wait(job)

    assert job.status == JobStatus.FAILED
    assert "bad sequence" in str(exc_info.value)


def test_client_error_not_retried(queries):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "invalid database"})

    client = SearchClient(base_url=BASE_URL, max_retries=3, transport=httpx.MockTransport(handler))
    with pytest.raises(ServiceError) as exc_info:
        client.submit(queries[:1], ["nosuchdb"])
    client.close()

    assert exc_info.value.status_code == 400
    assert len(calls) == 1


def test_server_error_retried(queries):
    responses = [
        httpx.Response(503),
        httpx.Response(200, json={"uuid": "job-9"}),
    ]
    calls = []

    def handler(request):
        calls.append(request)
        return responses.pop(0)

    client = SearchClient(base_url=BASE_URL, max_retries=3, transport=httpx.MockTransport(handler))
    with patch("time.sleep"):
        job = client.submit(queries[:1], ["swissprot"])
    client.close()

    assert job.remote_ids == ["job-9"]
    assert len(calls) == 2


def test_network_error_becomes_transient(queries):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = SearchClient(base_url=BASE_URL, max_retries=2, transport=httpx.MockTransport(handler))
    with patch("time.sleep"):
        with pytest.raises(TransientError):
            client.submit(queries[:1], ["swissprot"])
    client.close()


def test_job_transitions_out_of_terminal_rejected():
    job = SearchJob(query_ids=["q1"], target_databases=["swissprot"])
    job.transition(JobStatus.RUNNING)
    job.transition(JobStatus.COMPLETE)

    with pytest.raises(ValueError):
        job.transition(JobStatus.RUNNING)


def test_aggregate_status():
    assert aggregate_status([]) == JobStatus.PENDING
    assert aggregate_status([JobStatus.PENDING, JobStatus.PENDING]) == JobStatus.PENDING
    assert aggregate_status([JobStatus.COMPLETE, JobStatus.PENDING]) == JobStatus.RUNNING
    assert aggregate_status([JobStatus.COMPLETE, JobStatus.COMPLETE]) == JobStatus.COMPLETE
    assert aggregate_status([JobStatus.COMPLETE, JobStatus.FAILED]) == JobStatus.FAILED


def test_read_queries(tmp_path):
    fasta = tmp_path / "queries.fasta"
    fasta.write_text(
        ">sp|P69905|HBA_HUMAN Hemoglobin subunit alpha OS=Homo sapiens OX=9606 GN=HBA1\n"
        "mvlspadktn\n"
        ">query2 hypothetical protein [Escherichia coli]\n"
        "MKTAYIAKQR\n"
    )

    queries = read_queries(fasta)

    assert [q.query_id for q in queries] == ["sp|P69905|HBA_HUMAN", "query2"]
    assert queries[0].sequence == "MVLSPADKTN"
    assert queries[0].organism == "Homo sapiens"
    assert queries[0].metadata["taxon_id"] == 9606
    assert queries[1].organism == "Escherichia coli"


def test_read_queries_rejects_duplicates(tmp_path):
    fasta = tmp_path / "dup.fasta"
    fasta.write_text(">q1\nMK\n>q1\nMV\n")

    with pytest.raises(ValueError):
        read_queries(fasta)
