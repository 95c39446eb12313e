"""Tests for the job ledger."""

import pytest

from riskbench.core.exceptions import InvalidTransitionError, JobNotFoundError, StorageError
from riskbench.core.models import ResourceKey
from riskbench.core.types import FailureReason, JobStatus
from riskbench.storage.job_ledger import JobLedger


@pytest.fixture
def ledger(clock) -> JobLedger:
    return JobLedger(clock=clock)


class TestJobLifecycle:
    """Tests for status transitions."""

    def test_create_is_queued(self, ledger, resource_key, clock):
        job = ledger.create_job(resource_key)

        assert job.status == JobStatus.QUEUED
        assert job.resource_key == resource_key
        assert job.job_type == "benchmark"
        assert job.created_at == clock()
        assert job.error_message is None
        assert job.attempt == 1

    def test_success_path(self, ledger, resource_key, clock):
        job = ledger.create_job(resource_key)
        running = ledger.mark_running(job.id)
        clock.advance(2.5)
        done = ledger.mark_success(job.id, snapshot_ref="ref-1")

        assert running.status == JobStatus.RUNNING
        assert done.status == JobStatus.SUCCESS
        assert done.snapshot_ref == "ref-1"
        assert done.updated_at > job.updated_at
        assert done.duration_seconds == pytest.approx(2.5)

    def test_error_path_records_reason(self, ledger, resource_key):
        job = ledger.create_job(resource_key)
        ledger.mark_running(job.id)
        failed = ledger.mark_error(job.id, "upstream down", reason=FailureReason.UPSTREAM_UNAVAILABLE)

        assert failed.status == JobStatus.ERROR
        assert failed.error_message == "upstream down"
        assert failed.error_reason == FailureReason.UPSTREAM_UNAVAILABLE

    def test_queued_cannot_finish_directly(self, ledger, resource_key):
        job = ledger.create_job(resource_key)
        with pytest.raises(InvalidTransitionError):
            ledger.mark_success(job.id, snapshot_ref="ref")
        with pytest.raises(InvalidTransitionError):
            ledger.mark_error(job.id, "boom")

    @pytest.mark.parametrize("finish", ["success", "error"])
    def test_terminal_jobs_are_frozen(self, ledger, resource_key, finish):
        job = ledger.create_job(resource_key)
        ledger.mark_running(job.id)
        if finish == "success":
            ledger.mark_success(job.id, snapshot_ref="ref")
        else:
            ledger.mark_error(job.id, "boom")

        with pytest.raises(InvalidTransitionError):
            ledger.mark_running(job.id)
        with pytest.raises(InvalidTransitionError):
            ledger.mark_success(job.id, snapshot_ref="other")
        assert ledger.get(job.id).status.is_terminal

    def test_unknown_job(self, ledger):
        with pytest.raises(JobNotFoundError):
            ledger.mark_running("missing")

    def test_duplicate_id_rejected(self, ledger, resource_key):
        ledger.create_job(resource_key, job_id="job-1")
        with pytest.raises(StorageError):
            ledger.create_job(resource_key, job_id="job-1")


class TestJobQueries:
    """Tests for lookups, attempts and stats."""

    def test_get_latest_per_key(self, ledger, resource_key):
        other = ResourceKey(chain_id="137", contract_address="0xabc")
        first = ledger.create_job(resource_key)
        ledger.create_job(other)
        second = ledger.create_job(resource_key)

        assert ledger.get_latest(resource_key).id == second.id
        assert ledger.get_latest(resource_key).id != first.id
        assert ledger.get_latest(ResourceKey(chain_id="1", contract_address="0xnone")) is None

    def test_attempt_counts_consecutive_failures(self, ledger, resource_key):
        for _ in range(2):
            job = ledger.create_job(resource_key)
            ledger.mark_running(job.id)
            ledger.mark_error(job.id, "boom")

        third = ledger.create_job(resource_key)
        assert third.attempt == 3

        ledger.mark_running(third.id)
        ledger.mark_success(third.id, snapshot_ref="ref")
        assert ledger.create_job(resource_key).attempt == 1

    def test_list_jobs_newest_first(self, ledger, resource_key):
        ids = [ledger.create_job(resource_key).id for _ in range(3)]
        ledger.mark_running(ids[1])

        assert [j.id for j in ledger.list_jobs()] == list(reversed(ids))
        assert [j.id for j in ledger.list_jobs(status=JobStatus.RUNNING)] == [ids[1]]
        assert len(ledger.list_jobs(limit=2)) == 2

    def test_stats(self, ledger, resource_key, clock):
        ok = ledger.create_job(resource_key)
        ledger.mark_running(ok.id)
        clock.advance(4)
        ledger.mark_success(ok.id, snapshot_ref="ref")

        bad = ledger.create_job(resource_key)
        ledger.mark_running(bad.id)
        ledger.mark_error(bad.id, "429", reason=FailureReason.PROVIDER_RATE_LIMITED)

        ledger.create_job(resource_key)

        stats = ledger.stats()
        assert stats.total == 3
        assert stats.by_status == {"queued": 1, "running": 0, "success": 1, "error": 1}
        assert stats.errors_by_reason == {"provider_rate_limited": 1}
        assert stats.avg_duration_seconds == pytest.approx(4.0)


class TestLedgerPersistence:
    """Tests for the JSON-backed ledger."""

    def test_reload_from_file(self, tmp_path, resource_key, clock):
        path = tmp_path / "jobs.json"
        ledger = JobLedger(path, clock=clock)
        job = ledger.create_job(resource_key)
        ledger.mark_running(job.id)
        ledger.mark_error(job.id, "boom", reason=FailureReason.INVALID_INPUT)

        reloaded = JobLedger(path, clock=clock)
        restored = reloaded.get(job.id)

        assert restored == ledger.get(job.id)
        assert reloaded.get_latest(resource_key).id == job.id
        assert reloaded.create_job(resource_key).attempt == 2

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "jobs.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            JobLedger(path)

    @pytest.mark.parametrize(
        "content",
        ['{"jobs": []}', '[{"id": "x"}]'],
        ids=["object-document", "incomplete-job"],
    )
    def test_damaged_file(self, tmp_path, content):
        path = tmp_path / "jobs.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(StorageError):
            JobLedger(path)

    def test_failed_write_leaves_job_unchanged(self, tmp_path, resource_key, clock, monkeypatch):
        path = tmp_path / "jobs.json"
        ledger = JobLedger(path, clock=clock)
        job = ledger.create_job(resource_key)
        ledger.mark_running(job.id)

        def disk_full(path, data, store):
            raise StorageError(store, "disk full")

        monkeypatch.setattr("riskbench.storage.job_ledger.write_json", disk_full)

        with pytest.raises(StorageError):
            ledger.mark_success(job.id, snapshot_ref="snap")
        with pytest.raises(StorageError):
            ledger.create_job(resource_key)

        assert ledger.get(job.id).status == JobStatus.RUNNING
        assert ledger.get_latest(resource_key).id == job.id
        assert ledger.stats().total == 1

        monkeypatch.undo()
        failed = ledger.mark_error(job.id, "disk full", reason=FailureReason.STORAGE_ERROR)
        assert failed.status == JobStatus.ERROR
        assert JobLedger(path).get(job.id).status == JobStatus.ERROR

    def test_shared_file_keeps_other_writers_jobs(self, tmp_path, resource_key, clock):
        path = tmp_path / "jobs.json"
        other_key = ResourceKey(chain_id="137", contract_address="0xother")
        first = JobLedger(path, clock=clock)
        second = JobLedger(path, clock=clock)

        a = first.create_job(resource_key)
        b = second.create_job(other_key)
        first.mark_running(a.id)

        reloaded = JobLedger(path)
        assert reloaded.get(a.id).status == JobStatus.RUNNING
        assert reloaded.get(b.id).status == JobStatus.QUEUED
        assert first.get(b.id) is not None
