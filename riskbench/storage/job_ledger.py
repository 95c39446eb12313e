"""Job ledger - durable record of refresh attempts.

The ledger is a passive store: it enforces legal status transitions
(queued -> running -> success | error) but leaves the decision of when
to transition to the orchestrator that owns the job.
"""

import logging
import threading
import uuid
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import InvalidTransitionError, JobNotFoundError, StorageError
from ..core.models import Job, JobStats, ResourceKey, utc_now
from ..core.types import Clock, FailureReason, JobStatus
from .json_store import parse_records, read_json, write_json

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.SUCCESS, JobStatus.ERROR},
    JobStatus.SUCCESS: set(),
    JobStatus.ERROR: set(),
}


def new_job_id() -> str:
    return uuid.uuid4().hex


class JobLedger:
    """
    Thread-safe job ledger, optionally persisted to a JSON file.

    Usage:
        ledger = JobLedger()
        job = ledger.create_job(key)
        ledger.mark_running(job.id)
        ledger.mark_success(job.id, snapshot_ref="...")
    """

    STORE_NAME = "jobs"

    def __init__(self, path: Optional[Path] = None, clock: Clock = utc_now):
        """
        Initialize the ledger.

        Args:
            path: JSON file to persist jobs to; None keeps them in memory only
            clock: Source of timezone-aware timestamps
        """
        self.path = Path(path) if path else None
        self.clock = clock
        self._jobs: Dict[str, Job] = {}  # insertion order = creation order
        self._by_key: Dict[ResourceKey, List[str]] = {}
        self._lock = threading.Lock()

        if self.path:
            self._load()

    def _read_jobs(self) -> Dict[str, Job]:
        data = read_json(self.path, self.STORE_NAME)
        if data is None:
            return {}
        return {job.id: job for job in parse_records(Job, data, self.path, self.STORE_NAME)}

    def _load(self) -> None:
        self._replace_jobs(self._read_jobs())
        if self._jobs:
            logger.debug(f"Loaded {len(self._jobs)} jobs from {self.path}")

    def _replace_jobs(self, jobs: Dict[str, Job]) -> None:
        by_key: Dict[ResourceKey, List[str]] = {}
        for job in jobs.values():
            by_key.setdefault(job.resource_key, []).append(job.id)
        self._jobs = jobs
        self._by_key = by_key

    def _write(self, jobs: Dict[str, Job]) -> None:
        write_json(
            self.path,
            [job.model_dump(mode="json") for job in jobs.values()],
            self.STORE_NAME,
        )

    def _commit(self, job: Job) -> None:
        """
        Record a new or updated job. Caller holds ``self._lock``.

        File-backed ledgers write first and only then apply the change in
        memory, so a failed write leaves the ledger as it was. The file is
        re-read before each write to keep jobs another process added since
        we loaded it; concurrent writers can still race between read and write.
        """
        if self.path is None:
            if job.id not in self._jobs:
                self._by_key.setdefault(job.resource_key, []).append(job.id)
            self._jobs[job.id] = job
            return

        jobs = self._read_jobs()
        jobs[job.id] = job
        self._write(jobs)
        self._replace_jobs(jobs)

    def _next_attempt(self, resource_key: ResourceKey) -> int:
        """1 + consecutive failed jobs immediately before this one."""
        attempt = 1
        for job_id in reversed(self._by_key.get(resource_key, [])):
            if self._jobs[job_id].status != JobStatus.ERROR:
                break
            attempt += 1
        return attempt

    def create_job(
        self,
        resource_key: ResourceKey,
        job_id: Optional[str] = None,
        job_type: Optional[str] = None,
    ) -> Job:
        """
        Create a job in ``queued`` state.

        Args:
            resource_key: Resource the job refreshes
            job_id: Pre-allocated id (so a lock can name the job); generated if omitted
            job_type: Defaults to the resource kind

        Returns:
            The new Job
        """
        now = self.clock()
        with self._lock:
            job_id = job_id or new_job_id()
            if job_id in self._jobs:
                raise StorageError(self.STORE_NAME, f"duplicate job id {job_id}")

            job = Job(
                id=job_id,
                resource_key=resource_key,
                job_type=job_type or resource_key.resource_kind,
                attempt=self._next_attempt(resource_key),
                created_at=now,
                updated_at=now,
            )
            self._commit(job)

        logger.debug(f"Created job {job_id} for {resource_key} (attempt {job.attempt})")
        return job

    def _transition(self, job_id: str, target: JobStatus, **updates: object) -> Job:
        now = self.clock()
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if target not in ALLOWED_TRANSITIONS[job.status]:
                raise InvalidTransitionError(job_id, job.status.value, target.value)

            updated = job.model_copy(update={"status": target, "updated_at": now, **updates})
            self._commit(updated)
        return updated

    def mark_running(self, job_id: str) -> Job:
        return self._transition(job_id, JobStatus.RUNNING, started_at=self.clock())

    def mark_success(self, job_id: str, snapshot_ref: str) -> Job:
        return self._transition(
            job_id,
            JobStatus.SUCCESS,
            snapshot_ref=snapshot_ref,
            finished_at=self.clock(),
        )

    def mark_error(
        self,
        job_id: str,
        message: str,
        reason: FailureReason = FailureReason.INTERNAL_ERROR,
    ) -> Job:
        return self._transition(
            job_id,
            JobStatus.ERROR,
            error_message=message or reason.value,
            error_reason=reason,
            finished_at=self.clock(),
        )

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def get_latest(self, resource_key: ResourceKey) -> Optional[Job]:
        """Most recently created job for a resource key."""
        with self._lock:
            job_ids = self._by_key.get(resource_key)
            return self._jobs[job_ids[-1]] if job_ids else None

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20) -> List[Job]:
        """Jobs newest first, optionally filtered by status."""
        with self._lock:
            jobs = list(self._jobs.values())
        jobs.reverse()
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return jobs[:limit]

    def stats(self) -> JobStats:
        """Counts per status and per failure reason."""
        with self._lock:
            jobs = list(self._jobs.values())

        by_status = Counter(j.status.value for j in jobs)
        errors = Counter(
            j.error_reason.value
            for j in jobs
            if j.status == JobStatus.ERROR and j.error_reason is not None
        )
        durations = [
            j.duration_seconds
            for j in jobs
            if j.status == JobStatus.SUCCESS and j.duration_seconds is not None
        ]

        return JobStats(
            total=len(jobs),
            by_status={status.value: by_status.get(status.value, 0) for status in JobStatus},
            errors_by_reason=dict(errors),
            avg_duration_seconds=sum(durations) / len(durations) if durations else None,
        )
