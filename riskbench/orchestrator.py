"""Refresh orchestrator for the risk benchmark pipeline.

Decides, for each refresh request, whether to serve a cached snapshot,
point the caller at an in-flight job, or run a new refresh:

    admission -> freshness check -> lock -> fetch -> compute -> persist

At most one refresh per resource key runs at a time; the lock is
released on every exit path.
"""

import logging
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from .calculator.benchmark import BenchmarkCalculator
from .coordination.locks import RefreshLockManager
from .coordination.rate_limiter import RateLimiter
from .core.config import RefreshSettings
from .core.exceptions import LockLostError, RiskBenchError
from .core.models import (
    BenchmarkSnapshot,
    Denied,
    Failed,
    Job,
    JobStats,
    LockBusy,
    Queued,
    RawTokenData,
    RefreshHistoryEntry,
    RefreshLock,
    RefreshOutcome,
    ResourceKey,
    Served,
    utc_now,
)
from .core.types import Clock, FailureReason, RatePlan, RefreshResult
from .providers.base import RawDataProvider
from .providers.http_provider import HttpRawDataProvider
from .providers.manual_provider import ManualDataProvider
from .storage.history import RefreshHistory
from .storage.job_ledger import JobLedger, new_job_id
from .storage.json_store import BenchmarkStore, InMemorySnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)


class RefreshOrchestrator:
    """Coordinates refreshes of benchmark snapshots per resource key."""

    def __init__(
        self,
        provider: RawDataProvider,
        snapshot_store: SnapshotStore | None = None,
        ledger: JobLedger | None = None,
        locks: RefreshLockManager | None = None,
        rate_limiter: RateLimiter | None = None,
        history: RefreshHistory | None = None,
        settings: RefreshSettings | None = None,
        calculator: BenchmarkCalculator | None = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider: Source of raw holder, liquidity and governance data
            snapshot_store: Where snapshots are persisted (in-memory by default)
            ledger: Job ledger (in-memory by default)
            locks: Refresh lock manager (TTL from settings by default)
            rate_limiter: Admission control (ceilings from settings by default)
            history: Refresh history log (in-memory by default)
            settings: Freshness window, lock TTL and rate-limit settings
            calculator: Metric engine (default scoring config by default)
            clock: Source of timezone-aware timestamps shared by all components
        """
        self.settings = settings or RefreshSettings()
        self.clock = clock
        self.provider = provider
        # Stores that define __len__ are falsy while empty
        self.snapshot_store = snapshot_store if snapshot_store is not None else InMemorySnapshotStore()
        self.ledger = ledger if ledger is not None else JobLedger(clock=clock)
        self.locks = locks if locks is not None else RefreshLockManager(
            default_ttl_seconds=self.settings.lock_ttl_seconds, clock=clock
        )
        self.rate_limiter = (
            rate_limiter if rate_limiter is not None
            else RateLimiter.from_settings(self.settings, clock=clock)
        )
        self.history = history if history is not None else RefreshHistory()
        self.calculator = calculator or BenchmarkCalculator(self.settings.load_scoring_config())

    @classmethod
    def from_settings(
        cls,
        settings: RefreshSettings,
        provider: RawDataProvider | None = None,
        clock: Clock = utc_now,
    ) -> "RefreshOrchestrator":
        """
        Build an orchestrator with file-backed stores under ``settings.data_dir``.

        Without a data directory everything stays in memory. Without an
        explicit provider, the HTTP provider is used when a base URL is
        configured, otherwise the manual file provider.

        Refresh locks and rate-limit counters live in this process only.
        Processes sharing a data directory do not coordinate refreshes, and
        their ledger and history writes can still race with each other.
        """
        if provider is None:
            if settings.provider_base_url:
                provider = HttpRawDataProvider(
                    base_url=settings.provider_base_url,
                    api_key=settings.provider_api_key,
                )
            else:
                if not settings.manual_data_dir:
                    logger.warning(
                        "No raw data provider configured; set RISKBENCH_PROVIDER_BASE_URL "
                        "or RISKBENCH_MANUAL_DATA_DIR to enable refreshes"
                    )
                provider = ManualDataProvider(settings.manual_data_dir)

        if settings.data_dir:
            data_dir = Path(settings.data_dir)
            snapshot_store: SnapshotStore = BenchmarkStore(data_dir)
            ledger = JobLedger(data_dir / "jobs.json", clock=clock)
            history = RefreshHistory(data_dir / "refresh_history.json")
        else:
            snapshot_store = InMemorySnapshotStore()
            ledger = JobLedger(clock=clock)
            history = RefreshHistory()

        return cls(
            provider=provider,
            snapshot_store=snapshot_store,
            ledger=ledger,
            history=history,
            settings=settings,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def request_refresh(
        self,
        resource_key: ResourceKey,
        force: bool = False,
        caller: Optional[str] = None,
        plan: RatePlan | str | None = None,
    ) -> RefreshOutcome:
        """
        Serve, attach to, or run a refresh for a resource key.

        Args:
            resource_key: What to refresh
            force: Skip the freshness check and recompute
            caller: Caller id for admission control; defaults to the resource key
            plan: Caller plan selecting the rate-limit ceiling

        Returns:
            Served (cached or fresh snapshot), Queued (another job holds the
            lock) or Failed (with a stable reason code)
        """
        admission_key = caller or str(resource_key)
        decision = self.rate_limiter.admit(admission_key, plan)
        if isinstance(decision, Denied):
            return Failed(
                reason=FailureReason.RATE_LIMITED,
                message=f"Rate limit of {decision.limit} per window exceeded for {admission_key}",
                retry_after=decision.retry_after,
            )

        if not force:
            try:
                cached = self._fresh_snapshot(resource_key)
            except Exception as e:
                return self._read_failure(resource_key, e)
            if cached is not None:
                logger.debug(f"Serving cached snapshot for {resource_key}")
                return Served(snapshot=cached, from_cache=True)

        job_id = new_job_id()
        acquired = self.locks.try_acquire(
            resource_key,
            ttl_seconds=self.settings.lock_ttl_seconds,
            holder_job_id=job_id,
        )
        if isinstance(acquired, LockBusy):
            logger.warning(
                f"Refresh of {resource_key} already in progress (job {acquired.holder_job_id})"
            )
            return Queued(job_id=acquired.holder_job_id)

        try:
            if not force:
                # Another refresh may have finished between the cache check and the lock
                cached = self._fresh_snapshot(resource_key)
                if cached is not None:
                    return Served(snapshot=cached, from_cache=True)
            return self._run_refresh(resource_key, acquired)
        except Exception as e:
            return self._read_failure(resource_key, e)
        finally:
            self.locks.release(acquired)

    def _fresh_snapshot(self, resource_key: ResourceKey) -> Optional[BenchmarkSnapshot]:
        snapshot = self.snapshot_store.get_latest(resource_key)
        if snapshot is None:
            return None
        age = self.clock() - snapshot.computed_at
        if age < timedelta(seconds=self.settings.freshness_window_seconds):
            return snapshot
        return None

    def _run_refresh(self, resource_key: ResourceKey, handle: RefreshLock) -> RefreshOutcome:
        """Run one refresh while holding the lock. Never raises."""
        job_id = handle.holder_job_id
        job: Optional[Job] = None
        raw: Optional[RawTokenData] = None
        started_at = self.clock()
        start_time = time.monotonic()

        try:
            job = self.ledger.create_job(resource_key, job_id=job_id)
            job = self.ledger.mark_running(job_id)
            started_at = job.started_at or started_at

            logger.info(f"Refreshing {resource_key} (job {job_id}, attempt {job.attempt})")
            raw = self.provider.fetch_all(resource_key.chain_id, resource_key.contract_address)

            snapshot = self.calculator.compute_benchmark(
                raw.holders,
                raw.liquidity,
                raw.governance,
                computed_at=self.clock(),
            ).model_copy(update={"resource_key": resource_key, "job_id": job_id})

            # A reclaimed lock means another job may already be writing this key
            if not self.locks.is_held(handle):
                raise LockLostError(str(resource_key), job_id)

            self.snapshot_store.put(resource_key, snapshot)
            self.ledger.mark_success(job_id, snapshot_ref=snapshot.snapshot_ref)

        except Exception as e:
            return self._record_failure(resource_key, job_id, job, raw, started_at, start_time, e)

        self._append_history(
            resource_key,
            job_id,
            RefreshResult.SUCCESS,
            started_at,
            start_time,
            api_calls_made=raw.api_calls_made,
        )
        logger.info(
            f"Refreshed {resource_key}: control_risk={snapshot.control_risk} "
            f"nakamoto={snapshot.nakamoto} ({snapshot.holder_count} holders)"
        )
        return Served(snapshot=snapshot, from_cache=False)

    def _classify(self, resource_key: ResourceKey, error: Exception) -> tuple[FailureReason, str]:
        """Reason code and message for an error; call from inside the except block."""
        if isinstance(error, RiskBenchError):
            return error.reason, error.message
        logger.exception(f"Unexpected error refreshing {resource_key}")
        return FailureReason.INTERNAL_ERROR, f"{type(error).__name__}: {error}"

    def _read_failure(self, resource_key: ResourceKey, error: Exception) -> Failed:
        """Failure outside a recorded job, e.g. a damaged snapshot file."""
        reason, message = self._classify(resource_key, error)
        logger.error(f"Request for {resource_key} failed ({reason.value}): {message}")
        return Failed(reason=reason, message=message)

    def _record_failure(
        self,
        resource_key: ResourceKey,
        job_id: str,
        job: Optional[Job],
        raw: Optional[RawTokenData],
        started_at: datetime,
        start_time: float,
        error: Exception,
    ) -> Failed:
        reason, message = self._classify(resource_key, error)
        logger.error(f"Refresh of {resource_key} failed ({reason.value}): {message}")

        if job is None:
            # The job was never recorded, so there is nothing to mark
            return Failed(reason=reason, message=message)

        try:
            current = self.ledger.get(job_id)
            if current is not None and not current.status.is_terminal:
                self.ledger.mark_error(job_id, message, reason=reason)
        except RiskBenchError as e:
            logger.error(f"Could not mark job {job_id} as failed: {e}")

        try:
            self._append_history(
                resource_key,
                job_id,
                RefreshResult.ERROR,
                started_at,
                start_time,
                api_calls_made=raw.api_calls_made if raw else 0,
                error_reason=reason,
                error_message=message,
            )
        except RiskBenchError as e:
            logger.error(f"Could not record failure of job {job_id}: {e}")

        return Failed(reason=reason, message=message, job_id=job_id)

    def _append_history(
        self,
        resource_key: ResourceKey,
        job_id: str,
        outcome: RefreshResult,
        started_at: datetime,
        start_time: float,
        api_calls_made: int = 0,
        error_reason: FailureReason | None = None,
        error_message: str | None = None,
    ) -> None:
        self.history.append(
            RefreshHistoryEntry(
                resource_key=resource_key,
                job_id=job_id,
                outcome=outcome,
                error_reason=error_reason,
                error_message=error_message,
                started_at=started_at,
                timestamp=self.clock(),
                duration_ms=int((time.monotonic() - start_time) * 1000),
                api_calls_made=api_calls_made,
            )
        )

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_latest_benchmark(self, resource_key: ResourceKey) -> Optional[BenchmarkSnapshot]:
        return self.snapshot_store.get_latest(resource_key)

    def get_job_status(self, job_id: str) -> Optional[Job]:
        return self.ledger.get(job_id)

    def get_refresh_history(
        self, resource_key: ResourceKey, limit: int = 10
    ) -> List[RefreshHistoryEntry]:
        """Refresh attempts for a key, newest first."""
        return self.history.for_key(resource_key, limit=limit)

    def get_job_stats(self) -> JobStats:
        return self.ledger.stats()

    def is_refresh_in_progress(self, resource_key: ResourceKey) -> bool:
        return self.locks.is_refresh_in_progress(resource_key)

    def current_lock(self, resource_key: ResourceKey) -> Optional[RefreshLock]:
        return self.locks.current(resource_key)
