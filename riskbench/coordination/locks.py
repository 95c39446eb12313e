"""Refresh lock manager - at most one in-flight refresh per resource key.

Expiry is checked when a lock is read: a lock whose ``expires_at`` has
passed is treated as absent and the next acquirer replaces it. Nothing
sweeps locks in the background.
"""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional, Union

from ..core.exceptions import InvalidInputError
from ..core.models import LockBusy, RefreshLock, ResourceKey, utc_now
from ..core.types import Clock

logger = logging.getLogger(__name__)

AcquireResult = Union[RefreshLock, LockBusy]


class RefreshLockManager:
    """
    In-process lock table keyed by resource key.

    Usage:
        locks = RefreshLockManager(default_ttl_seconds=300)
        result = locks.try_acquire(key, holder_job_id=job_id)
        if isinstance(result, LockBusy):
            ...  # someone else is refreshing
        else:
            try:
                ...
            finally:
                locks.release(result)
    """

    def __init__(self, default_ttl_seconds: float = 300.0, clock: Clock = utc_now):
        """
        Initialize the lock manager.

        Args:
            default_ttl_seconds: Lock lifetime when try_acquire gets no ttl
            clock: Source of timezone-aware timestamps
        """
        if default_ttl_seconds <= 0:
            raise InvalidInputError("default_ttl_seconds", default_ttl_seconds, "must be positive")
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock
        self._locks: Dict[ResourceKey, RefreshLock] = {}
        self._mutex = threading.Lock()

    @staticmethod
    def is_expired(lock: RefreshLock, now: datetime) -> bool:
        return lock.is_expired(now)

    def try_acquire(
        self,
        resource_key: ResourceKey,
        ttl_seconds: Optional[float] = None,
        holder_job_id: Optional[str] = None,
    ) -> AcquireResult:
        """
        Acquire the lock for a key without waiting.

        Args:
            resource_key: Key to lock
            ttl_seconds: Lifetime of the lock; defaults to default_ttl_seconds
            holder_job_id: Job that will own the lock (reported to busy callers)

        Returns:
            The RefreshLock handle on success, LockBusy if a live lock exists
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise InvalidInputError("ttl_seconds", ttl, "must be positive")

        with self._mutex:
            now = self.clock()
            existing = self._locks.get(resource_key)

            if existing is not None and not existing.is_expired(now):
                return LockBusy(
                    resource_key=resource_key,
                    holder_job_id=existing.holder_job_id,
                    acquired_at=existing.acquired_at,
                    expires_at=existing.expires_at,
                )

            if existing is not None:
                logger.warning(
                    f"Reclaiming expired lock on {resource_key} "
                    f"(held by job {existing.holder_job_id} since {existing.acquired_at.isoformat()})"
                )

            handle = RefreshLock(
                resource_key=resource_key,
                holder_job_id=holder_job_id or uuid.uuid4().hex,
                token=uuid.uuid4().hex,
                acquired_at=now,
                expires_at=now + timedelta(seconds=ttl),
            )
            self._locks[resource_key] = handle

        logger.debug(f"Acquired lock on {resource_key} for job {handle.holder_job_id}")
        return handle

    def release(self, handle: RefreshLock) -> None:
        """Release a lock. Releasing a stale or already-released handle is a no-op."""
        with self._mutex:
            current = self._locks.get(handle.resource_key)
            if current is not None and current.token == handle.token:
                del self._locks[handle.resource_key]
                logger.debug(f"Released lock on {handle.resource_key}")

    def is_held(self, handle: RefreshLock) -> bool:
        """True while this handle is still the live lock for its key."""
        with self._mutex:
            current = self._locks.get(handle.resource_key)
            return (
                current is not None
                and current.token == handle.token
                and not current.is_expired(self.clock())
            )

    def current(self, resource_key: ResourceKey) -> Optional[RefreshLock]:
        """The live lock for a key, or None if absent or expired."""
        with self._mutex:
            lock = self._locks.get(resource_key)
            if lock is None or lock.is_expired(self.clock()):
                return None
            return lock

    def is_refresh_in_progress(self, resource_key: ResourceKey) -> bool:
        return self.current(resource_key) is not None
