"""Fixed-window rate limiter for refresh admission.

Each (key, window start) pair gets a counter. Window start is
floor(now / window) * window, so every caller sees the same window
boundaries and ``retry_after`` is simply the time left in the window.
Counters of finished windows are dropped once a new window starts.
"""

import logging
import math
import threading
from typing import Dict, Optional

from ..core.config import RefreshSettings
from ..core.exceptions import InvalidInputError
from ..core.models import AdmissionDecision, Allowed, Denied, RateLimitCounter, utc_now
from ..core.types import Clock, RatePlan

logger = logging.getLogger(__name__)

# Smallest retry_after ever reported
MIN_RETRY_AFTER = 0.001


class RateLimiter:
    """Thread-safe fixed-window admission control with plan tiers."""

    def __init__(
        self,
        limit: int = 30,
        window_seconds: float = 60.0,
        pro_limit: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the rate limiter.

        Args:
            limit: Admissions per window for the free plan (and unknown plans)
            window_seconds: Window length
            pro_limit: Admissions per window for the pro plan; defaults to limit
            clock: Source of timezone-aware timestamps
        """
        if limit < 1:
            raise InvalidInputError("limit", limit, "must be at least 1")
        if window_seconds <= 0:
            raise InvalidInputError("window_seconds", window_seconds, "must be positive")
        self.limit = limit
        self.pro_limit = pro_limit if pro_limit is not None else limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._counters: Dict[str, RateLimitCounter] = {}
        self._current_window: Optional[float] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: RefreshSettings, clock: Clock = utc_now) -> "RateLimiter":
        return cls(
            limit=settings.rate_limit_free,
            window_seconds=settings.rate_limit_window_seconds,
            pro_limit=settings.rate_limit_pro,
            clock=clock,
        )

    def _limit_for(self, plan: RatePlan | str | None) -> int:
        if plan is None:
            return self.limit
        try:
            return self.pro_limit if RatePlan(plan) == RatePlan.PRO else self.limit
        except ValueError:
            return self.limit

    def _window_start(self, now_ts: float) -> float:
        return math.floor(now_ts / self.window_seconds) * self.window_seconds

    def admit(self, key: str, plan: RatePlan | str | None = None) -> AdmissionDecision:
        """
        Count one admission for a key if the ceiling allows it.

        Args:
            key: Caller id or resource key string
            plan: Caller plan selecting the ceiling

        Returns:
            Allowed with the remaining budget, or Denied with seconds until reset
        """
        limit = self._limit_for(plan)

        with self._lock:
            now_ts = self.clock().timestamp()
            window_start = self._window_start(now_ts)
            if self._current_window != window_start:
                # Counters from earlier windows can never deny again
                self._drop_finished(now_ts)
                self._current_window = window_start
            counter_key = f"{key}:{window_start}"

            counter = self._counters.get(counter_key)
            if counter is None:
                counter = RateLimitCounter(
                    key=key,
                    window_start=window_start,
                    window_seconds=self.window_seconds,
                    limit=limit,
                )

            if counter.count >= limit:
                retry_after = max(counter.window_end - now_ts, MIN_RETRY_AFTER)
                logger.warning(f"Rate limit hit for {key}: {counter.count}/{limit}, retry in {retry_after:.1f}s")
                return Denied(retry_after=retry_after, limit=limit)

            counter = counter.model_copy(update={"count": counter.count + 1, "limit": limit})
            self._counters[counter_key] = counter

        return Allowed(remaining=limit - counter.count, limit=limit)

    def count(self, key: str) -> int:
        """Admissions recorded for a key in the current window."""
        with self._lock:
            window_start = self._window_start(self.clock().timestamp())
            counter = self._counters.get(f"{key}:{window_start}")
            return counter.count if counter else 0

    def _drop_finished(self, now_ts: float) -> int:
        expired = [k for k, c in self._counters.items() if c.window_end <= now_ts]
        for k in expired:
            del self._counters[k]
        if expired:
            logger.debug(f"Pruned {len(expired)} rate-limit counters")
        return len(expired)

    def prune(self) -> int:
        """Drop counters whose window has ended. Returns how many were removed.

        ``admit`` already does this whenever a new window starts.
        """
        with self._lock:
            return self._drop_finished(self.clock().timestamp())

    def __len__(self) -> int:
        """Counters currently tracked."""
        with self._lock:
            return len(self._counters)
