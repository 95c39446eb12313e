"""Type definitions and enums for the risk benchmark core."""

from datetime import datetime
from enum import Enum
from typing import Callable


class JobStatus(str, Enum):
    """Lifecycle states of a refresh job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """True once the job can no longer change state."""
        return self in (JobStatus.SUCCESS, JobStatus.ERROR)


class FailureReason(str, Enum):
    """Stable reason codes reported to callers and recorded on jobs."""

    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    PROVIDER_RATE_LIMITED = "provider_rate_limited"
    INVALID_INPUT = "invalid_input"
    INVALID_TRANSITION = "invalid_transition"
    LOCK_LOST = "lock_lost"
    STORAGE_ERROR = "storage_error"
    INTERNAL_ERROR = "internal_error"


class RefreshResult(str, Enum):
    """Outcome recorded in the refresh history."""

    SUCCESS = "success"
    ERROR = "error"


class RatePlan(str, Enum):
    """Caller plans with distinct rate-limit ceilings."""

    FREE = "free"
    PRO = "pro"


# Type aliases for common patterns
Percentage = float  # 0-100 scale
Score = float  # 0-100 scale, higher = more decentralized

# Source of timezone-aware timestamps
Clock = Callable[[], datetime]
