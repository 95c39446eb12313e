"""Core module - data models, types, configuration and exceptions."""

from .models import (
    ResourceKey,
    HolderBalance,
    PoolShare,
    LiquidityInputs,
    GovernanceInputs,
    RawTokenData,
    BenchmarkSnapshot,
    Job,
    JobStats,
    RefreshLock,
    LockHandle,
    LockBusy,
    RefreshHistoryEntry,
    RateLimitCounter,
    Allowed,
    Denied,
    AdmissionDecision,
    Served,
    Queued,
    Failed,
    RefreshOutcome,
)
from .types import (
    JobStatus,
    FailureReason,
    RefreshResult,
    RatePlan,
)
from .exceptions import (
    RiskBenchError,
    InvalidInputError,
    InvalidTransitionError,
    JobNotFoundError,
    DataSourceError,
    UpstreamUnavailableError,
    ProviderRateLimitedError,
    ConfigurationError,
    StorageError,
    LockLostError,
)
from .config import RefreshSettings, ScoringConfig, get_settings, reload_settings

__all__ = [
    # Models
    "ResourceKey",
    "HolderBalance",
    "PoolShare",
    "LiquidityInputs",
    "GovernanceInputs",
    "RawTokenData",
    "BenchmarkSnapshot",
    "Job",
    "JobStats",
    "RefreshLock",
    "LockHandle",
    "LockBusy",
    "RefreshHistoryEntry",
    "RateLimitCounter",
    "Allowed",
    "Denied",
    "AdmissionDecision",
    "Served",
    "Queued",
    "Failed",
    "RefreshOutcome",
    # Types
    "JobStatus",
    "FailureReason",
    "RefreshResult",
    "RatePlan",
    # Exceptions
    "RiskBenchError",
    "InvalidInputError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "DataSourceError",
    "UpstreamUnavailableError",
    "ProviderRateLimitedError",
    "ConfigurationError",
    "StorageError",
    "LockLostError",
    # Config
    "RefreshSettings",
    "ScoringConfig",
    "get_settings",
    "reload_settings",
]
