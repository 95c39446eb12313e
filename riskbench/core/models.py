"""Pydantic data models for the risk benchmark core.

All data structures are immutable (frozen) after creation. State changes
(job transitions, counter increments) produce new instances through
``model_copy`` so readers never observe a half-updated record.
"""

from datetime import datetime, timezone
from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .types import FailureReason, JobStatus, Percentage, RefreshResult, Score


def utc_now() -> datetime:
    """Timezone-aware current time, the default clock everywhere."""
    return datetime.now(timezone.utc)


class ResourceKey(BaseModel):
    """Identity of one refreshable computation for a token."""

    chain_id: str
    contract_address: str
    resource_kind: str = "benchmark"

    model_config = {"frozen": True}

    @field_validator("contract_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("contract_address must not be empty")
        return v

    @field_validator("chain_id", "resource_kind")
    @classmethod
    def require_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    def __str__(self) -> str:
        return f"{self.chain_id}:{self.contract_address}:{self.resource_kind}"

    @property
    def storage_id(self) -> str:
        """Filesystem-safe identifier."""
        return f"{self.chain_id}_{self.contract_address}_{self.resource_kind}".replace("/", "-")


# ---------------------------------------------------------------------------
# Raw inputs
# ---------------------------------------------------------------------------


class HolderBalance(BaseModel):
    """Balance held by a single holder (validated by the metric engine)."""

    holder_id: str
    balance: float

    model_config = {"frozen": True}


class PoolShare(BaseModel):
    """One liquidity venue for the token."""

    dex: str
    pool_address: str = ""
    tvl_usd: float = 0.0
    share_pct: Percentage = 0.0  # Share of total token liquidity

    model_config = {"frozen": True}


class LiquidityInputs(BaseModel):
    """Raw liquidity data from providers."""

    pools: list[PoolShare] = Field(default_factory=list)
    cex_share_pct: Percentage | None = None  # None = assume all DEX

    model_config = {"frozen": True}

    @property
    def total_tvl_usd(self) -> float:
        return sum(p.tvl_usd for p in self.pools)


class GovernanceInputs(BaseModel):
    """Raw governance data from providers."""

    framework: str | None = None  # "tally", "snapshot", "onchain", ...
    quorum_pct: Percentage | None = None
    turnout_history: list[Percentage] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_onchain(self) -> bool:
        fw = (self.framework or "").lower()
        return "tally" in fw or "onchain" in fw


class RawTokenData(BaseModel):
    """Everything fetched from providers for one refresh."""

    holders: list[HolderBalance]
    liquidity: LiquidityInputs = Field(default_factory=LiquidityInputs)
    governance: GovernanceInputs = Field(default_factory=GovernanceInputs)
    api_calls_made: int = 0

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Computed results
# ---------------------------------------------------------------------------


class BenchmarkSnapshot(BaseModel):
    """Computed concentration and risk metrics for a resource key."""

    gini: float
    hhi: float  # 0-10000
    nakamoto: int  # 0 only when no supply is held
    liquidity: Score
    governance: Score
    ownership: Score
    control_risk: Score  # higher = riskier
    holder_count: int
    top1_pct: Percentage
    top3_pct: Percentage
    top10_pct: Percentage
    computed_at: datetime
    calc_version: str
    resource_key: ResourceKey | None = None
    job_id: str | None = None

    model_config = {"frozen": True}

    @property
    def snapshot_ref(self) -> str:
        return f"{self.resource_key or 'unbound'}@{self.computed_at.isoformat()}"


# ---------------------------------------------------------------------------
# Jobs, locks, history
# ---------------------------------------------------------------------------


class Job(BaseModel):
    """One attempt to refresh a resource key."""

    id: str
    resource_key: ResourceKey
    job_type: str
    status: JobStatus = JobStatus.QUEUED
    error_reason: FailureReason | None = None
    error_message: str | None = None
    snapshot_ref: str | None = None
    attempt: int = 1
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_error_fields(self) -> "Job":
        if self.status == JobStatus.ERROR and not self.error_message:
            raise ValueError("error_message is required when status is error")
        if self.status != JobStatus.ERROR and self.error_message is not None:
            raise ValueError("error_message is only allowed when status is error")
        return self

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


class RefreshLock(BaseModel):
    """Mutual-exclusion record for one resource key.

    The record handed back to the acquirer doubles as its handle; ``token``
    distinguishes it from a later holder of the same key.
    """

    resource_key: ResourceKey
    holder_job_id: str
    token: str
    acquired_at: datetime
    expires_at: datetime

    model_config = {"frozen": True}

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


LockHandle = RefreshLock


class LockBusy(BaseModel):
    """Another refresh currently holds the lock."""

    resource_key: ResourceKey
    holder_job_id: str
    acquired_at: datetime
    expires_at: datetime

    model_config = {"frozen": True}


class RefreshHistoryEntry(BaseModel):
    """Append-only audit record of a finished refresh attempt."""

    resource_key: ResourceKey
    job_id: str
    outcome: RefreshResult
    error_reason: FailureReason | None = None
    error_message: str | None = None
    started_at: datetime
    timestamp: datetime  # completion time, ordering key
    duration_ms: int
    api_calls_made: int = 0

    model_config = {"frozen": True}


class JobStats(BaseModel):
    """Aggregate view of the job ledger."""

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    errors_by_reason: dict[str, int] = Field(default_factory=dict)
    avg_duration_seconds: float | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitCounter(BaseModel):
    """Fixed-window admission counter."""

    key: str
    window_start: float  # epoch seconds
    window_seconds: float
    count: int = 0
    limit: int

    model_config = {"frozen": True}

    @property
    def window_end(self) -> float:
        return self.window_start + self.window_seconds


class Allowed(BaseModel):
    kind: Literal["allowed"] = "allowed"
    remaining: int
    limit: int

    model_config = {"frozen": True}


class Denied(BaseModel):
    kind: Literal["denied"] = "denied"
    retry_after: float  # seconds until the window resets
    limit: int

    model_config = {"frozen": True}


AdmissionDecision = Union[Allowed, Denied]


# ---------------------------------------------------------------------------
# Refresh outcomes
# ---------------------------------------------------------------------------


class Served(BaseModel):
    """A snapshot is available (cached or freshly computed)."""

    kind: Literal["served"] = "served"
    snapshot: BenchmarkSnapshot
    from_cache: bool

    model_config = {"frozen": True}


class Queued(BaseModel):
    """Another refresh is in flight; poll the job."""

    kind: Literal["queued"] = "queued"
    job_id: str

    model_config = {"frozen": True}


class Failed(BaseModel):
    """The refresh could not be completed."""

    kind: Literal["failed"] = "failed"
    reason: FailureReason
    message: str = ""
    job_id: str | None = None
    retry_after: float | None = None

    model_config = {"frozen": True}


RefreshOutcome = Union[Served, Queued, Failed]
