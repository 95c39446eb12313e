"""Custom exceptions for the risk benchmark core.

Each exception carries a ``reason`` so that failures can be reported to
callers with a stable code instead of the raw message.
"""

from .types import FailureReason


class RiskBenchError(Exception):
    """Base exception for all risk benchmark errors."""

    reason: FailureReason = FailureReason.INTERNAL_ERROR

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInputError(RiskBenchError):
    """Raised when metric inputs are malformed or semantically invalid."""

    reason = FailureReason.INVALID_INPUT

    def __init__(self, field: str, value: object, reason: str):
        message = f"Invalid input for {field}={value!r}: {reason}"
        super().__init__(message, {"field": field, "value": repr(value), "reason": reason})
        self.field = field
        self.value = value
        self.explanation = reason


class InvalidTransitionError(RiskBenchError):
    """Raised on an illegal job status transition."""

    reason = FailureReason.INVALID_TRANSITION

    def __init__(self, job_id: str, current: str, target: str):
        message = f"Job {job_id}: illegal transition {current} -> {target}"
        super().__init__(message, {"job_id": job_id, "current": current, "target": target})
        self.job_id = job_id
        self.current = current
        self.target = target


class JobNotFoundError(RiskBenchError):
    """Raised when a ledger operation names an unknown job."""

    reason = FailureReason.STORAGE_ERROR

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", {"job_id": job_id})
        self.job_id = job_id


class DataSourceError(RiskBenchError):
    """Raised when a raw data provider fails or returns invalid data."""

    reason = FailureReason.UPSTREAM_UNAVAILABLE

    def __init__(
        self,
        source: str,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
    ):
        full_message = f"[{source}] {message}"
        super().__init__(
            full_message,
            {
                "source": source,
                "endpoint": endpoint,
                "status_code": status_code,
            },
        )
        self.source = source
        self.endpoint = endpoint
        self.status_code = status_code


class UpstreamUnavailableError(DataSourceError):
    """Raised when a raw data provider cannot be reached or errors out."""


class ProviderRateLimitedError(DataSourceError):
    """Raised when a raw data provider rejects us with a rate limit."""

    reason = FailureReason.PROVIDER_RATE_LIMITED

    def __init__(
        self,
        source: str,
        retry_after_seconds: int | None = None,
        endpoint: str | None = None,
    ):
        message = "Rate limit exceeded"
        if retry_after_seconds:
            message += f", retry after {retry_after_seconds}s"
        super().__init__(source, message, endpoint=endpoint, status_code=429)
        self.retry_after_seconds = retry_after_seconds


class ConfigurationError(RiskBenchError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, message: str):
        full_message = f"Configuration error [{config_key}]: {message}"
        super().__init__(full_message, {"config_key": config_key})
        self.config_key = config_key


class StorageError(RiskBenchError):
    """Raised when a store cannot read or write its state."""

    reason = FailureReason.STORAGE_ERROR

    def __init__(self, store: str, message: str):
        super().__init__(f"[{store}] {message}", {"store": store})
        self.store = store


class LockLostError(RiskBenchError):
    """Raised when a refresh lock expired and was reclaimed mid-refresh."""

    reason = FailureReason.LOCK_LOST

    def __init__(self, resource_key: str, job_id: str):
        message = f"Refresh lock for {resource_key} no longer held by job {job_id}"
        super().__init__(message, {"resource_key": resource_key, "job_id": job_id})
        self.resource_key = resource_key
        self.job_id = job_id
