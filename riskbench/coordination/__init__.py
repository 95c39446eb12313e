"""Coordination primitives: refresh locks and admission control."""

from .locks import RefreshLockManager
from .rate_limiter import RateLimiter

__all__ = ["RefreshLockManager", "RateLimiter"]
