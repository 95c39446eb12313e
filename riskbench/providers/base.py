"""Base classes for raw data providers."""

import logging
import threading
import time
from abc import ABC, abstractmethod

from ..core.models import GovernanceInputs, HolderBalance, LiquidityInputs, RawTokenData

logger = logging.getLogger(__name__)


class RawDataProvider(ABC):
    """Source of raw holder, liquidity and governance data.

    Implementations raise UpstreamUnavailableError when the source fails
    and ProviderRateLimitedError when it throttles us.
    """

    SOURCE: str = "unknown"

    @abstractmethod
    def fetch_holder_balances(self, chain_id: str, address: str) -> list[HolderBalance]:
        """Holder balances for a token."""

    @abstractmethod
    def fetch_liquidity_inputs(self, chain_id: str, address: str) -> LiquidityInputs:
        """Liquidity pool distribution for a token."""

    @abstractmethod
    def fetch_governance_inputs(self, chain_id: str, address: str) -> GovernanceInputs:
        """Governance parameters and turnout for a token."""

    def is_available(self) -> bool:
        """Check if the provider is available and configured."""
        return True

    def api_calls_in_thread(self) -> int:
        """Upstream API calls made so far by the calling thread."""
        return 0

    def fetch_all(self, chain_id: str, address: str) -> RawTokenData:
        """Fetch every input needed for a benchmark; any failure propagates."""
        calls_before = self.api_calls_in_thread()
        holders = self.fetch_holder_balances(chain_id, address)
        liquidity = self.fetch_liquidity_inputs(chain_id, address)
        governance = self.fetch_governance_inputs(chain_id, address)
        return RawTokenData(
            holders=holders,
            liquidity=liquidity,
            governance=governance,
            api_calls_made=self.api_calls_in_thread() - calls_before,
        )


class BaseProvider(RawDataProvider):
    """Provider base with client-side throttling toward the upstream API."""

    def __init__(
        self,
        rate_limit_calls: int = 60,
        rate_limit_period: int = 60,
    ):
        """
        Initialize provider with rate limiting.

        Args:
            rate_limit_calls: Maximum calls per period
            rate_limit_period: Period in seconds
        """
        self.rate_limit_calls = rate_limit_calls
        self.rate_limit_period = rate_limit_period
        self._call_timestamps: list[float] = []
        self._throttle_lock = threading.Lock()
        self._thread_calls = threading.local()
        self.calls_made = 0

    def api_calls_in_thread(self) -> int:
        # Per thread, so concurrent refreshes of other keys don't inflate the count
        return getattr(self._thread_calls, "count", 0)

    def _wait_for_rate_limit(self) -> None:
        """Enforce rate limiting by sleeping if necessary; counts one API call."""
        with self._throttle_lock:
            now = time.time()
            # Clean old timestamps
            self._call_timestamps = [
                ts for ts in self._call_timestamps if now - ts < self.rate_limit_period
            ]

            if len(self._call_timestamps) >= self.rate_limit_calls:
                sleep_time = self._call_timestamps[0] + self.rate_limit_period - now
                if sleep_time > 0:
                    logger.debug(f"[{self.SOURCE}] Rate limit: sleeping {sleep_time:.1f}s")
                    time.sleep(sleep_time)

            self._call_timestamps.append(time.time())
            self.calls_made += 1
        self._thread_calls.count = self.api_calls_in_thread() + 1
