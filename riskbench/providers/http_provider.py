"""HTTP raw data provider.

Fetches holder balances, liquidity pools and governance data from a REST
data service:

    GET {base_url}/tokens/{chain_id}/{address}/holders
    GET {base_url}/tokens/{chain_id}/{address}/liquidity
    GET {base_url}/tokens/{chain_id}/{address}/governance

Payloads use the camelCase field names of the upstream service.
"""

import logging
import time
from typing import Any

import httpx

from ..core.exceptions import ProviderRateLimitedError, UpstreamUnavailableError
from ..core.models import GovernanceInputs, HolderBalance, LiquidityInputs, PoolShare
from .base import BaseProvider

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


class HttpRawDataProvider(BaseProvider):
    """Fetches raw token data over HTTP."""

    SOURCE = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        rate_limit_calls: int = 30,
        rate_limit_period: int = 60,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize HTTP provider.

        Args:
            base_url: Service root, e.g. https://data.example.com/api/v1
            api_key: Optional key sent as the x-api-key header
            timeout: Request timeout in seconds
            rate_limit_calls: Rate limit per period
            rate_limit_period: Period in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(rate_limit_calls=rate_limit_calls, rate_limit_period=rate_limit_period)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def is_available(self) -> bool:
        """Check if the data service answers its health endpoint."""
        try:
            with self._client() as client:
                response = client.get(f"{self.base_url}/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _make_request(self, endpoint: str) -> dict[str, Any]:
        """Make a rate-limited GET request."""
        self._wait_for_rate_limit()
        start_time = time.time()

        headers = {}
        if self.api_key:
            headers["x-api-key"] = self.api_key

        url = f"{self.base_url}{endpoint}"

        try:
            with self._client() as client:
                response = client.get(url, headers=headers)

            duration_ms = int((time.time() - start_time) * 1000)
            logger.debug(f"[{self.SOURCE}] GET {endpoint} -> {response.status_code} ({duration_ms}ms)")

            if response.status_code == 429:
                retry_after = response.headers.get("retry-after")
                raise ProviderRateLimitedError(
                    source=self.SOURCE,
                    retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit()
                    else DEFAULT_RETRY_AFTER_SECONDS,
                    endpoint=endpoint,
                )

            if response.status_code == 404:
                return {}

            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(
                source=self.SOURCE,
                message=f"HTTP {e.response.status_code}",
                endpoint=endpoint,
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(
                source=self.SOURCE,
                message=str(e) or type(e).__name__,
                endpoint=endpoint,
            ) from e
        except ValueError as e:
            raise UpstreamUnavailableError(
                source=self.SOURCE,
                message=f"invalid JSON: {e}",
                endpoint=endpoint,
            ) from e

        if not isinstance(data, dict):
            raise UpstreamUnavailableError(self.SOURCE, "expected a JSON object", endpoint=endpoint)
        return data

    def _token_path(self, chain_id: str, address: str, resource: str) -> str:
        return f"/tokens/{chain_id}/{address.lower()}/{resource}"

    def fetch_holder_balances(self, chain_id: str, address: str) -> list[HolderBalance]:
        endpoint = self._token_path(chain_id, address, "holders")
        data = self._make_request(endpoint)

        holders = []
        for item in data.get("holders", []):
            try:
                holders.append(
                    HolderBalance(
                        holder_id=str(item.get("address") or item.get("holderId") or ""),
                        # On-chain balances often arrive as decimal strings
                        balance=float(item["balance"]),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamUnavailableError(
                    self.SOURCE, f"malformed holder entry {item!r}: {e}", endpoint=endpoint
                ) from e

        logger.info(f"[{self.SOURCE}] {len(holders)} holders for {chain_id}:{address}")
        return holders

    def fetch_liquidity_inputs(self, chain_id: str, address: str) -> LiquidityInputs:
        endpoint = self._token_path(chain_id, address, "liquidity")
        data = self._make_request(endpoint)

        try:
            pools = [
                PoolShare(
                    dex=str(p.get("dex", "unknown")),
                    pool_address=str(p.get("poolAddress", "")),
                    tvl_usd=float(p.get("tvlUsd") or 0),
                    share_pct=float(p.get("sharePct") or 0),
                )
                for p in data.get("pools", [])
            ]
            cex_share = data.get("cexSharePct")
            return LiquidityInputs(
                pools=pools,
                cex_share_pct=float(cex_share) if cex_share is not None else None,
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise UpstreamUnavailableError(
                self.SOURCE, f"malformed liquidity payload: {e}", endpoint=endpoint
            ) from e

    def fetch_governance_inputs(self, chain_id: str, address: str) -> GovernanceInputs:
        endpoint = self._token_path(chain_id, address, "governance")
        data = self._make_request(endpoint)

        try:
            quorum = data.get("quorumPct")
            turnout = [
                float(t["turnoutPct"]) if isinstance(t, dict) else float(t)
                for t in data.get("turnoutHistory", [])
            ]
            return GovernanceInputs(
                framework=data.get("framework"),
                quorum_pct=float(quorum) if quorum is not None else None,
                turnout_history=turnout,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailableError(
                self.SOURCE, f"malformed governance payload: {e}", endpoint=endpoint
            ) from e
