"""Pytest configuration and fixtures for risk benchmark tests."""

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import yaml

from riskbench.core.config import RefreshSettings
from riskbench.core.models import (
    GovernanceInputs,
    HolderBalance,
    LiquidityInputs,
    PoolShare,
    ResourceKey,
)
from riskbench.providers.base import RawDataProvider


class FakeClock:
    """Controllable clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now = self.now + timedelta(seconds=seconds)


class StubProvider(RawDataProvider):
    """In-memory provider that records calls and can fail or block on demand."""

    SOURCE = "stub"

    def __init__(
        self,
        holders: list[HolderBalance],
        liquidity: LiquidityInputs | None = None,
        governance: GovernanceInputs | None = None,
    ):
        self.holders = holders
        self.liquidity = liquidity or LiquidityInputs()
        self.governance = governance or GovernanceInputs()
        self.error: Exception | None = None
        self.gate: threading.Event | None = None
        self.entered = threading.Event()
        self.fetch_count = 0
        self._count_lock = threading.Lock()

    def fetch_holder_balances(self, chain_id: str, address: str) -> list[HolderBalance]:
        with self._count_lock:
            self.fetch_count += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.holders

    def fetch_liquidity_inputs(self, chain_id: str, address: str) -> LiquidityInputs:
        return self.liquidity

    def fetch_governance_inputs(self, chain_id: str, address: str) -> GovernanceInputs:
        return self.governance


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at 2024-06-01 12:00 UTC until advanced."""
    return FakeClock()


@pytest.fixture
def resource_key() -> ResourceKey:
    """Benchmark key for UNI on Ethereum mainnet."""
    return ResourceKey(
        chain_id="1",
        contract_address="0x1F9840a85d5aF5bf1D1762F925BDADdC4201F984",
    )


@pytest.fixture
def sample_holders() -> list[HolderBalance]:
    """Ten holders with a dominant whale."""
    balances = [400.0, 150.0, 100.0, 80.0, 70.0, 60.0, 50.0, 40.0, 30.0, 20.0]
    return [HolderBalance(holder_id=f"0xholder{i}", balance=b) for i, b in enumerate(balances)]


@pytest.fixture
def sample_liquidity() -> LiquidityInputs:
    """Two DEX pools with 20% of volume on CEXs."""
    return LiquidityInputs(
        pools=[
            PoolShare(dex="uniswap_v3", pool_address="0xpool1", tvl_usd=1_500_000, share_pct=70.0),
            PoolShare(dex="sushiswap", pool_address="0xpool2", tvl_usd=500_000, share_pct=30.0),
        ],
        cex_share_pct=20.0,
    )


@pytest.fixture
def sample_governance() -> GovernanceInputs:
    """On-chain governance with modest turnout."""
    return GovernanceInputs(framework="tally", quorum_pct=4.0, turnout_history=[12.0, 8.0, 10.0])


@pytest.fixture
def stub_provider(sample_holders, sample_liquidity, sample_governance) -> StubProvider:
    """Provider returning the sample token data."""
    return StubProvider(sample_holders, sample_liquidity, sample_governance)


@pytest.fixture
def settings() -> RefreshSettings:
    """Default settings with a tight rate limit."""
    return RefreshSettings(
        freshness_window_seconds=3600,
        lock_ttl_seconds=300,
        rate_limit_window_seconds=60,
        rate_limit_free=5,
        rate_limit_pro=50,
    )


@pytest.fixture
def manual_token_data(sample_holders) -> dict[str, Any]:
    """Manual data file content for the sample token."""
    return {
        "holders": [{"holder_id": h.holder_id, "balance": h.balance} for h in sample_holders],
        "liquidity": {
            "cex_share_pct": 20,
            "pools": [
                {"dex": "uniswap_v3", "pool_address": "0xpool1", "tvl_usd": 1500000, "share_pct": 70},
                {"dex": "sushiswap", "pool_address": "0xpool2", "tvl_usd": 500000, "share_pct": 30},
            ],
        },
        "governance": {"framework": "tally", "quorum_pct": 4, "turnout_history": [12, 8, 10]},
    }


@pytest.fixture
def manual_data_dir(tmp_path: Path, resource_key: ResourceKey, manual_token_data) -> Path:
    """Directory holding one manual data file for the sample token."""
    directory = tmp_path / "manual"
    directory.mkdir()
    path = directory / f"{resource_key.chain_id}_{resource_key.contract_address}.yaml"
    path.write_text(yaml.safe_dump(manual_token_data), encoding="utf-8")
    return directory
