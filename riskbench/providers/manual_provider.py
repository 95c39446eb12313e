"""Manual raw data provider for analyst-supplied files.

Lets analysts provide holder, liquidity and governance data via YAML/JSON
files when no data service is configured, or to pin inputs for review.

File layout (``{chain_id}_{address}.yaml`` or ``{address}.yaml``):

    holders:
      - {holder_id: "0xabc...", balance: 1200.5}
      - 800                      # bare numbers are accepted too
    liquidity:
      cex_share_pct: 20
      pools:
        - {dex: uniswap_v3, pool_address: "0x...", tvl_usd: 1500000, share_pct: 70}
    governance:
      framework: tally
      quorum_pct: 4
      turnout_history: [12.5, 8.0]
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..core.exceptions import UpstreamUnavailableError
from ..core.models import GovernanceInputs, HolderBalance, LiquidityInputs
from .base import BaseProvider

logger = logging.getLogger(__name__)


class ManualDataProvider(BaseProvider):
    """Loads raw token data from manual YAML/JSON files."""

    SOURCE = "manual"

    def __init__(self, data_directory: Path | str | None = None):
        """
        Initialize manual data provider.

        Args:
            data_directory: Directory containing token files.
                Files should be named {chain_id}_{address}.yaml/.json or {address}.yaml/.json
        """
        super().__init__()
        self.data_directory = Path(data_directory) if data_directory else None

    def is_available(self) -> bool:
        """Check if data directory exists and is readable."""
        if self.data_directory is None:
            return False
        return self.data_directory.exists() and self.data_directory.is_dir()

    def _find_token_file(self, chain_id: str, address: str) -> Path | None:
        """Find the data file for a token."""
        if not self.data_directory:
            return None

        stems = [f"{chain_id}_{address}", f"{chain_id}_{address.lower()}", address, address.lower()]
        for stem in stems:
            for ext in (".yaml", ".yml", ".json"):
                filepath = self.data_directory / f"{stem}{ext}"
                if filepath.exists():
                    return filepath

        return None

    def _load_file(self, filepath: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                if filepath.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise UpstreamUnavailableError(self.SOURCE, f"cannot load {filepath}: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamUnavailableError(self.SOURCE, f"{filepath} must contain a mapping")
        return data

    def _token_data(self, chain_id: str, address: str) -> dict[str, Any]:
        filepath = self._find_token_file(chain_id, address)
        if filepath is None:
            raise UpstreamUnavailableError(
                self.SOURCE,
                f"no data file for {chain_id}:{address} in {self.data_directory}",
            )
        logger.debug(f"Using manual data from {filepath}")
        return self._load_file(filepath)

    def fetch_holder_balances(self, chain_id: str, address: str) -> list[HolderBalance]:
        data = self._token_data(chain_id, address)
        holders = []
        for index, item in enumerate(data.get("holders") or []):
            if isinstance(item, dict):
                holder_id = str(item.get("holder_id") or item.get("address") or f"holder-{index}")
                balance = item.get("balance")
            else:
                holder_id, balance = f"holder-{index}", item
            try:
                holders.append(HolderBalance(holder_id=holder_id, balance=balance))
            except ValidationError as e:
                raise UpstreamUnavailableError(
                    self.SOURCE, f"invalid holder entry {item!r} for {chain_id}:{address}"
                ) from e
        return holders

    def fetch_liquidity_inputs(self, chain_id: str, address: str) -> LiquidityInputs:
        data = self._token_data(chain_id, address)
        try:
            return LiquidityInputs.model_validate(data.get("liquidity") or {})
        except ValidationError as e:
            raise UpstreamUnavailableError(
                self.SOURCE, f"invalid liquidity section for {chain_id}:{address}: {e}"
            ) from e

    def fetch_governance_inputs(self, chain_id: str, address: str) -> GovernanceInputs:
        data = self._token_data(chain_id, address)
        try:
            return GovernanceInputs.model_validate(data.get("governance") or {})
        except ValidationError as e:
            raise UpstreamUnavailableError(
                self.SOURCE, f"invalid governance section for {chain_id}:{address}: {e}"
            ) from e
