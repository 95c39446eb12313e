"""Configuration management for refresh settings and scoring tables.

Refresh settings (freshness window, lock TTL, rate-limit ceilings, data
locations) load from environment variables or a .env file. Scoring
thresholds and weights load from YAML; anything omitted keeps the defaults
documented on ``ScoringConfig``.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RISKBENCH_"

# (minimum value, score) steps, evaluated highest minimum first
DEFAULT_NAKAMOTO_THRESHOLDS: list[tuple[float, float]] = [
    (10, 100.0),
    (7, 85.0),
    (5, 70.0),
    (3, 50.0),
    (2, 35.0),
    (1, 15.0),
]

DEFAULT_LIQUIDITY_DEPTH_THRESHOLDS: list[tuple[float, float]] = [
    (10_000_000, 100.0),
    (1_000_000, 80.0),
    (100_000, 60.0),
    (10_000, 40.0),
    (0, 20.0),
]


def _check_weights(name: str, weights: dict[str, float], required: set[str]) -> dict[str, float]:
    missing = required - set(weights)
    if missing:
        raise ValueError(f"{name} missing keys: {sorted(missing)}")
    unknown = set(weights) - required
    if unknown:
        raise ValueError(f"{name} has unknown keys: {sorted(unknown)}")
    if any(w < 0 for w in weights.values()):
        raise ValueError(f"{name} must be non-negative")
    if sum(weights.values()) <= 0:
        raise ValueError(f"{name} must have a positive sum")
    return weights


def _check_thresholds(name: str, table: list[tuple[float, float]]) -> list[tuple[float, float]]:
    if not table:
        raise ValueError(f"{name} must not be empty")
    for minimum, score in table:
        if not 0 <= score <= 100:
            raise ValueError(f"{name} scores must be within 0-100, got {score}")
    ordered = sorted(table, key=lambda step: step[0], reverse=True)
    # Higher input must never map to a lower score
    scores = [score for _, score in ordered]
    if scores != sorted(scores, reverse=True):
        raise ValueError(f"{name} scores must not decrease as the threshold rises")
    return ordered


class ScoringConfig(BaseModel):
    """Threshold tables and weights for the metric engine.

    Sub-scores are 0-100 with higher meaning more decentralized. The
    control-risk composite inverts them: ``sum(w * (100 - score)) / sum(w)``.
    """

    calc_version: str = "0.4.0"

    # Ownership: blend of gini, hhi, nakamoto and top-10 holder share
    nakamoto_thresholds: list[tuple[float, float]] = Field(
        default_factory=lambda: list(DEFAULT_NAKAMOTO_THRESHOLDS)
    )
    ownership_weights: dict[str, float] = Field(
        default_factory=lambda: {"gini": 0.30, "hhi": 0.25, "nakamoto": 0.25, "top10": 0.20}
    )

    # Liquidity: largest-pool share, DEX/CEX split, pool HHI, depth
    liquidity_depth_thresholds: list[tuple[float, float]] = Field(
        default_factory=lambda: list(DEFAULT_LIQUIDITY_DEPTH_THRESHOLDS)
    )
    liquidity_weights: dict[str, float] = Field(
        default_factory=lambda: {"max_pool": 0.35, "dex_share": 0.25, "pool_hhi": 0.20, "depth": 0.20}
    )

    # Governance: quorum and turnout saturation points
    quorum_full_pct: float = 10.0
    turnout_full_pct: float = 50.0
    governance_weights: dict[str, float] = Field(
        default_factory=lambda: {"quorum": 0.60, "turnout": 0.40}
    )
    onchain_bonus: float = 5.0
    default_quorum_score: float = 40.0

    # Composite
    control_risk_weights: dict[str, float] = Field(
        default_factory=lambda: {"ownership": 0.50, "liquidity": 0.25, "governance": 0.25}
    )

    # Scores used when an input is absent
    missing_ownership_score: float = 45.0
    missing_liquidity_score: float = 45.0
    missing_governance_score: float = 40.0

    model_config = {"frozen": True}

    @field_validator("nakamoto_thresholds")
    @classmethod
    def validate_nakamoto(cls, v: list[tuple[float, float]]) -> list[tuple[float, float]]:
        return _check_thresholds("nakamoto_thresholds", v)

    @field_validator("liquidity_depth_thresholds")
    @classmethod
    def validate_depth(cls, v: list[tuple[float, float]]) -> list[tuple[float, float]]:
        return _check_thresholds("liquidity_depth_thresholds", v)

    @field_validator("ownership_weights")
    @classmethod
    def validate_ownership_weights(cls, v: dict[str, float]) -> dict[str, float]:
        return _check_weights("ownership_weights", v, {"gini", "hhi", "nakamoto", "top10"})

    @field_validator("liquidity_weights")
    @classmethod
    def validate_liquidity_weights(cls, v: dict[str, float]) -> dict[str, float]:
        return _check_weights("liquidity_weights", v, {"max_pool", "dex_share", "pool_hhi", "depth"})

    @field_validator("governance_weights")
    @classmethod
    def validate_governance_weights(cls, v: dict[str, float]) -> dict[str, float]:
        return _check_weights("governance_weights", v, {"quorum", "turnout"})

    @field_validator("control_risk_weights")
    @classmethod
    def validate_control_weights(cls, v: dict[str, float]) -> dict[str, float]:
        return _check_weights("control_risk_weights", v, {"ownership", "liquidity", "governance"})

    @field_validator("quorum_full_pct", "turnout_full_pct")
    @classmethod
    def validate_saturation(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("saturation point must be positive")
        return v

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "<dict>") -> "ScoringConfig":
        """Build a config, reporting validation problems as ConfigurationError."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"]) or source
            raise ConfigurationError(key, f"{first['msg']} (in {source})") from e

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> "ScoringConfig":
        """Load scoring config from a YAML file.

        Args:
            config_path: Path to YAML file. A top-level ``scoring`` section is
                used when present, otherwise the whole document.

        Returns:
            ScoringConfig with file values over defaults
        """
        config_path = Path(config_path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigurationError(str(config_path), "scoring config file not found") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(str(config_path), f"invalid YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(str(config_path), "expected a mapping at top level")

        section = data.get("scoring", data)
        config = cls.from_dict(section, source=str(config_path))
        logger.info(f"Loaded scoring config from {config_path}")
        return config


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(ENV_PREFIX + name, f"expected a number, got {raw!r}") from e


@dataclass
class RefreshSettings:
    """Operational settings for the refresh pipeline."""

    # Cached snapshots younger than this are served without refreshing
    freshness_window_seconds: float = 3600.0

    # A crashed holder's lock becomes acquirable after this long
    lock_ttl_seconds: float = 300.0

    # Fixed-window admission control
    rate_limit_window_seconds: float = 60.0
    rate_limit_free: int = 30
    rate_limit_pro: int = 300

    # Where snapshots, jobs and history are written
    data_dir: Optional[Path] = None

    # Scoring thresholds/weights override file
    scoring_config_path: Optional[Path] = None

    # Raw data provider
    provider_base_url: Optional[str] = None
    provider_api_key: Optional[str] = None
    manual_data_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        for name in ("freshness_window_seconds", "lock_ttl_seconds", "rate_limit_window_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(name, "must be positive")
        for name in ("rate_limit_free", "rate_limit_pro"):
            if getattr(self, name) < 1:
                raise ConfigurationError(name, "must be at least 1")

    @classmethod
    def from_env(cls) -> "RefreshSettings":
        """Load settings from RISKBENCH_* environment variables."""
        data_dir = os.getenv(ENV_PREFIX + "DATA_DIR")
        scoring = os.getenv(ENV_PREFIX + "SCORING_CONFIG")
        manual = os.getenv(ENV_PREFIX + "MANUAL_DATA_DIR")
        return cls(
            freshness_window_seconds=_env_float("FRESHNESS_WINDOW_SECONDS", 3600.0),
            lock_ttl_seconds=_env_float("LOCK_TTL_SECONDS", 300.0),
            rate_limit_window_seconds=_env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0),
            rate_limit_free=int(_env_float("RATE_LIMIT_FREE", 30)),
            rate_limit_pro=int(_env_float("RATE_LIMIT_PRO", 300)),
            data_dir=Path(data_dir) if data_dir else None,
            scoring_config_path=Path(scoring) if scoring else None,
            provider_base_url=os.getenv(ENV_PREFIX + "PROVIDER_BASE_URL"),
            provider_api_key=os.getenv(ENV_PREFIX + "PROVIDER_API_KEY"),
            manual_data_dir=Path(manual) if manual else None,
        )

    @classmethod
    def load(cls, env_file: Optional[Path] = None) -> "RefreshSettings":
        """
        Load settings from a .env file and environment variables.

        Args:
            env_file: Optional path to .env file. If not provided,
                      looks for .env in the project root.

        Returns:
            RefreshSettings instance with loaded values
        """
        if env_file:
            load_dotenv(env_file)
        else:
            project_root = Path(__file__).parent.parent.parent
            env_path = project_root / ".env"
            if env_path.exists():
                load_dotenv(env_path)

        return cls.from_env()

    def load_scoring_config(self) -> ScoringConfig:
        if self.scoring_config_path:
            return ScoringConfig.from_yaml(self.scoring_config_path)
        return ScoringConfig()


# Global settings instance (lazy loaded)
_settings: Optional[RefreshSettings] = None


def get_settings() -> RefreshSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = RefreshSettings.load()
    return _settings


def reload_settings(env_file: Optional[Path] = None) -> RefreshSettings:
    """Reload settings from environment."""
    global _settings
    _settings = RefreshSettings.load(env_file)
    return _settings
