"""Normalized sub-scores and the control-risk composite.

Sub-scores are 0-100, higher = more decentralized. Every threshold and
weight comes from ``ScoringConfig``; nothing here is tuned at call time.

- Ownership  = weighted(gini, hhi, nakamoto, top-10 share)
- Liquidity  = weighted(largest pool share, DEX/CEX split, pool HHI, TVL depth)
- Governance = weighted(quorum, turnout) + on-chain bonus
- Control risk = sum(w_k * (100 - score_k)) / sum(w_k)
"""

import math

from ..core.config import ScoringConfig
from ..core.models import GovernanceInputs, LiquidityInputs
from .concentration import HHI_SCALE, NAKAMOTO_NO_SUPPLY, calc_hhi_from_shares, clamp

SCORE_PRECISION = 2


def threshold_score(value: float, table: list[tuple[float, float]]) -> float:
    """
    Map a raw value onto a step table.

    Args:
        value: Raw input (e.g. nakamoto coefficient, TVL in USD)
        table: (minimum, score) steps sorted by minimum descending

    Returns:
        Score of the first step whose minimum the value reaches, else 0
    """
    for minimum, score in table:
        if value >= minimum:
            return score
    return 0.0


def weighted_average(components: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean of named components; weights need not sum to 1."""
    total_weight = math.fsum(weights[name] for name in components)
    if total_weight <= 0:
        return 0.0
    return math.fsum(components[name] * weights[name] for name in components) / total_weight


def ownership_score(
    gini: float,
    hhi: float,
    nakamoto: int,
    top10_pct: float,
    config: ScoringConfig,
) -> float:
    """Ownership decentralization from holder concentration metrics."""
    if nakamoto == NAKAMOTO_NO_SUPPLY:
        return config.missing_ownership_score

    components = {
        "gini": clamp((1.0 - clamp(gini, 0.0, 1.0)) * 100.0),
        "hhi": clamp(100.0 - clamp(hhi, 0.0, HHI_SCALE) / 100.0),
        "nakamoto": threshold_score(nakamoto, config.nakamoto_thresholds),
        "top10": clamp(100.0 - clamp(top10_pct)),
    }
    return round(clamp(weighted_average(components, config.ownership_weights)), SCORE_PRECISION)


def liquidity_score(liquidity: LiquidityInputs | None, config: ScoringConfig) -> float:
    """Liquidity decentralization from pool distribution and depth."""
    if liquidity is None or not liquidity.pools:
        return config.missing_liquidity_score

    shares = [clamp(p.share_pct) for p in liquidity.pools]
    cex_share = clamp(liquidity.cex_share_pct) if liquidity.cex_share_pct is not None else 0.0

    components = {
        "max_pool": clamp(100.0 - max(shares)),
        # 100% DEX = 100, 50/50 = 75, 100% CEX = 50
        "dex_share": 50.0 + (100.0 - cex_share) / 2.0,
        "pool_hhi": clamp(100.0 - calc_hhi_from_shares(shares) / 100.0),
        "depth": threshold_score(liquidity.total_tvl_usd, config.liquidity_depth_thresholds),
    }
    return round(clamp(weighted_average(components, config.liquidity_weights)), SCORE_PRECISION)


def governance_score(governance: GovernanceInputs | None, config: ScoringConfig) -> float:
    """Governance decentralization from quorum, turnout and framework."""
    if governance is None or (
        governance.quorum_pct is None
        and not governance.turnout_history
        and governance.framework is None
    ):
        return config.missing_governance_score

    if governance.quorum_pct is not None:
        quorum = clamp(clamp(governance.quorum_pct) / config.quorum_full_pct * 100.0)
    else:
        quorum = config.default_quorum_score

    if governance.turnout_history:
        turnouts = [clamp(t) for t in governance.turnout_history]
        avg_turnout = math.fsum(turnouts) / len(turnouts)
        turnout = clamp(avg_turnout / config.turnout_full_pct * 100.0)
        score = weighted_average({"quorum": quorum, "turnout": turnout}, config.governance_weights)
    else:
        score = quorum

    if governance.is_onchain:
        score += config.onchain_bonus

    return round(clamp(score), SCORE_PRECISION)


def control_risk_score(
    ownership: float,
    liquidity: float,
    governance: float,
    config: ScoringConfig,
) -> float:
    """
    Composite control risk, 0 (fully decentralized) to 100 (fully controlled).

    Formula: sum(w_k * (100 - score_k)) / sum(w_k)

    Lowering any sub-score never lowers the result.
    """
    risks = {
        "ownership": 100.0 - clamp(ownership),
        "liquidity": 100.0 - clamp(liquidity),
        "governance": 100.0 - clamp(governance),
    }
    return round(clamp(weighted_average(risks, config.control_risk_weights)), SCORE_PRECISION)
