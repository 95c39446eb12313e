"""Benchmark calculator - the metric engine entry point.

Turns raw holder balances, liquidity and governance inputs into a
``BenchmarkSnapshot``. Input validation errors propagate to the caller
unchanged; nothing is computed from a partially valid input.
"""

import logging
from datetime import datetime
from typing import Sequence, Union

from ..core.config import ScoringConfig
from ..core.models import BenchmarkSnapshot, GovernanceInputs, HolderBalance, LiquidityInputs
from .concentration import (
    calc_gini,
    calc_hhi,
    calc_nakamoto,
    calc_top_share_pct,
    validate_balances,
)
from .scores import control_risk_score, governance_score, liquidity_score, ownership_score

logger = logging.getLogger(__name__)

BalanceInput = Union[float, int, HolderBalance]

METRIC_PRECISION = 6


def _balances(holder_balances: Sequence[BalanceInput]) -> list[float]:
    raw = [h.balance if isinstance(h, HolderBalance) else h for h in holder_balances]
    return validate_balances(raw)


class BenchmarkCalculator:
    """Calculates concentration metrics and risk scores."""

    def __init__(self, config: ScoringConfig | None = None):
        """
        Initialize the calculator.

        Args:
            config: Threshold tables and weights. Defaults to ScoringConfig().
        """
        self.config = config or ScoringConfig()

    def compute_benchmark(
        self,
        holder_balances: Sequence[BalanceInput],
        liquidity_inputs: LiquidityInputs | None,
        governance_inputs: GovernanceInputs | None,
        computed_at: datetime,
    ) -> BenchmarkSnapshot:
        """
        Compute a benchmark snapshot.

        Args:
            holder_balances: Non-negative balances (numbers or HolderBalance)
            liquidity_inputs: Pool distribution, or None if unavailable
            governance_inputs: Governance data, or None if unavailable
            computed_at: Timestamp stamped on the snapshot

        Returns:
            BenchmarkSnapshot with metrics and scores

        Raises:
            InvalidInputError: empty, negative or non-finite balances
        """
        balances = _balances(holder_balances)

        gini = round(calc_gini(balances), METRIC_PRECISION)
        hhi = round(calc_hhi(balances), METRIC_PRECISION)
        nakamoto = calc_nakamoto(balances)
        top1 = round(calc_top_share_pct(balances, 1), METRIC_PRECISION)
        top3 = round(calc_top_share_pct(balances, 3), METRIC_PRECISION)
        top10 = round(calc_top_share_pct(balances, 10), METRIC_PRECISION)

        ownership = ownership_score(gini, hhi, nakamoto, top10, self.config)
        liquidity = liquidity_score(liquidity_inputs, self.config)
        governance = governance_score(governance_inputs, self.config)
        control_risk = control_risk_score(ownership, liquidity, governance, self.config)

        logger.debug(
            f"Benchmark: gini={gini} hhi={hhi} nakamoto={nakamoto} "
            f"ownership={ownership} liquidity={liquidity} governance={governance} "
            f"control_risk={control_risk}"
        )

        return BenchmarkSnapshot(
            gini=gini,
            hhi=hhi,
            nakamoto=nakamoto,
            liquidity=liquidity,
            governance=governance,
            ownership=ownership,
            control_risk=control_risk,
            holder_count=len(balances),
            top1_pct=top1,
            top3_pct=top3,
            top10_pct=top10,
            computed_at=computed_at,
            calc_version=self.config.calc_version,
        )


def compute_benchmark(
    holder_balances: Sequence[BalanceInput],
    liquidity_inputs: LiquidityInputs | None,
    governance_inputs: GovernanceInputs | None,
    computed_at: datetime,
    config: ScoringConfig | None = None,
) -> BenchmarkSnapshot:
    """Compute a benchmark snapshot with the given (or default) scoring config."""
    return BenchmarkCalculator(config).compute_benchmark(
        holder_balances, liquidity_inputs, governance_inputs, computed_at
    )
