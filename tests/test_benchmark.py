"""Tests for sub-scores and the benchmark calculator."""

from datetime import datetime, timezone

import pytest

from riskbench.calculator.benchmark import BenchmarkCalculator, compute_benchmark
from riskbench.calculator.scores import (
    control_risk_score,
    governance_score,
    liquidity_score,
    ownership_score,
    threshold_score,
    weighted_average,
)
from riskbench.core.config import ScoringConfig
from riskbench.core.exceptions import InvalidInputError
from riskbench.core.models import GovernanceInputs, HolderBalance, LiquidityInputs, PoolShare

COMPUTED_AT = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def config() -> ScoringConfig:
    return ScoringConfig()


class TestScoreHelpers:
    """Tests for threshold tables and weighting."""

    def test_threshold_score(self, config):
        assert threshold_score(12, config.nakamoto_thresholds) == 100.0
        assert threshold_score(3, config.nakamoto_thresholds) == 50.0
        assert threshold_score(1, config.nakamoto_thresholds) == 15.0
        assert threshold_score(0, config.nakamoto_thresholds) == 0.0

    def test_weighted_average_unnormalized_weights(self):
        assert weighted_average({"a": 100, "b": 0}, {"a": 3, "b": 1}) == pytest.approx(75.0)


class TestOwnershipScore:
    """Tests for the ownership sub-score."""

    def test_whale_distribution(self, config):
        """gini 0.75 -> 25, hhi 10000 -> 0, nakamoto 1 -> 15, top10 100% -> 0."""
        score = ownership_score(0.75, 10000, 1, 100.0, config)
        assert score == pytest.approx(0.30 * 25 + 0.25 * 15)

    def test_no_supply_uses_default(self, config):
        assert ownership_score(0.0, 0.0, 0, 0.0, config) == config.missing_ownership_score


class TestLiquidityScore:
    """Tests for the liquidity sub-score."""

    def test_two_pools(self, config, sample_liquidity):
        """max pool 30, dex share 90, pool hhi 42, depth $2M -> 80."""
        expected = 0.35 * 30 + 0.25 * 90 + 0.20 * 42 + 0.20 * 80
        assert liquidity_score(sample_liquidity, config) == pytest.approx(expected, abs=0.01)

    def test_missing(self, config):
        assert liquidity_score(None, config) == config.missing_liquidity_score
        assert liquidity_score(LiquidityInputs(), config) == config.missing_liquidity_score

    def test_single_pool_scores_lower(self, config, sample_liquidity):
        single = LiquidityInputs(
            pools=[PoolShare(dex="uniswap_v3", tvl_usd=2_000_000, share_pct=100.0)],
            cex_share_pct=20.0,
        )
        assert liquidity_score(single, config) < liquidity_score(sample_liquidity, config)


class TestGovernanceScore:
    """Tests for the governance sub-score."""

    def test_onchain_with_turnout(self, config, sample_governance):
        """quorum 4/10 -> 40, turnout avg 10/50 -> 20, blended 32, +5 on-chain."""
        assert governance_score(sample_governance, config) == pytest.approx(37.0)

    def test_offchain_quorum_only(self, config):
        gov = GovernanceInputs(framework="snapshot", quorum_pct=20.0)
        assert governance_score(gov, config) == pytest.approx(100.0)

    def test_missing(self, config):
        assert governance_score(None, config) == config.missing_governance_score
        assert governance_score(GovernanceInputs(), config) == config.missing_governance_score


class TestControlRisk:
    """Tests for the control-risk composite."""

    def test_extremes(self, config):
        assert control_risk_score(100, 100, 100, config) == 0.0
        assert control_risk_score(0, 0, 0, config) == 100.0

    def test_weighted(self, config):
        """Ownership carries half the weight."""
        assert control_risk_score(0, 100, 100, config) == pytest.approx(50.0)

    @pytest.mark.parametrize("dimension", ["ownership", "liquidity", "governance"])
    def test_monotonic_in_each_sub_score(self, config, dimension):
        """A lower sub-score never lowers control risk."""
        previous = None
        for value in range(100, -1, -5):
            scores = {"ownership": 60.0, "liquidity": 60.0, "governance": 60.0}
            scores[dimension] = float(value)
            risk = control_risk_score(config=config, **scores)
            if previous is not None:
                assert risk >= previous
            previous = risk


class TestBenchmarkCalculator:
    """Tests for the full benchmark computation."""

    def test_whale_example(self):
        snapshot = compute_benchmark([100, 0, 0, 0], None, None, COMPUTED_AT)

        assert snapshot.gini == pytest.approx(0.75)
        assert snapshot.hhi == pytest.approx(10000)
        assert snapshot.nakamoto == 1
        assert snapshot.holder_count == 4
        assert snapshot.top1_pct == pytest.approx(100.0)
        assert snapshot.computed_at == COMPUTED_AT
        assert snapshot.calc_version == ScoringConfig().calc_version

    def test_equal_example(self):
        snapshot = compute_benchmark([25, 25, 25, 25], None, None, COMPUTED_AT)

        assert snapshot.gini == pytest.approx(0.0)
        assert snapshot.hhi == pytest.approx(2500)
        assert snapshot.nakamoto == 3

    def test_deterministic(self, sample_holders, sample_liquidity, sample_governance):
        calculator = BenchmarkCalculator()
        first = calculator.compute_benchmark(
            sample_holders, sample_liquidity, sample_governance, COMPUTED_AT
        )
        second = calculator.compute_benchmark(
            sample_holders, sample_liquidity, sample_governance, COMPUTED_AT
        )
        assert first == second

    def test_accepts_holder_models_and_numbers(self, sample_holders):
        numbers = [h.balance for h in sample_holders]
        from_models = compute_benchmark(sample_holders, None, None, COMPUTED_AT)
        from_numbers = compute_benchmark(numbers, None, None, COMPUTED_AT)
        assert from_models == from_numbers

    def test_missing_inputs_use_defaults(self):
        config = ScoringConfig()
        snapshot = compute_benchmark([10, 20, 30], None, None, COMPUTED_AT)
        assert snapshot.liquidity == config.missing_liquidity_score
        assert snapshot.governance == config.missing_governance_score

    def test_zero_supply(self):
        snapshot = compute_benchmark([0, 0], None, None, COMPUTED_AT)
        assert snapshot.nakamoto == 0
        assert snapshot.gini == 0.0
        assert snapshot.hhi == 0.0
        assert snapshot.ownership == ScoringConfig().missing_ownership_score

    def test_more_concentrated_is_riskier(self):
        spread = compute_benchmark([10] * 20, None, None, COMPUTED_AT)
        whale = compute_benchmark([1000] + [1] * 19, None, None, COMPUTED_AT)
        assert whale.ownership < spread.ownership
        assert whale.control_risk > spread.control_risk

    def test_invalid_balances_propagate(self):
        with pytest.raises(InvalidInputError):
            compute_benchmark([], None, None, COMPUTED_AT)
        with pytest.raises(InvalidInputError):
            compute_benchmark([HolderBalance(holder_id="0xabc", balance=-5)], None, None, COMPUTED_AT)

    def test_custom_config(self):
        """Raising the ownership weight to 1 and zeroing others makes risk = 100 - ownership."""
        config = ScoringConfig(
            control_risk_weights={"ownership": 1.0, "liquidity": 0.0, "governance": 0.0}
        )
        snapshot = compute_benchmark([25, 25, 25, 25], None, None, COMPUTED_AT, config=config)
        assert snapshot.control_risk == pytest.approx(100 - snapshot.ownership, abs=0.01)
