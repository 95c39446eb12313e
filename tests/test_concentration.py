"""Tests for holder concentration metrics."""

import math

import pytest

from riskbench.calculator.concentration import (
    NAKAMOTO_NO_SUPPLY,
    calc_gini,
    calc_hhi,
    calc_hhi_from_shares,
    calc_nakamoto,
    calc_top_share_pct,
    validate_balances,
)
from riskbench.core.exceptions import InvalidInputError
from riskbench.core.types import FailureReason


class TestGini:
    """Tests for the Gini coefficient."""

    def test_single_whale(self):
        """One holder owning everything among four gives 0.75."""
        assert calc_gini([100, 0, 0, 0]) == pytest.approx(0.75)

    def test_equal_balances(self):
        """Equal distribution gives 0."""
        assert calc_gini([25, 25, 25, 25]) == pytest.approx(0.0)

    def test_single_holder(self):
        """A single holder is perfectly equal with itself."""
        assert calc_gini([42.0]) == 0.0

    def test_order_independent(self):
        """Input order does not matter."""
        assert calc_gini([1, 2, 3, 10]) == pytest.approx(calc_gini([10, 3, 1, 2]))

    def test_known_value(self):
        """[1, 2, 3, 4]: sum((2i-5)x_i) = -3-2+3+12 = 10, / (4*10) = 0.25."""
        assert calc_gini([1, 2, 3, 4]) == pytest.approx(0.25)

    def test_bounds(self):
        """Result always lies within [0, 1]."""
        for balances in ([1], [0, 1], [1, 1, 1, 1000], [0.001, 5e9, 3, 7]):
            assert 0.0 <= calc_gini(balances) <= 1.0

    def test_all_zero(self):
        """No supply held gives 0."""
        assert calc_gini([0, 0, 0]) == 0.0


class TestHHI:
    """Tests for the Herfindahl-Hirschman Index."""

    def test_monopoly(self):
        assert calc_hhi([100, 0, 0, 0]) == pytest.approx(10000)

    def test_equal_four(self):
        assert calc_hhi([25, 25, 25, 25]) == pytest.approx(2500)

    def test_scale_invariant(self):
        """Multiplying every balance by a constant leaves HHI unchanged."""
        assert calc_hhi([1, 2, 3]) == pytest.approx(calc_hhi([1000, 2000, 3000]))

    def test_all_zero(self):
        assert calc_hhi([0, 0]) == 0.0

    def test_from_shares(self):
        """Pool shares in percent: 70/30 -> 4900 + 900."""
        assert calc_hhi_from_shares([70, 30]) == pytest.approx(5800)
        assert calc_hhi_from_shares([100]) == pytest.approx(10000)


class TestNakamoto:
    """Tests for the Nakamoto coefficient."""

    def test_single_whale(self):
        assert calc_nakamoto([100, 0, 0, 0]) == 1

    def test_equal_four_needs_three(self):
        """Two of four equal holders reach exactly 50%, which is not a majority."""
        assert calc_nakamoto([25, 25, 25, 25]) == 3

    def test_strict_majority(self):
        """51% holder alone is enough."""
        assert calc_nakamoto([51, 49]) == 1

    def test_exactly_half_is_not_enough(self):
        assert calc_nakamoto([50, 30, 20]) == 2

    def test_unsorted_input(self):
        assert calc_nakamoto([5, 10, 60, 25]) == 1

    def test_zero_total_sentinel(self):
        """No supply held reports the sentinel."""
        assert calc_nakamoto([0, 0, 0]) == NAKAMOTO_NO_SUPPLY == 0

    def test_bounded_by_holder_count(self):
        for balances in ([1], [1, 1], [3, 3, 3, 3, 3], [1, 2, 3, 4, 5, 6]):
            assert 1 <= calc_nakamoto(balances) <= len(balances)


class TestTopShare:
    """Tests for top-N holder share."""

    def test_top_holders(self):
        balances = [50, 30, 10, 5, 5]
        assert calc_top_share_pct(balances, 1) == pytest.approx(50.0)
        assert calc_top_share_pct(balances, 3) == pytest.approx(90.0)
        assert calc_top_share_pct(balances, 10) == pytest.approx(100.0)

    def test_invalid_top_n(self):
        with pytest.raises(InvalidInputError):
            calc_top_share_pct([1, 2], 0)


class TestValidation:
    """Tests for balance validation."""

    def test_empty_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_balances([])
        assert exc_info.value.reason == FailureReason.INVALID_INPUT

    def test_negative_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            calc_gini([10, -1, 5])
        assert exc_info.value.field == "balances[1]"

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            calc_hhi([1.0, bad])

    @pytest.mark.parametrize("bad", ["10", None, True])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(InvalidInputError):
            calc_nakamoto([1.0, bad])

    def test_ints_accepted(self):
        assert validate_balances([1, 2, 3]) == [1.0, 2.0, 3.0]
