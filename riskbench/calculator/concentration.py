"""Holder concentration metrics.

All calculations use explicit formulas over a holder balance distribution:
- Gini = sum((2i - n - 1) * x_i) / (n * sum(x)), balances sorted ascending, i = 1..n
- HHI = sum((x_i / sum(x))^2) * 10000
- Nakamoto = fewest top holders whose cumulative balance exceeds 50% of sum(x)

These functions are pure: no I/O, and identical input always yields
identical output.
"""

import math
from typing import Iterable, Sequence

from ..core.exceptions import InvalidInputError

HHI_SCALE = 10_000.0

# Nakamoto value reported when no supply is held at all
NAKAMOTO_NO_SUPPLY = 0


def clamp(value: float, minimum: float = 0.0, maximum: float = 100.0) -> float:
    """Bound a value to [minimum, maximum]."""
    return max(minimum, min(maximum, value))


def validate_balances(balances: Iterable[float]) -> list[float]:
    """
    Check a balance distribution before any metric is computed.

    Args:
        balances: Holder balances

    Returns:
        Balances as a list of floats

    Raises:
        InvalidInputError: empty sequence, or any balance that is not a finite
            non-negative number
    """
    values: list[float] = []
    for index, raw in enumerate(balances):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise InvalidInputError(f"balances[{index}]", raw, "balance must be a number")
        value = float(raw)
        if not math.isfinite(value):
            raise InvalidInputError(f"balances[{index}]", raw, "balance must be finite")
        if value < 0:
            raise InvalidInputError(f"balances[{index}]", raw, "balance must be non-negative")
        values.append(value)

    if not values:
        raise InvalidInputError("balances", [], "at least one holder is required")
    return values


def calc_gini(balances: Sequence[float]) -> float:
    """
    Calculate the Gini coefficient of a balance distribution.

    Formula: G = sum((2i - n - 1) * x_i) / (n * sum(x)) over ascending x

    Zero balances count as holders. Equal balances (including a single
    holder or an all-zero distribution) give 0.

    Args:
        balances: Non-negative holder balances

    Returns:
        Gini coefficient in [0, 1]
    """
    values = sorted(validate_balances(balances))
    total = math.fsum(values)
    if total == 0:
        return 0.0

    n = len(values)
    weighted = math.fsum((2 * (i + 1) - n - 1) * x for i, x in enumerate(values))
    return clamp(weighted / (n * total), 0.0, 1.0)


def calc_hhi(balances: Sequence[float]) -> float:
    """
    Calculate the Herfindahl-Hirschman Index of a balance distribution.

    Formula: HHI = sum((x_i / sum(x))^2) * 10000

    Args:
        balances: Non-negative holder balances

    Returns:
        HHI in [0, 10000]; 0 when nothing is held
    """
    values = validate_balances(balances)
    total = math.fsum(values)
    if total == 0:
        return 0.0
    return clamp(math.fsum((x / total) ** 2 for x in values) * HHI_SCALE, 0.0, HHI_SCALE)


def calc_hhi_from_shares(shares_pct: Sequence[float]) -> float:
    """
    HHI from percentage shares that are already normalized (e.g. pool shares).

    Formula: HHI = sum(share_pct^2), which is 10000 for a single 100% share
    """
    return clamp(math.fsum(s * s for s in shares_pct), 0.0, HHI_SCALE)


def calc_nakamoto(balances: Sequence[float]) -> int:
    """
    Calculate the Nakamoto coefficient of a balance distribution.

    Holders are taken largest first until their cumulative balance strictly
    exceeds half of the total.

    Args:
        balances: Non-negative holder balances

    Returns:
        Holder count needed for a majority; NAKAMOTO_NO_SUPPLY (0) when the
        total is zero; the full holder count if no prefix crosses 50%
    """
    values = sorted(validate_balances(balances), reverse=True)
    total = math.fsum(values)
    if total == 0:
        return NAKAMOTO_NO_SUPPLY

    cumulative = 0.0
    for count, value in enumerate(values, start=1):
        cumulative += value
        if cumulative * 2 > total:
            return count

    # Only reachable through float rounding on pathological inputs
    return len(values)


def calc_top_share_pct(balances: Sequence[float], top_n: int) -> float:
    """
    Percentage of the total held by the ``top_n`` largest holders.

    Args:
        balances: Non-negative holder balances
        top_n: Number of holders to include (must be positive)

    Returns:
        Share in [0, 100]; 0 when nothing is held
    """
    if top_n < 1:
        raise InvalidInputError("top_n", top_n, "must be positive")
    values = sorted(validate_balances(balances), reverse=True)
    total = math.fsum(values)
    if total == 0:
        return 0.0
    return clamp(math.fsum(values[:top_n]) / total * 100.0)
