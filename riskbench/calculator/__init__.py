"""Metric engine: concentration metrics and risk scoring."""

from .benchmark import BenchmarkCalculator, compute_benchmark
from .concentration import calc_gini, calc_hhi, calc_nakamoto, calc_top_share_pct

__all__ = [
    "BenchmarkCalculator",
    "compute_benchmark",
    "calc_gini",
    "calc_hhi",
    "calc_nakamoto",
    "calc_top_share_pct",
]
