"""Token Refresh Orchestration and Concentration Risk Benchmark.

Coordinates de-duplicated refreshes of per-token benchmark data and
computes holder concentration metrics (Gini, HHI, Nakamoto) and a
composite control-risk score from raw holder, liquidity and governance data.
"""

__version__ = "0.1.0"
