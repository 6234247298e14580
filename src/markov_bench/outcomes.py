"""
Outcome aggregation for cohort traces.

Total cost and total QALYs of a strategy are trace-weighted sums over all
cycles 0..n_t, optionally discounted with a per-cycle factor
``1 / (1 + rate) ** t``.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from utils.logging import log_call

from .exceptions import ConfigurationError
from .states import Strategy
from .transition import check_horizon


@log_call
def discount_factors(n_t: int, rate: float = 0.0) -> np.ndarray:
    """
    Per-cycle discount factors for cycles 0..n_t.

    Parameters
    ----------
    n_t : int
        Number of cycles
    rate : float, default=0.0
        Discount rate per cycle; 0 leaves outcomes undiscounted

    Returns
    -------
    factors : np.ndarray
        Shape (n_t + 1,), ``factors[0] == 1``
    """
    check_horizon(n_t)
    if not np.isfinite(rate) or rate < 0:
        raise ConfigurationError(
            f"Discount rate must be a non-negative number, got {rate}"
        )
    if rate == 0:
        return np.ones(n_t + 1)
    return 1.0 / (1.0 + rate) ** np.arange(n_t + 1)


@log_call
def total_outcome(
    trace: np.ndarray,
    weights: np.ndarray,
    factors: Optional[np.ndarray] = None
) -> float:
    """
    Sum of ``trace[t] . weights`` over all cycles, discounted by ``factors``.

    Examples
    --------
    >>> trace = np.array([[1.0, 0.0, 0.0], [0.75, 0.2, 0.05]])
    >>> total_outcome(trace, np.array([0.8, 0.6, 0.0]))
    1.52
    """
    per_cycle = trace @ weights
    if factors is not None:
        per_cycle = per_cycle * factors
    return float(per_cycle.sum())


@log_call
def outcome_columns(strategies: Sequence[Strategy]) -> List[str]:
    """Result table columns: all costs first, then all QALYs."""
    return (
        [f"Cost_{s.value}" for s in strategies]
        + [f"QALY_{s.value}" for s in strategies]
    )


@log_call
def results_table(
    values: np.ndarray,
    index: pd.Index,
    strategies: Sequence[Strategy]
) -> pd.DataFrame:
    """
    Wrap a (n_sim, 2 * n_strategies) value array as the results table.

    Rows keep the replicate labels of the parameter table.
    """
    table = pd.DataFrame(
        values, index=index.copy(), columns=outcome_columns(strategies)
    )
    table.index.name = "replicate"
    return table
