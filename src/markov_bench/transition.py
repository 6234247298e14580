"""
Cohort transition module for the three-state Markov model.

This module builds per-strategy transition-probability matrices and
propagates a cohort distribution over discrete cycles:

    trace[t] = trace[t - 1] @ P

where ``P[i, j]`` is the probability of moving from state ``i`` to state
``j`` in one cycle. Dead is absorbing, so its row is the identity row.
"""

from typing import Optional, Union

import numpy as np

from utils.logging import log_call

from .exceptions import ConfigurationError, ModelValidationError
from .states import N_STATES, STATES, Strategy

HEALTHY = 0
SICK = 1
DEAD = 2

ROW_SUM_TOLERANCE = 1e-9


@log_call
def initial_occupancy() -> np.ndarray:
    """Cycle-0 distribution: the whole cohort starts Healthy."""
    occupancy = np.zeros(N_STATES)
    occupancy[HEALTHY] = 1.0
    return occupancy


@log_call
def build_transition_matrix(
    p_healthy_sick: float,
    p_healthy_dead: float,
    p_sick_healthy: float,
    p_sick_dead: float,
    relative_risk: float,
    strategy: Strategy
) -> np.ndarray:
    """
    Build the transition matrix of one replicate under one strategy.

    Under New treatment the Healthy->Sick probability is multiplied by
    the relative risk; the Healthy stay probability absorbs the change.

    Parameters
    ----------
    p_healthy_sick, p_healthy_dead, p_sick_healthy, p_sick_dead : float
        Base transition probabilities per cycle
    relative_risk : float
        Treatment effect on Healthy->Sick
    strategy : Strategy
        Strategy the matrix is built for

    Returns
    -------
    matrix : np.ndarray
        Shape (3, 3), rows sum to 1

    Raises
    ------
    ModelValidationError
        If any entry leaves [0, 1], e.g. when the relative risk pushes the
        Healthy outflow above 1. The matrix is never renormalized.

    Examples
    --------
    >>> m = build_transition_matrix(0.2, 0.05, 0.3, 0.2, 1.0,
    ...                             Strategy.CURRENT_PRACTICE)
    >>> m[0]
    array([0.75, 0.2 , 0.05])
    """
    if strategy is Strategy.NEW_TREATMENT:
        p_healthy_sick = p_healthy_sick * relative_risk

    matrix = np.array([
        [1.0 - p_healthy_sick - p_healthy_dead, p_healthy_sick, p_healthy_dead],
        [p_sick_healthy, 1.0 - p_sick_healthy - p_sick_dead, p_sick_dead],
        [0.0, 0.0, 1.0],
    ])
    check_transition_matrix(matrix, strategy)
    return matrix


@log_call
def check_transition_matrix(
    matrix: np.ndarray,
    strategy: Optional[Union[Strategy, str]] = None,
    atol: float = ROW_SUM_TOLERANCE
) -> None:
    """
    Validate a transition matrix.

    Every entry must lie in [0, 1] and every row must sum to 1, both within
    ``atol``, and the Dead row must be the identity row.

    Raises
    ------
    ModelValidationError
        Describing the first violated condition; ``strategy`` is attached.
    """
    label = strategy.value if isinstance(strategy, Strategy) else strategy

    if matrix.shape != (N_STATES, N_STATES):
        raise ModelValidationError(
            f"Transition matrix must be {N_STATES}x{N_STATES}, "
            f"got {matrix.shape}", label
        )
    if not np.all(np.isfinite(matrix)):
        raise ModelValidationError(
            "Transition matrix has non-finite entries", label
        )

    outside = (matrix < -atol) | (matrix > 1.0 + atol)
    if outside.any():
        i, j = np.argwhere(outside)[0]
        raise ModelValidationError(
            f"Transition probability {_name(i)}->{_name(j)} = "
            f"{matrix[i, j]:.6g} outside [0, 1]", label
        )

    row_sums = matrix.sum(axis=1)
    off = np.abs(row_sums - 1.0) > atol
    if off.any():
        i = int(np.argmax(off))
        raise ModelValidationError(
            f"Transitions from {_name(i)} sum to {row_sums[i]:.12g}, not 1",
            label
        )

    if matrix[DEAD, DEAD] != 1.0:
        raise ModelValidationError(
            "Dead must be absorbing (self-transition 1)", label
        )


def _name(index: int) -> str:
    return STATES[int(index)].value


@log_call
def cohort_trace(
    matrix: np.ndarray,
    n_t: int,
    initial: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Propagate the cohort over ``n_t`` cycles.

    Parameters
    ----------
    matrix : np.ndarray
        Transition matrix, shape (3, 3)
    n_t : int
        Number of cycles
    initial : np.ndarray, optional
        Cycle-0 occupancy, defaults to everyone Healthy

    Returns
    -------
    trace : np.ndarray
        Shape (n_t + 1, 3); row ``t`` is the occupancy after ``t`` cycles
    """
    check_horizon(n_t)
    trace = np.empty((n_t + 1, N_STATES))
    trace[0] = initial_occupancy() if initial is None else initial
    for t in range(1, n_t + 1):
        trace[t] = trace[t - 1] @ matrix
    return trace


@log_call
def check_horizon(n_t: int) -> None:
    """Reject a negative or non-integer number of cycles."""
    if isinstance(n_t, bool) or not isinstance(n_t, (int, np.integer)):
        raise ConfigurationError(f"n_t must be an integer, got {n_t!r}")
    if n_t < 0:
        raise ConfigurationError(f"n_t must be non-negative, got {n_t}")
