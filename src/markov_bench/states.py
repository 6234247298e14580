"""Health states and treatment strategies of the cohort model."""

from enum import Enum
from typing import Iterable, Tuple, Union

from utils.logging import log_call

from .exceptions import ConfigurationError


class HealthState(Enum):
    """Model health states, in matrix order. Dead is absorbing."""

    HEALTHY = "Healthy"
    SICK = "Sick"
    DEAD = "Dead"


class Strategy(Enum):
    """Compared strategies; New treatment applies the relative risk."""

    CURRENT_PRACTICE = "Current_practice"
    NEW_TREATMENT = "New_treatment"


STATES: Tuple[HealthState, ...] = tuple(HealthState)
STATE_NAMES: Tuple[str, ...] = tuple(s.value for s in STATES)
N_STATES = len(STATES)

STRATEGIES: Tuple[Strategy, ...] = tuple(Strategy)


@log_call
def parse_strategies(
    strategies: Iterable[Union[Strategy, str]]
) -> Tuple[Strategy, ...]:
    """
    Normalize strategy names or members into a tuple of Strategy.

    Accepts enum members, their values ("New_treatment") or their names
    ("NEW_TREATMENT"). Order is preserved; duplicates are rejected since
    they would produce duplicate output columns.
    """
    parsed = []
    for item in strategies:
        if isinstance(item, Strategy):
            parsed.append(item)
            continue
        try:
            parsed.append(Strategy(item))
        except ValueError:
            try:
                parsed.append(Strategy[str(item).upper()])
            except KeyError:
                raise ConfigurationError(
                    f"Unknown strategy {item!r}; expected one of "
                    f"{[s.value for s in Strategy]}"
                ) from None

    if not parsed:
        raise ConfigurationError("At least one strategy is required")
    if len(set(parsed)) != len(parsed):
        raise ConfigurationError(f"Duplicate strategies in {parsed}")
    return tuple(parsed)
