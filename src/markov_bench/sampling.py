"""
Parameter sampling module for the probabilistic cohort model.

This module draws the per-replicate model inputs (transition probabilities,
relative risk, utilities and costs) from their distributions for a
probabilistic (Monte Carlo) analysis. All draws of a run come from one
``numpy.random.Generator`` seeded once, so the same seed reproduces the
same parameter table bit for bit.
"""

from dataclasses import asdict, dataclass, field
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats  # type: ignore

from utils.logging import log_call

from .exceptions import ConfigurationError, ModelValidationError

logger = logging.getLogger(__name__)

PROBABILITY_COLUMNS = (
    "p_healthy_sick",
    "p_healthy_dead",
    "p_sick_healthy",
    "p_sick_dead",
)
RELATIVE_RISK_COLUMN = "rr_healthy_sick"
UTILITY_COLUMNS = ("u_healthy", "u_sick", "u_dead")
COST_COLUMNS = ("c_healthy", "c_sick", "c_dead")

# Column order is also the draw order of the shared random stream
PARAMETER_COLUMNS = (
    PROBABILITY_COLUMNS
    + (RELATIVE_RISK_COLUMN,)
    + UTILITY_COLUMNS
    + COST_COLUMNS
)

DEAD_COLUMNS = ("u_dead", "c_dead")

DISTRIBUTION_PARAMETERS: Dict[str, tuple] = {
    "beta": ("shape1", "shape2"),
    "lognormal": ("meanlog", "sdlog"),
    "gamma": ("shape", "scale"),
    "fixed": ("value",),
}


@dataclass(frozen=True)
class DistributionSpec:
    """
    Distribution of a single model parameter.

    Parameters
    ----------
    distribution : str
        One of 'beta', 'lognormal', 'gamma' or 'fixed'
    params : dict
        Shape parameters. beta: shape1, shape2; lognormal: meanlog, sdlog
        (on the log scale); gamma: shape, scale; fixed: value.

    Raises
    ------
    ConfigurationError
        If the distribution is unknown or its parameters are invalid.
    """

    distribution: str
    params: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.distribution not in DISTRIBUTION_PARAMETERS:
            raise ConfigurationError(
                f"Unknown distribution {self.distribution!r}; expected one "
                f"of {sorted(DISTRIBUTION_PARAMETERS)}"
            )
        expected = set(DISTRIBUTION_PARAMETERS[self.distribution])
        given = set(self.params)
        if given != expected:
            raise ConfigurationError(
                f"{self.distribution} distribution takes parameters "
                f"{sorted(expected)}, got {sorted(given)}"
            )
        values = {}
        for name, value in self.params.items():
            try:
                values[name] = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"Parameter {name}={value!r} is not numeric"
                ) from None
            if not np.isfinite(values[name]):
                raise ConfigurationError(
                    f"Parameter {name}={value!r} must be finite"
                )
        object.__setattr__(self, "params", values)

        positive = {
            "beta": ("shape1", "shape2"),
            "lognormal": ("sdlog",),
            "gamma": ("shape", "scale"),
            "fixed": (),
        }[self.distribution]
        for name in positive:
            if values[name] <= 0:
                raise ConfigurationError(
                    f"{self.distribution} parameter {name} must be "
                    f"positive, got {values[name]}"
                )

    def _frozen(self) -> Any:
        p = self.params
        if self.distribution == "beta":
            return stats.beta(a=p["shape1"], b=p["shape2"])
        if self.distribution == "lognormal":
            return stats.lognorm(s=p["sdlog"], scale=np.exp(p["meanlog"]))
        return stats.gamma(a=p["shape"], scale=p["scale"])

    @log_call
    def support(self) -> tuple:
        """Return the (lower, upper) bounds of the distribution."""
        if self.distribution == "fixed":
            return (self.params["value"], self.params["value"])
        if self.distribution == "beta":
            return (0.0, 1.0)
        return (0.0, np.inf)

    @log_call
    def draw(self, size: int, rng: np.random.Generator) -> np.ndarray:
        """Draw ``size`` values from the shared generator."""
        if self.distribution == "fixed":
            return np.full(size, self.params["value"], dtype=float)
        return np.asarray(
            self._frozen().rvs(size=size, random_state=rng), dtype=float
        )


@dataclass(frozen=True)
class ParameterSet:
    """Model inputs of one simulation replicate."""

    p_healthy_sick: float
    p_healthy_dead: float
    p_sick_healthy: float
    p_sick_dead: float
    rr_healthy_sick: float
    u_healthy: float
    u_sick: float
    u_dead: float
    c_healthy: float
    c_sick: float
    c_dead: float

    @classmethod
    @log_call
    def from_mapping(cls, values: Mapping[str, Any]) -> "ParameterSet":
        """Build a ParameterSet from a mapping or a pandas row."""
        missing = [c for c in PARAMETER_COLUMNS if c not in values]
        if missing:
            raise ModelValidationError(f"Missing parameters: {missing}")
        return cls(**{c: float(values[c]) for c in PARAMETER_COLUMNS})

    @log_call
    def as_array(self) -> np.ndarray:
        """Values in PARAMETER_COLUMNS order."""
        return np.array([getattr(self, c) for c in PARAMETER_COLUMNS])


@log_call
def default_distributions() -> Dict[str, DistributionSpec]:
    """
    Reference input distributions of the cohort model.

    Returns
    -------
    distributions : dict
        Mapping from parameter name to DistributionSpec, in column order
    """
    return {
        "p_healthy_sick": DistributionSpec("beta", {"shape1": 10, "shape2": 20}),
        "p_healthy_dead": DistributionSpec("beta", {"shape1": 1, "shape2": 20}),
        "p_sick_healthy": DistributionSpec("beta", {"shape1": 5, "shape2": 20}),
        "p_sick_dead": DistributionSpec("beta", {"shape1": 10, "shape2": 20}),
        "rr_healthy_sick": DistributionSpec(
            "lognormal", {"meanlog": float(np.log(0.8)), "sdlog": 0.2}
        ),
        "u_healthy": DistributionSpec("beta", {"shape1": 75, "shape2": 100}),
        "u_sick": DistributionSpec("beta", {"shape1": 60, "shape2": 100}),
        "u_dead": DistributionSpec("fixed", {"value": 0.0}),
        "c_healthy": DistributionSpec("gamma", {"shape": 75, "scale": 100}),
        "c_sick": DistributionSpec("gamma", {"shape": 100, "scale": 100}),
        "c_dead": DistributionSpec("fixed", {"value": 0.0}),
    }


@log_call
def distributions_from_config(
    config: Mapping[str, Union[DistributionSpec, Mapping[str, Any]]]
) -> Dict[str, DistributionSpec]:
    """
    Build distribution specs from a configuration mapping.

    Each entry maps a parameter name to ``{"distribution": <name>,
    <shape parameters>...}``, e.g. ``{"distribution": "beta", "shape1": 10,
    "shape2": 20}``, or to a ready DistributionSpec. Works with plain dicts
    and omegaconf DictConfig.

    Raises
    ------
    ConfigurationError
        On unknown or missing parameters and invalid distributions.
    """
    specs = {}
    for name, entry in config.items():
        if isinstance(entry, DistributionSpec):
            specs[str(name)] = entry
            continue
        if not isinstance(entry, Mapping):
            raise ConfigurationError(
                f"Parameter {name!r} must map to a distribution, got "
                f"{type(entry).__name__}"
            )
        entry = dict(entry)
        if "distribution" not in entry:
            raise ConfigurationError(
                f"Parameter {name!r} has no 'distribution' key"
            )
        kind = entry.pop("distribution")
        specs[str(name)] = DistributionSpec(str(kind), entry)
    check_distributions(specs)
    return specs


@log_call
def check_distributions(specs: Mapping[str, DistributionSpec]) -> None:
    """
    Check that specs cover exactly the model parameters.

    Probabilities and utilities must stay within [0, 1], so they take a
    beta or a fixed value in [0, 1]. Dead utility and cost are fixed at 0.
    """
    missing = [c for c in PARAMETER_COLUMNS if c not in specs]
    extra = [c for c in specs if c not in PARAMETER_COLUMNS]
    if missing or extra:
        raise ConfigurationError(
            f"Distribution config mismatch: missing={missing}, extra={extra}"
        )

    for name in PROBABILITY_COLUMNS + UTILITY_COLUMNS:
        low, high = specs[name].support()
        if low < 0.0 or high > 1.0:
            raise ConfigurationError(
                f"{name} must be bounded in [0, 1], got "
                f"{specs[name].distribution} with support ({low}, {high})"
            )

    for name in DEAD_COLUMNS:
        spec = specs[name]
        if spec.distribution != "fixed" or spec.params["value"] != 0.0:
            raise ConfigurationError(f"{name} must be fixed at 0")


@log_call
def sample_parameters(
    n_sim: int,
    seed: Optional[int] = None,
    distributions: Optional[
        Mapping[str, Union[DistributionSpec, Mapping[str, Any]]]
    ] = None
) -> pd.DataFrame:
    """
    Draw ``n_sim`` parameter sets for a probabilistic analysis.

    Parameters
    ----------
    n_sim : int
        Number of Monte Carlo replicates
    seed : int, optional
        Seed of the single random stream used for all draws
    distributions : mapping, optional
        Parameter distributions, as DistributionSpec objects or config
        entries. Defaults to ``default_distributions()``.

    Returns
    -------
    params : pd.DataFrame
        One row per replicate, columns PARAMETER_COLUMNS, index 1..n_sim

    Examples
    --------
    >>> params = sample_parameters(5, seed=12345)
    >>> params.shape
    (5, 11)
    """
    if isinstance(n_sim, bool) or not isinstance(n_sim, (int, np.integer)):
        raise ConfigurationError(f"n_sim must be an integer, got {n_sim!r}")
    if n_sim < 1:
        raise ConfigurationError(f"n_sim must be positive, got {n_sim}")
    n_sim = int(n_sim)

    if distributions is None:
        specs = default_distributions()
    else:
        specs = distributions_from_config(distributions)

    rng = np.random.default_rng(seed)
    columns = {name: specs[name].draw(n_sim, rng) for name in PARAMETER_COLUMNS}

    params = pd.DataFrame(
        columns, index=pd.RangeIndex(1, n_sim + 1, name="replicate")
    )
    logger.info("Sampled %d parameter sets (seed=%s)", n_sim, seed)
    return params


@log_call
def parameter_frame(
    params: Union[pd.DataFrame, Sequence[Union[ParameterSet, Mapping]]]
) -> pd.DataFrame:
    """
    Normalize parameter input into the canonical parameter table.

    A DataFrame keeps its index (replicate labels) and is reduced to
    PARAMETER_COLUMNS as floats. A sequence of ParameterSet objects or
    mappings is labelled 1..n. The input is never modified.
    """
    if isinstance(params, pd.DataFrame):
        missing = [c for c in PARAMETER_COLUMNS if c not in params.columns]
        if missing:
            raise ModelValidationError(f"Missing parameter columns: {missing}")
        frame = params.loc[:, list(PARAMETER_COLUMNS)].astype(float)
    else:
        rows = [
            p if isinstance(p, ParameterSet) else ParameterSet.from_mapping(p)
            for p in params
        ]
        frame = pd.DataFrame(
            [asdict(p) for p in rows],
            columns=list(PARAMETER_COLUMNS),
            index=pd.RangeIndex(1, len(rows) + 1, name="replicate"),
            dtype=float,
        )

    if frame.empty:
        raise ConfigurationError("At least one parameter set is required")
    if frame.index.has_duplicates:
        raise ModelValidationError("Replicate labels must be unique")
    return frame


@log_call
def parameter_sets(frame: pd.DataFrame) -> Iterable[ParameterSet]:
    """Convert a parameter table into a list of ParameterSet objects."""
    return [ParameterSet.from_mapping(row) for _, row in frame.iterrows()]


@log_call
def validate_parameters(frame: pd.DataFrame) -> None:
    """
    Check parameter-set invariants.

    Probabilities and utilities lie in [0, 1], the relative risk is
    non-negative, all values are finite and Dead utility and cost are 0.
    Row sums of the transition matrices are checked when the matrices are
    built.

    Raises
    ------
    ModelValidationError
        Naming the offending column and replicate labels.
    """
    values = frame.loc[:, list(PARAMETER_COLUMNS)]

    def _fail(column: str, mask: pd.Series, rule: str) -> None:
        labels = list(values.index[mask.to_numpy()])
        raise ModelValidationError(
            f"{column} {rule} (replicates {labels[:10]})"
        )

    non_finite = ~np.isfinite(values.to_numpy(dtype=float))
    if non_finite.any():
        column = values.columns[non_finite.any(axis=0)][0]
        _fail(column, ~np.isfinite(values[column]), "must be finite")

    for column in PROBABILITY_COLUMNS + UTILITY_COLUMNS:
        bad = (values[column] < 0.0) | (values[column] > 1.0)
        if bad.any():
            _fail(column, bad, "must lie in [0, 1]")

    bad = values[RELATIVE_RISK_COLUMN] < 0.0
    if bad.any():
        _fail(RELATIVE_RISK_COLUMN, bad, "must be non-negative")

    for column in DEAD_COLUMNS:
        bad = values[column] != 0.0
        if bad.any():
            _fail(column, bad, "must be 0")
