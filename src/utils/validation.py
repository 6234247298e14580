import logging

from omegaconf import DictConfig, OmegaConf

from markov_bench.benchmark import readability_means, validate_weights
from markov_bench.engine import VARIANTS, ParallelScheduler
from markov_bench.exceptions import ConfigurationError
from markov_bench.sampling import distributions_from_config
from markov_bench.states import parse_strategies
from utils.logging import log_call


@log_call
def validate_config(cfg: DictConfig) -> None:
    """Range checks for benchmark configs."""

    model = cfg.model
    if model.n_sim <= 0:
        raise ConfigurationError("n_sim must be positive")
    if model.n_t < 0:
        raise ConfigurationError("n_t must be non-negative")
    if model.discount_rate_costs < 0 or model.discount_rate_qalys < 0:
        raise ConfigurationError("discount rates must be non-negative")
    parse_strategies(model.strategies)

    bench = cfg.benchmark
    if bench.iterations <= 0:
        raise ConfigurationError("iterations must be positive")
    unknown = [v for v in bench.variants if v not in VARIANTS]
    if unknown or not bench.variants:
        raise ConfigurationError(
            f"unknown or empty variants {unknown}; expected names from "
            f"{sorted(VARIANTS)}"
        )
    if bench.backend not in ParallelScheduler.BACKENDS:
        raise ConfigurationError(f"unknown backend {bench.backend!r}")
    if bench.max_workers is not None and bench.max_workers <= 0:
        raise ConfigurationError("max_workers must be positive")
    validate_weights(OmegaConf.to_container(bench.weights))
    readability_means(OmegaConf.to_container(bench.readability))

    if not isinstance(logging.getLevelName(cfg.logging.level.upper()), int):
        raise ConfigurationError(f"unknown log level {cfg.logging.level!r}")

    distributions_from_config(cfg.sampling.parameters)
