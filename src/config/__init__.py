from pathlib import Path
from typing import List, Optional

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from markov_bench.exceptions import ConfigurationError
from utils.logging import log_call
from utils.validation import validate_config

from .schemas import BenchmarkConfig, LoggingConfig, ModelConfig, OutputConfig

CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"

SCHEMAS = {
    "model": ModelConfig,
    "benchmark": BenchmarkConfig,
    "logging": LoggingConfig,
    "output": OutputConfig,
}


@log_call
def check_schemas(cfg: DictConfig) -> None:
    """Type-check each config group against its structured schema."""

    for key, schema in SCHEMAS.items():
        try:
            OmegaConf.merge(OmegaConf.structured(schema), cfg[key])
        except OmegaConfBaseException as exc:
            raise ConfigurationError(f"invalid {key} config: {exc}") from exc


@log_call
def load_config(overrides: Optional[List[str]] = None) -> DictConfig:
    """Compose the benchmark configuration with Hydra and validate it."""

    overrides = overrides or []
    with initialize_config_dir(
        CONFIG_DIR.resolve().as_posix(), version_base=None
    ):
        cfg = compose(config_name="config", overrides=overrides)
    check_schemas(cfg)
    validate_config(cfg)
    return cfg
