from dataclasses import dataclass, field
from typing import Dict, List, Optional

from omegaconf import MISSING


@dataclass
class ModelConfig:
    n_t: int = MISSING
    n_sim: int = MISSING
    strategies: List[str] = field(
        default_factory=lambda: ["Current_practice", "New_treatment"]
    )
    discount_rate_costs: float = 0.0
    discount_rate_qalys: float = 0.0


@dataclass
class WeightsConfig:
    time: float = 0.3
    memory: float = 0.3
    readability: float = 0.4


@dataclass
class BenchmarkConfig:
    iterations: int = MISSING
    variants: List[str] = MISSING
    backend: str = "process"
    max_workers: Optional[int] = None
    measure_memory: bool = True
    weights: WeightsConfig = field(default_factory=WeightsConfig)
    readability: Dict[str, List[float]] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: str = "benchmark.log"


@dataclass
class OutputConfig:
    output_dir: str = "outputs/benchmark"
    save_plots: bool = True
