"""Markov cohort model benchmarking package."""

from typing import List

from .exceptions import (
    MarkovBenchError,
    ConfigurationError,
    ModelValidationError,
    ReplicateError,
    VariantMismatchError
)
from .states import (
    HealthState,
    Strategy,
    STATES,
    STATE_NAMES,
    STRATEGIES,
    parse_strategies
)
from .sampling import (
    PARAMETER_COLUMNS,
    DistributionSpec,
    ParameterSet,
    default_distributions,
    distributions_from_config,
    sample_parameters,
    parameter_frame,
    parameter_sets,
    validate_parameters
)
from .transition import (
    initial_occupancy,
    build_transition_matrix,
    check_transition_matrix,
    cohort_trace
)
from .outcomes import (
    discount_factors,
    total_outcome,
    outcome_columns,
    results_table
)
from .engine import (
    KERNELS,
    SCHEDULERS,
    VARIANTS,
    ParallelScheduler,
    make_kernel,
    make_scheduler,
    make_variant,
    run,
    run_variant,
    variant_names
)
from .benchmark import (
    BenchmarkReport,
    benchmark_variants,
    check_variant_agreement,
    measure_peak_memory,
    overall_scores,
    readability_means,
    time_variant,
    validate_weights
)

__all__: List[str] = [
    # Errors
    "MarkovBenchError",
    "ConfigurationError",
    "ModelValidationError",
    "ReplicateError",
    "VariantMismatchError",
    # States and strategies
    "HealthState",
    "Strategy",
    "STATES",
    "STATE_NAMES",
    "STRATEGIES",
    "parse_strategies",
    # Parameter sampling
    "PARAMETER_COLUMNS",
    "DistributionSpec",
    "ParameterSet",
    "default_distributions",
    "distributions_from_config",
    "sample_parameters",
    "parameter_frame",
    "parameter_sets",
    "validate_parameters",
    # Cohort transitions
    "initial_occupancy",
    "build_transition_matrix",
    "check_transition_matrix",
    "cohort_trace",
    # Outcome aggregation
    "discount_factors",
    "total_outcome",
    "outcome_columns",
    "results_table",
    # Engine and variants
    "KERNELS",
    "SCHEDULERS",
    "VARIANTS",
    "ParallelScheduler",
    "make_kernel",
    "make_scheduler",
    "make_variant",
    "run",
    "run_variant",
    "variant_names",
    # Benchmark harness
    "BenchmarkReport",
    "benchmark_variants",
    "check_variant_agreement",
    "measure_peak_memory",
    "overall_scores",
    "readability_means",
    "time_variant",
    "validate_weights",
]
__version__ = "0.1.0"
