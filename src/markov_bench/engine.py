"""
Cohort model engine with pluggable data representations and schedulers.

A *kernel* evaluates one replicate (one parameter row) for all strategies
and returns its costs and QALYs. It fixes how the row and the trace are
represented (pandas frames, dicts, numpy arrays). A *scheduler* maps a
kernel over all replicates (sequential loop, ``DataFrame.apply`` or a
worker pool). Every kernel/scheduler pair is one benchmark variant and
every variant returns the same results table:

    run(params, strategies, n_t) -> DataFrame[Cost_<s>..., QALY_<s>...]

All state lives in the call; repeated calls are independent.
"""

from concurrent.futures import (
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from dataclasses import dataclass
import functools
import logging
import math
import os
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import numpy as np
import pandas as pd

from utils.logging import log_call

from .exceptions import ConfigurationError, ReplicateError
from .outcomes import discount_factors, results_table, total_outcome
from .sampling import (
    COST_COLUMNS,
    PARAMETER_COLUMNS,
    UTILITY_COLUMNS,
    parameter_frame,
    validate_parameters,
)
from .states import N_STATES, STATE_NAMES, STRATEGIES, Strategy, parse_strategies
from .transition import (
    build_transition_matrix,
    check_horizon,
    cohort_trace,
    initial_occupancy,
)

logger = logging.getLogger(__name__)

# Positions of the inputs in a numpy parameter row
_P_HS, _P_HD, _P_SH, _P_SD, _RR = (
    PARAMETER_COLUMNS.index(c) for c in (
        "p_healthy_sick", "p_healthy_dead", "p_sick_healthy", "p_sick_dead",
        "rr_healthy_sick",
    )
)
_UTILITIES = [PARAMETER_COLUMNS.index(c) for c in UTILITY_COLUMNS]
_COSTS = [PARAMETER_COLUMNS.index(c) for c in COST_COLUMNS]


@dataclass(frozen=True)
class ModelContext:
    """Run-wide inputs shared read-only by every unit of work."""

    strategies: Tuple[Strategy, ...]
    n_t: int
    cost_factors: np.ndarray
    qaly_factors: np.ndarray


class Kernel:
    """
    Evaluation of a single replicate.

    Subclasses define the per-replicate representation (``unit``) and
    return ``[cost_s1, ..., cost_sk, qaly_s1, ..., qaly_sk]``.
    """

    name = ""

    @log_call
    def units(self, frame: pd.DataFrame) -> Iterable[Tuple[Any, Any]]:
        """Yield ``(replicate label, unit)`` pairs in row order."""
        raise NotImplementedError

    @log_call
    def unit(self, row: pd.Series) -> Any:
        """Convert a parameter row into this kernel's unit."""
        raise NotImplementedError

    @log_call
    def evaluate(self, unit: Any, context: ModelContext) -> np.ndarray:
        """Costs and QALYs of one replicate for all strategies."""
        raise NotImplementedError


class FrameKernel(Kernel):
    """Rows stay pandas Series; the trace is a DataFrame filled by row."""

    name = "frame"

    @log_call
    def units(self, frame: pd.DataFrame) -> Iterable[Tuple[Any, Any]]:
        return frame.iterrows()

    @log_call
    def unit(self, row: pd.Series) -> pd.Series:
        return row

    @log_call
    def evaluate(self, unit: pd.Series, context: ModelContext) -> np.ndarray:
        n_strategies = len(context.strategies)
        costs = unit[list(COST_COLUMNS)].to_numpy(dtype=float)
        utilities = unit[list(UTILITY_COLUMNS)].to_numpy(dtype=float)
        out = np.empty(2 * n_strategies)

        for i, strategy in enumerate(context.strategies):
            matrix = build_transition_matrix(
                unit["p_healthy_sick"], unit["p_healthy_dead"],
                unit["p_sick_healthy"], unit["p_sick_dead"],
                unit["rr_healthy_sick"], strategy
            )
            trace = pd.DataFrame(
                0.0,
                index=pd.RangeIndex(context.n_t + 1, name="cycle"),
                columns=list(STATE_NAMES),
            )
            trace.iloc[0] = initial_occupancy()
            for t in range(1, context.n_t + 1):
                trace.iloc[t] = trace.iloc[t - 1].to_numpy() @ matrix

            values = trace.to_numpy()
            out[i] = total_outcome(values, costs, context.cost_factors)
            out[n_strategies + i] = total_outcome(
                values, utilities, context.qaly_factors
            )
        return out


class ConvertedFrameKernel(Kernel):
    """Rows are converted to plain dicts once; traces are numpy arrays."""

    name = "frame_converted"

    @log_call
    def units(self, frame: pd.DataFrame) -> Iterable[Tuple[Any, Any]]:
        return frame.to_dict("index").items()

    @log_call
    def unit(self, row: pd.Series) -> Dict[str, float]:
        return row.to_dict()

    @log_call
    def evaluate(
        self, unit: Dict[str, float], context: ModelContext
    ) -> np.ndarray:
        n_strategies = len(context.strategies)
        costs = np.array([unit[c] for c in COST_COLUMNS])
        utilities = np.array([unit[c] for c in UTILITY_COLUMNS])
        out = np.empty(2 * n_strategies)

        for i, strategy in enumerate(context.strategies):
            matrix = build_transition_matrix(
                unit["p_healthy_sick"], unit["p_healthy_dead"],
                unit["p_sick_healthy"], unit["p_sick_dead"],
                unit["rr_healthy_sick"], strategy
            )
            trace = cohort_trace(matrix, context.n_t)
            out[i] = total_outcome(trace, costs, context.cost_factors)
            out[n_strategies + i] = total_outcome(
                trace, utilities, context.qaly_factors
            )
        return out


class MatrixKernel(Kernel):
    """Parameter table as a numpy matrix; one trace per strategy."""

    name = "matrix"

    @log_call
    def units(self, frame: pd.DataFrame) -> Iterable[Tuple[Any, Any]]:
        return zip(frame.index, frame.to_numpy(dtype=float))

    @log_call
    def unit(self, row: pd.Series) -> np.ndarray:
        return row.to_numpy(dtype=float)

    @log_call
    def evaluate(self, unit: np.ndarray, context: ModelContext) -> np.ndarray:
        n_strategies = len(context.strategies)
        costs = unit[_COSTS]
        utilities = unit[_UTILITIES]
        out = np.empty(2 * n_strategies)

        for i, strategy in enumerate(context.strategies):
            matrix = build_transition_matrix(
                unit[_P_HS], unit[_P_HD], unit[_P_SH], unit[_P_SD],
                unit[_RR], strategy
            )
            trace = cohort_trace(matrix, context.n_t)
            out[i] = total_outcome(trace, costs, context.cost_factors)
            out[n_strategies + i] = total_outcome(
                trace, utilities, context.qaly_factors
            )
        return out


class StackedKernel(MatrixKernel):
    """
    All strategies of a replicate propagated together.

    Transition matrices are stacked into a (k, 3, 3) array and the trace
    is a (n_t + 1, k, 3) array advanced with one batched product per cycle.
    """

    name = "stacked"

    @log_call
    def evaluate(self, unit: np.ndarray, context: ModelContext) -> np.ndarray:
        stack = np.stack([
            build_transition_matrix(
                unit[_P_HS], unit[_P_HD], unit[_P_SH], unit[_P_SD],
                unit[_RR], strategy
            )
            for strategy in context.strategies
        ])
        trace = np.empty((context.n_t + 1, len(stack), N_STATES))
        trace[0] = initial_occupancy()
        for t in range(1, context.n_t + 1):
            trace[t] = np.einsum("si,sij->sj", trace[t - 1], stack)

        costs = (trace @ unit[_COSTS]) * context.cost_factors[:, None]
        qalys = (trace @ unit[_UTILITIES]) * context.qaly_factors[:, None]
        return np.concatenate([costs.sum(axis=0), qalys.sum(axis=0)])


def _evaluate_unit(
    kernel: Kernel, label: Any, unit: Any, context: ModelContext
) -> np.ndarray:
    """Evaluate one unit, tagging any failure with its replicate label."""
    try:
        return kernel.evaluate(unit, context)
    except ReplicateError:
        raise
    except Exception as exc:
        raise ReplicateError(
            label, getattr(exc, "strategy", None),
            f"{type(exc).__name__}: {exc}"
        ) from exc


def _evaluate_chunk(
    kernel: Kernel, chunk: Sequence[Tuple[Any, Any]], context: ModelContext
) -> np.ndarray:
    """Worker entry point: evaluate a contiguous block of replicates."""
    return np.array([
        _evaluate_unit(kernel, label, unit, context) for label, unit in chunk
    ])


class Scheduler:
    """Maps a kernel over all replicates and returns the value array."""

    name = ""

    @log_call
    def execute(
        self, kernel: Kernel, frame: pd.DataFrame, context: ModelContext
    ) -> np.ndarray:
        """Return values of shape (len(frame), 2 * n_strategies)."""
        raise NotImplementedError


class LoopScheduler(Scheduler):
    """Sequential for-loop writing into a pre-sized array."""

    name = "loop"

    @log_call
    def execute(
        self, kernel: Kernel, frame: pd.DataFrame, context: ModelContext
    ) -> np.ndarray:
        values = np.empty((len(frame), 2 * len(context.strategies)))
        for i, (label, unit) in enumerate(kernel.units(frame)):
            values[i] = _evaluate_unit(kernel, label, unit, context)
        return values


class ApplyScheduler(Scheduler):
    """Row-wise ``DataFrame.apply``, each row converted by the kernel."""

    name = "apply"

    @log_call
    def execute(
        self, kernel: Kernel, frame: pd.DataFrame, context: ModelContext
    ) -> np.ndarray:
        applied = frame.apply(
            lambda row: _evaluate_unit(kernel, row.name, kernel.unit(row),
                                       context),
            axis=1,
            result_type="expand",
        )
        return applied.to_numpy(dtype=float)


class ParallelScheduler(Scheduler):
    """
    Worker-pool map over contiguous chunks of replicates.

    Each chunk fills its own slice of the output, placed by replicate
    position rather than completion order, so results match the
    sequential schedulers row for row.

    Parameters
    ----------
    backend : str, default='process'
        'process' for a ProcessPoolExecutor, 'thread' for a
        ThreadPoolExecutor
    max_workers : int, optional
        Pool size, defaults to the CPU count
    chunk_size : int, optional
        Replicates per task, defaults to an even split over the workers
    """

    name = "parallel"
    BACKENDS = ("process", "thread")

    def __init__(
        self,
        backend: str = "process",
        max_workers: Optional[int] = None,
        chunk_size: Optional[int] = None
    ):
        if backend not in self.BACKENDS:
            raise ConfigurationError(
                f"Unknown parallel backend {backend!r}; expected one of "
                f"{self.BACKENDS}"
            )
        if max_workers is not None and max_workers < 1:
            raise ConfigurationError(
                f"max_workers must be positive, got {max_workers}"
            )
        if chunk_size is not None and chunk_size < 1:
            raise ConfigurationError(
                f"chunk_size must be positive, got {chunk_size}"
            )
        self.backend = backend
        self.max_workers = max_workers
        self.chunk_size = chunk_size

    @log_call
    def execute(
        self, kernel: Kernel, frame: pd.DataFrame, context: ModelContext
    ) -> np.ndarray:
        units = list(kernel.units(frame))
        n_workers = min(self.max_workers or os.cpu_count() or 1, len(units))
        chunk_size = self.chunk_size or math.ceil(len(units) / n_workers)
        chunks = [
            (start, units[start:start + chunk_size])
            for start in range(0, len(units), chunk_size)
        ]
        logger.debug(
            "Dispatching %d chunks of up to %d replicates to %d %s workers",
            len(chunks), chunk_size, n_workers, self.backend
        )

        values = np.empty((len(units), 2 * len(context.strategies)))
        executor_cls = (
            ProcessPoolExecutor if self.backend == "process"
            else ThreadPoolExecutor
        )
        with executor_cls(max_workers=n_workers) as executor:
            futures: Dict[Future, int] = {
                executor.submit(_evaluate_chunk, kernel, chunk, context): start
                for start, chunk in chunks
            }
            try:
                for future in as_completed(futures):
                    start = futures[future]
                    block = future.result()
                    values[start:start + len(block)] = block
            except Exception:
                for pending in futures:
                    pending.cancel()
                raise
        return values


KERNELS: Dict[str, type] = {
    cls.name: cls for cls in (
        FrameKernel, ConvertedFrameKernel, MatrixKernel, StackedKernel
    )
}

SCHEDULERS: Dict[str, type] = {
    cls.name: cls for cls in (LoopScheduler, ApplyScheduler, ParallelScheduler)
}

# Twelve benchmark variants: data representation x execution strategy
VARIANTS: Dict[str, Tuple[str, str]] = {
    f"{kernel}_{scheduler}": (kernel, scheduler)
    for kernel in KERNELS
    for scheduler in SCHEDULERS
}


@log_call
def make_kernel(kernel: Union[str, Kernel]) -> Kernel:
    """Look up a kernel by name; instances pass through."""
    if isinstance(kernel, Kernel):
        return kernel
    try:
        return KERNELS[kernel]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown kernel {kernel!r}; expected one of {sorted(KERNELS)}"
        ) from None


@log_call
def make_scheduler(
    scheduler: Union[str, Scheduler],
    backend: str = "process",
    max_workers: Optional[int] = None,
    chunk_size: Optional[int] = None
) -> Scheduler:
    """Look up a scheduler by name; pool options apply to 'parallel'."""
    if isinstance(scheduler, Scheduler):
        return scheduler
    if scheduler not in SCHEDULERS:
        raise ConfigurationError(
            f"Unknown scheduler {scheduler!r}; expected one of "
            f"{sorted(SCHEDULERS)}"
        )
    if scheduler == ParallelScheduler.name:
        return ParallelScheduler(backend, max_workers, chunk_size)
    return SCHEDULERS[scheduler]()


@log_call
def run(
    params: Union[pd.DataFrame, Sequence[Any]],
    strategies: Sequence[Union[Strategy, str]] = STRATEGIES,
    n_t: int = 100,
    kernel: Union[str, Kernel] = "matrix",
    scheduler: Union[str, Scheduler] = "loop",
    discount_rate_costs: float = 0.0,
    discount_rate_qalys: float = 0.0,
    backend: str = "process",
    max_workers: Optional[int] = None,
    chunk_size: Optional[int] = None
) -> pd.DataFrame:
    """
    Run the cohort model for every parameter set and strategy.

    Parameters
    ----------
    params : pd.DataFrame or sequence of ParameterSet
        One parameter set per replicate (see ``sample_parameters``)
    strategies : sequence of Strategy or str
        Strategies to evaluate, in output column order
    n_t : int, default=100
        Number of model cycles
    kernel : str or Kernel, default='matrix'
        Data representation, one of KERNELS
    scheduler : str or Scheduler, default='loop'
        Execution strategy, one of SCHEDULERS
    discount_rate_costs, discount_rate_qalys : float, default=0.0
        Per-cycle discount rates
    backend, max_workers, chunk_size
        Worker-pool options of the 'parallel' scheduler

    Returns
    -------
    results : pd.DataFrame
        Columns ``Cost_<strategy>`` then ``QALY_<strategy>``, one row per
        replicate labelled like the parameter table

    Raises
    ------
    ConfigurationError
        On unknown names, invalid horizon or discount rates
    ModelValidationError
        If the parameter table violates its invariants
    ReplicateError
        If a replicate fails, e.g. an invalid transition matrix; no partial
        table is returned

    Examples
    --------
    >>> params = sample_parameters(5, seed=12345)
    >>> table = run(params, n_t=100, kernel="stacked", scheduler="apply")
    >>> list(table.columns)
    ['Cost_Current_practice', 'Cost_New_treatment', 'QALY_Current_practice', 'QALY_New_treatment']
    """
    frame = parameter_frame(params)
    validate_parameters(frame)
    parsed = parse_strategies(strategies)
    check_horizon(n_t)

    context = ModelContext(
        strategies=parsed,
        n_t=int(n_t),
        cost_factors=discount_factors(n_t, discount_rate_costs),
        qaly_factors=discount_factors(n_t, discount_rate_qalys),
    )
    kernel_obj = make_kernel(kernel)
    scheduler_obj = make_scheduler(scheduler, backend, max_workers, chunk_size)

    values = scheduler_obj.execute(kernel_obj, frame, context)
    return results_table(values, frame.index, parsed)


@log_call
def make_variant(name: str, **options: Any) -> Callable[..., pd.DataFrame]:
    """
    Bind a named variant to ``run``.

    The returned callable takes ``(params, strategies, n_t)`` and returns
    the results table. ``options`` are forwarded to ``run`` (discount
    rates, pool options).
    """
    if name not in VARIANTS:
        raise ConfigurationError(
            f"Unknown variant {name!r}; expected one of {sorted(VARIANTS)}"
        )
    kernel, scheduler = VARIANTS[name]
    variant = functools.partial(
        run, kernel=kernel, scheduler=scheduler, **options
    )
    variant.__name__ = name  # type: ignore[attr-defined]
    return variant


@log_call
def run_variant(
    name: str,
    params: Union[pd.DataFrame, Sequence[Any]],
    strategies: Sequence[Union[Strategy, str]] = STRATEGIES,
    n_t: int = 100,
    **options: Any
) -> pd.DataFrame:
    """Run one named variant, e.g. ``run_variant("frame_apply", ...)``."""
    return make_variant(name, **options)(params, strategies, n_t)


@log_call
def variant_names(
    kernels: Optional[Sequence[str]] = None,
    schedulers: Optional[Sequence[str]] = None
) -> List[str]:
    """Variant names, optionally restricted to some kernels/schedulers."""
    return [
        name for name, (k, s) in VARIANTS.items()
        if (kernels is None or k in kernels)
        and (schedulers is None or s in schedulers)
    ]
