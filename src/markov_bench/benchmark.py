"""
Benchmark harness for cohort model variants.

Each variant is a callable ``(params, strategies, n_t) -> results table``.
The harness first checks that all variants agree on the same inputs, then
times repeated trials, measures peak allocated memory and combines time,
memory and an externally supplied readability score into one weighted
score per variant.
"""

from dataclasses import dataclass
import logging
import time
import tracemalloc
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from utils.logging import log_call

from .exceptions import ConfigurationError, VariantMismatchError

logger = logging.getLogger(__name__)

WEIGHT_KEYS = ("time", "memory", "readability")
DEFAULT_WEIGHTS = {"time": 0.3, "memory": 0.3, "readability": 0.4}
AGREEMENT_TOLERANCE = 1e-9
BYTES_PER_MIB = 1024 * 1024

Variant = Callable[..., pd.DataFrame]


@dataclass
class BenchmarkReport:
    """Container for benchmark results."""

    # One row per variant: timings, memory, readability, overall score
    summary: pd.DataFrame
    # Long format: variant, iteration, seconds
    timings: pd.DataFrame
    # Results table shared by all variants
    reference: pd.DataFrame


@log_call
def time_variant(
    func: Variant, args: Sequence[Any], iterations: int
) -> np.ndarray:
    """Wall-clock seconds of ``iterations`` calls of ``func(*args)``."""
    if iterations < 1:
        raise ConfigurationError(
            f"iterations must be positive, got {iterations}"
        )
    seconds = np.empty(iterations)
    for i in range(iterations):
        start = time.perf_counter()
        func(*args)
        seconds[i] = time.perf_counter() - start
    return seconds


@log_call
def measure_peak_memory(func: Variant, args: Sequence[Any]) -> int:
    """
    Peak bytes allocated by one call of ``func(*args)``.

    Only allocations of the calling process are traced; work done inside
    worker processes is not counted.
    """
    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start()
    tracemalloc.reset_peak()
    baseline, _ = tracemalloc.get_traced_memory()
    try:
        func(*args)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        if not already_tracing:
            tracemalloc.stop()
    return max(int(peak - baseline), 0)


@log_call
def check_variant_agreement(
    tables: Mapping[str, pd.DataFrame],
    atol: float = AGREEMENT_TOLERANCE
) -> None:
    """
    Check that all result tables equal the first one row for row.

    Raises
    ------
    VariantMismatchError
        Naming the first variant whose labels or values differ.
    """
    items = list(tables.items())
    if not items:
        return
    ref_name, reference = items[0]
    for name, table in items[1:]:
        if (list(table.columns) != list(reference.columns)
                or not table.index.equals(reference.index)):
            raise VariantMismatchError(
                f"{name} returned a table shaped differently from {ref_name}"
            )
        diff = np.abs(table.to_numpy() - reference.to_numpy())
        if not np.all(diff <= atol):
            raise VariantMismatchError(
                f"{name} differs from {ref_name} by up to {np.max(diff):.3g}"
            )


@log_call
def readability_means(scores: Mapping[str, Sequence[float]]) -> pd.Series:
    """
    Average readability score of each variant over all raters.

    Parameters
    ----------
    scores : mapping
        Variant name to the list of rater scores

    Returns
    -------
    means : pd.Series
        Mean score per variant
    """
    means = {}
    for name, values in scores.items():
        values = list(values)
        if not values:
            raise ConfigurationError(f"No readability scores for {name}")
        means[name] = float(np.mean(values))
    return pd.Series(means, name="qual_mean", dtype=float)


@log_call
def validate_weights(weights: Optional[Mapping[str, float]]) -> Dict[str, float]:
    """
    Check score weights: keys time, memory and readability, all
    non-negative and summing to 1.
    """
    if weights is None:
        return dict(DEFAULT_WEIGHTS)
    weights = {str(k): float(v) for k, v in weights.items()}
    if set(weights) != set(WEIGHT_KEYS):
        raise ConfigurationError(
            f"Weights must have keys {WEIGHT_KEYS}, got {sorted(weights)}"
        )
    if any(w < 0 for w in weights.values()):
        raise ConfigurationError(f"Weights must be non-negative: {weights}")
    if not np.isclose(sum(weights.values()), 1.0, rtol=0, atol=1e-9):
        raise ConfigurationError(
            f"Weights must sum to 1, got {sum(weights.values())}"
        )
    return weights


@log_call
def overall_scores(
    summary: pd.DataFrame,
    weights: Mapping[str, float],
    include_memory: bool = True
) -> pd.Series:
    """
    Weighted score per variant.

    ``w_time * total_time (s) + w_memory * mem_alloc (MiB) +
    w_readability * qual_mean``. Variants without a readability score get
    NaN. With ``include_memory=False`` the memory term is left out.
    """
    scores = (
        weights["time"] * summary["total_time"]
        + weights["readability"] * summary["qual_mean"]
    )
    if include_memory:
        scores = scores + weights["memory"] * summary["mem_alloc"] / BYTES_PER_MIB
    return scores


@log_call
def benchmark_variants(
    variants: Mapping[str, Variant],
    params: pd.DataFrame,
    strategies: Sequence[Any],
    n_t: int,
    iterations: int = 5,
    readability: Optional[Mapping[str, Sequence[float]]] = None,
    weights: Optional[Mapping[str, float]] = None,
    measure_memory: bool = True,
    atol: float = AGREEMENT_TOLERANCE
) -> BenchmarkReport:
    """
    Benchmark variants against identical inputs.

    Parameters
    ----------
    variants : mapping
        Variant name to callable ``(params, strategies, n_t)``
    params : pd.DataFrame
        Sampled parameter table, shared by all variants
    strategies : sequence
        Strategies passed to every variant
    n_t : int
        Number of model cycles
    iterations : int, default=5
        Timed trials per variant
    readability : mapping, optional
        Variant name to rater scores
    weights : mapping, optional
        Score weights, defaults to DEFAULT_WEIGHTS
    measure_memory : bool, default=True
        Trace peak memory with one extra call per variant; when off,
        mem_alloc is NaN and overall scores omit the memory term
    atol : float, default=1e-9
        Tolerance of the cross-variant agreement check

    Returns
    -------
    report : BenchmarkReport
        Summary, per-iteration timings and the reference results table

    Raises
    ------
    VariantMismatchError
        If variants disagree; nothing is timed in that case.
    """
    if not variants:
        raise ConfigurationError("No variants to benchmark")
    weights = validate_weights(weights)
    qual = readability_means(readability or {})
    args = (params, strategies, n_t)

    # Untimed first call doubles as warm-up
    tables = {name: func(*args) for name, func in variants.items()}
    check_variant_agreement(tables, atol=atol)

    rows = []
    timing_frames = []
    for name, func in variants.items():
        seconds = time_variant(func, args, iterations)
        mem_alloc = measure_peak_memory(func, args) if measure_memory else np.nan
        rows.append({
            "variant": name,
            "min": float(np.min(seconds)),
            "median": float(np.median(seconds)),
            "total_time": float(np.sum(seconds)),
            "mem_alloc": mem_alloc,
            "n_itr": iterations,
            "qual_mean": qual.get(name, np.nan),
        })
        timing_frames.append(pd.DataFrame({
            "variant": name,
            "iteration": np.arange(1, iterations + 1),
            "seconds": seconds,
        }))
        logger.info(
            "%s: median %.4fs over %d iterations, peak %s bytes",
            name, np.median(seconds), iterations, mem_alloc
        )

    missing = [name for name in variants if name not in qual.index]
    if missing:
        logger.warning("No readability scores for %s", missing)

    if not measure_memory:
        logger.warning(
            "Memory not measured; overall scores omit the memory term"
        )

    summary = pd.DataFrame(rows)
    summary["overall_score"] = overall_scores(
        summary, weights, include_memory=measure_memory
    )
    return BenchmarkReport(
        summary=summary,
        timings=pd.concat(timing_frames, ignore_index=True),
        reference=next(iter(tables.values())),
    )
