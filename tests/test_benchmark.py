"""
Tests for the benchmark harness.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from markov_bench.benchmark import (
    BenchmarkReport,
    DEFAULT_WEIGHTS,
    benchmark_variants,
    check_variant_agreement,
    measure_peak_memory,
    overall_scores,
    readability_means,
    time_variant,
    validate_weights,
)
from markov_bench.engine import make_variant, run
from markov_bench.exceptions import ConfigurationError, VariantMismatchError


class TestWeightsAndScores:
    """Test suite for score weights and readability scores."""

    def test_default_weights(self):
        assert validate_weights(None) == DEFAULT_WEIGHTS
        assert sum(DEFAULT_WEIGHTS.values()) == pytest.approx(1.0)

    @pytest.mark.parametrize("weights", [
        {"time": 0.5, "memory": 0.5, "readability": 0.5},
        {"time": 1.2, "memory": -0.2, "readability": 0.0},
        {"time": 0.5, "memory": 0.5},
        {"time": 0.3, "memory": 0.3, "readability": 0.3, "style": 0.1},
    ])
    def test_invalid_weights(self, weights):
        with pytest.raises(ConfigurationError):
            validate_weights(weights)

    def test_readability_means(self):
        means = readability_means({"frame_loop": [5, 4],
                                   "frame_apply": [3, 3]})
        assert means["frame_loop"] == pytest.approx(4.5)
        assert means["frame_apply"] == pytest.approx(3.0)

    def test_readability_requires_scores(self):
        with pytest.raises(ConfigurationError):
            readability_means({"frame_loop": []})

    def test_overall_score(self):
        summary = pd.DataFrame({
            "total_time": [2.0, 1.0],
            "mem_alloc": [2 * 1024 * 1024, 0],
            "qual_mean": [4.5, np.nan],
        })
        scores = overall_scores(summary, DEFAULT_WEIGHTS)

        assert scores[0] == pytest.approx(0.3 * 2.0 + 0.3 * 2.0 + 0.4 * 4.5)
        assert np.isnan(scores[1])


class TestMeasurement:
    """Test suite for timing and memory measurement."""

    def test_time_variant(self):
        calls = []
        seconds = time_variant(lambda x: calls.append(x), ("a",), 4)

        assert len(seconds) == 4
        assert calls == ["a"] * 4
        assert np.all(seconds >= 0)

    def test_time_variant_iterations(self):
        with pytest.raises(ConfigurationError):
            time_variant(lambda: None, (), 0)

    def test_measure_peak_memory(self):
        small = measure_peak_memory(lambda: None, ())
        large = measure_peak_memory(lambda n: np.ones(n), (1_000_000,))

        assert small >= 0
        assert large >= 8 * 1_000_000


class TestAgreement:
    """Test suite for cross-variant agreement."""

    def test_identical_tables_pass(self, small_params, strategies):
        table = run(small_params, strategies, n_t=5)
        check_variant_agreement({"a": table, "b": table.copy()})
        check_variant_agreement({})

    def test_value_mismatch(self, small_params, strategies):
        table = run(small_params, strategies, n_t=5)
        shifted = table.copy()
        shifted.iloc[4, 1] += 1e-6

        with pytest.raises(VariantMismatchError, match="shifted"):
            check_variant_agreement({"reference": table, "shifted": shifted})

    def test_row_order_mismatch(self, small_params, strategies):
        table = run(small_params, strategies, n_t=5)
        reordered = table.iloc[::-1]

        with pytest.raises(VariantMismatchError, match="reordered"):
            check_variant_agreement({"reference": table,
                                     "reordered": reordered})


class TestBenchmarkVariants:
    """Test suite for the full benchmark run."""

    def test_report(self, small_params, strategies):
        variants = {
            name: make_variant(name, backend="thread", max_workers=2)
            for name in ["frame_loop", "matrix_apply", "stacked_parallel"]
        }
        report = benchmark_variants(
            variants, small_params, strategies, n_t=10, iterations=3,
            readability={"frame_loop": [5, 4], "matrix_apply": [3, 2]},
        )

        assert isinstance(report, BenchmarkReport)
        assert list(report.summary["variant"]) == list(variants)
        assert list(report.summary.columns) == [
            "variant", "min", "median", "total_time", "mem_alloc", "n_itr",
            "qual_mean", "overall_score",
        ]
        assert (report.summary["n_itr"] == 3).all()
        assert len(report.timings) == 9
        assert report.summary.loc[0, "qual_mean"] == pytest.approx(4.5)
        assert np.isnan(report.summary.loc[2, "overall_score"])
        assert report.summary.loc[0, "min"] <= report.summary.loc[0, "median"]
        pd.testing.assert_frame_equal(
            report.reference, run(small_params, strategies, n_t=10)
        )

    def test_disagreeing_variant_stops_benchmark(self, small_params,
                                                 strategies):
        def broken(params, strategies, n_t):
            return run(params, strategies, n_t) * 1.01

        timed = []

        def reference(params, strategies, n_t):
            timed.append(1)
            return run(params, strategies, n_t)

        with pytest.raises(VariantMismatchError, match="broken"):
            benchmark_variants(
                {"reference": reference, "broken": broken},
                small_params, strategies, n_t=5, iterations=2,
            )
        # Only the untimed agreement call happened
        assert timed == [1]

    def test_without_memory(self, small_params, strategies, caplog):
        with caplog.at_level(logging.WARNING, logger="markov_bench.benchmark"):
            report = benchmark_variants(
                {"matrix_loop": make_variant("matrix_loop")},
                small_params, strategies, n_t=5, iterations=2,
                readability={"matrix_loop": [4.0, 3.0]},
                measure_memory=False,
            )
        row = report.summary.loc[0]

        assert np.isnan(row["mem_alloc"])
        assert row["overall_score"] == pytest.approx(
            0.3 * row["total_time"] + 0.4 * 3.5
        )
        assert "omit the memory term" in caplog.text

    def test_no_variants(self, small_params, strategies):
        with pytest.raises(ConfigurationError):
            benchmark_variants({}, small_params, strategies, n_t=5)
