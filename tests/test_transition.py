"""
Tests for the cohort transition module.
"""

import numpy as np
import pytest

from markov_bench.exceptions import ConfigurationError, ModelValidationError
from markov_bench.states import Strategy, parse_strategies
from markov_bench.transition import (
    build_transition_matrix,
    check_transition_matrix,
    cohort_trace,
    initial_occupancy,
)

SCENARIO = dict(
    p_healthy_sick=0.2,
    p_healthy_dead=0.05,
    p_sick_healthy=0.3,
    p_sick_dead=0.2,
    relative_risk=1.0,
)


def _matrix(strategy=Strategy.CURRENT_PRACTICE, **overrides):
    values = dict(SCENARIO, **overrides)
    return build_transition_matrix(strategy=strategy, **values)


class TestTransitionMatrix:
    """Test suite for build_transition_matrix."""

    def test_scenario_matrix(self):
        expected = np.array([
            [0.75, 0.2, 0.05],
            [0.3, 0.5, 0.2],
            [0.0, 0.0, 1.0],
        ])
        np.testing.assert_allclose(_matrix(), expected, atol=1e-12)

    def test_relative_risk_only_for_new_treatment(self):
        current = _matrix(Strategy.CURRENT_PRACTICE, relative_risk=0.5)
        new = _matrix(Strategy.NEW_TREATMENT, relative_risk=0.5)

        assert current[0, 1] == pytest.approx(0.2)
        assert new[0, 1] == pytest.approx(0.1)
        # Stay term absorbs the change; other rows untouched
        assert new[0, 0] == pytest.approx(0.85)
        np.testing.assert_array_equal(current[1:], new[1:])

    def test_rows_sum_to_one(self, medium_params):
        for _, row in medium_params.iterrows():
            for strategy in Strategy:
                matrix = build_transition_matrix(
                    row["p_healthy_sick"], row["p_healthy_dead"],
                    row["p_sick_healthy"], row["p_sick_dead"],
                    row["rr_healthy_sick"], strategy
                )
                np.testing.assert_allclose(matrix.sum(axis=1), 1.0,
                                           atol=1e-9)

    def test_dead_row_is_absorbing(self):
        matrix = _matrix(Strategy.NEW_TREATMENT, relative_risk=1.3)
        np.testing.assert_array_equal(matrix[2], [0.0, 0.0, 1.0])

    def test_relative_risk_overflow_rejected(self):
        with pytest.raises(ModelValidationError) as info:
            _matrix(Strategy.NEW_TREATMENT, p_healthy_sick=0.8,
                    relative_risk=1.5)
        assert info.value.strategy == "New_treatment"
        assert "outside [0, 1]" in str(info.value)

    def test_sick_outflow_rejected(self):
        with pytest.raises(ModelValidationError) as info:
            _matrix(p_sick_healthy=0.7, p_sick_dead=0.4)
        assert info.value.strategy == "Current_practice"

    @pytest.mark.parametrize("p_hs, p_hd", [(0.8, 0.2), (0.55, 0.45)])
    def test_full_healthy_outflow_accepted(self, p_hs, p_hd):
        matrix = _matrix(p_healthy_sick=p_hs, p_healthy_dead=p_hd)

        assert matrix[0, 0] == pytest.approx(0.0, abs=1e-12)
        np.testing.assert_allclose(matrix.sum(axis=1), 1.0, atol=1e-9)

    def test_full_outflow_through_relative_risk(self):
        matrix = _matrix(Strategy.NEW_TREATMENT, p_healthy_sick=0.5,
                         p_healthy_dead=0.2, relative_risk=1.6)

        assert matrix[0, 1] == pytest.approx(0.8)
        assert matrix[0, 0] == pytest.approx(0.0, abs=1e-12)

    def test_tiny_excess_beyond_tolerance_rejected(self):
        matrix = _matrix()
        matrix[0] = [-1e-6, 0.95, 0.05 + 1e-6]
        with pytest.raises(ModelValidationError, match="outside"):
            check_transition_matrix(matrix)


class TestCheckTransitionMatrix:
    """Test suite for check_transition_matrix."""

    def test_valid_matrix(self):
        check_transition_matrix(_matrix())

    def test_leaking_dead_row(self):
        matrix = _matrix()
        matrix[2] = [0.1, 0.0, 0.9]
        with pytest.raises(ModelValidationError, match="absorbing"):
            check_transition_matrix(matrix)

    def test_row_sum(self):
        matrix = _matrix()
        matrix[1, 1] += 1e-6
        with pytest.raises(ModelValidationError, match="sum to"):
            check_transition_matrix(matrix, "Current_practice")

    def test_no_silent_normalization(self):
        matrix = _matrix()
        matrix[0] = [0.5, 0.5, 0.5]
        original = matrix.copy()
        with pytest.raises(ModelValidationError):
            check_transition_matrix(matrix)
        np.testing.assert_array_equal(matrix, original)

    def test_shape_and_finiteness(self):
        with pytest.raises(ModelValidationError, match="3x3"):
            check_transition_matrix(np.eye(2))
        matrix = _matrix()
        matrix[0, 0] = np.nan
        with pytest.raises(ModelValidationError, match="non-finite"):
            check_transition_matrix(matrix)


class TestCohortTrace:
    """Test suite for cohort_trace."""

    def test_scenario_trace(self):
        trace = cohort_trace(_matrix(), 2)

        assert trace.shape == (3, 3)
        np.testing.assert_allclose(trace[0], [1.0, 0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(trace[1], [0.75, 0.2, 0.05], atol=1e-9)
        np.testing.assert_allclose(trace[2], [0.6225, 0.25, 0.1275],
                                   atol=1e-9)
        np.testing.assert_allclose(trace[2], trace[1] @ _matrix(), atol=1e-12)

    def test_initial_occupancy(self):
        np.testing.assert_array_equal(initial_occupancy(), [1.0, 0.0, 0.0])

    def test_zero_cycles(self):
        trace = cohort_trace(_matrix(), 0)
        np.testing.assert_array_equal(trace, [[1.0, 0.0, 0.0]])

    def test_negative_cycles(self):
        with pytest.raises(ConfigurationError):
            cohort_trace(_matrix(), -1)
        with pytest.raises(ConfigurationError):
            cohort_trace(_matrix(), 2.0)

    def test_custom_initial(self):
        trace = cohort_trace(_matrix(), 1, initial=np.array([0.0, 1.0, 0.0]))
        np.testing.assert_allclose(trace[1], [0.3, 0.5, 0.2])

    def test_mass_conservation_and_absorption(self, medium_params):
        for _, row in medium_params.iterrows():
            for strategy in Strategy:
                matrix = build_transition_matrix(
                    row["p_healthy_sick"], row["p_healthy_dead"],
                    row["p_sick_healthy"], row["p_sick_dead"],
                    row["rr_healthy_sick"], strategy
                )
                trace = cohort_trace(matrix, 100)
                np.testing.assert_allclose(trace.sum(axis=1), 1.0,
                                           atol=1e-9)
                assert np.all(np.diff(trace[:, 2]) >= 0)
                assert np.all(trace >= 0)

    def test_converges_to_dead(self):
        trace = cohort_trace(_matrix(), 500)
        assert trace[-1, 2] == pytest.approx(1.0, abs=1e-9)


class TestParseStrategies:
    """Test suite for strategy normalization."""

    def test_names_values_and_members(self):
        parsed = parse_strategies(
            ["Current_practice", "NEW_TREATMENT"]
        )
        assert parsed == (Strategy.CURRENT_PRACTICE, Strategy.NEW_TREATMENT)
        assert parse_strategies([Strategy.NEW_TREATMENT]) == (
            Strategy.NEW_TREATMENT,
        )

    @pytest.mark.parametrize(
        "strategies", [[], ["Surgery"], ["New_treatment", "New_treatment"]]
    )
    def test_invalid(self, strategies):
        with pytest.raises(ConfigurationError):
            parse_strategies(strategies)
