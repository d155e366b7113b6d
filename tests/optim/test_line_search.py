"""Tests for the step-halving line searches."""

from __future__ import annotations

import numpy as np
import pytest
from toy_problems import QuadraticProblem, make_quadratic

from core.config import LineSearchParams
from optim.line_search import (
    ArmijoLineSearch,
    BacktrackingLineSearch,
    make_line_search,
)


class FlatProblem(QuadraticProblem):
    """Constant energy with a non-zero gradient, as seen through round-off near an optimum."""

    def value(self, x: np.ndarray) -> float:
        return 0.0


def _identity_problem(**kwargs: float) -> QuadraticProblem:
    return QuadraticProblem(np.eye(2), np.zeros(2), **kwargs)


class TestBacktracking:
    def test_full_step_accepted(self) -> None:
        problem = _identity_problem()
        x = np.array([1.0, 1.0])
        g = problem.gradient(x)
        result = BacktrackingLineSearch().search(problem, x, -g, problem.value(x), g)

        assert result.success
        assert result.step == 1.0
        assert result.trials == 1
        np.testing.assert_allclose(result.x, [0.0, 0.0])
        assert result.value == 0.0

    def test_invalid_steps_are_halved(self) -> None:
        problem = _identity_problem(valid_radius=0.8)
        x = np.array([2.0, 0.0])
        direction = np.array([-3.0, 0.0])
        result = BacktrackingLineSearch().search(problem, x, direction, problem.value(x), x)

        # Step 1.0 lands at |x| = 1 (invalid); 0.5 lands at |x| = 0.5
        assert result.success
        assert result.step == pytest.approx(0.5)
        assert result.trials == 2
        np.testing.assert_allclose(result.x, [0.5, 0.0])

    def test_non_finite_values_are_halved(self) -> None:
        problem = _identity_problem(finite_radius=1.5)
        x = np.array([1.0, 0.0])
        direction = np.array([-4.0, 0.0])
        result = BacktrackingLineSearch().search(problem, x, direction, problem.value(x), x)

        assert result.success
        assert result.step == pytest.approx(0.25)
        np.testing.assert_allclose(result.x, [0.0, 0.0])

    def test_initial_step_capped_by_problem(self) -> None:
        problem = _identity_problem(step_cap=0.3)
        x = np.array([1.0, 0.0])
        result = BacktrackingLineSearch().search(problem, x, -x, problem.value(x), x)
        assert result.step == pytest.approx(0.3)

    def test_failure_returns_start_point(self) -> None:
        problem = _identity_problem()
        x = np.array([1.0, 0.0])
        params = LineSearchParams(use_grad_norm_tol=0.0)
        # Ascent direction: no step decreases the energy
        result = BacktrackingLineSearch(params, min_step_size=1e-3).search(
            problem, x, x.copy(), problem.value(x), x
        )

        assert not result.success
        np.testing.assert_array_equal(result.x, x)
        assert result.value == problem.value(x)
        assert result.trials == 10

    def test_hooks_bracket_the_search(self) -> None:
        problem = _identity_problem()
        x = np.array([1.0, 0.0])
        BacktrackingLineSearch(min_step_size=0.1).search(problem, x, x.copy(), 0.5, x)
        assert problem.calls == ["line_search_begin", "line_search_end"]

    def test_grad_norm_acceptance_near_optimum(self) -> None:
        problem = FlatProblem(np.eye(2), np.zeros(2))
        x = np.array([1e-3, 0.0])
        g = problem.gradient(x)
        params = LineSearchParams(use_grad_norm_tol=1e-4)

        strict = BacktrackingLineSearch(LineSearchParams(use_grad_norm_tol=0.0), min_step_size=0.1)
        assert not strict.search(problem, x, -g, 0.0, g).success

        result = BacktrackingLineSearch(params).search(problem, x, -g, 0.0, g)
        assert result.success
        assert result.step == 1.0
        np.testing.assert_allclose(result.x, [0.0, 0.0])


class TestArmijo:
    def test_requires_sufficient_decrease(self) -> None:
        armijo = ArmijoLineSearch(c=1e-4)
        backtracking = BacktrackingLineSearch()
        assert backtracking.accept(1.0, 0.9999, 1.0, -4.0)
        assert not armijo.accept(1.0, 0.9999, 1.0, -4.0)
        assert armijo.accept(1.0, 0.9, 1.0, -4.0)

    def test_search_on_quadratic(self) -> None:
        quadratic = make_quadratic()
        x = np.zeros(3)
        g = quadratic.gradient(x)
        result = ArmijoLineSearch().search(quadratic, x, -g, quadratic.value(x), g)
        assert result.success
        assert result.value < quadratic.value(x)

    @pytest.mark.parametrize("c", [0.0, 1.0])
    def test_constant_range(self, c: float) -> None:
        with pytest.raises(ValueError, match="Armijo constant"):
            ArmijoLineSearch(c=c)


class TestFactory:
    @pytest.mark.parametrize(
        ("method", "cls"), [("backtracking", BacktrackingLineSearch), ("armijo", ArmijoLineSearch)]
    )
    def test_make_line_search(self, method: str, cls: type) -> None:
        search = make_line_search(LineSearchParams(method=method), min_step_size=1e-5)
        assert isinstance(search, cls)
        assert search.min_step_size == 1e-5

    def test_min_step_floor(self) -> None:
        assert make_line_search(LineSearchParams()).min_step_size == pytest.approx(1e-12)

    def test_unknown_method(self) -> None:
        with pytest.raises(ValueError, match="Unknown line search"):
            LineSearchParams(method="wolfe")
