"""Tests for the generic nonlinear solver and its direction strategies.

This module tests:
- Convergence of gradient descent, Newton and L-BFGS on a quadratic
- Each termination status of the iteration loop
- Fallbacks to -grad (missing or singular Hessian)
- The solver registry
"""

from __future__ import annotations

import logging

import numpy as np
import pytest
from toy_problems import QuadraticProblem, make_quadratic

from core.config import LineSearchParams, NonlinearSolverParams
from optim import SOLVERS, GradientDescentSolver, LBFGSSolver, NewtonSolver, make_solver


def _params(solver: str, **kwargs: object) -> NonlinearSolverParams:
    return NonlinearSolverParams(solver=solver, **kwargs)


@pytest.mark.parametrize("family", ["gradient_descent", "newton", "lbfgs"])
class TestConvergence:
    def test_reaches_minimizer(self, family: str) -> None:
        problem = make_quadratic()
        solver = make_solver(_params(family, f_delta=0.0, grad_norm=1e-9))
        result = solver.minimize(problem, np.zeros(3))

        assert result.converged
        assert result.status == "grad_norm"
        assert result.grad_norm <= 1e-9
        np.testing.assert_allclose(result.x, problem.minimizer, atol=1e-8)

    def test_history_and_hooks(self, family: str) -> None:
        problem = make_quadratic()
        x0 = np.zeros(3)
        result = make_solver(_params(family, f_delta=0.0)).minimize(problem, x0)

        assert len(result.history) == result.iterations
        assert result.history.values()[-1] == pytest.approx(result.value)
        assert problem.calls[0] == "init"
        assert problem.calls.count("post_step") == result.iterations
        assert problem.calls.count("solution_changed") == result.iterations
        np.testing.assert_array_equal(x0, np.zeros(3))

    def test_wrong_gradient_fails_line_search(self, family: str) -> None:
        problem = make_quadratic()
        problem.flip_gradient = True
        params = _params(family, line_search=LineSearchParams(use_grad_norm_tol=0.0))
        result = make_solver(params).minimize(problem, np.zeros(3))

        assert not result.converged
        assert result.status == "line_search_failed"
        assert result.iterations == 0
        np.testing.assert_array_equal(result.x, np.zeros(3))


class TestTermination:
    def test_newton_solves_quadratic_in_one_step(self) -> None:
        problem = make_quadratic()
        result = NewtonSolver().minimize(problem, np.array([5.0, -5.0, 5.0]))
        assert result.status == "grad_norm"
        assert result.iterations == 1
        assert result.history.records[0].step_size == 1.0

    def test_invalid_initial_point(self) -> None:
        problem = make_quadratic()
        problem.finite_radius = 0.1
        result = GradientDescentSolver().minimize(problem, np.ones(3))
        assert result.status == "invalid_initial"
        assert not result.converged
        assert result.iterations == 0

    def test_max_iterations(self) -> None:
        params = _params("gradient_descent", f_delta=0.0, grad_norm=0.0, max_iterations=2)
        result = GradientDescentSolver(params).minimize(make_quadratic(), np.zeros(3))
        assert result.status == "max_iterations"
        assert not result.converged
        assert result.iterations == 2

    def test_f_delta(self) -> None:
        params = _params("gradient_descent", f_delta=1e-3, use_grad_norm=False)
        result = GradientDescentSolver(params).minimize(make_quadratic(), np.zeros(3))
        assert result.status == "f_delta"
        assert result.converged

    def test_problem_stop(self) -> None:
        problem = make_quadratic()
        problem.stop_when_below = problem.value(problem.minimizer) + 0.1
        result = GradientDescentSolver(_params("gradient_descent", f_delta=0.0)).minimize(
            problem, np.zeros(3)
        )
        assert result.status == "stop"
        assert result.value < problem.stop_when_below

    def test_relative_gradient(self) -> None:
        problem = make_quadratic()
        x0 = np.zeros(3)
        g0 = float(np.linalg.norm(problem.gradient(x0)))
        params = _params("gradient_descent", f_delta=0.0, grad_norm=1e-3, relative_gradient=True)
        result = GradientDescentSolver(params).minimize(problem, x0)
        assert result.status == "grad_norm"
        assert result.grad_norm <= 1e-3 * g0

    def test_max_step_size_respected(self) -> None:
        problem = make_quadratic()
        problem.step_cap = 0.25
        result = NewtonSolver(_params("newton", f_delta=0.0)).minimize(problem, np.zeros(3))
        assert result.converged
        assert all(r.step_size <= 0.25 for r in result.history.records)


class TestFallbacks:
    def test_newton_without_hessian(self, caplog: pytest.LogCaptureFixture) -> None:
        problem = make_quadratic()
        problem.has_hessian = False
        with caplog.at_level(logging.WARNING):
            result = NewtonSolver(_params("newton", f_delta=0.0)).minimize(problem, np.zeros(3))

        assert result.converged
        warnings = [r for r in caplog.records if "no Hessian" in r.getMessage()]
        assert len(warnings) == 1

    def test_newton_singular_hessian(self) -> None:
        problem = QuadraticProblem(np.diag([2.0, 0.0]), np.array([1.0, 0.0]))
        result = NewtonSolver(_params("newton", f_delta=0.0)).minimize(
            problem, np.array([0.0, 3.0])
        )
        assert result.converged
        np.testing.assert_allclose(result.x, [0.5, 3.0], atol=1e-8)


class TestLBFGS:
    def test_history_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="history_size"):
            LBFGSSolver(history_size=0)

    def test_memory_bounded(self) -> None:
        solver = LBFGSSolver(history_size=2)
        for i in range(5):
            solver.update(np.array([1.0, float(i)]), np.array([1.0, 0.0]))
        assert len(solver._s) == 2

    def test_non_positive_curvature_skipped(self) -> None:
        solver = LBFGSSolver()
        solver.update(np.array([1.0, 0.0]), np.array([-1.0, 0.0]))
        assert len(solver._s) == 0
        np.testing.assert_array_equal(
            solver.compute_direction(make_quadratic(), np.zeros(2), np.array([1.0, 2.0])),
            [-1.0, -2.0],
        )


class TestRegistry:
    def test_families(self) -> None:
        assert set(SOLVERS) == {"newton", "lbfgs", "gradient_descent"}
        for family, cls in SOLVERS.items():
            solver = make_solver(_params(family))
            assert isinstance(solver, cls)
            assert solver.name == family

    def test_default_is_newton(self) -> None:
        assert isinstance(make_solver(), NewtonSolver)

    def test_unknown_family(self) -> None:
        with pytest.raises(ValueError, match="Unknown solver"):
            _params("bfgs")
