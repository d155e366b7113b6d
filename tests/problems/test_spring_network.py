"""Tests for the spring-network forward solver and its adjoint."""

from __future__ import annotations

import numpy as np
import pytest

from core.finite_diff import fd_gradient
from core.logging import ExecutionContext
from core.types import ForwardSolveError
from problems import SpringNetworkSolver

EDGES = np.array([[0, 1], [1, 2], [2, 3], [0, 2], [1, 3]])
LOADS = np.array([0.0, 1.0, -0.5, 2.0])


def _network() -> SpringNetworkSolver:
    return SpringNetworkSolver(4, EDGES, LOADS, fixed=np.array([0]))


class TestForwardSolve:
    def test_equilibrium(self) -> None:
        net = _network()
        y = np.array([1.0, 2.0, 0.5, 1.5, 3.0])
        sol = net.solve(y)

        assert sol.success
        assert sol.solution[0] == 0.0
        K = net.stiffness_matrix(y).toarray()
        residual = K @ sol.solution - LOADS
        np.testing.assert_allclose(residual[net.free], 0.0, atol=1e-10)

    def test_stiffness_matrix_symmetric_with_zero_row_sums(self) -> None:
        K = _network().stiffness_matrix(np.arange(1.0, 6.0)).toarray()
        np.testing.assert_allclose(K, K.T)
        np.testing.assert_allclose(K.sum(axis=1), 0.0, atol=1e-12)

    @pytest.mark.parametrize("num_threads", [2, 3, 16])
    def test_threaded_assembly_matches_serial(self, num_threads: int) -> None:
        y = np.array([1.0, 2.0, 0.5, 1.5, 3.0])
        context = ExecutionContext(num_threads=num_threads)
        threaded = SpringNetworkSolver(4, EDGES, LOADS, fixed=np.array([0]), context=context)
        assert threaded.num_threads == num_threads

        np.testing.assert_allclose(
            threaded.stiffness_matrix(y).toarray(), _network().stiffness_matrix(y).toarray()
        )
        np.testing.assert_allclose(
            threaded.solve(y).solution, _network().solve(y).solution, atol=1e-12
        )

    def test_warm_start_gives_same_solution(self) -> None:
        net = _network()
        y = np.ones(5)
        cold = net.solve(y).solution
        warm = net.solve(y, initial_guess=cold + 0.1).solution
        np.testing.assert_allclose(warm, cold, atol=1e-10)
        assert net.num_solves == 2

    @pytest.mark.parametrize("bad", [0.0, -1.0, np.nan])
    def test_non_positive_stiffness_fails(self, bad: float) -> None:
        y = np.ones(5)
        y[2] = bad
        sol = _network().solve(y)
        assert not sol.success

    def test_wrong_field_size(self) -> None:
        with pytest.raises(ValueError, match="Expected 5 edge stiffnesses"):
            _network().solve(np.ones(4))

    def test_anchored_network_has_no_floating_nodes(self) -> None:
        net = _network()
        assert net.floating.size == 0
        assert net.field_size == 5

    @pytest.mark.parametrize(
        ("edges", "fixed", "floating"),
        [
            (np.array([[0, 1], [1, 2]]), np.array([0]), [3]),
            (np.array([[0, 1], [2, 3]]), np.array([0]), [2, 3]),
            (np.array([[0, 1], [1, 2], [2, 3]]), np.array([], dtype=int), [0, 1, 2, 3]),
        ],
    )
    def test_floating_nodes_fail_the_solve(
        self, edges: np.ndarray, fixed: np.ndarray, floating: list[int]
    ) -> None:
        net = SpringNetworkSolver(4, edges, np.array([0.0, 1.0, -0.5, 0.0]), fixed)
        np.testing.assert_array_equal(net.floating, floating)

        sol = net.solve(np.ones(edges.shape[0]))
        assert not sol.success
        np.testing.assert_array_equal(sol.solution, np.zeros(4))

    @pytest.mark.parametrize(
        ("edges", "loads", "fixed", "match"),
        [
            (np.array([[0, 4]]), np.zeros(4), np.array([0]), "outside"),
            (np.array([[1, 1]]), np.zeros(4), np.array([0]), "distinct"),
            (np.array([[0, 1]]), np.zeros(3), np.array([0]), "loads"),
            (np.array([[0, 1]]), np.zeros(4), np.array([7]), "fixed"),
        ],
    )
    def test_malformed_network(
        self, edges: np.ndarray, loads: np.ndarray, fixed: np.ndarray, match: str
    ) -> None:
        with pytest.raises(ValueError, match=match):
            SpringNetworkSolver(4, edges, loads, fixed)


class TestAdjoint:
    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_matches_finite_differences(self, seed: int) -> None:
        net = _network()
        rng = np.random.default_rng(seed)
        y = rng.uniform(0.5, 2.0, size=5)
        target = rng.standard_normal(4)

        def objective(field: np.ndarray) -> float:
            u = net.solve(field).solution
            return 0.5 * float((u - target) @ (u - target))

        u = net.solve(y).solution
        grad = net.adjoint(y, u, u - target)
        np.testing.assert_allclose(grad, fd_gradient(objective, y), rtol=1e-5, atol=1e-8)

    def test_compliance_gradient(self) -> None:
        net = _network()
        y = np.array([1.0, 2.0, 0.5, 1.5, 3.0])
        u = net.solve(y).solution
        # For J = f.u the adjoint state equals u, so dJ/dy_e = -(u_i - u_j)^2
        grad = net.adjoint(y, u, LOADS)
        expected = -((u[EDGES[:, 0]] - u[EDGES[:, 1]]) ** 2)
        np.testing.assert_allclose(grad, expected, rtol=1e-10, atol=1e-12)

    def test_singular_network(self) -> None:
        net = SpringNetworkSolver(3, np.array([[0, 1]]), np.array([0.0, 1.0, 0.0]), [0])
        u = np.array([0.0, 1.0, 0.0])
        with pytest.raises(ForwardSolveError):
            net.adjoint(np.ones(1), u, np.ones(3))
