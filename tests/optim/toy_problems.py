"""Toy problems shared by the solver and line-search tests."""

from __future__ import annotations

import math

import numpy as np
import scipy.sparse as sp


class QuadraticProblem:
    """f(x) = 0.5 x^T A x - b^T x with configurable admissibility.

    Attributes:
        valid_radius: Trial points farther than this from the origin are
            invalid steps.
        finite_radius: Trial points farther than this evaluate to inf.
        step_cap: Value returned by max_step_size.
        calls: Names of the hooks called, in order.
    """

    def __init__(
        self,
        A: np.ndarray,
        b: np.ndarray,
        valid_radius: float = math.inf,
        finite_radius: float = math.inf,
        step_cap: float = 1.0,
        has_hessian: bool = True,
        flip_gradient: bool = False,
    ) -> None:
        self.A = np.asarray(A, dtype=float)
        self.b = np.asarray(b, dtype=float)
        self.valid_radius = valid_radius
        self.finite_radius = finite_radius
        self.step_cap = step_cap
        self.has_hessian = has_hessian
        self.flip_gradient = flip_gradient
        self.stop_when_below: float | None = None
        self.calls: list[str] = []

    @property
    def minimizer(self) -> np.ndarray:
        return np.linalg.solve(self.A, self.b)

    def init(self, x: np.ndarray) -> None:
        self.calls.append("init")

    def value(self, x: np.ndarray) -> float:
        if np.linalg.norm(x) > self.finite_radius:
            return math.inf
        return 0.5 * float(x @ self.A @ x) - float(self.b @ x)

    def gradient(self, x: np.ndarray) -> np.ndarray:
        g = self.A @ x - self.b
        return -g if self.flip_gradient else g

    def hessian(self, x: np.ndarray) -> sp.csr_matrix:
        if not self.has_hessian:
            raise NotImplementedError("no Hessian")
        return sp.csr_matrix(self.A)

    def solution_changed(self, x: np.ndarray) -> None:
        self.calls.append("solution_changed")

    def line_search_begin(self, x0: np.ndarray, x1: np.ndarray) -> None:
        self.calls.append("line_search_begin")

    def line_search_end(self) -> None:
        self.calls.append("line_search_end")

    def is_step_valid(self, x0: np.ndarray, x1: np.ndarray) -> bool:
        return bool(np.linalg.norm(x1) <= self.valid_radius)

    def max_step_size(self, x0: np.ndarray, x1: np.ndarray) -> float:
        return self.step_cap

    def post_step(self, iter_num: int, x: np.ndarray) -> None:
        self.calls.append("post_step")

    def stop(self, x: np.ndarray) -> bool:
        return self.stop_when_below is not None and self.value(x) < self.stop_when_below


def make_quadratic() -> QuadraticProblem:
    """Small SPD quadratic with a unique minimizer."""
    A = np.array([[3.0, 0.5, 0.0], [0.5, 2.0, 0.3], [0.0, 0.3, 1.0]])
    return QuadraticProblem(A, np.array([1.0, -2.0, 0.5]))
