"""Gradient descent with line search.

The step along -grad is chosen by the configured line search, so there is no
learning rate to tune. This is the baseline solver and the fallback of the
second-order ones.
"""

from __future__ import annotations

from core.protocols import NonlinearProblem
from core.types import Vector
from optim.base import NonlinearSolver

__all__ = ["GradientDescentSolver"]


class GradientDescentSolver(NonlinearSolver):
    """Steepest descent: d = -grad."""

    name = "gradient_descent"

    def compute_direction(self, problem: NonlinearProblem, x: Vector, grad: Vector) -> Vector:
        return -grad
