"""Limited-memory BFGS.

Directions come from the standard two-loop recursion over the last
``history_size`` curvature pairs (s, y). Pairs with s.y <= 0 are skipped so
the implicit inverse Hessian stays positive definite.
"""

from __future__ import annotations

from collections import deque

import numpy as np

from core.config import NonlinearSolverParams
from core.logging import ExecutionContext
from core.protocols import NonlinearProblem
from core.types import Vector
from optim.base import NonlinearSolver

__all__ = ["LBFGSSolver"]


class LBFGSSolver(NonlinearSolver):
    """L-BFGS with a fixed-size curvature memory.

    Attributes:
        history_size: Number of stored (s, y) pairs.
    """

    name = "lbfgs"

    def __init__(
        self,
        params: NonlinearSolverParams | None = None,
        context: ExecutionContext | None = None,
        history_size: int = 6,
    ) -> None:
        """Initialize the solver.

        Raises:
            ValueError: If history_size < 1.
        """
        super().__init__(params, context)
        if history_size < 1:
            raise ValueError(f"history_size must be >= 1, got {history_size}")
        self.history_size = history_size
        self._s: deque[Vector] = deque(maxlen=history_size)
        self._y: deque[Vector] = deque(maxlen=history_size)

    def reset(self, ndof: int) -> None:
        self._s.clear()
        self._y.clear()

    def update(self, s: Vector, y: Vector) -> None:
        if float(s @ y) > 1e-12 * float(np.linalg.norm(s)) * float(np.linalg.norm(y)):
            self._s.append(s.copy())
            self._y.append(y.copy())

    def compute_direction(self, problem: NonlinearProblem, x: Vector, grad: Vector) -> Vector:
        q = grad.copy()
        alphas = []
        for s, y in zip(reversed(self._s), reversed(self._y)):
            rho = 1.0 / float(y @ s)
            alpha = rho * float(s @ q)
            q -= alpha * y
            alphas.append((rho, alpha))

        if self._s:
            s, y = self._s[-1], self._y[-1]
            q *= float(s @ y) / float(y @ y)

        for (s, y), (rho, alpha) in zip(zip(self._s, self._y), reversed(alphas)):
            beta = rho * float(y @ q)
            q += (alpha - beta) * s
        return -q
