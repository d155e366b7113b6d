"""Newton's method with sparse direct solves."""

from __future__ import annotations

import warnings

import numpy as np
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from core.config import NonlinearSolverParams
from core.logging import ExecutionContext
from core.protocols import NonlinearProblem
from core.types import Vector
from optim.base import NonlinearSolver

__all__ = ["NewtonSolver"]


class NewtonSolver(NonlinearSolver):
    """Solve H d = -g each iteration.

    A singular or indefinite system produces a non-finite or non-descent
    direction, and the base solver then falls back to -grad for that
    iteration. Problems without a Hessian (NotImplementedError) always use
    -grad.
    """

    name = "newton"

    def __init__(
        self,
        params: NonlinearSolverParams | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        super().__init__(params, context)
        self._warned_first_order = False

    def compute_direction(self, problem: NonlinearProblem, x: Vector, grad: Vector) -> Vector:
        try:
            hess = problem.hessian(x)
        except NotImplementedError:
            if not self._warned_first_order:
                self.logger.warning("newton: problem has no Hessian, using gradient steps")
                self._warned_first_order = True
            return -grad

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", MatrixRankWarning)
            try:
                direction = spsolve(hess.tocsc(), -grad)
            except (RuntimeError, np.linalg.LinAlgError) as exc:
                self.logger.debug("newton: linear solve failed (%s)", exc)
                return np.full_like(grad, np.nan)
        return np.atleast_1d(np.asarray(direction, dtype=float))
