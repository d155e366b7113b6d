"""Adapter from a CompositeForm to the nonlinear-problem contract."""

from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp

from core.logging import ExecutionContext, get_logger
from core.protocols import NonlinearSolverLike
from core.types import SolveResult, Vector
from forms.composite import CompositeForm

__all__ = ["FormProblem"]


class FormProblem:
    """Minimize the sum of forms over the state.

    Every NonlinearProblem hook is forwarded to the forms, so barrier and
    friction terms can veto or shorten steps.
    """

    def __init__(self, form: CompositeForm, context: ExecutionContext | None = None) -> None:
        self.form = form
        self.logger: logging.Logger = (
            context.child("problem") if context is not None else get_logger(__name__)
        )

    def init(self, x: Vector) -> None:
        self.form.init(x)

    def value(self, x: Vector) -> float:
        return self.form.value(x)

    def gradient(self, x: Vector) -> Vector:
        return self.form.gradient(x)

    def hessian(self, x: Vector) -> sp.csr_matrix:
        return self.form.hessian(x)

    def solution_changed(self, x: Vector) -> None:
        self.form.solution_changed(x)

    def line_search_begin(self, x0: Vector, x1: Vector) -> None:
        self.form.line_search_begin(x0, x1)

    def line_search_end(self) -> None:
        self.form.line_search_end()

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        return self.form.is_step_valid(x0, x1)

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        return self.form.max_step_size(x0, x1)

    def post_step(self, iter_num: int, x: Vector) -> None:
        self.form.post_step(iter_num, x)

    def stop(self, x: Vector) -> bool:
        return False

    def solve_with_lagging(
        self,
        solver: NonlinearSolverLike,
        x0: Vector,
        max_iterations: int | None = None,
        tol: float = 1e-2,
    ) -> SolveResult:
        """Staggered solve: init_lagging, then alternate solve and update_lagging.

        Args:
            solver: Inner nonlinear solver.
            x0: Initial state.
            max_iterations: Number of inner solves; defaults to the largest
                ``max_lagging_iterations`` of the forms.
            tol: Stop when the gradient after an update is below this norm.

        Returns:
            Result of the last inner solve.
        """
        if max_iterations is None:
            max_iterations = self.form.max_lagging_iterations()
        max_iterations = max(1, max_iterations)

        self.form.init_lagging(x0)
        result = solver.minimize(self, x0)
        if not self.form.uses_lagging():
            return result

        for i in range(1, max_iterations):
            self.form.update_lagging(result.x)
            grad_norm = float(np.linalg.norm(self.gradient(result.x)))
            self.logger.debug("lagging iteration %d: |g|=%.3e", i, grad_norm)
            if grad_norm <= tol:
                break
            result = solver.minimize(self, result.x)
        return result
