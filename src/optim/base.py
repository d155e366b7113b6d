"""Base class for the generic nonlinear solver.

``NonlinearSolver.minimize`` is a template method: it owns the iteration
loop, line search, convergence tests and bookkeeping, and calls
``compute_direction`` (and the optional ``update`` / ``reset`` hooks) of the
concrete solver.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod

import numpy as np

from core.config import NonlinearSolverParams
from core.logging import ExecutionContext, get_logger
from core.protocols import NonlinearProblem
from core.types import History, IterationRecord, SolveResult, Vector
from optim.line_search import LineSearch, make_line_search

__all__ = ["NonlinearSolver"]


class NonlinearSolver(ABC):
    """Line-search descent method driving a NonlinearProblem.

    Attributes:
        params: Convergence and line-search configuration.
        line_search: Line search built from ``params.line_search``.
        logger: Logger of the run.
    """

    name = "nonlinear"

    def __init__(
        self,
        params: NonlinearSolverParams | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        self.params = params or NonlinearSolverParams(solver=self.name)
        self.logger: logging.Logger = (
            context.child("optim") if context is not None else get_logger(__name__)
        )
        self.line_search: LineSearch = make_line_search(
            self.params.line_search, self.params.min_step_size, self.logger
        )

    @abstractmethod
    def compute_direction(self, problem: NonlinearProblem, x: Vector, grad: Vector) -> Vector:
        """Search direction at ``x``."""

    def reset(self, ndof: int) -> None:
        """Discard any curvature memory."""

    def update(self, s: Vector, y: Vector) -> None:
        """Record the accepted step ``s`` and gradient change ``y``."""

    def minimize(self, problem: NonlinearProblem, x0: Vector) -> SolveResult:
        """Minimize ``problem`` from ``x0``.

        Args:
            problem: Problem implementing the NonlinearProblem protocol.
            x0: Initial iterate (not modified).

        Returns:
            SolveResult with the final iterate, status and history.
        """
        p = self.params
        x = np.array(x0, dtype=float, copy=True)
        history = History()
        problem.init(x)

        f = problem.value(x)
        if not math.isfinite(f):
            self.logger.warning("%s: initial point is not admissible", self.name)
            return SolveResult(x, f, math.inf, 0, False, "invalid_initial", history)

        g = problem.gradient(x)
        grad_tol = p.grad_norm * float(np.linalg.norm(g)) if p.relative_gradient else p.grad_norm
        self.reset(x.size)

        status = "max_iterations"
        converged = False
        iterations = 0
        for it in range(p.max_iterations):
            grad_norm = float(np.linalg.norm(g))
            if p.use_grad_norm and grad_norm <= grad_tol:
                status, converged = "grad_norm", True
                break
            if problem.stop(x):
                status, converged = "stop", True
                break

            direction = self._descent_direction(problem, x, g)
            ls = self.line_search.search(problem, x, direction, f, g)
            if not ls.success and not np.array_equal(direction, -g):
                self.logger.debug("%s: retrying line search along -grad", self.name)
                self.reset(x.size)
                ls = self.line_search.search(problem, x, -g, f, g)
            if not ls.success:
                status = "line_search_failed"
                break

            x_new = ls.x
            problem.solution_changed(x_new)
            problem.post_step(it, x_new)
            # post_step may refresh lagged terms, so re-evaluate at the new point
            f_new = problem.value(x_new)
            g_new = problem.gradient(x_new)
            self.update(x_new - x, g_new - g)

            delta_f = f - ls.value
            x, f, g = x_new, f_new, g_new
            iterations += 1
            history.append(IterationRecord(it, f, grad_norm, ls.step))
            self.logger.debug(
                "%s iter %d: f=%.6e |g|=%.3e step=%.3e", self.name, it, f, grad_norm, ls.step
            )

            if p.f_delta > 0 and abs(delta_f) < p.f_delta:
                status, converged = "f_delta", True
                break
        else:
            if p.use_grad_norm and float(np.linalg.norm(g)) <= grad_tol:
                status, converged = "grad_norm", True

        final_grad_norm = float(np.linalg.norm(g))
        self.logger.info(
            "%s finished: status=%s iterations=%d f=%.6e |g|=%.3e",
            self.name,
            status,
            iterations,
            f,
            final_grad_norm,
        )
        return SolveResult(x, f, final_grad_norm, iterations, converged, status, history)

    def _descent_direction(self, problem: NonlinearProblem, x: Vector, g: Vector) -> Vector:
        direction = self.compute_direction(problem, x, g)
        if not np.all(np.isfinite(direction)) or float(g @ direction) >= 0:
            if float(np.linalg.norm(g)) > 0:
                self.logger.debug("%s: not a descent direction, using -grad", self.name)
            self.reset(x.size)
            direction = -g
        return direction
