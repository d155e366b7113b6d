"""Line searches for the generic nonlinear solver.

This module provides:
- LineSearchResult: outcome of one search
- BacktrackingLineSearch: accepts any decrease of the objective
- ArmijoLineSearch: accepts a sufficient decrease f(x + a d) <= f(x) + c a g.d
- make_line_search: construct a line search from LineSearchParams

Both searches start at ``min(1, problem.max_step_size)`` and halve the step
whenever the trial is inadmissible (``is_step_valid`` is False or the value
is not finite) or not accepted. A non-finite value is how a design problem
reports a failed forward solve, so such trials shrink the step instead of
aborting the solve.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from core.config import LineSearchParams
from core.logging import get_logger
from core.protocols import NonlinearProblem
from core.types import Vector

__all__ = [
    "LineSearchResult",
    "LineSearch",
    "BacktrackingLineSearch",
    "ArmijoLineSearch",
    "make_line_search",
]

# Smallest step any line search tries
MIN_STEP_FLOOR = 1e-12


@dataclass(frozen=True)
class LineSearchResult:
    """Outcome of a line search.

    Attributes:
        success: Whether a trial point was accepted.
        step: Accepted step length (last tried step on failure).
        x: Accepted point (the start point on failure).
        value: Objective at ``x``.
        trials: Number of trial points evaluated.
    """

    success: bool
    step: float
    x: Vector
    value: float
    trials: int


class LineSearch(ABC):
    """Step-halving line search skeleton.

    Subclasses implement ``accept`` (the decrease condition).
    """

    def __init__(
        self,
        params: LineSearchParams | None = None,
        min_step_size: float = 0.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.params = params or LineSearchParams()
        self.min_step_size = max(min_step_size, MIN_STEP_FLOOR)
        self.logger = logger or get_logger(__name__)

    @abstractmethod
    def accept(self, f0: float, f1: float, step: float, slope: float) -> bool:
        """Decrease condition for a finite trial value ``f1``."""

    def search(
        self,
        problem: NonlinearProblem,
        x: Vector,
        direction: Vector,
        value: float,
        grad: Vector,
    ) -> LineSearchResult:
        """Search along ``direction`` from ``x``.

        Args:
            problem: Problem providing values and step admissibility.
            x: Current iterate.
            direction: Descent direction.
            value: Objective at ``x``.
            grad: Gradient at ``x``.

        Returns:
            LineSearchResult describing the accepted (or last) trial.
        """
        x1 = x + direction
        problem.line_search_begin(x, x1)
        slope = float(grad @ direction)
        grad_norm = float(np.linalg.norm(grad))
        step = min(1.0, problem.max_step_size(x, x1))
        trials = 0

        try:
            while step >= self.min_step_size:
                trial = x + step * direction
                trials += 1
                if not problem.is_step_valid(x, trial):
                    self.logger.debug("step %.3e rejected: invalid step", step)
                    step *= 0.5
                    continue
                f_trial = problem.value(trial)
                if not math.isfinite(f_trial):
                    self.logger.warning("step %.3e rejected: no admissible point", step)
                    step *= 0.5
                    continue
                if self.accept(value, f_trial, step, slope):
                    return LineSearchResult(True, step, trial, f_trial, trials)
                if self._accept_by_grad_norm(problem, value, f_trial, trial, grad_norm):
                    return LineSearchResult(True, step, trial, f_trial, trials)
                step *= 0.5
        finally:
            problem.line_search_end()

        self.logger.warning("line search failed after %d trials (step %.3e)", trials, step)
        return LineSearchResult(False, step, x, value, trials)

    def _accept_by_grad_norm(
        self,
        problem: NonlinearProblem,
        f0: float,
        f1: float,
        trial: Vector,
        grad_norm: float,
    ) -> bool:
        # Near the optimum energy differences drown in round-off; fall back to the gradient
        tol = self.params.use_grad_norm_tol
        if tol <= 0 or abs(f1 - f0) >= tol:
            return False
        return float(np.linalg.norm(problem.gradient(trial))) < grad_norm


class BacktrackingLineSearch(LineSearch):
    """Accept any strict decrease of the objective."""

    def accept(self, f0: float, f1: float, step: float, slope: float) -> bool:
        return f1 < f0


class ArmijoLineSearch(LineSearch):
    """Accept a sufficient decrease.

    Attributes:
        c: Armijo constant.
    """

    def __init__(
        self,
        params: LineSearchParams | None = None,
        min_step_size: float = 0.0,
        logger: logging.Logger | None = None,
        c: float = 1e-4,
    ) -> None:
        super().__init__(params, min_step_size, logger)
        if not 0 < c < 1:
            raise ValueError(f"Armijo constant must be in (0, 1), got {c}")
        self.c = c

    def accept(self, f0: float, f1: float, step: float, slope: float) -> bool:
        return f1 <= f0 + self.c * step * slope


_LINE_SEARCHES: dict[str, type[LineSearch]] = {
    "backtracking": BacktrackingLineSearch,
    "armijo": ArmijoLineSearch,
}


def make_line_search(
    params: LineSearchParams, min_step_size: float = 0.0, logger: logging.Logger | None = None
) -> LineSearch:
    """Construct the line search named by ``params.method``."""
    try:
        cls = _LINE_SEARCHES[params.method]
    except KeyError:
        available = ", ".join(sorted(_LINE_SEARCHES))
        raise ValueError(f"Unknown line search '{params.method}'. Available: {available}") from None
    return cls(params, min_step_size, logger)
