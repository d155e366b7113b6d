"""Solver registry keyed by solver family name."""

from __future__ import annotations

from core.config import NonlinearSolverParams
from core.logging import ExecutionContext
from optim.base import NonlinearSolver
from optim.gradient_descent import GradientDescentSolver
from optim.lbfgs import LBFGSSolver
from optim.newton import NewtonSolver

__all__ = ["SOLVERS", "make_solver"]

SOLVERS: dict[str, type[NonlinearSolver]] = {
    "newton": NewtonSolver,
    "lbfgs": LBFGSSolver,
    "gradient_descent": GradientDescentSolver,
}


def make_solver(
    params: NonlinearSolverParams | None = None, context: ExecutionContext | None = None
) -> NonlinearSolver:
    """Construct the solver named by ``params.solver``.

    Raises:
        ValueError: If the family is not registered.
    """
    params = params or NonlinearSolverParams()
    if params.solver not in SOLVERS:
        raise ValueError(
            f"Unknown solver '{params.solver}'. Available: {', '.join(sorted(SOLVERS))}"
        )
    return SOLVERS[params.solver](params, context)
