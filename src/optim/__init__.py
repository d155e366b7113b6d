"""Optimization algorithms module.

This package contains the generic nonlinear solver:
- NonlinearSolver: line-search descent loop (template method)
- GradientDescentSolver, NewtonSolver, LBFGSSolver: direction strategies
- BacktrackingLineSearch, ArmijoLineSearch: step-halving line searches
- make_solver: construct a solver from NonlinearSolverParams
- ALSolver: augmented-Lagrangian outer loop
"""

from __future__ import annotations

from optim.augmented_lagrangian import ALSolver
from optim.base import NonlinearSolver
from optim.gradient_descent import GradientDescentSolver
from optim.lbfgs import LBFGSSolver
from optim.line_search import (
    ArmijoLineSearch,
    BacktrackingLineSearch,
    LineSearch,
    LineSearchResult,
    make_line_search,
)
from optim.newton import NewtonSolver
from optim.registry import SOLVERS, make_solver

__all__ = [
    # Solvers
    "NonlinearSolver",
    "GradientDescentSolver",
    "NewtonSolver",
    "LBFGSSolver",
    "ALSolver",
    "SOLVERS",
    "make_solver",
    # Line search
    "LineSearch",
    "LineSearchResult",
    "BacktrackingLineSearch",
    "ArmijoLineSearch",
    "make_line_search",
]
