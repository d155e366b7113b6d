"""Problems module.

This package contains what the nonlinear solver minimizes:
- FormProblem: a CompositeForm as a nonlinear problem, with staggered lagging
- SpringNetworkSolver: reference forward solve with an adjoint
- OptimizationProblem, DesignOptimizationProblem: design optimization over a forward solve
- Time integrators and TimeSteppingSolver for implicit dynamics
"""

from __future__ import annotations

from problems.forward import SpringNetworkSolver
from problems.nl_problem import FormProblem
from problems.optimization_problem import DesignOptimizationProblem, OptimizationProblem
from problems.time_integrator import (
    BDF,
    ImplicitEuler,
    ImplicitNewmark,
    TimeIntegrator,
    make_time_integrator,
)
from problems.transient import Obstacle, TimeSteppingSolver, Trajectory

__all__ = [
    "FormProblem",
    "SpringNetworkSolver",
    # Design optimization
    "OptimizationProblem",
    "DesignOptimizationProblem",
    # Time integration
    "TimeIntegrator",
    "BDF",
    "ImplicitEuler",
    "ImplicitNewmark",
    "make_time_integrator",
    "Obstacle",
    "Trajectory",
    "TimeSteppingSolver",
]
