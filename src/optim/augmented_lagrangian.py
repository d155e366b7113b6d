"""Augmented-Lagrangian outer loop for boundary constraints.

The constraint is first imposed directly by projecting the initial state,
unless that step is inadmissible or ``force`` is set. The penalty weight then
doubles after each inner solve that leaves the constraint violated, up to
``max_weight``.
"""

from __future__ import annotations

import math

from core.config import AugmentedLagrangianParams
from core.logging import ExecutionContext, get_logger
from core.protocols import NonlinearProblem
from core.types import SolveResult, Vector
from forms.augmented_lagrangian import AugmentedLagrangianPolicy, BoundaryPenaltyForm
from optim.base import NonlinearSolver

__all__ = ["ALSolver"]


class ALSolver:
    """Penalty continuation around a NonlinearSolver.

    Attributes:
        solver: Inner nonlinear solver.
        policy: Weight schedule of the penalty form.
    """

    def __init__(
        self,
        solver: NonlinearSolver,
        params: AugmentedLagrangianParams | None = None,
        tolerance: float = 1e-5,
        context: ExecutionContext | None = None,
    ) -> None:
        self.solver = solver
        self.params = params or AugmentedLagrangianParams()
        self.policy = AugmentedLagrangianPolicy(self.params, tolerance)
        self.logger = context.child("al") if context is not None else get_logger(__name__)

    def solve(
        self, problem: NonlinearProblem, penalty: BoundaryPenaltyForm, x0: Vector
    ) -> SolveResult:
        """Minimize ``problem`` (whose objective contains ``penalty``) subject to the constraint.

        Raises:
            RuntimeError: If the weight reaches ``max_weight`` with the
                constraint still violated.
        """
        x = x0
        if not self.params.force:
            x_proj = penalty.project(x0)
            if problem.is_step_valid(x0, x_proj) and math.isfinite(problem.value(x_proj)):
                x = x_proj
            else:
                self.logger.info("cannot impose constraint directly, using penalty continuation")

        self.policy.reset(penalty)
        while True:
            result = self.solver.minimize(problem, x)
            x = result.x
            violation = penalty.constraint_violation(x)
            if self.policy.satisfied(penalty, x):
                self.logger.info(
                    "constraint satisfied (violation %.3e, weight %.3e)", violation, penalty.weight
                )
                return result
            if not self.policy.update(penalty, x):
                raise RuntimeError(
                    f"Augmented Lagrangian reached max_weight={self.params.max_weight:g} "
                    f"with constraint violation {violation:.3e}"
                )
            self.logger.info(
                "constraint violation %.3e, increasing weight to %.3e", violation, penalty.weight
            )
