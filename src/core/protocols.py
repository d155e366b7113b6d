"""Protocol definitions for the differentiable optimization framework.

This module contains Protocol classes defining interfaces for:
- Energy forms: weighted scalar terms with value, gradient and Hessian
- Parameterizations: differentiable vector maps with reverse-mode gradients
- Nonlinear problems: what the generic nonlinear solver drives
- Forward solvers: the physical solve consumed by design optimization
- Weight-update policies: outer schedules that rewrite a form's weight
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import scipy.sparse as sp

from core.types import ForwardSolution, LaggingPhase, SolveResult, Vector

__all__ = [
    "EnergyForm",
    "Parameterization",
    "NonlinearProblem",
    "NonlinearSolverLike",
    "ForwardSolver",
    "WeightUpdatePolicy",
]


@runtime_checkable
class EnergyForm(Protocol):
    """Protocol for a single weighted energy or penalty term over a state vector.

    Contract:
    - ``value``/``gradient``/``hessian`` are the weighted quantities
    - Evaluations never mutate lagged state, so repeated evaluation at the
      same ``x`` between two ``update_lagging`` calls is idempotent
    """

    @property
    def weight(self) -> float:
        """Non-negative scalar weight applied to every evaluation."""
        ...

    def set_weight(self, weight: float) -> None:
        """Replace the weight (outer schedules call this between solves)."""
        ...

    def value(self, x: Vector) -> float:
        """Weighted value at ``x``."""
        ...

    def gradient(self, x: Vector) -> Vector:
        """Weighted gradient at ``x``."""
        ...

    def hessian(self, x: Vector) -> sp.csr_matrix:
        """Weighted sparse Hessian at ``x``."""
        ...

    def init_lagging(self, x: Vector) -> None:
        """Capture the lagged reference state at the start of an outer loop."""
        ...

    def update_lagging(self, x: Vector) -> None:
        """Refresh the lagged reference state to ``x``."""
        ...

    def uses_lagging(self) -> bool:
        """Whether this form depends on lagged state."""
        ...

    @property
    def lagging_phase(self) -> LaggingPhase:
        """Current phase of the lagging state machine."""
        ...


@runtime_checkable
class Parameterization(Protocol):
    """Protocol for a differentiable map f: x -> y.

    Note:
        ``inverse_eval`` is optional. Implementations without an inverse
        raise NotImplementedError.
    """

    def size(self, x_size: int) -> int:
        """Output dimension for an input of dimension ``x_size``.

        Raises:
            ValueError: If ``x_size`` is not a valid input dimension.
        """
        ...

    def eval(self, x: Vector) -> Vector:
        """Forward map."""
        ...

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        """Pull ``grad_full`` (wrt the output at ``eval(x)``) back to the input."""
        ...

    def inverse_eval(self, y: Vector) -> Vector:
        """Inverse map.

        Raises:
            NotImplementedError: If the map is not invertible.
        """
        ...


@runtime_checkable
class NonlinearProblem(Protocol):
    """Protocol for problems driven by the generic nonlinear solver."""

    def init(self, x: Vector) -> None:
        """Called once before the first iteration."""
        ...

    def value(self, x: Vector) -> float:
        """Objective value; ``math.inf`` marks an inadmissible point."""
        ...

    def gradient(self, x: Vector) -> Vector:
        """Objective gradient."""
        ...

    def hessian(self, x: Vector) -> sp.csr_matrix:
        """Objective Hessian.

        Raises:
            NotImplementedError: If the problem is first-order only.
        """
        ...

    def solution_changed(self, x: Vector) -> None:
        """The accepted iterate changed to ``x``."""
        ...

    def line_search_begin(self, x0: Vector, x1: Vector) -> None:
        """A line search from ``x0`` towards ``x1`` is starting."""
        ...

    def line_search_end(self) -> None:
        """The current line search finished."""
        ...

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        """Whether ``x1`` is an admissible trial point."""
        ...

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        """Largest admissible fraction of the step ``x1 - x0``."""
        ...

    def post_step(self, iter_num: int, x: Vector) -> None:
        """Called after each accepted iteration."""
        ...

    def stop(self, x: Vector) -> bool:
        """Problem-specific convergence hook."""
        ...


@runtime_checkable
class NonlinearSolverLike(Protocol):
    """Protocol for the generic nonlinear solver."""

    def minimize(self, problem: NonlinearProblem, x0: Vector) -> SolveResult:
        """Minimize ``problem`` starting from ``x0``."""
        ...


@runtime_checkable
class ForwardSolver(Protocol):
    """Protocol for the forward PDE solve consumed by design optimization.

    Contract:
    - ``solve`` never raises on non-convergence; it reports ``success=False``
      (a degenerate configuration may raise ForwardSolveError instead)
    - ``adjoint`` returns the total derivative of a scalar J(solution(field))
      with respect to ``field`` given dJ/dsolution
    - ``field_size`` is the number of physical field entries ``solve`` accepts
    """

    @property
    def field_size(self) -> int:
        """Number of entries of the physical field."""
        ...

    def solve(self, field: Vector, initial_guess: Vector | None = None) -> ForwardSolution:
        """Solve the physical problem for the given physical field."""
        ...

    def adjoint(self, field: Vector, solution: Vector, grad_solution: Vector) -> Vector:
        """Propagate a state gradient to a physical-field gradient."""
        ...


@runtime_checkable
class WeightUpdatePolicy(Protocol):
    """Protocol for outer-loop weight schedules (e.g. augmented Lagrangian)."""

    def reset(self, form: EnergyForm) -> None:
        """Set the form's weight to the schedule's initial value."""
        ...

    def update(self, form: EnergyForm, x: Vector) -> bool:
        """Rewrite the form's weight after an outer iteration.

        Returns:
            True if the weight changed.
        """
        ...
