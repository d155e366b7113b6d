"""Design optimization over a forward solve.

OptimizationProblem maps a design vector x through a parameterization chain
to a physical field, runs the forward solve, evaluates the objective forms on
the resulting state and pulls the state gradient back to x:

    x --chain--> field --solve--> state --objective--> J
    dJ/dx = chain^T ( adjoint(field, state, dJ/dstate) )

A failed forward solve never raises into the optimizer loop: ``value``
returns ``math.inf`` and the line search halves the step.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np
import scipy.sparse as sp

from core.config import OptimizationOutputParams
from core.logging import ExecutionContext, get_logger
from core.protocols import ForwardSolver
from core.types import ForwardSolveError, Vector
from forms.composite import CompositeForm
from parameterization.composite import CompositeParameterization

__all__ = ["OptimizationProblem", "DesignOptimizationProblem"]


class OptimizationProblem(ABC):
    """Bridge between objective forms, a parameterization chain and a forward solve.

    Subclasses implement ``solution_changed``.

    Attributes:
        objective: Forms evaluated on the physical state.
        forward_solver: Physical solve with an adjoint.
        parameterization: Chain from design variables to the physical field.
        design_size: Number of design variables.
        output: Checkpoint settings.
        iter: Number of accepted iterations.
    """

    def __init__(
        self,
        objective: CompositeForm,
        forward_solver: ForwardSolver,
        parameterization: CompositeParameterization | None = None,
        output: OptimizationOutputParams | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        """Initialize the problem.

        Raises:
            ValueError: If the chain output size differs from the forward
                solver's field size.
        """
        self.objective = objective
        self.forward_solver = forward_solver
        field_size = forward_solver.field_size
        if parameterization is None:
            parameterization = CompositeParameterization(input_size=field_size)
        chain_size = parameterization.output_size
        if chain_size is not None and chain_size != field_size:
            raise ValueError(
                f"Parameterization produces {chain_size} values but the forward solve "
                f"expects a field of {field_size}"
            )
        self.parameterization = parameterization
        self.design_size = (
            field_size if parameterization.input_size is None else parameterization.input_size
        )
        self.output = output or OptimizationOutputParams()
        self.logger: logging.Logger = (
            context.child("design") if context is not None else get_logger(__name__)
        )
        self.iter = 0

        # Last evaluated design and what the forward solve produced for it
        self._eval_x: Vector | None = None
        self._eval_field: Vector | None = None
        self._eval_solution: Vector | None = None
        self._eval_success = False

        # Accepted state at the start of the current line search
        self._x_at_ls_begin: Vector | None = None
        self._sol_at_ls_begin: Vector | None = None

        self.cur_val = math.nan
        self._cur_grad: Vector | None = None

    # -------------------------------------------------------------------------
    # Cached quantities
    # -------------------------------------------------------------------------

    @property
    def x_at_ls_begin(self) -> Vector | None:
        return None if self._x_at_ls_begin is None else self._x_at_ls_begin.copy()

    @property
    def sol_at_ls_begin(self) -> Vector | None:
        return None if self._sol_at_ls_begin is None else self._sol_at_ls_begin.copy()

    @property
    def cur_x(self) -> Vector | None:
        return None if self._eval_x is None else self._eval_x.copy()

    @property
    def cur_grad(self) -> Vector | None:
        return None if self._cur_grad is None else self._cur_grad.copy()

    @property
    def solution(self) -> Vector:
        """Physical state of the last successful evaluation.

        Raises:
            RuntimeError: If the last evaluated design had no admissible state.
        """
        if self._eval_solution is None or not self._eval_success:
            raise RuntimeError("No admissible physical state for the current design")
        return self._eval_solution

    # -------------------------------------------------------------------------
    # Forward solve
    # -------------------------------------------------------------------------

    def solve_pde(self, x: Vector) -> bool:
        """Solve the forward problem at ``x`` (cached per design).

        The accepted solution at the start of the line search warm-starts the
        solve. Solver errors on degenerate configurations are converted into
        a False return.

        Returns:
            Whether an admissible state was obtained.
        """
        x = np.asarray(x, dtype=float)
        if self._eval_x is not None and np.array_equal(x, self._eval_x):
            return self._eval_success

        field = self.parameterization.eval(x)
        guess = self._sol_at_ls_begin
        try:
            result = self.forward_solver.solve(field, guess)
            solution, success = result.solution, result.success
        except (ForwardSolveError, np.linalg.LinAlgError) as exc:
            self.logger.warning("forward solve failed: %s", exc)
            solution, success = None, False

        if not success:
            self.logger.warning("no admissible state at iteration %d", self.iter)

        self._eval_x = x.copy()
        self._eval_field = field
        self._eval_solution = None if solution is None else np.asarray(solution, dtype=float)
        self._eval_success = bool(success)
        return self._eval_success

    # -------------------------------------------------------------------------
    # Objective
    # -------------------------------------------------------------------------

    def init(self, x0: Vector) -> None:
        """Solve at the initial design and initialize the objective's lagging.

        Raises:
            ValueError: If ``x0`` does not have ``design_size`` entries.
            RuntimeError: If the initial design is inadmissible.
        """
        if np.asarray(x0).size != self.design_size:
            raise ValueError(
                f"Expected {self.design_size} design variables, got {np.asarray(x0).size}"
            )
        if not self.solve_pde(x0):
            raise RuntimeError("Initial design is inadmissible: forward solve failed")
        state = self.solution
        self._x_at_ls_begin = np.asarray(x0, dtype=float).copy()
        self._sol_at_ls_begin = state.copy()
        self.objective.init(state)
        self.objective.init_lagging(state)

    def value(self, x: Vector) -> float:
        if not self.solve_pde(x):
            return math.inf
        self.cur_val = self.objective.value(self.solution)
        return self.cur_val

    def gradient(self, x: Vector) -> Vector:
        """Design gradient through the adjoint and the parameterization chain.

        Raises:
            RuntimeError: If ``x`` has no admissible state.
        """
        if not self.solve_pde(x):
            raise RuntimeError("Gradient requested at an inadmissible design")
        state = self.solution
        grad_state = self.objective.gradient(state)
        grad_field = self.forward_solver.adjoint(self._eval_field, state, grad_state)
        self._cur_grad = np.asarray(
            self.parameterization.apply_jacobian(np.asarray(x, dtype=float), grad_field),
            dtype=float,
        )
        return self._cur_grad.copy()

    def hessian(self, x: Vector) -> sp.csr_matrix:
        raise NotImplementedError("Design optimization problems provide no Hessian")

    # -------------------------------------------------------------------------
    # Line-search hooks
    # -------------------------------------------------------------------------

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        return bool(np.all(np.isfinite(self.parameterization.eval(x1))))

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        return 1.0

    def line_search_begin(self, x0: Vector, x1: Vector) -> None:
        """Snapshot the accepted design and state before trial steps."""
        if self.solve_pde(x0):
            self._x_at_ls_begin = np.asarray(x0, dtype=float).copy()
            self._sol_at_ls_begin = self.solution.copy()

    def line_search_end(self) -> None:
        """Nothing to release; the snapshot stays as the next warm start."""

    def post_step(self, iter_num: int, x: Vector) -> None:
        """Advance the counter, refresh lagged terms, checkpoint periodically."""
        self.iter += 1
        if self.solve_pde(x):
            state = self.solution
            self.objective.update_lagging(state)
            self.objective.post_step(iter_num, state)
        if self.output.directory and self.iter % self.output.save_frequency == 0:
            self.save_to_file(x)

    @abstractmethod
    def solution_changed(self, x: Vector) -> None:
        """Recompute cached state after the accepted design changed to ``x``."""

    def stop(self, x: Vector) -> bool:
        return False

    # -------------------------------------------------------------------------
    # Checkpointing
    # -------------------------------------------------------------------------

    def state_dict(self) -> dict[str, Any]:
        """JSON-serializable snapshot of the bookkeeping."""
        return {
            "iteration": self.iter,
            "value": None if math.isnan(self.cur_val) else self.cur_val,
            "x": None if self._eval_x is None else self._eval_x.tolist(),
            "field": None if self._eval_field is None else np.asarray(self._eval_field).tolist(),
            "solution": None
            if self._eval_solution is None
            else self._eval_solution.tolist(),
            "grad_norm": None
            if self._cur_grad is None
            else float(np.linalg.norm(self._cur_grad)),
        }

    def save_to_file(self, x: Vector) -> Path:
        """Write ``opt_{iter}.json`` into the output directory.

        Returns:
            Path of the written checkpoint.
        """
        self.solve_pde(x)
        out_dir = Path(self.output.directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"opt_{self.iter}.json"
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.state_dict(), f, indent=2)
        self.logger.info("saved checkpoint %s", path)
        return path


class DesignOptimizationProblem(OptimizationProblem):
    """Design problem whose only cached state is the forward solution."""

    def solution_changed(self, x: Vector) -> None:
        if not self.solve_pde(x):
            raise RuntimeError("Accepted design has no admissible state")
        state = self.solution
        self._x_at_ls_begin = np.asarray(x, dtype=float).copy()
        self._sol_at_ls_begin = state.copy()
        self.objective.solution_changed(state)
