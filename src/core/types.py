"""Core type definitions for the differentiable optimization framework.

This module contains:
- Type aliases for state, design and gradient vectors
- The lagging phase enum shared by every lagging-capable form
- Data containers for solver iterations and results
- The error type raised by forward solvers on degenerate configurations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

__all__ = [
    "Vector",
    "LaggingPhase",
    "IterationRecord",
    "History",
    "SolveResult",
    "ForwardSolution",
    "ForwardSolveError",
]

# Type alias for flat numeric vectors (design variables, physical fields, states)
Vector = np.ndarray


class LaggingPhase(Enum):
    """Phase of a lagging-capable form.

    UNINITIALIZED until ``init_lagging`` is called, READY afterwards.
    """

    UNINITIALIZED = "uninitialized"
    READY = "ready"


class ForwardSolveError(RuntimeError):
    """Raised by a forward solver when the physical configuration is degenerate.

    OptimizationProblem.solve_pde converts it into a rejected line-search trial.
    """


@dataclass(frozen=True, slots=True)
class IterationRecord:
    """One accepted iteration of a nonlinear solve.

    Attributes:
        iteration: Zero-based iteration index.
        value: Objective value after the step.
        grad_norm: Gradient norm before the step was taken.
        step_size: Accepted line-search step length.
    """

    iteration: int
    value: float
    grad_norm: float
    step_size: float


@dataclass
class History:
    """Container for the per-iteration records of a solve.

    Example:
        >>> history = History()
        >>> history.append(IterationRecord(0, 1.0, 2.0, 1.0))
        >>> history.append(IterationRecord(1, 0.5, 1.0, 0.5))
        >>> history.values()
        [1.0, 0.5]
    """

    records: list[IterationRecord] = field(default_factory=list)

    def __len__(self) -> int:
        """Return the number of recorded iterations."""
        return len(self.records)

    def append(self, record: IterationRecord) -> None:
        """Append an iteration record."""
        self.records.append(record)

    def last(self) -> IterationRecord:
        """Return the most recent record.

        Raises:
            IndexError: If history is empty.
        """
        return self.records[-1]

    def values(self) -> list[float]:
        """Objective values in iteration order."""
        return [r.value for r in self.records]

    def grad_norms(self) -> list[float]:
        """Gradient norms in iteration order."""
        return [r.grad_norm for r in self.records]

    def step_sizes(self) -> list[float]:
        """Accepted step sizes in iteration order."""
        return [r.step_size for r in self.records]


@dataclass
class SolveResult:
    """Outcome of NonlinearSolver.minimize.

    Attributes:
        x: Final iterate.
        value: Objective value at ``x``.
        grad_norm: Gradient norm at ``x``.
        iterations: Number of accepted iterations.
        converged: Whether a convergence criterion was met.
        status: Short reason the solve stopped (e.g. "grad_norm", "f_delta",
            "max_iterations", "line_search_failed", "stop", "invalid_initial").
        history: Per-iteration records.
    """

    x: Vector
    value: float
    grad_norm: float
    iterations: int
    converged: bool
    status: str
    history: History = field(default_factory=History)


@dataclass(frozen=True)
class ForwardSolution:
    """Result of a forward PDE solve.

    Attributes:
        solution: Physical state vector (meaningless when ``success`` is False).
        success: Whether the solve converged to an admissible configuration.
    """

    solution: Vector
    success: bool
