"""Base class for weighted energy forms.

Every form implements three unweighted quantities. The public ``value``,
``gradient`` and ``hessian`` apply the weight uniformly, so an outer schedule
can rewrite the weight without touching any form's math.

Lagging forms additionally hold a private reference state that is fixed
between ``init_lagging``/``update_lagging`` calls. Their phase is explicit and
checked on every evaluation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
import scipy.sparse as sp

from core.types import LaggingPhase, Vector

__all__ = ["Form"]


class Form(ABC):
    """Abstract base class for a single weighted scalar term.

    Subclasses implement:
    - value_unweighted(x): scalar energy
    - first_derivative_unweighted(x): gradient vector
    - second_derivative_unweighted(x): sparse Hessian

    Lagging subclasses also override ``uses_lagging`` and the
    ``_init_lagging``/``_update_lagging`` hooks.

    Attributes:
        weight: Non-negative scalar applied to every public evaluation.
        enabled: Disabled forms contribute zeros with the same structure.
    """

    def __init__(self, weight: float = 1.0) -> None:
        """Initialize the form.

        Args:
            weight: Non-negative scalar weight.

        Raises:
            ValueError: If weight < 0.
        """
        self._weight = self._validate_weight(weight)
        self._enabled = True
        self._lagging_phase = LaggingPhase.UNINITIALIZED

    @staticmethod
    def _validate_weight(weight: float) -> float:
        weight = float(weight)
        if not weight >= 0:
            raise ValueError(f"Form weight must be non-negative, got {weight}")
        return weight

    # -------------------------------------------------------------------------
    # Weight and enable flag
    # -------------------------------------------------------------------------

    @property
    def weight(self) -> float:
        return self._weight

    def set_weight(self, weight: float) -> None:
        """Replace the weight.

        Raises:
            ValueError: If weight < 0.
        """
        self._weight = self._validate_weight(weight)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    # -------------------------------------------------------------------------
    # Unweighted math (implemented by each variant)
    # -------------------------------------------------------------------------

    @abstractmethod
    def value_unweighted(self, x: Vector) -> float:
        """Compute the unweighted energy at ``x``."""

    @abstractmethod
    def first_derivative_unweighted(self, x: Vector) -> Vector:
        """Compute the unweighted gradient at ``x``."""

    @abstractmethod
    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        """Compute the unweighted sparse Hessian at ``x``."""

    # -------------------------------------------------------------------------
    # Weighted public API
    # -------------------------------------------------------------------------

    def value(self, x: Vector) -> float:
        """Weighted value; zero when disabled."""
        self._check_lagging_ready()
        if not self._enabled:
            return 0.0
        return self._weight * float(self.value_unweighted(x))

    def gradient(self, x: Vector) -> Vector:
        """Weighted gradient; zeros when disabled."""
        self._check_lagging_ready()
        if not self._enabled:
            return np.zeros(np.asarray(x).shape, dtype=float)
        return self._weight * np.asarray(self.first_derivative_unweighted(x), dtype=float)

    def hessian(self, x: Vector) -> sp.csr_matrix:
        """Weighted Hessian; a disabled form keeps its sparsity pattern with zero values."""
        self._check_lagging_ready()
        scale = self._weight if self._enabled else 0.0
        hess = sp.csr_matrix(self.second_derivative_unweighted(x), dtype=float)
        # Scalar multiplication keeps explicit entries, zeros included
        return hess * scale

    # -------------------------------------------------------------------------
    # Lifecycle hooks (no-ops by default)
    # -------------------------------------------------------------------------

    def init(self, x: Vector) -> None:
        """Called once with the initial state before a solve."""

    def solution_changed(self, x: Vector) -> None:
        """Called when the accepted state changes."""

    def line_search_begin(self, x0: Vector, x1: Vector) -> None:
        """Called before a line search from ``x0`` towards ``x1``."""

    def line_search_end(self) -> None:
        """Called after a line search."""

    def post_step(self, iter_num: int, x: Vector) -> None:
        """Called after an accepted iteration."""

    def update_quantities(self, t: float, x: Vector) -> None:
        """Called at the start of a time step with the previous state."""

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        """Whether the trial state ``x1`` is admissible for this form."""
        return True

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        """Largest admissible fraction of the step ``x1 - x0``."""
        return 1.0

    # -------------------------------------------------------------------------
    # Lagging protocol
    # -------------------------------------------------------------------------

    def uses_lagging(self) -> bool:
        """Whether this form depends on lagged state."""
        return False

    def max_lagging_iterations(self) -> int:
        """Maximum number of lagging updates this form asks for."""
        return 1

    @property
    def lagging_phase(self) -> LaggingPhase:
        return self._lagging_phase

    def init_lagging(self, x: Vector) -> None:
        """Capture the lagged reference state at the start of an outer loop."""
        self._init_lagging(np.asarray(x, dtype=float))
        self._lagging_phase = LaggingPhase.READY

    def update_lagging(self, x: Vector) -> None:
        """Refresh the lagged reference state to ``x``.

        Raises:
            RuntimeError: If a lagging form was never initialized.
        """
        if self.uses_lagging() and self._lagging_phase is LaggingPhase.UNINITIALIZED:
            raise RuntimeError(
                f"{type(self).__name__}.update_lagging called before init_lagging"
            )
        self._update_lagging(np.asarray(x, dtype=float))
        self._lagging_phase = LaggingPhase.READY

    def _init_lagging(self, x: Vector) -> None:
        """Variant hook for ``init_lagging``."""

    def _update_lagging(self, x: Vector) -> None:
        """Variant hook for ``update_lagging``; defaults to re-initializing."""
        self._init_lagging(x)

    def _check_lagging_ready(self) -> None:
        if self.uses_lagging() and self._lagging_phase is LaggingPhase.UNINITIALIZED:
            raise RuntimeError(f"{type(self).__name__} evaluated before init_lagging")
