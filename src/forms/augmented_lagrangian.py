"""Augmented-Lagrangian penalty for Dirichlet-type equality constraints.

This module provides:
- BoundaryPenaltyForm: 0.5 * ||x[idx] - target||^2 over constrained entries
- AugmentedLagrangianPolicy: doubles the penalty weight between outer
  iterations while the constraint is violated
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.config import AugmentedLagrangianParams
from core.types import Vector
from forms.base import Form

__all__ = ["BoundaryPenaltyForm", "AugmentedLagrangianPolicy"]


class BoundaryPenaltyForm(Form):
    """Quadratic penalty pulling selected entries towards fixed targets.

    Attributes:
        indices: Constrained entries of the state.
        target: Target values, one per index.
    """

    def __init__(self, indices: np.ndarray, target: Vector, weight: float = 1.0) -> None:
        """Initialize the penalty.

        Raises:
            ValueError: If indices and target differ in length or indices repeat.
        """
        super().__init__(weight)
        self.indices = np.asarray(indices, dtype=int).ravel()
        self.target = np.asarray(target, dtype=float).ravel()
        if self.indices.shape != self.target.shape:
            raise ValueError(
                f"indices ({self.indices.size}) and target ({self.target.size}) differ in length"
            )
        if np.unique(self.indices).size != self.indices.size:
            raise ValueError("indices must be unique")

    def _residual(self, x: Vector) -> Vector:
        return np.asarray(x, dtype=float)[self.indices] - self.target

    def constraint_violation(self, x: Vector) -> float:
        """Euclidean norm of ``x[indices] - target``."""
        return float(np.linalg.norm(self._residual(x)))

    def project(self, x: Vector) -> Vector:
        """Return a copy of ``x`` with the targets written in."""
        out = np.array(x, dtype=float, copy=True)
        out[self.indices] = self.target
        return out

    def value_unweighted(self, x: Vector) -> float:
        r = self._residual(x)
        return 0.5 * float(r @ r)

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        grad = np.zeros(np.asarray(x).size)
        grad[self.indices] = self._residual(x)
        return grad

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        n = np.asarray(x).size
        ones = np.ones(self.indices.size)
        return sp.coo_matrix((ones, (self.indices, self.indices)), shape=(n, n)).tocsr()


class AugmentedLagrangianPolicy:
    """Weight schedule for BoundaryPenaltyForm members.

    Forms of any other type are left untouched, so the policy can be applied
    to every member of a CompositeForm.

    Attributes:
        params: Initial and maximum weight.
        tolerance: Violation below which the constraint counts as satisfied.
    """

    def __init__(self, params: AugmentedLagrangianParams, tolerance: float = 1e-5) -> None:
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")
        self.params = params
        self.tolerance = tolerance

    def reset(self, form: Form) -> None:
        if isinstance(form, BoundaryPenaltyForm):
            form.set_weight(self.params.initial_weight)

    def update(self, form: Form, x: Vector) -> bool:
        if not isinstance(form, BoundaryPenaltyForm):
            return False
        if form.constraint_violation(x) <= self.tolerance:
            return False
        if form.weight >= self.params.max_weight:
            return False
        form.set_weight(min(2.0 * form.weight, self.params.max_weight))
        return True

    def satisfied(self, form: BoundaryPenaltyForm, x: Vector) -> bool:
        return form.constraint_violation(x) <= self.tolerance
