"""Inertia term of an implicit time step.

    E(x) = 0.5 / s * (x - x_tilde)^T M (x - x_tilde)

with M the mass matrix, x_tilde the integrator's predicted state and s its
acceleration scaling (dt^2 for implicit Euler). Minimizing inertia plus the
potential energies reproduces one implicit step.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.types import Vector
from forms.base import Form

__all__ = ["InertiaForm"]


class InertiaForm(Form):
    """Incremental-potential inertia term."""

    def __init__(
        self, mass: sp.spmatrix | np.ndarray, acceleration_scaling: float, weight: float = 1.0
    ) -> None:
        """Initialize the form.

        Args:
            mass: Sparse mass matrix (n x n).
            acceleration_scaling: Integrator scaling s > 0.
            weight: Non-negative weight.

        Raises:
            ValueError: If M is not square or s <= 0.
        """
        super().__init__(weight)
        M = sp.csr_matrix(mass, dtype=float)
        if M.shape[0] != M.shape[1]:
            raise ValueError(f"Mass matrix must be square, got shape {M.shape}")
        self.mass = M
        self._prediction: Vector | None = None
        self.set_acceleration_scaling(acceleration_scaling)

    @property
    def acceleration_scaling(self) -> float:
        return self._scaling

    def set_acceleration_scaling(self, scaling: float) -> None:
        if scaling <= 0:
            raise ValueError(f"Acceleration scaling must be positive, got {scaling}")
        self._scaling = float(scaling)

    def set_prediction(self, x_tilde: Vector) -> None:
        """Set the predicted state of the current step."""
        x_tilde = np.asarray(x_tilde, dtype=float)
        if x_tilde.shape != (self.mass.shape[0],):
            raise ValueError(
                f"Prediction must have shape ({self.mass.shape[0]},), got {x_tilde.shape}"
            )
        self._prediction = x_tilde.copy()

    def _deviation(self, x: Vector) -> Vector:
        if self._prediction is None:
            raise RuntimeError("InertiaForm evaluated before set_prediction")
        return np.asarray(x, dtype=float) - self._prediction

    def value_unweighted(self, x: Vector) -> float:
        d = self._deviation(x)
        return 0.5 * float(d @ (self.mass @ d)) / self._scaling

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        return (self.mass @ self._deviation(x)) / self._scaling

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        return self.mass / self._scaling
