"""Lagged Tikhonov regularization.

LaggedRegForm penalizes the distance between the current state and a lagged
reference captured at ``init_lagging``/``update_lagging``:

    E(x) = 0.5 * ||x - x_lagged||^2

It keeps a staggered sub-solve close to the state at which the lagged
quantities of other forms were taken.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.types import Vector
from forms.base import Form

__all__ = ["LaggedRegForm"]


class LaggedRegForm(Form):
    """Quadratic penalty towards the lagged state.

    Example:
        >>> form = LaggedRegForm(weight=2.0)
        >>> form.init_lagging(np.zeros(3))
        >>> form.value(np.array([1.0, 2.0, 2.0]))
        9.0
    """

    def __init__(self, weight: float = 1.0) -> None:
        super().__init__(weight)
        self._x_lagged: Vector | None = None

    @property
    def x_lagged(self) -> Vector | None:
        """Copy of the current lagged reference (None before init_lagging)."""
        return None if self._x_lagged is None else self._x_lagged.copy()

    def uses_lagging(self) -> bool:
        return True

    def _init_lagging(self, x: Vector) -> None:
        self._x_lagged = x.copy()

    def _deviation(self, x: Vector) -> Vector:
        if self._x_lagged is None:
            raise RuntimeError("LaggedRegForm evaluated before init_lagging")
        x = np.asarray(x, dtype=float)
        if x.shape != self._x_lagged.shape:
            raise ValueError(
                f"State has shape {x.shape}, lagged state has shape {self._x_lagged.shape}"
            )
        return x - self._x_lagged

    def value_unweighted(self, x: Vector) -> float:
        d = self._deviation(x)
        return 0.5 * float(d @ d)

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        return self._deviation(x)

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        return sp.identity(np.asarray(x).size, format="csr", dtype=float)
