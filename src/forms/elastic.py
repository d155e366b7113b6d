"""Linear elastic potential over an externally assembled stiffness matrix.

    E(x) = 0.5 * (x - r)^T K (x - r) - f^T x

where K is symmetric positive semi-definite, r the rest state and f the
external load. Assembly of K from basis data happens outside this package.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.types import Vector
from forms.base import Form

__all__ = ["ElasticForm"]


class ElasticForm(Form):
    """Quadratic elastic energy with optional rest state and external load.

    Attributes:
        stiffness: Sparse symmetric stiffness matrix K (n x n).
        rest: Rest state r (zeros by default).
        load: External load f (zeros by default).
    """

    def __init__(
        self,
        stiffness: sp.spmatrix | np.ndarray,
        rest: Vector | None = None,
        load: Vector | None = None,
        weight: float = 1.0,
    ) -> None:
        """Initialize the form.

        Raises:
            ValueError: If K is not square or r/f do not match its size.
        """
        super().__init__(weight)
        K = sp.csr_matrix(stiffness, dtype=float)
        if K.shape[0] != K.shape[1]:
            raise ValueError(f"Stiffness must be square, got shape {K.shape}")
        n = K.shape[0]
        self.stiffness = K
        self.rest = np.zeros(n) if rest is None else np.asarray(rest, dtype=float)
        self.load = np.zeros(n) if load is None else np.asarray(load, dtype=float)
        if self.rest.shape != (n,):
            raise ValueError(f"Rest state must have shape ({n},), got {self.rest.shape}")
        if self.load.shape != (n,):
            raise ValueError(f"Load must have shape ({n},), got {self.load.shape}")

    @property
    def ndof(self) -> int:
        return self.stiffness.shape[0]

    def value_unweighted(self, x: Vector) -> float:
        d = np.asarray(x, dtype=float) - self.rest
        return 0.5 * float(d @ (self.stiffness @ d)) - float(self.load @ x)

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        d = np.asarray(x, dtype=float) - self.rest
        return self.stiffness @ d - self.load

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        return self.stiffness.copy()
