"""Linear density filter.

The filtered field is a row-normalized weighted average of its neighbours,
y = W x, with the usual cone weights w_ij = max(0, r - |p_i - p_j|). The
adjoint is the transpose product W^T g.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp
from scipy.spatial import cKDTree

from core.types import Vector
from parameterization.base import Parameterization

__all__ = ["LinearFilter"]


@dataclass(frozen=True, eq=False)
class LinearFilter(Parameterization):
    """y = W x with a row-normalized sparse weight matrix.

    Attributes:
        weights: Sparse (m x n) matrix; rows are normalized to sum to one.
    """

    weights: sp.csr_matrix

    def __post_init__(self) -> None:
        W = sp.csr_matrix(self.weights, dtype=float)
        row_sums = np.asarray(W.sum(axis=1)).ravel()
        if np.any(row_sums <= 0):
            raise ValueError("Every filter row must have a positive weight sum")
        W = sp.diags(1.0 / row_sums) @ W
        object.__setattr__(self, "weights", sp.csr_matrix(W))

    @classmethod
    def from_points(cls, points: np.ndarray, radius: float) -> LinearFilter:
        """Build the cone-weight filter over a point cloud (element centroids).

        Args:
            points: Array of shape (n, dim).
            radius: Filter radius; must be positive.
        """
        if radius <= 0:
            raise ValueError(f"Filter radius must be positive, got {radius}")
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            points = points[:, None]
        tree = cKDTree(points)
        neighbours = tree.query_ball_point(points, r=radius)
        rows, cols, data = [], [], []
        for i, nbrs in enumerate(neighbours):
            for j in nbrs:
                w = radius - float(np.linalg.norm(points[i] - points[j]))
                if w > 0:
                    rows.append(i)
                    cols.append(j)
                    data.append(w)
        n = points.shape[0]
        return cls(sp.coo_matrix((data, (rows, cols)), shape=(n, n)).tocsr())

    def size(self, x_size: int) -> int:
        if x_size != self.weights.shape[1]:
            raise ValueError(
                f"LinearFilter expects input of size {self.weights.shape[1]}, got {x_size}"
            )
        return self.weights.shape[0]

    def eval(self, x: Vector) -> Vector:
        return self.weights @ np.asarray(x, dtype=float).ravel()

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        return self.weights.T @ np.asarray(grad_full, dtype=float).ravel()
