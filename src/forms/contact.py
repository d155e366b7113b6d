"""IPC log-barrier contact against a rigid half-space obstacle.

Each vertex p_i of the flattened state has signed distance
d_i = n . p_i - offset to the plane. The barrier

    b(d) = -(d - dhat)^2 * log(d / dhat)    for 0 < d < dhat
    b(d) = 0                                for d >= dhat

is summed over vertices; the form weight plays the role of the barrier
stiffness kappa. A state with any d_i <= 0 is inadmissible: the value is
infinite, ``is_step_valid`` rejects it and ``max_step_size`` keeps line
searches short of it.
"""

from __future__ import annotations

import math

import numpy as np
import scipy.sparse as sp

from core.config import CCDParams
from core.types import Vector
from forms.base import Form

__all__ = ["ContactForm", "barrier", "barrier_first_derivative", "barrier_second_derivative"]

# Fraction of the time of impact a line search may travel
_TOI_SCALING = 0.8


def barrier(d: np.ndarray, dhat: float) -> np.ndarray:
    """Barrier values; zero outside the active range, inf at or below zero."""
    d = np.asarray(d, dtype=float)
    out = np.zeros_like(d)
    active = (d > 0) & (d < dhat)
    da = d[active]
    out[active] = -((da - dhat) ** 2) * np.log(da / dhat)
    out[d <= 0] = np.inf
    return out


def barrier_first_derivative(d: np.ndarray, dhat: float) -> np.ndarray:
    d = np.asarray(d, dtype=float)
    out = np.zeros_like(d)
    active = (d > 0) & (d < dhat)
    da = d[active]
    out[active] = -2.0 * (da - dhat) * np.log(da / dhat) - (da - dhat) ** 2 / da
    return out


def barrier_second_derivative(d: np.ndarray, dhat: float) -> np.ndarray:
    d = np.asarray(d, dtype=float)
    out = np.zeros_like(d)
    active = (d > 0) & (d < dhat)
    da = d[active]
    out[active] = (
        -2.0 * np.log(da / dhat) - 4.0 * (da - dhat) / da + (da - dhat) ** 2 / da**2
    )
    return out


class ContactForm(Form):
    """Barrier contact between free vertices and a half-space.

    Attributes:
        dim: Spatial dimension (2 or 3).
        normal: Unit outward normal of the obstacle.
        offset: Plane offset; admissible vertices satisfy n . p > offset.
        dhat: Barrier activation distance.
        ccd: Collision-detection settings used by ``max_step_size``.
    """

    def __init__(
        self,
        dim: int,
        normal: Vector,
        offset: float = 0.0,
        dhat: float = 1e-3,
        ccd: CCDParams | None = None,
        weight: float = 1.0,
    ) -> None:
        """Initialize the form.

        Raises:
            ValueError: If dim is not 2 or 3, the normal is degenerate or
                does not match dim, or dhat <= 0.
        """
        super().__init__(weight)
        if dim not in (2, 3):
            raise ValueError(f"dim must be 2 or 3, got {dim}")
        normal = np.asarray(normal, dtype=float)
        if normal.shape != (dim,):
            raise ValueError(f"normal must have shape ({dim},), got {normal.shape}")
        norm = float(np.linalg.norm(normal))
        if norm == 0:
            raise ValueError("normal must be non-zero")
        if dhat <= 0:
            raise ValueError(f"dhat must be positive, got {dhat}")
        self.dim = dim
        self.normal = normal / norm
        self.offset = float(offset)
        self.dhat = float(dhat)
        self.ccd = ccd or CCDParams()

    def _vertices(self, x: Vector) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.size % self.dim != 0:
            raise ValueError(f"State size {x.size} is not a multiple of dim={self.dim}")
        return x.reshape(-1, self.dim)

    def distances(self, x: Vector) -> np.ndarray:
        """Signed vertex distances to the obstacle plane."""
        return self._vertices(x) @ self.normal - self.offset

    def num_active(self, x: Vector) -> int:
        """Number of vertices inside the barrier's activation range."""
        d = self.distances(x)
        return int(np.count_nonzero((d > 0) & (d < self.dhat)))

    def value_unweighted(self, x: Vector) -> float:
        return float(np.sum(barrier(self.distances(x), self.dhat)))

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        db = barrier_first_derivative(self.distances(x), self.dhat)
        return np.outer(db, self.normal).ravel()

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        d2b = barrier_second_derivative(self.distances(x), self.dhat)
        n_vertices = d2b.size
        # Every vertex gets an n n^T block so the pattern does not depend on the active set
        dofs = np.arange(n_vertices)[:, None] * self.dim + np.arange(self.dim)[None, :]
        rows = np.repeat(dofs, self.dim, axis=1).ravel()
        cols = np.tile(dofs, (1, self.dim)).ravel()
        data = (d2b[:, None] * np.outer(self.normal, self.normal).ravel()[None, :]).ravel()
        size = n_vertices * self.dim
        return sp.coo_matrix((data, (rows, cols)), shape=(size, size)).tocsr()

    def is_step_valid(self, x0: Vector, x1: Vector) -> bool:
        return bool(np.all(self.distances(x1) > 0))

    def broad_phase_candidates(self, d0: np.ndarray, d1: np.ndarray) -> np.ndarray:
        """Indices of vertices whose swept distance interval may reach the obstacle.

        ``"hash_grid"`` hashes each swept interval ``[min(d0, d1), max(d0, d1)]``
        into a 1-D grid of cells of width ``dhat`` along the obstacle normal.
        The obstacle occupies the cells with index <= 0, so only vertices whose
        lowest cell is one of those are kept. ``"brute_force"`` keeps every
        vertex.
        """
        if self.ccd.broad_phase == "brute_force":
            return np.arange(d0.size)
        lowest_cell = np.floor(np.minimum(d0, d1) / self.dhat)
        return np.flatnonzero(lowest_cell <= 0)

    def max_step_size(self, x0: Vector, x1: Vector) -> float:
        """Conservative fraction of the step that keeps every vertex separated.

        Vertices move linearly, so the first contact time is exact. The
        returned step is ``0.8`` of it, reduced by the CCD tolerance.
        """
        d0 = self.distances(x0)
        d1 = self.distances(x1)
        candidates = self.broad_phase_candidates(d0, d1)
        d0c, d1c = d0[candidates], d1[candidates]
        hitting = d1c <= 0
        if not np.any(hitting):
            return 1.0
        toi = float(np.min(d0c[hitting] / (d0c[hitting] - d1c[hitting])))
        toi = max(0.0, toi - self.ccd.tolerance)
        return min(1.0, _TOI_SCALING * toi)

    def initial_barrier_stiffness(
        self, grad_energy: Vector, x: Vector, min_stiffness: float = 1.0, max_factor: float = 100.0
    ) -> float:
        """Adaptive barrier stiffness balancing the barrier against the energy gradient.

        Returns ``-(gE . gB) / (gB . gB)`` clamped to
        ``[min_stiffness, max_factor * min_stiffness]``.
        """
        if min_stiffness <= 0:
            raise ValueError(f"min_stiffness must be positive, got {min_stiffness}")
        g_barrier = self.first_derivative_unweighted(x)
        denom = float(g_barrier @ g_barrier)
        if denom == 0 or not math.isfinite(denom):
            return float(min_stiffness)
        kappa = -float(np.asarray(grad_energy) @ g_barrier) / denom
        return float(np.clip(kappa, min_stiffness, max_factor * min_stiffness))
