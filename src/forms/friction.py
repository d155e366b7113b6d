"""Lagged smooth Coulomb friction against the contact obstacle.

Normal-force magnitudes and tangent bases are frozen at the lagged state, so
between two ``update_lagging`` calls the friction potential only depends on
the tangential displacement since the start of the time step:

    D(x) = mu * sum_i lambda_i * f0(||T^T (p_i - p_i^prev)||)

The mollifier f0 is C^2 and smooths the stick/slip transition over
``eps = epsv * dt``:

    f0(s) = -s^3 / (3 eps^2) + s^2 / eps + eps / 3    for s < eps
    f0(s) = s                                         otherwise
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.types import Vector
from forms.base import Form
from forms.contact import ContactForm, barrier_first_derivative

__all__ = ["FrictionForm", "tangent_basis", "f0", "f1_over_s", "f2"]


def tangent_basis(normal: Vector) -> np.ndarray:
    """Orthonormal basis of the plane orthogonal to ``normal``, shape (dim, dim-1)."""
    normal = np.asarray(normal, dtype=float)
    if normal.size == 2:
        return np.array([[-normal[1]], [normal[0]]])
    helper = np.array([1.0, 0.0, 0.0]) if abs(normal[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    t1 = np.cross(normal, helper)
    t1 /= np.linalg.norm(t1)
    t2 = np.cross(normal, t1)
    return np.stack([t1, t2], axis=1)


def f0(s: np.ndarray, eps: float) -> np.ndarray:
    s = np.asarray(s, dtype=float)
    return np.where(s < eps, -(s**3) / (3.0 * eps**2) + s**2 / eps + eps / 3.0, s)


def f1_over_s(s: np.ndarray, eps: float) -> np.ndarray:
    """f0'(s) / s, finite at s = 0."""
    s = np.asarray(s, dtype=float)
    safe = np.where(s < eps, 1.0, s)
    return np.where(s < eps, -s / eps**2 + 2.0 / eps, 1.0 / safe)


def f2(s: np.ndarray, eps: float) -> np.ndarray:
    """(d/ds (f0'(s)/s)) / s, the coefficient of the u u^T Hessian term."""
    s = np.asarray(s, dtype=float)
    safe = np.where(s > 0, s, 1.0)
    return np.where(s < eps, -1.0 / (eps**2 * safe), -1.0 / safe**3)


class FrictionForm(Form):
    """Lagged smooth friction paired with a ContactForm.

    Attributes:
        contact_form: The barrier whose forces define the normal magnitudes.
        mu: Friction coefficient.
        epsv: Static/dynamic transition velocity.
        dt: Time-step size.
    """

    def __init__(
        self,
        contact_form: ContactForm,
        mu: float,
        epsv: float,
        dt: float,
        max_iterations: int = 1,
        weight: float = 1.0,
    ) -> None:
        """Initialize the form.

        Raises:
            ValueError: If mu < 0, epsv <= 0 or dt <= 0.
        """
        super().__init__(weight)
        if mu < 0:
            raise ValueError(f"Friction coefficient must be non-negative, got {mu}")
        if epsv <= 0:
            raise ValueError(f"epsv must be positive, got {epsv}")
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.contact_form = contact_form
        self.mu = float(mu)
        self.epsv = float(epsv)
        self.dt = float(dt)
        self._max_iterations = int(max_iterations)
        self._basis = tangent_basis(contact_form.normal)
        self._normal_forces: np.ndarray | None = None
        self._x_prev: Vector | None = None

    @property
    def eps(self) -> float:
        return self.epsv * self.dt

    @property
    def normal_forces(self) -> np.ndarray | None:
        """Lagged normal-force magnitudes (None before init_lagging)."""
        return None if self._normal_forces is None else self._normal_forces.copy()

    def uses_lagging(self) -> bool:
        return True

    def max_lagging_iterations(self) -> int:
        return self._max_iterations

    def update_quantities(self, t: float, x: Vector) -> None:
        self._x_prev = np.asarray(x, dtype=float).copy()

    def _init_lagging(self, x: Vector) -> None:
        if self._x_prev is None:
            self._x_prev = x.copy()
        d = self.contact_form.distances(x)
        kappa = self.contact_form.weight
        self._normal_forces = kappa * np.abs(barrier_first_derivative(d, self.contact_form.dhat))

    def _tangential(self, x: Vector) -> tuple[np.ndarray, np.ndarray]:
        if self._normal_forces is None or self._x_prev is None:
            raise RuntimeError("FrictionForm evaluated before init_lagging")
        dim = self.contact_form.dim
        dx = (np.asarray(x, dtype=float) - self._x_prev).reshape(-1, dim)
        u = dx @ self._basis
        return u, np.linalg.norm(u, axis=1)

    def value_unweighted(self, x: Vector) -> float:
        _, s = self._tangential(x)
        return self.mu * float(np.sum(self._normal_forces * f0(s, self.eps)))

    def first_derivative_unweighted(self, x: Vector) -> Vector:
        u, s = self._tangential(x)
        coeff = self.mu * self._normal_forces * f1_over_s(s, self.eps)
        return ((coeff[:, None] * u) @ self._basis.T).ravel()

    def second_derivative_unweighted(self, x: Vector) -> sp.csr_matrix:
        u, s = self._tangential(x)
        dim = self.contact_form.dim
        scale = self.mu * self._normal_forces
        a = f1_over_s(s, self.eps)
        b = np.where(s > 0, f2(s, self.eps), 0.0)
        T = self._basis
        # Per-vertex block: T [a I + b u u^T] T^T
        tangent_blocks = a[:, None, None] * np.eye(dim - 1)[None] + b[:, None, None] * (
            u[:, :, None] * u[:, None, :]
        )
        blocks = scale[:, None, None] * np.einsum("ik,vkl,jl->vij", T, tangent_blocks, T)
        n_vertices = s.size
        dofs = np.arange(n_vertices)[:, None] * dim + np.arange(dim)[None, :]
        rows = np.repeat(dofs, dim, axis=1).ravel()
        cols = np.tile(dofs, (1, dim)).ravel()
        size = n_vertices * dim
        return sp.coo_matrix((blocks.ravel(), (rows, cols)), shape=(size, size)).tocsr()
