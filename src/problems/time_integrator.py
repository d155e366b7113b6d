"""Implicit time integrators in incremental-potential form.

Each integrator exposes the predicted state x_tilde and the acceleration
scaling s such that one implicit step minimizes

    0.5 / s * (x - x_tilde)^T M (x - x_tilde) + E(x)

This module provides:
- BDF: backward differentiation formulas of order 1 to 6
- ImplicitEuler: BDF of order 1
- ImplicitNewmark: Newmark-beta scheme
- make_time_integrator: construct an integrator from TimeParams
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque

import numpy as np

from core.config import TimeParams
from core.types import Vector

__all__ = ["TimeIntegrator", "BDF", "ImplicitEuler", "ImplicitNewmark", "make_time_integrator"]

_BDF_ALPHAS: dict[int, tuple[float, ...]] = {
    1: (1.0,),
    2: (4.0 / 3.0, -1.0 / 3.0),
    3: (18.0 / 11.0, -9.0 / 11.0, 2.0 / 11.0),
    4: (48.0 / 25.0, -36.0 / 25.0, 16.0 / 25.0, -3.0 / 25.0),
    5: (300.0 / 137.0, -300.0 / 137.0, 200.0 / 137.0, -75.0 / 137.0, 12.0 / 137.0),
    6: (
        360.0 / 147.0,
        -450.0 / 147.0,
        400.0 / 147.0,
        -225.0 / 147.0,
        72.0 / 147.0,
        -10.0 / 147.0,
    ),
}
_BDF_BETAS: dict[int, float] = {
    1: 1.0,
    2: 2.0 / 3.0,
    3: 6.0 / 11.0,
    4: 12.0 / 25.0,
    5: 60.0 / 137.0,
    6: 60.0 / 147.0,
}


class TimeIntegrator(ABC):
    """Base class of implicit integrators.

    Attributes:
        dt: Time-step size (set by ``init``).
    """

    def __init__(self) -> None:
        self.dt = 0.0

    def init(self, x0: Vector, v0: Vector | None, dt: float) -> None:
        """Start integration from position ``x0`` and velocity ``v0``.

        Raises:
            ValueError: If dt <= 0 or v0 does not match x0.
        """
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        x0 = np.asarray(x0, dtype=float)
        v0 = np.zeros_like(x0) if v0 is None else np.asarray(v0, dtype=float)
        if v0.shape != x0.shape:
            raise ValueError(f"v0 has shape {v0.shape}, x0 has shape {x0.shape}")
        self.dt = float(dt)
        self._init(x0, v0)

    @abstractmethod
    def _init(self, x0: Vector, v0: Vector) -> None: ...

    @abstractmethod
    def predicted(self) -> Vector:
        """Predicted state x_tilde of the next step."""

    @abstractmethod
    def acceleration_scaling(self) -> float:
        """Scaling s of the inertia term."""

    @abstractmethod
    def compute_velocity(self, x: Vector) -> Vector:
        """Velocity at the end of the step if the step ends at ``x``."""

    @abstractmethod
    def update(self, x: Vector) -> None:
        """Accept ``x`` as the end of the current step."""

    @property
    @abstractmethod
    def x_prev(self) -> Vector:
        """Most recent accepted position."""

    @property
    @abstractmethod
    def v_prev(self) -> Vector:
        """Most recent accepted velocity."""


class BDF(TimeIntegrator):
    """Backward differentiation formula of order ``steps``.

    The first steps run at the order the available history allows.
    """

    def __init__(self, steps: int = 1) -> None:
        super().__init__()
        if steps not in _BDF_ALPHAS:
            raise ValueError(f"BDF steps must be in [1, 6], got {steps}")
        self.steps = steps
        self._xs: deque[Vector] = deque(maxlen=steps)
        self._vs: deque[Vector] = deque(maxlen=steps)

    def _init(self, x0: Vector, v0: Vector) -> None:
        self._xs.clear()
        self._vs.clear()
        self._xs.appendleft(x0.copy())
        self._vs.appendleft(v0.copy())

    @property
    def order(self) -> int:
        """Order used for the next step."""
        return len(self._xs)

    def _weighted(self, history: deque[Vector]) -> Vector:
        alphas = _BDF_ALPHAS[self.order]
        out = np.zeros_like(history[0])
        for alpha, value in zip(alphas, history):
            out += alpha * value
        return out

    def _beta_dt(self) -> float:
        return _BDF_BETAS[self.order] * self.dt

    def predicted(self) -> Vector:
        return self._weighted(self._xs) + self._beta_dt() * self._weighted(self._vs)

    def acceleration_scaling(self) -> float:
        return self._beta_dt() ** 2

    def compute_velocity(self, x: Vector) -> Vector:
        return (np.asarray(x, dtype=float) - self._weighted(self._xs)) / self._beta_dt()

    def compute_acceleration(self, v: Vector) -> Vector:
        return (np.asarray(v, dtype=float) - self._weighted(self._vs)) / self._beta_dt()

    def update(self, x: Vector) -> None:
        v = self.compute_velocity(x)
        self._xs.appendleft(np.asarray(x, dtype=float).copy())
        self._vs.appendleft(v)

    @property
    def x_prev(self) -> Vector:
        return self._xs[0].copy()

    @property
    def v_prev(self) -> Vector:
        return self._vs[0].copy()


class ImplicitEuler(BDF):
    """First-order backward Euler."""

    def __init__(self) -> None:
        super().__init__(steps=1)


class ImplicitNewmark(TimeIntegrator):
    """Newmark-beta scheme (average acceleration for the defaults)."""

    def __init__(self, gamma: float = 0.5, beta: float = 0.25) -> None:
        super().__init__()
        if gamma <= 0 or beta <= 0:
            raise ValueError(f"Newmark gamma and beta must be positive, got {gamma}, {beta}")
        self.gamma = gamma
        self.beta = beta

    def _init(self, x0: Vector, v0: Vector) -> None:
        self._x = x0.copy()
        self._v = v0.copy()
        self._a = np.zeros_like(x0)

    def predicted(self) -> Vector:
        dt = self.dt
        return self._x + dt * self._v + 0.5 * dt**2 * (1.0 - 2.0 * self.beta) * self._a

    def acceleration_scaling(self) -> float:
        return self.beta * self.dt**2

    def compute_acceleration(self, x: Vector) -> Vector:
        return (np.asarray(x, dtype=float) - self.predicted()) / self.acceleration_scaling()

    def compute_velocity(self, x: Vector) -> Vector:
        a_new = self.compute_acceleration(x)
        return self._v + self.dt * ((1.0 - self.gamma) * self._a + self.gamma * a_new)

    def update(self, x: Vector) -> None:
        a_new = self.compute_acceleration(x)
        v_new = self._v + self.dt * ((1.0 - self.gamma) * self._a + self.gamma * a_new)
        self._x = np.asarray(x, dtype=float).copy()
        self._v = v_new
        self._a = a_new

    @property
    def x_prev(self) -> Vector:
        return self._x.copy()

    @property
    def v_prev(self) -> Vector:
        return self._v.copy()


def make_time_integrator(params: TimeParams) -> TimeIntegrator:
    """Construct the integrator named by ``params.integrator``.

    Raises:
        ValueError: If the integrator is unknown.
    """
    if params.integrator == "ImplicitEuler":
        return ImplicitEuler()
    if params.integrator == "BDF":
        return BDF(params.bdf_steps)
    if params.integrator == "ImplicitNewmark":
        return ImplicitNewmark(params.newmark_gamma, params.newmark_beta)
    raise ValueError(f"Unknown integrator '{params.integrator}'")
