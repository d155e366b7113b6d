"""Elementwise and structural parameterization stages.

This module provides:
- AffineMap: y = scale * x + offset
- ExponentialMap: y = exp(x) on a slice
- PowerMap: y = x ** power
- BoundedMap: y = lower + (upper - lower) * sigmoid(x)
- ENu2LameMap: (E, nu) pairs to (lambda, mu) pairs
- PerBody2PerElemMap: per-body values broadcast to elements
- AppendConstantMap: fixed values appended to the input
- SliceMap: a contiguous window of the input
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from core.types import Vector
from parameterization.base import Parameterization

__all__ = [
    "AffineMap",
    "ExponentialMap",
    "PowerMap",
    "BoundedMap",
    "ENu2LameMap",
    "PerBody2PerElemMap",
    "AppendConstantMap",
    "SliceMap",
]


def _as_vector(x: Vector) -> np.ndarray:
    return np.asarray(x, dtype=float).ravel()


@dataclass(frozen=True, eq=False)
class AffineMap(Parameterization):
    """y = scale * x + offset with scalar or per-entry coefficients."""

    scale: float | np.ndarray = 1.0
    offset: float | np.ndarray = 0.0

    def size(self, x_size: int) -> int:
        for name, coeff in (("scale", self.scale), ("offset", self.offset)):
            arr = np.asarray(coeff)
            if arr.ndim > 0 and arr.size != x_size:
                raise ValueError(f"AffineMap {name} has {arr.size} entries, input has {x_size}")
        return x_size

    def eval(self, x: Vector) -> Vector:
        return np.asarray(self.scale) * _as_vector(x) + np.asarray(self.offset)

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        return np.asarray(self.scale) * _as_vector(grad_full)

    def inverse_eval(self, y: Vector) -> Vector:
        scale = np.asarray(self.scale, dtype=float)
        if np.any(scale == 0):
            raise NotImplementedError("AffineMap with a zero scale is not invertible")
        return (_as_vector(y) - np.asarray(self.offset)) / scale


@dataclass(frozen=True)
class ExponentialMap(Parameterization):
    """y = exp(x) on ``x[from_:to]``, identity elsewhere (``to=-1`` means the end)."""

    from_: int = 0
    to: int = -1

    def _window(self, n: int) -> slice:
        end = n if self.to < 0 else self.to
        return slice(self.from_, end)

    def size(self, x_size: int) -> int:
        end = x_size if self.to < 0 else self.to
        if not (0 <= self.from_ <= end <= x_size):
            raise ValueError(
                f"ExponentialMap window [{self.from_}, {end}) does not fit input of size {x_size}"
            )
        return x_size

    def eval(self, x: Vector) -> Vector:
        y = _as_vector(x).copy()
        w = self._window(y.size)
        y[w] = np.exp(y[w])
        return y

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        x = _as_vector(x)
        grad = _as_vector(grad_full).copy()
        w = self._window(x.size)
        grad[w] *= np.exp(x[w])
        return grad

    def inverse_eval(self, y: Vector) -> Vector:
        x = _as_vector(y).copy()
        w = self._window(x.size)
        if np.any(x[w] <= 0):
            raise ValueError("ExponentialMap inverse requires positive values")
        x[w] = np.log(x[w])
        return x


@dataclass(frozen=True)
class PowerMap(Parameterization):
    """y = x ** power."""

    power: float = 1.0

    def __post_init__(self) -> None:
        if self.power == 0:
            raise ValueError("PowerMap power must be non-zero")

    def size(self, x_size: int) -> int:
        return x_size

    def eval(self, x: Vector) -> Vector:
        return _as_vector(x) ** self.power

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        x = _as_vector(x)
        return self.power * x ** (self.power - 1.0) * _as_vector(grad_full)

    def inverse_eval(self, y: Vector) -> Vector:
        return _as_vector(y) ** (1.0 / self.power)


@dataclass(frozen=True)
class BoundedMap(Parameterization):
    """Smoothly maps the real line onto ``(lower, upper)``."""

    lower: float = 0.0
    upper: float = 1.0

    def __post_init__(self) -> None:
        if not self.lower < self.upper:
            raise ValueError(f"lower ({self.lower}) must be < upper ({self.upper})")

    def size(self, x_size: int) -> int:
        return x_size

    @staticmethod
    def _sigmoid(x: np.ndarray) -> np.ndarray:
        return 0.5 * (1.0 + np.tanh(0.5 * x))

    def eval(self, x: Vector) -> Vector:
        return self.lower + (self.upper - self.lower) * self._sigmoid(_as_vector(x))

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        s = self._sigmoid(_as_vector(x))
        return (self.upper - self.lower) * s * (1.0 - s) * _as_vector(grad_full)

    def inverse_eval(self, y: Vector) -> Vector:
        y = _as_vector(y)
        if np.any(y <= self.lower) or np.any(y >= self.upper):
            raise ValueError(f"BoundedMap inverse requires values in ({self.lower}, {self.upper})")
        t = (y - self.lower) / (self.upper - self.lower)
        return np.log(t / (1.0 - t))


@dataclass(frozen=True)
class ENu2LameMap(Parameterization):
    """Interleaved (E, nu) pairs to interleaved (lambda, mu) pairs.

    lambda = E nu / ((1 + nu)(1 - 2 nu)),  mu = E / (2 (1 + nu))
    """

    def size(self, x_size: int) -> int:
        if x_size % 2 != 0:
            raise ValueError(f"ENu2LameMap expects (E, nu) pairs, got odd size {x_size}")
        return x_size

    @staticmethod
    def _split(x: Vector) -> tuple[np.ndarray, np.ndarray]:
        x = _as_vector(x)
        if x.size % 2 != 0:
            raise ValueError(f"ENu2LameMap expects (E, nu) pairs, got odd size {x.size}")
        return x[0::2], x[1::2]

    def eval(self, x: Vector) -> Vector:
        E, nu = self._split(x)
        y = np.empty(2 * E.size)
        y[0::2] = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
        y[1::2] = E / (2.0 * (1.0 + nu))
        return y

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        E, nu = self._split(x)
        g = _as_vector(grad_full)
        g_lambda, g_mu = g[0::2], g[1::2]
        q = (1.0 + nu) * (1.0 - 2.0 * nu)
        grad = np.empty(2 * E.size)
        grad[0::2] = g_lambda * nu / q + g_mu / (2.0 * (1.0 + nu))
        grad[1::2] = g_lambda * E * (1.0 + 2.0 * nu**2) / q**2 - g_mu * E / (2.0 * (1.0 + nu) ** 2)
        return grad

    def inverse_eval(self, y: Vector) -> Vector:
        lam, mu = self._split(y)
        x = np.empty(2 * lam.size)
        x[0::2] = mu * (3.0 * lam + 2.0 * mu) / (lam + mu)
        x[1::2] = lam / (2.0 * (lam + mu))
        return x


@dataclass(frozen=True, eq=False)
class PerBody2PerElemMap(Parameterization):
    """Broadcast per-body values to elements: y = x[body_ids]."""

    body_ids: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=int))

    def __post_init__(self) -> None:
        ids = np.asarray(self.body_ids, dtype=int).ravel()
        if np.any(ids < 0):
            raise ValueError("body ids must be non-negative")
        object.__setattr__(self, "body_ids", ids)

    def size(self, x_size: int) -> int:
        if self.body_ids.size and x_size <= int(self.body_ids.max()):
            raise ValueError(
                f"Input has {x_size} bodies, element map references body {int(self.body_ids.max())}"
            )
        return self.body_ids.size

    def eval(self, x: Vector) -> Vector:
        return _as_vector(x)[self.body_ids]

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        return np.bincount(
            self.body_ids, weights=_as_vector(grad_full), minlength=_as_vector(x).size
        ).astype(float)


@dataclass(frozen=True, eq=False)
class AppendConstantMap(Parameterization):
    """Append fixed ``values`` after the input."""

    values: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", np.asarray(self.values, dtype=float).ravel())

    def size(self, x_size: int) -> int:
        return x_size + self.values.size

    def eval(self, x: Vector) -> Vector:
        return np.concatenate([_as_vector(x), self.values])

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        return _as_vector(grad_full)[: _as_vector(x).size].copy()

    def inverse_eval(self, y: Vector) -> Vector:
        y = _as_vector(y)
        return y[: y.size - self.values.size].copy()


@dataclass(frozen=True)
class SliceMap(Parameterization):
    """y = x[start:end] for an input of exactly ``total`` entries."""

    start: int
    end: int
    total: int

    def __post_init__(self) -> None:
        if not (0 <= self.start <= self.end <= self.total):
            raise ValueError(
                f"SliceMap requires 0 <= start <= end <= total, "
                f"got start={self.start}, end={self.end}, total={self.total}"
            )

    def size(self, x_size: int) -> int:
        if x_size != self.total:
            raise ValueError(f"SliceMap expects input of size {self.total}, got {x_size}")
        return self.end - self.start

    def eval(self, x: Vector) -> Vector:
        return _as_vector(x)[self.start : self.end].copy()

    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        grad = np.zeros(self.total)
        grad[self.start : self.end] = _as_vector(grad_full)
        return grad
