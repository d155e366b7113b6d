"""Centered finite differences for derivative verification.

Used by the test-suite and available to callers who want to validate a new
form or parameterization stage before plugging it into a solve.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp

from core.types import Vector

__all__ = [
    "CheckResult",
    "fd_gradient",
    "fd_jacobian",
    "check_gradient",
    "check_hessian",
]


@dataclass(frozen=True)
class CheckResult:
    """Result of one derivative check.

    Attributes:
        name: Name of the check (e.g., 'gradient', 'hessian').
        passed: Whether the check passed.
        details: Human-readable summary (relative error, tolerance).
    """

    name: str
    passed: bool
    details: str


def fd_gradient(f: Callable[[Vector], float], x: Vector, h: float = 1e-6) -> Vector:
    """Centered finite-difference gradient of a scalar function."""
    x = np.asarray(x, dtype=float)
    grad = np.zeros_like(x)
    for i in range(x.size):
        e = np.zeros_like(x)
        e[i] = h
        grad[i] = (f(x + e) - f(x - e)) / (2.0 * h)
    return grad


def fd_jacobian(f: Callable[[Vector], Vector], x: Vector, h: float = 1e-6) -> np.ndarray:
    """Centered finite-difference Jacobian of a vector function.

    Returns:
        Dense array of shape ``(len(f(x)), len(x))``.
    """
    x = np.asarray(x, dtype=float)
    columns = []
    for i in range(x.size):
        e = np.zeros_like(x)
        e[i] = h
        columns.append((np.asarray(f(x + e)) - np.asarray(f(x - e))) / (2.0 * h))
    if not columns:
        return np.zeros((np.asarray(f(x)).size, 0))
    return np.stack(columns, axis=1)


def _relative_error(actual: np.ndarray, expected: np.ndarray) -> float:
    scale = max(1.0, float(np.max(np.abs(expected))) if expected.size else 1.0)
    if actual.size == 0:
        return 0.0
    return float(np.max(np.abs(actual - expected))) / scale


def check_gradient(
    f: Callable[[Vector], float],
    grad: Callable[[Vector], Vector],
    x: Vector,
    h: float = 1e-6,
    rtol: float = 1e-5,
) -> CheckResult:
    """Compare an analytic gradient against centered differences at ``x``."""
    expected = fd_gradient(f, x, h)
    actual = np.asarray(grad(np.asarray(x, dtype=float)), dtype=float)
    err = _relative_error(actual, expected)
    return CheckResult(
        name="gradient",
        passed=err <= rtol,
        details=f"relative error {err:.3e} (tol {rtol:.1e})",
    )


def check_hessian(
    grad: Callable[[Vector], Vector],
    hess: Callable[[Vector], sp.spmatrix | np.ndarray],
    x: Vector,
    h: float = 1e-6,
    rtol: float = 1e-5,
) -> CheckResult:
    """Compare an analytic Hessian against centered differences of the gradient."""
    expected = fd_jacobian(grad, x, h)
    H = hess(np.asarray(x, dtype=float))
    actual = H.toarray() if sp.issparse(H) else np.asarray(H, dtype=float)
    err = _relative_error(actual, expected)
    return CheckResult(
        name="hessian",
        passed=err <= rtol,
        details=f"relative error {err:.3e} (tol {rtol:.1e})",
    )
