"""Base class for differentiable parameterization stages."""

from __future__ import annotations

from abc import ABC, abstractmethod

from core.types import Vector

__all__ = ["Parameterization"]


class Parameterization(ABC):
    """A pure differentiable map y = f(x).

    Stages hold only construction-time parameters, so one instance can be
    shared by several chains and runs.
    """

    @abstractmethod
    def size(self, x_size: int) -> int:
        """Output dimension for an input of dimension ``x_size``.

        Raises:
            ValueError: If ``x_size`` is not a valid input dimension.
        """

    @abstractmethod
    def eval(self, x: Vector) -> Vector:
        """Forward map."""

    @abstractmethod
    def apply_jacobian(self, grad_full: Vector, x: Vector) -> Vector:
        """Return J(x)^T grad_full, the gradient wrt the input."""

    def inverse_eval(self, y: Vector) -> Vector:
        """Inverse map.

        Raises:
            NotImplementedError: If the map has no inverse.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support inverse_eval")
