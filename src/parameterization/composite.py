"""Ordered chain of parameterization stages.

Evaluation runs front-to-back. Gradients fold back-to-front: the forward pass
is replayed first so each stage's own ``apply_jacobian`` sees that stage's
input, which nonlinear stages need.

Example:
    >>> chain = CompositeParameterization([ExponentialMap(), AffineMap(scale=2.0)], input_size=3)
    >>> chain.size(3)
    3
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from core.types import Vector
from parameterization.base import Parameterization

__all__ = ["CompositeParameterization"]


class CompositeParameterization:
    """Composition f_k o ... o f_1 of parameterization stages.

    Attributes:
        stages: Stages in evaluation order (an empty chain is the identity).
    """

    def __init__(
        self, stages: Sequence[Parameterization] = (), input_size: int | None = None
    ) -> None:
        """Initialize the chain and validate every stage size.

        Args:
            stages: Stages in evaluation order.
            input_size: Number of design variables. Required when the chain
                has stages; an empty chain without it accepts any size.

        Raises:
            ValueError: If ``input_size`` is missing for a non-empty chain or a
                stage rejects the size produced by its predecessor.
        """
        self._stages: tuple[Parameterization, ...] = tuple(stages)
        if self._stages and input_size is None:
            raise ValueError("input_size is required for a chain with stages")
        self.input_size = input_size
        self.output_size = None if input_size is None else self.size(input_size)

    @property
    def stages(self) -> tuple[Parameterization, ...]:
        return self._stages

    def __len__(self) -> int:
        return len(self._stages)

    def size(self, x_size: int) -> int:
        """Output dimension of the chain for an input of ``x_size`` entries.

        Raises:
            ValueError: Naming the first stage whose input size is invalid.
        """
        cur = x_size
        for i, stage in enumerate(self._stages):
            try:
                cur = stage.size(cur)
            except ValueError as exc:
                raise ValueError(f"Stage {i} ({type(stage).__name__}): {exc}") from exc
        return cur

    def _check_input(self, x: np.ndarray) -> None:
        if self.input_size is not None and x.size != self.input_size:
            raise ValueError(f"Chain expects {self.input_size} design variables, got {x.size}")

    def eval(self, x: Vector) -> Vector:
        y = np.asarray(x, dtype=float)
        self._check_input(y)
        for stage in self._stages:
            y = stage.eval(y)
        return y

    def apply_jacobian(self, x: Vector, grad_full: Vector) -> Vector:
        """Pull ``grad_full`` (wrt ``eval(x)``) back to a gradient wrt ``x``."""
        inputs = []
        y = np.asarray(x, dtype=float)
        self._check_input(y)
        for stage in self._stages:
            inputs.append(y)
            y = stage.eval(y)

        grad = np.asarray(grad_full, dtype=float)
        for stage, stage_input in zip(reversed(self._stages), reversed(inputs)):
            grad = stage.apply_jacobian(grad, stage_input)
        return grad

    def inverse_eval(self, y: Vector) -> Vector:
        """Invert the chain back-to-front.

        Raises:
            NotImplementedError: If any stage has no inverse.
            ValueError: If ``y`` does not have the chain's output size.
        """
        x = np.asarray(y, dtype=float)
        if self.output_size is not None and x.size != self.output_size:
            raise ValueError(f"Chain produces {self.output_size} values, got {x.size}")
        for stage in reversed(self._stages):
            x = stage.inverse_eval(x)
        return x
