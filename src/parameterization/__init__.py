"""Parameterization module.

This package contains the differentiable maps from design variables to the
physical fields a forward solve consumes:
- Parameterization: base class of a single stage
- Elementwise and structural stages (affine, exponential, power, bounded,
  E/nu to Lame, per-body to per-element, append, slice)
- LinearFilter: row-normalized density filter
- CompositeParameterization: chain of stages with reverse-mode gradients
"""

from __future__ import annotations

from parameterization.base import Parameterization
from parameterization.composite import CompositeParameterization
from parameterization.filters import LinearFilter
from parameterization.maps import (
    AffineMap,
    AppendConstantMap,
    BoundedMap,
    ENu2LameMap,
    ExponentialMap,
    PerBody2PerElemMap,
    PowerMap,
    SliceMap,
)

__all__ = [
    "Parameterization",
    "CompositeParameterization",
    # Elementwise
    "AffineMap",
    "ExponentialMap",
    "PowerMap",
    "BoundedMap",
    "ENu2LameMap",
    # Structural
    "PerBody2PerElemMap",
    "AppendConstantMap",
    "SliceMap",
    "LinearFilter",
]
