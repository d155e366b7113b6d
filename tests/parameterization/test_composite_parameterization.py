"""Tests for CompositeParameterization.

This module tests:
- Chain gradients against finite differences for 0, 1 and several stages
- The empty chain acting as the identity
- Size validation at construction
- Inverse evaluation and its propagation of missing inverses
"""

from __future__ import annotations

import numpy as np
import pytest

from core.finite_diff import fd_jacobian
from parameterization import (
    AffineMap,
    AppendConstantMap,
    BoundedMap,
    CompositeParameterization,
    ENu2LameMap,
    ExponentialMap,
    LinearFilter,
    PerBody2PerElemMap,
    PowerMap,
    SliceMap,
)


def _chains() -> dict[str, tuple[CompositeParameterization, int]]:
    return {
        "empty": (CompositeParameterization([], input_size=4), 4),
        "single": (CompositeParameterization([ExponentialMap()], input_size=4), 4),
        "density": (
            CompositeParameterization(
                [
                    LinearFilter.from_points(np.linspace(0.0, 1.0, 5), radius=0.3),
                    BoundedMap(0.1, 1.0),
                    PowerMap(3.0),
                    AffineMap(scale=2.0, offset=0.5),
                ],
                input_size=5,
            ),
            5,
        ),
        "material": (
            CompositeParameterization(
                [
                    BoundedMap(0.1, 0.4),
                    ENu2LameMap(),
                    PerBody2PerElemMap(np.array([0, 1, 1, 3, 2, 0])),
                    ExponentialMap(from_=2, to=4),
                ],
                input_size=4,
            ),
            4,
        ),
        "window": (
            CompositeParameterization(
                [AppendConstantMap(np.array([0.2, 0.3])), SliceMap(1, 5, 6), PowerMap(2.0)],
                input_size=4,
            ),
            4,
        ),
    }


@pytest.mark.parametrize("name", sorted(_chains()))
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_chain_gradient_matches_finite_differences(name: str, seed: int) -> None:
    chain, n = _chains()[name]
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(n)
    y = chain.eval(x)
    assert y.size == chain.output_size
    g = rng.standard_normal(y.size)

    J = fd_jacobian(chain.eval, x)
    np.testing.assert_allclose(chain.apply_jacobian(x, g), J.T @ g, rtol=1e-6, atol=1e-7)


class TestCompositeParameterization:
    def test_empty_chain_is_identity(self) -> None:
        chain = CompositeParameterization()
        x = np.array([1.0, -2.0, 3.0])
        g = np.array([0.5, 0.5, -1.0])

        assert len(chain) == 0
        assert chain.size(3) == 3
        np.testing.assert_array_equal(chain.eval(x), x)
        np.testing.assert_array_equal(chain.apply_jacobian(x, g), g)
        np.testing.assert_array_equal(chain.inverse_eval(x), x)

    def test_stages_run_in_order(self) -> None:
        chain = CompositeParameterization(
            [AffineMap(offset=1.0), AffineMap(scale=2.0)], input_size=2
        )
        np.testing.assert_allclose(chain.eval(np.array([0.0, 1.0])), [2.0, 4.0])

    def test_size_mismatch_raises_at_construction(self) -> None:
        with pytest.raises(ValueError, match=r"Stage 1 \(SliceMap\)"):
            CompositeParameterization(
                [AppendConstantMap(np.array([1.0])), SliceMap(0, 2, 3)], input_size=3
            )

    def test_stages_require_input_size(self) -> None:
        with pytest.raises(ValueError, match="input_size is required"):
            CompositeParameterization([ENu2LameMap()])

    def test_per_entry_scale_mismatch_raises_at_construction(self) -> None:
        with pytest.raises(ValueError, match=r"Stage 0 \(AffineMap\)"):
            CompositeParameterization([AffineMap(scale=np.array([2.0]))], input_size=3)

    def test_wrong_design_size_rejected(self) -> None:
        chain = CompositeParameterization([ExponentialMap(), SliceMap(0, 2, 3)], input_size=3)
        with pytest.raises(ValueError, match="expects 3 design variables, got 4"):
            chain.eval(np.ones(4))
        with pytest.raises(ValueError, match="expects 3 design variables, got 2"):
            chain.apply_jacobian(np.ones(2), np.ones(2))
        with pytest.raises(ValueError, match="produces 2 values, got 3"):
            chain.inverse_eval(np.ones(3))

    def test_empty_chain_without_input_size_accepts_any_size(self) -> None:
        chain = CompositeParameterization()
        assert chain.output_size is None
        assert chain.eval(np.ones(7)).size == 7

    def test_output_size(self) -> None:
        chain = CompositeParameterization(
            [PerBody2PerElemMap(np.array([0, 1, 1, 0, 2])), AppendConstantMap(np.ones(2))],
            input_size=3,
        )
        assert chain.output_size == 7

    def test_inverse_roundtrip(self) -> None:
        chain = CompositeParameterization(
            [BoundedMap(0.1, 0.4), ENu2LameMap(), AffineMap(scale=3.0)], input_size=4
        )
        x = np.array([0.3, -0.2, 1.1, 0.0])
        recovered = chain.inverse_eval(chain.eval(x))
        np.testing.assert_allclose(recovered, x, rtol=1e-9, atol=1e-10)

    def test_missing_inverse_propagates(self) -> None:
        chain = CompositeParameterization([ExponentialMap(), SliceMap(0, 2, 3)], input_size=3)
        with pytest.raises(NotImplementedError, match="SliceMap"):
            chain.inverse_eval(np.ones(2))

    def test_stages_shared_between_chains(self) -> None:
        stage = PowerMap(2.0)
        first = CompositeParameterization([stage], input_size=2)
        second = CompositeParameterization([AffineMap(scale=-1.0), stage], input_size=2)
        x = np.array([1.0, 2.0])
        np.testing.assert_allclose(first.eval(x), [1.0, 4.0])
        np.testing.assert_allclose(second.eval(x), [1.0, 4.0])
        assert first.stages[0] is second.stages[1]
