"""Tests for LinearFilter."""

from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from parameterization import LinearFilter


class TestLinearFilter:
    def test_rows_normalized(self) -> None:
        filt = LinearFilter(sp.csr_matrix(np.array([[1.0, 3.0], [0.0, 2.0]])))
        np.testing.assert_allclose(filt.weights.toarray(), [[0.25, 0.75], [0.0, 1.0]])

    def test_constant_field_is_preserved(self) -> None:
        rng = np.random.default_rng(0)
        filt = LinearFilter.from_points(rng.uniform(size=(30, 2)), radius=0.3)
        np.testing.assert_allclose(filt.eval(np.full(30, 0.7)), np.full(30, 0.7))

    def test_small_radius_is_identity(self) -> None:
        points = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        filt = LinearFilter.from_points(points, radius=0.5)
        x = np.array([1.0, 2.0, 3.0])
        np.testing.assert_allclose(filt.eval(x), x)

    def test_cone_weights(self) -> None:
        filt = LinearFilter.from_points(np.array([0.0, 1.0, 2.0]), radius=1.5)
        # Row 1 sees both neighbours at distance 1 with weight 0.5 and itself with 1.5
        np.testing.assert_allclose(filt.weights.toarray()[1], [0.2, 0.6, 0.2])

    def test_adjoint_is_transpose(self) -> None:
        rng = np.random.default_rng(1)
        filt = LinearFilter.from_points(rng.uniform(size=(10, 2)), radius=0.4)
        x = rng.standard_normal(10)
        g = rng.standard_normal(10)
        assert float(g @ filt.eval(x)) == pytest.approx(float(filt.apply_jacobian(g, x) @ x))

    def test_empty_row_rejected(self) -> None:
        with pytest.raises(ValueError, match="positive weight sum"):
            LinearFilter(sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 0.0]])))

    def test_radius_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="radius"):
            LinearFilter.from_points(np.zeros((2, 2)), radius=0.0)

    def test_size(self) -> None:
        filt = LinearFilter(sp.csr_matrix(np.ones((2, 3))))
        assert filt.size(3) == 2
        with pytest.raises(ValueError, match="expects input of size 3"):
            filt.size(2)
