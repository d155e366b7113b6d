from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from core.finite_diff import check_gradient, check_hessian, fd_gradient, fd_jacobian


def test_fd_gradient_of_quadratic() -> None:
    A = np.array([[3.0, 1.0], [1.0, 2.0]])

    def f(x: np.ndarray) -> float:
        return 0.5 * float(x @ A @ x)

    x = np.array([0.3, -0.7])
    np.testing.assert_allclose(fd_gradient(f, x), A @ x, atol=1e-7)


def test_fd_jacobian_shape() -> None:
    J = fd_jacobian(lambda x: np.array([x[0] * x[1], x[0], x[1] ** 2]), np.array([1.0, 2.0]))
    assert J.shape == (3, 2)
    np.testing.assert_allclose(J, [[2.0, 1.0], [1.0, 0.0], [0.0, 4.0]], atol=1e-7)


def test_check_gradient_detects_wrong_gradient() -> None:
    x = np.array([1.0, 2.0])
    good = check_gradient(lambda z: float(z @ z), lambda z: 2 * z, x)
    bad = check_gradient(lambda z: float(z @ z), lambda z: z, x)

    assert good.passed
    assert good.name == "gradient"
    assert not bad.passed
    assert "relative error" in bad.details


def test_check_hessian_accepts_sparse() -> None:
    x = np.array([0.5, -0.5, 1.0])
    result = check_hessian(lambda z: 2 * z, lambda z: 2 * sp.identity(3, format="csr"), x)
    assert result.passed
