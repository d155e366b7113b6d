"""Tests for the implicit time integrators."""

from __future__ import annotations

import numpy as np
import pytest

from core.config import TimeParams
from problems import BDF, ImplicitEuler, ImplicitNewmark, TimeIntegrator, make_time_integrator
from problems.time_integrator import _BDF_ALPHAS


def _oscillator(integrator: TimeIntegrator, k: float, steps: int) -> list[float]:
    """Unit-mass spring: each step minimizes 0.5/s |x - x_tilde|^2 + 0.5 k x^2."""
    energies = []
    for _ in range(steps):
        s = integrator.acceleration_scaling()
        x = integrator.predicted() / (1.0 + s * k)
        integrator.update(x)
        v = integrator.v_prev
        energies.append(0.5 * float(v @ v) + 0.5 * k * float(x @ x))
    return energies


class TestBDF:
    @pytest.mark.parametrize("order", sorted(_BDF_ALPHAS))
    def test_coefficients_consistent(self, order: int) -> None:
        assert sum(_BDF_ALPHAS[order]) == pytest.approx(1.0)

    def test_startup_order(self) -> None:
        bdf = BDF(3)
        bdf.init(np.zeros(2), np.ones(2), 0.1)
        orders = []
        for _ in range(5):
            orders.append(bdf.order)
            bdf.update(bdf.predicted())
        assert orders == [1, 2, 3, 3, 3]

    @pytest.mark.parametrize("steps", [1, 2, 4, 6])
    def test_free_motion_is_exact(self, steps: int) -> None:
        bdf = BDF(steps)
        x0 = np.array([1.0, -2.0])
        v0 = np.array([0.5, 3.0])
        dt = 0.05
        bdf.init(x0, v0, dt)
        for n in range(1, 11):
            bdf.update(bdf.predicted())
            np.testing.assert_allclose(bdf.x_prev, x0 + n * dt * v0, atol=1e-12)
            np.testing.assert_allclose(bdf.v_prev, v0, atol=1e-10)

    def test_euler_scaling_and_velocity(self) -> None:
        euler = ImplicitEuler()
        euler.init(np.zeros(1), np.array([2.0]), 0.1)
        assert euler.acceleration_scaling() == pytest.approx(0.01)
        np.testing.assert_allclose(euler.predicted(), [0.2])
        np.testing.assert_allclose(euler.compute_velocity(np.array([0.3])), [3.0])
        np.testing.assert_allclose(euler.compute_acceleration(np.array([3.0])), [10.0])

    def test_euler_dissipates_oscillator_energy(self) -> None:
        euler = ImplicitEuler()
        euler.init(np.zeros(1), np.ones(1), 0.1)
        energies = _oscillator(euler, k=4.0, steps=30)
        assert all(b < a for a, b in zip(energies, energies[1:]))

    def test_invalid_order(self) -> None:
        with pytest.raises(ValueError, match="BDF steps"):
            BDF(7)


class TestNewmark:
    def test_average_acceleration_conserves_energy(self) -> None:
        newmark = ImplicitNewmark()
        newmark.init(np.zeros(1), np.ones(1), 0.1)
        energies = _oscillator(newmark, k=4.0, steps=50)
        np.testing.assert_allclose(energies, 0.5, rtol=1e-10)

    def test_free_motion_is_exact(self) -> None:
        newmark = ImplicitNewmark(gamma=0.6, beta=0.3)
        newmark.init(np.array([1.0]), np.array([2.0]), 0.1)
        for n in range(1, 6):
            newmark.update(newmark.predicted())
            np.testing.assert_allclose(newmark.x_prev, [1.0 + 0.2 * n])
            np.testing.assert_allclose(newmark.v_prev, [2.0])

    def test_velocity_preview_matches_update(self) -> None:
        newmark = ImplicitNewmark()
        newmark.init(np.zeros(2), np.array([1.0, 0.0]), 0.2)
        x = np.array([0.15, -0.05])
        preview = newmark.compute_velocity(x)
        newmark.update(x)
        np.testing.assert_allclose(newmark.v_prev, preview)

    @pytest.mark.parametrize(("gamma", "beta"), [(0.0, 0.25), (0.5, -1.0)])
    def test_invalid_parameters(self, gamma: float, beta: float) -> None:
        with pytest.raises(ValueError, match="gamma and beta"):
            ImplicitNewmark(gamma, beta)


class TestInit:
    def test_requires_positive_dt(self) -> None:
        with pytest.raises(ValueError, match="dt must be positive"):
            ImplicitEuler().init(np.zeros(2), None, 0.0)

    def test_velocity_shape(self) -> None:
        with pytest.raises(ValueError, match="v0 has shape"):
            ImplicitNewmark().init(np.zeros(2), np.zeros(3), 0.1)

    def test_default_velocity_is_zero(self) -> None:
        euler = ImplicitEuler()
        euler.init(np.ones(2), None, 0.1)
        np.testing.assert_array_equal(euler.v_prev, np.zeros(2))
        np.testing.assert_array_equal(euler.predicted(), np.ones(2))


class TestFactory:
    @pytest.mark.parametrize(
        ("name", "cls"),
        [("ImplicitEuler", ImplicitEuler), ("BDF", BDF), ("ImplicitNewmark", ImplicitNewmark)],
    )
    def test_make_time_integrator(self, name: str, cls: type) -> None:
        params = TimeParams(t0=0.0, tend=1.0, dt=0.1, time_steps=10, integrator=name, bdf_steps=2)
        assert isinstance(make_time_integrator(params), cls)

    def test_bdf_steps_forwarded(self) -> None:
        params = TimeParams(t0=0.0, tend=1.0, dt=0.1, time_steps=10, integrator="BDF", bdf_steps=4)
        integrator = make_time_integrator(params)
        assert isinstance(integrator, BDF)
        assert integrator.steps == 4
