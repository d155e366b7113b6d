"""Time stepping of an elastic body with optional contact and friction.

Each step minimizes the incremental potential built from a SimulationConfig:

    inertia + elastic + kappa * barrier + friction + lagged damping

with a staggered loop that refreshes the lagged friction quantities between
inner solves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import scipy.sparse as sp

from core.config import SimulationConfig
from core.logging import ExecutionContext, get_logger
from core.types import SolveResult, Vector
from forms.base import Form
from forms.composite import CompositeForm
from forms.contact import ContactForm
from forms.elastic import ElasticForm
from forms.friction import FrictionForm
from forms.inertia import InertiaForm
from forms.lagged_reg import LaggedRegForm
from optim.registry import make_solver
from problems.nl_problem import FormProblem
from problems.time_integrator import TimeIntegrator, make_time_integrator

__all__ = ["Obstacle", "Trajectory", "TimeSteppingSolver"]


@dataclass(frozen=True)
class Obstacle:
    """Rigid half-space {p : n . p >= offset}."""

    normal: tuple[float, ...]
    offset: float = 0.0


@dataclass
class Trajectory:
    """States and per-step solver results of a run.

    Attributes:
        times: Time of each state (the first entry is t0).
        states: One state per time, starting with the initial state.
        results: Inner solve result of every step.
    """

    times: list[float] = field(default_factory=list)
    states: list[Vector] = field(default_factory=list)
    results: list[SolveResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.states)

    def as_array(self) -> np.ndarray:
        return np.stack(self.states)


class TimeSteppingSolver:
    """Implicit dynamics (or a single static solve without a time block).

    Attributes:
        config: Validated configuration.
        forms: The assembled objective.
        contact_form: Barrier form, or None without contact.
        friction_form: Friction form, or None without friction.
        inertia_form: Inertia form, or None for static / ignored inertia.
    """

    def __init__(
        self,
        config: SimulationConfig,
        mass: sp.spmatrix | np.ndarray,
        stiffness: sp.spmatrix | np.ndarray,
        load: Vector | None = None,
        rest: Vector | None = None,
        dim: int = 2,
        obstacle: Obstacle | None = None,
        context: ExecutionContext | None = None,
    ) -> None:
        """Build the forms described by ``config``.

        Raises:
            ValueError: If contact is enabled without an obstacle.
        """
        self.config = config
        self.context = context
        self.logger: logging.Logger = (
            context.child("transient") if context is not None else get_logger(__name__)
        )
        solver_cfg = config.solver
        dt = config.time.dt if config.time is not None else 1.0

        self.elastic_form = ElasticForm(stiffness, rest=rest, load=load)
        members: list[Form] = []

        self.integrator: TimeIntegrator | None = None
        self.inertia_form: InertiaForm | None = None
        if config.time is not None:
            self.integrator = make_time_integrator(config.time)
            if not solver_cfg.ignore_inertia:
                self.inertia_form = InertiaForm(mass, acceleration_scaling=dt**2)
                members.append(self.inertia_form)
        members.append(self.elastic_form)

        self.contact_form: ContactForm | None = None
        self.friction_form: FrictionForm | None = None
        if config.contact.enabled:
            if obstacle is None:
                raise ValueError("Contact is enabled but no obstacle was given")
            self.contact_form = ContactForm(
                dim,
                np.asarray(obstacle.normal, dtype=float),
                obstacle.offset,
                config.contact.dhat,
                solver_cfg.contact.ccd,
            )
            members.append(self.contact_form)
            if config.contact.has_friction:
                self.friction_form = FrictionForm(
                    self.contact_form,
                    config.contact.friction_coefficient,
                    config.contact.epsv,
                    dt,
                    max_iterations=solver_cfg.contact.friction_iterations,
                )
                members.append(self.friction_form)

        self.damping_form: LaggedRegForm | None = None
        if solver_cfg.contact.lagged_damping_weight > 0:
            self.damping_form = LaggedRegForm(solver_cfg.contact.lagged_damping_weight)
            members.append(self.damping_form)

        self.forms = CompositeForm(members)
        self.problem = FormProblem(self.forms, context)
        self.solver = make_solver(solver_cfg.nonlinear, context)

    def _set_barrier_stiffness(self, x: Vector) -> None:
        if self.contact_form is None:
            return
        contact_cfg = self.config.solver.contact
        if contact_cfg.adaptive_barrier_stiffness:
            grad_energy = self.elastic_form.gradient(x)
            if self.inertia_form is not None:
                grad_energy = grad_energy + self.inertia_form.gradient(x)
            kappa = self.contact_form.initial_barrier_stiffness(grad_energy, x)
        else:
            kappa = float(contact_cfg.barrier_stiffness)
        self.contact_form.set_weight(kappa)
        self.logger.info("barrier stiffness %.3e", kappa)

    def _step(self, t: float, x: Vector) -> SolveResult:
        self.forms.update_quantities(t, x)
        contact_cfg = self.config.solver.contact
        return self.problem.solve_with_lagging(
            self.solver,
            x,
            max_iterations=max(1, contact_cfg.friction_iterations),
            tol=contact_cfg.friction_convergence_tol,
        )

    def run(self, x0: Vector, v0: Vector | None = None) -> Trajectory:
        """Integrate from ``x0`` over the configured time steps.

        Without a time block a single static solve is performed.

        Raises:
            ValueError: If the initial state penetrates the obstacle.
        """
        x = np.asarray(x0, dtype=float).copy()
        if self.contact_form is not None and not self.contact_form.is_step_valid(x, x):
            raise ValueError("Initial state penetrates the obstacle")

        trajectory = Trajectory()
        time = self.config.time
        t0 = time.t0 if time is not None else 0.0
        trajectory.times.append(t0)
        trajectory.states.append(x.copy())

        if time is None or self.integrator is None:
            self._set_barrier_stiffness(x)
            result = self._step(t0, x)
            trajectory.times.append(t0)
            trajectory.states.append(result.x.copy())
            trajectory.results.append(result)
            return trajectory

        self.integrator.init(x, v0, time.dt)
        for step in range(1, time.time_steps + 1):
            t = t0 + step * time.dt
            if self.inertia_form is not None:
                self.inertia_form.set_prediction(self.integrator.predicted())
                self.inertia_form.set_acceleration_scaling(self.integrator.acceleration_scaling())
            if step == 1:
                self._set_barrier_stiffness(x)
            result = self._step(t, x)
            if not result.converged:
                self.logger.warning("step %d did not converge (%s)", step, result.status)
            x = result.x.copy()
            self.integrator.update(x)
            trajectory.times.append(t)
            trajectory.states.append(x.copy())
            trajectory.results.append(result)
            self.logger.info("t=%.4g step %d/%d", t, step, time.time_steps)
        return trajectory
