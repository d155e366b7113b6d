"""Validated configuration for solvers, contact and time stepping.

Configuration arrives as a JSON-like tree. Every recognized key has a default
in DEFAULT_ARGS; any other key is rejected before a solve starts. The merged
tree is then turned into frozen dataclasses that validate their own values.

Example:
    >>> config = load_config({"solver": {"nonlinear": {"max_iterations": 50}}})
    >>> config.solver.nonlinear.max_iterations
    50
    >>> load_config({"solver": {"nonlinar": {}}})
    Traceback (most recent call last):
    ...
    ValueError: Unknown configuration key '/solver/nonlinar'
"""

from __future__ import annotations

import copy
import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core.logging import get_logger

__all__ = [
    "DEFAULT_ARGS",
    "TIME_DEFAULTS",
    "SOLVER_FAMILIES",
    "LINE_SEARCH_METHODS",
    "BROAD_PHASE_METHODS",
    "TIME_INTEGRATORS",
    "LineSearchParams",
    "NonlinearSolverParams",
    "AugmentedLagrangianParams",
    "CCDParams",
    "SolverContactParams",
    "ContactParams",
    "TimeParams",
    "OptimizationOutputParams",
    "SolverParams",
    "SimulationConfig",
    "check_for_unknown_args",
    "merge_patch",
    "resolve_time",
    "load_config",
    "load_json",
    "apply_overrides",
    "load_config_file",
]

SOLVER_FAMILIES = frozenset({"newton", "lbfgs", "gradient_descent"})
LINE_SEARCH_METHODS = frozenset({"backtracking", "armijo"})
BROAD_PHASE_METHODS = frozenset({"hash_grid", "brute_force"})
TIME_INTEGRATORS = frozenset({"ImplicitEuler", "ImplicitNewmark", "BDF"})

DEFAULT_ARGS: dict[str, Any] = {
    "contact": {
        "enabled": False,
        "dhat": 1e-3,
        "dhat_percentage": 0.8,
        "epsv": 1e-3,
        "friction_coefficient": 0.0,
    },
    "time": None,
    "solver": {
        "nonlinear": {
            "solver": "newton",
            "f_delta": 1e-10,
            "grad_norm": 1e-8,
            "min_step_size": 0.0,
            "max_iterations": 1000,
            "use_grad_norm": True,
            "relative_gradient": False,
            "line_search": {
                "method": "backtracking",
                "use_grad_norm_tol": 1e-4,
            },
        },
        "optimization_nonlinear": {
            "solver": "lbfgs",
            "f_delta": 1e-9,
            "grad_norm": 1e-7,
            "min_step_size": 0.0,
            "max_iterations": 100,
            "use_grad_norm": True,
            "relative_gradient": False,
            "line_search": {
                "method": "backtracking",
                "use_grad_norm_tol": 0.0,
            },
        },
        "augmented_lagrangian": {
            "initial_weight": 1e6,
            "max_weight": 1e11,
            "force": False,
        },
        "contact": {
            "CCD": {
                "broad_phase": "hash_grid",
                "tolerance": 1e-6,
                "max_iterations": 1e6,
            },
            "friction_iterations": 1,
            "friction_convergence_tol": 1e-2,
            "barrier_stiffness": "adaptive",
            "lagged_damping_weight": 0.0,
        },
        "ignore_inertia": False,
    },
    "output": {
        "directory": "",
        "optimization": {
            "save_frequency": 1,
        },
    },
}

TIME_DEFAULTS: dict[str, Any] = {
    "t0": 0.0,
    "tend": None,
    "dt": None,
    "time_steps": None,
    "integrator": "ImplicitEuler",
    "newmark": {
        "gamma": 0.5,
        "beta": 0.25,
    },
    "BDF": {
        "steps": 1,
    },
}

# Subtrees whose default is null but whose keys are still checked
_NULLABLE_SUBTREES: dict[str, dict[str, Any]] = {"/time": TIME_DEFAULTS}

_logger = get_logger(__name__)


# =============================================================================
# Parameter dataclasses
# =============================================================================


@dataclass(frozen=True)
class LineSearchParams:
    """Line-search configuration.

    Attributes:
        method: "backtracking" (plain decrease) or "armijo" (sufficient decrease).
        use_grad_norm_tol: When the energy change of a trial is below this
            tolerance, accept the trial if the gradient norm decreased.
            Zero disables the test.
    """

    method: str = "backtracking"
    use_grad_norm_tol: float = 1e-4

    def __post_init__(self) -> None:
        if self.method not in LINE_SEARCH_METHODS:
            raise ValueError(
                f"Unknown line search method '{self.method}'. "
                f"Available: {', '.join(sorted(LINE_SEARCH_METHODS))}"
            )
        if self.use_grad_norm_tol < 0:
            raise ValueError(f"use_grad_norm_tol must be >= 0, got {self.use_grad_norm_tol}")


@dataclass(frozen=True)
class NonlinearSolverParams:
    """Generic nonlinear solver configuration.

    Attributes:
        solver: Solver family ("newton", "lbfgs", "gradient_descent").
        f_delta: Stop when the accepted energy decrease falls below this.
        grad_norm: Stop when the gradient norm falls below this.
        min_step_size: Smallest line-search step before giving up.
        max_iterations: Iteration cap.
        use_grad_norm: Whether the gradient-norm criterion is active.
        relative_gradient: Scale ``grad_norm`` by the initial gradient norm.
        line_search: Line-search configuration.
    """

    solver: str = "newton"
    f_delta: float = 1e-10
    grad_norm: float = 1e-8
    min_step_size: float = 0.0
    max_iterations: int = 1000
    use_grad_norm: bool = True
    relative_gradient: bool = False
    line_search: LineSearchParams = field(default_factory=LineSearchParams)

    def __post_init__(self) -> None:
        if self.solver not in SOLVER_FAMILIES:
            raise ValueError(
                f"Unknown solver '{self.solver}'. Available: {', '.join(sorted(SOLVER_FAMILIES))}"
            )
        if self.f_delta < 0:
            raise ValueError(f"f_delta must be >= 0, got {self.f_delta}")
        if self.grad_norm < 0:
            raise ValueError(f"grad_norm must be >= 0, got {self.grad_norm}")
        if self.min_step_size < 0:
            raise ValueError(f"min_step_size must be >= 0, got {self.min_step_size}")
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {self.max_iterations}")


@dataclass(frozen=True)
class AugmentedLagrangianParams:
    """Augmented-Lagrangian weight schedule.

    Attributes:
        initial_weight: Penalty weight of the first outer iteration.
        max_weight: Weight cap; reaching it without satisfying the
            constraint is an error.
        force: Always run the penalty loop, even when the constraint can be
            imposed directly.
    """

    initial_weight: float = 1e6
    max_weight: float = 1e11
    force: bool = False

    def __post_init__(self) -> None:
        if self.initial_weight <= 0:
            raise ValueError(f"initial_weight must be positive, got {self.initial_weight}")
        if self.max_weight < self.initial_weight:
            raise ValueError(
                f"max_weight ({self.max_weight}) must be >= initial_weight ({self.initial_weight})"
            )


@dataclass(frozen=True)
class CCDParams:
    """Continuous collision detection configuration."""

    broad_phase: str = "hash_grid"
    tolerance: float = 1e-6
    max_iterations: int = 1_000_000

    def __post_init__(self) -> None:
        if self.broad_phase not in BROAD_PHASE_METHODS:
            raise ValueError(
                f"Unknown broad phase '{self.broad_phase}'. "
                f"Available: {', '.join(sorted(BROAD_PHASE_METHODS))}"
            )
        if self.tolerance <= 0:
            raise ValueError(f"CCD tolerance must be positive, got {self.tolerance}")
        if self.max_iterations < 1:
            raise ValueError(f"CCD max_iterations must be >= 1, got {self.max_iterations}")


@dataclass(frozen=True)
class SolverContactParams:
    """Solver-side contact and friction configuration.

    Attributes:
        ccd: Collision detection settings.
        friction_iterations: Maximum number of lagged friction updates. A
            negative user value means unbounded and is stored as ``2**31 - 1``.
        friction_convergence_tol: Gradient-norm tolerance of the lagging loop.
        barrier_stiffness: "adaptive" or a positive number.
        lagged_damping_weight: Weight of the lagged regularization term; zero
            disables it.
    """

    ccd: CCDParams = field(default_factory=CCDParams)
    friction_iterations: int = 1
    friction_convergence_tol: float = 1e-2
    barrier_stiffness: float | str = "adaptive"
    lagged_damping_weight: float = 0.0

    def __post_init__(self) -> None:
        if isinstance(self.barrier_stiffness, str):
            if self.barrier_stiffness != "adaptive":
                raise ValueError(
                    f"barrier_stiffness must be 'adaptive' or a number, got '{self.barrier_stiffness}'"
                )
        elif self.barrier_stiffness <= 0:
            raise ValueError(f"barrier_stiffness must be positive, got {self.barrier_stiffness}")
        if self.friction_convergence_tol < 0:
            raise ValueError(
                f"friction_convergence_tol must be >= 0, got {self.friction_convergence_tol}"
            )
        if self.lagged_damping_weight < 0:
            raise ValueError(
                f"lagged_damping_weight must be >= 0, got {self.lagged_damping_weight}"
            )
        if self.friction_iterations < 0:
            raise ValueError(f"friction_iterations must be >= 0, got {self.friction_iterations}")

    @property
    def adaptive_barrier_stiffness(self) -> bool:
        """Whether the barrier stiffness is computed from the initial state."""
        return isinstance(self.barrier_stiffness, str)


@dataclass(frozen=True)
class ContactParams:
    """Physical contact parameters."""

    enabled: bool = False
    dhat: float = 1e-3
    dhat_percentage: float = 0.8
    epsv: float = 1e-3
    friction_coefficient: float = 0.0

    def __post_init__(self) -> None:
        if self.dhat <= 0:
            raise ValueError(f"dhat must be positive, got {self.dhat}")
        if not (0 < self.dhat_percentage <= 1):
            raise ValueError(f"dhat_percentage must be in (0, 1], got {self.dhat_percentage}")
        if self.epsv <= 0:
            raise ValueError(f"epsv must be positive, got {self.epsv}")
        if self.friction_coefficient < 0:
            raise ValueError(
                f"friction_coefficient must be >= 0, got {self.friction_coefficient}"
            )

    @property
    def has_friction(self) -> bool:
        """Whether friction contributes at all."""
        return self.enabled and self.friction_coefficient > 0


@dataclass(frozen=True)
class TimeParams:
    """Resolved time-stepping parameters (all of t0, tend, dt, time_steps set)."""

    t0: float
    tend: float
    dt: float
    time_steps: int
    integrator: str = "ImplicitEuler"
    bdf_steps: int = 1
    newmark_gamma: float = 0.5
    newmark_beta: float = 0.25

    def __post_init__(self) -> None:
        if self.integrator not in TIME_INTEGRATORS:
            raise ValueError(
                f"Unknown integrator '{self.integrator}'. "
                f"Available: {', '.join(sorted(TIME_INTEGRATORS))}"
            )
        if not (1 <= self.bdf_steps <= 6):
            raise ValueError(f"BDF steps must be in [1, 6], got {self.bdf_steps}")
        if self.newmark_beta <= 0:
            raise ValueError(f"Newmark beta must be positive, got {self.newmark_beta}")
        if self.newmark_gamma <= 0:
            raise ValueError(f"Newmark gamma must be positive, got {self.newmark_gamma}")


@dataclass(frozen=True)
class OptimizationOutputParams:
    """Checkpointing of design optimization runs.

    Attributes:
        save_frequency: Write a checkpoint every this many iterations.
        directory: Output directory; empty disables checkpoints.
    """

    save_frequency: int = 1
    directory: str = ""

    def __post_init__(self) -> None:
        if self.save_frequency < 1:
            raise ValueError(f"save_frequency must be >= 1, got {self.save_frequency}")


@dataclass(frozen=True)
class SolverParams:
    """All solver-related configuration."""

    nonlinear: NonlinearSolverParams = field(default_factory=NonlinearSolverParams)
    optimization_nonlinear: NonlinearSolverParams = field(
        default_factory=lambda: NonlinearSolverParams(
            solver="lbfgs",
            f_delta=1e-9,
            grad_norm=1e-7,
            max_iterations=100,
            line_search=LineSearchParams(use_grad_norm_tol=0.0),
        )
    )
    augmented_lagrangian: AugmentedLagrangianParams = field(
        default_factory=AugmentedLagrangianParams
    )
    contact: SolverContactParams = field(default_factory=SolverContactParams)
    ignore_inertia: bool = False


@dataclass(frozen=True)
class SimulationConfig:
    """Top-level validated configuration."""

    contact: ContactParams = field(default_factory=ContactParams)
    solver: SolverParams = field(default_factory=SolverParams)
    time: TimeParams | None = None
    output: OptimizationOutputParams = field(default_factory=OptimizationOutputParams)

    @property
    def is_time_dependent(self) -> bool:
        """Whether a time block was given."""
        return self.time is not None


# =============================================================================
# Tree utilities
# =============================================================================


def check_for_unknown_args(
    defaults: Mapping[str, Any], args: Mapping[str, Any], path: str = ""
) -> None:
    """Reject keys of ``args`` that have no entry in ``defaults``.

    Args:
        defaults: Tree of recognized keys.
        args: User-supplied tree.
        path: JSON pointer prefix used in error messages.

    Raises:
        ValueError: On the first unknown key, naming its full pointer.
    """
    for key, value in args.items():
        pointer = f"{path}/{key}"
        if key not in defaults:
            raise ValueError(f"Unknown configuration key '{pointer}'")
        default = defaults[key]
        if default is None and pointer in _NULLABLE_SUBTREES and isinstance(value, Mapping):
            check_for_unknown_args(_NULLABLE_SUBTREES[pointer], value, pointer)
        elif isinstance(default, Mapping):
            if value is None:
                continue
            if not isinstance(value, Mapping):
                raise ValueError(f"Configuration key '{pointer}' must be an object")
            check_for_unknown_args(default, value, pointer)


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch (RFC 7386) and return the merged copy."""
    if not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    result = copy.deepcopy(dict(target)) if isinstance(target, Mapping) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def _is_valid(args: Mapping[str, Any], key: str) -> bool:
    return args.get(key) is not None


def resolve_time(time_args: Mapping[str, Any], logger: logging.Logger | None = None) -> TimeParams:
    """Resolve a time block into fully specified TimeParams.

    Exactly two of (tend, dt, time_steps) determine the third. All three are
    accepted only when they agree to 1e-12.

    Raises:
        ValueError: On fewer than two values, disagreeing values, or
            non-positive durations.
    """
    log = logger or _logger
    args = merge_patch(TIME_DEFAULTS, time_args)
    t0 = float(args.get("t0", 0.0))
    num_valid = sum(_is_valid(args, k) for k in ("tend", "dt", "time_steps"))

    if num_valid < 2:
        log.error("Exactly two of (tend, dt, time_steps) must be specified")
        raise ValueError("Exactly two of (tend, dt, time_steps) must be specified")

    if num_valid == 2:
        if _is_valid(args, "tend"):
            tend = float(args["tend"])
            if tend <= t0:
                raise ValueError(f"tend ({tend}) must be greater than t0 ({t0})")
            if _is_valid(args, "dt"):
                dt = float(args["dt"])
                if dt <= 0:
                    raise ValueError(f"dt must be positive, got {dt}")
                time_steps = int(math.ceil((tend - t0) / dt))
            else:
                time_steps = int(args["time_steps"])
                if time_steps <= 0:
                    raise ValueError(f"time_steps must be positive, got {time_steps}")
                dt = (tend - t0) / time_steps
        else:
            dt = float(args["dt"])
            time_steps = int(args["time_steps"])
            if dt <= 0:
                raise ValueError(f"dt must be positive, got {dt}")
            if time_steps <= 0:
                raise ValueError(f"time_steps must be positive, got {time_steps}")
            tend = t0 + time_steps * dt
    else:
        tend = float(args["tend"])
        dt = float(args["dt"])
        time_steps = int(args["time_steps"])
        if abs(t0 + dt * time_steps - tend) > 1e-12:
            log.error("Exactly two of (tend, dt, time_steps) must be specified")
            raise ValueError("Exactly two of (tend, dt, time_steps) must be specified")
        if dt <= 0 or time_steps <= 0:
            raise ValueError(f"dt and time_steps must be positive, got {dt} and {time_steps}")

    log.info("t0=%s, dt=%s, tend=%s", t0, dt, tend)

    return TimeParams(
        t0=t0,
        tend=tend,
        dt=dt,
        time_steps=time_steps,
        integrator=str(args["integrator"]),
        bdf_steps=int(args["BDF"]["steps"]),
        newmark_gamma=float(args["newmark"]["gamma"]),
        newmark_beta=float(args["newmark"]["beta"]),
    )


def _normalize_friction(args: dict[str, Any], log: logging.Logger) -> None:
    contact = args["contact"]
    solver_contact = args["solver"]["contact"]
    if contact["enabled"]:
        if solver_contact["friction_iterations"] == 0:
            log.info("specified friction_iterations is 0; disabling friction")
            contact["friction_coefficient"] = 0.0
        elif solver_contact["friction_iterations"] < 0:
            solver_contact["friction_iterations"] = 2**31 - 1
        if contact["friction_coefficient"] == 0.0:
            solver_contact["friction_iterations"] = 0
    else:
        solver_contact["friction_iterations"] = 0
        contact["friction_coefficient"] = 0.0


def _nonlinear_params(args: Mapping[str, Any]) -> NonlinearSolverParams:
    line_search = args["line_search"]
    return NonlinearSolverParams(
        solver=str(args["solver"]),
        f_delta=float(args["f_delta"]),
        grad_norm=float(args["grad_norm"]),
        min_step_size=float(args["min_step_size"]),
        max_iterations=int(args["max_iterations"]),
        use_grad_norm=bool(args["use_grad_norm"]),
        relative_gradient=bool(args["relative_gradient"]),
        line_search=LineSearchParams(
            method=str(line_search["method"]),
            use_grad_norm_tol=float(line_search["use_grad_norm_tol"]),
        ),
    )


def load_config(
    raw: Mapping[str, Any] | None = None, logger: logging.Logger | None = None
) -> SimulationConfig:
    """Validate a user configuration tree and build a SimulationConfig.

    Args:
        raw: User configuration; missing keys take their defaults.
        logger: Optional logger for normalization messages.

    Returns:
        The validated configuration.

    Raises:
        ValueError: On unknown keys or invalid / contradictory values.
    """
    log = logger or _logger
    raw = raw or {}
    check_for_unknown_args(DEFAULT_ARGS, raw)
    args = merge_patch(DEFAULT_ARGS, raw)
    args.setdefault("time", None)

    _normalize_friction(args, log)

    time_params = resolve_time(args["time"], log) if args.get("time") is not None else None

    solver = args["solver"]
    solver_contact = solver["contact"]
    ccd = solver_contact["CCD"]
    barrier_stiffness = solver_contact["barrier_stiffness"]
    if not isinstance(barrier_stiffness, str):
        barrier_stiffness = float(barrier_stiffness)

    al = solver["augmented_lagrangian"]
    output = args["output"]

    return SimulationConfig(
        contact=ContactParams(
            enabled=bool(args["contact"]["enabled"]),
            dhat=float(args["contact"]["dhat"]),
            dhat_percentage=float(args["contact"]["dhat_percentage"]),
            epsv=float(args["contact"]["epsv"]),
            friction_coefficient=float(args["contact"]["friction_coefficient"]),
        ),
        solver=SolverParams(
            nonlinear=_nonlinear_params(solver["nonlinear"]),
            optimization_nonlinear=_nonlinear_params(solver["optimization_nonlinear"]),
            augmented_lagrangian=AugmentedLagrangianParams(
                initial_weight=float(al["initial_weight"]),
                max_weight=float(al["max_weight"]),
                force=bool(al["force"]),
            ),
            contact=SolverContactParams(
                ccd=CCDParams(
                    broad_phase=str(ccd["broad_phase"]),
                    tolerance=float(ccd["tolerance"]),
                    max_iterations=int(ccd["max_iterations"]),
                ),
                friction_iterations=int(solver_contact["friction_iterations"]),
                friction_convergence_tol=float(solver_contact["friction_convergence_tol"]),
                barrier_stiffness=barrier_stiffness,
                lagged_damping_weight=float(solver_contact["lagged_damping_weight"]),
            ),
            ignore_inertia=bool(solver["ignore_inertia"]),
        ),
        time=time_params,
        output=OptimizationOutputParams(
            save_frequency=int(output["optimization"]["save_frequency"]),
            directory=str(output["directory"]),
        ),
    )


# =============================================================================
# File and override helpers
# =============================================================================


def load_json(path: str | Path) -> dict[str, Any]:
    """Read a JSON configuration file whose top level is an object.

    Raises:
        ValueError: If the top level is not a JSON object.
    """
    with Path(path).open("r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {path} must contain a JSON object")
    return raw


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def apply_overrides(config: Mapping[str, Any], overrides: Sequence[str]) -> dict[str, Any]:
    """Apply ``solver.nonlinear.max_iterations=5`` style overrides to a copy of ``config``.

    Each override becomes a one-key merge patch, so ``key=null`` restores the
    default of ``key`` and object values are merged rather than replaced.

    Raises:
        ValueError: If an override is not ``dotted.key=value`` or has an empty key.
    """
    result = copy.deepcopy(dict(config))
    for item in overrides:
        if "=" not in item:
            raise ValueError(f"Override must be key=value, got: {item}")
        path, raw_val = item.split("=", 1)
        keys = path.split(".")
        if not all(keys):
            raise ValueError(f"Override key has an empty component: {path!r}")
        patch: Any = _parse_value(raw_val)
        for key in reversed(keys):
            patch = {key: patch}
        result = merge_patch(result, patch)
    return result


def load_config_file(
    path: str | Path,
    overrides: Sequence[str] = (),
    logger: logging.Logger | None = None,
) -> SimulationConfig:
    """Load a JSON configuration, apply command-line overrides and validate it.

    Raises:
        ValueError: On a malformed file or override, unknown keys or invalid
            values.
    """
    raw = apply_overrides(load_json(path), overrides)
    return load_config(raw, logger)
