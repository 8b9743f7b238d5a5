# Copyright 2024 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration classes for the tracking controller.

Provides nested, frozen dataclass configuration. A config is validated once
when it is constructed and never changes afterwards; invalid values raise
ConfigError.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Literal

from mpctrack.core.errors import ConfigError


def _coerce(config, name: str, cls) -> None:
    """Replace a dict-valued field of a frozen dataclass by `cls(**value)`."""
    value = getattr(config, name)
    if isinstance(value, dict):
        try:
            value = cls(**value)
        except TypeError as e:
            raise ConfigError(f"invalid {name} config: {e}") from e
        object.__setattr__(config, name, value)
    elif not isinstance(value, cls):
        raise ConfigError(
            f"{name} must be a {cls.__name__} or dict, got {type(value).__name__}"
        )


@dataclass(frozen=True)
class HorizonConfig:
    """Prediction horizon.

    Attributes:
        steps: Number of prediction steps N (states per plan).
        dt: Time between steps in seconds.
    """
    steps: int = 10
    dt: float = 0.1

    def __post_init__(self):
        if int(self.steps) != self.steps or self.steps < 2:
            raise ConfigError(f"steps must be an integer >= 2, got {self.steps}")
        if not self.dt > 0.0:
            raise ConfigError(f"dt must be > 0, got {self.dt}")

    @property
    def duration(self) -> float:
        """Length of the prediction horizon in seconds."""
        return self.steps * self.dt


@dataclass(frozen=True)
class ActuatorBounds:
    """Hard actuator limits.

    Attributes:
        max_steer: Steering magnitude limit in radians (default 25 degrees).
        min_accel: Lowest acceleration / throttle command.
        max_accel: Highest acceleration / throttle command.
    """
    max_steer: float = math.radians(25.0)
    min_accel: float = -1.0
    max_accel: float = 1.0

    def __post_init__(self):
        if not 0.0 < self.max_steer <= math.pi / 2:
            raise ConfigError(
                f"max_steer must be in (0, pi/2], got {self.max_steer}"
            )
        if not (math.isfinite(self.min_accel) and math.isfinite(self.max_accel)):
            raise ConfigError("acceleration bounds must be finite")
        if not self.min_accel < self.max_accel:
            raise ConfigError(
                f"min_accel ({self.min_accel}) must be < max_accel "
                f"({self.max_accel})"
            )

    @property
    def steer(self) -> tuple[float, float]:
        return -self.max_steer, self.max_steer

    @property
    def accel(self) -> tuple[float, float]:
        return self.min_accel, self.max_accel


@dataclass(frozen=True)
class CostWeights:
    """Weights of the tracking objective.

    Tracking and smoothness weights are set well above the raw control
    effort weights so the optimizer prefers smooth, accurate plans.

    Attributes:
        cte: Cross-track error.
        epsi: Heading error.
        speed: Deviation from ref_v.
        steer: Steering magnitude.
        accel: Acceleration magnitude.
        steer_rate: Change of steering between consecutive steps.
        accel_rate: Change of acceleration between consecutive steps.
        ref_v: Target cruising speed.
    """
    cte: float = 2000.0
    epsi: float = 2000.0
    speed: float = 1.0
    steer: float = 5.0
    accel: float = 5.0
    steer_rate: float = 200.0
    accel_rate: float = 10.0
    ref_v: float = 40.0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value) or value < 0.0:
                raise ConfigError(
                    f"cost weight {f.name} must be finite and >= 0, got {value}"
                )


@dataclass(frozen=True)
class VehicleConfig:
    """Vehicle constants.

    Attributes:
        lf: Distance from the front axle to the center of gravity.
        latency: Delay in seconds between computing and applying a command.
    """
    lf: float = 2.67
    latency: float = 0.1

    def __post_init__(self):
        if not self.lf > 0.0:
            raise ConfigError(f"lf must be > 0, got {self.lf}")
        if not (math.isfinite(self.latency) and self.latency >= 0.0):
            raise ConfigError(f"latency must be >= 0, got {self.latency}")


@dataclass(frozen=True)
class SolverConfig:
    """Configuration for the nonlinear program solver.

    Attributes:
        solver_type: Type of solver ('sqp' or 'slsqp').
        qp_backend: QP backend used by 'sqp' ('osqp', 'cvxpy').
        maxiter: Maximum major iterations per solve.
        max_solve_time: Wall-clock cap per solve in seconds.
        step_tol: Converged when the step infinity norm falls below this.
        constraint_tol: Converged when the constraint violation falls below
            this.
        hessian_reg: Diagonal added to the cost Hessian.
        alpha_min: Smallest line search step before giving up.
        verbose: Whether to log every iteration.
    """
    solver_type: Literal['sqp', 'slsqp'] = 'sqp'
    qp_backend: str = 'osqp'
    maxiter: int = 50
    max_solve_time: float = 0.5
    step_tol: float = 1e-3
    constraint_tol: float = 1e-4
    hessian_reg: float = 1e-6
    alpha_min: float = 1e-4
    verbose: bool = False

    # Additional solver kwargs
    extra_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.solver_type not in ('sqp', 'slsqp'):
            raise ConfigError(f"unknown solver_type: {self.solver_type}")
        if int(self.maxiter) != self.maxiter or self.maxiter < 1:
            raise ConfigError(f"maxiter must be an integer >= 1, got {self.maxiter}")
        if not self.max_solve_time > 0.0:
            raise ConfigError(
                f"max_solve_time must be > 0, got {self.max_solve_time}"
            )
        for name in ('step_tol', 'constraint_tol', 'alpha_min'):
            if not getattr(self, name) > 0.0:
                raise ConfigError(f"{name} must be > 0")
        if self.hessian_reg < 0.0:
            raise ConfigError("hessian_reg must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for solver initialization."""
        base = {
            'maxiter': self.maxiter,
            'max_solve_time': self.max_solve_time,
            'constraint_tol': self.constraint_tol,
            'verbose': self.verbose,
        }
        if self.solver_type == 'sqp':
            base.update({
                'qp_backend': self.qp_backend,
                'step_tol': self.step_tol,
                'hessian_reg': self.hessian_reg,
                'alpha_min': self.alpha_min,
            })
        else:
            base['ftol'] = self.step_tol
        base.update(self.extra_options)
        return base


@dataclass(frozen=True)
class MPCConfig:
    """Complete tracking controller configuration.

    Attributes:
        horizon: Prediction horizon.
        bounds: Actuator limits.
        weights: Cost weights and reference speed.
        vehicle: Vehicle constants and actuation latency.
        solver: Solver configuration.
        polynomial_order: Degree of the reference polynomial.
        min_waypoints: Fewest waypoints accepted per tick.
        reference_samples: Number of reference curve points returned for
            visualization.
        reference_spacing: Spacing along the vehicle x axis of those points.
        failure_log_threshold: Consecutive non-converged solves after which
            each further failure is logged as an error.

    Example:
        >>> config = MPCConfig.from_dict({
        ...     'horizon': {'steps': 12, 'dt': 0.1},
        ...     'weights': {'ref_v': 60.0},
        ... })
    """
    horizon: HorizonConfig = field(default_factory=HorizonConfig)
    bounds: ActuatorBounds = field(default_factory=ActuatorBounds)
    weights: CostWeights = field(default_factory=CostWeights)
    vehicle: VehicleConfig = field(default_factory=VehicleConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    polynomial_order: int = 3
    min_waypoints: int = 4
    reference_samples: int = 25
    reference_spacing: float = 2.5
    failure_log_threshold: int = 5

    def __post_init__(self):
        """Convert nested dicts to config objects and validate."""
        _coerce(self, 'horizon', HorizonConfig)
        _coerce(self, 'bounds', ActuatorBounds)
        _coerce(self, 'weights', CostWeights)
        _coerce(self, 'vehicle', VehicleConfig)
        _coerce(self, 'solver', SolverConfig)

        if self.polynomial_order < 1:
            raise ConfigError(
                f"polynomial_order must be >= 1, got {self.polynomial_order}"
            )
        if self.min_waypoints < self.polynomial_order + 1:
            raise ConfigError(
                f"min_waypoints must be >= polynomial_order + 1 "
                f"({self.polynomial_order + 1}), got {self.min_waypoints}"
            )
        if self.reference_samples < 0 or self.reference_spacing <= 0.0:
            raise ConfigError(
                "reference_samples must be >= 0 and reference_spacing > 0"
            )
        if self.failure_log_threshold < 1:
            raise ConfigError("failure_log_threshold must be >= 1")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'MPCConfig':
        """Build a config from plain (e.g. parsed YAML/JSON) values."""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {sorted(unknown)}")
        return cls(**values)
