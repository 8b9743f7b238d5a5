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

"""Receding horizon path-tracking controller.

Per telemetry tick the controller
  1. predicts where the vehicle will be once the command takes effect,
  2. expresses the waypoints in that predicted vehicle frame,
  3. fits the reference polynomial and derives cte and epsi,
  4. solves the tracking program from the rollout of zero actuators,
and returns the first actuator pair together with the predicted path.

Nothing computed during a tick is carried over to the next one; the only
state kept between ticks is a diagnostic count of consecutive
non-converged solves.
"""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from absl import logging
import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from mpctrack.core.errors import InvalidInputError, SolveInfeasibleError
from mpctrack.core.solution import NLPSolution
from mpctrack.core.state import Pose, VehicleState
from mpctrack.core.trajectory import Trajectory
from mpctrack.core.types import SolverStatus
from mpctrack.geometry.polynomial import fit_reference, polyeval
from mpctrack.geometry.transforms import global_to_vehicle
from mpctrack.models.bicycle import propagate_latency, step_pose
from mpctrack.mpc.config import MPCConfig
from mpctrack.mpc.problem import MPCProblem
from mpctrack.solvers.base import NLPOptimizerBase, get_solver
from mpctrack.telemetry import Telemetry


@dataclass(frozen=True)
class TickInput:
    """Solver input derived from one telemetry message.

    Attributes:
        state: Initial tracking state in the predicted vehicle frame.
        coeffs: Reference polynomial in that frame, ascending powers.
        pose: Predicted global pose the frame is attached to.
        waypoints_x: Waypoint x coordinates in the vehicle frame.
        waypoints_y: Waypoint y coordinates in the vehicle frame.
    """
    state: VehicleState
    coeffs: Array
    pose: Pose
    waypoints_x: Array
    waypoints_y: Array


@dataclass(frozen=True)
class SolveResult:
    """Outcome of one control tick.

    Attributes:
        steer_value: Steering angle to apply, radians, positive turns left.
        throttle_value: Acceleration command.
        predicted_x: Planned x positions for steps 1..N-1.
        predicted_y: Planned y positions for steps 1..N-1.
        reference_x: Sample abscissae of the reference curve.
        reference_y: Reference curve at reference_x.
        status: Solver status.
        objective: Objective value of the returned plan.
        iterations: Major solver iterations.
        solve_time_ms: Wall-clock time of the solve.
    """
    steer_value: float
    throttle_value: float
    predicted_x: Tuple[float, ...]
    predicted_y: Tuple[float, ...]
    reference_x: Tuple[float, ...]
    reference_y: Tuple[float, ...]
    status: SolverStatus
    objective: float
    iterations: int
    solve_time_ms: float

    @property
    def converged(self) -> bool:
        return self.status == SolverStatus.SOLVED


@dataclass
class MPCState:
    """Diagnostics kept across ticks; never read by the solve.

    Attributes:
        step_count: Total number of solves.
        consecutive_failures: Non-converged solves since the last converged
            one.
        last_status: Status of the most recent solve.
    """
    step_count: int = 0
    consecutive_failures: int = 0
    last_status: SolverStatus = SolverStatus.UNKNOWN


class MPCController:
    """Path-tracking MPC controller.

    Example:
        >>> controller = MPCController(MPCConfig())
        >>> controller.build()  # JIT compile once
        >>>
        >>> # Control loop
        >>> for payload in telemetry_stream:
        ...     result = controller.step(parse_telemetry(payload))
        ...     send(encode_command(result, config.bounds.max_steer))
    """

    def __init__(
        self,
        config: Optional[MPCConfig] = None,
        optimizer: Optional[NLPOptimizerBase] = None,
    ):
        """Initialize MPC controller.

        Args:
            config: Controller configuration (uses defaults if None).
            optimizer: NLP solver (created from config if None).
        """
        self.config = config or MPCConfig()
        self.problem = MPCProblem.from_config(self.config)
        self.state = MPCState()

        # Create optimizer from config if not provided
        if optimizer is None:
            solver_config = self.config.solver
            self.optimizer = get_solver(
                solver_config.solver_type,
                **solver_config.to_dict()
            )
        else:
            self.optimizer = optimizer

        # Will be set by build()
        self._solve_fn: Optional[Callable] = None
        self._initial_guess: Optional[Callable] = None
        self._is_built = False

    def build(self, warmup: bool = True) -> 'MPCController':
        """Build compiled solver.

        This method should be called once before the control loop. It
        compiles the program functions and, with `warmup`, runs one solve
        on a straight reference so the first real tick does not pay for
        compilation.

        Returns:
            Self for method chaining.
        """
        if self._is_built:
            return self

        start = time.perf_counter()
        self._solve_fn = self.optimizer.build_solver(self.problem)
        problem = self.problem
        self._initial_guess = jax.jit(lambda params: problem.initial_guess(params))

        if warmup:
            state = VehicleState.local(self.config.weights.ref_v / 2, 0.0, 0.0)
            params = self.problem.params(
                state.as_array(), jnp.zeros(self.config.polynomial_order + 1)
            )
            self._solve_fn(self._initial_guess(params), params)

        self._is_built = True
        logging.info(
            'Built %s tracking controller: N=%d, dt=%.3f, %d variables, '
            '%d constraints (%.1f ms)',
            self.optimizer.name, self.problem.steps,
            self.config.horizon.dt, self.problem.n_vars,
            self.problem.n_equality, (time.perf_counter() - start) * 1e3,
        )
        return self

    def prepare(self, telemetry: Telemetry) -> TickInput:
        """Turn a telemetry message into the solver input.

        The pose is first advanced over the actuation latency with the
        actuators currently applied, and the waypoints are expressed in the
        frame of that predicted pose. The initial state is therefore
        (0, 0, 0, v, f(0), -atan(f'(0))).

        Args:
            telemetry: Validated telemetry of this tick.

        Returns:
            TickInput for solve().

        Raises:
            InvalidInputError: If there are too few waypoints.
            FitDegenerateError: If no reference polynomial can be fit.
        """
        config = self.config
        n_points = len(telemetry.ptsx)
        if n_points < config.min_waypoints:
            raise InvalidInputError(
                f"need at least {config.min_waypoints} waypoints, got {n_points}"
            )

        pose = propagate_latency(
            Pose(telemetry.x, telemetry.y, telemetry.psi, telemetry.speed),
            telemetry.steering_angle,
            telemetry.throttle,
            config.vehicle.latency,
            config.vehicle.lf,
        )
        xs, ys = global_to_vehicle(
            pose.x, pose.y, pose.psi,
            jnp.asarray(telemetry.ptsx, dtype=float),
            jnp.asarray(telemetry.ptsy, dtype=float),
        )
        coeffs = fit_reference(xs, ys, config.polynomial_order)

        state = VehicleState.local(
            v=pose.v,
            cte=float(polyeval(coeffs, 0.0)),
            epsi=-float(jnp.arctan(coeffs[1])),
        )
        return TickInput(state, coeffs, pose, xs, ys)

    def solve(self, state: VehicleState, coeffs: Array) -> SolveResult:
        """Solve the tracking program from `state` along `coeffs`.

        Args:
            state: Initial tracking state.
            coeffs: Reference polynomial, ascending powers, length
                polynomial_order + 1.

        Returns:
            SolveResult with the first actuator pair and the plan. If the
            program is infeasible the safe command (0, 0) is returned with
            INFEASIBLE status.

        Raises:
            RuntimeError: If build() has not been called.
            InvalidInputError: If the inputs are malformed.
        """
        if not self._is_built:
            raise RuntimeError(
                "Controller must be built before solving. Call build() first."
            )

        coeffs = jnp.asarray(coeffs, dtype=float)
        expected = (self.config.polynomial_order + 1,)
        if coeffs.shape != expected:
            raise InvalidInputError(
                f"coeffs must have shape {expected}, got {coeffs.shape}"
            )
        x0 = state.as_array()
        if not (bool(jnp.all(jnp.isfinite(x0)))
                and bool(jnp.all(jnp.isfinite(coeffs)))):
            raise InvalidInputError("state and coeffs must be finite")

        start = time.perf_counter()
        params = self.problem.params(x0, coeffs)
        z0 = self._initial_guess(params)

        try:
            solution = self._solve_fn(z0, params)
        except SolveInfeasibleError as e:
            logging.error(
                'Tracking program infeasible (%s); applying safe command', e.status
            )
            self._record(SolverStatus.INFEASIBLE, 0)
            return self._safe_result(z0, coeffs, start)

        self._record(solution.status, solution.iterations)
        return self._result(self.problem.unpack(solution.z), coeffs, solution)

    def step(self, telemetry: Telemetry) -> SolveResult:
        """Execute one control tick.

        Args:
            telemetry: Validated telemetry of this tick.

        Returns:
            SolveResult of the tick.

        Raises:
            RuntimeError: If build() has not been called.
            InvalidInputError: If the telemetry is insufficient.
        """
        tick = self.prepare(telemetry)
        result = self.solve(tick.state, tick.coeffs)
        logging.vlog(
            1,
            'tick %d: steer=%.4f throttle=%.4f cte=%.4f epsi=%.4f '
            'status=%s iterations=%d (%.1f ms)',
            self.state.step_count, result.steer_value, result.throttle_value,
            tick.state.cte, tick.state.epsi, result.status.name,
            result.iterations, result.solve_time_ms,
        )
        return result

    def rollout(
        self,
        pose: Pose,
        track_x: Sequence[float],
        track_y: Sequence[float],
        num_steps: int,
        lookahead: int = 6,
        sim_dt: Optional[float] = None,
    ) -> Tuple[List[Pose], List[SolveResult]]:
        """Drive the kinematic model along a global track with this controller.

        Every simulated tick hands the controller the `lookahead` track
        points starting at the one nearest to the vehicle. The previous
        command stays in effect for the configured latency before the new
        one is applied, as it would on the vehicle.

        Args:
            pose: Initial global pose.
            track_x: Global x coordinates of the track, in driving order.
            track_y: Global y coordinates of the track.
            num_steps: Number of control ticks.
            lookahead: Waypoints handed to the controller per tick.
            sim_dt: Time between ticks (defaults to the horizon dt).

        Returns:
            Tuple of:
                - poses: num_steps + 1 poses, starting with `pose`
                - results: SolveResult of each tick

        Raises:
            RuntimeError: If build() has not been called.
            InvalidInputError: If the track or lookahead is too short.
        """
        if not self._is_built:
            raise RuntimeError(
                "Controller must be built before rollout. Call build() first."
            )

        track = np.column_stack([
            np.asarray(track_x, dtype=float), np.asarray(track_y, dtype=float)
        ])
        if min(len(track), lookahead) < self.config.min_waypoints:
            raise InvalidInputError(
                f"track and lookahead must provide at least "
                f"{self.config.min_waypoints} waypoints"
            )

        dt = sim_dt or self.config.horizon.dt
        lf = self.config.vehicle.lf
        delay = min(self.config.vehicle.latency, dt)
        delta, a = 0.0, 0.0
        poses = [pose]
        results = []

        for _ in range(num_steps):
            nearest = int(np.argmin(np.sum(
                (track - np.array([pose.x, pose.y])) ** 2, axis=1
            )))
            window = track[(nearest + np.arange(lookahead)) % len(track)]
            result = self.step(Telemetry(
                x=pose.x, y=pose.y, psi=pose.psi, speed=pose.v,
                steering_angle=delta, throttle=a,
                ptsx=tuple(window[:, 0]), ptsy=tuple(window[:, 1]),
            ))

            if delay > 0.0:
                pose = step_pose(pose, delta, a, delay, lf)
            delta, a = result.steer_value, result.throttle_value
            if dt - delay > 0.0:
                pose = step_pose(pose, delta, a, dt - delay, lf)

            poses.append(pose)
            results.append(result)

        return poses, results

    def reset(self):
        """Reset controller diagnostics."""
        self.state = MPCState()

    def _record(self, status: SolverStatus, iterations: int):
        """Update the failure counter and log non-converged solves."""
        self.state.step_count += 1
        self.state.last_status = status
        if status == SolverStatus.SOLVED:
            self.state.consecutive_failures = 0
            return

        self.state.consecutive_failures += 1
        failures = self.state.consecutive_failures
        if failures >= self.config.failure_log_threshold:
            logging.error(
                '%d consecutive ticks without convergence (last status %s)',
                failures, status.name,
            )
        else:
            logging.warning(
                'Tracking solve did not converge: status=%s iterations=%d',
                status.name, iterations,
            )

    def _reference(self, coeffs: Array) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
        xs = self.config.reference_spacing * np.arange(self.config.reference_samples)
        ys = np.asarray(polyeval(coeffs, jnp.asarray(xs, dtype=float)))
        return tuple(float(x) for x in xs), tuple(float(y) for y in ys)

    def _result(
        self,
        plan: Trajectory,
        coeffs: Array,
        solution: NLPSolution,
    ) -> SolveResult:
        bounds = self.config.bounds
        delta, a = np.asarray(plan.first_control, dtype=float)
        xs, ys = plan.predicted_xy
        reference_x, reference_y = self._reference(coeffs)
        return SolveResult(
            steer_value=float(np.clip(delta, *bounds.steer)),
            throttle_value=float(np.clip(a, *bounds.accel)),
            predicted_x=tuple(float(x) for x in xs),
            predicted_y=tuple(float(y) for y in ys),
            reference_x=reference_x,
            reference_y=reference_y,
            status=solution.status,
            objective=float(solution.obj),
            iterations=solution.iterations,
            solve_time_ms=solution.solve_time_ms,
        )

    def _safe_result(self, z0: Array, coeffs: Array, start: float) -> SolveResult:
        """Zero steering and throttle, with the zero-actuator rollout as plan."""
        xs, ys = self.problem.unpack(z0).predicted_xy
        reference_x, reference_y = self._reference(coeffs)
        return SolveResult(
            steer_value=0.0,
            throttle_value=0.0,
            predicted_x=tuple(float(x) for x in xs),
            predicted_y=tuple(float(y) for y in ys),
            reference_x=reference_x,
            reference_y=reference_y,
            status=SolverStatus.INFEASIBLE,
            objective=float('inf'),
            iterations=0,
            solve_time_ms=(time.perf_counter() - start) * 1e3,
        )
