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


"""Tests for the path-tracking controller."""

from unittest import mock

from absl.testing import absltest
from absl.testing import parameterized

import jax.numpy as jnp
from jax import config
import numpy as np

from mpctrack.core.errors import InvalidInputError, SolveInfeasibleError
from mpctrack.core.state import Pose, VehicleState
from mpctrack.core.types import SolverStatus
from mpctrack.geometry.polynomial import polyeval
from mpctrack.models.bicycle import CTE, step_pose
from mpctrack.mpc import controller as controller_module
from mpctrack.mpc.config import MPCConfig
from mpctrack.mpc.controller import MPCController, MPCState
from mpctrack.mpc.problem import MPCProblem
from mpctrack.solvers import SQPOptimizer
from mpctrack.telemetry import Telemetry, encode_command

config.update('jax_enable_x64', True)

# Generous cap so slow machines still converge.
_SOLVER = {'max_solve_time': 5.0}


def _telemetry(ptsx, ptsy, x=0.0, y=0.0, psi=0.0, speed=0.0,
               steering_angle=0.0, throttle=0.0):
    return Telemetry(
        x=x, y=y, psi=psi, speed=speed,
        steering_angle=steering_angle, throttle=throttle,
        ptsx=tuple(float(v) for v in ptsx),
        ptsy=tuple(float(v) for v in ptsy),
    )


def _curve(curvature, speed=20.0):
    xs = np.arange(5.0, 35.0, 5.0)
    return _telemetry(xs, curvature * xs ** 2, speed=speed)


class _InfeasibleOptimizer(SQPOptimizer):

    def _solve_impl(self, program, z0, params, options, compiled):
        raise SolveInfeasibleError("bounds incompatible with dynamics")


class MPCControllerTest(parameterized.TestCase):

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.config = MPCConfig(solver=_SOLVER)
        cls.controller = MPCController(cls.config).build()

    def setUp(self):
        super().setUp()
        self.controller.reset()

    def test_straight_from_standstill(self):
        result = self.controller.step(
            _telemetry([5.0, 10.0, 15.0, 20.0], [0.0, 0.0, 0.0, 0.0])
        )
        self.assertLess(abs(result.steer_value), 1e-2)
        self.assertGreater(result.throttle_value, 0.0)
        self.assertLen(result.predicted_x, 9)
        self.assertLen(result.predicted_y, 9)
        self.assertLen(result.reference_x, 25)
        np.testing.assert_allclose(result.reference_x[:3], [0.0, 2.5, 5.0])
        np.testing.assert_allclose(result.reference_y, 0.0, atol=1e-9)
        self.assertEqual(self.controller.state.step_count, 1)

    @parameterized.named_parameters(
        ('left', 0.02, 1.0),
        ('right', -0.02, -1.0),
    )
    def test_steers_into_the_curve(self, curvature, sign):
        result = self.controller.step(_curve(curvature))
        self.assertGreater(sign * result.steer_value, 0.0)
        self.assertLessEqual(abs(result.steer_value), self.config.bounds.max_steer)
        self.assertGreater(sign * result.predicted_y[-1], 0.0)

    @parameterized.parameters(0, 1, 2)
    def test_commands_within_bounds(self, seed):
        rng = np.random.default_rng(seed)
        xs = np.sort(rng.uniform(2.0, 40.0, size=6))
        ys = rng.uniform(-0.5, 0.5) + rng.uniform(-0.05, 0.05) * xs ** 2
        result = self.controller.step(_telemetry(
            xs, ys, speed=rng.uniform(0.0, 40.0),
            steering_angle=rng.uniform(-0.4, 0.4),
            throttle=rng.uniform(-1.0, 1.0),
        ))
        bounds = self.config.bounds
        self.assertLessEqual(abs(result.steer_value), bounds.max_steer)
        self.assertBetween(result.throttle_value, bounds.min_accel, bounds.max_accel)
        self.assertTrue(np.all(np.isfinite(result.predicted_x)))

    def test_prepare_applies_latency(self):
        telemetry = _telemetry(
            [5.0, 10.0, 15.0, 20.0], [1.0, 1.5, 2.0, 2.5],
            x=3.0, y=-1.0, psi=0.2, speed=15.0, steering_angle=0.1, throttle=0.5,
        )
        tick = self.controller.prepare(telemetry)

        expected = step_pose(
            Pose(3.0, -1.0, 0.2, 15.0), 0.1, 0.5,
            self.config.vehicle.latency, self.config.vehicle.lf,
        )
        self.assertEqual(tick.pose, expected)
        self.assertEqual(tick.state.x, 0.0)
        self.assertEqual(tick.state.psi, 0.0)
        self.assertAlmostEqual(tick.state.v, expected.v)
        self.assertAlmostEqual(tick.state.cte, float(polyeval(tick.coeffs, 0.0)))
        self.assertAlmostEqual(tick.state.epsi, -float(jnp.arctan(tick.coeffs[1])))

    def test_prepare_without_latency(self):
        controller = MPCController(MPCConfig(vehicle={'latency': 0.0}))
        tick = controller.prepare(_telemetry(
            [5.0, 10.0, 15.0, 20.0], [0.0, 0.0, 0.0, 0.0],
            x=1.0, y=2.0, psi=0.3, speed=10.0, steering_angle=0.2,
        ))
        self.assertAlmostEqual(tick.pose.x, 1.0)
        self.assertAlmostEqual(tick.pose.y, 2.0)
        self.assertAlmostEqual(tick.pose.psi, 0.3)
        self.assertAlmostEqual(tick.pose.v, 10.0)

    def test_too_few_waypoints(self):
        with mock.patch.object(self.controller, 'solve') as solve:
            with self.assertRaises(InvalidInputError):
                self.controller.step(_telemetry([5.0, 10.0, 15.0], [0.0, 0.0, 0.0]))
        solve.assert_not_called()
        self.assertEqual(self.controller.state.step_count, 0)

    def test_coeffs_shape(self):
        with self.assertRaises(InvalidInputError):
            self.controller.solve(VehicleState.local(10.0, 0.0, 0.0), jnp.zeros(3))

    def test_non_finite_state(self):
        with self.assertRaises(InvalidInputError):
            self.controller.solve(
                VehicleState.local(float('nan'), 0.0, 0.0), jnp.zeros(4)
            )

    def test_rollout_converges_to_track(self):
        track_x = np.arange(0.0, 300.0, 5.0)
        poses, results = self.controller.rollout(
            Pose(0.0, 1.0, 0.0, 10.0), track_x, np.zeros_like(track_x), num_steps=10
        )
        self.assertLen(poses, 11)
        self.assertLen(results, 10)
        self.assertEqual(poses[0], Pose(0.0, 1.0, 0.0, 10.0))
        self.assertLess(abs(poses[-1].y), 1.0)
        self.assertGreater(poses[-1].x, poses[0].x)

    def test_encode_step_result(self):
        result = self.controller.step(_curve(0.02))
        message = encode_command(result, self.config.bounds.max_steer)
        self.assertAlmostEqual(
            message['steering_angle'],
            -result.steer_value / self.config.bounds.max_steer,
        )
        self.assertLen(message['mpc_x'], 9)
        self.assertLen(message['next_y'], 25)


class MPCControllerFailureTest(absltest.TestCase):

    def test_requires_build(self):
        controller = MPCController()
        with self.assertRaises(RuntimeError):
            controller.solve(VehicleState.local(10.0, 0.0, 0.0), jnp.zeros(4))
        with self.assertRaises(RuntimeError):
            controller.rollout(Pose(0.0, 0.0, 0.0, 0.0), [0.0] * 8, [0.0] * 8, 1)

    def test_iteration_cap_counts_failures(self):
        config = MPCConfig(
            solver={'maxiter': 1, 'max_solve_time': 5.0},
            failure_log_threshold=2,
        )
        controller = MPCController(config).build(warmup=False)
        telemetry = _telemetry([5.0, 10.0, 15.0, 20.0], [0.0, 0.0, 0.0, 0.0])

        with mock.patch.object(controller_module, 'logging') as logging:
            first = controller.step(telemetry)
            self.assertEqual(first.status, SolverStatus.MAX_ITERATIONS)
            self.assertEqual(controller.state.consecutive_failures, 1)
            logging.warning.assert_called_once()
            logging.error.assert_not_called()

            controller.step(telemetry)
            self.assertEqual(controller.state.consecutive_failures, 2)
            logging.error.assert_called_once()

        # A failed tick still returns a usable command
        self.assertGreater(first.throttle_value, 0.0)

        controller.reset()
        self.assertEqual(controller.state, MPCState())

    def test_infeasible_returns_safe_command(self):
        controller = MPCController(optimizer=_InfeasibleOptimizer()).build(
            warmup=False
        )
        with mock.patch.object(controller_module, 'logging') as logging:
            result = controller.solve(
                VehicleState.local(10.0, 0.5, 0.1), jnp.array([0.5, 0.0, 0.0, 0.0])
            )
        logging.error.assert_called_once()
        self.assertEqual(result.steer_value, 0.0)
        self.assertEqual(result.throttle_value, 0.0)
        self.assertEqual(result.status, SolverStatus.INFEASIBLE)
        self.assertFalse(result.converged)
        self.assertLen(result.predicted_x, 9)
        # Zero-actuator rollout at constant speed
        self.assertAlmostEqual(result.predicted_x[0], 1.0)
        self.assertEqual(controller.state.consecutive_failures, 1)

    def test_slsqp_controller(self):
        config = MPCConfig(solver={'solver_type': 'slsqp', 'max_solve_time': 5.0})
        controller = MPCController(config).build(warmup=False)
        result = controller.step(_curve(0.02, speed=10.0))
        self.assertGreater(result.steer_value, 0.0)
        self.assertGreater(result.throttle_value, 0.0)
        self.assertLessEqual(abs(result.steer_value), config.bounds.max_steer)


class CostWeightEffectTest(absltest.TestCase):

    def test_cte_weight_reduces_tracking_error(self):
        state = VehicleState.local(v=20.0, cte=1.0, epsi=0.0)
        coeffs = jnp.array([1.0, 0.0, 0.0, 0.0])
        optimizer = SQPOptimizer(maxiter=100, max_solve_time=10.0)

        errors, final_errors = [], []
        for weight in (100.0, 1000.0, 4000.0, 10000.0):
            problem = MPCProblem.from_config(MPCConfig(weights={'cte': weight}))
            params = problem.params(state.as_array(), coeffs)
            solution = optimizer.solve(problem, problem.initial_guess(params), params)
            plan = problem.unpack(solution.z)
            errors.append(float(jnp.sum(plan.X[:, CTE] ** 2)))
            final_errors.append(abs(float(plan.X[-1, CTE])))

        for low, high in zip(errors, errors[1:]):
            self.assertLessEqual(high, low + 1e-6)
        for low, high in zip(final_errors, final_errors[1:]):
            self.assertLessEqual(high, low + 1e-4)
        self.assertLess(final_errors[-1], final_errors[0])


if __name__ == '__main__':
    absltest.main()
