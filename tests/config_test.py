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


"""Tests for controller configuration."""

import dataclasses
import math

from absl.testing import absltest
from absl.testing import parameterized

from mpctrack.core.errors import ConfigError
from mpctrack.mpc.config import (
    ActuatorBounds,
    CostWeights,
    HorizonConfig,
    MPCConfig,
    SolverConfig,
    VehicleConfig,
)


class DefaultsTest(absltest.TestCase):

    def test_defaults(self):
        config = MPCConfig()
        self.assertEqual(config.horizon.steps, 10)
        self.assertAlmostEqual(config.horizon.dt, 0.1)
        self.assertAlmostEqual(config.horizon.duration, 1.0)
        self.assertAlmostEqual(config.bounds.max_steer, 0.436332, places=6)
        self.assertEqual(config.bounds.accel, (-1.0, 1.0))
        self.assertAlmostEqual(config.vehicle.lf, 2.67)
        self.assertAlmostEqual(config.vehicle.latency, 0.1)
        self.assertEqual(config.polynomial_order, 3)
        self.assertEqual(config.min_waypoints, 4)

    def test_default_weights(self):
        weights = CostWeights()
        self.assertEqual(
            dataclasses.astuple(weights),
            (2000.0, 2000.0, 1.0, 5.0, 5.0, 200.0, 10.0, 40.0),
        )

    def test_frozen(self):
        config = MPCConfig()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.horizon = HorizonConfig(steps=5)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            config.weights.cte = 1.0


class ValidationTest(parameterized.TestCase):

    @parameterized.named_parameters(
        ('one_step', lambda: HorizonConfig(steps=1)),
        ('fractional_steps', lambda: HorizonConfig(steps=2.5)),
        ('zero_dt', lambda: HorizonConfig(dt=0.0)),
        ('negative_steer', lambda: ActuatorBounds(max_steer=-0.1)),
        ('steer_over_right_angle', lambda: ActuatorBounds(max_steer=2.0)),
        ('empty_accel', lambda: ActuatorBounds(min_accel=1.0, max_accel=1.0)),
        ('infinite_accel', lambda: ActuatorBounds(max_accel=math.inf)),
        ('negative_weight', lambda: CostWeights(cte=-1.0)),
        ('nan_weight', lambda: CostWeights(steer_rate=math.nan)),
        ('zero_lf', lambda: VehicleConfig(lf=0.0)),
        ('negative_latency', lambda: VehicleConfig(latency=-0.1)),
        ('unknown_solver', lambda: SolverConfig(solver_type='ipopt')),
        ('zero_maxiter', lambda: SolverConfig(maxiter=0)),
        ('zero_time', lambda: SolverConfig(max_solve_time=0.0)),
        ('zero_step_tol', lambda: SolverConfig(step_tol=0.0)),
        ('zero_order', lambda: MPCConfig(polynomial_order=0)),
        ('too_few_waypoints', lambda: MPCConfig(min_waypoints=3)),
        ('zero_threshold', lambda: MPCConfig(failure_log_threshold=0)),
    )
    def test_invalid(self, make):
        with self.assertRaises(ConfigError):
            make()

    def test_config_error_is_value_error(self):
        with self.assertRaises(ValueError):
            HorizonConfig(steps=0)


class FromDictTest(absltest.TestCase):

    def test_nested(self):
        config = MPCConfig.from_dict({
            'horizon': {'steps': 12, 'dt': 0.05},
            'weights': {'ref_v': 60.0},
            'vehicle': {'latency': 0.0},
            'solver': {'solver_type': 'slsqp', 'maxiter': 100},
        })
        self.assertEqual(config.horizon, HorizonConfig(steps=12, dt=0.05))
        self.assertEqual(config.weights.ref_v, 60.0)
        self.assertEqual(config.weights.cte, 2000.0)
        self.assertEqual(config.vehicle.latency, 0.0)
        self.assertEqual(config.solver.solver_type, 'slsqp')
        self.assertIsInstance(config.bounds, ActuatorBounds)

    def test_unknown_top_level_key(self):
        with self.assertRaisesRegex(ConfigError, 'unknown config keys'):
            MPCConfig.from_dict({'horizn': {'steps': 12}})

    def test_unknown_nested_key(self):
        with self.assertRaises(ConfigError):
            MPCConfig.from_dict({'weights': {'cte': 1.0, 'heading': 2.0}})

    def test_wrong_nested_type(self):
        with self.assertRaises(ConfigError):
            MPCConfig(horizon=10)


class SolverConfigTest(absltest.TestCase):

    def test_sqp_options(self):
        options = SolverConfig(
            maxiter=20, extra_options={'qp_options': {'max_iter': 500}}
        ).to_dict()
        self.assertEqual(options['maxiter'], 20)
        self.assertEqual(options['qp_backend'], 'osqp')
        self.assertEqual(options['qp_options'], {'max_iter': 500})
        self.assertIn('step_tol', options)
        self.assertNotIn('ftol', options)

    def test_slsqp_options(self):
        options = SolverConfig(solver_type='slsqp', step_tol=1e-5).to_dict()
        self.assertEqual(options['ftol'], 1e-5)
        self.assertNotIn('qp_backend', options)


if __name__ == '__main__':
    absltest.main()
