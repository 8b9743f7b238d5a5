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


"""Model Predictive Control (MPC) path tracking.

Key components:
- MPCConfig: Nested configuration of horizon, bounds, weights and solver
- MPCProblem: Tracking problem as a nonlinear program
- MPCController: Per-tick controller with latency compensation

Example:
    >>> from mpctrack.mpc import MPCConfig, MPCController
    >>> from mpctrack.telemetry import parse_telemetry, encode_command
    >>>
    >>> config = MPCConfig.from_dict({
    ...     'horizon': {'steps': 10, 'dt': 0.1},
    ...     'weights': {'ref_v': 40.0},
    ... })
    >>> controller = MPCController(config).build()  # JIT compile once
    >>>
    >>> # Control loop
    >>> for payload in telemetry_stream:
    ...     result = controller.step(parse_telemetry(payload))
    ...     send(encode_command(result, config.bounds.max_steer))
"""

from mpctrack.mpc.config import (
    MPCConfig,
    HorizonConfig,
    ActuatorBounds,
    CostWeights,
    VehicleConfig,
    SolverConfig,
)
from mpctrack.mpc.cost import cost_terms, tracking_cost
from mpctrack.mpc.problem import MPCProblem, VariableLayout
from mpctrack.mpc.controller import (
    MPCController,
    MPCState,
    SolveResult,
    TickInput,
)

__all__ = [
    # Configuration
    'MPCConfig',
    'HorizonConfig',
    'ActuatorBounds',
    'CostWeights',
    'VehicleConfig',
    'SolverConfig',
    # Cost
    'cost_terms',
    'tracking_cost',
    # Problem
    'MPCProblem',
    'VariableLayout',
    # Controller
    'MPCController',
    'MPCState',
    'SolveResult',
    'TickInput',
]
