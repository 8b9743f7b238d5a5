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

"""Core abstractions for the tracking controller.

This module provides the fundamental data structures and type definitions:

- NonlinearProgram: Solver-independent problem (objective, constraints, bounds)
- NLPSolution: Solver result (decision vector, status, diagnostics)
- Trajectory: State and actuator plan unpacked from a solution
- Pose, VehicleState: Immutable vehicle state values
- Exception types shared by every layer
"""

from mpctrack.core.types import (
    SolverStatus,
    PyTree,
    DynamicsFn,
    ObjectiveFn,
    ConstraintFn,
    Bounds,
)

from mpctrack.core.errors import (
    MPCError,
    ConfigError,
    InvalidInputError,
    FitDegenerateError,
    SolveInfeasibleError,
)

from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.state import Pose, VehicleState
from mpctrack.core.solution import NLPSolution

from mpctrack.core.trajectory import (
    Trajectory,
    rollout,
    trajectory_from_controls,
)

__all__ = [
    # Types
    'SolverStatus',
    'PyTree',
    'DynamicsFn',
    'ObjectiveFn',
    'ConstraintFn',
    'Bounds',
    # Errors
    'MPCError',
    'ConfigError',
    'InvalidInputError',
    'FitDegenerateError',
    'SolveInfeasibleError',
    # Data structures
    'NonlinearProgram',
    'Pose',
    'VehicleState',
    'NLPSolution',
    'Trajectory',
    'rollout',
    'trajectory_from_controls',
]
