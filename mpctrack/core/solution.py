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

"""Result container for nonlinear program solvers."""

from dataclasses import dataclass, field
from typing import Any, Dict

from jax import Array

from mpctrack.core.types import SolverStatus


@dataclass
class NLPSolution:
    """Container for nonlinear program results.

    Solvers always return the best iterate they found, whether or not
    they converged. Callers inspect `status` to tell the difference.

    Attributes:
        z: Decision vector of shape (n_vars,).
        obj: Objective value at z.
        status: Solver status indicating convergence or failure mode.
        constraint_violation: Maximum constraint violation at z.
        iterations: Number of major iterations performed.
        info: Solver-specific information such as:
            - 'solve_time_ms': Wall-clock time spent in the solver
            - 'step_norm': Infinity norm of the last step
            - 'qp_iterations': Total QP backend iterations
    """

    z: Array
    obj: float
    status: SolverStatus = SolverStatus.UNKNOWN
    constraint_violation: float = 0.0
    iterations: int = 0
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        """Return True if solver converged successfully."""
        return self.status == SolverStatus.SOLVED

    @property
    def solve_time_ms(self) -> float:
        """Wall-clock solve time in milliseconds, 0.0 if not recorded."""
        return float(self.info.get('solve_time_ms', 0.0))
