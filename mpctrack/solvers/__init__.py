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

"""Nonlinear program solvers with class-based interface.

Available solvers:
- SQPOptimizer: Line-search SQP over sparse QP sub-problems
- SLSQPOptimizer: SciPy SLSQP with JAX derivatives

Example:
    >>> from mpctrack.solvers import SQPOptimizer
    >>> optimizer = SQPOptimizer(maxiter=50)
    >>> result = optimizer.solve(program, z0, params)
    >>>
    >>> # Or build a compiled solver for repeated use
    >>> solve_fn = optimizer.build_solver(program)
    >>> result = solve_fn(z0, params)
"""

from mpctrack.solvers.base import (
    CompiledProgram,
    NLPOptimizer,
    NLPOptimizerBase,
    compile_program,
    get_solver,
)

from mpctrack.solvers.sqp import SQPOptimizer
from mpctrack.solvers.slsqp import SLSQPOptimizer

__all__ = [
    # Base classes
    'CompiledProgram',
    'NLPOptimizer',
    'NLPOptimizerBase',
    'compile_program',
    'get_solver',
    # Solvers
    'SQPOptimizer',
    'SLSQPOptimizer',
]
