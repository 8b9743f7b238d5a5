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

"""QP solver backends for the SQP optimizer.

This module provides QP solver backends that implement the QPSolver
protocol. Solvers are loaded conditionally based on available
dependencies.

Available backends:
- osqp: OSQP solver (requires osqp)
- cvxpy: CVXPY with its bundled conic solvers (requires cvxpy)
"""

from mpctrack.qp.base import (
    QPStatus,
    QPFormulation,
    QPSolution,
    QPSolver,
    QPSolverBase,
    same_sparsity,
)

# Registry of available backends
_AVAILABLE_BACKENDS = {}

try:
    from mpctrack.qp.osqp_backend import OSQPBackend, OSQP_AVAILABLE
    if OSQP_AVAILABLE:
        _AVAILABLE_BACKENDS['osqp'] = OSQPBackend
except ImportError:
    pass

# Optional: CVXPY backend
try:
    from mpctrack.qp.cvxpy_backend import CVXPYBackend, CVXPY_AVAILABLE
    if CVXPY_AVAILABLE:
        _AVAILABLE_BACKENDS['cvxpy'] = CVXPYBackend
except ImportError:
    pass


def get_available_backends():
    """Return list of available QP solver backend names."""
    return list(_AVAILABLE_BACKENDS.keys())


def get_qp_solver(name: str, **kwargs) -> QPSolverBase:
    """Factory function to create QP solver by name.

    Args:
        name: Backend name ('osqp' or 'cvxpy').
        **kwargs: Backend-specific options.

    Returns:
        QPSolver instance.

    Raises:
        ValueError: If backend is not available.
    """
    name_lower = name.lower()
    if name_lower not in _AVAILABLE_BACKENDS:
        available = get_available_backends()
        raise ValueError(
            f"QP solver '{name}' not available. "
            f"Available backends: {available}. "
            f"Install the required package to enable more backends."
        )
    return _AVAILABLE_BACKENDS[name_lower](**kwargs)


__all__ = [
    # Base classes
    'QPStatus',
    'QPFormulation',
    'QPSolution',
    'QPSolver',
    'QPSolverBase',
    'same_sparsity',
    # Factory
    'get_qp_solver',
    'get_available_backends',
]
