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

"""Type definitions for the tracking controller."""

from __future__ import annotations

from enum import Enum, auto
from typing import Any, Protocol, Tuple

from jax import Array


# Shapes used throughout:
# State: (6,) array [x, y, psi, v, cte, epsi]
# Control: (2,) array [delta, a]
# Decision vector: (n_vars,) flat array

PyTree = Any


class SolverStatus(Enum):
    """Status codes for nonlinear program solvers."""
    SOLVED = auto()           # Converged to tolerance
    MAX_ITERATIONS = auto()   # Reached iteration cap
    TIME_LIMIT = auto()       # Reached wall-clock cap
    INFEASIBLE = auto()       # Constraints admit no solution
    STALLED = auto()          # Line search made no progress
    UNKNOWN = auto()          # Unknown status


# Function type protocols

class DynamicsFn(Protocol):
    """Protocol for discrete-time dynamics functions.

    Signature: dynamics(x, u, t, params) -> x_next

    Args:
        x: State vector (n,)
        u: Control vector (m,)
        t: Time index (scalar int)
        params: Optional parameters (PyTree)

    Returns:
        x_next: Next state vector (n,)
    """
    def __call__(
        self,
        x: Array,
        u: Array,
        t: int,
        params: PyTree = ()
    ) -> Array:
        ...


class ObjectiveFn(Protocol):
    """Protocol for NLP objectives.

    Signature: objective(z, params) -> scalar
    """
    def __call__(self, z: Array, params: PyTree = ()) -> Array:
        ...


class ConstraintFn(Protocol):
    """Protocol for NLP equality constraints, satisfied when c(z, params) == 0.

    Signature: constraint(z, params) -> (n_equality,)
    """
    def __call__(self, z: Array, params: PyTree = ()) -> Array:
        ...


# Bounds type
Bounds = Tuple[Array, Array]  # (lower, upper)
