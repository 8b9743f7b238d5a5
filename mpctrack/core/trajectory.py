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

"""Trajectory data structures for the tracking controller."""

from dataclasses import dataclass

import jax.numpy as jnp
from jax import Array, lax

from mpctrack.core.types import PyTree


@dataclass
class Trajectory:
    """State and actuator plan produced by one solve.

    Attributes:
        X: State trajectory of shape (N, n), where N is the number of
            prediction steps. X[0] is the (fixed) initial state.
        U: Actuator trajectory of shape (N-1, m). U[t] drives X[t] to X[t+1].

    Example:
        >>> plan = problem.unpack(solution.z)
        >>> delta, a = plan.first_control
        >>> xs, ys = plan.predicted_xy
    """

    X: Array
    U: Array

    @property
    def first_control(self) -> Array:
        """The actuator pair to apply now."""
        return self.U[0]

    @property
    def predicted_xy(self) -> tuple[Array, Array]:
        """Predicted positions for steps 1..N-1 (the initial state excluded)."""
        return self.X[1:, 0], self.X[1:, 1]


def trajectory_from_controls(
    dynamics_fn,
    U: Array,
    x0: Array,
    params: PyTree = (),
) -> Trajectory:
    """Create a Trajectory by rolling out controls through dynamics.

    Args:
        dynamics_fn: Dynamics function with signature (x, u, t, params) -> x_next.
        U: Control sequence of shape (N-1, m).
        x0: Initial state of shape (n,).
        params: Parameters to pass to dynamics.

    Returns:
        Trajectory with X computed by rollout and U as given.
    """
    return Trajectory(X=rollout(dynamics_fn, U, x0, params), U=U)


def rollout(dynamics_fn, U: Array, x0: Array, params: PyTree = ()) -> Array:
    """Simulate X[t+1] = dynamics_fn(X[t], U[t], t, params) from x0.

    Args:
        dynamics_fn: Dynamics function (x, u, t, params) -> x_next.
        U: Control sequence of shape (N-1, m).
        x0: Initial state of shape (n,).
        params: Parameters to pass to dynamics.

    Returns:
        State trajectory of shape (N, n), X[0] = x0.
    """
    def step(x, inputs):
        u, t = inputs
        x_next = dynamics_fn(x, u, t, params)
        return x_next, x_next

    _, X = lax.scan(step, x0, (U, jnp.arange(U.shape[0])))
    return jnp.concatenate([x0[None], X])
