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

"""Tracking problem as a nonlinear program.

The decision vector stacks every state and actuator variable of the horizon
block by block:

    z = [x_0..x_{N-1}, y_.., psi_.., v_.., cte_.., epsi_..,
         delta_0..delta_{N-2}, a_0..a_{N-2}]

so it has 6N + 2(N-1) entries. The initial state block is pinned to the
measured state by equality constraints, every later state is tied to its
predecessor by the bicycle model, and only the actuators carry bounds.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import jax
import jax.numpy as jnp
from jax import Array

from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.trajectory import Trajectory, trajectory_from_controls
from mpctrack.core.types import PyTree
from mpctrack.models.bicycle import CONTROL_DIM, STATE_DIM, make_dynamics
from mpctrack.mpc.config import MPCConfig
from mpctrack.mpc.cost import tracking_cost


@dataclass(frozen=True)
class VariableLayout:
    """Block-major layout of the decision vector.

    Attributes:
        steps: Number of prediction steps N.
        state_dim: Number of state components.
        control_dim: Number of actuator components.
    """
    steps: int
    state_dim: int = STATE_DIM
    control_dim: int = CONTROL_DIM

    @property
    def n_states(self) -> int:
        return self.steps * self.state_dim

    @property
    def n_controls(self) -> int:
        return (self.steps - 1) * self.control_dim

    @property
    def n_vars(self) -> int:
        return self.n_states + self.n_controls

    def state_slice(self, i: int) -> slice:
        """Entries of state component i across the horizon."""
        start = i * self.steps
        return slice(start, start + self.steps)

    def control_slice(self, j: int) -> slice:
        """Entries of actuator component j across the horizon."""
        start = self.n_states + j * (self.steps - 1)
        return slice(start, start + self.steps - 1)

    def pack(self, X: Array, U: Array) -> Array:
        """Flatten (N, n) states and (N-1, m) actuators into z."""
        return jnp.concatenate([X.T.reshape(-1), U.T.reshape(-1)])

    def unpack(self, z: Array) -> tuple[Array, Array]:
        """Inverse of pack."""
        X = z[:self.n_states].reshape(self.state_dim, self.steps).T
        U = z[self.n_states:].reshape(self.control_dim, self.steps - 1).T
        return X, U


@dataclass
class MPCProblem(NonlinearProgram):
    """Path-tracking program for a fixed configuration.

    The structure (sizes, weights, bounds, model constants) is fixed at
    construction. The per-tick data, i.e. the initial state and the
    reference polynomial, is passed to every function as
    `params = {'x0': ..., 'coeffs': ...}` so the solver can compile the
    program once.

    Attributes:
        layout: Decision vector layout.
        dynamics: Tracking-state dynamics (x, u, t, params) -> x_next.
        config: Configuration the program was built from.

    Example:
        >>> problem = MPCProblem.from_config(MPCConfig())
        >>> params = problem.params(x0, coeffs)
        >>> z0 = problem.initial_guess(params)
        >>> plan = problem.unpack(solver(z0, params).z)
    """
    layout: Optional[VariableLayout] = None
    dynamics: Optional[Callable] = None
    config: Optional[MPCConfig] = None

    @classmethod
    def from_config(cls, config: MPCConfig) -> 'MPCProblem':
        """Build the tracking program described by `config`."""
        layout = VariableLayout(steps=config.horizon.steps)
        dynamics = make_dynamics(config.vehicle.lf, config.horizon.dt)
        weights = config.weights
        steps = layout.steps

        def objective(z: Array, params: PyTree) -> Array:
            X, U = layout.unpack(z)
            return tracking_cost(X, U, weights)

        def equality_constraint(z: Array, params: PyTree) -> Array:
            X, U = layout.unpack(z)
            predicted = jax.vmap(dynamics, in_axes=(0, 0, 0, None))(
                X[:-1], U, jnp.arange(steps - 1), params
            )
            return jnp.concatenate([
                X[0] - params['x0'],
                (X[1:] - predicted).reshape(-1),
            ])

        lower = jnp.full((layout.n_vars,), -jnp.inf)
        upper = jnp.full((layout.n_vars,), jnp.inf)
        for j, (lo, hi) in enumerate((config.bounds.steer, config.bounds.accel)):
            block = layout.control_slice(j)
            lower = lower.at[block].set(lo)
            upper = upper.at[block].set(hi)

        return cls(
            n_vars=layout.n_vars,
            n_equality=layout.n_states,
            objective=objective,
            equality_constraint=equality_constraint,
            bounds=(lower, upper),
            layout=layout,
            dynamics=dynamics,
            config=config,
        )

    @property
    def steps(self) -> int:
        return self.layout.steps

    @staticmethod
    def params(x0: Array, coeffs: Array) -> PyTree:
        """Per-tick parameters shared by every program function."""
        return {
            'x0': jnp.asarray(x0, dtype=float),
            'coeffs': jnp.asarray(coeffs, dtype=float),
        }

    def initial_guess(self, params: PyTree) -> Array:
        """Rollout of zero actuators from x0, clipped to the bounds.

        With zero actuators inside the bounds the guess satisfies every
        constraint exactly.
        """
        U = self.clip(jnp.zeros(self.layout.n_vars))[self.layout.n_states:]
        U = U.reshape(self.layout.control_dim, self.steps - 1).T
        plan = trajectory_from_controls(self.dynamics, U, params['x0'], params)
        return self.layout.pack(plan.X, plan.U)

    def unpack(self, z: Array) -> Trajectory:
        """Trajectory view of a decision vector."""
        X, U = self.layout.unpack(jnp.asarray(z))
        return Trajectory(X=X, U=U)
