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

"""Nonlinear program specification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jax.numpy as jnp
from jax import Array

from mpctrack.core.types import (
    PyTree,
    ObjectiveFn,
    ConstraintFn,
    Bounds,
)


@dataclass
class NonlinearProgram:
    """Solver-independent nonlinear program.

    Encapsulates everything a solver needs, and nothing about where the
    problem came from:

        min  objective(z, params)
        s.t. equality_constraint(z, params) = 0
             z_min <= z <= z_max

    Entries of the bounds may be infinite for unbounded variables. The
    `params` argument carries per-solve data so the functions can be
    JIT-compiled once and reused ("build once, pass parameters").

    Attributes:
        n_vars: Dimension of the decision vector.
        n_equality: Number of equality constraints.
        objective: Scalar objective (z, params) -> scalar.
        equality_constraint: Constraint residuals (z, params) -> (n_equality,).
        bounds: Tuple (z_min, z_max) of shape (n_vars,) each, or None.

    Example:
        >>> def objective(z, params):
        ...     return jnp.sum((z - params['target']) ** 2)
        ...
        >>> def constraint(z, params):
        ...     return jnp.array([z[0] + z[1] - 1.0])
        ...
        >>> program = NonlinearProgram(
        ...     n_vars=2,
        ...     n_equality=1,
        ...     objective=objective,
        ...     equality_constraint=constraint,
        ...     bounds=(jnp.zeros(2), jnp.ones(2)),
        ... )
    """

    n_vars: int
    n_equality: int
    objective: ObjectiveFn
    equality_constraint: ConstraintFn
    bounds: Optional[Bounds] = None

    def __post_init__(self):
        """Validate program specification."""
        if self.n_vars < 1:
            raise ValueError(f"n_vars must be >= 1, got {self.n_vars}")
        if self.n_equality < 0:
            raise ValueError(
                f"n_equality must be >= 0, got {self.n_equality}"
            )
        if self.bounds is not None:
            lower, upper = self.bounds
            lower = jnp.asarray(lower, dtype=float)
            upper = jnp.asarray(upper, dtype=float)
            if lower.shape != (self.n_vars,) or upper.shape != (self.n_vars,):
                raise ValueError(
                    f"bounds must have shape ({self.n_vars},), "
                    f"got {lower.shape} and {upper.shape}"
                )
            if bool(jnp.any(lower > upper)):
                raise ValueError("lower bounds must not exceed upper bounds")
            self.bounds = (lower, upper)

    @property
    def lower(self) -> Array:
        """Lower bounds, -inf where unbounded."""
        if self.bounds is None:
            return jnp.full((self.n_vars,), -jnp.inf)
        return self.bounds[0]

    @property
    def upper(self) -> Array:
        """Upper bounds, +inf where unbounded."""
        if self.bounds is None:
            return jnp.full((self.n_vars,), jnp.inf)
        return self.bounds[1]

    def evaluate_objective(self, z: Array, params: PyTree = ()) -> Array:
        """Evaluate the objective at z."""
        return self.objective(z, params)

    def evaluate_constraints(self, z: Array, params: PyTree = ()) -> Array:
        """Evaluate the equality constraint residuals at z."""
        return self.equality_constraint(z, params)

    def clip(self, z: Array) -> Array:
        """Project z onto the variable bounds."""
        return jnp.clip(z, self.lower, self.upper)

    def max_constraint_violation(self, z: Array, params: PyTree = ()) -> float:
        """Compute maximum constraint violation.

        Args:
            z: Decision vector of shape (n_vars,).
            params: Parameters to pass to the constraint function.

        Returns:
            Largest absolute equality residual or bound excess. 0.0 when
            z is feasible.
        """
        violations = [
            jnp.max(jnp.maximum(0.0, self.lower - z)),
            jnp.max(jnp.maximum(0.0, z - self.upper)),
        ]
        if self.n_equality > 0:
            residuals = self.equality_constraint(z, params)
            violations.append(jnp.max(jnp.abs(residuals)))
        return float(jnp.max(jnp.array(violations)))
