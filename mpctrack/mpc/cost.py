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

"""Tracking objective.

    J = sum_t  w_cte cte_t^2 + w_epsi epsi_t^2 + w_v (v_t - v_ref)^2
      + sum_t  w_delta delta_t^2 + w_a a_t^2
      + sum_t  w_ddelta (delta_{t+1} - delta_t)^2 + w_da (a_{t+1} - a_t)^2

State terms run over all N steps, effort terms over the N-1 actuator steps
and rate terms over the N-2 consecutive actuator pairs. No discounting.
"""

from typing import Dict

import jax.numpy as jnp
from jax import Array

from mpctrack.models.bicycle import CTE, EPSI, V, DELTA, ACCEL
from mpctrack.mpc.config import CostWeights


def cost_terms(X: Array, U: Array, weights: CostWeights) -> Dict[str, Array]:
    """Weighted cost broken down by term.

    Args:
        X: State trajectory of shape (N, 6).
        U: Actuator trajectory of shape (N-1, 2).
        weights: Cost weights and reference speed.

    Returns:
        Dict mapping term name to its weighted scalar contribution.
    """
    delta = U[:, DELTA]
    a = U[:, ACCEL]
    return {
        'cte': weights.cte * jnp.sum(X[:, CTE] ** 2),
        'epsi': weights.epsi * jnp.sum(X[:, EPSI] ** 2),
        'speed': weights.speed * jnp.sum((X[:, V] - weights.ref_v) ** 2),
        'steer': weights.steer * jnp.sum(delta ** 2),
        'accel': weights.accel * jnp.sum(a ** 2),
        'steer_rate': weights.steer_rate * jnp.sum(jnp.diff(delta) ** 2),
        'accel_rate': weights.accel_rate * jnp.sum(jnp.diff(a) ** 2),
    }


def tracking_cost(X: Array, U: Array, weights: CostWeights) -> Array:
    """Total tracking objective over the horizon."""
    return sum(cost_terms(X, U, weights).values())
