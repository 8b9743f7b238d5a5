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

"""Kinematic bicycle model with path-tracking error dynamics.

Discrete-time update with step dt:

    x'    = x + v cos(psi) dt
    y'    = y + v sin(psi) dt
    psi'  = psi + v / Lf * delta * dt
    v'    = v + a dt
    cte'  = f(x) - y + v sin(epsi) dt
    epsi' = psi - atan(f'(x)) + v / Lf * delta * dt

where f is the reference polynomial and Lf the distance from the front axle
to the center of gravity. Positive delta turns toward +y.

Dynamics functions follow the (x, u, t, params) -> x_next protocol so they
can be traced by JAX and used as equality constraints of the tracking
program.
"""

from typing import Callable

import jax.numpy as jnp
from jax import Array

from mpctrack.core.state import Pose
from mpctrack.core.types import DynamicsFn, PyTree
from mpctrack.geometry.manifold import wrap_to_pi
from mpctrack.geometry.polynomial import polyeval, polyderiv


STATE_DIM = 6
CONTROL_DIM = 2

# State and control component indices
X, Y, PSI, V, CTE, EPSI = range(STATE_DIM)
DELTA, ACCEL = range(CONTROL_DIM)


def make_dynamics(lf: float, dt: float) -> DynamicsFn:
    """Create the tracking-state dynamics for fixed Lf and dt.

    Args:
        lf: Front axle to center of gravity distance.
        dt: Time step in seconds.

    Returns:
        Dynamics function (x, u, t, params) -> x_next on the 6-dimensional
        tracking state. `params['coeffs']` holds the reference polynomial.

    Example:
        >>> dynamics = make_dynamics(lf=2.67, dt=0.1)
        >>> x_next = dynamics(x, jnp.array([0.0, 1.0]), 0, {'coeffs': coeffs})
    """
    def dynamics(x: Array, u: Array, t: int, params: PyTree = ()) -> Array:
        del t
        coeffs = params['coeffs']
        px, py, psi, v, epsi = x[X], x[Y], x[PSI], x[V], x[EPSI]
        delta, a = u[DELTA], u[ACCEL]

        f = polyeval(coeffs, px)
        psi_des = jnp.arctan(polyeval(polyderiv(coeffs), px))
        yaw_step = v / lf * delta * dt

        return jnp.array([
            px + v * jnp.cos(psi) * dt,
            py + v * jnp.sin(psi) * dt,
            psi + yaw_step,
            v + a * dt,
            f - py + v * jnp.sin(epsi) * dt,
            psi - psi_des + yaw_step,
        ])

    return dynamics


def make_pose_dynamics(lf: float, dt: float) -> Callable:
    """Create the kinematic-only dynamics on the pose [x, y, psi, v]."""
    def dynamics(q: Array, u: Array, t: int, params: PyTree = ()) -> Array:
        del t, params
        px, py, psi, v = q[0], q[1], q[2], q[3]
        delta, a = u[DELTA], u[ACCEL]
        return jnp.array([
            px + v * jnp.cos(psi) * dt,
            py + v * jnp.sin(psi) * dt,
            psi + v / lf * delta * dt,
            v + a * dt,
        ])

    return dynamics


def step_pose(
    pose: Pose,
    delta: float,
    a: float,
    dt: float,
    lf: float,
) -> Pose:
    """Advance a global pose by one model step of duration dt.

    The returned heading is wrapped to [-π, π).
    """
    q = make_pose_dynamics(lf, dt)(pose.as_array(), jnp.array([delta, a]), 0)
    return Pose.from_array(q.at[2].set(wrap_to_pi(q[2])))


def propagate_latency(
    pose: Pose,
    delta: float,
    a: float,
    latency: float,
    lf: float,
) -> Pose:
    """Predict the pose at the moment a command computed now takes effect.

    The actuators in effect during the delay are the last applied ones, so
    the pose is advanced by a single model step of length `latency` using
    (delta, a).

    Args:
        pose: Measured global pose.
        delta: Last applied steering angle (model convention, radians).
        a: Last applied acceleration.
        latency: Actuation delay in seconds. Zero returns the pose unchanged.
        lf: Front axle to center of gravity distance.

    Returns:
        Predicted Pose after the delay.
    """
    if latency <= 0.0:
        return pose
    return step_pose(pose, delta, a, latency, lf)
