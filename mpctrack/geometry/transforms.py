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

"""Rigid transforms between the global frame and the vehicle body frame.

The body frame has its origin at the vehicle, x pointing along the heading
and y to the left. Expressing waypoints in this frame makes the vehicle
pose identically (0, 0, 0), so the optimizer never sees absolute map
coordinates.
"""

from typing import Sequence, Tuple

import jax.numpy as jnp
from jax import Array

from mpctrack.core.errors import InvalidInputError


def global_to_vehicle(
    px: float,
    py: float,
    psi: float,
    xs: Sequence[float] | Array,
    ys: Sequence[float] | Array,
) -> Tuple[Array, Array]:
    """Express global points in the vehicle frame.

    Translates by (-px, -py), then rotates by -psi.

    Args:
        px: Vehicle global x.
        py: Vehicle global y.
        psi: Vehicle heading in radians, counter-clockwise from global x.
        xs: Global x coordinates, shape (P,).
        ys: Global y coordinates, shape (P,).

    Returns:
        Tuple (xs_local, ys_local), each of shape (P,).

    Raises:
        InvalidInputError: If xs and ys differ in length.

    Example:
        >>> global_to_vehicle(1.0, 1.0, jnp.pi / 2, [1.0], [3.0])
        (Array([2.]), Array([0.]))
    """
    xs = jnp.asarray(xs, dtype=float)
    ys = jnp.asarray(ys, dtype=float)
    if xs.shape != ys.shape:
        raise InvalidInputError(
            f"xs and ys must have the same shape, got {xs.shape} and {ys.shape}"
        )
    dx = xs - px
    dy = ys - py
    cos_psi = jnp.cos(psi)
    sin_psi = jnp.sin(psi)
    return dx * cos_psi + dy * sin_psi, -dx * sin_psi + dy * cos_psi


def vehicle_to_global(
    px: float,
    py: float,
    psi: float,
    xs: Sequence[float] | Array,
    ys: Sequence[float] | Array,
) -> Tuple[Array, Array]:
    """Inverse of `global_to_vehicle`: rotate by psi, then translate."""
    xs = jnp.asarray(xs, dtype=float)
    ys = jnp.asarray(ys, dtype=float)
    if xs.shape != ys.shape:
        raise InvalidInputError(
            f"xs and ys must have the same shape, got {xs.shape} and {ys.shape}"
        )
    cos_psi = jnp.cos(psi)
    sin_psi = jnp.sin(psi)
    return px + xs * cos_psi - ys * sin_psi, py + xs * sin_psi + ys * cos_psi
