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

"""Heading angle utilities.

Simulators report headings in [0, 2π) while the error dynamics work with
small signed angles; these helpers map between the two.
"""

import jax.numpy as jnp
from jax import Array


def wrap_to_pi(x: Array) -> Array:
    """Wraps angles to lie within [-π, π) range.

    Args:
        x: Angle(s) in radians, can be scalar or array.

    Returns:
        Wrapped angle(s) in [-π, π) range.

    Example:
        >>> heading = jnp.array(3.5 * jnp.pi)
        >>> wrap_to_pi(heading)  # ≈ -0.5π
    """
    return (x + jnp.pi) % (2 * jnp.pi) - jnp.pi
