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

"""Vehicle state value types.

Both types are immutable; each tick produces new instances.
"""

from dataclasses import dataclass

import jax.numpy as jnp
from jax import Array


@dataclass(frozen=True)
class Pose:
    """Kinematic pose in the global frame.

    Attributes:
        x: Global x position.
        y: Global y position.
        psi: Heading in radians, counter-clockwise from the global x axis.
        v: Speed, in position units per second.
    """
    x: float
    y: float
    psi: float
    v: float

    def as_array(self) -> Array:
        return jnp.array([self.x, self.y, self.psi, self.v], dtype=float)

    @classmethod
    def from_array(cls, q: Array) -> 'Pose':
        return cls(*(float(value) for value in q))


@dataclass(frozen=True)
class VehicleState:
    """Full tracking state [x, y, psi, v, cte, epsi].

    In the vehicle frame at the start of a solve x = y = psi = 0.

    Attributes:
        x: Position along the vehicle heading.
        y: Lateral position, positive to the left.
        psi: Heading relative to the frame's x axis.
        v: Speed.
        cte: Cross-track error f(x) - y.
        epsi: Heading error psi - atan(f'(x)).
    """
    x: float
    y: float
    psi: float
    v: float
    cte: float
    epsi: float

    def as_array(self) -> Array:
        return jnp.array(
            [self.x, self.y, self.psi, self.v, self.cte, self.epsi],
            dtype=float,
        )

    @classmethod
    def from_array(cls, x: Array) -> 'VehicleState':
        return cls(*(float(value) for value in x))

    @classmethod
    def local(cls, v: float, cte: float, epsi: float) -> 'VehicleState':
        """Initial state in the vehicle frame: the pose is zero."""
        return cls(0.0, 0.0, 0.0, float(v), float(cte), float(epsi))
