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

"""Simulator message boundary.

The simulator reports steering positive to the right and expects the
outgoing steering normalized to [-1, 1]; the controller works in radians,
positive to the left. `parse_telemetry` and `encode_command` convert between
the two conventions so nothing past this module sees simulator units.
"""

import math
from dataclasses import dataclass
from numbers import Real
from typing import TYPE_CHECKING, Any, Dict, Mapping, Tuple

from mpctrack.core.errors import InvalidInputError

if TYPE_CHECKING:
    from mpctrack.mpc.controller import SolveResult


# Simulator steering is positive to the right.
SIMULATOR_STEERING_SIGN = -1.0

_SCALAR_KEYS = ('x', 'y', 'psi', 'speed', 'steering_angle', 'throttle')


@dataclass(frozen=True)
class Telemetry:
    """One telemetry message in model conventions.

    Attributes:
        x: Global x position.
        y: Global y position.
        psi: Heading in radians.
        speed: Speed.
        steering_angle: Currently applied steering, radians, positive left.
        throttle: Currently applied acceleration command.
        ptsx: Global x coordinates of the upcoming waypoints.
        ptsy: Global y coordinates of the upcoming waypoints.
    """
    x: float
    y: float
    psi: float
    speed: float
    steering_angle: float
    throttle: float
    ptsx: Tuple[float, ...]
    ptsy: Tuple[float, ...]

    def __post_init__(self):
        for key in _SCALAR_KEYS:
            if not math.isfinite(getattr(self, key)):
                raise InvalidInputError(f"telemetry {key} must be finite")
        if len(self.ptsx) != len(self.ptsy):
            raise InvalidInputError(
                f"ptsx and ptsy must have equal length, got {len(self.ptsx)} "
                f"and {len(self.ptsy)}"
            )
        if not all(math.isfinite(v) for v in self.ptsx + self.ptsy):
            raise InvalidInputError("waypoints must be finite")


def _number(payload: Mapping[str, Any], key: str) -> float:
    if key not in payload:
        raise InvalidInputError(f"telemetry is missing '{key}'")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidInputError(
            f"telemetry '{key}' must be a number, got {type(value).__name__}"
        )
    return float(value)


def _numbers(payload: Mapping[str, Any], key: str) -> Tuple[float, ...]:
    if key not in payload:
        raise InvalidInputError(f"telemetry is missing '{key}'")
    values = payload[key]
    if not isinstance(values, (list, tuple)):
        raise InvalidInputError(f"telemetry '{key}' must be a list")
    return tuple(_number({key: v}, key) for v in values)


def parse_telemetry(
    payload: Mapping[str, Any],
    steering_sign: float = SIMULATOR_STEERING_SIGN,
    speed_scale: float = 1.0,
) -> Telemetry:
    """Validate a simulator telemetry object.

    Args:
        payload: Decoded JSON object with keys x, y, psi, speed,
            steering_angle, throttle, ptsx and ptsy.
        steering_sign: Sign that maps simulator steering (radians) to the
            model convention.
        speed_scale: Factor from the simulator speed unit to position units
            per second.

    Returns:
        Telemetry in model conventions.

    Raises:
        InvalidInputError: If a key is missing, has the wrong type or is not
            finite, or if the waypoint lists differ in length.
    """
    if not isinstance(payload, Mapping):
        raise InvalidInputError(
            f"telemetry must be an object, got {type(payload).__name__}"
        )
    return Telemetry(
        x=_number(payload, 'x'),
        y=_number(payload, 'y'),
        psi=_number(payload, 'psi'),
        speed=_number(payload, 'speed') * speed_scale,
        steering_angle=_number(payload, 'steering_angle') * steering_sign,
        throttle=_number(payload, 'throttle'),
        ptsx=_numbers(payload, 'ptsx'),
        ptsy=_numbers(payload, 'ptsy'),
    )


def encode_command(
    result: 'SolveResult',
    max_steer: float,
    steering_sign: float = SIMULATOR_STEERING_SIGN,
) -> Dict[str, Any]:
    """Build the outgoing command message.

    Args:
        result: SolveResult of the tick.
        max_steer: Steering bound in radians; the simulator expects the
            steering divided by it.
        steering_sign: Sign that maps model steering to the simulator
            convention.

    Returns:
        Dict with steering_angle and throttle, the predicted path
        (mpc_x, mpc_y) and the reference samples (next_x, next_y).
    """
    return {
        'steering_angle': steering_sign * result.steer_value / max_steer,
        'throttle': result.throttle_value,
        'mpc_x': list(result.predicted_x),
        'mpc_y': list(result.predicted_y),
        'next_x': list(result.reference_x),
        'next_y': list(result.reference_y),
    }
