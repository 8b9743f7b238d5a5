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


"""Real-time MPC path tracking for a kinematic bicycle model."""

from . import core
from . import geometry
from . import models
from . import qp
from . import solvers
from . import mpc
from . import telemetry

from mpctrack.mpc import MPCConfig, MPCController, SolveResult
from mpctrack.telemetry import Telemetry, parse_telemetry, encode_command

__version__ = '0.1.0'
