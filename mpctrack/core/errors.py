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

"""Exception types raised by the tracking controller.

All errors are local to a single control tick except ConfigError, which is
raised while the process-wide configuration is being constructed.
"""


class MPCError(Exception):
    """Base class for controller errors."""


class ConfigError(MPCError, ValueError):
    """Invalid controller configuration."""


class InvalidInputError(MPCError, ValueError):
    """Malformed or insufficient telemetry; the tick is rejected unsolved."""


class FitDegenerateError(MPCError):
    """Reference polynomial fit is numerically rank deficient."""


class SolveInfeasibleError(MPCError):
    """The constraints of the tracking problem admit no solution.

    Attributes:
        status: Backend status string that triggered the error.
    """

    def __init__(self, message: str, status: str = 'infeasible'):
        super().__init__(message)
        self.status = status
