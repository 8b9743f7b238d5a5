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

"""Reference path geometry.

- Frame transforms between global and vehicle body coordinates
- Least-squares polynomial fitting of the reference path
- Heading angle wrapping
"""

from mpctrack.geometry.manifold import (
    wrap_to_pi,
)

from mpctrack.geometry.polynomial import (
    polyfit,
    fit_reference,
    polyeval,
    polyderiv,
)

from mpctrack.geometry.transforms import (
    global_to_vehicle,
    vehicle_to_global,
)

__all__ = [
    'wrap_to_pi',
    'polyfit',
    'fit_reference',
    'polyeval',
    'polyderiv',
    'global_to_vehicle',
    'vehicle_to_global',
]
