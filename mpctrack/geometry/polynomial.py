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

"""Least-squares polynomial fitting of reference paths.

Coefficients are stored in ascending power order, c[0] + c[1] x + ...,
which is what the error dynamics differentiate. `polyfit` and
`fit_reference` validate their inputs eagerly and are not traceable;
`polyeval` and `polyderiv` are pure JAX and may be used inside jitted code.
"""

from typing import Optional, Sequence

from absl import logging
import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array

from mpctrack.core.errors import FitDegenerateError, InvalidInputError


def _as_vector(values: Sequence[float] | Array, name: str) -> Array:
    arr = jnp.asarray(values, dtype=float)
    if arr.ndim != 1:
        raise InvalidInputError(
            f"{name} must be one-dimensional, got shape {arr.shape}"
        )
    if not bool(jnp.all(jnp.isfinite(arr))):
        raise InvalidInputError(f"{name} contains non-finite values")
    return arr


def polyfit(
    xs: Sequence[float] | Array,
    ys: Sequence[float] | Array,
    order: int,
    rcond: Optional[float] = None,
) -> Array:
    """Fit a polynomial of degree `order` by least squares.

    Solves min_c sum_i (y_i - sum_k c_k x_i^k)^2 with a QR decomposition of
    the Vandermonde design matrix. Columns are equilibrated before the
    factorization so the rank test below measures geometry, not the raw
    scale of x.

    Args:
        xs: Sample abscissae, shape (P,).
        ys: Sample ordinates, shape (P,).
        order: Polynomial degree, 1 <= order <= P - 1.
        rcond: Relative threshold on the diagonal of R below which the
            design matrix is considered rank deficient. Defaults to
            100 * eps * P for the working dtype.

    Returns:
        Coefficients of shape (order + 1,), ascending powers.

    Raises:
        InvalidInputError: If the inputs are malformed or `order` is out of
            range.
        FitDegenerateError: If the design matrix is numerically rank
            deficient, e.g. near-duplicate x values.

    Example:
        >>> xs = jnp.array([0.0, 1.0, 2.0, 3.0])
        >>> polyfit(xs, 1.0 + 2.0 * xs, 1)  # ≈ [1.0, 2.0]
    """
    xs = _as_vector(xs, 'xs')
    ys = _as_vector(ys, 'ys')
    if xs.shape[0] != ys.shape[0]:
        raise InvalidInputError(
            f"xs and ys must have equal length, got {xs.shape[0]} "
            f"and {ys.shape[0]}"
        )
    if int(order) != order or not 1 <= order <= xs.shape[0] - 1:
        raise InvalidInputError(
            f"order must be an integer in [1, {xs.shape[0] - 1}], got {order}"
        )
    order = int(order)

    A = jnp.vander(xs, order + 1, increasing=True)
    scale = jnp.linalg.norm(A, axis=0)
    scale = jnp.where(scale > 0.0, scale, 1.0)
    Q, R = jnp.linalg.qr(A / scale)

    if rcond is None:
        rcond = 100.0 * float(jnp.finfo(A.dtype).eps) * xs.shape[0]
    diag = jnp.abs(jnp.diag(R))
    if float(jnp.min(diag)) <= rcond * float(jnp.max(diag)):
        raise FitDegenerateError(
            f"degree-{order} fit is rank deficient "
            f"(min |R_ii| = {float(jnp.min(diag)):.3e})"
        )

    coeffs = jsp.linalg.solve_triangular(R, Q.T @ ys, lower=False)
    return coeffs / scale


def fit_reference(
    xs: Sequence[float] | Array,
    ys: Sequence[float] | Array,
    order: int = 3,
) -> Array:
    """Fit the reference curve, lowering the degree if the fit is degenerate.

    Args:
        xs: Vehicle-frame waypoint x coordinates.
        ys: Vehicle-frame waypoint y coordinates.
        order: Target degree.

    Returns:
        Coefficients of shape (order + 1,). When a lower degree had to be
        used the higher coefficients are zero.

    Raises:
        InvalidInputError: If the inputs are malformed.
        FitDegenerateError: If not even a straight line can be fit.
    """
    last_error = None
    for degree in range(order, 0, -1):
        try:
            coeffs = polyfit(xs, ys, degree)
        except FitDegenerateError as e:
            last_error = e
            continue
        if degree < order:
            logging.warning(
                'Reference fit degraded from degree %d to %d: %s',
                order, degree, last_error)
            coeffs = jnp.concatenate([coeffs, jnp.zeros(order - degree)])
        return coeffs
    raise FitDegenerateError(
        f"no polynomial of degree <= {order} fits the waypoints: {last_error}"
    )


def polyeval(coeffs: Array, x: Array) -> Array:
    """Evaluate sum_k coeffs[k] x^k (Horner's scheme)."""
    return jnp.polyval(jnp.flip(coeffs), x)


def polyderiv(coeffs: Array) -> Array:
    """Coefficients of the derivative polynomial, ascending powers."""
    return coeffs[1:] * jnp.arange(1, coeffs.shape[0], dtype=coeffs.dtype)
