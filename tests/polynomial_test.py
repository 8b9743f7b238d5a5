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


"""Tests for reference polynomial fitting."""

from absl.testing import absltest
from absl.testing import parameterized

import jax
import jax.numpy as jnp
from jax import config
import numpy as np

from mpctrack.core.errors import FitDegenerateError, InvalidInputError
from mpctrack.geometry import fit_reference, polyderiv, polyeval, polyfit

config.update('jax_enable_x64', True)


class PolyfitTest(parameterized.TestCase):
    """Tests for least-squares polyfit."""

    def test_recovers_cubic(self):
        """Fitting samples of a cubic recovers its coefficients."""
        coeffs = jnp.array([1.5, -0.3, 0.02, -0.001])
        xs = jnp.linspace(0.0, 40.0, 8)
        ys = polyeval(coeffs, xs)

        fitted = polyfit(xs, ys, 3)

        self.assertEqual(fitted.shape, (4,))
        np.testing.assert_allclose(fitted, coeffs, rtol=1e-6, atol=1e-9)

    def test_line_through_points(self):
        """Exact line from the docstring example."""
        xs = jnp.array([0.0, 1.0, 2.0, 3.0])
        fitted = polyfit(xs, 1.0 + 2.0 * xs, 1)
        np.testing.assert_allclose(fitted, [1.0, 2.0], atol=1e-10)

    def test_least_squares_residual(self):
        """Noisy data: fit matches numpy's least-squares solution."""
        rng = np.random.default_rng(0)
        xs = np.linspace(-5.0, 30.0, 12)
        ys = 0.5 * xs - 0.01 * xs ** 2 + rng.normal(scale=0.1, size=xs.shape)

        fitted = polyfit(xs, ys, 2)

        expected = np.polynomial.polynomial.polyfit(xs, ys, 2)
        np.testing.assert_allclose(fitted, expected, rtol=1e-6, atol=1e-9)

    def test_mismatched_lengths(self):
        with self.assertRaises(InvalidInputError):
            polyfit([0.0, 1.0, 2.0, 3.0], [0.0, 1.0, 2.0], 1)

    @parameterized.parameters(0, 4, 1.5)
    def test_order_out_of_range(self, order):
        with self.assertRaises(InvalidInputError):
            polyfit([0.0, 1.0, 2.0, 3.0], [0.0, 1.0, 4.0, 9.0], order)

    def test_non_finite_input(self):
        with self.assertRaises(InvalidInputError):
            polyfit([0.0, 1.0, np.nan, 3.0], [0.0, 1.0, 2.0, 3.0], 1)

    def test_duplicate_abscissae_are_degenerate(self):
        with self.assertRaises(FitDegenerateError):
            polyfit([1.0, 1.0, 1.0, 1.0], [0.0, 1.0, 2.0, 3.0], 3)

    def test_invalid_input_is_value_error(self):
        """Callers that only know ValueError still catch bad input."""
        with self.assertRaises(ValueError):
            polyfit([0.0, 1.0], [0.0, 1.0], 3)


class FitReferenceTest(absltest.TestCase):
    """Tests for the degree fallback of fit_reference."""

    def test_full_degree(self):
        xs = jnp.array([0.0, 5.0, 10.0, 15.0, 20.0])
        ys = 0.01 * xs ** 2
        fitted = fit_reference(xs, ys, 3)
        np.testing.assert_allclose(fitted, [0.0, 0.0, 0.01, 0.0], atol=1e-9)

    def test_falls_back_to_line(self):
        """Two distinct abscissae only support a line; result is padded."""
        fitted = fit_reference([0.0, 0.0, 1.0, 1.0], [0.0, 0.0, 1.0, 1.0], 3)
        self.assertEqual(fitted.shape, (4,))
        np.testing.assert_allclose(fitted, [0.0, 1.0, 0.0, 0.0], atol=1e-9)

    def test_raises_when_no_line_fits(self):
        with self.assertRaises(FitDegenerateError):
            fit_reference([2.0, 2.0, 2.0, 2.0], [0.0, 1.0, 2.0, 3.0], 3)


class PolyevalTest(absltest.TestCase):
    """Tests for the traceable evaluation helpers."""

    def test_polyeval(self):
        self.assertAlmostEqual(float(polyeval(jnp.array([1.0, 2.0, 3.0]), 2.0)), 17.0)

    def test_polyeval_vectorized(self):
        xs = jnp.array([0.0, 1.0, -1.0])
        np.testing.assert_allclose(
            polyeval(jnp.array([1.0, 0.0, 1.0]), xs), [1.0, 2.0, 2.0]
        )

    def test_polyderiv(self):
        np.testing.assert_allclose(
            polyderiv(jnp.array([1.0, 2.0, 3.0, 4.0])), [2.0, 6.0, 12.0]
        )

    def test_derivative_matches_autodiff(self):
        coeffs = jnp.array([0.3, -0.2, 0.05, 0.001])
        x = 7.0
        expected = jax.grad(lambda t: polyeval(coeffs, t))(x)
        self.assertAlmostEqual(
            float(polyeval(polyderiv(coeffs), x)), float(expected), places=10
        )

    def test_polyeval_jittable(self):
        coeffs = jnp.array([1.0, 2.0, 3.0])
        self.assertAlmostEqual(float(jax.jit(polyeval)(coeffs, 2.0)), 17.0)


if __name__ == '__main__':
    absltest.main()
