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


"""Tests for the CVXPY backend."""

from absl.testing import absltest

import jax.numpy as jnp
from jax import config
import numpy as np
import scipy.sparse as sp

from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.types import SolverStatus
from mpctrack.qp import QPFormulation, QPStatus, get_available_backends, get_qp_solver
from mpctrack.qp.cvxpy_backend import CVXPY_AVAILABLE
from mpctrack.solvers import SQPOptimizer

config.update('jax_enable_x64', True)


def _equality_qp(q=(0.0, 0.0), upper=np.inf):
    """min 0.5 |x|^2 + q'x  s.t.  x0 + x1 = 1,  x0 <= upper."""
    return QPFormulation(
        P=sp.eye(2, format='csc'),
        q=np.array(q),
        A=sp.csc_matrix(np.array([[1.0, 1.0], [1.0, 0.0]])),
        l=np.array([1.0, -np.inf]),
        u=np.array([1.0, upper]),
    )


@absltest.skipUnless(CVXPY_AVAILABLE, 'cvxpy is not installed')
class CVXPYBackendTest(absltest.TestCase):

    def setUp(self):
        super().setUp()
        from mpctrack.qp.cvxpy_backend import CVXPYBackend
        self.backend = CVXPYBackend()

    def test_registered(self):
        self.assertIn('cvxpy', get_available_backends())
        self.assertEqual(get_qp_solver('cvxpy').name, 'cvxpy')

    def test_unknown_conic_solver(self):
        from mpctrack.qp.cvxpy_backend import CVXPYBackend
        with self.assertRaises(ValueError):
            CVXPYBackend(solver='not_a_solver')

    def test_equality_constrained(self):
        solution = self.backend.solve(_equality_qp())
        self.assertEqual(solution.status, QPStatus.SOLVED)
        np.testing.assert_allclose(solution.x, [0.5, 0.5], atol=1e-5)
        self.assertAlmostEqual(solution.obj, 0.25, places=5)
        # Equality multiplier carries the row, the inactive bound row is zero
        self.assertAlmostEqual(abs(solution.y[0]), 0.5, places=4)
        self.assertAlmostEqual(solution.y[1], 0.0, places=5)

    def test_active_bound(self):
        solution = self.backend.solve(_equality_qp(q=(-2.0, 0.0), upper=0.7))
        self.assertTrue(solution.solved)
        np.testing.assert_allclose(solution.x, [0.7, 0.3], atol=1e-5)
        # An active upper side has a positive multiplier
        self.assertGreater(solution.y[1], 0.0)

    def test_active_lower_bound(self):
        qp = QPFormulation(
            P=sp.eye(2, format='csc'),
            q=np.zeros(2),
            A=sp.csc_matrix(np.array([[1.0, 1.0], [0.0, 1.0]])),
            l=np.array([1.0, 0.8]),
            u=np.array([1.0, np.inf]),
        )
        solution = self.backend.solve(qp)
        np.testing.assert_allclose(solution.x, [0.2, 0.8], atol=1e-5)
        self.assertLess(solution.y[1], 0.0)

    def test_infeasible(self):
        qp = QPFormulation(
            P=sp.eye(2, format='csc'),
            q=np.zeros(2),
            A=sp.csc_matrix(np.array([[1.0, 0.0], [1.0, 0.0]])),
            l=np.array([1.0, -np.inf]),
            u=np.array([1.0, 0.0]),
        )
        solution = self.backend.solve(qp)
        self.assertEqual(solution.status, QPStatus.INFEASIBLE)
        self.assertFalse(solution.solved)
        self.assertIsNone(solution.x)

    def test_unbounded(self):
        qp = QPFormulation(
            P=sp.csc_matrix((2, 2)),
            q=np.array([-1.0, 0.0]),
            A=sp.csc_matrix(np.array([[0.0, 1.0]])),
            l=np.zeros(1),
            u=np.zeros(1),
        )
        solution = self.backend.solve(qp)
        self.assertEqual(solution.status, QPStatus.DUAL_INFEASIBLE)
        self.assertIsNone(solution.x)

    def test_sqp_with_cvxpy_subproblems(self):
        program = NonlinearProgram(
            n_vars=2,
            n_equality=1,
            objective=lambda z, p: jnp.sum((z - 3.0) ** 2),
            equality_constraint=lambda z, p: jnp.array([z[0] - z[1] - 1.0]),
            bounds=(jnp.full(2, -10.0), jnp.full(2, 2.0)),
        )
        solution = SQPOptimizer(qp_backend='cvxpy', max_solve_time=5.0).solve(
            program, jnp.zeros(2)
        )
        self.assertEqual(solution.status, SolverStatus.SOLVED)
        np.testing.assert_allclose(solution.z, [2.0, 1.0], atol=1e-4)


if __name__ == '__main__':
    absltest.main()
