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

"""CVXPY backend for QP sub-problems.

This backend hands the sub-problem to one of the conic solvers bundled with
CVXPY. It is slower than OSQP but provides a reliable reference when
checking the SQP iteration.
"""

import numpy as np

from mpctrack.qp.base import (
    QPFormulation,
    QPSolution,
    QPSolverBase,
    QPStatus,
)

try:
    import cvxpy as cp
    CVXPY_AVAILABLE = True
except ImportError:
    CVXPY_AVAILABLE = False
    cp = None


class CVXPYBackend(QPSolverBase):
    """CVXPY backend for QP sub-problems.

    Equality rows (l == u) become `A x == l` constraints and the finite
    sides of the remaining rows become inequality constraints. The problem
    is rebuilt on every solve.

    Attributes:
        name: "cvxpy"
    """

    name = "cvxpy"

    def __init__(self, solver: str = "clarabel", verbose: bool = False, **kwargs):
        """Initialize CVXPY backend.

        Args:
            solver: Name of an installed CVXPY solver (e.g. "clarabel",
                "osqp", "scs").
            verbose: Whether to print solver output.
            **kwargs: Additional CVXPY solver options.
        """
        if not CVXPY_AVAILABLE:
            raise ImportError(
                "cvxpy is required for CVXPYBackend. "
                "Install with: pip install cvxpy"
            )

        super().__init__(**kwargs)
        self.solver_name = solver.upper()
        if self.solver_name not in cp.installed_solvers():
            raise ValueError(
                f"Unknown solver: {solver}. "
                f"Available: {cp.installed_solvers()}"
            )
        self.verbose = verbose

        self._prob = None
        self._x = None
        self._rows = {}
        self._constraints = {}

    def setup(self, formulation: QPFormulation) -> None:
        """Build the CVXPY problem for the given values."""
        super().setup(formulation)

        A = formulation.A
        l, u = formulation.l, formulation.u
        eq = formulation.equality_rows
        lower = ~eq & np.isfinite(l)
        upper = ~eq & np.isfinite(u)

        self._x = cp.Variable(formulation.n_vars)
        cost = (
            0.5 * cp.quad_form(self._x, formulation.P.toarray(), assume_PSD=True)
            + formulation.q @ self._x
        )

        self._rows = {'eq': eq, 'lower': lower, 'upper': upper}
        self._constraints = {}
        if np.any(eq):
            self._constraints['eq'] = A[eq] @ self._x == l[eq]
        if np.any(lower):
            self._constraints['lower'] = A[lower] @ self._x >= l[lower]
        if np.any(upper):
            self._constraints['upper'] = A[upper] @ self._x <= u[upper]

        self._prob = cp.Problem(
            cp.Minimize(cost), list(self._constraints.values())
        )

    def solve(
        self,
        formulation: QPFormulation,
    ) -> QPSolution:
        """Solve QP using CVXPY."""
        self.setup(formulation)

        try:
            self._prob.solve(
                solver=self.solver_name, verbose=self.verbose, **self.options
            )
        except cp.error.SolverError as e:
            return QPSolution(
                status=QPStatus.NUMERICAL_ERROR,
                info={'error': str(e)},
            )

        if self._prob.status in ("infeasible", "infeasible_inaccurate"):
            return QPSolution(status=QPStatus.INFEASIBLE)

        if self._prob.status in ("unbounded", "unbounded_inaccurate"):
            return QPSolution(status=QPStatus.DUAL_INFEASIBLE)

        if self._prob.status not in ("optimal", "optimal_inaccurate"):
            return QPSolution(
                status=QPStatus.UNKNOWN,
                info={'cvxpy_status': self._prob.status},
            )

        # Multipliers in OSQP's convention: one entry per row of A,
        # positive on an active upper side and negative on an active lower
        # side.
        y = np.zeros(formulation.n_constraints)
        if 'eq' in self._constraints:
            y[self._rows['eq']] = self._constraints['eq'].dual_value
        if 'lower' in self._constraints:
            y[self._rows['lower']] -= self._constraints['lower'].dual_value
        if 'upper' in self._constraints:
            y[self._rows['upper']] += self._constraints['upper'].dual_value

        status = (
            QPStatus.SOLVED if self._prob.status == "optimal"
            else QPStatus.SOLVED_INACCURATE
        )

        return QPSolution(
            status=status,
            x=np.array(self._x.value),
            y=y,
            obj=float(self._prob.value),
            info={'cvxpy_status': self._prob.status},
        )
