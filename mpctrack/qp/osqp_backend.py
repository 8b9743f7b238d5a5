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

"""OSQP backend for QP sub-problems.

OSQP is a fast, robust QP solver widely used for MPC applications. The
solver workspace (including the KKT factorization structure) is created on
the first solve and its values are updated in place while the sparsity
pattern stays the same.
"""

from typing import Optional

import numpy as np
import scipy.sparse as sp

from mpctrack.qp.base import (
    QPFormulation,
    QPSolution,
    QPSolverBase,
    QPStatus,
    same_sparsity,
)

try:
    import osqp
    OSQP_AVAILABLE = True
except ImportError:
    OSQP_AVAILABLE = False
    osqp = None


def _parse_status(status: str) -> QPStatus:
    """Map an OSQP status string onto QPStatus.

    OSQP releases differ in spelling ('primal_infeasible' vs.
    'primal infeasible'), so the string is normalized first.
    """
    status = status.lower().replace('_', ' ')
    if 'infeasible' in status:
        if 'dual' in status:
            return QPStatus.DUAL_INFEASIBLE
        return QPStatus.INFEASIBLE
    if status == 'solved inaccurate':
        return QPStatus.SOLVED_INACCURATE
    if status == 'solved':
        return QPStatus.SOLVED
    if 'max' in status and 'iter' in status:
        return QPStatus.MAX_ITERATIONS
    if 'non convex' in status or 'nonconvex' in status:
        return QPStatus.NUMERICAL_ERROR
    return QPStatus.UNKNOWN


class OSQPBackend(QPSolverBase):
    """OSQP backend for QP sub-problems.

    OSQP solves QPs in the form:
        min 0.5 x' P x + q' x
        s.t. l <= A x <= u

    which is exactly QPFormulation, so only the upper triangle of P has to
    be extracted.

    Attributes:
        name: "osqp"
    """

    name = "osqp"

    def __init__(
        self,
        verbose: bool = False,
        eps_abs: float = 1e-6,
        eps_rel: float = 1e-6,
        max_iter: int = 10000,
        **kwargs,
    ):
        """Initialize OSQP backend.

        Args:
            verbose: Whether to print solver output.
            eps_abs: Absolute tolerance.
            eps_rel: Relative tolerance.
            max_iter: Maximum ADMM iterations.
            **kwargs: Additional OSQP settings.
        """
        if not OSQP_AVAILABLE:
            raise ImportError(
                "osqp is required for OSQPBackend. "
                "Install with: pip install osqp"
            )

        super().__init__(**kwargs)
        self.verbose = verbose
        self.settings = {
            'verbose': verbose,
            'eps_abs': eps_abs,
            'eps_rel': eps_rel,
            'max_iter': max_iter,
            **kwargs,
        }
        self._solver = None
        self._P_triu: Optional[sp.csc_matrix] = None
        self._A: Optional[sp.csc_matrix] = None

    def setup(self, formulation: QPFormulation) -> None:
        """Set up OSQP solver with problem structure."""
        super().setup(formulation)
        self._P_triu = sp.triu(formulation.P, format='csc')
        self._A = formulation.A.copy()
        self._solver = osqp.OSQP()
        self._solver.setup(
            P=self._P_triu,
            q=formulation.q,
            A=self._A,
            l=formulation.l,
            u=formulation.u,
            **self.settings,
        )

    def solve(
        self,
        formulation: QPFormulation,
    ) -> QPSolution:
        """Solve QP using OSQP."""
        P_triu = sp.triu(formulation.P, format='csc')
        if (
            not self._is_setup
            or not same_sparsity(P_triu, self._P_triu)
            or not same_sparsity(formulation.A, self._A)
        ):
            self.setup(formulation)
        else:
            self._solver.update(
                q=formulation.q,
                l=formulation.l,
                u=formulation.u,
                Px=P_triu.data,
                Ax=formulation.A.data,
            )
            self._formulation = formulation

        result = self._solver.solve(raise_error=False)
        status = _parse_status(str(result.info.status))
        info = {'osqp_status': result.info.status}

        if status not in (QPStatus.SOLVED, QPStatus.SOLVED_INACCURATE):
            return QPSolution(
                status=status,
                iterations=int(result.info.iter),
                info=info,
            )

        return QPSolution(
            status=status,
            x=np.array(result.x),
            y=np.array(result.y),
            obj=float(result.info.obj_val),
            iterations=int(result.info.iter),
            info=info,
        )

    def reset(self) -> None:
        """Drop the OSQP workspace."""
        super().reset()
        self._solver = None
        self._P_triu = None
        self._A = None
