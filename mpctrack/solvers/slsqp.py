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

"""SciPy SLSQP solver with JAX derivatives."""

import time
from typing import Any, Dict

import numpy as np
from jax import Array
from scipy import optimize

from mpctrack.core.errors import SolveInfeasibleError
from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.solution import NLPSolution
from mpctrack.core.types import PyTree, SolverStatus
from mpctrack.solvers.base import (
    CompiledProgram,
    Iterate,
    NLPOptimizerBase,
    residual_norm,
)


# scipy SLSQP exit modes
_SLSQP_STATUS = {
    0: SolverStatus.SOLVED,
    4: SolverStatus.INFEASIBLE,  # inequality constraints incompatible
    9: SolverStatus.MAX_ITERATIONS,
}


class _TimeLimitReached(Exception):
    pass


class SLSQPOptimizer(NLPOptimizerBase):
    """Sequential least squares programming via scipy.optimize.minimize.

    Gradients and constraint Jacobians come from the compiled program. The
    wall-clock cap is checked from the iteration callback. Unless SLSQP
    converges, the best iterate seen is returned: the feasible one with the
    lowest objective, else the one with the smallest equality residual.

    Attributes:
        name: "slsqp"
    """

    name = "slsqp"

    def __init__(
        self,
        maxiter: int = 50,
        max_solve_time: float = 0.5,
        ftol: float = 1e-6,
        constraint_tol: float = 1e-4,
        verbose: bool = False,
    ):
        """Initialize SLSQP optimizer.

        Args:
            maxiter: Maximum major iterations.
            max_solve_time: Wall-clock cap in seconds.
            ftol: SLSQP precision goal on the objective.
            constraint_tol: Largest equality residual counted as feasible.
            verbose: Print the scipy convergence message.
        """
        super().__init__(
            maxiter=maxiter,
            max_solve_time=max_solve_time,
            ftol=ftol,
            constraint_tol=constraint_tol,
            verbose=verbose,
        )

    def _solve_impl(
        self,
        program: NonlinearProgram,
        z0: Array,
        params: PyTree,
        options: Dict[str, Any],
        compiled: CompiledProgram,
    ) -> NLPSolution:
        start = time.perf_counter()
        constraint_tol = options['constraint_tol']
        lower = np.asarray(program.lower, dtype=float)
        upper = np.asarray(program.upper, dtype=float)

        def evaluate(z):
            z = np.clip(np.asarray(z, dtype=float), lower, upper)
            c = np.asarray(compiled.constraints(z, params), dtype=float)
            return Iterate(z, float(compiled.objective(z, params)), residual_norm(c))

        constraints = []
        if program.n_equality > 0:
            constraints.append({
                'type': 'eq',
                'fun': lambda z: np.asarray(compiled.constraints(z, params), dtype=float),
                'jac': lambda z: np.asarray(compiled.jacobian(z, params), dtype=float),
            })

        best = evaluate(z0)
        z_start = best.z
        iterations = 0

        def callback(z):
            nonlocal best, iterations
            iterations += 1
            current = evaluate(z)
            if current.better_than(best, constraint_tol):
                best = current
            if time.perf_counter() - start > options['max_solve_time']:
                raise _TimeLimitReached()

        try:
            result = optimize.minimize(
                fun=lambda z: float(compiled.objective(z, params)),
                x0=z_start,
                jac=lambda z: np.asarray(compiled.gradient(z, params), dtype=float),
                method='SLSQP',
                bounds=optimize.Bounds(lower, upper),
                constraints=constraints,
                callback=callback,
                options={
                    'maxiter': options['maxiter'],
                    'ftol': options['ftol'],
                    'disp': options['verbose'],
                },
            )
        except _TimeLimitReached:
            status = SolverStatus.TIME_LIMIT
        else:
            status = _SLSQP_STATUS.get(result.status, SolverStatus.STALLED)
            iterations = int(result.nit)
            if status == SolverStatus.INFEASIBLE and iterations <= 1:
                raise SolveInfeasibleError(result.message, status='infeasible')
            final = evaluate(result.x)
            if status == SolverStatus.SOLVED and final.violation <= constraint_tol:
                best = final
            else:
                if status == SolverStatus.SOLVED:
                    status = SolverStatus.STALLED
                if final.better_than(best, constraint_tol):
                    best = final

        return NLPSolution(
            z=best.z,
            obj=best.obj,
            status=status,
            constraint_violation=best.violation,
            iterations=iterations,
            info={'solve_time_ms': (time.perf_counter() - start) * 1e3},
        )
