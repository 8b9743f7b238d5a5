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

"""Sequential quadratic programming with a sparse QP backend.

Each major iteration linearizes the equality constraints at the current
iterate z and solves

    min  0.5 d' H d + g' d
    s.t. J d = -c
         lb - z <= d <= ub - z

where g and J are the exact objective gradient and constraint Jacobian and
H is the objective Hessian (Gauss-Newton: constraint curvature is ignored,
which is exact for quadratic objectives and linear constraints). The step is
then shortened by a backtracking line search on the l1 merit function

    phi(z) = f(z) + mu ||c(z)||_1

with mu kept above the largest equality multiplier of the sub-problem.
"""

import time
from typing import Any, Dict, Optional

import numpy as np
import scipy.sparse as sp
from absl import logging
from jax import Array

from mpctrack.core.errors import SolveInfeasibleError
from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.solution import NLPSolution
from mpctrack.core.types import PyTree, SolverStatus
from mpctrack.qp import QPFormulation, QPSolverBase, QPStatus, get_qp_solver
from mpctrack.solvers.base import (
    CompiledProgram,
    Iterate,
    NLPOptimizerBase,
    residual_norm,
)


class SQPOptimizer(NLPOptimizerBase):
    """Line-search SQP optimizer.

    The solver is not JIT-compiled as a whole: the program functions and
    their derivatives are compiled once by build_solver() and the iteration
    runs in Python, handing each sub-problem to the QP backend.

    Attributes:
        name: "sqp"
    """

    name = "sqp"

    def __init__(
        self,
        maxiter: int = 50,
        max_solve_time: float = 0.5,
        step_tol: float = 1e-3,
        constraint_tol: float = 1e-4,
        ftol: float = 1e-9,
        hessian_reg: float = 1e-6,
        alpha_min: float = 1e-4,
        armijo: float = 1e-4,
        merit_penalty: float = 1.0,
        merit_scale: float = 2.0,
        qp_backend: str = 'osqp',
        qp_options: Optional[Dict[str, Any]] = None,
        verbose: bool = False,
    ):
        """Initialize SQP optimizer.

        Args:
            maxiter: Maximum major iterations.
            max_solve_time: Wall-clock cap in seconds.
            step_tol: Converged when the step infinity norm is below this
                and the iterate is feasible.
            constraint_tol: Largest equality residual counted as feasible.
            ftol: Converged when a full step changes the objective by less
                than this, relative to max(1, |f|), at a feasible iterate.
            hessian_reg: Diagonal added to the objective Hessian.
            alpha_min: Smallest step size tried by the line search.
            armijo: Sufficient decrease factor of the line search.
            merit_penalty: Initial l1 merit penalty mu.
            merit_scale: mu is raised to merit_scale times the largest
                equality multiplier when it falls below it.
            qp_backend: Name of the QP backend ('osqp' or 'cvxpy').
            qp_options: Keyword options for the QP backend.
            verbose: Log every iteration.
        """
        super().__init__(
            maxiter=maxiter,
            max_solve_time=max_solve_time,
            step_tol=step_tol,
            constraint_tol=constraint_tol,
            ftol=ftol,
            hessian_reg=hessian_reg,
            alpha_min=alpha_min,
            armijo=armijo,
            merit_penalty=merit_penalty,
            merit_scale=merit_scale,
            qp_backend=qp_backend,
            qp_options=qp_options or {},
            verbose=verbose,
        )
        self._qp_solvers: Dict[str, QPSolverBase] = {}

    def _get_qp_solver(self, options: Dict[str, Any]) -> QPSolverBase:
        """Backend instance for the requested name, reused across solves."""
        name = options['qp_backend']
        if name not in self._qp_solvers:
            self._qp_solvers[name] = get_qp_solver(name, **options['qp_options'])
        return self._qp_solvers[name]

    @staticmethod
    def _jacobian_pattern(
        compiled: CompiledProgram,
        z: np.ndarray,
        params: PyTree,
        n_samples: int = 2,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Structural nonzeros of the constraint Jacobian.

        Entries that happen to vanish at z (e.g. the steering column of a
        standing vehicle) are recovered by also sampling randomly perturbed
        points, so the pattern seen by the QP backend does not change
        between iterations.
        """
        rng = np.random.default_rng(0)
        mask = np.asarray(compiled.jacobian(z, params)) != 0.0
        for _ in range(n_samples):
            z_sample = z + rng.standard_normal(z.shape)
            mask |= np.asarray(compiled.jacobian(z_sample, params)) != 0.0
        return np.nonzero(mask)

    def _solve_impl(
        self,
        program: NonlinearProgram,
        z0: Array,
        params: PyTree,
        options: Dict[str, Any],
        compiled: CompiledProgram,
    ) -> NLPSolution:
        start = time.perf_counter()
        qp_solver = self._get_qp_solver(options)
        constraint_tol = options['constraint_tol']
        verbose = options['verbose']

        n = program.n_vars
        n_eq = program.n_equality
        lower = np.asarray(program.lower, dtype=float)
        upper = np.asarray(program.upper, dtype=float)
        bounded = np.flatnonzero(np.isfinite(lower) | np.isfinite(upper))

        def evaluate(z):
            f = float(compiled.objective(z, params))
            c = np.asarray(compiled.constraints(z, params), dtype=float)
            return f, c

        z = np.clip(np.asarray(z0, dtype=float), lower, upper)
        f, c = evaluate(z)
        violation = residual_norm(c)
        best = Iterate(z, f, violation)

        H = np.asarray(compiled.hessian(z, params), dtype=float)
        P = sp.csc_matrix(0.5 * (H + H.T) + options['hessian_reg'] * np.eye(n))
        rows, cols = self._jacobian_pattern(compiled, z, params)
        bound_rows = sp.csc_matrix(
            (np.ones(bounded.size), (np.arange(bounded.size), bounded)),
            shape=(bounded.size, n),
        )

        mu = options['merit_penalty']
        status = SolverStatus.MAX_ITERATIONS
        iterations = 0
        qp_iterations = 0
        step_norm = float('inf')
        alpha = 0.0

        for _ in range(options['maxiter']):
            if time.perf_counter() - start > options['max_solve_time']:
                status = SolverStatus.TIME_LIMIT
                break

            g = np.asarray(compiled.gradient(z, params), dtype=float)
            jac = np.asarray(compiled.jacobian(z, params), dtype=float)
            J = sp.csc_matrix((jac[rows, cols], (rows, cols)), shape=(n_eq, n))
            qp = qp_solver.solve(QPFormulation(
                P=P,
                q=g,
                A=sp.vstack([J, bound_rows], format='csc'),
                l=np.concatenate([-c, lower[bounded] - z[bounded]]),
                u=np.concatenate([-c, upper[bounded] - z[bounded]]),
            ))
            qp_iterations += qp.iterations

            if not qp.solved:
                if qp.status == QPStatus.INFEASIBLE and iterations == 0:
                    raise SolveInfeasibleError(
                        "QP sub-problem at the initial iterate is infeasible",
                        status=qp.status.name.lower(),
                    )
                status = (
                    SolverStatus.INFEASIBLE
                    if qp.status == QPStatus.INFEASIBLE
                    else SolverStatus.STALLED
                )
                break

            d = qp.x
            step_norm = float(np.max(np.abs(d)))
            if step_norm <= options['step_tol'] and violation <= constraint_tol:
                status = SolverStatus.SOLVED
                break

            if n_eq > 0:
                mu = max(mu, options['merit_scale'] * float(np.max(np.abs(qp.y[:n_eq]))))
            merit = f + mu * np.sum(np.abs(c))
            slope = min(float(g @ d) - mu * np.sum(np.abs(c)), 0.0)

            # Backtracking line search on the l1 merit function
            alpha = 1.0
            accepted = False
            while alpha >= options['alpha_min']:
                z_trial = np.clip(z + alpha * d, lower, upper)
                f_trial, c_trial = evaluate(z_trial)
                if (f_trial + mu * np.sum(np.abs(c_trial))
                        <= merit + options['armijo'] * alpha * slope):
                    accepted = True
                    break
                alpha *= 0.5

            if not accepted:
                status = SolverStatus.STALLED
                break

            f_prev = f
            z, f, c = z_trial, f_trial, c_trial
            violation = residual_norm(c)
            iterations += 1

            current = Iterate(z, f, violation)
            if current.better_than(best, constraint_tol):
                best = current

            if verbose:
                logging.info(
                    'sqp iter %d: obj=%.6g violation=%.3g step=%.3g '
                    'alpha=%.3g mu=%.3g',
                    iterations, f, violation, step_norm, alpha, mu,
                )

            if (alpha == 1.0 and violation <= constraint_tol
                    and abs(f_prev - f) <= options['ftol'] * max(1.0, abs(f))):
                status = SolverStatus.SOLVED
                break

        result = Iterate(z, f, violation) if status == SolverStatus.SOLVED else best
        info = {
            'solve_time_ms': (time.perf_counter() - start) * 1e3,
            'qp_iterations': qp_iterations,
            'step_norm': step_norm,
            'alpha': alpha,
            'merit_penalty': mu,
        }
        return NLPSolution(
            z=result.z,
            obj=result.obj,
            status=status,
            constraint_violation=result.violation,
            iterations=iterations,
            info=info,
        )
