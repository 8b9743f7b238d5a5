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

"""Base classes and protocols for nonlinear program solvers.

This module defines the standard interface for NLP solvers. All solvers
implement the NLPOptimizer protocol and derive their derivative
information from the program's JAX functions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

import jax
import numpy as np
from jax import Array

from mpctrack.core.problem import NonlinearProgram
from mpctrack.core.solution import NLPSolution
from mpctrack.core.types import PyTree


@dataclass
class Iterate:
    """Decision vector with its objective and largest equality residual."""
    z: np.ndarray
    obj: float
    violation: float

    def better_than(self, other: 'Iterate', constraint_tol: float) -> bool:
        """Feasible iterates rank by objective, infeasible ones by violation."""
        if self.violation <= constraint_tol:
            return other.violation > constraint_tol or self.obj < other.obj
        return self.violation < other.violation


def residual_norm(c: np.ndarray) -> float:
    """Infinity norm of the equality residuals, 0 without constraints."""
    return float(np.max(np.abs(c))) if c.size else 0.0


@dataclass(frozen=True)
class CompiledProgram:
    """JIT-compiled program functions and their derivatives.

    Every function has the signature (z, params).

    Attributes:
        objective: Scalar objective.
        gradient: Objective gradient (n_vars,).
        constraints: Equality residuals (n_equality,).
        jacobian: Constraint Jacobian (n_equality, n_vars).
        hessian: Objective Hessian (n_vars, n_vars).
    """
    objective: Callable
    gradient: Callable
    constraints: Callable
    jacobian: Callable
    hessian: Callable


def compile_program(program: NonlinearProgram) -> CompiledProgram:
    """Differentiate and JIT-compile the functions of a program."""
    return CompiledProgram(
        objective=jax.jit(program.objective),
        gradient=jax.jit(jax.grad(program.objective)),
        constraints=jax.jit(program.equality_constraint),
        jacobian=jax.jit(jax.jacfwd(program.equality_constraint)),
        hessian=jax.jit(jax.hessian(program.objective)),
    )


@runtime_checkable
class NLPOptimizer(Protocol):
    """Protocol for nonlinear program solvers.

    All solvers must implement this interface.
    The key methods are:
    - solve(): Standard solve interface
    - build_solver(): Creates a compiled solver for repeated calls

    Attributes:
        name: Human-readable name of the optimizer.
    """

    name: str

    def solve(
        self,
        program: NonlinearProgram,
        z0: Array,
        params: PyTree = (),
        options: Optional[Dict[str, Any]] = None,
    ) -> NLPSolution:
        """Solve a nonlinear program.

        Args:
            program: NonlinearProgram specification.
            z0: Initial guess of shape (n_vars,).
            params: Parameters passed to the program functions.
            options: Solver-specific options (overrides defaults).

        Returns:
            NLPSolution with the decision vector and solver info.
        """
        ...

    def build_solver(
        self,
        program: NonlinearProgram,
        options: Optional[Dict[str, Any]] = None,
    ) -> Callable[[Array, PyTree], NLPSolution]:
        """Build a compiled solver function.

        This method implements the "build once, pass parameters" pattern.
        The returned function captures the program structure at compile
        time, allowing repeated solves without recompilation.

        Args:
            program: NonlinearProgram specification.
            options: Solver options to bake into the returned function.

        Returns:
            A function (z0, params) -> NLPSolution that can be called
            repeatedly without recompilation.

        Example:
            >>> optimizer = SQPOptimizer(maxiter=50)
            >>> solve_fn = optimizer.build_solver(program)
            >>> # First call compiles
            >>> result1 = solve_fn(z0, params1)
            >>> # Subsequent calls reuse compilation
            >>> result2 = solve_fn(z0, params2)
        """
        ...


class NLPOptimizerBase(ABC):
    """Abstract base class for nonlinear program solvers.

    Provides common functionality and enforces the interface.
    Subclasses implement _solve_impl(), which receives the compiled
    program functions.
    """

    name: str = "base"

    def __init__(self, **options):
        """Initialize optimizer with default options.

        Args:
            **options: Solver-specific default options.
        """
        self.default_options = options

    def _merge_options(self, options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged_options = {**self.default_options}
        if options:
            merged_options.update(options)
        return merged_options

    def solve(
        self,
        program: NonlinearProgram,
        z0: Array,
        params: PyTree = (),
        options: Optional[Dict[str, Any]] = None,
    ) -> NLPSolution:
        """Solve a nonlinear program.

        Merges options with defaults and calls _solve_impl().
        """
        return self._solve_impl(
            program, z0, params, self._merge_options(options),
            compile_program(program),
        )

    @abstractmethod
    def _solve_impl(
        self,
        program: NonlinearProgram,
        z0: Array,
        params: PyTree,
        options: Dict[str, Any],
        compiled: CompiledProgram,
    ) -> NLPSolution:
        """Internal solve implementation.

        Subclasses must implement this method.
        """
        ...

    def build_solver(
        self,
        program: NonlinearProgram,
        options: Optional[Dict[str, Any]] = None,
    ) -> Callable[[Array, PyTree], NLPSolution]:
        """Build compiled solver.

        The program functions are differentiated and JIT-compiled once; the
        iteration itself runs in Python around them.
        """
        merged_options = self._merge_options(options)
        compiled = compile_program(program)

        def solve_fn(z0: Array, params: PyTree) -> NLPSolution:
            return self._solve_impl(program, z0, params, merged_options, compiled)

        solve_fn.compiled = compiled
        return solve_fn


def get_solver(name: str, **kwargs) -> NLPOptimizerBase:
    """Factory function to create solver by name.

    Args:
        name: Solver name ('sqp' or 'slsqp').
        **kwargs: Solver-specific options.

    Returns:
        NLPOptimizer instance.

    Raises:
        ValueError: If solver name is not recognized.
    """
    from mpctrack.solvers.sqp import SQPOptimizer
    from mpctrack.solvers.slsqp import SLSQPOptimizer

    _SOLVERS = {
        'sqp': SQPOptimizer,
        'slsqp': SLSQPOptimizer,
    }

    name_lower = name.lower()
    if name_lower not in _SOLVERS:
        available = list(_SOLVERS.keys())
        raise ValueError(
            f"Unknown solver: {name}. Available: {available}"
        )

    return _SOLVERS[name_lower](**kwargs)
