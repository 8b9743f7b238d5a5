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

"""Base classes and protocols for QP solver backends.

This module defines the standard interface for the QP sub-problems solved
by the SQP optimizer. Different QP solver backends (OSQP, CVXPY)
implement this interface.

Every sub-problem is stated in the sparse form

    min  0.5 x' P x + q' x
    s.t. l <= A x <= u

where equality rows have l == u and unbounded sides are +-inf.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import numpy as np
import scipy.sparse as sp


class QPStatus(Enum):
    """Status codes for QP solver results."""
    SOLVED = auto()           # Optimal solution found
    SOLVED_INACCURATE = auto()  # Solution found but may be inaccurate
    MAX_ITERATIONS = auto()   # Reached iteration limit
    INFEASIBLE = auto()       # Problem is primal infeasible
    DUAL_INFEASIBLE = auto()  # Problem is dual infeasible (unbounded)
    NUMERICAL_ERROR = auto()  # Numerical issues encountered
    UNKNOWN = auto()          # Unknown status


@dataclass
class QPFormulation:
    """Sparse QP sub-problem.

    Attributes:
        P: Symmetric positive semidefinite cost matrix (n, n), CSC.
        q: Linear cost (n,).
        A: Constraint matrix (m, n), CSC.
        l: Lower constraint bounds (m,), may contain -inf.
        u: Upper constraint bounds (m,), may contain +inf.
    """

    P: sp.csc_matrix
    q: np.ndarray
    A: sp.csc_matrix
    l: np.ndarray
    u: np.ndarray

    def __post_init__(self):
        """Validate formulation."""
        self.P = sp.csc_matrix(self.P)
        self.A = sp.csc_matrix(self.A)
        self.q = np.asarray(self.q, dtype=float).reshape(-1)
        self.l = np.asarray(self.l, dtype=float).reshape(-1)
        self.u = np.asarray(self.u, dtype=float).reshape(-1)

        n, m = self.n_vars, self.n_constraints
        if self.P.shape != (n, n):
            raise ValueError(f"P must have shape ({n}, {n}), got {self.P.shape}")
        if self.A.shape[1] != n:
            raise ValueError(
                f"A must have {n} columns, got {self.A.shape[1]}"
            )
        if self.l.shape != (m,) or self.u.shape != (m,):
            raise ValueError(
                f"l and u must have shape ({m},), got {self.l.shape} and "
                f"{self.u.shape}"
            )
        if np.any(self.l > self.u):
            raise ValueError("l must not exceed u")

    @property
    def n_vars(self) -> int:
        return self.q.shape[0]

    @property
    def n_constraints(self) -> int:
        return self.A.shape[0]

    @property
    def equality_rows(self) -> np.ndarray:
        """Boolean mask of rows with l == u."""
        return self.l == self.u

    def objective(self, x: np.ndarray) -> float:
        """Evaluate 0.5 x' P x + q' x."""
        return float(0.5 * x @ (self.P @ x) + self.q @ x)


@dataclass
class QPSolution:
    """Solution from a QP solver.

    Attributes:
        status: Solver status.
        x: Primal solution (n,), None when not solved.
        y: Constraint multipliers (m,), None when not solved.
        obj: Objective value at solution.
        iterations: Number of solver iterations.
        info: Solver-specific information.
    """

    status: QPStatus
    x: Optional[np.ndarray] = None
    y: Optional[np.ndarray] = None
    obj: float = float('inf')
    iterations: int = 0
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def solved(self) -> bool:
        """Return True if QP was solved successfully."""
        return self.status in (QPStatus.SOLVED, QPStatus.SOLVED_INACCURATE)


@runtime_checkable
class QPSolver(Protocol):
    """Protocol for QP solver backends.

    All QP solver backends must implement this interface to be used
    with the SQP optimizer.

    Attributes:
        name: Human-readable name of the solver.
    """

    name: str

    def setup(self, formulation: QPFormulation) -> None:
        """One-time setup for the problem structure.

        After setup, solve() can be called repeatedly with new values on
        the same sparsity pattern without reconstruction.

        Args:
            formulation: QPFormulation defining the problem structure.
        """
        ...

    def solve(
        self,
        formulation: QPFormulation,
    ) -> QPSolution:
        """Solve the QP with updated values.

        Args:
            formulation: QPFormulation with updated values.

        Returns:
            QPSolution containing primal/dual solutions and status.
        """
        ...


class QPSolverBase(ABC):
    """Abstract base class for QP solver backends.

    Provides common functionality and enforces the interface.
    """

    name: str = "base"

    def __init__(self, **options):
        """Initialize solver with options.

        Args:
            **options: Solver-specific options.
        """
        self.options = options
        self._is_setup = False
        self._formulation: Optional[QPFormulation] = None

    @abstractmethod
    def setup(self, formulation: QPFormulation) -> None:
        """Set up the solver for the given problem structure."""
        self._formulation = formulation
        self._is_setup = True

    @abstractmethod
    def solve(
        self,
        formulation: QPFormulation,
    ) -> QPSolution:
        """Solve the QP."""
        ...

    def reset(self) -> None:
        """Reset solver state."""
        self._is_setup = False
        self._formulation = None


def same_sparsity(a: sp.csc_matrix, b: sp.csc_matrix) -> bool:
    """Return True if two CSC matrices share their stored pattern."""
    return (
        a.shape == b.shape
        and np.array_equal(a.indptr, b.indptr)
        and np.array_equal(a.indices, b.indices)
    )
