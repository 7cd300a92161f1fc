# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Structural Subtyping Protocols

Protocol classes describing the collaborators the estimation core depends
on without binding it to a concrete implementation:

- NumericPrimitivesProtocol: matrix exponential, DARE solve, stabilizability
- KalmanTypeFilterProtocol: what the latency compensator needs from a filter
- ChassisKinematicsProtocol: per-module readings -> chassis velocity

Protocols are purely for static typing and ``isinstance`` checks on
``runtime_checkable`` classes; they carry no behaviour.

Examples
--------
>>> from ssestim.types.protocols import ChassisKinematicsProtocol
>>>
>>> class Tank:
...     def to_chassis_speeds(self, left, right):
...         return ChassisSpeeds((left + right) / 2, 0.0, 0.0)
>>>
>>> isinstance(Tank(), ChassisKinematicsProtocol)
True
"""

from typing import Any, Optional, Protocol, runtime_checkable

import numpy as np

from ssestim.types.core import ArrayLike, CovarianceMatrix, StateMatrix
from ssestim.types.estimation import ChassisSpeeds


@runtime_checkable
class NumericPrimitivesProtocol(Protocol):
    """
    Numerically delicate primitives consumed as opaque services.

    Required Methods
    ----------------
    matrix_exponential(M) -> exp(M)
        Exponential of a square matrix
    solve_discrete_are(A, B, Q, R) -> P
        Stabilizing solution of the discrete algebraic Riccati equation
    is_stabilizable(A, B) -> bool
        Whether every uncontrollable mode of the discrete pair is stable

    Implementations
    ---------------
    - ScipyPrimitives (ssestim.numerics.primitives)
    """

    def matrix_exponential(self, M: np.ndarray) -> np.ndarray: ...

    def solve_discrete_are(
        self,
        A: StateMatrix,
        B: np.ndarray,
        Q: CovarianceMatrix,
        R: CovarianceMatrix,
    ) -> CovarianceMatrix: ...

    def is_stabilizable(self, A: StateMatrix, B: np.ndarray) -> bool: ...


@runtime_checkable
class KalmanTypeFilterProtocol(Protocol):
    """
    Filter interface required by the latency compensator.

    Required Attributes
    -------------------
    xhat : np.ndarray
        Current state estimate (readable and writable)
    nu : int
        Input dimension, used for the zero input of an empty history

    Required Methods
    ----------------
    predict(u, dt)
        Propagate the estimate by dt seconds
    correct(u, y)
        Fuse a local measurement
    """

    xhat: np.ndarray
    nu: int

    def predict(self, u: ArrayLike, dt: float) -> None: ...

    def correct(
        self,
        u: ArrayLike,
        y: ArrayLike,
        C: Optional[np.ndarray] = None,
        D: Optional[np.ndarray] = None,
        R: Optional[np.ndarray] = None,
    ) -> None: ...


@runtime_checkable
class ChassisKinematicsProtocol(Protocol):
    """
    Converts per-actuator readings into a robot-relative chassis velocity.

    Pure function of its arguments; the estimator never inspects the
    module states, it only forwards them.
    """

    def to_chassis_speeds(self, *module_states: Any) -> ChassisSpeeds: ...


__all__ = [
    "NumericPrimitivesProtocol",
    "KalmanTypeFilterProtocol",
    "ChassisKinematicsProtocol",
]
