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
Core Types - Fundamental Building Blocks

Semantic aliases for the vectors and matrices that flow through the
estimation stack:
- Vectors (state, input, output, standard deviations)
- Matrices (system, input, output, feedthrough, covariance, gain)
- Input clamp function signature

All numerical work is done in NumPy (float64). The aliases exist so that
signatures read like the equations they implement.

Usage
-----
>>> from ssestim.types.core import StateMatrix, InputMatrix, StateVector
>>>
>>> def step(A: StateMatrix, B: InputMatrix, x: StateVector, u) -> StateVector:
...     return A @ x + B @ u
"""

from typing import TYPE_CHECKING, Callable, Sequence, Union

import numpy as np

if TYPE_CHECKING:
    import jax.numpy as jnp
    import torch


# ============================================================================
# Basic Array Types
# ============================================================================

ArrayLike = Union[np.ndarray, Sequence[float], "torch.Tensor", "jnp.ndarray"]
"""
Array-like input accepted at public boundaries.

NumPy arrays and plain sequences are accepted everywhere. PyTorch tensors
and JAX arrays are accepted by the discretization functions when the
matching ``backend`` is requested.
"""

NumpyArray = np.ndarray
"""Pure NumPy array (what the core stores and returns)."""


# ============================================================================
# Vector Types
# ============================================================================

StateVector = np.ndarray
"""
State vector x ∈ ℝⁿˣ, shape (nx,).

Examples
--------
>>> x = np.array([0.0, 0.0, np.pi / 2])  # [x, y, heading]
"""

InputVector = np.ndarray
"""
Control input vector u ∈ ℝⁿᵘ, shape (nu,).

Always passed through the plant's clamp function before it touches a
matrix product.
"""

OutputVector = np.ndarray
"""
Output/measurement vector y ∈ ℝⁿʸ, shape (ny,).

For a generalized correction the length matches the rows of the supplied
C matrix rather than the plant's nominal outputs.
"""

StdDevVector = ArrayLike
"""
Per-channel standard deviations, shape (n,).

Squared and placed on a diagonal to build Q or R.
"""


# ============================================================================
# Matrix Types
# ============================================================================

StateMatrix = np.ndarray
"""
System matrix A, shape (nx, nx).

Continuous: dx/dt = Ax + Bu
Discrete:   x[k+1] = A_d x[k] + B_d u[k]
"""

InputMatrix = np.ndarray
"""Input matrix B, shape (nx, nu)."""

OutputMatrix = np.ndarray
"""Output matrix C, shape (ny, nx). Maps state to output: y = Cx + Du."""

FeedthroughMatrix = np.ndarray
"""Feedthrough matrix D, shape (ny, nu)."""

CovarianceMatrix = np.ndarray
"""
Symmetric positive semi-definite covariance matrix.

Used for process noise Q (nx, nx), measurement noise R (ny, ny) and the
error covariance P (nx, nx).
"""

GainMatrix = np.ndarray
"""Kalman gain K, shape (nx, ny)."""


# ============================================================================
# Function Types
# ============================================================================

ClampFunction = Callable[[np.ndarray], np.ndarray]
"""
Input clamp policy: maps a requested input vector to the one applied.

Stored as a plain function value on the plant so it can be swapped at
runtime.

Examples
--------
>>> clamp: ClampFunction = lambda u: np.clip(u, -12.0, 12.0)
"""


__all__ = [
    "ArrayLike",
    "NumpyArray",
    "StateVector",
    "InputVector",
    "OutputVector",
    "StdDevVector",
    "StateMatrix",
    "InputMatrix",
    "OutputMatrix",
    "FeedthroughMatrix",
    "CovarianceMatrix",
    "GainMatrix",
    "ClampFunction",
]
