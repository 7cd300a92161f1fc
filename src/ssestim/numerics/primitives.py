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
Numeric Primitives

The three numerically delicate operations the estimation core treats as
opaque services, implemented on top of scipy:

- Matrix exponential: scipy.linalg.expm (Padé with scaling and squaring)
- Discrete algebraic Riccati equation: scipy.linalg.solve_discrete_are
- Stabilizability of a discrete pair (A, B): PBH rank test

Also hosts the backend conversion helpers used by the pure discretization
functions so that torch/jax callers get their own array type back.

Mathematical Background
-----------------------
DARE (filter form, called with A -> A', B -> C'):
    P = A'PA - A'PB(R + B'PB)⁻¹B'PA + Q

Stabilizability (discrete time):
    (A, B) is stabilizable iff rank([λI - A, B]) = n for every eigenvalue
    λ of A with |λ| ≥ 1.

Usage
-----
>>> from ssestim.numerics import ScipyPrimitives
>>> primitives = ScipyPrimitives()
>>> primitives.is_stabilizable(np.eye(2), np.array([[1.0], [0.0]]))
False
"""

from typing import Optional

import numpy as np
from scipy import linalg

from ssestim.types.backends import DEFAULT_BACKEND, DEFAULT_DTYPE, Backend, validate_backend
from ssestim.types.core import CovarianceMatrix, StateMatrix
from ssestim.types.protocols import NumericPrimitivesProtocol

# ============================================================================
# Backend Conversion Utilities (Internal)
# ============================================================================


def _to_numpy(arr, backend: Backend = DEFAULT_BACKEND) -> np.ndarray:
    """
    Convert array to a DEFAULT_DTYPE NumPy array for scipy operations.

    Args:
        arr: Array in any backend (or a nested sequence)
        backend: Source backend identifier

    Returns:
        NumPy array

    Raises
    ------
    ValueError
        If backend is not one of VALID_BACKENDS
    """
    validate_backend(backend)

    if isinstance(arr, np.ndarray):
        return arr.astype(DEFAULT_DTYPE, copy=False)

    if backend == "torch" or hasattr(arr, "cpu"):
        # PyTorch tensor
        return arr.detach().cpu().numpy().astype(DEFAULT_DTYPE)
    if backend == "jax" or hasattr(arr, "__array__"):
        # JAX array
        return np.array(arr, dtype=DEFAULT_DTYPE)
    return np.asarray(arr, dtype=DEFAULT_DTYPE)


def _from_numpy(arr: np.ndarray, backend: Backend = DEFAULT_BACKEND):
    """
    Convert NumPy array back to target backend.

    Args:
        arr: NumPy array
        backend: Target backend

    Returns:
        Array in target backend
    """
    backend = validate_backend(backend)
    if backend == "numpy":
        return arr
    if backend == "torch":
        import torch

        return torch.from_numpy(np.ascontiguousarray(arr))
    if backend == "jax":
        import jax.numpy as jnp

        return jnp.array(arr)
    return arr


# ============================================================================
# SciPy Implementation
# ============================================================================


class ScipyPrimitives:
    """
    Numeric primitives backed by scipy.linalg.

    Stateless; a single shared instance (DEFAULT_PRIMITIVES) is used
    whenever a component is not given one explicitly.

    Attributes
    ----------
    tolerance : float
        Eigenvalues with |λ| ≥ 1 - tolerance are treated as unstable by
        the stabilizability test, and singular values below
        tolerance·max(1, σ_max) count as rank deficient.

    Examples
    --------
    >>> primitives = ScipyPrimitives()
    >>> primitives.matrix_exponential(np.zeros((2, 2)))
    array([[1., 0.],
           [0., 1.]])
    """

    def __init__(self, tolerance: float = 1e-10):
        self.tolerance = tolerance

    def matrix_exponential(self, M: np.ndarray) -> np.ndarray:
        """
        Compute exp(M) for a square matrix.

        Raises
        ------
        ValueError
            If M is not square
        """
        M_np = _to_numpy(M)
        if M_np.ndim != 2 or M_np.shape[0] != M_np.shape[1]:
            raise ValueError(f"Non-square matrices cannot be exponentiated, got shape {M_np.shape}")
        return linalg.expm(M_np)

    def solve_discrete_are(
        self,
        A: StateMatrix,
        B: np.ndarray,
        Q: CovarianceMatrix,
        R: CovarianceMatrix,
    ) -> CovarianceMatrix:
        """
        Solve the discrete algebraic Riccati equation for its stabilizing
        solution.

        Args:
            A: State matrix (n, n)
            B: Input matrix (n, m)
            Q: State weight (n, n), Q ≥ 0
            R: Input weight (m, m), R > 0

        Returns:
            Symmetric positive semi-definite P (n, n)

        Raises
        ------
        LinAlgError
            If no stabilizing solution exists (e.g. singular R)
        """
        P = linalg.solve_discrete_are(_to_numpy(A), _to_numpy(B), _to_numpy(Q), _to_numpy(R))
        return (P + P.T) / 2.0

    def is_stabilizable(self, A: StateMatrix, B: np.ndarray) -> bool:
        """
        Test whether the discrete pair (A, B) is stabilizable.

        Every eigenvalue of A on or outside the unit circle must be
        controllable: rank([λI - A, B]) = n.

        Examples
        --------
        >>> primitives.is_stabilizable(np.array([[0.5]]), np.zeros((1, 1)))
        True
        >>> primitives.is_stabilizable(np.array([[1.2]]), np.zeros((1, 1)))
        False
        """
        A_np = _to_numpy(A)
        B_np = _to_numpy(B)

        nx = A_np.shape[0]
        if A_np.shape != (nx, nx):
            raise ValueError(f"A must be square, got shape {A_np.shape}")
        if B_np.ndim != 2 or B_np.shape[0] != nx:
            raise ValueError(f"B must have {nx} rows, got shape {B_np.shape}")

        eigenvalues = np.linalg.eigvals(A_np)
        identity = np.eye(nx)
        for eigenvalue in eigenvalues:
            if np.abs(eigenvalue) < 1.0 - self.tolerance:
                continue

            pbh = np.hstack([eigenvalue * identity - A_np, B_np.astype(complex)])
            singular_values = np.linalg.svd(pbh, compute_uv=False)
            rank = np.sum(singular_values > self.tolerance * max(1.0, singular_values[0]))
            if rank < nx:
                return False

        return True


DEFAULT_PRIMITIVES: NumericPrimitivesProtocol = ScipyPrimitives()
"""Shared default primitives instance."""


def resolve_primitives(
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> NumericPrimitivesProtocol:
    """Return ``primitives`` or the shared default when None."""
    return DEFAULT_PRIMITIVES if primitives is None else primitives


__all__ = [
    "ScipyPrimitives",
    "DEFAULT_PRIMITIVES",
    "resolve_primitives",
]
