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
Discretization Engine

Pure functions converting continuous-time state-space matrices into their
discrete-time equivalents for a given timestep, assuming zero-order hold
on the input.

Mathematical Background
-----------------------
State transition:
    Ad = exp(A·dt)

Input matrix (exact, via the augmented matrix):
    exp([[A·dt, B·dt], [0, 0]]) = [[Ad, Bd], [0, I]]

Input matrix (truncated Taylor series):
    Bd = Φ₁₂·B,  Φ₁₂ = Σ_{i=1..5} A^(i-1)·dtⁱ/i!

Process noise (van Loan, truncated):
    exp([[-A, Q], [0, Aᵀ]]·dt) = [[·, Φ₁₂], [0, Φ₂₂]]
    Qd = Ad·Φ₁₂

Measurement noise:
    Rd = R/dt

The truncation order is fixed at TAYLOR_TERMS. Every function accepts
matrices from any supported backend; inputs are converted to NumPy for the
scipy primitives and results converted back to the caller's backend.

Usage
-----
>>> from ssestim.discretization import discretize_ab_taylor
>>> A = np.array([[0.0, 1.0], [0.0, 0.0]])
>>> B = np.array([[0.0], [1.0]])
>>> Ad, Bd = discretize_ab_taylor(A, B, dt=0.1)
>>> Bd
array([[0.005],
       [0.1  ]])
"""

import warnings
from typing import Optional, Tuple

import numpy as np

from ssestim.numerics.primitives import _from_numpy, _to_numpy, resolve_primitives
from ssestim.types.backends import (
    DEFAULT_BACKEND,
    Backend,
    DiscretizationMethod,
    validate_discretization_method,
)
from ssestim.types.core import CovarianceMatrix, InputMatrix, StateMatrix
from ssestim.types.protocols import NumericPrimitivesProtocol

TAYLOR_TERMS = 5
"""Number of series terms used by the Taylor discretizations."""


# ============================================================================
# Validation Utilities (Internal)
# ============================================================================


def _validate_square(name: str, M: np.ndarray) -> int:
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        raise ValueError(f"{name} must be square, got shape {M.shape}")
    return M.shape[0]


def _validate_rows(name: str, M: np.ndarray, nx: int) -> None:
    if M.ndim != 2 or M.shape[0] != nx:
        raise ValueError(f"{name} must have {nx} rows, got shape {M.shape}")


# ============================================================================
# Discretization Functions
# ============================================================================


def discretize_a(
    cont_a: StateMatrix,
    dt: float,
    backend: Backend = DEFAULT_BACKEND,
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> StateMatrix:
    """
    Discretize the system matrix: Ad = exp(A·dt).

    Args:
        cont_a: Continuous system matrix (nx, nx)
        dt: Discretization timestep in seconds
        backend: Backend of the inputs and result
        primitives: Numeric primitives (scipy by default)

    Returns:
        Discrete system matrix (nx, nx)

    Raises
    ------
    ValueError
        If cont_a is not square

    Examples
    --------
    >>> discretize_a(np.zeros((2, 2)), 0.02)
    array([[1., 0.],
           [0., 1.]])
    """
    A = _to_numpy(cont_a, backend)
    _validate_square("A", A)

    disc_a = resolve_primitives(primitives).matrix_exponential(A * dt)
    return _from_numpy(disc_a, backend)


def discretize_ab(
    cont_a: StateMatrix,
    cont_b: InputMatrix,
    dt: float,
    backend: Backend = DEFAULT_BACKEND,
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> Tuple[StateMatrix, InputMatrix]:
    """
    Discretize (A, B) exactly through one augmented matrix exponential.

    Builds M = [[A·dt, B·dt], [0, 0]] of size (nx+nu)² and reads Ad and Bd
    off the top blocks of exp(M). Exact for any A, singular or not.

    Args:
        cont_a: Continuous system matrix (nx, nx)
        cont_b: Continuous input matrix (nx, nu)
        dt: Discretization timestep in seconds

    Returns:
        (disc_a, disc_b)
    """
    A = _to_numpy(cont_a, backend)
    B = _to_numpy(cont_b, backend)
    nx = _validate_square("A", A)
    _validate_rows("B", B, nx)
    nu = B.shape[1]

    M = np.zeros((nx + nu, nx + nu))
    M[:nx, :nx] = A * dt
    M[:nx, nx:] = B * dt

    phi = resolve_primitives(primitives).matrix_exponential(M)
    disc_a = phi[:nx, :nx]
    disc_b = phi[:nx, nx:]
    return _from_numpy(disc_a, backend), _from_numpy(disc_b, backend)


def discretize_ab_taylor(
    cont_a: StateMatrix,
    cont_b: InputMatrix,
    dt: float,
    backend: Backend = DEFAULT_BACKEND,
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> Tuple[StateMatrix, InputMatrix]:
    """
    Discretize (A, B) with exact Ad and a truncated series for Bd.

    Φ₁₂ = Σ_{i=1..5} A^(i-1)·dtⁱ/i!,  Bd = Φ₁₂·B

    Cheaper than discretize_ab for large nu, and accurate to O(dt⁶) which
    is far below model error at control-loop timesteps.

    Args:
        cont_a: Continuous system matrix (nx, nx)
        cont_b: Continuous input matrix (nx, nu)
        dt: Discretization timestep in seconds

    Returns:
        (disc_a, disc_b)

    Examples
    --------
    >>> A = np.array([[0.0, 1.0], [0.0, 0.0]])
    >>> B = np.array([[0.0], [1.0]])
    >>> Ad, Bd = discretize_ab_taylor(A, B, 1.0)
    >>> Bd.ravel()
    array([0.5, 1. ])
    """
    A = _to_numpy(cont_a, backend)
    B = _to_numpy(cont_b, backend)
    nx = _validate_square("A", A)
    _validate_rows("B", B, nx)

    disc_a = _to_numpy(discretize_a(A, dt, primitives=primitives))

    last_term = np.eye(nx)
    last_coeff = dt
    phi12 = last_term * last_coeff

    for i in range(2, TAYLOR_TERMS + 1):
        last_term = A @ last_term
        last_coeff *= dt / i
        phi12 = phi12 + last_term * last_coeff

    disc_b = phi12 @ B
    return _from_numpy(disc_a, backend), _from_numpy(disc_b, backend)


def discretize_aq_taylor(
    cont_a: StateMatrix,
    cont_q: CovarianceMatrix,
    dt: float,
    backend: Backend = DEFAULT_BACKEND,
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> Tuple[StateMatrix, CovarianceMatrix]:
    """
    Discretize the system matrix and process noise covariance.

    Q is symmetrized first. The upper-right van Loan block
    Φ₁₂ of exp([[-A, Q], [0, Aᵀ]]·dt) is accumulated term by term:

        term₁ = Q,                     coeff₁ = dt
        termᵢ = -A·termᵢ₋₁ + Q·(Aᵀ)^(i-1),  coeffᵢ = coeffᵢ₋₁·dt/i

    and Qd = Ad·Φ₁₂, re-symmetrized before returning.

    Args:
        cont_a: Continuous system matrix (nx, nx)
        cont_q: Continuous process noise covariance (nx, nx)
        dt: Discretization timestep in seconds

    Returns:
        (disc_a, disc_q) with disc_q symmetric

    Raises
    ------
    ValueError
        If A or Q is not square, or their sizes differ

    Examples
    --------
    >>> Ad, Qd = discretize_aq_taylor(np.zeros((1, 1)), np.eye(1), 0.5)
    >>> Qd
    array([[0.5]])
    """
    A = _to_numpy(cont_a, backend)
    Q = _to_numpy(cont_q, backend)
    nx = _validate_square("A", A)
    if Q.shape != (nx, nx):
        raise ValueError(f"Q must have shape ({nx}, {nx}), got {Q.shape}")

    Q = (Q + Q.T) / 2.0

    disc_a = _to_numpy(discretize_a(A, dt, primitives=primitives))

    last_term = Q.copy()
    last_coeff = dt
    at_n = A.T.copy()
    phi12 = last_term * last_coeff

    for i in range(2, TAYLOR_TERMS + 1):
        last_term = -A @ last_term + Q @ at_n
        last_coeff *= dt / i
        phi12 = phi12 + last_term * last_coeff
        at_n = at_n @ A.T

    disc_q = disc_a @ phi12
    disc_q = (disc_q + disc_q.T) / 2.0
    return _from_numpy(disc_a, backend), _from_numpy(disc_q, backend)


def discretize_r(
    cont_r: CovarianceMatrix,
    dt: float,
    backend: Backend = DEFAULT_BACKEND,
) -> CovarianceMatrix:
    """
    Discretize the measurement noise covariance: Rd = R/dt.

    A zero timestep has no meaningful discretization. Rather than raising,
    a RuntimeWarning is issued and the inf/NaN quotient is returned.

    Args:
        cont_r: Continuous measurement noise covariance (ny, ny)
        dt: Discretization timestep in seconds

    Returns:
        Discrete measurement noise covariance (ny, ny)

    Examples
    --------
    >>> discretize_r(np.eye(2), 0.5)
    array([[2., 0.],
           [0., 2.]])
    """
    R = _to_numpy(cont_r, backend)
    _validate_square("R", R)

    if dt == 0:
        warnings.warn(
            "Discretizing R with dt=0; result contains inf/NaN. "
            "Measurement noise is undefined at zero timestep.",
            RuntimeWarning,
            stacklevel=2,
        )
        with np.errstate(divide="ignore", invalid="ignore"):
            return _from_numpy(R / dt, backend)

    return _from_numpy(R / dt, backend)


def discretize_system(
    cont_a: StateMatrix,
    cont_b: InputMatrix,
    dt: float,
    method: DiscretizationMethod = "taylor",
    backend: Backend = DEFAULT_BACKEND,
    primitives: Optional[NumericPrimitivesProtocol] = None,
) -> Tuple[StateMatrix, InputMatrix]:
    """
    Discretize (A, B) with the selected method.

    Args:
        method: 'taylor' (exact Ad, series Bd) or 'exact' (augmented exp)

    Raises
    ------
    ValueError
        If method is unknown
    """
    method = validate_discretization_method(method)
    if method == "exact":
        return discretize_ab(cont_a, cont_b, dt, backend=backend, primitives=primitives)
    return discretize_ab_taylor(cont_a, cont_b, dt, backend=backend, primitives=primitives)


__all__ = [
    "TAYLOR_TERMS",
    "discretize_a",
    "discretize_ab",
    "discretize_ab_taylor",
    "discretize_aq_taylor",
    "discretize_r",
    "discretize_system",
]
