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
Linear System Model

Continuous-time linear plant dx/dt = Ax + Bu, y = Cx + Du, stepped in
discrete time with zero-order hold on the input.
"""

from typing import Optional

import numpy as np

from ssestim.discretization.discretization import discretize_system
from ssestim.numerics.primitives import resolve_primitives
from ssestim.systems.clamping import identity_clamp
from ssestim.types.backends import (
    DiscretizationMethod,
    DiscretizerConfig,
    validate_discretization_method,
)
from ssestim.types.core import (
    ArrayLike,
    ClampFunction,
    FeedthroughMatrix,
    InputMatrix,
    InputVector,
    OutputMatrix,
    OutputVector,
    StateMatrix,
    StateVector,
)
from ssestim.types.protocols import NumericPrimitivesProtocol


def _frozen(M: ArrayLike) -> np.ndarray:
    M = np.array(M, dtype=float)
    M.setflags(write=False)
    return M


class LinearSystem:
    """
    Continuous linear plant with a one-step actuation delay.

    The model matrices are fixed at construction. Each call to
    ``update(x, u, dt)`` advances the state using the input passed on the
    *previous* call, because predict and correct run in reverse order
    relative to when the input is applied; the new input is stored for the
    next step.

    Theory:
    ------
        x[k+1] = Ad x[k] + Bd clamp(u[k])
        y[k]   = C x[k] + D clamp(u[k])

    with (Ad, Bd) the ZOH discretization of (A, B) at the step's dt.

    Attributes:
        A: System matrix (nx, nx), read-only
        B: Input matrix (nx, nu), read-only
        C: Output matrix (ny, nx), read-only
        D: Feedthrough matrix (ny, nu), read-only
        x: Current state (nx,)
        y: Last computed output (ny,)
        u: Clamped delayed input (nu,)

    Example:
        >>> plant = LinearSystem(
        ...     A=[[0.0, 1.0], [0.0, -1.0]],
        ...     B=[[0.0], [1.0]],
        ...     C=[[1.0, 0.0]],
        ...     D=[[0.0]],
        ... )
        >>> plant.update(plant.x, [12.0], 0.02)  # stores u, state unchanged
        >>> plant.update(plant.x, [12.0], 0.02)  # applies the stored u
        >>> plant.x[1] > 0
        True

    Notes:
        - The clamp is applied before every matrix product, and to ``u``
        - State vectors are copied in and out
        - No plant-construction physics lives here; callers build A..D
    """

    def __init__(
        self,
        A: StateMatrix,
        B: InputMatrix,
        C: OutputMatrix,
        D: FeedthroughMatrix,
        clamp_function: Optional[ClampFunction] = None,
        discretization_method: DiscretizationMethod = "taylor",
        primitives: Optional[NumericPrimitivesProtocol] = None,
    ):
        """
        Initialize the plant and validate matrix dimensions.

        Args:
            A: System matrix (nx, nx)
            B: Input matrix (nx, nu)
            C: Output matrix (ny, nx)
            D: Feedthrough matrix (ny, nu)
            clamp_function: Input limiting policy, identity when None
            discretization_method: 'taylor' (default) or 'exact'
            primitives: Numeric primitives used for discretization

        Raises:
            ValueError: If any matrix has an inconsistent shape
        """
        A = _frozen(A)
        B = _frozen(B)
        C = _frozen(C)
        D = _frozen(D)

        if A.ndim != 2 or A.shape[0] != A.shape[1]:
            raise ValueError(f"A must be square, got shape {A.shape}")
        nx = A.shape[0]

        if B.ndim != 2 or B.shape[0] != nx:
            raise ValueError(f"B must have {nx} rows (nx), got shape {B.shape}")
        nu = B.shape[1]

        if C.ndim != 2 or C.shape[1] != nx:
            raise ValueError(f"C must have {nx} columns (nx), got shape {C.shape}")
        ny = C.shape[0]

        if D.shape != (ny, nu):
            raise ValueError(f"D must have shape ({ny}, {nu}), got {D.shape}")

        self._A = A
        self._B = B
        self._C = C
        self._D = D
        self._nx = nx
        self._nu = nu
        self._ny = ny

        self._clamp_function = identity_clamp if clamp_function is None else clamp_function
        self._discretization_method = validate_discretization_method(discretization_method)
        self._primitives = resolve_primitives(primitives)

        self._x = np.zeros(nx)
        self._y = np.zeros(ny)
        self._delayed_u = np.zeros(nu)

    @classmethod
    def from_config(
        cls,
        A: StateMatrix,
        B: InputMatrix,
        C: OutputMatrix,
        D: FeedthroughMatrix,
        config: DiscretizerConfig,
        clamp_function: Optional[ClampFunction] = None,
        primitives: Optional[NumericPrimitivesProtocol] = None,
    ) -> "LinearSystem":
        """
        Build a plant whose discretization settings come from a dictionary.

        A missing 'method' key selects 'taylor'.

        Example:
            >>> config: DiscretizerConfig = {'method': 'exact'}
            >>> plant = LinearSystem.from_config(A, B, C, D, config)
        """
        return cls(
            A,
            B,
            C,
            D,
            clamp_function=clamp_function,
            discretization_method=config.get("method", "taylor"),
            primitives=primitives,
        )

    # ========================================================================
    # Dimensions and Matrices
    # ========================================================================

    @property
    def A(self) -> StateMatrix:
        return self._A

    @property
    def B(self) -> InputMatrix:
        return self._B

    @property
    def C(self) -> OutputMatrix:
        return self._C

    @property
    def D(self) -> FeedthroughMatrix:
        return self._D

    @property
    def nx(self) -> int:
        return self._nx

    @property
    def nu(self) -> int:
        return self._nu

    @property
    def ny(self) -> int:
        return self._ny

    @property
    def discretization_method(self) -> DiscretizationMethod:
        return self._discretization_method

    # ========================================================================
    # State
    # ========================================================================

    @property
    def x(self) -> StateVector:
        """Current state (copy)."""
        return self._x.copy()

    @x.setter
    def x(self, value: ArrayLike):
        self._x = self._as_vector(value, self._nx, "x")

    @property
    def y(self) -> OutputVector:
        """Output computed by the last update (copy)."""
        return self._y.copy()

    @y.setter
    def y(self, value: ArrayLike):
        self._y = self._as_vector(value, self._ny, "y")

    @property
    def u(self) -> InputVector:
        """Clamped delayed input, i.e. the input the next update applies."""
        return self.clamp_input(self._delayed_u)

    @property
    def clamp_function(self) -> ClampFunction:
        return self._clamp_function

    @clamp_function.setter
    def clamp_function(self, clamp_function: ClampFunction):
        self._clamp_function = clamp_function

    def reset(self):
        """Zero the state, output and delayed input."""
        self._x = np.zeros(self._nx)
        self._y = np.zeros(self._ny)
        self._delayed_u = np.zeros(self._nu)

    # ========================================================================
    # Dynamics
    # ========================================================================

    def clamp_input(self, u: ArrayLike) -> InputVector:
        """Apply the clamp function to an input vector."""
        u = self._as_vector(u, self._nu, "u")
        return np.asarray(self._clamp_function(u), dtype=float).reshape(-1)

    def calculate_x(self, x: ArrayLike, u: ArrayLike, dt: float) -> StateVector:
        """
        Compute the next state without mutating the plant.

        Args:
            x: Current state (nx,)
            u: Input (nu,), clamped before use
            dt: Timestep in seconds

        Returns:
            Ad x + Bd clamp(u)
        """
        x = self._as_vector(x, self._nx, "x")
        u = self.clamp_input(u)

        disc_a, disc_b = discretize_system(
            self._A,
            self._B,
            dt,
            method=self._discretization_method,
            primitives=self._primitives,
        )
        return disc_a @ x + disc_b @ u

    def calculate_y(self, x: ArrayLike, u: ArrayLike) -> OutputVector:
        """Compute the output C x + D clamp(u)."""
        x = self._as_vector(x, self._nx, "x")
        u = self.clamp_input(u)
        return self._C @ x + self._D @ u

    def update(self, x: ArrayLike, u: ArrayLike, dt: float):
        """
        Advance the plant one step using the delayed input.

        Args:
            x: State to step from (nx,)
            u: New input, applied on the next call (nu,)
            dt: Timestep in seconds
        """
        u = self._as_vector(u, self._nu, "u")
        self._x = self.calculate_x(x, self._delayed_u, dt)
        self._y = self.calculate_y(self._x, self._delayed_u)
        self._delayed_u = u

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _as_vector(value: ArrayLike, size: int, name: str) -> np.ndarray:
        vector = np.array(value, dtype=float).reshape(-1)
        if vector.shape[0] != size:
            raise ValueError(f"{name} must have length {size}, got {vector.shape[0]}")
        return vector

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(nx={self._nx}, nu={self._nu}, ny={self._ny}, "
            f"method='{self._discretization_method}')"
        )

    def __str__(self) -> str:
        with np.printoptions(precision=4, suppress=True):
            return (
                f"Linear System: nx={self._nx}, nu={self._nu}, ny={self._ny}\n"
                f"A:\n{self._A}\n"
                f"B:\n{self._B}\n"
                f"C:\n{self._C}\n"
                f"D:\n{self._D}"
            )
