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
Linear Kalman Filter

Discrete Kalman filter over a continuous LinearSystem, re-discretized at
whatever timestep each predict step is called with.
"""

import logging
import warnings
from typing import Optional

import numpy as np

from ssestim.discretization.discretization import discretize_aq_taylor, discretize_r
from ssestim.numerics.primitives import resolve_primitives
from ssestim.systems.linear_system import LinearSystem
from ssestim.systems.state_space_util import make_covariance_matrix
from ssestim.types.backends import DEFAULT_NOMINAL_DT, validate_positive
from ssestim.types.core import ArrayLike, CovarianceMatrix, StateVector
from ssestim.types.protocols import NumericPrimitivesProtocol

_LOG: logging.Logger = logging.getLogger(__name__)


class KalmanFilter:
    """
    Kalman filter for a linear plant with time-varying timestep.

    The state estimate lives in the plant (``plant.x``); the filter owns the
    error covariance P and the noise models.

    Theory:
    ------
    **Predict Step** (at timestep dt):
        x̂ = Ad x̂ + Bd u
        (Ad, Qd) = discretize_aq_taylor(A, Q, dt)
        P = Ad P Adᵀ + Qd
        Rd = R/dt

    **Correct Step**:
        S = C P Cᵀ + Rd
        K = P Cᵀ S⁻¹                  [computed as Kᵀ = solve(Sᵀ, C Pᵀ)]
        x̂ = x̂ + K (y - (C x̂ + D u))
        P = (I - K C) P

    **Initial Covariance**:
        P is seeded with the steady-state solution of the filter DARE at the
        nominal timestep, so the filter starts at its converged gain. When
        (Adᵀ, Cᵀ) is not stabilizable, or there are more outputs than states,
        no such solution exists and P starts at zero.
        Zero process noise also gives P = 0; set P directly to start from a
        prior instead.

    Attributes:
        plant: The LinearSystem holding the state estimate
        P: Error covariance (nx, nx)
        xhat: State estimate (nx,)

    Example:
        >>> plant = LinearSystem([[-1.0]], [[1.0]], [[1.0]], [[0.0]])
        >>> kf = KalmanFilter(plant, state_std_devs=[0.5], measurement_std_devs=[0.1])
        >>>
        >>> for y_measured in measurements:
        ...     kf.predict(u=[1.0], dt=0.02)
        ...     kf.correct(u=[1.0], y=[y_measured])
        >>>
        >>> kf.xhat

    Notes:
        - Larger state std devs trust measurements more (higher gain)
        - Larger measurement std devs trust the model more (lower gain)
        - The cached Rd is refreshed on every predict, so correct() after a
          long predict uses noise consistent with that step
    """

    def __init__(
        self,
        plant: LinearSystem,
        state_std_devs: ArrayLike,
        measurement_std_devs: ArrayLike,
        nominal_dt: float = DEFAULT_NOMINAL_DT,
        primitives: Optional[NumericPrimitivesProtocol] = None,
    ):
        """
        Initialize the filter and seed P.

        Args:
            plant: Linear plant; its state becomes the estimate
            state_std_devs: Model standard deviation of each state (nx,)
            measurement_std_devs: Standard deviation of each output (ny,)
            nominal_dt: Timestep used to seed P, in seconds
            primitives: Numeric primitives (scipy by default)

        Raises:
            ValueError: If a std-dev vector has the wrong length, or
                nominal_dt is not positive
        """
        self._plant = plant
        self._primitives = resolve_primitives(primitives)
        nominal_dt = validate_positive("nominal_dt", nominal_dt)

        state_std_devs = np.asarray(state_std_devs, dtype=float).reshape(-1)
        measurement_std_devs = np.asarray(measurement_std_devs, dtype=float).reshape(-1)
        if state_std_devs.shape[0] != plant.nx:
            raise ValueError(
                f"state_std_devs must have length {plant.nx} (nx), "
                f"got {state_std_devs.shape[0]}",
            )
        if measurement_std_devs.shape[0] != plant.ny:
            raise ValueError(
                f"measurement_std_devs must have length {plant.ny} (ny), "
                f"got {measurement_std_devs.shape[0]}",
            )

        self._cont_q = make_covariance_matrix(state_std_devs)
        self._cont_r = make_covariance_matrix(measurement_std_devs)

        disc_a, disc_q = discretize_aq_taylor(
            plant.A,
            self._cont_q,
            nominal_dt,
            primitives=self._primitives,
        )
        self._disc_r = discretize_r(self._cont_r, nominal_dt)

        self._P = self._initial_covariance(disc_a, disc_q)

    def _initial_covariance(self, disc_a: np.ndarray, disc_q: np.ndarray) -> CovarianceMatrix:
        nx = self._plant.nx
        C = self._plant.C

        if self._plant.ny > nx or not self._primitives.is_stabilizable(disc_a.T, C.T):
            _LOG.debug(
                "(A', C') not stabilizable or ny > nx (ny=%d, nx=%d); seeding P with zeros",
                self._plant.ny,
                nx,
            )
            return np.zeros((nx, nx))

        try:
            return self._primitives.solve_discrete_are(disc_a.T, C.T, disc_q, self._disc_r)
        except (np.linalg.LinAlgError, ValueError) as e:
            warnings.warn(
                f"Failed to solve the filter DARE for the initial covariance: {e}. "
                f"Seeding P with zeros.",
                RuntimeWarning,
                stacklevel=3,
            )
            return np.zeros((nx, nx))

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def plant(self) -> LinearSystem:
        return self._plant

    @property
    def nx(self) -> int:
        return self._plant.nx

    @property
    def nu(self) -> int:
        return self._plant.nu

    @property
    def ny(self) -> int:
        return self._plant.ny

    @property
    def P(self) -> CovarianceMatrix:
        """Error covariance (copy)."""
        return self._P.copy()

    @P.setter
    def P(self, value: ArrayLike):
        value = np.array(value, dtype=float)
        if value.shape != (self.nx, self.nx):
            raise ValueError(f"P must have shape ({self.nx}, {self.nx}), got {value.shape}")
        self._P = value

    @property
    def xhat(self) -> StateVector:
        """State estimate (stored in the plant)."""
        return self._plant.x

    @xhat.setter
    def xhat(self, value: ArrayLike):
        self._plant.x = value

    @property
    def cont_q(self) -> CovarianceMatrix:
        return self._cont_q.copy()

    @property
    def cont_r(self) -> CovarianceMatrix:
        return self._cont_r.copy()

    @property
    def disc_r(self) -> CovarianceMatrix:
        """Measurement noise discretized at the last predict timestep."""
        return self._disc_r.copy()

    def reset(self):
        """Reset the plant state. P is left as is."""
        self._plant.reset()

    # ========================================================================
    # Filter Steps
    # ========================================================================

    def predict(self, u: ArrayLike, dt: float):
        """
        Propagate the estimate and covariance by dt seconds.

        Args:
            u: Control input (nu,)
            dt: Timestep in seconds
        """
        self._plant.x = self._plant.calculate_x(self._plant.x, u, dt)

        disc_a, disc_q = discretize_aq_taylor(
            self._plant.A,
            self._cont_q,
            dt,
            primitives=self._primitives,
        )
        self._P = disc_a @ self._P @ disc_a.T + disc_q
        self._disc_r = discretize_r(self._cont_r, dt)

    def correct(
        self,
        u: ArrayLike,
        y: ArrayLike,
        C: Optional[ArrayLike] = None,
        D: Optional[ArrayLike] = None,
        R: Optional[ArrayLike] = None,
    ):
        """
        Fuse a measurement into the estimate.

        Without C, the measurement is the plant output and uses the plant's
        C, D and the cached discrete R. With an explicit C the measurement
        may have any number of rows; R is then required and D defaults to
        zeros.

        Args:
            u: Control input (nu,)
            y: Measurement (rows,)
            C: Measurement matrix (rows, nx)
            D: Measurement feedthrough (rows, nu)
            R: Discrete measurement noise covariance (rows, rows)

        Raises:
            ValueError: If R is missing with an explicit C, or shapes
                are inconsistent

        Example:
            >>> # Full-state measurement from a second sensor
            >>> kf.correct(u, y_full, C=np.eye(kf.nx), R=0.01 * np.eye(kf.nx))
        """
        nx = self.nx
        nu = self._plant.nu

        if C is None:
            C = self._plant.C
            D = self._plant.D
            R = self._disc_r
        else:
            C = np.asarray(C, dtype=float)
            if C.ndim != 2 or C.shape[1] != nx:
                raise ValueError(f"C must have {nx} columns (nx), got shape {C.shape}")
            if R is None:
                raise ValueError("R must be provided when C is given")
            D = np.zeros((C.shape[0], nu)) if D is None else np.asarray(D, dtype=float)

        rows = C.shape[0]
        R = np.asarray(R, dtype=float)
        if D.shape != (rows, nu):
            raise ValueError(f"D must have shape ({rows}, {nu}), got {D.shape}")
        if R.shape != (rows, rows):
            raise ValueError(f"R must have shape ({rows}, {rows}), got {R.shape}")

        u = np.asarray(u, dtype=float).reshape(-1)
        y = np.asarray(y, dtype=float).reshape(-1)
        if u.shape[0] != nu:
            raise ValueError(f"u must have length {nu}, got {u.shape[0]}")
        if y.shape[0] != rows:
            raise ValueError(f"y must have length {rows}, got {y.shape[0]}")

        x = self._plant.x
        S = C @ self._P @ C.T + R

        # K = P Cᵀ S⁻¹  =>  Sᵀ Kᵀ = C Pᵀ
        K = np.linalg.solve(S.T, C @ self._P.T).T

        self._plant.x = x + K @ (y - (C @ x + D @ u))
        self._P = (np.eye(nx) - K @ C) @ self._P

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(nx={self.nx}, ny={self.ny}, plant={self._plant!r})"
