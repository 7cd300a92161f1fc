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
State-Space Utilities

Builders for the weighting matrices used by Kalman filters and LQR, plus
small conversions needed at the robot boundary.
"""

from typing import Optional

import numpy as np

from ssestim.types.core import ArrayLike, CovarianceMatrix, StateVector
from ssestim.types.estimation import Pose2d


def make_covariance_matrix(std_devs: ArrayLike) -> CovarianceMatrix:
    """
    Build a diagonal covariance matrix from standard deviations.

    Each element is squared and placed on the diagonal. For a Q matrix the
    elements are how far each state is expected to deviate from the model;
    for an R matrix they are the noise on each measurement.

    Args:
        std_devs: Standard deviations (n,)

    Returns:
        Diagonal covariance (n, n)

    Examples
    --------
    >>> make_covariance_matrix([0.1, 2.0])
    array([[0.01, 0.  ],
           [0.  , 4.  ]])
    """
    std_devs = np.asarray(std_devs, dtype=float).reshape(-1)
    return np.diag(std_devs**2)


def make_cost_matrix(costs: ArrayLike) -> np.ndarray:
    """
    Build a diagonal LQR cost matrix using Bryson's rule.

    Each diagonal element is 1/cost², where cost is the maximum acceptable
    excursion of that state (or effort of that input).

    Examples
    --------
    >>> make_cost_matrix([0.5, 2.0])
    array([[4.  , 0.  ],
           [0.  , 0.25]])
    """
    costs = np.asarray(costs, dtype=float).reshape(-1)
    return np.diag(1.0 / costs**2)


def make_white_noise_vector(
    std_devs: ArrayLike,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Draw a normally distributed white noise vector.

    Args:
        std_devs: Standard deviation of each element (n,)
        rng: Random generator; a fresh default_rng() when None. Pass a
            seeded generator for reproducible simulations.

    Returns:
        Noise vector (n,)
    """
    std_devs = np.asarray(std_devs, dtype=float).reshape(-1)
    if rng is None:
        rng = np.random.default_rng()
    return rng.standard_normal(std_devs.shape[0]) * std_devs


def pose_to_vector(pose: Pose2d) -> StateVector:
    """Convert a pose to the [x, y, theta] vector used as filter state."""
    return np.array([pose.x, pose.y, pose.theta], dtype=float)


def angle_modulus(angle: float) -> float:
    """
    Wrap an angle into [-π, π).

    Examples
    --------
    >>> angle_modulus(3 * np.pi / 2)
    -1.5707963267948966
    """
    return float((angle + np.pi) % (2.0 * np.pi) - np.pi)


__all__ = [
    "make_covariance_matrix",
    "make_cost_matrix",
    "make_white_noise_vector",
    "pose_to_vector",
    "angle_modulus",
]
