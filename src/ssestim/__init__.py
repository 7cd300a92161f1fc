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
State-Space Estimation
======================

Discretization, linear plant models, Kalman filtering and latency
compensation for real-time robot controllers.

Discretization
--------------
>>> from ssestim import discretize_ab_taylor, discretize_aq_taylor
>>>
>>> Ad, Bd = discretize_ab_taylor(A, B, dt=0.02)
>>> Ad, Qd = discretize_aq_taylor(A, Q, dt=0.02)

Filtering
---------
>>> from ssestim import LinearSystem, KalmanFilter
>>>
>>> plant = LinearSystem(A, B, C, D)
>>> kf = KalmanFilter(plant, state_std_devs=[0.1, 0.1], measurement_std_devs=[0.01])
>>> kf.predict(u, dt=0.02)
>>> kf.correct(u, y)

Pose Estimation
---------------
>>> from ssestim import DrivePoseEstimator, Pose2d
>>>
>>> estimator = DrivePoseEstimator(0.0, Pose2d(0.0, 0.0, 0.0), kinematics)
>>> estimator.update(gyro_angle, *module_states)
>>> estimator.add_vision_measurement(vision_pose, capture_time)

Authors
-------
Gil Benezer

License
-------
GNU Affero General Public License v3.0
"""

from .discretization import (
    TAYLOR_TERMS,
    discretize_a,
    discretize_ab,
    discretize_ab_taylor,
    discretize_aq_taylor,
    discretize_r,
    discretize_system,
)
from .estimators import DrivePoseEstimator
from .numerics import DEFAULT_PRIMITIVES, ScipyPrimitives
from .observers import KalmanFilter, KalmanFilterLatencyCompensator
from .systems import (
    LinearSystem,
    clamp_input_max_magnitude,
    identity_clamp,
    make_cost_matrix,
    make_covariance_matrix,
    make_min_max_clamp,
    make_normalizing_clamp,
    make_white_noise_vector,
    normalize_input_vector,
    pose_to_vector,
)
from .types import ChassisSpeeds, EstimatorConfig, ObserverSnapshot, Pose2d, ReplayReport

__version__ = "0.1.0"

__all__ = [
    # Discretization
    "TAYLOR_TERMS",
    "discretize_a",
    "discretize_ab",
    "discretize_ab_taylor",
    "discretize_aq_taylor",
    "discretize_r",
    "discretize_system",
    # Numerics
    "ScipyPrimitives",
    "DEFAULT_PRIMITIVES",
    # Systems
    "LinearSystem",
    "identity_clamp",
    "clamp_input_max_magnitude",
    "normalize_input_vector",
    "make_min_max_clamp",
    "make_normalizing_clamp",
    "make_covariance_matrix",
    "make_cost_matrix",
    "make_white_noise_vector",
    "pose_to_vector",
    # Observers
    "KalmanFilter",
    "KalmanFilterLatencyCompensator",
    # Estimators
    "DrivePoseEstimator",
    # Types
    "Pose2d",
    "ChassisSpeeds",
    "ObserverSnapshot",
    "ReplayReport",
    "EstimatorConfig",
]
