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
Drivetrain Pose Estimator

Fuses wheel odometry, a gyro and delayed vision poses into a field-relative
robot pose using a Kalman filter with latency compensation.

Model
-----
State x = [x, y, θ] (field frame). The plant is a pure integrator driven by
the field-relative velocity:

    A = 0₃,  B = I₃,  C = [0 0 1],  D = 0₁ₓ₃

    u = [vx_field, vy_field, ω]     (from kinematics rotated by heading)
    y_local = [θ_gyro]              (every tick)
    y_vision = [x, y, θ]            (delayed, C = I₃)

Usage
-----
>>> estimator = DrivePoseEstimator(
...     gyro_angle=0.0,
...     initial_pose=Pose2d(1.0, 2.0, 0.0),
...     kinematics=swerve_kinematics,
...     state_std_devs=[0.1, 0.1, 0.1],
...     local_measurement_std_devs=[0.01],
...     vision_measurement_std_devs=[0.1, 0.1, 0.1],
... )
>>>
>>> # Every control tick
>>> pose = estimator.update(gyro.get_angle(), *module_states)
>>>
>>> # Whenever the camera pipeline delivers a pose
>>> estimator.add_vision_measurement(vision_pose, capture_timestamp)
"""

import logging
import time
from typing import Any, Callable, Optional

import numpy as np

from ssestim.discretization.discretization import discretize_r
from ssestim.observers.kalman_filter import KalmanFilter
from ssestim.observers.latency_compensator import KalmanFilterLatencyCompensator
from ssestim.systems.clamping import identity_clamp
from ssestim.systems.linear_system import LinearSystem
from ssestim.systems.state_space_util import angle_modulus, make_covariance_matrix, pose_to_vector
from ssestim.types.backends import (
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_LOCAL_MEASUREMENT_STD_DEVS,
    DEFAULT_NOMINAL_DT,
    DEFAULT_STATE_STD_DEVS,
    DEFAULT_VISION_MEASUREMENT_STD_DEVS,
    EstimatorConfig,
    validate_positive,
)
from ssestim.types.core import ArrayLike
from ssestim.types.estimation import Pose2d, ReplayReport
from ssestim.types.protocols import ChassisKinematicsProtocol, NumericPrimitivesProtocol

_LOG: logging.Logger = logging.getLogger(__name__)


class DrivePoseEstimator:
    """
    Latency-compensated pose estimator for a holonomic or differential drive.

    Each ``update`` predicts with the odometry velocity, corrects with the
    gyro heading and records the result in the compensator history. Vision
    poses are applied at their capture time and the ticks since then are
    replayed, so the returned pose reflects the vision fix without a jump
    back in time.

    Attributes:
        observer: Underlying KalmanFilter
        latency_compensator: Snapshot history used for vision replay
        estimated_position: Current pose estimate

    Notes:
        - Headings are wrapped to [-π, π) in the returned pose. Internally
          the heading measurement is unwrapped against the current estimate
          so a crossing of ±π does not look like a 2π innovation.
        - The gyro offset maps raw gyro readings onto the field heading and
          is re-derived on reset_position.
    """

    def __init__(
        self,
        gyro_angle: float,
        initial_pose: Pose2d,
        kinematics: ChassisKinematicsProtocol,
        state_std_devs: ArrayLike = DEFAULT_STATE_STD_DEVS,
        local_measurement_std_devs: ArrayLike = DEFAULT_LOCAL_MEASUREMENT_STD_DEVS,
        vision_measurement_std_devs: ArrayLike = DEFAULT_VISION_MEASUREMENT_STD_DEVS,
        nominal_dt: float = DEFAULT_NOMINAL_DT,
        history_window: float = DEFAULT_HISTORY_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        primitives: Optional[NumericPrimitivesProtocol] = None,
    ):
        """
        Initialize the estimator at a known pose.

        Args:
            gyro_angle: Raw gyro reading at construction (radians)
            initial_pose: Field pose at construction
            kinematics: Converts module states into chassis speeds
            state_std_devs: Model std devs [x, y, θ]
            local_measurement_std_devs: Gyro std dev [θ]
            vision_measurement_std_devs: Vision std devs [x, y, θ]
            nominal_dt: Control loop period in seconds
            history_window: Snapshot retention in seconds
            clock: Monotonic time source used by update()
            primitives: Numeric primitives (scipy by default)

        Raises:
            ValueError: If a std-dev vector has the wrong length or a
                period/window is not positive
        """
        self._nominal_dt = validate_positive("nominal_dt", nominal_dt)
        self._kinematics = kinematics
        self._clock = clock

        vision_std_devs = np.asarray(vision_measurement_std_devs, dtype=float).reshape(-1)
        if vision_std_devs.shape[0] != 3:
            raise ValueError(
                f"vision_measurement_std_devs must have length 3, got {vision_std_devs.shape[0]}",
            )

        plant = LinearSystem(
            A=np.zeros((3, 3)),
            B=np.eye(3),
            C=np.array([[0.0, 0.0, 1.0]]),
            D=np.zeros((1, 3)),
            clamp_function=identity_clamp,
            primitives=primitives,
        )
        self._observer = KalmanFilter(
            plant,
            state_std_devs,
            local_measurement_std_devs,
            nominal_dt=self._nominal_dt,
            primitives=primitives,
        )
        self._latency_compensator = KalmanFilterLatencyCompensator(history_window)

        self._vision_disc_r = discretize_r(make_covariance_matrix(vision_std_devs), self._nominal_dt)

        self._prev_time: Optional[float] = None
        self._observer.xhat = pose_to_vector(initial_pose)
        self._gyro_offset = angle_modulus(initial_pose.theta - gyro_angle)
        self._previous_angle = angle_modulus(initial_pose.theta)

    @classmethod
    def from_config(
        cls,
        gyro_angle: float,
        initial_pose: Pose2d,
        kinematics: ChassisKinematicsProtocol,
        config: EstimatorConfig,
        clock: Callable[[], float] = time.monotonic,
        primitives: Optional[NumericPrimitivesProtocol] = None,
    ) -> "DrivePoseEstimator":
        """
        Build an estimator from a configuration dictionary.

        Keys missing from ``config`` take the module defaults.

        Example:
            >>> config: EstimatorConfig = {'nominal_dt': 0.01, 'history_window': 0.5}
            >>> estimator = DrivePoseEstimator.from_config(0.0, Pose2d(0, 0, 0), kin, config)
        """
        return cls(
            gyro_angle,
            initial_pose,
            kinematics,
            state_std_devs=config.get("state_std_devs", DEFAULT_STATE_STD_DEVS),
            local_measurement_std_devs=config.get(
                "local_measurement_std_devs",
                DEFAULT_LOCAL_MEASUREMENT_STD_DEVS,
            ),
            vision_measurement_std_devs=config.get(
                "vision_measurement_std_devs",
                DEFAULT_VISION_MEASUREMENT_STD_DEVS,
            ),
            nominal_dt=config.get("nominal_dt", DEFAULT_NOMINAL_DT),
            history_window=config.get("history_window", DEFAULT_HISTORY_WINDOW),
            clock=clock,
            primitives=primitives,
        )

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def observer(self) -> KalmanFilter:
        return self._observer

    @property
    def latency_compensator(self) -> KalmanFilterLatencyCompensator:
        return self._latency_compensator

    @property
    def nominal_dt(self) -> float:
        return self._nominal_dt

    @property
    def estimated_position(self) -> Pose2d:
        """Current pose estimate, heading wrapped to [-π, π)."""
        xhat = self._observer.xhat
        return Pose2d(float(xhat[0]), float(xhat[1]), angle_modulus(xhat[2]))

    # ========================================================================
    # Estimation
    # ========================================================================

    def reset_position(self, pose: Pose2d, gyro_angle: float):
        """
        Reset the estimate to a known pose.

        Re-derives the gyro offset so that ``gyro_angle`` maps to
        ``pose.theta`` and clears the snapshot history, since it describes
        a trajectory that no longer matches the estimate.
        """
        self._observer.xhat = pose_to_vector(pose)
        self._gyro_offset = angle_modulus(pose.theta - gyro_angle)
        self._previous_angle = angle_modulus(pose.theta)
        self._latency_compensator.reset()

    def update(self, gyro_angle: float, *module_states: Any) -> Pose2d:
        """Run one tick stamped with the injected clock."""
        return self.update_with_time(self._clock(), gyro_angle, *module_states)

    def update_with_time(self, current_time: float, gyro_angle: float, *module_states: Any) -> Pose2d:
        """
        Run one tick of the estimator.

        Args:
            current_time: Tick timestamp in seconds (same clock as vision)
            gyro_angle: Raw gyro reading (radians)
            *module_states: Forwarded to kinematics.to_chassis_speeds

        Returns:
            Updated pose estimate
        """
        current_time = float(current_time)
        if self._prev_time is None:
            dt = self._nominal_dt
        else:
            dt = current_time - self._prev_time
            if dt <= 0:
                _LOG.debug(
                    "Non-positive dt (%.6f) at t=%.4f; using nominal dt %.4f",
                    dt,
                    current_time,
                    self._nominal_dt,
                )
                dt = self._nominal_dt
        self._prev_time = current_time

        angle = angle_modulus(gyro_angle + self._gyro_offset)
        omega = angle_modulus(angle - self._previous_angle) / dt

        speeds = self._kinematics.to_chassis_speeds(*module_states)
        cos, sin = np.cos(angle), np.sin(angle)
        u = np.array(
            [
                speeds.vx * cos - speeds.vy * sin,
                speeds.vx * sin + speeds.vy * cos,
                omega,
            ],
        )
        self._previous_angle = angle

        self._observer.predict(u, dt)

        heading = self._observer.xhat[2]
        local_y = np.array([heading + angle_modulus(angle - heading)])
        self._observer.correct(u, local_y)

        self._latency_compensator.add_observer_state(self._observer, u, local_y, current_time)

        return self.estimated_position

    def add_vision_measurement(self, pose: Pose2d, timestamp: float) -> ReplayReport:
        """
        Fuse a vision pose captured at ``timestamp``.

        Args:
            pose: Field pose reported by the vision pipeline
            timestamp: Capture time in seconds, on the update() clock

        Returns:
            ReplayReport describing the replay
        """
        return self._latency_compensator.apply_past_global_measurement(
            self._observer,
            self._nominal_dt,
            pose_to_vector(pose),
            self._vision_correct,
            timestamp,
        )

    def _vision_correct(self, observer: KalmanFilter, u: np.ndarray, y: np.ndarray):
        y = np.array(y, dtype=float)
        heading = observer.xhat[2]
        y[2] = heading + angle_modulus(y[2] - heading)
        observer.correct(u, y, C=np.eye(3), D=np.zeros((3, 3)), R=self._vision_disc_r)

    def __repr__(self) -> str:
        pose = self.estimated_position
        return (
            f"{self.__class__.__name__}(x={pose.x:.3f}, y={pose.y:.3f}, "
            f"theta={pose.theta:.3f}, history={len(self._latency_compensator)})"
        )
