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
Unit Tests for DrivePoseEstimator

Tests cover:
- Odometry integration in the field frame
- Gyro offset handling and heading wrap
- Timestep handling (first tick, stalled clock, injected clock)
- Delayed vision fusion through the latency compensator
- reset_position() and configuration
"""

import itertools
import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ssestim.estimators import DrivePoseEstimator
from ssestim.numerics import ScipyPrimitives
from ssestim.types import ChassisKinematicsProtocol, ChassisSpeeds, EstimatorConfig, Pose2d

# ============================================================================
# Test Fixtures
# ============================================================================


class PassthroughKinematics:
    """Module states are the robot-relative (vx, vy) directly."""

    def to_chassis_speeds(self, vx, vy):
        return ChassisSpeeds(vx, vy, 0.0)


class CountingPrimitives(ScipyPrimitives):
    """Scipy primitives that record matrix exponential calls."""

    def __init__(self):
        super().__init__()
        self.expm_calls = 0

    def matrix_exponential(self, M):
        self.expm_calls += 1
        return super().matrix_exponential(M)


@pytest.fixture
def kinematics():
    return PassthroughKinematics()


def make_estimator(kinematics, initial_pose=Pose2d(0.0, 0.0, 0.0), gyro_angle=0.0, **kwargs):
    kwargs.setdefault("state_std_devs", [0.1, 0.1, 0.1])
    kwargs.setdefault("local_measurement_std_devs", [0.01])
    kwargs.setdefault("vision_measurement_std_devs", [0.1, 0.1, 0.1])
    return DrivePoseEstimator(gyro_angle, initial_pose, kinematics, **kwargs)


def drive(estimator, vx, vy, ticks, start=0.0, dt=0.02, gyro_angle=0.0):
    """Run ticks at t = start + k·dt, k = 1..ticks, and return the last pose."""
    pose = None
    for k in range(1, ticks + 1):
        pose = estimator.update_with_time(start + k * dt, gyro_angle, vx, vy)
    return pose


# ============================================================================
# Test: Odometry
# ============================================================================


class TestOdometry:
    def test_kinematics_satisfies_protocol(self, kinematics):
        assert isinstance(kinematics, ChassisKinematicsProtocol)

    def test_initial_estimate(self, kinematics):
        estimator = make_estimator(kinematics, Pose2d(1.0, 2.0, 0.3))
        assert estimator.estimated_position == pytest.approx(Pose2d(1.0, 2.0, 0.3))

    def test_integrates_forward_velocity(self, kinematics):
        estimator = make_estimator(kinematics)
        pose = drive(estimator, 1.0, 0.0, 50)

        assert pose.x == pytest.approx(1.0, abs=1e-9)
        assert pose.y == pytest.approx(0.0, abs=1e-9)
        assert pose.theta == pytest.approx(0.0, abs=1e-9)

    def test_velocity_rotated_into_field_frame(self, kinematics):
        estimator = make_estimator(kinematics, Pose2d(0.0, 0.0, np.pi / 2))
        pose = drive(estimator, 1.0, 0.0, 50)

        assert pose.x == pytest.approx(0.0, abs=1e-9)
        assert pose.y == pytest.approx(1.0, abs=1e-9)

    def test_gyro_offset(self, kinematics):
        estimator = make_estimator(kinematics, Pose2d(0.0, 0.0, 0.5), gyro_angle=1.0)
        pose = estimator.update_with_time(0.02, 1.0, 0.0, 0.0)
        assert pose.theta == pytest.approx(0.5, abs=1e-6)

        pose = estimator.update_with_time(0.04, 1.2, 0.0, 0.0)
        assert pose.theta == pytest.approx(0.7, abs=1e-3)

    def test_heading_wraps_across_pi(self, kinematics):
        start = np.pi - 0.01
        estimator = make_estimator(kinematics, Pose2d(0.0, 0.0, start), gyro_angle=start)

        pose = None
        for k in range(1, 4):
            pose = estimator.update_with_time(k * 0.02, start + 0.01 * k, 0.0, 0.0)

        assert pose.theta == pytest.approx(-np.pi + 0.02, abs=1e-3)
        assert -np.pi <= pose.theta < np.pi


# ============================================================================
# Test: Timestep Handling
# ============================================================================


class TestTimestep:
    def test_first_tick_uses_nominal_dt(self, kinematics):
        estimator = make_estimator(kinematics, nominal_dt=0.05)
        pose = estimator.update_with_time(100.0, 0.0, 1.0, 0.0)
        assert pose.x == pytest.approx(0.05)

    def test_dt_from_previous_tick(self, kinematics):
        estimator = make_estimator(kinematics)
        estimator.update_with_time(0.0, 0.0, 1.0, 0.0)
        pose = estimator.update_with_time(0.1, 0.0, 1.0, 0.0)
        assert pose.x == pytest.approx(0.02 + 0.1)

    def test_stalled_clock_uses_nominal_dt(self, kinematics, caplog):
        estimator = make_estimator(kinematics)
        estimator.update_with_time(1.0, 0.0, 1.0, 0.0)

        with caplog.at_level(logging.DEBUG, logger="ssestim.estimators.pose_estimator"):
            pose = estimator.update_with_time(1.0, 0.0, 1.0, 0.0)

        assert pose.x == pytest.approx(0.04)
        assert np.all(np.isfinite(estimator.observer.xhat))
        assert "Non-positive dt" in caplog.text

    def test_update_uses_injected_clock(self, kinematics):
        clock = itertools.count(start=0.0, step=0.05).__next__
        estimator = make_estimator(kinematics, clock=clock)

        estimator.update(0.0, 1.0, 0.0)
        pose = estimator.update(0.0, 1.0, 0.0)

        assert pose.x == pytest.approx(0.02 + 0.05)
        timestamps = [s.timestamp for s in estimator.latency_compensator.snapshots]
        assert timestamps == [0.0, 0.05]

    def test_each_tick_is_recorded(self, kinematics):
        estimator = make_estimator(kinematics)
        drive(estimator, 1.0, 0.0, 10)

        snapshots = estimator.latency_compensator.snapshots
        assert len(snapshots) == 10
        assert_allclose(snapshots[-1].xhat, estimator.observer.xhat)
        assert_allclose(snapshots[-1].u, [1.0, 0.0, 0.0])


# ============================================================================
# Test: Vision Fusion
# ============================================================================


class TestVision:
    def test_late_measurement_at_rest(self, kinematics):
        estimator = make_estimator(kinematics, vision_measurement_std_devs=[0.01, 0.01, 0.01])
        drive(estimator, 0.0, 0.0, 50)

        report = estimator.add_vision_measurement(Pose2d(1.0, 1.0, 0.0), 0.905)
        pose = estimator.estimated_position

        assert report["anchor_timestamp"] == pytest.approx(0.9)
        assert len(report["replayed_timestamps"]) == 5
        assert 0.5 < pose.x < 1.0
        assert pose.x == pytest.approx(pose.y)

    def test_true_pose_late_at_rest_leaves_estimate(self, kinematics):
        truth = Pose2d(1.0, 2.0, 0.3)
        estimator = make_estimator(kinematics, truth)
        drive(estimator, 0.0, 0.0, 50)

        report = estimator.add_vision_measurement(truth, 1.0 - 0.1)

        assert report["stale"] is False
        assert estimator.estimated_position == pytest.approx(truth, abs=1e-9)

    def test_stale_true_pose_at_rest_leaves_estimate(self, kinematics):
        truth = Pose2d(1.0, 2.0, 0.3)
        estimator = make_estimator(kinematics, truth)
        drive(estimator, 0.0, 0.0, 50)

        report = estimator.add_vision_measurement(truth, -5.0)

        assert report["stale"] is True
        assert estimator.estimated_position == pytest.approx(truth, abs=1e-9)

    def test_late_measurement_while_moving(self, kinematics):
        """Odometry starts 0.5 m off; a fix for t=0.9 corrects the pose at t=1.0."""
        estimator = make_estimator(
            kinematics,
            Pose2d(0.5, 0.0, 0.0),
            vision_measurement_std_devs=[0.001, 0.001, 0.001],
        )
        drive(estimator, 1.0, 0.0, 50)
        assert estimator.estimated_position.x == pytest.approx(1.5, abs=1e-9)

        estimator.add_vision_measurement(Pose2d(0.9, 0.0, 0.0), 0.905)

        assert estimator.estimated_position.x == pytest.approx(1.0, abs=0.01)

    def test_vision_before_any_update(self, kinematics):
        """With no history the fix is applied to the live estimate directly."""
        estimator = make_estimator(kinematics, vision_measurement_std_devs=[0.01, 0.01, 0.01])
        report = estimator.add_vision_measurement(Pose2d(1.0, 0.0, 0.0), 0.0)

        assert report == {"anchor_timestamp": None, "replayed_timestamps": [], "stale": False}
        assert np.all(np.isfinite(estimator.observer.xhat))

    def test_vision_heading_near_pi(self, kinematics):
        """A fix at -π + ε is close to an estimate at π - ε."""
        start = np.pi - 0.01
        estimator = make_estimator(
            kinematics,
            Pose2d(0.0, 0.0, start),
            gyro_angle=start,
            vision_measurement_std_devs=[0.01, 0.01, 0.01],
        )
        drive(estimator, 0.0, 0.0, 10, gyro_angle=start)

        estimator.add_vision_measurement(Pose2d(0.0, 0.0, -np.pi + 0.01), 0.2)

        theta = estimator.estimated_position.theta
        assert abs(abs(theta) - np.pi) < 0.02


# ============================================================================
# Test: Reset and Configuration
# ============================================================================


class TestResetAndConfig:
    def test_reset_position(self, kinematics):
        estimator = make_estimator(kinematics)
        drive(estimator, 1.0, 0.0, 20)

        estimator.reset_position(Pose2d(5.0, 5.0, 1.0), 0.3)

        assert estimator.estimated_position == pytest.approx(Pose2d(5.0, 5.0, 1.0))
        assert len(estimator.latency_compensator) == 0

        pose = estimator.update_with_time(1.0, 0.3, 0.0, 0.0)
        assert pose.theta == pytest.approx(1.0, abs=1e-6)
        assert pose.x == pytest.approx(5.0)

    def test_from_config(self, kinematics):
        config: EstimatorConfig = {"nominal_dt": 0.01, "history_window": 0.5}
        estimator = DrivePoseEstimator.from_config(0.0, Pose2d(0.0, 0.0, 0.0), kinematics, config)

        assert estimator.nominal_dt == 0.01
        assert estimator.latency_compensator.history_window == 0.5

    def test_from_config_uses_injected_primitives(self, kinematics):
        primitives = CountingPrimitives()
        estimator = DrivePoseEstimator.from_config(
            0.0,
            Pose2d(0.0, 0.0, 0.0),
            kinematics,
            {},
            primitives=primitives,
        )
        seeded = primitives.expm_calls
        assert seeded > 0

        estimator.update_with_time(0.02, 0.0, 1.0, 0.0)
        assert primitives.expm_calls > seeded

    def test_vision_std_dev_length_validated(self, kinematics):
        with pytest.raises(ValueError, match="vision_measurement_std_devs must have length 3"):
            make_estimator(kinematics, vision_measurement_std_devs=[0.1, 0.1])

    def test_invalid_nominal_dt(self, kinematics):
        with pytest.raises(ValueError, match="nominal_dt must be positive"):
            make_estimator(kinematics, nominal_dt=-0.02)

    def test_repr(self, kinematics):
        assert "DrivePoseEstimator" in repr(make_estimator(kinematics))
