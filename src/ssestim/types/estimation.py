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
Estimation Types

Value types exchanged by the filter, the latency compensator and the pose
estimator:
- Pose2d / ChassisSpeeds: plain containers at the robot boundary
- ObserverSnapshot: one entry of the latency compensator history
- ReplayReport: what a delayed measurement replay touched

Usage
-----
>>> from ssestim.types.estimation import Pose2d, ReplayReport
>>> pose = Pose2d(1.0, 2.0, 0.5)
>>> pose.theta
0.5
"""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional

import numpy as np
from typing_extensions import TypedDict

# ============================================================================
# Robot Boundary Types
# ============================================================================


class Pose2d(NamedTuple):
    """
    Field-relative robot pose.

    Fields
    ------
    x : float
        Position along the field x axis (meters)
    y : float
        Position along the field y axis (meters)
    theta : float
        Heading (radians)
    """

    x: float
    y: float
    theta: float


class ChassisSpeeds(NamedTuple):
    """
    Robot-relative chassis velocity produced by a kinematics collaborator.

    Fields
    ------
    vx : float
        Forward velocity (m/s)
    vy : float
        Leftward velocity (m/s)
    omega : float
        Angular velocity (rad/s, counter-clockwise positive)
    """

    vx: float
    vy: float
    omega: float = 0.0


# ============================================================================
# Latency Compensation Types
# ============================================================================


@dataclass(frozen=True)
class ObserverSnapshot:
    """
    Filter state recorded at one control tick.

    Attributes
    ----------
    timestamp : float
        Monotonic time of the tick (seconds)
    xhat : np.ndarray
        State estimate after that tick's local correction (nx,)
    u : np.ndarray
        Input used for that tick's prediction (nu,)
    local_y : np.ndarray
        Local measurement used for that tick's correction (ny,)

    Arrays are copied on construction so a snapshot never aliases the
    live filter.
    """

    timestamp: float
    xhat: np.ndarray = field(repr=False)
    u: np.ndarray = field(repr=False)
    local_y: np.ndarray = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "timestamp", float(self.timestamp))
        for name in ("xhat", "u", "local_y"):
            value = np.array(getattr(self, name), dtype=float).reshape(-1)
            value.setflags(write=False)
            object.__setattr__(self, name, value)


class ReplayReport(TypedDict):
    """
    Result of applying a delayed global measurement.

    Fields
    ------
    anchor_timestamp : Optional[float]
        Timestamp of the snapshot the measurement was applied at, or None
        when the history was empty and the live estimate was corrected
    replayed_timestamps : List[float]
        Timestamps re-predicted and re-corrected, in replay order
    stale : bool
        True when the measurement predates the retained history and was
        applied against the oldest snapshot instead

    Examples
    --------
    >>> report = compensator.apply_past_global_measurement(...)
    >>> report['replayed_timestamps']
    [3.0, 5.0]
    """

    anchor_timestamp: Optional[float]
    replayed_timestamps: List[float]
    stale: bool


__all__ = [
    "Pose2d",
    "ChassisSpeeds",
    "ObserverSnapshot",
    "ReplayReport",
]
