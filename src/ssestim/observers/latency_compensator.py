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
Kalman Filter Latency Compensation

Global measurements (e.g. a camera pose solve) arrive after the control
loop has already moved past the instant they describe. The compensator
keeps a short time-ordered history of filter snapshots so a delayed
measurement can be applied where it belongs and the newer ticks replayed
on top of it.

Replay Procedure
----------------
Given a measurement stamped at t:

1. Anchor: newest snapshot with timestamp ≤ t (oldest snapshot if t
   predates the history)
2. Rewind x̂ to the anchor's estimate (P is not rewound)
3. Apply the measurement through the caller's correction function
4. For each newer snapshot in time order: predict(u, nominal_dt) then
   correct(u, local_y)

Every visited snapshot is rewritten with the replayed estimate, so a later
delayed measurement builds on the corrected history rather than the stale
one.

Usage
-----
>>> compensator = KalmanFilterLatencyCompensator(history_window=1.5)
>>>
>>> # Every control tick, after predict + correct
>>> compensator.add_observer_state(kf, u, local_y, now)
>>>
>>> # When a vision pose stamped 80 ms ago arrives
>>> compensator.apply_past_global_measurement(
...     kf, 0.02, vision_y, vision_correct, now - 0.08,
... )
"""

import dataclasses
import logging
from bisect import bisect_left, bisect_right
from typing import Callable, List

import numpy as np

from ssestim.types.backends import DEFAULT_HISTORY_WINDOW, validate_positive
from ssestim.types.core import ArrayLike
from ssestim.types.estimation import ObserverSnapshot, ReplayReport
from ssestim.types.protocols import KalmanTypeFilterProtocol

_LOG: logging.Logger = logging.getLogger(__name__)

GlobalCorrectFunction = Callable[[KalmanTypeFilterProtocol, np.ndarray, np.ndarray], None]
"""
Correction applied for a global measurement: ``fn(observer, u, y)``.

Typically a generalized ``correct`` with the measurement's own C and R,
e.g. ``lambda kf, u, y: kf.correct(u, y, C=np.eye(3), R=vision_r)``.
"""


class KalmanFilterLatencyCompensator:
    """
    Bounded snapshot history with replay for delayed global measurements.

    Snapshots are kept in strictly increasing timestamp order. Inserting at
    an existing timestamp overwrites that entry. After each insert, entries
    older than ``newest_timestamp - history_window`` are evicted.

    Attributes:
        history_window: Retention in seconds
        snapshots: Copy of the retained history, oldest first

    Notes:
        - Single-threaded; callers serialize access with the control loop
        - Replay uses nominal_dt for every re-prediction, not the recorded
          tick spacing
    """

    def __init__(self, history_window: float = DEFAULT_HISTORY_WINDOW):
        self._history_window = validate_positive("history_window", history_window)
        self._timestamps: List[float] = []
        self._snapshots: List[ObserverSnapshot] = []

    @property
    def history_window(self) -> float:
        return self._history_window

    @property
    def snapshots(self) -> List[ObserverSnapshot]:
        return list(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)

    def reset(self):
        """Drop all retained snapshots."""
        self._timestamps = []
        self._snapshots = []

    # ========================================================================
    # History
    # ========================================================================

    def add_observer_state(
        self,
        observer: KalmanTypeFilterProtocol,
        u: ArrayLike,
        local_y: ArrayLike,
        timestamp: float,
    ):
        """
        Record the observer's current estimate for this tick.

        Call after the tick's predict and correct, with the same u and
        local measurement that were fed to them.

        Args:
            observer: Filter whose xhat is recorded
            u: Input used for this tick's prediction
            local_y: Local measurement used for this tick's correction
            timestamp: Tick time in seconds
        """
        snapshot = ObserverSnapshot(timestamp, observer.xhat, u, local_y)
        self._insert(snapshot)
        self._evict()

    def _insert(self, snapshot: ObserverSnapshot):
        timestamp = snapshot.timestamp
        index = bisect_left(self._timestamps, timestamp)
        if index < len(self._timestamps) and self._timestamps[index] == timestamp:
            self._snapshots[index] = snapshot
            return

        self._timestamps.insert(index, timestamp)
        self._snapshots.insert(index, snapshot)

    def _evict(self):
        if not self._timestamps:
            return

        cutoff = self._timestamps[-1] - self._history_window
        index = bisect_left(self._timestamps, cutoff)
        if index > 0:
            del self._timestamps[:index]
            del self._snapshots[:index]

    # ========================================================================
    # Replay
    # ========================================================================

    def apply_past_global_measurement(
        self,
        observer: KalmanTypeFilterProtocol,
        nominal_dt: float,
        global_measurement: ArrayLike,
        correct_fn: GlobalCorrectFunction,
        timestamp: float,
    ) -> ReplayReport:
        """
        Apply a delayed global measurement and replay newer history.

        Args:
            observer: Filter to correct; its xhat ends at the replayed
                estimate for the newest tick
            nominal_dt: Timestep used for every re-prediction
            global_measurement: Measurement vector
            correct_fn: ``fn(observer, u, y)`` applying the measurement
            timestamp: Time the measurement describes, in seconds

        Returns:
            ReplayReport with the anchor timestamp, the replayed timestamps
            in order, and whether the measurement was stale

        Example:
            >>> # History at t = 1, 2, 3, 5; measurement stamped 2.5
            >>> report = compensator.apply_past_global_measurement(
            ...     kf, 0.02, y, correct_fn, 2.5,
            ... )
            >>> report['anchor_timestamp'], report['replayed_timestamps']
            (2.0, [3.0, 5.0])
        """
        y = np.asarray(global_measurement, dtype=float).reshape(-1)
        timestamp = float(timestamp)

        if not self._snapshots:
            _LOG.debug("Empty history; applying global measurement at t=%.4f directly", timestamp)
            correct_fn(observer, self._zero_input(observer), y)
            return ReplayReport(anchor_timestamp=None, replayed_timestamps=[], stale=False)

        index = bisect_right(self._timestamps, timestamp) - 1
        stale = index < 0
        if stale:
            _LOG.debug(
                "Global measurement at t=%.4f predates history (oldest t=%.4f); "
                "applying at oldest snapshot",
                timestamp,
                self._timestamps[0],
            )
            index = 0

        anchor = self._snapshots[index]
        observer.xhat = anchor.xhat.copy()
        correct_fn(observer, anchor.u, y)
        self._snapshots[index] = dataclasses.replace(anchor, xhat=observer.xhat)

        replayed = []
        for i in range(index + 1, len(self._snapshots)):
            snapshot = self._snapshots[i]
            observer.predict(snapshot.u, nominal_dt)
            observer.correct(snapshot.u, snapshot.local_y)
            self._snapshots[i] = dataclasses.replace(snapshot, xhat=observer.xhat)
            replayed.append(snapshot.timestamp)

        return ReplayReport(
            anchor_timestamp=anchor.timestamp,
            replayed_timestamps=replayed,
            stale=stale,
        )

    @staticmethod
    def _zero_input(observer: KalmanTypeFilterProtocol) -> np.ndarray:
        return np.zeros(observer.nu)
