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
Backend and Configuration Types

Defines types related to:
- Computational backends (NumPy, PyTorch, JAX)
- Discretization methods (exact, taylor)
- Estimator configuration dictionaries and their defaults

Usage
-----
>>> from ssestim.types.backends import Backend, DEFAULT_NOMINAL_DT
>>>
>>> def discretize(A, dt: float = DEFAULT_NOMINAL_DT, backend: Backend = 'numpy'):
...     pass
"""

from typing import Literal

import numpy as np
from typing_extensions import TypedDict

# ============================================================================
# Backend Types
# ============================================================================

Backend = Literal["numpy", "torch", "jax"]
"""
Computational backend identifier.

Only the pure discretization functions honour non-NumPy backends; inputs
are converted to NumPy for the scipy primitives and results converted back.
"""

DiscretizationMethod = Literal["exact", "taylor"]
"""
Discretization method for (A, B).

- 'exact': exponentiate the (nx+nu)² augmented matrix
- 'taylor': exact A, 5-term Taylor series for B
"""


# ============================================================================
# Configuration Types
# ============================================================================


class DiscretizerConfig(TypedDict, total=False):
    """
    Configuration for plant discretization.

    Consumed by ``LinearSystem.from_config``.

    Attributes
    ----------
    method : DiscretizationMethod
        How (A, B) are discretized each step

    Examples
    --------
    >>> config: DiscretizerConfig = {'method': 'exact'}
    """

    method: DiscretizationMethod


class EstimatorConfig(TypedDict, total=False):
    """
    Configuration for a latency-compensated pose estimator.

    Attributes
    ----------
    nominal_dt : float
        Control loop period in seconds. Used on the first tick and for
        every re-prediction during replay.
    history_window : float
        How many seconds of observer snapshots are retained for replay
    state_std_devs : list of float
        Model state standard deviations [x, y, heading]
    local_measurement_std_devs : list of float
        Gyro heading standard deviation [heading]
    vision_measurement_std_devs : list of float
        Vision pose standard deviations [x, y, heading]

    Examples
    --------
    >>> config: EstimatorConfig = {
    ...     'nominal_dt': 0.01,
    ...     'state_std_devs': [0.1, 0.1, 0.1],
    ... }
    """

    nominal_dt: float
    history_window: float
    state_std_devs: list
    local_measurement_std_devs: list
    vision_measurement_std_devs: list


# ============================================================================
# Constants - Valid Values and Defaults
# ============================================================================

VALID_BACKENDS = ("numpy", "torch", "jax")
"""Tuple of valid backend names."""

VALID_DISCRETIZATION_METHODS = ("exact", "taylor")
"""Tuple of valid (A, B) discretization methods."""

DEFAULT_BACKEND: Backend = "numpy"
"""Default backend if not specified."""

DEFAULT_DTYPE = np.float64
"""Default numerical precision. Control applications need float64."""

DEFAULT_NOMINAL_DT = 0.02
"""Default control loop period in seconds (50 Hz)."""

DEFAULT_HISTORY_WINDOW = 1.5
"""
Default latency compensator retention in seconds.

Long enough to absorb typical vision pipeline latency (tens to hundreds of
milliseconds) with margin, short enough that a full replay stays bounded
at control-loop rates (75 snapshots at 50 Hz).
"""

DEFAULT_STATE_STD_DEVS = (0.1, 0.1, 0.1)
DEFAULT_LOCAL_MEASUREMENT_STD_DEVS = (0.01,)
DEFAULT_VISION_MEASUREMENT_STD_DEVS = (0.1, 0.1, 0.1)


# ============================================================================
# Validation Utilities
# ============================================================================


def validate_backend(backend: str) -> Backend:
    """
    Validate and normalize backend string.

    Raises
    ------
    ValueError
        If backend is not valid

    Examples
    --------
    >>> validate_backend('numpy')
    'numpy'
    >>> validate_backend('pytorch')  # ValueError
    """
    if backend not in VALID_BACKENDS:
        raise ValueError(f"Invalid backend '{backend}'. " f"Choose from: {VALID_BACKENDS}")
    return backend


def validate_discretization_method(method: str) -> DiscretizationMethod:
    """
    Validate discretization method string.

    Raises
    ------
    ValueError
        If method is not one of VALID_DISCRETIZATION_METHODS
    """
    if method not in VALID_DISCRETIZATION_METHODS:
        raise ValueError(
            f"Invalid discretization method '{method}'. "
            f"Choose from: {VALID_DISCRETIZATION_METHODS}",
        )
    return method


def validate_positive(name: str, value: float) -> float:
    """Validate that a configuration value is a positive finite number."""
    value = float(value)
    if not np.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


__all__ = [
    "Backend",
    "DiscretizationMethod",
    "DiscretizerConfig",
    "EstimatorConfig",
    "VALID_BACKENDS",
    "VALID_DISCRETIZATION_METHODS",
    "DEFAULT_BACKEND",
    "DEFAULT_DTYPE",
    "DEFAULT_NOMINAL_DT",
    "DEFAULT_HISTORY_WINDOW",
    "DEFAULT_STATE_STD_DEVS",
    "DEFAULT_LOCAL_MEASUREMENT_STD_DEVS",
    "DEFAULT_VISION_MEASUREMENT_STD_DEVS",
    "validate_backend",
    "validate_discretization_method",
    "validate_positive",
]
