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
Types Module

Central import point for type definitions, re-exported for convenience.

Module Organization
------------------
- core: semantic vector/matrix aliases
- backends: backend literals, configuration TypedDicts, defaults
- estimation: pose/speed containers, history snapshots, replay reports
- protocols: structural interfaces for collaborators
"""

from .backends import (
    DEFAULT_BACKEND,
    DEFAULT_DTYPE,
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_NOMINAL_DT,
    VALID_BACKENDS,
    VALID_DISCRETIZATION_METHODS,
    Backend,
    DiscretizationMethod,
    DiscretizerConfig,
    EstimatorConfig,
    validate_backend,
    validate_discretization_method,
)
from .core import (
    ArrayLike,
    ClampFunction,
    CovarianceMatrix,
    FeedthroughMatrix,
    GainMatrix,
    InputMatrix,
    InputVector,
    OutputMatrix,
    OutputVector,
    StateMatrix,
    StateVector,
)
from .estimation import ChassisSpeeds, ObserverSnapshot, Pose2d, ReplayReport
from .protocols import (
    ChassisKinematicsProtocol,
    KalmanTypeFilterProtocol,
    NumericPrimitivesProtocol,
)

__all__ = [
    # Backends / configuration
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
    "validate_backend",
    "validate_discretization_method",
    # Core
    "ArrayLike",
    "ClampFunction",
    "CovarianceMatrix",
    "FeedthroughMatrix",
    "GainMatrix",
    "InputMatrix",
    "InputVector",
    "OutputMatrix",
    "OutputVector",
    "StateMatrix",
    "StateVector",
    # Estimation
    "ChassisSpeeds",
    "ObserverSnapshot",
    "Pose2d",
    "ReplayReport",
    # Protocols
    "ChassisKinematicsProtocol",
    "KalmanTypeFilterProtocol",
    "NumericPrimitivesProtocol",
]
