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
Systems Module

Linear plant model, input clamp policies and state-space helpers.
"""

from .clamping import (
    clamp_input_max_magnitude,
    identity_clamp,
    make_min_max_clamp,
    make_normalizing_clamp,
    normalize_input_vector,
)
from .linear_system import LinearSystem
from .state_space_util import (
    angle_modulus,
    make_cost_matrix,
    make_covariance_matrix,
    make_white_noise_vector,
    pose_to_vector,
)

__all__ = [
    "LinearSystem",
    # Clamping
    "identity_clamp",
    "clamp_input_max_magnitude",
    "normalize_input_vector",
    "make_min_max_clamp",
    "make_normalizing_clamp",
    # Utilities
    "make_covariance_matrix",
    "make_cost_matrix",
    "make_white_noise_vector",
    "pose_to_vector",
    "angle_modulus",
]
