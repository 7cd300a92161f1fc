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
Input Clamp Policies

A LinearSystem applies its clamp function to every input before it touches
the model. Policies here are plain functions of the input vector; the
factories bind their limits so the result can be stored on a system.

Policies
--------
- identity_clamp: no limiting
- clamp_input_max_magnitude: per-element box limits
- normalize_input_vector: uniform scaling that preserves direction, for
  inputs that share a budget (e.g. the two sides of a differential drive)

Examples
--------
>>> clamp = make_normalizing_clamp(12.0)
>>> clamp(np.array([24.0, 6.0]))
array([12.,  3.])
"""

from functools import partial

import numpy as np

from ssestim.types.core import ArrayLike, ClampFunction, InputVector


def identity_clamp(u: ArrayLike) -> InputVector:
    """Return the input unchanged (as a float array)."""
    return np.asarray(u, dtype=float)


def clamp_input_max_magnitude(
    u: ArrayLike,
    u_min: ArrayLike,
    u_max: ArrayLike,
) -> InputVector:
    """
    Clamp each element of u to [u_min[i], u_max[i]].

    Args:
        u: Input vector (nu,)
        u_min: Per-element lower bounds (nu,) or scalar
        u_max: Per-element upper bounds (nu,) or scalar

    Returns:
        Clamped input vector

    Examples
    --------
    >>> clamp_input_max_magnitude([5.0, -5.0], [-1.0, -2.0], [1.0, 2.0])
    array([ 1., -2.])
    """
    return np.clip(np.asarray(u, dtype=float), u_min, u_max)


def normalize_input_vector(u: ArrayLike, max_magnitude: float) -> InputVector:
    """
    Scale the whole input down if any element exceeds max_magnitude.

    The element with the largest magnitude ends up at exactly
    ±max_magnitude and the ratios between elements are preserved.
    Inputs already within the limit are returned unchanged.

    Examples
    --------
    >>> normalize_input_vector([6.0, -3.0], 12.0)
    array([ 6., -3.])
    >>> normalize_input_vector([24.0, -12.0], 12.0)
    array([12., -6.])
    """
    u = np.asarray(u, dtype=float)
    if u.size == 0:
        return u

    max_value = np.max(np.abs(u))
    if max_value > max_magnitude:
        return u * (max_magnitude / max_value)
    return u


def make_min_max_clamp(u_min: ArrayLike, u_max: ArrayLike) -> ClampFunction:
    """Bind box limits into a clamp function for a LinearSystem."""
    return partial(
        clamp_input_max_magnitude,
        u_min=np.asarray(u_min, dtype=float),
        u_max=np.asarray(u_max, dtype=float),
    )


def make_normalizing_clamp(max_magnitude: float) -> ClampFunction:
    """Bind a magnitude budget into a clamp function for a LinearSystem."""
    return partial(normalize_input_vector, max_magnitude=float(max_magnitude))


__all__ = [
    "identity_clamp",
    "clamp_input_max_magnitude",
    "normalize_input_vector",
    "make_min_max_clamp",
    "make_normalizing_clamp",
]
