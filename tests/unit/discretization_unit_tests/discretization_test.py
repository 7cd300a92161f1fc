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
Unit Tests for the Discretization Engine

Tests cover:
- discretize_a: identity at zero, semigroup property
- discretize_ab / discretize_ab_taylor: closed forms and mutual agreement
- discretize_aq_taylor: symmetry, van Loan agreement for non-symmetric A
- discretize_r: scaling and the dt = 0 warning
- discretize_system dispatch
- Injected primitives and non-NumPy backends
- Shape validation
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.linalg import expm

try:
    import torch

    HAS_TORCH = True
except ImportError:
    HAS_TORCH = False

from ssestim.discretization import (
    TAYLOR_TERMS,
    discretize_a,
    discretize_ab,
    discretize_ab_taylor,
    discretize_aq_taylor,
    discretize_r,
    discretize_system,
)
from ssestim.numerics import ScipyPrimitives

# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def double_integrator():
    """Position/velocity plant driven by acceleration."""
    A = np.array([[0.0, 1.0], [0.0, 0.0]])
    B = np.array([[0.0], [1.0]])
    return A, B


@pytest.fixture
def damped_oscillator():
    """Non-symmetric, non-nilpotent A with two inputs."""
    A = np.array([[0.0, 1.0], [-2.0, -3.0]])
    B = np.array([[0.0, 1.0], [1.0, 0.5]])
    return A, B


@pytest.fixture
def dt():
    """Control loop timestep"""
    return 0.02


class CountingPrimitives(ScipyPrimitives):
    """Scipy primitives that record matrix exponential calls."""

    def __init__(self):
        super().__init__()
        self.expm_calls = 0

    def matrix_exponential(self, M):
        self.expm_calls += 1
        return super().matrix_exponential(M)


def van_loan_q(A, Q, dt):
    """Reference Qd from the full block exponential."""
    nx = A.shape[0]
    M = np.zeros((2 * nx, 2 * nx))
    M[:nx, :nx] = -A
    M[:nx, nx:] = Q
    M[nx:, nx:] = A.T
    phi = expm(M * dt)
    return phi[nx:, nx:].T @ phi[:nx, nx:]


# ============================================================================
# Test: discretize_a
# ============================================================================


class TestDiscretizeA:
    """Test the state transition matrix."""

    def test_zero_matrix_gives_identity(self, dt):
        assert_allclose(discretize_a(np.zeros((3, 3)), dt), np.eye(3))

    def test_zero_dt_gives_identity(self, damped_oscillator):
        A, _ = damped_oscillator
        assert_allclose(discretize_a(A, 0.0), np.eye(2))

    def test_scalar_decay(self):
        Ad = discretize_a(np.array([[-2.0]]), 0.5)
        assert_allclose(Ad, [[np.exp(-1.0)]])

    def test_semigroup_property(self, damped_oscillator, dt):
        """exp(A(t1 + t2)) = exp(A t1) exp(A t2)."""
        A, _ = damped_oscillator
        combined = discretize_a(A, 2 * dt)
        stepped = discretize_a(A, dt) @ discretize_a(A, dt)
        assert_allclose(combined, stepped, atol=1e-12)

    def test_non_square_raises(self):
        with pytest.raises(ValueError, match="square"):
            discretize_a(np.zeros((2, 3)), 0.02)


# ============================================================================
# Test: discretize_ab / discretize_ab_taylor
# ============================================================================


class TestDiscretizeAB:
    """Test (A, B) discretization."""

    def test_exact_double_integrator(self, double_integrator, dt):
        A, B = double_integrator
        Ad, Bd = discretize_ab(A, B, dt)

        assert_allclose(Ad, [[1.0, dt], [0.0, 1.0]], atol=1e-14)
        assert_allclose(Bd, [[dt**2 / 2], [dt]], atol=1e-14)

    def test_taylor_double_integrator(self, double_integrator, dt):
        """A is nilpotent, so the series is exact."""
        A, B = double_integrator
        Ad, Bd = discretize_ab_taylor(A, B, dt)

        assert_allclose(Ad, [[1.0, dt], [0.0, 1.0]], atol=1e-14)
        assert_allclose(Bd, [[dt**2 / 2], [dt]], atol=1e-14)

    def test_taylor_matches_exact(self, damped_oscillator, dt):
        A, B = damped_oscillator
        Ad_exact, Bd_exact = discretize_ab(A, B, dt)
        Ad_taylor, Bd_taylor = discretize_ab_taylor(A, B, dt)

        assert_allclose(Ad_taylor, Ad_exact, atol=1e-12)
        assert_allclose(Bd_taylor, Bd_exact, atol=1e-9)

    def test_zero_a_gives_b_dt(self, dt):
        B = np.array([[1.0, 2.0], [3.0, 4.0]])
        _, Bd = discretize_ab_taylor(np.zeros((2, 2)), B, dt)
        assert_allclose(Bd, B * dt)

    def test_output_shapes(self, damped_oscillator, dt):
        A, B = damped_oscillator
        for fn in (discretize_ab, discretize_ab_taylor):
            Ad, Bd = fn(A, B, dt)
            assert Ad.shape == (2, 2)
            assert Bd.shape == (2, 2)

    def test_b_row_mismatch_raises(self, dt):
        with pytest.raises(ValueError, match="rows"):
            discretize_ab(np.eye(2), np.ones((3, 1)), dt)
        with pytest.raises(ValueError, match="rows"):
            discretize_ab_taylor(np.eye(2), np.ones((3, 1)), dt)

    def test_truncation_order(self):
        assert TAYLOR_TERMS == 5


# ============================================================================
# Test: discretize_aq_taylor
# ============================================================================


class TestDiscretizeAQ:
    """Test process noise discretization."""

    def test_zero_a_gives_q_dt(self, dt):
        Q = np.diag([0.1, 0.2, 0.3])
        Ad, Qd = discretize_aq_taylor(np.zeros((3, 3)), Q, dt)

        assert_allclose(Ad, np.eye(3))
        assert_allclose(Qd, Q * dt, atol=1e-15)

    def test_matches_van_loan_non_symmetric_a(self, damped_oscillator, dt):
        A, _ = damped_oscillator
        Q = np.diag([0.1, 0.2])

        _, Qd = discretize_aq_taylor(A, Q, dt)
        assert_allclose(Qd, van_loan_q(A, Q, dt), atol=1e-10)

    def test_result_is_symmetric(self, damped_oscillator, dt):
        A, _ = damped_oscillator
        Q = np.array([[1.0, 0.5], [0.0, 2.0]])

        _, Qd = discretize_aq_taylor(A, Q, dt)
        assert_allclose(Qd, Qd.T, atol=1e-15)

    def test_asymmetric_q_is_symmetrized_first(self, damped_oscillator, dt):
        A, _ = damped_oscillator
        Q = np.array([[1.0, 0.5], [0.0, 2.0]])
        Q_sym = (Q + Q.T) / 2

        _, Qd = discretize_aq_taylor(A, Q, dt)
        _, Qd_sym = discretize_aq_taylor(A, Q_sym, dt)
        assert_allclose(Qd, Qd_sym, atol=1e-15)

    def test_result_is_positive_semidefinite(self, damped_oscillator, dt):
        A, _ = damped_oscillator
        _, Qd = discretize_aq_taylor(A, np.diag([0.1, 0.2]), dt)
        assert np.all(np.linalg.eigvalsh(Qd) >= -1e-15)

    def test_q_shape_mismatch_raises(self, dt):
        with pytest.raises(ValueError, match="Q must have shape"):
            discretize_aq_taylor(np.eye(2), np.eye(3), dt)


# ============================================================================
# Test: discretize_r
# ============================================================================


class TestDiscretizeR:
    """Test measurement noise discretization."""

    def test_divides_by_dt(self):
        R = np.diag([0.01, 0.04])
        assert_allclose(discretize_r(R, 0.02), R / 0.02)

    def test_smaller_dt_gives_larger_noise(self):
        R = np.eye(1)
        assert discretize_r(R, 0.01)[0, 0] > discretize_r(R, 0.02)[0, 0]

    def test_zero_dt_warns_and_returns_non_finite(self):
        with pytest.warns(RuntimeWarning, match="dt=0"):
            Rd = discretize_r(np.eye(2), 0.0)

        assert np.isinf(Rd[0, 0])
        assert np.isnan(Rd[0, 1])


# ============================================================================
# Test: discretize_system
# ============================================================================


class TestDiscretizeSystem:
    """Test method dispatch."""

    def test_default_is_taylor(self, damped_oscillator, dt):
        A, B = damped_oscillator
        _, Bd = discretize_system(A, B, dt)
        _, Bd_taylor = discretize_ab_taylor(A, B, dt)
        assert_allclose(Bd, Bd_taylor)

    def test_exact_method(self, damped_oscillator, dt):
        A, B = damped_oscillator
        _, Bd = discretize_system(A, B, dt, method="exact")
        _, Bd_exact = discretize_ab(A, B, dt)
        assert_allclose(Bd, Bd_exact)

    def test_invalid_method_raises(self, damped_oscillator, dt):
        A, B = damped_oscillator
        with pytest.raises(ValueError, match="Invalid discretization method"):
            discretize_system(A, B, dt, method="tustin")

    def test_invalid_backend_raises(self, damped_oscillator, dt):
        A, B = damped_oscillator
        calls = [
            lambda: discretize_a(A, dt, backend="pytorch"),
            lambda: discretize_ab(A, B, dt, backend="pytorch"),
            lambda: discretize_ab_taylor(A, B, dt, backend="pytorch"),
            lambda: discretize_aq_taylor(A, np.eye(2), dt, backend="pytorch"),
            lambda: discretize_r(np.eye(2), dt, backend="pytorch"),
            lambda: discretize_system(A, B, dt, backend="pytorch"),
        ]
        for call in calls:
            with pytest.raises(ValueError, match="Invalid backend 'pytorch'"):
                call()

    def test_results_are_float64(self, dt):
        Ad = discretize_a(np.zeros((2, 2), dtype=np.float32), dt)
        assert Ad.dtype == np.float64


# ============================================================================
# Test: Primitives and Backends
# ============================================================================


class TestPrimitivesAndBackends:
    """Test injected primitives and backend round trips."""

    def test_injected_primitives_are_used(self, damped_oscillator, dt):
        A, B = damped_oscillator
        primitives = CountingPrimitives()

        discretize_a(A, dt, primitives=primitives)
        assert primitives.expm_calls == 1

        discretize_ab(A, B, dt, primitives=primitives)
        assert primitives.expm_calls == 2

    def test_accepts_nested_lists(self, dt):
        Ad = discretize_a([[0.0, 1.0], [0.0, 0.0]], dt)
        assert_allclose(Ad, [[1.0, dt], [0.0, 1.0]], atol=1e-14)

    @pytest.mark.skipif(not HAS_TORCH, reason="PyTorch not installed")
    def test_torch_round_trip(self, damped_oscillator, dt):
        A, B = damped_oscillator
        A_t = torch.tensor(A, dtype=torch.float64)
        B_t = torch.tensor(B, dtype=torch.float64)

        Ad_t, Bd_t = discretize_ab_taylor(A_t, B_t, dt, backend="torch")
        Ad, Bd = discretize_ab_taylor(A, B, dt)

        assert isinstance(Ad_t, torch.Tensor)
        assert isinstance(Bd_t, torch.Tensor)
        assert_allclose(Ad_t.numpy(), Ad)
        assert_allclose(Bd_t.numpy(), Bd)
