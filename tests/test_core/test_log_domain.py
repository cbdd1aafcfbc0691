"""Tests for the log-domain probability math."""

import numpy as np
import pytest

from fuzzy_markov.core.log_domain import (
    log_softmax,
    softmax,
    log_add,
    log_add_weights,
    log_softmax_vjp,
    log_softmax_jvp,
    softmax_vjp,
    softmax_jvp,
    log_softmax_jacobian,
    log_softmax_hessian,
    validate_log_distribution
)


class TestLogSoftmax:
    """Test suite for log_softmax and softmax."""

    def test_normalizes(self):
        """Exponentiated output sums to one."""
        result = log_softmax(np.array([1.0, 2.0, 0.5]))
        assert result.shape == (3,)
        assert np.isclose(np.sum(np.exp(result)), 1.0)
        assert np.all(result < 0)

    def test_shift_invariance(self):
        """Adding a constant to every logit changes nothing."""
        x = np.array([0.3, -1.2, 2.5, 0.0])
        np.testing.assert_allclose(log_softmax(x), log_softmax(x + 50.0), atol=1e-12)

    def test_large_values_stay_finite(self):
        """Max-shifting keeps large logits finite."""
        result = log_softmax(np.array([1000.0, 999.0, -1000.0]))
        assert np.all(np.isfinite(result))
        assert np.isclose(np.sum(np.exp(result)), 1.0)

    def test_near_certain_start(self):
        """A single logit of 100 takes essentially all the mass."""
        probs = softmax(np.array([100.0, 0.0, 0.0]))
        assert probs[0] > 0.999
        assert np.isclose(probs[1], probs[2])
        assert np.all(np.isfinite(log_softmax(np.array([100.0, 0.0, 0.0]))))

    def test_softmax_matches_exp_log_softmax(self):
        x = np.array([0.1, 0.2, -0.7])
        np.testing.assert_allclose(softmax(x), np.exp(log_softmax(x)))

    def test_input_validation(self):
        """Empty and non-vector inputs are rejected."""
        with pytest.raises(ValueError, match="non-empty vector"):
            log_softmax(np.array([]))
        with pytest.raises(ValueError, match="non-empty vector"):
            softmax(np.ones((2, 2)))


class TestLogAdd:
    """Test suite for log-domain addition."""

    def test_matches_naive_formula(self):
        a = np.array([-1.0, 0.5, -3.0])
        b = np.array([-2.0, 0.1, -0.2])
        np.testing.assert_allclose(log_add(a, b), np.log(np.exp(a) + np.exp(b)))

    def test_large_values_do_not_overflow(self):
        """log(exp(1000) + exp(1000)) = 1000 + log 2."""
        result = log_add(np.array([1000.0]), np.array([1000.0]))
        assert np.isclose(result[0], 1000.0 + np.log(2.0))

    def test_very_negative_values_do_not_underflow(self):
        result = log_add(np.array([-1000.0]), np.array([-1001.0]))
        assert np.isclose(result[0], -1000.0 + np.log1p(np.exp(-1.0)))

    def test_negative_infinity_is_identity(self):
        result = log_add(np.array([-np.inf]), np.array([-0.5]))
        assert np.isclose(result[0], -0.5)

    def test_weights_sum_to_one(self):
        a = np.array([-1.0, 3.0, -50.0])
        b = np.array([-2.0, 3.0, 0.0])
        wa, wb = log_add_weights(a, b, log_add(a, b))
        np.testing.assert_allclose(wa + wb, 1.0)
        assert np.isclose(wa[1], 0.5)


class TestProducts:
    """Vector-Jacobian and Jacobian-vector products agree with explicit Jacobians."""

    def test_log_softmax_vjp(self, rng):
        x = rng.normal(size=5)
        u = rng.normal(size=5)
        probs = softmax(x)
        np.testing.assert_allclose(log_softmax_vjp(probs, u), log_softmax_jacobian(x).T @ u)

    def test_log_softmax_jvp(self, rng):
        x = rng.normal(size=5)
        dx = rng.normal(size=5)
        probs = softmax(x)
        np.testing.assert_allclose(log_softmax_jvp(probs, dx), log_softmax_jacobian(x) @ dx)

    def test_softmax_products(self, rng):
        x = rng.normal(size=4)
        v = rng.normal(size=4)
        probs = softmax(x)
        jacobian = np.diag(probs) - np.outer(probs, probs)
        np.testing.assert_allclose(softmax_vjp(probs, v), jacobian.T @ v)
        np.testing.assert_allclose(softmax_jvp(probs, v), jacobian @ v)


class TestJacobianAndHessian:
    """Test suite for the explicit derivative matrices."""

    def test_jacobian_formula(self):
        """J[i,j] = δ_ij - f_j."""
        x = np.array([1.0, 2.0, 0.5])
        J = log_softmax_jacobian(x)
        probs = softmax(x)
        for i in range(3):
            for j in range(3):
                expected = (1.0 if i == j else 0.0) - probs[j]
                assert np.isclose(J[i, j], expected)

    def test_jacobian_rows_sum_to_zero_weighted(self):
        """Σ_i f_i J[i,j] = 0 because the probabilities always sum to one."""
        x = np.array([0.2, -0.4, 1.1, 0.0])
        probs = softmax(x)
        np.testing.assert_allclose(probs @ log_softmax_jacobian(x), 0.0, atol=1e-12)

    def test_hessian_symmetric_negative_semidefinite(self):
        x = np.array([0.3, 1.4, -0.8])
        H = log_softmax_hessian(x)
        np.testing.assert_allclose(H, H.T)
        assert np.all(np.linalg.eigvalsh(H) <= 1e-12)


class TestValidateLogDistribution:

    def test_valid(self):
        assert validate_log_distribution(log_softmax(np.array([0.0, 1.0])))

    def test_invalid(self):
        with pytest.raises(AssertionError, match="expected 1.0"):
            validate_log_distribution(np.log(np.array([0.5, 0.6])))
