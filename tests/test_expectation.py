"""Tests for importance-weighted expectations."""

import numpy as np
import pytest

from psis import DimensionMismatch, expectation, psis


@pytest.fixture
def draws_and_result(rng):
    """Draws of shape (draws, chains) and a light-tailed PSIS result."""
    theta = rng.standard_normal((500, 4))
    result = psis(rng.normal(0.0, 0.3, size=(500, 4)))
    return theta, result


def test_mean(draws_and_result):
    """Weighted mean."""
    theta, result = draws_and_result
    expected = np.average(theta, weights=result.weights)
    assert expectation(theta, result) == pytest.approx(expected)


def test_var_and_std(draws_and_result):
    """Population variance with analytic weights, and its square root."""
    theta, result = draws_and_result
    w = result.weights
    mean = np.sum(w * theta)
    expected = np.sum(w * (theta - mean) ** 2)
    assert expectation(theta, result, kind="var") == pytest.approx(expected)
    assert expectation(theta, result, kind="std") == pytest.approx(np.sqrt(expected))


def test_median_and_quantile_equal_weights(rng):
    """With equal weights quantiles are order statistics."""
    theta = rng.standard_normal(101)
    result = psis(np.zeros(101), warn=False)
    assert expectation(theta, result, kind="median") == np.sort(theta)[50]
    assert expectation(theta, result, kind="quantile", prob=0.0) == theta.min()
    assert expectation(theta, result, kind="quantile", prob=1.0) == theta.max()


def test_quantile_requires_prob(draws_and_result):
    """kind='quantile' needs a probability in [0, 1]."""
    theta, result = draws_and_result
    with pytest.raises(ValueError, match="prob"):
        expectation(theta, result, kind="quantile")
    with pytest.raises(ValueError, match="prob"):
        expectation(theta, result, kind="quantile", prob=1.5)


def test_invalid_kind(draws_and_result):
    """Unknown kinds are rejected."""
    theta, result = draws_and_result
    with pytest.raises(ValueError, match="invalid kind"):
        expectation(theta, result, kind="mode")


def test_batch_shared_draws(rng):
    """Draws of the sample shape are shared by all parameters."""
    theta = rng.standard_normal((300, 2))
    result = psis(rng.normal(0.0, 0.3, size=(300, 2, 3)))
    values = expectation(theta, result)
    assert values.shape == (3,)
    for j in range(3):
        expected = np.average(theta, weights=result.weights[..., j])
        assert values[j] == pytest.approx(expected)


def test_batch_full_draws(rng):
    """Draws of the full shape are matched per parameter."""
    theta = rng.standard_normal((300, 2, 3))
    result = psis(rng.normal(0.0, 0.3, size=(300, 2, 3)))
    values = expectation(theta, result, kind="var")
    assert values.shape == (3,)
    w = result.weights[..., 1]
    mean = np.sum(w * theta[..., 1])
    assert values[1] == pytest.approx(np.sum(w * (theta[..., 1] - mean) ** 2))


def test_shape_mismatch(rng):
    """Draws of any other shape raise."""
    result = psis(rng.normal(0.0, 0.3, size=(300, 2, 3)))
    with pytest.raises(DimensionMismatch):
        expectation(rng.standard_normal((300, 2, 4)), result)


def test_importance_sampling_recovers_target_mean():
    """Weights from N(0, 1) to N(1, 1) shift the mean to one."""
    rng = np.random.default_rng(1)
    theta = rng.standard_normal(20_000)
    log_ratios = theta - 0.5
    result = psis(log_ratios)
    assert expectation(theta, result) == pytest.approx(1.0, abs=0.05)
