"""Tests for Pareto-smoothed importance sampling (psis.psis).

Covers smoothing of single and batched log-ratios, the recovery of known
Pareto shapes and expectations, warnings for failed or unreliable fits and
the handling of ``reff``.
"""

import re
import warnings

import numpy as np
import pytest
from scipy import stats

from psis import (
    DimensionMismatch,
    GeneralizedPareto,
    MalformedInputError,
    PSISConfig,
    PSISResult,
    PSISWarning,
    psis,
)


def exponential_log_ratios(theta, size, seed=42):
    """Draws from Exponential(scale=theta) and log-ratios to Exponential(1)."""
    rng = np.random.default_rng(seed)
    x = rng.exponential(scale=theta, size=size)
    log_ratios = stats.expon.logpdf(x) - stats.expon.logpdf(x, scale=theta)
    return x, log_ratios


def normal_to_cauchy_log_ratios(size, seed=42):
    """Draws from N(0, 1) and heavy-tailed log-ratios to a standard Cauchy."""
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(size)
    return stats.cauchy.logpdf(x) - stats.norm.logpdf(x)


# --------------------------------------------------------------------------
# Importance sampling accuracy
# --------------------------------------------------------------------------


@pytest.mark.parametrize("size", [(100_000,), (25_000, 4)])
def test_exponential_shape_and_moments(size):
    """Exponential(0.8) → Exponential(1): k ≈ 0.2 and E[x] ≈ 1."""
    x, log_ratios = exponential_log_ratios(0.8, size)
    result = psis(log_ratios)
    assert result.pareto_shape == pytest.approx(0.2, abs=0.15)
    assert np.sum(result.weights * x) == pytest.approx(1.0, abs=0.05)
    assert np.sum(result.weights * x**2) == pytest.approx(2.0, abs=0.2)


def test_exponential_batch_shapes():
    """Every parameter of a batch gets its own fit."""
    x, log_ratios = exponential_log_ratios(0.8, (20_000, 2, 3))
    result = psis(log_ratios, reff=np.ones(3))
    assert result.pareto_shape.shape == (3,)
    np.testing.assert_allclose(result.pareto_shape, 0.2, atol=0.2)
    np.testing.assert_allclose(
        np.sum(result.weights * x, axis=(0, 1)), 1.0, atol=0.1
    )


def test_light_tails_give_small_shape(normal_log_ratios, no_psis_warnings):
    """Bounded ratios give k̂ < 0.5 and no warnings."""
    result = psis(normal_log_ratios, reff=0.7)
    assert result.pareto_shape < 0.5
    assert np.isfinite(result.ess)


def test_heavy_tails_warn():
    """Normal → Cauchy ratios are flagged as unstable."""
    log_ratios = normal_to_cauchy_log_ratios(1000)
    with pytest.warns(PSISWarning, match="likely to be unstable"):
        result = psis(log_ratios)
    assert result.pareto_shape > 0.7
    assert np.isnan(result.ess)
    raw = psis(log_ratios, normalize=False, warn=False)
    assert not np.array_equal(raw.log_weights, log_ratios)


# --------------------------------------------------------------------------
# Output structure
# --------------------------------------------------------------------------


def test_single_parameter_result(normal_log_ratios):
    """1-D input gives scalar per-parameter fields."""
    result = psis(normal_log_ratios)
    assert isinstance(result, PSISResult)
    assert result.log_weights.shape == normal_log_ratios.shape
    assert isinstance(result.pareto_shape, float)
    assert isinstance(result.tail_length, int)
    assert isinstance(result.tail_dist, GeneralizedPareto)
    assert result.reff == 1.0
    assert (result.ndraws, result.nchains, result.nparams) == (1000, 1, 1)


def test_batch_result(batch_log_ratios):
    """3-D input gives per-parameter arrays."""
    result = psis(batch_log_ratios, reff=np.array([0.9, 1.0, 1.1]))
    assert result.log_weights.shape == (1000, 4, 3)
    assert result.pareto_shape.shape == (3,)
    assert result.tail_length.shape == (3,)
    assert result.tail_dist.shape == (3,)
    assert result.ess.shape == (3,)
    assert (result.ndraws, result.nchains, result.nparams) == (1000, 4, 3)
    np.testing.assert_allclose(result.weights.sum(axis=(0, 1)), 1.0)


def test_log_weights_normalized(normal_log_ratios):
    """Normalized weights sum to one; unnormalized differ by a constant."""
    result = psis(normal_log_ratios)
    raw = psis(normal_log_ratios, normalize=False)
    assert result.normalized and not raw.normalized
    assert np.exp(result.log_weights).sum() == pytest.approx(1.0)
    diff = raw.log_weights - result.log_weights
    np.testing.assert_allclose(diff, diff[0], atol=1e-10)
    assert result.log_weights_norm == pytest.approx(0.0, abs=1e-12)
    assert raw.pareto_shape == result.pareto_shape


def test_bulk_unchanged(normal_log_ratios):
    """Only the M largest log-ratios are modified."""
    result = psis(normal_log_ratios, normalize=False)
    order = np.argsort(normal_log_ratios)
    bulk = order[: normal_log_ratios.size - result.tail_length]
    np.testing.assert_array_equal(
        result.log_weights[bulk], normal_log_ratios[bulk]
    )


def test_order_preserved(rng):
    """Smoothing never changes the ranks of the log-weights."""
    log_ratios = rng.standard_t(3, size=2000)
    result = psis(log_ratios, warn=False)
    order = np.argsort(log_ratios, kind="stable")
    assert np.all(np.diff(result.log_weights[order]) >= -1e-12)


def test_max_not_exceeded(rng):
    """The largest smoothed log-weight never exceeds the largest raw one."""
    log_ratios = rng.standard_t(2, size=3000)
    result = psis(log_ratios, normalize=False, warn=False)
    assert result.log_weights.max() <= log_ratios.max() + 1e-12


def test_input_not_modified(normal_log_ratios):
    """The input is copied unless inplace=True."""
    original = normal_log_ratios.copy()
    psis(normal_log_ratios)
    np.testing.assert_array_equal(normal_log_ratios, original)


def test_inplace(normal_log_ratios):
    """inplace=True smooths the input buffer itself."""
    expected = psis(normal_log_ratios).log_weights
    result = psis(normal_log_ratios, inplace=True)
    assert result.log_weights is normal_log_ratios
    np.testing.assert_allclose(normal_log_ratios, expected)


def test_inplace_non_contiguous(batch_log_ratios):
    """Non-contiguous arrays are smoothed in place as well."""
    expected = psis(batch_log_ratios.transpose(1, 0, 2)).log_weights
    view = batch_log_ratios.transpose(1, 0, 2)
    psis(view, inplace=True)
    np.testing.assert_allclose(view, expected)


def test_inplace_requires_float_array():
    """Only float64 numpy arrays can be smoothed in place."""
    with pytest.raises(TypeError, match="inplace"):
        psis([0.1, 0.2, 0.3], inplace=True)


def test_idempotent_up_to_tolerance(rng):
    """Smoothing smoothed weights changes them little."""
    log_ratios = rng.normal(0.0, 1.0, size=100_000)
    first = psis(log_ratios, adjust_prior=False)
    second = psis(first.log_weights, adjust_prior=False)
    assert second.pareto_shape == pytest.approx(first.pareto_shape, abs=0.05)
    np.testing.assert_allclose(second.log_weights, first.log_weights, atol=5e-3)


# --------------------------------------------------------------------------
# Failed fits
# --------------------------------------------------------------------------


def test_insufficient_draws_warn(rng):
    """Five draws are too few: NaN shape and raw log-weights kept."""
    log_ratios = rng.standard_normal(5)
    with pytest.warns(PSISWarning, match="insufficient to fit"):
        result = psis(log_ratios, normalize=False)
    assert np.isnan(result.pareto_shape)
    np.testing.assert_array_equal(result.log_weights, log_ratios)
    assert result.tail_dist.is_failed


def test_identical_tail_warns():
    """Constant log-ratios cannot be fit."""
    log_ratios = np.ones(100)
    with pytest.warns(PSISWarning, match="all tail values are the same"):
        result = psis(log_ratios, normalize=False)
    np.testing.assert_array_equal(result.log_weights, log_ratios)
    assert np.isnan(result.pareto_shape)


def test_non_finite_tail_warns(rng):
    """Infinite log-ratios in the tail cannot be fit."""
    log_ratios = rng.standard_normal(1000)
    log_ratios[10] = np.inf
    with pytest.warns(PSISWarning, match="non-finite"):
        result = psis(log_ratios, normalize=False)
    assert np.isnan(result.pareto_shape)


def test_batch_aggregates_failures(rng):
    """Failures across a batch are reported once with counts."""
    log_ratios = rng.standard_normal((1000, 4))[:, None, :].repeat(2, axis=1)
    log_ratios[:, :, 0] = 1.0
    log_ratios[:, :, 1] = 2.0
    with pytest.warns(PSISWarning, match=r"For 2 parameters \(50%\)") as record:
        result = psis(log_ratios)
    messages = [str(w.message) for w in record if w.category is PSISWarning]
    assert sum("all tail values are the same" in m for m in messages) == 1
    assert np.isnan(result.pareto_shape[:2]).all()
    assert np.isfinite(result.pareto_shape[2:]).all()


def test_batch_aggregates_bad_shapes(rng):
    """Bad shapes across a batch are counted with their percentage."""
    heavy = [normal_to_cauchy_log_ratios(2000, seed=s) for s in range(3)]
    light = -rng.standard_normal(2000) ** 2 / 2
    log_ratios = np.stack(heavy + [light], axis=-1)[:, None, :]
    with pytest.warns(PSISWarning) as record:
        psis(log_ratios)
    counts = [
        re.match(
            r"For (\d+) parameters \((\d+)%\), the Pareto shape values",
            str(w.message),
        )
        for w in record
    ]
    counts = [m for m in counts if m is not None]
    assert 0 < sum(int(m.group(1)) for m in counts) <= 3
    for m in counts:
        assert int(m.group(2)) == round(100 * int(m.group(1)) / 4)


def test_warn_false_silences(rng):
    """warn=False emits no PSIS warnings."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", PSISWarning)
        psis(rng.standard_normal(5), warn=False)
        psis(normal_to_cauchy_log_ratios(1000), warn=False)


# --------------------------------------------------------------------------
# reff
# --------------------------------------------------------------------------


def test_reff_shape_mismatch(batch_log_ratios):
    """reff must be scalar or of the parameter shape."""
    with pytest.raises(DimensionMismatch):
        psis(batch_log_ratios, reff=np.ones(2))


def test_reff_size_one_is_scalar(batch_log_ratios):
    """A size-1 reff is broadcast to all parameters."""
    result = psis(batch_log_ratios, reff=np.array([0.5]))
    np.testing.assert_array_equal(result.reff, np.full(3, 0.5))


def test_reff_changes_tail_length(rng):
    """Smaller reff gives longer tails."""
    log_ratios = rng.standard_normal(10_000)
    assert psis(log_ratios, reff=0.5).tail_length > psis(log_ratios, reff=2.0).tail_length


def test_invalid_reff_warns(normal_log_ratios):
    """Non-positive reff warns and falls back to a fifth of the draws."""
    with pytest.warns(PSISWarning, match="finite and positive"):
        result = psis(normal_log_ratios, reff=-1.0)
    assert result.tail_length == 200


# --------------------------------------------------------------------------
# Input validation and configuration
# --------------------------------------------------------------------------


def test_scalar_input_raises():
    """A zero-dimensional input has no draws."""
    with pytest.raises(MalformedInputError):
        psis(1.0)


def test_empty_input_raises():
    """An empty array cannot be smoothed."""
    with pytest.raises(MalformedInputError):
        psis(np.empty((0, 3)))


def test_config_object_and_overrides(normal_log_ratios):
    """Flat keyword arguments override an explicit config."""
    config = PSISConfig(normalize=False)
    result = psis(normal_log_ratios, config=config)
    assert not result.normalized
    assert psis(normal_log_ratios, config=config, normalize=True).normalized


def test_unknown_option_raises(normal_log_ratios):
    """Misspelled options are rejected."""
    with pytest.raises(ValueError):
        psis(normal_log_ratios, normalise=False)


def test_improved_prior_heavy_tail():
    """Both priors agree on a heavy tail with known shape 0.2."""
    _, log_ratios = exponential_log_ratios(0.8, 100_000)
    simple = psis(log_ratios)
    improved = psis(log_ratios, improved=True)
    assert improved.pareto_shape == pytest.approx(simple.pareto_shape, abs=0.1)
    assert improved.pareto_shape == pytest.approx(0.2, abs=0.1)


def test_improved_prior_bounded_tail(normal_log_ratios):
    """Both priors give a negative shape for bounded weights."""
    simple = psis(normal_log_ratios)
    improved = psis(normal_log_ratios, improved=True)
    assert simple.pareto_shape < 0
    assert improved.pareto_shape < 0


def test_parallel_matches_serial(batch_log_ratios):
    """The joblib fan-out gives the same result as the serial loop."""
    serial = psis(batch_log_ratios)
    parallel = psis(batch_log_ratios, n_jobs=2)
    np.testing.assert_array_equal(parallel.log_weights, serial.log_weights)
    np.testing.assert_array_equal(parallel.pareto_shape, serial.pareto_shape)
