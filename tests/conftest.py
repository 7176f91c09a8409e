"""
Shared test fixtures and configuration for PSIS tests.
"""

import warnings

import numpy as np
import pytest

from psis import PSISWarning


@pytest.fixture
def rng():
    """Seeded NumPy generator, fresh for every test."""
    return np.random.default_rng(42)


@pytest.fixture
def normal_log_ratios(rng):
    """Log-ratios of N(0, 1) targeting itself scaled: light tails, k̂ < 0.5."""
    x = rng.standard_normal(1000)
    return -(x**2) / 2


@pytest.fixture
def batch_log_ratios(rng):
    """Log-ratios of shape (draws, chains, params) with light tails."""
    return rng.normal(0.0, 0.5, size=(1000, 4, 3))


@pytest.fixture
def no_psis_warnings():
    """Turn PSIS warnings into errors for the duration of a test."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", PSISWarning)
        yield
