"""Tests for tail length and tail selection (psis._tails)."""

import math

import numpy as np
import pytest

from psis._tails import MIN_TAIL_LENGTH, _tail_length, tail_and_cutoff, tail_length
from psis.enums import Tails


# --------------------------------------------------------------------------
# tail_length
# --------------------------------------------------------------------------


@pytest.mark.parametrize("S", [10, 100, 225, 1000, 10_000])
@pytest.mark.parametrize("reff", [0.1, 0.5, 1.0, 2.0])
def test_tail_length_formula(S, reff):
    """M = min(ceil(S/5), ceil(3 sqrt(S/reff)))."""
    expected = min(math.ceil(S / 5), math.ceil(3 * math.sqrt(S / reff)))
    assert tail_length(reff, S) == expected


@pytest.mark.parametrize("reff", [0.3, 1.0, 1.7])
def test_tail_length_bounded_by_fifth(reff):
    """Tail length never exceeds ceil(S/5)."""
    for S in range(1, 2000, 37):
        assert tail_length(reff, S) <= math.ceil(S / 5)


@pytest.mark.parametrize("reff", [0.3, 1.0, 1.7])
def test_tail_length_monotone_in_sample_size(reff):
    """Tail length is non-decreasing in the number of draws."""
    lengths = [tail_length(reff, S) for S in range(1, 5000, 11)]
    assert all(a <= b for a, b in zip(lengths, lengths[1:]))


def test_tail_length_decreases_with_reff():
    """More efficient draws need shorter tails."""
    S = 10_000
    assert tail_length(2.0, S) <= tail_length(1.0, S) <= tail_length(0.5, S)


@pytest.mark.parametrize("reff", [np.nan, np.inf, 0.0, -1.0])
def test_tail_length_invalid_reff_falls_back(reff):
    """Non-finite or non-positive reff gives ceil(S/5)."""
    assert tail_length(reff, 1000) == 200


def test_tail_length_both_tails_capped():
    """Both-tails length is at most half of the draws."""
    assert _tail_length(100.0, 12, Tails.BOTH) <= 6
    assert _tail_length(1.0, 1000, Tails.BOTH) == tail_length(1.0, 1000)


def test_min_tail_length():
    """Fits are not attempted below five tail draws."""
    assert MIN_TAIL_LENGTH == 5
    assert tail_length(1.0, 20) < MIN_TAIL_LENGTH


# --------------------------------------------------------------------------
# tail_and_cutoff
# --------------------------------------------------------------------------


def test_right_tail_and_cutoff(rng):
    """Right tail holds the M largest values in ascending order."""
    x = rng.permutation(np.arange(100, dtype=float))
    tail_idx, cutoff = tail_and_cutoff(x, 10, Tails.RIGHT)
    np.testing.assert_array_equal(x[tail_idx], np.arange(90, 100))
    assert cutoff == 89.0


def test_left_tail_and_cutoff(rng):
    """Left tail holds the M smallest values, most extreme last."""
    x = rng.permutation(np.arange(100, dtype=float))
    tail_idx, cutoff = tail_and_cutoff(x, 10, Tails.LEFT)
    np.testing.assert_array_equal(x[tail_idx], np.arange(9, -1, -1))
    assert cutoff == 10.0


def test_tail_and_cutoff_does_not_modify_input(rng):
    """Selection works on indices and leaves the draws untouched."""
    x = rng.standard_normal(500)
    original = x.copy()
    tail_and_cutoff(x, 50)
    np.testing.assert_array_equal(x, original)


@pytest.mark.parametrize("M", [0, 100, 101])
def test_tail_and_cutoff_invalid_length(M):
    """Tail length must be positive and smaller than the sample size."""
    with pytest.raises(ValueError, match="Tail length"):
        tail_and_cutoff(np.arange(100, dtype=float), M)


def test_tail_and_cutoff_ties_with_cutoff():
    """Draws tied with the cutoff still fill the tail to length M."""
    x = np.concatenate([np.arange(10.0), np.full(5, 10.0), [11.0, 12.0]])
    tail_idx, cutoff = tail_and_cutoff(x, 4)
    assert cutoff == 10.0
    assert tail_idx.size == 4
    np.testing.assert_array_equal(x[tail_idx], [10.0, 10.0, 11.0, 12.0])
