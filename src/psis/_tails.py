"""Tail length and tail selection for Pareto smoothing."""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from .enums import Tails

# Fits on fewer tail draws than this are not attempted.
MIN_TAIL_LENGTH = 5


# ---------------------------------------------------------------------------
# Tail length
# ---------------------------------------------------------------------------


def tail_length(reff: float, n_samples: int) -> int:
    """Number of tail draws M used to fit the generalized Pareto distribution.

    ``M = min(ceil(S/5), ceil(3 * sqrt(S / reff)))``, or ``ceil(S/5)`` if
    ``reff`` is not finite and positive.

    Parameters
    ----------
    reff : float
        Relative efficiency of the draws.
    n_samples : int
        Total number of draws S.

    Returns
    -------
    int
        Tail length M.
    """
    max_length = math.ceil(n_samples / 5)
    if not (np.isfinite(reff) and reff > 0):
        return max_length
    return min(max_length, math.ceil(3 * math.sqrt(n_samples / reff)))


def _tail_length(reff: float, n_samples: int, tails: Tails) -> int:
    """Tail length, capped at half the draws when both tails are smoothed."""
    M = tail_length(reff, n_samples)
    if tails is Tails.BOTH:
        M = min(M, n_samples // 2)
    return M


# ---------------------------------------------------------------------------
# Tail selection
# ---------------------------------------------------------------------------


def tail_and_cutoff(
    x: np.ndarray, M: int, tail: Tails = Tails.RIGHT
) -> Tuple[np.ndarray, float]:
    """Select the ``M`` most extreme draws of one tail and the cutoff.

    Uses partial selection, so only the tail itself is sorted.  The tail is
    exactly ``M`` draws long even when draws tie with the cutoff; tied draws
    then enter the tail with an excess of zero.

    Parameters
    ----------
    x : np.ndarray, shape ``(S,)``
        Draws of one parameter.
    M : int
        Tail length, ``M < S``.
    tail : Tails, default=Tails.RIGHT
        ``RIGHT`` selects the largest values, ``LEFT`` the smallest.

    Returns
    -------
    tail_idx : np.ndarray of int, shape ``(M,)``
        Indices of the tail draws, ordered by increasing distance from the
        cutoff.
    cutoff : float
        The ``(M+1)``-th most extreme value, bounding the tail.
    """
    S = x.size
    if not 0 < M < S:
        raise ValueError(f"Tail length must be in (0, {S}), got {M}.")
    # Selecting the largest values of -x gives the left tail.
    y = -x if tail is Tails.LEFT else x
    part = np.argpartition(y, S - M - 1)
    cutoff_idx = part[S - M - 1]
    tail_idx = part[S - M:]
    tail_idx = tail_idx[np.argsort(y[tail_idx], kind="stable")]
    return tail_idx, float(x[cutoff_idx])
