"""Array layout helpers shared by the PSIS modules.

Arrays are laid out as ``(draws, [chains,] [params...])``. The first one or
two axes are sample dimensions; every further axis indexes independent
parameters. Helpers here split arrays along that boundary, validate the
relative efficiency ``reff`` against the parameter shape and normalize
log-weights over the sample dimensions.
"""

from __future__ import annotations

import warnings
from typing import Tuple

import numpy as np
from scipy.special import logsumexp

from .errors import DimensionMismatch, MalformedInputError, PSISWarning


# ---------------------------------------------------------------------------
# Dimension bookkeeping
# ---------------------------------------------------------------------------


def check_sample_array(x: np.ndarray) -> None:
    """Raise if ``x`` cannot be interpreted as ``(draws, [chains,] ...)``."""
    if x.ndim < 1:
        raise MalformedInputError(
            "Expected an array with at least one (draws) dimension, got a "
            "zero-dimensional array."
        )
    if x.size == 0:
        raise MalformedInputError(
            f"Expected a non-empty array, got shape {x.shape}."
        )


def sample_axes(x: np.ndarray) -> Tuple[int, ...]:
    """Axes corresponding to draws (and chains, if present)."""
    return tuple(range(min(2, x.ndim)))


def param_shape(x: np.ndarray) -> Tuple[int, ...]:
    """Shape of the parameter dimensions (empty for 1-D and 2-D arrays)."""
    return tuple(x.shape[2:])


def sample_size(x: np.ndarray) -> int:
    """Total number of draws over all sample dimensions."""
    return int(np.prod(x.shape[: min(2, x.ndim)]))


def as_param_columns(x: np.ndarray) -> np.ndarray:
    """Reshape ``x`` to ``(sample_size, n_params)``.

    The result is a view whenever ``x`` is C-contiguous, so writes to a
    column reach the corresponding parameter slice of ``x``.
    """
    n_params = int(np.prod(param_shape(x)))
    return x.reshape(sample_size(x), n_params)


def uniform_probabilities(n: int) -> np.ndarray:
    """Probabilities ``(j - 0.5) / n`` for ``j = 1, ..., n``."""
    return (np.arange(1, n + 1, dtype=np.float64) - 0.5) / n


# ---------------------------------------------------------------------------
# Relative efficiency
# ---------------------------------------------------------------------------


def validate_reff(reff, shape: Tuple[int, ...], warn: bool = True) -> np.ndarray:
    """Check ``reff`` against the parameter shape and broadcast it.

    Parameters
    ----------
    reff : float or array-like
        Relative efficiency. Either a scalar (or size-1 array) or an array
        whose shape equals ``shape``.
    shape : tuple of int
        Parameter shape of the log-weights.
    warn : bool, default=True
        Whether to warn about non-finite or non-positive values.

    Returns
    -------
    np.ndarray
        ``reff`` broadcast to ``shape``.

    Raises
    ------
    DimensionMismatch
        If ``reff`` is neither scalar nor of shape ``shape``.
    """
    reff_arr = np.asarray(reff, dtype=np.float64)
    if reff_arr.size == 1:
        reff_arr = np.full(shape, reff_arr.reshape(()).item())
    elif reff_arr.shape != tuple(shape):
        raise DimensionMismatch(
            f"reff has shape {reff_arr.shape}, but the parameter dimensions "
            f"of the log-weights have shape {tuple(shape)}."
        )
    if warn and not np.all(np.isfinite(reff_arr) & (reff_arr > 0)):
        warnings.warn(
            "All values of `reff` should be finite and positive, but some "
            "are not. Tail lengths fall back to 20% of the draws for those "
            "parameters.",
            PSISWarning,
            stacklevel=3,
        )
    return reff_arr


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def log_normalizer(log_weights: np.ndarray) -> np.ndarray:
    """Log of the sum of the weights over sample dimensions.

    Returns an array of the parameter shape (0-d for 1-D/2-D inputs).
    """
    with np.errstate(invalid="ignore"):
        return logsumexp(log_weights, axis=sample_axes(log_weights))


def log_normalize(log_weights: np.ndarray) -> np.ndarray:
    """Shift ``log_weights`` in place so the weights sum to one."""
    norm = log_normalizer(log_weights)
    with np.errstate(invalid="ignore"):
        log_weights -= norm
    return log_weights
