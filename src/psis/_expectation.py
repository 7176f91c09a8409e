"""Importance-weighted expectations using Pareto-smoothed weights."""

from __future__ import annotations

from typing import Optional, Union

import numpy as np

from ._adapters import as_core_array, wrap_like
from ._utils import as_param_columns, param_shape, sample_axes, sample_size
from .enums import ExpectationKind
from .errors import DimensionMismatch
from .results import PSISResult

ArrayLike = Union[float, np.ndarray]


def expectation(
    x,
    result: PSISResult,
    *,
    kind: Union[ExpectationKind, str] = ExpectationKind.MEAN,
    prob: Optional[float] = None,
) -> ArrayLike:
    """Expectation of ``x`` under the smoothed importance weights.

    Parameters
    ----------
    x : array-like
        Draws of shape ``(draws, [chains])``, shared by all parameters, or
        of the full shape of ``result.log_weights``.
    result : PSISResult
        Output of :func:`psis.psis`.
    kind : {"mean", "var", "std", "median", "quantile"}, default="mean"
        Estimate to compute.  Variances use analytic weights without bias
        correction.
    prob : float, optional
        Probability in ``[0, 1]``; required for ``kind="quantile"``.

    Returns
    -------
    float or array
        One estimate per parameter; a float if there are no parameter
        dimensions.

    Raises
    ------
    DimensionMismatch
        If ``x`` matches neither the sample shape nor the full shape of the
        weights.

    Examples
    --------
    >>> result = psis(log_ratios)
    >>> expectation(theta, result)
    >>> expectation(theta, result, kind="quantile", prob=0.95)
    """
    kind = ExpectationKind.parse(kind)
    if kind is ExpectationKind.QUANTILE:
        if prob is None:
            raise ValueError("prob must be given for kind='quantile'.")
        if not 0 <= prob <= 1:
            raise ValueError(f"prob must be in [0, 1], got {prob}.")
    elif kind is ExpectationKind.MEDIAN:
        prob = 0.5

    weights = as_core_array(result.weights)
    values = as_core_array(x)
    sample_shape = weights.shape[: len(sample_axes(weights))]
    if values.shape == sample_shape:
        shared = True
    elif values.shape == weights.shape:
        shared = False
    else:
        raise DimensionMismatch(
            f"x has shape {values.shape}, but must have the sample shape "
            f"{sample_shape} or the full shape {weights.shape} of the weights."
        )

    w_cols = as_param_columns(weights)
    if shared:
        x_cols = values.reshape(sample_size(weights), 1)
    else:
        x_cols = as_param_columns(values)

    out = np.array(
        [
            _weighted(kind, x_cols[:, 0 if shared else j], w_cols[:, j], prob)
            for j in range(w_cols.shape[1])
        ],
        dtype=np.float64,
    ).reshape(param_shape(weights))
    if out.ndim == 0:
        return float(out)
    return wrap_like(result.log_weights, out, "params")


def _weighted(
    kind: ExpectationKind, x: np.ndarray, w: np.ndarray, prob: Optional[float]
) -> float:
    w = w / np.sum(w)
    if kind is ExpectationKind.MEAN:
        return float(np.sum(w * x))
    if kind in (ExpectationKind.VAR, ExpectationKind.STD):
        mean = np.sum(w * x)
        var = float(np.sum(w * (x - mean) ** 2))
        return var if kind is ExpectationKind.VAR else float(np.sqrt(var))
    return _weighted_quantile(x, w, prob)


def _weighted_quantile(x: np.ndarray, w: np.ndarray, prob: float) -> float:
    """Inverse of the weighted empirical CDF at ``prob``."""
    order = np.argsort(x, kind="stable")
    cdf = np.cumsum(w[order])
    cdf /= cdf[-1]
    idx = min(int(np.searchsorted(cdf, prob, side="left")), x.size - 1)
    return float(x[order][idx])
