"""Effective sample size of importance sampling estimates.

For normalized weights ``w_1, ..., w_S`` the ESS is estimated from their L2
norm, corrected for the relative efficiency ``reff`` of the draws:

    ESS = reff / sum_s w_s^2

For Pareto-smoothed weights the estimate is misleadingly high when the
Pareto shape exceeds 0.7, so it is replaced by NaN ("not reliable") unless
``bad_shape_missing=False``.  Failed fits (NaN shape) always give NaN.
"""

from __future__ import annotations

from typing import Union

import numpy as np
from multipledispatch import dispatch

from ._adapters import as_core_array, wrap_like
from ._diagnostics import BAD_SHAPE
from ._utils import check_sample_array, param_shape, sample_axes, validate_reff
from .results import PSISResult, SISResult

ArrayLike = Union[float, np.ndarray]


@dispatch(PSISResult)
def ess_is(result: PSISResult, *, bad_shape_missing: bool = True) -> ArrayLike:
    """ESS of the Pareto-smoothed weights in ``result``.

    Parameters
    ----------
    result : PSISResult
        Output of :func:`psis.psis`.
    bad_shape_missing : bool, default=True
        If True, return NaN where the Pareto shape exceeds 0.7.

    Returns
    -------
    float or array
        One ESS per parameter.
    """
    weights = as_core_array(result.weights)
    reff = as_core_array(result.reff)
    neff = _ess(weights, reff)
    k = np.asarray(as_core_array(result.pareto_shape))
    unreliable = np.isnan(k)
    if bad_shape_missing:
        with np.errstate(invalid="ignore"):
            unreliable |= k > BAD_SHAPE
    neff = np.where(unreliable, np.nan, neff)
    return _finalize(result.log_weights, neff)


@dispatch(SISResult)
def ess_is(result: SISResult) -> ArrayLike:  # noqa: F811
    """ESS of the raw or truncated weights in ``result``."""
    neff = _ess(as_core_array(result.weights), as_core_array(result.reff))
    return _finalize(result.log_weights, neff)


@dispatch(object)
def ess_is(weights, *, reff: ArrayLike = 1.0) -> ArrayLike:  # noqa: F811
    """ESS of normalized ``weights`` over the sample dimensions.

    Parameters
    ----------
    weights : array-like, shape ``(draws, [chains,] params...)``
        Weights summing to one over the sample dimensions.
    reff : float or array-like, default=1.0
        Relative efficiency, scalar or of the parameter shape.

    Returns
    -------
    float or array
        One ESS per parameter.

    Examples
    --------
    >>> ess_is(np.full(100, 0.01))
    100.0
    """
    w = as_core_array(weights)
    check_sample_array(w)
    reff = validate_reff(reff, param_shape(w), warn=False)
    return _finalize(weights, _ess(w, reff))


def _ess(weights: np.ndarray, reff: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        return reff / np.sum(weights**2, axis=sample_axes(weights))


def _finalize(template, neff: np.ndarray) -> ArrayLike:
    neff = np.asarray(neff, dtype=np.float64)
    if neff.ndim == 0:
        return float(neff)
    return wrap_like(template, neff, "params")
