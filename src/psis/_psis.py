"""Pareto-smoothed importance sampling of log importance ratios.

``psis`` smooths the upper tail of the log importance ratios of every
parameter independently:

1. The tail length ``M`` is chosen from the number of draws and the
   relative efficiency ``reff`` of the draws.
2. A generalized Pareto distribution is fit to the ``M`` largest ratios
   (on the ratio scale, with the largest ratio scaled to one).
3. The tail ratios are replaced by the fitted quantiles, preserving their
   order and never exceeding the largest raw ratio.
4. The log-weights are (optionally) normalized over the sample dimensions.

Parameters that cannot be fit (too few draws, non-finite or identical tail
values) keep their raw log-weights and get a NaN Pareto shape; the batch
never aborts because of one parameter.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np

from ._adapters import as_core_array, wrap_like
from ._batch import map_params, stack_params
from ._diagnostics import check_pareto_shape, check_tail_status
from ._smoothing import TailFit, smooth_tail
from ._tails import tail_length
from ._utils import (
    check_sample_array,
    log_normalize,
    param_shape,
    sample_size,
    validate_reff,
)
from .config import PSISConfig, resolve_config
from .enums import Tails
from .results import PSISResult

logger = logging.getLogger(__name__)


def log_weights_buffer(log_ratios, inplace: bool) -> np.ndarray:
    """Float64 array of ``log_ratios`` to be modified.

    The input itself when ``inplace``, which then must be a float64 NumPy
    array; otherwise a copy of its values.
    """
    if inplace:
        if not (
            isinstance(log_ratios, np.ndarray) and log_ratios.dtype == np.float64
        ):
            raise TypeError(
                "inplace=True requires a float64 numpy array, got "
                f"{type(log_ratios).__name__}."
            )
        log_weights = log_ratios
    else:
        log_weights = np.array(as_core_array(log_ratios), dtype=np.float64)
    check_sample_array(log_weights)
    return log_weights


def psis(
    log_ratios,
    reff=1.0,
    *,
    inplace: bool = False,
    config: Optional[PSISConfig] = None,
    **kwargs: Any,
) -> PSISResult:
    """Pareto-smoothed importance sampling (PSIS).

    Parameters
    ----------
    log_ratios : array-like, shape ``(draws, [chains,] [params...])``
        Unnormalized log importance ratios, e.g. ``log p(θ) - log q(θ)``
        evaluated at draws ``θ ~ q``.  Plain NumPy arrays, anything
        ``np.asarray`` accepts (e.g. JAX arrays) and ``xarray.DataArray``
        are supported; labels are preserved on the outputs.
    reff : float or array-like, default=1.0
        Relative efficiency of the draws (ratio of effective to total sample
        size), scalar or of the parameter shape.
    inplace : bool, default=False
        If True, smooth ``log_ratios`` in place.  Requires a float64 NumPy
        array.
    config : PSISConfig, optional
        Explicit configuration.  Flat keyword arguments override its fields.
    **kwargs
        Any :class:`PSISConfig` field, e.g. ``improved=True`` or
        ``n_jobs=4``.

    Returns
    -------
    PSISResult
        Smoothed log-weights, tail lengths, fitted tail distributions and
        lazily computed Pareto shapes, weights, ESS and diagnostics.

    Raises
    ------
    DimensionMismatch
        If ``reff`` is neither scalar nor of the parameter shape.
    MalformedInputError
        If ``log_ratios`` is zero-dimensional or empty.

    Warns
    -----
    PSISWarning
        For non-finite or non-positive ``reff``, tails that cannot be fit
        and Pareto shapes above 0.7 (if ``warn`` is enabled).

    Examples
    --------
    >>> rng = np.random.default_rng(42)
    >>> x = rng.normal(size=(1000, 4))
    >>> result = psis(-x**2 / 2, reff=0.8)
    >>> round(float(result.weights.sum()), 6)
    1.0
    """
    cfg = resolve_config(config, **kwargs)

    log_weights = log_weights_buffer(log_ratios, inplace)

    shape = param_shape(log_weights)
    reff_arr = validate_reff(reff, shape, warn=cfg.warn)
    S = sample_size(log_weights)

    def _smooth(draws: np.ndarray, reff_i: float) -> TailFit:
        M = tail_length(reff_i, S)
        return smooth_tail(draws, M, Tails.RIGHT, is_log=True, config=cfg)

    fits = map_params(_smooth, log_weights, reff_arr, n_jobs=cfg.n_jobs)

    tail_lengths = stack_params([f.tail_length for f in fits], shape, dtype=np.int64)
    tail_dists = stack_params([f.dist for f in fits], shape, dtype=object)
    shapes = stack_params([f.pareto_shape for f in fits], shape, dtype=np.float64)
    logger.debug(
        "Smoothed %d parameters; max Pareto shape %s",
        len(fits),
        np.nanmax(shapes) if not np.all(np.isnan(shapes)) else "n/a",
    )

    if cfg.warn:
        check_tail_status([f.status for f in fits], [f.tail_length for f in fits])
        if len(fits) == 1:
            check_pareto_shape(shapes.item())
        else:
            check_pareto_shape(shapes, report_failed=False)

    if cfg.normalize:
        log_normalize(log_weights)

    if shape:
        reff_out = wrap_like(log_ratios, reff_arr, "params")
        tail_length_out = wrap_like(log_ratios, tail_lengths, "params")
        tail_dist_out = tail_dists
    else:
        reff_out = reff_arr.item()
        tail_length_out = int(tail_lengths.item())
        tail_dist_out = tail_dists.item()

    return PSISResult(
        log_weights=log_weights if inplace else wrap_like(log_ratios, log_weights, "full"),
        reff=reff_out,
        tail_length=tail_length_out,
        tail_dist=tail_dist_out,
        normalized=cfg.normalize,
    )
