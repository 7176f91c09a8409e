"""Standard and truncated importance sampling.

Baselines for :func:`psis.psis` on the same ``(draws, [chains,] params...)``
layout, returning results with the same weight and ESS accessors.

- ``sis`` keeps the raw log importance ratios.
- ``tis`` truncates the log-ratios of every parameter at
  ``logsumexp(log_ratios) - log(S) / 2``, i.e. the ratios at
  ``mean(r) * sqrt(S)`` (Ionides 2008).

References
----------
Ionides (2008), "Truncated importance sampling." Journal of Computational
    and Graphical Statistics 17(2).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import numpy as np
from scipy.special import logsumexp

from ._adapters import wrap_like
from ._batch import map_params, stack_params
from ._psis import log_weights_buffer
from ._utils import log_normalize, param_shape, sample_size, validate_reff
from .config import PSISConfig, resolve_config
from .results import SISResult, TISResult

logger = logging.getLogger(__name__)


def sis(
    log_ratios,
    reff=1.0,
    *,
    inplace: bool = False,
    config: Optional[PSISConfig] = None,
    **kwargs: Any,
) -> SISResult:
    """Standard importance sampling.

    Parameters
    ----------
    log_ratios : array-like, shape ``(draws, [chains,] [params...])``
        Unnormalized log importance ratios.
    reff : float or array-like, default=1.0
        Relative efficiency of the draws, scalar or of the parameter shape.
    inplace : bool, default=False
        If True, normalize ``log_ratios`` in place.  Requires a float64
        NumPy array.
    config : PSISConfig, optional
        Explicit configuration; only ``normalize`` and ``warn`` are used.
    **kwargs
        Any :class:`PSISConfig` field.

    Returns
    -------
    SISResult
    """
    cfg = resolve_config(config, **kwargs)
    log_weights = log_weights_buffer(log_ratios, inplace)
    reff_arr = validate_reff(reff, param_shape(log_weights), warn=cfg.warn)
    if cfg.normalize:
        log_normalize(log_weights)
    return SISResult(
        log_weights=log_weights if inplace else wrap_like(log_ratios, log_weights, "full"),
        reff=_per_param(log_ratios, reff_arr),
        normalized=cfg.normalize,
    )


def tis(
    log_ratios,
    reff=1.0,
    *,
    inplace: bool = False,
    config: Optional[PSISConfig] = None,
    **kwargs: Any,
) -> TISResult:
    """Truncated importance sampling.

    Parameters
    ----------
    log_ratios : array-like, shape ``(draws, [chains,] [params...])``
        Unnormalized log importance ratios.
    reff : float or array-like, default=1.0
        Relative efficiency of the draws, scalar or of the parameter shape.
    inplace : bool, default=False
        If True, truncate ``log_ratios`` in place.  Requires a float64 NumPy
        array.
    config : PSISConfig, optional
        Explicit configuration; ``normalize``, ``warn`` and ``n_jobs`` are
        used.
    **kwargs
        Any :class:`PSISConfig` field.

    Returns
    -------
    TISResult
        Truncated log-weights and the truncation level of each parameter.

    Examples
    --------
    >>> result = tis(np.log(np.arange(1.0, 101.0)))
    >>> round(result.log_weights_max, 4)
    6.2246
    """
    cfg = resolve_config(config, **kwargs)
    log_weights = log_weights_buffer(log_ratios, inplace)
    shape = param_shape(log_weights)
    reff_arr = validate_reff(reff, shape, warn=cfg.warn)
    S = sample_size(log_weights)

    def _truncate(draws: np.ndarray, reff_i: float) -> float:
        log_weights_max = logsumexp(draws) - np.log(S) / 2
        np.minimum(draws, log_weights_max, out=draws)
        return float(log_weights_max)

    maxima = map_params(_truncate, log_weights, reff_arr, n_jobs=cfg.n_jobs)
    logger.debug("Truncated %d parameters of %d draws", len(maxima), S)

    if cfg.normalize:
        log_normalize(log_weights)

    maxima = stack_params(maxima, shape, dtype=np.float64)
    return TISResult(
        log_weights=log_weights if inplace else wrap_like(log_ratios, log_weights, "full"),
        reff=_per_param(log_ratios, reff_arr),
        normalized=cfg.normalize,
        log_weights_max=_per_param(log_ratios, maxima),
    )


def _per_param(template, values: np.ndarray):
    """Scalar for inputs without parameter dimensions, else labeled array."""
    if values.ndim == 0:
        return values.item()
    return wrap_like(template, values, "params")
