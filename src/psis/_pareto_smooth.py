"""Pareto smoothing and Pareto diagnostics of expectands.

``pareto_smooth`` smooths one or both tails of arbitrary draws, e.g. of an
expectand before computing a Monte Carlo mean.  ``pareto_diagnose`` only
fits the tails and reports :class:`ParetoDiagnostics`; given importance
ratios it diagnoses the importance-weighted estimate of an expectation.

When both tails are used, the diagnostics correspond to the worse tail.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple, Union

import numpy as np

from ._adapters import as_core_array, wrap_like
from ._batch import map_params, stack_params
from ._diagnostics import ParetoDiagnostics, check_pareto_diagnostics
from ._smoothing import smooth_tail
from ._tails import _tail_length
from ._utils import (
    check_sample_array,
    param_shape,
    sample_axes,
    sample_size,
    validate_reff,
)
from .config import PSISConfig, resolve_config
from .enums import ExpectationKind, Tails
from .errors import DimensionMismatch

ArrayLike = Union[float, np.ndarray]


# ---------------------------------------------------------------------------
# Smoothing
# ---------------------------------------------------------------------------


def pareto_smooth(
    x,
    *,
    reff=1.0,
    is_log: bool = False,
    tails: Union[Tails, str] = Tails.BOTH,
    warn: bool = True,
    config: Optional[PSISConfig] = None,
    **kwargs: Any,
) -> Tuple[Any, ParetoDiagnostics]:
    """Pareto-smooth the tails of ``x``.

    Parameters
    ----------
    x : array-like, shape ``(draws, [chains,] [params...])``
        Draws to smooth.
    reff : float or array-like, default=1.0
        Relative tail efficiency of ``x``, scalar or of the parameter shape.
    is_log : bool, default=False
        Whether ``x`` holds the log of the expectand.  The tails are then fit
        on the original scale without overflow.
    tails : {"left", "right", "both"}, default="both"
        Which tail(s) to smooth.
    warn : bool, default=True
        Whether to warn if the diagnostics indicate unreliable estimates.
    config : PSISConfig, optional
        Generalized Pareto fit options; flat keyword arguments override
        its fields.

    Returns
    -------
    x_smoothed : array
        Copy of ``x`` with the selected tails smoothed, labeled like ``x``.
    diagnostics : ParetoDiagnostics
        Diagnostics of the selected tail(s).

    Examples
    --------
    >>> x = np.random.default_rng(0).standard_t(3, size=4000)
    >>> x_smoothed, diagnostics = pareto_smooth(x)
    >>> diagnostics.pareto_shape
    """
    cfg = resolve_config(config, **kwargs)
    tails = Tails.parse(tails)
    values = np.array(as_core_array(x), dtype=np.float64)
    check_sample_array(values)
    shape = param_shape(values)
    reff_arr = validate_reff(reff, shape, warn=warn)
    S = sample_size(values)

    def _smooth(draws: np.ndarray, reff_i: float) -> float:
        M = _tail_length(reff_i, S, tails)
        return _fit_tails(draws, M, tails, is_log, cfg, smooth=True)

    shapes = map_params(_smooth, values, reff_arr, n_jobs=cfg.n_jobs)
    diagnostics = ParetoDiagnostics.from_shape(_as_shape(shapes, shape), S)
    if warn:
        check_pareto_diagnostics(diagnostics)
    return wrap_like(x, values, "full"), diagnostics


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def pareto_diagnose(
    x,
    ratios=None,
    *,
    reff=1.0,
    kind: Union[ExpectationKind, str] = ExpectationKind.MEAN,
    is_log: bool = False,
    log_ratios: bool = True,
    diagnose_ratios: bool = True,
    tails: Optional[Union[Tails, str]] = None,
    warn: bool = False,
    config: Optional[PSISConfig] = None,
    **kwargs: Any,
) -> ParetoDiagnostics:
    """Pareto diagnostics for an estimate involving the draws ``x``.

    Without ``ratios``, the tails of ``x`` itself are diagnosed (the Monte
    Carlo estimate of its mean).  With ``ratios``, the importance-weighted
    estimate of ``kind`` of ``x`` is diagnosed through a proxy expectand
    ``z`` such that ``E[z]`` needs as many finite moments as the estimate:
    ``x^p * r`` for a ``kind`` requiring ``p`` moments.

    Parameters
    ----------
    x : array-like
        Draws of shape ``(draws, [chains,] [params...])``.  With ``ratios``,
        either the sample shape of ``ratios`` or its full shape.
    ratios : array-like, optional
        Unnormalized importance ratios of shape
        ``(draws, [chains,] [params...])``.
    reff : float or array-like, default=1.0
        Relative efficiency, scalar or of the parameter shape.
    kind : {"mean", "var", "std"}, default="mean"
        Estimate to diagnose when ``ratios`` are given.  ``"median"`` and
        ``"quantile"`` need no moments and raise.
    is_log : bool, default=False
        Whether ``x`` holds the log of the expectand.
    log_ratios : bool, default=True
        Whether ``ratios`` are log importance ratios.
    diagnose_ratios : bool, default=True
        If True, the result is the elementwise worse (larger) of the
        expectand and the ratio diagnostics.
    tails : {"left", "right", "both"}, optional
        Tail(s) of the (proxy) expectand to fit.  Defaults to ``"right"``
        if ``is_log`` and to ``"both"`` otherwise.
    warn : bool, default=False
        Whether to warn if the diagnostics indicate unreliable estimates.
    config : PSISConfig, optional
        Generalized Pareto fit options; flat keyword arguments override
        its fields.

    Returns
    -------
    ParetoDiagnostics

    Raises
    ------
    ValueError
        If ``is_log`` is combined with a tail other than ``"right"``, or if
        ``kind`` requires no moments.
    DimensionMismatch
        If the shapes of ``x``, ``ratios`` or ``reff`` are incompatible.
    """
    cfg = resolve_config(config, **kwargs)
    tails = Tails.parse(tails if tails is not None else _default_tails(is_log))
    if is_log and tails is not Tails.RIGHT:
        raise ValueError("is_log=True can only be used with tails='right'.")

    values = as_core_array(x)
    check_sample_array(values)

    if ratios is None:
        S = sample_size(values)
        shapes = _diagnose_shapes(values, reff, tails, is_log, cfg)
        diagnostics = ParetoDiagnostics.from_shape(shapes, S)
    else:
        kind = ExpectationKind.parse(kind)
        if kind.moment_order == 0:
            raise ValueError(
                f"kind={kind.value!r} requires no moments. Pareto diagnostics "
                "are not useful."
            )
        r = as_core_array(ratios)
        check_sample_array(r)
        values = _broadcast_expectand(values, r)
        proxy = _expectand_proxy(values, r, kind.moment_order, is_log, log_ratios)
        S = sample_size(r)
        shapes = _diagnose_shapes(proxy, reff, tails, is_log, cfg)
        if diagnose_ratios:
            ratio_shapes = _diagnose_shapes(r, reff, Tails.RIGHT, log_ratios, cfg)
            shapes = np.maximum(shapes, ratio_shapes)
            if np.ndim(shapes) == 0:
                shapes = float(shapes)
        diagnostics = ParetoDiagnostics.from_shape(shapes, S)

    if warn:
        check_pareto_diagnostics(diagnostics)
    return diagnostics


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _default_tails(is_log: bool) -> Tails:
    return Tails.RIGHT if is_log else Tails.BOTH


def _fit_tails(
    draws: np.ndarray,
    M: int,
    tails: Tails,
    is_log: bool,
    config: PSISConfig,
    smooth: bool,
) -> float:
    """Fit (and smooth) the selected tails; returns the worst Pareto shape."""
    if tails is Tails.BOTH:
        selected = (Tails.LEFT, Tails.RIGHT)
    else:
        selected = (tails,)
    shapes = [
        smooth_tail(draws, M, tail, is_log=is_log, config=config, smooth=smooth).pareto_shape
        for tail in selected
    ]
    # NaN from a failed tail propagates
    return float(np.max(shapes))


def _diagnose_shapes(
    values: np.ndarray, reff, tails: Tails, is_log: bool, config: PSISConfig
) -> ArrayLike:
    """Pareto shape of the selected tails of every parameter of ``values``."""
    draws = np.array(values, dtype=np.float64)
    shape = param_shape(draws)
    reff_arr = validate_reff(reff, shape, warn=False)
    S = sample_size(draws)

    def _fit(column: np.ndarray, reff_i: float) -> float:
        M = _tail_length(reff_i, S, tails)
        return _fit_tails(column, M, tails, is_log, config, smooth=False)

    return _as_shape(map_params(_fit, draws, reff_arr, n_jobs=config.n_jobs), shape)


def _as_shape(shapes, shape) -> ArrayLike:
    out = stack_params(shapes, shape, dtype=np.float64)
    return float(out) if out.ndim == 0 else out


def _broadcast_expectand(x: np.ndarray, ratios: np.ndarray) -> np.ndarray:
    """Give ``x`` the full shape of ``ratios``."""
    if x.shape == ratios.shape:
        return x
    sample_shape = ratios.shape[: len(sample_axes(ratios))]
    if x.shape != sample_shape:
        raise DimensionMismatch(
            f"x has shape {x.shape}, but must have the sample shape "
            f"{sample_shape} or the full shape {ratios.shape} of the ratios."
        )
    expanded = x.reshape(x.shape + (1,) * (ratios.ndim - x.ndim))
    return np.broadcast_to(expanded, ratios.shape)


def _expectand_proxy(
    x: np.ndarray, r: np.ndarray, p: int, is_x_log: bool, is_r_log: bool
) -> np.ndarray:
    """Expectand ``z`` with ``E[z]`` requiring ``p`` moments, like ``E[x^p r]``.

    On the log scale (``is_x_log``) the proxy is returned as ``log z``.
    """
    axes = sample_axes(r)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        if is_x_log:
            log_r = r if is_r_log else np.log(r)
            return p * x + log_r
        if not is_r_log:
            return x**p * r
        # Scale the ratios so the largest is one
        r_max = np.max(r, axis=axes, keepdims=True)
        return (x * np.exp((r - r_max) / p)) ** p
