"""Structured results of importance sampling.

This module defines:

- ``PSISResult``: a dataclass holding the smoothed log-weights, relative
  efficiencies, tail lengths and fitted tail distributions, with lazily
  computed weights, Pareto shapes, ESS and diagnostics.
- ``SISResult`` and ``TISResult``: the same interface for standard and
  truncated importance sampling, without tail fits.
- ``importance_weights()``: weights or log-weights of a result, optionally
  normalized.

Design decisions
----------------
- A result is created once per :func:`psis.psis`, :func:`psis.sis` or
  :func:`psis.tis` call.  Stored fields are never modified; derived
  quantities are computed on first access and cached.
- Per-parameter fields (``reff``, ``tail_length``, ``pareto_shape``, ESS)
  have the parameter shape of ``log_weights``, or are scalars when
  ``log_weights`` has no parameter dimensions.
- Labeled inputs (e.g. ``xarray.DataArray``) stay labeled: ``log_weights``
  keeps the input's labels and per-parameter outputs carry the labels of
  its parameter dims.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

import numpy as np
import pandas as pd
from scipy.special import softmax

from ._adapters import as_core_array, wrap_like
from ._diagnostics import (
    PSIS_INTERVALS,
    ParetoDiagnostics,
    category_table,
    render_category_table,
)
from ._generalized_pareto import GeneralizedPareto
from ._utils import log_normalizer, sample_axes, sample_size

ArrayLike = Union[float, np.ndarray]


# ---------------------------------------------------------------------------
# Shared weight accessors
# ---------------------------------------------------------------------------


class _WeightsMixin:
    """Shape and weight accessors shared by all importance sampling results.

    Subclasses are dataclasses with ``log_weights`` and ``reff`` fields and
    ``_weights_cache`` / ``_ess_cache`` cache fields.
    """

    @property
    def ndraws(self) -> int:
        """Number of draws per chain."""
        return int(np.shape(self.log_weights)[0])

    @property
    def nchains(self) -> int:
        """Number of chains (1 for 1-D log-weights)."""
        shape = np.shape(self.log_weights)
        return int(shape[1]) if len(shape) > 1 else 1

    @property
    def nparams(self) -> int:
        """Number of independently weighted parameters."""
        return int(np.prod(np.shape(self.log_weights)[2:]))

    @property
    def log_weights_norm(self) -> ArrayLike:
        """Log of the sum of the weights over the sample dimensions."""
        norm = log_normalizer(as_core_array(self.log_weights))
        return float(norm) if np.ndim(norm) == 0 else norm

    @property
    def weights(self):
        """Normalized weights (sum to one over the sample dimensions)."""
        if self._weights_cache is None:
            log_weights = as_core_array(self.log_weights)
            self._weights_cache = wrap_like(
                self.log_weights,
                softmax(log_weights, axis=sample_axes(log_weights)),
                "full",
            )
        return self._weights_cache

    @property
    def ess(self) -> ArrayLike:
        """Effective sample size of the weights.

        For Pareto-smoothed results this is NaN for parameters whose Pareto
        shape exceeds 0.7 or could not be estimated; use
        ``psis.ess_is(result, bad_shape_missing=False)`` for the raw
        estimate.
        """
        if self._ess_cache is None:
            from ._ess import ess_is

            self._ess_cache = ess_is(self)
        return self._ess_cache

    def _title(self) -> str:
        return (
            f"{type(self).__name__} with {self.ndraws} draws, "
            f"{self.nchains} chains, and {self.nparams} parameters"
        )


# ---------------------------------------------------------------------------
# Results class
# ---------------------------------------------------------------------------


@dataclass
class PSISResult(_WeightsMixin):
    """Result of Pareto-smoothed importance sampling.

    Parameters
    ----------
    log_weights : array, shape ``(draws, [chains,] params...)``
        Pareto-smoothed log-weights, normalized over the sample dimensions
        if ``normalized`` is True.
    reff : float or array
        Relative efficiency used for each parameter.
    tail_length : int or array of int
        Number of upper-tail draws M smoothed for each parameter.
    tail_dist : GeneralizedPareto or array of GeneralizedPareto
        Distribution fit to the tail of the (unnormalized) weights of each
        parameter.  ``GeneralizedPareto.failed()`` where no fit could be
        produced.
    normalized : bool, default=True
        Whether ``log_weights`` are normalized.

    Attributes
    ----------
    pareto_shape : float or array
        Pareto shape k̂ per parameter; NaN where the fit failed.
    weights : array
        Normalized weights (computed on first access).
    ess : float or array
        Effective sample size, NaN where k̂ > 0.7 or the fit failed.
    diagnostics : ParetoDiagnostics
        Sample-size aware reliability diagnostics.

    Notes
    -----
    How to read the Pareto shape k̂ (Vehtari et al. 2024):

    - k < 1/3: importance sampling (IS) and PSIS are both stable.
    - k < 1/2: the importance ratios have finite variance and the central
      limit theorem holds.  IS becomes less reliable as k approaches 1/2,
      while PSIS works well.
    - 1/2 ≤ k < 0.7: the variance is infinite and plain IS can behave
      poorly, but PSIS works well.
    - 0.7 ≤ k < 1: impractically many draws are needed for reliable
      estimates; importance sampling is not recommended.
    - k ≥ 1: neither the variance nor the mean of the raw ratios exists.

    Examples
    --------
    >>> result = psis(log_ratios, reff=0.9)
    >>> result.pareto_shape
    >>> result.ess
    >>> print(result)
    """

    # --- Required fields ---
    log_weights: Any
    reff: Any
    tail_length: Any
    tail_dist: Any

    # --- Optional fields ---
    normalized: bool = True

    # --- Private cache (not shown in repr) ---
    _pareto_shape_cache: Optional[ArrayLike] = field(
        default=None, repr=False, init=False
    )
    _weights_cache: Optional[np.ndarray] = field(default=None, repr=False, init=False)
    _ess_cache: Optional[ArrayLike] = field(default=None, repr=False, init=False)

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    @property
    def pareto_shape(self) -> ArrayLike:
        """Pareto shape k̂ for each parameter (NaN where the fit failed)."""
        if self._pareto_shape_cache is None:
            if isinstance(self.tail_dist, GeneralizedPareto):
                self._pareto_shape_cache = float(self.tail_dist.k)
            else:
                dists = np.asarray(self.tail_dist, dtype=object)
                shapes = np.array(
                    [d.k for d in dists.ravel()], dtype=np.float64
                ).reshape(dists.shape)
                self._pareto_shape_cache = wrap_like(
                    self.log_weights, shapes, "params"
                )
        return self._pareto_shape_cache

    @property
    def diagnostics(self) -> ParetoDiagnostics:
        """Sample-size aware Pareto diagnostics."""
        return ParetoDiagnostics.from_shape(
            as_core_array(self.pareto_shape),
            sample_size(as_core_array(self.log_weights)),
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summary(self) -> pd.DataFrame:
        """Counts of parameters per Pareto shape category.

        Returns
        -------
        pd.DataFrame
            Columns ``interval``, ``category``, ``count``, ``percent`` and
            ``min_ess`` (smallest ESS among ``good`` parameters).

        Examples
        --------
        >>> result.summary()
        """
        return category_table(
            as_core_array(self.pareto_shape),
            PSIS_INTERVALS,
            min_ess=np.atleast_1d(as_core_array(self.ess)),
        )

    def __str__(self) -> str:
        return render_category_table(self._title(), self.summary())


@dataclass
class SISResult(_WeightsMixin):
    """Result of standard importance sampling.

    Parameters
    ----------
    log_weights : array, shape ``(draws, [chains,] params...)``
        Raw log importance ratios, normalized over the sample dimensions if
        ``normalized`` is True.
    reff : float or array
        Relative efficiency used for each parameter.
    normalized : bool, default=True
        Whether ``log_weights`` are normalized.
    """

    log_weights: Any
    reff: Any
    normalized: bool = True

    _weights_cache: Optional[np.ndarray] = field(default=None, repr=False, init=False)
    _ess_cache: Optional[ArrayLike] = field(default=None, repr=False, init=False)

    def __str__(self) -> str:
        return f"{self._title()}\n    ess: {self.ess}"


@dataclass
class TISResult(SISResult):
    """Result of truncated importance sampling.

    Parameters
    ----------
    log_weights_max : float or array
        Truncation level of the log-weights of each parameter, on the scale
        of the raw log-ratios.
    """

    log_weights_max: Any = None

    def __str__(self) -> str:
        return f"{super().__str__()}\n    log_weights_max: {self.log_weights_max}"


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------


def importance_weights(
    result: Union[PSISResult, SISResult],
    log: bool = False,
    normalize: bool = True,
):
    """Importance weights of an importance sampling result.

    Parameters
    ----------
    result : PSISResult, SISResult or TISResult
        Output of :func:`psis.psis`, :func:`psis.sis` or :func:`psis.tis`.
    log : bool, default=False
        Return log-weights instead of weights.
    normalize : bool, default=True
        Normalize so the weights sum to one over the sample dimensions.

    Returns
    -------
    array, shape ``(draws, [chains,] params...)``
        The requested weights, labeled like ``result.log_weights``.
    """
    log_weights = as_core_array(result.log_weights)
    if normalize:
        if log:
            with np.errstate(invalid="ignore"):
                values = log_weights - log_normalizer(log_weights)
        else:
            values = softmax(log_weights, axis=sample_axes(log_weights))
    elif log:
        values = log_weights.copy()
    else:
        values = np.exp(log_weights)
    return wrap_like(result.log_weights, values, "full")
