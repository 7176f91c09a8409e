"""Fit a generalized Pareto distribution to one tail and smooth it.

The M most extreme draws of a tail are shifted so that the cutoff sits at
zero, a GPD is fit to them, and they are replaced by the GPD quantiles at
``(i - 0.5) / M`` in the same order.  Smoothed values never exceed the most
extreme observed draw.  For log-scale inputs the draws are exponentiated
after scaling the largest tail value to one, which keeps the fit stable for
very large or very small log-weights.

Draws are modified in place; entries outside the tail are never touched.
Degenerate tails are reported through :class:`TailStatus` rather than
raised, so that batches over many parameters never abort.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ._generalized_pareto import GeneralizedPareto, fit_gpd
from ._tails import MIN_TAIL_LENGTH, tail_and_cutoff
from ._utils import uniform_probabilities
from .config import PSISConfig
from .enums import Tails, TailStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TailFit:
    """Outcome of fitting one tail of one parameter.

    Parameters
    ----------
    dist : GeneralizedPareto
        Fitted tail distribution on the scale of the draws (of the
        exponentiated draws for log-scale inputs, and of the negated draws
        for a left tail).  ``GeneralizedPareto.failed()`` unless ``status``
        is ``OK``.
    tail_length : int
        Number of tail draws M.
    status : TailStatus
        Whether the tail was fit, and if not, why.
    """

    dist: GeneralizedPareto
    tail_length: int
    status: TailStatus

    @property
    def pareto_shape(self) -> float:
        return self.dist.k


def smooth_tail(
    x: np.ndarray,
    M: int,
    tail: Tails = Tails.RIGHT,
    is_log: bool = False,
    config: PSISConfig = PSISConfig(),
    smooth: bool = True,
) -> TailFit:
    """Fit and (optionally) smooth one tail of ``x`` in place.

    Parameters
    ----------
    x : np.ndarray, shape ``(S,)``
        Draws of one parameter.  Written to in place when ``smooth`` is True.
    M : int
        Tail length.
    tail : Tails, default=Tails.RIGHT
        ``RIGHT`` or ``LEFT``.
    is_log : bool, default=False
        Whether ``x`` holds logarithms of the quantity whose tail is fit.
    config : PSISConfig
        Fit options.
    smooth : bool, default=True
        If False, only fit; ``x`` is left untouched.

    Returns
    -------
    TailFit
        Fitted distribution, tail length and status.
    """
    if M < MIN_TAIL_LENGTH:
        return TailFit(GeneralizedPareto.failed(), M, TailStatus.INSUFFICIENT)

    tail_idx, cutoff = tail_and_cutoff(x, M, tail)
    x_tail = x[tail_idx]
    if not (np.isfinite(cutoff) and np.all(np.isfinite(x_tail))):
        return TailFit(GeneralizedPareto.failed(), M, TailStatus.NON_FINITE)
    if x_tail[-1] == x_tail[0]:
        logger.debug("All %d tail draws are identical; not fitting", M)
        return TailFit(GeneralizedPareto.failed(), M, TailStatus.IDENTICAL)

    # Scale so the most extreme tail value is 1 on the exponentiated scale
    if is_log:
        x_max = cutoff if tail is Tails.LEFT else x_tail[-1]
        x_tail = np.exp(x_tail - x_max)
        cutoff = np.exp(cutoff - x_max)

    # Excesses over the cutoff, ascending
    if tail is Tails.LEFT:
        excess = cutoff - x_tail
    else:
        excess = x_tail - cutoff

    dist = fit_gpd(excess, sorted=True, **config.fit_kwargs())

    if smooth and np.isfinite(dist.k):
        q = dist.quantile(uniform_probabilities(M))
        q = np.minimum(q, excess[-1])
        smoothed = cutoff - q if tail is Tails.LEFT else cutoff + q
        if is_log:
            with np.errstate(divide="ignore"):
                smoothed = np.log(smoothed) + x_max
        x[tail_idx] = smoothed

    # Express the fit on the scale of the (exponentiated) draws
    sign = -1.0 if tail is Tails.LEFT else 1.0
    dist = dist.shifted_then_scaled(sign * cutoff, 1.0)
    if is_log:
        dist = dist.shifted_then_scaled(0.0, np.exp(x_max))
    return TailFit(dist, M, TailStatus.OK)
