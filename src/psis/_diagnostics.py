"""Pareto shape diagnostics for importance sampling estimates.

The fitted Pareto shape k̂ of the tail of the importance ratios (or of an
expectand) determines whether Pareto-smoothed estimates are reliable
(Vehtari et al. 2024):

- ``pareto_shape_threshold(S) = 1 - 1/log10(S)``: below this value, S draws
  suffice for a reliable estimate.
- ``min_sample_size(k) = 10^(1/(1 - max(0, k)))`` for ``k <= 1``: draws
  needed for a reliable estimate; infinite for ``k > 1``.
- ``convergence_rate(k, S)``: relative convergence rate of the RMSE of the
  Pareto-smoothed estimate.

Diagnostic thresholds used by :func:`psis.psis`
-----------------------------------------------
- k ≤ 0.5        : good, the importance ratios have finite variance.
- 0.5 < k ≤ 0.7  : okay, variance is infinite but PSIS still works well.
- 0.7 < k ≤ 1    : bad, estimates are likely to be unstable.
- k > 1          : very bad, even the mean of the raw ratios does not exist.
- k is NaN       : failed, no fit could be produced.

Warnings are emitted as :class:`psis.errors.PSISWarning`.  For more than
one parameter only aggregate counts per category are reported.

References
----------
Vehtari, Simpson, Gelman, Yao, Gabry (2024), "Pareto smoothed importance
    sampling." JMLR 25(72).
"""

from __future__ import annotations

import io
import warnings
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from rich.console import Console
from rich.table import Table

from .enums import ParetoCategory, TailStatus
from .errors import PSISWarning

ArrayLike = Union[float, np.ndarray]

# Shape above which estimates are flagged as unstable.
BAD_SHAPE = 0.7

BAD_SHAPE_SUMMARY = (
    "Resulting importance sampling estimates are likely to be unstable."
)
VERY_BAD_SHAPE_SUMMARY = (
    "Resulting importance sampling estimates are likely to be unstable and "
    "are unlikely to converge with additional samples."
)
MISSING_SHAPE_SUMMARY = (
    "Returning NaN for the Pareto shape and keeping the unsmoothed values."
)

# Intervals are (lower, upper], with NaN handled separately as FAILED.
PSIS_INTERVALS: Dict[ParetoCategory, Tuple[float, float]] = {
    ParetoCategory.GOOD: (-np.inf, 0.5),
    ParetoCategory.OKAY: (0.5, BAD_SHAPE),
    ParetoCategory.BAD: (BAD_SHAPE, 1.0),
    ParetoCategory.VERY_BAD: (1.0, np.inf),
}


# ---------------------------------------------------------------------------
# Diagnostic quantities
# ---------------------------------------------------------------------------


def pareto_shape_threshold(sample_size: float) -> float:
    """Largest Pareto shape for which ``sample_size`` draws are reliable."""
    with np.errstate(divide="ignore"):
        return float(1 - 1 / np.log10(sample_size))


def min_sample_size(pareto_shape: ArrayLike) -> ArrayLike:
    """Minimum number of draws for a reliable Pareto-smoothed estimate.

    ``10^(1/(1 - max(0, k)))`` for ``k <= 1`` and ``inf`` otherwise.  NaN
    shapes give NaN.
    """
    k = np.asarray(pareto_shape, dtype=np.float64)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        ss = np.power(10.0, 1 / (1 - np.maximum(0, k)))
    ss = np.where(k > 1, np.inf, ss)
    return ss.item() if ss.ndim == 0 else ss


def convergence_rate(pareto_shape: ArrayLike, sample_size: float) -> ArrayLike:
    """Relative convergence rate of the RMSE of a Pareto-smoothed estimate.

    Parameters
    ----------
    pareto_shape : float or np.ndarray
        Pareto shape k.
    sample_size : float
        Number of draws S.

    Returns
    -------
    float or np.ndarray
        1 for ``k < 0``, 0 for ``k > 1``, ``1 - 1/log(S)`` for ``k = 0.5``
        and otherwise
        ``max(0, (2(k-1)S^{2k} - (2k-1)S^{2k-1} + S) / ((S-1)(1-S^{2k-1})))``.
    """
    k = np.asarray(pareto_shape, dtype=np.float64)
    S = float(sample_size)
    with np.errstate(all="ignore"):
        rate = (
            2 * (k - 1) * S ** (2 * k) - (2 * k - 1) * S ** (2 * k - 1) + S
        ) / ((S - 1) * (1 - S ** (2 * k - 1)))
        rate = np.maximum(0.0, rate)
        rate = np.where(k == 0.5, 1 - 1 / np.log(S), rate)
    rate = np.where(k < 0, 1.0, rate)
    rate = np.where(k > 1, 0.0, rate)
    return rate.item() if rate.ndim == 0 else rate


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def categorize(
    pareto_shape: ArrayLike,
    intervals: Dict[ParetoCategory, Tuple[float, float]] = PSIS_INTERVALS,
) -> Dict[ParetoCategory, np.ndarray]:
    """Flat indices of the shapes falling in each category.

    Intervals are half-open ``(lower, upper]`` (closed at ``-inf``) and may
    overlap.  NaN shapes are assigned to ``ParetoCategory.FAILED``.
    """
    k = np.ravel(np.asarray(pareto_shape, dtype=np.float64))
    assignments = {}
    for category, (lower, upper) in intervals.items():
        with np.errstate(invalid="ignore"):
            inside = (k > lower) & (k <= upper)
        assignments[category] = np.flatnonzero(inside)
    assignments[ParetoCategory.FAILED] = np.flatnonzero(np.isnan(k))
    return assignments


def interval_string(interval: Tuple[float, float]) -> str:
    """Format ``(lower, upper]`` with open brackets at infinite endpoints."""
    lower, upper = interval
    right = "]" if np.isfinite(upper) else ")"
    return f"({lower:.2g}, {upper:.2g}{right}"


def category_table(
    pareto_shape: ArrayLike,
    intervals: Dict[ParetoCategory, Tuple[float, float]],
    min_ess: Optional[np.ndarray] = None,
) -> pd.DataFrame:
    """Per-category counts of Pareto shapes as a DataFrame.

    Parameters
    ----------
    pareto_shape : float or np.ndarray
        Pareto shapes.
    intervals : dict
        Category intervals, e.g. :data:`PSIS_INTERVALS`.
    min_ess : np.ndarray, optional
        ESS per parameter.  If given, a ``min_ess`` column reports the
        smallest ESS of the parameters in the ``good`` category.

    Returns
    -------
    pd.DataFrame
        One row per non-empty category with columns ``interval``,
        ``category``, ``count`` and ``percent`` (and ``min_ess``).
    """
    k = np.ravel(np.asarray(pareto_shape, dtype=np.float64))
    n = k.size
    rows = []
    for category, inds in categorize(k, intervals).items():
        if len(inds) == 0 or category is ParetoCategory.HIGH_BIAS:
            continue
        row = {
            "interval": (
                "--"
                if category is ParetoCategory.FAILED
                else interval_string(intervals[category])
            ),
            "category": category.value,
            "count": len(inds),
            "percent": 100.0 * len(inds) / n,
        }
        if min_ess is not None:
            row["min_ess"] = (
                float(np.nanmin(np.ravel(min_ess)[inds]))
                if category is ParetoCategory.GOOD
                else np.nan
            )
        rows.append(row)
    return pd.DataFrame(rows)


def render_category_table(title: str, table: pd.DataFrame) -> str:
    """Render a category table produced by :func:`category_table` as text."""
    grid = Table(title=None, box=None, show_edge=False, pad_edge=False)
    grid.add_column("", justify="right")
    grid.add_column("", justify="left")
    grid.add_column("Count", justify="left")
    has_ess = "min_ess" in table.columns
    if has_ess:
        grid.add_column("Min. ESS", justify="right")
    styles = {"bad": "bold bright_red", "very bad": "bold red", "failed": "red"}
    for row in table.to_dict("records"):
        cells = [
            row["interval"],
            row["category"],
            f"{row['count']} ({row['percent']:.1f}%)",
        ]
        if has_ess:
            ess = row["min_ess"]
            cells.append("--" if np.isnan(ess) else f"{int(ess)}")
        grid.add_row(*cells, style=styles.get(row["category"]))
    buffer = io.StringIO()
    console = Console(file=buffer, width=100, no_color=True, highlight=False)
    console.print(title)
    console.print("Pareto shape (k) diagnostic values:")
    console.print(grid)
    return buffer.getvalue().rstrip()


# ---------------------------------------------------------------------------
# Diagnostics container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParetoDiagnostics:
    """Diagnostics of Pareto-smoothed estimates, one entry per parameter.

    Parameters
    ----------
    pareto_shape : float or np.ndarray
        Estimated Pareto shape k̂.  NaN where no fit could be produced.
    pareto_shape_threshold : float
        Sample-size dependent threshold below which estimates are reliable.
    min_sample_size : float or np.ndarray
        Minimum number of draws for a reliable estimate.
    convergence_rate : float or np.ndarray
        Relative convergence rate of the RMSE of the estimate.
    """

    pareto_shape: ArrayLike
    pareto_shape_threshold: float
    min_sample_size: ArrayLike
    convergence_rate: ArrayLike

    @classmethod
    def from_shape(cls, pareto_shape: ArrayLike, sample_size: int) -> "ParetoDiagnostics":
        """Compute all diagnostics from the Pareto shape and sample size."""
        return cls(
            pareto_shape=pareto_shape,
            pareto_shape_threshold=pareto_shape_threshold(sample_size),
            min_sample_size=min_sample_size(pareto_shape),
            convergence_rate=convergence_rate(pareto_shape, sample_size),
        )

    @property
    def nparams(self) -> int:
        return int(np.size(self.pareto_shape))

    def intervals(self) -> Dict[ParetoCategory, Tuple[float, float]]:
        """Category intervals given the sample-size dependent threshold."""
        threshold = self.pareto_shape_threshold
        return {
            ParetoCategory.GOOD: (-np.inf, threshold),
            ParetoCategory.BAD: (threshold, 1.0),
            ParetoCategory.VERY_BAD: (1.0, np.inf),
            ParetoCategory.HIGH_BIAS: (BAD_SHAPE, 1.0),
        }

    def categories(self) -> Dict[ParetoCategory, np.ndarray]:
        """Flat parameter indices in each category."""
        return categorize(self.pareto_shape, self.intervals())

    def summary(self) -> pd.DataFrame:
        """Counts of parameters per reliability category."""
        return category_table(self.pareto_shape, self.intervals())

    def __str__(self) -> str:
        return render_category_table(
            f"ParetoDiagnostics with {self.nparams} parameters", self.summary()
        )


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


def _warn(message: str) -> None:
    warnings.warn(message, PSISWarning, stacklevel=4)


def _prefix(count: int, total: int) -> str:
    return f"For {count} parameters ({round(100 * count / total)}%), "


def _lowercase_first(msg: str) -> str:
    return msg[:1].lower() + msg[1:]


def check_pareto_shape(pareto_shape: ArrayLike, report_failed: bool = True) -> None:
    """Warn if Pareto shapes indicate unreliable importance sampling.

    Parameters
    ----------
    pareto_shape : float or np.ndarray
        A single shape or one shape per parameter.  For arrays, one
        aggregate warning per category is emitted.
    report_failed : bool, default=True
        Whether to warn about NaN (failed) shapes of an array input.
    """
    if np.ndim(pareto_shape) == 0:
        k = float(pareto_shape)
        if k > 1:
            _warn(f"Pareto shape k = {k:.2g} > 1. {VERY_BAD_SHAPE_SUMMARY}")
        elif k > BAD_SHAPE:
            _warn(f"Pareto shape k = {k:.2g} > {BAD_SHAPE}. {BAD_SHAPE_SUMMARY}")
        return

    assignments = categorize(pareto_shape)
    total = int(np.size(pareto_shape))
    n_bad = len(assignments[ParetoCategory.BAD])
    n_very_bad = len(assignments[ParetoCategory.VERY_BAD])
    n_failed = len(assignments[ParetoCategory.FAILED])
    if n_bad > 0:
        _warn(
            _prefix(n_bad, total)
            + f"the Pareto shape values were {BAD_SHAPE} < k ≤ 1. {BAD_SHAPE_SUMMARY}"
        )
    if n_very_bad > 0:
        _warn(
            _prefix(n_very_bad, total)
            + f"the Pareto shape values were k > 1. {VERY_BAD_SHAPE_SUMMARY}"
        )
    if report_failed and n_failed > 0:
        _warn(
            _prefix(n_failed, total)
            + "the generalized Pareto distribution could not be fit to the tail "
            "draws. Total number of draws should in general exceed 25, and the "
            "tail draws must be finite."
        )


def _tail_status_message(status: TailStatus, tail_length: int) -> str:
    if status is TailStatus.INSUFFICIENT:
        return (
            f"{tail_length} tail draws is insufficient to fit the generalized "
            f"Pareto distribution. {MISSING_SHAPE_SUMMARY}"
        )
    if status is TailStatus.NON_FINITE:
        return f"Tail contains non-finite values. {MISSING_SHAPE_SUMMARY}"
    return (
        "Cannot fit the generalized Pareto distribution because all tail "
        f"values are the same. {MISSING_SHAPE_SUMMARY}"
    )


def _aggregate_status_message(status: TailStatus) -> str:
    if status is TailStatus.INSUFFICIENT:
        return (
            "the tail draws were insufficient to fit the generalized Pareto "
            f"distribution. {MISSING_SHAPE_SUMMARY}"
        )
    if status is TailStatus.NON_FINITE:
        return f"the tail contains non-finite values. {MISSING_SHAPE_SUMMARY}"
    return (
        "the generalized Pareto distribution cannot be fit because all tail "
        f"values are the same. {MISSING_SHAPE_SUMMARY}"
    )


def check_tail_status(
    statuses: Iterable[TailStatus], tail_lengths: Iterable[int]
) -> None:
    """Warn about tails that could not be fit.

    A single status produces a message naming the condition; several
    statuses produce one aggregate message per condition with the count and
    percentage of affected parameters.
    """
    statuses = list(statuses)
    tail_lengths = list(tail_lengths)
    if len(statuses) == 1:
        if statuses[0] is not TailStatus.OK:
            _warn(_tail_status_message(statuses[0], tail_lengths[0]))
        return
    counts = Counter(statuses)
    for status in (TailStatus.INSUFFICIENT, TailStatus.NON_FINITE, TailStatus.IDENTICAL):
        if counts[status] > 0:
            _warn(_prefix(counts[status], len(statuses)) + _aggregate_status_message(status))


def check_pareto_diagnostics(diagnostics: ParetoDiagnostics) -> None:
    """Warn about categories of unreliable estimates in ``diagnostics``.

    One warning is emitted per non-empty category among ``failed``,
    ``very bad``, ``bad`` and ``high bias``.  With more than one parameter
    each message is prefixed with the count and percentage of parameters in
    the category.
    """
    intervals = diagnostics.intervals()
    assignments = diagnostics.categories()
    nparams = diagnostics.nparams
    min_ss = np.ravel(np.asarray(diagnostics.min_sample_size, dtype=np.float64))
    order: List[ParetoCategory] = [
        ParetoCategory.FAILED,
        ParetoCategory.VERY_BAD,
        ParetoCategory.BAD,
        ParetoCategory.HIGH_BIAS,
    ]
    for category in order:
        inds = assignments[category]
        if len(inds) == 0:
            continue
        if category is ParetoCategory.FAILED:
            msg = (
                "The generalized Pareto distribution could not be fit to the "
                "tail draws. Total number of draws should in general exceed "
                "25, and the tail draws must be finite."
            )
        elif category is ParetoCategory.VERY_BAD:
            msg = (
                "All estimates are unreliable. If the distribution of draws "
                "is bounded, further draws may improve the estimates, but it "
                "is not possible to predict whether any feasible sample size "
                "is sufficient."
            )
        elif category is ParetoCategory.BAD:
            ss_max = np.ceil(np.max(min_ss[inds]))
            msg = (
                "Sample size is too small and must be larger than "
                f"{ss_max:.10g} for all estimates to be reliable."
            )
        else:
            msg = (
                "Bias dominates RMSE, and variance-based MCSE estimates are "
                "underestimated."
            )
        if category is not ParetoCategory.FAILED:
            msg += f" (k ∈ {interval_string(intervals[category])})"
        if nparams > 1:
            msg = _prefix(len(inds), nparams) + _lowercase_first(msg)
        _warn(msg)
