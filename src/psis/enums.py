"""
Enums for PSIS configuration and reporting.

All fixed choices accepted by the public functions (which tail to smooth,
which kind of expectation a diagnostic is computed for) and the reliability
categories reported for Pareto shape values are collected here. Every enum
derives from ``str`` so that plain strings such as ``"right"`` or ``"mean"``
are accepted wherever an enum member is.
"""

from enum import Enum

# ==============================================================================
# Tails
# ==============================================================================


class Tails(str, Enum):
    """Which tail(s) of a sample to fit and smooth."""

    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"

    @classmethod
    def parse(cls, value) -> "Tails":
        """Convert a string or member into a ``Tails`` member."""
        try:
            return cls(value)
        except ValueError:
            valid = [t.value for t in cls]
            raise ValueError(
                f"invalid tails: {value!r}. Valid values are {valid}"
            ) from None


# ==============================================================================
# Expectation kinds
# ==============================================================================


class ExpectationKind(str, Enum):
    """Kinds of importance-weighted expectations."""

    MEAN = "mean"
    VAR = "var"
    STD = "std"
    MEDIAN = "median"
    QUANTILE = "quantile"

    @classmethod
    def parse(cls, value) -> "ExpectationKind":
        """Convert a string or member into an ``ExpectationKind`` member."""
        try:
            return cls(value)
        except ValueError:
            valid = [k.value for k in cls]
            raise ValueError(
                f"invalid kind: {value!r}. Valid values are {valid}"
            ) from None

    @property
    def moment_order(self) -> int:
        """Highest moment of the weighted draws the estimator depends on."""
        return _MOMENT_ORDER[self]


# Resolved once per call; quantile-type estimators need no moments.
_MOMENT_ORDER = {
    ExpectationKind.MEAN: 1,
    ExpectationKind.VAR: 2,
    ExpectationKind.STD: 2,
    ExpectationKind.MEDIAN: 0,
    ExpectationKind.QUANTILE: 0,
}


# ==============================================================================
# Reliability categories
# ==============================================================================


class ParetoCategory(str, Enum):
    """Reliability category of a Pareto shape estimate."""

    GOOD = "good"
    OKAY = "okay"
    BAD = "bad"
    VERY_BAD = "very bad"
    HIGH_BIAS = "high bias"
    FAILED = "failed"


# ------------------------------------------------------------------------------


class TailStatus(str, Enum):
    """Outcome of fitting and smoothing one tail of one parameter."""

    OK = "ok"
    INSUFFICIENT = "insufficient"
    NON_FINITE = "non_finite"
    IDENTICAL = "identical"
