"""
PSIS: Pareto-smoothed importance sampling

Stabilizes importance sampling estimates by replacing the largest importance
ratios with quantiles of a generalized Pareto distribution fit to the upper
tail, and diagnoses their reliability with the estimated Pareto shape.
"""

# Configuration and enums
from .config import PSISConfig
from .enums import ExpectationKind, ParetoCategory, Tails
from .errors import DimensionMismatch, MalformedInputError, PSISWarning

# Main smoothing function and its results
from ._psis import psis
from ._truncated import sis, tis
from .results import PSISResult, SISResult, TISResult, importance_weights

# Estimates and diagnostics
from ._ess import ess_is
from ._expectation import expectation
from ._pareto_smooth import pareto_diagnose, pareto_smooth
from ._diagnostics import (
    ParetoDiagnostics,
    check_pareto_diagnostics,
    convergence_rate,
    min_sample_size,
    pareto_shape_threshold,
)

# Generalized Pareto distribution
from ._generalized_pareto import GeneralizedPareto, fit_gpd

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "PSISConfig",
    "ExpectationKind",
    "ParetoCategory",
    "Tails",
    # Errors and warnings
    "DimensionMismatch",
    "MalformedInputError",
    "PSISWarning",
    # Importance sampling
    "psis",
    "sis",
    "tis",
    # Results
    "PSISResult",
    "SISResult",
    "TISResult",
    "importance_weights",
    # Estimates and diagnostics
    "ess_is",
    "expectation",
    "pareto_smooth",
    "pareto_diagnose",
    "ParetoDiagnostics",
    "check_pareto_diagnostics",
    "pareto_shape_threshold",
    "min_sample_size",
    "convergence_rate",
    # Generalized Pareto distribution
    "GeneralizedPareto",
    "fit_gpd",
]
