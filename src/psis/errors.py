"""Exception and warning classes raised by ``psis``."""


class DimensionMismatch(ValueError):
    """Array shapes are incompatible, e.g. ``reff`` vs. parameter shape."""


class MalformedInputError(ValueError):
    """Input array cannot be split into sample and parameter dimensions."""


class PSISWarning(UserWarning):
    """Diagnostic warning about the reliability of importance sampling."""
