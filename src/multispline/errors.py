"""Exception types raised by multispline.

Every error also derives from `ValueError`, so callers that only care about
invalid input can keep catching the built-in type.
"""


class SplineError(Exception):
    """Base class for all multispline errors."""


class OutOfDomainError(SplineError, ValueError):
    """A coordinate or a requested bound lies outside the spline domain."""


class InvalidKnotVectorError(SplineError, ValueError):
    """A knot sequence is malformed or a refinement would make it so."""


class SingularFitError(SplineError, ValueError):
    """The least-squares system could not be solved to tolerance."""


class DimensionMismatchError(SplineError, ValueError):
    """A coordinate vector length does not match the spline dimension."""


__all__ = [
    "DimensionMismatchError",
    "InvalidKnotVectorError",
    "OutOfDomainError",
    "SingularFitError",
    "SplineError",
]
