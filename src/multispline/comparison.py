"""Structural and value-based comparison of B-splines."""

from __future__ import annotations

import logging

import numpy as np
import numpy.typing as npt

from .bspline import Bspline
from .errors import DimensionMismatchError, OutOfDomainError
from .tolerance import get_comparison_tolerance, get_domain_tolerance

logger = logging.getLogger(__name__)


def bsplines_are_identical(
    first: Bspline, second: Bspline, rtol: float = 0.0, atol: float | None = None
) -> bool:
    """Check whether two splines have the same degrees, knots and coefficients.

    Two splines representing the same function on different knot vectors
    (e.g., before and after knot insertion) are not identical; use
    `bsplines_agree_on_domain` to compare values.

    Args:
        first (Bspline): First spline.
        second (Bspline): Second spline.
        rtol (float): Relative tolerance. Defaults to 0.
        atol (float | None): Absolute tolerance. Defaults to the comparison
            tolerance of the knot dtype.

    Returns:
        bool: True if the splines are structurally equal.
    """
    return first.is_identical(second, rtol=rtol, atol=atol)


def _lattice(
    lower: npt.NDArray[np.float64], upper: npt.NDArray[np.float64], num_points: int
) -> npt.NDArray[np.float64]:
    """Points of a regular lattice covering the box, in row-major order."""
    axes = [np.linspace(lo, up, num_points) for lo, up in zip(lower, upper, strict=True)]
    grids = np.meshgrid(*axes, indexing="ij")
    return np.stack([grid.ravel() for grid in grids], axis=1)


def bsplines_agree_on_domain(
    candidate: Bspline,
    reference: Bspline,
    num_points: int = 10,
    rtol: float | None = None,
    atol: float | None = None,
    compare_jacobian: bool = False,
) -> bool:
    """Check whether two splines take the same values on the domain of `candidate`.

    Both splines are evaluated on a regular lattice of `num_points` points per
    dimension spanning the domain of `candidate`, which must lie inside the
    domain of `reference`. This is how a reduced spline is checked against
    the spline it was reduced from.

    Args:
        candidate (Bspline): Spline whose domain is sampled.
        reference (Bspline): Spline to compare with.
        num_points (int): Lattice points per dimension. Must be at least 2.
            Defaults to 10.
        rtol (float | None): Relative tolerance. Defaults to the comparison
            tolerance of the knot dtype.
        atol (float | None): Absolute tolerance. Defaults to the comparison
            tolerance of the knot dtype.
        compare_jacobian (bool): Whether to compare gradients too. Defaults to False.

    Returns:
        bool: True if all lattice values (and gradients) agree.

    Raises:
        ValueError: If num_points is smaller than 2.
        DimensionMismatchError: If the splines have different dimensions.
        OutOfDomainError: If the domain of `candidate` is not inside that of `reference`.
    """
    if num_points < 2:  # noqa: PLR2004
        raise ValueError("num_points must be at least 2")
    if candidate.dim != reference.dim:
        raise DimensionMismatchError(
            f"Cannot compare splines of dimensions {candidate.dim} and {reference.dim}"
        )

    lower = candidate.domain_lower_bound
    upper = candidate.domain_upper_bound
    domain_tol = get_domain_tolerance(reference.dtype)
    if np.any(lower < reference.domain_lower_bound - domain_tol) or np.any(
        upper > reference.domain_upper_bound + domain_tol
    ):
        raise OutOfDomainError(
            f"Domain {candidate.domain.tolist()} is not inside {reference.domain.tolist()}"
        )

    tol = get_comparison_tolerance(candidate.dtype)
    rtol = tol if rtol is None else rtol
    atol = tol if atol is None else atol

    pts = _lattice(lower, upper, num_points)
    agree = np.allclose(candidate.evaluate(pts), reference.evaluate(pts), rtol=rtol, atol=atol)
    if agree and compare_jacobian:
        agree = np.allclose(
            candidate.evaluate_jacobian(pts),
            reference.evaluate_jacobian(pts),
            rtol=rtol,
            atol=atol,
        )

    if not agree:
        logger.debug("Splines disagree on the domain %s", candidate.domain.tolist())
    return bool(agree)


__all__ = ["bsplines_agree_on_domain", "bsplines_are_identical"]
