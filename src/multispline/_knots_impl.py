"""Numba kernels operating on raw knot arrays.

These functions assume validated inputs (non-decreasing, clamped knot vectors
and non-negative degrees); all checks live in `multispline.knots`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import numba as nb
import numpy as np
import numpy.typing as npt

F = TypeVar("F", bound=Callable[..., Any])

if TYPE_CHECKING:
    # During type-checking, make the decorator a no-op that preserves types.
    def nb_jit(*args: object, **kwargs: object) -> Callable[[F], F]:
        def decorator(func: F) -> F:
            return func

        return decorator
else:
    # At runtime, use the real Numba decorator.
    nb_jit = nb.jit  # type: ignore[attr-defined]


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _snap_knots_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    tol: float,
) -> npt.NDArray[np.float32 | np.float64]:
    """Merge runs of knots closer than `tol` into the value of the run's first knot.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Non-decreasing knot vector.
        tol (float): Tolerance for numerical comparisons.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Snapped copy of the knots.
    """
    snapped = knots.copy()
    for i in range(1, snapped.size):
        if snapped[i] - snapped[i - 1] < tol:
            snapped[i] = snapped[i - 1]
    return snapped


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _get_unique_knots_and_multiplicity_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    tol: float,
    in_domain: bool = False,
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
    """Get unique knots and their multiplicities.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        tol (float): Tolerance for numerical comparisons.
        in_domain (bool): If True, only consider knots in the domain.
            Defaults to False.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]: Tuple of
            (unique_knots, multiplicities). Both arrays have the same length.
    """
    n = knots.size
    unique_ids = np.empty(n, dtype=np.int_)
    mult = np.zeros(n, dtype=np.int_)

    if in_domain:
        first, last = degree, n - degree - 1
    else:
        first, last = 0, n - 1

    j = -1
    for i in range(first, last + 1):
        if j >= 0 and knots[i] - knots[unique_ids[j]] < tol:
            mult[j] += 1
        else:
            j += 1
            unique_ids[j] = i
            mult[j] = 1

    return knots[unique_ids[: j + 1]], mult[: j + 1]


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _get_multiplicity_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    value: float,
    tol: float,
) -> int:
    """Count the knots lying within `tol` of `value`."""
    count = 0
    for knot in knots:
        if abs(knot - value) < tol:
            count += 1
    return count


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _is_in_domain_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    pts: npt.NDArray[np.float32 | np.float64],
    tol: float,
) -> npt.NDArray[np.bool_]:
    """Check if points are within the B-spline domain (up to tolerance).

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): B-spline knot vector.
        degree (int): B-spline degree.
        pts (npt.NDArray[np.float32 | np.float64]): Points to check.
        tol (float): Tolerance for numerical comparisons.

    Returns:
        npt.NDArray[np.bool_]: Boolean array where True indicates points
            are within the domain. It has the same length as the number of points.
    """
    knot_begin, knot_end = knots[degree], knots[-degree - 1]
    return np.logical_and(pts >= knot_begin - tol, pts <= knot_end + tol)  # type: ignore[no-any-return]


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _find_span_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    pts: npt.NDArray[np.float32 | np.float64],
) -> npt.NDArray[np.int_]:
    """Find, for every point, the index `k` of its knot span `[knots[k], knots[k+1])`.

    Points at (or beyond) the upper bound are assigned to the last non-empty
    span, so that the right end of the domain is evaluated from the left.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Clamped B-spline knot vector.
        degree (int): B-spline degree.
        pts (npt.NDArray[np.float32 | np.float64]): Points inside the domain.

    Returns:
        npt.NDArray[np.int_]: Span indices, each in `[degree, num_basis - 1]`.
    """
    num_basis = knots.size - degree - 1
    spans = np.searchsorted(knots, pts, side="right") - 1
    return np.minimum(np.maximum(spans, degree), num_basis - 1)


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _compute_insertion_operator_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    value: float,
    span: int,
) -> tuple[npt.NDArray[np.int_], npt.NDArray[np.int_], npt.NDArray[np.float32 | np.float64]]:
    r"""Compute the sparse operator of a single knot insertion (Boehm's algorithm).

    Inserting `value` into the span `[knots[span], knots[span+1])` adds one basis
    function. The returned triplets describe the matrix `T` of shape
    `(num_basis + 1, num_basis)` such that the new coefficients are
    `T @ old_coefficients`:

        \[
        c'_i = \alpha_i c_i + (1 - \alpha_i) c_{i-1}, \quad
        \alpha_i = \frac{x - t_i}{t_{i+p} - t_i}
        \]

    for `span - degree < i <= span`, with `c'_i = c_i` before and
    `c'_i = c_{i-1}` after that range.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Knot vector before insertion.
        degree (int): B-spline degree.
        value (float): Knot to insert.
        span (int): Index of the last knot smaller than or equal to `value`.

    Returns:
        tuple[npt.NDArray[np.int_], npt.NDArray[np.int_], npt.NDArray[np.float32 | np.float64]]:
            Row indices, column indices and values of the operator entries.
    """
    num_basis = knots.size - degree - 1
    nnz = num_basis + degree + 1

    rows = np.empty(nnz, dtype=np.int_)
    cols = np.empty(nnz, dtype=np.int_)
    vals = np.empty(nnz, dtype=knots.dtype)

    pos = 0
    for i in range(span - degree + 1):
        rows[pos] = i
        cols[pos] = i
        vals[pos] = 1.0
        pos += 1

    for i in range(span - degree + 1, span + 1):
        denom = knots[i + degree] - knots[i]
        alpha = 0.0 if denom == 0.0 else (value - knots[i]) / denom
        rows[pos] = i
        cols[pos] = i - 1
        vals[pos] = 1.0 - alpha
        pos += 1
        rows[pos] = i
        cols[pos] = i
        vals[pos] = alpha
        pos += 1

    for i in range(span + 1, num_basis + 1):
        rows[pos] = i
        cols[pos] = i - 1
        vals[pos] = 1.0
        pos += 1

    return rows, cols, vals


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    knots_dummy = np.array([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], dtype=np.float64)
    pts_dummy = np.array([0.25], dtype=np.float64)
    tol_dummy = 1e-14
    degree_dummy = 2

    _snap_knots_impl(knots_dummy, tol_dummy)
    _get_unique_knots_and_multiplicity_impl(knots_dummy, degree_dummy, tol_dummy, False)
    _get_multiplicity_impl(knots_dummy, 0.5, tol_dummy)
    _is_in_domain_impl(knots_dummy, degree_dummy, pts_dummy, tol_dummy)
    _find_span_impl(knots_dummy, degree_dummy, pts_dummy)
    _compute_insertion_operator_impl(knots_dummy, degree_dummy, 0.25, 2)


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()


__all__ = [
    "_compute_insertion_operator_impl",
    "_find_span_impl",
    "_get_multiplicity_impl",
    "_get_unique_knots_and_multiplicity_impl",
    "_is_in_domain_impl",
    "_snap_knots_impl",
]
