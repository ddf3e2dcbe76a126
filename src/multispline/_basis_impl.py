"""Numba kernels evaluating univariate B-spline basis functions and derivatives.

The recursion of Cox and de Boor is unrolled into a triangular table, so no
call recursion is involved and every intermediate degree is stored.
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
def _safe_ratio(num: float, den: float) -> float:
    """Return `num / den`, or zero when `den` vanishes (repeated knots)."""
    if den == 0.0:
        return 0.0
    return num / den


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _fill_Cox_de_Boor_table(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    span: int,
    pt: float,
    ndu: npt.NDArray[np.float32 | np.float64],
) -> None:
    """Fill the triangular Cox-de Boor table for one point.

    After the call, `ndu[r, j]` for `r <= j` holds the value at `pt` of the
    r-th nonzero basis function of degree `j`, and `ndu[j, r]` for `r < j`
    holds the knot difference used as denominator at degree `j`.

    This is Algorithm A2.3 (first part) of "The NURBS Book" by Piegl and Tiller.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Clamped knot vector.
        degree (int): B-spline degree.
        span (int): Knot span containing `pt`.
        pt (float): Evaluation point.
        ndu (npt.NDArray[np.float32 | np.float64]): Output table of shape
            (degree + 1, degree + 1).

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    left = np.zeros(degree + 1, dtype=knots.dtype)
    right = np.zeros(degree + 1, dtype=knots.dtype)

    ndu[0, 0] = 1.0
    for j in range(1, degree + 1):
        left[j] = pt - knots[span + 1 - j]
        right[j] = knots[span + j] - pt
        saved = 0.0
        for r in range(j):
            ndu[j, r] = right[r + 1] + left[j - r]
            temp = _safe_ratio(ndu[r, j - 1], ndu[j, r])
            ndu[r, j] = saved + right[r + 1] * temp
            saved = left[j - r] * temp
        ndu[j, j] = saved


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _compute_basis_derivatives_core(  # noqa: PLR0912
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    span: int,
    pt: float,
    max_order: int,
    out: npt.NDArray[np.float32 | np.float64],
) -> None:
    """Evaluate the nonzero basis functions and their derivatives at one point.

    This is Algorithm A2.3 of "The NURBS Book" by Piegl and Tiller. The k-th
    derivative is a combination of degree `degree - k` basis values with
    coefficients obtained from divided differences of the knots. Derivatives
    of order higher than `degree` are zero.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Clamped knot vector.
        degree (int): B-spline degree.
        span (int): Knot span containing `pt`.
        pt (float): Evaluation point.
        max_order (int): Highest derivative order to compute.
        out (npt.NDArray[np.float32 | np.float64]): Output array of shape
            (max_order + 1, degree + 1); `out[k, r]` receives the k-th derivative
            of basis function `span - degree + r`.

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    order = degree + 1
    ndu = np.zeros((order, order), dtype=knots.dtype)
    _fill_Cox_de_Boor_table(knots, degree, span, pt, ndu)

    out[:, :] = 0.0
    for j in range(order):
        out[0, j] = ndu[j, degree]

    top = min(max_order, degree)
    if top == 0:
        return

    a = np.zeros((2, order), dtype=knots.dtype)
    for r in range(order):
        s1 = 0
        s2 = 1
        a[0, 0] = 1.0
        for k in range(1, top + 1):
            d = 0.0
            rk = r - k
            pk = degree - k
            if r >= k:
                a[s2, 0] = _safe_ratio(a[s1, 0], ndu[pk + 1, rk])
                d = a[s2, 0] * ndu[rk, pk]
            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else degree - r
            for j in range(j1, j2 + 1):
                a[s2, j] = _safe_ratio(a[s1, j] - a[s1, j - 1], ndu[pk + 1, rk + j])
                d += a[s2, j] * ndu[rk + j, pk]
            if r <= pk:
                a[s2, k] = _safe_ratio(-a[s1, k - 1], ndu[pk + 1, r])
                d += a[s2, k] * ndu[r, pk]
            out[k, r] = d
            s1, s2 = s2, s1

    factor = degree
    for k in range(1, top + 1):
        for j in range(order):
            out[k, j] *= factor
        factor *= degree - k


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _tabulate_basis_derivatives_impl(
    knots: npt.NDArray[np.float32 | np.float64],
    degree: int,
    spans: npt.NDArray[np.int_],
    pts: npt.NDArray[np.float32 | np.float64],
    max_order: int,
    out: npt.NDArray[np.float32 | np.float64],
) -> None:
    """Evaluate basis functions and derivatives at many points.

    Args:
        knots (npt.NDArray[np.float32 | np.float64]): Clamped knot vector.
        degree (int): B-spline degree.
        spans (npt.NDArray[np.int_]): Knot span of every point.
        pts (npt.NDArray[np.float32 | np.float64]): Points inside the domain.
        max_order (int): Highest derivative order to compute.
        out (npt.NDArray[np.float32 | np.float64]): Output array of shape
            (num_pts, max_order + 1, degree + 1).

    Note:
        Inputs are assumed to be correct (no validation performed).
    """
    for pt_id in range(pts.size):
        _compute_basis_derivatives_core(
            knots, degree, spans[pt_id], pts[pt_id], max_order, out[pt_id]
        )


def _warmup_numba_functions() -> None:
    """Precompile numba functions with float64 signatures for faster first call."""
    knots_dummy = np.array([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], dtype=np.float64)
    pts_dummy = np.array([0.25], dtype=np.float64)
    spans_dummy = np.array([2], dtype=np.int_)
    out_dummy = np.empty((1, 2, 3), dtype=np.float64)
    _tabulate_basis_derivatives_impl(knots_dummy, 2, spans_dummy, pts_dummy, 1, out_dummy)


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()


__all__ = [
    "_compute_basis_derivatives_core",
    "_fill_Cox_de_Boor_table",
    "_tabulate_basis_derivatives_impl",
]
