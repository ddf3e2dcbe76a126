"""Exact restriction of tensor-product B-splines to a sub-box of their domain.

A bound that moves inside the domain is first inserted as a knot until its
multiplicity reaches the degree. The basis functions supported on the new
box then restrict exactly to the basis of the truncated knot vector, so
slicing the coefficient tensor is enough and the spline is unchanged on the
sub-box.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp

from ._utils import _normalize_bounds
from .errors import OutOfDomainError
from .knots import KnotVector
from .tensor_basis import TensorProductBasis
from .tolerance import get_domain_tolerance

if TYPE_CHECKING:
    from .bspline import Bspline

logger = logging.getLogger(__name__)


def apply_along_axis(
    operator: sp.spmatrix | npt.NDArray[np.float32 | np.float64],
    tensor: npt.NDArray[np.float32 | np.float64],
    axis: int,
) -> npt.NDArray[np.float32 | np.float64]:
    """Multiply every fibre of `tensor` along `axis` by `operator`.

    Args:
        operator (sp.spmatrix | npt.NDArray): Matrix of shape (new_size, tensor.shape[axis]).
        tensor (npt.NDArray): Coefficient tensor.
        axis (int): Axis the operator acts on.

    Returns:
        npt.NDArray: Tensor with `tensor.shape[axis]` replaced by `new_size`.
    """
    moved = np.moveaxis(tensor, axis, 0)
    rest = moved.shape[1:]
    result = np.asarray(operator @ moved.reshape(moved.shape[0], -1))
    result = result.reshape((operator.shape[0],) + rest)
    return np.ascontiguousarray(np.moveaxis(result, 0, axis), dtype=tensor.dtype)


def _refine_at(
    knot_vector: KnotVector,
    value: float,
    tensor: npt.NDArray[np.float32 | np.float64],
    axis: int,
) -> npt.NDArray[np.float32 | np.float64]:
    """Insert `value` until it is a knot of multiplicity `max_interior_multiplicity`."""
    while knot_vector.multiplicity(value) < knot_vector.max_interior_multiplicity:
        operator = knot_vector.insert_knot(value)
        tensor = apply_along_axis(operator, tensor, axis)
    return tensor


def reduce_domain(
    basis: TensorProductBasis,
    coefficients: npt.NDArray[np.float32 | np.float64],
    lower: npt.ArrayLike,
    upper: npt.ArrayLike,
) -> tuple[TensorProductBasis, npt.NDArray[np.float32 | np.float64]]:
    """Compute the basis and coefficients of a spline restricted to `[lower, upper]`.

    The inputs are not modified; all work is done on copies.

    Args:
        basis (TensorProductBasis): Basis of the spline.
        coefficients (npt.NDArray[np.float32 | np.float64]): Flat coefficients.
        lower (npt.ArrayLike): New lower bound of every dimension.
        upper (npt.ArrayLike): New upper bound of every dimension.

    Returns:
        tuple[TensorProductBasis, npt.NDArray[np.float32 | np.float64]]: The
        reduced basis and its flat coefficients.

    Raises:
        DimensionMismatchError: If a bound does not have `basis.dim` entries.
        ValueError: If `lower[k] >= upper[k]` for some dimension.
        OutOfDomainError: If the new box is not inside the current domain.
    """
    dim = basis.dim
    lower_arr = _normalize_bounds(lower, dim, "lower")
    upper_arr = _normalize_bounds(upper, dim, "upper")
    if not (np.all(np.isfinite(lower_arr)) and np.all(np.isfinite(upper_arr))):
        raise ValueError("domain bounds must be finite")
    if np.any(lower_arr >= upper_arr):
        raise ValueError(f"lower bound {lower_arr} must be below upper bound {upper_arr}")

    old_lower = basis.lower_bound
    old_upper = basis.upper_bound
    tol = get_domain_tolerance(basis.dtype)
    if np.any(lower_arr < old_lower - tol) or np.any(upper_arr > old_upper + tol):
        raise OutOfDomainError(
            f"New domain [{lower_arr}, {upper_arr}] is not inside [{old_lower}, {old_upper}]"
        )
    lower_arr = np.maximum(lower_arr, old_lower)
    upper_arr = np.minimum(upper_arr, old_upper)

    new_basis = basis.copy()
    tensor = np.array(coefficients, copy=True).reshape(basis.num_basis)

    for axis, knot_vector in enumerate(new_basis.knot_vectors):
        if lower_arr[axis] == old_lower[axis] and upper_arr[axis] == old_upper[axis]:
            continue

        tensor = _refine_at(knot_vector, lower_arr[axis], tensor, axis)
        tensor = _refine_at(knot_vector, upper_arr[axis], tensor, axis)

        retained = knot_vector.truncate(lower_arr[axis], upper_arr[axis])
        index = [slice(None)] * dim
        index[axis] = retained
        tensor = tensor[tuple(index)]

    logger.debug(
        "Reduced domain to [%s, %s]: %d -> %d coefficients",
        lower_arr,
        upper_arr,
        basis.num_total_basis,
        new_basis.num_total_basis,
    )
    return new_basis, np.ascontiguousarray(tensor).reshape(-1)


def bisect(spline: Bspline, axis: int, split: float | None = None) -> tuple[Bspline, Bspline]:
    """Split a spline into two reduced copies along one axis.

    Args:
        spline (Bspline): Spline to split; it is not modified.
        axis (int): Axis to split.
        split (float | None): Split coordinate. Defaults to the midpoint of
            the domain along `axis`.

    Returns:
        tuple[Bspline, Bspline]: The pieces below and above `split`.

    Raises:
        IndexError: If axis is out of range.
        ValueError: If split is not strictly inside the domain.
    """
    if not 0 <= axis < spline.dim:
        raise IndexError(f"axis {axis} out of range for dimension {spline.dim}")

    lower = spline.domain_lower_bound
    upper = spline.domain_upper_bound
    split = 0.5 * (lower[axis] + upper[axis]) if split is None else float(split)
    if not lower[axis] < split < upper[axis]:
        raise ValueError(f"split {split} is not inside ({lower[axis]}, {upper[axis]})")

    below_upper = upper.copy()
    below_upper[axis] = split
    above_lower = lower.copy()
    above_lower[axis] = split

    below = spline.copy()
    below.reduce_domain(lower, below_upper)
    above = spline.copy()
    above.reduce_domain(above_lower, upper)
    return below, above


def iter_subdomain_splines(spline: Bspline, min_span: npt.ArrayLike) -> Iterator[Bspline]:
    """Recursively bisect a spline until no domain side is longer than `min_span`.

    At every level the first dimension whose span exceeds `min_span` is
    halved. Leaves are yielded depth first, lower halves before upper ones.

    Args:
        spline (Bspline): Spline to split; it is not modified.
        min_span (npt.ArrayLike): Largest span left unsplit, either a scalar
            or one value per dimension. Must be positive.

    Yields:
        Bspline: Reduced copies whose domains tile the original domain.

    Raises:
        ValueError: If a value of min_span is not positive.
        DimensionMismatchError: If min_span has the wrong number of entries.
    """
    threshold = np.asarray(min_span, dtype=np.float64)
    if threshold.ndim == 0:
        threshold = np.full(spline.dim, float(threshold))
    threshold = _normalize_bounds(threshold, spline.dim, "min_span")
    if np.any(threshold <= 0.0):
        raise ValueError("min_span must be positive")

    def _split(piece: Bspline) -> Iterator[Bspline]:
        spans = piece.domain_upper_bound - piece.domain_lower_bound
        too_long = np.flatnonzero(spans > threshold)
        if too_long.size == 0:
            yield piece
            return
        below, above = bisect(piece, int(too_long[0]))
        yield from _split(below)
        yield from _split(above)

    yield from _split(spline)


__all__ = ["apply_along_axis", "bisect", "iter_subdomain_splines", "reduce_domain"]
