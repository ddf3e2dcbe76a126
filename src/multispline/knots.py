"""Clamped knot vectors: validation, refinement, truncation and builders.

A `KnotVector` stores one dimension's breakpoints together with the degree of
the B-spline basis built on them. Its first and last knots have multiplicity
`degree + 1` and interior knots have multiplicity at most `degree`. The number
of basis functions is `len(knots) - degree - 1`.
"""

from __future__ import annotations

import logging
from typing import Any, cast

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp

from ._knots_impl import (
    _compute_insertion_operator_impl,
    _find_span_impl,
    _get_multiplicity_impl,
    _get_unique_knots_and_multiplicity_impl,
    _is_in_domain_impl,
    _snap_knots_impl,
)
from ._utils import _normalize_points_1D
from .errors import InvalidKnotVectorError, OutOfDomainError
from .tolerance import get_domain_tolerance, get_knot_tolerance

logger = logging.getLogger(__name__)


class KnotVector:
    """A clamped, non-decreasing knot vector of a B-spline basis of given degree.

    The knot vector is mutated only through `insert_knot` (which keeps the
    represented spaces nested) and `truncate`. Both change the number of basis
    functions, so callers owning coefficients must transform them in the same
    operation.

    Attributes:
        _knots (npt.NDArray[np.float32 | np.float64]): The knots.
        _degree (int): Polynomial degree of the basis.
        _tol (float): Tolerance under which two knots are the same knot.
    """

    _knots: npt.NDArray[np.float32 | np.float64]
    _degree: int
    _tol: float

    def __init__(
        self,
        knots: npt.ArrayLike,
        degree: int,
        snap_knots: bool = True,
    ) -> None:
        """Initialize a knot vector.

        Args:
            knots (npt.ArrayLike): Knot values. Must be non-decreasing, clamped
                (first and last knots repeated `degree + 1` times) and have at
                least `2 * degree + 2` entries.
            degree (int): Polynomial degree. Must be non-negative.
            snap_knots (bool): Whether to merge knots closer than the knot
                tolerance before validation. Defaults to True.

        Raises:
            TypeError: If knots is not one-dimensional.
            ValueError: If degree is negative.
            InvalidKnotVectorError: If the knots are not a valid clamped knot
                vector for `degree`.
        """
        if degree < 0:
            raise ValueError("degree must be non-negative")

        knots_arr = np.array(knots)
        if knots_arr.ndim != 1:
            raise TypeError("knots must be a 1D array or Python list")
        if knots_arr.dtype not in (np.float32, np.float64):
            if not np.issubdtype(knots_arr.dtype, np.number):
                raise TypeError("knots must be numeric")
            knots_arr = knots_arr.astype(np.float64)

        self._degree = int(degree)
        self._tol = get_knot_tolerance(knots_arr.dtype)

        knots_arr = np.ascontiguousarray(knots_arr)
        if snap_knots and knots_arr.size > 0 and np.all(np.isfinite(knots_arr)):
            knots_arr = _snap_knots_impl(knots_arr, self._tol)

        KnotVector._validate_knots(knots_arr, self._degree, self._tol)
        self._knots = knots_arr

    @staticmethod
    def _validate_knots(
        knots: npt.NDArray[np.float32 | np.float64],
        degree: int,
        tol: float,
    ) -> None:
        """Check that `knots` is a valid clamped knot vector for `degree`.

        Raises:
            InvalidKnotVectorError: If any check fails.
        """
        if knots.size < (2 * degree + 2):
            raise InvalidKnotVectorError("knots must have at least 2*degree+2 elements")

        if not np.all(np.isfinite(knots)):
            raise InvalidKnotVectorError("knots must be finite")

        if not np.all(np.diff(knots) >= 0):
            raise InvalidKnotVectorError("knots must be non-decreasing")

        if knots[-1] - knots[0] < tol:
            raise InvalidKnotVectorError("knots must span a non-empty domain")

        if not (
            np.all(knots[: degree + 1] == knots[0]) and np.all(knots[-degree - 1 :] == knots[-1])
        ):
            raise InvalidKnotVectorError(
                f"first and last knots must have multiplicity {degree + 1} (clamped knot vector)"
            )

        _, mults = _get_unique_knots_and_multiplicity_impl(knots, degree, tol, False)
        max_mult = max(degree, 1)
        if mults[0] != degree + 1 or mults[-1] != degree + 1:
            raise InvalidKnotVectorError(
                f"first and last knots must have multiplicity {degree + 1} (clamped knot vector)"
            )
        if mults.size > 2 and np.any(mults[1:-1] > max_mult):  # noqa: PLR2004
            raise InvalidKnotVectorError(
                f"interior knots must have multiplicity at most {max_mult}"
            )

    def __len__(self) -> int:
        """Number of knots."""
        return int(self._knots.size)

    def __repr__(self) -> str:
        """Readable representation with degree and knots."""
        return f"KnotVector(degree={self._degree}, knots={self._knots.tolist()})"

    @property
    def knots(self) -> npt.NDArray[np.float32 | np.float64]:
        """Get a read-only view of the knots.

        Returns:
            npt.NDArray[np.float32 | np.float64]: The knots.
        """
        view = self._knots.view()
        view.flags.writeable = False
        return view

    @property
    def degree(self) -> int:
        """Get the polynomial degree of the basis.

        Returns:
            int: The degree.
        """
        return self._degree

    @property
    def order(self) -> int:
        """Get the order (degree + 1) of the basis."""
        return self._degree + 1

    @property
    def size(self) -> int:
        """Get the number of knots."""
        return int(self._knots.size)

    @property
    def tolerance(self) -> float:
        """Get the tolerance under which two knots are the same knot."""
        return self._tol

    @property
    def dtype(self) -> np.dtype[Any]:
        """Get the floating-point type of the knots."""
        return self._knots.dtype

    @property
    def num_basis(self) -> int:
        """Get the number of basis functions, `len(knots) - degree - 1`."""
        return int(self._knots.size - self._degree - 1)

    @property
    def lower_bound(self) -> float:
        """Get the first knot of the domain."""
        return float(self._knots[self._degree])

    @property
    def upper_bound(self) -> float:
        """Get the last knot of the domain."""
        return float(self._knots[-self._degree - 1])

    @property
    def domain(self) -> tuple[float, float]:
        """Get the domain as `(lower_bound, upper_bound)`.

        Example:
            >>> KnotVector([0, 0, 0, 1, 2, 2, 2], 2).domain
            (0.0, 2.0)
        """
        return (self.lower_bound, self.upper_bound)

    @property
    def max_interior_multiplicity(self) -> int:
        """Get the largest multiplicity allowed for an interior knot."""
        return max(self._degree, 1)

    def get_unique_knots_and_multiplicity(
        self,
        in_domain: bool = False,
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Get unique knots and their multiplicities.

        Args:
            in_domain (bool): If True, only consider knots in the domain.
                Defaults to False.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]: Tuple of
            (unique_knots, multiplicities).

        Example:
            >>> KnotVector([0, 0, 0, 1, 1, 2, 2, 2], 2).get_unique_knots_and_multiplicity()
            (array([0., 1., 2.]), array([3, 2, 3]))
        """
        return cast(
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]],
            _get_unique_knots_and_multiplicity_impl(
                self._knots, self._degree, self._tol, in_domain
            ),
        )

    def multiplicity(self, value: float) -> int:
        """Get the number of knots equal to `value` (up to the knot tolerance)."""
        return int(_get_multiplicity_impl(self._knots, float(value), self._tol))

    def is_in_domain(self, pts: npt.ArrayLike) -> npt.NDArray[np.bool_]:
        """Check which points lie in the domain, up to the domain tolerance.

        Args:
            pts (npt.ArrayLike): Points to check.

        Returns:
            npt.NDArray[np.bool_]: One flag per point.
        """
        pts_arr = _normalize_points_1D(pts).astype(self.dtype, copy=False)
        tol = get_domain_tolerance(self.dtype)
        return cast(
            npt.NDArray[np.bool_],
            _is_in_domain_impl(self._knots, self._degree, pts_arr, tol),
        )

    def find_span(self, pts: npt.ArrayLike) -> npt.NDArray[np.int_]:
        """Find the knot span index of every point.

        The span `k` satisfies `knots[k] <= x < knots[k+1]`, except at the
        upper bound, which belongs to the last non-empty span.

        Args:
            pts (npt.ArrayLike): Points inside the domain.

        Returns:
            npt.NDArray[np.int_]: Span indices, in `[degree, num_basis - 1]`.

        Raises:
            OutOfDomainError: If any point lies outside the domain.
        """
        pts_arr = self.clip_to_domain(pts)
        return cast(npt.NDArray[np.int_], _find_span_impl(self._knots, self._degree, pts_arr))

    def clip_to_domain(self, pts: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Validate points against the domain and clip those within tolerance of it.

        Args:
            pts (npt.ArrayLike): Points to check.

        Returns:
            npt.NDArray[np.float32 | np.float64]: Contiguous 1D array of points,
            in the knot dtype, lying in `[lower_bound, upper_bound]`.

        Raises:
            OutOfDomainError: If any point lies outside the domain.
        """
        pts_arr = _normalize_points_1D(pts).astype(self.dtype, copy=False)
        tol = get_domain_tolerance(self.dtype)
        if not np.all(_is_in_domain_impl(self._knots, self._degree, pts_arr, tol)):
            raise OutOfDomainError(
                f"One or more values in pts are outside the knot vector domain {self.domain}"
            )
        lower = self._knots[self._degree]
        upper = self._knots[-self._degree - 1]
        return np.ascontiguousarray(np.clip(pts_arr, lower, upper))

    def insert_knot(self, value: float) -> sp.csr_matrix:
        """Insert one knot, keeping the spline space nested (knot refinement).

        The returned operator `T`, of shape `(num_basis + 1, num_basis)`, maps
        coefficients on the old basis to coefficients on the refined basis that
        represent the same function: for any coefficients `c`,
        `sum_i c_i N_i(x) == sum_j (T @ c)_j N'_j(x)` on the whole domain.

        A value within the knot tolerance of an existing knot is snapped to
        that knot.

        Args:
            value (float): Knot to insert.

        Returns:
            sp.csr_matrix: The coefficient transformation.

        Raises:
            OutOfDomainError: If `value` lies outside the domain.
            InvalidKnotVectorError: If the knot multiplicity at `value` would
                exceed `max_interior_multiplicity` (in particular at the domain
                bounds, which are already at multiplicity `degree + 1`).
        """
        value = self._snap_value(float(value))
        lower, upper = self.domain
        if value < lower or value > upper:
            raise OutOfDomainError(f"Cannot insert knot {value} outside the domain {self.domain}")

        if value in (lower, upper) or self.multiplicity(value) >= self.max_interior_multiplicity:
            raise InvalidKnotVectorError(
                f"Inserting knot {value} exceeds the maximum multiplicity "
                f"{self.max_interior_multiplicity} for degree {self._degree}"
            )

        span = int(np.searchsorted(self._knots, value, side="right")) - 1
        rows, cols, vals = _compute_insertion_operator_impl(
            self._knots, self._degree, self._knots.dtype.type(value), span
        )
        num_basis = self.num_basis
        operator = sp.csr_matrix((vals, (rows, cols)), shape=(num_basis + 1, num_basis))
        operator.eliminate_zeros()

        self._knots = np.ascontiguousarray(
            np.insert(self._knots, span + 1, self._knots.dtype.type(value))
        )
        logger.debug(
            "Inserted knot %s (degree %d): %d -> %d basis functions",
            value,
            self._degree,
            num_basis,
            self.num_basis,
        )
        return operator

    def truncate(self, lower: float, upper: float) -> slice:
        """Restrict the knot vector to `[lower, upper]`.

        Knots outside the new bounds are dropped and both ends are clamped
        again. The cut points must be domain bounds or knots of multiplicity at
        least `degree`, which is what refinement with `insert_knot` produces;
        then the retained basis functions, restricted to `[lower, upper]`,
        coincide with the new basis.

        Args:
            lower (float): New lower bound.
            upper (float): New upper bound.

        Returns:
            slice: Indices of the retained basis functions in the old numbering.

        Raises:
            ValueError: If `lower >= upper`.
            OutOfDomainError: If the new bounds are outside the domain.
            InvalidKnotVectorError: If a cut point is not a knot of sufficient
                multiplicity.
        """
        lower = self._snap_value(float(lower))
        upper = self._snap_value(float(upper))
        if lower >= upper:
            raise ValueError("lower must be smaller than upper")
        if lower < self.lower_bound or upper > self.upper_bound:
            raise OutOfDomainError(
                f"Bounds [{lower}, {upper}] are outside the domain {self.domain}"
            )

        degree = self._degree
        min_mult = max(degree, 1)
        if self.multiplicity(lower) < min_mult or self.multiplicity(upper) < min_mult:
            raise InvalidKnotVectorError(
                f"Cannot truncate at [{lower}, {upper}]: cut points must be knots of "
                f"multiplicity at least {min_mult}"
            )

        # Last copy of the lower cut point, and first copy of the upper one.
        last_lower = int(np.searchsorted(self._knots, lower, side="right")) - 1
        first_upper = int(np.searchsorted(self._knots, upper, side="left"))
        begin = last_lower - degree
        end = first_upper + degree

        new_knots = self._knots[begin : end + 1].copy()
        new_knots[: degree + 1] = lower
        new_knots[-degree - 1 :] = upper
        self._knots = np.ascontiguousarray(new_knots)

        return slice(begin, end - degree)

    def is_close(self, other: KnotVector, rtol: float = 0.0, atol: float | None = None) -> bool:
        """Check whether two knot vectors have the same degree and knots.

        Args:
            other (KnotVector): Knot vector to compare with.
            rtol (float): Relative tolerance. Defaults to 0.
            atol (float | None): Absolute tolerance. Defaults to the knot tolerance.

        Returns:
            bool: True if degree and knot sequences match.
        """
        if self._degree != other.degree or len(self) != len(other):
            return False
        atol = self._tol if atol is None else atol
        return bool(np.allclose(self._knots, other.knots, rtol=rtol, atol=atol))

    def copy(self) -> KnotVector:
        """Return an independent copy."""
        new = KnotVector.__new__(KnotVector)
        new._knots = self._knots.copy()
        new._degree = self._degree
        new._tol = self._tol
        return new

    def _snap_value(self, value: float) -> float:
        """Replace `value` by an existing knot lying within the knot tolerance."""
        idx = int(np.argmin(np.abs(self._knots - value)))
        if abs(self._knots[idx] - value) < self._tol:
            return float(self._knots[idx])
        return value


def _validate_knot_input(
    num_intervals: int,
    degree: int,
    continuity: int,
    domain: tuple[float, float],
) -> None:
    """Validate input parameters for uniform knot vector generation.

    Args:
        num_intervals (int): Number of intervals in the domain.
        degree (int): B-spline degree.
        continuity (int): Continuity level at interior knots.
        domain (tuple[float, float]): Domain boundaries as (start, end).

    Raises:
        ValueError: If any parameter is invalid.
    """
    if domain[0] >= domain[1]:
        raise ValueError("domain[0] must be less than domain[1]")

    if num_intervals < 1:
        raise ValueError("num_intervals must be at least 1")

    if degree < 0:
        raise ValueError("degree must be non-negative")

    if degree > 0 and (continuity < 0 or continuity >= degree):
        raise ValueError(f"Continuity must be between 0 and {degree - 1} for degree {degree}.")


def create_uniform_open_knot_vector(
    num_intervals: int,
    degree: int,
    continuity: int | None = None,
    domain: tuple[float, float] | None = None,
    dtype: npt.DTypeLike | None = None,
) -> npt.NDArray[np.float32 | np.float64]:
    """Create a uniform open (clamped) knot vector.

    An open knot vector has the first and last knots repeated (degree+1) times,
    ensuring the B-spline interpolates the first and last coefficients.

    Args:
        num_intervals (int): Number of intervals in the domain. Must be positive.
        degree (int): B-spline degree. Must be non-negative.
        continuity (Optional[int]): Continuity level at interior knots.
            Must be between 0 and degree-1. Defaults to degree-1 (maximum continuity).
        domain (Optional[tuple[float, float]]): Domain boundaries as (start, end).
            Defaults to (0.0, 1.0) if not provided.
        dtype (Optional[npt.DTypeLike]): float32 or float64. Defaults to float64.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Open knot vector with uniform spacing.

    Raises:
        ValueError: If any parameter is invalid.

    Example:
        >>> create_uniform_open_knot_vector(2, 2, domain=(0.0, 1.0))
        array([0., 0., 0., 0.5, 1., 1., 1.])
    """
    dtype_obj = np.dtype(np.float64 if dtype is None else dtype)
    if dtype_obj not in (np.dtype(np.float32), np.dtype(np.float64)):
        raise ValueError("dtype must be float64 or float32")

    start, end = (0.0, 1.0) if domain is None else (float(domain[0]), float(domain[1]))
    continuity = degree - 1 if continuity is None else continuity

    _validate_knot_input(num_intervals, degree, continuity, (start, end))

    unique_knots = np.linspace(start, end, num_intervals + 1, dtype=dtype_obj)
    interior_multiplicity = max(degree - continuity, 1)

    return np.concatenate(
        [
            np.full(degree + 1, unique_knots[0], dtype=dtype_obj),
            np.repeat(unique_knots[1:-1], interior_multiplicity),
            np.full(degree + 1, unique_knots[-1], dtype=dtype_obj),
        ]
    )


def _unique_sorted_coordinates(
    coordinates: npt.ArrayLike, degree: int
) -> npt.NDArray[np.float64]:
    """Sort and deduplicate sample coordinates, checking there are enough of them.

    Raises:
        InvalidKnotVectorError: If there are fewer than `degree + 1` unique coordinates.
    """
    unique = np.unique(np.asarray(coordinates, dtype=np.float64).ravel())
    if not np.all(np.isfinite(unique)):
        raise InvalidKnotVectorError("sample coordinates must be finite")
    if unique.size < max(degree + 1, 2):
        raise InvalidKnotVectorError(
            f"At least {max(degree + 1, 2)} unique sample coordinates are needed for "
            f"degree {degree}, got {unique.size}"
        )
    return unique


def _check_num_intervals(num_intervals: int) -> int:
    """Validate an explicit interval count.

    Raises:
        ValueError: If num_intervals is not a positive integer.
    """
    if isinstance(num_intervals, bool) or not isinstance(num_intervals, int | np.integer):
        raise ValueError(f"num_intervals must be an integer, got {num_intervals!r}")
    if num_intervals < 1:
        raise ValueError(f"num_intervals must be positive, got {num_intervals}")
    return int(num_intervals)


def create_sample_knot_vector(
    coordinates: npt.ArrayLike, degree: int, num_intervals: int | None = None
) -> KnotVector:
    """Create a clamped knot vector whose interior knots follow the samples.

    Without `num_intervals` the number of basis functions equals the number
    of unique coordinates, so a tensor grid of samples yields a square
    (interpolation) system. For odd degrees the interior knots are the sample
    coordinates without the `(degree - 1) / 2` ones following the first and
    preceding the last coordinate ("free" end conditions; not-a-knot for
    cubics). For even degrees they are midpoints of consecutive coordinates.

    With `num_intervals` the interior knots are quantiles of the unique
    coordinates, so that every interval holds a similar share of them. This
    is the choice for scattered samples, where the least-squares system must
    be overdetermined.

    Args:
        coordinates (npt.ArrayLike): Sample coordinates along one dimension.
            Duplicates are ignored.
        degree (int): B-spline degree.
        num_intervals (int | None): Number of knot intervals. Defaults to
            None (one basis function per unique coordinate).

    Returns:
        KnotVector: The knot vector.

    Raises:
        ValueError: If degree is negative or num_intervals is not positive.
        InvalidKnotVectorError: If there are fewer than `degree + 1` unique coordinates.

    Example:
        >>> create_sample_knot_vector([0, 1, 2, 3, 4], 3).knots
        array([0., 0., 0., 0., 2., 4., 4., 4., 4.])
        >>> create_sample_knot_vector([0, 1, 2, 3, 4, 5, 9], 1, num_intervals=2).knots
        array([0., 0., 3., 9., 9.])
    """
    if degree < 0:
        raise ValueError("degree must be non-negative")
    unique = _unique_sorted_coordinates(coordinates, degree)
    num = unique.size

    if num_intervals is not None:
        num_intervals = _check_num_intervals(num_intervals)
        interior = np.quantile(unique, np.linspace(0.0, 1.0, num_intervals + 1)[1:-1])
    elif degree % 2 == 1:
        skip = (degree + 1) // 2
        interior = unique[skip : num - skip]
    else:
        skip = degree // 2
        inner = unique[skip : num - skip]
        interior = 0.5 * (inner[:-1] + inner[1:])

    knots = np.concatenate(
        [
            np.full(degree + 1, unique[0]),
            interior,
            np.full(degree + 1, unique[-1]),
        ]
    )
    return KnotVector(knots, degree)


def create_equidistant_knot_vector(
    coordinates: npt.ArrayLike, degree: int, num_intervals: int | None = None
) -> KnotVector:
    """Create a uniform clamped knot vector over the extent of the samples.

    Args:
        coordinates (npt.ArrayLike): Sample coordinates along one dimension.
        degree (int): B-spline degree.
        num_intervals (int | None): Number of knot intervals. Defaults to
            None, which gives one basis function per unique coordinate.

    Returns:
        KnotVector: The knot vector.

    Raises:
        ValueError: If degree is negative or num_intervals is not positive.
        InvalidKnotVectorError: If there are fewer than `degree + 1` unique coordinates.

    Example:
        >>> create_equidistant_knot_vector([0.0, 0.1, 0.5, 2.0], 2).knots
        array([0., 0., 0., 1., 2., 2., 2.])
    """
    if degree < 0:
        raise ValueError("degree must be non-negative")
    unique = _unique_sorted_coordinates(coordinates, degree)
    if num_intervals is None:
        num_intervals = max(unique.size - degree, 1)
    knots = create_uniform_open_knot_vector(
        _check_num_intervals(num_intervals), degree, domain=(unique[0], unique[-1])
    )
    return KnotVector(knots, degree)


__all__ = [
    "KnotVector",
    "create_equidistant_knot_vector",
    "create_sample_knot_vector",
    "create_uniform_open_knot_vector",
]
