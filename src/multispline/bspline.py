"""Scalar-valued multivariate tensor-product B-splines."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt

from ._domain_reduction import apply_along_axis, reduce_domain
from ._fitting import fit_least_squares, fit_penalized
from ._utils import _normalize_points
from .datatable import DataTable
from .errors import DimensionMismatchError
from .knots import KnotVector, create_equidistant_knot_vector, create_sample_knot_vector
from .tensor_basis import TensorProductBasis
from .tolerance import get_comparison_tolerance

logger = logging.getLogger(__name__)


class BsplineType(Enum):
    """Degree of a fitted B-spline.

    The "free" variants build their knots from the sample coordinates without
    imposing end conditions on derivatives.
    """

    LINEAR = 1
    QUADRATIC_FREE = 2
    CUBIC_FREE = 3

    @property
    def degree(self) -> int:
        """Get the polynomial degree in every dimension."""
        return int(self.value)


class KnotSpacing(Enum):
    """Placement of the knots of a fitted B-spline."""

    AS_SAMPLED = "as_sampled"
    EQUIDISTANT = "equidistant"


class Bspline:
    """A scalar function `f(x) = sum_i c_i B_i(x)` on a tensor-product basis.

    Coefficients are stored flat, in the row-major numbering of the basis.
    Evaluation never modifies the spline; `insert_knot` and `reduce_domain`
    modify it in place, transforming basis and coefficients together.

    Attributes:
        _basis (TensorProductBasis): The tensor-product basis.
        _coefficients (npt.NDArray[np.float32 | np.float64]): Flat coefficients.
    """

    _basis: TensorProductBasis
    _coefficients: npt.NDArray[np.float32 | np.float64]

    def __init__(self, basis: TensorProductBasis, coefficients: npt.ArrayLike) -> None:
        """Initialize a B-spline.

        Args:
            basis (TensorProductBasis): The tensor-product basis. It is
                copied, so later changes to `basis` do not affect the spline.
            coefficients (npt.ArrayLike): One coefficient per basis function,
                flat or shaped as `basis.num_basis`.

        Raises:
            DimensionMismatchError: If the number of coefficients differs from
                `basis.num_total_basis`.
            ValueError: If a coefficient is not finite.
        """
        coefficients_arr = np.array(coefficients, dtype=basis.dtype).reshape(-1)
        if coefficients_arr.size != basis.num_total_basis:
            raise DimensionMismatchError(
                f"The number of coefficients must equal the number of basis functions. "
                f"Got {coefficients_arr.size} coefficients and {basis.num_total_basis} "
                "basis functions."
            )
        if not np.all(np.isfinite(coefficients_arr)):
            raise ValueError("coefficients must be finite")

        self._basis = basis.copy()
        self._coefficients = np.ascontiguousarray(coefficients_arr)

    @classmethod
    def fit(
        cls,
        samples: DataTable,
        bspline_type: BsplineType = BsplineType.CUBIC_FREE,
        knot_spacing: KnotSpacing = KnotSpacing.AS_SAMPLED,
        smoothing: float | None = None,
        num_intervals: int | Sequence[int] | None = None,
    ) -> Bspline:
        """Fit a B-spline to samples.

        One knot vector per dimension is built from that dimension's sample
        coordinates. Without `num_intervals` it has one basis function per
        unique coordinate, so that a complete grid of samples gives as many
        coefficients as samples and the fit interpolates. Scattered samples
        need `num_intervals`: the knots then span the sample extent with that
        many intervals (at coordinate quantiles for AS_SAMPLED, uniformly for
        EQUIDISTANT) and the coefficients solve an overdetermined
        least-squares problem. With smoothing the coefficients solve the
        P-spline system instead.

        Args:
            samples (DataTable): The samples.
            bspline_type (BsplineType): Degree of the spline. Defaults to CUBIC_FREE.
            knot_spacing (KnotSpacing): Knot placement. Defaults to AS_SAMPLED.
            smoothing (float | None): P-spline penalty weight. Defaults to None
                (plain least squares).
            num_intervals (int | Sequence[int] | None): Knot intervals, for all
                dimensions or one count per dimension. Defaults to None.

        Returns:
            Bspline: The fitted spline.

        Raises:
            ValueError: If there are no samples, smoothing is negative or an
                interval count is not positive.
            DimensionMismatchError: If `num_intervals` does not have one entry
                per dimension.
            InvalidKnotVectorError: If some dimension has fewer than
                `degree + 1` unique coordinates.
            SingularFitError: If the coefficients are not determined by the samples.

        Example:
            >>> pts = np.random.default_rng(0).uniform(0.0, 2.0, size=(2000, 2))
            >>> table = DataTable.from_arrays(pts, pts[:, 0] * pts[:, 1])
            >>> Bspline.fit(table, num_intervals=8).basis.num_basis
            (11, 11)
        """
        if samples.num_samples == 0:
            raise ValueError("Cannot fit a B-spline without samples")

        degree = BsplineType(bspline_type).degree
        spacing = KnotSpacing(knot_spacing)
        dim = samples.num_variables
        if num_intervals is None:
            intervals: list[int | None] = [None] * dim
            if not samples.is_grid_complete():
                warnings.warn(
                    "The samples do not form a complete grid of their coordinates; "
                    "pass num_intervals to fit scattered samples.",
                    UserWarning,
                    stacklevel=2,
                )
        elif isinstance(num_intervals, int | np.integer):
            intervals = [num_intervals] * dim  # type: ignore[list-item]
        else:
            intervals = list(num_intervals)
            if len(intervals) != dim:
                raise DimensionMismatchError(
                    f"Expected {dim} interval counts, got {len(intervals)}"
                )

        create = (
            create_sample_knot_vector
            if spacing is KnotSpacing.AS_SAMPLED
            else create_equidistant_knot_vector
        )
        basis = TensorProductBasis.from_knot_vectors(
            create(samples.unique_coordinates(axis), degree, intervals[axis])
            for axis in range(dim)
        )

        points, values = samples.points, samples.values
        if smoothing is None:
            coefficients = fit_least_squares(basis, points, values)
        else:
            coefficients = fit_penalized(basis, points, values, float(smoothing))

        logger.debug(
            "Fitted degree %d B-spline to %d samples (%s knots, num_basis=%s)",
            degree,
            samples.num_samples,
            spacing.value,
            basis.num_basis,
        )
        return cls(basis, coefficients)

    @property
    def dim(self) -> int:
        """Get the number of variables."""
        return self._basis.dim

    @property
    def degrees(self) -> tuple[int, ...]:
        """Get the degree of every dimension."""
        return self._basis.degrees

    @property
    def basis(self) -> TensorProductBasis:
        """Get a copy of the tensor-product basis.

        The spline owns its knot vectors; they change only through
        `insert_knot` and `reduce_domain`.
        """
        return self._basis.copy()

    @property
    def knot_vectors(self) -> tuple[KnotVector, ...]:
        """Get copies of the knot vectors, one per dimension."""
        return tuple(kv.copy() for kv in self._basis.knot_vectors)

    @property
    def dtype(self) -> np.dtype[Any]:
        """Get the floating-point type of knots and coefficients."""
        return self._basis.dtype

    @property
    def coefficients(self) -> npt.NDArray[np.float32 | np.float64]:
        """Get a read-only view of the flat coefficients."""
        view = self._coefficients.view()
        view.flags.writeable = False
        return view

    @property
    def num_coefficients(self) -> int:
        """Get the number of coefficients."""
        return int(self._coefficients.size)

    @property
    def domain_lower_bound(self) -> npt.NDArray[np.float64]:
        """Get the lower domain bound of every dimension."""
        return self._basis.lower_bound

    @property
    def domain_upper_bound(self) -> npt.NDArray[np.float64]:
        """Get the upper domain bound of every dimension."""
        return self._basis.upper_bound

    @property
    def domain(self) -> npt.NDArray[np.float64]:
        """Get the domain as an array of shape (dim, 2)."""
        return self._basis.domain

    def __repr__(self) -> str:
        """Readable summary."""
        return (
            f"Bspline(dim={self.dim}, degrees={self.degrees}, "
            f"num_basis={self._basis.num_basis}, domain={self.domain.tolist()})"
        )

    def evaluate(self, pts: npt.ArrayLike) -> float | npt.NDArray[np.float32 | np.float64]:
        """Evaluate the spline.

        Args:
            pts (npt.ArrayLike): One point with `dim` coordinates, or an array
                of shape (num_pts, dim).

        Returns:
            float | npt.NDArray[np.float32 | np.float64]: The value at a single
            point, or an array of shape (num_pts,).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point lies outside the domain.

        Example:
            >>> spline = Bspline.fit(samples)
            >>> spline.evaluate([1.0, 1.0])
            3.2333...
        """
        pts_arr, is_single = _normalize_points(pts, self.dim)
        values, indices = self._basis.evaluate(pts_arr)
        result = np.sum(values * self._coefficients[indices], axis=1)
        return float(result[0]) if is_single else result

    def __call__(self, pts: npt.ArrayLike) -> float | npt.NDArray[np.float32 | np.float64]:
        """Evaluate the spline; see `evaluate`."""
        return self.evaluate(pts)

    def evaluate_jacobian(self, pts: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Evaluate the gradient of the spline.

        Args:
            pts (npt.ArrayLike): One point with `dim` coordinates, or an array
                of shape (num_pts, dim).

        Returns:
            npt.NDArray[np.float32 | np.float64]: Array of shape (1, dim) for a
            single point, (num_pts, dim) otherwise.

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point lies outside the domain.
        """
        pts_arr, _ = _normalize_points(pts, self.dim)
        values, indices = self._basis.evaluate_jacobian(pts_arr)
        return np.einsum("nds,ns->nd", values, self._coefficients[indices])

    def evaluate_hessian(self, pts: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
        """Evaluate the matrix of second partial derivatives of the spline.

        Args:
            pts (npt.ArrayLike): One point with `dim` coordinates, or an array
                of shape (num_pts, dim).

        Returns:
            npt.NDArray[np.float32 | np.float64]: Array of shape (dim, dim) for
            a single point, (num_pts, dim, dim) otherwise.

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point lies outside the domain.
        """
        pts_arr, is_single = _normalize_points(pts, self.dim)
        values, indices = self._basis.evaluate_hessian(pts_arr)
        hessian = np.einsum("nkls,ns->nkl", values, self._coefficients[indices])
        return hessian[0] if is_single else hessian

    def copy(self) -> Bspline:
        """Return an independent copy (knot vectors and coefficients are copied)."""
        return Bspline(self._basis, self._coefficients)

    def insert_knot(self, axis: int, value: float) -> None:
        """Insert a knot in one dimension without changing the function.

        Args:
            axis (int): Dimension to refine.
            value (float): Knot to insert, inside the domain along `axis`.

        Raises:
            IndexError: If axis is out of range.
            OutOfDomainError: If value is outside the domain.
            InvalidKnotVectorError: If the knot multiplicity would become too large.
        """
        if not 0 <= axis < self.dim:
            raise IndexError(f"axis {axis} out of range for dimension {self.dim}")

        tensor = self._coefficients.reshape(self._basis.num_basis)
        operator = self._basis.knot_vectors[axis].insert_knot(value)
        self._coefficients = apply_along_axis(operator, tensor, axis).reshape(-1)

    def reduce_domain(self, lower: npt.ArrayLike, upper: npt.ArrayLike) -> None:
        """Restrict the spline to the box `[lower, upper]`, in place.

        The restricted spline equals the original one on the new box. The
        operation is atomic: if it fails, the spline is left unchanged.

        Args:
            lower (npt.ArrayLike): New lower bound of every dimension.
            upper (npt.ArrayLike): New upper bound of every dimension.

        Raises:
            DimensionMismatchError: If a bound does not have `dim` entries.
            ValueError: If `lower[k] >= upper[k]` for some dimension.
            OutOfDomainError: If the box is not inside the current domain.
        """
        basis, coefficients = reduce_domain(self._basis, self._coefficients, lower, upper)
        self._basis = basis
        self._coefficients = coefficients

    def is_identical(
        self, other: Bspline, rtol: float = 0.0, atol: float | None = None
    ) -> bool:
        """Check whether two splines have the same degrees, knots and coefficients.

        Args:
            other (Bspline): Spline to compare with.
            rtol (float): Relative tolerance. Defaults to 0.
            atol (float | None): Absolute tolerance. Defaults to the
                comparison tolerance of the knot dtype.

        Returns:
            bool: True if both splines have the same structure and data.
        """
        if self.dim != other.dim or self.degrees != other.degrees:
            return False
        atol = get_comparison_tolerance(self.dtype) if atol is None else atol
        if not all(
            kv.is_close(other_kv, rtol=rtol, atol=atol)
            for kv, other_kv in zip(
                self._basis.knot_vectors, other._basis.knot_vectors, strict=True
            )
        ):
            return False
        return bool(
            np.allclose(self._coefficients, other.coefficients, rtol=rtol, atol=atol)
        )


__all__ = ["Bspline", "BsplineType", "KnotSpacing"]
