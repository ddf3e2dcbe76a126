"""Univariate B-spline basis evaluation on a `KnotVector`."""

from __future__ import annotations

import numpy as np
from numpy import typing as npt

from ._basis_impl import _tabulate_basis_derivatives_impl
from ._knots_impl import _find_span_impl
from .knots import KnotVector


class BsplineBasis1D:
    """The B-spline basis of one dimension.

    The basis holds no state besides a reference to its knot vector: refining
    or truncating the knot vector changes the basis accordingly. At any point
    exactly `degree + 1` basis functions may be nonzero; evaluations return
    those values together with the index of the first of them.

    Attributes:
        _knot_vector (KnotVector): Knot vector defining the basis.
    """

    _knot_vector: KnotVector

    def __init__(self, knot_vector: KnotVector) -> None:
        """Initialize the basis.

        Args:
            knot_vector (KnotVector): Knot vector defining the basis. It is
                referenced, not copied.
        """
        self._knot_vector = knot_vector

    @property
    def knot_vector(self) -> KnotVector:
        """Get the knot vector defining the basis."""
        return self._knot_vector

    @property
    def degree(self) -> int:
        """Get the polynomial degree of the basis."""
        return self._knot_vector.degree

    @property
    def order(self) -> int:
        """Get the number of nonzero basis functions at a point (degree + 1)."""
        return self._knot_vector.order

    @property
    def num_basis(self) -> int:
        """Get the number of basis functions."""
        return self._knot_vector.num_basis

    @property
    def domain(self) -> tuple[float, float]:
        """Get the domain `(lower_bound, upper_bound)`."""
        return self._knot_vector.domain

    def tabulate_derivatives(
        self, pts: npt.ArrayLike, max_order: int
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate the nonzero basis functions and their derivatives up to `max_order`.

        Args:
            pts (npt.ArrayLike): Evaluation points, all inside the domain.
            max_order (int): Highest derivative order. Must be non-negative.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Tuple containing:
                - values: array of shape (num_pts, max_order + 1, degree + 1);
                  `values[i, k, r]` is the k-th derivative of basis function
                  `first_indices[i] + r` at the i-th point.
                - first_indices: array of shape (num_pts,) with the index of the
                  first nonzero basis function at each point.

        Raises:
            ValueError: If max_order is negative.
            OutOfDomainError: If any point is outside the domain.
        """
        if max_order < 0:
            raise ValueError("derivative order must be non-negative")

        knot_vector = self._knot_vector
        pts_arr = knot_vector.clip_to_domain(pts)
        knots = knot_vector.knots
        degree = knot_vector.degree

        spans = _find_span_impl(knots, degree, pts_arr)
        values = np.empty((pts_arr.size, max_order + 1, degree + 1), dtype=knots.dtype)
        _tabulate_basis_derivatives_impl(knots, degree, spans, pts_arr, int(max_order), values)

        return values, spans - degree

    def evaluate(
        self, pts: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate the nonzero basis functions at the given points.

        Args:
            pts (npt.ArrayLike): Evaluation points, all inside the domain.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Basis values of shape (num_pts, degree + 1) and first basis indices
            of shape (num_pts,).

        Raises:
            OutOfDomainError: If any point is outside the domain.

        Example:
            >>> kv = KnotVector([0, 0, 0, 0.25, 0.7, 0.7, 1, 1, 1], 2)
            >>> BsplineBasis1D(kv).evaluate([0.5, 1.0])
            (array([[0.12698413, 0.5643739 , 0.30864198],
                    [0.        , 0.        , 1.        ]]),
             array([1, 3]))
        """
        values, first = self.tabulate_derivatives(pts, 0)
        return values[:, 0, :], first

    def evaluate_derivatives(
        self, pts: npt.ArrayLike, order: int
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate the `order`-th derivative of the nonzero basis functions.

        Derivatives of order higher than the degree vanish identically.

        Args:
            pts (npt.ArrayLike): Evaluation points, all inside the domain.
            order (int): Derivative order. Must be non-negative.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Derivative values of shape (num_pts, degree + 1) and first basis
            indices of shape (num_pts,).

        Raises:
            ValueError: If order is negative.
            OutOfDomainError: If any point is outside the domain.
        """
        values, first = self.tabulate_derivatives(pts, order)
        return values[:, order, :], first
