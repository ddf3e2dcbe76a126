"""Tensor-product B-spline basis built from one univariate basis per dimension.

The multivariate basis function with multi-index `(i_0, ..., i_{d-1})` is the
product of the univariate basis functions `i_k` of every dimension `k`. Basis
functions (and therefore spline coefficients) are numbered in row-major order:
the multi-index `(i_0, ..., i_{d-1})` has flat index
`sum_k i_k * prod_{j > k} n_j`, the last dimension varying fastest. Every
component of the package relies on this single numbering.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, cast

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp

from ._utils import _normalize_points
from .basis_1D import BsplineBasis1D
from .errors import DimensionMismatchError, OutOfDomainError
from .knots import KnotVector


def _outer_product(
    factors: Sequence[npt.NDArray[np.float32 | np.float64]],
) -> npt.NDArray[np.float32 | np.float64]:
    """Combine per-dimension arrays of shape (num_pts, order_k) into their outer product.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Array of shape
        (num_pts, order_0, ..., order_{d-1}).
    """
    num_pts = factors[0].shape[0]
    result = factors[0]
    for dir in range(1, len(factors)):
        expanded_dir_shape = (num_pts,) + ((1,) * dir) + (factors[dir].shape[1],)
        result = result[..., np.newaxis] * factors[dir].reshape(expanded_dir_shape)
    return result


class TensorProductBasis:
    """A multivariate tensor-product B-spline basis.

    Attributes:
        _bases (tuple[BsplineBasis1D, ...]): Univariate bases, one per dimension.
    """

    _bases: tuple[BsplineBasis1D, ...]

    def __init__(self, bases: Iterable[BsplineBasis1D]) -> None:
        """Initialize the tensor-product basis.

        Args:
            bases (Iterable[BsplineBasis1D]): Univariate bases, one per dimension.

        Raises:
            ValueError: If no basis is given or the bases have different dtypes.
        """
        self._bases = tuple(bases)
        if len(self._bases) == 0:
            raise ValueError("At least one univariate basis is required")
        if not all(basis.knot_vector.dtype == self.dtype for basis in self._bases):
            raise ValueError("All univariate bases must have the same data type.")

    @classmethod
    def from_knot_vectors(cls, knot_vectors: Iterable[KnotVector]) -> TensorProductBasis:
        """Create the basis from one knot vector per dimension (referenced, not copied)."""
        return cls(BsplineBasis1D(knot_vector) for knot_vector in knot_vectors)

    @property
    def dim(self) -> int:
        """Get the number of dimensions."""
        return len(self._bases)

    @property
    def bases(self) -> tuple[BsplineBasis1D, ...]:
        """Get the univariate bases."""
        return self._bases

    @property
    def knot_vectors(self) -> tuple[KnotVector, ...]:
        """Get the knot vectors, one per dimension."""
        return tuple(basis.knot_vector for basis in self._bases)

    @property
    def dtype(self) -> np.dtype[Any]:
        """Get the floating-point type of the knot vectors."""
        return self._bases[0].knot_vector.dtype

    @property
    def degrees(self) -> tuple[int, ...]:
        """Get the degree of every dimension."""
        return tuple(basis.degree for basis in self._bases)

    @property
    def orders(self) -> tuple[int, ...]:
        """Get the order (degree + 1) of every dimension."""
        return tuple(basis.order for basis in self._bases)

    @property
    def num_basis(self) -> tuple[int, ...]:
        """Get the number of basis functions of every dimension."""
        return tuple(basis.num_basis for basis in self._bases)

    @property
    def num_total_basis(self) -> int:
        """Get the total number of basis functions, the product of `num_basis`."""
        return int(np.prod(self.num_basis))

    @property
    def num_local_basis(self) -> int:
        """Get the number of basis functions that may be nonzero at a point."""
        return int(np.prod(self.orders))

    @property
    def lower_bound(self) -> npt.NDArray[np.float64]:
        """Get the lower domain bound of every dimension."""
        return np.array([basis.domain[0] for basis in self._bases], dtype=np.float64)

    @property
    def upper_bound(self) -> npt.NDArray[np.float64]:
        """Get the upper domain bound of every dimension."""
        return np.array([basis.domain[1] for basis in self._bases], dtype=np.float64)

    @property
    def domain(self) -> npt.NDArray[np.float64]:
        """Get the domain as an array of shape (dim, 2) with lower and upper bounds."""
        return np.stack([self.lower_bound, self.upper_bound], axis=1)

    def ravel_multi_index(self, multi_index: npt.ArrayLike) -> npt.NDArray[np.int_]:
        """Map multi-indices to flat (row-major) basis indices.

        Args:
            multi_index (npt.ArrayLike): Integer array whose last axis has
                length `dim`.

        Returns:
            npt.NDArray[np.int_]: Flat indices, with the shape of `multi_index`
            without its last axis.

        Raises:
            DimensionMismatchError: If the last axis does not have length `dim`.

        Example:
            >>> basis.num_basis
            (3, 4)
            >>> basis.ravel_multi_index([[0, 0], [0, 3], [1, 0], [2, 3]])
            array([ 0,  3,  4, 11])
        """
        multi = np.asarray(multi_index, dtype=np.int_)
        if multi.shape[-1] != self.dim:
            raise DimensionMismatchError(
                f"multi-indices must have {self.dim} entries, got {multi.shape[-1]}"
            )
        return cast(
            npt.NDArray[np.int_],
            np.ravel_multi_index(tuple(np.moveaxis(multi, -1, 0)), self.num_basis),
        )

    def unravel_index(self, flat_index: npt.ArrayLike) -> npt.NDArray[np.int_]:
        """Map flat basis indices back to multi-indices.

        Args:
            flat_index (npt.ArrayLike): Flat indices.

        Returns:
            npt.NDArray[np.int_]: Multi-indices, with a trailing axis of length `dim`.
        """
        flat = np.asarray(flat_index, dtype=np.int_)
        return np.stack(np.unravel_index(flat, self.num_basis), axis=-1)

    def _flat_indices(self, first_indices: Sequence[npt.NDArray[np.int_]]) -> npt.NDArray[np.int_]:
        """Flat indices of the nonzero basis functions, laid out like `_outer_product`.

        Args:
            first_indices (Sequence[npt.NDArray[np.int_]]): Per dimension, the
                first nonzero univariate basis index of every point.

        Returns:
            npt.NDArray[np.int_]: Array of shape (num_pts, num_local_basis).
        """
        num_basis = self.num_basis
        num_pts = first_indices[0].shape[0]
        strides = np.cumprod((1,) + num_basis[:0:-1])[::-1]

        flat = np.zeros((num_pts,) + ((1,) * self.dim), dtype=np.int_)
        for dir, (first, order) in enumerate(zip(first_indices, self.orders, strict=True)):
            shape = [1] * (self.dim + 1)
            shape[0] = num_pts
            shape[dir + 1] = order
            local = (first[:, np.newaxis] + np.arange(order)) * strides[dir]
            flat = flat + local.reshape(shape)
        return flat.reshape(num_pts, -1)

    def _tabulate(
        self, pts: npt.ArrayLike, max_orders: Sequence[int]
    ) -> tuple[list[npt.NDArray[np.float32 | np.float64]], npt.NDArray[np.int_]]:
        """Tabulate univariate derivatives up to `max_orders[k]` in every dimension.

        Returns:
            tuple[list[npt.NDArray[np.float32 | np.float64]], npt.NDArray[np.int_]]:
            Per dimension, an array of shape (num_pts, max_orders[k] + 1, order_k),
            and the flat indices of shape (num_pts, num_local_basis).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point is outside the domain.
        """
        pts_arr, _ = _normalize_points(pts, self.dim)

        for dir, basis in enumerate(self._bases):
            if not np.all(basis.knot_vector.is_in_domain(pts_arr[:, dir])):
                raise OutOfDomainError(
                    f"One or more values in pts[:, {dir}] are outside the knot vector"
                    f" domain {basis.domain}"
                )

        tables = []
        first_indices = []
        for dir, basis in enumerate(self._bases):
            values, first = basis.tabulate_derivatives(pts_arr[:, dir], max_orders[dir])
            tables.append(values)
            first_indices.append(first)

        return tables, self._flat_indices(first_indices)

    def evaluate(
        self, pts: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate the nonzero tensor-product basis functions.

        Args:
            pts (npt.ArrayLike): A point with `dim` coordinates or an array of
                shape (num_pts, dim).

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Basis values and their flat basis indices, both of shape
            (num_pts, num_local_basis).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point is outside the domain.
        """
        return self.evaluate_derivatives(pts, (0,) * self.dim)

    def evaluate_derivatives(
        self, pts: npt.ArrayLike, orders: Sequence[int]
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate a mixed partial derivative of the nonzero basis functions.

        Args:
            pts (npt.ArrayLike): A point with `dim` coordinates or an array of
                shape (num_pts, dim).
            orders (Sequence[int]): Derivative order in every dimension.

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Derivative values and their flat basis indices, both of shape
            (num_pts, num_local_basis).

        Raises:
            ValueError: If any order is negative.
            DimensionMismatchError: If `orders` or the points do not have `dim` entries.
            OutOfDomainError: If any point is outside the domain.
        """
        orders = tuple(int(order) for order in orders)
        if len(orders) != self.dim:
            raise DimensionMismatchError(f"orders must have {self.dim} entries")

        tables, indices = self._tabulate(pts, orders)
        factors = [table[:, order, :] for table, order in zip(tables, orders, strict=True)]
        values = _outer_product(factors).reshape(indices.shape)
        return values, indices

    def evaluate_jacobian(
        self, pts: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate the gradient of the nonzero basis functions.

        Row `k` holds the basis values with dimension `k`'s univariate factor
        replaced by its first derivative (product rule).

        Args:
            pts (npt.ArrayLike): A point with `dim` coordinates or an array of
                shape (num_pts, dim).

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Values of shape (num_pts, dim, num_local_basis) and flat basis
            indices of shape (num_pts, num_local_basis).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point is outside the domain.
        """
        tables, indices = self._tabulate(pts, (1,) * self.dim)
        num_pts, num_local = indices.shape

        values = np.empty((num_pts, self.dim, num_local), dtype=tables[0].dtype)
        for row in range(self.dim):
            factors = [table[:, int(dir == row), :] for dir, table in enumerate(tables)]
            values[:, row, :] = _outer_product(factors).reshape(num_pts, num_local)
        return values, indices

    def evaluate_hessian(
        self, pts: npt.ArrayLike
    ) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
        """Evaluate all second partial derivatives of the nonzero basis functions.

        Args:
            pts (npt.ArrayLike): A point with `dim` coordinates or an array of
                shape (num_pts, dim).

        Returns:
            tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.int_]]:
            Values of shape (num_pts, dim, dim, num_local_basis) and flat basis
            indices of shape (num_pts, num_local_basis).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point is outside the domain.
        """
        tables, indices = self._tabulate(pts, (2,) * self.dim)
        num_pts, num_local = indices.shape

        values = np.empty((num_pts, self.dim, self.dim, num_local), dtype=tables[0].dtype)
        for row in range(self.dim):
            for col in range(row, self.dim):
                factors = [
                    table[:, int(dir == row) + int(dir == col), :]
                    for dir, table in enumerate(tables)
                ]
                block = _outer_product(factors).reshape(num_pts, num_local)
                values[:, row, col, :] = block
                values[:, col, row, :] = block
        return values, indices

    def collocation_matrix(self, pts: npt.ArrayLike) -> sp.csr_matrix:
        """Assemble the sparse matrix of all basis functions evaluated at the points.

        Row `j` holds the values of the basis functions at the j-th point, in
        the flat basis numbering; it has at most `num_local_basis` nonzeros.

        Args:
            pts (npt.ArrayLike): Array of shape (num_pts, dim).

        Returns:
            sp.csr_matrix: Matrix of shape (num_pts, num_total_basis).

        Raises:
            DimensionMismatchError: If the points do not have `dim` coordinates.
            OutOfDomainError: If any point is outside the domain.
        """
        values, indices = self.evaluate(pts)
        num_pts, num_local = indices.shape
        rows = np.repeat(np.arange(num_pts), num_local)
        return sp.csr_matrix(
            (values.ravel(), (rows, indices.ravel())),
            shape=(num_pts, self.num_total_basis),
        )

    def copy(self) -> TensorProductBasis:
        """Return an independent copy (knot vectors are copied)."""
        return TensorProductBasis.from_knot_vectors(kv.copy() for kv in self.knot_vectors)
