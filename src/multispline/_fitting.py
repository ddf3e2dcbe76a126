"""Assembly and solution of the coefficient systems of fitted B-splines.

Both solvers build the collocation matrix `B` of the tensor-product basis at
the sample points (one row per sample, flat row-major basis numbering). The
plain fit solves `min ||B c - y||` by least squares; the penalized (P-spline)
fit adds a roughness penalty on differences of neighbouring coefficients.
Both assemble sparse normal equations and never form dense matrices of the
size of the coefficient count.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp
import scipy.sparse.linalg

from .errors import DimensionMismatchError, SingularFitError
from .tensor_basis import TensorProductBasis
from .tolerance import get_machine_epsilon, get_rank_tolerance

logger = logging.getLogger(__name__)


def _check_samples(
    basis: TensorProductBasis, points: npt.ArrayLike, values: npt.ArrayLike
) -> tuple[npt.NDArray[np.float32 | np.float64], npt.NDArray[np.float32 | np.float64]]:
    """Convert samples to arrays of the basis dtype and check their shapes.

    Raises:
        DimensionMismatchError: If the points do not have `basis.dim`
            coordinates or do not match the values in number.
    """
    points_arr = np.asarray(points, dtype=basis.dtype)
    if points_arr.ndim == 1 and basis.dim == 1:
        points_arr = points_arr.reshape(-1, 1)
    values_arr = np.asarray(values, dtype=basis.dtype).reshape(-1)
    if points_arr.ndim != 2 or points_arr.shape[1] != basis.dim:  # noqa: PLR2004
        raise DimensionMismatchError(
            f"Expected sample points of shape (num_samples, {basis.dim}), got {points_arr.shape}"
        )
    if points_arr.shape[0] != values_arr.size:
        raise DimensionMismatchError(
            f"Got {points_arr.shape[0]} sample points and {values_arr.size} values"
        )
    return points_arr, values_arr


def _check_solution(coefficients: npt.NDArray[np.float32 | np.float64]) -> None:
    if not np.all(np.isfinite(coefficients)):
        raise SingularFitError("The fitted coefficients are not finite")


def _solve_normal_equations(
    normal: sp.spmatrix,
    rhs: npt.NDArray[np.float64],
    dtype: npt.DTypeLike,
    description: str,
) -> npt.NDArray[np.float64]:
    """Solve a sparse symmetric positive semi-definite system.

    The matrix is scaled to unit diagonal and factorized by sparse LU with
    diagonal pivots, so that the pivots behave like squared singular value
    ratios of the collocation matrix. Pivots below the rank tolerance make
    the system rank deficient; pivots leaving fewer than half of the
    significant digits of `dtype` give a warning.

    Raises:
        SingularFitError: If a coefficient is unconstrained or the system is
            rank deficient.
    """
    normal = sp.csc_matrix(normal, dtype=np.float64)
    diagonal = normal.diagonal()
    unconstrained = np.flatnonzero(diagonal <= 0.0)
    if unconstrained.size > 0:
        raise SingularFitError(
            f"The {description} is rank deficient: {unconstrained.size} coefficients "
            "have no sample in the support of their basis function"
        )

    scaling = sp.diags(1.0 / np.sqrt(diagonal))
    scaled = sp.csc_matrix(scaling @ normal @ scaling)
    try:
        lu = scipy.sparse.linalg.splu(
            scaled,
            permc_spec="MMD_AT_PLUS_A",
            diag_pivot_thresh=0.0,
            options={"SymmetricMode": True},
        )
    except RuntimeError as err:
        raise SingularFitError(f"The {description} is rank deficient (singular)") from err

    min_pivot = float(np.min(np.abs(lu.U.diagonal())))
    if min_pivot <= get_rank_tolerance(dtype):
        raise SingularFitError(
            f"The {description} is rank deficient (smallest pivot {min_pivot:.3e}); "
            "the samples do not determine all coefficients"
        )
    eps = get_machine_epsilon(dtype)
    if eps / min_pivot > np.sqrt(eps):
        warnings.warn(
            f"The {description} is badly conditioned (smallest pivot {min_pivot:.3e}).",
            UserWarning,
            stacklevel=3,
        )

    return scaling @ lu.solve(scaling @ rhs)


def fit_least_squares(
    basis: TensorProductBasis, points: npt.ArrayLike, values: npt.ArrayLike
) -> npt.NDArray[np.float32 | np.float64]:
    """Compute the coefficients minimizing the squared residual at the samples.

    The sparse normal equations `B^T B c = B^T y` are solved, so the cost
    grows with the number of coefficients and not with their square. When
    the samples form a complete grid and the knot vectors were built from its
    coordinates, the system is square and the fit interpolates.

    Args:
        basis (TensorProductBasis): Basis of the fitted spline.
        points (npt.ArrayLike): Sample points of shape (num_samples, dim).
        values (npt.ArrayLike): Sample values of shape (num_samples,).

    Returns:
        npt.NDArray[np.float32 | np.float64]: Flat coefficient vector of
        length `basis.num_total_basis`.

    Raises:
        DimensionMismatchError: If samples and basis do not match.
        OutOfDomainError: If a sample lies outside the basis domain.
        SingularFitError: If the collocation matrix is rank deficient or the
            solution is not finite.
    """
    points_arr, values_arr = _check_samples(basis, points, values)
    num_basis = basis.num_total_basis
    if points_arr.shape[0] < num_basis:
        raise SingularFitError(
            f"{points_arr.shape[0]} samples cannot determine {num_basis} coefficients"
        )

    collocation = basis.collocation_matrix(points_arr).astype(np.float64)
    coefficients = _solve_normal_equations(
        collocation.T @ collocation,
        collocation.T @ values_arr.astype(np.float64),
        basis.dtype,
        "collocation matrix",
    )

    logger.debug(
        "Least-squares fit: %d samples, %d coefficients, %d nonzeros",
        points_arr.shape[0],
        num_basis,
        collocation.nnz,
    )
    _check_solution(coefficients)
    return np.ascontiguousarray(coefficients, dtype=basis.dtype)


def _difference_matrix(size: int, order: int) -> sp.csr_matrix:
    """Sparse `order`-th forward difference operator of shape (size - order, size)."""
    diff = sp.identity(size, format="csr")
    for _ in range(order):
        diff = sp.csr_matrix(diff[1:] - diff[:-1])
    return diff


def roughness_penalty(basis: TensorProductBasis) -> sp.csr_matrix:
    """Assemble the roughness penalty `sum_k P_k^T P_k` of the coefficients.

    `P_k` takes second-order differences of neighbouring coefficients along
    axis `k` (first order when that axis has two basis functions; an axis
    with a single basis function is not penalized).

    Args:
        basis (TensorProductBasis): Basis of the fitted spline.

    Returns:
        sp.csr_matrix: Symmetric matrix of shape (num_total_basis, num_total_basis).
    """
    num_basis = basis.num_basis
    total = basis.num_total_basis
    penalty = sp.csr_matrix((total, total))
    for axis, size in enumerate(num_basis):
        order = min(2, size - 1)
        if order <= 0:
            continue
        before = int(np.prod(num_basis[:axis]))
        after = int(np.prod(num_basis[axis + 1 :]))
        diff = sp.kron(
            sp.kron(sp.identity(before), _difference_matrix(size, order)), sp.identity(after)
        )
        penalty = penalty + (diff.T @ diff)
    return sp.csr_matrix(penalty)


def fit_penalized(
    basis: TensorProductBasis,
    points: npt.ArrayLike,
    values: npt.ArrayLike,
    smoothing: float,
) -> npt.NDArray[np.float32 | np.float64]:
    """Compute P-spline coefficients.

    Solves `(B^T B + smoothing * R) c = B^T y`, with `R` the roughness
    penalty of `roughness_penalty`, by a sparse factorization of the
    symmetric system. The penalty constrains coefficients whose basis
    functions hold no sample, so incomplete grids can be fitted.

    Args:
        basis (TensorProductBasis): Basis of the fitted spline.
        points (npt.ArrayLike): Sample points of shape (num_samples, dim).
        values (npt.ArrayLike): Sample values of shape (num_samples,).
        smoothing (float): Penalty weight. Must be non-negative; zero gives
            the normal equations of the plain least-squares fit.

    Returns:
        npt.NDArray[np.float32 | np.float64]: Flat coefficient vector.

    Raises:
        ValueError: If smoothing is negative or not finite.
        DimensionMismatchError: If samples and basis do not match.
        OutOfDomainError: If a sample lies outside the basis domain.
        SingularFitError: If the penalized system is rank deficient.
    """
    if not np.isfinite(smoothing) or smoothing < 0.0:
        raise ValueError(f"smoothing must be a non-negative number, got {smoothing}")

    points_arr, values_arr = _check_samples(basis, points, values)
    if smoothing == 0.0 and points_arr.shape[0] < basis.num_total_basis:
        raise SingularFitError(
            f"{points_arr.shape[0]} samples cannot determine {basis.num_total_basis} "
            "coefficients without smoothing"
        )
    collocation = basis.collocation_matrix(points_arr).astype(np.float64)
    lhs = collocation.T @ collocation
    if smoothing > 0.0:
        lhs = lhs + smoothing * roughness_penalty(basis)
    coefficients = _solve_normal_equations(
        lhs,
        collocation.T @ values_arr.astype(np.float64),
        basis.dtype,
        "penalized system",
    )

    logger.debug(
        "Penalized fit: %d samples, %d coefficients, smoothing %g",
        points_arr.shape[0],
        basis.num_total_basis,
        smoothing,
    )
    _check_solution(coefficients)
    return np.ascontiguousarray(coefficients, dtype=basis.dtype)


__all__ = ["fit_least_squares", "fit_penalized", "roughness_penalty"]
