"""Utility functions for normalizing evaluation points."""

import numpy as np
from numpy import typing as npt

from .errors import DimensionMismatchError


def _normalize_points_1D(pts: npt.ArrayLike) -> npt.NDArray[np.float32 | np.float64]:
    """Normalize points to a contiguous 1D float array.

    Types different from float32 or float64 are converted to float64.
    Scalars become one-element arrays and multi-dimensional arrays are
    flattened.

    Returns:
        A contiguous 1D numpy array with float32 or float64 dtype.
    """
    if not isinstance(pts, np.ndarray):
        pts = np.array(pts)

    if pts.dtype not in (np.float32, np.float64):
        pts = pts.astype(np.float64)

    if pts.ndim != 1:
        pts = pts.reshape(-1)

    return np.ascontiguousarray(pts)


def _normalize_points(
    pts: npt.ArrayLike, dim: int
) -> tuple[npt.NDArray[np.float32 | np.float64], bool]:
    """Normalize points to a 2D array with shape (num_pts, dim).

    A 1D input of length `dim` is interpreted as a single point. For `dim == 1`
    a 1D input is interpreted as a batch of scalar coordinates, unless it has a
    single entry.

    Args:
        pts (npt.ArrayLike): Point or points to normalize.
        dim (int): Expected number of coordinates per point.

    Returns:
        tuple[npt.NDArray[np.float32 | np.float64], bool]: The normalized
        points and whether the input described a single point.

    Raises:
        DimensionMismatchError: If the number of coordinates is not `dim`.
    """
    arr = np.asarray(pts)
    if arr.dtype not in (np.float32, np.float64):
        arr = arr.astype(np.float64)

    if arr.ndim == 0:
        if dim != 1:
            raise DimensionMismatchError(f"Expected a point with {dim} coordinates, got a scalar")
        return arr.reshape(1, 1), True

    if arr.ndim == 1:
        if arr.size == dim:
            return arr.reshape(1, dim), True
        if dim == 1:
            return arr.reshape(-1, 1), False
        raise DimensionMismatchError(
            f"Expected a point with {dim} coordinates, got {arr.size} coordinates"
        )

    if arr.ndim != 2:  # noqa: PLR2004
        raise DimensionMismatchError("Points must be given as a 1D or 2D array")
    if arr.shape[1] != dim:
        raise DimensionMismatchError(
            f"Expected points with {dim} coordinates, got {arr.shape[1]} coordinates"
        )
    return arr, False


def _normalize_bounds(
    bounds: npt.ArrayLike, dim: int, name: str
) -> npt.NDArray[np.float64]:
    """Convert a bound vector to a float64 array of length `dim`.

    Raises:
        DimensionMismatchError: If `bounds` does not have `dim` entries.
    """
    arr = np.atleast_1d(np.asarray(bounds, dtype=np.float64))
    if arr.ndim != 1 or arr.size != dim:
        raise DimensionMismatchError(f"{name} must have {dim} entries, got shape {arr.shape}")
    return arr
