"""Tolerance presets for knot handling, domain checks and spline comparison.

All tolerances are absolute and depend only on the floating-point type of the
knot vectors, so that float32 and float64 splines get sensible defaults.
"""

from functools import cache
from typing import Any, NamedTuple, cast

import numpy as np
from numpy import typing as npt


@cache
def _ensure_float_dtype_by_name(name: str) -> np.dtype[np.floating[Any]]:
    """Cached validator returning a supported floating dtype from its name.

    Args:
        name (str): Canonical NumPy dtype name (e.g., "float64").

    Returns:
        np.dtype[np.floating[Any]]: Validated floating-point dtype.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    dtype_obj = np.dtype(name)
    if dtype_obj.type not in (np.float32, np.float64):
        raise ValueError(f"Unsupported dtype: {name}")
    return cast(np.dtype[np.floating[Any]], dtype_obj)


def _ensure_float_dtype(dtype: npt.DTypeLike) -> np.dtype[np.floating[Any]]:
    """Normalize and validate a dtype-like into a floating dtype."""
    return _ensure_float_dtype_by_name(np.dtype(dtype).name)


class _TolerancePreset(NamedTuple):
    """Tolerance values for each supported floating-point type."""

    float32: float
    float64: float


_TOLERANCE_PRESETS = {
    # Knots closer than this are considered the same knot.
    "knot": _TolerancePreset(1e-7, 1e-14),
    # Points this far outside a bound are still accepted (and clipped).
    "domain": _TolerancePreset(1e-6, 1e-12),
    # Default absolute tolerance when comparing knots, coefficients or values.
    "comparison": _TolerancePreset(1e-5, 1e-10),
    # Pivots of a fit system scaled to unit diagonal at or below this are zero.
    "rank": _TolerancePreset(1e-6, 1e-12),
}


def _get_tolerance(dtype: npt.DTypeLike, preset: _TolerancePreset) -> float:
    """Pick the value of `preset` matching `dtype`.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    dtype_obj = _ensure_float_dtype(dtype)
    if dtype_obj.type == np.float32:
        return preset.float32
    return preset.float64


def get_knot_tolerance(dtype: npt.DTypeLike) -> float:
    """Get the tolerance under which two knots are merged.

    Args:
        dtype (npt.DTypeLike): Floating-point type of the knot vector.

    Returns:
        float: Knot tolerance.

    Raises:
        ValueError: If dtype is not float32 or float64.

    Example:
        >>> get_knot_tolerance(np.float64)
        1e-14
    """
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["knot"])


def get_domain_tolerance(dtype: npt.DTypeLike) -> float:
    """Get the slack allowed when checking that a point lies in a domain.

    Args:
        dtype (npt.DTypeLike): Floating-point type of the knot vector.

    Returns:
        float: Domain tolerance.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["domain"])


def get_comparison_tolerance(dtype: npt.DTypeLike) -> float:
    """Get the default absolute tolerance used by spline comparisons.

    Args:
        dtype (npt.DTypeLike): Floating-point type of the compared data.

    Returns:
        float: Comparison tolerance.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["comparison"])


def get_rank_tolerance(dtype: npt.DTypeLike) -> float:
    """Get the pivot cutoff deciding the rank of fit systems.

    Fit systems are scaled to unit diagonal before they are factorized, so
    their pivots behave like squared ratios of the singular values of the
    collocation matrix. Pivots at or below this value are treated as zero.

    Args:
        dtype (npt.DTypeLike): Floating-point type of the system.

    Returns:
        float: Pivot cutoff.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["rank"])


def get_machine_epsilon(dtype: npt.DTypeLike) -> float:
    """Get machine epsilon for a given floating-point dtype.

    Args:
        dtype (npt.DTypeLike): NumPy floating-point data type.

    Returns:
        float: Machine epsilon for the given dtype.

    Raises:
        ValueError: If dtype is not float32 or float64.
    """
    return float(np.finfo(_ensure_float_dtype(dtype)).eps)
