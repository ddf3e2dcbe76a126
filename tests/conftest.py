"""Pytest configuration: make `src` importable and provide shared sample fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import numpy.typing as npt
import pytest


def _ensure_src_on_sys_path() -> None:
    """Prepend the repository `src` directory to `sys.path` if missing."""
    repo_root: Path = Path(__file__).resolve().parents[1]
    src_path: Path = repo_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_ensure_src_on_sys_path()

from multispline import Bspline, BsplineType, DataTable  # noqa: E402


def six_hump_camel_back(x: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Six-hump camel-back function evaluated at points of shape (num_pts, 2)."""
    pts = np.atleast_2d(np.asarray(x, dtype=np.float64))
    x0, x1 = pts[:, 0], pts[:, 1]
    return (4 - 2.1 * x0**2 + x0**4 / 3) * x0**2 + x0 * x1 + (-4 + 4 * x1**2) * x1**2


def grid_points(num: int, lower: float = 0.0, upper: float = 2.0) -> npt.NDArray[np.float64]:
    """Row-major lattice of `num x num` points on `[lower, upper]^2`."""
    axis = np.linspace(lower, upper, num)
    x0, x1 = np.meshgrid(axis, axis, indexing="ij")
    return np.stack([x0.ravel(), x1.ravel()], axis=1)


@pytest.fixture(scope="session")
def camel_samples() -> DataTable:
    """A 20 x 20 grid of six-hump camel-back samples on [0, 2]^2."""
    pts = grid_points(20)
    return DataTable.from_arrays(pts, six_hump_camel_back(pts))


@pytest.fixture(scope="session")
def cubic_camel(camel_samples: DataTable) -> Bspline:
    """Cubic B-spline interpolating the camel-back samples (do not mutate)."""
    return Bspline.fit(camel_samples, BsplineType.CUBIC_FREE)


@pytest.fixture(scope="session")
def linear_camel(camel_samples: DataTable) -> Bspline:
    """Linear B-spline interpolating the camel-back samples (do not mutate)."""
    return Bspline.fit(camel_samples, BsplineType.LINEAR)
