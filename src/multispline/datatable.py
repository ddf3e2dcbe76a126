"""Container of scattered or gridded samples `(x, y)` used to fit splines."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from enum import Enum

import numpy as np
import numpy.typing as npt

from .errors import DimensionMismatchError

logger = logging.getLogger(__name__)


class DuplicatePolicy(Enum):
    """What `DataTable.add_sample` does with a sample whose coordinates already exist."""

    REJECT = "reject"
    OVERWRITE = "overwrite"


class DataTable:
    """An ordered set of samples, each made of `num_variables` coordinates and a value.

    Samples are keyed on their exact coordinate tuple and kept in
    lexicographic order of the coordinates, so that samples taken on a
    tensor grid come out in the row-major numbering of the grid.

    Attributes:
        _samples (dict[tuple[float, ...], float]): Values keyed by coordinates.
        _num_variables (int | None): Number of coordinates, fixed by the first sample.
        _duplicate_policy (DuplicatePolicy): Handling of repeated coordinates.
    """

    _samples: dict[tuple[float, ...], float]
    _num_variables: int | None
    _duplicate_policy: DuplicatePolicy

    def __init__(self, duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT) -> None:
        """Initialize an empty table.

        Args:
            duplicate_policy (DuplicatePolicy): Handling of samples whose
                coordinates are already in the table. Defaults to REJECT.
        """
        self._samples = {}
        self._num_variables = None
        self._duplicate_policy = DuplicatePolicy(duplicate_policy)

    @classmethod
    def from_arrays(
        cls,
        points: npt.ArrayLike,
        values: npt.ArrayLike,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.REJECT,
    ) -> DataTable:
        """Build a table from an array of points and an array of values.

        Args:
            points (npt.ArrayLike): Array of shape (num_samples, num_variables),
                or (num_samples,) for univariate samples.
            values (npt.ArrayLike): Array of shape (num_samples,).
            duplicate_policy (DuplicatePolicy): Handling of repeated coordinates.

        Returns:
            DataTable: The filled table.

        Raises:
            DimensionMismatchError: If points and values do not match in number.
            ValueError: On duplicates (with REJECT) or non-finite entries.
        """
        points_arr = np.asarray(points, dtype=np.float64)
        if points_arr.ndim == 1:
            points_arr = points_arr.reshape(-1, 1)
        values_arr = np.asarray(values, dtype=np.float64).reshape(-1)
        if points_arr.ndim != 2 or points_arr.shape[0] != values_arr.size:  # noqa: PLR2004
            raise DimensionMismatchError(
                f"Got {points_arr.shape[0]} points and {values_arr.size} values"
            )

        table = cls(duplicate_policy)
        for x, y in zip(points_arr, values_arr, strict=True):
            table.add_sample(x, y)
        return table

    @property
    def duplicate_policy(self) -> DuplicatePolicy:
        """Get the handling of repeated coordinates."""
        return self._duplicate_policy

    @property
    def num_samples(self) -> int:
        """Get the number of samples."""
        return len(self._samples)

    @property
    def num_variables(self) -> int:
        """Get the number of coordinates of every sample (0 while empty)."""
        return 0 if self._num_variables is None else self._num_variables

    def add_sample(self, x: npt.ArrayLike, y: float) -> None:
        """Add one sample.

        Args:
            x (npt.ArrayLike): Coordinates of the sample (a scalar for
                univariate samples).
            y (float): Sampled value.

        Raises:
            DimensionMismatchError: If the coordinate count differs from the
                previous samples.
            ValueError: If coordinates or value are not finite, or if the
                coordinates already exist and the policy is REJECT.
        """
        coords = np.atleast_1d(np.asarray(x, dtype=np.float64))
        if coords.ndim != 1 or coords.size == 0:
            raise DimensionMismatchError("sample coordinates must be a non-empty 1D array")
        value = float(y)
        if not (np.all(np.isfinite(coords)) and np.isfinite(value)):
            raise ValueError("sample coordinates and value must be finite")

        if self._num_variables is None:
            self._num_variables = int(coords.size)
        elif coords.size != self._num_variables:
            raise DimensionMismatchError(
                f"Expected a sample with {self._num_variables} coordinates, got {coords.size}"
            )

        key = tuple(float(c) for c in coords)
        if key in self._samples:
            if self._duplicate_policy is DuplicatePolicy.REJECT:
                raise ValueError(f"A sample at {key} already exists")
            logger.debug("Overwriting sample at %s", key)
        self._samples[key] = value

    def _sorted_keys(self) -> list[tuple[float, ...]]:
        return sorted(self._samples)

    @property
    def points(self) -> npt.NDArray[np.float64]:
        """Get the sample coordinates, lexicographically sorted.

        Returns:
            npt.NDArray[np.float64]: Array of shape (num_samples, num_variables).
        """
        keys = self._sorted_keys()
        return np.array(keys, dtype=np.float64).reshape(len(keys), self.num_variables)

    @property
    def values(self) -> npt.NDArray[np.float64]:
        """Get the sample values, in the order of `points`."""
        return np.array([self._samples[key] for key in self._sorted_keys()], dtype=np.float64)

    def unique_coordinates(self, axis: int) -> npt.NDArray[np.float64]:
        """Get the sorted distinct coordinates of the samples along one axis.

        Raises:
            IndexError: If axis is not in `[0, num_variables)`.
        """
        if not 0 <= axis < self.num_variables:
            raise IndexError(f"axis {axis} out of range for {self.num_variables} variables")
        return np.unique(np.fromiter((key[axis] for key in self._samples), dtype=np.float64))

    def is_grid_complete(self) -> bool:
        """Check whether the samples fill the full tensor grid of their unique coordinates."""
        if self.num_samples == 0:
            return False
        grid_size = int(
            np.prod([self.unique_coordinates(axis).size for axis in range(self.num_variables)])
        )
        return grid_size == self.num_samples

    def __len__(self) -> int:
        """Number of samples."""
        return self.num_samples

    def __iter__(self) -> Iterator[tuple[tuple[float, ...], float]]:
        """Iterate over `(coordinates, value)` pairs in lexicographic order."""
        for key in self._sorted_keys():
            yield key, self._samples[key]

    def __contains__(self, x: object) -> bool:
        """Whether a sample exists at exactly the given coordinates."""
        try:
            key = tuple(float(c) for c in np.atleast_1d(np.asarray(x, dtype=np.float64)))
        except (TypeError, ValueError):
            return False
        return key in self._samples

    def __repr__(self) -> str:
        """Readable summary."""
        return f"DataTable(num_samples={self.num_samples}, num_variables={self.num_variables})"


__all__ = ["DataTable", "DuplicatePolicy"]
