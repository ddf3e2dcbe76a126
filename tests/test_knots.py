"""Tests for knot vectors and knot vector builders."""

from __future__ import annotations

import logging

import numpy as np
import numpy.testing as nptest
import pytest
from scipy.interpolate import BSpline as ScipyBSpline

from multispline.errors import InvalidKnotVectorError, OutOfDomainError
from multispline.knots import (
    KnotVector,
    _validate_knot_input,
    create_equidistant_knot_vector,
    create_sample_knot_vector,
    create_uniform_open_knot_vector,
)
from multispline.tolerance import get_knot_tolerance


def _scipy_values(kv: KnotVector, coefficients: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """Evaluate a univariate spline with scipy as an independent reference."""
    return ScipyBSpline(np.asarray(kv.knots), coefficients, kv.degree)(pts)


class TestKnotVectorInit:
    """Test KnotVector construction and validation."""

    def test_valid_initialization(self) -> None:
        """Test a valid clamped knot vector."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        assert kv.degree == 2  # noqa: PLR2004
        assert kv.order == 3  # noqa: PLR2004
        assert len(kv) == 7  # noqa: PLR2004
        assert kv.num_basis == 4  # noqa: PLR2004
        assert kv.domain == (0.0, 1.0)
        assert kv.dtype == np.float64

    def test_integer_knots_conversion(self) -> None:
        """Test that integer knots are promoted to float64."""
        kv = KnotVector([0, 0, 1, 2, 2], 1)
        assert kv.dtype == np.float64
        nptest.assert_array_equal(kv.knots, [0.0, 0.0, 1.0, 2.0, 2.0])

    def test_float32_preserved(self) -> None:
        """Test that float32 knots keep their type and tolerance."""
        kv = KnotVector(np.array([0, 0, 1, 1], dtype=np.float32), 1)
        assert kv.dtype == np.float32
        assert kv.tolerance == get_knot_tolerance(np.float32)

    def test_zero_degree(self) -> None:
        """Test a piecewise constant knot vector."""
        kv = KnotVector([0.0, 0.5, 1.0], 0)
        assert kv.num_basis == 2  # noqa: PLR2004
        assert kv.max_interior_multiplicity == 1

    def test_negative_degree_error(self) -> None:
        """Test that negative degrees raise ValueError."""
        with pytest.raises(ValueError, match="degree must be non-negative"):
            KnotVector([0.0, 0.0, 1.0, 1.0], -1)

    def test_insufficient_knots_error(self) -> None:
        """Test that too few knots are rejected."""
        with pytest.raises(InvalidKnotVectorError, match="at least 2\\*degree\\+2"):
            KnotVector([0.0, 0.0, 1.0, 1.0], 2)

    def test_decreasing_knots_error(self) -> None:
        """Test that decreasing knots are rejected."""
        with pytest.raises(InvalidKnotVectorError, match="non-decreasing"):
            KnotVector([0.0, 0.0, 0.7, 0.3, 1.0, 1.0], 1)

    def test_not_clamped_error(self) -> None:
        """Test that unclamped ends are rejected."""
        with pytest.raises(InvalidKnotVectorError, match="clamped"):
            KnotVector([0.0, 0.0, 0.5, 1.0, 1.0, 1.5], 2)

    def test_interior_multiplicity_error(self) -> None:
        """Test that an interior knot repeated more than degree times is rejected."""
        with pytest.raises(InvalidKnotVectorError, match="multiplicity at most 2"):
            KnotVector([0.0, 0.0, 0.0, 0.5, 0.5, 0.5, 1.0, 1.0, 1.0], 2)

    def test_non_finite_error(self) -> None:
        """Test that non-finite knots are rejected."""
        with pytest.raises(InvalidKnotVectorError, match="finite"):
            KnotVector([0.0, 0.0, np.nan, 1.0, 1.0], 1)

    def test_empty_domain_error(self) -> None:
        """Test that a degenerate domain is rejected."""
        with pytest.raises(InvalidKnotVectorError, match="non-empty domain"):
            KnotVector([1.0, 1.0, 1.0, 1.0], 1)

    def test_invalid_knot_type_error(self) -> None:
        """Test that non-1D input raises TypeError."""
        with pytest.raises(TypeError, match="1D array"):
            KnotVector([[0.0, 0.0], [1.0, 1.0]], 1)

    def test_invalid_knot_error_is_value_error(self) -> None:
        """Test that knot errors can be caught as ValueError."""
        with pytest.raises(ValueError):  # noqa: PT011
            KnotVector([0.0, 1.0], 1)

    def test_snap_knots(self) -> None:
        """Test that knots closer than the tolerance are merged."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 0.5 + 1e-16, 1.0, 1.0, 1.0], 2)
        _, mult = kv.get_unique_knots_and_multiplicity()
        nptest.assert_array_equal(mult, [3, 2, 3])
        assert kv.knots[3] == kv.knots[4]


class TestKnotVectorQueries:
    """Test KnotVector queries."""

    def test_knots_read_only(self) -> None:
        """Test that the exposed knots cannot be modified."""
        kv = KnotVector([0.0, 0.0, 1.0, 1.0], 1)
        with pytest.raises(ValueError):  # noqa: PT011
            kv.knots[0] = -1.0

    def test_get_unique_knots_and_multiplicity(self) -> None:
        """Test unique knots and multiplicities, in full and in the domain."""
        kv = KnotVector([0.0, 0.0, 0.0, 1.0, 1.0, 2.0, 2.0, 2.0], 2)
        unique, mult = kv.get_unique_knots_and_multiplicity()
        nptest.assert_array_equal(unique, [0.0, 1.0, 2.0])
        nptest.assert_array_equal(mult, [3, 2, 3])

        unique, mult = kv.get_unique_knots_and_multiplicity(in_domain=True)
        nptest.assert_array_equal(unique, [0.0, 1.0, 2.0])
        nptest.assert_array_equal(mult, [1, 2, 1])

    def test_multiplicity(self) -> None:
        """Test multiplicity of knots and non-knots."""
        kv = KnotVector([0.0, 0.0, 0.0, 1.0, 1.0, 2.0, 2.0, 2.0], 2)
        assert kv.multiplicity(0.0) == 3  # noqa: PLR2004
        assert kv.multiplicity(1.0) == 2  # noqa: PLR2004
        assert kv.multiplicity(1.5) == 0

    def test_is_in_domain(self) -> None:
        """Test the domain check, including the tolerance slack."""
        kv = KnotVector([0.0, 0.0, 1.0, 1.0], 1)
        nptest.assert_array_equal(
            kv.is_in_domain([-0.1, -1e-14, 0.0, 0.5, 1.0, 1.0 + 1e-14, 1.1]),
            [False, True, True, True, True, True, False],
        )

    def test_find_span(self) -> None:
        """Test span lookup, including knots and the upper bound."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        nptest.assert_array_equal(kv.find_span([0.0, 0.25, 0.5, 0.75, 1.0]), [2, 2, 3, 3, 3])

    def test_find_span_out_of_domain(self) -> None:
        """Test that span lookup outside the domain raises."""
        kv = KnotVector([0.0, 0.0, 1.0, 1.0], 1)
        with pytest.raises(OutOfDomainError):
            kv.find_span([1.5])

    def test_clip_to_domain(self) -> None:
        """Test that points within tolerance are clipped onto the bounds."""
        kv = KnotVector([0.0, 0.0, 1.0, 1.0], 1)
        nptest.assert_array_equal(kv.clip_to_domain([-1e-13, 0.5, 1.0 + 1e-13]), [0.0, 0.5, 1.0])

    def test_is_close_and_copy(self) -> None:
        """Test that copies compare equal and are independent."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        other = kv.copy()
        assert kv.is_close(other)
        other.insert_knot(0.25)
        assert not kv.is_close(other)
        assert kv.num_basis == 4  # noqa: PLR2004
        assert not kv.is_close(KnotVector([0.0, 0.0, 0.5, 1.0, 1.0], 1))


class TestKnotInsertion:
    """Test knot insertion (refinement)."""

    @pytest.mark.parametrize("degree", [0, 1, 2, 3])
    @pytest.mark.parametrize("value", [0.1, 0.4, 0.5, 0.93])
    def test_insertion_preserves_function(self, degree: int, value: float) -> None:
        """Test that the returned operator keeps the spline unchanged."""
        knots = create_uniform_open_knot_vector(4, degree, domain=(0.0, 1.0))
        kv = KnotVector(knots, degree)
        if kv.multiplicity(value) >= kv.max_interior_multiplicity:
            pytest.skip("value is already a knot of maximal multiplicity")

        rng = np.random.default_rng(1234)
        coefficients = rng.standard_normal(kv.num_basis)
        pts = np.linspace(0.0, 0.99, 41)
        expected = _scipy_values(kv, coefficients, pts)

        operator = kv.insert_knot(value)
        assert operator.shape == (kv.num_basis, kv.num_basis - 1)
        assert kv.multiplicity(value) >= 1
        nptest.assert_allclose(
            _scipy_values(kv, operator @ coefficients, pts), expected, atol=1e-12
        )

    def test_insertion_rows_are_partition_of_unity(self) -> None:
        """Test that every row of the operator sums to one."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.0, 0.3, 0.6, 1.0, 1.0, 1.0, 1.0], 3)
        operator = kv.insert_knot(0.45)
        nptest.assert_allclose(np.asarray(operator.sum(axis=1)).ravel(), 1.0)

    def test_insertion_updates_knots(self) -> None:
        """Test the knot sequence after insertion."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        kv.insert_knot(0.5)
        nptest.assert_array_equal(kv.knots, [0.0, 0.0, 0.0, 0.5, 0.5, 1.0, 1.0, 1.0])

    def test_insertion_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the debug record emitted on insertion."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        with caplog.at_level(logging.DEBUG, logger="multispline"):
            kv.insert_knot(0.25)
        assert "Inserted knot 0.25" in caplog.text

    def test_insertion_snaps_to_existing_knot(self) -> None:
        """Test that a value within tolerance of a knot increases its multiplicity."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        kv.insert_knot(0.5 + 1e-16)
        assert kv.multiplicity(0.5) == 2  # noqa: PLR2004

    def test_insertion_max_multiplicity_error(self) -> None:
        """Test that exceeding the maximum multiplicity raises."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 0.5, 1.0, 1.0, 1.0], 2)
        with pytest.raises(InvalidKnotVectorError, match="maximum multiplicity"):
            kv.insert_knot(0.5)
        assert kv.num_basis == 5  # noqa: PLR2004

    @pytest.mark.parametrize("value", [0.0, 1.0])
    def test_insertion_at_bounds_error(self, value: float) -> None:
        """Test that knots cannot be inserted at the domain bounds."""
        kv = KnotVector([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], 2)
        with pytest.raises(InvalidKnotVectorError):
            kv.insert_knot(value)

    def test_insertion_out_of_domain_error(self) -> None:
        """Test that knots outside the domain are rejected."""
        kv = KnotVector([0.0, 0.0, 1.0, 1.0], 1)
        with pytest.raises(OutOfDomainError):
            kv.insert_knot(1.5)


class TestKnotTruncation:
    """Test truncation of refined knot vectors."""

    def test_truncate_after_refinement(self) -> None:
        """Test knots, retained indices and function values after truncation."""
        kv = KnotVector([0.0, 0.0, 0.0, 1.0, 2.0, 3.0, 3.0, 3.0], 2)
        rng = np.random.default_rng(7)
        coefficients = rng.standard_normal(kv.num_basis)
        for _ in range(2):
            coefficients = kv.insert_knot(1.5) @ coefficients
        original = kv.copy()

        retained = kv.truncate(1.5, 3.0)
        nptest.assert_array_equal(kv.knots, [1.5, 1.5, 1.5, 2.0, 3.0, 3.0, 3.0])
        assert retained == slice(3, 7)

        pts = np.linspace(1.5, 3.0, 31)
        nptest.assert_allclose(
            _scipy_values(kv, coefficients[retained], pts),
            _scipy_values(original, coefficients, pts),
            atol=1e-12,
        )

    def test_truncate_full_domain(self) -> None:
        """Test that truncating to the full domain keeps everything."""
        kv = KnotVector([0.0, 0.0, 0.0, 1.0, 2.0, 2.0, 2.0], 2)
        retained = kv.truncate(0.0, 2.0)
        assert retained == slice(0, 4)
        nptest.assert_array_equal(kv.knots, [0.0, 0.0, 0.0, 1.0, 2.0, 2.0, 2.0])

    def test_truncate_insufficient_multiplicity_error(self) -> None:
        """Test that cutting at a simple knot of a quadratic raises."""
        kv = KnotVector([0.0, 0.0, 0.0, 1.0, 2.0, 3.0, 3.0, 3.0], 2)
        with pytest.raises(InvalidKnotVectorError, match="multiplicity at least 2"):
            kv.truncate(1.0, 3.0)

    def test_truncate_bound_order_error(self) -> None:
        """Test that inverted bounds raise ValueError."""
        kv = KnotVector([0.0, 0.0, 1.0, 2.0, 2.0], 1)
        with pytest.raises(ValueError, match="lower must be smaller than upper"):
            kv.truncate(1.0, 1.0)

    def test_truncate_out_of_domain_error(self) -> None:
        """Test that bounds outside the domain raise."""
        kv = KnotVector([0.0, 0.0, 1.0, 2.0, 2.0], 1)
        with pytest.raises(OutOfDomainError):
            kv.truncate(-1.0, 1.0)


class TestValidateKnotInput:
    """Tests for `_validate_knot_input`."""

    def test_valid_inputs(self) -> None:
        """Accept well-formed parameters without raising."""
        _validate_knot_input(num_intervals=2, degree=2, continuity=1, domain=(0.0, 1.0))

    def test_domain_order_error(self) -> None:
        """Reject domains whose start exceeds the end."""
        with pytest.raises(ValueError, match=r"domain\[0\] must be less than domain\[1\]"):
            _validate_knot_input(num_intervals=2, degree=2, continuity=1, domain=(1.0, 0.0))

    def test_num_intervals_error(self) -> None:
        """Reject empty interval counts."""
        with pytest.raises(ValueError, match="num_intervals must be at least 1"):
            _validate_knot_input(num_intervals=0, degree=2, continuity=1, domain=(0.0, 1.0))

    def test_invalid_continuity_error(self) -> None:
        """Reject continuity higher than degree - 1."""
        with pytest.raises(ValueError, match="Continuity must be between"):
            _validate_knot_input(num_intervals=2, degree=2, continuity=2, domain=(0.0, 1.0))


class TestKnotBuilders:
    """Test the knot vector builders."""

    def test_uniform_open_knot_vector(self) -> None:
        """Test a uniform open knot vector with default continuity."""
        nptest.assert_allclose(
            create_uniform_open_knot_vector(2, 2, domain=(0.0, 1.0)),
            [0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0],
        )

    def test_uniform_open_knot_vector_reduced_continuity(self) -> None:
        """Test repeated interior knots for lower continuity."""
        nptest.assert_allclose(
            create_uniform_open_knot_vector(2, 3, continuity=1, domain=(0.0, 2.0)),
            [0.0, 0.0, 0.0, 0.0, 1.0, 1.0, 2.0, 2.0, 2.0, 2.0],
        )

    def test_uniform_open_knot_vector_dtype(self) -> None:
        """Test the dtype argument."""
        knots = create_uniform_open_knot_vector(3, 1, dtype=np.float32)
        assert knots.dtype == np.float32
        with pytest.raises(ValueError, match="float64 or float32"):
            create_uniform_open_knot_vector(3, 1, dtype=np.int32)

    @pytest.mark.parametrize(
        ("degree", "expected"),
        [
            (0, [0.0, 0.5, 1.5, 2.5, 3.5, 4.0]),
            (1, [0.0, 0.0, 1.0, 2.0, 3.0, 4.0, 4.0]),
            (2, [0.0, 0.0, 0.0, 1.5, 2.5, 4.0, 4.0, 4.0]),
            (3, [0.0, 0.0, 0.0, 0.0, 2.0, 4.0, 4.0, 4.0, 4.0]),
        ],
    )
    def test_sample_knot_vector(self, degree: int, expected: list[float]) -> None:
        """Test that sample knots give one basis function per unique coordinate."""
        kv = create_sample_knot_vector([4.0, 0.0, 1.0, 2.0, 3.0, 1.0], degree)
        nptest.assert_allclose(kv.knots, expected)
        assert kv.num_basis == 5  # noqa: PLR2004

    def test_equidistant_knot_vector(self) -> None:
        """Test uniform knots over the sample extent."""
        kv = create_equidistant_knot_vector([0.0, 0.1, 0.5, 2.0], 2)
        nptest.assert_allclose(kv.knots, [0.0, 0.0, 0.0, 1.0, 2.0, 2.0, 2.0])
        assert kv.num_basis == 4  # noqa: PLR2004

    def test_too_few_coordinates_error(self) -> None:
        """Test that a cubic needs at least four unique coordinates."""
        with pytest.raises(InvalidKnotVectorError, match="At least 4 unique"):
            create_sample_knot_vector([0.0, 1.0, 2.0, 2.0], 3)
        with pytest.raises(InvalidKnotVectorError, match="At least 4 unique"):
            create_equidistant_knot_vector([0.0, 1.0, 2.0], 3)

    def test_sample_knot_vector_with_intervals(self) -> None:
        """Test quantile knots for an explicit number of intervals."""
        coordinates = [9.0, 0.0, 1.0, 2.0, 3.0, 4.0, 5.0, 5.0]
        kv = create_sample_knot_vector(coordinates, 1, num_intervals=2)
        nptest.assert_allclose(kv.knots, [0.0, 0.0, 3.0, 9.0, 9.0])

        rng = np.random.default_rng(11)
        kv = create_sample_knot_vector(rng.uniform(0.0, 2.0, 500), 3, num_intervals=6)
        assert kv.num_basis == 9  # noqa: PLR2004
        assert np.all(np.diff(np.unique(kv.knots)) > 0.0)

    def test_equidistant_knot_vector_with_intervals(self) -> None:
        """Test uniform knots for an explicit number of intervals."""
        kv = create_equidistant_knot_vector([0.5, 0.0, 2.0, 1.7, 0.2], 2, num_intervals=4)
        nptest.assert_allclose(kv.knots, [0.0, 0.0, 0.0, 0.5, 1.0, 1.5, 2.0, 2.0, 2.0])
        assert kv.num_basis == 6  # noqa: PLR2004

    @pytest.mark.parametrize("num_intervals", [0, -2, 2.5, True])
    def test_invalid_num_intervals(self, num_intervals: int) -> None:
        """Test that interval counts must be positive integers."""
        with pytest.raises(ValueError, match="num_intervals"):
            create_sample_knot_vector([0.0, 1.0, 2.0], 1, num_intervals=num_intervals)
        with pytest.raises(ValueError, match="num_intervals"):
            create_equidistant_knot_vector([0.0, 1.0, 2.0], 1, num_intervals=num_intervals)
