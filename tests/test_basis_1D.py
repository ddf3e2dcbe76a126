"""Tests for univariate B-spline basis evaluation."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import pytest
from scipy.interpolate import BSpline as ScipyBSpline

from multispline.basis_1D import BsplineBasis1D
from multispline.errors import OutOfDomainError
from multispline.knots import KnotVector

KNOTS = [0.0, 0.0, 0.0, 0.25, 0.7, 0.7, 1.0, 1.0, 1.0]


def _reference_table(kv: KnotVector, pts: np.ndarray, order: int) -> np.ndarray:
    """All basis functions' `order`-th derivatives at `pts`, computed by scipy."""
    knots = np.asarray(kv.knots)
    return ScipyBSpline(knots, np.eye(kv.num_basis), kv.degree)(pts, nu=order)


class TestBsplineBasis1DEvaluate:
    """Test basis values."""

    def test_known_values(self) -> None:
        """Test values at points inside spans, at a double knot and at the bounds."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        values, first = basis.evaluate([0.5, 0.75, 1.0])

        nptest.assert_allclose(
            values,
            [
                [0.12698413, 0.5643739, 0.30864198],
                [0.69444444, 0.27777778, 0.02777778],
                [0.0, 0.0, 1.0],
            ],
            atol=1e-8,
        )
        nptest.assert_array_equal(first, [1, 3, 3])

    def test_lower_bound(self) -> None:
        """Test that only the first basis function is one at the lower bound."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        values, first = basis.evaluate(0.0)
        nptest.assert_allclose(values, [[1.0, 0.0, 0.0]])
        nptest.assert_array_equal(first, [0])

    @pytest.mark.parametrize("degree", [0, 1, 2, 3, 4])
    def test_partition_of_unity(self, degree: int) -> None:
        """Test that the nonzero basis functions sum to one."""
        knots = np.concatenate(
            [np.zeros(degree + 1), [0.1, 0.35, 0.5, 0.8], np.ones(degree + 1)]
        )
        basis = BsplineBasis1D(KnotVector(knots, degree))
        values, first = basis.evaluate(np.linspace(0.0, 1.0, 57))
        nptest.assert_allclose(values.sum(axis=1), 1.0, atol=1e-14)
        assert np.all(values >= -1e-15)
        assert np.all(first >= 0)
        assert np.all(first + degree < basis.num_basis)

    def test_float32(self) -> None:
        """Test that float32 knots produce float32 values."""
        basis = BsplineBasis1D(KnotVector(np.array(KNOTS, dtype=np.float32), 2))
        values, _ = basis.evaluate(np.array([0.5], dtype=np.float32))
        assert values.dtype == np.float32
        nptest.assert_allclose(values, [[0.12698413, 0.5643739, 0.30864198]], atol=1e-6)

    def test_within_tolerance_is_clipped(self) -> None:
        """Test that points marginally outside the domain are accepted."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        values, first = basis.evaluate([1.0 + 1e-13])
        nptest.assert_allclose(values, [[0.0, 0.0, 1.0]])
        nptest.assert_array_equal(first, [3])

    def test_out_of_domain_error(self) -> None:
        """Test that points outside the domain raise."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        with pytest.raises(OutOfDomainError):
            basis.evaluate([0.5, 1.1])

    def test_basis_follows_knot_vector(self) -> None:
        """Test that the basis reflects refinement of its knot vector."""
        kv = KnotVector(KNOTS, 2)
        basis = BsplineBasis1D(kv)
        kv.insert_knot(0.5)
        assert basis.num_basis == 7  # noqa: PLR2004
        _, first = basis.evaluate([0.6])
        nptest.assert_array_equal(first, [2])


class TestBsplineBasis1DDerivatives:
    """Test basis derivatives against scipy."""

    @pytest.mark.parametrize("degree", [1, 2, 3])
    def test_tabulate_matches_scipy(self, degree: int) -> None:
        """Test values and derivatives up to the degree, including at a repeated knot."""
        interior = [0.2, 0.45, 0.45, 0.8] if degree > 1 else [0.2, 0.45, 0.8]
        knots = np.concatenate([np.zeros(degree + 1), interior, np.ones(degree + 1)])
        kv = KnotVector(knots, degree)
        basis = BsplineBasis1D(kv)
        pts = np.array([0.0, 0.1, 0.3, 0.45, 0.5, 0.79, 0.95, 1.0])
        max_order = degree

        values, first = basis.tabulate_derivatives(pts, max_order)
        assert values.shape == (pts.size, max_order + 1, degree + 1)

        for order in range(max_order + 1):
            reference = _reference_table(kv, pts, order)
            local = np.take_along_axis(
                reference, first[:, np.newaxis] + np.arange(degree + 1), axis=1
            )
            nptest.assert_allclose(values[:, order, :], local, atol=1e-10)

    def test_derivatives_sum_to_zero(self) -> None:
        """Test that derivatives of a partition of unity vanish."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        values, _ = basis.evaluate_derivatives(np.linspace(0.0, 1.0, 23), 1)
        nptest.assert_allclose(values.sum(axis=1), 0.0, atol=1e-12)

    def test_derivative_above_degree_is_zero(self) -> None:
        """Test that derivatives of order above the degree vanish."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        values, _ = basis.evaluate_derivatives([0.1, 0.5, 0.9], 3)
        nptest.assert_array_equal(values, 0.0)

    def test_zero_degree_derivative(self) -> None:
        """Test that piecewise constants have zero derivative."""
        basis = BsplineBasis1D(KnotVector([0.0, 0.5, 1.0], 0))
        values, first = basis.evaluate_derivatives([0.25, 0.75], 1)
        nptest.assert_array_equal(values, 0.0)
        nptest.assert_array_equal(first, [0, 1])

    def test_negative_order_error(self) -> None:
        """Test that negative derivative orders raise."""
        basis = BsplineBasis1D(KnotVector(KNOTS, 2))
        with pytest.raises(ValueError, match="non-negative"):
            basis.evaluate_derivatives([0.5], -1)

    def test_read_only_knots(self) -> None:
        """Test that evaluation reads the knot array in place and leaves it unchanged."""
        kv = KnotVector(KNOTS, 2)
        assert not kv.knots.flags.writeable
        values, _ = BsplineBasis1D(kv).tabulate_derivatives(np.linspace(0.0, 1.0, 7), 2)
        nptest.assert_allclose(values[:, 0, :].sum(axis=1), 1.0)
        nptest.assert_allclose(values[:, 1, :].sum(axis=1), 0.0, atol=1e-12)
        nptest.assert_array_equal(kv.knots, KNOTS)
