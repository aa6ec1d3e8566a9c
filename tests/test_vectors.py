"""
Tests for vector algebra.

Validates:
1. Basic arithmetic (add, sub, scale, dot)
2. Symmetric averaging
3. Inputs are never mutated, results are fresh arrays
"""

import numpy as np
import pytest

from gravsim.vectors import add, average, dot, norm, scale, sub, vector


class TestArithmetic:
    """Tests for add/sub/scale/dot/norm."""

    def test_add_sub(self):
        a = vector(1.0, 2.0, 3.0)
        b = vector(-4.0, 0.5, 2.0)

        assert np.allclose(add(a, b), [-3.0, 2.5, 5.0])
        assert np.allclose(sub(a, b), [5.0, 1.5, 1.0])
        assert np.allclose(sub(add(a, b), b), a)

    def test_scale(self):
        v = vector(1.0, -2.0, 0.5)
        assert np.allclose(scale(3.0, v), [3.0, -6.0, 1.5])
        assert np.allclose(scale(0.0, v), 0.0)

    def test_dot_and_norm(self):
        a = vector(1.0, 2.0, 2.0)
        b = vector(2.0, 0.0, -1.0)

        assert dot(a, b) == pytest.approx(0.0)
        assert dot(a, a) == pytest.approx(9.0)
        assert norm(a) == pytest.approx(3.0)

    def test_dot_on_tables(self):
        """dot reduces over the last axis for (N, 3) tables."""
        a = np.array([[1.0, 0.0, 0.0], [1.0, 1.0, 1.0]])
        b = np.array([[2.0, 5.0, 5.0], [1.0, 2.0, 3.0]])
        assert np.allclose(dot(a, b), [2.0, 6.0])


class TestAverage:
    """Tests for the symmetric midpoint."""

    def test_symmetric(self):
        """average(a, b) == average(b, a) exactly."""
        rng = np.random.default_rng(1234)
        for _ in range(20):
            a = rng.normal(size=3) * 10.0 ** rng.integers(-8, 8)
            b = rng.normal(size=3) * 10.0 ** rng.integers(-8, 8)
            assert np.array_equal(average(a, b), average(b, a))

    def test_idempotent(self):
        """average(a, a) == a."""
        a = vector(0.1, -7.3e-9, 4.2e5)
        assert np.array_equal(average(a, a), a)

    def test_midpoint_value(self):
        a = vector(1.0, 2.0, 3.0)
        b = vector(3.0, 6.0, -3.0)
        assert np.allclose(average(a, b), [2.0, 4.0, 0.0])

    def test_tables(self):
        """Whole acceleration tables average row by row."""
        a = np.array([[1.0, 1.0, 1.0], [0.0, 2.0, 4.0]])
        b = np.array([[3.0, 3.0, 3.0], [2.0, 2.0, 0.0]])
        assert np.allclose(average(a, b), [[2.0, 2.0, 2.0], [1.0, 2.0, 2.0]])


class TestValueSemantics:
    """Vectors are values: operations never write into their inputs."""

    def test_vector_is_read_only(self):
        v = vector(1.0, 2.0, 3.0)
        with pytest.raises(ValueError):
            v[0] = 5.0

    def test_results_are_fresh(self):
        a = vector(1.0, 2.0, 3.0)
        b = vector(1.0, 1.0, 1.0)

        for result in (add(a, b), sub(a, b), scale(2.0, a), average(a, b)):
            assert not np.shares_memory(result, a)
            assert not np.shares_memory(result, b)

        assert np.array_equal(a, [1.0, 2.0, 3.0])
        assert np.array_equal(b, [1.0, 1.0, 1.0])
