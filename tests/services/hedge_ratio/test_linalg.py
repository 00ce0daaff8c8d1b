"""Unit tests for the fixed-size vector and matrix types."""

import numpy as np
import pytest

from services.hedge_ratio.linalg import Matrix2, Vector2


class TestVector2:

    def test_arithmetic(self):
        v = Vector2(1.0, 2.0)
        w = Vector2(3.0, -1.0)

        assert v + w == Vector2(4.0, 1.0)
        assert v.scale(2.0) == Vector2(2.0, 4.0)
        assert v / 2.0 == Vector2(0.5, 1.0)
        assert v.dot(w) == 1.0

    def test_outer(self):
        outer = Vector2(1.0, 2.0).outer(Vector2(3.0, 4.0))

        np.testing.assert_array_equal(outer.to_array(), [[3.0, 4.0], [6.0, 8.0]])

    def test_from_array(self):
        assert Vector2.from_array(np.array([1.5, -2.0])) == Vector2(1.5, -2.0)

        with pytest.raises(ValueError):
            Vector2.from_array([1.0, 2.0, 3.0])

    def test_is_finite(self):
        assert Vector2(1.0, 2.0).is_finite()
        assert not Vector2(float('nan'), 2.0).is_finite()


class TestMatrix2:

    def test_matvec_matches_numpy(self):
        m = Matrix2(1.0, 2.0, 3.0, 4.0)
        v = Vector2(5.0, 6.0)

        np.testing.assert_array_equal(m.matvec(v).to_array(), m.to_array() @ v.to_array())

    def test_quadratic_form(self):
        m = Matrix2(2.0, 0.5, 0.5, 1.0)
        v = Vector2(3.0, 1.0)

        assert m.quadratic_form(v) == pytest.approx(v.to_array() @ m.to_array() @ v.to_array())

    def test_add_sub(self):
        a = Matrix2(1.0, 2.0, 3.0, 4.0)
        b = Matrix2.diagonal(1.0, 1.0)

        assert a + b == Matrix2(2.0, 2.0, 3.0, 5.0)
        assert a - b == Matrix2(0.0, 2.0, 3.0, 3.0)
        assert a - a == Matrix2.zeros()

    def test_symmetry(self):
        m = Matrix2(1.0, 2.0, 4.0, 1.0)

        assert not m.is_symmetric()
        assert m.symmetrized() == Matrix2(1.0, 3.0, 3.0, 1.0)
        assert m.symmetrized().is_symmetric()

    def test_eigen_and_determinant(self):
        m = Matrix2.diagonal(2.0, 3.0)

        assert m.determinant() == 6.0
        assert m.min_eigenvalue() == pytest.approx(2.0)
        assert Matrix2(1.0, 2.0, 2.0, 1.0).min_eigenvalue() == pytest.approx(-1.0)

    def test_from_array(self):
        arr = np.array([[1.0, 2.0], [3.0, 4.0]])

        assert Matrix2.from_array(arr) == Matrix2(1.0, 2.0, 3.0, 4.0)
        np.testing.assert_array_equal(Matrix2.from_array(arr).to_array(), arr)

        with pytest.raises(ValueError):
            Matrix2.from_array(np.eye(3))

    def test_is_finite(self):
        assert Matrix2.zeros().is_finite()
        assert not Matrix2(0.0, float('inf'), 0.0, 0.0).is_finite()
