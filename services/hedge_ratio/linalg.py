"""Fixed-size 2-vector and 2x2 matrix types for the hedge ratio filter."""

import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Vector2:
    """A 2-element column vector."""
    x0: float
    x1: float

    @classmethod
    def zeros(cls) -> "Vector2":
        return cls(0.0, 0.0)

    @classmethod
    def from_array(cls, values) -> "Vector2":
        """Build a vector from any array-like of shape (2,)."""
        arr = np.asarray(values, dtype=float)
        if arr.shape != (2,):
            raise ValueError(f"Expected shape (2,), got {arr.shape}")
        return cls(float(arr[0]), float(arr[1]))

    def __add__(self, other: "Vector2") -> "Vector2":
        return Vector2(self.x0 + other.x0, self.x1 + other.x1)

    def scale(self, k: float) -> "Vector2":
        return Vector2(self.x0 * k, self.x1 * k)

    def __truediv__(self, k: float) -> "Vector2":
        return Vector2(self.x0 / k, self.x1 / k)

    def dot(self, other: "Vector2") -> float:
        return self.x0 * other.x0 + self.x1 * other.x1

    def outer(self, other: "Vector2") -> "Matrix2":
        """Outer product: result[i][j] = self[i] * other[j]."""
        return Matrix2(
            self.x0 * other.x0, self.x0 * other.x1,
            self.x1 * other.x0, self.x1 * other.x1,
        )

    def is_finite(self) -> bool:
        return math.isfinite(self.x0) and math.isfinite(self.x1)

    def to_array(self) -> np.ndarray:
        return np.array([self.x0, self.x1])


@dataclass(frozen=True)
class Matrix2:
    """A 2x2 matrix stored row-major."""
    a00: float
    a01: float
    a10: float
    a11: float

    @classmethod
    def zeros(cls) -> "Matrix2":
        return cls(0.0, 0.0, 0.0, 0.0)

    @classmethod
    def diagonal(cls, d0: float, d1: float) -> "Matrix2":
        return cls(d0, 0.0, 0.0, d1)

    @classmethod
    def from_array(cls, values) -> "Matrix2":
        """Build a matrix from any array-like of shape (2, 2)."""
        arr = np.asarray(values, dtype=float)
        if arr.shape != (2, 2):
            raise ValueError(f"Expected shape (2, 2), got {arr.shape}")
        return cls(float(arr[0, 0]), float(arr[0, 1]), float(arr[1, 0]), float(arr[1, 1]))

    def __add__(self, other: "Matrix2") -> "Matrix2":
        return Matrix2(
            self.a00 + other.a00, self.a01 + other.a01,
            self.a10 + other.a10, self.a11 + other.a11,
        )

    def __sub__(self, other: "Matrix2") -> "Matrix2":
        return Matrix2(
            self.a00 - other.a00, self.a01 - other.a01,
            self.a10 - other.a10, self.a11 - other.a11,
        )

    def matvec(self, v: Vector2) -> Vector2:
        """Matrix-vector product M . v."""
        return Vector2(
            self.a00 * v.x0 + self.a01 * v.x1,
            self.a10 * v.x0 + self.a11 * v.x1,
        )

    def quadratic_form(self, v: Vector2) -> float:
        """v . M . v^T for a row vector v."""
        return v.dot(self.matvec(v))

    def symmetrized(self) -> "Matrix2":
        """Average the off-diagonal terms."""
        off = 0.5 * (self.a01 + self.a10)
        return Matrix2(self.a00, off, off, self.a11)

    def is_symmetric(self, tol: float = 1e-12) -> bool:
        scale = max(abs(self.a01), abs(self.a10), 1.0)
        return abs(self.a01 - self.a10) <= tol * scale

    def determinant(self) -> float:
        return self.a00 * self.a11 - self.a01 * self.a10

    def min_eigenvalue(self) -> float:
        """Smallest eigenvalue of the symmetric part."""
        return float(np.linalg.eigvalsh(self.symmetrized().to_array())[0])

    def is_finite(self) -> bool:
        return all(math.isfinite(x) for x in (self.a00, self.a01, self.a10, self.a11))

    def to_array(self) -> np.ndarray:
        return np.array([[self.a00, self.a01], [self.a10, self.a11]])
