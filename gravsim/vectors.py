"""
Vector algebra for the gravity simulator.

Vectors are plain numpy float64 arrays of shape (3,). Every function here is
pure: it returns a freshly allocated array and never writes into its inputs,
so a state built from these results can never alias another state.

All operations also work elementwise on stacked (N, 3) tables, which is how
the integrators average whole acceleration tables in one call.
"""

import numpy as np
from numpy.typing import NDArray

# Type aliases
Vec3 = NDArray[np.float64]  # Shape (3,)
VecTable = NDArray[np.float64]  # Shape (N, 3)


def vector(x: float, y: float, z: float) -> Vec3:
    """Build a read-only 3-vector from its components.

    Examples
    --------
    >>> v = vector(1.0, 2.0, 3.0)
    >>> v.shape
    (3,)
    >>> v.flags.writeable
    False
    """
    v = np.array([x, y, z], dtype=np.float64)
    v.flags.writeable = False
    return v


def add(a: Vec3, b: Vec3) -> Vec3:
    """Return a + b."""
    return np.add(a, b)


def sub(a: Vec3, b: Vec3) -> Vec3:
    """Return a - b."""
    return np.subtract(a, b)


def scale(k: float, v: Vec3) -> Vec3:
    """Return k * v."""
    return np.multiply(k, v)


def dot(a: Vec3, b: Vec3) -> float:
    """Dot product, reduced over the last axis.

    For two (3,) vectors this is a scalar; for two (N, 3) tables it is the
    (N,) array of row-wise products.
    """
    return np.sum(np.multiply(a, b), axis=-1)


def average(a: Vec3, b: Vec3) -> Vec3:
    """Midpoint of two vectors, computed as 0.5 * (a + b).

    The symmetric form matters: the averaged predictor-corrector relies on
    average(a, b) == average(b, a) bit for bit.

    Examples
    --------
    >>> a = vector(1.0, 2.0, 3.0)
    >>> b = vector(3.0, 2.0, 1.0)
    >>> average(a, b)
    array([2., 2., 2.])
    """
    return 0.5 * np.add(a, b)


def norm(v: Vec3) -> float:
    """Euclidean length, sqrt(v . v)."""
    return np.sqrt(dot(v, v))
