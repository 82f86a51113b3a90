"""
Vector Helpers
==============

Small 3D vector and angle routines used by the orbit and kinematics code.
"""

import numpy as np
from typing import Sequence, Union

from ..errors import NumericFailure

TWO_PI = 2.0 * np.pi

VectorLike = Union[np.ndarray, Sequence[float]]


def vec3(value: VectorLike) -> np.ndarray:
    """
    Convert a 3-element sequence to a float64 array.

    Raises:
        ValueError: If the input does not have exactly three components
    """
    arr = np.array(value, dtype=float)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit vector along v. A zero vector stays zero."""
    n = np.linalg.norm(v)
    if n < 1e-15:
        return np.zeros(3)
    return v / n


def wrap_angle(angle: float) -> float:
    """Wrap an angle into [0, 2π)."""
    wrapped = float(np.mod(angle, TWO_PI))
    # np.mod can return exactly 2π for tiny negative inputs
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def all_finite(*arrays: np.ndarray) -> bool:
    return all(bool(np.all(np.isfinite(a))) for a in arrays)


def ensure_finite(body_id: str, *arrays: np.ndarray):
    """Raise NumericFailure if any component is NaN or infinite."""
    if not all_finite(*arrays):
        raise NumericFailure(f"Non-finite state computed for {body_id!r}", body_id)


def rotation_x(angle: float) -> np.ndarray:
    """Rotation matrix about the X axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [1, 0, 0],
        [0, c, -s],
        [0, s, c]
    ])


def rotation_z(angle: float) -> np.ndarray:
    """Rotation matrix about the Z axis."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, -s, 0],
        [s, c, 0],
        [0, 0, 1]
    ])
