"""
Spatial utility functions for planar geometry.

Agents live on a height field: all AI distances are measured in the
horizontal (x, y) plane, elevation is handled separately by terrain
following.
"""

import numpy as np
from typing import Tuple

from .constants import VECTOR_EPSILON
from .data_types import Bounds


def distance_2d(pos_a: np.ndarray, pos_b: np.ndarray) -> float:
    """
    Horizontal Euclidean distance between two points.

    Args:
        pos_a: Position [x, y, ...]
        pos_b: Position [x, y, ...]

    Returns:
        Distance in world units
    """
    return float(np.hypot(pos_a[0] - pos_b[0], pos_a[1] - pos_b[1]))


def normalize_2d(vec: np.ndarray, epsilon: float = VECTOR_EPSILON) -> Tuple[np.ndarray, float]:
    """
    Normalize the horizontal part of a vector.

    Vectors shorter than epsilon are returned unchanged (not rescaled).

    Args:
        vec: Vector [x, y, ...]

    Returns:
        Tuple of (3D vector with unit x/y and zero z, original planar length)
    """
    length = float(np.hypot(vec[0], vec[1]))
    out = np.array([vec[0], vec[1], 0.0], dtype=np.float64)
    if length > epsilon:
        out[:2] /= length
    return out, length


def direction_to(source: np.ndarray, target: np.ndarray) -> Tuple[np.ndarray, float]:
    """Unit planar direction from source to target, plus distance"""
    return normalize_2d(np.asarray(target, dtype=np.float64) - source)


def clamp_to_bounds(position: np.ndarray, bounds: Bounds) -> np.ndarray:
    """
    Clamp horizontal position into bounds in place.

    Returns:
        The same array, for chaining
    """
    position[0] = min(max(position[0], bounds.min_x), bounds.max_x)
    position[1] = min(max(position[1], bounds.min_y), bounds.max_y)
    return position
