"""
Evaluation bounds: predicates restricting which points are evaluated.
"""

import numpy as np
from typing import Optional, Sequence


class Bounds:
    """Accepts every point."""

    def points_are_valid(self, points: np.ndarray) -> np.ndarray:
        """
        Args:
            points: (N, 3) positions

        Returns:
            valid: (N,) bool mask
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.ones(points.shape[0], dtype=bool)

    def point_is_valid(self, point: np.ndarray) -> bool:
        return bool(self.points_are_valid(np.asarray(point).reshape(1, 3))[0])


class HalfSpaceBounds(Bounds):
    """Accepts points p with normal . p >= offset."""

    def __init__(self, normal: Sequence[float] = (0.0, 0.0, 1.0), offset: float = 0.0):
        normal = np.asarray(normal, dtype=np.float64).reshape(3)
        norm = np.linalg.norm(normal)
        if norm < 1e-9:
            raise ValueError("Half-space normal must be non-zero")
        self.normal = normal / norm
        self.offset = float(offset)

    def points_are_valid(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return points @ self.normal >= self.offset


class FlatBounds(HalfSpaceBounds):
    """Everything at or above a horizontal ground plane."""

    def __init__(self, ground_height: float = 0.0):
        super().__init__((0.0, 0.0, 1.0), ground_height)


def create_bounds(config: Optional[dict] = None) -> Bounds:
    """
    Build a bounds policy from a config mapping.

    Supported types:
        none        - no restriction (default)
        flat        - z >= ground_height
        half_space  - normal . p >= offset
    """
    params = dict(config or {})
    bounds_type = str(params.pop("type", "none")).lower()
    if bounds_type == "none":
        return Bounds()
    if bounds_type == "flat":
        return FlatBounds(**params)
    if bounds_type == "half_space":
        return HalfSpaceBounds(**params)
    raise ValueError(f"Unknown bounds type '{bounds_type}'")
