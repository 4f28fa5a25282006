"""
Map-level distance queries across all submaps.
"""

import numpy as np
from typing import Optional, Tuple

from .interpolator import Interpolator
from .submap_collection import SubmapCollection


class PlanningInterface:
    """
    Answers "what is the signed distance to the nearest surface here?"
    for a whole SubmapCollection.

    The result is the minimum signed distance over all submaps whose
    interpolator knows the location.
    """

    def __init__(self, submaps: SubmapCollection):
        self.submaps = submaps

    def get_distance(self, point: np.ndarray) -> Optional[float]:
        distances, known = self.get_distances(np.asarray(point).reshape(1, 3))
        if not known[0]:
            return None
        return float(distances[0])

    def get_distances(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Args:
            points: (N, 3) positions in map frame

        Returns:
            distances: (N,) float64, zero where unknown
            known: (N,) bool
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        min_distance = np.full(points.shape[0], np.inf)
        known = np.zeros(points.shape[0], dtype=bool)

        for submap in self.submaps:
            distances, submap_known = Interpolator(submap.tsdf_layer).get_distances(points)
            min_distance = np.where(submap_known, np.minimum(min_distance, distances), min_distance)
            known |= submap_known

        return np.where(known, min_distance, 0.0), known
