"""
Reconstruction Error

Compares a map's distance field against a ground-truth surface point set.
Every ground-truth point lies on the true surface, so the map's distance at
that point is the local reconstruction error.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, TextIO

from tqdm import tqdm

from ..core.planning_interface import PlanningInterface
from .bounds import Bounds
from .request import EvaluationRequest


CSV_HEADER = "MeanError,StdError,RMSE,TotalPoints,UnknownPoints,TruncatedPoints"


@dataclass
class AccuracyReport:
    mean_error: float = 0.0
    std_error: float = 0.0
    rmse: float = 0.0
    total_points: int = 0
    unknown_points: int = 0
    truncated_points: int = 0
    num_samples: int = 0

    def to_csv(self) -> str:
        return (f"{CSV_HEADER}\n"
                f"{self.mean_error},{self.std_error},{self.rmse},{self.total_points},"
                f"{self.unknown_points},{self.truncated_points}\n")

    def write(self, stream: TextIO):
        stream.write(self.to_csv())


def summarize_errors(errors: np.ndarray) -> tuple:
    """
    Mean, standard deviation and RMSE of absolute errors.

    The standard deviation uses Bessel's correction and is only computed
    for at least 3 samples, otherwise it is 0.

    Returns:
        mean, std, rmse
    """
    errors = np.asarray(errors, dtype=np.float64)
    n = errors.shape[0]
    if n == 0:
        return 0.0, 0.0, 0.0
    mean = float(np.sum(errors) / n)
    rmse = float(np.sqrt(np.sum(errors ** 2) / n))
    std = 0.0
    if n > 2:
        std = float(np.sqrt(np.sum((errors - mean) ** 2) / (n - 1)))
    return mean, std, rmse


def compute_reconstruction_error(
    request: EvaluationRequest,
    gt_points: np.ndarray,
    planning: PlanningInterface,
    bounds: Optional[Bounds] = None
) -> AccuracyReport:
    """
    Compute accuracy statistics of the map at the ground-truth points.

    Out-of-bounds points are ignored, points in unknown space are counted as
    unknown, and errors above request.maximum_distance are clamped and
    counted as truncated.

    Args:
        request: Validated evaluation request
        gt_points: (N, 3) ground-truth surface points
        planning: Distance queries on the evaluated map
        bounds: Evaluation region (everything if None)

    Returns:
        report: AccuracyReport, TotalPoints is len(gt_points)
    """
    bounds = bounds if bounds is not None else Bounds()
    gt_points = np.asarray(gt_points, dtype=np.float64).reshape(-1, 3)
    total_points = gt_points.shape[0]
    max_distance = request.maximum_distance

    unknown_points = 0
    truncated_points = 0
    errors = []

    interval = max(total_points // 100, 1)
    with tqdm(total=total_points, desc="Reconstruction error", unit="pts",
              disable=request.verbosity < 1) as bar:
        for start in range(0, total_points, interval):
            chunk = gt_points[start:start + interval]
            chunk = chunk[bounds.points_are_valid(chunk)]

            distances, known = planning.get_distances(chunk)
            unknown_points += int(np.count_nonzero(~known))

            abs_error = np.abs(distances[known])
            truncated = abs_error > max_distance
            truncated_points += int(np.count_nonzero(truncated))
            abs_error[truncated] = max_distance
            errors.append(abs_error)

            bar.update(min(interval, total_points - start))

    errors = np.concatenate(errors) if errors else np.zeros(0)
    mean, std, rmse = summarize_errors(errors)
    return AccuracyReport(
        mean_error=mean,
        std_error=std,
        rmse=rmse,
        total_points=total_points,
        unknown_points=unknown_points,
        truncated_points=truncated_points,
        num_samples=int(errors.shape[0]),
    )
