"""
Map Evaluator

Runs an evaluation request against a stored panoptic map:

    1. Validate the request
    2. Load the ground-truth point cloud (evaluate / compute_coloring)
    3. Load the map (evaluate / compute_coloring / visualize)
    4. Write accuracy statistics to <dir>/<name>_evaluation_data.csv (evaluate)
    5. Recolor the map by error, save <dir>/<name>_evaluated.panmap (compute_coloring)
    6. Show the map (visualize)

Any failing stage ends the run and evaluate() returns False.

Usage:
    evaluator = MapEvaluator()
    success = evaluator.evaluate(EvaluationRequest.from_yaml("config/evaluation.yaml"))
"""

import numpy as np
from pathlib import Path
from typing import Optional

from ..core.planning_interface import PlanningInterface
from ..core.submap_collection import SubmapCollection
from ..io.map_io import MAP_FILE_EXTENSION, load_submap_collection, save_submap_collection
from ..io.pointcloud_io import load_pointcloud
from .bounds import create_bounds
from .error_coloring import compute_error_coloring
from .reconstruction_error import AccuracyReport, compute_reconstruction_error
from .request import EvaluationRequest


class MapEvaluator:
    """
    Evaluation pipeline for panoptic maps.

    Ground truth and map stay loaded between requests; a request with an
    empty path reuses what the previous request loaded.

    Attributes:
        gt_points: Loaded ground-truth points (N, 3)
        submaps: Loaded SubmapCollection
        target_directory: Output directory derived from the map file
        target_map_name: Map file name without extension
        last_report: AccuracyReport of the last evaluation
    """

    def __init__(self, visualizer=None):
        """
        Args:
            visualizer: Object with reset() and visualize_all(submaps);
                a SubmapVisualizer is created on first use if None
        """
        self.visualizer = visualizer
        self.gt_points: Optional[np.ndarray] = None
        self.submaps: Optional[SubmapCollection] = None
        self.planning: Optional[PlanningInterface] = None
        self.target_directory: Optional[Path] = None
        self.target_map_name: Optional[str] = None
        self.last_report: Optional[AccuracyReport] = None

    def evaluate(self, request: EvaluationRequest) -> bool:
        """
        Run all stages requested.

        Returns:
            success: False if any stage failed
        """
        if not request.is_valid(verbose=True):
            return False
        if request.verbosity >= 2:
            print(f"Processing:\n{request.to_string()}")

        try:
            bounds = create_bounds(dict(request.bounds))
        except (TypeError, ValueError) as e:
            print(f"Error: Invalid bounds configuration: {e}")
            return False

        if request.evaluate or request.compute_coloring:
            if not self._load_ground_truth(request):
                return False

        if request.evaluate or request.compute_coloring or request.visualize:
            if not self._load_map(request):
                return False

        if request.evaluate:
            out_file_name = self.target_directory / f"{self.target_map_name}_evaluation_data.csv"
            try:
                output_file = open(out_file_name, 'w')
            except OSError as e:
                print(f"Error: Failed to open output file '{out_file_name}': {e}")
                return False

            if request.verbosity >= 2:
                print("Computing reconstruction error:")
            with output_file:
                self.last_report = compute_reconstruction_error(
                    request, self.gt_points, self.planning, bounds)
                self.last_report.write(output_file)
            if request.verbosity >= 1:
                print(f"Mean error: {self.last_report.mean_error * 1000:.2f} mm, "
                      f"RMSE: {self.last_report.rmse * 1000:.2f} mm")

        if request.compute_coloring:
            if request.verbosity >= 2:
                print("Computing visualization coloring:")
            compute_error_coloring(request, self.gt_points, self.submaps, bounds)

            out_map_name = self.target_directory / f"{self.target_map_name}_evaluated{MAP_FILE_EXTENSION}"
            try:
                save_submap_collection(out_map_name, self.submaps)
            except OSError as e:
                print(f"Error: Failed to save colored map to '{out_map_name}': {e}")
                return False

        if request.visualize:
            if request.verbosity >= 2:
                print("Publishing mesh.")
            self.publish_visualization()

        if request.verbosity >= 2:
            print("Done.")
        return True

    def _load_ground_truth(self, request: EvaluationRequest) -> bool:
        if request.ground_truth_pointcloud_file:
            try:
                self.gt_points = load_pointcloud(request.ground_truth_pointcloud_file)
            except (OSError, ValueError) as e:
                print(f"Error: Could not load ground truth point cloud from "
                      f"'{request.ground_truth_pointcloud_file}': {e}")
                self.gt_points = None
                return False
            if request.verbosity >= 2:
                print(f"Loaded ground truth pointcloud ({self.gt_points.shape[0]} points).")

        if self.gt_points is None:
            print("Error: No ground truth pointcloud loaded.")
            return False
        return True

    def _load_map(self, request: EvaluationRequest) -> bool:
        if request.map_file:
            try:
                self.submaps = load_submap_collection(request.map_file)
            except (OSError, ValueError) as e:
                print(f"Error: Could not load panoptic map from '{request.map_file}': {e}")
                self.submaps = None
                self.planning = None
                return False

            self.planning = PlanningInterface(self.submaps)
            map_path = Path(request.map_file)
            self.target_directory = map_path.parent
            if map_path.name.endswith(MAP_FILE_EXTENSION):
                self.target_map_name = map_path.name[:-len(MAP_FILE_EXTENSION)]
            else:
                print(f"Warning: Map file '{map_path.name}' does not end in '{MAP_FILE_EXTENSION}', "
                      f"naming outputs after the full file name.")
                self.target_map_name = map_path.name
            if request.verbosity >= 2:
                print(f"Loaded the target panoptic map ({len(self.submaps)} submaps).")

        if self.submaps is None:
            print("Error: No panoptic map loaded.")
            return False
        return True

    def publish_visualization(self):
        if self.visualizer is None:
            from ..visualization.submap_visualizer import SubmapVisualizer
            self.visualizer = SubmapVisualizer()
        self.visualizer.reset()
        self.visualizer.visualize_all(self.submaps)
