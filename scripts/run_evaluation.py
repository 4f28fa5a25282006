#!/usr/bin/env python3
"""
Panoptic Map Evaluation Script

Evaluates a stored panoptic map against a ground-truth point cloud and/or
colors it by reconstruction error.

Usage:
    python run_evaluation.py --config config/evaluation.yaml
    python run_evaluation.py --map output/scene.panmap --ground-truth gt.ply --coloring

Outputs (next to the map file):
    <name>_evaluation_data.csv   accuracy statistics
    <name>_evaluated.panmap      map colored by error
"""

import argparse
import sys
import yaml
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from panoptic_mapping.evaluation import EvaluationRequest, MapEvaluator


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def main() -> int:
    parser = argparse.ArgumentParser(description="Panoptic Map Evaluation")
    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to evaluation request file'
    )
    parser.add_argument(
        '--map', type=str, default=None,
        help='Map file to evaluate (.panmap)'
    )
    parser.add_argument(
        '--ground-truth', type=str, default=None,
        help='Ground truth point cloud (.ply)'
    )
    parser.add_argument(
        '--maximum-distance', type=float, default=None,
        help='Errors above this distance are truncated (m)'
    )
    parser.add_argument(
        '--coloring', action='store_true',
        help='Compute the error coloring'
    )
    parser.add_argument(
        '--visualize', action='store_true',
        help='Show the map after evaluation'
    )
    parser.add_argument(
        '--verbosity', type=int, default=None,
        help='0: silent, 1: progress, 2: stage messages'
    )
    args = parser.parse_args()

    params = load_config(args.config) if args.config else {}
    overrides = {
        'map_file': args.map,
        'ground_truth_pointcloud_file': args.ground_truth,
        'maximum_distance': args.maximum_distance,
        'verbosity': args.verbosity,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.coloring:
        params['compute_coloring'] = True
    if args.visualize:
        params['visualize'] = True

    try:
        request = EvaluationRequest.from_dict(params)
    except (TypeError, ValueError) as e:
        print(f"Error: Invalid evaluation request: {e}")
        return 1

    success = MapEvaluator().evaluate(request)
    if not success:
        print("Evaluation failed.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
