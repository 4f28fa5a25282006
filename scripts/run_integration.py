#!/usr/bin/env python3
"""
Panoptic Integration Script

Fuses a dataset of RGB-D frames with instance id images into one TSDF
submap per instance and stores the result as a .panmap file.

Usage:
    python run_integration.py --data data/scenes/scene_001 --output output/scene_001.panmap

Prerequisites:
    Dataset with color/, depth/, ids/, poses.txt and intrinsics.json
"""

import argparse
import sys
import yaml
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from panoptic_mapping.core import SubmapCollection
from panoptic_mapping.integration import NaiveIntegrator
from panoptic_mapping.io import DataLoader
from panoptic_mapping.tracking import GroundTruthIdTracker


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def main():
    parser = argparse.ArgumentParser(description="Panoptic TSDF Integration")
    parser.add_argument(
        '--data', type=str, required=True,
        help='Path to dataset directory'
    )
    parser.add_argument(
        '--output', type=str, required=True,
        help='Output path for the panoptic map (.panmap)'
    )
    parser.add_argument(
        '--config', type=str, default='config/integration.yaml',
        help='Path to integration configuration file'
    )
    parser.add_argument(
        '--integrator-type', type=str, default=None,
        help='Override integrator type (simple, merged, fast)'
    )
    parser.add_argument(
        '--max-frames', type=int, default=None,
        help='Only integrate the first N frames'
    )
    parser.add_argument(
        '--visualize', action='store_true',
        help='Visualize result after integration'
    )
    args = parser.parse_args()

    config = load_config(args.config)
    integrator_params = dict(config.get('integrator') or {})
    if args.integrator_type:
        integrator_params['type'] = args.integrator_type

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    print("="*60)
    print("Panoptic TSDF Integration")
    print("="*60)
    print(f"Data directory: {args.data}")
    print(f"Output: {args.output}")
    print(f"Integrator: {integrator_params.get('type', 'simple')}")
    print("="*60 + "\n")

    loader = DataLoader(args.data)
    submaps = SubmapCollection()
    tracker = GroundTruthIdTracker(GroundTruthIdTracker.Config.from_dict(config.get('id_tracker')))
    integrator = NaiveIntegrator(
        NaiveIntegrator.Config.from_dict(integrator_params),
        intrinsic=loader.get_open3d_intrinsic()
    )

    num_frames = len(loader)
    if args.max_frames is not None:
        num_frames = min(num_frames, args.max_frames)

    print("Integrating frames...")
    integrated_frames = 0
    for i in range(num_frames):
        try:
            color, depth, ids, pose = loader.get_frame(i)
        except (FileNotFoundError, ValueError) as e:
            print(f"Warning: Failed to load frame {i}: {e}")
            continue
        tracker.process_ids(submaps, ids)
        integrator.process_images(submaps, pose, depth, color, ids)
        integrated_frames += 1
        if integrated_frames % 10 == 0:
            print(f"Integrated frame {integrated_frames}")

    print(f"\nIntegrated {integrated_frames} frames into {len(submaps)} submaps")

    submaps.save_to_file(output_path)
    print(f"Panoptic map saved to: {output_path}")

    if args.visualize:
        from panoptic_mapping.visualization import SubmapVisualizer

        print("\nOpening visualization...")
        SubmapVisualizer().visualize_all(submaps)


if __name__ == "__main__":
    main()
