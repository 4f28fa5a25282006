"""
Panoptic Map Serialization

Stores a whole SubmapCollection in a single .panmap file, which is a
numpy .npz archive:

    metadata                      JSON string (format version, submap configs)
    submap_<id>_block_indices     (B, 3) int64
    submap_<id>_distance          (B, vps^3) float32
    submap_<id>_weight            (B, vps^3) float32
    submap_<id>_color             (B, vps^3, 3) uint8
"""

import json
import zipfile
import numpy as np
from pathlib import Path
from typing import Union

from ..core.submap import Submap, SubmapConfig
from ..core.submap_collection import SubmapCollection


MAP_FILE_EXTENSION = ".panmap"
FORMAT_VERSION = 1


def _key(submap_id: int, name: str) -> str:
    return f"submap_{submap_id}_{name}"


def save_submap_collection(filepath: Union[str, Path], submaps: SubmapCollection):
    """
    Write all submaps to a .panmap file.

    Args:
        filepath: Output path (written as given, no extension is appended)
        submaps: Collection to store
    """
    filepath = Path(filepath)
    metadata = {"version": FORMAT_VERSION, "submaps": []}
    arrays = {}

    for submap in submaps:
        layer = submap.tsdf_layer
        vps = layer.voxels_per_side
        num_voxels = vps ** 3
        metadata["submaps"].append({
            "id": submap.id,
            "voxel_size": submap.config.voxel_size,
            "truncation_distance": submap.config.truncation_distance,
            "voxels_per_side": vps,
        })

        indices = layer.get_all_allocated_blocks()
        blocks = [layer.blocks[i] for i in indices]
        arrays[_key(submap.id, "block_indices")] = np.array(indices, dtype=np.int64).reshape(-1, 3)
        arrays[_key(submap.id, "distance")] = (
            np.stack([b.distance for b in blocks]) if blocks
            else np.empty((0, num_voxels), dtype=np.float32))
        arrays[_key(submap.id, "weight")] = (
            np.stack([b.weight for b in blocks]) if blocks
            else np.empty((0, num_voxels), dtype=np.float32))
        arrays[_key(submap.id, "color")] = (
            np.stack([b.color for b in blocks]) if blocks
            else np.empty((0, num_voxels, 3), dtype=np.uint8))

    arrays["metadata"] = np.array(json.dumps(metadata))

    with open(filepath, 'wb') as f:
        np.savez_compressed(f, **arrays)


def load_submap_collection(filepath: Union[str, Path]) -> SubmapCollection:
    """
    Read a .panmap file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a readable panoptic map
    """
    filepath = Path(filepath)
    if not filepath.is_file():
        raise FileNotFoundError(f"Map file not found: {filepath}")

    try:
        with np.load(filepath, allow_pickle=False) as data:
            metadata = json.loads(data["metadata"].item())
            if metadata.get("version") != FORMAT_VERSION:
                raise ValueError(f"Unsupported map format version: {metadata.get('version')}")

            submaps = SubmapCollection()
            for entry in metadata["submaps"]:
                config = SubmapConfig(
                    voxel_size=entry["voxel_size"],
                    truncation_distance=entry["truncation_distance"],
                    voxels_per_side=entry["voxels_per_side"],
                )
                submap = submaps.create_submap(config, submap_id=entry["id"])
                layer = submap.tsdf_layer

                indices = data[_key(submap.id, "block_indices")]
                distance = data[_key(submap.id, "distance")]
                weight = data[_key(submap.id, "weight")]
                color = data[_key(submap.id, "color")]
                for i, index in enumerate(indices):
                    block = layer.allocate_block(tuple(index))
                    block.distance[:] = distance[i]
                    block.weight[:] = weight[i]
                    block.color[:] = color[i]
    except (KeyError, OSError, zipfile.BadZipFile, json.JSONDecodeError) as e:
        raise ValueError(f"Could not read panoptic map from '{filepath}': {e}") from e

    return submaps
