"""
TSDF Layer Module

Block-structured sparse TSDF grid. Voxels are stored in fixed-size cubic
blocks that are only allocated where observations arrive.

Indexing conventions:
    - A voxel with global index g has its center at (g + 0.5) * voxel_size
    - Its block index is floor(g / voxels_per_side)
    - Inside a block, voxels are addressed by the linear index
      x + vps * (y + vps * z)

Usage:
    layer = TsdfLayer(voxel_size=0.05, voxels_per_side=16)
    block = layer.allocate_block((0, 0, 0))
    distance, weight, found = layer.lookup_voxels(global_indices)
"""

import numpy as np
from typing import Dict, List, Optional, Tuple


BlockIndex = Tuple[int, int, int]


class Block:
    """
    A cube of voxels_per_side^3 TSDF voxels.

    Attributes:
        index: Integer block index (bx, by, bz)
        distance: Signed distance per voxel (N,) float32
        weight: Accumulated fusion weight per voxel (N,) float32
        color: RGB color per voxel (N, 3) uint8
        updated: Whether any voxel changed since the flag was last cleared
    """

    def __init__(self, index: BlockIndex, voxels_per_side: int, voxel_size: float):
        self.index = tuple(int(v) for v in index)
        self.voxels_per_side = voxels_per_side
        self.voxel_size = voxel_size

        num_voxels = voxels_per_side ** 3
        self.distance = np.zeros(num_voxels, dtype=np.float32)
        self.weight = np.zeros(num_voxels, dtype=np.float32)
        self.color = np.zeros((num_voxels, 3), dtype=np.uint8)
        self.updated = False

    @property
    def num_voxels(self) -> int:
        return self.voxels_per_side ** 3

    def global_voxel_indices(self) -> np.ndarray:
        """
        Global voxel indices of all voxels in linear-index order.

        Returns:
            indices: (N, 3) int64 array
        """
        vps = self.voxels_per_side
        linear = np.arange(self.num_voxels, dtype=np.int64)
        local = np.stack([linear % vps, (linear // vps) % vps, linear // (vps * vps)], axis=1)
        return np.asarray(self.index, dtype=np.int64) * vps + local

    def compute_voxel_centers(self) -> np.ndarray:
        """World coordinates of all voxel centers, (N, 3) float64."""
        return (self.global_voxel_indices() + 0.5) * self.voxel_size

    def compute_coordinates_from_linear_index(self, linear_index: int) -> np.ndarray:
        vps = self.voxels_per_side
        local = np.array([linear_index % vps, (linear_index // vps) % vps, linear_index // (vps * vps)])
        return (np.asarray(self.index) * vps + local + 0.5) * self.voxel_size


class TsdfLayer:
    """
    Sparse collection of TSDF blocks sharing one voxel size.

    Attributes:
        voxel_size: Edge length of a voxel in meters
        voxels_per_side: Number of voxels along each block edge
        blocks: Mapping from block index to Block
    """

    def __init__(self, voxel_size: float, voxels_per_side: int = 16):
        if voxel_size <= 0:
            raise ValueError(f"voxel_size must be positive, got {voxel_size}")
        if voxels_per_side <= 0:
            raise ValueError(f"voxels_per_side must be positive, got {voxels_per_side}")
        self.voxel_size = float(voxel_size)
        self.voxels_per_side = int(voxels_per_side)
        self.blocks: Dict[BlockIndex, Block] = {}

    @property
    def block_size(self) -> float:
        return self.voxel_size * self.voxels_per_side

    @property
    def num_allocated_blocks(self) -> int:
        return len(self.blocks)

    def allocate_block(self, index: BlockIndex) -> Block:
        """Return the block at index, allocating it if needed."""
        key = tuple(int(v) for v in index)
        block = self.blocks.get(key)
        if block is None:
            block = Block(key, self.voxels_per_side, self.voxel_size)
            self.blocks[key] = block
        return block

    def get_block(self, index: BlockIndex) -> Optional[Block]:
        return self.blocks.get(tuple(int(v) for v in index))

    def has_block(self, index: BlockIndex) -> bool:
        return tuple(int(v) for v in index) in self.blocks

    def get_all_allocated_blocks(self) -> List[BlockIndex]:
        """Allocated block indices in sorted order."""
        return sorted(self.blocks.keys())

    def point_to_global_voxel_index(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.floor(points / self.voxel_size).astype(np.int64)

    def split_global_indices(
        self,
        global_indices: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Split global voxel indices into block indices and linear voxel indices.

        Args:
            global_indices: (N, 3) integer voxel indices

        Returns:
            block_indices: (N, 3) int64 block indices
            linear_indices: (N,) int64 linear indices inside each block
        """
        vps = self.voxels_per_side
        global_indices = np.asarray(global_indices, dtype=np.int64).reshape(-1, 3)
        block_indices = np.floor_divide(global_indices, vps)
        local = global_indices - block_indices * vps
        linear_indices = local[:, 0] + vps * (local[:, 1] + vps * local[:, 2])
        return block_indices, linear_indices

    def lookup_voxels(
        self,
        global_indices: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized voxel lookup.

        Args:
            global_indices: (N, 3) integer voxel indices

        Returns:
            distance: (N,) float32, zero where not allocated
            weight: (N,) float32, zero where not allocated
            found: (N,) bool, True where the voxel's block is allocated
        """
        global_indices = np.asarray(global_indices, dtype=np.int64).reshape(-1, 3)
        num = global_indices.shape[0]
        distance = np.zeros(num, dtype=np.float32)
        weight = np.zeros(num, dtype=np.float32)
        found = np.zeros(num, dtype=bool)
        if num == 0 or not self.blocks:
            return distance, weight, found

        block_indices, linear_indices = self.split_global_indices(global_indices)
        keys, inverse = np.unique(block_indices, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        for k, key in enumerate(keys):
            block = self.blocks.get(tuple(int(v) for v in key))
            if block is None:
                continue
            selected = inverse == k
            linear = linear_indices[selected]
            distance[selected] = block.distance[linear]
            weight[selected] = block.weight[linear]
            found[selected] = True
        return distance, weight, found
