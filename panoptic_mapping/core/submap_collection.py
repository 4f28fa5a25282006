"""
Submap Collection Module

Container of all submaps of a panoptic map, keyed by instance id.

Usage:
    submaps = SubmapCollection()
    submap = submaps.create_submap(SubmapConfig(voxel_size=0.05), submap_id=3)
    if submaps.submap_id_exists(3):
        layer = submaps.get_submap(3).tsdf_layer
    submaps.save_to_file("map.panmap")
"""

from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .submap import Submap, SubmapConfig


class SubmapCollection:
    """
    Mapping from instance id to Submap.

    Absence of an id is a normal condition; use submap_id_exists() before
    get_submap() when routing observations.
    """

    def __init__(self):
        self._submaps: Dict[int, Submap] = {}

    def __len__(self) -> int:
        return len(self._submaps)

    def __iter__(self) -> Iterator[Submap]:
        return iter(list(self._submaps.values()))

    def __contains__(self, submap_id: int) -> bool:
        return self.submap_id_exists(submap_id)

    def submap_id_exists(self, submap_id: int) -> bool:
        return int(submap_id) in self._submaps

    def get_submap(self, submap_id: int) -> Submap:
        """
        Get a submap by id.

        Raises:
            KeyError: If no submap with this id exists
        """
        try:
            return self._submaps[int(submap_id)]
        except KeyError:
            raise KeyError(f"Submap with ID '{submap_id}' does not exist") from None

    def ids(self) -> List[int]:
        return list(self._submaps.keys())

    def next_id(self) -> int:
        return max(self._submaps.keys(), default=-1) + 1

    def add_submap(self, submap: Submap) -> Submap:
        if submap.id in self._submaps:
            raise ValueError(f"Submap with ID '{submap.id}' already exists")
        self._submaps[submap.id] = submap
        return submap

    def create_submap(
        self,
        config: Optional[SubmapConfig] = None,
        submap_id: Optional[int] = None
    ) -> Submap:
        """
        Create and insert a new submap.

        Args:
            config: Submap configuration (defaults if None)
            submap_id: Id to use; the next free id if None

        Returns:
            submap: The new submap
        """
        if submap_id is None:
            submap_id = self.next_id()
        return self.add_submap(Submap(submap_id, config))

    def remove_submap(self, submap_id: int) -> Submap:
        return self._submaps.pop(int(submap_id))

    def clear(self):
        self._submaps.clear()

    def num_allocated_blocks(self) -> int:
        return sum(s.tsdf_layer.num_allocated_blocks for s in self._submaps.values())

    def save_to_file(self, filepath: Union[str, Path]):
        from ..io.map_io import save_submap_collection
        save_submap_collection(filepath, self)

    @classmethod
    def load_from_file(cls, filepath: Union[str, Path]) -> 'SubmapCollection':
        from ..io.map_io import load_submap_collection
        return load_submap_collection(filepath)
