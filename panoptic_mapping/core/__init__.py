# Core map data structures
from .tsdf_layer import Block, TsdfLayer
from .submap import Submap, SubmapConfig
from .submap_collection import SubmapCollection
from .interpolator import Interpolator
from .planning_interface import PlanningInterface

__all__ = [
    'Block', 'TsdfLayer', 'Submap', 'SubmapConfig', 'SubmapCollection',
    'Interpolator', 'PlanningInterface'
]
