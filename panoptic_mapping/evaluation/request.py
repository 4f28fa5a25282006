"""
Evaluation Request

Immutable description of one evaluation run, usually read from a YAML file:

    verbosity: 2
    map_file: /data/run1.panmap
    ground_truth_pointcloud_file: /data/gt.ply
    maximum_distance: 0.2
    evaluate: true
    visualize: false
    compute_coloring: true
    bounds:
      type: flat
      ground_height: 0.0
"""

import yaml
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class EvaluationRequest:
    verbosity: int = 1
    map_file: str = ""
    ground_truth_pointcloud_file: str = ""
    maximum_distance: float = 0.2
    evaluate: bool = True
    visualize: bool = False
    compute_coloring: bool = False
    bounds: Mapping = field(default_factory=lambda: MappingProxyType({"type": "none"}))

    def __post_init__(self):
        object.__setattr__(self, "verbosity", int(self.verbosity))
        object.__setattr__(self, "maximum_distance", float(self.maximum_distance))
        object.__setattr__(self, "bounds", MappingProxyType(dict(self.bounds or {})))

    @classmethod
    def from_dict(cls, params: Optional[dict]) -> 'EvaluationRequest':
        params = dict(params or {})
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown evaluation parameters: {sorted(unknown)}")
        return cls(**params)

    @classmethod
    def from_yaml(cls, config_path: str) -> 'EvaluationRequest':
        """Load a request from a YAML file."""
        with open(config_path, 'r') as f:
            return cls.from_dict(yaml.safe_load(f))

    def check_params(self):
        """
        Raises:
            ValueError: If maximum_distance is not positive
        """
        if not self.maximum_distance > 0:
            raise ValueError(
                f"Param 'maximum_distance' is expected > 0 (is: {self.maximum_distance}).")

    def is_valid(self, verbose: bool = False) -> bool:
        try:
            self.check_params()
        except ValueError as e:
            if verbose:
                print(f"Error: Invalid evaluation request: {e}")
            return False
        return True

    def to_string(self) -> str:
        lines = [f"  {f.name}: {getattr(self, f.name)}" for f in fields(self) if f.name != "bounds"]
        lines.append(f"  bounds: {dict(self.bounds)}")
        return "\n".join(lines)
