# Submap allocation module
from .id_tracker import GroundTruthIdTracker

__all__ = ['GroundTruthIdTracker']
