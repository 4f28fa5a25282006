# Visualization module
from .submap_visualizer import SubmapVisualizer

__all__ = ['SubmapVisualizer']
