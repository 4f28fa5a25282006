# Evaluation module
from .bounds import Bounds, HalfSpaceBounds, FlatBounds, create_bounds
from .request import EvaluationRequest
from .reconstruction_error import AccuracyReport, compute_reconstruction_error, summarize_errors
from .error_coloring import compute_error_coloring, error_to_color
from .map_evaluator import MapEvaluator

__all__ = [
    'Bounds', 'HalfSpaceBounds', 'FlatBounds', 'create_bounds',
    'EvaluationRequest', 'AccuracyReport', 'compute_reconstruction_error',
    'summarize_errors', 'compute_error_coloring', 'error_to_color', 'MapEvaluator'
]
