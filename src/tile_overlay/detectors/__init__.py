# This file marks the detectors directory as a Python package.

from .base_detector import BaseDetector
from .depth_detector import DepthAnythingEstimator, DepthResult
from .edge_detector import EdgeOcclusionDetector
from .segformer_detector import ADE20K_CLASS_IDS, SegFormerSegmenter, SegmentationResult

__all__ = [
    'BaseDetector',
    'DepthAnythingEstimator',
    'DepthResult',
    'EdgeOcclusionDetector',
    'SegFormerSegmenter',
    'SegmentationResult',
    'ADE20K_CLASS_IDS',
]
