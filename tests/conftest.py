"""Shared fixtures for the tile overlay tests."""

import numpy as np
import pytest

from tile_overlay.detectors.depth_detector import DepthResult
from tile_overlay.detectors.segformer_detector import ADE20K_CLASS_IDS, SegmentationResult
from tile_overlay.utils.config import config_from_dict
from tile_overlay.errors import ModelUnavailableError


def solid(width, height, color):
    """Opaque RGBA buffer filled with ``color`` (r, g, b)."""
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[:, :, :3] = color
    image[:, :, 3] = 255
    return image


class FakeDepthService:
    """Same contract as DepthAnythingEstimator, no model."""

    def __init__(self, depth=None):
        self.depth = np.ones((48, 64), dtype=np.float32) if depth is None else depth
        self.init_calls = 0
        self.predict_calls = 0

    def init(self):
        self.init_calls += 1
        return self

    def predict(self, image):
        self.predict_calls += 1
        h, w = self.depth.shape
        return DepthResult(depth=self.depth, width=w, height=h)


class FakeSegmentationService:
    def __init__(self, class_map=None):
        if class_map is None:
            class_map = np.zeros((32, 32), dtype=np.int32)
        self.class_map = class_map

    def init(self):
        return self

    def predict(self, image):
        return SegmentationResult(class_map=self.class_map, class_ids=dict(ADE20K_CLASS_IDS))


class FailingService:
    def init(self):
        raise ModelUnavailableError("weights missing")

    def predict(self, image):
        raise ModelUnavailableError("inference failed")


@pytest.fixture
def room():
    """800x600 plain gray room."""
    return solid(800, 600, (120, 120, 120))


@pytest.fixture
def square_quad():
    return [(100, 100), (500, 100), (500, 500), (100, 500)]


@pytest.fixture
def red_tile():
    return solid(32, 32, (255, 0, 0))


@pytest.fixture
def plain_config():
    """No noise, no grout, no edge fallback: output depends only on the inputs."""
    return config_from_dict({
        "occlusion": {"edge_fallback": False},
        "pattern": {"grout": False, "noise_seed": 0},
        "surfaces": {
            "wall": {"noise_opacity": 0.0},
            "floor": {"noise_opacity": 0.0, "floor_effects": False},
        },
    })
