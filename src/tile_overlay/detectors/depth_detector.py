"""
Monocular depth estimation for occlusion masks.

Wraps a Depth Anything checkpoint from ``transformers``. The predicted map is
relative inverse depth, so higher values are closer to the camera.
"""

import logging
from typing import NamedTuple, Optional

import numpy as np
from PIL import Image

from .base_detector import BaseDetector

logger = logging.getLogger(__name__)


class DepthResult(NamedTuple):
    depth: np.ndarray
    width: int
    height: int


class DepthAnythingEstimator(BaseDetector):
    name = "depth"

    def __init__(self, model_name="LiheYoung/depth-anything-small-hf",
                 input_size=384, device: Optional[str] = None):
        super().__init__()
        self.model_name = model_name
        self.input_size = input_size
        self.device = device
        self.processor = None

    def load_model(self):
        import torch
        from transformers import AutoImageProcessor, AutoModelForDepthEstimation

        if self.device is None:
            self.device = "cuda" if torch.cuda.is_available() else "cpu"
        self.processor = AutoImageProcessor.from_pretrained(self.model_name)
        model = AutoModelForDepthEstimation.from_pretrained(self.model_name).to(self.device)
        model.eval()
        return model

    def preprocess_image(self, image):
        """Square-resize to the model input size and build the tensor batch."""
        rgb = Image.fromarray(np.ascontiguousarray(image[:, :, :3])).convert("RGB")
        inputs = self.processor(
            images=rgb,
            size={"height": self.input_size, "width": self.input_size},
            keep_aspect_ratio=False,
            return_tensors="pt",
        )
        return inputs.to(self.device)

    def run_model(self, inputs):
        import torch

        with torch.no_grad():
            outputs = self.model(**inputs)
        return outputs.predicted_depth

    def postprocess(self, outputs, image):
        depth = outputs.squeeze().float().cpu().numpy().astype(np.float32)
        if depth.ndim != 2:
            raise ValueError(f"Unexpected depth output shape {depth.shape}")
        height, width = depth.shape
        logger.info(f"   ✓ Depth map ready: {width}x{height}")
        return DepthResult(depth=depth, width=width, height=height)
