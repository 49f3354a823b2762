"""
Semantic segmentation for occlusion masks.

SegFormer fine-tuned on ADE20K; the per-pixel argmax class grid is kept at
the model's own resolution and resampled later by the mask builder.
"""

import logging
from typing import Dict, NamedTuple, Optional

import numpy as np
from PIL import Image

from .base_detector import BaseDetector

logger = logging.getLogger(__name__)

# ADE20K class ids (0-based, as in the checkpoint's id2label)
ADE20K_CLASS_IDS = {
    "wall": 0,
    "floor": 3,
}


class SegmentationResult(NamedTuple):
    class_map: np.ndarray
    class_ids: Dict[str, int]


class SegFormerSegmenter(BaseDetector):
    name = "segmentation"

    def __init__(self, model_name="nvidia/segformer-b2-finetuned-ade-512-512",
                 device: Optional[str] = None, class_ids: Optional[Dict[str, int]] = None):
        super().__init__()
        self.model_name = model_name
        self.device = device
        self.class_ids = dict(class_ids or ADE20K_CLASS_IDS)
        self.processor = None

    def load_model(self):
        import torch
        from transformers import AutoImageProcessor, SegformerForSemanticSegmentation

        if self.device is None:
            self.device = "cuda" if torch.cuda.is_available() else "cpu"
        self.processor = AutoImageProcessor.from_pretrained(self.model_name)
        model = SegformerForSemanticSegmentation.from_pretrained(self.model_name).to(self.device)
        model.eval()
        return model

    def preprocess_image(self, image):
        rgb = Image.fromarray(np.ascontiguousarray(image[:, :, :3])).convert("RGB")
        return self.processor(images=rgb, return_tensors="pt").to(self.device)

    def run_model(self, inputs):
        import torch

        with torch.no_grad():
            outputs = self.model(**inputs)
        return outputs.logits

    def postprocess(self, outputs, image):
        # logits: [1, num_classes, H/4, W/4]
        class_map = outputs.argmax(dim=1).squeeze(0).cpu().numpy().astype(np.int32)
        h, w = class_map.shape
        logger.info(f"   ✓ Segmentation ready: {w}x{h}")
        return SegmentationResult(class_map=class_map, class_ids=dict(self.class_ids))
