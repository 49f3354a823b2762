"""
Edge-based occlusion (no model required).

Strong image gradients usually outline objects standing in front of a wall
or floor. The dilated edge map is used either directly as an "edge strength"
layer or as a barrier for a flood fill from the image border, which also
removes the interiors of enclosed silhouettes.
"""

import logging

import cv2
import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

MIN_EDGE_THRESHOLD = 8.0
EDGE_THRESHOLD_FACTOR = 0.85

_EIGHT_CONNECTED = np.ones((3, 3), dtype=np.uint8)
_FOUR_CONNECTED = ndimage.generate_binary_structure(2, 1)


def _soften(binary: np.ndarray) -> np.ndarray:
    """3x3 mean over the in-bounds neighbours, rounded half up."""
    values = binary.astype(np.float32) * 255.0
    sums = cv2.boxFilter(values, -1, (3, 3), normalize=False, borderType=cv2.BORDER_CONSTANT)
    counts = cv2.boxFilter(np.ones_like(values), -1, (3, 3), normalize=False,
                           borderType=cv2.BORDER_CONSTANT)
    return np.clip(np.floor(sums / np.maximum(counts, 1.0) + 0.5), 0, 255).astype(np.uint8)


class EdgeOcclusionDetector:
    """Sobel edges, thresholded and dilated into an object barrier."""

    def __init__(self, dilation_iterations=6):
        self.dilation_iterations = max(0, int(dilation_iterations))

    def gradient_magnitude(self, image):
        """Sobel magnitude of the luma; the 1px border is left at zero."""
        gray = cv2.cvtColor(image.astype(np.float32), cv2.COLOR_RGBA2GRAY)
        gx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
        gy = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
        magnitude = np.hypot(gx, gy)
        magnitude[0, :] = 0
        magnitude[-1, :] = 0
        magnitude[:, 0] = 0
        magnitude[:, -1] = 0
        return magnitude

    def edge_barrier(self, image):
        """Boolean map of dilated edges."""
        height, width = image.shape[:2]
        if width <= 0 or height <= 0:
            return np.zeros((max(0, height), max(0, width)), dtype=bool)
        magnitude = self.gradient_magnitude(image)
        threshold = max(MIN_EDGE_THRESHOLD, float(magnitude.mean()) * EDGE_THRESHOLD_FACTOR)
        edges = (magnitude > threshold).astype(np.uint8)
        if self.dilation_iterations:
            edges = cv2.dilate(edges, _EIGHT_CONNECTED, iterations=self.dilation_iterations,
                               borderType=cv2.BORDER_CONSTANT, borderValue=0)
        logger.debug(f"   edge threshold {threshold:.1f}, {edges.mean() * 100:.1f}% barrier")
        return edges.astype(bool)

    def edge_strength_mask(self, image):
        """
        Edge strength plane: 255 on edges/objects, 0 on smooth surface.

        Invert it (``255 - strength``) to get the show-tile convention.
        """
        return _soften(self.edge_barrier(image))

    def flood_fill_wall_mask(self, image):
        """
        Surface plane: 255 where a pixel is reachable from the image border
        without crossing an edge (4-connected), 0 inside enclosed objects.
        """
        barrier = self.edge_barrier(image)
        if barrier.size == 0:
            return np.zeros(barrier.shape, dtype=np.uint8)
        labels, count = ndimage.label(~barrier, structure=_FOUR_CONNECTED)
        border_labels = np.unique(np.concatenate([
            labels[0, :], labels[-1, :], labels[:, 0], labels[:, -1],
        ]))
        border_labels = border_labels[border_labels > 0]
        wall = np.isin(labels, border_labels)
        logger.debug(f"   flood fill: {count} regions, {len(border_labels)} touch the border")
        return _soften(wall)
