"""
Mask Refinement Tools
======================
Builds and refines the alpha masks that clip a tile overlay.

Key Features:
- Hard and feathered quad-boundary masks
- Morphological close (dilate then erode) to drop specks and holes
- Box blur to soften what is left of hard edges
- Intersection of masks (tile shows only where all masks permit)
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .config import MaskConfig
from .geometry import as_quad, inset_quad, inside_quad_grid
from .realistic_blending import blank_buffer, combine_masks, mask_from_alpha

logger = logging.getLogger(__name__)

MAX_CLOSE_RADIUS = 5
MAX_EDGE_BLUR = 4


def _box_blur(alpha: np.ndarray, radius: int) -> np.ndarray:
    size = 2 * radius + 1
    return cv2.blur(alpha, (size, size), borderType=cv2.BORDER_REPLICATE)


class MaskRefinement:
    """
    Tools for building and smoothing overlay masks
    """

    def __init__(self, config: Optional[MaskConfig] = None):
        """Initialize mask refinement tools"""
        self.config = config or MaskConfig()

    def quad_mask(self, width: int, height: int, quad,
                  inset_px: Optional[float] = None) -> np.ndarray:
        """
        Hard quad mask: 255 inside the (inset) quad, 0 outside.

        Args:
            width: Mask width
            height: Mask height
            quad: 4 corner points, either winding
            inset_px: Pull corners toward the centroid by this many pixels
                      (defaults to ``quad_inset_px``)

        Returns:
            RGBA mask; fully transparent for an invalid quad
        """
        if width <= 0 or height <= 0:
            return blank_buffer(max(0, width), max(0, height))
        points = as_quad(quad)
        if points is None:
            return mask_from_alpha(np.zeros((height, width), dtype=np.uint8))
        if inset_px is None:
            inset_px = self.config.quad_inset_px
        inside = inside_quad_grid(inset_quad(points, inset_px), width, height)
        return mask_from_alpha(np.where(inside, 255, 0))

    def feathered_quad_mask(self, width: int, height: int, quad,
                            feather_px: int = 5,
                            inset_px: Optional[float] = None) -> np.ndarray:
        """
        Quad mask with a soft boundary ramp.

        The binary mask (inset by ``quad_inset_px`` unless ``inset_px`` is
        given) is box blurred with radius ``max(1, feather_px // 2)``, alpha only.
        """
        hard = self.quad_mask(width, height, quad, inset_px=inset_px)
        if hard.size == 0:
            return hard
        radius = max(1, int(feather_px) // 2)
        return mask_from_alpha(_box_blur(hard[:, :, 3], radius))

    def smooth_mask(self, mask: np.ndarray, close_radius: Optional[int] = None,
                    edge_blur_px: Optional[int] = None) -> np.ndarray:
        """
        Morphological close followed by an optional box blur.

        Args:
            mask: RGBA occlusion mask
            close_radius: Dilate/erode radius, clamped to [0, 5]
            edge_blur_px: Box blur radius, clamped to [0, 4]

        Returns:
            New smoothed mask
        """
        if close_radius is None:
            close_radius = self.config.close_radius
        if edge_blur_px is None:
            edge_blur_px = self.config.edge_blur_px
        close_radius = int(np.clip(close_radius, 0, MAX_CLOSE_RADIUS))
        edge_blur_px = int(np.clip(edge_blur_px, 0, MAX_EDGE_BLUR))

        alpha = np.ascontiguousarray(mask[:, :, 3])
        if close_radius > 0:
            kernel = cv2.getStructuringElement(
                cv2.MORPH_RECT, (2 * close_radius + 1, 2 * close_radius + 1)
            )
            # Closing: fills small holes
            alpha = cv2.dilate(alpha, kernel, borderType=cv2.BORDER_REPLICATE)
            alpha = cv2.erode(alpha, kernel, borderType=cv2.BORDER_REPLICATE)
        if edge_blur_px > 0:
            alpha = _box_blur(alpha, edge_blur_px)

        logger.debug(f"   ✓ Mask smoothed (close={close_radius}, blur={edge_blur_px})")
        return mask_from_alpha(alpha)

    def combine(self, mask_a: np.ndarray, mask_b: np.ndarray) -> np.ndarray:
        """Intersection of two masks (per-pixel min of alpha)."""
        return combine_masks(mask_a, mask_b)
