"""
Lighting & Material Extraction
==============================
Derives grayscale layers from the room photo so a tile overlay inherits the
room's light falloff, shadows and highlights.

- Lighting map: blurred, normalized luma of the surface, used as a multiply layer
- Specular map: blurred excess over a brightness threshold, used as a screen layer

Both layers are sized to the quad's bounding box so they line up with the
tiled pattern buffer before it is warped.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import LightingConfig, SpecularConfig
from .geometry import as_quad, bbox_pixel_size, quad_to_bbox
from .realistic_blending import gray_buffer, luminance

logger = logging.getLogger(__name__)

MAX_LIGHTING_RADIUS = 50
MAX_SPECULAR_RADIUS = 20
# Blur output spread (0-255 scale) below which the field counts as flat
_FLAT_EPS = 1e-3


def _crop_window(quad: np.ndarray, full_width: int,
                 full_height: int) -> Optional[Tuple[int, int, int, int, int, int]]:
    """``(bx, by, crop_w, crop_h, out_w, out_h)`` for the quad's bbox, or None if empty."""
    out_w, out_h = bbox_pixel_size(quad)
    if out_w <= 0 or out_h <= 0 or full_width <= 0 or full_height <= 0:
        return None
    bbox = quad_to_bbox(quad)
    bx = int(np.clip(np.floor(bbox.x), 0, full_width - 1))
    by = int(np.clip(np.floor(bbox.y), 0, full_height - 1))
    crop_w = min(out_w, full_width - bx)
    crop_h = min(out_h, full_height - by)
    if crop_w <= 0 or crop_h <= 0:
        return None
    return bx, by, crop_w, crop_h, out_w, out_h


def gaussian_blur(values: np.ndarray, radius: int) -> np.ndarray:
    """Separable Gaussian with ``sigma = radius / 2.5`` and replicated edges."""
    size = 2 * radius + 1
    sigma = radius / 2.5
    return cv2.GaussianBlur(values.astype(np.float32), (size, size), sigmaX=sigma,
                            sigmaY=sigma, borderType=cv2.BORDER_REPLICATE)


def _pad_to(values: np.ndarray, out_w: int, out_h: int) -> np.ndarray:
    crop_h, crop_w = values.shape
    if (crop_w, crop_h) == (out_w, out_h):
        return values
    return np.pad(values, ((0, out_h - crop_h), (0, out_w - crop_w)), mode="edge")


def extract_lighting_map(room: np.ndarray, quad, occlusion_mask: Optional[np.ndarray] = None,
                         config: Optional[LightingConfig] = None) -> Optional[np.ndarray]:
    """
    Build the multiply layer for a surface.

    Args:
        room: Room photo (RGBA, full size)
        quad: Surface corners
        occlusion_mask: Full-size mask (alpha >= threshold = true surface); used
                        only when foreground pixels are replaced
        config: Lighting settings

    Returns:
        Opaque gray RGBA buffer of the quad's bbox size with values in
        ``[floor, 255]``, or None when nothing can be sampled
    """
    config = config or LightingConfig()
    points = as_quad(quad)
    if room is None or points is None:
        return None
    full_h, full_w = room.shape[:2]
    window = _crop_window(points, full_w, full_h)
    if window is None:
        return None
    bx, by, crop_w, crop_h, out_w, out_h = window

    gray = luminance(room[by:by + crop_h, bx:bx + crop_w])

    if not config.preserve_foreground_shadows:
        if occlusion_mask is None or occlusion_mask.shape[:2] != (full_h, full_w):
            return None
        surface = occlusion_mask[by:by + crop_h, bx:bx + crop_w, 3] >= config.wall_threshold
        if not surface.any():
            logger.debug("   no surface pixels under the quad, lighting layer absent")
            return None
        # Foreground objects would otherwise bake in as false shadows
        gray = np.where(surface, gray, np.median(gray[surface])).astype(np.float32)

    radius = int(np.clip(np.floor(config.blur_radius_px / 2), 1, MAX_LIGHTING_RADIUS))
    blurred = gaussian_blur(gray, radius)

    low = float(blurred.min())
    high = float(blurred.max())
    if high - low > _FLAT_EPS:
        normalized = (blurred - low) / (high - low)
    else:
        # Flat field: no shading to apply
        normalized = np.ones_like(blurred)

    floor = config.output_floor
    values = floor + (255 - floor) / 255.0 * 255.0 * normalized
    logger.debug(f"   lighting map {out_w}x{out_h} (blur r={radius}, floor={floor})")
    return gray_buffer(_pad_to(values, out_w, out_h))


def extract_specular_map(room: np.ndarray, quad,
                         config: Optional[SpecularConfig] = None) -> Optional[np.ndarray]:
    """
    Build the highlight layer for a glossy-tile screen pass.

    Luma at or above ``threshold`` is scaled linearly to 0-255, everything
    else is 0, then lightly blurred.
    """
    config = config or SpecularConfig()
    points = as_quad(quad)
    if room is None or points is None:
        return None
    full_h, full_w = room.shape[:2]
    window = _crop_window(points, full_w, full_h)
    if window is None:
        return None
    bx, by, crop_w, crop_h, out_w, out_h = window

    gray = luminance(room[by:by + crop_h, bx:bx + crop_w])
    threshold = float(config.threshold)
    span = max(1e-6, 255.0 - threshold)
    highlight = np.where(gray >= threshold, np.minimum(255.0, (gray - threshold) / span * 255.0), 0.0)

    radius = int(np.clip(config.blur_radius, 1, MAX_SPECULAR_RADIUS))
    blurred = gaussian_blur(highlight, radius)
    return gray_buffer(_pad_to(blurred, out_w, out_h))
