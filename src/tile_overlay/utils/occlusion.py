"""
Occlusion Masks
===============
Decides, per pixel, whether the tile may show (wall/floor) or must stay
hidden (foreground object in front of the surface).

Sources, in priority order:
1. Depth map       - pixels at the surface's depth
2. Segmentation    - pixels classified as the target class
3. Edge fallback   - pixels away from strong image edges

``select_occlusion_mask`` walks an explicit list of sources and takes the
first one that yields a mask.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..detectors.edge_detector import EdgeOcclusionDetector
from .geometry import as_quad
from .realistic_blending import invert_mask, mask_from_alpha

logger = logging.getLogger(__name__)


def bilinear_sample(values: np.ndarray, x, y) -> np.ndarray:
    """Bilinearly sample a 2-D array at (possibly fractional) coordinates, edge-clamped."""
    h, w = values.shape
    x = np.clip(np.asarray(x, dtype=np.float64), 0, w - 1)
    y = np.clip(np.asarray(y, dtype=np.float64), 0, h - 1)
    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = x - x0
    fy = y - y0
    v00 = values[y0, x0]
    v10 = values[y0, x1]
    v01 = values[y1, x0]
    v11 = values[y1, x1]
    return ((1 - fx) * (1 - fy) * v00 + fx * (1 - fy) * v10
            + (1 - fx) * fy * v01 + fx * fy * v11)


def depth_wall_mask(depth: np.ndarray, quad, width: int, height: int,
                    tolerance: float = 0.15,
                    closer_is_higher: bool = True) -> Optional[np.ndarray]:
    """
    Mark pixels whose depth matches the depth of the marked surface.

    The surface depth is the median of samples at the 4 corners and the
    centroid. With ``closer_is_higher`` (disparity-style output) the surface
    is the far side, so a pixel counts when ``d <= wall + delta``; otherwise
    when ``d >= wall - delta``.

    Args:
        depth: 2-D depth map at its own resolution
        quad: Surface corners in output pixel coordinates
        width: Output width
        height: Output height
        tolerance: Relative band around the surface depth
        closer_is_higher: Depth convention of the model

    Returns:
        RGBA mask (255 = surface) or None for invalid input
    """
    points = as_quad(quad)
    depth = np.asarray(depth, dtype=np.float64)
    if points is None or depth.ndim != 2 or depth.size == 0 or width <= 0 or height <= 0:
        return None
    depth_h, depth_w = depth.shape
    scale_x = depth_w / width
    scale_y = depth_h / height

    sample_pts = np.vstack([points, points.mean(axis=0)])
    samples = np.sort(bilinear_sample(depth, sample_pts[:, 0] * scale_x, sample_pts[:, 1] * scale_y))
    wall_depth = float(samples[len(samples) // 2])
    delta = max(1e-5, abs(wall_depth) * tolerance)

    gx, gy = np.meshgrid(np.arange(width, dtype=np.float64) * scale_x,
                         np.arange(height, dtype=np.float64) * scale_y)
    d = bilinear_sample(depth, gx, gy)
    if closer_is_higher:
        is_wall = d <= wall_depth + delta
    else:
        is_wall = d >= wall_depth - delta

    logger.debug(f"   depth mask: wall depth {wall_depth:.4f} ± {delta:.4f}, "
                 f"{is_wall.mean() * 100:.1f}% surface")
    return mask_from_alpha(np.where(is_wall, 255, 0))


def segmentation_mask(class_map: np.ndarray, class_id: int,
                      width: int, height: int) -> Optional[np.ndarray]:
    """Nearest-neighbour resample a class-id grid and keep ``class_id`` pixels."""
    class_map = np.asarray(class_map)
    if class_map.ndim != 2 or class_map.size == 0 or width <= 0 or height <= 0:
        return None
    src_h, src_w = class_map.shape
    cols = np.minimum((np.arange(width) * src_w // width), src_w - 1)
    rows = np.minimum((np.arange(height) * src_h // height), src_h - 1)
    resampled = class_map[rows[:, None], cols[None, :]]
    return mask_from_alpha(np.where(resampled == class_id, 255, 0))


class OcclusionSource:
    """One tier of the occlusion priority chain."""

    name = "base"

    def build(self, width: int, height: int, quad) -> Optional[np.ndarray]:
        raise NotImplementedError


class DepthOcclusionSource(OcclusionSource):
    name = "depth"

    def __init__(self, depth: np.ndarray, tolerance: float = 0.15,
                 closer_is_higher: bool = True):
        self.depth = depth
        self.tolerance = tolerance
        self.closer_is_higher = closer_is_higher

    def build(self, width, height, quad):
        return depth_wall_mask(self.depth, quad, width, height,
                               tolerance=self.tolerance,
                               closer_is_higher=self.closer_is_higher)


class SegmentationOcclusionSource(OcclusionSource):
    name = "segmentation"

    def __init__(self, class_map: np.ndarray, class_id: int):
        self.class_map = class_map
        self.class_id = class_id

    def build(self, width, height, quad):
        return segmentation_mask(self.class_map, self.class_id, width, height)


class StaticMaskSource(OcclusionSource):
    """A ready-made mask, e.g. painted by hand."""

    name = "manual"

    def __init__(self, mask: np.ndarray):
        self.mask = mask

    def build(self, width, height, quad):
        if self.mask is None or self.mask.shape[:2] != (height, width):
            return None
        return self.mask.copy()


class EdgeOcclusionSource(OcclusionSource):
    """Fallback that needs nothing but the room photo."""

    name = "edges"

    def __init__(self, room: np.ndarray, detector: Optional[EdgeOcclusionDetector] = None,
                 flood_fill: bool = True):
        self.room = room
        self.detector = detector or EdgeOcclusionDetector()
        self.flood_fill = flood_fill

    def build(self, width, height, quad):
        if self.room is None or self.room.shape[:2] != (height, width):
            return None
        if self.flood_fill:
            return mask_from_alpha(self.detector.flood_fill_wall_mask(self.room))
        return invert_mask(mask_from_alpha(self.detector.edge_strength_mask(self.room)))


def select_occlusion_mask(sources: Sequence[OcclusionSource], width: int, height: int,
                          quad) -> Optional[Tuple[str, np.ndarray]]:
    """
    Try each source in order and return ``(name, mask)`` for the first hit.

    A source that raises is logged and treated as absent.
    """
    for source in sources:
        try:
            mask = source.build(width, height, quad)
        except Exception as e:
            logger.warning(f"⚠️ Occlusion source '{source.name}' failed: {e}")
            continue
        if mask is not None:
            logger.debug(f"   occlusion source: {source.name}")
            return source.name, mask
    return None


def build_occlusion_sources(snapshot, room: Optional[np.ndarray], surface: str,
                            occlusion_config) -> List[OcclusionSource]:
    """
    Priority-ordered sources for one render pass.

    Args:
        snapshot: Settled model outputs (``OcclusionInputs``) or None
        room: Room photo, used by the edge fallback
        surface: ``"wall"`` or ``"floor"``
        occlusion_config: ``OcclusionConfig``
    """
    sources: List[OcclusionSource] = []
    if snapshot is not None and snapshot.depth is not None:
        sources.append(DepthOcclusionSource(
            snapshot.depth.depth,
            tolerance=occlusion_config.depth_tolerance,
            closer_is_higher=occlusion_config.depth_closer_is_higher,
        ))
    if snapshot is not None and snapshot.segmentation is not None:
        class_id = snapshot.segmentation.class_ids.get(surface)
        if class_id is not None:
            sources.append(SegmentationOcclusionSource(snapshot.segmentation.class_map, class_id))
    if occlusion_config.edge_fallback and room is not None:
        sources.append(EdgeOcclusionSource(
            room,
            detector=EdgeOcclusionDetector(
                dilation_iterations=occlusion_config.edge_dilation_iterations),
            flood_fill=occlusion_config.edge_flood_fill,
        ))
    return sources
