"""
Surface Compositor
==================
Assembles one tile overlay (wall or floor) and flattens overlays onto the
room photo.

Pass order for a surface:
1. Feathered quad mask
2. Occlusion mask from the first available source, smoothed
3. Intersection of the two
4. Lighting layer (only with an occlusion mask; dropped if its size is off)
5. Tiled pattern warped into a transparent layer
6. Layer cut down to the combined mask (destination-in)
"""

import logging
from typing import Iterable, NamedTuple, Optional, Sequence

import numpy as np

from .config import Config, load_config
from .geometry import as_quad, bbox_pixel_size, is_degenerate_quad
from .lighting import extract_lighting_map, extract_specular_map
from .mask_refinement import MaskRefinement
from .occlusion import OcclusionSource, build_occlusion_sources, select_occlusion_mask
from .realistic_blending import combine_masks, destination_in, source_over
from .tile_projection_engine import TileProjectionEngine

logger = logging.getLogger(__name__)


class CompositeResult(NamedTuple):
    layer: np.ndarray
    mask: np.ndarray
    occlusion_source: Optional[str]
    lighting: Optional[np.ndarray]


class SurfaceCompositor:
    """
    Renders tile overlays for one room photo
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.masks = MaskRefinement(self.config.masks)
        self.engine = TileProjectionEngine(
            pattern=self.config.pattern,
            floor_effects=self.config.floor_effects,
            specular=self.config.specular,
            warp=self.config.warp,
        )

    def render_surface(self, room: np.ndarray, quad, tile: np.ndarray,
                       surface: str = "wall",
                       tile_size_mm=None,
                       surface_size_mm=None,
                       occlusion=None,
                       sources: Optional[Sequence[OcclusionSource]] = None) -> Optional[CompositeResult]:
        """
        Render a single tile overlay.

        Args:
            room: Decoded room photo (RGBA); sets the output size
            quad: 4 corner points of the surface
            tile: Decoded tile image (RGBA)
            surface: ``"wall"`` or ``"floor"``
            tile_size_mm: Physical tile size; defaults per surface
            surface_size_mm: Physical surface size; defaults per surface
            occlusion: Settled model outputs for this room, or None
            sources: Explicit occlusion sources, replacing the default chain

        Returns:
            CompositeResult, or None when there is nothing to render
        """
        settings = self.config.surface(surface)
        if room is None or room.ndim != 3:
            return None
        height, width = room.shape[:2]
        points = as_quad(quad)
        if points is None or is_degenerate_quad(points) or width <= 0 or height <= 0:
            logger.debug(f"   {surface}: no valid quad, nothing to render")
            return None
        tile_size_mm = tile_size_mm if tile_size_mm is not None else settings.tile_size_mm
        surface_size_mm = surface_size_mm if surface_size_mm is not None else settings.surface_size_mm

        logger.info(f"🎬 Compositing {surface} overlay...")

        feathered = self.masks.feathered_quad_mask(width, height, points,
                                                   feather_px=settings.feather_px)

        if sources is None:
            sources = build_occlusion_sources(occlusion, room, surface, self.config.occlusion)
        selected = select_occlusion_mask(sources, width, height, points)

        occlusion_mask = None
        source_name = None
        if selected is not None:
            source_name, raw_mask = selected
            occlusion_mask = self.masks.smooth_mask(raw_mask)
            combined = combine_masks(feathered, occlusion_mask)
        else:
            combined = feathered

        lighting = None
        if occlusion_mask is not None:
            lighting = extract_lighting_map(room, points, occlusion_mask, self.config.lighting)
            if lighting is not None and lighting.shape[1::-1] != bbox_pixel_size(points):
                logger.warning("⚠️ Lighting layer does not match the quad bounds, dropped")
                lighting = None

        specular = None
        if self.config.specular.enabled:
            specular = extract_specular_map(room, points, self.config.specular)

        layer = self.engine.project(
            tile, points, tile_size_mm, surface_size_mm, width, height,
            lighting=lighting,
            lighting_strength=settings.lighting_strength,
            noise_opacity=settings.noise_opacity,
            floor_effects=settings.floor_effects,
            specular=specular,
        )
        if layer is None:
            logger.debug(f"   {surface}: pattern pass skipped")
            return None

        layer = destination_in(layer, combined)
        logger.info(f"   ✓ {surface} overlay ready (occlusion: {source_name or 'none'})")
        return CompositeResult(layer=layer, mask=combined,
                               occlusion_source=source_name, lighting=lighting)


def compose_scene(room: np.ndarray, layers: Iterable) -> np.ndarray:
    """
    Flatten overlays onto the room photo in the given order.

    ``layers`` may hold ``CompositeResult``s, raw RGBA layers or None.
    """
    out = room.copy()
    for item in layers:
        if item is None:
            continue
        layer = item.layer if isinstance(item, CompositeResult) else item
        if layer.shape != out.shape:
            logger.warning(f"⚠️ Overlay {layer.shape} does not match room {out.shape}, skipped")
            continue
        out = source_over(out, layer)
    return out
