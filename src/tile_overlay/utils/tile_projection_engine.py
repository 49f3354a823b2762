"""
Tile Projection Engine
=======================
Renders a repeating tile pattern sized from real-world measurements and
projects it onto a surface quad.

Key Features:
- Tile repeat counts from mm sizes, never rounded (partial edge tiles are real)
- Seamless pattern fill by wrapped resampling of the tile image
- Grout lines, lighting multiply, specular sheen and micro-noise passes
- Floor depth cues: far-edge darkening, desaturation and vignette
- Final perspective warp onto the destination quad
"""

import logging
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .config import FloorEffectsConfig, PatternConfig, SpecularConfig, WarpConfig
from .geometry import as_quad, bbox_pixel_size, size_pair
from .perspective_warp import warp_to_quad
from .realistic_blending import gray_buffer, luminance, multiply, overlay, screen

logger = logging.getLogger(__name__)


def tile_repeat_counts(tile_size_mm: Sequence[float],
                       surface_size_mm: Sequence[float]) -> Optional[Tuple[float, float]]:
    """
    Tiles across and down the surface, as floats.

    Sizes are ``(width, height)`` pairs or ``{"width", "height"}`` mappings.

    Returns:
        ``(tiles_x, tiles_y)`` or None if either size or count is not a
        finite positive number
    """
    tile = size_pair(tile_size_mm)
    surface = size_pair(surface_size_mm)
    if tile is None or surface is None:
        return None
    tiles_x = surface[0] / tile[0]
    tiles_y = surface[1] / tile[1]
    if not (np.isfinite(tiles_x) and np.isfinite(tiles_y)) or tiles_x <= 0 or tiles_y <= 0:
        return None
    return tiles_x, tiles_y


def _seam_positions(length: int, tiles: float) -> list:
    """Pixel indices of the interior tile boundaries along one axis."""
    count = int(np.ceil(tiles)) - 1
    if count >= length:
        # seams closer than a pixel apart cover every index
        return list(range(length))
    step = length / tiles
    seams = {int(np.floor(i * step)) for i in range(1, count + 1)}
    return sorted(s for s in seams if 0 <= s < length)


class TileProjectionEngine:
    """
    Engine for rendering tile patterns and projecting them onto a quad
    """

    def __init__(self,
                 pattern: Optional[PatternConfig] = None,
                 floor_effects: Optional[FloorEffectsConfig] = None,
                 specular: Optional[SpecularConfig] = None,
                 warp: Optional[WarpConfig] = None):
        """
        Initialize tile projection engine

        Args:
            pattern: Grout and noise settings
            floor_effects: Depth-cue settings for floor overlays
            specular: Specular pass settings
            warp: Warp grid settings
        """
        self.pattern = pattern or PatternConfig()
        self.floor_effects = floor_effects or FloorEffectsConfig()
        self.specular = specular or SpecularConfig()
        self.warp = warp or WarpConfig()

    def generate_tile_grid(self, tile: np.ndarray, tiles_x: float, tiles_y: float,
                           width: int, height: int) -> np.ndarray:
        """
        Fill a ``width x height`` buffer with the repeating tile.

        One repetition spans ``width / tiles_x`` by ``height / tiles_y`` pixels.
        """
        tile_h, tile_w = tile.shape[:2]
        scale_x = width / (tiles_x * tile_w)
        scale_y = height / (tiles_y * tile_h)

        # Pixel-center mapping from pattern pixels back into the tile image
        u = (np.arange(width, dtype=np.float64) + 0.5) / scale_x - 0.5
        v = (np.arange(height, dtype=np.float64) + 0.5) / scale_y - 0.5
        map_x = np.broadcast_to(np.mod(u, tile_w).astype(np.float32)[None, :], (height, width))
        map_y = np.broadcast_to(np.mod(v, tile_h).astype(np.float32)[:, None], (height, width))

        grid = cv2.remap(np.ascontiguousarray(tile), np.ascontiguousarray(map_x),
                         np.ascontiguousarray(map_y), interpolation=cv2.INTER_LINEAR,
                         borderMode=cv2.BORDER_WRAP)
        logger.debug(f"   ✓ Grid generated: {width}x{height}, {tiles_x:.3f} x {tiles_y:.3f} tiles")
        return grid

    def add_grout(self, grid: np.ndarray, tiles_x: float, tiles_y: float) -> np.ndarray:
        """Draw 1px semi-transparent seams at every interior tile boundary."""
        height, width = grid.shape[:2]
        opacity = float(np.clip(self.pattern.grout_opacity, 0.0, 1.0))
        if opacity <= 0:
            return grid
        color = np.array(self.pattern.grout_color, dtype=np.float32)

        cols = _seam_positions(width, tiles_x)
        rows = _seam_positions(height, tiles_y)

        seams = np.zeros((height, width), dtype=bool)
        seams[:, cols] = True
        seams[rows, :] = True

        out = grid.copy()
        rgb = out[:, :, :3].astype(np.float32)
        rgb[seams] = rgb[seams] * (1.0 - opacity) + color * opacity
        out[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return out

    def apply_lighting(self, grid: np.ndarray, lighting: Optional[np.ndarray],
                       strength: float = 1.0) -> np.ndarray:
        """
        Multiply the room's lighting into the pattern.

        ``strength > 1`` adds a second multiply pass at ``min(1, strength - 1)``.
        A layer whose size does not match is ignored.
        """
        if lighting is None or lighting.shape[:2] != grid.shape[:2]:
            if lighting is not None:
                logger.warning("⚠️ Lighting layer size mismatch, skipping lighting")
            return grid
        out = multiply(grid, lighting)
        strength = max(1.0, float(strength))
        if strength > 1:
            out = multiply(out, lighting, opacity=min(1.0, strength - 1.0))
        return out

    def apply_specular(self, grid: np.ndarray, specular: Optional[np.ndarray]) -> np.ndarray:
        """Screen the highlight layer on for a glossy sheen."""
        if specular is None or specular.shape[:2] != grid.shape[:2]:
            return grid
        return screen(grid, specular, opacity=self.specular.opacity)

    def add_tile_variation(self, grid: np.ndarray, noise_opacity: float,
                           seed: Optional[int] = None) -> np.ndarray:
        """
        Overlay uniform gray noise to break visible repetition

        Args:
            grid: Pattern buffer
            noise_opacity: Overlay opacity (0 = off)
            seed: Random seed (defaults to ``pattern.noise_seed``)
        """
        if noise_opacity <= 0:
            return grid
        if seed is None:
            seed = self.pattern.noise_seed
        rng = np.random.default_rng(seed)
        noise = rng.integers(0, 256, size=grid.shape[:2])
        return overlay(grid, gray_buffer(noise), opacity=noise_opacity)

    def add_floor_effects(self, grid: np.ndarray) -> np.ndarray:
        """
        Depth cues for floors, in pattern space.

        Row 0 is the near edge of the floor quad and the last row the far edge,
        so every effect stays inside the quad once warped.
        """
        fx = self.floor_effects
        height, width = grid.shape[:2]
        if height == 0 or width == 0:
            return grid
        rgb = grid[:, :, :3].astype(np.float32)
        depth = ((np.arange(height, dtype=np.float32) + 0.5) / height)[:, None, None]

        if fx.desaturate and fx.desaturate_strength > 0:
            gray = luminance(grid)[:, :, None]
            t = np.clip(fx.desaturate_strength, 0.0, 1.0) * depth
            rgb = rgb * (1.0 - t) + gray * t

        if fx.depth_gradient and fx.gradient_strength > 0:
            rgb = rgb * (1.0 - np.clip(fx.gradient_strength, 0.0, 1.0) * depth)

        if fx.vignette and fx.vignette_strength > 0:
            xs = (np.arange(width, dtype=np.float32) + 0.5) / width * 2.0 - 1.0
            ys = (np.arange(height, dtype=np.float32) + 0.5) / height * 2.0 - 1.0
            radius = np.sqrt(xs[None, :] ** 2 + ys[:, None] ** 2) / np.sqrt(2.0)
            falloff = 1.0 - np.clip(fx.vignette_strength, 0.0, 1.0) * radius ** 2
            rgb = rgb * falloff[:, :, None]

        out = grid.copy()
        out[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return out

    def render_pattern(self, tile: np.ndarray, tile_size_mm, surface_size_mm,
                       width: int, height: int,
                       lighting: Optional[np.ndarray] = None,
                       lighting_strength: float = 1.0,
                       noise_opacity: float = 0.0,
                       floor_effects: bool = False,
                       specular: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        """
        Build the flat (pre-warp) tiled buffer for a surface.

        Returns:
            RGBA buffer of ``height x width``, or None when there is nothing to render
        """
        if tile is None or tile.ndim != 3 or tile.shape[0] <= 0 or tile.shape[1] <= 0:
            return None
        if width <= 0 or height <= 0:
            return None
        counts = tile_repeat_counts(tile_size_mm, surface_size_mm)
        if counts is None:
            return None
        tiles_x, tiles_y = counts

        logger.debug(f"🔲 Rendering tile pattern {width}x{height}")
        grid = self.generate_tile_grid(tile, tiles_x, tiles_y, width, height)
        if self.pattern.grout:
            grid = self.add_grout(grid, tiles_x, tiles_y)
        grid = self.apply_lighting(grid, lighting, lighting_strength)
        if self.specular.enabled:
            grid = self.apply_specular(grid, specular)
        grid = self.add_tile_variation(grid, noise_opacity)
        if floor_effects:
            grid = self.add_floor_effects(grid)
        return grid

    def project(self, tile: np.ndarray, quad, tile_size_mm, surface_size_mm,
                width: int, height: int, **pattern_options) -> Optional[np.ndarray]:
        """
        Render the pattern for ``quad`` and warp it into a transparent
        ``width x height`` layer.

        Returns:
            Warped RGBA layer, or None when the pass is skipped
        """
        points = as_quad(quad)
        if points is None:
            return None
        pattern_w, pattern_h = bbox_pixel_size(points)
        grid = self.render_pattern(tile, tile_size_mm, surface_size_mm,
                                   pattern_w, pattern_h, **pattern_options)
        if grid is None:
            return None
        layer = warp_to_quad(grid, points, width, height, grid_size=self.warp.grid_size)
        if layer is not None:
            logger.info("✅ Tile projection complete!")
        return layer
