# src/tile_overlay/utils/__init__.py
# Tile overlay compositing pipeline + catalog / session plumbing

# Compositing pipeline
from .perspective_warp import draw_quad_warp, solve_homography, warp_to_quad
from .mask_refinement import MaskRefinement
from .occlusion import (
    DepthOcclusionSource,
    EdgeOcclusionSource,
    SegmentationOcclusionSource,
    StaticMaskSource,
    select_occlusion_mask,
)
from .lighting import extract_lighting_map, extract_specular_map
from .tile_projection_engine import TileProjectionEngine, tile_repeat_counts
from .compositor import CompositeResult, SurfaceCompositor, compose_scene

# Plumbing
from .catalog import TileProduct, load_catalog, tiles_for_surface
from .config import Config, load_config
from .image_io import DecodeResult, decode_image, encode_png
from .session import OcclusionInputs, RoomSession

__all__ = [
    # Compositing pipeline
    'draw_quad_warp',
    'solve_homography',
    'warp_to_quad',
    'MaskRefinement',
    'DepthOcclusionSource',
    'EdgeOcclusionSource',
    'SegmentationOcclusionSource',
    'StaticMaskSource',
    'select_occlusion_mask',
    'extract_lighting_map',
    'extract_specular_map',
    'TileProjectionEngine',
    'tile_repeat_counts',
    'CompositeResult',
    'SurfaceCompositor',
    'compose_scene',
    # Plumbing
    'TileProduct',
    'load_catalog',
    'tiles_for_surface',
    'Config',
    'load_config',
    'DecodeResult',
    'decode_image',
    'encode_png',
    'OcclusionInputs',
    'RoomSession',
]
