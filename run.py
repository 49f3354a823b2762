"""
Tile Overlay - Command Line Workflow
====================================
Renders tile overlays onto a room photo and saves the flattened result.

1. Decode the room photo (and the tile images)
2. Run depth + segmentation models for occlusion (unless --no-models)
3. Composite the wall overlay, then the floor overlay
4. Save the final PNG (and optionally the per-surface masks)

Usage:
    python run.py --image room.jpg --wall-quad 100,100,500,100,500,500,100,500 --wall-tile tiles/wall/marble.png

Advanced:
    python run.py --image room.jpg --floor-quad 80,590,720,590,560,380,240,380 \\
        --floor-tile tiles/floor/oak.jpg --floor-tile-size 600x600 --floor-size 4000x4000 --no-models
    python run.py --list-tiles --tiles-dir tiles
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from tile_overlay.utils.catalog import format_tile_size, load_catalog, tiles_for_surface
from tile_overlay.utils.compositor import SurfaceCompositor, compose_scene
from tile_overlay.utils.config import load_config
from tile_overlay.utils.image_io import decode_image, save_png
from tile_overlay.utils.session import RoomSession, default_services

logger = logging.getLogger("tile_overlay")

DEFAULT_CONFIG = os.path.join(os.path.dirname(__file__), 'config.yaml')


def parse_quad(text):
    """``"x0,y0,x1,y1,x2,y2,x3,y3"`` -> 4 (x, y) tuples."""
    try:
        values = [float(v) for v in text.replace(';', ',').split(',') if v.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid quad: {text}")
    if len(values) != 8:
        raise argparse.ArgumentTypeError(f"A quad needs 8 numbers, got {len(values)}")
    return [(values[i], values[i + 1]) for i in range(0, 8, 2)]


def parse_size(text):
    """``"600x600"`` (mm) -> (600.0, 600.0)."""
    try:
        width, height = (float(v) for v in text.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid size '{text}', expected WIDTHxHEIGHT in mm")
    return width, height


def build_parser():
    parser = argparse.ArgumentParser(
        description="Perspective-correct tile overlays for room photos"
    )
    parser.add_argument('--image', '-i', type=str,
                        help='Room photo path')
    parser.add_argument('--wall-quad', type=parse_quad,
                        help='Wall corners: top-left, top-right, bottom-right, bottom-left')
    parser.add_argument('--wall-tile', type=str, help='Wall tile image path')
    parser.add_argument('--wall-tile-size', type=parse_size, help='Wall tile size in mm (WxH)')
    parser.add_argument('--wall-size', type=parse_size, help='Wall size in mm (WxH)')
    parser.add_argument('--floor-quad', type=parse_quad,
                        help='Floor corners: near-left, near-right, far-right, far-left')
    parser.add_argument('--floor-tile', type=str, help='Floor tile image path')
    parser.add_argument('--floor-tile-size', type=parse_size, help='Floor tile size in mm (WxH)')
    parser.add_argument('--floor-size', type=parse_size, help='Floor size in mm (WxH)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='YAML settings file (default: config.yaml next to this script)')
    parser.add_argument('--output', '-o', type=str, default='outputs/result.png',
                        help='Output PNG path')
    parser.add_argument('--save-masks', action='store_true',
                        help='Also save each surface mask next to the output')
    parser.add_argument('--no-models', action='store_true',
                        help='Skip depth/segmentation models (quad mask or --edge-fallback only)')
    parser.add_argument('--depth-farther-is-higher', action='store_true',
                        help='Depth model outputs higher values for farther pixels')
    parser.add_argument('--edge-fallback', action='store_true',
                        help='Enable the edge-detection occlusion fallback')
    parser.add_argument('--list-tiles', action='store_true',
                        help='List the tile catalog and exit')
    parser.add_argument('--tiles-dir', type=str, default='tiles',
                        help='Tile catalog folder with wall/, floor/ and both/')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def apply_overrides(config, args):
    """Fold command line switches into the loaded settings."""
    occlusion = config.occlusion
    if args.depth_farther_is_higher:
        occlusion = dataclasses.replace(occlusion, depth_closer_is_higher=False)
    if args.edge_fallback:
        occlusion = dataclasses.replace(occlusion, edge_fallback=True)
    return dataclasses.replace(config, occlusion=occlusion)


def list_tiles(tiles_dir):
    catalog = load_catalog(tiles_dir)
    print("\n" + "=" * 70)
    print(f"🎨 TILE CATALOG: {tiles_dir}")
    print("=" * 70)
    for surface in ("wall", "floor"):
        tiles = tiles_for_surface(catalog, surface)
        print(f"\n{surface.upper()} ({len(tiles)})")
        for tile in tiles:
            print(f"   {tile.id:<30} {tile.name:<30} {format_tile_size(tile)}")
    print()
    return 0


async def run_pipeline(args, config):
    room_result = await decode_image(args.image)
    if not room_result.ok:
        print(f"❌ Error: could not read room image {args.image}: {room_result.error}")
        return 1
    room = room_result.image
    height, width = room.shape[:2]
    print(f"✅ Room image loaded: {width}x{height}")

    if args.no_models:
        session = RoomSession()
    else:
        session = RoomSession(*default_services(config.models))
    snapshot = await session.load_room(room)
    print(f"   depth: {snapshot.depth_status}, segmentation: {snapshot.segmentation_status}")

    compositor = SurfaceCompositor(config)
    surfaces = [
        ("wall", args.wall_quad, args.wall_tile, args.wall_tile_size, args.wall_size),
        ("floor", args.floor_quad, args.floor_tile, args.floor_tile_size, args.floor_size),
    ]
    results = []
    for surface, quad, tile_path, tile_size, surface_size in surfaces:
        if quad is None or tile_path is None:
            continue
        tile_result = await decode_image(tile_path)
        if not tile_result.ok:
            print(f"⚠️ Skipping {surface}: {tile_result.error}")
            continue
        result = compositor.render_surface(
            room, quad, tile_result.image,
            surface=surface,
            tile_size_mm=tile_size,
            surface_size_mm=surface_size,
            occlusion=snapshot,
        )
        if result is None:
            print(f"⚠️ Nothing rendered for {surface} (check the quad and sizes)")
            continue
        print(f"✅ {surface.capitalize()} overlay rendered "
              f"(occlusion: {result.occlusion_source or 'none'})")
        results.append((surface, result))

    scene = compose_scene(room, [result for _, result in results])
    save_png(scene, args.output)

    if args.save_masks:
        stem = os.path.splitext(args.output)[0]
        for surface, result in results:
            save_png(result.mask, f"{stem}_{surface}_mask.png")

    print("\n" + "=" * 70)
    print("✅ WORKFLOW COMPLETE!")
    print("=" * 70)
    print(f"\n📁 Final result: {args.output}\n")
    return 0


def main(argv=None):
    """Main workflow"""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    if args.list_tiles:
        return list_tiles(args.tiles_dir)

    if not args.image:
        parser.error("--image is required")
    if not os.path.exists(args.image):
        print(f"❌ Error: Image not found: {args.image}")
        return 1
    if args.wall_quad is None and args.floor_quad is None:
        parser.error("give at least one of --wall-quad / --floor-quad")

    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG):
        config_path = DEFAULT_CONFIG
    config = apply_overrides(load_config(config_path), args)

    print("\n" + "=" * 70)
    print("🎨 TILE OVERLAY")
    print("=" * 70 + "\n")
    return asyncio.run(run_pipeline(args, config))


if __name__ == "__main__":
    sys.exit(main())
