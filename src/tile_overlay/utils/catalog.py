"""
Tile Catalog
============
Discovers tile images on disk and turns them into immutable catalog entries.

Tiles live in three sub-folders of the catalog root: ``wall/``, ``floor/``
and ``both/``. The folder decides which surface a tile is offered for.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import Config
from .geometry import size_pair

logger = logging.getLogger(__name__)

TILE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".webp", ".svg", ".gif", ".avif"})
AFFINITIES = ("wall", "floor", "both")


@dataclass(frozen=True)
class TileProduct:
    id: str
    name: str
    image_url: str
    surface: str
    size_mm: Optional[Tuple[float, float]] = None
    path: Optional[str] = None


def list_tile_files(root: Union[str, Path]) -> Dict[str, List[str]]:
    """
    Tile filenames per folder.

    Returns:
        ``{"wall": [...], "floor": [...], "both": [...]}``; a missing folder
        gives an empty list
    """
    listing = {}
    for affinity in AFFINITIES:
        folder = os.path.join(root, affinity)
        if not os.path.isdir(folder):
            listing[affinity] = []
            continue
        listing[affinity] = sorted(
            name for name in os.listdir(folder)
            if os.path.splitext(name)[1].lower() in TILE_EXTENSIONS
            and os.path.isfile(os.path.join(folder, name))
        )
    logger.debug("   tiles found: " + ", ".join(f"{k}={len(v)}" for k, v in listing.items()))
    return listing


def tile_id(filename: str) -> str:
    """``"Mosaic Brown_Dark.png"`` -> ``"mosaic-brown-dark"``."""
    stem = os.path.splitext(filename)[0].lower()
    return re.sub(r"[^a-z0-9]+", "-", stem).strip("-")


def display_name(filename: str) -> str:
    """``"pearl-hex_tile.svg"`` -> ``"Pearl Hex Tile"``."""
    stem = os.path.splitext(filename)[0]
    words = re.sub(r"[-_]+", " ", stem).split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def build_catalog(listing: Dict[str, List[str]], url_prefix: str = "/tiles",
                  root: Optional[Union[str, Path]] = None) -> List[TileProduct]:
    """
    Catalog entries for a listing from ``list_tile_files``.

    Ids are unique; a later file whose id is already taken is skipped.
    """
    products = []
    seen = set()
    for affinity in AFFINITIES:
        for filename in listing.get(affinity, []):
            product_id = tile_id(filename)
            if not product_id or product_id in seen:
                logger.warning(f"⚠️ Skipping tile '{affinity}/{filename}' (duplicate or empty id)")
                continue
            seen.add(product_id)
            products.append(TileProduct(
                id=product_id,
                name=display_name(filename),
                image_url=f"{url_prefix.rstrip('/')}/{affinity}/{filename}",
                surface=affinity,
                path=os.path.join(root, affinity, filename) if root is not None else None,
            ))
    return products


def load_catalog(root: Union[str, Path], url_prefix: str = "/tiles") -> List[TileProduct]:
    """List and build the catalog for a tiles folder."""
    return build_catalog(list_tile_files(root), url_prefix=url_prefix, root=root)


def tiles_for_surface(catalog: List[TileProduct], surface: str) -> List[TileProduct]:
    """Tiles offered in wall or floor mode (the surface's own tiles plus ``both``)."""
    return [tile for tile in catalog if tile.surface in (surface, "both")]


def find_tile(catalog: List[TileProduct], product_id: str) -> Optional[TileProduct]:
    for tile in catalog:
        if tile.id == product_id:
            return tile
    return None


def effective_tile_size(product: TileProduct, config: Config,
                        surface: Optional[str] = None) -> Tuple[float, float]:
    """Physical size of a tile, falling back to the default for its surface."""
    size = size_pair(product.size_mm)
    if size is not None:
        return size
    affinity = product.surface if product.surface != "both" else (surface or "wall")
    return config.surface(affinity).tile_size_mm


def format_tile_size(product: TileProduct) -> str:
    """Size label, ``"W×H cm"``."""
    size = size_pair(product.size_mm)
    if size is not None:
        width = int(size[0] / 10 + 0.5)
        height = int(size[1] / 10 + 0.5)
        return f"{width}×{height} cm"
    if product.surface == "floor":
        return "60×60 cm"
    if product.surface == "wall":
        return "30×30 cm"
    return "—"
