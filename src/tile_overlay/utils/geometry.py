"""
Quad Geometry
=============
Helpers for the 4-point quads users place on a room photo.

A quad is held as a ``(4, 2)`` float64 array of image-space points
(origin top-left, y down). Every routine here accepts either winding.
"""

from typing import Mapping, NamedTuple, Optional, Tuple

import numpy as np

# Relative tolerance used when testing corners for collinearity.
_COLLINEAR_EPS = 1e-9


class BBox(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def as_quad(points) -> Optional[np.ndarray]:
    """Normalize 4 points into a ``(4, 2)`` float array.

    Accepts a sequence of ``(x, y)`` pairs, objects with ``x``/``y``
    attributes, dicts with ``x``/``y`` keys, or an array. Returns ``None``
    if there are not exactly 4 finite points.
    """
    if points is None:
        return None
    try:
        if isinstance(points, np.ndarray):
            quad = points.astype(np.float64).reshape(-1, 2)
        else:
            coords = []
            for p in points:
                if isinstance(p, dict):
                    coords.append((float(p["x"]), float(p["y"])))
                elif hasattr(p, "x") and hasattr(p, "y"):
                    coords.append((float(p.x), float(p.y)))
                else:
                    coords.append((float(p[0]), float(p[1])))
            quad = np.array(coords, dtype=np.float64).reshape(-1, 2)
    except (TypeError, ValueError, KeyError, IndexError):
        return None
    if quad.shape != (4, 2) or not np.isfinite(quad).all():
        return None
    return quad


def calculate_distance(point1, point2) -> float:
    """Calculate the Euclidean distance between two points."""
    return ((point1[0] - point2[0]) ** 2 + (point1[1] - point2[1]) ** 2) ** 0.5


def quad_to_bbox(quad: np.ndarray) -> BBox:
    """Axis-aligned bounding box of a quad."""
    x = float(quad[:, 0].min())
    y = float(quad[:, 1].min())
    return BBox(x, y, float(quad[:, 0].max()) - x, float(quad[:, 1].max()) - y)


def bbox_pixel_size(quad: np.ndarray) -> Tuple[int, int]:
    """Integer ``(width, height)`` of the buffer that covers the quad's bbox.

    The tiled pattern and the lighting map are both sized with this so the
    two always agree.
    """
    bbox = quad_to_bbox(quad)
    return int(np.floor(bbox.width)), int(np.floor(bbox.height))


def quad_centroid(quad: np.ndarray) -> Tuple[float, float]:
    """Mean of the 4 corners."""
    return float(quad[:, 0].mean()), float(quad[:, 1].mean())


def quad_signed_area(quad: np.ndarray) -> float:
    """Shoelace area; the sign follows the winding."""
    x = quad[:, 0]
    y = quad[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def _cross(a, b, c) -> float:
    return float((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0]))


def is_degenerate_quad(quad: Optional[np.ndarray]) -> bool:
    """True if the quad has (near) zero area or any three collinear corners."""
    if quad is None:
        return True
    span = float(np.ptp(quad[:, 0]) + np.ptp(quad[:, 1]))
    if span <= 0.0:
        return True
    tolerance = _COLLINEAR_EPS * max(1.0, span * span)
    if abs(quad_signed_area(quad)) <= tolerance:
        return True
    for i in range(4):
        a, b, c = quad[i], quad[(i + 1) % 4], quad[(i + 2) % 4]
        if abs(_cross(a, b, c)) <= tolerance:
            return True
    return False


def inset_quad(quad: np.ndarray, inset_px: float) -> np.ndarray:
    """Pull each corner toward the centroid by ``inset_px`` pixels (negative grows the quad)."""
    if inset_px == 0:
        return quad.copy()
    cx, cy = quad_centroid(quad)
    out = np.empty_like(quad)
    for i, (px, py) in enumerate(quad):
        dist = calculate_distance((px, py), (cx, cy)) or 1.0
        scale = max(0.0, 1.0 - inset_px / dist)
        out[i] = (cx + (px - cx) * scale, cy + (py - cy) * scale)
    return out


def inside_quad_grid(quad: np.ndarray, width: int, height: int) -> np.ndarray:
    """Boolean ``(height, width)`` grid of pixel centers inside the quad.

    Same-sign cross products against all 4 edges, so either winding works.
    """
    xs = np.arange(width, dtype=np.float64) + 0.5
    ys = np.arange(height, dtype=np.float64) + 0.5
    gx, gy = np.meshgrid(xs, ys)
    all_pos = np.ones((height, width), dtype=bool)
    all_neg = np.ones((height, width), dtype=bool)
    for i in range(4):
        ax, ay = quad[i]
        bx, by = quad[(i + 1) % 4]
        c = (bx - ax) * (gy - ay) - (by - ay) * (gx - ax)
        all_pos &= c >= 0
        all_neg &= c <= 0
    return all_pos | all_neg


def size_pair(size) -> Optional[Tuple[float, float]]:
    """Normalize a physical size to ``(width, height)`` floats.

    Accepts a ``(width, height)`` sequence or a mapping with ``width`` and
    ``height`` keys. Returns ``None`` unless both sides are finite and > 0.
    """
    if size is None:
        return None
    try:
        if isinstance(size, Mapping):
            width, height = float(size["width"]), float(size["height"])
        else:
            width, height = float(size[0]), float(size[1])
    except (KeyError, TypeError, ValueError, IndexError, OverflowError):
        return None
    if not (np.isfinite(width) and np.isfinite(height)):
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height
