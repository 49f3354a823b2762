"""
Perspective Warp Engine
=======================
Maps a rectangular source buffer onto an arbitrary destination quad.

Key Features:
- 4-point homography solved with partial-pivot Gaussian elimination
- Source rectangle split into an N x N grid, each cell drawn as two
  affine triangles (the projective warp is approximated piecewise)
- Each triangle is clipped to its own pixels so neighbouring cells
  never draw over one another
- Degenerate quads or cells are skipped, never raised
"""

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from .geometry import as_quad, is_degenerate_quad
from .realistic_blending import source_over

logger = logging.getLogger(__name__)

DEFAULT_GRID_SIZE = 32

_PIVOT_EPS = 1e-12
_W_EPS = 1e-9
_AFFINE_EPS = 1e-10
# Sample coordinate for pixels no triangle covers; far enough out that
# bilinear sampling only sees the transparent border.
_OUTSIDE = -16.0


def solve_homography(src_points, dst_points) -> Optional[np.ndarray]:
    """
    Solve the 3x3 homography ``H`` (``H[2,2] = 1``) with ``H @ src ~ dst``.

    Args:
        src_points: 4 source points (4 x 2)
        dst_points: 4 destination points (4 x 2)

    Returns:
        3x3 matrix, or None when the 8x8 system is singular
    """
    src = np.asarray(src_points, dtype=np.float64).reshape(4, 2)
    dst = np.asarray(dst_points, dtype=np.float64).reshape(4, 2)

    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i in range(4):
        x, y = src[i]
        u, v = dst[i]
        a[2 * i] = [x, y, 1.0, 0.0, 0.0, 0.0, -u * x, -u * y]
        a[2 * i + 1] = [0.0, 0.0, 0.0, x, y, 1.0, -v * x, -v * y]
        b[2 * i] = u
        b[2 * i + 1] = v

    # Forward elimination with partial pivoting
    for col in range(8):
        pivot = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot, col]) < _PIVOT_EPS:
            return None
        if pivot != col:
            a[[col, pivot]] = a[[pivot, col]]
            b[[col, pivot]] = b[[pivot, col]]
        for row in range(col + 1, 8):
            factor = a[row, col] / a[col, col]
            if factor != 0.0:
                a[row, col:] -= factor * a[col, col:]
                b[row] -= factor * b[col]

    # Back substitution
    h = np.zeros(8, dtype=np.float64)
    for row in range(7, -1, -1):
        h[row] = (b[row] - np.dot(a[row, row + 1:], h[row + 1:])) / a[row, row]

    if not np.isfinite(h).all():
        return None
    return np.append(h, 1.0).reshape(3, 3)


def apply_homography(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Map ``(N, 2)`` points through ``matrix``; rows with ``|w| < 1e-9`` become NaN."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homogeneous = np.column_stack([pts, np.ones(len(pts))]) @ matrix.T
    w = homogeneous[:, 2]
    out = np.full((len(pts), 2), np.nan, dtype=np.float64)
    ok = np.abs(w) >= _W_EPS
    out[ok] = homogeneous[ok, :2] / w[ok, None]
    return out


def solve_affine(src_tri: Sequence, dst_tri: Sequence) -> Optional[np.ndarray]:
    """
    Closed-form affine transform taking 3 source points to 3 destination points.

    Returns:
        2x3 matrix ``[[a, b, e], [c, d, f]]``, or None for a degenerate source triangle
    """
    (sx0, sy0), (sx1, sy1), (sx2, sy2) = src_tri
    (dx0, dy0), (dx1, dy1), (dx2, dy2) = dst_tri
    denom = (sx1 - sx0) * (sy2 - sy0) - (sy1 - sy0) * (sx2 - sx0)
    if abs(denom) < _AFFINE_EPS:
        return None
    a = ((dx1 - dx0) * (sy2 - sy0) - (dx2 - dx0) * (sy1 - sy0)) / denom
    b = ((dx2 - dx0) * (sx1 - sx0) - (dx1 - dx0) * (sx2 - sx0)) / denom
    c = ((dy1 - dy0) * (sy2 - sy0) - (dy2 - dy0) * (sy1 - sy0)) / denom
    d = ((dy2 - dy0) * (sx1 - sx0) - (dy1 - dy0) * (sx2 - sx0)) / denom
    e = dx0 - a * sx0 - b * sy0
    f = dy0 - c * sx0 - d * sy0
    return np.array([[a, b, e], [c, d, f]], dtype=np.float64)


def _edge_owner(dx: float, dy: float) -> bool:
    # Tie-break for pixel centers exactly on an edge: a shared edge is
    # walked in opposite directions by its two triangles, so exactly one owns it.
    return dy > 0 or (dy == 0 and dx < 0)


def _edge_function(va, vb, gx, gy):
    # Evaluated from the lexicographically smaller endpoint, so the two
    # triangles sharing an edge get exactly negated values.
    if (va[0], va[1]) <= (vb[0], vb[1]):
        return (vb[0] - va[0]) * (gy - va[1]) - (vb[1] - va[1]) * (gx - va[0])
    return -((va[0] - vb[0]) * (gy - vb[1]) - (va[1] - vb[1]) * (gx - vb[0]))


def _rasterize_triangle(src_tri, dst_tri, map_x: np.ndarray, map_y: np.ndarray,
                        src_w: int, src_h: int) -> bool:
    """Write source sample coordinates for every pixel center inside ``dst_tri``."""
    forward = solve_affine(src_tri, dst_tri)
    if forward is None:
        return False
    det = forward[0, 0] * forward[1, 1] - forward[0, 1] * forward[1, 0]
    if abs(det) < _AFFINE_EPS:
        return False
    inverse = cv2.invertAffineTransform(forward)

    height, width = map_x.shape
    tri = np.asarray(dst_tri, dtype=np.float64)
    x0 = max(0, int(np.floor(tri[:, 0].min())))
    x1 = min(width, int(np.ceil(tri[:, 0].max())) + 1)
    y0 = max(0, int(np.floor(tri[:, 1].min())))
    y1 = min(height, int(np.ceil(tri[:, 1].max())) + 1)
    if x0 >= x1 or y0 >= y1:
        return True

    gx, gy = np.meshgrid(np.arange(x0, x1, dtype=np.float64) + 0.5,
                         np.arange(y0, y1, dtype=np.float64) + 0.5)

    p0, p1, p2 = tri
    area2 = (p1[0] - p0[0]) * (p2[1] - p0[1]) - (p1[1] - p0[1]) * (p2[0] - p0[0])
    if area2 < 0:
        p1, p2 = p2, p1

    inside = np.ones(gx.shape, dtype=bool)
    for va, vb in ((p0, p1), (p1, p2), (p2, p0)):
        dx = vb[0] - va[0]
        dy = vb[1] - va[1]
        edge = _edge_function(va, vb, gx, gy)
        if _edge_owner(dx, dy):
            inside &= edge >= 0
        else:
            inside &= edge > 0
    if not inside.any():
        return True

    sx = inverse[0, 0] * gx + inverse[0, 1] * gy + inverse[0, 2]
    sy = inverse[1, 0] * gx + inverse[1, 1] * gy + inverse[1, 2]
    # Pixel-center sampling, clamped so the quad boundary stays opaque
    sx = np.clip(sx - 0.5, 0.0, src_w - 1.0)
    sy = np.clip(sy - 0.5, 0.0, src_h - 1.0)

    roi_x = map_x[y0:y1, x0:x1]
    roi_y = map_y[y0:y1, x0:x1]
    roi_x[inside] = sx[inside]
    roi_y[inside] = sy[inside]
    return True


def warp_to_quad(source: np.ndarray, quad, width: int, height: int,
                 grid_size: int = DEFAULT_GRID_SIZE) -> Optional[np.ndarray]:
    """
    Warp ``source`` so its corners land on ``quad``.

    Args:
        source: RGBA source buffer (srcH x srcW x 4)
        quad: Destination corners for (0,0), (srcW,0), (srcW,srcH), (0,srcH)
        width: Destination width
        height: Destination height
        grid_size: Cells per side of the subdivision grid

    Returns:
        Transparent RGBA layer (height x width x 4) holding the warped source,
        or None when there is nothing to draw
    """
    if source is None or source.ndim != 3 or width <= 0 or height <= 0:
        return None
    src_h, src_w = source.shape[:2]
    if src_w <= 0 or src_h <= 0:
        return None
    dest_quad = as_quad(quad)
    if dest_quad is None or is_degenerate_quad(dest_quad):
        logger.debug("⚠️ Degenerate destination quad, skipping warp")
        return None

    corners = np.array([[0, 0], [src_w, 0], [src_w, src_h], [0, src_h]], dtype=np.float64)
    matrix = solve_homography(corners, dest_quad)
    if matrix is None:
        logger.debug("⚠️ Singular homography, skipping warp")
        return None

    n = max(1, int(grid_size))
    gs, gt = np.meshgrid(np.linspace(0.0, src_w, n + 1), np.linspace(0.0, src_h, n + 1))
    src_grid = np.stack([gs, gt], axis=-1)
    dst_grid = apply_homography(matrix, src_grid.reshape(-1, 2)).reshape(n + 1, n + 1, 2)

    map_x = np.full((height, width), _OUTSIDE, dtype=np.float32)
    map_y = np.full((height, width), _OUTSIDE, dtype=np.float32)

    skipped = 0
    for j in range(n):
        for i in range(n):
            s00, s10 = src_grid[j, i], src_grid[j, i + 1]
            s01, s11 = src_grid[j + 1, i], src_grid[j + 1, i + 1]
            d00, d10 = dst_grid[j, i], dst_grid[j, i + 1]
            d01, d11 = dst_grid[j + 1, i], dst_grid[j + 1, i + 1]
            if not np.isfinite([d00, d10, d01, d11]).all():
                skipped += 1
                continue
            _rasterize_triangle((s00, s10, s11), (d00, d10, d11), map_x, map_y, src_w, src_h)
            _rasterize_triangle((s00, s11, s01), (d00, d11, d01), map_x, map_y, src_w, src_h)
    if skipped:
        logger.debug(f"   skipped {skipped} cells with vanishing w")

    # Interpolate premultiplied colour so transparent texels don't bleed dark
    src_f = source.astype(np.float32)
    alpha = src_f[:, :, 3:4] / 255.0
    src_f[:, :, :3] *= alpha
    warped = cv2.remap(src_f, map_x, map_y, interpolation=cv2.INTER_LINEAR,
                       borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0, 0))
    out_alpha = warped[:, :, 3:4] / 255.0
    safe = np.where(out_alpha <= 1e-6, 1.0, out_alpha)
    warped[:, :, :3] = np.where(out_alpha <= 1e-6, 0.0, warped[:, :, :3] / safe)
    return np.clip(np.rint(warped), 0, 255).astype(np.uint8)


def draw_quad_warp(dest: np.ndarray, source: np.ndarray, quad,
                   grid_size: int = DEFAULT_GRID_SIZE) -> np.ndarray:
    """
    Draw ``source`` warped onto ``quad`` over a copy of ``dest``.

    Returns:
        New buffer; an unchanged copy of ``dest`` when the warp is skipped
    """
    height, width = dest.shape[:2]
    layer = warp_to_quad(source, quad, width, height, grid_size=grid_size)
    if layer is None:
        return dest.copy()
    return source_over(dest, layer)
