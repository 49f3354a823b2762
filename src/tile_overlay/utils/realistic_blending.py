"""
Realistic Blending Module
==========================
Pixel-level compositing operations on RGBA buffers.

Key Features:
- Mask buffers (white RGB, meaning carried in alpha)
- Source-over and destination-in compositing
- Multiply, overlay and screen blend passes with opacity

All buffers are ``(H, W, 4)`` uint8 RGBA. Functions return new buffers;
the inputs are never modified.
"""

from typing import Callable

import numpy as np


def blank_buffer(width: int, height: int) -> np.ndarray:
    """Fully transparent RGBA buffer."""
    return np.zeros((max(0, height), max(0, width), 4), dtype=np.uint8)


def mask_from_alpha(alpha: np.ndarray) -> np.ndarray:
    """Wrap a single-channel alpha plane into an RGBA mask buffer."""
    alpha = np.clip(np.asarray(alpha), 0, 255).astype(np.uint8)
    mask = np.full(alpha.shape + (4,), 255, dtype=np.uint8)
    mask[:, :, 3] = alpha
    return mask


def gray_buffer(values: np.ndarray) -> np.ndarray:
    """Opaque gray RGBA buffer from a 2-D array of 0-255 values."""
    v = np.clip(np.rint(values), 0, 255).astype(np.uint8)
    out = np.empty(v.shape + (4,), dtype=np.uint8)
    out[:, :, 0] = v
    out[:, :, 1] = v
    out[:, :, 2] = v
    out[:, :, 3] = 255
    return out


def combine_masks(mask_a: np.ndarray, mask_b: np.ndarray) -> np.ndarray:
    """Intersection of two masks: ``alpha = min(a, b)`` per pixel."""
    if mask_a.shape != mask_b.shape:
        raise ValueError(f"Mask shapes differ: {mask_a.shape} vs {mask_b.shape}")
    return mask_from_alpha(np.minimum(mask_a[:, :, 3], mask_b[:, :, 3]))


def invert_mask(mask: np.ndarray) -> np.ndarray:
    """``255 - alpha``: turns edge strength into show-tile convention."""
    return mask_from_alpha(255 - mask[:, :, 3].astype(np.int16))


def source_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Draw ``src`` over ``dst`` (straight alpha, Porter-Duff source-over)."""
    d = dst.astype(np.float32) / 255.0
    s = src.astype(np.float32) / 255.0
    sa = s[:, :, 3:4]
    da = d[:, :, 3:4]
    out_a = sa + da * (1.0 - sa)
    premult = s[:, :, :3] * sa + d[:, :, :3] * da * (1.0 - sa)
    safe_a = np.where(out_a <= 1e-6, 1.0, out_a)
    out = np.empty_like(d)
    out[:, :, :3] = premult / safe_a
    out[:, :, 3:4] = out_a
    return np.clip(np.rint(out * 255.0), 0, 255).astype(np.uint8)


def destination_in(dst: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Cut ``dst`` down to the mask: alpha becomes ``min(existing, mask)``."""
    out = dst.copy()
    out[:, :, 3] = np.minimum(dst[:, :, 3], mask[:, :, 3])
    return out


def _blend(dst: np.ndarray, src: np.ndarray, mode: Callable, opacity: float) -> np.ndarray:
    """Apply a separable blend mode to RGB, keeping the destination alpha."""
    opacity = float(np.clip(opacity, 0.0, 1.0))
    if opacity <= 0.0:
        return dst.copy()
    cb = dst[:, :, :3].astype(np.float32) / 255.0
    cs = src[:, :, :3].astype(np.float32) / 255.0
    # A partially transparent source contributes proportionally.
    weight = opacity * (src[:, :, 3:4].astype(np.float32) / 255.0)
    mixed = cb * (1.0 - weight) + mode(cb, cs) * weight
    out = dst.copy()
    out[:, :, :3] = np.clip(np.rint(mixed * 255.0), 0, 255).astype(np.uint8)
    return out


def _multiply(cb, cs):
    return cb * cs


def _screen(cb, cs):
    return 1.0 - (1.0 - cb) * (1.0 - cs)


def _overlay(cb, cs):
    return np.where(cb <= 0.5, 2.0 * cb * cs, 1.0 - 2.0 * (1.0 - cb) * (1.0 - cs))


def multiply(dst: np.ndarray, src: np.ndarray, opacity: float = 1.0) -> np.ndarray:
    """Multiply blend pass."""
    return _blend(dst, src, _multiply, opacity)


def screen(dst: np.ndarray, src: np.ndarray, opacity: float = 1.0) -> np.ndarray:
    """Screen blend pass, used for additive-looking gloss."""
    return _blend(dst, src, _screen, opacity)


def overlay(dst: np.ndarray, src: np.ndarray, opacity: float = 1.0) -> np.ndarray:
    """Overlay blend pass (contrast-preserving, keyed on the backdrop)."""
    return _blend(dst, src, _overlay, opacity)


def luminance(rgba: np.ndarray) -> np.ndarray:
    """Rec. 601 luma ``0.299R + 0.587G + 0.114B`` as float32."""
    rgb = rgba[:, :, :3].astype(np.float32)
    return 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]
