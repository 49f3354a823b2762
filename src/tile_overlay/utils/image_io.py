"""
Image decode / encode.

Decoding runs Pillow in a worker thread and never raises to the caller:
the result says whether it worked. Every decoded image is an RGBA uint8
array, the buffer format used throughout the pipeline.
"""

import asyncio
import io
import logging
import os
from pathlib import Path
from typing import NamedTuple, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import ImageDecodeError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, bytearray]


class DecodeResult(NamedTuple):
    ok: bool
    image: Optional[np.ndarray] = None
    error: Optional[str] = None


def _looks_like_svg(source: ImageSource) -> bool:
    if isinstance(source, (bytes, bytearray)):
        head = bytes(source[:256]).lstrip().lower()
        return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head)
    return os.path.splitext(str(source))[1].lower() == ".svg"


def load_rgba(source: ImageSource) -> np.ndarray:
    """
    Decode an image file or in-memory bytes into an RGBA array.

    Raises:
        ImageDecodeError: if the source cannot be decoded
    """
    if _looks_like_svg(source):
        raise ImageDecodeError("SVG images have no raster decoder")
    try:
        if isinstance(source, (bytes, bytearray)):
            handle = io.BytesIO(bytes(source))
        else:
            handle = source
        with Image.open(handle) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (OSError, UnidentifiedImageError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e
    image = np.array(rgba, dtype=np.uint8)
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise ImageDecodeError("Decoded image is empty")
    return image


async def decode_image(source: ImageSource) -> DecodeResult:
    """Decode off the event loop; failures come back as ``DecodeResult(ok=False)``."""
    try:
        image = await asyncio.to_thread(load_rgba, source)
    except ImageDecodeError as e:
        logger.warning(f"⚠️ {e}")
        return DecodeResult(ok=False, error=str(e))
    h, w = image.shape[:2]
    logger.debug(f"   decoded image {w}x{h}")
    return DecodeResult(ok=True, image=image)


def encode_png(image: np.ndarray) -> bytes:
    """PNG bytes for an RGBA buffer."""
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


def save_png(image: np.ndarray, path: Union[str, Path]) -> None:
    """Write an RGBA buffer to ``path`` as PNG."""
    directory = os.path.dirname(str(path))
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "wb") as f:
        f.write(encode_png(image))
    logger.info(f"💾 Saved: {path}")
