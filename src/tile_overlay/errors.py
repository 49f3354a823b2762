"""Exception types raised at the edges of the rendering pipeline."""


class TileOverlayError(Exception):
    """Base class for tile overlay errors."""


class ImageDecodeError(TileOverlayError):
    """Raised when an image source cannot be decoded into an RGBA buffer."""


class ModelUnavailableError(TileOverlayError):
    """Raised by a model service that failed to load or run inference."""
