"""Perspective-correct, lit, occlusion-aware tile overlays for room photos."""

__version__ = "0.1.0"
