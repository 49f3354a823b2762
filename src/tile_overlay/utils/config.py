"""
Configuration
=============
YAML-backed settings for the overlay pipeline.

Defaults are held in frozen dataclasses; ``load_config`` merges a YAML file
over them so a partial file only needs the keys it changes.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

SURFACE_KINDS = ("wall", "floor")


@dataclass(frozen=True)
class WarpConfig:
    grid_size: int = 32


@dataclass(frozen=True)
class MaskConfig:
    quad_inset_px: float = 2.0
    close_radius: int = 3
    edge_blur_px: int = 2


@dataclass(frozen=True)
class OcclusionConfig:
    depth_tolerance: float = 0.15
    depth_closer_is_higher: bool = True
    edge_dilation_iterations: int = 6
    edge_fallback: bool = False
    edge_flood_fill: bool = True


@dataclass(frozen=True)
class LightingConfig:
    """Lighting map extraction settings.

    ``preserve_foreground_shadows`` picks between the two extraction
    variants; each variant has its own output floor.
    """

    blur_radius_px: float = 40.0
    wall_threshold: int = 128
    preserve_foreground_shadows: bool = False
    floor_replace: int = 150
    floor_preserve: int = 85

    @property
    def output_floor(self) -> int:
        return self.floor_preserve if self.preserve_foreground_shadows else self.floor_replace


@dataclass(frozen=True)
class SpecularConfig:
    enabled: bool = False
    threshold: int = 180
    blur_radius: int = 8
    opacity: float = 0.3


@dataclass(frozen=True)
class PatternConfig:
    grout: bool = True
    grout_opacity: float = 0.3
    grout_color: Tuple[int, int, int] = (30, 30, 30)
    noise_seed: Optional[int] = None


@dataclass(frozen=True)
class FloorEffectsConfig:
    depth_gradient: bool = True
    gradient_strength: float = 0.25
    desaturate: bool = True
    desaturate_strength: float = 0.3
    vignette: bool = True
    vignette_strength: float = 0.2


@dataclass(frozen=True)
class SurfaceConfig:
    """Knobs that differ between wall and floor overlays."""

    kind: str
    feather_px: int
    tile_size_mm: Tuple[float, float]
    surface_size_mm: Tuple[float, float]
    lighting_strength: float
    noise_opacity: float
    floor_effects: bool


@dataclass(frozen=True)
class ModelConfig:
    depth_model: str = "LiheYoung/depth-anything-small-hf"
    depth_input_size: int = 384
    segmentation_model: str = "nvidia/segformer-b2-finetuned-ade-512-512"
    device: Optional[str] = None


@dataclass(frozen=True)
class Config:
    warp: WarpConfig = field(default_factory=WarpConfig)
    masks: MaskConfig = field(default_factory=MaskConfig)
    occlusion: OcclusionConfig = field(default_factory=OcclusionConfig)
    lighting: LightingConfig = field(default_factory=LightingConfig)
    specular: SpecularConfig = field(default_factory=SpecularConfig)
    pattern: PatternConfig = field(default_factory=PatternConfig)
    floor_effects: FloorEffectsConfig = field(default_factory=FloorEffectsConfig)
    models: ModelConfig = field(default_factory=ModelConfig)
    surfaces: Dict[str, SurfaceConfig] = field(default_factory=lambda: dict(_DEFAULT_SURFACES))

    def surface(self, kind: str) -> SurfaceConfig:
        """Return the settings for a ``wall`` or ``floor`` overlay."""
        if kind not in self.surfaces:
            raise ValueError(f"Unknown surface '{kind}'. Available: {', '.join(SURFACE_KINDS)}")
        return self.surfaces[kind]


_DEFAULT_SURFACES: Dict[str, SurfaceConfig] = {
    "wall": SurfaceConfig(
        kind="wall",
        feather_px=5,
        tile_size_mm=(300.0, 300.0),
        surface_size_mm=(3000.0, 2400.0),
        lighting_strength=1.0,
        noise_opacity=0.015,
        floor_effects=False,
    ),
    "floor": SurfaceConfig(
        kind="floor",
        feather_px=8,
        tile_size_mm=(600.0, 600.0),
        surface_size_mm=(4000.0, 4000.0),
        lighting_strength=1.5,
        noise_opacity=0.02,
        floor_effects=True,
    ),
}

_SECTIONS = {
    "warp": WarpConfig,
    "masks": MaskConfig,
    "occlusion": OcclusionConfig,
    "lighting": LightingConfig,
    "specular": SpecularConfig,
    "pattern": PatternConfig,
    "floor_effects": FloorEffectsConfig,
    "models": ModelConfig,
}


def _merge_dict(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge overrides into base without mutating either input."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_dict(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_section(cls, values: Dict[str, Any]):
    known = {name for name in cls.__dataclass_fields__}
    kwargs = {key: value for key, value in values.items() if key in known}
    for key in ("grout_color", "tile_size_mm", "surface_size_mm"):
        if key in kwargs and kwargs[key] is not None:
            kwargs[key] = tuple(kwargs[key])
    return cls(**kwargs)


def _defaults_as_dict() -> Dict[str, Any]:
    defaults: Dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        instance = cls()
        defaults[name] = {key: getattr(instance, key) for key in cls.__dataclass_fields__}
    defaults["surfaces"] = {
        kind: {key: getattr(surface, key) for key in SurfaceConfig.__dataclass_fields__}
        for kind, surface in _DEFAULT_SURFACES.items()
    }
    return defaults


def config_from_dict(raw: Optional[Dict[str, Any]]) -> Config:
    """Build a ``Config`` from a (possibly partial) nested dictionary."""
    merged = _merge_dict(_defaults_as_dict(), raw or {})
    sections = {name: _build_section(cls, merged.get(name) or {}) for name, cls in _SECTIONS.items()}
    surfaces = {}
    for kind in SURFACE_KINDS:
        values = dict(merged["surfaces"].get(kind) or {})
        values["kind"] = kind
        surfaces[kind] = _build_section(SurfaceConfig, values)
    return Config(surfaces=surfaces, **sections)


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration settings from a YAML file.

    Args:
        config_path: Path to a YAML file. ``None`` returns the defaults.

    Returns:
        Fully populated ``Config``.
    """
    if config_path is None:
        return config_from_dict(None)
    with open(config_path, 'r') as file:
        raw = yaml.safe_load(file) or {}
    return config_from_dict(raw)


def get_surface_config(config: Config, kind: str) -> SurfaceConfig:
    """Get wall or floor settings."""
    return config.surface(kind)
