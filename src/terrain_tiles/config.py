from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Literal, Mapping, Optional, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_CONTENT_EXTENSION,
    DEFAULT_MAX_HEIGHT,
    DEFAULT_MESH_ERROR,
    DEFAULT_MIN_HEIGHT,
    DEFAULT_NEIGHBOR_RADIUS,
    DEFAULT_UP_AXIS,
    DEM_RESOLUTION_M,
    ELEVATION_ERROR_FACTOR,
    ELEVATION_NO_DATA,
    MIN_GEOMETRIC_ERROR,
    QUADTREE_MAX_LEVEL,
    RESOLUTION_SCALE_FACTOR,
    TILE_SIZE,
)
from .projection import WEB_MERCATOR, normalize_crs
from .tileset import GeometricErrorMethod, GeometricErrorPolicy

DEFAULT_TERRAIN_CONFIG_NAME: Final[str] = "terrain.yaml"
DEFAULT_TERRAIN_CONFIG_ENV: Final[str] = "TERRAIN_TILES_CONFIG"
SETTINGS_ENV_PREFIX: Final[str] = "TERRAIN_TILES_"


class TerrainSettings(BaseSettings):
    """Process-level settings read from `TERRAIN_TILES_*` environment variables."""

    elevation_source: Optional[str] = None
    texture_source: Optional[str] = None
    config_dir: Path = Path("config")
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix=SETTINGS_ENV_PREFIX, extra="ignore")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log_level={value!r}")
        return normalized


@lru_cache
def get_settings() -> TerrainSettings:
    return TerrainSettings()


class GeometricErrorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    method: GeometricErrorMethod = GeometricErrorMethod.RESOLUTION_BASED
    min_error: float = Field(default=MIN_GEOMETRIC_ERROR, ge=0)
    base_resolution_error: float = Field(
        default=DEM_RESOLUTION_M * RESOLUTION_SCALE_FACTOR, ge=0
    )
    elevation_factor: float = Field(default=ELEVATION_ERROR_FACTOR, ge=0)

    def to_policy(self) -> GeometricErrorPolicy:
        return GeometricErrorPolicy(
            method=self.method,
            min_error=self.min_error,
            base_resolution_error=self.base_resolution_error,
            elevation_factor=self.elevation_factor,
        )


class HeightRange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_height: float = DEFAULT_MIN_HEIGHT
    max_height: float = DEFAULT_MAX_HEIGHT

    @model_validator(mode="after")
    def _validate_range(self) -> "HeightRange":
        if self.max_height < self.min_height:
            raise ValueError("max_height must be >= min_height")
        return self


class MetadataCacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    capacity: int = Field(default=16, gt=0)
    ttl_seconds: Optional[float] = Field(default=None, gt=0)


class TerrainConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tile_size: int = Field(default=TILE_SIZE, gt=0)
    max_level: int = Field(default=QUADTREE_MAX_LEVEL, ge=0, le=24)
    mesh_error: float = Field(default=DEFAULT_MESH_ERROR, ge=0)
    neighbor_radius: int = Field(default=DEFAULT_NEIGHBOR_RADIUS, ge=0)
    no_data_value: float = ELEVATION_NO_DATA
    projection: str = WEB_MERCATOR
    geometric_error: GeometricErrorConfig = Field(default_factory=GeometricErrorConfig)
    height_range: HeightRange = Field(default_factory=HeightRange)
    content_extension: str = DEFAULT_CONTENT_EXTENSION
    up_axis: Literal["X", "Y", "Z"] = DEFAULT_UP_AXIS  # type: ignore[assignment]
    metadata_cache: MetadataCacheConfig = Field(default_factory=MetadataCacheConfig)

    @field_validator("tile_size")
    @classmethod
    def _validate_tile_size(cls, value: int) -> int:
        if value & (value - 1):
            raise ValueError(f"tile_size must be a power of two, got {value}")
        return value

    @field_validator("projection")
    @classmethod
    def _validate_projection(cls, value: str) -> str:
        return normalize_crs(value)

    @field_validator("content_extension")
    @classmethod
    def _validate_extension(cls, value: str) -> str:
        normalized = (value or "").strip().lstrip(".").lower()
        if not normalized:
            raise ValueError("content_extension must not be empty")
        return normalized


class TerrainConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    terrain: TerrainConfig = Field(default_factory=TerrainConfig)


def _absolute(path: Union[str, Path]) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = (Path.cwd() / candidate).resolve()
    return candidate


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    if path is not None:
        return _absolute(path)

    explicit = os.environ.get(DEFAULT_TERRAIN_CONFIG_ENV)
    if explicit:
        return _absolute(explicit)

    return _absolute(get_settings().config_dir) / DEFAULT_TERRAIN_CONFIG_NAME


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to load terrain YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"terrain config must be a mapping: {source}")
    return data


def load_terrain_config(path: Optional[Union[str, Path]] = None) -> TerrainConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"terrain config file not found: {config_path}")

    raw = config_path.read_text(encoding="utf-8")
    data = dict(_parse_yaml(raw, source=config_path))

    try:
        parsed = TerrainConfigFile.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid terrain config ({config_path}): {exc}") from exc

    return parsed.terrain


@lru_cache(maxsize=8)
def _get_terrain_config_cached(
    config_path: str, mtime_ns: int, size: int
) -> TerrainConfig:
    _ = (mtime_ns, size)
    return load_terrain_config(config_path)


def get_terrain_config(path: Optional[Union[str, Path]] = None) -> TerrainConfig:
    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"terrain config file not found: {resolved}") from exc

    return _get_terrain_config_cached(str(resolved), stat.st_mtime_ns, stat.st_size)


get_terrain_config.cache_clear = _get_terrain_config_cached.cache_clear  # type: ignore[attr-defined]
