"""3D Tiles tileset descriptor built from a planar quadtree."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from .constants import (
    DEFAULT_CONTENT_EXTENSION,
    DEFAULT_UP_AXIS,
    DEM_RESOLUTION_M,
    ELEVATION_ERROR_FACTOR,
    MIN_GEOMETRIC_ERROR,
    QUAD_MULTIPLIER,
    RESOLUTION_SCALE_FACTOR,
    TILES_VERSION,
)
from .tile_bounds import ROOT_ADDRESS, PlanarBounds, QuadtreeAddress, split_bounds


class GeometricErrorMethod(str, Enum):
    RESOLUTION_BASED = "resolution-based"
    ELEVATION_BASED = "elevation-based"


DEFAULT_GEOMETRIC_ERROR_METHOD = GeometricErrorMethod.RESOLUTION_BASED


def parse_geometric_error_method(value: Optional[str]) -> GeometricErrorMethod:
    """Parse a method name, falling back to the default for unknown values."""

    if value is None:
        return DEFAULT_GEOMETRIC_ERROR_METHOD
    normalized = str(value).strip().lower()
    for method in GeometricErrorMethod:
        if method.value == normalized:
            return method
    return DEFAULT_GEOMETRIC_ERROR_METHOD


@dataclass(frozen=True)
class GeometricErrorPolicy:
    """Level-dependent geometric error; halves every level down to `min_error`."""

    method: GeometricErrorMethod = DEFAULT_GEOMETRIC_ERROR_METHOD
    min_error: float = MIN_GEOMETRIC_ERROR
    base_resolution_error: float = DEM_RESOLUTION_M * RESOLUTION_SCALE_FACTOR
    elevation_factor: float = ELEVATION_ERROR_FACTOR

    def __post_init__(self) -> None:
        if self.min_error < 0:
            raise ValueError("min_error must be >= 0")
        if self.base_resolution_error < 0:
            raise ValueError("base_resolution_error must be >= 0")
        if self.elevation_factor < 0:
            raise ValueError("elevation_factor must be >= 0")

    def root_error(self, elevation_range: float) -> float:
        if self.method is GeometricErrorMethod.ELEVATION_BASED:
            return max(0.0, float(elevation_range)) * self.elevation_factor
        return self.base_resolution_error

    def error_at(self, level: int, elevation_range: float = 0.0) -> float:
        if level < 0:
            raise ValueError(f"Invalid level: {level}")
        scaled = self.root_error(elevation_range) / (QUAD_MULTIPLIER**level)
        return max(self.min_error, scaled)


@dataclass(frozen=True)
class BoundingBox:
    """Oriented box: center followed by the three half-axis vectors."""

    box: tuple[float, ...]

    @classmethod
    def for_tile(
        cls,
        bounds: PlanarBounds,
        *,
        center: tuple[float, float],
        min_height: float,
        max_height: float,
    ) -> "BoundingBox":
        cx, cy = bounds.center
        center_x, center_y = center
        return cls(
            box=(
                cx - center_x,
                (min_height + max_height) / 2.0,
                # Northing grows away from the viewer, depth axis points south.
                -(cy - center_y),
                bounds.width / 2.0,
                0.0,
                0.0,
                0.0,
                (max_height - min_height) / 2.0,
                0.0,
                0.0,
                0.0,
                bounds.height / 2.0,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {"box": [float(v) for v in self.box]}


@dataclass
class Tile:
    address: QuadtreeAddress
    bounds: PlanarBounds
    bounding_volume: BoundingBox
    geometric_error: float
    content_uri: str
    children: list["Tile"] = field(default_factory=list)
    refine: str = "REPLACE"

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_tiles(self) -> Iterator["Tile"]:
        yield self
        for child in self.children:
            yield from child.iter_tiles()

    def to_dict(self) -> dict[str, Any]:
        return {
            "boundingVolume": self.bounding_volume.to_dict(),
            "refine": self.refine,
            "geometricError": self.geometric_error,
            "content": {"uri": self.content_uri},
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class Tileset:
    root: Tile
    geometric_error: float
    version: str = TILES_VERSION
    up_axis: str = DEFAULT_UP_AXIS

    def iter_tiles(self) -> Iterator[Tile]:
        return self.root.iter_tiles()

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset": {"version": self.version, "gltfUpAxis": self.up_axis},
            "geometricError": self.geometric_error,
            "root": self.root.to_dict(),
        }


def build_tile_tree(
    address: QuadtreeAddress,
    bounds: PlanarBounds,
    *,
    center: tuple[float, float],
    min_height: float,
    max_height: float,
    max_level: int,
    policy: GeometricErrorPolicy,
    content_extension: str = DEFAULT_CONTENT_EXTENSION,
) -> Tile:
    """Recursively subdivide `bounds` until `max_level` is reached."""

    children: list[Tile] = []
    if address.level < max_level:
        for child_address, child_bounds in zip(address.children(), split_bounds(bounds)):
            children.append(
                build_tile_tree(
                    child_address,
                    child_bounds,
                    center=center,
                    min_height=min_height,
                    max_height=max_height,
                    max_level=max_level,
                    policy=policy,
                    content_extension=content_extension,
                )
            )

    return Tile(
        address=address,
        bounds=bounds,
        bounding_volume=BoundingBox.for_tile(
            bounds, center=center, min_height=min_height, max_height=max_height
        ),
        geometric_error=policy.error_at(address.level, max_height - min_height),
        content_uri=address.content_uri(content_extension),
        children=children,
    )


def build_tileset(
    global_bounds: PlanarBounds,
    center: tuple[float, float],
    *,
    min_height: float,
    max_height: float,
    max_level: int,
    policy: Optional[GeometricErrorPolicy] = None,
    content_extension: str = DEFAULT_CONTENT_EXTENSION,
    up_axis: str = DEFAULT_UP_AXIS,
) -> Tileset:
    if max_level < 0:
        raise ValueError("max_level must be >= 0")
    if min_height > max_height:
        raise ValueError(
            f"Expected min_height <= max_height, got {min_height} > {max_height}"
        )
    policy = policy or GeometricErrorPolicy()

    root = build_tile_tree(
        ROOT_ADDRESS,
        global_bounds,
        center=center,
        min_height=min_height,
        max_height=max_height,
        max_level=max_level,
        policy=policy,
        content_extension=content_extension,
    )
    return Tileset(
        root=root,
        geometric_error=policy.error_at(0, max_height - min_height),
        up_axis=up_axis,
    )


def write_tileset_json(path: Path, tileset: Tileset) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(tileset.to_dict(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
