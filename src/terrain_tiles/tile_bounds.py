from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from .constants import DEFAULT_CONTENT_EXTENSION, QUAD_MULTIPLIER
from .projection import WEB_MERCATOR, deg_to_rad, from_geographic, to_geographic


@dataclass(frozen=True)
class PlanarBounds:
    """A rectangle in projected meters."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self) -> None:
        for name in ("min_x", "min_y", "max_x", "max_y"):
            if not math.isfinite(float(getattr(self, name))):
                raise ValueError(f"{name} must be finite: {getattr(self, name)}")
        if not (self.min_x < self.max_x):
            raise ValueError(
                f"Expected min_x < max_x, got {self.min_x} >= {self.max_x}"
            )
        if not (self.min_y < self.max_y):
            raise ValueError(
                f"Expected min_y < max_y, got {self.min_y} >= {self.max_y}"
            )

    @classmethod
    def from_tuple(cls, bbox: tuple[float, float, float, float]) -> "PlanarBounds":
        min_x, min_y, max_x, max_y = bbox
        return cls(
            min_x=float(min_x), min_y=float(min_y), max_x=float(max_x), max_y=float(max_y)
        )

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> tuple[float, float]:
        return (self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.min_x, self.min_y, self.max_x, self.max_y

    def square(self) -> "PlanarBounds":
        """Smallest square with the same center that contains these bounds."""

        size = max(self.width, self.height)
        cx, cy = self.center
        return PlanarBounds(
            min_x=cx - size / 2.0,
            min_y=cy - size / 2.0,
            max_x=cx + size / 2.0,
            max_y=cy + size / 2.0,
        )

    def intersects(self, other: "PlanarBounds") -> bool:
        """True when the two rectangles overlap with a non-zero area."""

        return (
            self.min_x < other.max_x
            and other.min_x < self.max_x
            and self.min_y < other.max_y
            and other.min_y < self.max_y
        )


def planar_bounds_from_wgs84(
    crs: str, west: float, south: float, east: float, north: float
) -> PlanarBounds:
    """Planar bounding box in `crs` of a WGS84 degree rectangle (all four corners)."""

    corners = [
        from_geographic(crs, lon, lat)
        for lon, lat in ((west, south), (east, south), (west, north), (east, north))
    ]
    xs = [x for x, _ in corners]
    ys = [y for _, y in corners]
    return PlanarBounds(min_x=min(xs), min_y=min(ys), max_x=max(xs), max_y=max(ys))


@dataclass(frozen=True)
class GeographicRegion:
    """A 3D Tiles bounding region: radians plus heights in meters."""

    west: float
    south: float
    east: float
    north: float
    min_height: float
    max_height: float

    def __post_init__(self) -> None:
        if not (self.west < self.east):
            raise ValueError(f"Expected west < east, got {self.west} >= {self.east}")
        if not (self.south < self.north):
            raise ValueError(
                f"Expected south < north, got {self.south} >= {self.north}"
            )
        if not (self.min_height <= self.max_height):
            raise ValueError(
                "Expected min_height <= max_height, "
                f"got {self.min_height} > {self.max_height}"
            )

    def as_list(self) -> list[float]:
        return [
            self.west,
            self.south,
            self.east,
            self.north,
            self.min_height,
            self.max_height,
        ]


def tiles_per_axis(level: int) -> int:
    if level < 0:
        raise ValueError(f"Invalid level: {level}")
    return 1 << level


@dataclass(frozen=True)
class QuadtreeAddress:
    """Quadtree tile coordinates; row 0 is the southern-most row."""

    level: int
    x: int
    y: int

    def __post_init__(self) -> None:
        if self.level < 0:
            raise ValueError(f"Invalid level: {self.level}")
        n = tiles_per_axis(self.level)
        if not (0 <= self.x < n):
            raise ValueError(f"x out of range at level={self.level}: {self.x}")
        if not (0 <= self.y < n):
            raise ValueError(f"y out of range at level={self.level}: {self.y}")

    def children(self) -> tuple["QuadtreeAddress", ...]:
        """The four children in SW, SE, NW, NE order."""

        level = self.level + 1
        x = self.x * QUAD_MULTIPLIER
        y = self.y * QUAD_MULTIPLIER
        return (
            QuadtreeAddress(level=level, x=x, y=y),
            QuadtreeAddress(level=level, x=x + 1, y=y),
            QuadtreeAddress(level=level, x=x, y=y + 1),
            QuadtreeAddress(level=level, x=x + 1, y=y + 1),
        )

    def parent(self) -> "QuadtreeAddress | None":
        if self.level == 0:
            return None
        return QuadtreeAddress(
            level=self.level - 1, x=self.x // QUAD_MULTIPLIER, y=self.y // QUAD_MULTIPLIER
        )

    def content_uri(self, extension: str = DEFAULT_CONTENT_EXTENSION) -> str:
        return f"/tiles/{self.level}/{self.x}/{self.y}/tile.{extension}"


ROOT_ADDRESS = QuadtreeAddress(level=0, x=0, y=0)


@dataclass(frozen=True)
class TileBounds:
    """A tile's planar bounds together with its WGS84 corners in degrees."""

    planar: PlanarBounds
    west_deg: float
    south_deg: float
    east_deg: float
    north_deg: float

    def to_region(self, min_height: float, max_height: float) -> GeographicRegion:
        return GeographicRegion(
            west=deg_to_rad(self.west_deg),
            south=deg_to_rad(self.south_deg),
            east=deg_to_rad(self.east_deg),
            north=deg_to_rad(self.north_deg),
            min_height=float(min_height),
            max_height=float(max_height),
        )


def tile_planar_bounds(
    global_bounds: PlanarBounds, address: QuadtreeAddress
) -> PlanarBounds:
    """Locate a tile's sub-rectangle by dividing the global box 2^level ways."""

    div = tiles_per_axis(address.level)
    tile_width = global_bounds.width / div
    tile_height = global_bounds.height / div

    # Edges are computed from indices (not accumulated widths) so neighbours
    # share exactly the same coordinate.
    min_x = global_bounds.min_x + tile_width * address.x
    max_x = (
        global_bounds.max_x
        if address.x == div - 1
        else global_bounds.min_x + tile_width * (address.x + 1)
    )
    min_y = global_bounds.min_y + tile_height * address.y
    max_y = (
        global_bounds.max_y
        if address.y == div - 1
        else global_bounds.min_y + tile_height * (address.y + 1)
    )
    return PlanarBounds(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)


def calculate_tile_bounds(
    address: QuadtreeAddress,
    global_bounds: PlanarBounds,
    *,
    crs: str = WEB_MERCATOR,
) -> TileBounds:
    """Return a tile's planar bounds and geographic (degrees) corners."""

    planar = tile_planar_bounds(global_bounds, address)
    west_deg, south_deg = to_geographic(crs, planar.min_x, planar.min_y)
    east_deg, north_deg = to_geographic(crs, planar.max_x, planar.max_y)
    return TileBounds(
        planar=planar,
        west_deg=west_deg,
        south_deg=south_deg,
        east_deg=east_deg,
        north_deg=north_deg,
    )


def split_bounds(bounds: PlanarBounds) -> tuple[PlanarBounds, ...]:
    """Quadrants of `bounds` in the same order as `QuadtreeAddress.children`."""

    mid_x = (bounds.min_x + bounds.max_x) / 2.0
    mid_y = (bounds.min_y + bounds.max_y) / 2.0
    return (
        PlanarBounds(bounds.min_x, bounds.min_y, mid_x, mid_y),
        PlanarBounds(mid_x, bounds.min_y, bounds.max_x, mid_y),
        PlanarBounds(bounds.min_x, mid_y, mid_x, bounds.max_y),
        PlanarBounds(mid_x, mid_y, bounds.max_x, bounds.max_y),
    )


def planar_address_for_point(
    global_bounds: PlanarBounds, level: int, x: float, y: float
) -> QuadtreeAddress:
    """Return the address of the tile at `level` containing planar point (x, y)."""

    if not (
        global_bounds.min_x <= x <= global_bounds.max_x
        and global_bounds.min_y <= y <= global_bounds.max_y
    ):
        raise ValueError(f"Point ({x}, {y}) is outside the root bounds")

    div = tiles_per_axis(level)
    col = math.floor((x - global_bounds.min_x) / (global_bounds.width / div))
    row = math.floor((y - global_bounds.min_y) / (global_bounds.height / div))
    return QuadtreeAddress(level=level, x=min(div - 1, col), y=min(div - 1, row))


def iter_level(level: int) -> Iterator[QuadtreeAddress]:
    """Iterate every address at `level` (column-major, like the tile pyramid)."""

    n = tiles_per_axis(level)
    for x in range(n):
        for y in range(n):
            yield QuadtreeAddress(level=level, x=x, y=y)


def iter_quadtree(max_level: int) -> Iterator[QuadtreeAddress]:
    """Iterate all addresses from the root down to `max_level` inclusive."""

    if max_level < 0:
        raise ValueError("max_level must be >= 0")
    for level in range(max_level + 1):
        yield from iter_level(level)
