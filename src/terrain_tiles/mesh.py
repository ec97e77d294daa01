"""Grid triangulation -> tile-centered world-space mesh.

Three coordinate spaces meet here:

* grid space: integer sample coordinates ``(gx, gy)`` in ``[0, tile_size]``,
  with ``gy`` growing southwards (raster row order),
* planar space: projected meters of the tile's covered raster bounds,
* world space: ``(easting - center_x, height, -(northing - center_y))``,
  a right-handed, Y-up frame centered on the dataset.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Final, Optional, Sequence, Union

import numpy as np

from .constants import DEFAULT_NEIGHBOR_RADIUS, ELEVATION_NO_DATA
from .tile_bounds import PlanarBounds

INVALID: Final[int] = -1

ArrayLike = Union[np.ndarray, Sequence[float], Sequence[int]]


@dataclass(frozen=True, eq=False)
class RawTriangulation:
    """Triangulator output: grid-space vertex pairs and triangle triples."""

    vertices: np.ndarray
    triangles: np.ndarray

    @classmethod
    def from_flat(
        cls, vertices: Sequence[int], triangles: Sequence[int]
    ) -> "RawTriangulation":
        return cls(
            vertices=np.asarray(vertices, dtype=np.int64).reshape(-1, 2),
            triangles=np.asarray(triangles, dtype=np.int64).reshape(-1, 3),
        )

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0])


@dataclass(frozen=True, eq=False)
class VertexValidity:
    """Raw vertex index -> packed output index, with an explicit validity mask.

    ``indices[i]`` is only meaningful where ``mask[i]`` is true; invalid
    entries hold ``INVALID`` so the packed array can be used for fancy
    indexing directly.
    """

    indices: np.ndarray
    mask: np.ndarray

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> "VertexValidity":
        mask = np.asarray(mask, dtype=bool)
        indices = np.full(mask.shape[0], INVALID, dtype=np.int64)
        indices[mask] = np.arange(int(mask.sum()), dtype=np.int64)
        return cls(indices=indices, mask=mask)

    def __len__(self) -> int:
        return int(self.indices.shape[0])

    @property
    def valid_count(self) -> int:
        return int(self.mask.sum())

    def is_valid(self, raw_index: int) -> bool:
        return bool(self.mask[raw_index])

    def lookup(self, raw_index: int) -> Optional[int]:
        if not self.mask[raw_index]:
            return None
        return int(self.indices[raw_index])

    def to_dict(self) -> dict[int, int]:
        return {i: int(v) for i, v in enumerate(self.indices)}


@dataclass(frozen=True, eq=False)
class MeshGeometry:
    positions: np.ndarray
    uvs: np.ndarray
    validity: VertexValidity
    min_elevation: float
    max_elevation: float
    normals: Optional[np.ndarray] = None

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    def with_normals(self, normals: np.ndarray) -> "MeshGeometry":
        return dataclasses.replace(self, normals=normals)


def _height_grid(heights: ArrayLike, grid_size: int) -> np.ndarray:
    grid = np.asarray(heights, dtype=np.float64)
    if grid.ndim == 1:
        if grid.size != grid_size * grid_size:
            raise ValueError(
                f"heights must hold {grid_size * grid_size} samples, got {grid.size}"
            )
        return grid.reshape(grid_size, grid_size)
    if grid.shape != (grid_size, grid_size):
        raise ValueError(
            f"heights must be a {grid_size}x{grid_size} grid, got {grid.shape}"
        )
    return grid


def _vertex_lookup(gx: np.ndarray, gy: np.ndarray, grid_size: int) -> np.ndarray:
    lookup = np.full((grid_size, grid_size), INVALID, dtype=np.int64)
    lookup[gy, gx] = np.arange(gx.shape[0], dtype=np.int64)
    return lookup


def _expand_no_data(
    no_data: np.ndarray,
    gx: np.ndarray,
    gy: np.ndarray,
    lookup: np.ndarray,
    *,
    tile_size: int,
    radius: int,
) -> np.ndarray:
    """Invalidate every raw vertex within Chebyshev `radius` of a no-data vertex."""

    invalid = no_data.copy()
    if radius <= 0:
        return invalid

    for raw in np.flatnonzero(no_data):
        x, y = int(gx[raw]), int(gy[raw])
        x0, x1 = max(0, x - radius), min(tile_size, x + radius)
        y0, y1 = max(0, y - radius), min(tile_size, y + radius)
        window = lookup[y0 : y1 + 1, x0 : x1 + 1]
        invalid[window[window != INVALID]] = True
    return invalid


def map_coordinates(
    vertices: ArrayLike,
    heights: ArrayLike,
    bounds: PlanarBounds,
    center: tuple[float, float],
    tile_size: int,
    *,
    neighbor_radius: int = DEFAULT_NEIGHBOR_RADIUS,
    no_data: float = ELEVATION_NO_DATA,
) -> MeshGeometry:
    """Map grid-space vertices to world-space positions and UVs.

    `bounds` are the planar bounds actually covered by the height grid, i.e.
    `tile_size + 1` samples wide; the geometry spans the first `tile_size`
    sample intervals of it. Vertices sampling `no_data`, and every vertex
    within `neighbor_radius` (Chebyshev) of one, are left out of the mesh.
    """

    if tile_size <= 0:
        raise ValueError("tile_size must be > 0")
    if neighbor_radius < 0:
        raise ValueError("neighbor_radius must be >= 0")

    grid_size = tile_size + 1
    grid = _height_grid(heights, grid_size)
    coords = np.asarray(vertices, dtype=np.int64).reshape(-1, 2)
    gx = coords[:, 0]
    gy = coords[:, 1]

    elevations = grid[gy, gx]
    lookup = _vertex_lookup(gx, gy, grid_size)
    invalid = _expand_no_data(
        elevations == no_data,
        gx,
        gy,
        lookup,
        tile_size=tile_size,
        radius=neighbor_radius,
    )
    validity = VertexValidity.from_mask(~invalid)

    geometry_width = bounds.width * tile_size / grid_size
    geometry_height = bounds.height * tile_size / grid_size
    center_x, center_y = center

    keep = validity.mask
    u = gx[keep] / tile_size
    v = gy[keep] / tile_size
    kept_elevations = elevations[keep]

    planar_x = bounds.min_x + u * geometry_width
    # Grid rows run north to south.
    planar_y = bounds.max_y - v * geometry_height

    positions = np.column_stack(
        (planar_x - center_x, kept_elevations, -(planar_y - center_y))
    ).reshape(-1, 3)
    uvs = np.column_stack((u, v)).reshape(-1, 2)

    if kept_elevations.size:
        min_elevation = float(kept_elevations.min())
        max_elevation = float(kept_elevations.max())
    else:
        min_elevation = math.inf
        max_elevation = -math.inf

    return MeshGeometry(
        positions=positions,
        uvs=uvs,
        validity=validity,
        min_elevation=min_elevation,
        max_elevation=max_elevation,
    )


def build_triangle_indices(
    triangles: ArrayLike, validity: VertexValidity
) -> np.ndarray:
    """Remap raw triangles to packed indices, dropping any with an invalid vertex."""

    raw = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    mapped = validity.indices[raw]
    keep = np.all(mapped != INVALID, axis=1)
    return mapped[keep].astype(np.uint32)


def compute_vertex_normals(positions: ArrayLike, indices: ArrayLike) -> np.ndarray:
    """Smooth per-vertex normals from accumulated (area-weighted) face normals.

    Winding follows the index order: ``cross(b - a, c - a)``. Vertices with a
    zero accumulated normal stay at (0, 0, 0) instead of becoming NaN.
    """

    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    tri = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    normals = np.zeros_like(pos)

    if tri.size:
        a = pos[tri[:, 0]]
        b = pos[tri[:, 1]]
        c = pos[tri[:, 2]]
        face = np.cross(b - a, c - a)
        for corner in range(3):
            np.add.at(normals, tri[:, corner], face)

    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    lengths[lengths == 0.0] = 1.0
    return normals / lengths
