from __future__ import annotations

from typing import Final

# Tile processing
TILE_SIZE: Final[int] = 512
QUADTREE_MAX_LEVEL: Final[int] = 5
ELEVATION_NO_DATA: Final[float] = -9999.0
DEFAULT_MESH_ERROR: Final[float] = 10.0
DEFAULT_NEIGHBOR_RADIUS: Final[int] = 2

# 3D Tiles
TILES_VERSION: Final[str] = "1.1"
DEFAULT_UP_AXIS: Final[str] = "Y"
DEFAULT_CONTENT_EXTENSION: Final[str] = "glb"
QUAD_MULTIPLIER: Final[int] = 2

# Geometric error: 2% of relief for the elevation policy, DEM pixel size times
# tile width for the resolution policy.
ELEVATION_ERROR_FACTOR: Final[float] = 0.02
MIN_GEOMETRIC_ERROR: Final[float] = 1.0
DEM_RESOLUTION_M: Final[float] = 0.5
RESOLUTION_SCALE_FACTOR: Final[float] = 512.0

# Height range assumed for the tileset when it is not measured.
DEFAULT_MIN_HEIGHT: Final[float] = 0.0
DEFAULT_MAX_HEIGHT: Final[float] = 4500.0

# Scene encoding
INDEX_16BIT_LIMIT: Final[int] = 65535
PNG_MIME_TYPE: Final[str] = "image/png"
DEFAULT_BASE_COLOR: Final[tuple[float, float, float, float]] = (1.0, 1.0, 1.0, 1.0)
DEFAULT_ROUGHNESS_FACTOR: Final[float] = 0.95
DEFAULT_METALLIC_FACTOR: Final[float] = 0.0

# Switzerland in WGS84 degrees: (west, south, east, north)
SWITZERLAND_WGS84_BOUNDS: Final[tuple[float, float, float, float]] = (
    5.95587,
    45.81802,
    10.49203,
    47.80838,
)
