from __future__ import annotations


class TerrainTileError(RuntimeError):
    """Base error for terrain tile generation."""


class InvalidTileRequestError(TerrainTileError, ValueError):
    """Raised when a tile address is non-numeric or outside the quadtree."""


class DataUnavailableError(TerrainTileError):
    """Raised when the raster source has no data for the requested tile."""


class NoValidGeometryError(TerrainTileError):
    """Raised when no triangle survives no-data filtering."""

    def __init__(self, message: str = "Tile contains no valid geometry") -> None:
        super().__init__(message)
