"""Raster reads for elevation and texture sources (GeoTIFF via rasterio)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
import rasterio
from rasterio.enums import Resampling
from rasterio.errors import RasterioError
from rasterio.windows import from_bounds

from .constants import ELEVATION_NO_DATA
from .errors import DataUnavailableError
from .tile_bounds import PlanarBounds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RasterMetadata:
    bounds: PlanarBounds
    width: int
    height: int
    crs: Optional[str] = None
    nodata: Optional[float] = None


@dataclass(frozen=True, eq=False)
class ElevationWindow:
    """A (tile_size+1)^2 height grid and the planar bounds it actually covers."""

    heights: np.ndarray
    bounds: PlanarBounds


class RasterReader(Protocol):
    def read_metadata(self, source: str) -> RasterMetadata: ...

    def read_elevation(
        self, source: str, bounds: PlanarBounds, tile_size: int
    ) -> ElevationWindow: ...

    def read_texture(
        self, source: str, bounds: PlanarBounds, tile_size: int
    ) -> Optional[np.ndarray]: ...


def expand_tile_bounds(
    bounds: PlanarBounds, tile_size: int, dataset_bounds: PlanarBounds
) -> PlanarBounds:
    """Grow `bounds` by one sample east and south, clamped to the dataset.

    The extra sample row/column overlaps the neighbouring tiles' first
    samples, so adjacent meshes share their edge vertices.
    """

    if tile_size <= 0:
        raise ValueError("tile_size must be > 0")
    pixel_width = bounds.width / tile_size
    pixel_height = bounds.height / tile_size

    min_x = max(bounds.min_x, dataset_bounds.min_x)
    min_y = max(bounds.min_y - pixel_height, dataset_bounds.min_y)
    max_x = min(bounds.max_x + pixel_width, dataset_bounds.max_x)
    max_y = min(bounds.max_y, dataset_bounds.max_y)
    if not (min_x < max_x and min_y < max_y):
        raise DataUnavailableError(
            f"Tile bounds {bounds.as_tuple()} do not intersect the raster extent "
            f"{dataset_bounds.as_tuple()}"
        )
    return PlanarBounds(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)


def _dataset_bounds(ds: rasterio.io.DatasetReader) -> PlanarBounds:
    b = ds.bounds
    return PlanarBounds(
        min_x=float(b.left), min_y=float(b.bottom), max_x=float(b.right), max_y=float(b.top)
    )


def _to_rgba(bands: np.ndarray) -> np.ndarray:
    """Convert a (bands, h, w) array into an (h, w, 4) opaque RGBA uint8 image."""

    clipped = np.clip(np.nan_to_num(bands, nan=0.0), 0, 255).astype(np.uint8)
    _, h, w = clipped.shape
    rgba = np.full((h, w, 4), 255, dtype=np.uint8)
    if clipped.shape[0] >= 3:
        rgba[..., :3] = np.moveaxis(clipped[:3], 0, -1)
    else:
        rgba[..., :3] = clipped[0][..., np.newaxis]
    return rgba


class RasterioReader:
    """`RasterReader` backed by rasterio; sources are paths or GDAL URLs."""

    def __init__(self, *, no_data: float = ELEVATION_NO_DATA) -> None:
        self._no_data = float(no_data)

    @property
    def no_data(self) -> float:
        return self._no_data

    def read_metadata(self, source: str) -> RasterMetadata:
        try:
            with rasterio.open(source) as ds:
                metadata = RasterMetadata(
                    bounds=_dataset_bounds(ds),
                    width=int(ds.width),
                    height=int(ds.height),
                    crs=ds.crs.to_string() if ds.crs else None,
                    nodata=None if ds.nodata is None else float(ds.nodata),
                )
        except RasterioError as exc:
            raise DataUnavailableError(f"Failed to open raster: {source}") from exc

        logger.info(
            "raster_metadata_loaded",
            extra={
                "source": source,
                "bounds": list(metadata.bounds.as_tuple()),
                "width": metadata.width,
                "height": metadata.height,
            },
        )
        return metadata

    def read_elevation(
        self, source: str, bounds: PlanarBounds, tile_size: int
    ) -> ElevationWindow:
        grid_size = tile_size + 1
        try:
            with rasterio.open(source) as ds:
                covered = expand_tile_bounds(bounds, tile_size, _dataset_bounds(ds))
                window = from_bounds(*covered.as_tuple(), transform=ds.transform)
                data = ds.read(
                    1,
                    window=window,
                    out_shape=(grid_size, grid_size),
                    boundless=True,
                    fill_value=self._no_data,
                    resampling=Resampling.nearest,
                )
                source_nodata = ds.nodata
        except RasterioError as exc:
            raise DataUnavailableError(f"No elevation data available: {source}") from exc

        if data is None or data.size == 0:
            raise DataUnavailableError(f"No elevation data available: {source}")

        heights = np.asarray(data, dtype=np.float32)
        missing = ~np.isfinite(heights)
        if source_nodata is not None and np.isfinite(source_nodata):
            missing |= heights == np.float32(source_nodata)
        heights[missing] = self._no_data
        return ElevationWindow(heights=heights, bounds=covered)

    def read_texture(
        self, source: str, bounds: PlanarBounds, tile_size: int
    ) -> Optional[np.ndarray]:
        grid_size = tile_size + 1
        try:
            with rasterio.open(source) as ds:
                covered = expand_tile_bounds(bounds, tile_size, _dataset_bounds(ds))
                window = from_bounds(*covered.as_tuple(), transform=ds.transform)
                data = ds.read(
                    window=window,
                    out_shape=(ds.count, grid_size, grid_size),
                    boundless=True,
                    fill_value=0,
                    resampling=Resampling.bilinear,
                )
        except (RasterioError, DataUnavailableError) as exc:
            # Texture is optional; the tile is still rendered untextured.
            logger.warning(
                "texture_read_failed", extra={"source": source, "error": str(exc)}
            )
            return None

        return _to_rgba(np.asarray(data, dtype=np.float64))
