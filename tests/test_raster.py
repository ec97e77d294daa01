from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from terrain_tiles.constants import ELEVATION_NO_DATA
from terrain_tiles.errors import DataUnavailableError
from terrain_tiles.raster import RasterioReader, expand_tile_bounds
from terrain_tiles.tile_bounds import PlanarBounds

SOURCE_NODATA = -32768.0


def _write_dem(path: Path) -> Path:
    rows, cols = np.mgrid[0:16, 0:16]
    data = (rows * 100 + cols).astype("float32")
    data[9, 5] = SOURCE_NODATA
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=16,
        width=16,
        count=1,
        dtype="float32",
        crs="EPSG:3857",
        transform=from_origin(0.0, 16.0, 1.0, 1.0),
        nodata=SOURCE_NODATA,
    ) as dst:
        dst.write(data, 1)
    return path


def _write_texture(path: Path, count: int) -> Path:
    data = np.full((count, 16, 16), 120, dtype="uint8")
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=16,
        width=16,
        count=count,
        dtype="uint8",
        crs="EPSG:3857",
        transform=from_origin(0.0, 16.0, 1.0, 1.0),
    ) as dst:
        dst.write(data)
    return path


def test_expand_tile_bounds_grows_east_and_south() -> None:
    dataset = PlanarBounds(0.0, 0.0, 16.0, 16.0)

    interior = expand_tile_bounds(PlanarBounds(4.0, 4.0, 8.0, 8.0), 4, dataset)
    assert interior.as_tuple() == (4.0, 3.0, 9.0, 8.0)

    corner = expand_tile_bounds(PlanarBounds(12.0, 0.0, 16.0, 4.0), 4, dataset)
    assert corner.as_tuple() == (12.0, 0.0, 16.0, 4.0)

    with pytest.raises(DataUnavailableError, match="do not intersect"):
        expand_tile_bounds(PlanarBounds(100.0, 100.0, 200.0, 200.0), 4, dataset)


def test_read_metadata(tmp_path: Path) -> None:
    path = _write_dem(tmp_path / "dem.tif")
    metadata = RasterioReader().read_metadata(str(path))

    assert metadata.bounds.as_tuple() == pytest.approx((0.0, 0.0, 16.0, 16.0))
    assert (metadata.width, metadata.height) == (16, 16)
    assert metadata.crs == "EPSG:3857"
    assert metadata.nodata == SOURCE_NODATA


def test_read_elevation_window_and_nodata(tmp_path: Path) -> None:
    path = _write_dem(tmp_path / "dem.tif")
    window = RasterioReader().read_elevation(str(path), PlanarBounds(4.0, 4.0, 8.0, 8.0), 4)

    assert window.heights.shape == (5, 5)
    assert window.bounds.as_tuple() == pytest.approx((4.0, 3.0, 9.0, 8.0))
    # Row 0 of the window is raster row 8 (y from 8 down to 7).
    assert window.heights[0, 0] == pytest.approx(804.0)
    assert window.heights[4, 4] == pytest.approx(1208.0)
    assert window.heights[1, 1] == ELEVATION_NO_DATA


def test_read_elevation_errors(tmp_path: Path) -> None:
    path = _write_dem(tmp_path / "dem.tif")
    reader = RasterioReader()

    with pytest.raises(DataUnavailableError):
        reader.read_elevation(str(path), PlanarBounds(100.0, 100.0, 200.0, 200.0), 4)
    with pytest.raises(DataUnavailableError):
        reader.read_elevation(str(tmp_path / "missing.tif"), PlanarBounds(0.0, 0.0, 4.0, 4.0), 4)
    with pytest.raises(DataUnavailableError):
        reader.read_metadata(str(tmp_path / "missing.tif"))


@pytest.mark.parametrize("count", [1, 3])
def test_read_texture_is_opaque_rgba(tmp_path: Path, count: int) -> None:
    path = _write_texture(tmp_path / "ortho.tif", count)
    rgba = RasterioReader().read_texture(str(path), PlanarBounds(4.0, 4.0, 8.0, 8.0), 4)

    assert rgba is not None
    assert rgba.shape == (5, 5, 4)
    assert rgba.dtype == np.uint8
    assert np.all(rgba[..., 3] == 255)
    assert np.all(rgba[..., 0] == rgba[..., 2])


def test_read_texture_failure_returns_none(tmp_path: Path) -> None:
    rgba = RasterioReader().read_texture(
        str(tmp_path / "missing.tif"), PlanarBounds(0.0, 0.0, 4.0, 4.0), 4
    )
    assert rgba is None
