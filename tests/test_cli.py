from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
import rasterio
import yaml
from rasterio.transform import from_origin


def _write_dem(path: Path) -> Path:
    data = np.full((16, 16), 750.0, dtype="float32")
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=16,
        width=16,
        count=1,
        dtype="float32",
        crs="EPSG:3857",
        transform=from_origin(1000.0, 2016.0, 1.0, 1.0),
    ) as dst:
        dst.write(data, 1)
    return path


def _write_config(path: Path) -> Path:
    path.write_text(
        yaml.safe_dump({"terrain": {"tile_size": 4, "max_level": 1}}, sort_keys=False),
        encoding="utf-8",
    )
    return path


def test_cli_prints_tileset(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    from terrain_tiles.cli import main

    dem = _write_dem(tmp_path / "dem.tif")
    cfg = _write_config(tmp_path / "terrain.yaml")

    assert main(["--config", str(cfg), "--elevation", str(dem), "tileset"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["asset"]["version"] == "1.1"
    assert len(payload["root"]["children"]) == 4


def test_cli_renders_single_tile(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    from terrain_tiles.cli import main

    dem = _write_dem(tmp_path / "dem.tif")
    cfg = _write_config(tmp_path / "terrain.yaml")
    out = tmp_path / "tile.glb"

    code = main(
        ["--config", str(cfg), "--elevation", str(dem), "tile", "1", "0", "1.glb", "--output", str(out)]
    )
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tile"] == [1, 0, 1]
    assert payload["vertices"] == 25
    assert out.read_bytes()[:4] == b"glTF"


def test_cli_export(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    from terrain_tiles.cli import main

    dem = _write_dem(tmp_path / "dem.tif")
    cfg = _write_config(tmp_path / "terrain.yaml")
    out_dir = tmp_path / "tiles_out"

    code = main(
        ["--config", str(cfg), "--elevation", str(dem), "export", "--output-dir", str(out_dir)]
    )
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tile_count"] == 5
    assert (out_dir / "tileset.json").is_file()


def test_cli_reports_invalid_tile(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    from terrain_tiles.cli import main

    dem = _write_dem(tmp_path / "dem.tif")
    cfg = _write_config(tmp_path / "terrain.yaml")

    code = main(
        ["--config", str(cfg), "--elevation", str(dem), "tile", "4", "0", "0", "--output", str(tmp_path / "x.glb")]
    )
    assert code == 1
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["type"] == "InvalidTileRequestError"
    assert not (tmp_path / "x.glb").exists()


def test_cli_tileset_without_elevation_uses_default_extent(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    from terrain_tiles.cli import main
    from terrain_tiles.config import get_settings

    monkeypatch.delenv("TERRAIN_TILES_ELEVATION_SOURCE", raising=False)
    get_settings.cache_clear()
    cfg = _write_config(tmp_path / "terrain.yaml")

    try:
        assert main(["--config", str(cfg), "tileset"]) == 0
    finally:
        get_settings.cache_clear()
    payload = json.loads(capsys.readouterr().out)
    box = payload["root"]["boundingVolume"]["box"]
    # Switzerland spans about 505 km east-west in Web Mercator.
    assert box[3] == pytest.approx(252_500.0, rel=0.01)
    assert box[11] == pytest.approx(box[3])
    assert box[0] == pytest.approx(0.0) and box[2] == pytest.approx(0.0)


def test_cli_requires_elevation_for_export(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    from terrain_tiles.cli import main
    from terrain_tiles.config import get_settings

    monkeypatch.delenv("TERRAIN_TILES_ELEVATION_SOURCE", raising=False)
    get_settings.cache_clear()
    cfg = _write_config(tmp_path / "terrain.yaml")

    try:
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(cfg), "export", "--output-dir", str(tmp_path / "out")])
    finally:
        get_settings.cache_clear()
    assert excinfo.value.code == 2


def test_cli_rejects_export_deeper_than_config(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    from terrain_tiles.cli import main

    dem = _write_dem(tmp_path / "dem.tif")
    cfg = _write_config(tmp_path / "terrain.yaml")
    out_dir = tmp_path / "tiles_out"

    code = main(
        [
            "--config", str(cfg), "--elevation", str(dem),
            "export", "--output-dir", str(out_dir), "--max-level", "5",
        ]
    )
    assert code == 1
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["type"] == "InvalidTileRequestError"
    assert "exceeds configured max_level" in err["error"]
    assert not (out_dir / "tileset.json").exists()
