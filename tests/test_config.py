from __future__ import annotations

from pathlib import Path

import pytest
import yaml

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "terrain.yaml"


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


def test_loads_repo_default_terrain_config() -> None:
    from terrain_tiles.config import load_terrain_config
    from terrain_tiles.tileset import GeometricErrorMethod

    config = load_terrain_config(REPO_CONFIG)
    assert config.tile_size == 512
    assert config.max_level == 5
    assert config.neighbor_radius == 2
    assert config.no_data_value == -9999.0
    assert config.projection == "EPSG:3857"
    assert config.geometric_error.method is GeometricErrorMethod.RESOLUTION_BASED
    assert config.height_range.max_height == 4500.0
    assert config.up_axis == "Y"
    assert config.metadata_cache.ttl_seconds == 3600


def test_defaults_match_constants(tmp_path: Path) -> None:
    from terrain_tiles.config import TerrainConfig, load_terrain_config

    _write_yaml(tmp_path / "terrain.yaml", {"terrain": {}})
    assert load_terrain_config(tmp_path / "terrain.yaml") == TerrainConfig()

    policy = TerrainConfig().geometric_error.to_policy()
    assert policy.error_at(0) == pytest.approx(256.0)


def test_resolves_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from terrain_tiles.config import load_terrain_config

    _write_yaml(tmp_path / "custom.yaml", {"terrain": {"tile_size": 256, "projection": "epsg:2056"}})
    monkeypatch.setenv("TERRAIN_TILES_CONFIG", str(tmp_path / "custom.yaml"))

    config = load_terrain_config()
    assert config.tile_size == 256
    assert config.projection == "EPSG:2056"


def test_getter_caches_by_mtime_and_size(tmp_path: Path) -> None:
    from terrain_tiles.config import get_terrain_config

    path = tmp_path / "terrain.yaml"
    _write_yaml(path, {"terrain": {"max_level": 3}})

    get_terrain_config.cache_clear()
    first = get_terrain_config(path)
    second = get_terrain_config(path)
    assert first is second

    _write_yaml(path, {"terrain": {"max_level": 4, "mesh_error": 2.5}})
    assert get_terrain_config(path).max_level == 4


@pytest.mark.parametrize(
    "terrain,match",
    [
        ({"tile_size": 300}, "power of two"),
        ({"projection": "EPSG:4326"}, "Unsupported planar CRS"),
        ({"height_range": {"min_height": 10, "max_height": 0}}, "max_height must be >= min_height"),
        ({"unknown": 1}, "Invalid terrain config"),
        ({"metadata_cache": {"capacity": 0}}, "Invalid terrain config"),
    ],
)
def test_rejects_invalid_values(tmp_path: Path, terrain: dict, match: str) -> None:
    from terrain_tiles.config import load_terrain_config

    _write_yaml(tmp_path / "cfg.yaml", {"terrain": terrain})
    with pytest.raises(ValueError, match=match):
        load_terrain_config(tmp_path / "cfg.yaml")


def test_missing_and_malformed_files(tmp_path: Path) -> None:
    from terrain_tiles.config import get_terrain_config, load_terrain_config

    with pytest.raises(FileNotFoundError, match="terrain config file not found"):
        load_terrain_config(tmp_path / "nope.yaml")
    with pytest.raises(FileNotFoundError, match="terrain config file not found"):
        get_terrain_config(tmp_path / "nope.yaml")

    (tmp_path / "bad.yaml").write_text("terrain: [unclosed", encoding="utf-8")
    with pytest.raises(ValueError, match="Failed to load terrain YAML"):
        load_terrain_config(tmp_path / "bad.yaml")

    (tmp_path / "list.yaml").write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a mapping"):
        load_terrain_config(tmp_path / "list.yaml")


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    from terrain_tiles.config import TerrainSettings

    monkeypatch.setenv("TERRAIN_TILES_ELEVATION_SOURCE", "/data/dem.tif")
    monkeypatch.setenv("TERRAIN_TILES_LOG_LEVEL", "debug")

    settings = TerrainSettings()
    assert settings.elevation_source == "/data/dem.tif"
    assert settings.texture_source is None
    assert settings.log_level == "DEBUG"

    monkeypatch.setenv("TERRAIN_TILES_LOG_LEVEL", "loud")
    with pytest.raises(ValueError, match="Unsupported log_level"):
        TerrainSettings()
