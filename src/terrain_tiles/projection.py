"""Coordinate conversions between WGS84 and the supported planar projections."""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Final

from pyproj import Transformer

WGS84: Final[str] = "EPSG:4326"
WEB_MERCATOR: Final[str] = "EPSG:3857"
LV95: Final[str] = "EPSG:2056"

SUPPORTED_PLANAR_CRS: Final[frozenset[str]] = frozenset({WEB_MERCATOR, LV95})

DEG_TO_RAD: Final[float] = math.pi / 180.0


def normalize_crs(crs: str) -> str:
    normalized = (crs or "").strip().upper()
    if normalized not in SUPPORTED_PLANAR_CRS:
        raise ValueError(
            f"Unsupported planar CRS={crs!r}; supported: {sorted(SUPPORTED_PLANAR_CRS)}"
        )
    return normalized


@lru_cache(maxsize=8)
def _transformer(source: str, target: str) -> Transformer:
    # always_xy keeps (lon, lat) / (easting, northing) ordering on both sides.
    return Transformer.from_crs(source, target, always_xy=True)


def to_geographic(crs: str, x: float, y: float) -> tuple[float, float]:
    """Convert planar (x, y) meters in `crs` to WGS84 (lon, lat) degrees."""

    lon, lat = _transformer(normalize_crs(crs), WGS84).transform(float(x), float(y))
    return float(lon), float(lat)


def from_geographic(crs: str, lon: float, lat: float) -> tuple[float, float]:
    """Convert WGS84 (lon, lat) degrees to planar (x, y) meters in `crs`."""

    x, y = _transformer(WGS84, normalize_crs(crs)).transform(float(lon), float(lat))
    return float(x), float(y)


def wgs84_to_web_mercator(lon: float, lat: float) -> tuple[float, float]:
    return from_geographic(WEB_MERCATOR, lon, lat)


def web_mercator_to_wgs84(x: float, y: float) -> tuple[float, float]:
    return to_geographic(WEB_MERCATOR, x, y)


def wgs84_to_lv95(lon: float, lat: float) -> tuple[float, float]:
    return from_geographic(LV95, lon, lat)


def lv95_to_wgs84(x: float, y: float) -> tuple[float, float]:
    return to_geographic(LV95, x, y)


def deg_to_rad(deg: float) -> float:
    return float(deg) * DEG_TO_RAD


def rad_to_deg(rad: float) -> float:
    return float(rad) / DEG_TO_RAD
