"""Async orchestration: tile address -> raster read -> mesh -> GLB."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .cache import MemoCache
from .config import TerrainConfig
from .constants import DEFAULT_MAX_HEIGHT, DEFAULT_MIN_HEIGHT, SWITZERLAND_WGS84_BOUNDS
from .errors import DataUnavailableError, InvalidTileRequestError, NoValidGeometryError
from .mesh import build_triangle_indices, compute_vertex_normals, map_coordinates
from .projection import WEB_MERCATOR, normalize_crs
from .raster import RasterioReader, RasterMetadata, RasterReader
from .scene import GlbEncoder, SceneEncoder, encode_png
from .tile_bounds import (
    PlanarBounds,
    QuadtreeAddress,
    calculate_tile_bounds,
    planar_bounds_from_wgs84,
    tile_planar_bounds,
    tiles_per_axis,
)
from .tileset import Tileset, build_tileset, parse_geometric_error_method, write_tileset_json
from .triangulation import GridTriangulator, Triangulator

logger = logging.getLogger(__name__)

TILESET_FILENAME = "tileset.json"


@dataclass(frozen=True)
class DatasetContext:
    """Square quadtree extent of one elevation dataset, plus its height range.

    `data_bounds` is the raster extent the square was padded from; tiles that
    do not overlap it have nothing to read.
    """

    global_bounds: PlanarBounds
    center: tuple[float, float]
    crs: str
    min_height: float
    max_height: float
    data_bounds: Optional[PlanarBounds] = None

    @classmethod
    def from_raster_bounds(
        cls,
        bbox: PlanarBounds,
        *,
        crs: str,
        min_height: float,
        max_height: float,
    ) -> "DatasetContext":
        square = bbox.square()
        return cls(
            global_bounds=square,
            center=square.center,
            crs=crs,
            min_height=float(min_height),
            max_height=float(max_height),
            data_bounds=bbox,
        )

    @classmethod
    def default(
        cls,
        *,
        crs: str = WEB_MERCATOR,
        min_height: float = DEFAULT_MIN_HEIGHT,
        max_height: float = DEFAULT_MAX_HEIGHT,
    ) -> "DatasetContext":
        """Context spanning Switzerland, for tilesets built without a raster."""

        bbox = planar_bounds_from_wgs84(normalize_crs(crs), *SWITZERLAND_WGS84_BOUNDS)
        return cls.from_raster_bounds(
            bbox, crs=normalize_crs(crs), min_height=min_height, max_height=max_height
        )

    def covers(self, bounds: PlanarBounds) -> bool:
        return self.data_bounds is None or self.data_bounds.intersects(bounds)


@dataclass(frozen=True, eq=False)
class TileResult:
    address: QuadtreeAddress
    glb: bytes
    vertex_count: int
    triangle_count: int
    min_elevation: float
    max_elevation: float


@dataclass(frozen=True)
class ExportStats:
    tile_count: int
    skipped_count: int
    total_bytes: int
    elapsed_s: float

    @property
    def avg_bytes_per_tile(self) -> float:
        return self.total_bytes / max(1, self.tile_count)


def _parse_index(name: str, value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise InvalidTileRequestError(f"Invalid tile {name}: {value!r}")
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise InvalidTileRequestError(f"Invalid tile {name}: {value!r}")
        parsed = int(text)
    if parsed < 0:
        raise InvalidTileRequestError(f"Invalid tile {name}: {value!r}")
    return parsed


def parse_tile_address(
    level: Union[int, str],
    x: Union[int, str],
    y: Union[int, str],
    max_level: Optional[int] = None,
) -> QuadtreeAddress:
    """Validate request coordinates; a trailing ``.glb`` on `y` is accepted."""

    if isinstance(y, str):
        y = y.strip()
        if y.lower().endswith(".glb"):
            y = y[: -len(".glb")]

    lvl = _parse_index("level", level)
    col = _parse_index("x", x)
    row = _parse_index("y", y)

    if max_level is not None and lvl > max_level:
        raise InvalidTileRequestError(
            f"Tile level {lvl} exceeds max_level={max_level}"
        )
    n = tiles_per_axis(lvl)
    if col >= n or row >= n:
        raise InvalidTileRequestError(
            f"Tile ({col}, {row}) out of range at level={lvl}"
        )
    return QuadtreeAddress(level=lvl, x=col, y=row)


class TilePipeline:
    def __init__(
        self,
        *,
        reader: Optional[RasterReader] = None,
        triangulator: Optional[Triangulator] = None,
        encoder: Optional[SceneEncoder] = None,
        config: Optional[TerrainConfig] = None,
        metadata_cache: Optional[MemoCache[str, RasterMetadata]] = None,
    ) -> None:
        self._config = config or TerrainConfig()
        self._reader = reader or RasterioReader(no_data=self._config.no_data_value)
        self._triangulator = triangulator or GridTriangulator()
        self._encoder = encoder or GlbEncoder()
        self._metadata_cache = metadata_cache or MemoCache(
            capacity=self._config.metadata_cache.capacity,
            ttl_seconds=self._config.metadata_cache.ttl_seconds,
        )

    @property
    def config(self) -> TerrainConfig:
        return self._config

    async def dataset_context(self, source: str) -> DatasetContext:
        metadata = await asyncio.to_thread(
            self._metadata_cache.get_or_compute,
            source,
            lambda: self._reader.read_metadata(source),
        )
        heights = self._config.height_range
        return DatasetContext.from_raster_bounds(
            metadata.bounds,
            crs=self._resolve_crs(source, metadata.crs),
            min_height=heights.min_height,
            max_height=heights.max_height,
        )

    def _resolve_crs(self, source: str, raster_crs: Optional[str]) -> str:
        """Prefer the raster's own CRS; fall back to the configured projection."""

        configured = self._config.projection
        if not raster_crs:
            return configured
        try:
            crs = normalize_crs(raster_crs)
        except ValueError:
            logger.warning(
                "raster_crs_unsupported",
                extra={"source": source, "raster_crs": raster_crs, "crs": configured},
            )
            return configured
        if crs != configured:
            logger.warning(
                "raster_crs_mismatch",
                extra={"source": source, "raster_crs": crs, "configured_crs": configured},
            )
        return crs

    def tileset_for(
        self,
        context: DatasetContext,
        *,
        method: Optional[str] = None,
        max_level: Optional[int] = None,
    ) -> Tileset:
        if max_level is None:
            max_level = self._config.max_level
        elif max_level > self._config.max_level:
            raise InvalidTileRequestError(
                f"max_level={max_level} exceeds configured max_level={self._config.max_level}"
            )
        policy = self._config.geometric_error.to_policy()
        if method is not None:
            policy = dataclasses.replace(policy, method=parse_geometric_error_method(method))
        return build_tileset(
            context.global_bounds,
            context.center,
            min_height=context.min_height,
            max_height=context.max_height,
            max_level=max_level,
            policy=policy,
            content_extension=self._config.content_extension,
            up_axis=self._config.up_axis,
        )

    async def build_tileset(self, source: str, method: Optional[str] = None) -> Tileset:
        context = await self.dataset_context(source)
        return self.tileset_for(context, method=method)

    async def generate_tile(
        self,
        address: QuadtreeAddress,
        context: DatasetContext,
        elevation_source: str,
        texture_source: Optional[str] = None,
    ) -> TileResult:
        cfg = self._config
        if address.level > cfg.max_level:
            raise InvalidTileRequestError(
                f"Tile level {address.level} exceeds max_level={cfg.max_level}"
            )

        started = time.perf_counter()
        logger.info(
            "terrain_tile_started",
            extra={"level": address.level, "x": address.x, "y": address.y},
        )

        tile_bounds = calculate_tile_bounds(address, context.global_bounds, crs=context.crs)
        window = await asyncio.to_thread(
            self._reader.read_elevation, elevation_source, tile_bounds.planar, cfg.tile_size
        )
        raw = await asyncio.to_thread(
            self._triangulator.triangulate, window.heights, cfg.tile_size, cfg.mesh_error
        )

        geometry = map_coordinates(
            raw.vertices,
            window.heights,
            window.bounds,
            context.center,
            cfg.tile_size,
            neighbor_radius=cfg.neighbor_radius,
            no_data=cfg.no_data_value,
        )
        indices = build_triangle_indices(raw.triangles, geometry.validity)
        if indices.size == 0:
            logger.info(
                "terrain_tile_void",
                extra={
                    "level": address.level,
                    "x": address.x,
                    "y": address.y,
                    "raw_vertices": raw.vertex_count,
                },
            )
            raise NoValidGeometryError()

        normals = compute_vertex_normals(geometry.positions, indices)

        image: Optional[bytes] = None
        if texture_source:
            rgba = await asyncio.to_thread(
                self._reader.read_texture, texture_source, tile_bounds.planar, cfg.tile_size
            )
            if rgba is not None:
                image = await asyncio.to_thread(encode_png, rgba)

        glb = await asyncio.to_thread(
            self._encoder.encode,
            geometry.positions,
            geometry.uvs,
            indices,
            normals,
            image,
        )

        result = TileResult(
            address=address,
            glb=glb,
            vertex_count=geometry.vertex_count,
            triangle_count=int(indices.shape[0]),
            min_elevation=geometry.min_elevation,
            max_elevation=geometry.max_elevation,
        )
        logger.info(
            "terrain_tile_generated",
            extra={
                "level": address.level,
                "x": address.x,
                "y": address.y,
                "vertices": result.vertex_count,
                "triangles": result.triangle_count,
                "bytes": len(glb),
                "textured": image is not None,
                "elapsed_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return result


async def export_tileset(
    pipeline: TilePipeline,
    elevation_source: str,
    texture_source: Optional[str],
    out_dir: Path,
    max_level: Optional[int] = None,
    *,
    concurrency: int = 4,
) -> ExportStats:
    """Write ``tileset.json`` and every non-void tile under `out_dir`."""

    if concurrency <= 0:
        raise ValueError("concurrency must be > 0")

    started = time.perf_counter()
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    context = await pipeline.dataset_context(elevation_source)
    tileset = pipeline.tileset_for(context, max_level=max_level)
    write_tileset_json(out_dir / TILESET_FILENAME, tileset)

    semaphore = asyncio.Semaphore(concurrency)

    async def _write_tile(address: QuadtreeAddress, content_uri: str) -> Optional[int]:
        if not context.covers(tile_planar_bounds(context.global_bounds, address)):
            logger.debug(
                "terrain_tile_outside_raster",
                extra={"level": address.level, "x": address.x, "y": address.y},
            )
            return None
        async with semaphore:
            try:
                result = await pipeline.generate_tile(
                    address, context, elevation_source, texture_source
                )
            except NoValidGeometryError:
                return None
            except DataUnavailableError as exc:
                logger.warning(
                    "terrain_tile_unavailable",
                    extra={
                        "level": address.level,
                        "x": address.x,
                        "y": address.y,
                        "error": str(exc),
                    },
                )
                return None
        path = out_dir / content_uri.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(result.glb)
        return len(result.glb)

    tasks = [
        asyncio.create_task(_write_tile(tile.address, tile.content_uri))
        for tile in tileset.iter_tiles()
    ]
    try:
        sizes = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    written = [size for size in sizes if size is not None]
    stats = ExportStats(
        tile_count=len(written),
        skipped_count=len(sizes) - len(written),
        total_bytes=sum(written),
        elapsed_s=time.perf_counter() - started,
    )
    logger.info(
        "tileset_export_finished",
        extra={
            "out_dir": str(out_dir),
            "tile_count": stats.tile_count,
            "skipped_count": stats.skipped_count,
            "total_bytes": stats.total_bytes,
        },
    )
    return stats
