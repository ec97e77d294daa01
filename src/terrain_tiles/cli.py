from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from .config import TerrainConfig, get_settings, get_terrain_config, load_terrain_config
from .errors import TerrainTileError
from .pipeline import DatasetContext, TilePipeline, export_tileset, parse_tile_address
from .tileset import GeometricErrorMethod, write_tileset_json


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m terrain_tiles",
        description="Build 3D Tiles terrain tilesets and GLB tiles from a height raster.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to terrain.yaml (default: $TERRAIN_TILES_CONFIG or <config_dir>/terrain.yaml)",
    )
    parser.add_argument(
        "--elevation",
        default=None,
        help="Elevation raster path/URL (default: $TERRAIN_TILES_ELEVATION_SOURCE)",
    )
    parser.add_argument(
        "--texture",
        default=None,
        help="Texture raster path/URL (default: $TERRAIN_TILES_TEXTURE_SOURCE)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    tileset = sub.add_parser("tileset", help="Print or write the tileset descriptor")
    tileset.add_argument("--output", default=None, help="Write tileset.json here")
    tileset.add_argument(
        "--method",
        choices=[m.value for m in GeometricErrorMethod],
        default=None,
        help="Geometric error method (default: from config)",
    )

    tile = sub.add_parser("tile", help="Render one tile to a GLB file")
    tile.add_argument("level")
    tile.add_argument("x")
    tile.add_argument("y")
    tile.add_argument("--output", required=True, help="Output .glb path")

    export = sub.add_parser("export", help="Write tileset.json and all tiles")
    export.add_argument("--output-dir", required=True, help="Output directory")
    export.add_argument("--max-level", type=int, default=None)
    export.add_argument("--concurrency", type=int, default=4)
    return parser


def _load_config(path: Optional[str]) -> TerrainConfig:
    if path is not None:
        return load_terrain_config(path)
    try:
        return get_terrain_config()
    except FileNotFoundError:
        return TerrainConfig()


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True))


async def _run(
    args: argparse.Namespace,
    pipeline: TilePipeline,
    elevation: Optional[str],
    texture: Optional[str],
) -> dict[str, Any]:
    if args.command == "tileset":
        if elevation:
            tileset = await pipeline.build_tileset(elevation, method=args.method)
        else:
            heights = pipeline.config.height_range
            context = DatasetContext.default(
                crs=pipeline.config.projection,
                min_height=heights.min_height,
                max_height=heights.max_height,
            )
            tileset = pipeline.tileset_for(context, method=args.method)
        if args.output is None:
            return tileset.to_dict()
        output = Path(args.output)
        write_tileset_json(output, tileset)
        return {
            "tileset": str(output),
            "tile_count": sum(1 for _ in tileset.iter_tiles()),
            "geometric_error": tileset.geometric_error,
        }

    if args.command == "tile":
        address = parse_tile_address(
            args.level, args.x, args.y, max_level=pipeline.config.max_level
        )
        context = await pipeline.dataset_context(elevation)
        result = await pipeline.generate_tile(address, context, elevation, texture)
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(result.glb)
        return {
            "tile": [address.level, address.x, address.y],
            "output": str(output),
            "bytes": len(result.glb),
            "vertices": result.vertex_count,
            "triangles": result.triangle_count,
        }

    stats = await export_tileset(
        pipeline,
        elevation,
        texture,
        Path(args.output_dir),
        max_level=args.max_level,
        concurrency=args.concurrency,
    )
    return {
        "output_dir": str(args.output_dir),
        "tile_count": stats.tile_count,
        "skipped_count": stats.skipped_count,
        "total_bytes": stats.total_bytes,
        "elapsed_s": round(stats.elapsed_s, 3),
    }


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    elevation = args.elevation or settings.elevation_source
    if not elevation and args.command != "tileset":
        parser.error("an elevation source is required (--elevation or TERRAIN_TILES_ELEVATION_SOURCE)")
    texture = args.texture or settings.texture_source

    try:
        config = _load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        return 2

    pipeline = TilePipeline(config=config)
    try:
        payload = asyncio.run(_run(args, pipeline, elevation, texture))
    except TerrainTileError as exc:
        print(
            json.dumps({"error": str(exc), "type": type(exc).__name__}),
            file=sys.stderr,
        )
        return 1

    _emit(payload)
    return 0
