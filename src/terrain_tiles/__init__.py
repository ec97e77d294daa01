"""Terrain height rasters -> quadtree 3D Tiles tilesets with GLB tile content."""

from .cache import MemoCache
from .config import TerrainConfig
from .config import TerrainSettings
from .config import get_settings
from .config import get_terrain_config
from .config import load_terrain_config
from .errors import DataUnavailableError
from .errors import InvalidTileRequestError
from .errors import NoValidGeometryError
from .errors import TerrainTileError
from .mesh import MeshGeometry
from .mesh import RawTriangulation
from .mesh import VertexValidity
from .mesh import build_triangle_indices
from .mesh import compute_vertex_normals
from .mesh import map_coordinates
from .pipeline import DatasetContext
from .pipeline import ExportStats
from .pipeline import TilePipeline
from .pipeline import TileResult
from .pipeline import export_tileset
from .pipeline import parse_tile_address
from .raster import RasterioReader
from .scene import GlbEncoder
from .scene import encode_png
from .tile_bounds import PlanarBounds
from .tile_bounds import QuadtreeAddress
from .tile_bounds import TileBounds
from .tile_bounds import calculate_tile_bounds
from .tileset import GeometricErrorMethod
from .tileset import GeometricErrorPolicy
from .tileset import Tileset
from .tileset import build_tileset
from .triangulation import GridTriangulator

__all__ = [
    "MemoCache",
    "TerrainConfig",
    "TerrainSettings",
    "get_settings",
    "get_terrain_config",
    "load_terrain_config",
    "DataUnavailableError",
    "InvalidTileRequestError",
    "NoValidGeometryError",
    "TerrainTileError",
    "MeshGeometry",
    "RawTriangulation",
    "VertexValidity",
    "build_triangle_indices",
    "compute_vertex_normals",
    "map_coordinates",
    "DatasetContext",
    "ExportStats",
    "TilePipeline",
    "TileResult",
    "export_tileset",
    "parse_tile_address",
    "RasterioReader",
    "GlbEncoder",
    "encode_png",
    "PlanarBounds",
    "QuadtreeAddress",
    "TileBounds",
    "calculate_tile_bounds",
    "GeometricErrorMethod",
    "GeometricErrorPolicy",
    "Tileset",
    "build_tileset",
    "GridTriangulator",
]
