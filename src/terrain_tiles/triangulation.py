from __future__ import annotations

from typing import Protocol

import numpy as np

from .mesh import RawTriangulation


class Triangulator(Protocol):
    """Turns a (tile_size+1)^2 height grid into a grid-space triangulation."""

    def triangulate(
        self, heights: np.ndarray, tile_size: int, max_error: float
    ) -> RawTriangulation: ...


class GridTriangulator:
    """Regular-grid triangulation with a fixed sample stride.

    Every `step`-th sample becomes a vertex and each cell is split into two
    triangles wound counter-clockwise when seen from above (+Y in world
    space). The error budget is accepted for interface compatibility but a
    regular grid does not simplify.
    """

    def __init__(self, step: int = 1) -> None:
        if step <= 0:
            raise ValueError("step must be > 0")
        self._step = int(step)

    @property
    def step(self) -> int:
        return self._step

    def triangulate(
        self, heights: np.ndarray, tile_size: int, max_error: float
    ) -> RawTriangulation:
        _ = max_error
        if tile_size % self._step != 0:
            raise ValueError(
                f"step={self._step} must divide tile_size={tile_size}"
            )
        grid_size = tile_size + 1
        if np.asarray(heights).size != grid_size * grid_size:
            raise ValueError(
                f"heights must hold {grid_size * grid_size} samples for tile_size={tile_size}"
            )

        coords = np.arange(0, tile_size + 1, self._step, dtype=np.int64)
        n = int(coords.size)
        gy, gx = np.meshgrid(coords, coords, indexing="ij")
        vertices = np.column_stack((gx.ravel(), gy.ravel()))

        row, col = np.meshgrid(
            np.arange(n - 1, dtype=np.int64),
            np.arange(n - 1, dtype=np.int64),
            indexing="ij",
        )
        p00 = (row * n + col).ravel()
        p10 = p00 + 1
        p01 = p00 + n
        p11 = p01 + 1
        first = np.column_stack((p00, p01, p10))
        second = np.column_stack((p10, p01, p11))
        triangles = np.stack((first, second), axis=1).reshape(-1, 3)

        return RawTriangulation(vertices=vertices, triangles=triangles)
