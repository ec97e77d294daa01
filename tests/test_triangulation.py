from __future__ import annotations

import numpy as np
import pytest

from terrain_tiles.triangulation import GridTriangulator


def test_full_resolution_grid() -> None:
    heights = np.zeros((5, 5))
    raw = GridTriangulator().triangulate(heights, 4, 10.0)

    assert raw.vertex_count == 25
    assert raw.triangle_count == 2 * 4 * 4
    assert raw.vertices[:3].tolist() == [[0, 0], [1, 0], [2, 0]]
    assert raw.vertices[5].tolist() == [0, 1]
    assert raw.triangles[:2].tolist() == [[0, 5, 1], [1, 5, 6]]
    assert int(raw.triangles.max()) == 24


def test_strided_grid_covers_tile_edges() -> None:
    raw = GridTriangulator(step=2).triangulate(np.zeros(81), 8, 0.0)

    assert raw.vertex_count == 25
    assert raw.triangle_count == 32
    xs = raw.vertices[:, 0]
    ys = raw.vertices[:, 1]
    assert xs.min() == 0 and xs.max() == 8
    assert ys.min() == 0 and ys.max() == 8


def test_triangulator_validation() -> None:
    with pytest.raises(ValueError, match="step must be > 0"):
        GridTriangulator(step=0)
    with pytest.raises(ValueError, match="must divide tile_size"):
        GridTriangulator(step=3).triangulate(np.zeros((5, 5)), 4, 0.0)
    with pytest.raises(ValueError, match="heights must hold"):
        GridTriangulator().triangulate(np.zeros((4, 4)), 4, 0.0)
