"""
Tests for organized and grid-bucket decimation.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.core.point_cloud import PointCloud
from surface_stitching.preprocessing.subsampling import subsample


def _make_grid_cloud(rows: int, cols: int) -> PointCloud:
    X, Y = np.meshgrid(np.arange(cols, dtype=float), np.arange(rows, dtype=float))
    pts = np.column_stack([X.ravel(), Y.ravel(), np.zeros(rows * cols)])
    return PointCloud(pts, grid_shape=(rows, cols))


def test_organized_decimation_keeps_every_step():
    cloud = _make_grid_cloud(rows=10, cols=17)

    reduced = subsample(cloud, step_x=8, step_y=4, grid_size=1.0)

    assert reduced.grid_shape == (3, 3)
    assert len(reduced) == 9
    np.testing.assert_array_equal(np.unique(reduced.points[:, 0]), [0.0, 8.0, 16.0])
    np.testing.assert_array_equal(np.unique(reduced.points[:, 1]), [0.0, 4.0, 8.0])


def test_unit_steps_keep_everything():
    cloud = _make_grid_cloud(rows=5, cols=6)
    reduced = subsample(cloud, 1, 1, 1.0)
    np.testing.assert_array_equal(reduced.points, cloud.points)
    assert reduced.points is not cloud.points


def test_grid_decimation_keeps_first_point_per_cell():
    pts = np.array([
        [0.1, 0.1, 0.1],
        [0.2, 0.3, 0.4],   # same cell as the first point
        [1.5, 0.1, 0.1],
        [0.15, 0.9, 0.2],  # same cell as the first point
        [3.2, 3.2, 3.2],
    ])
    reduced = subsample(PointCloud(pts), step_x=8, step_y=8, grid_size=1.0)

    np.testing.assert_array_equal(reduced.points, pts[[0, 2, 4]])
    assert not reduced.is_organized


def test_grid_decimation_bounds_density():
    rng = np.random.default_rng(0)
    cloud = PointCloud(rng.uniform(0.0, 10.0, size=(5000, 3)))

    reduced = subsample(cloud, 8, 8, grid_size=2.0)

    # At most one point per occupied cell of a 5 x 5 x 5 (or 6 with the far edge) lattice
    assert len(reduced) <= 6 ** 3
    cells = np.floor((reduced.points - cloud.points.min(axis=0)) / 2.0)
    assert len(np.unique(cells, axis=0)) == len(reduced)


def test_empty_cloud_passes_through():
    reduced = subsample(PointCloud.empty(), 8, 8, 1.0)
    assert reduced.is_empty


@pytest.mark.parametrize(
    "step_x, step_y, grid_size",
    [(0, 8, 1.0), (8, -1, 1.0), (8, 8, 0.0), (8, 8, -2.0)],
)
def test_invalid_parameters(step_x, step_y, grid_size):
    with pytest.raises(ValueError):
        subsample(_make_grid_cloud(2, 2), step_x, step_y, grid_size)
