"""
Point Cloud Decimation

Reduces the number of points before ICP so that the correspondence search
stays tractable. Organized clouds are decimated by row/column steps, which
keeps their grid; unorganized clouds keep one point per occupied grid cell.
"""

from __future__ import annotations

import numpy as np

from ..core.point_cloud import PointCloud
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def subsample(
    cloud: PointCloud,
    step_x: int,
    step_y: int,
    grid_size: float,
) -> PointCloud:
    """
    Decimate a point cloud.

    Args:
        cloud: Input cloud.
        step_x: Column step for organized clouds (keep every step_x-th column).
        step_y: Row step for organized clouds (keep every step_y-th row).
        grid_size: Cell size for unorganized clouds; the first point (in input
            order) of every occupied cell is kept.

    Returns:
        A new, reduced PointCloud.

    Raises:
        ValueError: If a step or the grid size is not positive.
    """
    if step_x < 1 or step_y < 1:
        raise ValueError(f"Decimation steps must be >= 1, got ({step_x}, {step_y})")
    if grid_size <= 0:
        raise ValueError(f"Grid size must be positive, got {grid_size}")

    if cloud.is_empty:
        return cloud.copy()

    if cloud.is_organized:
        reduced = decimate_organized(cloud, step_x, step_y)
    else:
        reduced = decimate_grid(cloud, grid_size)

    logger.debug(f"Subsampled {len(cloud):,} -> {len(reduced):,} points")
    return reduced


def decimate_organized(cloud: PointCloud, step_x: int, step_y: int) -> PointCloud:
    """Nearest-neighbor decimation of an organized cloud, preserving its grid."""
    rows, cols = cloud.grid_shape
    index_grid = np.arange(rows * cols).reshape(rows, cols)[::step_y, ::step_x]
    return cloud.select(index_grid.ravel(), grid_shape=index_grid.shape)


def decimate_grid(cloud: PointCloud, grid_size: float) -> PointCloud:
    """Keep the first point of every occupied cubic cell of side grid_size."""
    origin = cloud.points.min(axis=0)
    cells = np.floor((cloud.points - origin) / grid_size).astype(np.int64)
    # np.unique returns the first occurrence of each cell; re-sort to keep input order
    _, first = np.unique(cells, axis=0, return_index=True)
    return cloud.select(np.sort(first))
