"""
Box Cropping Module for Point Clouds

Selects the part of a point cloud expected to overlap with the other scan,
using an axis-aligned bounding box. Also provides the statistics helper that
counts points inside a box, used between the two registration phases to
estimate the true overlap fraction.

Cropping is performed before ICP registration so that the pre-registration
only sees the common region of both scans.
"""

from __future__ import annotations

import numpy as np

from ..core.point_cloud import BoundingBox, PointCloud
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


def crop(cloud: PointCloud, box: BoundingBox) -> PointCloud:
    """
    Keep the points lying inside or on the boundary of a box.

    Organized clouds stay organized when the kept points form a complete
    rectangular window of the grid; otherwise the result is unorganized.

    Args:
        cloud: Input cloud (organized or unorganized).
        box: Axis-aligned box in the cloud's coordinate frame.

    Returns:
        A new PointCloud; empty (but valid) when nothing lies in the box.
    """
    n_points = len(cloud)
    mask = box.contains(cloud.points)
    n_inside = int(np.sum(mask))

    if n_inside == 0:
        logger.debug(f"Cropping: 0/{n_points} points - all outside box")
        return cloud.select(mask)

    if cloud.is_organized:
        window = _full_grid_window(mask, cloud.grid_shape)
        if window is not None:
            indices, shape = window
            logger.debug(
                f"Cropped organized cloud to {shape[0]}x{shape[1]} grid window"
            )
            return cloud.select(indices, grid_shape=shape)
        logger.debug("Cropped points do not form a grid window; result is unorganized")

    percentage = 100.0 * n_inside / n_points
    logger.info(f"Cropped to {n_inside:,}/{n_points:,} points ({percentage:.1f}%)")
    return cloud.select(mask)


def _full_grid_window(mask: np.ndarray, grid_shape: tuple[int, int]):
    """Indices and shape of the kept window, or None if it has holes."""
    rows, cols = grid_shape
    grid = mask.reshape(rows, cols)
    kept_rows = np.flatnonzero(grid.any(axis=1))
    kept_cols = np.flatnonzero(grid.any(axis=0))
    r0, r1 = kept_rows[0], kept_rows[-1] + 1
    c0, c1 = kept_cols[0], kept_cols[-1] + 1
    if not grid[r0:r1, c0:c1].all():
        return None
    indices = np.arange(rows * cols).reshape(rows, cols)[r0:r1, c0:c1].ravel()
    return indices, (int(r1 - r0), int(c1 - c0))


def count_points_in_box(cloud: PointCloud, box: BoundingBox) -> int:
    """
    Count points whose signed distance to the box surface is <= 0.

    Args:
        cloud: Input cloud.
        box: Axis-aligned box.

    Returns:
        Number of points inside or on the boundary of the box.
    """
    return int(np.sum(box.contains(cloud.points)))


def get_crop_statistics(cloud: PointCloud, box: BoundingBox) -> dict:
    """
    Get statistics about a crop without building the cropped cloud.

    Args:
        cloud: Input cloud.
        box: Axis-aligned box.

    Returns:
        Dictionary with counts and percentages of points inside/outside the box.
    """
    n_total = len(cloud)
    n_inside = count_points_in_box(cloud, box)
    n_outside = n_total - n_inside

    return {
        'total_points': n_total,
        'points_inside': n_inside,
        'points_outside': n_outside,
        'percentage_inside': float(100.0 * n_inside / n_total) if n_total > 0 else 0.0,
        'percentage_outside': float(100.0 * n_outside / n_total) if n_total > 0 else 0.0,
        'box_center': box.center,
        'box_size': box.size,
    }
