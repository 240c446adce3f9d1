"""
Preprocessing Module

Loading, box cropping and decimation of point clouds before registration.
"""

from .loader import PointCloudLoader
from .cropping import crop, count_points_in_box, get_crop_statistics
from .subsampling import subsample, decimate_organized, decimate_grid

__all__ = [
    "PointCloudLoader",
    "crop",
    "count_points_in_box",
    "get_crop_statistics",
    "subsample",
    "decimate_organized",
    "decimate_grid",
]
