"""
Core data structures shared by every stage of the stitching pipeline.
"""

from .point_cloud import PointCloud, BoundingBox

__all__ = [
    "PointCloud",
    "BoundingBox",
]
