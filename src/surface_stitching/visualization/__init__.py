"""
Visualization Module
"""

from .point_cloud import PointCloudVisualizer

__all__ = ["PointCloudVisualizer"]
