"""
Utility Functions Module

- Logging setup
- Typed YAML configuration
- Rigid transform helpers
- Export of stitched clouds
"""

from .logging import setup_logger, configure_logging
from .config import AppConfig, load_config
from .rigid_transform import (
    make_transform,
    rotation_matrix,
    apply_transform,
    invert_transform,
    orthonormalize,
    is_rigid,
    rotation_angle_deg,
)
from .export import export_point_cloud

__all__ = [
    "setup_logger",
    "configure_logging",
    "AppConfig",
    "load_config",
    "make_transform",
    "rotation_matrix",
    "apply_transform",
    "invert_transform",
    "orthonormalize",
    "is_rigid",
    "rotation_angle_deg",
    "export_point_cloud",
]
