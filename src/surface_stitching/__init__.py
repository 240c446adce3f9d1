"""
Surface Stitching Package

Pairwise registration and stitching of two partial 3D scans of one object.
The scans are cropped to their expected common region, pre-registered, refined
with an overlap-aware ICP implemented from scratch, and merged into a single
point cloud.
"""

__version__ = "0.1.0"

from .core import *
from .preprocessing import *
from .alignment import *
from .utils import *
from .visualization import *

__all__ = [
    "core",
    "preprocessing",
    "alignment",
    "utils",
    "visualization",
]
