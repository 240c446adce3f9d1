"""
Spatial Alignment Module

This module aligns two partial point clouds with an overlap-aware ICP
(Iterative Closest Point) and merges them into a single cloud.
"""

from .spatial_index import SpatialIndex, KDTreeIndex, BruteForceIndex
from .pairwise_registration import (
    AlignmentContext,
    PairwiseAligner,
    RegistrationResult,
    RegistrationStatus,
)
from .merge import MergeError, merge_point_clouds
from .stitching import StitchingResult, SurfaceStitcher

__all__ = [
    "SpatialIndex",
    "KDTreeIndex",
    "BruteForceIndex",
    "AlignmentContext",
    "PairwiseAligner",
    "RegistrationResult",
    "RegistrationStatus",
    "MergeError",
    "merge_point_clouds",
    "StitchingResult",
    "SurfaceStitcher",
]
