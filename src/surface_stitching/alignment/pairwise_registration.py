"""
Pairwise ICP Registration

This module implements the Iterative Closest Point (ICP) algorithm used to
align a moving point cloud onto a fixed one. Correspondences are trimmed to
the expected overlap percentage so that partially overlapping scans can be
registered, and the outcome is reported through a closed set of statuses
instead of exceptions.
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from ..core.point_cloud import PointCloud
from ..preprocessing.subsampling import subsample
from ..utils.logging import setup_logger
from ..utils.rigid_transform import (
    apply_transform,
    is_rigid,
    make_transform,
    orthonormalize,
    rotation_angle_deg,
    rotation_matrix,
)
from .spatial_index import KDTreeIndex, SpatialIndex

logger = setup_logger(__name__)

METRICS = ("point_to_point", "point_to_plane")

# Fraction of the fixed cloud diagonal used as correspondence cutoff when none is configured
AUTO_CORRESPONDENCE_FRACTION = 0.1

# RMS values at or below this are treated as an exact fit
_RMS_FLOOR = 1e-12


class RegistrationStatus(Enum):
    """Outcome of a pairwise registration."""

    NOT_INITIALIZED = "not_initialized"
    NOT_ENOUGH_POINT_PAIRS = "not_enough_point_pairs"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    RMS_THRESHOLD_REACHED = "rms_threshold_reached"
    RMS_RELATIVE_THRESHOLD_REACHED = "rms_relative_threshold_reached"

    @property
    def has_transform(self) -> bool:
        """A transform was produced (possibly unconverged)."""
        return self in (
            RegistrationStatus.MAX_ITERATIONS_REACHED,
            RegistrationStatus.RMS_THRESHOLD_REACHED,
            RegistrationStatus.RMS_RELATIVE_THRESHOLD_REACHED,
        )

    @property
    def converged(self) -> bool:
        return self in (
            RegistrationStatus.RMS_THRESHOLD_REACHED,
            RegistrationStatus.RMS_RELATIVE_THRESHOLD_REACHED,
        )


@dataclass(frozen=True)
class RegistrationResult:
    """
    Result of aligning a moving cloud onto a fixed cloud.

    ``transform`` maps moving-cloud coordinates into the fixed-cloud frame and
    is None whenever the status carries no usable transform.
    """

    status: RegistrationStatus
    transform: Optional[np.ndarray] = None
    rms_error: float = float("inf")
    n_iterations: int = 0
    n_point_pairs: int = 0
    overlap: float = 100.0
    elapsed_s: float = 0.0

    @property
    def has_transform(self) -> bool:
        return self.status.has_transform and self.transform is not None

    @property
    def converged(self) -> bool:
        return self.status.converged


@dataclass(frozen=True)
class AlignmentContext:
    """
    Immutable ICP configuration.

    Attributes:
        grid_size: Cell size for decimating unorganized clouds.
        decimation_step: Row/column step for decimating organized clouds.
        subsample: Decimate both clouds before every alignment pass.
        max_iterations: Iteration cap.
        rms_error_relative_threshold: Stop when the RMS error improves by less
            than this percentage between two iterations.
        rms_error_threshold: Stop when the RMS error falls to this value
            (disabled when None).
        overlap: Expected overlap, in percent; only this share of the closest
            correspondences is kept at every iteration.
        metric: "point_to_point" or "point_to_plane".
        max_correspondence_distance: Pairs farther apart are always rejected.
            None selects AUTO_CORRESPONDENCE_FRACTION of the fixed cloud
            diagonal.
        min_point_pairs: Minimum number of retained pairs; fewer aborts the
            registration.
        normal_neighbors: Neighbors used to estimate fixed-cloud normals for
            the point-to-plane metric.
        n_jobs: Parallel jobs for nearest-neighbor queries (None = 1, -1 = all cores).
    """

    grid_size: float = 1.0
    decimation_step: int = 8
    subsample: bool = True
    max_iterations: int = 100
    rms_error_relative_threshold: float = 0.5
    rms_error_threshold: Optional[float] = None
    overlap: float = 95.0
    metric: str = "point_to_point"
    max_correspondence_distance: Optional[float] = None
    min_point_pairs: int = 6
    normal_neighbors: int = 12
    n_jobs: Optional[int] = -1

    def __post_init__(self):
        if not 0.0 < self.overlap <= 100.0:
            raise ValueError(f"Overlap must be in (0, 100], got {self.overlap}")
        if self.metric not in METRICS:
            raise ValueError(f"Unknown error metric '{self.metric}', expected one of {METRICS}")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.grid_size <= 0 or self.decimation_step < 1:
            raise ValueError("grid_size must be positive and decimation_step >= 1")
        if self.rms_error_relative_threshold < 0:
            raise ValueError("rms_error_relative_threshold must be >= 0")
        if self.min_point_pairs < 3:
            raise ValueError("min_point_pairs must be >= 3")
        if self.max_correspondence_distance is not None and self.max_correspondence_distance <= 0:
            raise ValueError("max_correspondence_distance must be positive")

    @classmethod
    def from_config(cls, cfg) -> "AlignmentContext":
        """Build a context from a RegistrationConfig section."""
        return cls(
            grid_size=cfg.grid_size,
            decimation_step=cfg.decimation_step,
            subsample=cfg.subsample,
            max_iterations=cfg.max_iterations,
            rms_error_relative_threshold=cfg.rms_error_relative_threshold,
            rms_error_threshold=cfg.rms_error_threshold,
            overlap=cfg.overlap,
            metric=cfg.metric,
            max_correspondence_distance=cfg.max_correspondence_distance,
            min_point_pairs=cfg.min_point_pairs,
            normal_neighbors=cfg.normal_neighbors,
            n_jobs=cfg.n_jobs,
        )

    def with_overlap(self, overlap: float) -> "AlignmentContext":
        return dataclasses.replace(self, overlap=overlap)

    @property
    def required_pairs(self) -> int:
        # Point-to-plane solves for six unknowns
        if self.metric == "point_to_plane":
            return max(self.min_point_pairs, 6)
        return self.min_point_pairs


class PairwiseAligner:
    """
    ICP registration of a moving cloud onto a fixed cloud.

    At every iteration the aligner:
    1. Transforms the moving points with the current estimate
    2. Finds the closest fixed point of every moving point
    3. Keeps the closest ``overlap`` percent of the pairs
    4. Estimates the incremental rigid transform (point-to-point or point-to-plane)
    5. Composes it into the estimate and checks the RMS error for convergence
    """

    def __init__(
        self,
        context: AlignmentContext,
        index_factory: Callable[..., SpatialIndex] = KDTreeIndex,
    ):
        """
        Args:
            context: ICP configuration.
            index_factory: Builds the spatial index over the fixed cloud; called
                as ``index_factory(points, n_jobs=context.n_jobs)``.
        """
        self.context = context
        self.index_factory = index_factory

    def align(
        self,
        fixed: Optional[PointCloud],
        moving: Optional[PointCloud],
        initial_transform: Optional[np.ndarray] = None,
    ) -> RegistrationResult:
        """
        Align the moving cloud onto the fixed cloud.

        Args:
            fixed: Reference cloud, left in place.
            moving: Cloud to move onto the reference.
            initial_transform: Starting estimate (4 x 4), identity when None.

        Returns:
            RegistrationResult; alignment failures are reported through its status.

        Raises:
            ValueError: If initial_transform is not a rigid transform.
        """
        ctx = self.context
        start = time.time()

        if fixed is None or moving is None:
            logger.warning("Registration called without both point clouds; result not initialized.")
            return RegistrationResult(RegistrationStatus.NOT_INITIALIZED, overlap=ctx.overlap)

        if initial_transform is None:
            transform = np.eye(4)
        else:
            transform = np.asarray(initial_transform, dtype=float)
            if not is_rigid(transform, atol=1e-5):
                raise ValueError("initial_transform must be a rigid 4 x 4 transform")
            transform = orthonormalize(transform)

        if ctx.subsample and not fixed.is_empty and not moving.is_empty:
            fixed = subsample(fixed, ctx.decimation_step, ctx.decimation_step, ctx.grid_size)
            moving = subsample(moving, ctx.decimation_step, ctx.decimation_step, ctx.grid_size)

        fixed_points = fixed.points
        moving_points = moving.points
        logger.info(
            "Starting ICP (%s, overlap %.1f%%) with %d fixed and %d moving points.",
            ctx.metric,
            ctx.overlap,
            len(fixed_points),
            len(moving_points),
        )

        if len(fixed_points) < ctx.required_pairs or len(moving_points) < ctx.required_pairs:
            logger.warning(
                "Not enough points to register (fixed=%d, moving=%d, required=%d).",
                len(fixed_points),
                len(moving_points),
                ctx.required_pairs,
            )
            return self._failure(start)

        # Build the nearest-neighbor structure for the fixed cloud ONCE
        build_start = time.time()
        index = self.index_factory(fixed_points, n_jobs=ctx.n_jobs)
        normals = None
        if ctx.metric == "point_to_plane":
            normals = estimate_normals(fixed_points, index, ctx.normal_neighbors)
        logger.debug(
            "Spatial index built in %.4f s (backend=%s).",
            time.time() - build_start,
            index.backend_,
        )

        max_distance = self._max_correspondence_distance(fixed_points)
        previous_rms = float("inf")
        rms = float("inf")
        n_pairs = 0
        status = RegistrationStatus.MAX_ITERATIONS_REACHED
        n_iterations = 0

        for iteration in range(ctx.max_iterations):
            n_iterations = iteration + 1

            # Transform the ORIGINAL moving points with the cumulative estimate
            current = apply_transform(moving_points, transform)
            distances, indices = index.query(current)

            keep = self.select_pairs(distances, max_distance)
            n_pairs = len(keep)
            if n_pairs < ctx.required_pairs:
                logger.warning(
                    "Only %d point pairs survived rejection at iteration %d; "
                    "the clouds do not overlap enough.",
                    n_pairs,
                    n_iterations,
                )
                return self._failure(start, n_iterations=n_iterations, n_pairs=n_pairs)

            src = current[keep]
            dst = fixed_points[indices[keep]]
            dst_normals = normals[indices[keep]] if normals is not None else None

            if dst_normals is None:
                delta = estimate_point_to_point(src, dst)
            else:
                delta = estimate_point_to_plane(src, dst, dst_normals)

            transform = orthonormalize(delta @ transform)
            rms = self.pair_rms(apply_transform(src, delta), dst, dst_normals)

            logger.debug(
                "Iteration %d: RMS=%.6f, pairs=%d, |dt|=%.3e, dtheta=%.3e deg",
                n_iterations,
                rms,
                n_pairs,
                float(np.linalg.norm(delta[:3, 3])),
                rotation_angle_deg(delta),
            )

            if ctx.rms_error_threshold is not None and rms <= ctx.rms_error_threshold:
                status = RegistrationStatus.RMS_THRESHOLD_REACHED
                break

            if np.isfinite(previous_rms):
                if previous_rms <= _RMS_FLOOR:
                    relative = 0.0
                else:
                    relative = 100.0 * (previous_rms - rms) / previous_rms
                if relative < ctx.rms_error_relative_threshold:
                    status = RegistrationStatus.RMS_RELATIVE_THRESHOLD_REACHED
                    break

            previous_rms = rms

        elapsed = time.time() - start
        if status.converged:
            logger.info(
                "ICP converged after %d iterations in %.4f s (%s). Final RMS: %.6f",
                n_iterations,
                elapsed,
                status.value,
                rms,
            )
        else:
            logger.warning(
                "ICP reached the maximum of %d iterations in %.4f s; the transform may be invalid. "
                "Final RMS: %.6f",
                ctx.max_iterations,
                elapsed,
                rms,
            )

        return RegistrationResult(
            status=status,
            transform=transform,
            rms_error=float(rms),
            n_iterations=n_iterations,
            n_point_pairs=n_pairs,
            overlap=ctx.overlap,
            elapsed_s=elapsed,
        )

    def select_pairs(self, distances: np.ndarray, max_distance: float) -> np.ndarray:
        """
        Indices of the retained correspondences.

        Keeps the closest ``overlap`` percent of the pairs, then drops any pair
        farther apart than ``max_distance``.
        """
        n = len(distances)
        n_keep = int(round(self.context.overlap / 100.0 * n))
        n_keep = min(max(n_keep, 1), n)
        if n_keep < n:
            keep = np.argpartition(distances, n_keep - 1)[:n_keep]
        else:
            keep = np.arange(n)
        return keep[distances[keep] <= max_distance]

    @staticmethod
    def pair_rms(src: np.ndarray, dst: np.ndarray, normals: Optional[np.ndarray] = None) -> float:
        """RMS of point-to-point distances, or of point-to-plane distances when normals are given."""
        diff = src - dst
        if normals is None:
            sq = np.einsum("ij,ij->i", diff, diff)
        else:
            sq = np.einsum("ij,ij->i", diff, normals) ** 2
        return float(np.sqrt(np.mean(sq)))

    def _max_correspondence_distance(self, fixed_points: np.ndarray) -> float:
        if self.context.max_correspondence_distance is not None:
            return float(self.context.max_correspondence_distance)
        diagonal = float(np.linalg.norm(fixed_points.max(axis=0) - fixed_points.min(axis=0)))
        if diagonal == 0.0:
            return float("inf")
        return AUTO_CORRESPONDENCE_FRACTION * diagonal

    def _failure(self, start: float, n_iterations: int = 0, n_pairs: int = 0) -> RegistrationResult:
        return RegistrationResult(
            status=RegistrationStatus.NOT_ENOUGH_POINT_PAIRS,
            n_iterations=n_iterations,
            n_point_pairs=n_pairs,
            overlap=self.context.overlap,
            elapsed_s=time.time() - start,
        )


def estimate_point_to_point(source_points: np.ndarray, target_points: np.ndarray) -> np.ndarray:
    """
    Rigid transform minimizing squared distances between paired points.

    Closed-form absolute orientation (SVD of the cross-covariance).

    Args:
        source_points: Source point cloud points (N x 3).
        target_points: Corresponding target point cloud points (N x 3).

    Returns:
        Transformation matrix (4 x 4) mapping source onto target.
    """
    source_centroid = np.mean(source_points, axis=0)
    target_centroid = np.mean(target_points, axis=0)

    source_centered = source_points - source_centroid
    target_centered = target_points - target_centroid

    H = source_centered.T @ target_centered
    U, _, Vt = np.linalg.svd(H)
    R = Vt.T @ U.T

    # Ensure proper rotation (det(R) should be 1)
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    t = target_centroid - R @ source_centroid
    return make_transform(R, t)


def estimate_point_to_plane(
    source_points: np.ndarray,
    target_points: np.ndarray,
    target_normals: np.ndarray,
) -> np.ndarray:
    """
    Rigid transform minimizing distances to the target tangent planes.

    Solves the small-angle linearization in least squares, about the source
    centroid for conditioning.

    Args:
        source_points: Source points (N x 3).
        target_points: Paired target points (N x 3).
        target_normals: Unit normals at the target points (N x 3).

    Returns:
        Transformation matrix (4 x 4).
    """
    centroid = np.mean(source_points, axis=0)
    src = source_points - centroid
    dst = target_points - centroid

    A = np.hstack([np.cross(src, target_normals), target_normals])
    b = np.einsum("ij,ij->i", dst - src, target_normals)
    x, *_ = np.linalg.lstsq(A, b, rcond=None)

    rotvec = x[:3]
    angle = float(np.linalg.norm(rotvec))
    R = rotation_matrix(rotvec, np.rad2deg(angle)) if angle > 0.0 else np.eye(3)
    t = x[3:] + centroid - R @ centroid
    return make_transform(R, t)


def estimate_normals(
    points: np.ndarray,
    index: SpatialIndex,
    k: int = 12,
    block_size: int = 100_000,
) -> np.ndarray:
    """
    Unit normals by principal component analysis of the k nearest neighbors.

    Args:
        points: Points to estimate normals for (N x 3), the indexed set.
        index: Spatial index over ``points``.
        k: Neighborhood size (including the point itself).
        block_size: Points processed per batch to bound memory.

    Returns:
        (N x 3) unit normals; orientation is arbitrary.
    """
    k = max(3, min(k, len(points)))
    normals = np.empty_like(points)
    for start in range(0, len(points), block_size):
        block = points[start:start + block_size]
        _, neighbors = index.query(block, k=k)
        neighbors = neighbors.reshape(len(block), -1)
        local = points[neighbors]
        local = local - local.mean(axis=1, keepdims=True)
        cov = np.einsum("nki,nkj->nij", local, local)
        # Eigenvector of the smallest eigenvalue (eigh sorts ascending)
        _, vecs = np.linalg.eigh(cov)
        normals[start:start + len(block)] = vecs[:, :, 0]
    return normals

