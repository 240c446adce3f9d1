"""
Point Cloud Merging

Moves the registered cloud into the reference frame and concatenates both
clouds. Points in the overlap region are kept twice; no deduplication is done.
"""

from __future__ import annotations

import numpy as np

from ..core.point_cloud import PointCloud
from ..utils.logging import setup_logger
from ..utils.rigid_transform import apply_transform
from .pairwise_registration import RegistrationResult, RegistrationStatus

logger = setup_logger(__name__)

# Attributes that are directions and must be rotated with the points
_DIRECTION_ATTRIBUTES = ("normals",)


class MergeError(ValueError):
    """Raised when asked to merge with a registration that produced no transform."""


def merge_point_clouds(
    result: RegistrationResult,
    fixed: PointCloud,
    moving: PointCloud,
) -> PointCloud:
    """
    Merge the moving cloud into the frame of the fixed cloud.

    Args:
        result: Registration of ``moving`` onto ``fixed``.
        fixed: Reference cloud; its points come first in the output.
        moving: Registered cloud; transformed by ``result.transform``.

    Returns:
        New unorganized cloud with len(fixed) + len(moving) points. Attributes
        present in either input are carried over; the cloud lacking one gets
        fill values (see missing_attribute). Attributes whose per-point shapes
        differ between the inputs are dropped.

    Raises:
        MergeError: If the result carries no usable transform.
    """
    if not result.has_transform:
        raise MergeError(
            f"Cannot merge point clouds: registration status is '{result.status.value}'"
        )
    if result.status == RegistrationStatus.MAX_ITERATIONS_REACHED:
        logger.warning("Merging with an unconverged registration; the result may be misaligned.")

    transform = result.transform
    moved_points = apply_transform(moving.points, transform)
    points = np.vstack([fixed.points, moved_points])

    attributes = {}
    for name in sorted(set(fixed.attributes) | set(moving.attributes)):
        fixed_values = fixed.attributes.get(name)
        moving_values = moving.attributes.get(name)
        if fixed_values is None:
            fixed_values = missing_attribute(moving_values, len(fixed))
        elif moving_values is None:
            moving_values = missing_attribute(fixed_values, len(moving))
        elif fixed_values.shape[1:] != moving_values.shape[1:]:
            logger.warning(
                f"Attribute '{name}' has incompatible shapes "
                f"{fixed_values.shape[1:]} and {moving_values.shape[1:]}; dropped from merge."
            )
            continue
        if name in _DIRECTION_ATTRIBUTES and name in moving.attributes:
            moving_values = moving_values @ transform[:3, :3].T
        attributes[name] = np.concatenate([fixed_values, moving_values])

    padded = set(fixed.attributes) ^ set(moving.attributes)
    if padded:
        logger.debug(f"Attributes present in only one cloud padded with fill values: {sorted(padded)}")

    merged = PointCloud(points, attributes)
    logger.info(
        f"Merged {len(fixed):,} + {len(moving):,} points into {len(merged):,} points"
    )
    return merged


def missing_attribute(template: np.ndarray, n_points: int) -> np.ndarray:
    """
    Fill values for a cloud that lacks an attribute the other cloud has.

    NaN for floating point attributes, 0 for integer and boolean ones (e.g.
    black for 8-bit colors). Dtype and per-point shape follow ``template``.
    """
    shape = (n_points,) + template.shape[1:]
    if np.issubdtype(template.dtype, np.floating):
        return np.full(shape, np.nan, dtype=template.dtype)
    return np.zeros(shape, dtype=template.dtype)
