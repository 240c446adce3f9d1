"""
Rigid Transform Helpers

Rigid transforms are plain 4 x 4 homogeneous matrices mapping points of a
moving cloud into the frame of a fixed cloud.
"""

from typing import Sequence

import numpy as np


def make_transform(rotation: np.ndarray, translation: Sequence[float]) -> np.ndarray:
    """Build a 4 x 4 transform from a 3 x 3 rotation and a translation vector."""
    transform = np.eye(4)
    transform[:3, :3] = np.asarray(rotation, dtype=float)
    transform[:3, 3] = np.asarray(translation, dtype=float)
    return transform


def rotation_matrix(axis: Sequence[float], angle_deg: float) -> np.ndarray:
    """
    Rotation matrix about an arbitrary axis (Rodrigues formula).

    Args:
        axis: Rotation axis, need not be normalized.
        angle_deg: Rotation angle in degrees, counter-clockwise about the axis.

    Returns:
        3 x 3 rotation matrix.
    """
    axis = np.asarray(axis, dtype=float)
    norm = np.linalg.norm(axis)
    if norm == 0:
        raise ValueError("Rotation axis must be non-zero")
    kx, ky, kz = axis / norm
    K = np.array([[0.0, -kz, ky], [kz, 0.0, -kx], [-ky, kx, 0.0]])
    theta = np.deg2rad(angle_deg)
    return np.eye(3) + np.sin(theta) * K + (1.0 - np.cos(theta)) * (K @ K)


def apply_transform(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """
    Apply a transformation matrix to a set of points.

    Args:
        points: Point cloud (N x 3).
        transform: Transformation matrix (4 x 4).

    Returns:
        Transformed point cloud (N x 3), always a new array.
    """
    if points.size == 0:
        return points.copy()

    # Direct affine transform (faster and less memory than homogeneous coords)
    R = transform[:3, :3]
    t = transform[:3, 3]
    return points @ R.T + t


def invert_transform(transform: np.ndarray) -> np.ndarray:
    """Inverse of a rigid transform, using R^T instead of a general inverse."""
    R = transform[:3, :3]
    t = transform[:3, 3]
    return make_transform(R.T, -R.T @ t)


def orthonormalize(transform: np.ndarray) -> np.ndarray:
    """
    Project the rotation block onto the closest proper rotation.

    Repeated composition accumulates floating point drift; the SVD projection
    restores an orthonormal rotation with determinant +1.
    """
    U, _, Vt = np.linalg.svd(transform[:3, :3])
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] *= -1
        R = U @ Vt
    return make_transform(R, transform[:3, 3])


def is_rigid(transform: np.ndarray, atol: float = 1e-6) -> bool:
    """True if the matrix is a proper rigid transform (no scale, shear or reflection)."""
    transform = np.asarray(transform, dtype=float)
    if transform.shape != (4, 4) or not np.all(np.isfinite(transform)):
        return False
    R = transform[:3, :3]
    return (
        np.allclose(R.T @ R, np.eye(3), atol=atol)
        and abs(np.linalg.det(R) - 1.0) < atol
        and np.allclose(transform[3], [0.0, 0.0, 0.0, 1.0], atol=atol)
    )


def rotation_angle_deg(transform: np.ndarray) -> float:
    """Magnitude of the rotation of a transform, in degrees."""
    trace = float(np.trace(transform[:3, :3]))
    # Clamp argument to arccos to valid range to avoid NaNs
    cos_theta = max(min((trace - 1.0) * 0.5, 1.0), -1.0)
    return float(np.rad2deg(np.arccos(cos_theta)))
