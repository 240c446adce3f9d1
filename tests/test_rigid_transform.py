"""
Tests for rigid transform helpers.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.utils.rigid_transform import (
    apply_transform,
    invert_transform,
    is_rigid,
    make_transform,
    orthonormalize,
    rotation_angle_deg,
    rotation_matrix,
)


def test_rotation_about_z_matches_closed_form():
    th = np.deg2rad(30.0)
    expected = np.array([
        [np.cos(th), -np.sin(th), 0.0],
        [np.sin(th), np.cos(th), 0.0],
        [0.0, 0.0, 1.0],
    ])
    np.testing.assert_allclose(rotation_matrix([0, 0, 2.0], 30.0), expected, atol=1e-12)


def test_rotation_rejects_zero_axis():
    with pytest.raises(ValueError):
        rotation_matrix([0, 0, 0], 10.0)


def test_invert_transform_composes_to_identity():
    T = make_transform(rotation_matrix([1.0, 2.0, -0.5], 17.0), [3.0, -4.0, 5.0])
    np.testing.assert_allclose(invert_transform(T) @ T, np.eye(4), atol=1e-12)


def test_apply_transform_returns_new_array():
    pts = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
    T = make_transform(rotation_matrix([0, 0, 1], 90.0), [1.0, 0.0, 0.0])
    out = apply_transform(pts, T)
    np.testing.assert_allclose(out, [[1.0, 1.0, 0.0], [0.0, 0.0, 0.0]], atol=1e-12)
    assert out is not pts


def test_is_rigid():
    T = make_transform(rotation_matrix([0, 1, 0], 12.0), [1, 2, 3])
    assert is_rigid(T)

    scaled = T.copy()
    scaled[:3, :3] *= 1.1
    assert not is_rigid(scaled)

    reflected = np.diag([1.0, 1.0, -1.0, 1.0])
    assert not is_rigid(reflected)

    assert not is_rigid(np.eye(3))


def test_orthonormalize_removes_drift():
    T = make_transform(rotation_matrix([1, 1, 0], 25.0), [0.5, 0.0, -1.0])
    drifted = T.copy()
    drifted[:3, :3] += 1e-4
    fixed = orthonormalize(drifted)
    assert is_rigid(fixed, atol=1e-10)
    np.testing.assert_allclose(fixed[:3, 3], T[:3, 3])
    assert rotation_angle_deg(invert_transform(fixed) @ T) < 0.05


def test_rotation_angle_deg():
    assert rotation_angle_deg(np.eye(4)) == pytest.approx(0.0)
    T = make_transform(rotation_matrix([0.2, -1.0, 0.4], 5.0), [0, 0, 0])
    assert rotation_angle_deg(T) == pytest.approx(5.0)
