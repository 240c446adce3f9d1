"""
Tests for the pairwise ICP aligner.

Synthetic clouds only: a uniform random block for point-to-point checks and a
bumpy height field for the point-to-plane scenario (a flat plane does not
constrain in-plane motion).
"""

from pathlib import Path
import sys

import numpy as np
import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.alignment.merge import merge_point_clouds
from surface_stitching.alignment.pairwise_registration import (
    AlignmentContext,
    PairwiseAligner,
    RegistrationStatus,
    estimate_normals,
    estimate_point_to_point,
)
from surface_stitching.alignment.spatial_index import BruteForceIndex, KDTreeIndex
from surface_stitching.core.point_cloud import PointCloud
from surface_stitching.utils.rigid_transform import (
    apply_transform,
    invert_transform,
    is_rigid,
    make_transform,
    rotation_angle_deg,
    rotation_matrix,
)


def _make_random_cloud(n: int = 1500, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform([-20.0, -15.0, -5.0], [20.0, 15.0, 5.0], size=(n, 3))


def _height(X, Y):
    Z = 10.0 * np.exp(-((X - 10.0) ** 2 + (Y - 5.0) ** 2) / (2 * 12.0 ** 2))
    Z -= 6.0 * np.exp(-((X + 20.0) ** 2 + (Y + 15.0) ** 2) / (2 * 10.0 ** 2))
    Z += 4.0 * np.exp(-((X - 25.0) ** 2 + (Y + 30.0) ** 2) / (2 * 8.0 ** 2))
    return Z


def _make_surface(x_min: float, y_min: float, nx: int = 100, ny: int = 100) -> np.ndarray:
    """Unit-spaced samples of the bumpy surface, row-major over y then x."""
    x = x_min + np.arange(nx, dtype=float)
    y = y_min + np.arange(ny, dtype=float)
    X, Y = np.meshgrid(x, y)
    return np.column_stack([X.ravel(), Y.ravel(), _height(X, Y).ravel()])


def _small_motion() -> np.ndarray:
    return make_transform(rotation_matrix([0.2, -0.1, 1.0], 1.0), [0.2, -0.15, 0.1])


def _exact_context(**kwargs) -> AlignmentContext:
    params = dict(subsample=False, overlap=100.0)
    params.update(kwargs)
    return AlignmentContext(**params)


class TestAlignmentContext:
    def test_defaults(self):
        ctx = AlignmentContext()
        assert ctx.overlap == 95.0
        assert ctx.max_iterations == 100
        assert ctx.rms_error_relative_threshold == 0.5
        assert ctx.decimation_step == 8
        assert ctx.metric == "point_to_point"

    @pytest.mark.parametrize("overlap", [0.0, -5.0, 100.5])
    def test_overlap_out_of_range(self, overlap):
        with pytest.raises(ValueError, match="Overlap"):
            AlignmentContext(overlap=overlap)

    def test_unknown_metric(self):
        with pytest.raises(ValueError, match="metric"):
            AlignmentContext(metric="point_to_line")

    def test_non_positive_grid(self):
        with pytest.raises(ValueError):
            AlignmentContext(grid_size=0.0)

    def test_with_overlap_copies(self):
        ctx = AlignmentContext(overlap=95.0)
        narrow = ctx.with_overlap(30.0)
        assert narrow.overlap == 30.0
        assert ctx.overlap == 95.0
        assert narrow.max_iterations == ctx.max_iterations


def test_identity_alignment_converges_to_identity():
    pts = _make_random_cloud(seed=3)
    fixed = PointCloud(pts)
    moving = PointCloud(pts.copy())

    result = PairwiseAligner(_exact_context()).align(fixed, moving)

    assert result.status == RegistrationStatus.RMS_RELATIVE_THRESHOLD_REACHED
    assert result.rms_error < 1e-9
    np.testing.assert_allclose(result.transform, np.eye(4), atol=1e-9)


def test_identity_alignment_with_subsampled_grid():
    pts = _make_surface(-20.0, -20.0, nx=40, ny=40)
    fixed = PointCloud(pts, grid_shape=(40, 40))
    moving = PointCloud(pts.copy(), grid_shape=(40, 40))
    ctx = AlignmentContext(subsample=True, decimation_step=2, overlap=100.0)

    result = PairwiseAligner(ctx).align(fixed, moving)

    assert result.converged
    # 20 x 20 decimated grid
    assert result.n_point_pairs == 400
    np.testing.assert_allclose(result.transform, np.eye(4), atol=1e-9)


def test_recovers_known_transform():
    pts = _make_random_cloud(seed=1)
    T_true = _small_motion()
    # moving is fixed expressed in another frame; T_true maps it back
    moving_pts = apply_transform(pts, invert_transform(T_true))

    result = PairwiseAligner(_exact_context()).align(PointCloud(pts), PointCloud(moving_pts))

    assert result.converged
    assert result.n_iterations < 100
    residual = result.transform @ invert_transform(T_true)
    assert rotation_angle_deg(residual) < 0.1
    np.testing.assert_allclose(result.transform[:3, 3], T_true[:3, 3], atol=1e-2)
    assert is_rigid(result.transform)


def test_brute_force_index_gives_same_transform():
    pts = _make_random_cloud(n=400, seed=5)
    moving_pts = apply_transform(pts, invert_transform(_small_motion()))

    kd = PairwiseAligner(_exact_context()).align(PointCloud(pts), PointCloud(moving_pts))
    brute = PairwiseAligner(_exact_context(), index_factory=BruteForceIndex).align(
        PointCloud(pts), PointCloud(moving_pts)
    )

    assert kd.status == brute.status
    assert kd.n_iterations == brute.n_iterations
    np.testing.assert_allclose(kd.transform, brute.transform, atol=1e-8)


def test_overlap_rejects_outliers():
    rng = np.random.default_rng(11)
    pts = _make_random_cloud(seed=2)
    T_true = _small_motion()
    inliers = apply_transform(pts, invert_transform(T_true))
    # Extra points floating well above the block
    outliers = rng.uniform([-20.0, -15.0, 12.0], [20.0, 15.0, 15.0], size=(150, 3))
    moving = PointCloud(np.vstack([inliers, outliers]))

    result = PairwiseAligner(_exact_context(overlap=90.0)).align(PointCloud(pts), moving)

    assert result.converged
    assert rotation_angle_deg(result.transform @ invert_transform(T_true)) < 0.1
    np.testing.assert_allclose(result.transform[:3, 3], T_true[:3, 3], atol=1e-2)


def test_rms_threshold_status():
    pts = _make_random_cloud(seed=4)
    moving_pts = apply_transform(pts, invert_transform(_small_motion()))
    ctx = _exact_context(rms_error_threshold=1e-6, rms_error_relative_threshold=0.0)

    result = PairwiseAligner(ctx).align(PointCloud(pts), PointCloud(moving_pts))

    assert result.status == RegistrationStatus.RMS_THRESHOLD_REACHED
    assert result.rms_error <= 1e-6


def test_max_iterations_returns_best_effort_transform():
    pts = _make_random_cloud(seed=6)
    moving_pts = apply_transform(pts, invert_transform(_small_motion()))

    result = PairwiseAligner(_exact_context(max_iterations=1)).align(
        PointCloud(pts), PointCloud(moving_pts)
    )

    assert result.status == RegistrationStatus.MAX_ITERATIONS_REACHED
    assert result.has_transform
    assert not result.converged
    assert result.n_iterations == 1
    assert is_rigid(result.transform)


def test_initial_transform_seeds_alignment():
    pts = _make_random_cloud(seed=7)
    T_true = make_transform(rotation_matrix([0.0, 0.0, 1.0], 20.0), [5.0, -3.0, 1.0])
    moving_pts = apply_transform(pts, invert_transform(T_true))

    result = PairwiseAligner(_exact_context()).align(
        PointCloud(pts), PointCloud(moving_pts), initial_transform=T_true
    )

    assert result.converged
    np.testing.assert_allclose(result.transform, T_true, atol=1e-6)


def test_non_rigid_initial_transform_raises():
    pts = _make_random_cloud(n=50)
    with pytest.raises(ValueError, match="rigid"):
        PairwiseAligner(_exact_context()).align(
            PointCloud(pts), PointCloud(pts), initial_transform=np.diag([2.0, 2.0, 2.0, 1.0])
        )


def test_missing_cloud_is_not_initialized():
    result = PairwiseAligner(AlignmentContext()).align(None, PointCloud(_make_random_cloud(n=10)))
    assert result.status == RegistrationStatus.NOT_INITIALIZED
    assert result.transform is None
    assert not result.has_transform


def test_empty_cloud_is_not_enough_pairs():
    result = PairwiseAligner(AlignmentContext()).align(
        PointCloud.empty(), PointCloud(_make_random_cloud(n=100))
    )
    assert result.status == RegistrationStatus.NOT_ENOUGH_POINT_PAIRS
    assert result.transform is None


def test_two_empty_clouds_are_not_enough_pairs():
    result = PairwiseAligner(AlignmentContext()).align(PointCloud.empty(), PointCloud.empty())
    assert result.status == RegistrationStatus.NOT_ENOUGH_POINT_PAIRS
    assert not result.has_transform


def test_disjoint_clouds_are_not_enough_pairs():
    pts = _make_random_cloud(seed=8)
    far = pts + np.array([1000.0, 0.0, 0.0])

    result = PairwiseAligner(_exact_context()).align(PointCloud(pts), PointCloud(far))

    assert result.status == RegistrationStatus.NOT_ENOUGH_POINT_PAIRS
    assert result.transform is None
    assert result.n_point_pairs == 0


def test_select_pairs_keeps_closest_share():
    aligner = PairwiseAligner(AlignmentContext(overlap=50.0))
    distances = np.array([5.0, 1.0, 4.0, 2.0, 3.0, 0.5])

    keep = aligner.select_pairs(distances, max_distance=np.inf)
    assert sorted(keep.tolist()) == [1, 3, 5]

    keep = aligner.select_pairs(distances, max_distance=1.5)
    assert sorted(keep.tolist()) == [1, 5]


def test_estimate_point_to_point_exact():
    src = _make_random_cloud(n=100, seed=9)
    T = make_transform(rotation_matrix([1.0, -2.0, 0.5], 30.0), [10.0, -5.0, 2.0])
    np.testing.assert_allclose(estimate_point_to_point(src, apply_transform(src, T)), T, atol=1e-9)


def test_estimate_normals_on_plane():
    rng = np.random.default_rng(10)
    pts = np.column_stack([rng.uniform(-10, 10, 500), rng.uniform(-10, 10, 500), np.zeros(500)])
    normals = estimate_normals(pts, KDTreeIndex(pts), k=8)
    np.testing.assert_allclose(np.abs(normals[:, 2]), 1.0, atol=1e-9)


def test_point_to_plane_surface_scenario():
    """
    Surface scans overlapping on 80 % of the moving scan, moving rotated 5 deg
    about z and shifted by (2, 0, 0): the inverse motion is recovered and the
    merged cloud keeps every point.
    """
    fixed_pts = _make_surface(-50.0, -50.0)
    moving_true = _make_surface(-30.0, -50.0)
    perturbation = make_transform(rotation_matrix([0.0, 0.0, 1.0], 5.0), [2.0, 0.0, 0.0])
    moving_pts = apply_transform(moving_true, perturbation)

    ctx = AlignmentContext(
        subsample=False,
        overlap=80.0,
        max_iterations=100,
        rms_error_relative_threshold=0.5,
        metric="point_to_plane",
    )
    fixed = PointCloud(fixed_pts)
    moving = PointCloud(moving_pts)
    result = PairwiseAligner(ctx).align(fixed, moving)

    assert result.status == RegistrationStatus.RMS_RELATIVE_THRESHOLD_REACHED
    T = result.transform
    angle = np.rad2deg(np.arctan2(T[1, 0], T[0, 0]))
    assert angle == pytest.approx(-5.0, abs=0.1)
    expected_t = invert_transform(perturbation)[:3, 3]
    np.testing.assert_allclose(T[:3, 3], expected_t, atol=1e-2)
    np.testing.assert_allclose(expected_t, [-1.992, 0.174, 0.0], atol=1e-3)

    merged = merge_point_clouds(result, fixed, moving)
    assert len(merged) == 20000
