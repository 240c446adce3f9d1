"""
Tests for the nearest-neighbor index implementations.
"""

from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.append(str(Path(__file__).parent.parent / "src"))

from surface_stitching.alignment.spatial_index import BruteForceIndex, KDTreeIndex


@pytest.fixture
def clouds():
    rng = np.random.default_rng(42)
    data = rng.normal(size=(800, 3)) * np.array([10.0, 5.0, 2.0])
    queries = rng.normal(size=(300, 3)) * np.array([10.0, 5.0, 2.0])
    return data, queries


def test_kdtree_matches_brute_force(clouds):
    data, queries = clouds
    d_kd, i_kd = KDTreeIndex(data).query(queries)
    d_bf, i_bf = BruteForceIndex(data, block_size=64).query(queries)

    assert d_kd.shape == (300,)
    np.testing.assert_array_equal(i_kd, i_bf)
    np.testing.assert_allclose(d_kd, d_bf, rtol=1e-10, atol=1e-10)


def test_k_neighbors_are_sorted(clouds):
    data, queries = clouds
    distances, indices = KDTreeIndex(data, n_jobs=2).query(queries, k=5)

    assert distances.shape == (300, 5)
    assert indices.shape == (300, 5)
    assert np.all(np.diff(distances, axis=1) >= 0)

    d_bf, _ = BruteForceIndex(data).query(queries, k=5)
    np.testing.assert_allclose(distances, d_bf, atol=1e-10)


def test_query_of_indexed_point_is_exact():
    data = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
    distances, indices = KDTreeIndex(data).query(data)
    np.testing.assert_array_equal(indices, [0, 1, 2])
    np.testing.assert_allclose(distances, 0.0)


def test_k_is_capped_at_point_count():
    data = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    distances, indices = BruteForceIndex(data).query(np.zeros((1, 3)), k=5)
    assert indices.shape == (1, 2)
    np.testing.assert_allclose(distances[0], [0.0, 1.0])


def test_empty_point_set_is_rejected():
    with pytest.raises(ValueError):
        KDTreeIndex(np.empty((0, 3)))
    with pytest.raises(ValueError):
        BruteForceIndex(np.zeros((4, 2)))
