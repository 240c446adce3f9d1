"""
Nearest-neighbor search over a fixed point set.

The aligner only depends on the SpatialIndex interface, so the indexing
strategy can be swapped. KDTreeIndex is the default; BruteForceIndex is an
exact reference used in tests and for very small clouds.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from ..utils.logging import setup_logger

logger = setup_logger(__name__)


class SpatialIndex(ABC):
    """
    Read-only nearest-neighbor index built once over a point set.

    Attributes
    ----------
    points : np.ndarray, shape (n_samples, 3)
        Indexed points.
    backend_ : str
        Name of the implementation, for logging.
    """

    backend_ = "abstract"

    def __init__(self, points: np.ndarray):
        self.points = np.asarray(points, dtype=np.float64)
        if self.points.ndim != 2 or self.points.shape[1] != 3:
            raise ValueError(f"Indexed points must be (N, 3), got {self.points.shape}")
        if len(self.points) == 0:
            raise ValueError("Cannot index an empty point set")

    def __len__(self) -> int:
        return len(self.points)

    @abstractmethod
    def query(self, queries: np.ndarray, k: int = 1) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find the k nearest indexed points of every query point.

        Parameters
        ----------
        queries : np.ndarray, shape (n_queries, 3)
        k : int
            Number of neighbors; capped at the number of indexed points.

        Returns
        -------
        distances : np.ndarray
            Shape (n_queries,) when k == 1, else (n_queries, k), ascending.
        indices : np.ndarray
            Same shape as distances, indices into ``points``.
        """


class KDTreeIndex(SpatialIndex):
    """
    KD-tree index backed by scikit-learn.

    Queries are split across ``n_jobs`` workers by scikit-learn; the tree is
    shared read-only between them.
    """

    backend_ = "sklearn-kd_tree"

    def __init__(self, points: np.ndarray, *, n_jobs: Optional[int] = None, leaf_size: int = 30):
        super().__init__(points)
        self.n_jobs = n_jobs
        self._model = NearestNeighbors(
            n_neighbors=1,
            algorithm="kd_tree",
            leaf_size=leaf_size,
            n_jobs=n_jobs,
        ).fit(self.points)

    def query(self, queries: np.ndarray, k: int = 1) -> Tuple[np.ndarray, np.ndarray]:
        k = min(k, len(self.points))
        queries = np.asarray(queries, dtype=np.float64)
        if len(queries) == 0:
            shape = (0,) if k == 1 else (0, k)
            return np.empty(shape), np.empty(shape, dtype=np.intp)
        distances, indices = self._model.kneighbors(queries, n_neighbors=k)
        if k == 1:
            return distances.ravel(), indices.ravel()
        return distances, indices


class BruteForceIndex(SpatialIndex):
    """Exact O(N*M) reference index, evaluated in blocks to bound memory."""

    backend_ = "brute-force"

    def __init__(self, points: np.ndarray, *, block_size: int = 2048, **_ignored):
        super().__init__(points)
        self.block_size = block_size

    def query(self, queries: np.ndarray, k: int = 1) -> Tuple[np.ndarray, np.ndarray]:
        k = min(k, len(self.points))
        queries = np.asarray(queries, dtype=np.float64)
        distances = np.empty((len(queries), k))
        indices = np.empty((len(queries), k), dtype=np.intp)

        for start in range(0, len(queries), self.block_size):
            block = queries[start:start + self.block_size]
            diff = block[:, None, :] - self.points[None, :, :]
            dsq = np.einsum("ijk,ijk->ij", diff, diff)
            nearest = np.argsort(dsq, axis=1, kind="stable")[:, :k]
            indices[start:start + len(block)] = nearest
            distances[start:start + len(block)] = np.sqrt(np.take_along_axis(dsq, nearest, axis=1))

        if k == 1:
            return distances.ravel(), indices.ravel()
        return distances, indices
