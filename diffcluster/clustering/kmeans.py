"""
K-means clustering of embedding vectors.

Partitions vectors into exactly k groups with a fixed number of Lloyd
iterations. Initial centroids are a random permutation of the input points,
so with k equal to the point count every point starts as its own centroid
and the result is all singletons regardless of the random source.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from sklearn.metrics import silhouette_score

from .base import KMeansError

logger = logging.getLogger(__name__)


class KMeansClusterer:
    """
    Plain Lloyd's k-means with random-permutation initialization.

    Runs a fixed iteration count with no early-convergence detection. A
    centroid that loses all its members is reseeded to a uniformly random
    input point.
    """

    def __init__(
        self,
        max_iter: int = 20,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize k-means clusterer.

        Args:
            max_iter: Number of assignment/update iterations
            rng: Random source for initialization and reseeding (None for unseeded)
        """
        self.max_iter = max_iter
        self.rng = rng if rng is not None else np.random.default_rng()
        self.centroids_: Optional[np.ndarray] = None
        self.inertia_: float = 0.0

    def fit_predict(self, vectors: Sequence[Sequence[float]], k: int) -> List[int]:
        """
        Assign every vector to one of k clusters.

        Args:
            vectors: Points to cluster, all of the same dimension
            k: Number of clusters

        Returns:
            Cluster label per input point, in input order

        Raises:
            KMeansError: k <= 0, no points, fewer points than k, or vectors of unequal length
        """
        if k <= 0 or len(vectors) == 0:
            raise KMeansError(f"invalid parameters for k-means: k={k}, points={len(vectors)}")
        if len(vectors) < k:
            raise KMeansError(f"number of clusters ({k}) exceeds data points ({len(vectors)})")

        if len({len(vector) for vector in vectors}) != 1:
            raise KMeansError("vectors must all have the same dimension")

        data = np.asarray(vectors, dtype=np.float64)
        n = data.shape[0]

        permutation = self.rng.permutation(n)
        centroids = data[permutation[:k]].copy()
        labels = np.zeros(n, dtype=int)

        for _ in range(self.max_iter):
            labels = self._assign(data, centroids)

            new_centroids = np.zeros_like(centroids)
            for cluster_idx in range(k):
                members = data[labels == cluster_idx]
                if len(members) == 0:
                    new_centroids[cluster_idx] = data[self.rng.integers(n)]
                else:
                    new_centroids[cluster_idx] = members.mean(axis=0)
            centroids = new_centroids

        self.centroids_ = centroids
        self.inertia_ = float(np.sum((data - centroids[labels]) ** 2))
        return labels.tolist()

    @staticmethod
    def _assign(data: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Nearest centroid by squared Euclidean distance; ties go to the lowest index."""
        distances = ((data[:, np.newaxis, :] - centroids[np.newaxis, :, :]) ** 2).sum(axis=2)
        return np.argmin(distances, axis=1)

    def cluster_files(self, files: Sequence[str], vectors: Sequence[Sequence[float]], k: int) -> List[List[str]]:
        """Run k-means and group file paths by label, dropping empty clusters."""
        labels = self.fit_predict(vectors, k)
        self._log_quality(vectors, labels)

        groups: List[List[str]] = [[] for _ in range(k)]
        for file, label in zip(files, labels):
            groups[label].append(file)
        return [group for group in groups if group]

    def _log_quality(self, vectors: Sequence[Sequence[float]], labels: List[int]) -> None:
        """Silhouette score for diagnostics; failures never affect clustering."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        distinct = len(set(labels))
        if distinct < 2 or distinct >= len(labels):
            return
        try:
            score = silhouette_score(np.asarray(vectors, dtype=np.float64), labels)
            logger.debug("K-means completed: k=%d, inertia=%.3f, silhouette=%.3f",
                         distinct, self.inertia_, score)
        except ValueError as e:
            logger.debug("Could not calculate quality metrics: %s", e)


def default_cluster_count(num_files: int, max_clusters: int = 5) -> int:
    """clamp(files / 2, 1, max_clusters)."""
    return max(1, min(num_files // 2, max_clusters))
