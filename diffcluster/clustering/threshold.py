"""
Threshold-based clustering of embedding vectors.

Produces a variable number of groups from a pairwise cosine-similarity
cutoff instead of a fixed cluster count.
"""

from typing import List, Sequence

import numpy as np

from .similarity import cosine_similarity


class ThresholdClusterer:
    """
    First-fit grouping by similarity to each cluster's seed.

    Files are scanned in input order; a file joins the first existing
    cluster whose seed vector is at least ``threshold`` similar to it,
    otherwise it seeds a new cluster.
    """

    def __init__(self, threshold: float = 0.6):
        self.threshold = threshold

    def fit_predict(self, vectors: Sequence[Sequence[float]]) -> List[int]:
        """Cluster label per vector, numbered in order of first appearance."""
        seeds: List[np.ndarray] = []
        labels: List[int] = []

        for vector in vectors:
            vector = np.asarray(vector, dtype=np.float64)
            for cluster_idx, seed in enumerate(seeds):
                if cosine_similarity(seed, vector) >= self.threshold:
                    labels.append(cluster_idx)
                    break
            else:
                seeds.append(vector)
                labels.append(len(seeds) - 1)

        return labels

    def cluster_files(self, files: Sequence[str], vectors: Sequence[Sequence[float]]) -> List[List[str]]:
        labels = self.fit_predict(vectors)
        groups: List[List[str]] = [[] for _ in range(max(labels, default=-1) + 1)]
        for file, label in zip(files, labels):
            groups[label].append(file)
        return groups
