"""
Cluster validation against a similarity threshold.

Every multi-file cluster is scored with the average of its extension and
directory homogeneity. Singletons always pass.
"""

import logging
from typing import List, Sequence

from .similarity import cluster_similarity

logger = logging.getLogger(__name__)


class ClusterValidator:
    """Accepts or rejects a clustering using the shared similarity rule."""

    def __init__(self, root_folder: str = ""):
        self.root_folder = root_folder

    def score(self, cluster: Sequence[str]) -> float:
        return cluster_similarity(cluster, self.root_folder)

    def validate(self, clusters: Sequence[Sequence[str]], threshold: float) -> bool:
        """
        Check that every multi-file cluster meets the threshold.

        Args:
            clusters: Clustering to check
            threshold: Minimum similarity for multi-file clusters

        Returns:
            False as soon as one multi-file cluster scores below threshold
        """
        for cluster in clusters:
            if len(cluster) <= 1:
                continue
            similarity = self.score(cluster)
            if similarity < threshold:
                logger.debug(
                    "Cluster failed threshold validation: %.2f < %.2f (%d files)",
                    similarity, threshold, len(cluster),
                )
                return False
        return True

    def split_failing(self, clusters: Sequence[Sequence[str]], threshold: float) -> List[List[str]]:
        """Keep passing clusters; split each failing cluster into singletons."""
        filtered: List[List[str]] = []
        for cluster in clusters:
            if len(cluster) <= 1 or self.score(cluster) >= threshold:
                filtered.append(list(cluster))
            else:
                filtered.extend([file] for file in cluster)
        return filtered


def passes_threshold_validation(clusters: Sequence[Sequence[str]], context, method: str) -> bool:
    """
    Validation gate used by the accepting layers.

    Only applies in threshold mode; with a fixed target count the cluster
    count, not a similarity cutoff, governs the result.
    """
    if not context.threshold_mode:
        return True
    validator = ClusterValidator(context.root_folder)
    return validator.validate(clusters, context.config.similarity_threshold(method))
