"""
Directory-based clustering.

Groups changed files by immediate parent directory, the cheapest and most
common signal that files belong to one logical change.
"""

import logging
from typing import Dict, List

from ..paths import parent_directory
from .base import (
    ClusterType,
    ClusteringAttempt,
    ClusteringContext,
    ClusteringStrategy,
    merge_clusters,
)
from .similarity import directory_similarity
from .validator import passes_threshold_validation

logger = logging.getLogger(__name__)

# A multi-file cluster counts as well grouped when its dominant directory
# covers at least this share of the cluster
WELL_GROUPED_SHARE = 0.7


class DirectoryClusterer(ClusteringStrategy):
    """First cascade layer: one cluster per parent directory."""

    method_name = "directory"

    def cluster(self, files: List[str], root_folder: str, target_clusters: int = 0) -> List[List[str]]:
        groups: Dict[str, List[str]] = {}
        for file in files:
            groups.setdefault(parent_directory(file, root_folder), []).append(file)

        # Largest first; stable so equal sizes keep first-seen directory order
        clusters = sorted(groups.values(), key=len, reverse=True)

        if target_clusters > 0 and len(clusters) > target_clusters:
            clusters = merge_clusters(clusters, target_clusters)
        return clusters

    def confidence(self, files: List[str], clusters: List[List[str]], root_folder: str) -> float:
        """Fraction of files sitting in well-grouped clusters."""
        if not files or not clusters:
            return 0.0

        well_grouped = 0
        for cluster in clusters:
            if len(cluster) <= 1 or directory_similarity(cluster, root_folder) >= WELL_GROUPED_SHARE:
                well_grouped += len(cluster)
        return well_grouped / len(files)

    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        clusters = self.cluster(files, context.root_folder, context.target_clusters)
        confidence = self.confidence(files, clusters, context.root_folder)

        logger.debug(
            "Directory-based clustering: %d files -> %d clusters, confidence: %.2f",
            len(files), len(clusters), confidence,
        )
        return ClusteringAttempt(
            method=self.method_name,
            clusters=clusters,
            confidence=confidence,
            cluster_type=ClusterType.DIRECTORY,
        )

    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        if attempt.confidence < context.config.confidence_threshold(self.method_name):
            return False
        return passes_threshold_validation(attempt.clusters, context, self.method_name)
