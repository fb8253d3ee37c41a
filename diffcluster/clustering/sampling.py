"""
Smart sampling for large changesets.

Embedding every file of a large changeset is slow and expensive, so only a
small diverse sample is embedded and clustered; every other file joins the
representative cluster it most resembles by path.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence

from ..paths import file_extension
from .base import (
    ClusterType,
    ClusteringAttempt,
    ClusteringContext,
    ClusteringStrategy,
    single_file_clusters,
)
from .pattern import PatternClusterer
from .semantic import SemanticClusterer, cluster_vectors
from .similarity import file_pair_similarity
from .validator import ClusterValidator

logger = logging.getLogger(__name__)

# File names that usually carry the core of a change
PREFERRED_NAME_MARKERS = ('main', 'index', 'core', 'app')


def sample_size(num_files: int, max_representatives: int = 8) -> int:
    return min(max_representatives, num_files // 2)


def select_representatives(files: Sequence[str], count: int) -> List[str]:
    """
    Pick up to ``count`` diverse files.

    One file per distinct extension first (preferring main/index/core/app
    names), then the longest remaining paths.
    """
    if count <= 0:
        return []
    if len(files) <= count:
        return list(files)

    by_extension: Dict[str, List[str]] = {}
    for file in files:
        by_extension.setdefault(file_extension(file), []).append(file)

    representatives: List[str] = []
    for group in by_extension.values():
        if len(representatives) >= count:
            break
        preferred = [
            file for file in group
            if any(marker in os.path.basename(file).lower() for marker in PREFERRED_NAME_MARKERS)
        ]
        representatives.append(preferred[0] if preferred else group[0])

    chosen = set(representatives)
    remaining = sorted((f for f in files if f not in chosen), key=len, reverse=True)
    for file in remaining:
        if len(representatives) >= count:
            break
        representatives.append(file)

    return representatives


def assign_files_to_clusters(
    files: Sequence[str],
    clusters: List[List[str]],
    root_folder: str = "",
) -> List[List[str]]:
    """
    Add every file not already clustered to its most similar cluster.

    A file's similarity to a cluster is its best path similarity to any
    member; ties go to the first cluster scanned.
    """
    if not clusters:
        return single_file_clusters(files)

    assigned = {file for cluster in clusters for file in cluster}
    final = [list(cluster) for cluster in clusters]

    for file in files:
        if file in assigned:
            continue

        best_idx, best_score = 0, -1.0
        for idx, cluster in enumerate(clusters):
            score = max(file_pair_similarity(file, member, root_folder) for member in cluster)
            if score > best_score:
                best_idx, best_score = idx, score

        final[best_idx].append(file)
        assigned.add(file)

    return final


class SmartSamplingClusterer(ClusteringStrategy):
    """Fourth cascade layer; only runs above the semantic file limit."""

    method_name = "semantic"

    def __init__(self, semantic: SemanticClusterer, fallback: Optional[PatternClusterer] = None):
        self.semantic = semantic
        self.fallback = fallback or PatternClusterer()

    def is_applicable(self, files: List[str], context: ClusteringContext) -> bool:
        if len(files) <= context.config.max_files_for_semantic_clustering:
            return False
        return self.semantic.is_applicable(files, context)

    def cluster(self, files: List[str], context: ClusteringContext) -> List[List[str]]:
        settings = context.config.semantic
        representatives = select_representatives(
            files, sample_size(len(files), settings.max_representatives),
        )

        embeddings = self.semantic.embed_files(representatives, context)
        if len(embeddings) < 2:
            logger.debug("Representative clustering failed, falling back to pattern clustering")
            return self.fallback.cluster(files, context.root_folder, context.target_clusters)

        # Representatives are always grouped by similarity cutoff, never K-means
        representative_clusters = cluster_vectors(
            embeddings,
            target_clusters=0,
            use_threshold=True,
            pairwise_threshold=settings.pairwise_threshold,
        )
        clusters = assign_files_to_clusters(files, representative_clusters, context.root_folder)

        if context.threshold_mode:
            validator = ClusterValidator(context.root_folder)
            clusters = validator.split_failing(clusters, settings.assignment_threshold)
        return clusters

    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        logger.debug("Using smart sampling for %d files", len(files))
        clusters = self.cluster(files, context)
        logger.debug("Smart sampling clustering: %d files -> %d clusters", len(files), len(clusters))
        return ClusteringAttempt(
            method="sampling",
            clusters=clusters,
            confidence=1.0,
            cluster_type=ClusterType.SEMANTIC,
        )

    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        return True
