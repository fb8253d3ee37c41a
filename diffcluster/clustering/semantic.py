"""
Full semantic clustering, the final cascade fallback.

Every file's diff is embedded one call at a time with a rate-limiter wait
between calls, then the vectors are grouped by pairwise cosine similarity
(threshold mode) or K-means (target-count mode). Files whose diff or
embedding fails stay in the result as singletons.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..embeddings.base import EmbeddingClient, embed_file_diff
from ..embeddings.cache import EmbeddingCacheStore
from ..embeddings.rate_limit import FixedDelayRateLimiter, NoDelayRateLimiter
from ..git_integration import DiffProvider
from .base import (
    ClusterType,
    ClusteringAttempt,
    ClusteringContext,
    ClusteringStrategy,
    KMeansError,
    single_file_clusters,
)
from .kmeans import KMeansClusterer, default_cluster_count
from .threshold import ThresholdClusterer

logger = logging.getLogger(__name__)


def cluster_vectors(
    embeddings: Dict[str, np.ndarray],
    target_clusters: int,
    use_threshold: bool,
    pairwise_threshold: float = 0.6,
    kmeans_iterations: int = 20,
    max_default_clusters: int = 5,
    rng: Optional[np.random.Generator] = None,
) -> List[List[str]]:
    """
    Group embedded files by their vectors.

    Args:
        embeddings: File path to vector, in input order
        target_clusters: Desired count for K-means (<= 0 picks a default)
        use_threshold: First-fit pairwise grouping instead of K-means
        pairwise_threshold: Cosine cutoff for threshold grouping
        kmeans_iterations: Fixed K-means iteration count
        max_default_clusters: Upper bound of the default K-means count
        rng: Random source for K-means

    Returns:
        Clusters covering exactly the files in ``embeddings``
    """
    files = list(embeddings)
    vectors = [embeddings[file] for file in files]

    if use_threshold:
        return ThresholdClusterer(pairwise_threshold).cluster_files(files, vectors)

    k = target_clusters if target_clusters > 0 else default_cluster_count(len(files), max_default_clusters)
    if len(files) <= k:
        return single_file_clusters(files)

    try:
        return KMeansClusterer(max_iter=kmeans_iterations, rng=rng).cluster_files(files, vectors, k)
    except KMeansError as e:
        logger.warning("K-means clustering failed: %s", e)
        return single_file_clusters(files)


def with_unembedded_singletons(
    clusters: List[List[str]],
    files: Sequence[str],
    embeddings: Dict[str, np.ndarray],
) -> List[List[str]]:
    """Append files that have no vector as singletons so the input stays partitioned."""
    missing = [file for file in files if file not in embeddings]
    return clusters + single_file_clusters(missing)


class SemanticClusterer(ClusteringStrategy):
    """
    Embeds every file and clusters the vectors.

    Embeddings produced here are also written to the cache store (when one
    is attached), so later runs can take the cheaper cached layer.
    """

    method_name = "semantic"

    def __init__(
        self,
        client: Optional[EmbeddingClient],
        diff_provider: DiffProvider,
        rate_limiter: Optional[FixedDelayRateLimiter] = None,
        cache_store: Optional[EmbeddingCacheStore] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.client = client
        self.diff_provider = diff_provider
        self.rate_limiter = rate_limiter or NoDelayRateLimiter()
        self.cache_store = cache_store
        self.rng = rng

    def is_applicable(self, files: List[str], context: ClusteringContext) -> bool:
        return self.client is not None and super().is_applicable(files, context)

    def embed_files(self, files: Sequence[str], context: ClusteringContext) -> Dict[str, np.ndarray]:
        """Sequentially embed each file's diff; failed files are left out."""
        settings = context.config.semantic
        if self.cache_store is not None:
            self.cache_store.ensure_loaded(context.root_folder)

        self.rate_limiter.reset()
        embeddings: Dict[str, np.ndarray] = {}
        for file in files:
            self.rate_limiter.wait()
            vector = embed_file_diff(
                file, context.root_folder, self.diff_provider, self.client, settings.max_diff_chars,
            )
            if vector is None:
                continue
            embeddings[file] = vector
            if self.cache_store is not None:
                self.cache_store.put(file, vector, model=self.client.get_model_name())

        if self.cache_store is not None:
            self.cache_store.save()
        return embeddings

    def cluster(
        self,
        files: List[str],
        context: ClusteringContext,
        use_threshold: Optional[bool] = None,
    ) -> List[List[str]]:
        """Embed and cluster; ``use_threshold`` defaults to the context's mode."""
        if use_threshold is None:
            use_threshold = context.threshold_mode

        embeddings = self.embed_files(files, context)
        if len(embeddings) < 2:
            logger.debug("Only %d of %d files embedded, using single file clusters",
                         len(embeddings), len(files))
            return single_file_clusters(files)

        settings = context.config.semantic
        clusters = cluster_vectors(
            embeddings,
            context.target_clusters,
            use_threshold,
            pairwise_threshold=settings.pairwise_threshold,
            kmeans_iterations=settings.kmeans_iterations,
            max_default_clusters=settings.max_default_clusters,
            rng=self.rng,
        )
        return with_unembedded_singletons(clusters, files, embeddings)

    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        logger.debug("Performing full semantic clustering for %d files", len(files))
        clusters = self.cluster(files, context)
        logger.debug("Full semantic clustering: %d files -> %d clusters", len(files), len(clusters))
        return ClusteringAttempt(
            method=self.method_name,
            clusters=clusters,
            confidence=1.0,
            cluster_type=ClusterType.SEMANTIC,
        )

    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        # Final fallback
        return True
