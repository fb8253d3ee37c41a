"""
Cached-embedding clustering.

Reuses embeddings persisted by earlier runs and pays for at most a handful
of new embedding calls, so a mostly-cached changeset gets semantic grouping
at near-heuristic cost. A cold cache aborts before any external call.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional

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
    single_file_clusters,
)
from .semantic import cluster_vectors, with_unembedded_singletons
from .similarity import average_pairwise_similarity
from .validator import passes_threshold_validation

logger = logging.getLogger(__name__)

# Confidence when no cluster has two embedded members to compare
NEUTRAL_CONFIDENCE = 0.5


def dominant_dimension(embeddings: Dict[str, np.ndarray]) -> int:
    """Most common vector length; ties go to the length seen first."""
    return Counter(len(vector) for vector in embeddings.values()).most_common(1)[0][0]


def keep_dimension(embeddings: Dict[str, np.ndarray], dimension: int) -> Dict[str, np.ndarray]:
    return {file: vector for file, vector in embeddings.items() if len(vector) == dimension}


def embedding_cluster_confidence(clusters: List[List[str]], embeddings: Dict[str, np.ndarray]) -> float:
    """Mean intra-cluster cosine similarity over clusters with at least two vectors."""
    scores = []
    for cluster in clusters:
        vectors = [embeddings[file] for file in cluster if file in embeddings]
        if len(vectors) >= 2:
            scores.append(average_pairwise_similarity(vectors))

    if not scores:
        return NEUTRAL_CONFIDENCE
    return float(np.mean(scores))


class CachedEmbeddingClusterer(ClusteringStrategy):
    """Third cascade layer: cluster cached vectors plus a bounded number of new ones."""

    method_name = "cached"

    def __init__(
        self,
        cache_store: EmbeddingCacheStore,
        client: Optional[EmbeddingClient],
        diff_provider: DiffProvider,
        rate_limiter: Optional[FixedDelayRateLimiter] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.cache_store = cache_store
        self.client = client
        self.diff_provider = diff_provider
        self.rate_limiter = rate_limiter or NoDelayRateLimiter()
        self.rng = rng

    def is_applicable(self, files: List[str], context: ClusteringContext) -> bool:
        return self.client is not None and super().is_applicable(files, context)

    def _fallback(self, files: List[str], hit_ratio: float) -> ClusteringAttempt:
        self.cache_store.save()
        return ClusteringAttempt(
            method=self.method_name,
            clusters=single_file_clusters(files),
            confidence=0.0,
            cache_hit_ratio=hit_ratio,
            cluster_type=ClusterType.CACHED,
        )

    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        settings = context.config.cached
        self.cache_store.ensure_loaded(context.root_folder)
        model = self.client.get_model_name()

        embeddings: Dict[str, np.ndarray] = {}
        for file in files:
            entry = self.cache_store.lookup(file, model=model)
            if entry is not None:
                embeddings[file] = entry.embedding

        if embeddings:
            # Vectors of another length come from a different model and count as misses
            embeddings = keep_dimension(embeddings, dominant_dimension(embeddings))

        hit_ratio = len(embeddings) / len(files) if files else 0.0
        logger.debug("Embedding cache hit ratio: %.3f (%d/%d)", hit_ratio, len(embeddings), len(files))

        if hit_ratio < settings.min_probe_hit_ratio:
            return self._fallback(files, hit_ratio)

        self.rate_limiter.reset()
        new_embeddings = 0
        fresh_dimension: Optional[int] = None
        for file in files:
            if new_embeddings >= settings.max_new_embeddings:
                break
            if file in embeddings:
                continue

            self.rate_limiter.wait()
            vector = embed_file_diff(
                file, context.root_folder, self.diff_provider, self.client, settings.max_diff_chars,
            )
            if vector is None:
                continue

            if fresh_dimension is None:
                fresh_dimension = len(vector)
                stale = [f for f, cached in embeddings.items() if len(cached) != fresh_dimension]
                if stale:
                    logger.debug("Dropping %d cached embeddings of another dimension", len(stale))
                    embeddings = keep_dimension(embeddings, fresh_dimension)
            elif len(vector) != fresh_dimension:
                logger.warning("Embedding for %s has dimension %d, expected %d; skipping",
                               file, len(vector), fresh_dimension)
                continue

            embeddings[file] = vector
            self.cache_store.put(file, vector, model=model)
            new_embeddings += 1

        if len(embeddings) < 2:
            return self._fallback(files, hit_ratio)

        # Keep input order so clustering does not depend on lookup order
        ordered = {file: embeddings[file] for file in files if file in embeddings}
        clusters = cluster_vectors(
            ordered,
            context.target_clusters,
            context.threshold_mode,
            pairwise_threshold=context.config.semantic.pairwise_threshold,
            kmeans_iterations=context.config.semantic.kmeans_iterations,
            max_default_clusters=context.config.semantic.max_default_clusters,
            rng=self.rng,
        )
        confidence = embedding_cluster_confidence(clusters, ordered)
        clusters = with_unembedded_singletons(clusters, files, ordered)

        self.cache_store.save()

        logger.debug(
            "Cached embedding clustering: %d files -> %d clusters, cache hit ratio: %.2f, confidence: %.2f",
            len(files), len(clusters), hit_ratio, confidence,
        )
        return ClusteringAttempt(
            method=self.method_name,
            clusters=clusters,
            confidence=confidence,
            cache_hit_ratio=hit_ratio,
            cluster_type=ClusterType.CACHED,
        )

    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        if attempt.confidence < context.config.confidence_threshold(self.method_name):
            return False
        if attempt.cache_hit_ratio < context.config.cached.min_cache_hit_ratio:
            return False
        return passes_threshold_validation(attempt.clusters, context, self.method_name)
