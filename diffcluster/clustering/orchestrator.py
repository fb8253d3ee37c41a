"""
Clustering cascade orchestrator.

Tries clustering strategies from cheapest to most expensive and stops at
the first one that accepts its own result:

1. Directory clustering
2. Pattern clustering
3. Cached-embedding clustering
4. Smart sampling (large changesets only)
5. Full semantic clustering, always accepted

Recoverable failures inside a layer degrade to a lower-quality clustering;
only invalid input is reported to the caller.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import AUTO_METHOD, ClusteringConfig
from ..embeddings.base import EmbeddingClient
from ..embeddings.cache import EmbeddingCacheStore, JSONEmbeddingCacheStore
from ..embeddings.rate_limit import FixedDelayRateLimiter
from ..git_integration import DiffProvider, GitDiffProvider
from .base import (
    ClusteringAttempt,
    ClusteringContext,
    ClusteringInputError,
    ClusteringStrategy,
    ClusterType,
    MethodDisabledError,
    single_file_clusters,
)
from .benchmark import (
    BenchmarkRecorder,
    BenchmarkResult,
    ClusteringBenchmark,
    overall_confidence,
    run_clustering_benchmark,
)
from .cached import CachedEmbeddingClusterer
from .directory import DirectoryClusterer
from .pattern import PatternClusterer
from .sampling import SmartSamplingClusterer
from .semantic import SemanticClusterer

logger = logging.getLogger(__name__)


class SmartClusterer:
    """
    Cascade controller over an ordered list of clustering strategies.

    Collaborators that touch the outside world (diff provider, embedding
    client, cache store, rate limiter, random source) are injectable; the
    defaults are built from the configuration.
    """

    def __init__(
        self,
        config: Optional[ClusteringConfig] = None,
        client: Optional[EmbeddingClient] = None,
        diff_provider: Optional[DiffProvider] = None,
        cache_store: Optional[EmbeddingCacheStore] = None,
        rate_limiter: Optional[FixedDelayRateLimiter] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the cascade.

        Args:
            config: Clustering configuration (defaults if None)
            client: Embedding client; without one the embedding layers are skipped
            diff_provider: Source of per-file diffs (git by default)
            cache_store: Embedding cache (JSON files under the data dir by default)
            rate_limiter: Delay between embedding calls (from config by default)
            rng: Random source for K-means (seeded from config.random_seed by default)
        """
        self.config = config or ClusteringConfig()
        self.client = client
        self.diff_provider = diff_provider or GitDiffProvider(timeout=self.config.semantic.embedding_timeout)
        self.cache_store = cache_store or JSONEmbeddingCacheStore(
            self.config.resolved_data_dir(),
            max_age_hours=self.config.cached.max_cache_age_hours,
        )
        self.rate_limiter = rate_limiter or FixedDelayRateLimiter.from_milliseconds(
            self.config.semantic.rate_limit_delay_ms
        )
        self.rng = rng if rng is not None else np.random.default_rng(self.config.random_seed)
        self.benchmarks = BenchmarkRecorder()

        self.directory = DirectoryClusterer()
        self.pattern = PatternClusterer()
        self.semantic = SemanticClusterer(
            client, self.diff_provider, self.rate_limiter, self.cache_store, self.rng,
        )
        self.cached = CachedEmbeddingClusterer(
            self.cache_store, client, self.diff_provider, self.rate_limiter, self.rng,
        )
        self.sampling = SmartSamplingClusterer(self.semantic, self.pattern)

        self.strategies: List[ClusteringStrategy] = [
            self.directory,
            self.pattern,
            self.cached,
            self.sampling,
            self.semantic,
        ]

    @property
    def methods(self) -> Dict[str, ClusteringStrategy]:
        """Strategies runnable on their own by configured method name."""
        return {
            'directory': self.directory,
            'pattern': self.pattern,
            'cached': self.cached,
            'semantic': self.semantic,
        }

    def cluster_files(self, files: Sequence[str], root_folder: str, target_clusters: int = 0) -> List[List[str]]:
        """
        Group changed files into clusters.

        Args:
            files: Changed file paths
            root_folder: Folder the paths are relative to
            target_clusters: Desired count; <= 0 selects threshold mode

        Returns:
            Clusters partitioning the (de-duplicated) input

        Raises:
            ClusteringInputError: Invalid parameters
            MethodDisabledError: A specific method is configured but disabled
        """
        return self.run(files, root_folder, target_clusters).clusters

    def run(self, files: Sequence[str], root_folder: str, target_clusters: int = 0) -> ClusteringAttempt:
        """Like ``cluster_files`` but returns the accepted attempt with its method and scores."""
        unique_files = self._validate_input(files, root_folder, target_clusters)

        if len(unique_files) <= 1:
            return ClusteringAttempt(
                method="trivial",
                clusters=single_file_clusters(unique_files),
                confidence=1.0,
                cluster_type=ClusterType.DIRECTORY,
            )

        context = ClusteringContext(root_folder=root_folder, target_clusters=target_clusters, config=self.config)
        logger.debug(
            "Starting clustering for %d files, method: %s, threshold-based: %s",
            len(unique_files), self.config.default_method, context.threshold_mode,
        )

        start = time.perf_counter()
        if self.config.default_method != AUTO_METHOD and not self.config.enable_fallback_methods:
            attempt = self.execute_method(self.config.default_method, unique_files, context)
        else:
            attempt = self._run_cascade(unique_files, context)
        elapsed = time.perf_counter() - start

        if elapsed > self.config.performance.max_processing_time:
            logger.warning("Clustering took %.1fs, above the configured %ds",
                           elapsed, self.config.performance.max_processing_time)

        if self.config.performance.enable_benchmarking:
            self.benchmarks.record(ClusteringBenchmark(
                test_name="cluster_files",
                file_count=len(unique_files),
                target_clusters=target_clusters,
                actual_clusters=attempt.num_clusters,
                method=attempt.method,
                execution_time=elapsed,
                confidence_score=overall_confidence(attempt.clusters, unique_files, root_folder),
                cache_hit_ratio=attempt.cache_hit_ratio,
            ))

        return attempt

    def _run_cascade(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        for strategy in self.strategies:
            if not strategy.is_applicable(files, context):
                continue

            attempt = strategy.produce(files, context)
            if strategy.accepts(attempt, context):
                logger.debug("%s clustering accepted (confidence %.2f)", attempt.method, attempt.confidence)
                return attempt
            logger.debug("%s clustering rejected (confidence %.2f)", attempt.method, attempt.confidence)

        logger.warning("All clustering methods disabled or rejected, using single file clusters")
        return ClusteringAttempt(method="single", clusters=single_file_clusters(files))

    def execute_method(self, method: str, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        """Run exactly one configured method, without fallback."""
        logger.debug("Executing specific method: %s", method)

        strategy = self.methods.get(method)
        if strategy is None:
            raise ClusteringInputError(f"unknown clustering method: {method}")
        if not self.config.is_method_enabled(method):
            raise MethodDisabledError(f"{method} clustering method is disabled")
        if method in ('cached', 'semantic') and self.client is None:
            raise ClusteringInputError(f"{method} clustering requires an embedding client")

        return strategy.produce(files, context)

    def benchmark(self, files: Sequence[str], root_folder: str) -> BenchmarkResult:
        return run_clustering_benchmark(self, list(files), root_folder)

    @staticmethod
    def _validate_input(files: Sequence[str], root_folder: str, target_clusters: int) -> List[str]:
        if files is None or isinstance(files, (str, bytes)):
            raise ClusteringInputError("files must be a sequence of paths")
        if not isinstance(root_folder, str):
            raise ClusteringInputError("root_folder must be a string")
        if isinstance(target_clusters, bool) or not isinstance(target_clusters, int):
            raise ClusteringInputError("target_clusters must be an integer")

        unique: Dict[str, None] = {}
        for file in files:
            if not isinstance(file, str) or not file:
                raise ClusteringInputError(f"invalid file path: {file!r}")
            unique[file] = None

        if len(unique) != len(files):
            logger.debug("Dropped %d duplicate file paths", len(files) - len(unique))
        return list(unique)


def smart_cluster_files(
    files: Sequence[str],
    root_folder: str,
    target_clusters: int = 0,
    config: Optional[ClusteringConfig] = None,
    **collaborators,
) -> List[List[str]]:
    """
    Cluster changed files with a one-off SmartClusterer.

    Keyword arguments beyond ``config`` are passed to SmartClusterer
    (client, diff_provider, cache_store, rate_limiter, rng).
    """
    return SmartClusterer(config=config, **collaborators).cluster_files(files, root_folder, target_clusters)
