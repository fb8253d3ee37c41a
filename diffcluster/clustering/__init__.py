"""
Clustering cascade for changed files.

Directory and pattern heuristics first, then cached embeddings, smart
sampling and full semantic clustering with K-means or similarity cutoffs.
"""

from .base import (
    ClusterType,
    ClusteringAttempt,
    ClusteringContext,
    ClusteringError,
    ClusteringInputError,
    ClusteringStrategy,
    FileCluster,
    KMeansError,
    MethodDisabledError,
    merge_clusters,
    single_file_clusters,
)
from .benchmark import BenchmarkResult, ClusteringBenchmark, run_clustering_benchmark
from .cached import CachedEmbeddingClusterer
from .directory import DirectoryClusterer
from .kmeans import KMeansClusterer
from .orchestrator import SmartClusterer, smart_cluster_files
from .pattern import PatternClusterer
from .sampling import SmartSamplingClusterer
from .semantic import SemanticClusterer
from .similarity import cosine_similarity
from .threshold import ThresholdClusterer
from .validator import ClusterValidator

__all__ = [
    'ClusterType',
    'ClusteringAttempt',
    'ClusteringContext',
    'ClusteringError',
    'ClusteringInputError',
    'ClusteringStrategy',
    'FileCluster',
    'KMeansError',
    'MethodDisabledError',
    'merge_clusters',
    'single_file_clusters',
    'BenchmarkResult',
    'ClusteringBenchmark',
    'run_clustering_benchmark',
    'CachedEmbeddingClusterer',
    'DirectoryClusterer',
    'KMeansClusterer',
    'SmartClusterer',
    'smart_cluster_files',
    'PatternClusterer',
    'SmartSamplingClusterer',
    'SemanticClusterer',
    'cosine_similarity',
    'ThresholdClusterer',
    'ClusterValidator',
]
