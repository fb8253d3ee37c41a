"""
Clustering benchmarks.

Records elapsed time, cluster counts and a path-based quality score for
cascade runs, so thresholds and presets can be compared on real changesets.
"""

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

from .directory import DirectoryClusterer
from .pattern import PatternClusterer

logger = logging.getLogger(__name__)

# name, target cluster count
BENCHMARK_RUNS = (
    ('threshold-clustering', 0),
    ('small-clusters', 3),
    ('medium-clusters', 5),
    ('large-clusters', 8),
)


@dataclass
class ClusteringBenchmark:
    """One measured clustering run."""

    test_name: str
    file_count: int
    target_clusters: int
    actual_clusters: int
    method: str
    execution_time: float  # seconds
    confidence_score: float = 0.0
    cache_hit_ratio: float = 0.0
    timestamp: float = field(default_factory=time.time)


@dataclass
class BenchmarkResult:
    """Aggregate over a set of benchmark runs."""

    benchmarks: List[ClusteringBenchmark] = field(default_factory=list)
    average_time: float = 0.0
    average_confidence: float = 0.0
    best_method: str = ""
    summary: str = "No benchmarks collected"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'benchmarks': [asdict(b) for b in self.benchmarks],
            'averageTime': self.average_time,
            'averageConfidence': self.average_confidence,
            'bestMethod': self.best_method,
            'summary': self.summary,
        }


class BenchmarkRecorder:
    """Collects benchmarks for one orchestrator."""

    def __init__(self):
        self.benchmarks: List[ClusteringBenchmark] = []

    def record(self, benchmark: ClusteringBenchmark) -> None:
        self.benchmarks.append(benchmark)
        logger.debug(
            "Recorded %s - %d files -> %d clusters in %.3fs",
            benchmark.test_name, benchmark.file_count, benchmark.actual_clusters, benchmark.execution_time,
        )

    def reset(self) -> None:
        self.benchmarks = []

    def results(self) -> BenchmarkResult:
        """Averages plus the method with the best mean confidence."""
        if not self.benchmarks:
            return BenchmarkResult()

        count = len(self.benchmarks)
        average_time = sum(b.execution_time for b in self.benchmarks) / count
        average_confidence = sum(b.confidence_score for b in self.benchmarks) / count

        per_method: Dict[str, List[float]] = {}
        for benchmark in self.benchmarks:
            per_method.setdefault(benchmark.method, []).append(benchmark.confidence_score)

        best_method, best_score = "", 0.0
        for method, scores in per_method.items():
            score = sum(scores) / len(scores)
            if score > best_score:
                best_method, best_score = method, score

        summary = (
            f"Analyzed {count} benchmarks. Best method: {best_method or 'n/a'} "
            f"({best_score:.3f} avg confidence). Avg time: {average_time:.3f}s"
        )
        return BenchmarkResult(
            benchmarks=list(self.benchmarks),
            average_time=average_time,
            average_confidence=average_confidence,
            best_method=best_method,
            summary=summary,
        )


def cluster_size_variation(clusters: Sequence[Sequence[str]]) -> float:
    """Coefficient of variation of cluster sizes (0 for perfectly balanced)."""
    if not clusters:
        return 0.0
    sizes = [len(cluster) for cluster in clusters]
    mean = sum(sizes) / len(sizes)
    if mean == 0:
        return 0.0
    variance = sum((size - mean) ** 2 for size in sizes) / len(sizes)
    return math.sqrt(variance) / mean


def overall_confidence(clusters: List[List[str]], files: List[str], root_folder: str = "") -> float:
    """
    Path-based quality score of a finished clustering.

    Weighted 0.3 directory grouping, 0.3 extension grouping, 0.2 size balance
    and 0.2 coverage of the input files.
    """
    if not clusters or not files:
        return 0.0

    directory_score = DirectoryClusterer().confidence(files, clusters, root_folder)
    pattern_score = PatternClusterer().confidence(files, clusters)
    balance_score = max(0.0, 1.0 - cluster_size_variation(clusters))
    coverage_score = sum(len(cluster) for cluster in clusters) / len(files)

    return 0.3 * directory_score + 0.3 * pattern_score + 0.2 * balance_score + 0.2 * coverage_score


def run_clustering_benchmark(clusterer, files: List[str], root_folder: str) -> BenchmarkResult:
    """
    Run the cascade in threshold mode and for 3, 5 and 8 target clusters.

    Args:
        clusterer: A SmartClusterer
        files: Changed files to cluster
        root_folder: Root folder of the changeset

    Returns:
        Aggregated BenchmarkResult for the runs
    """
    if not files:
        return BenchmarkResult(summary="No files provided for testing")

    recorder = BenchmarkRecorder()
    for name, target in BENCHMARK_RUNS:
        start = time.perf_counter()
        attempt = clusterer.run(files, root_folder, target)
        elapsed = time.perf_counter() - start

        recorder.record(ClusteringBenchmark(
            test_name=name,
            file_count=len(files),
            target_clusters=target,
            actual_clusters=attempt.num_clusters,
            method=attempt.method,
            execution_time=elapsed,
            confidence_score=overall_confidence(attempt.clusters, files, root_folder),
            cache_hit_ratio=attempt.cache_hit_ratio,
        ))

    return recorder.results()
