"""
Base classes for the clustering cascade.

Provides the cluster data structures, the strategy interface shared by every
cascade layer, and the singleton fallback and smallest-pair merge that all
layers reuse.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..config import ClusteringConfig


class ClusteringError(Exception):
    """Base exception for clustering errors."""
    pass


class ClusteringInputError(ClusteringError, ValueError):
    """Invalid parameters passed to a clustering entry point."""
    pass


class KMeansError(ClusteringError):
    """K-means preconditions not met (k <= 0, no points, fewer points than k)."""
    pass


class MethodDisabledError(ClusteringError):
    """A specific clustering method was requested but is disabled."""
    pass


class ClusterType(Enum):
    """Which cascade layer produced a cluster."""
    DIRECTORY = "directory"
    PATTERN = "pattern"
    CACHED = "cached"
    SEMANTIC = "semantic"


@dataclass
class FileCluster:
    """
    A group of changed files that will receive one generated description.

    Clusters produced by one call partition the input: every input file
    appears in exactly one cluster and every cluster holds at least one file.
    """

    files: List[str]
    cluster_type: ClusterType
    similarity: Optional[float] = None  # 0..1 when the producing layer scores it
    created: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        """Get number of files in cluster."""
        return len(self.files)

    def to_dict(self) -> Dict[str, Any]:
        """Convert cluster to dictionary for serialization."""
        return {
            'files': list(self.files),
            'similarity': self.similarity,
            'clusterType': self.cluster_type.value,
            'created': self.created,
        }


@dataclass
class ClusteringContext:
    """Per-call parameters shared by every layer of one cascade run."""

    root_folder: str
    target_clusters: int
    config: ClusteringConfig

    @property
    def threshold_mode(self) -> bool:
        """No fixed cluster count; grouping governed by similarity cutoffs."""
        return self.target_clusters <= 0


@dataclass
class ClusteringAttempt:
    """
    Output of one cascade layer.

    Confidence scores how well the clustering matches the layer's grouping
    assumption and is never persisted. ``cache_hit_ratio`` is only meaningful
    for the cached-embedding layer.
    """

    method: str
    clusters: List[List[str]]
    confidence: float = 0.0
    cache_hit_ratio: float = 0.0
    cluster_type: ClusterType = ClusterType.SEMANTIC

    @property
    def num_clusters(self) -> int:
        return len(self.clusters)

    def to_file_clusters(self) -> List[FileCluster]:
        created = time.time()
        return [
            FileCluster(files=list(files), cluster_type=self.cluster_type, created=created)
            for files in self.clusters
        ]


class ClusteringStrategy(ABC):
    """
    Abstract base class for one layer of the clustering cascade.

    The orchestrator iterates an ordered list of strategies, calling
    ``produce`` and then ``accepts`` until one accepts its own attempt.
    """

    #: Method name as used in configuration ("directory", "pattern", ...)
    method_name: str = ""

    @abstractmethod
    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        """
        Cluster files and score the result.

        Args:
            files: Changed file paths (at least two)
            context: Root folder, target count and configuration

        Returns:
            ClusteringAttempt with clusters and confidence
        """
        pass

    @abstractmethod
    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        """Decide whether the cascade should stop at this attempt."""
        pass

    def is_applicable(self, files: List[str], context: ClusteringContext) -> bool:
        """Whether the layer should run at all for this input."""
        return context.config.is_method_enabled(self.method_name)


def single_file_clusters(files: Sequence[str]) -> List[List[str]]:
    """One cluster per file; the fallback every layer degrades to."""
    return [[file] for file in files]


def merge_clusters(clusters: Sequence[Sequence[str]], target_count: int) -> List[List[str]]:
    """
    Reduce the cluster count by repeatedly merging the two smallest clusters.

    The second-smallest cluster is appended to the smallest one. On equal
    sizes the earlier cluster wins, so merging is deterministic for a given
    input order.

    Args:
        clusters: Clusters to merge (not modified)
        target_count: Desired number of clusters

    Returns:
        New list with at most ``target_count`` clusters
    """
    merged = [list(cluster) for cluster in clusters]
    if target_count <= 0 or len(merged) <= target_count:
        return merged

    while len(merged) > target_count:
        smallest_idx, second_idx = -1, -1
        for i, cluster in enumerate(merged):
            if smallest_idx == -1 or len(cluster) < len(merged[smallest_idx]):
                second_idx = smallest_idx
                smallest_idx = i
            elif second_idx == -1 or len(cluster) < len(merged[second_idx]):
                second_idx = i

        merged[smallest_idx] = merged[smallest_idx] + merged[second_idx]
        del merged[second_idx]

    return merged
