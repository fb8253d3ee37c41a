"""
Pattern-based clustering.

Pairs test files with the implementation they exercise, then groups the
remaining files by extension, chunking large extension groups so no single
cluster swallows an unrelated set of edits.
"""

import logging
import os
import re
from typing import Dict, List, Optional, Tuple

from ..paths import file_extension, parent_directory, relative_to_root
from .base import (
    ClusterType,
    ClusteringAttempt,
    ClusteringContext,
    ClusteringStrategy,
    merge_clusters,
)
from .similarity import extension_similarity
from .validator import passes_threshold_validation

logger = logging.getLogger(__name__)

TEST_PATTERNS = [
    re.compile(r'_test\.[^./]+$'),
    re.compile(r'\.(test|spec)\.[^./]+$'),
    re.compile(r'(^|/)tests?/'),
]

TEST_MARKERS = ('_test.', '.test.', '.spec.')

# Extensions whose groups are never chunked
WHOLE_GROUP_EXTENSIONS = {'.md', '.txt'}

MAX_CHUNK_SIZE = 3

# Share of a cluster the dominant extension must cover to count as coherent
DOMINANT_EXTENSION_SHARE = 0.6


def is_test_file(path: str, root_folder: str = "") -> bool:
    """Whether a path, taken relative to the root folder, follows a test naming convention."""
    normalized = relative_to_root(path, root_folder).replace(os.sep, '/').lower()
    return any(pattern.search(normalized) for pattern in TEST_PATTERNS)


def implementation_name(test_path: str) -> str:
    """Base name of the implementation a test file is expected to cover."""
    name = os.path.basename(test_path)
    for marker in TEST_MARKERS:
        name = name.replace(marker, '.')
    return name


def _directories_related(test_dir: str, impl_dir: str) -> bool:
    return (
        test_dir.startswith(impl_dir)
        or impl_dir.startswith(test_dir)
        or test_dir.endswith(impl_dir)
        or impl_dir.endswith(test_dir)
    )


def find_test_implementation_pairs(files: List[str], root_folder: str = "") -> List[Tuple[str, str]]:
    """
    Pair test files with their implementation files.

    A test pairs with the first remaining implementation file whose base name
    equals the test name minus its marker; failing that, with the first
    remaining one whose directory is a prefix or suffix of the test's
    directory. Each file is used by at most one pair.

    Args:
        files: Changed file paths
        root_folder: Root for relativizing directories

    Returns:
        List of (test_file, implementation_file) tuples in test order
    """
    tests = [f for f in files if is_test_file(f, root_folder)]
    implementations = [f for f in files if not is_test_file(f, root_folder)]

    pairs: List[Tuple[str, str]] = []
    used = set()

    for test_file in tests:
        expected = implementation_name(test_file)
        match: Optional[str] = None

        for impl_file in implementations:
            if impl_file not in used and os.path.basename(impl_file) == expected:
                match = impl_file
                break

        if match is None:
            test_dir = parent_directory(test_file, root_folder)
            for impl_file in implementations:
                if impl_file in used:
                    continue
                if _directories_related(test_dir, parent_directory(impl_file, root_folder)):
                    match = impl_file
                    break

        if match is not None:
            used.add(match)
            pairs.append((test_file, match))

    return pairs


class PatternClusterer(ClusteringStrategy):
    """Second cascade layer: test/implementation pairs plus extension groups."""

    method_name = "pattern"

    def cluster(self, files: List[str], root_folder: str = "", target_clusters: int = 0) -> List[List[str]]:
        clusters: List[List[str]] = []
        processed = set()

        for test_file, impl_file in find_test_implementation_pairs(files, root_folder):
            clusters.append([test_file, impl_file])
            processed.update((test_file, impl_file))

        extension_groups: Dict[str, List[str]] = {}
        for file in files:
            if file in processed:
                continue
            extension_groups.setdefault(file_extension(file) or "no-extension", []).append(file)

        for extension, group in extension_groups.items():
            if len(group) <= MAX_CHUNK_SIZE or extension in WHOLE_GROUP_EXTENSIONS:
                clusters.append(group)
                continue
            for start in range(0, len(group), MAX_CHUNK_SIZE):
                clusters.append(group[start:start + MAX_CHUNK_SIZE])

        if target_clusters > 0 and len(clusters) > target_clusters:
            clusters = merge_clusters(clusters, target_clusters)
        return clusters

    def confidence(self, files: List[str], clusters: List[List[str]]) -> float:
        """Fraction of files in clusters dominated by one extension."""
        if not files or not clusters:
            return 0.0

        coherent = 0
        for cluster in clusters:
            if len(cluster) <= 1 or extension_similarity(cluster) >= DOMINANT_EXTENSION_SHARE:
                coherent += len(cluster)
        return coherent / len(files)

    def produce(self, files: List[str], context: ClusteringContext) -> ClusteringAttempt:
        clusters = self.cluster(files, context.root_folder, context.target_clusters)
        confidence = self.confidence(files, clusters)

        logger.debug(
            "Pattern-based clustering: %d files -> %d clusters, confidence: %.2f",
            len(files), len(clusters), confidence,
        )
        return ClusteringAttempt(
            method=self.method_name,
            clusters=clusters,
            confidence=confidence,
            cluster_type=ClusterType.PATTERN,
        )

    def accepts(self, attempt: ClusteringAttempt, context: ClusteringContext) -> bool:
        if attempt.confidence < context.config.confidence_threshold(self.method_name):
            return False
        return passes_threshold_validation(attempt.clusters, context, self.method_name)
