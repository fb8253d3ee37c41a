"""
Similarity primitives for file clustering.

Pure functions: cosine similarity between embedding vectors and the
extension/directory homogeneity measures the heuristic layers and the
cluster validator score clusters with.
"""

from collections import Counter
from typing import Iterable, List, Sequence

import numpy as np

from ..paths import file_extension, parent_directory


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, clamped to [0, 1].

    Vectors of different length, or a zero vector on either side, score 0.
    """
    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return max(0.0, min(1.0, similarity))


def _dominant_share(values: Iterable[str], total: int) -> float:
    counts = Counter(values)
    if not counts or total == 0:
        return 0.0
    return counts.most_common(1)[0][1] / total


def extension_similarity(files: Sequence[str]) -> float:
    """Fraction of files sharing the most common extension."""
    if len(files) <= 1:
        return 1.0
    return _dominant_share((file_extension(f) for f in files), len(files))


def directory_similarity(files: Sequence[str], root_folder: str = "") -> float:
    """Fraction of files sharing the most common parent directory."""
    if len(files) <= 1:
        return 1.0
    return _dominant_share((parent_directory(f, root_folder) for f in files), len(files))


def cluster_similarity(files: Sequence[str], root_folder: str = "") -> float:
    """Average of extension and directory homogeneity; singletons score 1."""
    if len(files) <= 1:
        return 1.0
    return (extension_similarity(files) + directory_similarity(files, root_folder)) / 2.0


def file_pair_similarity(file_a: str, file_b: str, root_folder: str = "") -> float:
    """
    Path-only similarity between two files.

    0.5 for a matching extension, plus 0.5 for an identical parent directory
    or 0.3 when one directory contains the other as a substring.
    """
    score = 0.0
    if file_extension(file_a) == file_extension(file_b):
        score += 0.5

    dir_a = parent_directory(file_a, root_folder)
    dir_b = parent_directory(file_b, root_folder)
    if dir_a == dir_b:
        score += 0.5
    elif dir_a in dir_b or dir_b in dir_a:
        score += 0.3
    return score


def average_pairwise_similarity(vectors: List[np.ndarray]) -> float:
    """Mean cosine similarity over all unordered pairs; 0 when fewer than 2."""
    if len(vectors) < 2:
        return 0.0

    total = 0.0
    pairs = 0
    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            total += cosine_similarity(vectors[i], vectors[j])
            pairs += 1
    return total / pairs
