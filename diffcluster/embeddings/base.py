"""
Base classes for diff embeddings.

Provides the abstract embedding client, its error hierarchy, and the helper
that turns one changed file into a vector (fetch diff, truncate, embed)
while downgrading every per-file failure to a logged skip.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..git_integration import DiffError, DiffProvider

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "... [truncated]"


class EmbeddingError(Exception):
    """Base exception for embedding generation errors."""
    pass


class EmbeddingProviderError(EmbeddingError):
    """The embedding backend failed or returned an unusable vector."""
    pass


class RateLimitError(EmbeddingProviderError):
    """Rate limit exceeded error."""
    pass


class EmbeddingClient(ABC):
    """
    Abstract base class for services turning diff text into a vector.

    Every call may be rate limited or fail; callers treat failures as
    per-file and keep going.
    """

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the model name identifier."""
        pass

    @abstractmethod
    def generate_embedding(self, text: str) -> np.ndarray:
        """
        Generate a fixed-length embedding for text.

        Args:
            text: Diff or file content to embed

        Returns:
            1-dimensional float vector

        Raises:
            EmbeddingError: Generation failed
        """
        pass


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text at ``max_chars`` and append a truncation marker."""
    if max_chars > 0 and len(text) > max_chars:
        return text[:max_chars] + TRUNCATION_MARKER
    return text


def as_vector(values) -> np.ndarray:
    """Validate and convert a raw embedding to a 1-d float array."""
    vector = np.asarray(values, dtype=np.float32)
    if vector.ndim != 1 or vector.size == 0:
        raise EmbeddingProviderError(f"embedding must be a non-empty 1-dimensional vector, got shape {vector.shape}")
    return vector


def embed_file_diff(
    file: str,
    root_folder: str,
    diff_provider: DiffProvider,
    client: EmbeddingClient,
    max_chars: int,
) -> Optional[np.ndarray]:
    """
    Fetch a file's diff and embed it.

    Returns:
        The embedding, or None when the diff or the embedding call failed
    """
    try:
        diff = diff_provider.get_file_diff(file, root_folder)
    except DiffError as e:
        logger.warning("Could not get diff for file: %s - %s", file, e)
        return None

    try:
        return as_vector(client.generate_embedding(truncate_text(diff, max_chars)))
    except EmbeddingError as e:
        logger.warning("Could not generate embedding for file: %s - %s", file, e)
        return None
