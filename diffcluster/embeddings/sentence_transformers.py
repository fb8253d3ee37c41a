"""
Sentence Transformers embedding client.

Embeds diff text locally with a HuggingFace sentence-transformers model, so
no API key or network rate limiting is involved once the model is cached.
"""

import logging
from typing import Optional

import numpy as np

try:
    from sentence_transformers import SentenceTransformer
    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False

from .base import EmbeddingClient, EmbeddingProviderError, as_vector

logger = logging.getLogger(__name__)


class SentenceTransformersEmbeddingClient(EmbeddingClient):
    """
    Embedding client using the sentence-transformers library.

    General semantic models work well on diffs; code-specific models such
    as ``microsoft/codebert-base`` can be selected by name.
    """

    DEFAULT_MODEL = 'all-MiniLM-L6-v2'

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        device: Optional[str] = None,
        cache_folder: Optional[str] = None,
        normalize_embeddings: bool = True,
    ):
        """
        Initialize sentence transformers client.

        Args:
            model_name: Name of the sentence transformer model
            device: Device to use ('cpu', 'cuda', None for auto)
            cache_folder: Folder to cache downloaded models
            normalize_embeddings: Whether to L2-normalize embeddings
        """
        if not SENTENCE_TRANSFORMERS_AVAILABLE:
            raise ImportError(
                "sentence-transformers is required for SentenceTransformersEmbeddingClient. "
                "Install with: pip install 'diffcluster[local]'"
            )

        self.model_name = model_name
        self.normalize_embeddings = normalize_embeddings

        try:
            self.model = SentenceTransformer(
                model_name,
                device=device,
                cache_folder=cache_folder,
            )
        except Exception as e:
            raise ValueError(f"Failed to load model '{model_name}': {e}")

        logger.debug("Loaded sentence-transformers model %s", model_name)

    def get_model_name(self) -> str:
        return self.model_name

    def generate_embedding(self, text: str) -> np.ndarray:
        if not text.strip():
            raise EmbeddingProviderError("cannot embed empty text")

        try:
            embedding = self.model.encode(
                [text],
                convert_to_numpy=True,
                normalize_embeddings=self.normalize_embeddings,
                batch_size=1,
            )[0]
        except Exception as e:
            raise EmbeddingProviderError(f"sentence-transformers encoding failed: {e}")

        return as_vector(embedding)
