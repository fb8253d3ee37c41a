"""
Diff embeddings for semantic clustering.

Embedding clients (local sentence-transformers or the OpenAI API), the
per-root-folder embedding cache, and the rate limiter for sequential calls.
The concrete clients are imported from their modules so their optional
dependencies are only needed when used.
"""

from .base import EmbeddingClient, EmbeddingError, EmbeddingProviderError, RateLimitError, truncate_text
from .cache import EmbeddingCache, EmbeddingCacheStore, FileCacheEntry, JSONEmbeddingCacheStore
from .rate_limit import FixedDelayRateLimiter, NoDelayRateLimiter

__all__ = [
    'EmbeddingClient',
    'EmbeddingError',
    'EmbeddingProviderError',
    'RateLimitError',
    'truncate_text',
    'EmbeddingCache',
    'EmbeddingCacheStore',
    'FileCacheEntry',
    'JSONEmbeddingCacheStore',
    'FixedDelayRateLimiter',
    'NoDelayRateLimiter',
]
