"""
OpenAI embedding client.

Calls the embeddings endpoint with exponential-backoff retries on rate
limits, and a circuit breaker that refuses calls for a recovery period
after repeated consecutive rate-limit failures.
"""

import logging
import os
import time
from typing import Callable, Optional

import backoff
import numpy as np

try:
    import openai
    from openai import OpenAI
    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    OpenAI = None

from .base import EmbeddingClient, EmbeddingProviderError, RateLimitError, as_vector

logger = logging.getLogger(__name__)


class CircuitOpenError(EmbeddingProviderError):
    """Calls are refused while the circuit breaker is open."""
    pass


class OpenAIEmbeddingClient(EmbeddingClient):
    """Embedding client for the OpenAI embeddings API."""

    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        failure_threshold: int = 3,
        recovery_timeout: float = 300.0,
        client=None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize OpenAI embedding client.

        Args:
            api_key: API key (falls back to OPENAI_API_KEY)
            model_name: Embedding model
            base_url: Alternative API endpoint
            timeout: Per-request timeout in seconds
            failure_threshold: Consecutive rate-limit failures that open the circuit
            recovery_timeout: Seconds the circuit stays open
            client: Preconfigured OpenAI client (mainly for tests)
            clock: Time source for the circuit breaker
        """
        self.model_name = model_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._consecutive_failures = 0
        self._circuit_opened_at: Optional[float] = None

        if client is not None:
            self.client = client
            return

        if not OPENAI_AVAILABLE:
            raise ImportError("OpenAI library not available. Install with: pip install 'diffcluster[openai]'")

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required (pass api_key or set OPENAI_API_KEY)")

        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def get_model_name(self) -> str:
        return self.model_name

    def _is_circuit_open(self) -> bool:
        if self._circuit_opened_at is None:
            return False
        if self._clock() - self._circuit_opened_at < self.recovery_timeout:
            return True
        # Recovery timeout elapsed
        self._circuit_opened_at = None
        self._consecutive_failures = 0
        return False

    def _record_rate_limit(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.failure_threshold and self._circuit_opened_at is None:
            self._circuit_opened_at = self._clock()
            logger.warning("Circuit breaker opened after %d consecutive rate-limit failures",
                           self._consecutive_failures)

    def generate_embedding(self, text: str) -> np.ndarray:
        if self._is_circuit_open():
            raise CircuitOpenError("Circuit breaker open for OpenAI embeddings")
        return self._generate_with_retry(text)

    @backoff.on_exception(
        backoff.expo,
        RateLimitError,
        max_tries=3,
        max_time=60,
        giveup=lambda e: isinstance(e, CircuitOpenError),
    )
    def _generate_with_retry(self, text: str) -> np.ndarray:
        if self._is_circuit_open():
            raise CircuitOpenError("Circuit breaker open for OpenAI embeddings")

        try:
            response = self.client.embeddings.create(model=self.model_name, input=text)
        except Exception as e:
            if _is_rate_limit(e):
                self._record_rate_limit()
                raise RateLimitError(f"OpenAI rate limit: {e}")
            raise EmbeddingProviderError(f"OpenAI error: {e}")

        self._consecutive_failures = 0
        if not response.data:
            raise EmbeddingProviderError("OpenAI returned no embedding data")
        return as_vector(response.data[0].embedding)


def _is_rate_limit(error: Exception) -> bool:
    if OPENAI_AVAILABLE and isinstance(error, openai.RateLimitError):
        return True
    return getattr(error, 'status_code', None) == 429
