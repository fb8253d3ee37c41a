"""Shared fixtures and in-memory collaborators for diffcluster tests."""

from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from diffcluster.config import ClusteringConfig
from diffcluster.clustering.base import ClusteringContext
from diffcluster.embeddings.base import EmbeddingClient, EmbeddingProviderError
from diffcluster.embeddings.cache import JSONEmbeddingCacheStore
from diffcluster.embeddings.rate_limit import NoDelayRateLimiter
from diffcluster.git_integration import DiffError, DiffProvider


class FakeDiffProvider(DiffProvider):
    """Returns ``diff:<path>`` unless a custom diff or failure is configured."""

    def __init__(self, diffs: Optional[Dict[str, str]] = None, failing: Sequence[str] = ()):
        self.diffs = dict(diffs or {})
        self.failing = set(failing)
        self.calls: List[str] = []

    def get_file_diff(self, file_path: str, root_folder: str) -> str:
        self.calls.append(file_path)
        if file_path in self.failing:
            raise DiffError(f"no diff for {file_path}")
        return self.diffs.get(file_path, f"diff:{file_path}")


class FakeEmbeddingClient(EmbeddingClient):
    """Looks vectors up by diff text; unknown text fails like a provider error."""

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None):
        self.vectors = {text: np.asarray(v, dtype=np.float32) for text, v in (vectors or {}).items()}
        self.calls: List[str] = []

    @classmethod
    def for_files(cls, file_vectors: Dict[str, Sequence[float]]) -> 'FakeEmbeddingClient':
        """Client keyed by file path, matching FakeDiffProvider's default diff text."""
        return cls({f"diff:{path}": vector for path, vector in file_vectors.items()})

    def get_model_name(self) -> str:
        return "fake-embedding"

    def generate_embedding(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if text not in self.vectors:
            raise EmbeddingProviderError(f"no vector for {text!r}")
        return self.vectors[text]


@pytest.fixture
def config(tmp_path) -> ClusteringConfig:
    """Default configuration with an isolated cache directory and fixed seed."""
    return ClusteringConfig(data_dir=str(tmp_path / "data"), random_seed=7)


@pytest.fixture
def cache_store(config) -> JSONEmbeddingCacheStore:
    return JSONEmbeddingCacheStore(config.resolved_data_dir())


@pytest.fixture
def rate_limiter() -> NoDelayRateLimiter:
    return NoDelayRateLimiter()


@pytest.fixture
def diff_provider() -> FakeDiffProvider:
    return FakeDiffProvider()


@pytest.fixture
def repo(tmp_path):
    """Factory writing files under a fresh root folder."""
    root = tmp_path / "repo"
    root.mkdir()

    def write(relative_paths: Sequence[str], content: str = "content") -> str:
        for relative in relative_paths:
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"{content} {relative}")
        return str(root)

    write.root = str(root)
    return write


def make_context(config: ClusteringConfig, target: int = 0, root: str = "/repo") -> ClusteringContext:
    return ClusteringContext(root_folder=root, target_clusters=target, config=config)


def flatten(clusters: Sequence[Sequence[str]]) -> List[str]:
    return [file for cluster in clusters for file in cluster]
