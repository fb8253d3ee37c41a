"""
SHA-based embedding cache for changed files.

One JSON file per root folder, named by a 12-hex-character prefix of
SHA-256(root folder) under a fixed data directory. Entries are keyed by file
path and stay valid only while the stored content hash matches the file's
current bytes; a mismatch deletes the entry on lookup.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

from ..paths import resolve_path

logger = logging.getLogger(__name__)


def folder_hash(root_folder: str) -> str:
    """12-hex-character prefix of SHA-256(root folder path)."""
    return hashlib.sha256(root_folder.encode('utf-8')).hexdigest()[:12]


def file_content_hash(file_path: Union[str, Path]) -> str:
    """SHA-256 of a file's current bytes, or empty string if unreadable."""
    try:
        with open(file_path, 'rb') as f:
            return hashlib.sha256(f.read()).hexdigest()
    except OSError:
        return ""


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _parse_timestamp(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00')).timestamp()
        except ValueError:
            pass
    return 0.0


@dataclass
class FileCacheEntry:
    """Cached embedding for one file with its content hash."""

    file_path: str
    embedding: np.ndarray
    content_hash: str
    last_updated: float
    model: str = ""  # embedding model that produced the vector, empty if unknown

    def to_dict(self) -> Dict[str, Any]:
        return {
            'filePath': self.file_path,
            'embedding': [float(v) for v in self.embedding],
            'contentHash': self.content_hash,
            'lastUpdated': _format_timestamp(self.last_updated),
            'model': self.model,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FileCacheEntry':
        embedding = np.asarray(data['embedding'], dtype=np.float32)
        if embedding.ndim != 1:
            raise ValueError("embedding must be 1-dimensional")
        return cls(
            file_path=str(data['filePath']),
            embedding=embedding,
            content_hash=str(data['contentHash']),
            last_updated=_parse_timestamp(data.get('lastUpdated')),
            model=str(data.get('model') or ''),
        )


@dataclass
class EmbeddingCache:
    """All cached embeddings of one root folder."""

    root_folder: str
    embeddings: Dict[str, FileCacheEntry] = field(default_factory=dict)
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rootFolder': self.root_folder,
            'embeddings': {path: entry.to_dict() for path, entry in self.embeddings.items()},
            'lastUpdated': _format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], root_folder: str) -> 'EmbeddingCache':
        """Parse a cache file; individually corrupted entries are skipped."""
        entries: Dict[str, FileCacheEntry] = {}
        raw_entries = data.get('embeddings') or {}
        if not isinstance(raw_entries, dict):
            raise ValueError("embeddings must be an object")

        for path, raw in raw_entries.items():
            try:
                entries[path] = FileCacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping corrupted cache entry for %s", path)

        return cls(
            root_folder=root_folder,
            embeddings=entries,
            last_updated=_parse_timestamp(data.get('lastUpdated')) or time.time(),
        )


class EmbeddingCacheStore(ABC):
    """
    Abstract key-value store for per-file embeddings.

    Any persistent map with content-hash invalidation can sit behind this
    interface.
    """

    @abstractmethod
    def load(self, root_folder: str) -> EmbeddingCache:
        """Load (or start) the cache of a root folder; never raises."""
        pass

    @abstractmethod
    def lookup(self, file_path: str, model: Optional[str] = None) -> Optional[FileCacheEntry]:
        """
        Entry for a file if still valid, otherwise None (and the entry is dropped).

        With ``model`` given, entries recorded for a different model are invalid.
        """
        pass

    @abstractmethod
    def put(
        self,
        file_path: str,
        embedding: np.ndarray,
        text: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        """Store an embedding with a fresh content hash, timestamp and model name."""
        pass

    @abstractmethod
    def save(self) -> None:
        """Best-effort write-back; failures are logged, never raised."""
        pass

    def ensure_loaded(self, root_folder: str) -> EmbeddingCache:
        """Load the root folder's cache; stores that track the loaded root may skip reloads."""
        return self.load(root_folder)

    def get_stats(self) -> Dict[str, Any]:
        return {}


class JSONEmbeddingCacheStore(EmbeddingCacheStore):
    """
    File-backed embedding cache store.

    Loaded lazily, mutated in memory, written back on ``save``. Concurrent
    writers to the same root folder race with last-writer-wins.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        max_entries: int = 1000,
        max_age_hours: Optional[float] = 24,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the store.

        Args:
            data_dir: Directory holding embedding_cache_<hash>.json files
            max_entries: Least recently updated entries beyond this are evicted on save
            max_age_hours: Entries older than this are misses (None disables)
            clock: Time source, injectable for tests
        """
        self.data_dir = Path(data_dir)
        self.max_entries = max_entries
        self.max_age_hours = max_age_hours
        self._clock = clock
        self.cache: Optional[EmbeddingCache] = None
        self._stats = {
            'requests': 0,
            'hits': 0,
            'misses': 0,
            'puts': 0,
            'invalidations': 0,
            'evictions': 0,
        }

    def cache_file_path(self, root_folder: str) -> Path:
        return self.data_dir / f"embedding_cache_{folder_hash(root_folder)}.json"

    @property
    def root_folder(self) -> Optional[str]:
        return self.cache.root_folder if self.cache is not None else None

    def ensure_loaded(self, root_folder: str) -> EmbeddingCache:
        """Load the root folder's cache unless it is already in memory."""
        if self.cache is None or self.cache.root_folder != root_folder:
            return self.load(root_folder)
        return self.cache

    def load(self, root_folder: str) -> EmbeddingCache:
        cache_file = self.cache_file_path(root_folder)
        self.cache = EmbeddingCache(root_folder=root_folder, last_updated=self._clock())

        if not cache_file.exists():
            return self.cache

        try:
            with open(cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache file does not contain an object")
            self.cache = EmbeddingCache.from_dict(data, root_folder)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read embedding cache %s: %s", cache_file, e)

        logger.debug("Loaded %d cached embeddings for %s", len(self.cache.embeddings), root_folder)
        return self.cache

    def _require_cache(self) -> EmbeddingCache:
        if self.cache is None:
            raise RuntimeError("embedding cache not loaded; call load(root_folder) first")
        return self.cache

    def lookup(self, file_path: str, model: Optional[str] = None) -> Optional[FileCacheEntry]:
        cache = self._require_cache()
        self._stats['requests'] += 1

        entry = cache.embeddings.get(file_path)
        if entry is None:
            self._stats['misses'] += 1
            return None

        current_hash = file_content_hash(resolve_path(file_path, cache.root_folder))
        expired = (
            self.max_age_hours is not None
            and self._clock() - entry.last_updated > self.max_age_hours * 3600
        )
        wrong_model = bool(model) and bool(entry.model) and entry.model != model
        if not current_hash or current_hash != entry.content_hash or expired or wrong_model:
            del cache.embeddings[file_path]
            self._stats['invalidations'] += 1
            self._stats['misses'] += 1
            return None

        self._stats['hits'] += 1
        return entry

    def put(
        self,
        file_path: str,
        embedding: np.ndarray,
        text: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        cache = self._require_cache()
        content_hash = file_content_hash(resolve_path(file_path, cache.root_folder))
        if not content_hash and text is not None:
            # Unreadable file: key on the embedded text so lookups (which hash
            # the file) miss rather than match an empty hash
            content_hash = hashlib.sha256(text.encode('utf-8')).hexdigest()

        now = self._clock()
        cache.embeddings[file_path] = FileCacheEntry(
            file_path=file_path,
            embedding=np.asarray(embedding, dtype=np.float32),
            content_hash=content_hash,
            last_updated=now,
            model=model or "",
        )
        cache.last_updated = now
        self._stats['puts'] += 1

    def save(self) -> None:
        if self.cache is None:
            return

        cache_file = self.cache_file_path(self.cache.root_folder)
        try:
            self._evict_oldest()
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(cache_file, 'w', encoding='utf-8') as f:
                json.dump(self.cache.to_dict(), f)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to save embedding cache %s: %s", cache_file, e)

    def _evict_oldest(self) -> None:
        """Keep only the most recently updated ``max_entries`` entries."""
        embeddings = self.cache.embeddings
        overflow = len(embeddings) - self.max_entries
        if overflow <= 0:
            return

        # Keyed by the cache file's object keys, which need not equal filePath
        oldest = sorted(embeddings.items(), key=lambda item: item[1].last_updated)[:overflow]
        for key, _ in oldest:
            del embeddings[key]
        self._stats['evictions'] += overflow
        logger.debug("Evicted %d old cache entries", overflow)

    def size(self) -> int:
        return len(self.cache.embeddings) if self.cache is not None else 0

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics (requests, hits, misses, hit rate, size)."""
        hit_rate = self._stats['hits'] / max(1, self._stats['requests'])
        return {
            **self._stats,
            'entry_count': self.size(),
            'hit_rate': round(hit_rate, 3),
            'max_entries': self.max_entries,
        }
