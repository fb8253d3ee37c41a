"""
Clustering configuration with JSON persistence and environment overrides.

Handles diffcluster.config.json in the root folder (or an explicit path),
falling back to documented defaults when the file is missing or invalid.
Thresholds are carried explicitly into the orchestrator so that every layer
can be tested without global state.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "diffcluster.config.json"

METHODS = ("directory", "pattern", "cached", "semantic")
AUTO_METHOD = "auto"


def _default_confidence_thresholds() -> Dict[str, float]:
    return {
        'directory': 0.8,
        'pattern': 0.7,
        'cached': 0.6,
        'semantic': 0.5,
    }


def _default_similarity_thresholds() -> Dict[str, float]:
    return {
        'directory': 0.7,
        'pattern': 0.6,
        'cached': 0.5,
        'semantic': 0.4,
    }


@dataclass
class MethodSettings:
    """
    Settings shared by every clustering method.

    ``weight`` is stored and loaded with the config file so existing files
    keep their values, but clustering never reads it.
    """

    enabled: bool = True
    weight: float = 1.0  # persisted only


@dataclass
class CachedSettings(MethodSettings):
    """Cached-embedding layer settings."""

    weight: float = 0.6
    min_cache_hit_ratio: float = 0.4  # accept only above this hit ratio
    min_probe_hit_ratio: float = 0.3  # below this, abort before any API call
    max_new_embeddings: int = 5
    max_diff_chars: int = 15000
    max_cache_age_hours: int = 24


@dataclass
class SemanticSettings(MethodSettings):
    """Full semantic / sampling layer settings."""

    weight: float = 0.4
    rate_limit_delay_ms: int = 2000
    max_diff_chars: int = 10000
    pairwise_threshold: float = 0.6
    kmeans_iterations: int = 20
    max_default_clusters: int = 5
    max_representatives: int = 8
    assignment_threshold: float = 0.4
    embedding_timeout: int = 30  # seconds


@dataclass
class PerformanceSettings:
    """
    Performance-related settings.

    Only ``max_processing_time`` and ``enable_benchmarking`` affect a run.
    ``prefer_speed`` and ``adaptive_optimization`` are kept for config file
    compatibility and are set by presets, but nothing reads them.
    """

    prefer_speed: bool = True  # persisted only
    max_processing_time: int = 60  # seconds
    enable_benchmarking: bool = False
    adaptive_optimization: bool = True  # persisted only


@dataclass
class ClusteringConfig:
    """Complete clustering configuration with documented defaults."""

    default_method: str = AUTO_METHOD
    enable_fallback_methods: bool = True
    max_files_for_semantic_clustering: int = 10
    confidence_thresholds: Dict[str, float] = field(default_factory=_default_confidence_thresholds)
    similarity_thresholds: Dict[str, float] = field(default_factory=_default_similarity_thresholds)

    directory: MethodSettings = field(default_factory=MethodSettings)
    pattern: MethodSettings = field(default_factory=lambda: MethodSettings(weight=0.8))
    cached: CachedSettings = field(default_factory=CachedSettings)
    semantic: SemanticSettings = field(default_factory=SemanticSettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)

    # Cache location and K-means seed; None seed means non-reproducible runs
    data_dir: Optional[str] = None
    random_seed: Optional[int] = None

    def method_settings(self, method: str) -> MethodSettings:
        if method not in METHODS:
            raise ValueError(f"unknown clustering method: {method}")
        return getattr(self, method)

    def is_method_enabled(self, method: str) -> bool:
        if method not in METHODS:
            return False
        return self.method_settings(method).enabled

    def confidence_threshold(self, method: str) -> float:
        return self.confidence_thresholds.get(method, 0.5)

    def similarity_threshold(self, method: str) -> float:
        return self.similarity_thresholds.get(method, 0.7)

    def resolved_data_dir(self) -> Path:
        """Directory holding the per-root-folder embedding cache files."""
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return Path.home() / ".diffcluster"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted camelCase schema."""
        return {
            'defaultMethod': self.default_method,
            'enableFallbackMethods': self.enable_fallback_methods,
            'maxFilesForSemanticClustering': self.max_files_for_semantic_clustering,
            'confidenceThresholds': dict(self.confidence_thresholds),
            'similarityThresholds': dict(self.similarity_thresholds),
            'methods': {
                'directory': {
                    'enabled': self.directory.enabled,
                    'weight': self.directory.weight,
                },
                'pattern': {
                    'enabled': self.pattern.enabled,
                    'weight': self.pattern.weight,
                },
                'cached': {
                    'enabled': self.cached.enabled,
                    'weight': self.cached.weight,
                    'minCacheHitRatio': self.cached.min_cache_hit_ratio,
                    'maxNewEmbeddings': self.cached.max_new_embeddings,
                    'maxCacheAge': self.cached.max_cache_age_hours,
                },
                'semantic': {
                    'enabled': self.semantic.enabled,
                    'weight': self.semantic.weight,
                    'rateLimitDelay': self.semantic.rate_limit_delay_ms,
                    'embeddingTimeout': self.semantic.embedding_timeout,
                },
            },
            'performance': {
                'preferSpeed': self.performance.prefer_speed,
                'maxProcessingTime': self.performance.max_processing_time,
                'enableBenchmarking': self.performance.enable_benchmarking,
                'adaptiveOptimization': self.performance.adaptive_optimization,
            },
        }


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get boolean environment variable with safe default."""
    value = os.environ.get(name, '').lower()
    if value in ('1', 'true', 'yes', 'on', 'enable', 'enabled'):
        return True
    elif value in ('0', 'false', 'no', 'off', 'disable', 'disabled'):
        return False
    else:
        return default


def _get_int_env(name: str, default: Optional[int] = None) -> Optional[int]:
    """Get integer environment variable with safe default."""
    try:
        return int(os.environ[name])
    except (KeyError, ValueError, TypeError):
        return default


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ('true', 'yes', '1', 'on', 'enabled'):
        return True
    if lowered in ('false', 'no', '0', 'off', 'disabled'):
        return False
    raise ValueError(f"invalid boolean: {value}")


def _float_or(data: Dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _int_or(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def _bool_or(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    return value if isinstance(value, bool) else default


def _threshold_map(data: Dict[str, Any], key: str, defaults: Dict[str, float]) -> Dict[str, float]:
    raw = data.get(key)
    result = dict(defaults)
    if not isinstance(raw, dict):
        return result
    for method, value in raw.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            result[method] = float(value)
    return result


def config_from_dict(data: Dict[str, Any]) -> ClusteringConfig:
    """
    Build a configuration from the persisted camelCase schema.

    Unknown keys are ignored and values of the wrong type fall back to the
    defaults, so a partially valid file still yields a usable configuration.
    """
    config = ClusteringConfig()
    if not isinstance(data, dict):
        return config

    default_method = data.get('defaultMethod')
    if isinstance(default_method, str):
        config.default_method = default_method
    config.enable_fallback_methods = _bool_or(data, 'enableFallbackMethods', config.enable_fallback_methods)
    config.max_files_for_semantic_clustering = _int_or(
        data, 'maxFilesForSemanticClustering', config.max_files_for_semantic_clustering
    )
    config.confidence_thresholds = _threshold_map(data, 'confidenceThresholds', config.confidence_thresholds)
    config.similarity_thresholds = _threshold_map(data, 'similarityThresholds', config.similarity_thresholds)

    methods = data.get('methods') if isinstance(data.get('methods'), dict) else {}

    directory = methods.get('directory') if isinstance(methods.get('directory'), dict) else {}
    config.directory.enabled = _bool_or(directory, 'enabled', config.directory.enabled)
    config.directory.weight = _float_or(directory, 'weight', config.directory.weight)

    pattern = methods.get('pattern') if isinstance(methods.get('pattern'), dict) else {}
    config.pattern.enabled = _bool_or(pattern, 'enabled', config.pattern.enabled)
    config.pattern.weight = _float_or(pattern, 'weight', config.pattern.weight)

    cached = methods.get('cached') if isinstance(methods.get('cached'), dict) else {}
    config.cached.enabled = _bool_or(cached, 'enabled', config.cached.enabled)
    config.cached.weight = _float_or(cached, 'weight', config.cached.weight)
    config.cached.min_cache_hit_ratio = _float_or(cached, 'minCacheHitRatio', config.cached.min_cache_hit_ratio)
    config.cached.max_new_embeddings = _int_or(cached, 'maxNewEmbeddings', config.cached.max_new_embeddings)
    config.cached.max_cache_age_hours = _int_or(cached, 'maxCacheAge', config.cached.max_cache_age_hours)

    semantic = methods.get('semantic') if isinstance(methods.get('semantic'), dict) else {}
    config.semantic.enabled = _bool_or(semantic, 'enabled', config.semantic.enabled)
    config.semantic.weight = _float_or(semantic, 'weight', config.semantic.weight)
    config.semantic.rate_limit_delay_ms = _int_or(semantic, 'rateLimitDelay', config.semantic.rate_limit_delay_ms)
    config.semantic.embedding_timeout = _int_or(semantic, 'embeddingTimeout', config.semantic.embedding_timeout)

    performance = data.get('performance') if isinstance(data.get('performance'), dict) else {}
    config.performance.prefer_speed = _bool_or(performance, 'preferSpeed', config.performance.prefer_speed)
    config.performance.max_processing_time = _int_or(
        performance, 'maxProcessingTime', config.performance.max_processing_time
    )
    config.performance.enable_benchmarking = _bool_or(
        performance, 'enableBenchmarking', config.performance.enable_benchmarking
    )
    config.performance.adaptive_optimization = _bool_or(
        performance, 'adaptiveOptimization', config.performance.adaptive_optimization
    )

    return config


def apply_env_overrides(config: ClusteringConfig) -> ClusteringConfig:
    """
    Apply DIFFCLUSTER_* environment variables on top of a configuration.

    Environment Variables:
        DIFFCLUSTER_METHOD: Default method (auto, directory, pattern, cached, semantic)
        DIFFCLUSTER_FALLBACK: Enable fallback methods (default: unchanged)
        DIFFCLUSTER_RATE_LIMIT_MS: Delay between embedding calls in milliseconds
        DIFFCLUSTER_DATA_DIR: Directory for embedding cache files
        DIFFCLUSTER_SEED: Seed for K-means initialization
    """
    method = os.environ.get('DIFFCLUSTER_METHOD')
    if method:
        config.default_method = method.strip().lower()
    config.enable_fallback_methods = _get_bool_env('DIFFCLUSTER_FALLBACK', config.enable_fallback_methods)

    delay = _get_int_env('DIFFCLUSTER_RATE_LIMIT_MS')
    if delay is not None and delay >= 0:
        config.semantic.rate_limit_delay_ms = delay

    data_dir = os.environ.get('DIFFCLUSTER_DATA_DIR')
    if data_dir:
        config.data_dir = data_dir

    seed = _get_int_env('DIFFCLUSTER_SEED')
    if seed is not None:
        config.random_seed = seed

    return config


def load_config(
    root_folder: Optional[Union[str, Path]] = None,
    config_path: Optional[Union[str, Path]] = None,
    use_env: bool = True,
) -> ClusteringConfig:
    """
    Load configuration with fallback priority:
    1. Explicit config path (if provided)
    2. diffcluster.config.json in the root folder
    3. Default configuration

    The clustering settings may sit at the top level of the file or under a
    ``clustering`` key.
    """
    candidates = []
    if config_path:
        candidates.append(Path(config_path))
    if root_folder:
        candidates.append(Path(root_folder) / CONFIG_FILE_NAME)

    config = ClusteringConfig()
    for candidate in candidates:
        if not candidate.exists():
            continue
        data = _load_config_file(candidate)
        if 'clustering' in data:
            data = data['clustering']
        config = config_from_dict(data)
        break

    if use_env:
        config = apply_env_overrides(config)
    return config


def _load_config_file(config_path: Path) -> Dict[str, Any]:
    """Load JSON configuration file."""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not load config file %s: %s", config_path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s does not contain an object, using defaults", config_path)
        return {}
    return data


def save_config(config: ClusteringConfig, config_path: Union[str, Path]) -> None:
    """Write configuration under the ``clustering`` key, keeping other keys."""
    path = Path(config_path)
    existing: Dict[str, Any] = _load_config_file(path) if path.exists() else {}
    existing['clustering'] = config.to_dict()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(existing, f, indent=2)
    logger.debug("Clustering configuration saved to %s", path)


def speed_preset() -> ClusteringConfig:
    """Only the cheap heuristic layers, no embedding calls."""
    config = ClusteringConfig()
    config.default_method = "directory"
    config.enable_fallback_methods = False
    config.semantic.enabled = False
    config.cached.enabled = False
    config.performance.prefer_speed = True
    config.performance.max_processing_time = 30
    return config


def quality_preset() -> ClusteringConfig:
    """Stricter heuristic acceptance so more runs reach the embedding layers."""
    config = ClusteringConfig()
    config.default_method = "semantic"
    config.enable_fallback_methods = True
    config.max_files_for_semantic_clustering = 20
    config.confidence_thresholds.update({
        'directory': 0.9,
        'pattern': 0.8,
        'cached': 0.7,
        'semantic': 0.6,
    })
    config.semantic.weight = 1.0
    config.semantic.rate_limit_delay_ms = 1000
    config.performance.prefer_speed = False
    config.performance.max_processing_time = 120
    config.performance.enable_benchmarking = True
    return config


def balanced_preset() -> ClusteringConfig:
    config = ClusteringConfig()
    config.default_method = AUTO_METHOD
    config.enable_fallback_methods = True
    config.performance.prefer_speed = True
    config.performance.adaptive_optimization = True
    return config


PRESETS = {
    'speed': speed_preset,
    'balanced': balanced_preset,
    'quality': quality_preset,
}


def apply_preset(preset_name: str) -> ClusteringConfig:
    """Return a fresh configuration for a named preset."""
    try:
        return PRESETS[preset_name]()
    except KeyError:
        raise ValueError(
            f"unknown preset: {preset_name} (valid presets: {', '.join(sorted(PRESETS))})"
        ) from None


_PERFORMANCE_MODES = {
    'speed': (True, 30),
    'balanced': (True, 60),
    'quality': (False, 120),
}


def _parse_value(key: str, value: str, parser):
    try:
        return parser(value)
    except ValueError:
        raise ValueError(f"invalid value for {key}: {value}") from None


def set_config_value(config: ClusteringConfig, key: str, value: str) -> ClusteringConfig:
    """
    Return a copy of ``config`` with one string-valued setting applied.

    Keys follow ``<method>_<setting>`` (``directory_enabled``,
    ``pattern_confidence_threshold``, ``semantic_rate_limit_delay`` ...) plus
    the global ``similarity_threshold``, ``max_processing_time``,
    ``adaptive_optimization`` and ``performance_mode``.

    Raises:
        ValueError: Unknown key or unparsable value
    """
    updated = copy.deepcopy(config)

    if key == 'similarity_threshold':
        threshold = _parse_value(key, value, float)
        updated.similarity_thresholds['directory'] = threshold
        updated.similarity_thresholds['pattern'] = threshold
    elif key == 'max_processing_time':
        updated.performance.max_processing_time = _parse_value(key, value, int)
    elif key == 'adaptive_optimization':
        updated.performance.adaptive_optimization = _parse_value(key, value, _parse_bool)
    elif key == 'performance_mode':
        if value not in _PERFORMANCE_MODES:
            raise ValueError(f"invalid performance mode: {value} (valid: speed, quality, balanced)")
        prefer_speed, max_time = _PERFORMANCE_MODES[value]
        updated.performance.prefer_speed = prefer_speed
        updated.performance.max_processing_time = max_time
    elif key == 'semantic_rate_limit_delay':
        updated.semantic.rate_limit_delay_ms = _parse_value(key, value, int)
    else:
        method, _, setting = key.partition('_')
        if method not in METHODS:
            raise ValueError(f"unknown clustering configuration key: {key}")
        if setting == 'enabled':
            updated.method_settings(method).enabled = _parse_value(key, value, _parse_bool)
        elif setting == 'weight':
            updated.method_settings(method).weight = _parse_value(key, value, float)
        elif setting == 'confidence_threshold':
            updated.confidence_thresholds[method] = _parse_value(key, value, float)
        elif setting == 'similarity_threshold':
            updated.similarity_thresholds[method] = _parse_value(key, value, float)
        else:
            raise ValueError(f"unknown clustering configuration key: {key}")

    return updated
