"""
diffcluster - group changed files into coherent clusters.

Each cluster is meant to receive one generated description (for example a
commit message), trading a few cheap heuristics against embedding calls
through a confidence-gated cascade.
"""

__version__ = "1.0.0"

from .clustering import SmartClusterer, smart_cluster_files
from .clustering.base import ClusterType, ClusteringError, ClusteringInputError, FileCluster, MethodDisabledError
from .config import ClusteringConfig, apply_preset, load_config, save_config, set_config_value
from .git_integration import DiffError, DiffProvider, GitDiffProvider

__all__ = [
    "SmartClusterer",
    "smart_cluster_files",
    "ClusterType",
    "ClusteringError",
    "ClusteringInputError",
    "FileCluster",
    "MethodDisabledError",
    "ClusteringConfig",
    "apply_preset",
    "load_config",
    "save_config",
    "set_config_value",
    "DiffError",
    "DiffProvider",
    "GitDiffProvider",
]
