"""
Path helpers for changed files.

Extension and parent directory are derived on demand from the path string,
never stored.
"""

import os


def relative_to_root(path: str, root_folder: str) -> str:
    """Path relative to the root folder; relative inputs are taken as-is."""
    if root_folder and os.path.isabs(path):
        try:
            return os.path.relpath(path, root_folder)
        except ValueError:
            return path
    return path


def parent_directory(path: str, root_folder: str = "") -> str:
    """Immediate parent directory of a file, relative to the root folder."""
    return os.path.dirname(relative_to_root(path, root_folder)) or "."


def file_extension(path: str) -> str:
    """Lower-cased extension including the dot, or empty string."""
    return os.path.splitext(path)[1].lower()


def resolve_path(path: str, root_folder: str) -> str:
    """Absolute location of a changed file on disk."""
    if os.path.isabs(path) or not root_folder:
        return path
    return os.path.join(root_folder, path)
