"""
Git integration for diff retrieval.

Provides the diff collaborator the embedding layers consume: the textual
diff of a modified file, or a marker text for new untracked files, plus the
changed-file listing the CLI clusters when no files are given.
"""

import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union


class DiffError(Exception):
    """Diff for a file could not be retrieved."""
    pass


class DiffProvider(ABC):
    """Source of per-file diff text."""

    @abstractmethod
    def get_file_diff(self, file_path: str, root_folder: str) -> str:
        """
        Get the diff (or whole content for new files) of one changed file.

        Raises:
            DiffError: The diff could not be produced
        """
        pass


class GitDiffProvider(DiffProvider):
    """
    Diff provider backed by the git command line.

    Untracked files produce ``"New untracked file: <path>"``; tracked files
    produce ``git diff -- <path>`` output, or the staged diff when the
    working tree matches the index.
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def _run_git(self, args: List[str], root_folder: str) -> str:
        try:
            result = subprocess.run(
                ['git', '-C', root_folder] + args,
                capture_output=True,
                encoding='utf-8',
                errors='replace',
                timeout=self.timeout,
            )
        except (subprocess.SubprocessError, FileNotFoundError) as e:
            raise DiffError(f"git {' '.join(args[:1])} failed: {e}") from e

        if result.returncode != 0:
            raise DiffError(f"git {' '.join(args[:1])} exited with {result.returncode}: {result.stderr.strip()}")
        return result.stdout

    def get_file_diff(self, file_path: str, root_folder: str) -> str:
        status = self._run_git(
            ['status', '--porcelain', '--untracked-files=all', '--', file_path],
            root_folder,
        )
        if status.startswith('??'):
            return f"New untracked file: {file_path}"

        diff = self._run_git(['diff', '--', file_path], root_folder)
        if not diff.strip():
            # Staged-only changes
            diff = self._run_git(['diff', '--cached', '--', file_path], root_folder)
        return diff


class GitIntegration:
    """Changed-file discovery for a working tree."""

    def __init__(self, repo_path: Union[str, Path]):
        self.repo_path = Path(repo_path)
        self._git_available = self._check_git_availability()

    def _check_git_availability(self) -> bool:
        """Check if git is available and repo is a git repository."""
        try:
            result = subprocess.run(
                ['git', 'rev-parse', '--git-dir'],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=5
            )
            return result.returncode == 0
        except (subprocess.SubprocessError, FileNotFoundError, OSError):
            return False

    def is_git_repo(self) -> bool:
        """Check if the repository is under git version control."""
        return self._git_available

    def get_changed_files(self) -> List[str]:
        """
        Absolute paths of modified, added and untracked files.

        Deleted files are skipped since they have no content to hash.
        """
        if not self._git_available:
            return []

        result = subprocess.run(
            ['git', 'status', '--porcelain', '--untracked-files=all'],
            cwd=self.repo_path,
            capture_output=True,
            encoding='utf-8',
            errors='replace',
            timeout=30
        )
        if result.returncode != 0:
            return []

        files = []
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            status, path = line[:2], line[3:]
            if 'D' in status:
                continue
            if ' -> ' in path:
                path = path.split(' -> ', 1)[1]
            files.append(os.path.join(str(self.repo_path.resolve()), path.strip('"')))
        return files
