"""Detect uncommitted changes and capture a bounded diff."""

import difflib
import io
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Union

from git import GitCommandError, Repo

from autocommit.core.repository import open_repository
from autocommit.errors import RepositoryError
from autocommit.models import DIFF_CHAR_LIMIT, Clean, DiffSnapshot

logger = logging.getLogger(__name__)


class DiffExtractor(ABC):
    """Read-only inspection of a working tree."""

    @abstractmethod
    def has_changes(self, repository_path: Path) -> bool:
        """Return True if tracked or untracked changes exist."""

    @abstractmethod
    def extract(self, repository_path: Path) -> Union[DiffSnapshot, Clean]:
        """Return the bounded diff, or Clean if nothing changed."""


class GitDiffExtractor(DiffExtractor):
    """Diff extractor backed by the git CLI through GitPython."""

    def __init__(self, limit: int = DIFF_CHAR_LIMIT):
        self.limit = limit

    def has_changes(self, repository_path: Path) -> bool:
        repo = open_repository(repository_path)
        return bool(self._status(repo).strip())

    def extract(self, repository_path: Path) -> Union[DiffSnapshot, Clean]:
        repo = open_repository(repository_path)
        if not self._status(repo).strip():
            return Clean()

        chunks = [self._tracked_diff(repo)]
        size = len(chunks[0])
        for name in repo.untracked_files:
            # Everything past the cap is dropped anyway
            if size > self.limit:
                break
            chunk = _untracked_file_diff(Path(repo.working_tree_dir), name, self.limit + 1)
            chunks.append(chunk)
            size += len(chunk)

        text = "".join(c for c in chunks if c)
        snapshot = DiffSnapshot.from_text(text, self.limit)
        if snapshot.truncated:
            logger.info("Diff is over %d characters, truncating", self.limit)
        logger.debug("Diff snapshot: %s", snapshot.text)
        return snapshot

    def _status(self, repo: Repo) -> str:
        try:
            return repo.git.status("--porcelain", "--untracked-files=all")
        except GitCommandError as e:
            raise RepositoryError(f"git status failed: {_stderr(e)}") from e

    def _tracked_diff(self, repo: Repo) -> str:
        # Staged and unstaged changes against the last commit. An unborn
        # branch has no HEAD, so only the index can be compared.
        args = ["HEAD"] if repo.head.is_valid() else ["--cached"]
        process = repo.git.diff(*args, as_process=True)
        stdout = io.TextIOWrapper(process.stdout, encoding="utf-8", errors="replace")
        text = stdout.read(self.limit + 1)
        try:
            if len(text) > self.limit:
                # Stop git instead of draining output that would be cut
                process.proc.kill()
                process.proc.wait()
            else:
                process.wait()
        except GitCommandError as e:
            raise RepositoryError(f"git diff failed: {_stderr(e)}") from e
        if text and not text.endswith("\n"):
            text += "\n"
        return text


def _stderr(error: GitCommandError) -> str:
    stderr = error.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return str(stderr).strip()


def _untracked_file_diff(root: Path, name: str, max_chars: int) -> str:
    """Render an untracked file as an addition, reading at most ``max_chars``."""
    name = name.rstrip("/")
    header = f"diff --git a/{name} b/{name}\nnew file\n"
    path = root / name
    if path.is_symlink():
        return header + f"Symlink {name} -> {os.readlink(path)}\n"
    if path.is_dir():
        # Nested repositories are listed as a single directory entry
        return header + f"Subproject {name} added\n"
    try:
        with open(path, encoding="utf-8") as f:
            content = f.read(max_chars)
    except UnicodeDecodeError:
        return header + f"Binary file {name} added\n"
    except OSError as e:
        raise RepositoryError(f"cannot read {name}: {e}") from e
    if "\x00" in content:
        return header + f"Binary file {name} added\n"

    lines: List[str] = content.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    body = difflib.unified_diff([], lines, fromfile="/dev/null", tofile=f"b/{name}")
    return header + "".join(body)
