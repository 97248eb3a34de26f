"""Stage everything and commit it."""

import configparser
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from git import GitCommandError, Repo

from autocommit.core.repository import open_repository
from autocommit.errors import CommitError, RepositoryError
from autocommit.models import CommitResult

logger = logging.getLogger(__name__)


class Committer(ABC):
    """Creates a commit from the current working tree."""

    @abstractmethod
    def commit(self, repository_path: Path, message: str) -> CommitResult:
        """Stage all changes and commit them. Raises CommitError on failure."""


class GitCommitter(Committer):
    """Committer using the repository's configured author identity."""

    def commit(self, repository_path: Path, message: str) -> CommitResult:
        try:
            repo = open_repository(repository_path)
        except RepositoryError as e:
            raise CommitError(str(e)) from e

        if not has_identity(repo):
            raise CommitError(
                "no author identity configured; set user.name and user.email"
            )

        try:
            repo.git.add(all=True)
        except GitCommandError as e:
            raise CommitError(f"staging failed: {_detail(e)}") from e

        try:
            repo.git.commit("--no-verify", "-m", message)
        except GitCommandError as e:
            raise CommitError(f"commit failed: {_detail(e)}") from e

        hexsha = repo.head.commit.hexsha
        logger.info("Committed %s in %s", hexsha[:8], repository_path)
        return CommitResult(hexsha=hexsha, message=message)


def has_identity(repo: Repo) -> bool:
    """True if git has an explicit author name and email for ``repo``."""
    reader = repo.config_reader()
    values = {}
    for option, env_var in (("name", "GIT_AUTHOR_NAME"), ("email", "GIT_AUTHOR_EMAIL")):
        try:
            values[option] = reader.get_value("user", option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            values[option] = os.environ.get(env_var) or ""
    if not values["email"]:
        values["email"] = os.environ.get("EMAIL", "")
    return bool(str(values["name"]).strip() and str(values["email"]).strip())


def _detail(error: GitCommandError) -> str:
    return (error.stderr or error.stdout or str(error)).strip()
