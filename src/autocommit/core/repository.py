"""Opening and validating the git working trees autocommit manages."""

from pathlib import Path
from typing import Union

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from autocommit.errors import RepositoryError


def canonical_path(path: Union[str, Path]) -> Path:
    """Absolute, symlink-free form of ``path`` used as the registry key."""
    return Path(path).expanduser().resolve()


def open_repository(path: Union[str, Path]) -> Repo:
    """Open the working tree rooted at ``path``.

    Raises RepositoryError if the path does not exist, is not the top of a
    git working tree, or is a bare repository.
    """
    root = canonical_path(path)
    if not root.is_dir():
        raise RepositoryError(f"{root} is not a directory")

    try:
        repo = Repo(root)
    except NoSuchPathError as e:
        raise RepositoryError(f"{root} does not exist") from e
    except InvalidGitRepositoryError as e:
        raise RepositoryError(f"{root} is not a git repository") from e

    if repo.bare or repo.working_tree_dir is None:
        raise RepositoryError(f"{root} is a bare repository")
    return repo
