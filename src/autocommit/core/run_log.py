"""Append-only per-repository run log."""

import logging
import os
from pathlib import Path
from typing import List

from autocommit.models import RunRecord

logger = logging.getLogger(__name__)

RUN_LOG_NAME = ".autocommit_log"


class RunLog:
    """The ``.autocommit_log`` file at the root of a repository."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_repository(cls, repository_path: Path) -> "RunLog":
        return cls(Path(repository_path) / RUN_LOG_NAME)

    def append(self, record: RunRecord) -> None:
        """Write ``record`` as one line.

        The line goes out in a single write on an O_APPEND descriptor, so
        concurrent writers cannot interleave within a line.
        """
        data = record.to_line().encode("utf-8")
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    def tail(self, limit: int = 10) -> List[str]:
        """Return the last ``limit`` lines, oldest first."""
        if not self.path.exists():
            return []
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return lines[-limit:] if limit > 0 else []
