"""Shared fixtures for autocommit tests."""

import tempfile
from pathlib import Path
from typing import Dict, List, Tuple

import pytest
from git import Repo

from autocommit.core.message import Summarizer
from autocommit.core.triggers import Trigger
from autocommit.errors import ExternalServiceError, RegistryError


class FakeTrigger(Trigger):
    """In-memory trigger that records installs."""

    def __init__(self):
        self.jobs: Dict[Path, Tuple[int, List[str]]] = {}
        self.fail_install = False
        self.fail_uninstall = False

    def install(self, path, frequency_minutes, command):
        if self.fail_install:
            raise RegistryError("install failed")
        self.jobs[Path(path)] = (frequency_minutes, list(command))

    def uninstall(self, path):
        if self.fail_uninstall:
            raise RegistryError("uninstall failed")
        return self.jobs.pop(Path(path), None) is not None

    def installed(self):
        return {path: f"every {freq}" for path, (freq, _) in self.jobs.items()}


class FakeSummarizer(Summarizer):
    """Summarizer returning a canned reply and remembering its input."""

    def __init__(self, reply="Update files", error=None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    def summarize(self, diff_text):
        self.calls.append(diff_text)
        if self.error:
            raise ExternalServiceError(self.error)
        return self.reply


def make_repo(path: Path, commit: bool = True) -> Repo:
    """Initialize a repo with an identity and the run log ignored."""
    repo = Repo.init(path)
    with repo.config_writer() as config:
        config.set_value("user", "name", "Test User")
        config.set_value("user", "email", "test@example.com")
        config.set_value("commit", "gpgsign", "false")

    (path / ".gitignore").write_text(".autocommit_log\n")
    (path / "main.py").write_text("def main():\n    print('Hello')\n")
    (path / "README.md").write_text("# Test Project\n")
    if commit:
        repo.index.add([".gitignore", "main.py", "README.md"])
        repo.index.commit("Initial commit")
    return repo


@pytest.fixture
def temp_git_project():
    """Create a temporary git project with an initial commit."""
    with tempfile.TemporaryDirectory() as temp_dir:
        project_path = Path(temp_dir).resolve()
        make_repo(project_path)
        yield project_path


@pytest.fixture
def fake_trigger():
    return FakeTrigger()
