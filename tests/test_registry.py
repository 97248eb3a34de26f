"""Tests for the schedule registry."""

import json
import tempfile
from pathlib import Path

import pytest

from autocommit.core.registry import ScheduleRegistry, ScheduleStore
from autocommit.errors import (
    AlreadyExistsError,
    NotFoundError,
    RegistryError,
    ValidationError,
)
from autocommit.models import ScheduleEntry
from conftest import make_repo


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield ScheduleStore(Path(temp_dir) / "home" / "schedules.json")


@pytest.fixture
def registry(store, fake_trigger):
    return ScheduleRegistry(store, fake_trigger, command_builder=lambda p: ["run", str(p)])


@pytest.fixture
def second_project():
    with tempfile.TemporaryDirectory() as temp_dir:
        project_path = Path(temp_dir).resolve()
        make_repo(project_path)
        yield project_path


def test_create_list_delete_round_trip(registry, fake_trigger, temp_git_project):
    entry = registry.create(temp_git_project, 10)

    assert entry == ScheduleEntry(repository_path=temp_git_project, frequency_minutes=10)
    assert registry.list() == [entry]
    assert fake_trigger.jobs == {temp_git_project: (10, ["run", str(temp_git_project)])}

    removed = registry.delete(temp_git_project)

    assert removed == entry
    assert registry.list() == []
    assert fake_trigger.jobs == {}


def test_entries_survive_reload(store, fake_trigger, temp_git_project, second_project):
    registry = ScheduleRegistry(store, fake_trigger)
    registry.create(temp_git_project, 10)
    registry.create(second_project, 5)

    reloaded = ScheduleRegistry(store, fake_trigger)

    assert [(e.repository_path, e.frequency_minutes) for e in reloaded.list()] == [
        (temp_git_project, 10),
        (second_project, 5),
    ]
    data = json.loads(store.path.read_text())
    assert data["version"] == 1
    assert data["schedules"][0]["repository_path"] == str(temp_git_project)


def test_path_is_canonicalized(registry, temp_git_project):
    messy = temp_git_project / "." / "sub" / ".."
    (temp_git_project / "sub").mkdir()

    entry = registry.create(str(messy), 15)

    assert entry.repository_path == temp_git_project
    assert registry.get(temp_git_project) == entry


def test_duplicate_create_is_rejected(registry, fake_trigger, temp_git_project):
    registry.create(temp_git_project, 10)

    for _ in range(3):
        with pytest.raises(AlreadyExistsError, match="every 10 minutes"):
            registry.create(temp_git_project, 5)

    assert [e.frequency_minutes for e in registry.list()] == [10]
    assert fake_trigger.jobs[temp_git_project][0] == 10


@pytest.mark.parametrize("frequency", [0, -5])
def test_frequency_must_be_positive(registry, fake_trigger, temp_git_project, frequency):
    with pytest.raises(ValidationError):
        registry.create(temp_git_project, frequency)

    assert registry.list() == []
    assert fake_trigger.jobs == {}


def test_frequency_must_be_an_integer(registry, temp_git_project):
    with pytest.raises(ValidationError):
        registry.create(temp_git_project, 2.5)


def test_path_must_be_a_repository(registry, fake_trigger):
    with tempfile.TemporaryDirectory() as temp_dir:
        with pytest.raises(ValidationError, match="not a git repository"):
            registry.create(temp_dir, 10)

    assert registry.list() == []
    assert fake_trigger.jobs == {}


def test_delete_unknown_path(registry, fake_trigger, temp_git_project, second_project):
    registry.create(temp_git_project, 10)

    with pytest.raises(NotFoundError):
        registry.delete(second_project)

    assert [e.repository_path for e in registry.list()] == [temp_git_project]
    assert list(fake_trigger.jobs) == [temp_git_project]


def test_failed_install_stores_nothing(registry, fake_trigger, store, temp_git_project):
    fake_trigger.fail_install = True

    with pytest.raises(RegistryError, match="install failed"):
        registry.create(temp_git_project, 10)

    assert registry.list() == []
    assert not store.path.exists()


def test_failed_save_rolls_back_trigger(registry, fake_trigger, store, temp_git_project, monkeypatch):
    def broken_save(entries):
        raise RegistryError("disk full")

    monkeypatch.setattr(store, "save", broken_save)

    with pytest.raises(RegistryError, match="disk full"):
        registry.create(temp_git_project, 10)

    assert registry.list() == []
    assert fake_trigger.jobs == {}


def test_failed_uninstall_keeps_entry(registry, fake_trigger, temp_git_project):
    registry.create(temp_git_project, 10)
    fake_trigger.fail_uninstall = True

    with pytest.raises(RegistryError, match="uninstall failed"):
        registry.delete(temp_git_project)

    assert len(registry.list()) == 1
    assert temp_git_project in fake_trigger.jobs


def test_failed_save_on_delete_reports_partial_failure(
    registry, fake_trigger, store, temp_git_project, monkeypatch
):
    registry.create(temp_git_project, 10)

    def broken_save(entries):
        raise RegistryError("read-only file system")

    monkeypatch.setattr(store, "save", broken_save)

    with pytest.raises(RegistryError, match="repair"):
        registry.delete(temp_git_project)

    assert len(registry.list()) == 1
    assert registry.drift().missing_triggers == [temp_git_project]


def test_drift_and_repair(registry, fake_trigger, temp_git_project, second_project):
    registry.create(temp_git_project, 10)
    # Simulate a crash: trigger lost for one path, stray trigger for another
    del fake_trigger.jobs[temp_git_project]
    fake_trigger.jobs[second_project] = (5, ["run", str(second_project)])

    drift = registry.drift()
    assert drift.missing_triggers == [temp_git_project]
    assert drift.orphan_triggers == [second_project]
    assert not drift.consistent

    repaired = registry.repair()

    assert repaired == drift
    assert registry.drift().consistent
    assert list(fake_trigger.jobs) == [temp_git_project]
    assert fake_trigger.jobs[temp_git_project][0] == 10


def test_create_replaces_orphaned_trigger(registry, fake_trigger, temp_git_project):
    fake_trigger.jobs[temp_git_project] = (99, ["stale"])

    registry.create(temp_git_project, 10)

    assert fake_trigger.jobs[temp_git_project] == (10, ["run", str(temp_git_project)])
    assert registry.drift().consistent


def test_delete_removes_orphaned_trigger(registry, fake_trigger, temp_git_project):
    fake_trigger.jobs[temp_git_project] = (99, ["stale"])

    assert registry.delete(temp_git_project) is None
    assert fake_trigger.jobs == {}


def test_delete_entry_without_trigger(registry, fake_trigger, temp_git_project):
    registry.create(temp_git_project, 10)
    fake_trigger.jobs.clear()

    assert registry.delete(temp_git_project).frequency_minutes == 10
    assert registry.list() == []


def test_delete_works_after_repository_is_gone(store, fake_trigger):
    with tempfile.TemporaryDirectory() as temp_dir:
        project_path = Path(temp_dir).resolve()
        make_repo(project_path)
        ScheduleRegistry(store, fake_trigger).create(project_path, 10)

    registry = ScheduleRegistry(store, fake_trigger)
    registry.delete(project_path)

    assert registry.list() == []


def test_context_manager_flushes(store, fake_trigger, temp_git_project):
    with ScheduleRegistry(store, fake_trigger) as registry:
        registry.create(temp_git_project, 10)

    assert json.loads(store.path.read_text())["schedules"] == [
        {"repository_path": str(temp_git_project), "frequency_minutes": 10}
    ]


def test_corrupt_store_is_a_registry_error(store, fake_trigger):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json")

    with pytest.raises(RegistryError, match="cannot read"):
        ScheduleRegistry(store, fake_trigger)


def test_read_only_use_does_not_write_the_store(store, fake_trigger):
    with ScheduleRegistry(store, fake_trigger) as registry:
        assert registry.list() == []
        registry.drift()

    assert not store.path.exists()
    assert not store.path.parent.exists()


def test_failed_create_does_not_rewrite_the_store(store, fake_trigger, temp_git_project):
    with ScheduleRegistry(store, fake_trigger) as registry:
        registry.create(temp_git_project, 10)
    written = store.path.stat().st_mtime_ns

    with pytest.raises(AlreadyExistsError):
        with ScheduleRegistry(store, fake_trigger) as registry:
            registry.create(temp_git_project, 20)

    assert store.path.stat().st_mtime_ns == written
    assert [e.frequency_minutes for e in store.load()] == [10]


def test_rollback_error_is_not_hidden_by_close(store, fake_trigger, temp_git_project, monkeypatch):
    def broken_save(entries):
        raise RegistryError("disk full")

    monkeypatch.setattr(store, "save", broken_save)

    with pytest.raises(RegistryError, match="disk full"):
        with ScheduleRegistry(store, fake_trigger) as registry:
            registry.create(temp_git_project, 10)

    assert fake_trigger.jobs == {}
