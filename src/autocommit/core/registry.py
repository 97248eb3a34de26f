"""Persisted schedules and the triggers that run them."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pydantic

from autocommit.core.repository import canonical_path, open_repository
from autocommit.core.triggers import Trigger, run_command
from autocommit.errors import (
    AlreadyExistsError,
    NotFoundError,
    RegistryError,
    RepositoryError,
    ValidationError,
)
from autocommit.models import RegistryDrift, ScheduleEntry

logger = logging.getLogger(__name__)

STORE_VERSION = 1


class ScheduleStore:
    """JSON file holding schedule entries in insertion order."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[ScheduleEntry]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return [ScheduleEntry(**item) for item in data.get("schedules", [])]
        except (OSError, ValueError, TypeError, AttributeError, pydantic.ValidationError) as e:
            raise RegistryError(f"cannot read schedules from {self.path}: {e}") from e

    def save(self, entries: List[ScheduleEntry]) -> None:
        """Replace the stored entries atomically."""
        data = {
            "version": STORE_VERSION,
            "schedules": [entry.model_dump(mode="json") for entry in entries],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".schedules-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise RegistryError(f"cannot write schedules to {self.path}: {e}") from e


class ScheduleRegistry:
    """Schedules keyed by canonical repository path.

    Every stored entry should have exactly one installed trigger and the
    other way around. Mutations install or remove the trigger first and
    roll it back if the store cannot be written. ``drift`` and ``repair``
    deal with inconsistencies left by a crash.
    """

    def __init__(
        self,
        store: ScheduleStore,
        trigger: Trigger,
        command_builder: Callable[[Path], List[str]] = run_command,
    ):
        self.store = store
        self.trigger = trigger
        self.command_builder = command_builder
        self._entries: Dict[Path, ScheduleEntry] = {
            entry.repository_path: entry for entry in store.load()
        }
        self._dirty = False

    def __enter__(self) -> "ScheduleRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # A failed flush must not replace the error already propagating
        if exc_type is None:
            self.close()

    def close(self) -> None:
        """Flush entries to the store if they changed since the last save."""
        if self._dirty:
            self._save()

    def _save(self) -> None:
        self.store.save(self.list())
        self._dirty = False

    def list(self) -> List[ScheduleEntry]:
        return list(self._entries.values())

    def get(self, path: Union[str, Path]) -> Optional[ScheduleEntry]:
        return self._entries.get(canonical_path(path))

    def create(self, path: Union[str, Path], frequency_minutes: int) -> ScheduleEntry:
        """Register ``path`` to be committed every ``frequency_minutes``.

        Raises ValidationError for bad input and AlreadyExistsError if the
        path is registered already; the existing entry is left unchanged.
        """
        if isinstance(frequency_minutes, bool) or not isinstance(frequency_minutes, int):
            raise ValidationError("frequency must be a whole number of minutes")
        if frequency_minutes <= 0:
            raise ValidationError("frequency must be a positive number of minutes")
        root = canonical_path(path)
        try:
            open_repository(root)
        except RepositoryError as e:
            raise ValidationError(str(e)) from e

        existing = self._entries.get(root)
        if existing is not None:
            raise AlreadyExistsError(
                f"{root} is already scheduled every "
                f"{existing.frequency_minutes} minutes"
            )
        self.trigger.validate(frequency_minutes)

        if root in self.trigger.installed():
            logger.warning("Removing orphaned trigger for %s", root)
            self.trigger.uninstall(root)

        entry = ScheduleEntry(repository_path=root, frequency_minutes=frequency_minutes)
        self.trigger.install(root, frequency_minutes, self.command_builder(root))
        self._entries[root] = entry
        self._dirty = True
        try:
            self._save()
        except RegistryError:
            del self._entries[root]
            self._dirty = False
            self.trigger.uninstall(root)
            raise
        logger.info("Scheduled %s every %d minutes", root, frequency_minutes)
        return entry

    def delete(self, path: Union[str, Path]) -> Optional[ScheduleEntry]:
        """Unregister ``path`` and remove its trigger.

        Returns the removed entry, or None when only an orphaned trigger
        was found and removed. Raises NotFoundError if neither exists.
        """
        root = canonical_path(path)
        entry = self._entries.get(root)
        has_trigger = root in self.trigger.installed()

        if entry is None:
            if not has_trigger:
                raise NotFoundError(f"no schedule registered for {root}")
            logger.warning("Removing orphaned trigger for %s", root)
            self.trigger.uninstall(root)
            return None

        if has_trigger:
            self.trigger.uninstall(root)
        else:
            logger.warning("Schedule for %s had no installed trigger", root)

        del self._entries[root]
        self._dirty = True
        try:
            self._save()
        except RegistryError as e:
            self._entries[root] = entry
            self._dirty = False
            raise RegistryError(
                f"trigger for {root} was removed but the schedule could not be "
                f"deleted ({e}); run 'autocommit repair' to reconcile"
            ) from e
        logger.info("Deleted schedule for %s", root)
        return entry

    def drift(self) -> RegistryDrift:
        """Compare stored entries with installed triggers."""
        installed = set(self.trigger.installed())
        return RegistryDrift(
            missing_triggers=[p for p in self._entries if p not in installed],
            orphan_triggers=sorted(p for p in installed if p not in self._entries),
        )

    def repair(self) -> RegistryDrift:
        """Reinstall missing triggers and remove orphaned ones.

        Returns the drift that was found before repairing.
        """
        drift = self.drift()
        for path in drift.missing_triggers:
            entry = self._entries[path]
            logger.info("Reinstalling trigger for %s", path)
            self.trigger.install(path, entry.frequency_minutes, self.command_builder(path))
        for path in drift.orphan_triggers:
            logger.info("Removing orphaned trigger for %s", path)
            self.trigger.uninstall(path)
        return drift
