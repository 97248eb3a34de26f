"""Periodic triggers that invoke ``autocommit run`` for a repository."""

import logging
import re
import shlex
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from autocommit.errors import RegistryError, ValidationError

logger = logging.getLogger(__name__)

MARKER = "# autocommit:"
_MARKER_RE = re.compile(r"#\s*autocommit:(?P<path>.+)$")


def run_command(repository_path: Path) -> List[str]:
    """Command line a trigger executes for ``repository_path``."""
    return [sys.executable, "-m", "autocommit", "run", "--path", str(repository_path)]


class Trigger(ABC):
    """Installs and removes the periodic job for a repository path."""

    def validate(self, frequency_minutes: int) -> None:
        """Raise ValidationError if ``frequency_minutes`` cannot be scheduled."""

    @abstractmethod
    def install(self, path: Path, frequency_minutes: int, command: List[str]) -> None:
        """Install (or replace) the job for ``path``."""

    @abstractmethod
    def uninstall(self, path: Path) -> bool:
        """Remove the job for ``path``. Returns False if none was installed."""

    @abstractmethod
    def installed(self) -> Dict[Path, str]:
        """Map each path with an installed job to its schedule description."""


def cron_schedule(frequency_minutes: int) -> str:
    """Translate a frequency into the five cron time fields.

    Cron steps restart at the top of each hour, day or month, so a step
    that does not divide 60, 24 or the month length leaves one shorter gap.

    >>> cron_schedule(10)
    '*/10 * * * *'
    >>> cron_schedule(120)
    '0 */2 * * *'
    """
    if frequency_minutes <= 0:
        raise ValidationError("frequency must be a positive number of minutes")
    if frequency_minutes < 60:
        return f"*/{frequency_minutes} * * * *"
    if frequency_minutes < 1440 and frequency_minutes % 60 == 0:
        return f"0 */{frequency_minutes // 60} * * *"
    if frequency_minutes % 1440 == 0 and frequency_minutes // 1440 <= 31:
        return f"0 0 */{frequency_minutes // 1440} * *"
    raise ValidationError(
        f"cron cannot run every {frequency_minutes} minutes; use a value below 60, "
        "a whole number of hours below 24, or a whole number of days up to 31 "
        "(intervals that do not divide the hour, day or month evenly are approximate)"
    )


def is_even_interval(frequency_minutes: int) -> bool:
    """True if the cron step for ``frequency_minutes`` repeats at a fixed interval."""
    if frequency_minutes < 60:
        return 60 % frequency_minutes == 0
    if frequency_minutes < 1440:
        return 24 % (frequency_minutes // 60) == 0
    # Month lengths vary, so only daily runs are exact
    return frequency_minutes == 1440


class CrontabTrigger(Trigger):
    """Jobs kept in the current user's crontab.

    Each job is one line tagged with ``# autocommit:<path>``. Lines without
    the tag belong to the user and are written back untouched.
    """

    def __init__(
        self,
        environment: Optional[Mapping[str, str]] = None,
        crontab: str = "crontab",
    ):
        self.environment = dict(environment or {})
        self.crontab = crontab

    def validate(self, frequency_minutes: int) -> None:
        schedule = cron_schedule(frequency_minutes)
        if not is_even_interval(frequency_minutes):
            logger.warning(
                "'%s' restarts its count each period, so runs every %d minutes "
                "will not be evenly spaced",
                schedule,
                frequency_minutes,
            )

    def install(self, path: Path, frequency_minutes: int, command: List[str]) -> None:
        line = self.render(path, frequency_minutes, command)
        lines = [l for l in self._read() if self._owner(l) != path]
        lines.append(line)
        self._write(lines)
        logger.info("Installed cron job for %s", path)

    def uninstall(self, path: Path) -> bool:
        current = self._read()
        remaining = [l for l in current if self._owner(l) != path]
        if len(remaining) == len(current):
            return False
        self._write(remaining)
        logger.info("Removed cron job for %s", path)
        return True

    def installed(self) -> Dict[Path, str]:
        jobs = {}
        for line in self._read():
            owner = self._owner(line)
            if owner is not None:
                jobs[owner] = " ".join(line.split()[:5])
        return jobs

    def render(self, path: Path, frequency_minutes: int, command: List[str]) -> str:
        """The crontab line for one job."""
        env = " ".join(
            f"{key}={shlex.quote(value)}" for key, value in sorted(self.environment.items())
        )
        cmd = " ".join(shlex.quote(part) for part in command)
        parts = [cron_schedule(frequency_minutes)]
        if env:
            parts.append(_escape_percent(env))
        parts.append(f"{_escape_percent(cmd)} >/dev/null 2>&1")
        parts.append(f"{MARKER}{path}")
        return " ".join(parts)

    @staticmethod
    def _owner(line: str) -> Optional[Path]:
        if line.lstrip().startswith("#"):
            return None
        match = _MARKER_RE.search(line)
        return Path(match.group("path").strip()) if match else None

    def _read(self) -> List[str]:
        try:
            result = subprocess.run(  # noqa: S603
                [self.crontab, "-l"], capture_output=True, text=True, check=False
            )
        except FileNotFoundError as e:
            raise RegistryError(f"{self.crontab} is not installed") from e

        if result.returncode != 0:
            if "no crontab" in result.stderr.lower():
                return []
            raise RegistryError(f"cannot read crontab: {result.stderr.strip()}")
        return result.stdout.splitlines()

    def _write(self, lines: List[str]) -> None:
        content = "\n".join(lines) + "\n" if lines else ""
        try:
            result = subprocess.run(  # noqa: S603
                [self.crontab, "-"],
                input=content,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise RegistryError(f"{self.crontab} is not installed") from e

        if result.returncode != 0:
            raise RegistryError(f"cannot write crontab: {result.stderr.strip()}")


def _escape_percent(text: str) -> str:
    # cron turns a bare % in the command into a newline
    return text.replace("%", "\\%")
