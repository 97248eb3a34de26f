"""Schedule models for the autocommit registry."""

from pathlib import Path
from typing import List

from pydantic import BaseModel, field_validator


class ScheduleEntry(BaseModel):
    """A repository under automatic commit management."""

    repository_path: Path
    frequency_minutes: int

    @field_validator("frequency_minutes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("frequency must be a positive number of minutes")
        return value

    model_config = {"frozen": True}


class RegistryDrift(BaseModel):
    """Differences between stored schedules and installed triggers."""

    missing_triggers: List[Path] = []  # stored, but no trigger installed
    orphan_triggers: List[Path] = []  # trigger installed, nothing stored

    @property
    def consistent(self) -> bool:
        return not self.missing_triggers and not self.orphan_triggers
