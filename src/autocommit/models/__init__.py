"""Data models for autocommit."""

from .diff import DIFF_CHAR_LIMIT, Clean, DiffSnapshot
from .run import (
    CommitResult,
    Fallback,
    MessageResult,
    Outcome,
    PipelineResult,
    PipelineState,
    RunRecord,
    Summarized,
)
from .schedule import RegistryDrift, ScheduleEntry

__all__ = [
    "DIFF_CHAR_LIMIT",
    "Clean",
    "CommitResult",
    "DiffSnapshot",
    "Fallback",
    "MessageResult",
    "Outcome",
    "PipelineResult",
    "PipelineState",
    "RegistryDrift",
    "RunRecord",
    "ScheduleEntry",
    "Summarized",
]
