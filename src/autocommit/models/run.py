"""Models describing a single commit pipeline run."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel


class PipelineState(str, Enum):
    """States of one commit pipeline run."""

    IDLE = "idle"
    CHECKING = "checking"
    NOOP = "noop"
    DIFFING = "diffing"
    SUMMARIZING = "summarizing"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.NOOP, PipelineState.DONE, PipelineState.FAILED)


class Outcome(str, Enum):
    """Outcome written to the run log."""

    NOOP = "noop"
    COMMITTED = "committed"
    FAILED = "failed"


class Summarized(BaseModel):
    """Commit message produced by the summarization service."""

    text: str

    @property
    def message(self) -> str:
        return self.text


class Fallback(BaseModel):
    """Timestamp message used when summarization was skipped or failed."""

    timestamp: str
    reason: str

    @property
    def message(self) -> str:
        return self.timestamp


MessageResult = Union[Summarized, Fallback]


class CommitResult(BaseModel):
    """A commit created by the executor."""

    hexsha: str
    message: str


class RunRecord(BaseModel):
    """One line of the run log."""

    timestamp: datetime
    outcome: Outcome
    message: Optional[str] = None
    truncated: Optional[bool] = None
    source: Optional[str] = None
    fallback_reason: Optional[str] = None
    stage: Optional[PipelineState] = None
    error: Optional[str] = None

    def to_line(self) -> str:
        """Render the record as a single log line, newline included."""
        parts = [self.timestamp.isoformat(timespec="seconds"), self.outcome.value]
        if self.stage is not None:
            parts.append(f"stage={self.stage.value}")
        if self.truncated is not None:
            parts.append(f"truncated={str(self.truncated).lower()}")
        if self.source is not None:
            parts.append(f"source={self.source}")
        if self.fallback_reason is not None:
            parts.append(f"fallback={_quote(self.fallback_reason)}")
        if self.error is not None:
            parts.append(f"error={_quote(self.error)}")
        if self.message is not None:
            parts.append(f"message={_quote(self.message)}")
        return " ".join(parts) + "\n"


class PipelineResult(BaseModel):
    """Result of a commit pipeline run."""

    repository_path: Path
    states: List[PipelineState]
    message: Optional[str] = None
    truncated: bool = False
    summarized: bool = False
    commit: Optional[CommitResult] = None
    failed_stage: Optional[PipelineState] = None
    error: Optional[str] = None

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    @property
    def ok(self) -> bool:
        return self.state != PipelineState.FAILED


def _quote(value: str) -> str:
    flat = " ".join(value.split())
    return '"' + flat.replace("\\", "\\\\").replace('"', '\\"') + '"'
