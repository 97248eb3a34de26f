"""One commit cycle: check, diff, summarize, commit.

Each run walks the states of ``PipelineState``::

    IDLE -> CHECKING -> NOOP
                     -> DIFFING -> SUMMARIZING -> COMMITTING -> DONE
    CHECKING, DIFFING, COMMITTING -> FAILED

``transition`` is the pure state function; ``CommitPipeline`` performs the
side effects of each state through injected collaborators, and always
writes one run log line before returning.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from autocommit.core.committer import Committer, GitCommitter
from autocommit.core.diff import DiffExtractor, GitDiffExtractor
from autocommit.core.message import MessageGenerator
from autocommit.core.run_log import RunLog
from autocommit.errors import AutocommitError
from autocommit.models import (
    Clean,
    DiffSnapshot,
    Fallback,
    Outcome,
    PipelineResult,
    PipelineState,
    RunRecord,
    Summarized,
)

logger = logging.getLogger(__name__)

_FAILABLE = (PipelineState.CHECKING, PipelineState.DIFFING, PipelineState.COMMITTING)

_NEXT = {
    PipelineState.IDLE: PipelineState.CHECKING,
    PipelineState.DIFFING: PipelineState.SUMMARIZING,
    PipelineState.SUMMARIZING: PipelineState.COMMITTING,
    PipelineState.COMMITTING: PipelineState.DONE,
}


def transition(
    state: PipelineState, *, clean: bool = False, failed: bool = False
) -> PipelineState:
    """Return the state that follows ``state``.

    ``clean`` reports that the working tree had nothing to commit, and
    ``failed`` that the work of ``state`` raised. Summarizing cannot fail
    because message generation always falls back.
    """
    if state.terminal:
        raise ValueError(f"{state.value} is a terminal state")
    if failed:
        if state not in _FAILABLE:
            raise ValueError(f"{state.value} cannot fail")
        return PipelineState.FAILED
    if clean:
        if state not in (PipelineState.CHECKING, PipelineState.DIFFING):
            raise ValueError(f"{state.value} cannot observe a clean tree")
        return PipelineState.NOOP
    if state == PipelineState.CHECKING:
        return PipelineState.DIFFING
    return _NEXT[state]


class CommitPipeline:
    """Runs one commit cycle for a repository."""

    def __init__(
        self,
        extractor: Optional[DiffExtractor] = None,
        generator: Optional[MessageGenerator] = None,
        committer: Optional[Committer] = None,
        run_log_factory: Callable[[Path], RunLog] = RunLog.for_repository,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.extractor = extractor or GitDiffExtractor()
        self.generator = generator or MessageGenerator()
        self.committer = committer or GitCommitter()
        self._run_log_factory = run_log_factory
        self._clock = clock

    def run(self, repository_path: Path, credential: Optional[str] = None) -> PipelineResult:
        """Run one cycle. Stage failures are reported in the result, not raised."""
        path = Path(repository_path)
        states: List[PipelineState] = [PipelineState.IDLE]

        _advance(states)
        try:
            dirty = self.extractor.has_changes(path)
        except AutocommitError as e:
            return self._fail(path, states, e)
        if not dirty:
            return self._noop(path, states)

        _advance(states)
        try:
            snapshot = self.extractor.extract(path)
        except AutocommitError as e:
            return self._fail(path, states, e)
        if isinstance(snapshot, Clean):
            return self._noop(path, states)

        _advance(states)
        message = self.generator.generate(snapshot, credential)

        _advance(states)
        try:
            commit = self.committer.commit(path, message.message)
        except AutocommitError as e:
            return self._fail(path, states, e, snapshot=snapshot)

        _advance(states)
        self._record(
            path,
            RunRecord(
                timestamp=self._clock(),
                outcome=Outcome.COMMITTED,
                message=commit.message,
                truncated=snapshot.truncated,
                source="summarized" if isinstance(message, Summarized) else "fallback",
                fallback_reason=message.reason if isinstance(message, Fallback) else None,
            ),
        )
        return PipelineResult(
            repository_path=path,
            states=states,
            message=commit.message,
            truncated=snapshot.truncated,
            summarized=isinstance(message, Summarized),
            commit=commit,
        )

    def _noop(self, path: Path, states: List[PipelineState]) -> PipelineResult:
        _advance(states, clean=True)
        logger.info("No changes detected in %s", path)
        self._record(path, RunRecord(timestamp=self._clock(), outcome=Outcome.NOOP))
        return PipelineResult(repository_path=path, states=states)

    def _fail(
        self,
        path: Path,
        states: List[PipelineState],
        error: AutocommitError,
        snapshot: Optional[DiffSnapshot] = None,
    ) -> PipelineResult:
        stage = states[-1]
        _advance(states, failed=True)
        detail = f"{type(error).__name__}: {error}"
        logger.error("Run failed while %s %s: %s", stage.value, path, detail)
        self._record(
            path,
            RunRecord(
                timestamp=self._clock(),
                outcome=Outcome.FAILED,
                stage=stage,
                error=detail,
                truncated=snapshot.truncated if snapshot else None,
            ),
        )
        return PipelineResult(
            repository_path=path,
            states=states,
            truncated=snapshot.truncated if snapshot else False,
            failed_stage=stage,
            error=detail,
        )

    def _record(self, path: Path, record: RunRecord) -> None:
        if not path.is_dir():
            logger.warning("Cannot write run log, %s is not a directory", path)
            return
        try:
            self._run_log_factory(path).append(record)
        except OSError as e:
            logger.warning("Cannot write run log for %s: %s", path, e)


def _advance(states: List[PipelineState], **kwargs) -> PipelineState:
    states.append(transition(states[-1], **kwargs))
    logger.debug("pipeline state: %s", states[-1].value)
    return states[-1]
