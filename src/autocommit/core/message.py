"""Commit message generation with a timestamp fallback."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

import openai
from openai import OpenAI

from autocommit.config import DEFAULT_MODEL, DEFAULT_TIMEOUT, MAX_RESPONSE_TOKENS, Settings
from autocommit.errors import ExternalServiceError
from autocommit.models import DIFF_CHAR_LIMIT, DiffSnapshot, Fallback, MessageResult, Summarized

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

PROMPT = """You are CommitBot, an assistant tasked with writing helpful commit messages based on code changes.
You will be given a set of patches of code changes, and you must write a short commit message describing the changes. Do not be verbose.
Your response must include only high level logical changes if the diff is large, otherwise you may include specific changes.
Try to fit your response in one line.

{diff}"""


class Summarizer(ABC):
    """Turns diff text into a commit message using an external service."""

    @abstractmethod
    def summarize(self, diff_text: str) -> str:
        """Return the raw summary. Raises ExternalServiceError on any failure."""


class OpenAISummarizer(Summarizer):
    """Summarizer for OpenAI-compatible chat completion endpoints."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = MAX_RESPONSE_TOKENS,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        if client is None:
            # One attempt per run, bounded by the timeout
            try:
                client = OpenAI(
                    api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0
                )
            except openai.OpenAIError as e:
                raise ExternalServiceError(f"cannot create client: {e}") from e
        self._client = client

    def summarize(self, diff_text: str) -> str:
        prompt = PROMPT.format(diff=diff_text[:DIFF_CHAR_LIMIT])
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise ExternalServiceError(f"summarization request failed: {e}") from e

        # Non-conforming endpoints can return a bare string or choices
        # without a message
        try:
            choices = response.choices
            if not choices:
                raise ExternalServiceError("summarization response had no choices")
            content = choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as e:
            raise ExternalServiceError(f"malformed summarization response: {e}") from e
        if not isinstance(content, str) or not content.strip():
            raise ExternalServiceError("summarization response was empty")
        return content


def timestamp_message(now: Optional[datetime] = None) -> str:
    """Current local time as a commit message."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def single_line(text: str) -> str:
    """Trim ``text`` and join its lines with single spaces."""
    lines = [line.strip() for line in text.strip().splitlines()]
    message = " ".join(line for line in lines if line)
    # Models like to wrap the whole answer in quotes or backticks
    if len(message) > 1 and message[0] == message[-1] and message[0] in "\"'`":
        message = message[1:-1].strip()
    return message


class MessageGenerator:
    """Produce a commit message for a diff. Never fails."""

    def __init__(
        self,
        summarizer_factory: Optional[Callable[[str], Summarizer]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._summarizer_factory = summarizer_factory or (
            lambda key: OpenAISummarizer(api_key=key)
        )
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "MessageGenerator":
        def factory(api_key: str) -> Summarizer:
            return OpenAISummarizer(
                api_key=api_key,
                model=settings.model,
                timeout=settings.request_timeout,
                max_tokens=settings.max_response_tokens,
                base_url=settings.base_url,
            )

        return cls(summarizer_factory=factory)

    def generate(self, diff: DiffSnapshot, credential: Optional[str]) -> MessageResult:
        """Summarize ``diff`` when a credential is given, else use a timestamp."""
        if not credential:
            return self._fallback("no API credential configured")

        try:
            summary = self._summarizer_factory(credential).summarize(diff.text)
        except ExternalServiceError as e:
            logger.warning("Falling back to timestamp message: %s", e)
            return self._fallback(str(e))

        message = single_line(summary) if isinstance(summary, str) else ""
        if not message:
            return self._fallback("summary was empty")
        logger.info("Commit message: %s", message)
        return Summarized(text=message)

    def _fallback(self, reason: str) -> Fallback:
        return Fallback(timestamp=timestamp_message(self._clock()), reason=reason)
