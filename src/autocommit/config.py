"""Runtime settings and logging setup for autocommit."""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import pydantic
from pydantic import BaseModel, field_validator
from rich.console import Console
from rich.logging import RichHandler

from autocommit.errors import ValidationError

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 30.0
MAX_RESPONSE_TOKENS = 60


class Settings(BaseModel):
    """Settings resolved from the environment."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT
    max_response_tokens: int = MAX_RESPONSE_TOKENS
    home: Path = Path.home() / ".autocommit"
    log_level: str = "INFO"

    @field_validator("api_key", "base_url", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request timeout must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def registry_file(self) -> Path:
        return self.home / "schedules.json"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from environment variables.

    Unset variables keep their defaults. Raises ValidationError if a value
    is present but unusable.
    """
    env = os.environ if environ is None else environ
    values = {"api_key": env.get("OPENAI_API_KEY")}

    if env.get("AUTOCOMMIT_MODEL"):
        values["model"] = env["AUTOCOMMIT_MODEL"]
    if env.get("OPENAI_BASE_URL"):
        values["base_url"] = env["OPENAI_BASE_URL"]
    if env.get("AUTOCOMMIT_TIMEOUT"):
        values["request_timeout"] = env["AUTOCOMMIT_TIMEOUT"]
    if env.get("AUTOCOMMIT_HOME"):
        values["home"] = Path(env["AUTOCOMMIT_HOME"]).expanduser()
    if env.get("AUTOCOMMIT_LOG_LEVEL"):
        values["log_level"] = env["AUTOCOMMIT_LOG_LEVEL"]

    try:
        return Settings(**values)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}") from e


def configure_logging(level: str = "INFO") -> None:
    """Send process logging to stderr through rich."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
