"""Configuration management for turnwatch."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_DEFAULT_SESSION_ROOTS = (Path("~/.codex/sessions"), Path("~/.claude/projects"))


class TurnwatchSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    session_roots: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=_DEFAULT_SESSION_ROOTS, validation_alias="TURNWATCH_SESSION_ROOTS"
    )
    log_extension: str = Field(default=".jsonl", validation_alias="TURNWATCH_LOG_EXTENSION")
    log_level: str = Field(default="INFO", validation_alias="TURNWATCH_LOG_LEVEL")
    read_timeout_seconds: float = Field(default=5.0, validation_alias="TURNWATCH_READ_TIMEOUT")
    summary_max_chars: int = Field(default=80, validation_alias="TURNWATCH_SUMMARY_MAX_CHARS")
    summary_max_lines: int = Field(default=3, validation_alias="TURNWATCH_SUMMARY_MAX_LINES")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TURNWATCH_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("session_roots", mode="before")
    @classmethod
    def _parse_session_roots(cls, value):
        if value is None or value == "":
            return _DEFAULT_SESSION_ROOTS
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value if str(item).strip())
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or _DEFAULT_SESSION_ROOTS
        raise TypeError(
            "TURNWATCH_SESSION_ROOTS must be a list of paths or a path-separated string"
        )

    @field_validator("log_extension")
    @classmethod
    def _validate_log_extension(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized.startswith(".") or len(normalized) < 2:
            raise ValueError("TURNWATCH_LOG_EXTENSION must look like '.jsonl'")
        return normalized

    @field_validator("read_timeout_seconds")
    @classmethod
    def _validate_read_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("TURNWATCH_READ_TIMEOUT must be > 0")
        return value

    @field_validator("summary_max_chars")
    @classmethod
    def _validate_summary_max_chars(cls, value: int) -> int:
        if value < 8:
            raise ValueError("TURNWATCH_SUMMARY_MAX_CHARS must be >= 8")
        return value

    @field_validator("summary_max_lines")
    @classmethod
    def _validate_summary_max_lines(cls, value: int) -> int:
        if value < 1:
            raise ValueError("TURNWATCH_SUMMARY_MAX_LINES must be >= 1")
        return value


@lru_cache(maxsize=1)
def get_settings() -> TurnwatchSettings:
    """Return cached settings instance."""

    settings = TurnwatchSettings()
    settings.session_roots = tuple(
        Path(os.path.abspath(path.expanduser())) for path in settings.session_roots
    )
    return settings


__all__ = ["TurnwatchSettings", "get_settings"]
