"""One-shot transcript reads by session id."""

from __future__ import annotations

import logging
import os
import time
from typing import Iterable

from .locator import SessionLocator
from .models import TranscriptMessage
from .parser import DEFAULT_SUMMARY_MAX_CHARS, DEFAULT_SUMMARY_MAX_LINES, parse_transcript_text
from .tracker import read_byte_range

logger = logging.getLogger(__name__)


def read_transcript(
    session_roots: Iterable[str | os.PathLike[str]] | str | os.PathLike[str] | None,
    session_id: str,
    *,
    locator: SessionLocator | None = None,
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    max_lines: int = DEFAULT_SUMMARY_MAX_LINES,
    read_timeout_seconds: float | None = None,
) -> list[TranscriptMessage] | None:
    """Return the full display transcript for ``session_id``.

    ``None`` means no log file exists for the session; an empty list means the
    file exists but holds nothing displayable yet. The whole file is re-read on
    every call, bounded by ``read_timeout_seconds`` when given.
    """

    messages, _ = read_transcript_with_path(
        session_roots,
        session_id,
        locator=locator,
        max_chars=max_chars,
        max_lines=max_lines,
        read_timeout_seconds=read_timeout_seconds,
    )
    return messages


def read_transcript_with_path(
    session_roots: Iterable[str | os.PathLike[str]] | str | os.PathLike[str] | None,
    session_id: str,
    *,
    locator: SessionLocator | None = None,
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    max_lines: int = DEFAULT_SUMMARY_MAX_LINES,
    read_timeout_seconds: float | None = None,
) -> tuple[list[TranscriptMessage] | None, str | None]:
    locator = locator or SessionLocator()
    path = locator.find_by_session_id(session_roots, session_id)
    if path is None:
        logger.info("No session log found", extra={"session_id": session_id})
        return None, None

    deadline = time.monotonic() + read_timeout_seconds if read_timeout_seconds is not None else None
    try:
        size = os.stat(path).st_size
        data = read_byte_range(path, 0, size, deadline=deadline)
    except FileNotFoundError:
        logger.info("Session log vanished before read", extra={"session_id": session_id, "path": str(path)})
        return None, None

    text = data.decode("utf-8", errors="replace")
    return parse_transcript_text(text, max_chars=max_chars, max_lines=max_lines), str(path)


__all__ = ["read_transcript", "read_transcript_with_path"]
