"""Incremental turn tracking over appended session logs."""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from .errors import PollCancelled, SessionReadTimeout
from .locator import SessionLocator, normalize_path
from .models import (
    AssistantSnapshot,
    CoarseSessionStatus,
    EyeState,
    LifecycleState,
    LogFileHandle,
    TaskLifecycleEvent,
    TranscriptMessage,
    TurnCounters,
    TurnInfo,
)
from .parser import LineOutcome, classify_line

READ_CHUNK_SIZE = 1024 * 1024

logger = logging.getLogger(__name__)

_COARSE_STATUS_EYE_STATES = {
    CoarseSessionStatus.NONE: EyeState.STOPPED,
    CoarseSessionStatus.CREATED: EyeState.GENERATING,
    CoarseSessionStatus.STOPPED: EyeState.STOPPED,
    CoarseSessionStatus.ERROR: EyeState.ERROR,
}


def map_coarse_status(status: CoarseSessionStatus | str) -> EyeState:
    """Eye state to report when no session log can be located."""

    return _COARSE_STATUS_EYE_STATES[CoarseSessionStatus(status)]


def derive_eye_state(counters: TurnCounters) -> EyeState:
    """Generating/idle decision for a tracker with a readable log."""

    if counters.has_task_lifecycle_events:
        if counters.task_started_index > counters.task_terminal_index:
            return EyeState.GENERATING
        return EyeState.IDLE

    if counters.last_user_prompt_index > counters.last_assistant_message_index:
        return EyeState.GENERATING
    return EyeState.IDLE


def read_byte_range(
    path: Path | str,
    start: int,
    end: int,
    *,
    deadline: float | None = None,
    cancel_event: threading.Event | None = None,
    chunk_size: int = READ_CHUNK_SIZE,
) -> bytes:
    """Read ``[start, end)`` from ``path``, looping over short reads.

    Stops early at end of file. ``deadline`` is a ``time.monotonic()`` value.
    """

    if end <= start:
        return b""

    chunks: list[bytes] = []
    remaining = end - start
    with open(path, "rb") as handle:
        handle.seek(start)
        while remaining > 0:
            if cancel_event is not None and cancel_event.is_set():
                raise PollCancelled(f"Poll cancelled while reading {path}")
            if deadline is not None and time.monotonic() >= deadline:
                raise SessionReadTimeout(f"Timed out reading {path} at offset {end - remaining}")
            chunk = handle.read(min(remaining, chunk_size))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
    return b"".join(chunks)


@dataclass(slots=True)
class WorktreeTurnTracker:
    """Read position and event counters for one bound session log."""

    session_path: str
    offset: int = 0
    buffer: bytes = b""
    counters: TurnCounters = field(default_factory=TurnCounters)
    latest_assistant_message: AssistantSnapshot | None = None
    updated_time: str | None = None

    def consume(self, data: bytes) -> int:
        """Feed appended bytes; returns the number of complete lines seen.

        Counters, snapshot, buffer and offset are committed together, so a
        failure part-way through leaves the tracker as it was.
        """

        if not data:
            return 0
        lines = (self.buffer + data).split(b"\n")
        pending = lines.pop()
        counters = replace(self.counters)
        latest = self.latest_assistant_message
        for raw_line in lines:
            line = raw_line.strip()
            if line:
                latest = _apply_outcome(counters, latest, classify_line(line.decode("utf-8", errors="replace")))

        self.counters = counters
        self.latest_assistant_message = latest
        self.buffer = pending
        self.offset += len(data)
        return len(lines)


def _apply_outcome(
    counters: TurnCounters, latest: AssistantSnapshot | None, outcome: LineOutcome
) -> AssistantSnapshot | None:
    if outcome.kind == "error":
        counters.malformed_lines += 1
        return latest
    if outcome.kind == "skipped":
        counters.ignored_lines += 1
        return latest

    event = outcome.event
    if isinstance(event, TaskLifecycleEvent):
        counters.has_task_lifecycle_events = True
        if event.state is LifecycleState.STARTED:
            counters.task_started_index += 1
        else:
            counters.task_terminal_index += 1
    elif isinstance(event, TranscriptMessage):
        if event.role == "user":
            counters.last_user_prompt_index += 1
            counters.last_user_prompt_timestamp = event.timestamp
        else:
            counters.last_assistant_message_index += 1
            counters.last_assistant_message_timestamp = event.timestamp
            return AssistantSnapshot(text=event.text, timestamp=event.timestamp)
    return latest


class TurnTrackerService:
    """Owns every worktree tracker and the locator cache for one process.

    Polls for the same ``(repo_root, worktree)`` key are serialised by a
    per-key lock; different keys proceed in parallel.
    """

    def __init__(
        self,
        locator: SessionLocator | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        read_timeout_seconds: float | None = None,
    ) -> None:
        self._locator = locator or SessionLocator()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._read_timeout_seconds = read_timeout_seconds
        self._trackers: dict[str, WorktreeTurnTracker] = {}
        self._key_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def locator(self) -> SessionLocator:
        return self._locator

    @property
    def active_tracker_count(self) -> int:
        with self._registry_lock:
            return len(self._trackers)

    @staticmethod
    def tracker_key(repo_root: str | os.PathLike[str], worktree_path: str | os.PathLike[str]) -> str:
        return f"{normalize_path(repo_root)}::{normalize_path(worktree_path)}"

    def get_tracker(
        self, repo_root: str | os.PathLike[str], worktree_path: str | os.PathLike[str]
    ) -> WorktreeTurnTracker | None:
        with self._registry_lock:
            return self._trackers.get(self.tracker_key(repo_root, worktree_path))

    def close(self) -> None:
        """Drop all trackers and cached session metadata."""

        with self._registry_lock:
            self._trackers.clear()
        self._locator.clear_cache()

    def _lock_for(self, key: str) -> threading.Lock:
        # Locks outlive trackers and close(); the map is bounded by distinct worktree keys.
        with self._registry_lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def _discard(self, key: str) -> None:
        with self._registry_lock:
            self._trackers.pop(key, None)

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def poll(
        self,
        repo_root: str | os.PathLike[str],
        worktree_path: str | os.PathLike[str],
        session_roots: Iterable[str | os.PathLike[str]] | str | os.PathLike[str] | None,
        coarse_status: CoarseSessionStatus | str = CoarseSessionStatus.NONE,
        *,
        cancel_event: threading.Event | None = None,
    ) -> TurnInfo:
        """Advance the tracker for a worktree and report its current turn state."""

        coarse = CoarseSessionStatus(coarse_status)
        key = self.tracker_key(repo_root, worktree_path)
        with self._lock_for(key):
            return self._poll_locked(key, worktree_path, session_roots, coarse, cancel_event)

    def _poll_locked(
        self,
        key: str,
        worktree_path: str | os.PathLike[str],
        session_roots: Iterable[str | os.PathLike[str]] | str | os.PathLike[str] | None,
        coarse: CoarseSessionStatus,
        cancel_event: threading.Event | None,
    ) -> TurnInfo:
        try:
            handle: LogFileHandle | None = self._locator.find_latest(session_roots, worktree_path)
        except Exception as exc:
            self._discard(key)
            logger.warning("Session lookup failed", extra={"key": key, "error": str(exc)})
            return TurnInfo(eye_state=EyeState.ERROR, coarse_status=coarse, has_active_tracker=False)

        if handle is None:
            self._discard(key)
            return TurnInfo(
                eye_state=map_coarse_status(coarse), coarse_status=coarse, has_active_tracker=False
            )

        session_path = str(handle.path)
        try:
            size = os.stat(session_path).st_size
        except OSError as exc:
            self._discard(key)
            logger.warning(
                "Session stat failed", extra={"key": key, "path": session_path, "error": str(exc)}
            )
            return TurnInfo(
                eye_state=EyeState.ERROR,
                coarse_status=coarse,
                has_active_tracker=False,
                session_path=session_path,
            )

        tracker = self._ensure_tracker(key, session_path, size)

        deadline = (
            time.monotonic() + self._read_timeout_seconds
            if self._read_timeout_seconds is not None
            else None
        )
        try:
            data = read_byte_range(
                session_path, tracker.offset, size, deadline=deadline, cancel_event=cancel_event
            )
        except OSError as exc:
            self._discard(key)
            logger.warning(
                "Session read failed; tracker discarded",
                extra={"key": key, "path": session_path, "error": str(exc)},
            )
            return TurnInfo(
                eye_state=EyeState.ERROR,
                coarse_status=coarse,
                has_active_tracker=False,
                session_path=session_path,
            )

        try:
            tracker.consume(data)
        except Exception as exc:
            self._discard(key)
            logger.warning(
                "Session decode failed; tracker discarded",
                extra={"key": key, "path": session_path, "error": repr(exc)},
            )
            return TurnInfo(
                eye_state=EyeState.ERROR,
                coarse_status=coarse,
                has_active_tracker=False,
                session_path=session_path,
            )
        tracker.updated_time = self._now_iso()

        return TurnInfo(
            eye_state=derive_eye_state(tracker.counters),
            coarse_status=coarse,
            has_active_tracker=True,
            session_path=session_path,
            counters=replace(tracker.counters),
            latest_assistant_message=tracker.latest_assistant_message,
            updated_time=tracker.updated_time,
        )

    def _ensure_tracker(self, key: str, session_path: str, size: int) -> WorktreeTurnTracker:
        with self._registry_lock:
            tracker = self._trackers.get(key)

        if tracker is None:
            reason = "new"
        elif tracker.session_path != session_path:
            reason = "path_changed"
        elif size < tracker.offset:
            reason = "truncated"
        else:
            return tracker

        logger.debug(
            "Rebuilding turn tracker",
            extra={"key": key, "path": session_path, "reason": reason, "size": size},
        )
        tracker = WorktreeTurnTracker(session_path=session_path, updated_time=self._now_iso())
        with self._registry_lock:
            self._trackers[key] = tracker
        return tracker


__all__ = [
    "TurnTrackerService",
    "WorktreeTurnTracker",
    "derive_eye_state",
    "map_coarse_status",
    "read_byte_range",
]
