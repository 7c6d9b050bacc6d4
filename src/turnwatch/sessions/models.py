"""Canonical event and status types shared by the session tracking modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

TranscriptRole = Literal["user", "assistant"]


class EyeState(str, Enum):
    """Coarse lifecycle summary shown to observers."""

    STOPPED = "stopped"
    IDLE = "idle"
    GENERATING = "generating"
    ERROR = "error"


class CoarseSessionStatus(str, Enum):
    """Externally persisted status hint used when no log file exists yet."""

    NONE = "none"
    CREATED = "created"
    STOPPED = "stopped"
    ERROR = "error"


class LifecycleState(str, Enum):
    STARTED = "started"
    TERMINAL = "terminal"


@dataclass(slots=True, frozen=True)
class TranscriptMessage:
    role: TranscriptRole
    text: str
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "text": self.text, "timestamp": self.timestamp}


@dataclass(slots=True, frozen=True)
class TaskLifecycleEvent:
    """A task start or terminal marker.

    ``event_type`` keeps the raw upstream name (``task_complete``,
    ``task_failed``...) so summaries can tell terminal outcomes apart.
    """

    state: LifecycleState
    event_type: str
    timestamp: str | None = None


@dataclass(slots=True, frozen=True)
class LogFileHandle:
    path: Path
    mtime_ns: int
    root: Path

    def to_dict(self) -> dict[str, Any]:
        return {"path": str(self.path), "mtime_ns": self.mtime_ns, "root": str(self.root)}


@dataclass(slots=True, frozen=True)
class AssistantSnapshot:
    text: str
    timestamp: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "timestamp": self.timestamp}


@dataclass(slots=True)
class TurnCounters:
    has_task_lifecycle_events: bool = False
    task_started_index: int = 0
    task_terminal_index: int = 0
    last_user_prompt_index: int = 0
    last_assistant_message_index: int = 0
    last_user_prompt_timestamp: str | None = None
    last_assistant_message_timestamp: str | None = None
    malformed_lines: int = 0
    ignored_lines: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_task_lifecycle_events": self.has_task_lifecycle_events,
            "task_started_index": self.task_started_index,
            "task_terminal_index": self.task_terminal_index,
            "last_user_prompt_index": self.last_user_prompt_index,
            "last_assistant_message_index": self.last_assistant_message_index,
            "last_user_prompt_timestamp": self.last_user_prompt_timestamp,
            "last_assistant_message_timestamp": self.last_assistant_message_timestamp,
            "malformed_lines": self.malformed_lines,
            "ignored_lines": self.ignored_lines,
        }


@dataclass(slots=True)
class TurnInfo:
    """Result of a single poll for one worktree."""

    eye_state: EyeState
    coarse_status: CoarseSessionStatus
    has_active_tracker: bool
    session_path: str | None = None
    counters: TurnCounters = field(default_factory=TurnCounters)
    latest_assistant_message: AssistantSnapshot | None = None
    updated_time: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "eye_state": self.eye_state.value,
            "coarse_status": self.coarse_status.value,
            "has_active_tracker": self.has_active_tracker,
            "session_path": self.session_path,
            "counters": self.counters.to_dict(),
            "latest_assistant_message": (
                self.latest_assistant_message.to_dict()
                if self.latest_assistant_message is not None
                else None
            ),
            "updated_time": self.updated_time,
        }


__all__ = [
    "AssistantSnapshot",
    "CoarseSessionStatus",
    "EyeState",
    "LifecycleState",
    "LogFileHandle",
    "TaskLifecycleEvent",
    "TranscriptMessage",
    "TranscriptRole",
    "TurnCounters",
    "TurnInfo",
]
