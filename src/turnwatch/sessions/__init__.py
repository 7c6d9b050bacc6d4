"""Session log location, parsing, and incremental turn tracking."""

from .errors import PollCancelled, SessionReadTimeout, TurnwatchError
from .locator import SessionLocator
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
from .parser import LineOutcome, classify_line, parse_line, summarize_line
from .tracker import TurnTrackerService, WorktreeTurnTracker, derive_eye_state, map_coarse_status
from .transcript import read_transcript, read_transcript_with_path

__all__ = [
    "AssistantSnapshot",
    "CoarseSessionStatus",
    "EyeState",
    "LifecycleState",
    "LineOutcome",
    "LogFileHandle",
    "PollCancelled",
    "SessionLocator",
    "SessionReadTimeout",
    "TaskLifecycleEvent",
    "TranscriptMessage",
    "TurnCounters",
    "TurnInfo",
    "TurnTrackerService",
    "TurnwatchError",
    "WorktreeTurnTracker",
    "classify_line",
    "derive_eye_state",
    "map_coarse_status",
    "parse_line",
    "read_transcript",
    "read_transcript_with_path",
    "summarize_line",
]
