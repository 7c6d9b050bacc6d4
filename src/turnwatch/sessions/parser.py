"""Line parser for newline-delimited JSON agent session logs.

Two upstream record shapes are understood:

* envelope records (``{"type": "event_msg" | "response_item", "timestamp", "payload"}``)
  carrying task lifecycle markers and chat messages;
* chat records (``{"type": "user" | "assistant", "isMeta", "message": {...}}``)
  whose content is either a plain string or a list of typed segments.

Each decoder claims a record by its top-level ``type`` and validates it with a
pydantic model; the first decoder that claims a record decides its outcome.
Malformed input never raises: it is reported as an ``error`` outcome instead.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .models import LifecycleState, TaskLifecycleEvent, TranscriptMessage

TASK_STARTED_EVENT_TYPE = "task_started"
TERMINAL_TASK_EVENT_TYPES = frozenset(
    {
        "task_complete",
        "task_failed",
        "task_error",
        "task_cancelled",
        "task_canceled",
    }
)

TOOL_SUMMARY_FIELDS = ("description", "command", "pattern", "path")
DEFAULT_SUMMARY_MAX_CHARS = 80
DEFAULT_SUMMARY_MAX_LINES = 3

_RESPONSE_SEGMENT_TYPES = frozenset({"input_text", "output_text"})
_CHAT_RECORD_TYPES = frozenset({"user", "assistant"})
_SEGMENT_SEPARATOR = "\n\n"

_LIFECYCLE_SUMMARIES = {
    "task_started": "Task started",
    "task_complete": "Task complete",
    "task_failed": "Task failed",
    "task_error": "Task errored",
    "task_cancelled": "Task cancelled",
    "task_canceled": "Task cancelled",
}

OutcomeKind = Literal["ok", "skipped", "error"]
ParsedEvent = TranscriptMessage | TaskLifecycleEvent


@dataclass(slots=True, frozen=True)
class LineOutcome:
    """Result of classifying one log line."""

    kind: OutcomeKind
    event: ParsedEvent | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind == "ok"


def _ok(event: ParsedEvent) -> LineOutcome:
    return LineOutcome(kind="ok", event=event)


def _skipped(reason: str) -> LineOutcome:
    return LineOutcome(kind="skipped", reason=reason)


def _error(reason: str) -> LineOutcome:
    return LineOutcome(kind="error", reason=reason)


class _LogRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _string_or_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str


class EventMsgRecord(_LogRecord):
    type: Literal["event_msg"]
    payload: EventPayload


class ResponseItemRecord(_LogRecord):
    type: Literal["response_item"]
    payload: dict[str, Any]


class ResponseMessagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["message"]
    role: Literal["user", "assistant"]
    content: Any = None


class ChatMessageBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: str | list[Any]


class ChatRecord(_LogRecord):
    type: Literal["user", "assistant"]
    message: ChatMessageBody

    @model_validator(mode="after")
    def _role_matches_type(self) -> "ChatRecord":
        if self.message.role != self.type:
            raise ValueError(
                f"message.role '{self.message.role}' does not match record type '{self.type}'"
            )
        return self


def _join_segments(parts: Iterable[str]) -> str:
    return _SEGMENT_SEPARATOR.join(parts).strip()


def _text_segments(content: Any, accepted_types: frozenset[str]) -> list[str]:
    if not isinstance(content, list):
        return []
    segments: list[str] = []
    for item in content:
        if not isinstance(item, dict) or item.get("type") not in accepted_types:
            continue
        text = item.get("text")
        if isinstance(text, str) and text.strip():
            segments.append(text)
    return segments


def normalize_response_content(content: Any) -> str:
    """Join ``input_text``/``output_text`` segments with a blank line."""

    return _join_segments(_text_segments(content, _RESPONSE_SEGMENT_TYPES))


def normalize_chat_content(content: Any) -> str:
    if isinstance(content, str):
        return content.strip()
    return _join_segments(_text_segments(content, frozenset({"text"})))


def _decode_task_lifecycle(raw: dict[str, Any]) -> LineOutcome | None:
    if raw.get("type") != "event_msg":
        return None
    record = EventMsgRecord.model_validate(raw)
    event_type = record.payload.type
    if event_type == TASK_STARTED_EVENT_TYPE:
        state = LifecycleState.STARTED
    elif event_type in TERMINAL_TASK_EVENT_TYPES:
        state = LifecycleState.TERMINAL
    else:
        return _skipped(f"event_msg:{event_type}")
    return _ok(TaskLifecycleEvent(state=state, event_type=event_type, timestamp=record.timestamp))


def _decode_response_item(raw: dict[str, Any]) -> LineOutcome | None:
    if raw.get("type") != "response_item":
        return None
    record = ResponseItemRecord.model_validate(raw)
    if record.payload.get("type") != "message":
        return _skipped(f"response_item:{record.payload.get('type')}")
    payload = ResponseMessagePayload.model_validate(record.payload)
    text = normalize_response_content(payload.content)
    if not text:
        return _skipped("empty message text")
    return _ok(TranscriptMessage(role=payload.role, text=text, timestamp=record.timestamp))


def _decode_chat_record(raw: dict[str, Any]) -> LineOutcome | None:
    if raw.get("type") not in _CHAT_RECORD_TYPES:
        return None
    if raw.get("isMeta") is True:
        return _skipped("meta record")
    record = ChatRecord.model_validate(raw)
    text = normalize_chat_content(record.message.content)
    if not text:
        return _skipped("no plain text content")
    return _ok(TranscriptMessage(role=record.type, text=text, timestamp=record.timestamp))


_DECODERS: tuple[Callable[[dict[str, Any]], LineOutcome | None], ...] = (
    _decode_task_lifecycle,
    _decode_response_item,
    _decode_chat_record,
)


def classify_record(raw: Any) -> LineOutcome:
    """Classify an already-decoded JSON value."""

    if not isinstance(raw, dict):
        return _error("record is not a JSON object")
    for decoder in _DECODERS:
        try:
            outcome = decoder(raw)
        except ValidationError as exc:
            return _error(f"{raw.get('type')}: {exc.error_count()} validation error(s)")
        if outcome is not None:
            return outcome
    return _skipped(f"unrecognized record type {raw.get('type')!r}")


def classify_line(raw_line: str | bytes) -> LineOutcome:
    """Classify a single raw line into an ok/skipped/error outcome."""

    line = raw_line.strip()
    if not line:
        return _skipped("blank line")
    try:
        raw = json.loads(line)
    except (ValueError, RecursionError):
        return _error("invalid JSON")
    return classify_record(raw)


def parse_line(raw_line: str | bytes) -> ParsedEvent | None:
    """Return the canonical event for a line, or ``None`` when there is none."""

    return classify_line(raw_line).event


def truncate_chars(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1].rstrip() + "…"


def summarize_text(text: str, *, max_lines: int = DEFAULT_SUMMARY_MAX_LINES) -> str:
    """Clip free text to ``max_lines`` lines, noting how many were dropped."""

    lines = text.strip().splitlines()
    if not lines:
        return "no output"
    if len(lines) <= max_lines:
        return "\n".join(lines)
    hidden = len(lines) - max_lines
    return "\n".join(lines[:max_lines]) + f"\n(+{hidden} more lines)"


def _tool_input_summary(tool_input: Any, max_chars: int) -> str | None:
    if not isinstance(tool_input, dict):
        return None
    for field_name in TOOL_SUMMARY_FIELDS:
        value = tool_input.get(field_name)
        if isinstance(value, str) and value.strip():
            return truncate_chars(" ".join(value.split()), max_chars)
    return None


def summarize_tool_use(segment: dict[str, Any], *, max_chars: int = DEFAULT_SUMMARY_MAX_CHARS) -> str:
    name = segment.get("name")
    tool_name = name.strip() if isinstance(name, str) and name.strip() else "unknown"
    detail = _tool_input_summary(segment.get("input"), max_chars)
    if detail:
        return f"Tool call: `{tool_name}` (`{detail}`)"
    return f"Tool call: `{tool_name}`"


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str)
        )
    return ""


def summarize_tool_result(segment: dict[str, Any], *, max_lines: int = DEFAULT_SUMMARY_MAX_LINES) -> str:
    label = "Tool error" if segment.get("is_error") is True else "Tool result"
    summary = summarize_text(_tool_result_text(segment.get("content")), max_lines=max_lines)
    return f"{label}: `{summary}`"


def _summarize_chat_record(raw: dict[str, Any], *, max_chars: int, max_lines: int) -> list[TranscriptMessage]:
    try:
        record = ChatRecord.model_validate(raw)
    except ValidationError:
        return []

    content = record.message.content
    timestamp = record.timestamp
    if isinstance(content, str):
        text = content.strip()
        return [TranscriptMessage(role=record.type, text=text, timestamp=timestamp)] if text else []

    messages: list[TranscriptMessage] = []
    pending: list[str] = []

    def flush() -> None:
        text = _join_segments(pending)
        pending.clear()
        if text:
            messages.append(TranscriptMessage(role=record.type, text=text, timestamp=timestamp))

    for segment in content:
        if not isinstance(segment, dict):
            continue
        segment_type = segment.get("type")
        if segment_type == "text":
            text = segment.get("text")
            if isinstance(text, str) and text.strip():
                pending.append(text)
        elif segment_type == "tool_use":
            flush()
            summary = summarize_tool_use(segment, max_chars=max_chars)
            messages.append(TranscriptMessage(role="assistant", text=summary, timestamp=timestamp))
        elif segment_type == "tool_result":
            flush()
            summary = summarize_tool_result(segment, max_lines=max_lines)
            messages.append(TranscriptMessage(role="assistant", text=summary, timestamp=timestamp))
    flush()
    return messages


def summarize_record(
    raw: Any,
    *,
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    max_lines: int = DEFAULT_SUMMARY_MAX_LINES,
) -> list[TranscriptMessage]:
    """Transcript view of a record, including synthesized tool and lifecycle lines."""

    if isinstance(raw, dict) and raw.get("type") in _CHAT_RECORD_TYPES:
        if raw.get("isMeta") is True:
            return []
        return _summarize_chat_record(raw, max_chars=max_chars, max_lines=max_lines)

    outcome = classify_record(raw)
    event = outcome.event
    if isinstance(event, TaskLifecycleEvent):
        text = _LIFECYCLE_SUMMARIES.get(event.event_type, "Task finished")
        return [TranscriptMessage(role="assistant", text=text, timestamp=event.timestamp)]
    if isinstance(event, TranscriptMessage):
        return [event]
    return []


def summarize_line(
    raw_line: str | bytes,
    *,
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    max_lines: int = DEFAULT_SUMMARY_MAX_LINES,
) -> list[TranscriptMessage]:
    line = raw_line.strip()
    if not line:
        return []
    try:
        raw = json.loads(line)
    except (ValueError, RecursionError):
        return []
    return summarize_record(raw, max_chars=max_chars, max_lines=max_lines)


def parse_transcript_text(
    text: str,
    *,
    max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    max_lines: int = DEFAULT_SUMMARY_MAX_LINES,
) -> list[TranscriptMessage]:
    """Parse a whole log into display messages, in file order."""

    messages: list[TranscriptMessage] = []
    for raw_line in text.split("\n"):
        messages.extend(summarize_line(raw_line, max_chars=max_chars, max_lines=max_lines))
    return messages


__all__ = [
    "ChatRecord",
    "EventMsgRecord",
    "LineOutcome",
    "ResponseItemRecord",
    "TERMINAL_TASK_EVENT_TYPES",
    "TOOL_SUMMARY_FIELDS",
    "classify_line",
    "classify_record",
    "normalize_chat_content",
    "normalize_response_content",
    "parse_line",
    "parse_transcript_text",
    "summarize_line",
    "summarize_record",
    "summarize_text",
    "summarize_tool_result",
    "summarize_tool_use",
    "truncate_chars",
]
