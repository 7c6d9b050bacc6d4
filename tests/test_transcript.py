from __future__ import annotations

import json
from pathlib import Path

import pytest

from turnwatch.sessions.errors import SessionReadTimeout
from turnwatch.sessions.locator import SessionLocator
from turnwatch.sessions.models import TranscriptMessage
from turnwatch.sessions.transcript import read_transcript, read_transcript_with_path


def write_log(path: Path, *lines: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_reads_codex_transcript_by_session_suffix(tmp_path: Path) -> None:
    root = tmp_path / "sessions"
    write_log(
        root / "2026" / "02" / "17" / "rollout-2026-02-17T10-00-00-abc.jsonl",
        '{"type":"session_meta","payload":{"cwd":"/work"}}',
        '{"type":"response_item","payload":{"type":"message","role":"user","content":[{"type":"input_text","text":"ship a new level"}]}}',
        "",
        "garbage",
        '{"type":"response_item","payload":{"type":"message","role":"assistant","content":[{"type":"output_text","text":"I will update the game."}]}}',
    )

    messages = read_transcript([root], "abc")

    assert messages == [
        TranscriptMessage(role="user", text="ship a new level", timestamp=None),
        TranscriptMessage(role="assistant", text="I will update the game.", timestamp=None),
    ]


def test_includes_lifecycle_and_tool_summaries(tmp_path: Path) -> None:
    root = tmp_path / "claude"
    lines = [
        json.dumps({"type": "event_msg", "timestamp": "t0", "payload": {"type": "task_started"}}),
        json.dumps({"type": "user", "isMeta": True, "message": {"role": "user", "content": "caveat"}}),
        json.dumps({"type": "user", "timestamp": "t1", "message": {"role": "user", "content": "fix the bug"}}),
        json.dumps(
            {
                "type": "assistant",
                "timestamp": "t2",
                "message": {
                    "role": "assistant",
                    "content": [
                        {"type": "tool_use", "name": "Bash", "input": {"command": "npm test"}},
                    ],
                },
            }
        ),
        json.dumps(
            {
                "type": "user",
                "timestamp": "t3",
                "message": {
                    "role": "user",
                    "content": [{"type": "tool_result", "content": "1 failing", "is_error": True}],
                },
            }
        ),
        json.dumps({"type": "event_msg", "timestamp": "t4", "payload": {"type": "task_failed"}}),
    ]
    write_log(root / "project" / "sess-1.jsonl", *lines)

    messages = read_transcript([root], "sess-1")

    assert messages is not None
    assert [(message.role, message.text, message.timestamp) for message in messages] == [
        ("assistant", "Task started", "t0"),
        ("user", "fix the bug", "t1"),
        ("assistant", "Tool call: `Bash` (`npm test`)", "t2"),
        ("assistant", "Tool error: `1 failing`", "t3"),
        ("assistant", "Task failed", "t4"),
    ]


def test_missing_session_returns_none(tmp_path: Path) -> None:
    assert read_transcript([tmp_path / "missing"], "abc") is None
    assert read_transcript([tmp_path], "") is None


def test_file_without_messages_returns_empty_list(tmp_path: Path) -> None:
    path = write_log(tmp_path / "abc.jsonl", '{"type":"session_meta","payload":{"cwd":"/work"}}')

    messages, session_path = read_transcript_with_path([tmp_path], "abc")

    assert messages == []
    assert session_path == str(path)


def test_uses_locator_extension(tmp_path: Path) -> None:
    write_log(
        tmp_path / "abc.log",
        '{"type":"user","message":{"role":"user","content":"hello"}}',
    )

    messages = read_transcript([tmp_path], "abc", locator=SessionLocator(extension=".log"))

    assert messages == [TranscriptMessage(role="user", text="hello", timestamp=None)]
    assert read_transcript([tmp_path], "abc") is None


def test_deeply_nested_line_is_skipped(tmp_path: Path) -> None:
    write_log(
        tmp_path / "abc.jsonl",
        '{"type":"user","message":{"role":"user","content":"before"}}',
        "[" * 100_000 + "]" * 100_000,
        '{"type":"user","message":{"role":"user","content":"after"}}',
    )

    messages = read_transcript([tmp_path], "abc")

    assert messages is not None
    assert [message.text for message in messages] == ["before", "after"]


def test_read_honours_timeout(tmp_path: Path) -> None:
    write_log(tmp_path / "abc.jsonl", '{"type":"user","message":{"role":"user","content":"hi"}}')

    with pytest.raises(SessionReadTimeout):
        read_transcript([tmp_path], "abc", read_timeout_seconds=1e-9)
