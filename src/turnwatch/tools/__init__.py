"""Tool registration for turnwatch."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..config import TurnwatchSettings
from ..sessions import CoarseSessionStatus, TurnTrackerService, read_transcript_with_path


@dataclass(slots=True)
class ToolHandles:
    poll_turn_info: Any
    read_transcript: Any
    locate_session: Any
    turn_service: TurnTrackerService


def register_tools(
    server: FastMCP,
    *,
    settings: TurnwatchSettings,
    turn_service: TurnTrackerService,
) -> ToolHandles:
    """Register turnwatch's MCP tools on the server."""

    coarse_values = sorted(status.value for status in CoarseSessionStatus)

    def _resolve_roots(session_roots: list[str] | None) -> list[str]:
        if session_roots:
            return [root for root in session_roots if root.strip()]
        return [str(root) for root in settings.session_roots]

    async def _poll_turn_info(
        repo_root: str,
        worktree_path: str,
        coarse_status: str = "none",
        session_roots: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Report whether the agent working in a worktree is still generating."""

        try:
            status = CoarseSessionStatus(coarse_status.strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"Invalid coarse_status '{coarse_status}'. Must be one of {coarse_values}"
            ) from exc

        cancel_event = threading.Event()
        try:
            info = await asyncio.to_thread(
                turn_service.poll,
                repo_root,
                worktree_path,
                _resolve_roots(session_roots),
                status,
                cancel_event=cancel_event,
            )
        except asyncio.CancelledError:
            cancel_event.set()
            raise

        _emit_log(
            context,
            "debug",
            "Polled turn info",
            extra={
                "worktree_path": worktree_path,
                "eye_state": info.eye_state.value,
                "session_path": info.session_path,
            },
        )
        return info.to_dict()

    async def _read_transcript(
        session_id: str,
        session_roots: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Return the full conversation transcript for a session id."""

        messages, session_path = await asyncio.to_thread(
            read_transcript_with_path,
            _resolve_roots(session_roots),
            session_id,
            locator=turn_service.locator,
            max_chars=settings.summary_max_chars,
            max_lines=settings.summary_max_lines,
            read_timeout_seconds=settings.read_timeout_seconds,
        )

        _emit_log(
            context,
            "info",
            "Read transcript",
            extra={
                "session_id": session_id,
                "found": messages is not None,
                "message_count": len(messages or []),
            },
        )
        return {
            "session_id": session_id,
            "found": messages is not None,
            "session_path": session_path,
            "messages": [message.to_dict() for message in messages or []],
        }

    async def _locate_session(
        worktree_path: str,
        session_roots: list[str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Find the most recent session log written for a worktree."""

        handle = await asyncio.to_thread(
            turn_service.locator.find_latest, _resolve_roots(session_roots), worktree_path
        )
        _emit_log(
            context,
            "debug",
            "Located session",
            extra={"worktree_path": worktree_path, "found": handle is not None},
        )
        return {
            "worktree_path": worktree_path,
            "session": handle.to_dict() if handle is not None else None,
        }

    tool_poll = server.tool(
        name="poll_turn_info",
        description=(
            "Report the live status of the coding agent working in a worktree "
            "(stopped, idle, generating, or error) with turn counters and the latest "
            "assistant message. coarse_status is the persisted hint (none, created, "
            "stopped, error) used while no session log exists yet."
        ),
    )(_poll_turn_info)

    tool_transcript = server.tool(
        name="read_transcript",
        description=(
            "Read the full transcript for a session id, including summarized tool calls "
            "and task lifecycle markers."
        ),
    )(_read_transcript)

    tool_locate = server.tool(
        name="locate_session",
        description="Find the most recently modified session log recorded for a worktree.",
    )(_locate_session)

    return ToolHandles(
        poll_turn_info=tool_poll,
        read_transcript=tool_transcript,
        locate_session=tool_locate,
        turn_service=turn_service,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
