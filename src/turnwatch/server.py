"""FastMCP server bootstrap for turnwatch."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import FastMCP

from . import __version__
from .config import TurnwatchSettings, get_settings
from .sessions import SessionLocator, TurnTrackerService
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the turnwatch server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_turn_service(settings: TurnwatchSettings) -> TurnTrackerService:
    """Construct the process-wide tracker service from settings."""

    return TurnTrackerService(
        SessionLocator(extension=settings.log_extension),
        read_timeout_seconds=settings.read_timeout_seconds,
    )


def create_server(
    settings: Optional[TurnwatchSettings] = None,
    turn_service: TurnTrackerService | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the turn tracking tools."""

    settings = settings or get_settings()
    turn_service = turn_service or build_turn_service(settings)

    server = FastMCP(
        name="turnwatch",
        instructions=(
            "turnwatch reports whether background coding agents are still generating "
            "by tailing their session logs, and renders full session transcripts. "
            "Poll poll_turn_info for live status; call read_transcript on demand."
        ),
    )

    handles = register_tools(server, settings=settings, turn_service=turn_service)

    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "session_roots": [str(root) for root in settings.session_roots],
            "log_extension": settings.log_extension,
            "trackers": {
                "active": turn_service.active_tracker_count,
                "cached_session_files": turn_service.locator.cache_size,
            },
        }
        return json.dumps(payload)

    server.resource(
        "resource://turnwatch/status",
        name="turnwatch_status",
        description="Provides the current runtime status for the turnwatch server.",
        mime_type="application/json",
    )(status_resource)

    setattr(server, "turnwatch_settings", settings)
    setattr(server, "turn_service", turn_service)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_payload", status_resource)
    return server


def main() -> None:
    """Entry point for running the turnwatch server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching turnwatch server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "session_roots": [str(root) for root in settings.session_roots],
        },
    )
    try:
        server.run()
    finally:
        getattr(server, "turn_service").close()


if __name__ == "__main__":
    main()
