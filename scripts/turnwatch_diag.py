"""turnwatch diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from turnwatch.config import TurnwatchSettings, get_settings
from turnwatch.sessions import SessionLocator, TurnTrackerService, read_transcript


def load_locator(settings: TurnwatchSettings) -> SessionLocator:
    return SessionLocator(extension=settings.log_extension)


def _roots(args: argparse.Namespace, settings: TurnwatchSettings) -> list[str]:
    if args.root:
        return list(args.root)
    return [str(root) for root in settings.session_roots]


def cmd_locate(args: argparse.Namespace) -> None:
    settings = get_settings()
    locator = load_locator(settings)
    handle = locator.find_latest(_roots(args, settings), args.worktree)
    if handle is None:
        print(f"No session log found for {args.worktree}")
        raise SystemExit(1)
    print(json.dumps(handle.to_dict(), indent=2))


def cmd_poll(args: argparse.Namespace) -> None:
    settings = get_settings()
    service = TurnTrackerService(
        load_locator(settings), read_timeout_seconds=settings.read_timeout_seconds
    )
    info = service.poll(
        args.repo_root or args.worktree,
        args.worktree,
        _roots(args, settings),
        args.status,
    )
    print(json.dumps(info.to_dict(), indent=2))


def cmd_transcript(args: argparse.Namespace) -> None:
    settings = get_settings()
    messages = read_transcript(
        _roots(args, settings),
        args.session_id,
        locator=load_locator(settings),
        max_chars=settings.summary_max_chars,
        max_lines=settings.summary_max_lines,
        read_timeout_seconds=settings.read_timeout_seconds,
    )
    if messages is None:
        print(f"Session {args.session_id} not found")
        raise SystemExit(1)

    if args.markdown:
        lines = [f"# Session {args.session_id}"]
        for message in messages:
            stamp = f" ({message.timestamp})" if message.timestamp else ""
            lines.append(f"\n## {message.role}{stamp}\n\n{message.text}")
        print("\n".join(lines))
    else:
        print(json.dumps([message.to_dict() for message in messages], indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="turnwatch diagnostics")
    parser.add_argument(
        "--root",
        action="append",
        help="Session log root (repeatable); defaults to TURNWATCH_SESSION_ROOTS",
    )
    sub = parser.add_subparsers(dest="cmd")

    p_locate = sub.add_parser("locate", help="Show the latest session log for a worktree")
    p_locate.add_argument("--worktree", required=True)
    p_locate.set_defaults(func=cmd_locate)

    p_poll = sub.add_parser("poll", help="Poll turn info once for a worktree")
    p_poll.add_argument("--worktree", required=True)
    p_poll.add_argument("--repo-root")
    p_poll.add_argument(
        "--status",
        default="none",
        choices=["none", "created", "stopped", "error"],
        help="Coarse session status used when no log exists yet",
    )
    p_poll.set_defaults(func=cmd_poll)

    p_transcript = sub.add_parser("transcript", help="Print the transcript for a session id")
    p_transcript.add_argument("session_id")
    p_transcript.add_argument("--markdown", action="store_true", help="Output Markdown")
    p_transcript.set_defaults(func=cmd_transcript)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
