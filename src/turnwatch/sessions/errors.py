"""Exceptions raised by the session tracking modules."""

from __future__ import annotations


class TurnwatchError(RuntimeError):
    """Base class for turnwatch errors."""


class PollCancelled(TurnwatchError):
    """Raised when a poll is cancelled before it consumed any new bytes."""


class SessionReadTimeout(TimeoutError):
    """Raised when reading a session log exceeds its deadline.

    Being an ``OSError``, it is handled like any other read failure.
    """


__all__ = ["PollCancelled", "SessionReadTimeout", "TurnwatchError"]
