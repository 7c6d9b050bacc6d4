"""Locate agent session log files on disk."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Iterable, Iterator

from .models import LogFileHandle

DEFAULT_LOG_EXTENSION = ".jsonl"

logger = logging.getLogger(__name__)


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Absolute, normalised form of ``path`` without resolving symlinks."""

    return os.path.abspath(os.fspath(path))


def normalize_roots(roots: str | os.PathLike[str] | Iterable[str | os.PathLike[str]] | None) -> list[Path]:
    if roots is None:
        return []
    if isinstance(roots, (str, os.PathLike)):
        roots = [roots]
    normalized: list[Path] = []
    for root in roots:
        text = os.fspath(root)
        if text.strip():
            normalized.append(Path(text))
    return normalized


def iter_log_files(root: Path, extension: str = DEFAULT_LOG_EXTENSION) -> Iterator[Path]:
    """Yield every file under ``root`` whose name ends with ``extension``.

    A missing root yields nothing, as does any subdirectory that disappears
    while the walk is in progress. Other ``OSError``s propagate.
    """

    pending: list[Path] = [root]
    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as entries:
                children = list(entries)
        except FileNotFoundError:
            continue

        for entry in children:
            if entry.is_dir(follow_symlinks=False):
                pending.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=False) and entry.name.endswith(extension):
                yield Path(entry.path)


def extract_session_cwd(raw: Any) -> str | None:
    """Working directory recorded by a single decoded log record, if any."""

    if not isinstance(raw, dict):
        return None

    if raw.get("type") == "session_meta":
        payload = raw.get("payload")
        if isinstance(payload, dict):
            cwd = payload.get("cwd")
            if isinstance(cwd, str) and cwd.strip():
                return normalize_path(cwd)

    cwd = raw.get("cwd")
    if isinstance(cwd, str) and cwd.strip():
        return normalize_path(cwd)
    return None


def read_session_cwd(path: Path) -> str | None:
    """Scan ``path`` line by line for the first record naming a working directory."""

    with open(path, "rb") as handle:
        for raw_line in handle:
            line = raw_line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except (ValueError, RecursionError):
                continue
            cwd = extract_session_cwd(record)
            if cwd:
                return cwd
    return None


def session_file_matches(file_name: str, session_id: str, extension: str = DEFAULT_LOG_EXTENSION) -> bool:
    return file_name == f"{session_id}{extension}" or file_name.endswith(f"-{session_id}{extension}")


class SessionLocator:
    """Finds the log file an agent is writing for a given worktree.

    The working directory embedded in a log never changes once written, so the
    first successful lookup per file is cached for the life of the locator.
    Files that have no working directory yet are not cached and are re-read on
    the next call.
    """

    def __init__(self, *, extension: str = DEFAULT_LOG_EXTENSION) -> None:
        self._extension = extension
        self._cwd_cache: dict[str, str] = {}
        self._cache_lock = threading.Lock()

    @property
    def extension(self) -> str:
        return self._extension

    @property
    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cwd_cache)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cwd_cache.clear()

    def session_cwd(self, path: Path) -> str | None:
        key = str(path)
        with self._cache_lock:
            cached = self._cwd_cache.get(key)
        if cached is not None:
            return cached

        try:
            cwd = read_session_cwd(path)
        except FileNotFoundError:
            return None

        if cwd is not None:
            with self._cache_lock:
                cwd = self._cwd_cache.setdefault(key, cwd)
            logger.debug("Cached session working directory", extra={"path": key, "cwd": cwd})
        return cwd

    def find_latest(
        self,
        roots: str | os.PathLike[str] | Iterable[str | os.PathLike[str]] | None,
        worktree_path: str | os.PathLike[str],
    ) -> LogFileHandle | None:
        """Return the most recently modified log file recorded for ``worktree_path``.

        Ties on modification time go to the lexicographically greatest path.
        """

        target = normalize_path(worktree_path)
        latest: LogFileHandle | None = None

        for root in normalize_roots(roots):
            for path in iter_log_files(root, self._extension):
                try:
                    mtime_ns = path.stat().st_mtime_ns
                except FileNotFoundError:
                    continue

                if self.session_cwd(path) != target:
                    continue

                if latest is None or (mtime_ns, str(path)) > (latest.mtime_ns, str(latest.path)):
                    latest = LogFileHandle(path=path, mtime_ns=mtime_ns, root=root)

        return latest

    def find_by_session_id(
        self,
        roots: str | os.PathLike[str] | Iterable[str | os.PathLike[str]] | None,
        session_id: str,
    ) -> Path | None:
        """Return the first log file named for ``session_id`` under any root."""

        session_id = session_id.strip()
        if not session_id:
            return None

        for root in normalize_roots(roots):
            for path in iter_log_files(root, self._extension):
                if session_file_matches(path.name, session_id, self._extension):
                    return path
        return None


__all__ = [
    "DEFAULT_LOG_EXTENSION",
    "SessionLocator",
    "extract_session_cwd",
    "iter_log_files",
    "normalize_path",
    "normalize_roots",
    "read_session_cwd",
    "session_file_matches",
]
