"""Append-only Markdown error log kept inside the vault.

Each entry is a timestamped heading followed by one bullet per message::

    ## 19 Oct 2026, 14:03:22
    - API error syncing posts/a.md: [{"code": 10000, ...}]

Single-document operations write one entry per call; bulk operations
collect messages in an ``ErrorBatch`` and write a single entry at the end.
If the log itself cannot be written, the failure goes to the process
logger instead and is never raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from cloudflare_kv_sync.file_handler import (
    read_file_with_encoding,
    write_file,
)

logger = logging.getLogger(__name__)


def format_header(now: datetime) -> str:
    """``19 Oct 2026, 14:03:22`` style heading text."""
    return f"{now.day} {now.strftime('%b %Y, %H:%M:%S')}"


def format_entry(messages: Iterable[str], now: datetime) -> str:
    bullets = "\n".join(f"- {m}" for m in messages)
    return f"\n## {format_header(now)}\n{bullets}\n"


class ErrorLogSink:
    """Write failure messages to the error log file.

    Args:
        path: Log file location.
        clock: Returns the timestamp for new entries.
    """

    def __init__(
        self,
        path: Path,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.path = path
        self._clock = clock

    def write(self, messages: str | Iterable[str]) -> None:
        """Append one entry holding *messages* (a string or several)."""
        lines = [messages] if isinstance(messages, str) else list(messages)
        if not lines:
            return
        entry = format_entry(lines, self._clock())
        try:
            existing = ""
            if self.path.exists():
                existing, _ = read_file_with_encoding(self.path)
            write_file(self.path, existing + entry)
        except Exception as exc:
            logger.error(
                "Failed to write error log %s: %s (messages: %s)",
                self.path,
                exc,
                lines,
            )

    def batch(self) -> ErrorBatch:
        """Start collecting messages for a single batched entry."""
        return ErrorBatch(self)


class ErrorBatch:
    """Messages gathered during one bulk pass, flushed as one entry.

    Usable as a context manager; leaving the block flushes.
    """

    def __init__(self, sink: ErrorLogSink) -> None:
        self._sink = sink
        self.messages: list[str] = []

    def add(self, message: str) -> None:
        self.messages.append(message)

    def extend(self, messages: Iterable[str]) -> None:
        self.messages.extend(messages)

    def flush(self) -> None:
        """Write everything collected so far as one entry, then reset."""
        if self.messages:
            self._sink.write(self.messages)
            self.messages = []

    def __enter__(self) -> ErrorBatch:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.flush()

    def __len__(self) -> int:
        return len(self.messages)
