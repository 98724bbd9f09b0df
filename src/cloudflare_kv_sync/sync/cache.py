"""Sync cache persistence layer.

The cache maps each document path to the KV key the engine believes is
currently stored for it. No listing API is ever called, so this file is
the only record of remote state; losing it means a manual sync-all is
needed to restore correctness.

Persisted form::

    {"syncedFiles": {"posts/hello.md": "blog/hello", ...}}

Key design choices:

* **Fail closed** -- a cache file that exists but is not a flat
  string-to-string mapping raises ``CacheLoadError``. Treating it as
  empty could re-create remote entries under stale assumptions.
* **Full, atomic writes** -- ``save()`` always serialises the whole
  mapping through a temp file and ``os.replace()``.
* **Unknown keys survive** -- other top-level fields of the file are
  written back untouched.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from cloudflare_kv_sync.file_handler import write_file_atomic

CACHE_FIELD = "syncedFiles"


class CacheLoadError(RuntimeError):
    """The persisted cache exists but cannot be trusted."""


class _CacheFile(BaseModel):
    syncedFiles: dict[str, str] = {}

    model_config = {"strict": True, "extra": "allow"}


class SyncCache:
    """Load, save, and query the path -> KV key mapping.

    Args:
        path: Location of the cache JSON file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._entries: dict[str, str] = {}
        self._extra: dict[str, Any] = {}
        self.dirty = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory mapping with the persisted one.

        A missing file yields an empty cache.

        Raises:
            CacheLoadError: If the file cannot be read or is not a
                ``{"syncedFiles": {str: str}}`` object.
        """
        if not self.path.exists():
            self._entries = {}
            self._extra = {}
            self.dirty = False
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CacheLoadError(
                f"Unable to read cache file {self.path}: {exc}"
            ) from exc

        if not isinstance(raw, dict):
            raise CacheLoadError(
                f"Unable to parse cache file {self.path}, "
                f"parsed object was type {type(raw).__name__}"
            )

        try:
            parsed = _CacheFile.model_validate(raw)
        except ValidationError as exc:
            raise CacheLoadError(
                f"Malformed {CACHE_FIELD} in cache file {self.path}: "
                f"{exc.error_count()} invalid value(s)"
            ) from exc

        self._entries = dict(parsed.syncedFiles)
        self._extra = {k: v for k, v in raw.items() if k != CACHE_FIELD}
        self.dirty = False

    def save(self) -> None:
        """Persist the full mapping atomically and clear ``dirty``.

        Errors (``OSError`` and friends) propagate; the caller decides
        how to report them.
        """
        data = {**self._extra, CACHE_FIELD: dict(self._entries)}
        write_file_atomic(self.path, json.dumps(data, indent=2))
        self.dirty = False

    # ------------------------------------------------------------------
    # Entry helpers
    # ------------------------------------------------------------------

    def get(self, doc_path: str) -> str | None:
        """Return the cached key for *doc_path*, or ``None``."""
        return self._entries.get(doc_path)

    def set(self, doc_path: str, key: str) -> None:
        """Record that *key* is stored for *doc_path*."""
        if self._entries.get(doc_path) != key:
            self._entries[doc_path] = key
            self.dirty = True

    def remove(self, doc_path: str) -> None:
        """Forget *doc_path*. No-op if absent."""
        if self._entries.pop(doc_path, None) is not None:
            self.dirty = True

    def items(self) -> list[tuple[str, str]]:
        """Snapshot of ``(path, key)`` pairs, safe to iterate while mutating."""
        return list(self._entries.items())

    def as_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __contains__(self, doc_path: object) -> bool:
        return doc_path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
