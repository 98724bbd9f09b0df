"""
Change notifications for auto-sync.

Watches the vault with watchdog and forwards Markdown modify/create/move
events to the engine's debounced sync. Observer callbacks run on
watchdog's thread, so every notification is handed to the event loop
with ``call_soon_threadsafe``.
"""

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .file_handler import to_relative

logger = logging.getLogger(__name__)


class DocumentChangeHandler(FileSystemEventHandler):
    """Translate filesystem events into relative document paths."""

    def __init__(
        self,
        root: Path,
        notify: Callable[[str], None],
        is_document: Callable[[str], bool],
        loop: asyncio.AbstractEventLoop,
    ):
        """
        Args:
            root: Vault root; event paths are made relative to it.
            notify: Called on the loop thread with each changed path.
            is_document: Filters out non-documents (hidden dirs, error log).
            loop: Event loop that owns the engine.
        """
        self.root = root
        self.notify = notify
        self.is_document = is_document
        self.loop = loop

    def _forward(self, raw_path: str | bytes) -> None:
        try:
            rel = to_relative(self.root, Path(os.fsdecode(raw_path)))
        except ValueError:
            return
        if not self.is_document(rel):
            return
        logger.debug("Change detected: %s", rel)
        self.loop.call_soon_threadsafe(self.notify, rel)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.dest_path)


class DocumentWatcher:
    """Owns the watchdog observer for one vault."""

    def __init__(
        self,
        root: Path,
        notify: Callable[[str], None],
        is_document: Callable[[str], bool],
    ):
        self.root = root
        self.notify = notify
        self.is_document = is_document
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start watching; must be called from inside the running loop
        unless *loop* is given."""
        if self._observer is not None:
            return
        handler = DocumentChangeHandler(
            self.root,
            self.notify,
            self.is_document,
            loop or asyncio.get_running_loop(),
        )
        observer = Observer()
        observer.schedule(handler, str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", self.root)

    def stop(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        try:
            observer.stop()
            observer.join(timeout=1.0)
        except Exception as exc:
            logger.warning("Error stopping file watcher: %s", exc)
        logger.info("Stopped watching %s", self.root)
