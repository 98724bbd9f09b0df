"""Sync engine that orchestrates every pass over the vault.

The ``SyncEngine`` ties together the cache, reconciler, duplicate
resolver, orphan collector, error log and debounce scheduler. It exposes
the three triggers the host uses:

1. ``sync_document`` -- reconcile one document now.
2. ``sync_all`` -- resolve duplicate keys, reconcile every document in
   path order, then remove orphaned entries.
3. ``notify_changed`` -- debounced ``sync_document`` for change events.

All reconciliation runs under one ``asyncio.Lock`` so no two passes ever
overlap. Error handling is per-document: a single failure does not
abort a bulk run. Bulk runs write one batched error-log entry and save
the cache once; single-document runs log immediately and save only when
the cache changed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cloudflare_kv_sync.core.async_utils import run_sync
from cloudflare_kv_sync.core.client import CloudflareKVClient

from .cache import SyncCache
from .documents import DocumentStore, VaultDocumentStore
from .duplicates import DuplicateResolver
from .errorlog import ErrorLogSink
from .models import BulkSyncReport, OrphanReport, SyncResult
from .orphans import OrphanCollector
from .reconciler import Reconciler
from .scheduler import DebounceScheduler

if TYPE_CHECKING:
    from cloudflare_kv_sync.config import Config
    from cloudflare_kv_sync.config_schema import SyncSettings

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]

UNRESOLVED_DUPLICATE = "unresolved duplicate key"


def _log_notice(message: str) -> None:
    logger.info("%s", message)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Keep a vault's sync-enabled documents mirrored in Workers KV.

    Args:
        store: Document store for the vault.
        cache: Path -> key mapping (not yet loaded).
        client: KV client with blocking ``put``/``delete``.
        error_log: Sink for failure messages.
        settings: Sync behaviour (field names, policy, debounce delay).
        notifier: Receives short user-facing notices.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: SyncCache,
        client: CloudflareKVClient,
        error_log: ErrorLogSink,
        settings: SyncSettings,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.client = client
        self.error_log = error_log
        self.settings = settings
        self.notifier = notifier or _log_notice

        self.reconciler = Reconciler(store, cache, client, settings)
        self.duplicates = DuplicateResolver(store, settings)
        self.orphans = OrphanCollector(store, cache, client)
        self.scheduler = DebounceScheduler(on_error=self._debounce_failed)

        self._lock = asyncio.Lock()
        self.loaded = False

    @classmethod
    def from_config(
        cls,
        config: Config,
        settings: SyncSettings,
        notifier: Notifier | None = None,
    ) -> SyncEngine:
        """Build an engine over ``settings.vault`` using *config* credentials."""
        vault = Path(settings.vault).expanduser()
        return cls(
            store=VaultDocumentStore(vault, exclude={settings.error_log_file}),
            cache=SyncCache(vault / settings.cache_file),
            client=CloudflareKVClient(config),
            error_log=ErrorLogSink(vault / settings.error_log_file),
            settings=settings,
            notifier=notifier,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load the persisted cache.

        Raises:
            CacheLoadError: If the cache file is malformed. The engine
                must not be used in that case.
        """
        self.cache.load()
        self.loaded = True
        logger.info(
            "Loaded sync cache %s (%d tracked documents)",
            self.cache.path,
            len(self.cache),
        )

    def shutdown(self) -> None:
        """Cancel pending timers and make one best-effort cache save."""
        cancelled = self.scheduler.cancel_all()
        if cancelled:
            logger.info("Cancelled %d pending sync(s)", cancelled)
        if self.loaded and self.cache.dirty:
            try:
                self.cache.save()
            except Exception as exc:
                logger.error("Failed to save sync cache on shutdown: %s", exc)
                self.error_log.write(f"Error saving cache: {exc}")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def sync_document(
        self, path: str, notify_outcome: bool = False
    ) -> SyncResult:
        """Reconcile one document and report the outcome immediately."""
        async with self._lock:
            result, messages = await self._reconcile_one(path)
            messages.extend(await self._save_cache())

        if messages:
            await run_sync(self.error_log.write, messages)

        if notify_outcome:
            self.notifier(self._outcome_notice(result))
        return result

    async def sync_all(self) -> BulkSyncReport:
        """Run the full bulk pass: duplicates, every document, orphans."""
        started_at = _now()
        self.notifier("Syncing all documents...")
        batch = self.error_log.batch()
        results: list[SyncResult] = []

        async with self._lock:
            paths = await run_sync(self.store.list_paths)
            resolution = await self.duplicates.resolve(paths)
            batch.extend(resolution.messages)

            for path in paths:
                if path in resolution.unresolved:
                    results.append(
                        SyncResult(
                            path=path, skipped=False, error=UNRESOLVED_DUPLICATE
                        )
                    )
                    batch.add(f"Sync error for {path}: {UNRESOLVED_DUPLICATE}")
                    continue
                result, messages = await self._reconcile_one(path)
                results.append(result)
                batch.extend(messages)

            orphans, orphan_messages = await self.orphans.collect()
            batch.extend(orphan_messages)
            batch.extend(await self._save_cache())

        messages = list(batch.messages)
        await run_sync(batch.flush)

        report = BulkSyncReport(
            results=results,
            reassignments=resolution.reassignments,
            orphans=orphans,
            messages=messages,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(
            "Bulk sync finished: %d succeeded, %d failed, %d skipped",
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
        )
        self.notifier(report.summary())
        if orphans.results:
            self.notifier(self._cleanup_notice(orphans))
        return report

    async def remove_orphans(self) -> OrphanReport:
        """Run the orphan pass on its own."""
        async with self._lock:
            report, messages = await self.orphans.collect()
            messages.extend(await self._save_cache())

        if messages:
            await run_sync(self.error_log.write, messages)
        if report.results:
            self.notifier(self._cleanup_notice(report))
        return report

    def notify_changed(self, path: str) -> None:
        """Schedule a debounced sync of *path*.

        Must be called on the event loop thread.
        """
        self.scheduler.schedule(
            path,
            self.settings.debounce_delay,
            lambda: self.sync_document(path),
        )
        logger.debug(
            "Sync of %s scheduled in %ss", path, self.settings.debounce_delay
        )

    def status(self) -> dict[str, Any]:
        """Snapshot of engine state for the status tool."""
        return {
            "vault": str(Path(self.settings.vault).expanduser()),
            "cache_file": str(self.cache.path),
            "loaded": self.loaded,
            "tracked_documents": len(self.cache),
            "pending_syncs": len(self.scheduler),
            "auto_sync": self.settings.auto_sync,
            "debounce_delay": self.settings.debounce_delay,
            "missing_id_policy": self.settings.missing_id_policy,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _reconcile_one(self, path: str) -> tuple[SyncResult, list[str]]:
        """Reconcile *path*, turning any exception into a failed result.

        Returns:
            The result and the messages it contributes to the error log.
        """
        try:
            result = await self.reconciler.reconcile(path)
        except Exception as exc:
            logger.error("Error syncing %s: %s", path, exc)
            return (
                SyncResult(path=path, skipped=False, error=str(exc)),
                [f"Sync error for {path}: {exc}"],
            )

        messages = list(result.warnings)
        if result.failed:
            messages.append(f"API error syncing {path}: {result.failure_reason}")
        elif result.skipped and result.error:
            messages.append(result.error)
        return result, messages

    async def _save_cache(self) -> list[str]:
        """Save the cache if it changed; returns error-log messages."""
        if not self.cache.dirty:
            return []
        try:
            await run_sync(self.cache.save)
        except Exception as exc:
            logger.error("Failed to save sync cache %s: %s", self.cache.path, exc)
            return [f"Error saving cache: {exc}"]
        return []

    async def _debounce_failed(self, path: str, exc: Exception) -> None:
        await run_sync(
            self.error_log.write, f"Error in debounced sync of {path}: {exc}"
        )

    @staticmethod
    def _outcome_notice(result: SyncResult) -> str:
        if result.skipped:
            if result.error:
                return f"Error syncing: {result.error}"
            return "Document not marked for sync"
        if result.succeeded:
            return "Successful sync"
        return f"Error syncing: {result.failure_reason}"

    @staticmethod
    def _cleanup_notice(report: OrphanReport) -> str:
        return (
            f"Cleanup complete: {report.removed} successful, "
            f"{report.failed} failed"
        )
