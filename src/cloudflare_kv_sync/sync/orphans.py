"""Remove remote entries whose documents are gone.

The document store never reports deletions, so this pass is the only
way a removed document's KV entry gets cleaned up: every cached path
that no longer exists has its key deleted, and the cache entry goes with
it once the delete succeeds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudflare_kv_sync.core.async_utils import run_sync

from .documents import DocumentStore
from .models import ActionOutcome, OrphanReport, SyncAction

if TYPE_CHECKING:
    from cloudflare_kv_sync.core.client import CloudflareKVClient

    from .cache import SyncCache

logger = logging.getLogger(__name__)


class OrphanCollector:
    def __init__(
        self,
        store: DocumentStore,
        cache: SyncCache,
        client: CloudflareKVClient,
    ) -> None:
        self.store = store
        self.cache = cache
        self.client = client

    async def find_orphans(self) -> list[tuple[str, str]]:
        """Cached ``(path, key)`` pairs whose document no longer exists."""
        orphans = []
        for path, key in self.cache.items():
            if not await run_sync(self.store.exists, path):
                orphans.append((path, key))
        return orphans

    async def collect(self) -> tuple[OrphanReport, list[str]]:
        """Delete every orphaned key.

        Returns:
            The report and the failure messages for the error log.
        """
        results: list[ActionOutcome] = []
        messages: list[str] = []

        for path, key in await self.find_orphans():
            try:
                response = await run_sync(self.client.delete, key)
                success, error = response.success, response.error
            except Exception as exc:
                success, error = False, str(exc)

            results.append(
                ActionOutcome(
                    action=SyncAction.DELETE, key=key, success=success, error=error
                )
            )
            if success:
                self.cache.remove(path)
                logger.info("Removed orphan %s (was %s)", key, path)
            else:
                logger.warning("Failed to remove orphan %s: %s", key, error)
                messages.append(f"API error removing orphan {key}: {error}")

        return OrphanReport(results=results), messages
