"""Per-document reconciliation between a document and its KV entry.

Given the document's current metadata and the cached key, the
``Reconciler`` decides which remote operations to issue:

* Tracked, but no metadata / sync disabled: delete the cached key.
* Untracked, no metadata / sync disabled: nothing to do.
* Sync enabled without an id: governed by ``missing_id_policy``.
* Sync enabled with an id: delete the stale key if the computed key
  moved, then upload the content under the new key.

A stale key is always deleted before the new one is written, and the
write only happens if the delete succeeded, so a document never has two
live remote entries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudflare_kv_sync.core.async_utils import run_sync

from .documents import Document, DocumentStore, load_document
from .metadata import generate_id
from .models import ActionOutcome, SyncAction, SyncResult

if TYPE_CHECKING:
    from cloudflare_kv_sync.config_schema import SyncSettings
    from cloudflare_kv_sync.core.client import CloudflareKVClient

    from .cache import SyncCache

logger = logging.getLogger(__name__)


class Reconciler:
    """Bring one document's remote entry in line with its metadata.

    Args:
        store: Where documents are read from (and ids written to).
        cache: The path -> key mapping; updated as operations succeed.
        client: KV client exposing blocking ``put`` and ``delete``.
        settings: Field names and the missing-id policy.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: SyncCache,
        client: CloudflareKVClient,
        settings: SyncSettings,
    ) -> None:
        self.store = store
        self.cache = cache
        self.client = client
        self.settings = settings

    async def reconcile(self, path: str) -> SyncResult:
        """Reconcile the document at *path*.

        Remote failures are reported in the result. Exceptions from the
        document store propagate to the caller.
        """
        document = await run_sync(load_document, self.store, path, self.settings)
        warnings = [document.parse_error] if document.parse_error else []
        metadata = document.metadata
        previous = self.cache.get(path)

        if metadata is None or not metadata.sync_enabled:
            if previous is None:
                return SyncResult(path=path, warnings=warnings)
            outcome = await self._retire(path, previous)
            return SyncResult(
                path=path, skipped=False, actions=[outcome], warnings=warnings
            )

        key = metadata.remote_key
        if key is None:
            return await self._missing_id(document, previous, warnings)

        return await self._upload(document, key, previous, warnings)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _missing_id(
        self,
        document: Document,
        previous: str | None,
        warnings: list[str],
    ) -> SyncResult:
        path = document.path
        policy = self.settings.missing_id_policy
        message = f"Sync enabled but no {self.settings.id_key} in {path}"
        actions: list[ActionOutcome] = []

        if previous is not None:
            outcome = await self._retire(path, previous)
            actions.append(outcome)
            if not outcome.success:
                return SyncResult(
                    path=path, skipped=False, actions=actions, warnings=warnings
                )

        if policy == "assign":
            new_id = generate_id()
            await run_sync(
                self.store.set_field, path, self.settings.id_key, new_id
            )
            logger.info("Assigned %s %r to %s", self.settings.id_key, new_id, path)
            document = await run_sync(
                load_document, self.store, path, self.settings
            )
            key = document.metadata.remote_key if document.metadata else None
            if key is None:
                return SyncResult(
                    path=path,
                    skipped=not actions,
                    error=f"Unable to assign {self.settings.id_key} in {path}",
                    actions=actions,
                    warnings=warnings,
                )
            result = await self._upload(document, key, None, warnings)
            return result.model_copy(
                update={"actions": actions + result.actions}
            )

        if actions:
            if policy == "error":
                warnings = warnings + [message]
            return SyncResult(
                path=path, skipped=False, actions=actions, warnings=warnings
            )

        if policy == "error":
            return SyncResult(path=path, error=message, warnings=warnings)
        return SyncResult(path=path, warnings=warnings)

    async def _upload(
        self,
        document: Document,
        key: str,
        previous: str | None,
        warnings: list[str],
    ) -> SyncResult:
        path = document.path
        actions: list[ActionOutcome] = []

        if previous is not None and previous != key:
            outcome = await self._delete(previous)
            actions.append(outcome)
            if not outcome.success:
                return SyncResult(
                    path=path,
                    skipped=False,
                    error=f"Unable to delete old kv entry: {outcome.error}",
                    actions=actions,
                    warnings=warnings,
                )
            self.cache.remove(path)

        outcome = await self._put(key, document.content)
        actions.append(outcome)
        if outcome.success:
            self.cache.set(path, key)
        return SyncResult(
            path=path, skipped=False, actions=actions, warnings=warnings
        )

    async def _retire(self, path: str, key: str) -> ActionOutcome:
        """Delete *key* and forget *path* if the delete went through."""
        outcome = await self._delete(key)
        if outcome.success:
            self.cache.remove(path)
        return outcome

    # ------------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------------

    async def _put(self, key: str, body: str) -> ActionOutcome:
        try:
            result = await run_sync(self.client.put, key, body)
        except Exception as exc:
            logger.warning("PUT %s failed: %s", key, exc)
            return ActionOutcome(
                action=SyncAction.CREATE, key=key, success=False, error=str(exc)
            )
        return ActionOutcome(
            action=SyncAction.CREATE,
            key=key,
            success=result.success,
            error=result.error,
        )

    async def _delete(self, key: str) -> ActionOutcome:
        try:
            result = await run_sync(self.client.delete, key)
        except Exception as exc:
            logger.warning("DELETE %s failed: %s", key, exc)
            return ActionOutcome(
                action=SyncAction.DELETE, key=key, success=False, error=str(exc)
            )
        return ActionOutcome(
            action=SyncAction.DELETE,
            key=key,
            success=result.success,
            error=result.error,
        )
