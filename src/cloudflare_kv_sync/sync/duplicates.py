"""Break KV key collisions before a bulk upload.

Two documents that compute the same key would overwrite each other's
remote entry. The resolver groups sync-enabled documents by key, keeps
the id of the path that sorts first, and writes a fresh id into every
other colliding document. All rewrites are awaited before the bulk pass
reads the documents again, so it never sees a stale id.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cloudflare_kv_sync.core.async_utils import run_sync

from .documents import DocumentStore, load_document
from .metadata import generate_id
from .models import DuplicateReassignment

if TYPE_CHECKING:
    from cloudflare_kv_sync.config_schema import SyncSettings

logger = logging.getLogger(__name__)


@dataclass
class DuplicateResolution:
    """What one resolver pass changed.

    Attributes:
        reassignments: Ids that were replaced, in processing order.
        unresolved: Paths still colliding because their rewrite failed.
        messages: Lines for the error log, in processing order.
    """

    reassignments: list[DuplicateReassignment] = field(default_factory=list)
    unresolved: set[str] = field(default_factory=set)
    messages: list[str] = field(default_factory=list)


class DuplicateResolver:
    def __init__(self, store: DocumentStore, settings: SyncSettings) -> None:
        self.store = store
        self.settings = settings

    async def collect(self, paths: list[str]) -> dict[str, list[tuple[str, str]]]:
        """Map each computed key to its ``(path, id)`` claimants.

        Only documents with sync enabled and a usable id take part.
        Documents that cannot be read or parsed are left to the bulk pass
        to report.
        """
        by_key: dict[str, list[tuple[str, str]]] = defaultdict(list)
        for path in paths:
            try:
                document = await run_sync(
                    load_document, self.store, path, self.settings
                )
            except Exception as exc:
                logger.debug("Skipping %s in duplicate scan: %s", path, exc)
                continue
            metadata = document.metadata
            if metadata is None or not metadata.sync_enabled:
                continue
            key = metadata.remote_key
            if key is not None and metadata.id is not None:
                by_key[key].append((path, metadata.id))
        return by_key

    async def resolve(self, paths: list[str]) -> DuplicateResolution:
        """Give every colliding document but the first (by path) a new id."""
        resolution = DuplicateResolution()
        by_key = await self.collect(paths)

        for key in sorted(by_key):
            claimants = sorted(by_key[key])
            if len(claimants) < 2:
                continue
            keeper = claimants[0][0]
            logger.info(
                "Key %s claimed by %d documents, keeping %s",
                key,
                len(claimants),
                keeper,
            )
            for path, old_id in claimants[1:]:
                new_id = generate_id()
                try:
                    await run_sync(
                        self.store.set_field, path, self.settings.id_key, new_id
                    )
                except Exception as exc:
                    logger.error("Unable to rewrite id of %s: %s", path, exc)
                    resolution.unresolved.add(path)
                    resolution.messages.append(
                        f"Unable to replace duplicate ID in {path}: {exc}"
                    )
                    continue
                resolution.reassignments.append(
                    DuplicateReassignment(
                        key=key, path=path, old_id=old_id, new_id=new_id
                    )
                )
                resolution.messages.append(
                    f'Duplicate KV key "{key}" in {path}: '
                    f'replaced ID "{old_id}" with "{new_id}"'
                )

        return resolution
