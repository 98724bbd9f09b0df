"""One-way document sync from a Markdown vault to Cloudflare Workers KV.

Architecture
------------
Each document opts in through frontmatter (``kv_sync: true``) and is
stored under ``collection/id`` (or just ``id``). The engine remembers
which key it last wrote for every path in a local cache, since it never
lists the remote namespace; that cache is how moved keys and deleted
documents are detected.

Modules:

- ``engine``      -- ``SyncEngine``: the host-facing triggers.
- ``reconciler``  -- ``Reconciler``: one document's delete/put decisions.
- ``duplicates``  -- ``DuplicateResolver``: breaks key collisions.
- ``orphans``     -- ``OrphanCollector``: removes keys of deleted documents.
- ``scheduler``   -- ``DebounceScheduler``: per-path debounce timers.
- ``cache``       -- ``SyncCache``: the persisted path -> key mapping.
- ``errorlog``    -- ``ErrorLogSink``: Markdown error log in the vault.
- ``documents``   -- ``DocumentStore`` protocol and the vault store.
- ``metadata``    -- frontmatter parsing and key building.
- ``models``      -- result and report data contracts.
- ``reporter``    -- human-readable and JSON report formatting.

Usage example
-------------
::

    from cloudflare_kv_sync.config import load_config
    from cloudflare_kv_sync.config_schema import SyncSettings
    from cloudflare_kv_sync.sync import SyncEngine, format_sync_report

    engine = SyncEngine.from_config(load_config(), SyncSettings(vault="notes"))
    engine.load()
    report = await engine.sync_all()
    print(format_sync_report(report))
"""

from .cache import CacheLoadError, SyncCache
from .engine import SyncEngine
from .models import (
    ActionOutcome,
    BulkSyncReport,
    DuplicateReassignment,
    OrphanReport,
    SyncAction,
    SyncResult,
)
from .reporter import (
    format_orphan_report,
    format_result,
    format_sync_report,
    report_to_json,
)

__all__ = [
    "ActionOutcome",
    "BulkSyncReport",
    "CacheLoadError",
    "DuplicateReassignment",
    "OrphanReport",
    "SyncAction",
    "SyncCache",
    "SyncEngine",
    "SyncResult",
    "format_orphan_report",
    "format_result",
    "format_sync_report",
    "report_to_json",
]
