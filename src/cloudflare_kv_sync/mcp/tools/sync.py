"""MCP tool handlers for KV document sync.

Defines four tools:

- ``kv_sync_document`` -- sync one document now.
- ``kv_sync_all`` -- duplicate pass, sync every document, orphan pass.
- ``kv_remove_orphans`` -- delete entries of documents that are gone.
- ``kv_sync_status`` -- engine and cache summary.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncEngine
from ...sync.reporter import (
    format_orphan_report,
    format_result,
    format_sync_report,
    report_to_json,
    result_to_json,
)
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_sync_document(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``kv_sync_document`` tool."""
    path = args.get("path")
    if not isinstance(path, str) or not path.strip():
        raise ValueError("path is required")
    path = path.strip().removeprefix("./")

    if not await run_sync(engine.store.exists, path):
        return build_error_response(
            "not_found",
            f"Document '{path}' does not exist in the vault.",
            "Use a path relative to the vault root. Entries of deleted "
            "documents are removed by kv_remove_orphans.",
        )

    result = await engine.sync_document(path)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_result(result))],
        structuredContent=result_to_json(result),
        isError=result.failed,
    )


async def _handle_sync_all(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``kv_sync_all`` tool."""
    report = await engine.sync_all()
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_report(report))],
        structuredContent=report_to_json(report),
    )


async def _handle_remove_orphans(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``kv_remove_orphans`` tool."""
    report = await engine.remove_orphans()
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_orphan_report(report))
        ],
        structuredContent={
            "removed": report.removed,
            "failed": report.failed,
            "results": [r.model_dump(mode="json") for r in report.results],
        },
    )


async def _handle_sync_status(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``kv_sync_status`` tool."""
    status = engine.status()
    lines = [
        "KV sync status",
        f"  Vault:             {status['vault']}",
        f"  Cache file:        {status['cache_file']}",
        f"  Tracked documents: {status['tracked_documents']}",
        f"  Pending syncs:     {status['pending_syncs']}",
        f"  Auto sync:         {'on' if status['auto_sync'] else 'off'}"
        f" ({status['debounce_delay']}s debounce)",
        f"  Missing id policy: {status['missing_id_policy']}",
    ]
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=status,
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_NO_ARGS = {"type": "object", "properties": {}, "required": []}

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="kv_sync_document",
            description=(
                "Sync one Markdown document to Cloudflare KV according to "
                "its frontmatter. Deletes the old key when the key moved "
                "or sync was turned off."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Document path relative to the vault root",
                    },
                },
                "required": ["path"],
            },
        ),
        handler=_handle_sync_document,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_sync_all",
            description=(
                "Sync every document: replace duplicate ids, upload all "
                "sync-enabled documents, then remove entries of deleted "
                "documents."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema=_NO_ARGS,
        ),
        handler=_handle_sync_all,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_remove_orphans",
            description=(
                "Delete KV entries whose documents no longer exist in the vault."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema=_NO_ARGS,
        ),
        handler=_handle_remove_orphans,
    ),
    ToolSpec(
        tool=types.Tool(
            name="kv_sync_status",
            description=(
                "Show the vault, number of tracked documents and pending "
                "automatic syncs."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema=_NO_ARGS,
        ),
        handler=_handle_sync_status,
    ),
]
