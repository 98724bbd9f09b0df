"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_result`` -- one line for a single-document sync.
- ``format_sync_report`` -- full post-sync summary of a bulk run.
- ``format_orphan_report`` -- summary of an orphan pass.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BulkSyncReport, OrphanReport, SyncResult


def _describe_actions(result: SyncResult) -> str:
    return ", ".join(
        f"{a.action.value} {a.key}" + ("" if a.success else " (failed)")
        for a in result.actions
    )


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_result(result: SyncResult) -> str:
    """Format a single-document outcome as one line (plus warnings)."""
    if result.skipped:
        line = f"{result.path}: skipped"
        if result.error:
            line += f" ({result.error})"
    elif result.succeeded:
        line = f"{result.path}: synced [{_describe_actions(result)}]"
    else:
        line = f"{result.path}: FAILED: {result.failure_reason}"
        if result.actions:
            line += f" [{_describe_actions(result)}]"

    lines = [line]
    for warning in result.warnings:
        lines.append(f"  warning: {warning}")
    return "\n".join(lines)


def format_orphan_report(report: OrphanReport) -> str:
    """Format an orphan pass. Failures are listed with their reason."""
    if not report.results:
        return "No orphaned entries found."
    lines = [
        f"Cleanup complete: {report.removed} successful, {report.failed} failed"
    ]
    for outcome in report.results:
        if outcome.success:
            lines.append(f"  removed {outcome.key}")
        else:
            lines.append(f"  failed {outcome.key}: {outcome.error}")
    return "\n".join(lines)


def format_sync_report(report: BulkSyncReport) -> str:
    """Format a complete bulk sync report as human-readable text.

    Sections are only included when they contain at least one entry.
    Skipped documents are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(report.summary())
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if report.reassignments:
        lines.append("Duplicate ids replaced:")
        for r in report.reassignments:
            lines.append(f"  {r.path}: {r.old_id} -> {r.new_id} ({r.key})")
        lines.append("")

    if report.succeeded:
        lines.append("Synced:")
        for r in report.succeeded:
            lines.append(f"  {r.path} [{_describe_actions(r)}]")
        lines.append("")

    if report.failed:
        lines.append("Failed:")
        for r in report.failed:
            lines.append(f"  {r.path}: {r.failure_reason}")
        lines.append("")

    if report.orphans.results:
        lines.append(format_orphan_report(report.orphans))
        lines.append("")

    skipped = len(report.skipped)
    if skipped > 0:
        lines.append(f"Skipped: {skipped} documents")
        lines.append("")

    if report.messages:
        lines.append(f"{len(report.messages)} message(s) written to the error log")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    entry: dict = {
        "path": result.path,
        "status": (
            "skipped"
            if result.skipped
            else "succeeded" if result.succeeded else "failed"
        ),
        "actions": [
            {
                "action": a.action.value,
                "key": a.key,
                "success": a.success,
                **({"error": a.error} if a.error else {}),
            }
            for a in result.actions
        ],
    }
    if result.error:
        entry["error"] = result.error
    if result.warnings:
        entry["warnings"] = list(result.warnings)
    return entry


def report_to_json(report: BulkSyncReport) -> dict:
    """Convert a bulk report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The sync report.

    Returns:
        Dict with timestamps, counts, and per-document details.
    """
    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "succeeded": len(report.succeeded),
            "failed": len(report.failed),
            "skipped": len(report.skipped),
            "reassigned": len(report.reassignments),
            "orphans_removed": report.orphans.removed,
            "orphans_failed": report.orphans.failed,
        },
        "results": [result_to_json(r) for r in report.results],
        "reassignments": [r.model_dump() for r in report.reassignments],
        "messages": list(report.messages),
    }
