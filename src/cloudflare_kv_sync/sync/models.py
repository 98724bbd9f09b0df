"""Pydantic models for the KV sync engine.

Defines the data contracts shared by the sync modules:

- ``SyncAction``: Remote operations the reconciler can issue.
- ``ActionOutcome``: One attempted remote operation.
- ``SyncResult``: Outcome of reconciling one document.
- ``DuplicateReassignment``: One identifier rewritten by the duplicate pass.
- ``OrphanReport``: Aggregate result of the orphan pass.
- ``BulkSyncReport``: Aggregate result of a sync-all run.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SyncAction(str, Enum):
    """Remote operations issued by the reconciler."""

    CREATE = "create"
    DELETE = "delete"


class ActionOutcome(BaseModel):
    """One attempted remote operation.

    Attributes:
        action: CREATE (put) or DELETE.
        key: The KV key the operation targeted.
        success: Whether the remote store accepted it.
        error: Provider-supplied reason on failure.
    """

    action: SyncAction
    key: str
    success: bool
    error: str | None = None

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of reconciling one document.

    A result is *skipped* when no remote effect was intended; a skipped
    result with ``error`` set means the metadata was malformed. Otherwise
    the result is *acted*: ``actions`` lists every remote call attempted
    in order, and ``error`` explains an abort (e.g. the stale key could
    not be deleted).

    Attributes:
        path: Document path.
        skipped: No remote effect intended.
        error: Message describing a metadata problem or an abort.
        actions: Remote operations attempted, in order.
        warnings: Problems worth logging that did not change the outcome.
    """

    path: str
    skipped: bool = True
    error: str | None = None
    actions: list[ActionOutcome] = []
    warnings: list[str] = []

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        """Acted, and every remote operation succeeded."""
        return (
            not self.skipped
            and self.error is None
            and all(a.success for a in self.actions)
        )

    @property
    def failed(self) -> bool:
        """Acted, but something went wrong."""
        return not self.skipped and not self.succeeded

    @property
    def failure_reason(self) -> str | None:
        """The first failed operation's reason, else ``error``."""
        for outcome in self.actions:
            if not outcome.success:
                return outcome.error
        return self.error


class DuplicateReassignment(BaseModel):
    """A document whose identifier was replaced to break a key collision.

    Attributes:
        key: The colliding KV key.
        path: The document that received a new identifier.
        old_id: The identifier it declared before.
        new_id: The freshly generated identifier.
    """

    key: str
    path: str
    old_id: str
    new_id: str

    model_config = {"frozen": True}


class OrphanReport(BaseModel):
    """Aggregate result of one orphan pass.

    Attributes:
        results: One DELETE outcome per orphaned cache entry, in order.
    """

    results: list[ActionOutcome] = []

    model_config = {"frozen": True}

    @property
    def removed(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


class BulkSyncReport(BaseModel):
    """Aggregate report for a sync-all run.

    Attributes:
        results: One ``SyncResult`` per document, in processing order.
        reassignments: Identifiers rewritten by the duplicate pass.
        orphans: Result of the orphan pass.
        messages: Every failure message written to the error log.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    results: list[SyncResult] = []
    reassignments: list[DuplicateReassignment] = []
    orphans: OrphanReport = OrphanReport()
    messages: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> list[SyncResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if r.failed]

    @property
    def skipped(self) -> list[SyncResult]:
        return [r for r in self.results if r.skipped]

    def summary(self) -> str:
        """One-line count summary, as shown to the user after a run."""
        return (
            f"Sync complete: {len(self.succeeded)} successful, "
            f"{len(self.failed)} failed"
        )
