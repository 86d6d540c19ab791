"""Pydantic models for the upload driver.

- ``SyncAction``: what happened to one item during an upload.
- ``SyncResult``: outcome for one item.
- ``SyncReport``: aggregate results for a full upload pass.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SyncAction(str, Enum):
    """Possible outcomes for one item."""

    SKIP = "skip"
    CREATE_REMOTE = "create_remote"
    PUSH = "push"
    MERGED = "merged"
    CONFLICT = "conflict"


class SyncResult(BaseModel):
    """Result of uploading one item.

    Attributes:
        item_id: Item id (same on both replicas).
        action: What was (or would be) done.
        success: Whether the item was processed without error.
        revision_id: Revision recorded on the remote replica, if any.
        conflict_ids: Conflicts opened by the upload.
        changed_fields: Fields that differed between the replicas.
        error: Error message if the item failed.
    """

    item_id: int
    action: SyncAction
    success: bool
    revision_id: str | None = None
    conflict_ids: list[str] = []
    changed_fields: list[str] = []
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for an upload pass.

    Attributes:
        remote: Display name of the remote replica.
        uploader_user_id: Identity the revisions were recorded under.
        dry_run: Whether changes were only computed.
        results: Per-item results.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass completed.
        error: Set when the pass as a whole failed and was rolled back.
    """

    remote: str
    uploader_user_id: int
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def created_remote(self) -> list[SyncResult]:
        """Results where action is CREATE_REMOTE."""
        return [
            r for r in self.results if r.action == SyncAction.CREATE_REMOTE
        ]

    @property
    def pushed(self) -> list[SyncResult]:
        return [r for r in self.results if r.action == SyncAction.PUSH]

    @property
    def merged(self) -> list[SyncResult]:
        return [r for r in self.results if r.action == SyncAction.MERGED]

    @property
    def conflicts(self) -> list[SyncResult]:
        return [r for r in self.results if r.action == SyncAction.CONFLICT]

    @property
    def skipped(self) -> list[SyncResult]:
        return [r for r in self.results if r.action == SyncAction.SKIP]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def ok(self) -> bool:
        return self.error is None and not self.errors

    def summary(self) -> str:
        """Format a short summary with counts by action."""
        lines = [
            f"Upload to '{self.remote}'" + (" (dry run)" if self.dry_run else ""),
            f"  Created remote: {len(self.created_remote)}",
            f"  Pushed:         {len(self.pushed)}",
            f"  Merged:         {len(self.merged)}",
            f"  Conflicts:      {len(self.conflicts)}",
            f"  Skipped:        {len(self.skipped)}",
            f"  Errors:         {len(self.errors)}",
            f"  Total:          {len(self.results)}",
        ]
        return "\n".join(lines)
