"""Upload driver: push local item state into a remote vault's history.

For each local item the ``SyncOrchestrator``:

1. Inserts the item on the remote replica (same id) if it is missing.
2. Diffs ``Name``, ``Content`` and ``Tags`` (remote -> local).
3. Records the differences on the remote as one revision, based on the
   remote head (or, with ``base_strategy="local-head"``, the head the
   local replica last saw).  Divergence and conflicts are handled by the
   remote's revision store.

The whole pass runs in one outer remote transaction.  Each item runs in
its own savepoint, so a failing item is reported without aborting the
others.  Progress is reported through a ``(percent, message)`` callback;
``-1`` marks a failure message.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from ..errors import BackendUnavailable
from ..history.items import ItemTable
from ..history.models import ITEM_FIELDS, ConflictStatus, ItemRecord, RevisionType
from ..history.vault import VaultHistory
from .models import SyncAction, SyncReport, SyncResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

BASE_STRATEGIES = ("remote-head", "local-head")


class _ItemFailed(Exception):
    """Roll back one item's savepoint."""


def diff_fields(
    remote: ItemRecord | None, local: ItemRecord
) -> dict[str, tuple[str, str]]:
    """Field changes turning *remote* into *local*: ``{field: (old, new)}``."""
    remote_values = (
        remote.field_values() if remote is not None else dict.fromkeys(ITEM_FIELDS, "")
    )
    local_values = local.field_values()
    return {
        name: (remote_values[name], local_values[name])
        for name in ITEM_FIELDS
        if remote_values[name] != local_values[name]
    }


class SyncOrchestrator:
    """Upload every local item into a remote vault.

    Args:
        local_items: Live item rows of the local replica.
        remote_history: History engine of the remote replica.
        remote_name: Display name used in reports.
        base_strategy: ``remote-head`` (default) or ``local-head``.
    """

    def __init__(
        self,
        local_items: ItemTable,
        remote_history: VaultHistory,
        remote_name: str = "remote",
        base_strategy: str = "remote-head",
    ) -> None:
        if base_strategy not in BASE_STRATEGIES:
            raise ValueError(
                f"Invalid base_strategy: '{base_strategy}'. "
                f"Must be one of {list(BASE_STRATEGIES)}"
            )
        self.local_items = local_items
        self.remote = remote_history
        self.remote_name = remote_name
        self.base_strategy = base_strategy

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def upload(
        self,
        uploader_user_id: int,
        dry_run: bool = False,
        progress: ProgressCallback | None = None,
    ) -> SyncReport:
        """Run one upload pass.

        Args:
            uploader_user_id: Author of every recorded revision (and the
                originator of any conflict).
            dry_run: Compute per-item actions without writing anything.
            progress: Optional ``(percent, message)`` callback.

        Returns:
            A ``SyncReport``.  ``report.error`` is set when the pass as
            a whole failed and was rolled back.
        """
        notify = progress or (lambda _pct, _msg: None)
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[SyncResult] = []

        def finish(error: str | None = None) -> SyncReport:
            return SyncReport(
                remote=self.remote_name,
                uploader_user_id=uploader_user_id,
                dry_run=dry_run,
                results=results,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
                error=error,
            )

        notify(0, "Opening remote vault...")
        if not self.remote.ensure_schema():
            message = "Failed to open remote vault: schema check failed"
            notify(-1, message)
            return finish(message)
        notify(5, "Remote vault opened and schema ensured")

        try:
            item_ids = self.local_items.list_ids()
        except BackendUnavailable as exc:
            message = f"Upload failed: {exc}"
            logger.error("Cannot list local items: %s", exc)
            notify(-1, message)
            return finish(message)

        if dry_run:
            for item_id in item_ids:
                results.append(self._preview_item(item_id))
            notify(100, "Dry run complete (no changes made)")
            return finish()

        total = len(item_ids) or 1
        backend = self.remote.backend
        try:
            with backend.transaction():
                for idx, item_id in enumerate(item_ids, start=1):
                    notify(idx * 90 // total, f"Processing item {item_id}")
                    result = self._upload_item(item_id, uploader_user_id)
                    results.append(result)
                    if not result.success:
                        notify(-1, f"Failed to record revision for item {item_id}")
                    elif result.revision_id:
                        notify(
                            90 + idx * 9 // total,
                            f"Recorded revision {result.revision_id} "
                            f"for item {item_id}",
                        )
        except BackendUnavailable as exc:
            message = f"Upload failed: {exc}"
            logger.error("Upload to %s rolled back: %s", self.remote_name, exc)
            notify(-1, message)
            return finish(message)

        notify(
            100,
            "Upload completed (items & revisions). "
            "Please verify conflicts as needed.",
        )
        report = finish()
        logger.info(
            "Upload to %s: %d items, %d conflicts, %d errors",
            self.remote_name,
            len(report.results),
            len(report.conflicts),
            len(report.errors),
        )
        return report

    def start_upload(
        self,
        uploader_user_id: int,
        dry_run: bool = False,
        progress: ProgressCallback | None = None,
    ) -> threading.Thread:
        """Run ``upload`` on a background thread and return the thread."""
        thread = threading.Thread(
            target=self.upload,
            args=(uploader_user_id, dry_run, progress),
            name="vault-upload",
            daemon=True,
        )
        thread.start()
        return thread

    # ------------------------------------------------------------------
    # Per-item work
    # ------------------------------------------------------------------

    def _preview_item(self, item_id: int) -> SyncResult:
        try:
            local = self.local_items.get(item_id)
            remote = self.remote.store.items.get(item_id)
        except BackendUnavailable as exc:
            return SyncResult(
                item_id=item_id, action=SyncAction.SKIP, success=False, error=str(exc)
            )
        if local is None:
            return SyncResult(item_id=item_id, action=SyncAction.SKIP, success=True)
        changes = diff_fields(remote, local)
        if remote is None:
            action = SyncAction.CREATE_REMOTE
        elif changes:
            action = SyncAction.PUSH
        else:
            action = SyncAction.SKIP
        return SyncResult(
            item_id=item_id,
            action=action,
            success=True,
            changed_fields=sorted(changes),
        )

    def _upload_item(self, item_id: int, uploader_user_id: int) -> SyncResult:
        remote_store = self.remote.store
        try:
            with self.remote.backend.transaction():
                local = self.local_items.get(item_id)
                if local is None:
                    return SyncResult(
                        item_id=item_id, action=SyncAction.SKIP, success=True
                    )

                remote = remote_store.items.get(item_id)
                created = remote is None
                if created:
                    remote_store.items.insert(local)

                changes = diff_fields(remote, local)
                if not changes:
                    return SyncResult(
                        item_id=item_id,
                        action=SyncAction.CREATE_REMOTE if created else SyncAction.SKIP,
                        success=True,
                    )

                base = self._base_revision(local, remote)
                revision_id = remote_store.record_revision(
                    item_id, uploader_user_id, RevisionType.EDIT, changes, base
                )
                if not revision_id:
                    raise _ItemFailed(f"Failed to record revision for item {item_id}")
                return self._classify(item_id, revision_id, created, sorted(changes))
        except (BackendUnavailable, _ItemFailed) as exc:
            logger.error("Upload of item %d failed: %s", item_id, exc)
            return SyncResult(
                item_id=item_id, action=SyncAction.SKIP, success=False, error=str(exc)
            )

    def _base_revision(
        self, local: ItemRecord, remote: ItemRecord | None
    ) -> str | None:
        if remote is None:
            return None
        if self.base_strategy == "local-head":
            return local.head_revision_id
        return remote.head_revision_id

    def _classify(
        self,
        item_id: int,
        revision_id: str,
        created: bool,
        changed_fields: list[str],
    ) -> SyncResult:
        """Work out what ``record_revision`` did with *revision_id*."""
        store = self.remote.store
        head = store.heads.head_revision_id(item_id)
        if head == revision_id:
            action = SyncAction.CREATE_REMOTE if created else SyncAction.PUSH
            return SyncResult(
                item_id=item_id,
                action=action,
                success=True,
                revision_id=revision_id,
                changed_fields=changed_fields,
            )

        conflict_ids = [
            c.conflict_id
            for c in store.queue.list_item_conflicts(item_id, ConflictStatus.OPEN)
            if c.local_revision_id == revision_id
        ]
        if conflict_ids:
            action = SyncAction.CONFLICT
        elif any(
            p.parent_revision_id == revision_id for p in store.get_parents(head)
        ):
            action = SyncAction.MERGED
        else:
            # recorded off-head with nothing to merge against
            action = SyncAction.SKIP
        return SyncResult(
            item_id=item_id,
            action=action,
            success=True,
            revision_id=revision_id,
            conflict_ids=conflict_ids,
            changed_fields=changed_fields,
        )
