"""Divergence handling for a newly recorded revision.

For every field the local revision changed, the base, remote and local
values are three-way merged.  Either every field merges cleanly and a
merge revision with two parents becomes the new head, or each field that
did not merge gets its own open conflict and nothing is applied.  A
half-merged item (some fields from the merge, some still remote) is never
produced.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import BackendUnavailable
from .conflicts import ConflictQueue
from .merger import FieldMerger
from .models import RevisionType

if TYPE_CHECKING:
    from .store import RevisionStore

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Decide merge-or-escalate for a divergent write."""

    def __init__(
        self,
        store: RevisionStore,
        queue: ConflictQueue,
        merger: FieldMerger,
    ) -> None:
        self.store = store
        self.queue = queue
        self.merger = merger

    def detect_and_enqueue_conflicts(
        self,
        item_id: int,
        local_revision_id: str,
        base_revision_id: str | None,
        remote_revision_id: str,
        originator_user_id: int,
    ) -> list[str]:
        """Run ``detect`` in its own transaction.

        Joins the caller's transaction as a savepoint when one is open.
        Returns ``[]`` on backend failure (nothing persisted).
        """
        try:
            with self.store.backend.transaction():
                return self.detect(
                    item_id,
                    local_revision_id,
                    base_revision_id,
                    remote_revision_id,
                    originator_user_id,
                )
        except BackendUnavailable as exc:
            logger.error(
                "Conflict detection failed for item %d: %s", item_id, exc
            )
            return []

    def detect(
        self,
        item_id: int,
        local_revision_id: str,
        base_revision_id: str | None,
        remote_revision_id: str,
        originator_user_id: int,
    ) -> list[str]:
        """Merge or escalate every field of *local_revision_id*.

        Returns the ids of the conflicts created, empty when the
        divergence merged cleanly (or there was nothing to merge).
        Raises ``BackendUnavailable``.
        """
        if item_id <= 0 or not local_revision_id or not remote_revision_id:
            logger.warning(
                "Skipping conflict detection: item=%s local=%r remote=%r",
                item_id,
                local_revision_id,
                remote_revision_id,
            )
            return []

        store = self.store
        conflict_ids: list[str] = []
        staged: dict[str, str] = {}

        for field in store.revision_fields(local_revision_id):
            name = field.field_name
            base_val = store.field_value(base_revision_id, item_id, name)
            remote_val = store.field_value(remote_revision_id, item_id, name)
            local_val = field.new_value or ""

            result = self.merger.merge(base_val, local_val, remote_val, name)
            if result.clean and result.merged is not None:
                staged[name] = result.merged
                continue

            if result.primitive_failed:
                logger.warning(
                    "Escalating field %s of item %d after merge failure: %s",
                    name,
                    item_id,
                    result.failure,
                )
            conflict_ids.append(
                self.queue.enqueue(
                    item_id,
                    name,
                    base_revision_id if base_val else None,
                    local_revision_id,
                    remote_revision_id,
                    originator_user_id,
                )
            )

        if conflict_ids:
            if staged:
                logger.info(
                    "Holding back %d auto-merged fields of item %d until "
                    "%d conflicts are resolved",
                    len(staged),
                    item_id,
                    len(conflict_ids),
                )
            return conflict_ids

        if staged:
            changes = {
                name: (store.field_value(remote_revision_id, item_id, name), merged)
                for name, merged in staged.items()
            }
            merge_id, version_seq = store.insert_revision(
                item_id,
                originator_user_id,
                RevisionType.MERGE,
                changes,
                base_revision_id=remote_revision_id,
                parents=[remote_revision_id, local_revision_id],
                advance_head=True,
                apply_fields=True,
            )
            logger.info(
                "Auto-merged item %d into %s (seq %d)",
                item_id,
                merge_id,
                version_seq,
            )
        return conflict_ids
