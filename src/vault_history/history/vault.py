"""Caller-facing API of the revision engine.

``VaultHistory`` wires the store, detector, queue and resolver together
over one backend and is the only object UI, CLI and sync code talk to.
Item edits go through ``apply_edit`` (or ``record_revision``) so the live
row and its head state never drift apart.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..backend import Backend
from ..errors import BackendUnavailable
from . import schema
from .conflicts import ConflictQueue
from .ids import Clock, IdGenerator, unix_now, uuid4_ids
from .items import check_field
from .merger import FieldMerger
from .models import Conflict, ConflictValues, ItemRecord, ItemVersion, RevisionType
from .resolver import ConflictResolver
from .store import FieldChanges, RevisionStore, RevisionTypeLike

logger = logging.getLogger(__name__)


class VaultHistory:
    """Revision history and conflict management for one vault database.

    Args:
        backend: Storage backend.
        ids: Id generator for revisions and conflicts (UUID4 by default).
        clock: Timestamp source (Unix seconds by default).
        idempotent_resolve: Refuse to resolve a conflict twice.
        merger: Per-field merger; tests inject failing primitives here.
    """

    def __init__(
        self,
        backend: Backend,
        ids: IdGenerator | None = None,
        clock: Clock | None = None,
        idempotent_resolve: bool = True,
        merger: FieldMerger | None = None,
    ) -> None:
        self.backend = backend
        ids = ids or uuid4_ids
        clock = clock or unix_now
        self.queue = ConflictQueue(backend, ids=ids, clock=clock)
        self.store = RevisionStore(
            backend, ids=ids, clock=clock, merger=merger, queue=self.queue
        )
        self.detector = self.store.detector
        self.resolver = ConflictResolver(
            self.store, self.queue, idempotent=idempotent_resolve
        )

    def ensure_schema(self) -> bool:
        return schema.ensure_schema(self.backend)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_revision(
        self,
        item_id: int,
        author_user_id: int,
        revision_type: RevisionTypeLike,
        field_changes: FieldChanges,
        base_revision_id: str | None = None,
    ) -> str:
        return self.store.record_revision(
            item_id, author_user_id, revision_type, field_changes, base_revision_id
        )

    def apply_edit(
        self, item_id: int, author_user_id: int, new_values: Mapping[str, str]
    ) -> str:
        """Edit live fields of an item through the revision log.

        Fields whose value does not change are dropped.  The edit is
        recorded against the current head, so it always fast-forwards.

        Returns:
            The new revision id; ``""`` when nothing changed, the item
            does not exist or the backend failed.
        """
        for field_name in new_values:
            check_field(field_name)
        try:
            with self.backend.transaction():
                self.backend.lock_item(item_id)
                current = self.store.items.get(item_id)
                if current is None:
                    logger.warning("apply_edit: item %d does not exist", item_id)
                    return ""
                live = current.field_values()
                changes = {
                    name: (live[name], value)
                    for name, value in new_values.items()
                    if live[name] != value
                }
                if not changes:
                    logger.debug("apply_edit: no changes for item %d", item_id)
                    return ""
                return self.store.record_revision(
                    item_id,
                    author_user_id,
                    RevisionType.EDIT,
                    changes,
                    current.head_revision_id,
                )
        except BackendUnavailable as exc:
            logger.error("apply_edit failed for item %d: %s", item_id, exc)
            return ""

    def detect_and_enqueue_conflicts(
        self,
        item_id: int,
        local_revision_id: str,
        base_revision_id: str | None,
        remote_revision_id: str,
        originator_user_id: int,
    ) -> list[str]:
        return self.detector.detect_and_enqueue_conflicts(
            item_id,
            local_revision_id,
            base_revision_id,
            remote_revision_id,
            originator_user_id,
        )

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def list_open_conflicts(
        self, originator_filter: int | None = None
    ) -> list[Conflict]:
        return self.queue.list_open_conflicts(originator_filter)

    def get_conflict_detail(self, conflict_id: str) -> Conflict | None:
        return self.queue.get_conflict_detail(conflict_id)

    def admin_resolve_conflict(
        self,
        conflict_id: str,
        admin_user_id: int,
        merged_values: Mapping[str, str],
        resolution_summary: str,
        create_merge_revision: bool = True,
    ) -> bool:
        return self.resolver.admin_resolve_conflict(
            conflict_id,
            admin_user_id,
            merged_values,
            resolution_summary,
            create_merge_revision,
        )

    def conflict_values(self, conflict_id: str) -> ConflictValues | None:
        return self.resolver.conflict_values(conflict_id)

    def keep_remote(self, conflict_id: str, admin_user_id: int) -> bool:
        return self.resolver.keep_remote(conflict_id, admin_user_id)

    def accept_local(self, conflict_id: str, admin_user_id: int) -> bool:
        return self.resolver.accept_local(conflict_id, admin_user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_field_value(
        self, revision_id: str | None, item_id: int, field_name: str
    ) -> str:
        return self.store.get_field_value(revision_id, item_id, field_name)

    def get_item(self, item_id: int) -> ItemRecord | None:
        try:
            return self.store.items.get(item_id)
        except BackendUnavailable as exc:
            logger.error("get_item failed for %d: %s", item_id, exc)
            return None

    def item_history(self, item_id: int) -> list[ItemVersion]:
        """Version log of an item, oldest first."""
        return self.store.list_item_versions(item_id)
