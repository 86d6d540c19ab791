"""Admin resolution of queued conflicts.

The admin supplies the merged value of each field.  By default the
resolution is committed as a merge revision whose parents are the remote
and local revisions of the conflict, and that revision becomes the head.
``create_merge_revision=False`` writes the values straight to the live
item row without history.

Resolution strategies (from the admin conflict dialog):

* Merged values typed by the admin -- ``admin_resolve_conflict``.
* Keep the remote value -- ``keep_remote``.
* Take the local value -- ``accept_local``.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..errors import BackendUnavailable
from .conflicts import ConflictQueue
from .items import check_field
from .models import ConflictValues, RevisionType
from .store import RevisionStore

logger = logging.getLogger(__name__)

RESOLVED_SUMMARY = "Admin resolved"
KEPT_REMOTE_SUMMARY = "Admin rejected local - kept remote"


class ConflictResolver:
    """Close conflicts with admin-supplied values.

    Args:
        store: Revision store used to commit merge revisions.
        queue: Conflict queue; defaults to the store's.
        idempotent: When true, resolving an already resolved conflict
            is refused (returns ``False``, writes nothing).  When false
            the resolution is applied again.
    """

    def __init__(
        self,
        store: RevisionStore,
        queue: ConflictQueue | None = None,
        idempotent: bool = True,
    ) -> None:
        self.store = store
        self.queue = queue or store.queue
        self.idempotent = idempotent

    def admin_resolve_conflict(
        self,
        conflict_id: str,
        admin_user_id: int,
        merged_values: Mapping[str, str],
        resolution_summary: str,
        create_merge_revision: bool = True,
    ) -> bool:
        """Apply *merged_values* and mark the conflict resolved.

        Returns:
            ``True`` on success; ``False`` when the conflict does not
            exist, was already resolved (idempotent mode) or the backend
            failed.  Nothing is persisted on ``False``.

        Raises:
            ValueError: If *merged_values* names an unknown field.
        """
        for field_name in merged_values:
            check_field(field_name)

        store = self.store
        try:
            with store.backend.transaction():
                conflict = self.queue.conflict(conflict_id)
                if conflict is None:
                    logger.warning("Conflict %s not found", conflict_id)
                    return False
                if not conflict.is_open and self.idempotent:
                    logger.info(
                        "Conflict %s already resolved by %s",
                        conflict_id,
                        conflict.resolved_by_admin_user_id,
                    )
                    return False

                item_id = conflict.item_id
                store.backend.lock_item(item_id)
                if create_merge_revision and merged_values:
                    remote_id = conflict.remote_revision_id or ""
                    changes = {
                        name: (store.field_value(remote_id, item_id, name), value)
                        for name, value in merged_values.items()
                    }
                    merge_id, version_seq = store.insert_revision(
                        item_id,
                        admin_user_id,
                        RevisionType.MERGE,
                        changes,
                        base_revision_id=conflict.remote_revision_id,
                        parents=[
                            remote_id,
                            conflict.local_revision_id or "",
                        ],
                        change_summary=resolution_summary,
                        advance_head=True,
                        apply_fields=True,
                    )
                    logger.info(
                        "Conflict %s resolved into merge revision %s (seq %d)",
                        conflict_id,
                        merge_id,
                        version_seq,
                    )
                else:
                    store.items.apply_fields(item_id, merged_values)
                    logger.info(
                        "Conflict %s resolved without a merge revision",
                        conflict_id,
                    )

                self.queue.mark_resolved(
                    conflict_id, admin_user_id, resolution_summary
                )
        except BackendUnavailable as exc:
            logger.error("Failed to resolve conflict %s: %s", conflict_id, exc)
            return False
        return True

    def conflict_values(self, conflict_id: str) -> ConflictValues | None:
        """Base, local and remote value of the conflicted field."""
        store = self.store
        try:
            conflict = self.queue.conflict(conflict_id)
            if conflict is None:
                return None
            item_id, name = conflict.item_id, conflict.field_name
            return ConflictValues(
                conflict=conflict,
                base_value=store.field_value(
                    conflict.base_revision_id, item_id, name
                ),
                local_value=store.field_value(
                    conflict.local_revision_id, item_id, name
                ),
                remote_value=store.field_value(
                    conflict.remote_revision_id, item_id, name
                ),
            )
        except BackendUnavailable as exc:
            logger.error("conflict_values failed for %s: %s", conflict_id, exc)
            return None

    def keep_remote(self, conflict_id: str, admin_user_id: int) -> bool:
        """Resolve with the remote value, discarding the local edit."""
        values = self.conflict_values(conflict_id)
        if values is None:
            return False
        return self.admin_resolve_conflict(
            conflict_id,
            admin_user_id,
            {values.conflict.field_name: values.remote_value},
            KEPT_REMOTE_SUMMARY,
        )

    def accept_local(self, conflict_id: str, admin_user_id: int) -> bool:
        """Resolve with the local value."""
        values = self.conflict_values(conflict_id)
        if values is None:
            return False
        return self.admin_resolve_conflict(
            conflict_id,
            admin_user_id,
            {values.conflict.field_name: values.local_value},
            RESOLVED_SUMMARY,
        )
