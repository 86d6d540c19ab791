"""Durable queue of field-scoped conflicts.

Rows are created by ``ConflictDetector`` and only ever transition
``open -> resolved`` through ``ConflictResolver``; nothing deletes them.
"""

from __future__ import annotations

import logging

from ..backend import Backend, Row
from ..errors import BackendUnavailable
from .ids import Clock, IdGenerator, unix_now, uuid4_ids
from .models import Conflict, ConflictStatus

logger = logging.getLogger(__name__)

_CONFLICT_COLUMNS = (
    "ConflictID, ItemID, FieldName, BaseRevisionID, LocalRevisionID, "
    "RemoteRevisionID, OriginatorUserID, CreatedAt, Status, "
    "ResolvedByAdminUserID, ResolvedAt, ResolutionPayload"
)


def _conflict_from_row(row: Row) -> Conflict:
    return Conflict(
        conflict_id=row["ConflictID"],
        item_id=row["ItemID"],
        field_name=row["FieldName"],
        base_revision_id=row["BaseRevisionID"] or None,
        local_revision_id=row["LocalRevisionID"] or None,
        remote_revision_id=row["RemoteRevisionID"] or None,
        originator_user_id=row["OriginatorUserID"] or 0,
        created_at=row["CreatedAt"] or 0,
        status=ConflictStatus(row["Status"] or ConflictStatus.OPEN.value),
        resolved_by_admin_user_id=row["ResolvedByAdminUserID"],
        resolved_at=row["ResolvedAt"],
        resolution_payload=row["ResolutionPayload"],
    )


class ConflictQueue:
    """Insert, list and close ``Conflicts`` rows."""

    def __init__(
        self,
        backend: Backend,
        ids: IdGenerator = uuid4_ids,
        clock: Clock = unix_now,
    ) -> None:
        self.backend = backend
        self.ids = ids
        self.clock = clock

    def enqueue(
        self,
        item_id: int,
        field_name: str,
        base_revision_id: str | None,
        local_revision_id: str,
        remote_revision_id: str,
        originator_user_id: int,
    ) -> str:
        """Insert an open conflict and return its id.

        Raises ``BackendUnavailable``; callers run it inside their
        transaction.
        """
        conflict_id = self.ids()
        self.backend.execute(
            "INSERT INTO Conflicts (ConflictID, ItemID, FieldName, "
            "BaseRevisionID, LocalRevisionID, RemoteRevisionID, "
            "OriginatorUserID, CreatedAt, Status) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                conflict_id,
                item_id,
                field_name,
                base_revision_id or None,
                local_revision_id,
                remote_revision_id,
                originator_user_id,
                self.clock(),
                ConflictStatus.OPEN.value,
            ),
        )
        logger.info(
            "Conflict %s opened on item %d field %s",
            conflict_id,
            item_id,
            field_name,
        )
        return conflict_id

    def list_open_conflicts(
        self, originator_filter: int | None = None
    ) -> list[Conflict]:
        """Open conflicts, newest first, optionally for one originator.

        Returns ``[]`` on backend failure.
        """
        sql = f"SELECT {_CONFLICT_COLUMNS} FROM Conflicts WHERE Status = ?"
        params: list[object] = [ConflictStatus.OPEN.value]
        if originator_filter is not None:
            sql += " AND OriginatorUserID = ?"
            params.append(originator_filter)
        sql += " ORDER BY CreatedAt DESC, ConflictID DESC"
        try:
            rows = self.backend.query(sql, params)
        except BackendUnavailable as exc:
            logger.error("list_open_conflicts failed: %s", exc)
            return []
        return [_conflict_from_row(row) for row in rows]

    def list_item_conflicts(
        self, item_id: int, status: ConflictStatus | str | None = None
    ) -> list[Conflict]:
        """Every conflict of one item (oldest first), optionally by status."""
        sql = f"SELECT {_CONFLICT_COLUMNS} FROM Conflicts WHERE ItemID = ?"
        params: list[object] = [item_id]
        if status is not None:
            sql += " AND Status = ?"
            params.append(ConflictStatus(status).value)
        sql += " ORDER BY CreatedAt, ConflictID"
        try:
            rows = self.backend.query(sql, params)
        except BackendUnavailable as exc:
            logger.error("list_item_conflicts failed: %s", exc)
            return []
        return [_conflict_from_row(row) for row in rows]

    def conflict(self, conflict_id: str) -> Conflict | None:
        row = self.backend.query_one(
            f"SELECT {_CONFLICT_COLUMNS} FROM Conflicts WHERE ConflictID = ?",
            (conflict_id,),
        )
        return _conflict_from_row(row) if row else None

    def get_conflict_detail(self, conflict_id: str) -> Conflict | None:
        """Full conflict record, or ``None`` if missing or on failure."""
        try:
            return self.conflict(conflict_id)
        except BackendUnavailable as exc:
            logger.error("get_conflict_detail failed: %s", exc)
            return None

    def mark_resolved(
        self,
        conflict_id: str,
        admin_user_id: int,
        resolution_payload: str,
        resolved_at: int | None = None,
    ) -> int:
        """Close a conflict.  Returns the number of rows updated."""
        return self.backend.execute(
            "UPDATE Conflicts SET Status = ?, ResolvedByAdminUserID = ?, "
            "ResolvedAt = ?, ResolutionPayload = ? WHERE ConflictID = ?",
            (
                ConflictStatus.RESOLVED.value,
                admin_user_id,
                resolved_at if resolved_at is not None else self.clock(),
                resolution_payload,
                conflict_id,
            ),
        )
