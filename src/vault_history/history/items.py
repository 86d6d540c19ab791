"""Live item rows and their denormalized head state.

``ItemTable`` reads and writes the ``VaultItems`` row (``Name``,
``Content``, ``Tags``).  ``HeadTracker`` owns the ``HeadRevision`` /
``VersionSeq`` pair on that row and the per-item version log.

Only ``RevisionStore`` advances heads; callers outside the engine go
through ``VaultHistory.apply_edit`` / ``record_revision`` instead of
writing these columns, otherwise the head-state invariant breaks.

Field names come from callers, so they are checked against the closed
``ITEM_FIELDS`` set before being used as column identifiers.
"""

from __future__ import annotations

import logging
from typing import Mapping

from ..backend import Backend, Row
from .models import ITEM_FIELDS, ItemHead, ItemRecord, ItemVersion

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = "ID, Name, Content, Tags, HeadRevision, VersionSeq"


def check_field(field_name: str) -> str:
    """Return *field_name* if it is a known item field.

    Raises:
        ValueError: If the name is not one of ``Name``, ``Content``,
            ``Tags``.
    """
    if field_name not in ITEM_FIELDS:
        raise ValueError(
            f"Unknown item field: '{field_name}'. Valid fields: {list(ITEM_FIELDS)}"
        )
    return field_name


def _record_from_row(row: Row) -> ItemRecord:
    return ItemRecord(
        item_id=row["ID"],
        name=row["Name"] or "",
        content=row["Content"] or "",
        tags=row["Tags"] or "",
        head_revision_id=row["HeadRevision"] or None,
        version_seq=row["VersionSeq"] or 0,
    )


class ItemTable:
    """Access to live ``VaultItems`` rows."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def get(self, item_id: int) -> ItemRecord | None:
        """Return the live item row, or ``None`` if the item is absent."""
        row = self.backend.query_one(
            f"SELECT {_ITEM_COLUMNS} FROM VaultItems WHERE ID = ?",
            (item_id,),
        )
        return _record_from_row(row) if row else None

    def list_ids(self) -> list[int]:
        rows = self.backend.query("SELECT ID FROM VaultItems ORDER BY ID")
        return [row["ID"] for row in rows]

    def insert(self, record: ItemRecord) -> None:
        """Insert a new item row with an explicit id and empty head."""
        self.backend.execute(
            "INSERT INTO VaultItems (ID, Name, Content, Tags, IsRoot) "
            "VALUES (?, ?, ?, ?, 0)",
            (record.item_id, record.name, record.content, record.tags),
        )
        logger.debug("Inserted item %d", record.item_id)

    def read_field(self, item_id: int, field_name: str) -> str:
        """Return the live value of one field (``""`` if unset or missing)."""
        column = check_field(field_name)
        row = self.backend.query_one(
            f"SELECT {column} FROM VaultItems WHERE ID = ?", (item_id,)
        )
        if row is None or row[column] is None:
            return ""
        return row[column]

    def apply_fields(self, item_id: int, values: Mapping[str, str]) -> None:
        """Write *values* to the live item row in one UPDATE."""
        if not values:
            return
        columns = [check_field(name) for name in values]
        assignments = ", ".join(f"{column} = ?" for column in columns)
        self.backend.execute(
            f"UPDATE VaultItems SET {assignments} WHERE ID = ?",
            (*values.values(), item_id),
        )


class HeadTracker:
    """Per-item head revision id, version sequence and version log."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def get_head(self, item_id: int) -> ItemHead | None:
        row = self.backend.query_one(
            "SELECT HeadRevision, VersionSeq FROM VaultItems WHERE ID = ?",
            (item_id,),
        )
        if row is None:
            return None
        return ItemHead(
            item_id=item_id,
            head_revision_id=row["HeadRevision"] or None,
            version_seq=row["VersionSeq"] or 0,
        )

    def head_revision_id(self, item_id: int) -> str:
        """Return the head revision id, ``""`` when the item has none."""
        head = self.get_head(item_id)
        if head is None or head.head_revision_id is None:
            return ""
        return head.head_revision_id

    def next_version_seq(self, item_id: int) -> int:
        """Return ``max(VersionSeq) + 1`` for the item, or 1.

        Must run inside the transaction that inserts the version row,
        after ``Backend.lock_item()``.
        """
        row = self.backend.query_one(
            "SELECT MAX(VersionSeq) AS MaxSeq FROM ItemVersions WHERE ItemID = ?",
            (item_id,),
        )
        if row is None or row["MaxSeq"] is None:
            return 1
        return int(row["MaxSeq"]) + 1

    def append_version(
        self, item_id: int, version_seq: int, revision_id: str, created_at: int
    ) -> None:
        self.backend.execute(
            "INSERT INTO ItemVersions (ItemID, VersionSeq, RevisionID, CreatedAt) "
            "VALUES (?, ?, ?, ?)",
            (item_id, version_seq, revision_id, created_at),
        )

    def advance(self, item_id: int, revision_id: str, version_seq: int) -> None:
        """Point the item's head at *revision_id* / *version_seq*."""
        self.backend.execute(
            "UPDATE VaultItems SET VersionSeq = ?, HeadRevision = ? WHERE ID = ?",
            (version_seq, revision_id, item_id),
        )
        logger.debug(
            "Item %d head -> %s (seq %d)", item_id, revision_id, version_seq
        )

    def list_versions(self, item_id: int) -> list[ItemVersion]:
        rows = self.backend.query(
            "SELECT ItemID, VersionSeq, RevisionID, CreatedAt FROM ItemVersions "
            "WHERE ItemID = ? ORDER BY VersionSeq",
            (item_id,),
        )
        return [
            ItemVersion(
                item_id=row["ItemID"],
                version_seq=row["VersionSeq"],
                revision_id=row["RevisionID"],
                created_at=row["CreatedAt"],
            )
            for row in rows
        ]
