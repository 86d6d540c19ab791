"""Append-only revision log.

``RevisionStore`` is the only writer of ``Revisions``, ``RevisionFields``,
``ItemVersions`` and ``RevisionParents``, and the only component that
advances an item's head.  Two write paths exist:

* ``record_revision`` -- the caller-facing path.  A write whose base is
  the current head (or empty) fast-forwards; anything else is a divergent
  write handed to ``ConflictDetector`` inside the same transaction.
* ``insert_revision`` -- the low-level path used by the detector and the
  resolver to commit merge revisions.  It never runs conflict detection.

Public methods fail closed on ``BackendUnavailable`` (``""``, ``None``,
``[]``); the lower-case helpers without a ``get_`` prefix raise so they
can run inside a caller's transaction.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Union

from ..backend import Backend, Row
from ..errors import BackendUnavailable
from .conflicts import ConflictQueue
from .detector import ConflictDetector
from .ids import Clock, IdGenerator, unix_now, uuid4_ids
from .items import HeadTracker, ItemTable, check_field
from .merger import FieldMerger, generate_diff
from .models import (
    ITEM_FIELDS,
    ItemVersion,
    Revision,
    RevisionField,
    RevisionParent,
    RevisionType,
)

logger = logging.getLogger(__name__)

#: Field name -> ``(old_value, new_value)``.
FieldChanges = Mapping[str, tuple[str | None, str | None]]

RevisionTypeLike = Union[RevisionType, str]

_REVISION_COLUMNS = (
    "RevisionID, ItemID, AuthorUserID, CreatedAt, BaseRevisionID, "
    "RevisionType, ChangeSummary, UnifiedDiff"
)


def _revision_from_row(row: Row) -> Revision:
    return Revision(
        revision_id=row["RevisionID"],
        item_id=row["ItemID"],
        author_user_id=row["AuthorUserID"] or 0,
        created_at=row["CreatedAt"] or 0,
        base_revision_id=row["BaseRevisionID"] or None,
        revision_type=RevisionType(row["RevisionType"]),
        change_summary=row["ChangeSummary"],
        unified_diff=row["UnifiedDiff"],
    )


class RevisionStore:
    """Revision log, version log and DAG edges of every item.

    Args:
        backend: Storage backend.
        ids: Revision/conflict id generator.
        clock: Source of ``CreatedAt`` timestamps.
        merger: Per-field merger handed to the conflict detector.
        queue: Conflict queue; built from *backend*, *ids* and *clock*
            when omitted.
    """

    def __init__(
        self,
        backend: Backend,
        ids: IdGenerator = uuid4_ids,
        clock: Clock = unix_now,
        merger: FieldMerger | None = None,
        queue: ConflictQueue | None = None,
    ) -> None:
        self.backend = backend
        self.ids = ids
        self.clock = clock
        self.items = ItemTable(backend)
        self.heads = HeadTracker(backend)
        self.queue = queue or ConflictQueue(backend, ids=ids, clock=clock)
        self.detector = ConflictDetector(self, self.queue, merger or FieldMerger())

    # ------------------------------------------------------------------
    # Write paths
    # ------------------------------------------------------------------

    def record_revision(
        self,
        item_id: int,
        author_user_id: int,
        revision_type: RevisionTypeLike,
        field_changes: FieldChanges,
        base_revision_id: str | None = None,
    ) -> str:
        """Record an edit (or merge) of one item.

        Inserts the revision, its field rows and the next version-log
        entry, then either fast-forwards the head (empty base, or base
        equal to the current head) or runs conflict detection against the
        current head.  Everything happens in one transaction.

        A fast-forward also writes each new value to the live item row,
        so the row always reflects its head revision.

        Returns:
            The new revision id, or ``""`` if the item does not exist or
            the backend failed (nothing is persisted in that case).

        Raises:
            ValueError: On an unknown revision type or field name.
        """
        kind = RevisionType(revision_type)
        for field_name in field_changes:
            check_field(field_name)

        try:
            with self.backend.transaction():
                self.backend.lock_item(item_id)
                head = self.heads.get_head(item_id)
                if head is None:
                    logger.warning(
                        "record_revision: item %d does not exist", item_id
                    )
                    return ""
                current_head = head.head_revision_id or ""
                fast_forward = (
                    not base_revision_id or base_revision_id == current_head
                )

                revision_id, version_seq = self.insert_revision(
                    item_id,
                    author_user_id,
                    kind,
                    field_changes,
                    base_revision_id=base_revision_id or None,
                    parents=[base_revision_id] if base_revision_id else [],
                    advance_head=fast_forward,
                    apply_fields=fast_forward,
                )
                if fast_forward:
                    logger.debug(
                        "Fast-forward item %d to %s (seq %d)",
                        item_id,
                        revision_id,
                        version_seq,
                    )
                    return revision_id

                logger.info(
                    "Divergent write on item %d: base %s, head %s",
                    item_id,
                    base_revision_id,
                    current_head or "(none)",
                )
                conflicts = self.detector.detect(
                    item_id,
                    revision_id,
                    base_revision_id or "",
                    current_head,
                    author_user_id,
                )
                if conflicts:
                    logger.info(
                        "record_revision: enqueued %d conflicts for item %d",
                        len(conflicts),
                        item_id,
                    )
                return revision_id
        except BackendUnavailable as exc:
            logger.error(
                "record_revision failed for item %d: %s", item_id, exc
            )
            return ""

    def insert_revision(
        self,
        item_id: int,
        author_user_id: int,
        revision_type: RevisionTypeLike,
        field_changes: FieldChanges,
        *,
        base_revision_id: str | None = None,
        parents: Iterable[str] = (),
        change_summary: str | None = None,
        advance_head: bool = False,
        apply_fields: bool = False,
    ) -> tuple[str, int]:
        """Insert one revision with its fields, version entry and parents.

        Must be called inside a transaction.  Takes the item lock before
        allocating the version sequence.  Duplicate, empty and
        self-referencing parent ids are skipped.

        Args:
            advance_head: Make the new revision the item's head.
            apply_fields: Write the new values to the live item row.

        Returns:
            ``(revision_id, version_seq)``.
        """
        kind = RevisionType(revision_type)
        revision_id = self.ids()
        created_at = self.clock()
        self.backend.lock_item(item_id)

        diffs = {
            name: generate_diff(
                old or "", new or "", f"a/{name}", f"b/{name}"
            )
            for name, (old, new) in field_changes.items()
        }
        unified_diff = "".join(diffs.values()) or None

        self.backend.execute(
            f"INSERT INTO Revisions ({_REVISION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                revision_id,
                item_id,
                author_user_id,
                created_at,
                base_revision_id or None,
                kind.value,
                change_summary,
                unified_diff,
            ),
        )
        for name, (old, new) in field_changes.items():
            self.backend.execute(
                "INSERT INTO RevisionFields "
                "(RevisionID, FieldName, OldValue, NewValue, FieldDiff) "
                "VALUES (?, ?, ?, ?, ?)",
                (revision_id, name, old, new, diffs[name] or None),
            )

        version_seq = self.heads.next_version_seq(item_id)
        self.heads.append_version(item_id, version_seq, revision_id, created_at)

        seen: set[str] = {revision_id}
        for parent_id in parents:
            if not parent_id or parent_id in seen:
                continue
            seen.add(parent_id)
            self.backend.execute(
                "INSERT INTO RevisionParents (RevisionID, ParentRevisionID) "
                "VALUES (?, ?)",
                (revision_id, parent_id),
            )

        if apply_fields:
            self.items.apply_fields(
                item_id,
                {name: new or "" for name, (_, new) in field_changes.items()},
            )
        if advance_head:
            self.heads.advance(item_id, revision_id, version_seq)
        return revision_id, version_seq

    # ------------------------------------------------------------------
    # Field lookup
    # ------------------------------------------------------------------

    def field_value(self, revision_id: str | None, item_id: int, field_name: str) -> str:
        """Value of *field_name* at *revision_id*, else the live value.

        Only the exact revision is consulted; ancestors are not walked.
        ``HeadRevision`` returns the item's head id.  Unknown fields and
        missing items yield ``""``.  Raises ``BackendUnavailable``.
        """
        if field_name == "HeadRevision":
            return self.heads.head_revision_id(item_id)
        if revision_id:
            row = self.backend.query_one(
                "SELECT NewValue FROM RevisionFields "
                "WHERE RevisionID = ? AND FieldName = ?",
                (revision_id, field_name),
            )
            if row is not None and row["NewValue"] is not None:
                return row["NewValue"]
        if field_name in ITEM_FIELDS:
            return self.items.read_field(item_id, field_name)
        return ""

    def get_field_value(
        self, revision_id: str | None, item_id: int, field_name: str
    ) -> str:
        """Fail-closed ``field_value``: ``""`` on backend failure."""
        try:
            return self.field_value(revision_id, item_id, field_name)
        except BackendUnavailable as exc:
            logger.error("get_field_value failed: %s", exc)
            return ""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_revision(self, revision_id: str) -> Revision | None:
        try:
            row = self.backend.query_one(
                f"SELECT {_REVISION_COLUMNS} FROM Revisions WHERE RevisionID = ?",
                (revision_id,),
            )
        except BackendUnavailable as exc:
            logger.error("get_revision failed: %s", exc)
            return None
        return _revision_from_row(row) if row else None

    def revision_fields(self, revision_id: str) -> list[RevisionField]:
        rows = self.backend.query(
            "SELECT RevisionID, FieldName, OldValue, NewValue, FieldDiff "
            "FROM RevisionFields WHERE RevisionID = ? ORDER BY FieldName",
            (revision_id,),
        )
        return [
            RevisionField(
                revision_id=row["RevisionID"],
                field_name=row["FieldName"],
                old_value=row["OldValue"],
                new_value=row["NewValue"],
                field_diff=row["FieldDiff"],
            )
            for row in rows
        ]

    def get_revision_fields(self, revision_id: str) -> list[RevisionField]:
        try:
            return self.revision_fields(revision_id)
        except BackendUnavailable as exc:
            logger.error("get_revision_fields failed: %s", exc)
            return []

    def get_parents(self, revision_id: str) -> list[RevisionParent]:
        try:
            rows = self.backend.query(
                "SELECT RevisionID, ParentRevisionID FROM RevisionParents "
                "WHERE RevisionID = ? ORDER BY ParentRevisionID",
                (revision_id,),
            )
        except BackendUnavailable as exc:
            logger.error("get_parents failed: %s", exc)
            return []
        return [
            RevisionParent(
                revision_id=row["RevisionID"],
                parent_revision_id=row["ParentRevisionID"],
            )
            for row in rows
        ]

    def list_item_versions(self, item_id: int) -> list[ItemVersion]:
        """Version log of *item_id* in ascending ``version_seq`` order."""
        try:
            return self.heads.list_versions(item_id)
        except BackendUnavailable as exc:
            logger.error("list_item_versions failed: %s", exc)
            return []
