"""Pydantic models for the revision and conflict engine.

Defines the records read from and written to the history tables:

- ``RevisionType`` / ``ConflictStatus``: closed value sets.
- ``Revision``, ``RevisionField``, ``ItemVersion``, ``RevisionParent``:
  the append-only revision log and its DAG edges.
- ``ItemHead`` / ``ItemRecord``: denormalized head state and live item row.
- ``Conflict`` / ``ConflictValues``: durable field-scoped conflicts.
- ``FieldMergeResult``: outcome of one per-field three-way merge.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

#: Item fields the engine knows how to read and apply.
ITEM_FIELDS: tuple[str, ...] = ("Name", "Content", "Tags")


class RevisionType(str, Enum):
    """Kind of revision."""

    EDIT = "edit"
    MERGE = "merge"


class ConflictStatus(str, Enum):
    """Lifecycle state of a conflict."""

    OPEN = "open"
    RESOLVED = "resolved"


class Revision(BaseModel):
    """An immutable commit-like record of field changes to one item.

    Attributes:
        revision_id: Opaque 36-character id.
        item_id: Item the revision mutates.
        author_user_id: Editor (or resolving admin for merge revisions).
        created_at: Unix timestamp (seconds).
        base_revision_id: Head the author edited against, if any.
        revision_type: ``edit`` or ``merge``.
        change_summary: Free text; admin merge revisions carry the
            resolution summary here.
        unified_diff: Concatenated per-field diffs of the revision.
    """

    revision_id: str
    item_id: int
    author_user_id: int
    created_at: int
    base_revision_id: str | None = None
    revision_type: RevisionType
    change_summary: str | None = None
    unified_diff: str | None = None

    model_config = {"frozen": True}


class RevisionField(BaseModel):
    """One changed field of a revision."""

    revision_id: str
    field_name: str
    old_value: str | None = None
    new_value: str | None = None
    field_diff: str | None = None

    model_config = {"frozen": True}


class ItemVersion(BaseModel):
    """Entry of the per-item version log."""

    item_id: int
    version_seq: int
    revision_id: str | None = None
    created_at: int | None = None

    model_config = {"frozen": True}


class RevisionParent(BaseModel):
    """DAG edge from a revision to one of its parents."""

    revision_id: str
    parent_revision_id: str

    model_config = {"frozen": True}


class ItemHead(BaseModel):
    """Current head revision and version sequence of an item."""

    item_id: int
    head_revision_id: str | None = None
    version_seq: int = 0

    model_config = {"frozen": True}


class ItemRecord(BaseModel):
    """Live row of a vault item."""

    item_id: int
    name: str = ""
    content: str = ""
    tags: str = ""
    head_revision_id: str | None = None
    version_seq: int = 0

    model_config = {"frozen": True}

    def field_values(self) -> dict[str, str]:
        """Return the mergeable fields keyed by their column name."""
        return {
            "Name": self.name,
            "Content": self.content,
            "Tags": self.tags,
        }


class Conflict(BaseModel):
    """A durable record of a field that could not be merged automatically.

    Attributes:
        conflict_id: Opaque 36-character id.
        item_id: Item the conflict belongs to.
        field_name: The single field that diverged.
        base_revision_id: Common ancestor (``None`` when the base value
            was empty).
        local_revision_id: The divergent incoming revision.
        remote_revision_id: The head at the time of the divergence.
        originator_user_id: Author of the local revision.
        created_at: Unix timestamp (seconds).
        status: ``open`` or ``resolved``.
        resolved_by_admin_user_id: Set on resolution.
        resolved_at: Set on resolution.
        resolution_payload: Free-text summary set on resolution.
    """

    conflict_id: str
    item_id: int
    field_name: str
    base_revision_id: str | None = None
    local_revision_id: str | None = None
    remote_revision_id: str | None = None
    originator_user_id: int
    created_at: int
    status: ConflictStatus = ConflictStatus.OPEN
    resolved_by_admin_user_id: int | None = None
    resolved_at: int | None = None
    resolution_payload: str | None = None

    model_config = {"frozen": True}

    @property
    def is_open(self) -> bool:
        return self.status == ConflictStatus.OPEN


class ConflictValues(BaseModel):
    """A conflict together with the three values an admin compares."""

    conflict: Conflict
    base_value: str
    local_value: str
    remote_value: str

    model_config = {"frozen": True}


class FieldMergeResult(BaseModel):
    """Outcome of merging one field.

    Attributes:
        field_name: Field that was merged (empty when merged standalone).
        merged: Merged text; ``None`` when the primitive failed.
        clean: ``True`` only when the merge reconciled both sides.
        failure: Error text when the merge primitive itself raised.
    """

    field_name: str = ""
    merged: str | None = None
    clean: bool
    failure: str | None = None

    model_config = {"frozen": True}

    @property
    def primitive_failed(self) -> bool:
        return self.failure is not None
