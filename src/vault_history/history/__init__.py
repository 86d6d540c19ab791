"""Revision history and conflict engine.

Keeps an append-only revision DAG per vault item, fast-forwards writes
based on the current head, three-way merges divergent writes field by
field, and queues what cannot be merged for an admin.

Modules:

- ``vault``     -- ``VaultHistory``: the caller-facing API.
- ``store``     -- ``RevisionStore``: revision log, version log, heads.
- ``items``     -- ``ItemTable`` / ``HeadTracker``: live item rows.
- ``detector``  -- ``ConflictDetector``: merge-or-escalate per field.
- ``conflicts`` -- ``ConflictQueue``: durable conflict records.
- ``resolver``  -- ``ConflictResolver``: admin resolution.
- ``merger``    -- ``FieldMerger`` over ``merge3``.
- ``schema``    -- table creation.
- ``models``    -- pydantic records.
- ``reporter``  -- text and JSON output.

Usage example
-------------
::

    from vault_history.backend import open_backend
    from vault_history.history import VaultHistory

    history = VaultHistory(open_backend("vault.db"))
    history.ensure_schema()

    rev = history.apply_edit(42, author_user_id=7, new_values={"Content": "..."})
    for conflict in history.list_open_conflicts():
        values = history.conflict_values(conflict.conflict_id)
        history.admin_resolve_conflict(
            conflict.conflict_id, 1, {conflict.field_name: values.local_value},
            "Admin resolved",
        )
"""

from .conflicts import ConflictQueue
from .detector import ConflictDetector
from .ids import SequentialIds, SteppingClock, unix_now, uuid4_ids
from .items import HeadTracker, ItemTable
from .merger import FieldMerger, generate_diff, merge_file
from .models import (
    ITEM_FIELDS,
    Conflict,
    ConflictStatus,
    ConflictValues,
    FieldMergeResult,
    ItemHead,
    ItemRecord,
    ItemVersion,
    Revision,
    RevisionField,
    RevisionParent,
    RevisionType,
)
from .resolver import ConflictResolver
from .schema import ensure_schema
from .store import RevisionStore
from .vault import VaultHistory

__all__ = [
    "ITEM_FIELDS",
    "Conflict",
    "ConflictDetector",
    "ConflictQueue",
    "ConflictResolver",
    "ConflictStatus",
    "ConflictValues",
    "FieldMergeResult",
    "FieldMerger",
    "HeadTracker",
    "ItemHead",
    "ItemRecord",
    "ItemTable",
    "ItemVersion",
    "Revision",
    "RevisionField",
    "RevisionParent",
    "RevisionStore",
    "RevisionType",
    "SequentialIds",
    "SteppingClock",
    "VaultHistory",
    "ensure_schema",
    "generate_diff",
    "merge_file",
    "unix_now",
    "uuid4_ids",
]
