"""History table schema.

Five tables back the engine, named exactly as the vault's other readers
expect: ``Revisions``, ``RevisionFields``, ``ItemVersions``,
``RevisionParents`` and ``Conflicts``.  The item table ``VaultItems`` gets
two denormalized head columns, ``HeadRevision`` and ``VersionSeq``.

DDL sticks to types every supported engine accepts (``VARCHAR``,
``BIGINT``, ``TEXT``), and indexes are only created together with their
table so no ``CREATE INDEX IF NOT EXISTS`` is needed.
"""

from __future__ import annotations

import logging

from ..backend import Backend
from ..errors import BackendUnavailable

logger = logging.getLogger(__name__)

ITEM_TABLE_SQL = """
CREATE TABLE VaultItems (
    ID BIGINT PRIMARY KEY,
    Name TEXT,
    Content TEXT,
    Tags TEXT,
    IsRoot INTEGER DEFAULT 0,
    HeadRevision VARCHAR(36) DEFAULT NULL,
    VersionSeq BIGINT DEFAULT 0
)
"""

HISTORY_TABLES: list[tuple[str, str, list[str]]] = [
    (
        "Revisions",
        """
        CREATE TABLE Revisions (
            RevisionID VARCHAR(36) PRIMARY KEY,
            ItemID BIGINT NOT NULL,
            AuthorUserID BIGINT,
            CreatedAt BIGINT,
            BaseRevisionID VARCHAR(36),
            RevisionType VARCHAR(16) NOT NULL,
            ChangeSummary TEXT,
            UnifiedDiff TEXT
        )
        """,
        ["CREATE INDEX idx_revisions_item ON Revisions(ItemID)"],
    ),
    (
        "RevisionFields",
        """
        CREATE TABLE RevisionFields (
            RevisionID VARCHAR(36) NOT NULL,
            FieldName VARCHAR(64) NOT NULL,
            OldValue TEXT,
            NewValue TEXT,
            FieldDiff TEXT,
            PRIMARY KEY (RevisionID, FieldName),
            FOREIGN KEY (RevisionID) REFERENCES Revisions(RevisionID)
        )
        """,
        [],
    ),
    (
        "ItemVersions",
        """
        CREATE TABLE ItemVersions (
            ItemID BIGINT NOT NULL,
            VersionSeq BIGINT NOT NULL,
            RevisionID VARCHAR(36),
            CreatedAt BIGINT,
            PRIMARY KEY (ItemID, VersionSeq),
            FOREIGN KEY (RevisionID) REFERENCES Revisions(RevisionID)
        )
        """,
        [],
    ),
    (
        "RevisionParents",
        """
        CREATE TABLE RevisionParents (
            RevisionID VARCHAR(36) NOT NULL,
            ParentRevisionID VARCHAR(36) NOT NULL,
            PRIMARY KEY (RevisionID, ParentRevisionID),
            CHECK (RevisionID <> ParentRevisionID)
        )
        """,
        [],
    ),
    (
        "Conflicts",
        """
        CREATE TABLE Conflicts (
            ConflictID VARCHAR(36) PRIMARY KEY,
            ItemID BIGINT NOT NULL,
            FieldName VARCHAR(64) NOT NULL,
            BaseRevisionID VARCHAR(36),
            LocalRevisionID VARCHAR(36),
            RemoteRevisionID VARCHAR(36),
            OriginatorUserID BIGINT,
            CreatedAt BIGINT,
            Status VARCHAR(16) DEFAULT 'open',
            ResolvedByAdminUserID BIGINT,
            ResolvedAt BIGINT,
            ResolutionPayload TEXT
        )
        """,
        [
            "CREATE INDEX idx_conflicts_status ON Conflicts(Status, CreatedAt)",
            "CREATE INDEX idx_conflicts_item ON Conflicts(ItemID)",
        ],
    ),
]

# Head columns bolted onto an existing VaultItems table
HEAD_COLUMNS: list[tuple[str, str]] = [
    ("VersionSeq", "ALTER TABLE VaultItems ADD COLUMN VersionSeq BIGINT DEFAULT 0"),
    (
        "HeadRevision",
        "ALTER TABLE VaultItems ADD COLUMN HeadRevision VARCHAR(36) DEFAULT NULL",
    ),
]


def ensure_schema(backend: Backend) -> bool:
    """Create missing history tables and head columns.

    Safe to call on every start-up: existing tables and columns are left
    untouched.  A vault without a ``VaultItems`` table gets a minimal one.

    Returns:
        ``True`` on success, ``False`` if the backend failed (logged).
    """
    try:
        with backend.transaction():
            if not backend.table_exists("VaultItems"):
                logger.info("Creating VaultItems table")
                backend.execute(ITEM_TABLE_SQL)
            for table, ddl, indexes in HISTORY_TABLES:
                if backend.table_exists(table):
                    continue
                logger.info("Creating %s table", table)
                backend.execute(ddl)
                for index_sql in indexes:
                    backend.execute(index_sql)
            for column, ddl in HEAD_COLUMNS:
                if not backend.has_column("VaultItems", column):
                    logger.info("Adding VaultItems.%s", column)
                    backend.execute(ddl)
    except BackendUnavailable as exc:
        logger.error("Failed to ensure history schema: %s", exc)
        return False
    return True
