"""Tests for history/schema.py -- ensure_schema()."""

import logging
from unittest.mock import MagicMock

from vault_history.backend import SQLiteBackend
from vault_history.errors import BackendUnavailable
from vault_history.history.schema import HISTORY_TABLES, ensure_schema


class TestEnsureSchema:
    """Tests for ensure_schema()."""

    def test_creates_all_tables(self, backend):
        assert ensure_schema(backend)

        assert backend.table_exists("VaultItems")
        for table, _ddl, _indexes in HISTORY_TABLES:
            assert backend.table_exists(table), table
        assert backend.has_column("VaultItems", "HeadRevision")
        assert backend.has_column("VaultItems", "VersionSeq")

    def test_idempotent(self, backend):
        assert ensure_schema(backend)
        assert ensure_schema(backend)

    def test_adds_head_columns_to_existing_item_table(self, tmp_path):
        b = SQLiteBackend(tmp_path / "legacy.db")
        try:
            b.execute(
                "CREATE TABLE VaultItems (ID BIGINT PRIMARY KEY, Name TEXT, "
                "Content TEXT, Tags TEXT, IsRoot INTEGER DEFAULT 0)"
            )
            b.execute("INSERT INTO VaultItems (ID, Name) VALUES (1, 'kept')")

            assert ensure_schema(b)

            row = b.query_one(
                "SELECT Name, HeadRevision, VersionSeq FROM VaultItems WHERE ID = 1"
            )
            assert row == {"Name": "kept", "HeadRevision": None, "VersionSeq": 0}
        finally:
            b.close()

    def test_backend_failure_returns_false(self, caplog):
        broken = MagicMock()
        broken.table_exists.side_effect = BackendUnavailable("gone")

        with caplog.at_level(logging.ERROR):
            assert ensure_schema(broken) is False
        assert "Failed to ensure history schema" in caplog.text
