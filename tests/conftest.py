"""Shared pytest fixtures for vault-history tests."""

import pytest
from dotenv import load_dotenv

from vault_history.backend import SQLiteBackend
from vault_history.history import (
    ItemRecord,
    ItemTable,
    RevisionType,
    SequentialIds,
    SteppingClock,
    VaultHistory,
)

load_dotenv()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "sqlalchemy: tests that go through the SQLAlchemy backend"
    )


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep developer env vars and config files out of every test."""
    for var in (
        "VAULT_DB_URL",
        "VAULT_REMOTE_URL",
        "VAULT_UPLOADER_ID",
        "VAULT_IDEMPOTENT_RESOLVE",
        "VAULT_HISTORY_CONFIG",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def backend(tmp_path):
    """SQLite backend on a fresh file."""
    b = SQLiteBackend(tmp_path / "vault.db")
    yield b
    b.close()


@pytest.fixture
def history(backend):
    """VaultHistory with deterministic ids and clock and schema in place."""
    h = VaultHistory(backend, ids=SequentialIds(), clock=SteppingClock())
    assert h.ensure_schema()
    return h


@pytest.fixture
def items(history):
    return ItemTable(history.backend)


@pytest.fixture
def make_item(history, items):
    """Insert an item and record its fields as the first (head) revision.

    Returns ``(item_id, head_revision_id)``.
    """

    def _make(item_id=1, author=1, **values):
        items.insert(ItemRecord(item_id=item_id))
        if not values:
            return item_id, ""
        changes = {name: ("", value) for name, value in values.items()}
        rev = history.record_revision(item_id, author, RevisionType.EDIT, changes)
        assert rev
        return item_id, rev

    return _make
