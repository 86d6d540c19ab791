"""Tests for version ordering under concurrent writers.

Several connections to one database file, each on its own thread, record
revisions on the same item.  The per-item write lock must keep
``next_seq`` unique: the version log ends up exactly 1..N.
"""

import threading

import pytest

from vault_history.backend import SQLiteBackend
from vault_history.backend.sqla import SQLAlchemyBackend
from vault_history.history import ItemRecord, RevisionType, VaultHistory

WRITERS = 4
EDITS_PER_WRITER = 20


@pytest.fixture(params=["sqlite", "sqlalchemy"])
def open_backend_at(request, tmp_path):
    """Factory opening a fresh connection to one shared vault file."""
    path = tmp_path / "shared.db"

    def _open():
        if request.param == "sqlite":
            return SQLiteBackend(path)
        return SQLAlchemyBackend(f"sqlite:///{path}")

    return _open


class TestConcurrentWriters:
    """record_revision from several connections at once."""

    def test_version_log_has_no_gaps_or_duplicates(self, open_backend_at):
        setup_backend = open_backend_at()
        setup = VaultHistory(setup_backend)
        assert setup.ensure_schema()
        setup.store.items.insert(ItemRecord(item_id=1))

        results: dict[int, list[str]] = {}
        errors: list[BaseException] = []

        def write(writer: int) -> None:
            backend = open_backend_at()
            history = VaultHistory(backend)
            recorded = []
            try:
                for edit in range(EDITS_PER_WRITER):
                    recorded.append(
                        history.record_revision(
                            1,
                            writer + 1,
                            RevisionType.EDIT,
                            {"Content": ("", f"writer {writer} edit {edit}")},
                        )
                    )
            except Exception as exc:
                errors.append(exc)
            finally:
                backend.close()
            results[writer] = recorded

        threads = [
            threading.Thread(target=write, args=(n,), name=f"writer-{n}")
            for n in range(WRITERS)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=120)

        try:
            assert not any(thread.is_alive() for thread in threads)
            assert errors == []

            total = WRITERS * EDITS_PER_WRITER
            revision_ids = [rev for recorded in results.values() for rev in recorded]
            assert len(revision_ids) == total
            assert all(revision_ids)
            assert len(set(revision_ids)) == total

            versions = setup.item_history(1)
            assert [v.version_seq for v in versions] == list(range(1, total + 1))
            assert {v.revision_id for v in versions} == set(revision_ids)

            item = setup.get_item(1)
            assert item.version_seq == total
            assert item.head_revision_id == versions[-1].revision_id
        finally:
            setup_backend.close()
