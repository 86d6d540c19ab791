"""Tests for history/conflicts.py -- ConflictQueue."""

from unittest.mock import patch

from vault_history.errors import BackendUnavailable
from vault_history.history import ConflictStatus


def _enqueue(history, item_id=1, field="Content", originator=3, base="b"):
    return history.queue.enqueue(item_id, field, base, "local", "remote", originator)


class TestEnqueue:
    """Tests for ConflictQueue.enqueue()."""

    def test_row_contents(self, history):
        conflict_id = _enqueue(history)

        conflict = history.get_conflict_detail(conflict_id)
        assert len(conflict_id) == 36
        assert conflict.item_id == 1
        assert conflict.field_name == "Content"
        assert conflict.base_revision_id == "b"
        assert conflict.local_revision_id == "local"
        assert conflict.remote_revision_id == "remote"
        assert conflict.originator_user_id == 3
        assert conflict.status == ConflictStatus.OPEN
        assert conflict.is_open
        assert conflict.resolved_at is None

    def test_empty_base_stored_as_null(self, history):
        conflict_id = _enqueue(history, base="")
        assert history.get_conflict_detail(conflict_id).base_revision_id is None

    def test_fields_conflict_independently(self, history):
        a = _enqueue(history, field="Name")
        b = _enqueue(history, field="Tags")

        history.queue.mark_resolved(a, 1, "done")

        assert history.get_conflict_detail(a).status == ConflictStatus.RESOLVED
        assert history.get_conflict_detail(b).status == ConflictStatus.OPEN


class TestListing:
    """list_open_conflicts() and list_item_conflicts()."""

    def test_newest_first(self, history):
        first = _enqueue(history)
        second = _enqueue(history)

        ids = [c.conflict_id for c in history.list_open_conflicts()]
        assert ids == [second, first]

    def test_originator_filter(self, history):
        mine = _enqueue(history, originator=7)
        _enqueue(history, originator=8)

        assert [c.conflict_id for c in history.list_open_conflicts(7)] == [mine]

    def test_resolved_not_listed(self, history):
        conflict_id = _enqueue(history)
        history.queue.mark_resolved(conflict_id, 1, "done")

        assert history.list_open_conflicts() == []

    def test_item_conflicts_oldest_first(self, history):
        first = _enqueue(history, item_id=4)
        second = _enqueue(history, item_id=4)
        _enqueue(history, item_id=5)
        history.queue.mark_resolved(first, 1, "done")

        everything = history.queue.list_item_conflicts(4)
        open_only = history.queue.list_item_conflicts(4, ConflictStatus.OPEN)
        assert [c.conflict_id for c in everything] == [first, second]
        assert [c.conflict_id for c in open_only] == [second]
        assert history.queue.list_item_conflicts(4, "resolved")[0].conflict_id == first

    def test_listing_fails_closed(self, history):
        with patch.object(
            history.backend, "query", side_effect=BackendUnavailable("down")
        ):
            assert history.list_open_conflicts() == []
            assert history.queue.list_item_conflicts(1) == []


class TestDetail:
    """get_conflict_detail() and mark_resolved()."""

    def test_missing(self, history):
        assert history.get_conflict_detail("nope") is None

    def test_fails_closed(self, history):
        conflict_id = _enqueue(history)
        with patch.object(
            history.backend, "query_one", side_effect=BackendUnavailable("down")
        ):
            assert history.get_conflict_detail(conflict_id) is None

    def test_mark_resolved_sets_columns(self, history):
        conflict_id = _enqueue(history)

        assert history.queue.mark_resolved(conflict_id, 9, "kept", resolved_at=123) == 1

        conflict = history.get_conflict_detail(conflict_id)
        assert conflict.resolved_by_admin_user_id == 9
        assert conflict.resolved_at == 123
        assert conflict.resolution_payload == "kept"

    def test_mark_resolved_missing(self, history):
        assert history.queue.mark_resolved("nope", 1, "x") == 0
