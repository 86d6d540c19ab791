"""End-to-end behaviour of the revision engine on one item.

Each scenario starts from a base revision that recorded the item's
fields, then lets a "remote" editor fast-forward the head and a "local"
editor write against the old base.
"""

from vault_history.history import ConflictStatus, RevisionType

REMOTE_USER = 2
LOCAL_USER = 3
ADMIN = 1


def _edit(history, item_id, author, changes, base):
    rev = history.record_revision(item_id, author, RevisionType.EDIT, changes, base)
    assert rev
    return rev


class TestFastForward:
    """A write based on the current head becomes the head."""

    def test_head_and_seq_advance_by_one(self, history, make_item):
        item_id, h0 = make_item(Name="a", Content="b")
        before = history.get_item(item_id).version_seq

        rev = _edit(history, item_id, REMOTE_USER, {"Name": ("a", "a2")}, h0)

        item = history.get_item(item_id)
        assert item.head_revision_id == rev
        assert item.version_seq == before + 1
        assert history.list_open_conflicts() == []


class TestDisjointFields:
    """Local and remote touched different fields."""

    def test_auto_merge_produces_both_edits(self, history, make_item):
        item_id, h0 = make_item(Name="x", Content="y")
        h1 = _edit(history, item_id, REMOTE_USER, {"Content": ("y", "y2")}, h0)

        local = _edit(history, item_id, LOCAL_USER, {"Name": ("x", "x2")}, h0)

        item = history.get_item(item_id)
        assert history.list_open_conflicts() == []
        assert item.name == "x2"
        assert item.content == "y2"
        assert item.head_revision_id not in (h0, h1, local)

        merge = history.store.get_revision(item.head_revision_id)
        assert merge.revision_type == RevisionType.MERGE
        assert merge.author_user_id == LOCAL_USER
        assert merge.base_revision_id == h1
        parents = {p.parent_revision_id for p in history.store.get_parents(merge.revision_id)}
        assert parents == {h1, local}

    def test_merge_revision_fields(self, history, make_item):
        item_id, h0 = make_item(Name="x", Content="y")
        _edit(history, item_id, REMOTE_USER, {"Content": ("y", "y2")}, h0)
        _edit(history, item_id, LOCAL_USER, {"Name": ("x", "x2")}, h0)

        head = history.get_item(item_id).head_revision_id
        fields = history.store.get_revision_fields(head)
        assert [(f.field_name, f.old_value, f.new_value) for f in fields] == [
            ("Name", "x", "x2")
        ]

    def test_line_level_merge_in_one_field(self, history, make_item):
        item_id, h0 = make_item(Content="a\nb\nc\n")
        _edit(history, item_id, REMOTE_USER, {"Content": ("a\nb\nc\n", "a\nb\nC\n")}, h0)

        _edit(history, item_id, LOCAL_USER, {"Content": ("a\nb\nc\n", "A\nb\nc\n")}, h0)

        assert history.list_open_conflicts() == []
        assert history.get_item(item_id).content == "A\nb\nC\n"


class TestSameFieldConflict:
    """Both sides changed the same field incompatibly."""

    def test_one_conflict_and_head_unchanged(self, history, make_item):
        item_id, h0 = make_item(Content="x")
        h1 = _edit(history, item_id, REMOTE_USER, {"Content": ("x", "x_remote")}, h0)

        local = _edit(history, item_id, LOCAL_USER, {"Content": ("x", "x_local")}, h0)

        conflicts = history.list_open_conflicts()
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.field_name == "Content"
        assert conflict.item_id == item_id
        assert conflict.base_revision_id == h0
        assert conflict.local_revision_id == local
        assert conflict.remote_revision_id == h1
        assert conflict.originator_user_id == LOCAL_USER
        assert conflict.status == ConflictStatus.OPEN

        item = history.get_item(item_id)
        assert item.head_revision_id == h1
        assert item.content == "x_remote"

    def test_resolution_advances_head(self, history, make_item):
        item_id, h0 = make_item(Content="x")
        h1 = _edit(history, item_id, REMOTE_USER, {"Content": ("x", "x_remote")}, h0)
        local = _edit(history, item_id, LOCAL_USER, {"Content": ("x", "x_local")}, h0)
        conflict_id = history.list_open_conflicts()[0].conflict_id

        assert history.admin_resolve_conflict(
            conflict_id, ADMIN, {"Content": "x_merged"}, "Admin resolved"
        )

        item = history.get_item(item_id)
        assert item.content == "x_merged"
        assert item.head_revision_id not in (h1, local)
        parents = {
            p.parent_revision_id
            for p in history.store.get_parents(item.head_revision_id)
        }
        assert parents == {h1, local}
        detail = history.get_conflict_detail(conflict_id)
        assert detail.status == ConflictStatus.RESOLVED
        assert detail.resolved_by_admin_user_id == ADMIN
        assert detail.resolution_payload == "Admin resolved"


class TestNoPartialMerge:
    """One mergeable and one conflicting field: nothing is applied."""

    def test_neither_field_applied(self, history, make_item):
        item_id, h0 = make_item(Name="n", Content="c")
        h1 = _edit(history, item_id, REMOTE_USER, {"Content": ("c", "c_remote")}, h0)

        _edit(
            history,
            item_id,
            LOCAL_USER,
            {"Name": ("n", "n_local"), "Content": ("c", "c_local")},
            h0,
        )

        item = history.get_item(item_id)
        assert item.head_revision_id == h1
        assert item.name == "n"
        assert item.content == "c_remote"
        conflicts = history.list_open_conflicts()
        assert [c.field_name for c in conflicts] == ["Content"]


class TestFieldLookupRoundTrip:
    """get_field_value at a revision, with the live-value fallback."""

    def test_recorded_field(self, history, make_item):
        item_id, h0 = make_item(Name="v")
        _edit(history, item_id, REMOTE_USER, {"Name": ("v", "w")}, h0)

        assert history.get_field_value(h0, item_id, "Name") == "v"

    def test_untouched_field_is_current_live_value(self, history, make_item):
        item_id, h0 = make_item(Name="v", Tags="old")
        h1 = _edit(history, item_id, REMOTE_USER, {"Name": ("v", "w")}, h0)
        _edit(history, item_id, REMOTE_USER, {"Tags": ("old", "new")}, h1)

        assert history.get_field_value(h1, item_id, "Tags") == "new"


class TestVersionMonotonicity:
    """version_seq strictly increases through edits, merges and resolutions."""

    def test_strictly_increasing(self, history, make_item):
        item_id, h0 = make_item(Name="n", Content="c")
        _edit(history, item_id, REMOTE_USER, {"Content": ("c", "c1")}, h0)
        _edit(history, item_id, LOCAL_USER, {"Name": ("n", "n1")}, h0)  # auto-merge
        _edit(history, item_id, LOCAL_USER, {"Content": ("c", "c2")}, h0)  # conflict
        conflict = history.list_open_conflicts()[0]
        history.keep_remote(conflict.conflict_id, ADMIN)
        history.apply_edit(item_id, REMOTE_USER, {"Tags": "t"})

        seqs = [v.version_seq for v in history.item_history(item_id)]
        assert seqs == sorted(set(seqs))
        assert seqs == list(range(1, len(seqs) + 1))
        assert history.get_item(item_id).version_seq == seqs[-1]
