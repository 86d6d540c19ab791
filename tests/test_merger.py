"""Tests for history/merger.py -- per-field three-way merge and diffs.

Covers:
- FieldMerger fast paths for one-sided and identical edits
- Clean and conflicting merges through merge3
- Primitive failures surfaced as failed results, not exceptions
- merge_file / generate_diff helpers
"""

import logging

import pytest

from vault_history.errors import MergePrimitiveFailure
from vault_history.history.merger import (
    FieldMerger,
    generate_diff,
    merge_file,
)

# ---------------------------------------------------------------------------
# FieldMerger
# ---------------------------------------------------------------------------


class TestFieldMerger:
    """Tests for FieldMerger.merge()."""

    def test_only_remote_changed_takes_remote(self):
        result = FieldMerger().merge("x", "x", "x_remote", "Name")

        assert result.clean
        assert result.merged == "x_remote"
        assert result.field_name == "Name"

    def test_only_local_changed_takes_local(self):
        result = FieldMerger().merge("x", "x_local", "x", "Name")

        assert result.clean
        assert result.merged == "x_local"

    def test_same_edit_on_both_sides(self):
        result = FieldMerger().merge("x", "same", "same")

        assert result.clean
        assert result.merged == "same"

    def test_all_equal(self):
        result = FieldMerger().merge("v", "v", "v")

        assert result.clean
        assert result.merged == "v"

    def test_disjoint_line_edits_merge_cleanly(self):
        base = "a\nb\nc\n"
        local = "A\nb\nc\n"
        remote = "a\nb\nC\n"

        result = FieldMerger().merge(base, local, remote, "Content")

        assert result.clean
        assert result.merged == "A\nb\nC\n"
        assert not result.primitive_failed

    def test_overlapping_edits_are_not_clean(self):
        result = FieldMerger().merge("x", "x_local", "x_remote", "Content")

        assert not result.clean
        assert not result.primitive_failed

    def test_primitive_failure_is_reported(self, caplog):
        def broken(base, local, remote):
            raise MergePrimitiveFailure("boom")

        with caplog.at_level(logging.ERROR):
            result = FieldMerger(broken).merge("a", "b", "c", "Tags")

        assert not result.clean
        assert result.merged is None
        assert result.primitive_failed
        assert "boom" in result.failure
        assert "Merge primitive failed for field Tags" in caplog.text

    def test_primitive_not_called_on_fast_path(self):
        calls = []

        def spy(base, local, remote):
            calls.append((base, local, remote))
            return local, True

        FieldMerger(spy).merge("x", "x", "y")
        FieldMerger(spy).merge("x", "y", "x")

        assert calls == []

    def test_deterministic(self):
        merger = FieldMerger()
        first = merger.merge("a\nb\n", "A\nb\n", "a\nB\n")
        second = merger.merge("a\nb\n", "A\nb\n", "a\nB\n")

        assert first == second


# ---------------------------------------------------------------------------
# merge_file
# ---------------------------------------------------------------------------


class TestMergeFile:
    """Tests for merge_file()."""

    def test_conflict_markers(self):
        merged, automergeable = merge_file("line\n", "LOCAL change\n", "REMOTE change\n")

        assert not automergeable
        assert "<<<<<<< LOCAL" in merged
        assert ">>>>>>> REMOTE" in merged

    def test_marker_text_in_values_does_not_confuse(self):
        base = "<<<<<<< LOCAL\nkeep\n"
        local = "<<<<<<< LOCAL\nkeep\nmore\n"

        merged, automergeable = merge_file(base, local, base)

        assert automergeable
        assert merged == local

    def test_disjoint_lines_merge_cleanly(self):
        merged, automergeable = merge_file(
            "line1\nline2\n", "line1\nLOCAL\nline2\n", "line1\nline2\nREMOTE\n"
        )
        assert automergeable
        assert "LOCAL" in merged
        assert "REMOTE" in merged

    def test_bad_input_raises_primitive_failure(self):
        with pytest.raises(MergePrimitiveFailure):
            merge_file(None, "a", "b")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# generate_diff
# ---------------------------------------------------------------------------


class TestGenerateDiff:
    """Tests for generate_diff()."""

    def test_identical_is_empty(self):
        assert generate_diff("same\n", "same\n") == ""

    def test_labels_and_lines(self):
        diff = generate_diff("old\n", "new\n", "a/Content", "b/Content")

        assert "--- a/Content" in diff
        assert "+++ b/Content" in diff
        assert "-old" in diff
        assert "+new" in diff
