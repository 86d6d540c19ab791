"""Three-way merge and diff utilities for per-field reconciliation.

Uses the ``merge3`` library for three-way merging (the same algorithm used
by Bazaar/Breezy) and ``difflib`` for unified diff generation.

Key design choices:

* ``merge_file`` is the merge primitive: ``(ancestor, ours, theirs) ->
  (merged, automergeable)``.  Conflicts are detected from merge3's regions
  rather than by scanning the output for markers, so field values that
  happen to contain marker-like text do not confuse it.
* ``FieldMerger`` wraps the primitive with the fast paths for one-sided
  changes and turns primitive errors into a failed ``FieldMergeResult``.
  It never surfaces conflict markers; ambiguity is escalated instead.
* ``generate_diff`` is a thin wrapper around ``difflib.unified_diff``,
  stored alongside each revision field and shown in conflict reports.
"""

from __future__ import annotations

import difflib
import logging
from typing import Callable

from merge3 import Merge3

from ..errors import MergePrimitiveFailure
from .models import FieldMergeResult

logger = logging.getLogger(__name__)

MergePrimitive = Callable[[str, str, str], tuple[str, bool]]


def merge_file(
    ancestor: str,
    ours: str,
    theirs: str,
) -> tuple[str, bool]:
    """Three-way merge *ours* and *theirs* against *ancestor*.

    Returns:
        A tuple of ``(merged_text, automergeable)``.  When
        *automergeable* is ``False`` the merged text contains
        ``<<<<<<< LOCAL`` / ``>>>>>>> REMOTE`` conflict markers.

    Raises:
        MergePrimitiveFailure: If merge3 cannot process the inputs.
    """
    try:
        m3 = Merge3(
            ancestor.splitlines(True),
            ours.splitlines(True),
            theirs.splitlines(True),
        )
        automergeable = not any(
            region[0] == "conflict" for region in m3.merge_regions()
        )
        merged_lines = m3.merge_lines(
            name_a="LOCAL",
            name_b="REMOTE",
            start_marker="<<<<<<< LOCAL",
            mid_marker="=======",
            end_marker=">>>>>>> REMOTE",
        )
        return "".join(merged_lines), automergeable
    except Exception as exc:
        raise MergePrimitiveFailure(f"merge3 failed: {exc}") from exc


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Generate a unified diff between two strings.

    Returns:
        A unified diff string.  Empty string if the contents are identical.
    """
    diff_lines = difflib.unified_diff(
        old_content.splitlines(True),
        new_content.splitlines(True),
        fromfile=label_old,
        tofile=label_new,
    )
    return "".join(diff_lines)


class FieldMerger:
    """Stateless per-field merge.

    Args:
        primitive: The three-way merge primitive; defaults to
            ``merge_file``.  Injectable so tests can simulate failures.
    """

    def __init__(self, primitive: MergePrimitive | None = None) -> None:
        self._primitive = primitive or merge_file

    def merge(
        self,
        base: str,
        local: str,
        remote: str,
        field_name: str = "",
    ) -> FieldMergeResult:
        """Reconcile one field.

        * ``base == local``: only remote changed, take remote.
        * ``base == remote``: only local changed, take local.
        * ``local == remote``: both sides made the same edit.
        * otherwise: delegate to the primitive; an unreconcilable result
          is returned with ``clean=False``.

        A primitive exception yields ``clean=False`` with ``failure`` set.
        """
        if base == local:
            return FieldMergeResult(
                field_name=field_name, merged=remote, clean=True
            )
        if base == remote or local == remote:
            return FieldMergeResult(
                field_name=field_name, merged=local, clean=True
            )

        try:
            merged, automergeable = self._primitive(base, local, remote)
        except Exception as exc:
            logger.error(
                "Merge primitive failed for field %s: %s", field_name, exc
            )
            return FieldMergeResult(
                field_name=field_name, clean=False, failure=str(exc)
            )

        if not automergeable:
            logger.info(
                "Overlapping edits in field %s -- escalating", field_name
            )
            return FieldMergeResult(
                field_name=field_name, merged=merged, clean=False
            )

        logger.debug("Clean three-way merge for field %s", field_name)
        return FieldMergeResult(
            field_name=field_name, merged=merged, clean=True
        )
