"""Report formatting for conflicts, item history and uploads.

Provides human-readable and machine-readable output for the CLI:

- ``format_conflict_list`` -- one line per open conflict.
- ``format_conflict_detail`` -- a conflict with its base, local and remote
  values and a local/remote diff.
- ``format_item_history`` -- the version log of one item.
- ``format_sync_report`` -- post-upload summary.
- ``conflict_to_json`` / ``report_to_json`` -- structured dicts for
  ``--json`` output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .merger import generate_diff

if TYPE_CHECKING:
    from ..sync.models import SyncReport
    from .models import Conflict, ConflictValues, ItemVersion, Revision


def format_timestamp(timestamp: Any) -> str:
    """Format a Unix timestamp as ``YYYY-MM-DD HH:MM`` (UTC)."""
    match timestamp:
        case datetime() as dt:
            return dt.strftime("%Y-%m-%d %H:%M")
        case int() | float() as ts:
            return datetime.fromtimestamp(ts, tz=timezone.utc).strftime(
                "%Y-%m-%d %H:%M"
            )
        case None:
            return "-"
        case _:
            return str(timestamp)


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------


def format_conflict_list(conflicts: list[Conflict]) -> str:
    if not conflicts:
        return "No open conflicts."
    lines = [f"Open conflicts ({len(conflicts)}):"]
    for c in conflicts:
        lines.append(
            f"  {c.conflict_id} - item:{c.item_id} field:{c.field_name} "
            f"originator:{c.originator_user_id} "
            f"created:{format_timestamp(c.created_at)}"
        )
    return "\n".join(lines)


def format_conflict_detail(values: ConflictValues) -> str:
    """Format one conflict for admin review.

    Shows the conflict metadata, the three values being reconciled, and
    a unified diff from local to remote.
    """
    c = values.conflict
    lines = [
        f"Conflict: {c.conflict_id}",
        f"Item: {c.item_id} Field: {c.field_name}",
        f"Originator: {c.originator_user_id} "
        f"Created: {format_timestamp(c.created_at)}",
        f"Status: {c.status.value}",
        f"Base revision: {c.base_revision_id or '-'}",
        f"Local revision: {c.local_revision_id or '-'}",
        f"Remote revision: {c.remote_revision_id or '-'}",
    ]
    if not c.is_open:
        lines.append(
            f"Resolved by {c.resolved_by_admin_user_id} at "
            f"{format_timestamp(c.resolved_at)}: {c.resolution_payload or ''}"
        )
    lines.append("")

    for label, text in (
        ("Base", values.base_value),
        ("Local", values.local_value),
        ("Remote", values.remote_value),
    ):
        lines.append(f"{label}:")
        lines.append("-" * 40)
        lines.append(text if text else "(empty)")
        lines.append("")

    diff = generate_diff(
        values.local_value, values.remote_value, "local", "remote"
    )
    lines.append(diff.rstrip() if diff else "(no textual differences)")
    return "\n".join(lines).rstrip()


def conflict_to_json(
    conflict: Conflict, values: ConflictValues | None = None
) -> dict:
    entry: dict = conflict.model_dump(mode="json")
    if values is not None:
        entry["base_value"] = values.base_value
        entry["local_value"] = values.local_value
        entry["remote_value"] = values.remote_value
    return entry


# ------------------------------------------------------------------
# Item history
# ------------------------------------------------------------------


def format_item_history(
    item_id: int,
    versions: list[ItemVersion],
    revisions: dict[str, Revision] | None = None,
    head_revision_id: str | None = None,
) -> str:
    """Format the version log of one item, oldest first.

    Args:
        item_id: The item.
        versions: Version log entries.
        revisions: Optional revision records keyed by id, used to show
            type, author and summary.
        head_revision_id: Marks the current head with ``*``.
    """
    if not versions:
        return f"Item {item_id} has no recorded revisions."
    revisions = revisions or {}
    lines = [f"History of item {item_id}:"]
    for v in versions:
        marker = "*" if v.revision_id and v.revision_id == head_revision_id else " "
        line = (
            f" {marker} {v.version_seq:>4}  {v.revision_id or '-'}  "
            f"{format_timestamp(v.created_at)}"
        )
        rev = revisions.get(v.revision_id or "")
        if rev is not None:
            line += f"  {rev.revision_type.value} by {rev.author_user_id}"
            if rev.change_summary:
                line += f"  ({rev.change_summary})"
        lines.append(line)
    return "\n".join(lines)


# ------------------------------------------------------------------
# Upload report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format an upload report as human-readable text.

    Sections are only included when they contain at least one result.
    Skipped items are summarised by count only.
    """
    header = f"Upload report for '{report.remote}'"
    if report.dry_run:
        header += " (DRY RUN)"
    lines = [header, f"Started: {report.started_at}"]
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if report.error:
        lines.append(f"FAILED: {report.error}")
        lines.append("")

    lines.append(
        f"Processed {len(report.results)} items: "
        f"{len(report.created_remote)} created, {len(report.pushed)} pushed, "
        f"{len(report.merged)} merged, {len(report.conflicts)} conflicts, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    verb = "Would create" if report.dry_run else "Created"
    if report.created_remote:
        lines.append(f"{verb} on remote:")
        for r in report.created_remote:
            lines.append(f"  item {r.item_id}")
        lines.append("")

    if report.pushed:
        lines.append("Would push:" if report.dry_run else "Pushed:")
        for r in report.pushed:
            fields = ", ".join(r.changed_fields) or "-"
            lines.append(f"  item {r.item_id} [{fields}] {r.revision_id or ''}".rstrip())
        lines.append("")

    if report.merged:
        lines.append("Auto-merged:")
        for r in report.merged:
            lines.append(f"  item {r.item_id} {r.revision_id}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts (admin resolution required):")
        for r in report.conflicts:
            lines.append(f"  item {r.item_id}: {', '.join(r.conflict_ids)}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  item {r.item_id}: {r.error}")
        lines.append("")

    skipped = len([r for r in report.skipped if r.success])
    if skipped:
        lines.append(f"Skipped: {skipped} items")
        lines.append("")

    return "\n".join(lines).rstrip()


def report_to_json(report: SyncReport) -> dict:
    """Convert an upload report to a dict for JSON serialisation."""
    results_list = []
    for r in report.results:
        entry: dict = {
            "item_id": r.item_id,
            "action": r.action.value,
            "success": r.success,
        }
        if r.revision_id:
            entry["revision_id"] = r.revision_id
        if r.changed_fields:
            entry["changed_fields"] = list(r.changed_fields)
        if r.conflict_ids:
            entry["conflict_ids"] = list(r.conflict_ids)
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "remote": report.remote,
        "uploader_user_id": report.uploader_user_id,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "error": report.error,
        "counts": {
            "total": len(report.results),
            "created_remote": len(report.created_remote),
            "pushed": len(report.pushed),
            "merged": len(report.merged),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "results": results_list,
    }
