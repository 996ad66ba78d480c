"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-run summary.
- ``format_merge_summary`` -- one-paragraph description of a merge.
- ``format_conflict_diff`` -- unified diff of one disputed record.
- ``report_to_json`` -- structured dict for JSON output.
"""

from __future__ import annotations

import difflib
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EditConflict, MergeResult, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Every skipped file is listed with its reason.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(f"Sync report ({report.operation})")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    created = len(report.created_remote) + len(report.created_local)
    lines.append(
        f"Processed {len(report.results)} sessions: "
        f"{len(report.updated_remote)} pushed, "
        f"{len(report.updated_local)} pulled, "
        f"{created} created, {len(report.merged)} merged, "
        f"{len(report.deleted_remote)} removed, "
        f"{len(report.conflicts)} conflicts, "
        f"{len(report.ambiguous)} ambiguous, {len(report.errors)} errors"
    )
    lines.append("")

    if report.warnings:
        lines.append("Warnings:")
        for warning in report.warnings:
            lines.append(f"  {warning}")
        lines.append("")

    if report.updated_remote:
        lines.append("Pushed:")
        for r in report.updated_remote:
            lines.append(f"  {r.local_path} -> {r.remote_path}")
        lines.append("")

    if report.updated_local:
        lines.append("Pulled:")
        for r in report.updated_local:
            lines.append(f"  {r.remote_path} -> {r.local_path}")
        lines.append("")

    if report.created_remote:
        lines.append("Created (remote):")
        for r in report.created_remote:
            lines.append(f"  {r.local_path} -> {r.remote_path}")
        lines.append("")

    if report.created_local:
        lines.append("Created (local):")
        for r in report.created_local:
            lines.append(f"  {r.remote_path} -> {r.local_path}")
        lines.append("")

    if report.merged:
        lines.append("Merged:")
        for r in report.merged:
            suffix = f" ({r.detail})" if r.detail else ""
            lines.append(f"  {r.remote_path} -> {r.local_path}{suffix}")
        lines.append("")

    if report.deleted_remote:
        lines.append("Removed (remote):")
        for r in report.deleted_remote:
            reason = r.detail or "deleted locally"
            lines.append(f"  {r.remote_path}: {reason}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            desc = r.detail or "both sides changed"
            lines.append(f"  {r.local_path} <-> {r.remote_path}: {desc}")
        lines.append("")

    if report.ambiguous:
        lines.append("Ambiguous (not synced):")
        for r in report.ambiguous:
            lines.append(f"  {r.remote_path}: {r.detail}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.local_path or r.remote_path}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped ({len(report.skipped)}):")
        for r in report.skipped:
            reason = r.detail or "skipped"
            lines.append(f"  {r.local_path or r.remote_path}: {reason}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Merge summary
# ------------------------------------------------------------------


def format_merge_summary(result: MergeResult) -> str:
    """Describe a merge result in a few lines."""
    name = result.local.path or result.remote.path or "<session>"
    lines = [f"Merge of {name}: {result.verdict.value}"]
    if result.reason:
        lines.append(f"  reason: {result.reason}")
    if result.merged_entries is not None:
        lines.append(
            f"  {len(result.merged_entries)} entries "
            f"({len(result.local_only_ids)} local-only, "
            f"{len(result.remote_only_ids)} remote-only)"
        )
    if result.conflicts:
        lines.append(f"  {len(result.conflicts)} edit conflict(s):")
        for conflict in result.conflicts:
            lines.append(
                f"    {conflict.entry_id}: kept {conflict.kept} ({conflict.reason})"
            )
    if result.branch_points:
        lines.append(f"  branches at: {', '.join(result.branch_points)}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(conflict: EditConflict) -> str:
    """Format a single edit conflict for review.

    Shows a unified diff between the two versions of the record, each
    pretty-printed as JSON with sorted keys.

    Args:
        conflict: The conflict details.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Conflict: {conflict.entry_id} (kept {conflict.kept})")
    lines.append("")

    local_text = json.dumps(
        conflict.local_value, indent=2, sort_keys=True, ensure_ascii=False
    )
    remote_text = json.dumps(
        conflict.remote_value, indent=2, sort_keys=True, ensure_ascii=False
    )
    if conflict.scope == "cross":
        from_label, to_label = "local", "remote"
    else:
        from_label = f"{conflict.scope} (earlier)"
        to_label = f"{conflict.scope} (later)"

    diff = difflib.unified_diff(
        local_text.splitlines(keepends=True),
        remote_text.splitlines(keepends=True),
        fromfile=f"{from_label}: {conflict.entry_id}",
        tofile=f"{to_label}: {conflict.entry_id}",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")
    lines.append("")
    lines.append(f"Reason: {conflict.reason}")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, warnings and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "local_path": r.local_path,
            "remote_path": r.remote_path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        if r.detail:
            entry["detail"] = r.detail
        results_list.append(entry)

    return {
        "operation": report.operation,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "pushed": len(report.updated_remote),
            "pulled": len(report.updated_local),
            "created_remote": len(report.created_remote),
            "created_local": len(report.created_local),
            "merged": len(report.merged),
            "deleted_remote": len(report.deleted_remote),
            "conflicts": len(report.conflicts),
            "ambiguous": len(report.ambiguous),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "warnings": list(report.warnings),
        "results": results_list,
    }
