"""Tests for sync/reporter.py -- text and JSON report formatting."""

from conftest import make_record, session_of
from convo_sync.sync.merger import merge
from convo_sync.sync.models import SyncAction, SyncReport, SyncResult
from convo_sync.sync.reporter import (
    format_conflict_diff,
    format_merge_summary,
    format_sync_report,
    report_to_json,
)


def _report() -> SyncReport:
    return SyncReport(
        operation="pull",
        started_at="2026-01-02T03:04:05+00:00",
        completed_at="2026-01-02T03:04:06+00:00",
        warnings=["Mixed directory formats detected"],
        results=[
            SyncResult(
                local_path="/l/demo/a.jsonl",
                remote_path="demo/a.jsonl",
                action=SyncAction.CREATE_LOCAL,
            ),
            SyncResult(
                local_path="/l/demo/b.jsonl",
                remote_path="demo/b.jsonl",
                action=SyncAction.MERGE,
                detail="clean, merged",
            ),
            SyncResult(
                local_path="/l/demo/c.jsonl",
                remote_path="demo/c.jsonl",
                action=SyncAction.CONFLICT,
                detail="irreconcilable, forked",
            ),
            SyncResult(
                local_path="",
                remote_path="dup/d.jsonl",
                action=SyncAction.AMBIGUOUS,
                detail="project 'dup' matches -a-dup, -b-dup",
            ),
            SyncResult(
                local_path="/l/demo/e.jsonl",
                remote_path="demo/e.jsonl",
                action=SyncAction.SKIP,
                detail="unchanged",
            ),
            SyncResult(
                local_path="/l/demo/f.jsonl",
                remote_path="demo/f.jsonl",
                action=SyncAction.SKIP,
                success=False,
                error="permission denied",
            ),
        ],
    )


class TestFormatSyncReport:
    """Tests for format_sync_report()."""

    def test_summary_line(self):
        text = format_sync_report(_report())
        assert "Sync report (pull)" in text
        assert (
            "Processed 6 sessions: 0 pushed, 0 pulled, 1 created, 1 merged, "
            "0 removed, 1 conflicts, 1 ambiguous, 1 errors"
        ) in text

    def test_sections(self):
        text = format_sync_report(_report())
        assert "Warnings:\n  Mixed directory formats detected" in text
        assert "Created (local):\n  demo/a.jsonl -> /l/demo/a.jsonl" in text
        assert "irreconcilable, forked" in text
        assert "Ambiguous (not synced):" in text
        assert "/l/demo/f.jsonl: permission denied" in text
        assert "Merged:\n  demo/b.jsonl -> /l/demo/b.jsonl (clean, merged)" in text
        assert "Skipped (1):\n  /l/demo/e.jsonl: unchanged" in text

    def test_removed_section(self):
        """Remote removals are listed with their reason."""
        report = SyncReport(
            operation="push",
            started_at="t",
            results=[
                SyncResult(
                    local_path="",
                    remote_path="demo/old.jsonl",
                    action=SyncAction.DELETE_REMOTE,
                    detail="deleted locally",
                ),
                SyncResult(
                    local_path="",
                    remote_path="demo/memory/notes.md",
                    action=SyncAction.DELETE_REMOTE,
                    detail="memory file deleted locally",
                ),
            ],
        )

        text = format_sync_report(report)

        assert "2 removed" in text
        assert "Removed (remote):\n  demo/old.jsonl: deleted locally\n" in text
        assert "  demo/memory/notes.md: memory file deleted locally" in text
        assert report_to_json(report)["counts"]["deleted_remote"] == 2

    def test_every_skip_listed_with_reason(self):
        report = SyncReport(
            operation="push",
            started_at="t",
            results=[
                SyncResult(
                    local_path="/l/a.jsonl",
                    remote_path="a.jsonl",
                    action=SyncAction.SKIP,
                    detail="unchanged",
                ),
                SyncResult(
                    local_path="/l/b.jsonl",
                    remote_path="",
                    action=SyncAction.SKIP,
                    detail="no working directory recorded",
                ),
            ],
        )

        text = format_sync_report(report)

        assert "Skipped (2):" in text
        assert "  /l/a.jsonl: unchanged" in text
        assert "  /l/b.jsonl: no working directory recorded" in text

    def test_empty_sections_omitted(self):
        report = SyncReport(operation="push", started_at="t")
        text = format_sync_report(report)
        assert "Pushed:" not in text
        assert "Errors:" not in text


class TestReportToJson:
    """Tests for report_to_json()."""

    def test_counts_and_results(self):
        data = report_to_json(_report())

        assert data["operation"] == "pull"
        assert data["counts"]["total"] == 6
        assert data["counts"]["merged"] == 1
        assert data["counts"]["errors"] == 1
        assert data["warnings"] == ["Mixed directory formats detected"]
        assert data["results"][0] == {
            "local_path": "/l/demo/a.jsonl",
            "remote_path": "demo/a.jsonl",
            "action": "create_local",
            "success": True,
        }
        assert data["results"][5]["error"] == "permission denied"


class TestMergeFormatting:
    """Tests for format_merge_summary() and format_conflict_diff()."""

    def _conflicting(self, conversation):
        edited = make_record("u2", "a1", "2026-01-01T11:00:00Z", text="edited")
        return merge(
            session_of(conversation, "l.jsonl"),
            session_of([*conversation[:2], edited], "r.jsonl"),
        )

    def test_merge_summary(self, conversation):
        text = format_merge_summary(self._conflicting(conversation))

        assert text.startswith("Merge of l.jsonl: resolved_edits")
        assert "u2: kept remote (later timestamp)" in text

    def test_conflict_diff(self, conversation):
        conflict = self._conflicting(conversation).conflicts[0]

        text = format_conflict_diff(conflict)

        assert "--- local: u2" in text
        assert "+++ remote: u2" in text
        assert '-    "content": "Thanks",' in text
        assert '+    "content": "edited",' in text
