"""Tests for sync/conflict_log.py -- the append-only conflict report."""

from convo_sync.sync.conflict_log import ConflictLog
from convo_sync.sync.models import ConflictRecord, MergeVerdict, ResolutionStrategy


def _record(**overrides) -> ConflictRecord:
    values = {
        "recorded_at": "2026-01-02T03:04:05+00:00",
        "session_id": "s1",
        "local_file": "/p/s1.jsonl",
        "remote_file": "/p/s1.conflict-x.jsonl",
        "reason": "keep-both requested",
        "verdict": MergeVerdict.CLEAN,
        "strategy": ResolutionStrategy.KEEP_BOTH,
        "local_entry_count": 3,
        "remote_entry_count": 4,
        "differing_entry_count": 1,
    }
    values.update(overrides)
    return ConflictRecord(**values)


class TestConflictLog:
    """Tests for ConflictLog."""

    def test_missing_log_has_no_records(self, tmp_path):
        assert ConflictLog(tmp_path / "none.jsonl").records() == []

    def test_append_creates_parent_and_reads_back(self, tmp_path):
        log = ConflictLog(tmp_path / "deep" / "conflicts.jsonl")

        log.append(_record())
        log.append(_record(session_id="s2", conflicting_ids=["u2"]))

        records = log.records()
        assert [r.session_id for r in records] == ["s1", "s2"]
        assert records[1].conflicting_ids == ["u2"]
        assert records[0].strategy == ResolutionStrategy.KEEP_BOTH

    def test_one_line_per_record(self, tmp_path):
        log = ConflictLog(tmp_path / "conflicts.jsonl")
        log.append(_record(reason="multi\nline reason"))

        lines = log.path.read_text(encoding="utf-8").splitlines()

        assert len(lines) == 1

    def test_malformed_lines_skipped(self, tmp_path):
        log = ConflictLog(tmp_path / "conflicts.jsonl")
        log.append(_record())
        with open(log.path, "a", encoding="utf-8") as fh:
            fh.write("{broken\n")
            fh.write('{"unexpected": true}\n')
        log.append(_record(session_id="s3"))

        assert [r.session_id for r in log.records()] == ["s1", "s3"]
