"""Tests for sync/mapper.py -- SessionPathMapper filtering and path mapping."""

import os
import time
from pathlib import Path

from conftest import make_record, session_of, write_jsonl
from convo_sync.config_schema import SyncConfig
from convo_sync.sync.mapper import SessionPathMapper
from convo_sync.sync.naming import NamingMode

# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestShouldInclude:
    """Tests for SessionPathMapper.should_include()."""

    def test_plain_session_included(self, tmp_path):
        path = write_jsonl(tmp_path / "p" / "s.jsonl", [make_record("u")])
        assert SessionPathMapper(SyncConfig()).should_include(path)

    def test_non_jsonl_excluded(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("x")
        assert not SessionPathMapper(SyncConfig()).should_include(path)

    def test_conflict_fork_excluded(self, tmp_path):
        path = tmp_path / "s.conflict-20260102T030405123456Z.jsonl"
        path.write_text("")
        assert not SessionPathMapper(SyncConfig()).should_include(path)

    def test_oversized_excluded(self, tmp_path):
        path = tmp_path / "big.jsonl"
        path.write_bytes(b"x" * 2048)
        mapper = SessionPathMapper(SyncConfig(max_file_size_bytes=1024))
        assert not mapper.should_include(path)

    def test_exclude_pattern(self, tmp_path):
        path = write_jsonl(tmp_path / "p" / "agent-1.jsonl", [make_record("u")])
        mapper = SessionPathMapper(SyncConfig(exclude_patterns=["*/agent-*.jsonl"]))
        assert not mapper.should_include(path)

    def test_include_pattern_limits(self, tmp_path):
        kept = write_jsonl(tmp_path / "work" / "s.jsonl", [make_record("u")])
        dropped = write_jsonl(tmp_path / "play" / "s.jsonl", [make_record("u")])
        mapper = SessionPathMapper(SyncConfig(include_patterns=["*/work/*"]))

        assert mapper.should_include(kept)
        assert not mapper.should_include(dropped)

    def test_age_limit(self, tmp_path):
        old = write_jsonl(tmp_path / "old.jsonl", [make_record("u")])
        fresh = write_jsonl(tmp_path / "fresh.jsonl", [make_record("u")])
        ten_days_ago = time.time() - 10 * 24 * 60 * 60
        os.utime(old, (ten_days_ago, ten_days_ago))
        mapper = SessionPathMapper(SyncConfig(exclude_older_than_days=7))

        assert not mapper.should_include(old)
        assert mapper.should_include(fresh)

    def test_discover_session_files_sorted(self, tmp_path):
        for name in ["b.jsonl", "a.jsonl", "c.txt"]:
            (tmp_path / name).write_text("")
        (tmp_path / "d.jsonl").mkdir()

        files = SessionPathMapper(SyncConfig()).discover_session_files(tmp_path)

        assert [f.name for f in files] == ["a.jsonl", "b.jsonl"]

    def test_discover_missing_directory(self, tmp_path):
        mapper = SessionPathMapper(SyncConfig())
        assert mapper.discover_session_files(tmp_path / "missing") == []


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


class TestMapLocalToSync:
    """Tests for SessionPathMapper.map_local_to_sync()."""

    def test_project_name_mode(self, tmp_path):
        path = str(tmp_path / "C--Users-OSEN-----" / "abc.jsonl")
        session = session_of(
            [make_record("u", cwd="C:\\Users\\OSEN\\项目名")], path
        )
        mapper = SessionPathMapper(SyncConfig(use_project_name_only=True))

        assert mapper.mode == NamingMode.PROJECT_NAME
        assert mapper.map_local_to_sync(session, tmp_path) == "项目名/abc.jsonl"

    def test_project_name_mode_without_cwd(self, tmp_path):
        session = session_of(
            [{"type": "file-history-snapshot", "messageId": "m"}],
            str(tmp_path / "x" / "s.jsonl"),
        )
        mapper = SessionPathMapper(SyncConfig())
        assert mapper.map_local_to_sync(session, tmp_path) is None

    def test_full_path_mode_keeps_directory_name(self, tmp_path):
        path = str(tmp_path / "-Users-mini-demo" / "abc.jsonl")
        session = session_of([make_record("u")], path)
        mapper = SessionPathMapper(SyncConfig(use_project_name_only=False))

        assert mapper.mode == NamingMode.FULL_PATH
        assert (
            mapper.map_local_to_sync(session, tmp_path)
            == "-Users-mini-demo/abc.jsonl"
        )

    def test_full_path_mode_outside_root(self, tmp_path):
        session = session_of([make_record("u")], "/elsewhere/proj/abc.jsonl")
        mapper = SessionPathMapper(SyncConfig(use_project_name_only=False))
        assert mapper.map_local_to_sync(session, tmp_path) == "proj/abc.jsonl"

    def test_session_without_path(self, tmp_path):
        session = session_of([make_record("u")])
        assert SessionPathMapper(SyncConfig()).map_local_to_sync(
            session, Path(tmp_path)
        ) is None
