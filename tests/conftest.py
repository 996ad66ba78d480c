"""Shared pytest fixtures for convo-sync tests."""

import json
from pathlib import Path

import pytest

from convo_sync.config_schema import SyncConfig
from convo_sync.sync.parser import parse_session

SESSION_ID = "7f3c2a10-0000-4000-8000-000000000001"


def make_record(
    uuid: str | None,
    parent: str | None = None,
    timestamp: str | None = "2026-01-01T10:00:00.000Z",
    type_: str = "user",
    text: str = "hello",
    cwd: str | None = "/Users/mini/demo",
    session_id: str | None = SESSION_ID,
    **extra,
) -> dict:
    """Build one session log record in the on-disk key layout."""
    record: dict = {"type": type_}
    if uuid is not None:
        record["uuid"] = uuid
    record["parentUuid"] = parent
    if timestamp is not None:
        record["timestamp"] = timestamp
    if cwd is not None:
        record["cwd"] = cwd
    if session_id is not None:
        record["sessionId"] = session_id
    record["message"] = {
        "role": "assistant" if type_ == "assistant" else "user",
        "content": text,
    }
    record.update(extra)
    return record


def to_jsonl(records: list[dict]) -> str:
    return "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in records)


def write_jsonl(path: Path, records: list[dict]) -> Path:
    """Write *records* as a session file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_jsonl(records), encoding="utf-8")
    return path


def session_of(records: list[dict], path: str | None = None):
    """Parse *records* into a ``Session`` without touching disk."""
    return parse_session(to_jsonl(records).encode("utf-8"), path)


@pytest.fixture
def conversation() -> list[dict]:
    """A short linear conversation: user, assistant, user."""
    return [
        make_record("u1", None, "2026-01-01T10:00:00Z", text="Fix the build"),
        make_record(
            "a1", "u1", "2026-01-01T10:00:05Z", type_="assistant", text="Done."
        ),
        make_record("u2", "a1", "2026-01-01T10:01:00Z", text="Thanks"),
    ]


@pytest.fixture
def sync_config(tmp_path) -> SyncConfig:
    """Default sync config with the conflict log kept inside tmp_path."""
    return SyncConfig(conflict_log=str(tmp_path / "conflicts.jsonl"))
