"""Fault-tolerant parser for line-delimited session logs.

Session logs are append-only JSONL.  A crash mid-write can leave a
truncated last line, and older tool versions wrote occasional junk, so
every line is decoded on its own: a line that is not valid UTF-8, not
valid JSON, or not a JSON object is skipped and numbered in
``Session.skipped_lines`` with its bytes kept in ``Session.skipped_raw``;
parsing continues with the next line.

Reading is the only place a file is opened.  ``read_session`` reads the
whole file, closes it, then parses; a file that cannot be read raises
``SessionUnreadableError`` so callers never confuse it with a file that
simply holds no valid entries.
"""

from __future__ import annotations

import errno
import json
import logging
from pathlib import Path
from typing import Any

from convo_sync.errors import SessionUnreadableError
from convo_sync.file_handler import read_bytes, write_file_atomic
from convo_sync.sync.models import Entry, EntryKind, Session

logger = logging.getLogger(__name__)

_KIND_BY_TYPE: dict[str, EntryKind] = {
    "user": EntryKind.USER,
    "assistant": EntryKind.ASSISTANT,
    "system": EntryKind.SYSTEM,
    "summary": EntryKind.SUMMARY,
    "tool": EntryKind.TOOL,
    "tool_use": EntryKind.TOOL,
    "tool_result": EntryKind.TOOL,
}


def _optional_str(record: dict[str, Any], key: str) -> str | None:
    value = record.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def entry_from_record(record: dict[str, Any], raw_line: str) -> Entry:
    """Build an ``Entry`` from one decoded JSON object."""
    type_tag = record.get("type")
    if not isinstance(type_tag, str):
        type_tag = None
    return Entry(
        kind=_KIND_BY_TYPE.get(type_tag or "", EntryKind.OTHER),
        type_tag=type_tag,
        id=_optional_str(record, "uuid"),
        parent_id=_optional_str(record, "parentUuid"),
        timestamp=_optional_str(record, "timestamp"),
        working_directory=_optional_str(record, "cwd"),
        session_id=_optional_str(record, "sessionId"),
        payload=record.get("message"),
        raw=record,
        raw_line=raw_line,
    )


def parse_line(line: str) -> Entry | None:
    """Decode one text line; ``None`` when it is not a JSON object."""
    try:
        record = json.loads(line)
    except (json.JSONDecodeError, RecursionError):
        return None
    if not isinstance(record, dict):
        return None
    return entry_from_record(record, line)


def parse_session(data: bytes, path: str | Path | None = None) -> Session:
    """Parse raw file bytes into a ``Session``.

    Args:
        data: Whole file contents.
        path: Source path, recorded on the session for identity fallback
            and for writing results back.

    Returns:
        A ``Session``.  Malformed lines are skipped, never fatal.
    """
    entries: list[Entry] = []
    skipped: list[int] = []
    skipped_raw: list[bytes] = []

    for number, raw in enumerate(data.split(b"\n"), start=1):
        if number == 1 and raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        raw = raw.rstrip(b"\r")
        if not raw.strip():
            continue
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("%s:%d: not valid UTF-8, skipped", path, number)
            skipped.append(number)
            skipped_raw.append(raw)
            continue

        entry = parse_line(line)
        if entry is None:
            logger.debug("%s:%d: malformed record, skipped", path, number)
            skipped.append(number)
            skipped_raw.append(raw)
            continue
        entries.append(entry)

    if skipped:
        logger.warning(
            "Skipped %d malformed line(s) in %s: %s",
            len(skipped),
            path or "<bytes>",
            skipped,
        )

    return Session(
        path=str(path) if path is not None else None,
        entries=entries,
        skipped_lines=skipped,
        skipped_raw=skipped_raw,
    )


def read_session(path: str | Path) -> Session:
    """Read and parse a session file.

    Raises:
        SessionUnreadableError: If the file is missing, is a directory,
            cannot be opened for permission reasons, or any other read
            error occurs.
    """
    path = Path(path)
    try:
        data = read_bytes(path)
    except FileNotFoundError:
        raise SessionUnreadableError(path, "not found") from None
    except PermissionError:
        raise SessionUnreadableError(path, "permission denied") from None
    except IsADirectoryError:
        raise SessionUnreadableError(path, "is a directory") from None
    except OSError as exc:
        reason = errno.errorcode.get(exc.errno or 0, str(exc))
        raise SessionUnreadableError(path, reason) from exc
    return parse_session(data, path)


def write_session(session: Session, path: str | Path) -> int:
    """Write a session to *path* atomically; returns bytes written."""
    return write_file_atomic(Path(path), session.to_jsonl())
