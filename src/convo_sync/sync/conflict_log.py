"""Append-only conflict report log.

Every conflict resolution that forks a session or discards an edited
record is written here as one JSON object per line, so a user can audit
what happened after an unattended pull.  Appends are a single ``write``
of one line in append mode; concurrent invocations interleave whole lines.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from convo_sync.sync.models import ConflictRecord

logger = logging.getLogger(__name__)


class ConflictLog:
    """Read and append conflict records.

    Args:
        path: The JSONL log file.  Its directory is created on the first
            append.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def append(self, record: ConflictRecord) -> None:
        """Append *record* as one line."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        logger.info(
            "Conflict recorded for %s: %s", record.local_file, record.reason
        )

    def records(self) -> list[ConflictRecord]:
        """All readable records, oldest first; malformed lines are skipped."""
        if not self.path.exists():
            return []
        result: list[ConflictRecord] = []
        with open(self.path, encoding="utf-8", errors="replace") as fh:
            for number, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    result.append(ConflictRecord(**json.loads(line)))
                except (json.JSONDecodeError, TypeError, ValidationError):
                    logger.warning(
                        "Skipping malformed conflict log line %s:%d",
                        self.path,
                        number,
                    )
        return result
