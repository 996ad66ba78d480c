"""Exception types raised by convo_sync.

Only conditions a caller must tell apart get their own class.  Malformed
lines, ambiguous matches and irreconcilable merges are reported through
return values (see ``sync.models``), not exceptions.
"""

from __future__ import annotations

from pathlib import Path


class ConvoSyncError(Exception):
    """Base class for all convo_sync errors."""


class SessionUnreadableError(ConvoSyncError):
    """A session file could not be read at all.

    Distinct from a file that reads fine but contains zero valid entries,
    which parses to an empty ``Session``.

    Attributes:
        path: The file that could not be read.
        reason: Short human-readable cause (``"not found"``,
            ``"permission denied"``, ...).
    """

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot read session file {self.path}: {reason}")
