"""Pydantic models for session sync.

Defines the core data contracts used across all sync modules:

- ``Entry`` / ``Session``: parsed session log records and files.
- ``ProjectDirectory`` / ``MatchOutcome``: discovery inputs and results.
- ``EditConflict`` / ``MergeResult``: merge engine output.
- ``FinalOutcome`` / ``ConflictRecord``: conflict resolver output.
- ``SyncResult`` / ``SyncReport``: per-file and aggregate batch results.

All models are frozen (immutable) for safety.  A re-read of a file builds
a new ``Session``; nothing is updated in place.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel

from .naming import path_project_name
from .titles import DEFAULT_INJECTED_MARKERS, is_system_injected, message_text

_MIN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC.  Returns ``None`` for missing or
    unparseable values.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Session records
# ---------------------------------------------------------------------------


class EntryKind(str, Enum):
    """Role tag of a session record."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"
    SUMMARY = "summary"
    OTHER = "other"


class Entry(BaseModel):
    """One line of a session log.

    Only the structural fields are lifted out of the record.  ``raw`` keeps
    the whole decoded object and ``raw_line`` the exact source text, which
    is what gets written back, so unknown fields and record types survive a
    parse-then-write round trip unchanged.

    Attributes:
        kind: Normalised role tag.
        type_tag: The record's ``type`` value as written.
        id: ``uuid`` of the record; absent on snapshots and metadata.
        parent_id: ``parentUuid`` back-reference.
        timestamp: Creation time as written.
        working_directory: ``cwd`` as recorded by the originating device.
        session_id: ``sessionId`` of the owning conversation.
        payload: ``message`` blob, opaque to the core.
        raw: Full decoded record.
        raw_line: Source line without its trailing newline.
    """

    kind: EntryKind
    type_tag: str | None = None
    id: str | None = None
    parent_id: str | None = None
    timestamp: str | None = None
    working_directory: str | None = None
    session_id: str | None = None
    payload: Any = None
    raw: dict[str, Any]
    raw_line: str

    model_config = {"frozen": True}

    @property
    def has_id(self) -> bool:
        return bool(self.id)

    def parsed_timestamp(self) -> datetime | None:
        return parse_timestamp(self.timestamp)

    def content_key(self) -> str:
        """Canonical JSON of the full record, for full-content equality."""
        return json.dumps(
            self.raw, sort_keys=True, ensure_ascii=False, separators=(",", ":")
        )

    def sort_key(self) -> tuple[datetime, str, str]:
        """Merge output order: timestamp, then id, then content."""
        return (
            self.parsed_timestamp() or _MIN_TIMESTAMP,
            self.id or "",
            self.content_key(),
        )


class Session(BaseModel):
    """Ordered entries read from one session log file.

    Attributes:
        path: Source file, when the session was read from disk.
        entries: Valid records in file order.
        skipped_lines: 1-based numbers of lines that failed to decode.
        skipped_raw: The bytes of those lines, in the same order, so a
            rewrite of the file can carry them over.
    """

    path: str | None = None
    entries: list[Entry] = []
    skipped_lines: list[int] = []
    skipped_raw: list[bytes] = []

    model_config = {"frozen": True}

    # -- identity -------------------------------------------------------

    def project_name(self) -> str | None:
        """Last path component of the first usable working directory."""
        for entry in self.entries:
            name = path_project_name(entry.working_directory)
            if name:
                return name
        return None

    def title(
        self, markers: Iterable[str] = DEFAULT_INJECTED_MARKERS
    ) -> str | None:
        """Text of the first user message that a person actually typed."""
        markers = tuple(markers)
        for entry in self.entries:
            if entry.kind != EntryKind.USER:
                continue
            if is_system_injected(entry.raw, entry.payload, markers):
                continue
            text = message_text(entry.payload)
            if text is not None:
                return text.strip()
        return None

    def display_title(
        self, markers: Iterable[str] = DEFAULT_INJECTED_MARKERS
    ) -> str | None:
        """User-assigned title if the session was renamed, else ``title()``."""
        custom = None
        for entry in self.entries:
            if entry.type_tag == "custom-title":
                value = entry.raw.get("customTitle")
                if isinstance(value, str) and value.strip():
                    custom = value.strip()
        return custom or self.title(markers)

    @property
    def session_id(self) -> str | None:
        for entry in self.entries:
            if entry.session_id:
                return entry.session_id
        if self.path:
            return Path(self.path).stem
        return None

    # -- statistics -----------------------------------------------------

    @property
    def message_count(self) -> int:
        return sum(
            1
            for e in self.entries
            if e.kind in (EntryKind.USER, EntryKind.ASSISTANT)
        )

    @property
    def first_timestamp(self) -> str | None:
        stamps = [e for e in self.entries if e.parsed_timestamp()]
        if not stamps:
            return None
        return min(stamps, key=lambda e: e.parsed_timestamp()).timestamp

    @property
    def latest_timestamp(self) -> str | None:
        stamps = [e for e in self.entries if e.parsed_timestamp()]
        if not stamps:
            return None
        return max(stamps, key=lambda e: e.parsed_timestamp()).timestamp

    # -- serialisation --------------------------------------------------

    def to_jsonl(self) -> str:
        """Serialise entries back to line-delimited JSON."""
        if not self.entries:
            return ""
        return "\n".join(e.raw_line for e in self.entries) + "\n"

    def to_bytes(self, keep_skipped: bool = False) -> bytes:
        """Serialise entries as UTF-8.

        With *keep_skipped*, the undecodable lines are appended after the
        entries, byte for byte and in their original order.
        """
        data = self.to_jsonl().encode("utf-8")
        if keep_skipped:
            data += b"".join(raw + b"\n" for raw in self.skipped_raw)
        return data

    def content_hash(self) -> str:
        """SHA-256 hex digest of the serialised entries."""
        return hashlib.sha256(self.to_jsonl().encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class ProjectDirectory(BaseModel):
    """A directory holding the session files of one project.

    Attributes:
        path: Absolute directory path.
        encoded_name: The directory's on-disk name.
    """

    path: str
    encoded_name: str

    model_config = {"frozen": True}

    @classmethod
    def from_path(cls, path: Path) -> ProjectDirectory:
        return cls(path=str(path), encoded_name=path.name)


class MatchStatus(str, Enum):
    """Three-way discovery outcome."""

    MATCHED = "matched"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


class MatchOutcome(BaseModel):
    """Result of looking up a local directory for a project name.

    Attributes:
        status: Which of the three outcomes occurred.
        target_name: The project name that was looked up.
        directory: The matched directory (``MATCHED`` only).
        candidates: The equally valid directories (``AMBIGUOUS`` only).
        matched_by: ``"encoded_name"`` or ``"content"`` (``MATCHED`` only).
    """

    status: MatchStatus
    target_name: str
    directory: ProjectDirectory | None = None
    candidates: list[ProjectDirectory] = []
    matched_by: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def matched(
        cls, target_name: str, directory: ProjectDirectory, matched_by: str
    ) -> MatchOutcome:
        return cls(
            status=MatchStatus.MATCHED,
            target_name=target_name,
            directory=directory,
            matched_by=matched_by,
        )

    @classmethod
    def not_found(cls, target_name: str) -> MatchOutcome:
        return cls(status=MatchStatus.NOT_FOUND, target_name=target_name)

    @classmethod
    def ambiguous(
        cls, target_name: str, candidates: list[ProjectDirectory]
    ) -> MatchOutcome:
        return cls(
            status=MatchStatus.AMBIGUOUS,
            target_name=target_name,
            candidates=candidates,
        )


class StructureCheck(BaseModel):
    """Naming-convention consistency of a projects root.

    Attributes:
        full_path_dirs: Directory names using full-path encoding.
        project_name_dirs: Directory names using bare project names.
        is_consistent: False when conventions are mixed or disagree with
            the configured mode.
        warning: Message for the caller to surface, if inconsistent.
    """

    full_path_dirs: list[str] = []
    project_name_dirs: list[str] = []
    is_consistent: bool = True
    warning: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class MergeVerdict(str, Enum):
    """Overall result of reconciling two versions of a session."""

    CLEAN = "clean"
    RESOLVED_EDITS = "resolved_edits"
    IRRECONCILABLE = "irreconcilable"


class EditConflict(BaseModel):
    """Two different records carrying the same identity.

    Attributes:
        entry_id: The disputed ``id``.
        kept: ``"local"`` or ``"remote"``, whichever version won.
        local_value: Full local record.
        remote_value: Full remote record.
        reason: Why the winner was chosen.
        scope: ``"cross"`` for a local/remote dispute.  ``"local"`` or
            ``"remote"`` when one file repeats an id; ``local_value`` then
            holds the earlier line and ``remote_value`` the later one.
    """

    entry_id: str
    kept: str
    local_value: dict[str, Any]
    remote_value: dict[str, Any]
    reason: str
    scope: str = "cross"

    model_config = {"frozen": True}

    @property
    def discarded_value(self) -> dict[str, Any]:
        return self.remote_value if self.kept == "local" else self.local_value


class MergeResult(BaseModel):
    """Outcome of merging a local and a remote session.

    Attributes:
        local: The local input session.
        remote: The remote input session.
        merged_entries: Reconciled entries in output order; ``None`` when
            the verdict is ``IRRECONCILABLE``.
        conflicts: Edit conflicts resolved by timestamp.
        verdict: Overall classification.
        reason: Explanation when irreconcilable.
        local_only_ids: Ids contributed only by the local side.
        remote_only_ids: Ids contributed only by the remote side.
        disputed_ids: Ids present on both sides with different content.
        branch_points: Parent ids with more than one child after merging.

    The three id lists are filled for irreconcilable results too, so a
    forked pair still reports how far apart the two versions are.
    """

    local: Session
    remote: Session
    merged_entries: list[Entry] | None = None
    conflicts: list[EditConflict] = []
    verdict: MergeVerdict
    reason: str | None = None
    local_only_ids: list[str] = []
    remote_only_ids: list[str] = []
    disputed_ids: list[str] = []
    branch_points: list[str] = []

    model_config = {"frozen": True}

    @property
    def differing_count(self) -> int:
        """Records present on one side only or disputed between sides."""
        return (
            len(self.local_only_ids)
            + len(self.remote_only_ids)
            + len(self.disputed_ids)
        )

    def as_session(self, path: str | None = None) -> Session:
        """Build a new ``Session`` from the merged entries.

        The local side's undecodable lines ride along so that writing the
        result with ``to_bytes(keep_skipped=True)`` loses none of them.
        """
        if self.merged_entries is None:
            raise ValueError(
                f"Irreconcilable merge has no merged entries: {self.reason}"
            )
        return Session(
            path=path if path is not None else self.local.path,
            entries=list(self.merged_entries),
            skipped_lines=self.local.skipped_lines,
            skipped_raw=self.local.skipped_raw,
        )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class ResolutionStrategy(str, Enum):
    """How a differing session pair is finalised on disk."""

    PREFER_LOCAL = "prefer-local"
    PREFER_REMOTE = "prefer-remote"
    KEEP_BOTH = "keep-both"
    SMART_MERGE = "smart-merge"


class OutcomeAction(str, Enum):
    """What the resolver did to the local file system."""

    KEPT_LOCAL = "kept_local"
    REPLACED_WITH_REMOTE = "replaced_with_remote"
    MERGED = "merged"
    UNCHANGED = "unchanged"
    FORKED = "forked"


class FinalOutcome(BaseModel):
    """Result of applying a resolution strategy.

    Attributes:
        strategy: Strategy that actually ran (after any fallback).
        action: What happened on disk.
        local_path: The local session file.
        written_paths: Files created or replaced.
        fork_path: Where the remote version was written for ``FORKED``.
        reported: True if a conflict record was appended to the log.
        preserved_lines: Numbers of undecodable local lines carried over
            when the local file was rewritten.
    """

    strategy: ResolutionStrategy
    action: OutcomeAction
    local_path: str
    written_paths: list[str] = []
    fork_path: str | None = None
    reported: bool = False
    preserved_lines: list[int] = []

    model_config = {"frozen": True}


class ConflictRecord(BaseModel):
    """One entry of the conflict report log."""

    recorded_at: str
    session_id: str | None = None
    local_file: str
    remote_file: str | None = None
    reason: str
    verdict: MergeVerdict
    strategy: ResolutionStrategy
    local_entry_count: int
    remote_entry_count: int
    differing_entry_count: int
    conflicting_ids: list[str] = []

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Batch results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """Possible per-file operations in a push or pull batch."""

    SKIP = "skip"
    PUSH = "push"
    CREATE_REMOTE = "create_remote"
    DELETE_REMOTE = "delete_remote"
    PULL = "pull"
    CREATE_LOCAL = "create_local"
    MERGE = "merge"
    CONFLICT = "conflict"
    AMBIGUOUS = "ambiguous"


class SyncResult(BaseModel):
    """Result of processing one session file.

    Attributes:
        local_path: Local session file path.
        remote_path: Path relative to the sync root's projects directory.
        action: Operation that was performed.
        success: Whether the operation succeeded.
        error: Error message if the operation failed.
        detail: Extra context (skip reason, fork file, ...).
    """

    local_path: str
    remote_path: str
    action: SyncAction
    success: bool = True
    error: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full push or pull run.

    Attributes:
        operation: ``"push"`` or ``"pull"``.
        results: Individual per-file results.
        warnings: Advisory messages (naming consistency, collisions,
            large files).
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    operation: str
    results: list[SyncResult] = []
    warnings: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _by_action(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action and r.success]

    @property
    def created_local(self) -> list[SyncResult]:
        return self._by_action(SyncAction.CREATE_LOCAL)

    @property
    def created_remote(self) -> list[SyncResult]:
        return self._by_action(SyncAction.CREATE_REMOTE)

    @property
    def deleted_remote(self) -> list[SyncResult]:
        return self._by_action(SyncAction.DELETE_REMOTE)

    @property
    def updated_local(self) -> list[SyncResult]:
        return self._by_action(SyncAction.PULL)

    @property
    def updated_remote(self) -> list[SyncResult]:
        return self._by_action(SyncAction.PUSH)

    @property
    def merged(self) -> list[SyncResult]:
        return self._by_action(SyncAction.MERGE)

    @property
    def conflicts(self) -> list[SyncResult]:
        return self._by_action(SyncAction.CONFLICT)

    @property
    def ambiguous(self) -> list[SyncResult]:
        return self._by_action(SyncAction.AMBIGUOUS)

    @property
    def skipped(self) -> list[SyncResult]:
        return self._by_action(SyncAction.SKIP)

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]
