"""Session log sync engine.

Public API for keeping the conversation logs of several devices in step
through a shared sync root (a working tree of a version-controlled
repository that is managed elsewhere).

Architecture
------------
Sessions are append-mostly logs of records that carry their own identity
(``uuid``) and parent link (``parentUuid``).  Two diverged copies of the
same session are therefore reconciled as a tree union keyed by record id,
never as text.  Project directories are matched across devices by the
project's bare name, since the same project lives at different absolute
paths on different machines.

Modules:

- ``engine``       -- ``SyncEngine``: push and pull batches.
- ``parser``       -- JSONL session reading and writing.
- ``naming``       -- project-name extraction and directory-name encoding.
- ``titles``       -- user-visible title extraction.
- ``discovery``    -- local project lookup, collisions, layout checks.
- ``mapper``       -- ``SessionPathMapper``: config-driven path mapping
  and file filters.
- ``merger``       -- identity-keyed tree merge of two session versions.
- ``resolver``     -- resolution strategies (smart-merge, prefer-local,
  prefer-remote, keep-both).
- ``conflict_log`` -- append-only JSONL conflict report.
- ``models``       -- core data contracts.
- ``reporter``     -- human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from convo_sync.config import configure_logging, load_config
    from convo_sync.sync import SyncEngine, format_sync_report

    config = load_config()
    configure_logging(config)
    engine = SyncEngine(
        config=config.sync,
        local_root=Path("~/.claude/projects").expanduser(),
        sync_root=Path("~/convo-sync-repo").expanduser(),
    )

    print(format_sync_report(engine.pull()))
    print(format_sync_report(engine.push()))
"""

from .conflict_log import ConflictLog
from .discovery import (
    check_directory_structure_consistency,
    discover_sessions,
    find_colliding_projects,
    find_local_match,
)
from .engine import SyncEngine
from .mapper import SessionPathMapper
from .merger import merge
from .models import (
    Entry,
    EntryKind,
    MatchOutcome,
    MatchStatus,
    MergeResult,
    MergeVerdict,
    ResolutionStrategy,
    Session,
    SyncAction,
    SyncReport,
    SyncResult,
)
from .naming import decode_project_name, encode_project_path, path_project_name
from .parser import parse_session, read_session, write_session
from .reporter import (
    format_conflict_diff,
    format_merge_summary,
    format_sync_report,
    report_to_json,
)
from .resolver import create_resolver, resolve

__all__ = [
    "ConflictLog",
    "Entry",
    "EntryKind",
    "MatchOutcome",
    "MatchStatus",
    "MergeResult",
    "MergeVerdict",
    "ResolutionStrategy",
    "Session",
    "SessionPathMapper",
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "check_directory_structure_consistency",
    "create_resolver",
    "decode_project_name",
    "discover_sessions",
    "encode_project_path",
    "find_colliding_projects",
    "find_local_match",
    "format_conflict_diff",
    "format_merge_summary",
    "format_sync_report",
    "merge",
    "parse_session",
    "path_project_name",
    "read_session",
    "report_to_json",
    "resolve",
    "write_session",
]
