"""Locate the local project directory that corresponds to a remote one.

Directory names are a lossy flattening of the project path (see
``naming``), so a name alone cannot always identify a project.  Lookup is
two passes:

1. **Encoded-name pass** -- decode every candidate's directory name and
   compare it to the target.  No file is opened.  Exactly one hit is the
   answer; several hits are ambiguous and stop the search, because reading
   files would not tell two same-named projects apart either.
2. **Content pass** -- only when pass one found nothing.  Session files are
   parsed until one records a working directory; its last component is the
   project's real name, including the non-ASCII names that the flattening
   destroyed.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import Iterable

from convo_sync.errors import SessionUnreadableError
from convo_sync.sync.mapper import SESSION_SUFFIX, SessionPathMapper
from convo_sync.sync.models import (
    MatchOutcome,
    ProjectDirectory,
    Session,
    StructureCheck,
)
from convo_sync.sync.naming import (
    NamingMode,
    decode_project_name,
    looks_like_full_path,
)
from convo_sync.sync.parser import read_session

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Directory listing
# ---------------------------------------------------------------------------


def list_project_directories(root: Path) -> list[ProjectDirectory]:
    """Non-hidden subdirectories of *root*, sorted by name.

    Raises:
        OSError: If *root* itself cannot be listed.  This is fatal for the
            batch and is left to the caller.
    """
    return [
        ProjectDirectory.from_path(p)
        for p in sorted(root.iterdir())
        if p.is_dir() and not p.name.startswith(".")
    ]


def _session_files(directory: Path) -> list[Path]:
    try:
        return sorted(
            p
            for p in directory.iterdir()
            if p.suffix == SESSION_SUFFIX and p.is_file()
        )
    except OSError as exc:
        logger.warning("Cannot list %s: %s", directory, exc)
        return []


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _name_from_contents(directory: Path) -> str | None:
    """First project name recorded by any session file in *directory*.

    Files that cannot be read or that record no working directory (e.g.
    snapshot-only files) are passed over; the scan moves on to the next
    file in the same directory.
    """
    for path in _session_files(directory):
        try:
            session = read_session(path)
        except SessionUnreadableError as exc:
            logger.warning("Skipping %s during discovery: %s", path, exc.reason)
            continue
        name = session.project_name()
        if name is not None:
            return name
    return None


def find_local_match(
    candidates: Iterable[ProjectDirectory], target_name: str
) -> MatchOutcome:
    """Find the candidate directory holding project *target_name*.

    Args:
        candidates: Local project directories to consider.
        target_name: Bare project name to look for.

    Returns:
        ``MATCHED`` with the directory, ``AMBIGUOUS`` with every equally
        valid directory, or ``NOT_FOUND``.
    """
    candidates = list(candidates)

    by_name = [
        c for c in candidates if decode_project_name(c.encoded_name) == target_name
    ]
    if len(by_name) == 1:
        logger.debug(
            "Matched %s to %s by directory name",
            target_name,
            by_name[0].encoded_name,
        )
        return MatchOutcome.matched(target_name, by_name[0], "encoded_name")
    if len(by_name) > 1:
        logger.warning(
            "Project name %s is ambiguous: %s",
            target_name,
            [c.encoded_name for c in by_name],
        )
        return MatchOutcome.ambiguous(target_name, by_name)

    for candidate in candidates:
        recorded = _name_from_contents(Path(candidate.path))
        if recorded is None:
            continue
        if recorded == target_name:
            logger.debug(
                "Matched %s to %s by session contents",
                target_name,
                candidate.encoded_name,
            )
            return MatchOutcome.matched(target_name, candidate, "content")

    return MatchOutcome.not_found(target_name)


def find_colliding_projects(
    candidates: Iterable[ProjectDirectory],
) -> dict[str, list[ProjectDirectory]]:
    """Decoded project names claimed by more than one directory.

    In project-name mode these directories would all be filed under the
    same name in the sync root.
    """
    groups: dict[str, list[ProjectDirectory]] = defaultdict(list)
    for candidate in candidates:
        groups[decode_project_name(candidate.encoded_name)].append(candidate)
    return {name: dirs for name, dirs in groups.items() if len(dirs) > 1}


# ---------------------------------------------------------------------------
# Consistency check
# ---------------------------------------------------------------------------


def check_directory_structure_consistency(
    root: Path, mode: NamingMode
) -> StructureCheck:
    """Report mixed or unexpected naming conventions under *root*.

    Advisory only: the result never blocks a sync.  A missing root is
    trivially consistent.
    """
    full_path_dirs: list[str] = []
    project_name_dirs: list[str] = []

    if root.is_dir():
        for directory in list_project_directories(root):
            if looks_like_full_path(directory.encoded_name):
                full_path_dirs.append(directory.encoded_name)
            else:
                project_name_dirs.append(directory.encoded_name)

    warning = None
    if full_path_dirs and project_name_dirs:
        warning = (
            f"Mixed directory formats detected: {len(full_path_dirs)} "
            f"full-path directories and {len(project_name_dirs)} "
            "project-name directories. Sessions may be duplicated; "
            "consider cleaning up or unifying the layout."
        )
    elif mode == NamingMode.PROJECT_NAME and full_path_dirs:
        warning = (
            "Configured for multi-device (project-name) mode, but the sync "
            f"root holds {len(full_path_dirs)} full-path directories. "
            "Consider removing them or switching to full-path mode."
        )
    elif mode == NamingMode.FULL_PATH and project_name_dirs:
        warning = (
            "Configured for single-device (full-path) mode, but the sync "
            f"root holds {len(project_name_dirs)} project-name directories. "
            "Consider switching to project-name mode."
        )

    if warning:
        logger.warning(warning)

    return StructureCheck(
        full_path_dirs=full_path_dirs,
        project_name_dirs=project_name_dirs,
        is_consistent=warning is None,
        warning=warning,
    )


# ---------------------------------------------------------------------------
# Session discovery
# ---------------------------------------------------------------------------


def discover_sessions(
    root: Path, mapper: SessionPathMapper
) -> tuple[list[Session], list[tuple[Path, str]]]:
    """Parse every included session file below *root*.

    Sessions sharing a session id (a main conversation and the sub-agent
    files it spawned) are reduced to the one with the most messages.

    Returns:
        ``(sessions, skipped)`` where *skipped* lists ``(path, reason)``
        for every file that could not be read.
    """
    found: dict[str, Session] = {}
    skipped: list[tuple[Path, str]] = []

    if not root.is_dir():
        return [], skipped

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if not mapper.should_include(path):
                continue
            try:
                session = read_session(path)
            except SessionUnreadableError as exc:
                logger.warning("Skipping %s: %s", path, exc.reason)
                skipped.append((path, exc.reason))
                continue

            key = session.session_id or str(path)
            existing = found.get(key)
            if existing is None:
                found[key] = session
            elif session.message_count > existing.message_count:
                logger.debug(
                    "Session %s: keeping %s (%d messages) over %s (%d)",
                    key,
                    path,
                    session.message_count,
                    existing.path,
                    existing.message_count,
                )
                found[key] = session

    return sorted(found.values(), key=lambda s: s.path or ""), skipped


def find_large_files(paths: Iterable[Path], threshold: int) -> list[Path]:
    """Files whose size is at or above *threshold* bytes."""
    large: list[Path] = []
    for path in paths:
        try:
            if path.stat().st_size >= threshold:
                large.append(path)
        except OSError:
            continue
    return large
