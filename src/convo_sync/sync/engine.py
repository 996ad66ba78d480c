"""Sync engine that runs push and pull batches over plain directories.

The VCS layer materialises the sync root before a run and commits it
afterwards; the engine only reads and writes files.

``push``:

1. Warn about mixed naming conventions in the sync root.
2. Warn about local directories that collapse to the same project name.
3. Discover local sessions and copy each into the sync root under the
   path the ``SessionPathMapper`` gives it.
4. Remove synced sessions whose local file was deleted, for projects that
   exist on this device (``propagate_deletions``).
5. Mirror each project's ``memory/`` directory (``sync_memory``).

``pull``:

1. For each project directory in the sync root, locate the local project
   directory (exact name in full-path mode, then ``find_local_match``).
2. For each remote session: copy it when missing locally, skip it when
   identical, otherwise merge and hand the result to the resolver.
3. Copy remote memory files that are missing locally; a local memory
   file is never overwritten.

Error handling is per file: a failure is recorded in the report and the
batch continues.  Only an unlistable root or a full disk aborts the run.
"""

from __future__ import annotations

import errno
import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from convo_sync.config import conflict_log_path
from convo_sync.config_schema import SyncConfig
from convo_sync.errors import SessionUnreadableError
from convo_sync.file_handler import read_bytes, write_file_atomic
from convo_sync.sync.conflict_log import ConflictLog
from convo_sync.sync.discovery import (
    check_directory_structure_consistency,
    discover_sessions,
    find_colliding_projects,
    find_large_files,
    find_local_match,
    list_project_directories,
)
from convo_sync.sync.mapper import SESSION_SUFFIX, SessionPathMapper
from convo_sync.sync.merger import merge
from convo_sync.sync.models import (
    MatchOutcome,
    MatchStatus,
    OutcomeAction,
    ProjectDirectory,
    ResolutionStrategy,
    Session,
    SyncAction,
    SyncReport,
    SyncResult,
)
from convo_sync.sync.naming import NamingMode, decode_project_name
from convo_sync.sync.parser import read_session, write_session
from convo_sync.sync.resolver import Clock, ConflictResolver, create_resolver
from convo_sync.sync.titles import DEFAULT_INJECTED_MARKERS

logger = logging.getLogger(__name__)

MEMORY_DIR = "memory"

_OUTCOME_ACTIONS: dict[OutcomeAction, SyncAction] = {
    OutcomeAction.MERGED: SyncAction.MERGE,
    OutcomeAction.REPLACED_WITH_REMOTE: SyncAction.PULL,
    OutcomeAction.FORKED: SyncAction.CONFLICT,
    OutcomeAction.KEPT_LOCAL: SyncAction.SKIP,
    OutcomeAction.UNCHANGED: SyncAction.SKIP,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_fatal(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno == errno.ENOSPC


def _file_names(directory: Path) -> set[str]:
    """Names of the session files directly inside *directory*."""
    try:
        return {
            p.name
            for p in directory.iterdir()
            if p.suffix == SESSION_SUFFIX and p.is_file()
        }
    except OSError as exc:
        logger.warning("Cannot list %s: %s", directory, exc)
        return set()


def _memory_files(directory: Path) -> list[Path]:
    """Non-hidden regular files of a memory directory, sorted."""
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and not p.name.startswith(".")
    )


class SyncEngine:
    """Run push and pull batches for one device.

    Args:
        config: The sync section of the configuration.
        local_root: Directory holding this device's project directories.
        sync_root: Working tree of the sync repository.
        conflict_log: Where conflict resolutions are reported; defaults
            to the configured log file.
        clock: Source of "now" for fork names and conflict records.
    """

    def __init__(
        self,
        config: SyncConfig,
        local_root: Path,
        sync_root: Path,
        conflict_log: ConflictLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.local_root = Path(local_root)
        self.sync_root = Path(sync_root)
        self.projects_dir = self.sync_root / config.sync_subdirectory
        self.mapper = SessionPathMapper(config)
        self.title_markers = DEFAULT_INJECTED_MARKERS + tuple(config.title_markers)
        self.conflict_log = conflict_log or ConflictLog(
            conflict_log_path(config)
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self) -> SyncReport:
        """Copy local sessions into the sync root."""
        started_at = _now()
        results: list[SyncResult] = []
        warnings = self._layout_warnings()

        if self.mapper.mode == NamingMode.PROJECT_NAME and self.local_root.is_dir():
            collisions = find_colliding_projects(
                list_project_directories(self.local_root)
            )
            for name, dirs in sorted(collisions.items()):
                warnings.append(
                    f"{len(dirs)} local directories map to project '{name}': "
                    + ", ".join(d.encoded_name for d in dirs)
                )

        sessions, unreadable = discover_sessions(self.local_root, self.mapper)
        for path, reason in unreadable:
            results.append(
                SyncResult(
                    local_path=str(path),
                    remote_path="",
                    action=SyncAction.SKIP,
                    success=False,
                    error=f"unreadable: {reason}",
                )
            )

        large = find_large_files(
            (Path(s.path) for s in sessions if s.path),
            self.config.large_file_warning_bytes,
        )
        for path in large:
            warnings.append(f"Large session file: {path}")

        for session in sessions:
            try:
                results.append(self._push_session(session))
            except Exception as exc:
                if _is_fatal(exc):
                    raise
                logger.error("Error pushing %s: %s", session.path, exc)
                results.append(
                    SyncResult(
                        local_path=str(session.path),
                        remote_path="",
                        action=SyncAction.SKIP,
                        success=False,
                        error=str(exc),
                    )
                )

        if self.config.propagate_deletions:
            results.extend(self._remove_deleted_sessions(sessions))
        if self.config.sync_memory:
            results.extend(self._push_memory(sessions))

        return SyncReport(
            operation="push",
            results=results,
            warnings=warnings,
            started_at=started_at,
            completed_at=_now(),
        )

    def _push_session(self, session: Session) -> SyncResult:
        relative = self.mapper.map_local_to_sync(session, self.local_root)
        if relative is None:
            logger.debug("Skipping %s: no working directory", session.path)
            return SyncResult(
                local_path=str(session.path),
                remote_path="",
                action=SyncAction.SKIP,
                detail="no working directory recorded",
            )

        dest = self.projects_dir / relative
        action = SyncAction.CREATE_REMOTE
        if dest.exists():
            try:
                existing = read_session(dest)
            except SessionUnreadableError as exc:
                logger.warning("Replacing unreadable %s: %s", dest, exc.reason)
            else:
                if existing.content_hash() == session.content_hash():
                    return SyncResult(
                        local_path=str(session.path),
                        remote_path=relative,
                        action=SyncAction.SKIP,
                        detail="unchanged",
                    )
            action = SyncAction.PUSH

        write_session(session, dest)
        logger.info(
            "Pushed %s (%s)",
            relative,
            session.display_title(self.title_markers) or "untitled",
        )
        detail = None
        if session.skipped_lines:
            detail = f"dropped malformed lines {session.skipped_lines}"
        return SyncResult(
            local_path=str(session.path),
            remote_path=relative,
            action=action,
            detail=detail,
        )

    def _local_session_names(
        self, sessions: list[Session]
    ) -> dict[str, set[str]]:
        """Session file names present locally, keyed by sync project dir."""
        names: dict[str, set[str]] = defaultdict(set)
        if self.mapper.mode == NamingMode.PROJECT_NAME:
            for session in sessions:
                project = session.project_name()
                if project is None or session.path is None:
                    continue
                names[project].update(_file_names(Path(session.path).parent))
        elif self.local_root.is_dir():
            for local_dir in list_project_directories(self.local_root):
                names[local_dir.encoded_name].update(
                    _file_names(Path(local_dir.path))
                )
        return names

    def _remove_deleted_sessions(
        self, sessions: list[Session]
    ) -> list[SyncResult]:
        """Delete synced sessions whose local file is gone.

        Only sync project directories with a local counterpart are
        touched, so projects pushed by other devices are left alone.  Every
        local ``*.jsonl`` name counts as present, filtered or not.
        """
        if not self.projects_dir.is_dir():
            return []
        local_names = self._local_session_names(sessions)
        results: list[SyncResult] = []
        for remote_dir in list_project_directories(self.projects_dir):
            present = local_names.get(remote_dir.encoded_name)
            if present is None:
                continue
            remote_path = Path(remote_dir.path)
            for name in sorted(_file_names(remote_path) - present):
                results.append(
                    self._remove_remote(remote_path / name, "deleted locally")
                )
        return results

    def _push_memory(self, sessions: list[Session]) -> list[SyncResult]:
        """Copy each project's memory files and drop ones deleted locally."""
        sources: dict[str, set[Path]] = defaultdict(set)
        for session in sessions:
            relative = self.mapper.map_local_to_sync(session, self.local_root)
            if relative is None:
                continue
            project = PurePosixPath(relative).parent.as_posix()
            if project == ".":
                continue
            sources[project].add(Path(session.path).parent / MEMORY_DIR)

        results: list[SyncResult] = []
        for project in sorted(sources):
            memory_dirs = sorted(d for d in sources[project] if d.is_dir())
            if not memory_dirs:
                continue
            dest_dir = self.projects_dir / project / MEMORY_DIR
            present: set[str] = set()
            for memory_dir in memory_dirs:
                for source in _memory_files(memory_dir):
                    present.add(source.name)
                    results.append(
                        self._push_memory_file(source, dest_dir / source.name)
                    )
            for remote_file in _memory_files(dest_dir):
                if remote_file.name not in present:
                    results.append(
                        self._remove_remote(
                            remote_file, "memory file deleted locally"
                        )
                    )
        return results

    def _push_memory_file(self, source: Path, dest: Path) -> SyncResult:
        relative = self._relative(dest)
        try:
            data = read_bytes(source)
            action = SyncAction.CREATE_REMOTE
            if dest.exists():
                if read_bytes(dest) == data:
                    return SyncResult(
                        local_path=str(source),
                        remote_path=relative,
                        action=SyncAction.SKIP,
                        detail="unchanged",
                    )
                action = SyncAction.PUSH
            write_file_atomic(dest, data)
        except OSError as exc:
            if _is_fatal(exc):
                raise
            logger.error("Error pushing memory file %s: %s", source, exc)
            return SyncResult(
                local_path=str(source),
                remote_path=relative,
                action=SyncAction.SKIP,
                success=False,
                error=str(exc),
            )
        logger.info("Pushed memory file %s", relative)
        return SyncResult(
            local_path=str(source),
            remote_path=relative,
            action=action,
            detail="memory",
        )

    def _remove_remote(self, remote_file: Path, reason: str) -> SyncResult:
        relative = self._relative(remote_file)
        try:
            remote_file.unlink()
        except OSError as exc:
            logger.warning("Failed to remove %s: %s", relative, exc)
            return SyncResult(
                local_path="",
                remote_path=relative,
                action=SyncAction.DELETE_REMOTE,
                success=False,
                error=str(exc),
            )
        logger.info("Removed %s from the sync root (%s)", relative, reason)
        return SyncResult(
            local_path="",
            remote_path=relative,
            action=SyncAction.DELETE_REMOTE,
            detail=reason,
        )

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(
        self, strategy: str | ResolutionStrategy | None = None
    ) -> SyncReport:
        """Bring remote sessions into the local projects root.

        Args:
            strategy: Resolution strategy for differing sessions; defaults
                to the configured ``conflict_strategy``.
        """
        started_at = _now()
        results: list[SyncResult] = []
        warnings = self._layout_warnings()

        if not self.projects_dir.is_dir():
            warnings.append(f"Nothing to pull: {self.projects_dir} does not exist")
            return SyncReport(
                operation="pull",
                warnings=warnings,
                started_at=started_at,
                completed_at=_now(),
            )

        resolver = create_resolver(
            strategy or self.config.conflict_strategy,
            self.conflict_log,
            self.clock,
        )
        remote_dirs = list_project_directories(self.projects_dir)
        self.local_root.mkdir(parents=True, exist_ok=True)
        candidates = list_project_directories(self.local_root)

        for remote_dir in remote_dirs:
            remote_files = self.mapper.discover_session_files(
                Path(remote_dir.path)
            )
            remote_memory = Path(remote_dir.path) / MEMORY_DIR
            with_memory = self.config.sync_memory and remote_memory.is_dir()
            if not remote_files and not with_memory:
                continue

            outcome = self._locate_local_dir(remote_dir, candidates)
            if outcome.status == MatchStatus.AMBIGUOUS:
                choices = ", ".join(c.encoded_name for c in outcome.candidates)
                for remote_file in remote_files:
                    results.append(
                        SyncResult(
                            local_path="",
                            remote_path=self._relative(remote_file),
                            action=SyncAction.AMBIGUOUS,
                            detail=f"project '{outcome.target_name}' matches {choices}",
                        )
                    )
                continue

            if outcome.status == MatchStatus.MATCHED:
                local_dir = Path(outcome.directory.path)
            else:
                local_dir = self.local_root / remote_dir.encoded_name
                logger.info(
                    "No local project for %s, creating %s",
                    remote_dir.encoded_name,
                    local_dir,
                )

            for remote_file in remote_files:
                results.append(
                    self._pull_file(
                        remote_file, local_dir / remote_file.name, resolver
                    )
                )
            if with_memory:
                results.extend(
                    self._pull_memory(remote_memory, local_dir / MEMORY_DIR)
                )

        return SyncReport(
            operation="pull",
            results=results,
            warnings=warnings,
            started_at=started_at,
            completed_at=_now(),
        )

    def _pull_memory(
        self, remote_memory: Path, local_memory: Path
    ) -> list[SyncResult]:
        """Copy memory files missing locally; never overwrite local ones."""
        results: list[SyncResult] = []
        for remote_file in _memory_files(remote_memory):
            local_file = local_memory / remote_file.name
            relative = self._relative(remote_file)
            try:
                data = read_bytes(remote_file)
                if not local_file.exists():
                    write_file_atomic(local_file, data)
                    action, detail = SyncAction.CREATE_LOCAL, "memory"
                elif read_bytes(local_file) == data:
                    action, detail = SyncAction.SKIP, "unchanged"
                else:
                    action, detail = SyncAction.SKIP, "local memory file differs"
            except OSError as exc:
                if _is_fatal(exc):
                    raise
                logger.error("Error pulling memory file %s: %s", relative, exc)
                results.append(
                    SyncResult(
                        local_path=str(local_file),
                        remote_path=relative,
                        action=SyncAction.SKIP,
                        success=False,
                        error=str(exc),
                    )
                )
                continue
            results.append(
                SyncResult(
                    local_path=str(local_file),
                    remote_path=relative,
                    action=action,
                    detail=detail,
                )
            )
        return results

    def _locate_local_dir(
        self,
        remote_dir: ProjectDirectory,
        candidates: list[ProjectDirectory],
    ) -> MatchOutcome:
        name = remote_dir.encoded_name
        if self.mapper.mode == NamingMode.FULL_PATH:
            exact = self.local_root / name
            if exact.is_dir():
                return MatchOutcome.matched(
                    name, ProjectDirectory.from_path(exact), "exact"
                )
            return find_local_match(candidates, decode_project_name(name))
        return find_local_match(candidates, name)

    def _pull_file(
        self,
        remote_file: Path,
        local_file: Path,
        resolver: ConflictResolver,
    ) -> SyncResult:
        relative = self._relative(remote_file)
        try:
            remote = read_session(remote_file)
            if not local_file.exists():
                write_session(remote, local_file)
                return SyncResult(
                    local_path=str(local_file),
                    remote_path=relative,
                    action=SyncAction.CREATE_LOCAL,
                )

            local = read_session(local_file)
            if local.content_hash() == remote.content_hash():
                return SyncResult(
                    local_path=str(local_file),
                    remote_path=relative,
                    action=SyncAction.SKIP,
                    detail="unchanged",
                )

            result = merge(local, remote)
            outcome = resolver.resolve(result)
            detail = f"{result.verdict.value}, {outcome.action.value}"
            if outcome.fork_path:
                detail += f", remote kept as {Path(outcome.fork_path).name}"
            if outcome.preserved_lines:
                detail += (
                    f", kept undecodable local lines {outcome.preserved_lines}"
                )
            return SyncResult(
                local_path=str(local_file),
                remote_path=relative,
                action=_OUTCOME_ACTIONS[outcome.action],
                detail=detail,
            )
        except Exception as exc:
            if _is_fatal(exc):
                raise
            logger.error("Error pulling %s: %s", relative, exc)
            return SyncResult(
                local_path=str(local_file),
                remote_path=relative,
                action=SyncAction.SKIP,
                success=False,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _layout_warnings(self) -> list[str]:
        check = check_directory_structure_consistency(
            self.projects_dir, self.mapper.mode
        )
        return [check.warning] if check.warning else []

    def _relative(self, remote_file: Path) -> str:
        return remote_file.relative_to(self.projects_dir).as_posix()
