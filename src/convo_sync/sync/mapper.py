"""Config-driven mapping of local session files into the sync root.

Translates between local session file paths (under the local projects
root) and their location inside the sync root's projects directory, and
decides which files take part in a sync at all.

Mapping resolution:

1. **Filter** -- conflict forks stay local; then size limit, exclude
   globs, include globs and age limit apply.
2. **Project-name mode** -- ``<project_name>/<filename>`` where the name
   comes from the session's recorded working directory.
3. **Full-path mode** -- the path relative to the local projects root,
   i.e. the flattened directory name is kept as is.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from pathlib import Path, PurePosixPath

from convo_sync.config_schema import SyncConfig
from convo_sync.sync.models import Session
from convo_sync.sync.naming import NamingMode, naming_mode
from convo_sync.sync.resolver import is_conflict_fork

logger = logging.getLogger(__name__)

SESSION_SUFFIX = ".jsonl"


class SessionPathMapper:
    """Map local session files to sync-root paths and filter them.

    Args:
        config: The sync section of the configuration.
    """

    def __init__(self, config: SyncConfig) -> None:
        self._config = config

    @property
    def mode(self) -> NamingMode:
        return naming_mode(self._config.use_project_name_only)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def should_include(self, path: Path) -> bool:
        """Return ``True`` if *path* passes every configured filter."""
        if path.suffix != SESSION_SUFFIX or is_conflict_fork(path):
            return False

        posix = path.as_posix()
        for pattern in self._config.exclude_patterns:
            if fnmatch.fnmatch(posix, pattern):
                return False

        if self._config.include_patterns and not any(
            fnmatch.fnmatch(posix, pattern)
            for pattern in self._config.include_patterns
        ):
            return False

        try:
            stat = path.stat()
        except OSError:
            # Unreadable files are reported by the reader, not filtered.
            return True

        if stat.st_size > self._config.max_file_size_bytes:
            logger.info(
                "Excluding %s: %d bytes exceeds limit of %d",
                path,
                stat.st_size,
                self._config.max_file_size_bytes,
            )
            return False

        max_days = self._config.exclude_older_than_days
        if max_days is not None:
            age_seconds = time.time() - stat.st_mtime
            if age_seconds > max_days * 24 * 60 * 60:
                return False

        return True

    def discover_session_files(self, directory: Path) -> list[Path]:
        """Included ``*.jsonl`` files directly inside *directory*, sorted."""
        if not directory.is_dir():
            return []
        return sorted(
            p
            for p in directory.iterdir()
            if p.is_file() and self.should_include(p)
        )

    # ------------------------------------------------------------------
    # Local -> sync root
    # ------------------------------------------------------------------

    def map_local_to_sync(
        self, session: Session, local_root: Path
    ) -> str | None:
        """Relative POSIX path of *session* inside the projects directory.

        Returns ``None`` in project-name mode when the session records no
        working directory, since there is no name to file it under.
        """
        if session.path is None:
            return None
        source = Path(session.path)

        if self.mode == NamingMode.PROJECT_NAME:
            project = session.project_name()
            if project is None:
                return None
            return str(PurePosixPath(project) / source.name)

        try:
            relative = source.relative_to(local_root)
        except ValueError:
            relative = Path(source.parent.name) / source.name
        return relative.as_posix()
