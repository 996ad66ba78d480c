"""File handler module: whole-file reads, atomic writes, collision-free names.

Every session file is read fully and closed before it is processed, and
every write lands through a temp file plus ``os.replace()`` so a crash or a
concurrent reader never observes a half-written session.
"""

import os
import tempfile
from pathlib import Path

# =============================================================================
# Read / Write
# =============================================================================


def read_bytes(path: Path) -> bytes:
    """Read the whole file and close it.

    Raises the underlying ``OSError`` unchanged; callers decide whether the
    failure is per-file or fatal.
    """
    with open(path, "rb") as fh:
        return fh.read()


def write_file_atomic(
    path: Path, content: str | bytes, encoding: str = "utf-8"
) -> int:
    """Write content to a file atomically, creating parent directories.

    Args:
        path: Path to the output file.
        content: Text, or bytes written unchanged.
        encoding: Encoding for text content (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content if isinstance(content, bytes) else content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


# =============================================================================
# Naming
# =============================================================================


def unique_path(path: Path) -> Path:
    """Return *path*, or ``<stem>-N<suffix>`` for the first N that is free."""
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
