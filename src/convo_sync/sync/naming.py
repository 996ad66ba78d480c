"""Project naming rules shared by discovery, push and pull.

Two conventions exist for project directory names:

* **Full-path encoding** -- the directory name is the project's absolute
  path flattened into one component: every character that is not an ASCII
  letter, ASCII digit or ``-`` becomes ``-``.  One filler per character,
  runs are never collapsed, so ``C:\\Users\\x`` becomes ``C--Users-x``.
  Non-ASCII names are destroyed by this rule (``项目名`` becomes ``---``).
* **Bare project name** -- the last component of the project path, used in
  multi-device mode where absolute paths differ between machines.

Path splitting treats ``/`` and ``\\`` as equivalent on every host: a log
written on Windows is routinely read on macOS and vice versa, and the
platform path APIs only know their own separator.
"""

from __future__ import annotations

import re
from enum import Enum

FILLER = "-"

_SEPARATORS = re.compile(r"[/\\]")
_KEEP = re.compile(r"[A-Za-z0-9-]")
_WINDOWS_DRIVE_PREFIX = re.compile(r"^[A-Za-z]--")


class NamingMode(str, Enum):
    """How project directories in the sync root are named."""

    FULL_PATH = "full_path"
    PROJECT_NAME = "project_name"


def naming_mode(use_project_name_only: bool) -> NamingMode:
    return (
        NamingMode.PROJECT_NAME
        if use_project_name_only
        else NamingMode.FULL_PATH
    )


def path_project_name(working_directory: str | None) -> str | None:
    """Return the last non-empty component of a path string.

    Empty components from leading drive separators, UNC prefixes and
    repeated or trailing separators are dropped.

    >>> path_project_name("C:\\\\Users\\\\OSEN\\\\demo")
    'demo'
    >>> path_project_name("/Users/mini/app/")
    'app'
    """
    if not working_directory:
        return None
    parts = [p for p in _SEPARATORS.split(working_directory) if p]
    if not parts:
        return None
    return parts[-1]


def encode_project_path(path: str) -> str:
    """Flatten a full path into a single directory name."""
    return "".join(ch if _KEEP.fullmatch(ch) else FILLER for ch in path)


def decode_project_name(encoded_name: str) -> str:
    """Recover the final path segment from a flattened directory name.

    Also correct for bare project names made of letters and digits, which
    decode to themselves.  Returns the input unchanged when it contains no
    non-empty segment.
    """
    for segment in reversed(encoded_name.split(FILLER)):
        if segment:
            return segment
    return encoded_name


def looks_like_full_path(dir_name: str) -> bool:
    """Classify a directory name as a full-path encoding.

    A POSIX encoding starts with the filler (the leading ``/``); a Windows
    one starts with a drive letter followed by two fillers (``C:\\``).
    Either way at least three fillers must be present.
    """
    if dir_name.count(FILLER) < 3:
        return False
    return dir_name.startswith(FILLER) or bool(
        _WINDOWS_DRIVE_PREFIX.match(dir_name)
    )
