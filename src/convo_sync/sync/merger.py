"""Reconcile two versions of the same session log.

Session logs are append-only trees: every record names its parent by id,
and a conversation branches when a prompt is edited and resent.  Two
devices that appended to the same session independently therefore almost
always differ by *additions* only, which merge cleanly by union.

Reconciliation steps:

1. Index records with an id as ``id -> Entry`` per side.  Records without
   an id are matched across sides by full-content equality; a line repeated
   within one file is kept as often as the side that repeats it most.
2. Ids present on one side only are unconditional additions.
3. Ids present on both sides with identical content are kept once.
4. Ids present on both sides with different content are edit conflicts:
   the later timestamp wins, the loser is recorded in ``conflicts``.
5. Continuations from a shared parent on both sides survive as sibling
   branches; nothing is dropped.
6. Differences that are neither additions nor timestamp-resolvable edits
   (different sessions, an id reused for a different kind of record, or
   parent links that would form a cycle) make the merge irreconcilable.

The children index is rebuilt from the final ``id -> Entry`` mapping after
all decisions are made, never patched incrementally.

Output order is a stable sort by (timestamp, id, canonical content), so
``merge(a, b)`` and ``merge(b, a)`` produce the same entries and repeated
merges of the same inputs are byte-identical.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from convo_sync.sync.models import (
    EditConflict,
    Entry,
    MergeResult,
    MergeVerdict,
    Session,
)

logger = logging.getLogger(__name__)


def _index_side(
    entries: list[Entry],
    label: str,
    conflicts: list[EditConflict],
) -> tuple[dict[str, Entry], dict[str, list[Entry]]]:
    """Split one side into ``id -> Entry`` and ``content_key -> [Entry]``.

    A side that repeats an id with different content (a rewritten line in
    the same file) is reconciled against itself with the same timestamp
    rule used across sides.
    """
    by_id: dict[str, Entry] = {}
    anonymous: dict[str, list[Entry]] = defaultdict(list)
    for entry in entries:
        if not entry.has_id:
            anonymous[entry.content_key()].append(entry)
            continue
        previous = by_id.get(entry.id)
        if previous is None or previous.content_key() == entry.content_key():
            by_id.setdefault(entry.id, entry)
            continue
        winner, reason = _pick_winner(previous, entry)
        conflicts.append(
            EditConflict(
                entry_id=entry.id,
                kept="local" if winner is previous else "remote",
                local_value=previous.raw,
                remote_value=entry.raw,
                reason=f"duplicate id within {label} file; {reason}",
                scope=label,
            )
        )
        by_id[entry.id] = winner
    return by_id, dict(anonymous)


def _pick_winner(a: Entry, b: Entry) -> tuple[Entry, str]:
    """Choose between two records sharing an id.

    The later parsed timestamp wins.  Equal or missing timestamps fall back
    to the larger canonical content, so the choice does not depend on which
    side an entry came from.
    """
    ta, tb = a.parsed_timestamp(), b.parsed_timestamp()
    if ta is not None and tb is not None and ta != tb:
        return (a, "later timestamp") if ta > tb else (b, "later timestamp")
    if ta is not None and tb is None:
        return a, "only timestamped version"
    if tb is not None and ta is None:
        return b, "only timestamped version"
    if a.content_key() >= b.content_key():
        return a, "equal timestamps, content tiebreak"
    return b, "equal timestamps, content tiebreak"


def children_index(by_id: dict[str, Entry]) -> dict[str, list[str]]:
    """Map each parent id to the sorted ids of its children."""
    children: dict[str, list[str]] = defaultdict(list)
    for entry_id, entry in by_id.items():
        if entry.parent_id:
            children[entry.parent_id].append(entry_id)
    return {parent: sorted(ids) for parent, ids in children.items()}


def find_cycle(by_id: dict[str, Entry]) -> list[str] | None:
    """Return the ids of one parent-link cycle, or ``None``."""
    state: dict[str, int] = {}  # 1 = on current path, 2 = done
    for start in sorted(by_id):
        if state.get(start) == 2:
            continue
        path: list[str] = []
        node: str | None = start
        while node is not None and node in by_id and state.get(node) != 2:
            if state.get(node) == 1:
                return path[path.index(node):]
            state[node] = 1
            path.append(node)
            node = by_id[node].parent_id
        for visited in path:
            state[visited] = 2
    return None


def _id_differences(
    local: Session, remote: Session
) -> tuple[list[str], list[str], list[str]]:
    """Local-only, remote-only and disputed ids of two sessions."""
    local_ids, _ = _index_side(local.entries, "local", [])
    remote_ids, _ = _index_side(remote.entries, "remote", [])
    shared = set(local_ids) & set(remote_ids)
    disputed = [
        entry_id
        for entry_id in sorted(shared)
        if local_ids[entry_id].content_key() != remote_ids[entry_id].content_key()
    ]
    return (
        sorted(set(local_ids) - shared),
        sorted(set(remote_ids) - shared),
        disputed,
    )


def _irreconcilable(
    local: Session, remote: Session, reason: str, conflicts: list[EditConflict]
) -> MergeResult:
    logger.warning(
        "Irreconcilable merge of %s and %s: %s", local.path, remote.path, reason
    )
    local_only, remote_only, disputed = _id_differences(local, remote)
    return MergeResult(
        local=local,
        remote=remote,
        merged_entries=None,
        conflicts=conflicts,
        verdict=MergeVerdict.IRRECONCILABLE,
        reason=reason,
        local_only_ids=local_only,
        remote_only_ids=remote_only,
        disputed_ids=disputed,
    )


def merge(local: Session, remote: Session) -> MergeResult:
    """Reconcile *local* and *remote* versions of one session.

    Args:
        local: The session as found on this device.
        remote: The session as found in the sync root.

    Returns:
        A ``MergeResult``; ``merged_entries`` is ``None`` when the verdict
        is ``IRRECONCILABLE``.
    """
    conflicts: list[EditConflict] = []

    local_sid, remote_sid = _declared_session_id(local), _declared_session_id(remote)
    if local_sid and remote_sid and local_sid != remote_sid:
        return _irreconcilable(
            local,
            remote,
            f"different sessions ({local_sid} vs {remote_sid})",
            conflicts,
        )

    local_ids, local_anon = _index_side(local.entries, "local", conflicts)
    remote_ids, remote_anon = _index_side(remote.entries, "remote", conflicts)

    merged: dict[str, Entry] = {}
    local_only: list[str] = []
    remote_only: list[str] = []
    disputed: list[str] = []

    for entry_id in sorted(set(local_ids) | set(remote_ids)):
        ours, theirs = local_ids.get(entry_id), remote_ids.get(entry_id)
        if theirs is None:
            merged[entry_id] = ours
            local_only.append(entry_id)
            continue
        if ours is None:
            merged[entry_id] = theirs
            remote_only.append(entry_id)
            continue
        if ours.content_key() == theirs.content_key():
            merged[entry_id] = ours
            continue
        disputed.append(entry_id)
        if ours.kind != theirs.kind or ours.type_tag != theirs.type_tag:
            return _irreconcilable(
                local,
                remote,
                f"id {entry_id} is a {ours.type_tag} record locally "
                f"but a {theirs.type_tag} record remotely",
                conflicts,
            )
        winner, reason = _pick_winner(ours, theirs)
        merged[entry_id] = winner
        conflicts.append(
            EditConflict(
                entry_id=entry_id,
                kept="local" if winner is ours else "remote",
                local_value=ours.raw,
                remote_value=theirs.raw,
                reason=reason,
            )
        )

    cycle = find_cycle(merged)
    if cycle is not None:
        return _irreconcilable(
            local,
            remote,
            f"parent links form a cycle: {' -> '.join(cycle)}",
            conflicts,
        )

    anonymous: list[Entry] = []
    for key in sorted(set(local_anon) | set(remote_anon)):
        ours, theirs = local_anon.get(key, []), remote_anon.get(key, [])
        anonymous.extend(ours if len(ours) >= len(theirs) else theirs)

    ordered = sorted([*merged.values(), *anonymous], key=lambda e: e.sort_key())
    branch_points = sorted(
        parent
        for parent, kids in children_index(merged).items()
        if len(kids) > 1
    )

    verdict = MergeVerdict.RESOLVED_EDITS if conflicts else MergeVerdict.CLEAN
    logger.debug(
        "Merged %s: %s, +%d local, +%d remote, %d edit conflict(s)",
        local.session_id,
        verdict.value,
        len(local_only),
        len(remote_only),
        len(conflicts),
    )
    return MergeResult(
        local=local,
        remote=remote,
        merged_entries=ordered,
        conflicts=conflicts,
        verdict=verdict,
        local_only_ids=local_only,
        remote_only_ids=remote_only,
        disputed_ids=disputed,
        branch_points=branch_points,
    )


def _declared_session_id(session: Session) -> str | None:
    """Session id recorded inside the file, ignoring the filename fallback."""
    for entry in session.entries:
        if entry.session_id:
            return entry.session_id
    return None
