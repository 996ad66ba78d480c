"""Conflict resolution strategies for differing session pairs.

Turns a ``MergeResult`` into files on disk:

- ``SmartMergeResolver``: writes the merged session over the local file.
  The default strategy.
- ``PreferLocalResolver``: leaves the local file as it is.
- ``PreferRemoteResolver``: replaces the local file with the remote one.
- ``KeepBothResolver``: leaves the local file alone and writes the remote
  version next to it under a fork name.

Whatever the strategy, an irreconcilable merge is always resolved by
keep-both: no strategy may destroy either version when the two cannot be
combined.  Every resolution that forks a session or discards records is
appended to the ``ConflictLog``.

Strategies that rewrite the local file append the local lines the parser
could not decode after the records, byte for byte.

The ``create_resolver()`` factory maps strategy strings to resolver
instances; ``resolve()`` is the one-call entry point.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from convo_sync.file_handler import unique_path, write_file_atomic
from convo_sync.sync.conflict_log import ConflictLog
from convo_sync.sync.models import (
    ConflictRecord,
    FinalOutcome,
    MergeResult,
    MergeVerdict,
    OutcomeAction,
    ResolutionStrategy,
)

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = ResolutionStrategy.SMART_MERGE

Clock = Callable[[], datetime]

_FORK_MARKER = re.compile(r"\.conflict-\d{8}T\d{12}Z(-\d+)?$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fork_path_for(local_path: Path, when: datetime) -> Path:
    """Collision-free sibling name for the remote version of *local_path*.

    ``abc.jsonl`` becomes ``abc.conflict-20260102T030405123456Z.jsonl``;
    if that still exists a ``-N`` counter is appended to the stem.
    """
    stamp = when.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    candidate = local_path.with_name(
        f"{local_path.stem}.conflict-{stamp}{local_path.suffix}"
    )
    return unique_path(candidate)


def is_conflict_fork(path: Path) -> bool:
    """True for files written by keep-both resolution."""
    return bool(_FORK_MARKER.search(path.stem))


def _local_path(result: MergeResult) -> Path:
    if not result.local.path:
        raise ValueError("Cannot resolve a merge whose local session has no path")
    return Path(result.local.path)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    strategy: ResolutionStrategy

    def resolve(self, result: MergeResult) -> FinalOutcome:
        """Apply the strategy to *result* and return what was done."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Shared behaviour
# ---------------------------------------------------------------------------


class _BaseResolver:
    strategy: ResolutionStrategy

    def __init__(
        self,
        conflict_log: ConflictLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.conflict_log = conflict_log
        self.clock = clock or _utcnow

    def _report(
        self,
        result: MergeResult,
        strategy: ResolutionStrategy,
        reason: str,
        remote_file: Path | None,
    ) -> bool:
        if self.conflict_log is None:
            logger.warning(
                "Conflict in %s not logged (no conflict log): %s",
                result.local.path,
                reason,
            )
            return False
        self.conflict_log.append(
            ConflictRecord(
                recorded_at=self.clock().isoformat(),
                session_id=result.local.session_id or result.remote.session_id,
                local_file=str(result.local.path),
                remote_file=str(remote_file) if remote_file else result.remote.path,
                reason=reason,
                verdict=result.verdict,
                strategy=strategy,
                local_entry_count=len(result.local.entries),
                remote_entry_count=len(result.remote.entries),
                differing_entry_count=result.differing_count,
                conflicting_ids=[c.entry_id for c in result.conflicts],
            )
        )
        return True

    def _fork(self, result: MergeResult, reason: str) -> FinalOutcome:
        """Keep the local file and write the remote version beside it."""
        local_path = _local_path(result)
        fork = fork_path_for(local_path, self.clock())
        write_file_atomic(fork, result.remote.to_bytes(keep_skipped=True))
        logger.warning(
            "Kept both versions of %s; remote written to %s (%s)",
            local_path.name,
            fork.name,
            reason,
        )
        reported = self._report(
            result, ResolutionStrategy.KEEP_BOTH, reason, fork
        )
        return FinalOutcome(
            strategy=ResolutionStrategy.KEEP_BOTH,
            action=OutcomeAction.FORKED,
            local_path=str(local_path),
            written_paths=[str(fork)],
            fork_path=str(fork),
            reported=reported,
        )

    def _irreconcilable_fallback(self, result: MergeResult) -> FinalOutcome:
        return self._fork(result, result.reason or "irreconcilable merge")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class SmartMergeResolver(_BaseResolver):
    """Write the merged session; fork when the merge is irreconcilable."""

    strategy = ResolutionStrategy.SMART_MERGE

    def resolve(self, result: MergeResult) -> FinalOutcome:
        if result.verdict == MergeVerdict.IRRECONCILABLE:
            return self._irreconcilable_fallback(result)

        local_path = _local_path(result)
        merged = result.as_session(str(local_path))
        if merged.to_jsonl() == result.local.to_jsonl():
            logger.debug("Merge of %s changed nothing locally", local_path.name)
            return FinalOutcome(
                strategy=self.strategy,
                action=OutcomeAction.UNCHANGED,
                local_path=str(local_path),
            )

        write_file_atomic(local_path, merged.to_bytes(keep_skipped=True))
        reported = False
        if result.verdict == MergeVerdict.RESOLVED_EDITS:
            reported = self._report(
                result,
                self.strategy,
                f"resolved {len(result.conflicts)} edit conflict(s) by timestamp",
                None,
            )
        logger.info(
            "Merged %s (+%d remote entries)",
            local_path.name,
            len(result.remote_only_ids),
        )
        return FinalOutcome(
            strategy=self.strategy,
            action=OutcomeAction.MERGED,
            local_path=str(local_path),
            written_paths=[str(local_path)],
            reported=reported,
            preserved_lines=list(result.local.skipped_lines),
        )


class PreferLocalResolver(_BaseResolver):
    """Keep the local file untouched."""

    strategy = ResolutionStrategy.PREFER_LOCAL

    def resolve(self, result: MergeResult) -> FinalOutcome:
        if result.verdict == MergeVerdict.IRRECONCILABLE:
            return self._irreconcilable_fallback(result)

        local_path = _local_path(result)
        reported = False
        if result.remote_only_ids or result.conflicts:
            reported = self._report(
                result,
                self.strategy,
                f"ignored {len(result.remote_only_ids)} remote-only entries "
                f"and {len(result.conflicts)} edit conflict(s)",
                None,
            )
        return FinalOutcome(
            strategy=self.strategy,
            action=OutcomeAction.KEPT_LOCAL,
            local_path=str(local_path),
            reported=reported,
        )


class PreferRemoteResolver(_BaseResolver):
    """Replace the local file with the remote version."""

    strategy = ResolutionStrategy.PREFER_REMOTE

    def resolve(self, result: MergeResult) -> FinalOutcome:
        if result.verdict == MergeVerdict.IRRECONCILABLE:
            return self._irreconcilable_fallback(result)

        local_path = _local_path(result)
        replacement = result.remote.model_copy(
            update={
                "path": str(local_path),
                "skipped_lines": result.local.skipped_lines,
                "skipped_raw": result.local.skipped_raw,
            }
        )
        write_file_atomic(local_path, replacement.to_bytes(keep_skipped=True))
        reported = False
        if result.local_only_ids or result.conflicts:
            reported = self._report(
                result,
                self.strategy,
                f"dropped {len(result.local_only_ids)} local-only entries "
                f"and {len(result.conflicts)} edit conflict(s)",
                None,
            )
        return FinalOutcome(
            strategy=self.strategy,
            action=OutcomeAction.REPLACED_WITH_REMOTE,
            local_path=str(local_path),
            written_paths=[str(local_path)],
            reported=reported,
            preserved_lines=list(result.local.skipped_lines),
        )


class KeepBothResolver(_BaseResolver):
    """Never touch the local file; fork the remote version."""

    strategy = ResolutionStrategy.KEEP_BOTH

    def resolve(self, result: MergeResult) -> FinalOutcome:
        if result.verdict == MergeVerdict.IRRECONCILABLE:
            return self._irreconcilable_fallback(result)
        return self._fork(result, "keep-both requested")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[ResolutionStrategy, type[_BaseResolver]] = {
    ResolutionStrategy.SMART_MERGE: SmartMergeResolver,
    ResolutionStrategy.PREFER_LOCAL: PreferLocalResolver,
    ResolutionStrategy.PREFER_REMOTE: PreferRemoteResolver,
    ResolutionStrategy.KEEP_BOTH: KeepBothResolver,
}


def create_resolver(
    strategy: str | ResolutionStrategy | None = None,
    conflict_log: ConflictLog | None = None,
    clock: Clock | None = None,
) -> ConflictResolver:
    """Create a conflict resolver for the given strategy.

    Args:
        strategy: One of ``"prefer-local"``, ``"prefer-remote"``,
            ``"keep-both"``, ``"smart-merge"``; ``None`` selects
            ``smart-merge``.
        conflict_log: Where resolutions are reported.
        clock: Source of "now" for fork names and records.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    if strategy is None:
        strategy = DEFAULT_STRATEGY
    try:
        key = ResolutionStrategy(strategy)
    except ValueError:
        valid = sorted(s.value for s in ResolutionStrategy)
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {valid}"
        ) from None
    return _STRATEGY_MAP[key](conflict_log=conflict_log, clock=clock)


def resolve(
    result: MergeResult,
    strategy: str | ResolutionStrategy | None = None,
    conflict_log: ConflictLog | None = None,
) -> FinalOutcome:
    """Finalise *result* on disk with *strategy* (default ``smart-merge``)."""
    return create_resolver(strategy, conflict_log).resolve(result)
