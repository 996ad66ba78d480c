"""Configuration schema for convo_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for session sync behaviour and logging.

Usage:
    from convo_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    strategy = unified.sync.conflict_strategy
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ConflictStrategyName = Literal[
    "prefer-local", "prefer-remote", "keep-both", "smart-merge"
]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Session sync settings.

    Every field has a default so a device with no config file still syncs
    in multi-device (project-name-only) mode.
    """

    sync_subdirectory: str = Field(
        default="projects",
        description="Directory inside the sync root that holds projects",
    )
    use_project_name_only: bool = Field(
        default=True,
        description=(
            "Key synced projects by bare project name instead of the "
            "flattened full path (multi-device mode)"
        ),
    )
    conflict_strategy: ConflictStrategyName = Field(
        default="smart-merge",
        description="Strategy used when both sides changed a session",
    )
    conflict_log: str = Field(
        default="~/.convo_sync/conflicts.jsonl",
        description="Append-only JSONL file receiving conflict reports",
    )
    max_file_size_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Session files larger than this are not synced",
    )
    large_file_warning_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Session files at or above this size produce a warning",
    )
    include_patterns: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns; when set, only matching paths sync",
    )
    exclude_patterns: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns of paths that never sync",
    )
    exclude_older_than_days: int | None = Field(
        default=None,
        ge=1,
        description="Skip session files not modified within N days",
    )
    propagate_deletions: bool = Field(
        default=True,
        description=(
            "On push, remove synced sessions of locally present projects "
            "whose local file was deleted"
        ),
    )
    sync_memory: bool = Field(
        default=True,
        description="Sync each project's memory/ directory alongside sessions",
    )
    title_markers: list[str] = Field(
        default_factory=list,
        description=(
            "Extra prefixes marking a user message as system-injected "
            "when deriving session titles"
        ),
    )

    model_config = {"frozen": True}

    @field_validator("sync_subdirectory")
    @classmethod
    def _relative_subdirectory(cls, value: str) -> str:
        cleaned = value.strip().strip("/\\")
        if not cleaned or ".." in cleaned.replace("\\", "/").split("/"):
            raise ValueError(
                f"Invalid sync_subdirectory '{value}': must be a relative "
                "path inside the sync root"
            )
        return cleaned


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            unset means the mode's default.
        file: Optional log file path.
    """

    level: LogLevelName | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Unknown top-level sections are ignored with a warning so that config
    files shared with newer versions keep loading.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", unknown)

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )
