"""Resolve the effective sync configuration.

Reads settings from explicit overrides, environment variables, .env files,
and the YAML config hierarchy.

Precedence (highest to lowest):
    overrides > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CONVO_SYNC_STRATEGY: Conflict strategy (prefer-local, prefer-remote,
        keep-both, smart-merge)
    CONVO_SYNC_SUBDIRECTORY: Projects directory inside the sync root
    CONVO_SYNC_PROJECT_NAME_ONLY: Multi-device naming mode (true/false)
    CONVO_SYNC_CONFLICT_LOG: Path of the conflict report log
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from .config_loader import load_hierarchical_config
from .config_schema import SyncConfig, UnifiedConfig, build_config
from .logger import setup_logging

logger = logging.getLogger(__name__)

_ENV_FIELDS: dict[str, str] = {
    "CONVO_SYNC_STRATEGY": "conflict_strategy",
    "CONVO_SYNC_SUBDIRECTORY": "sync_subdirectory",
    "CONVO_SYNC_PROJECT_NAME_ONLY": "use_project_name_only",
    "CONVO_SYNC_CONFLICT_LOG": "conflict_log",
}


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.strip().lower() in ("true", "1", "yes", "on")


def _env_overrides() -> dict:
    values: dict = {}
    for env_key, field_name in _ENV_FIELDS.items():
        if field_name == "use_project_name_only":
            flag = _get_bool_env(env_key)
            if flag is not None:
                values[field_name] = flag
            continue
        raw = os.getenv(env_key)
        if raw:
            values[field_name] = raw.strip()
    return values


def load_config(
    overrides: dict | None = None,
    dotenv: bool = True,
) -> UnifiedConfig:
    """Load configuration with unified precedence.

    Args:
        overrides: Values for the ``sync`` section that beat every other
            source (e.g. from a caller's own argument handling).
        dotenv: Call ``load_dotenv()`` first so .env values are visible
            through ``os.getenv()``.

    Returns:
        Validated ``UnifiedConfig``.

    Raises:
        ValueError: If a configured value is invalid after merging sources.
    """
    if dotenv:
        load_dotenv()

    unified = build_config(load_hierarchical_config())

    sync_values = unified.sync.model_dump()
    sync_values.update(_env_overrides())
    sync_values.update(overrides or {})

    try:
        sync = SyncConfig(**sync_values)
    except ValidationError as exc:
        raise ValueError(f"Invalid sync configuration: {exc}") from None

    logger.debug(
        "Sync config: strategy=%s project_name_only=%s subdirectory=%s",
        sync.conflict_strategy,
        sync.use_project_name_only,
        sync.sync_subdirectory,
    )
    return unified.model_copy(update={"sync": sync})


def configure_logging(
    config: UnifiedConfig,
    mode: str = "cli",
    debug: bool = False,
    debug_format: str = "text",
) -> None:
    """Set up logging from the ``logging`` section of *config*.

    LOG_LEVEL and the *debug* flag still beat the configured level; the
    configured file replaces LOG_FILE.
    """
    setup_logging(
        mode=mode,
        debug=debug,
        log_file=config.logging.file,
        debug_format=debug_format,
        level=config.logging.level,
    )


def conflict_log_path(config: SyncConfig) -> Path:
    """Expand ``~`` in the configured conflict log location."""
    return Path(config.conflict_log).expanduser()
