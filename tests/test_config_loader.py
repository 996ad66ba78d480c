"""Tests for convo_sync.config_loader -- hierarchical YAML config loading."""

import textwrap

import pytest
import yaml

from convo_sync.config_loader import (
    CONFIG_ENV_VAR,
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """cwd and HOME inside tmp_path with no explicit config path."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("SYNC_REPO", "/data/sync")
        assert interpolate_env_vars("${SYNC_REPO}/projects") == "/data/sync/projects"

    def test_default_used_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-a}") == "a"
        assert interpolate_env_vars("${EMPTY_VAR:-b}") == "b"

    def test_unset_without_default_is_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("x${UNSET_VAR_XYZ}y") == "xy"

    def test_recursive_leaves_non_strings(self, monkeypatch):
        monkeypatch.setenv("LOG_PATH", "/tmp/c.jsonl")
        data = {"sync": {"conflict_log": "${LOG_PATH}", "days": 7}, "l": [True]}
        assert _interpolate_recursive(data) == {
            "sync": {"conflict_log": "/tmp/c.jsonl", "days": 7},
            "l": [True],
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include via the ConfigLoader subclass."""

    def test_include_relative_file(self, tmp_path):
        _write(tmp_path / "filters.yml", "exclude_patterns: ['*/agent-*']\n")
        main = _write(tmp_path / "config.yml", "sync: !include filters.yml\n")

        assert _load_yaml_with_includes(main) == {
            "sync": {"exclude_patterns": ["*/agent-*"]}
        }

    def test_missing_include_raises(self, tmp_path):
        main = _write(tmp_path / "config.yml", "sync: !include missing.yml\n")
        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        a = _write(tmp_path / "a.yml", "x: !include b.yml\n")
        _write(tmp_path / "b.yml", "y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(a)

    def test_global_safe_loader_not_polluted(self, tmp_path):
        cfg = _write(tmp_path / "test.yml", "x: !include other.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg, encoding="utf-8") as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Discovery and merge
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence."""

    def test_nothing_found(self, workspace):
        assert discover_config_files() == []

    def test_precedence_order(self, workspace, monkeypatch):
        explicit = _write(workspace / "explicit.yml", "a: 1\n")
        project = _write(workspace / ".convo_sync" / "config.yml", "b: 2\n")
        global_cfg = _write(
            workspace / "home" / ".config" / "convo_sync" / "config.yml", "c: 3\n"
        )
        monkeypatch.setenv(CONFIG_ENV_VAR, str(explicit))

        result = discover_config_files()

        assert [p.resolve() for p in result] == [
            explicit.resolve(),
            project.resolve(),
            global_cfg.resolve(),
        ]


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config()."""

    def test_zero_config(self, workspace):
        assert load_hierarchical_config() == {}

    def test_project_section_replaces_global(self, workspace):
        _write(
            workspace / "home" / ".config" / "convo_sync" / "config.yml",
            """\
            sync:
              conflict_strategy: keep-both
              sync_subdirectory: sessions
            logging:
              level: DEBUG
            """,
        )
        _write(
            workspace / ".convo_sync" / "config.yml",
            """\
            sync:
              conflict_strategy: prefer-local
            """,
        )

        result = load_hierarchical_config()

        assert result["sync"] == {"conflict_strategy": "prefer-local"}
        assert result["logging"]["level"] == "DEBUG"

    def test_non_dict_root_skipped(self, workspace, monkeypatch):
        bad = _write(workspace / "bad.yml", "- one\n- two\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(bad))
        assert load_hierarchical_config() == {}
