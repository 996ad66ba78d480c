"""Tests for logger.py -- setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from convo_sync.logger import JsonFormatter, setup_logging


def _close(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("convo_sync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        """CLI mode passes StreamHandler(stderr) to basicConfig."""
        setup_logging(mode="cli")

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr

    @patch("convo_sync.logger.logging.basicConfig")
    def test_background_mode_logs_to_file_only(self, mock_basic, tmp_path):
        """Background mode never writes to stderr."""
        log_file = tmp_path / "logs" / "sync.log"
        setup_logging(mode="background", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.FileHandler)
        assert handlers[0].baseFilename == str(log_file)
        assert log_file.parent.is_dir()
        _close(handlers)

    @patch("convo_sync.logger.logging.basicConfig")
    def test_background_uses_log_file_env(self, mock_basic, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        setup_logging(mode="background")

        handlers = mock_basic.call_args[1]["handlers"]
        assert handlers[0].baseFilename == str(log_file)
        _close(handlers)

    @patch("convo_sync.logger.logging.basicConfig")
    def test_default_levels(self, mock_basic, tmp_path, monkeypatch):
        """Background defaults to WARNING, CLI to INFO."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "x.log"))

        setup_logging(mode="background")
        assert mock_basic.call_args[1]["level"] == logging.WARNING
        _close(mock_basic.call_args[1]["handlers"])

        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("convo_sync.logger.logging.basicConfig")
    def test_configured_level_replaces_mode_default(self, mock_basic, monkeypatch):
        """A level from the config file is used when LOG_LEVEL is unset."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        setup_logging(mode="cli", level="WARNING")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        setup_logging(mode="cli", level="WARNING")
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("convo_sync.logger.logging.basicConfig")
    def test_env_level_and_debug_override(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("convo_sync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        """CLI mode with log_file creates both stderr and file handlers."""
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        _close(handlers)

    @patch("convo_sync.logger.logging.basicConfig")
    def test_json_format(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0].formatter, JsonFormatter)

    @patch("convo_sync.logger.logging.basicConfig")
    def test_force_reconfigures(self, mock_basic):
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["force"] is True


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, msg, args=(), exc_info=None):
        return logging.LogRecord(
            name="convo_sync.sync.engine",
            level=logging.WARNING,
            pathname="engine.py",
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_basic_output(self):
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")

        data = json.loads(formatter.format(self._record("Skipped %d lines", (2,))))

        assert data["level"] == "WARNING"
        assert data["logger"] == "convo_sync.sync.engine"
        assert data["msg"] == "Skipped 2 lines"
        assert "exc" not in data

    def test_non_ascii_kept(self):
        formatter = JsonFormatter()
        output = formatter.format(self._record("项目名"))
        assert "项目名" in output

    def test_includes_exception(self):
        formatter = JsonFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(formatter.format(self._record("failed", exc_info=exc_info)))

        assert "ValueError: boom" in data["exc"]
