"""Tests for logger.py -- setup_logging() and JsonFormatter.

Strategy: mock logging.basicConfig to verify the arguments setup_logging
passes, since pytest's log capture plugin interferes with real calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from field_sync.logger import JsonFormatter, setup_logging


class TestSetupLogging:
    @patch("field_sync.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic):
        setup_logging()

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert handlers[0].stream is sys.stderr

    @patch("field_sync.logger.logging.basicConfig")
    def test_default_level_is_info(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("field_sync.logger.logging.basicConfig")
    def test_config_level_used_when_env_unset(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(level="warning")

        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("field_sync.logger.logging.basicConfig")
    def test_env_beats_config_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(level="DEBUG")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("field_sync.logger.logging.basicConfig")
    def test_debug_beats_everything(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(debug=True, level="WARNING")

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("field_sync.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("field_sync.logger.logging.basicConfig")
    def test_log_file_adds_file_handler(self, mock_basic, tmp_path):
        setup_logging(log_file=str(tmp_path / "sync.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        for h in file_handlers:
            h.close()

    @patch("field_sync.logger.logging.basicConfig")
    def test_json_format(self, mock_basic):
        setup_logging(debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)


class TestJsonFormatter:
    def _record(self, exc_info=None) -> logging.LogRecord:
        return logging.LogRecord(
            name="field_sync.sync.process",
            level=logging.WARNING,
            pathname="process.py",
            lineno=1,
            msg="[%s] %s",
            args=("conflict_unresolved", "lead.lastname"),
            exc_info=exc_info,
        )

    def test_single_line_json(self):
        output = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S").format(self._record())

        assert "\n" not in output
        data = json.loads(output)
        assert data["level"] == "WARNING"
        assert data["logger"] == "field_sync.sync.process"
        assert data["msg"] == "[conflict_unresolved] lead.lastname"
        assert "exc" not in data

    def test_includes_exception(self):
        try:
            raise ConnectionError("crm unreachable")
        except ConnectionError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(self._record(exc_info)))
        assert "ConnectionError: crm unreachable" in data["exc"]
