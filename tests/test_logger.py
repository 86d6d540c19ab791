"""Tests for logger.py -- setup_logging() and JsonFormatter.

Strategy: mock logging.basicConfig to check the arguments setup_logging
passes, since pytest's log capture plugin interferes with real
basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from vault_history.logger import JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_sqlalchemy_levels():
    names = ("sqlalchemy.engine", "sqlalchemy.pool")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def _handlers(mock_basic):
    return mock_basic.call_args[1]["handlers"]


def _close(handlers):
    for handler in handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("vault_history.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        mock_basic.assert_called_once()
        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("vault_history.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "cli.log"
        setup_logging(mode="cli", log_file=str(log_file))

        handlers = _handlers(mock_basic)
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        _close(handlers)

    @patch("vault_history.logger.logging.basicConfig")
    def test_service_mode_logs_to_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "service.log"
        setup_logging(mode="service", log_file=str(log_file))

        kwargs = mock_basic.call_args[1]
        (handler,) = kwargs["handlers"]
        assert isinstance(handler, logging.FileHandler)
        assert handler.baseFilename == str(log_file)
        assert kwargs["level"] == logging.WARNING
        _close(kwargs["handlers"])

    @patch("vault_history.logger.logging.basicConfig")
    def test_service_mode_uses_log_file_env(self, mock_basic, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LOG_FILE", str(log_file))
        setup_logging(mode="service")

        handlers = _handlers(mock_basic)
        assert handlers[0].baseFilename == str(log_file)
        _close(handlers)

    @patch("vault_history.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("vault_history.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "error")
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("vault_history.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("vault_history.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("vault_history.logger.logging.basicConfig")
    def test_json_format_selected(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        assert isinstance(_handlers(mock_basic)[0].formatter, JsonFormatter)

    @patch("vault_history.logger.logging.basicConfig")
    def test_sqlalchemy_silenced(self, mock_basic):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
        setup_logging(mode="cli")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.pool").level == logging.WARNING

    @patch("vault_history.logger.logging.basicConfig")
    def test_sqlalchemy_left_alone_in_debug(self, mock_basic):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
        setup_logging(mode="cli", debug=True)

        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, msg="Recorded revision %s", args=("r-1",), exc_info=None):
        return logging.LogRecord(
            name="vault_history.history.store",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_fields(self):
        entry = json.loads(JsonFormatter().format(self._record()))

        assert set(entry) == {"ts", "level", "logger", "msg"}
        assert entry["level"] == "INFO"
        assert entry["logger"] == "vault_history.history.store"
        assert entry["msg"] == "Recorded revision r-1"

    def test_background_thread_named(self):
        record = self._record()
        record.threadName = "vault-upload"

        entry = json.loads(JsonFormatter().format(record))

        assert entry["thread"] == "vault-upload"

    def test_exception_included(self):
        try:
            raise RuntimeError("disk gone")
        except RuntimeError:
            record = self._record(exc_info=sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: disk gone" in entry["exc"]

    def test_single_line(self):
        output = JsonFormatter().format(self._record(msg="two\nlines", args=()))
        assert "\n" not in output
