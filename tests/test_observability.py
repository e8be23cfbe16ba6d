"""
Tests for logging setup and level resolution.
"""

import logging

import pytest

from pubsync.core.observability.logging_config import ENV_LEVEL, resolve_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLevel:
    def test_flags_win_over_env(self):
        env = {ENV_LEVEL: "ERROR"}
        assert resolve_level(debug=True, environ=env) == "DEBUG"
        assert resolve_level(verbose=True, environ=env) == "INFO"
        assert resolve_level(quiet=True, environ={ENV_LEVEL: "DEBUG"}) == "ERROR"

    def test_debug_beats_quiet(self):
        assert resolve_level(debug=True, quiet=True, environ={}) == "DEBUG"

    def test_env_then_default(self):
        assert resolve_level(environ={ENV_LEVEL: "INFO"}) == "INFO"
        assert resolve_level(environ={}) == "WARNING"


class TestSetupLogging:
    def test_console_level(self):
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back(self):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler_more_verbose(self, tmp_path):
        log_file = tmp_path / "pubsync.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        logging.getLogger("pubsync.test").debug("hello file")
        for handler in root.handlers:
            handler.flush()
        assert "hello file" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self):
        setup_logging("INFO")
        setup_logging("DEBUG")
        assert len(logging.getLogger().handlers) == 1
