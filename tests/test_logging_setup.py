import sys
import os
import logging

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from splatanchor.utils.logging_setup import parse_level, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    pyproj_level = logging.getLogger("pyproj").level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("pyproj").setLevel(pyproj_level)


class TestParseLevel:

    def test_names_any_case(self):
        assert parse_level("debug") == logging.DEBUG
        assert parse_level(" Warning ") == logging.WARNING

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            parse_level("chatty")


class TestSetupLogging:

    def test_file_keeps_info_when_console_is_quiet(self, tmp_path, restore_logging):
        log_file = tmp_path / "logs" / "session.log"
        setup_logging("ERROR", str(log_file))
        logging.getLogger("splatanchor.test").info("yaw adjusted")
        for handler in logging.getLogger().handlers:
            handler.flush()

        console, file_handler = logging.getLogger().handlers
        assert console.level == logging.ERROR
        assert file_handler.level == logging.INFO
        assert "yaw adjusted" in log_file.read_text(encoding="utf-8")

    def test_pyproj_held_at_warning(self, restore_logging):
        setup_logging("INFO")
        assert logging.getLogger("pyproj").level == logging.WARNING

    def test_unknown_level_rejected_by_cli(self, restore_logging):
        from typer.testing import CliRunner

        from splatanchor.cli import app

        result = CliRunner().invoke(app, ["--log-level", "chatty", "version"])
        assert result.exit_code != 0
