"""Tests for logging setup and log retention."""

import logging
import os
import time

import pytest
from rich.logging import RichHandler

from s3_permission_matrix.logging_config import configure_logging, log_file_path, prune_logs


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def age(path, days):
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


class TestLogFilePath:
    def test_dated_name(self, tmp_path):
        day = time.strptime("2024-03-05", "%Y-%m-%d")
        assert log_file_path(str(tmp_path), day) == tmp_path / "test-2024-03-05.log"


class TestPruneLogs:
    def test_removes_old_logs_only(self, tmp_path):
        old = tmp_path / "test-2020-01-01.log"
        recent = tmp_path / "test-2020-01-09.log"
        other = tmp_path / "notes.log"
        for path in (old, recent, other):
            path.write_text("x")
        age(old, 10)
        age(recent, 1)
        age(other, 30)

        removed = prune_logs(str(tmp_path), retention_days=7)

        assert removed == [old]
        assert recent.exists()
        assert other.exists()

    def test_missing_directory(self, tmp_path):
        assert prune_logs(str(tmp_path / "nope")) == []


class TestConfigureLogging:
    def test_console_and_file_handlers(self, tmp_path, restore_root_logger):
        log_dir = tmp_path / "logs"

        path = configure_logging("INFO", str(log_dir))
        logging.getLogger("s3_permission_matrix.test").debug("written to file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert path == log_file_path(str(log_dir))
        assert "written to file" in path.read_text(encoding="utf-8")
        rich_handlers = [h for h in restore_root_logger.handlers if isinstance(h, RichHandler)]
        assert rich_handlers[0].level == logging.INFO
        assert restore_root_logger.level == logging.DEBUG

    def test_file_logging_disabled(self, restore_root_logger):
        assert configure_logging("ERROR", None) is None
        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.level == logging.ERROR

    def test_quiets_noisy_loggers(self, restore_root_logger):
        configure_logging("DEBUG", None)
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_prunes_on_setup(self, tmp_path, restore_root_logger):
        old = tmp_path / "test-2000-01-01.log"
        old.write_text("x")
        age(old, 30)

        configure_logging("WARNING", str(tmp_path), retention_days=7)

        assert not old.exists()
