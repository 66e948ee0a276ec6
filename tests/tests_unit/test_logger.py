import logging
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from messenger.clientutils.configuration.models import LogConsoleHandlerConfig, LogFileHandlerConfig, LogLevel
from messenger.clientutils.logger import RobustFileHandler, setup_logging


class TestRobustFileHandler(unittest.TestCase):
    def setUp(self) -> None:
        self.test_dir = tempfile.mkdtemp()
        self.log_dir = Path(self.test_dir, "logs", "nested", "dir")
        self.log_file = Path(self.log_dir, "test.log")

    def tearDown(self) -> None:
        shutil.rmtree(self.test_dir)

    def test_create_dirs(self) -> None:
        """Test that directories are created automatically"""
        self.assertFalse(self.log_dir.exists())

        handler = RobustFileHandler(
            filename=self.log_file,
            when="midnight",
            utc=True,
            backupCount=3,
            create_dirs=True,
        )

        self.assertTrue(self.log_dir.exists())
        self.assertTrue(self.log_file.exists())

        handler.close()

    def test_no_create_dirs(self) -> None:
        """Test that create_dirs=False doesn't create directories"""
        with self.assertRaises((OSError, FileNotFoundError)):
            RobustFileHandler(filename=self.log_file, create_dirs=False)

        self.assertFalse(self.log_dir.exists())


def test_setup_logging(restore_root_logger: logging.Logger, tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "client.log"

    setup_logging(
        [
            LogConsoleHandlerConfig(type="console", level=LogLevel.INFO),
            LogFileHandlerConfig(type="file", path=log_file, level=LogLevel.DEBUG),
        ]
    )

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2

    console = next(h for h in root.handlers if type(h) is logging.StreamHandler)
    file = next(h for h in root.handlers if isinstance(h, RobustFileHandler))
    assert console.level == logging.INFO
    assert file.level == logging.DEBUG

    logging.getLogger("messenger.test").debug("hello from the test")
    file.flush()
    assert "hello from the test" in log_file.read_text()
    assert "UTC [DEBUG   ]" in log_file.read_text()


def test_setup_logging_level_override(restore_root_logger: logging.Logger) -> None:
    setup_logging([LogConsoleHandlerConfig(type="console", level=LogLevel.INFO)], level_override=LogLevel.ERROR)

    root = restore_root_logger
    assert root.level == logging.ERROR
    assert [h.level for h in root.handlers] == [logging.ERROR]


def test_setup_logging_falls_back_to_console(restore_root_logger: logging.Logger, tmp_path: Path) -> None:
    with patch("messenger.clientutils.logger.RobustFileHandler", side_effect=PermissionError("denied")):
        setup_logging([LogFileHandlerConfig(type="file", path=tmp_path / "client.log", level=LogLevel.INFO)])

    root = restore_root_logger
    assert len(root.handlers) == 1
    assert type(root.handlers[0]) is logging.StreamHandler


@pytest.mark.parametrize("level", list(LogLevel))
def test_every_log_level_resolves(restore_root_logger: logging.Logger, level: LogLevel) -> None:
    setup_logging([LogConsoleHandlerConfig(type="console", level=level)])

    assert restore_root_logger.level == getattr(logging, level.value)
