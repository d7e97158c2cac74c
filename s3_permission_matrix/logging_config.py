"""Logging configuration for the permission matrix tester.

Console logs go through rich's ``RichHandler`` on stderr so they do not mix
with the report on stdout. Every run also appends to a dated log file,
``test-YYYY-MM-DD.log``, and log files past the retention period are removed.
"""

import logging
import os
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_PREFIX = "test-"
LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
DEFAULT_RETENTION_DAYS = 7

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "httpx", "httpcore")


def log_file_path(log_dir: str, day: Optional[time.struct_time] = None) -> Path:
    """Path of the log file for ``day`` (today by default)."""
    day = day or time.localtime()
    return Path(log_dir) / f"{LOG_FILE_PREFIX}{time.strftime('%Y-%m-%d', day)}.log"


def prune_logs(log_dir: str, retention_days: int = DEFAULT_RETENTION_DAYS) -> list[Path]:
    """Delete log files older than ``retention_days``.

    Returns:
        The paths removed.
    """
    directory = Path(log_dir)
    if not directory.is_dir():
        return []

    cutoff = time.time() - retention_days * 86400
    removed = []
    for path in directory.glob(f"{LOG_FILE_PREFIX}*.log"):
        if path.stat().st_mtime < cutoff:
            path.unlink()
            removed.append(path)
    return removed


def configure_logging(
    level: str = "WARNING",
    log_dir: Optional[str] = "logs",
    retention_days: int = DEFAULT_RETENTION_DAYS,
    file_level: str = "DEBUG",
) -> Optional[Path]:
    """Configure root logging.

    Args:
        level: Console log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory for the dated log file; None disables file logging.
        retention_days: Age in days after which log files are deleted.
        file_level: Log level name for the file handler.

    Returns:
        Path of the log file, or None when file logging is disabled.
    """
    console_level = getattr(logging, level.upper(), logging.WARNING)
    log_file_level = getattr(logging, file_level.upper(), logging.DEBUG)

    root = logging.getLogger()

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True, legacy_windows=True),
        show_path=False,
        rich_tracebacks=False,
    )
    console_handler.setLevel(console_level)
    root.addHandler(console_handler)

    path = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        for removed in prune_logs(log_dir, retention_days):
            logging.getLogger(__name__).debug("Removed old log file %s", removed)

        path = log_file_path(log_dir)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(log_file_level)
        file_handler.setFormatter(logging.Formatter(LOG_FILE_FORMAT))
        root.addHandler(file_handler)

    root.setLevel(min(console_level, log_file_level) if path else console_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return path
