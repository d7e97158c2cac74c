"""Report file retention."""

import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

REPORT_PREFIX = "test-report-"
DEFAULT_MAX_REPORTS = 10


def report_path(report_dir: str, extension: str) -> Path:
    """Timestamped report path, e.g. ``test-report-20240101T120000123456Z.json``."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    return Path(report_dir) / f"{REPORT_PREFIX}{stamp}.{extension}"


def prune_reports(report_dir: str, max_files: int = DEFAULT_MAX_REPORTS, extension: str = "*") -> list[Path]:
    """Keep only the newest ``max_files`` reports of one kind.

    Args:
        report_dir: Directory holding the reports.
        max_files: Number of reports to keep.
        extension: File extension to prune (all kinds by default).

    Returns:
        The paths removed.
    """
    directory = Path(report_dir)
    if max_files <= 0 or not directory.is_dir():
        return []

    reports = sorted(
        directory.glob(f"{REPORT_PREFIX}*.{extension}"),
        key=lambda p: (p.stat().st_mtime, p.name),
        reverse=True,
    )
    removed = []
    for path in reports[max_files:]:
        try:
            path.unlink()
        except OSError as e:
            logger.warning("Could not remove old report %s: %s", path, e)
            continue
        removed.append(path)

    if removed:
        logger.info("Removed %d old reports from %s", len(removed), directory)
    return removed
