"""Reporter modules for outputting test results."""

from .base import Reporter, ReportError
from .console import ConsoleReporter
from .html_reporter import HtmlReporter
from .json_reporter import JsonReporter
from .retention import prune_reports

__all__ = [
    "Reporter",
    "ReportError",
    "ConsoleReporter",
    "HtmlReporter",
    "JsonReporter",
    "prune_reports",
]
