"""Static HTML report.

One self-contained page per run: the summary counters, then every suite
with its cases colored by status.
"""

import html
import logging
from pathlib import Path
from typing import Optional

from s3_permission_matrix.models import SuiteResult, TestVerdict
from s3_permission_matrix.reporters.base import Reporter, ReportError
from s3_permission_matrix.reporters.retention import DEFAULT_MAX_REPORTS, prune_reports, report_path

logger = logging.getLogger(__name__)

STYLE = """
body { font-family: Arial, sans-serif; margin: 20px; }
table { border-collapse: collapse; margin-bottom: 20px; }
th, td { border: 1px solid #ccc; padding: 4px 8px; text-align: left; }
.pass { background-color: #dff0d8; }
.fail { background-color: #f2dede; }
.error { background-color: #fcf8e3; }
.skip { background-color: #f5f5f5; }
.unverifiable { font-style: italic; }
"""


def _case_row(verdict: TestVerdict) -> str:
    css = verdict.status.value
    if verdict.unverifiable:
        css += " unverifiable"
    failure = verdict.failure_kind.value.replace("_", " ") if verdict.failure_kind else ""
    cells = [
        verdict.test_id,
        verdict.description,
        verdict.profile,
        verdict.expected_outcome,
        verdict.actual_outcome.label(),
        verdict.status.value.upper() + (" (unverified)" if verdict.unverifiable else ""),
        failure,
        f"{verdict.duration_ms:.0f}",
        verdict.message or "",
    ]
    tds = "".join(f"<td>{html.escape(cell)}</td>" for cell in cells)
    return f'<tr class="{css}">{tds}</tr>'


def _suite_section(suite: SuiteResult) -> str:
    rows = "\n".join(_case_row(v) for v in suite.verdicts)
    error = f"<p>Error: {html.escape(suite.error_message)}</p>" if suite.error_message else ""
    return f"""<h2 class="{suite.status.value}">{html.escape(suite.suite)}: {suite.status.value.upper()}</h2>
{error}
<table>
<tr><th>ID</th><th>Description</th><th>Profile</th><th>Expected</th><th>Actual</th><th>Status</th><th>Failure</th><th>ms</th><th>Message</th></tr>
{rows}
</table>"""


def render_html(result) -> str:
    """Render a RunResult as a standalone HTML page."""
    summary = result.summary()
    overall = "PASSED" if result.all_passed else "FAILED"
    counters = "\n".join(
        f"<tr><th>{html.escape(label)}</th><td>{summary[key]}</td></tr>"
        for label, key in (
            ("Total cases", "total"),
            ("Passed", "passed"),
            ("Failed", "failed"),
            ("Skipped", "skipped"),
            ("Errors", "errors"),
            ("Permission violations", "permission_violations"),
            ("Service malfunctions", "service_malfunctions"),
            ("Verification failures", "verification_failures"),
            ("Unverifiable passes", "unverifiable"),
        )
    )
    sections = "\n".join(_suite_section(s) for s in result.suites.values())

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Permission Matrix Report {html.escape(result.timestamp)}</title>
<style>{STYLE}</style>
</head>
<body>
<h1>Permission Matrix Report: {overall}</h1>
<p>Run {html.escape(result.run_id)} at {html.escape(result.timestamp)}, {result.total_duration:.1f}s</p>
<table>
{counters}
</table>
{sections}
</body>
</html>
"""


class HtmlReporter(Reporter):
    """Writes an HTML report when the run completes.

    Args:
        report_dir: Directory for timestamped reports
        output_path: Explicit file path (overrides ``report_dir``)
        max_reports: Number of HTML reports kept in ``report_dir``
    """

    def __init__(
        self,
        report_dir: str = "reports",
        output_path: Optional[str] = None,
        max_reports: int = DEFAULT_MAX_REPORTS,
    ):
        self.report_dir = report_dir
        self.output_path = output_path
        self.max_reports = max_reports
        self.written_path: Optional[Path] = None

    def on_suite_start(self, suite: str, case_count: int) -> None:
        pass

    def on_case_complete(self, suite: str, verdict: TestVerdict) -> None:
        pass

    def on_suite_complete(self, result: SuiteResult) -> None:
        pass

    def on_run_complete(self, result) -> Path:
        """Write the report.

        Raises:
            ReportError: If the file cannot be written.
        """
        path = Path(self.output_path) if self.output_path else report_path(self.report_dir, "html")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_html(result), encoding="utf-8")
        except OSError as e:
            raise ReportError(f"Could not write HTML report to {path}: {e}") from e

        logger.info("HTML report written to %s", path)
        if not self.output_path:
            prune_reports(self.report_dir, self.max_reports, extension="html")

        self.written_path = path
        return path
