"""JSON reporter for structured output and GitHub Actions integration.

Writes the full run (summary plus every case verdict) either to a given
path or to a timestamped file in a report directory, where older reports
are pruned. Can also publish summary outputs to GitHub Actions.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from s3_permission_matrix.models import SuiteResult, TestVerdict
from s3_permission_matrix.reporters.base import Reporter, ReportError
from s3_permission_matrix.reporters.retention import DEFAULT_MAX_REPORTS, prune_reports, report_path

logger = logging.getLogger(__name__)


class JsonReporter(Reporter):
    """JSON reporter for structured output.

    Args:
        output_path: Optional file path to write JSON output
        report_dir: Directory for timestamped reports (used when no path is given)
        github_output: If True, write to GITHUB_OUTPUT for Actions
        max_reports: Number of timestamped reports kept in ``report_dir``
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        report_dir: Optional[str] = None,
        github_output: bool = False,
        max_reports: int = DEFAULT_MAX_REPORTS,
    ):
        self.output_path = output_path
        self.report_dir = report_dir
        self.github_output = github_output
        self.max_reports = max_reports
        self.written_path: Optional[Path] = None

    def on_suite_start(self, suite: str, case_count: int) -> None:
        """No-op for JSON reporter."""
        pass

    def on_case_complete(self, suite: str, verdict: TestVerdict) -> None:
        """No-op - data comes from the run result."""
        pass

    def on_suite_complete(self, result: SuiteResult) -> None:
        """No-op - data comes from the run result."""
        pass

    def on_run_complete(self, result) -> dict:
        """Generates and outputs JSON data.

        Args:
            result: The RunResult of the run

        Returns:
            The generated JSON data as a dictionary

        Raises:
            ReportError: If the report file cannot be written.
        """
        output = result.to_dict()

        if self.output_path:
            self.written_path = self._write_to_file(Path(self.output_path), output)
        elif self.report_dir:
            self.written_path = self._write_to_file(report_path(self.report_dir, "json"), output)
            prune_reports(self.report_dir, self.max_reports, extension="json")

        if self.github_output:
            self._write_github_output(output)

        return output

    def _write_to_file(self, path: Path, output: dict) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(output, f, indent=2)
        except OSError as e:
            raise ReportError(f"Could not write JSON report to {path}: {e}") from e

        logger.info("JSON report written to %s", path)
        return path

    def _write_github_output(self, output: dict) -> None:
        github_output_file = os.environ.get("GITHUB_OUTPUT")
        if not github_output_file:
            return

        summary = output["summary"]
        with open(github_output_file, "a", encoding="utf-8") as f:
            f.write(f"all_passed={str(summary['all_passed']).lower()}\n")
            f.write(f"total_cases={summary['total']}\n")
            f.write(f"passed_cases={summary['passed']}\n")
            f.write(f"failed_cases={summary['failed']}\n")
            f.write(f"permission_violations={summary['permission_violations']}\n")

            # Full JSON as multiline output
            f.write("results<<EOF\n")
            f.write(json.dumps(output))
            f.write("\nEOF\n")
