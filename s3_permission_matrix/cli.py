"""Command-line interface for the S3 permission matrix tester.

Provides argument parsing and main entry point for running the matrix
from the command line.
"""

import argparse
import dataclasses
import logging
import re
import sys
from typing import Optional

from s3_permission_matrix.config import ConfigError, load_config
from s3_permission_matrix.logging_config import DEFAULT_RETENTION_DAYS, configure_logging
from s3_permission_matrix.matrix import PERMISSION_PROFILES
from s3_permission_matrix.models import BucketProfile
from s3_permission_matrix.operations import Operation, parse_operation, required_permissions
from s3_permission_matrix.reporters import (
    ConsoleReporter,
    HtmlReporter,
    JsonReporter,
    Reporter,
    ReportError,
)
from s3_permission_matrix.reporters.retention import DEFAULT_MAX_REPORTS
from s3_permission_matrix.runner import MatrixRunner, default_suites

logger = logging.getLogger(__name__)


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using the console, JSON and HTML reporters simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_suite_start(self, suite: str, case_count: int) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_suite_start(suite, case_count)

    def on_case_complete(self, suite: str, verdict) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_case_complete(suite, verdict)

    def on_suite_complete(self, result) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_suite_complete(result)

    def on_run_complete(self, result) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_run_complete(result)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="s3-permission-matrix",
        description="Check that an S3-compatible service enforces bucket permissions",
    )

    parser.add_argument(
        "suites",
        nargs="*",
        metavar="SUITE",
        help="Operation suites to run, e.g. upload delete-folder (default: all)",
    )

    parser.add_argument(
        "-c", "--config",
        default="config.json",
        help="Path to configuration file (default: config.json)",
    )

    parser.add_argument(
        "-p", "--profiles",
        metavar="LIST",
        help="Comma-separated list of profile names to test",
    )

    parser.add_argument(
        "--pattern",
        metavar="REGEX",
        help="Only test profiles whose name matches this regular expression",
    )

    parser.add_argument(
        "--parallel",
        type=int,
        default=1,
        metavar="N",
        help="Number of suites to run concurrently (default: 1)",
    )

    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        metavar="N",
        help="Attempts per case on transient failures (default: 3)",
    )

    parser.add_argument(
        "--retry-delay",
        type=float,
        default=1.0,
        metavar="SECONDS",
        help="Base delay between attempts, multiplied by the attempt number (default: 1.0)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress per-case output, show only summary",
    )

    parser.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON results to file",
    )

    parser.add_argument(
        "--report-dir",
        metavar="DIR",
        help="Write timestamped JSON reports to this directory",
    )

    parser.add_argument(
        "--html",
        action="store_true",
        help="Also write an HTML report (to --report-dir, default: reports)",
    )

    parser.add_argument(
        "--max-reports",
        type=int,
        default=DEFAULT_MAX_REPORTS,
        metavar="N",
        help=f"Reports of each kind kept in the report directory (default: {DEFAULT_MAX_REPORTS})",
    )

    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level (default: WARNING)",
    )

    parser.add_argument(
        "--log-dir",
        default="logs",
        metavar="DIR",
        help="Directory for dated log files, empty to disable (default: logs)",
    )

    parser.add_argument(
        "--remote-enforcement",
        action="store_true",
        help="Skip local permission pre-checks so every call reaches the service",
    )

    parser.add_argument(
        "--anonymous-probe",
        action="store_true",
        help="Also run the anonymous-read suite",
    )

    parser.add_argument(
        "--github-actions",
        action="store_true",
        help="Enable GitHub Actions output mode",
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List suites and permission profiles, then exit",
    )

    return parser.parse_args(argv)


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        List of configured reporters
    """
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet)]

    if args.json_output or args.report_dir or args.github_actions:
        reporters.append(JsonReporter(
            output_path=args.json_output,
            report_dir=args.report_dir,
            github_output=args.github_actions,
            max_reports=args.max_reports,
        ))

    if args.html:
        reporters.append(HtmlReporter(
            report_dir=args.report_dir or "reports",
            max_reports=args.max_reports,
        ))

    return reporters


def filter_profiles(
    profiles: dict[str, BucketProfile],
    names: Optional[str] = None,
    pattern: Optional[str] = None,
) -> dict[str, BucketProfile]:
    """Filter profiles by comma-separated names and/or a regular expression.

    Raises:
        re.error: If ``pattern`` is not a valid regular expression.
    """
    selected = dict(profiles)
    if names:
        keys = {k.strip().upper() for k in names.split(",") if k.strip()}
        selected = {k: v for k, v in selected.items() if k.upper() in keys}
    if pattern:
        regex = re.compile(pattern, re.IGNORECASE)
        selected = {k: v for k, v in selected.items() if regex.search(k)}
    return selected


def parse_suites(names: list[str]) -> Optional[list[Operation]]:
    """Map suite names to operations; None (all suites) when empty or "all".

    Raises:
        ValueError: On an unknown suite name.
    """
    if not names or names == ["all"]:
        return None
    return [parse_operation(name) for name in names]


def print_catalog() -> None:
    """Print every suite with its required permissions, then the named profiles."""
    print("Suites:")
    for operation in Operation:
        required = ", ".join(sorted(p.value for p in required_permissions(operation))) or "public tier"
        print(f"  {operation.value:<22} requires {required}")
    print()
    print("Profiles:")
    for name, permissions in PERMISSION_PROFILES.items():
        print(f"  {name:<24} {permissions.describe()}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for test failures, 2 for errors
    """
    args = parse_args(argv)

    if args.list:
        print_catalog()
        return 0

    configure_logging(args.log_level, args.log_dir or None, DEFAULT_RETENTION_DAYS)

    try:
        suites = parse_suites(args.suites)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    # Load configuration
    try:
        settings, profiles = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if args.remote_enforcement:
        settings = dataclasses.replace(settings, local_checks=False)
    if args.anonymous_probe:
        settings = dataclasses.replace(settings, anonymous_probe=True)

    # Filter profiles if requested
    if args.profiles or args.pattern:
        try:
            profiles = filter_profiles(profiles, args.profiles, args.pattern)
        except re.error as e:
            print(f"Configuration error: invalid pattern: {e}", file=sys.stderr)
            return 2
        if not profiles:
            print("No matching profiles found", file=sys.stderr)
            return 2

    if suites is None:
        suites = default_suites(settings)

    reporters = create_reporters(args)
    if len(reporters) == 1:
        reporter = reporters[0]
    else:
        reporter = CompositeReporter(reporters)

    runner = MatrixRunner(
        profiles,
        settings,
        reporter=reporter,
        suites=suites,
        parallel=args.parallel,
        retries=args.retries,
        retry_delay=args.retry_delay,
    )

    try:
        result = runner.run()
    except ReportError as e:
        print(f"Report error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Run aborted")
        print(f"Run aborted: {e}", file=sys.stderr)
        return 1

    return 0 if result.all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
