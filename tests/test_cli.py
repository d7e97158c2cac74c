"""Tests for CLI entry point.

Tests the command-line interface and argument parsing.
"""

import json
from unittest.mock import MagicMock, Mock, patch

import pytest

from s3_permission_matrix.cli import (
    CompositeReporter,
    create_reporters,
    filter_profiles,
    main,
    parse_args,
    parse_suites,
)
from s3_permission_matrix.config import ConfigError
from s3_permission_matrix.models import ResultStatus, SuiteResult
from s3_permission_matrix.operations import Operation
from s3_permission_matrix.reporters import ConsoleReporter, HtmlReporter, JsonReporter, ReportError
from s3_permission_matrix.runner import RunResult


class TestParseArgs:
    """Tests for argument parsing."""

    def test_default_args(self):
        """Should have sensible defaults."""
        args = parse_args([])

        assert args.suites == []
        assert args.config == "config.json"
        assert args.quiet is False
        assert args.json_output is None
        assert args.profiles is None
        assert args.parallel == 1
        assert args.retries == 3
        assert args.retry_delay == 1.0
        assert args.log_level == "WARNING"
        assert args.remote_enforcement is False
        assert args.anonymous_probe is False

    def test_suites_positional(self):
        args = parse_args(["upload", "delete-folder"])
        assert args.suites == ["upload", "delete-folder"]

    def test_short_flags(self):
        """Should accept -c, -p, -q and -j."""
        args = parse_args(["-c", "custom.json", "-p", "READ,WRITE", "-q", "-j", "out.json"])

        assert args.config == "custom.json"
        assert args.profiles == "READ,WRITE"
        assert args.quiet is True
        assert args.json_output == "out.json"

    def test_run_tuning(self):
        args = parse_args(["--parallel", "4", "--retries", "5", "--retry-delay", "0.25"])

        assert args.parallel == 4
        assert args.retries == 5
        assert args.retry_delay == 0.25

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["--log-level", "LOUD"])


class TestCreateReporters:
    """Tests for reporter creation."""

    def test_console_only_by_default(self):
        reporters = create_reporters(parse_args([]))

        assert len(reporters) == 1
        assert isinstance(reporters[0], ConsoleReporter)

    def test_json_reporter_with_output(self):
        reporters = create_reporters(parse_args(["-j", "out.json"]))

        assert isinstance(reporters[1], JsonReporter)
        assert reporters[1].output_path == "out.json"

    def test_json_reporter_in_github_mode(self):
        reporters = create_reporters(parse_args(["--github-actions"]))
        assert reporters[1].github_output is True

    def test_html_reporter_uses_report_dir(self):
        reporters = create_reporters(parse_args(["--html", "--report-dir", "out"]))

        html = [r for r in reporters if isinstance(r, HtmlReporter)]
        assert html[0].report_dir == "out"
        assert any(isinstance(r, JsonReporter) for r in reporters)

    def test_quiet_console(self):
        reporters = create_reporters(parse_args(["-q"]))
        assert reporters[0].quiet is True


class TestCompositeReporter:
    def test_delegates_to_all(self):
        first, second = Mock(), Mock()
        composite = CompositeReporter([first, second])

        composite.on_suite_start("upload", 3)
        composite.on_run_complete("result")

        for reporter in (first, second):
            reporter.on_suite_start.assert_called_once_with("upload", 3)
            reporter.on_run_complete.assert_called_once_with("result")


class TestFilterProfiles:
    @pytest.fixture
    def profiles(self):
        return {"READ": 1, "WRITE": 2, "READ_WRITE": 3, "CUSTOM_ARCHIVE": 4}

    def test_by_names_case_insensitive(self, profiles):
        assert set(filter_profiles(profiles, "read, write")) == {"READ", "WRITE"}

    def test_by_pattern(self, profiles):
        assert set(filter_profiles(profiles, pattern="^read")) == {"READ", "READ_WRITE"}

    def test_names_and_pattern(self, profiles):
        assert set(filter_profiles(profiles, "READ,CUSTOM_ARCHIVE", "custom")) == {"CUSTOM_ARCHIVE"}

    def test_no_filter(self, profiles):
        assert filter_profiles(profiles) == profiles


class TestParseSuites:
    def test_all(self):
        assert parse_suites([]) is None
        assert parse_suites(["all"]) is None

    def test_names(self):
        assert parse_suites(["Upload", "delete_folder"]) == [Operation.UPLOAD, Operation.DELETE_FOLDER]

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown operation"):
            parse_suites(["rename"])


class TestMain:
    """Tests for main entry point."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch("s3_permission_matrix.cli.configure_logging") as configure:
            yield configure

    @pytest.fixture
    def loaded(self, settings, make_profile):
        profiles = {name: make_profile(name) for name in ("READ", "WRITE")}
        with patch("s3_permission_matrix.cli.load_config", return_value=(settings, profiles)) as load:
            yield load

    @staticmethod
    def run_result(status):
        return RunResult(suites={"upload": SuiteResult("upload", status)}, total_duration=1.0)

    def test_list_exits_zero(self, capsys):
        assert main(["--list"]) == 0

        out = capsys.readouterr().out
        assert "Suites:" in out
        assert "upload" in out
        assert "READ_WRITE_LIST_DELETE" in out

    def test_unknown_suite(self, capsys):
        assert main(["rename"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_config_error(self, capsys):
        with patch("s3_permission_matrix.cli.load_config", side_effect=ConfigError("No profiles configured")):
            assert main(["-c", "missing.json"]) == 2

        assert "No profiles configured" in capsys.readouterr().err

    def test_no_matching_profiles(self, loaded, capsys):
        assert main(["-p", "DELETE"]) == 2
        assert "No matching profiles found" in capsys.readouterr().err

    def test_invalid_pattern(self, loaded):
        assert main(["--pattern", "("]) == 2

    def test_all_passed_exits_zero(self, loaded):
        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            runner_cls.return_value.run.return_value = self.run_result(ResultStatus.PASS)
            assert main(["upload", "-q"]) == 0

        args, kwargs = runner_cls.call_args
        assert set(args[0]) == {"READ", "WRITE"}
        assert kwargs["suites"] == [Operation.UPLOAD]

    def test_failure_exits_one(self, loaded):
        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            runner_cls.return_value.run.return_value = self.run_result(ResultStatus.FAIL)
            assert main(["-q"]) == 1

    def test_flags_reach_settings(self, loaded):
        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            runner_cls.return_value.run.return_value = self.run_result(ResultStatus.PASS)
            main(["--remote-enforcement", "--anonymous-probe", "--parallel", "2", "-p", "read"])

        args, kwargs = runner_cls.call_args
        assert list(args[0]) == ["READ"]
        assert args[1].local_checks is False
        assert Operation.ANONYMOUS_READ in kwargs["suites"]
        assert kwargs["parallel"] == 2

    def test_report_error_exits_one(self, loaded, capsys):
        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            runner_cls.return_value.run.side_effect = ReportError("disk full")
            assert main([]) == 1

        assert "disk full" in capsys.readouterr().err

    def test_unexpected_error_exits_one(self, loaded):
        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            runner_cls.return_value.run.side_effect = RuntimeError("boom")
            assert main([]) == 1

    def test_json_output_written(self, loaded, tmp_path):
        output = tmp_path / "results.json"

        with patch("s3_permission_matrix.cli.MatrixRunner") as runner_cls:
            def run():
                result = self.run_result(ResultStatus.PASS)
                runner_cls.call_args.kwargs["reporter"].on_run_complete(result)
                return result

            runner_cls.return_value.run.side_effect = run
            assert main(["-q", "-j", str(output)]) == 0

        data = json.loads(output.read_text())
        assert data["summary"]["all_passed"] is True

    def test_logging_configured(self, loaded, no_logging_setup):
        with patch("s3_permission_matrix.cli.MatrixRunner", MagicMock()):
            main(["--log-level", "DEBUG", "--log-dir", ""])

        no_logging_setup.assert_called_once_with("DEBUG", None, 7)
