"""Main test runner and orchestrator.

Runs one suite per operation. Each suite walks the permission matrix, one
case per configured profile, strictly in order. Suites themselves may run
concurrently; reporter callbacks are serialized.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from s3_permission_matrix.config import Settings
from s3_permission_matrix.fixtures import new_run_id
from s3_permission_matrix.matrix import MatrixCase, build_cases
from s3_permission_matrix.models import (
    BucketProfile,
    FailureKind,
    ResultStatus,
    SuiteResult,
    TestVerdict,
)
from s3_permission_matrix.operations import Operation
from s3_permission_matrix.reconciler import errored
from s3_permission_matrix.retry import (
    RetryExhausted,
    TransientCaseFailure,
    raise_if_transient,
    retry_with_backoff,
)
from s3_permission_matrix.scenarios import run_scenario
from s3_permission_matrix.storage import PermissionGatedStorage

logger = logging.getLogger(__name__)


def default_suites(settings: Settings) -> list[Operation]:
    """Every operation, with the anonymous probe only when enabled."""
    return [
        op for op in Operation
        if op is not Operation.ANONYMOUS_READ or settings.anonymous_probe
    ]


def suite_status(verdicts: Sequence[TestVerdict]) -> ResultStatus:
    """Any FAIL fails the suite; an all-skip suite is skipped."""
    statuses = {v.status for v in verdicts}
    if ResultStatus.FAIL in statuses:
        return ResultStatus.FAIL
    if ResultStatus.ERROR in statuses:
        return ResultStatus.ERROR
    if not verdicts or statuses == {ResultStatus.SKIP}:
        return ResultStatus.SKIP
    return ResultStatus.PASS


def _summarize(verdicts: Sequence[TestVerdict]) -> dict[str, int]:
    def failures(kind: FailureKind) -> int:
        return sum(1 for v in verdicts if v.failure_kind == kind and v.status == ResultStatus.FAIL)

    return {
        "total": len(verdicts),
        "passed": sum(1 for v in verdicts if v.status == ResultStatus.PASS),
        "failed": sum(1 for v in verdicts if v.status == ResultStatus.FAIL),
        "skipped": sum(1 for v in verdicts if v.status == ResultStatus.SKIP),
        "errors": sum(1 for v in verdicts if v.status == ResultStatus.ERROR),
        "permission_violations": failures(FailureKind.PERMISSION_VIOLATION),
        "service_malfunctions": failures(FailureKind.SERVICE_MALFUNCTION),
        "verification_failures": failures(FailureKind.VERIFICATION_FAILED),
        "unexpected_errors": failures(FailureKind.UNEXPECTED_ERROR),
        "unverifiable": sum(1 for v in verdicts if v.unverifiable),
    }


@dataclass
class RunResult:
    """Result of running every selected suite."""

    suites: dict[str, SuiteResult]
    total_duration: float
    run_id: str = ""
    timestamp: str = field(default_factory=lambda: time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))

    @property
    def all_passed(self) -> bool:
        """True when no suite failed or errored."""
        if not self.suites:
            return False
        return all(s.status in (ResultStatus.PASS, ResultStatus.SKIP) for s in self.suites.values())

    @property
    def verdicts(self) -> list[TestVerdict]:
        return [v for s in self.suites.values() for v in s.verdicts]

    def summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "total_suites": len(self.suites),
            "passed_suites": sum(1 for s in self.suites.values() if s.status == ResultStatus.PASS),
            "failed_suites": sum(1 for s in self.suites.values() if s.status == ResultStatus.FAIL),
            "error_suites": sum(1 for s in self.suites.values() if s.status == ResultStatus.ERROR),
        }
        summary.update(_summarize(self.verdicts))
        summary["all_passed"] = self.all_passed
        return summary

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        suites_dict = {}
        for name, suite in self.suites.items():
            suites_dict[name] = {
                "status": suite.status.value,
                "duration_seconds": round(suite.duration_seconds, 3),
                "error_message": suite.error_message,
                "summary": _summarize(suite.verdicts),
                "cases": {v.test_id: v.to_dict() for v in suite.verdicts},
            }

        return {
            "timestamp": self.timestamp,
            "run_id": self.run_id,
            "duration_seconds": round(self.total_duration, 3),
            "summary": self.summary(),
            "suites": suites_dict,
        }


@dataclass
class RunContext:
    """Per-run state threaded through suite execution."""

    run_id: str = field(default_factory=new_run_id)
    started_at: float = field(default_factory=time.time)
    suites: dict[str, SuiteResult] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, result: SuiteResult) -> None:
        with self._lock:
            self.suites[result.suite] = result

    def finish(self, order: Sequence[str]) -> RunResult:
        """Freeze the context into a ``RunResult`` with suites in ``order``."""
        ordered = {name: self.suites[name] for name in order if name in self.suites}
        return RunResult(
            suites=ordered,
            total_duration=time.time() - self.started_at,
            run_id=self.run_id,
        )


class MatrixRunner:
    """Runs the permission matrix.

    Args:
        profiles: Configured profiles by name.
        settings: Service settings.
        reporter: Optional reporter for progress callbacks.
        suites: Operations to run, in order (all by default).
        parallel: Number of suites run at the same time.
        retries: Attempts per case for transient failures.
        retry_delay: Base delay between attempts, in seconds.
        sleep: Sleep function used between retries.
    """

    def __init__(
        self,
        profiles: dict[str, BucketProfile],
        settings: Settings,
        reporter: Optional[Any] = None,
        suites: Optional[Sequence[Operation]] = None,
        parallel: int = 1,
        retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.profiles = profiles
        self.settings = settings
        self.reporter = reporter
        self.suites = list(suites) if suites is not None else default_suites(settings)
        self.parallel = max(1, parallel)
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._report_lock = threading.Lock()
        self._handles: dict[str, tuple] = {}

    def _notify(self, method: str, *args: Any) -> None:
        if self.reporter is None:
            return
        with self._report_lock:
            getattr(self.reporter, method)(*args)

    def _build_handles(self) -> None:
        """Build one subject and one admin handle per profile, up front."""
        for name, profile in self.profiles.items():
            if name not in self._handles:
                self._handles[name] = (
                    PermissionGatedStorage.for_profile(profile, self.settings),
                    PermissionGatedStorage.admin_for_profile(profile, self.settings),
                )

    def run(self) -> RunResult:
        """Run every selected suite.

        Returns:
            RunResult containing results for all suites.
        """
        context = RunContext()
        logger.info(
            "Run %s: %d suites x %d profiles (parallel=%d)",
            context.run_id,
            len(self.suites),
            len(self.profiles),
            self.parallel,
        )

        self._build_handles()

        if self.parallel == 1 or len(self.suites) <= 1:
            for operation in self.suites:
                context.record(self._run_suite_safely(operation, context))
        else:
            with ThreadPoolExecutor(max_workers=self.parallel) as pool:
                futures = [
                    pool.submit(self._run_suite_safely, operation, context)
                    for operation in self.suites
                ]
                for future in futures:
                    context.record(future.result())

        result = context.finish([op.value for op in self.suites])
        logger.info("Run %s finished in %.1fs", context.run_id, result.total_duration)

        self._notify("on_run_complete", result)
        return result

    def _run_suite_safely(self, operation: Operation, context: RunContext) -> SuiteResult:
        start_time = time.time()
        try:
            return self.run_suite(operation, context)
        except Exception as e:
            logger.exception("Suite %s aborted", operation.value)
            result = SuiteResult(
                suite=operation.value,
                status=ResultStatus.ERROR,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
            )
            self._notify("on_suite_complete", result)
            return result

    def run_suite(self, operation: Operation, context: RunContext) -> SuiteResult:
        """Run every case of one operation suite, sequentially."""
        start_time = time.time()
        cases = build_cases(operation, self.profiles)
        self._notify("on_suite_start", operation.value, len(cases))

        verdicts: list[TestVerdict] = []
        for case in cases:
            verdict = self.run_case(case, context)
            verdicts.append(verdict)
            self._notify("on_case_complete", operation.value, verdict)

        result = SuiteResult(
            suite=operation.value,
            status=suite_status(verdicts),
            verdicts=verdicts,
            duration_seconds=time.time() - start_time,
        )
        self._notify("on_suite_complete", result)
        return result

    def run_case(self, case: MatrixCase, context: RunContext) -> TestVerdict:
        """Run one case, retrying transient outcomes only."""
        subject, admin = self._handles.get(case.profile.name) or (None, None)
        start = time.monotonic()

        def attempt_case() -> TestVerdict:
            verdict = run_scenario(case, self.settings, context.run_id, subject, admin)
            return raise_if_transient(verdict)

        try:
            return retry_with_backoff(
                attempt_case,
                max_attempts=self.retries,
                delay=self.retry_delay,
                sleep=self._sleep,
            )
        except RetryExhausted as e:
            if isinstance(e.last_error, TransientCaseFailure):
                verdict = e.last_error.verdict
                verdict.message = f"{verdict.message} (after {e.attempts} attempts)"
                return verdict
            return errored(case, e.last_error or e, (time.monotonic() - start) * 1000)
        except Exception as e:
            logger.exception("Case %s of %s raised", case.case_id, case.operation.value)
            return errored(case, e, (time.monotonic() - start) * 1000)
