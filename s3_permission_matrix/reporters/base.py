"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3_permission_matrix.models import SuiteResult, TestVerdict
    from s3_permission_matrix.runner import RunResult


class ReportError(Exception):
    """Raised when a report cannot be written."""

    pass


class Reporter(ABC):
    """Abstract base class for test result reporters."""

    @abstractmethod
    def on_suite_start(self, suite: str, case_count: int) -> None:
        """Called when an operation suite starts."""
        pass

    @abstractmethod
    def on_case_complete(self, suite: str, verdict: "TestVerdict") -> None:
        """Called when a matrix case completes."""
        pass

    @abstractmethod
    def on_suite_complete(self, result: "SuiteResult") -> None:
        """Called when an operation suite completes."""
        pass

    @abstractmethod
    def on_run_complete(self, result: "RunResult") -> None:
        """Called when all testing is complete."""
        pass
