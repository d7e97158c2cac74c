"""Case-level retry with linear backoff for transient failures.

A case is retried only when its outcome says the service or the network
misbehaved. Permission outcomes are final: retrying an AccessDenied could
hide a flaky enforcement bug, so it is never done.

Transient (Retryable):
- Connection errors and timeouts
- Throttling (SlowDown, 429)
- Server errors (5xx)

Permanent (Not Retryable):
- Access denied, whether local or remote
- Not found
- Any other client error
"""

import logging
import time
from typing import Any, Callable, Optional

from s3_permission_matrix.errors import StorageError, is_transient
from s3_permission_matrix.models import ErrorKind, TestVerdict

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class TransientCaseFailure(Exception):
    """A case ended on a transient outcome. Carries the verdict it produced."""

    def __init__(self, verdict: TestVerdict):
        super().__init__(verdict.actual_outcome.detail or "transient failure")
        self.verdict = verdict


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is transient and worth retrying.

    Args:
        error: The exception that was raised.

    Returns:
        True if the error is transient and should trigger a retry,
        False if the error is permanent and retrying won't help.
    """
    if isinstance(error, TransientCaseFailure):
        return True

    if isinstance(error, StorageError):
        return error.transient and error.kind is not ErrorKind.ACCESS_DENIED

    # Raw SDK errors: transport problems, throttling, 5xx
    return is_transient(error)


def raise_if_transient(verdict: TestVerdict) -> TestVerdict:
    """Pass a verdict through, or raise ``TransientCaseFailure`` for a retry."""
    outcome = verdict.actual_outcome
    if not verdict.passed and outcome.transient and outcome.error_kind is not ErrorKind.ACCESS_DENIED:
        raise TransientCaseFailure(verdict)
    return verdict


def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = 3,
    delay: float = 1.0,
    args: tuple = (),
    kwargs: Optional[dict] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute a function with retry logic and linear backoff.

    The wait after attempt ``n`` is ``delay * n``.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        delay: Base delay in seconds.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.
        sleep: Sleep function (replaced in tests).

    Returns:
        The return value of func if successful.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}

    max_attempts = max(1, max_attempts)
    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e

            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                raise RetryExhausted(
                    f"Operation failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_error=last_error,
                ) from last_error

            wait = delay * attempt
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt,
                max_attempts,
                e,
                wait,
            )
            sleep(wait)

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_error=last_error,
    )
