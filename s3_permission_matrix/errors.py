"""Normalized storage errors.

Every failure the storage client sees is re-raised as one of a small closed
set of exceptions, each tagged with an ``ErrorKind``. Callers match on the
kind instead of searching error messages.

Kinds:
- ACCESS_DENIED: local pre-check refused the call, or the service said 403
- NOT_FOUND: the object or bucket does not exist
- QUOTA_EXCEEDED: the account ran out of balance/quota (infrastructure)
- OPERATION_FAILED: anything else, with the original message preserved
"""

from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from s3_permission_matrix.models import ErrorKind, OperationOutcome

NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404", "NoSuchUpload"}
BUCKET_NOT_FOUND_CODES = {"NoSuchBucket"}
ACCESS_DENIED_CODES = {"AccessDenied", "403", "Forbidden", "AllAccessDisabled"}
# Billing and account faults, checked before any other classification
QUOTA_CODES = {"QuotaExceeded", "InsufficientBalance", "PaymentRequired", "AccountProblem", "402"}
QUOTA_MESSAGES = ("not enough balance", "insufficient balance", "quota exceeded")

# Error codes and transport failures worth retrying at the caller level
TRANSIENT_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "InternalError",
    "ServiceUnavailable",
    "500",
    "502",
    "503",
    "504",
}
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}
TRANSPORT_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


class StorageError(Exception):
    """Base class for normalized storage errors."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str, denied_locally: bool = False, transient: bool = False):
        super().__init__(message)
        self.denied_locally = denied_locally
        self.transient = transient

    def to_outcome(self) -> OperationOutcome:
        """Convert the error into a failed ``OperationOutcome``."""
        return OperationOutcome(
            succeeded=False,
            error_kind=self.kind,
            detail=str(self),
            denied_locally=self.denied_locally,
            transient=self.transient,
        )


class AccessDeniedError(StorageError):
    """The operation is not permitted, locally or by the service."""

    kind = ErrorKind.ACCESS_DENIED


class NotFoundError(StorageError):
    """The object or bucket does not exist."""

    kind = ErrorKind.NOT_FOUND


class OperationFailedError(StorageError):
    """Any other remote failure."""

    kind = ErrorKind.OPERATION_FAILED


class QuotaExceededError(StorageError):
    """The account cannot perform the operation for billing/quota reasons."""

    kind = ErrorKind.QUOTA_EXCEEDED


def _client_error_details(error: ClientError) -> tuple[str, str, Optional[int]]:
    response = getattr(error, "response", None) or {}
    err = response.get("Error", {})
    code = str(err.get("Code", ""))
    message = err.get("Message") or str(error)
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code, message, status


def is_transient(error: Exception) -> bool:
    """Whether an SDK error is a transient transport or server problem."""
    if isinstance(error, TRANSPORT_ERRORS):
        return True
    if isinstance(error, ClientError):
        code, _, status = _client_error_details(error)
        return code in TRANSIENT_CODES or status in TRANSIENT_STATUS_CODES
    return False


def _is_quota(code: str, message: str) -> bool:
    return code in QUOTA_CODES or any(m in message.lower() for m in QUOTA_MESSAGES)


def classify_error(error: Exception, operation: str, key: str = "", bucket: str = "") -> StorageError:
    """Map an SDK exception onto the normalized taxonomy.

    Quota and account problems win over every other classification, since
    services often report them with a 403.

    Args:
        error: The exception raised by the SDK.
        operation: Operation name used as message prefix (e.g. "Upload").
        key: Object key involved, if any.
        bucket: Bucket involved, named in bucket-level errors.

    Returns:
        A ``StorageError`` subclass instance ready to be raised.
    """
    if isinstance(error, StorageError):
        return error

    # boto3's transfer layer wraps the service error it received
    cause = error.__cause__ or error.__context__
    if not isinstance(error, ClientError) and isinstance(cause, ClientError):
        error = cause

    if isinstance(error, ClientError):
        code, message, status = _client_error_details(error)

        if _is_quota(code, message):
            return QuotaExceededError(f"{operation} failed: {message}")

        if code in BUCKET_NOT_FOUND_CODES:
            subject = f"Bucket '{bucket}'" if bucket else "Bucket"
            return NotFoundError(f"{subject} not found.")

        if code in NOT_FOUND_CODES or status == 404:
            subject = f"Object '{key}'" if key else "Object"
            return NotFoundError(f"{subject} not found.")

        if code in ACCESS_DENIED_CODES or status == 403:
            return AccessDeniedError(f"Access denied: {message}")

        return OperationFailedError(
            f"{operation} failed: {message}",
            transient=is_transient(error),
        )

    message = str(error)
    if _is_quota("", message):
        return QuotaExceededError(f"{operation} failed: {message}")

    return OperationFailedError(
        f"{operation} failed: {message}",
        transient=is_transient(error),
    )
