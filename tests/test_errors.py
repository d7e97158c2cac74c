"""Tests for error normalization."""

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from s3_permission_matrix.errors import (
    AccessDeniedError,
    NotFoundError,
    OperationFailedError,
    QuotaExceededError,
    classify_error,
    is_transient,
)
from s3_permission_matrix.models import ErrorKind


def client_error(code: str, message: str = "message", status: int = 400, operation: str = "PutObject") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class TestClassifyError:
    @pytest.mark.parametrize("code, status", [("NoSuchKey", 404), ("404", 404), ("Weird", 404)])
    def test_not_found(self, code, status):
        error = classify_error(client_error(code, status=status), "Download", "a/b.txt")

        assert isinstance(error, NotFoundError)
        assert error.kind is ErrorKind.NOT_FOUND
        assert str(error) == "Object 'a/b.txt' not found."

    @pytest.mark.parametrize("code", ["AccessDenied", "403", "Forbidden"])
    def test_access_denied(self, code):
        error = classify_error(client_error(code, "Access Denied", 403), "Upload", "k")

        assert isinstance(error, AccessDeniedError)
        assert str(error) == "Access denied: Access Denied"
        assert error.denied_locally is False

    def test_status_code_alone_is_enough(self):
        error = classify_error(client_error("Weird", status=403), "Upload")
        assert isinstance(error, AccessDeniedError)

    def test_missing_bucket_names_the_bucket(self):
        error = classify_error(client_error("NoSuchBucket", status=404), "Upload", "k.txt", "gone-bucket")

        assert isinstance(error, NotFoundError)
        assert str(error) == "Bucket 'gone-bucket' not found."

    def test_quota_by_message(self):
        error = classify_error(client_error("InvalidRequest", "Not enough balance"), "Upload")
        assert isinstance(error, QuotaExceededError)
        assert error.kind is ErrorKind.QUOTA_EXCEEDED

    @pytest.mark.parametrize("code", ["AccessDenied", "403"])
    def test_balance_message_wins_over_access_denied(self, code):
        error = classify_error(client_error(code, "Not enough balance", 403), "Upload", "k")

        assert isinstance(error, QuotaExceededError)
        assert error.kind is ErrorKind.QUOTA_EXCEEDED
        assert str(error) == "Upload failed: Not enough balance"

    def test_account_problem_is_quota(self):
        error = classify_error(client_error("AccountProblem", "There is a problem with your account", 403), "Upload")

        assert isinstance(error, QuotaExceededError)
        assert error.kind is ErrorKind.QUOTA_EXCEEDED

    def test_balance_message_wins_over_not_found(self):
        error = classify_error(client_error("NoSuchKey", "Insufficient balance", 404), "Download", "k")
        assert isinstance(error, QuotaExceededError)

    def test_other_client_error(self):
        error = classify_error(client_error("InvalidArgument", "bad header"), "Upload", "k")

        assert isinstance(error, OperationFailedError)
        assert str(error) == "Upload failed: bad header"
        assert error.transient is False

    def test_server_error_is_transient(self):
        error = classify_error(client_error("InternalError", "boom", 500), "Upload")
        assert isinstance(error, OperationFailedError)
        assert error.transient is True

    def test_transport_error_is_transient(self):
        error = classify_error(EndpointConnectionError(endpoint_url="https://s3.invalid"), "List")
        assert isinstance(error, OperationFailedError)
        assert error.transient is True

    def test_wrapped_transfer_error_uses_cause(self):
        try:
            try:
                raise client_error("AccessDenied", "denied", 403)
            except ClientError:
                raise S3UploadFailedError("Failed to upload")
        except S3UploadFailedError as e:
            wrapped = e

        assert isinstance(classify_error(wrapped, "Upload"), AccessDeniedError)

    def test_storage_error_passes_through(self):
        original = NotFoundError("gone")
        assert classify_error(original, "Delete") is original


class TestIsTransient:
    def test_throttling(self):
        assert is_transient(client_error("SlowDown", status=503))

    def test_rate_limit_status(self):
        assert is_transient(client_error("TooManyRequests", status=429))

    def test_read_timeout(self):
        assert is_transient(ReadTimeoutError(endpoint_url="https://s3.invalid"))

    def test_access_denied_is_not_transient(self):
        assert not is_transient(client_error("AccessDenied", status=403))

    def test_plain_exception_is_not_transient(self):
        assert not is_transient(ValueError("nope"))


class TestToOutcome:
    def test_carries_kind_and_flags(self):
        outcome = AccessDeniedError("Access denied: write permission required", denied_locally=True).to_outcome()

        assert outcome.succeeded is False
        assert outcome.error_kind is ErrorKind.ACCESS_DENIED
        assert outcome.denied_locally is True
        assert outcome.detail == "Access denied: write permission required"
