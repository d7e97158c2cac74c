"""Tests for the expectation reconciler."""

import pytest

from s3_permission_matrix.matrix import build_cases
from s3_permission_matrix.models import (
    BucketTier,
    ErrorKind,
    FailureKind,
    OperationOutcome,
    PermissionSet,
    ResultStatus,
    Verification,
    VerificationStatus,
)
from s3_permission_matrix.operations import Operation
from s3_permission_matrix.reconciler import (
    combine,
    errored,
    expected_success,
    reconcile,
    skipped,
    verification_from_outcome,
)

SUCCESS = OperationOutcome.success()
DENIED = OperationOutcome(False, ErrorKind.ACCESS_DENIED, "Access denied: write permission required", denied_locally=True)
NOT_FOUND = OperationOutcome(False, ErrorKind.NOT_FOUND, "Object 'k' not found.")
FAILED = OperationOutcome(False, ErrorKind.OPERATION_FAILED, "Upload failed: boom")
QUOTA = OperationOutcome(False, ErrorKind.QUOTA_EXCEEDED, "Upload failed: Not enough balance")

VERIFIED = Verification(VerificationStatus.VERIFIED)
AMBIGUOUS = Verification(VerificationStatus.AMBIGUOUS, "Could not verify: Access denied")
BROKEN = Verification(VerificationStatus.FAILED, "content does not match")


@pytest.fixture
def case_for(make_profile):
    def _case(operation, profile_name):
        tier = BucketTier.PUBLIC if profile_name == "PUBLIC" else BucketTier.LIMITED
        profiles = {profile_name: make_profile(profile_name, tier=tier)}
        return build_cases(operation, profiles)[0]

    return _case


class TestExpectedSuccess:
    @pytest.mark.parametrize(
        "operation, permissions, expected",
        [
            (Operation.UPLOAD, PermissionSet(write=True), True),
            (Operation.UPLOAD, PermissionSet(read=True), False),
            (Operation.DOWNLOAD, PermissionSet(read=True, list=True), True),
            (Operation.DELETE_FOLDER, PermissionSet(delete=True), False),
            (Operation.DELETE_FOLDER, PermissionSet(delete=True, list=True), True),
            (Operation.MOVE, PermissionSet(write=True), False),
            (Operation.MOVE, PermissionSet(write=True, delete=True), True),
            (Operation.CLEAN_BUCKET, PermissionSet.full(), True),
        ],
    )
    def test_subset_rule(self, operation, permissions, expected):
        assert expected_success(operation, permissions, BucketTier.LIMITED) is expected

    def test_anonymous_read_depends_on_tier(self):
        full = PermissionSet.full()
        assert expected_success(Operation.ANONYMOUS_READ, full, BucketTier.PUBLIC) is True
        assert expected_success(Operation.ANONYMOUS_READ, full, BucketTier.PRIVATE) is False
        assert expected_success(Operation.ANONYMOUS_READ, PermissionSet(), BucketTier.LIMITED) is False


class TestReconcile:
    def test_allowed_and_verified(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), SUCCESS, VERIFIED, 5.0)

        assert verdict.status is ResultStatus.PASS
        assert verdict.passed is True
        assert verdict.expected_outcome == "success"
        assert verdict.unverifiable is False
        assert verdict.duration_ms == 5.0

    def test_allowed_without_verification(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), SUCCESS)
        assert verdict.status is ResultStatus.PASS

    def test_allowed_but_unverifiable(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), SUCCESS, AMBIGUOUS)

        assert verdict.status is ResultStatus.PASS
        assert verdict.unverifiable is True
        assert "Could not verify" in verdict.message

    def test_allowed_but_effect_missing(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), SUCCESS, BROKEN)

        assert verdict.status is ResultStatus.FAIL
        assert verdict.failure_kind is FailureKind.VERIFICATION_FAILED

    def test_allowed_but_failed(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), FAILED)

        assert verdict.status is ResultStatus.FAIL
        assert verdict.failure_kind is FailureKind.SERVICE_MALFUNCTION

    def test_allowed_but_denied_is_malfunction(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "WRITE"), DENIED)

        assert verdict.failure_kind is FailureKind.SERVICE_MALFUNCTION
        assert "access_denied" in verdict.message

    def test_denied_as_expected(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "READ"), DENIED, VERIFIED)

        assert verdict.status is ResultStatus.PASS
        assert verdict.expected_outcome == "access_denied"

    def test_denied_but_left_a_trace(self, case_for):
        verdict = reconcile(case_for(Operation.UPLOAD, "READ"), DENIED, BROKEN)

        assert verdict.status is ResultStatus.FAIL
        assert verdict.failure_kind is FailureKind.PERMISSION_VIOLATION

    def test_succeeded_without_permission(self, case_for):
        verdict = reconcile(case_for(Operation.DELETE, "READ_WRITE"), SUCCESS, VERIFIED)

        assert verdict.status is ResultStatus.FAIL
        assert verdict.failure_kind is FailureKind.PERMISSION_VIOLATION

    def test_wrong_error_when_denial_expected(self, case_for):
        verdict = reconcile(case_for(Operation.DELETE, "READ"), NOT_FOUND)

        assert verdict.status is ResultStatus.FAIL
        assert verdict.failure_kind is FailureKind.UNEXPECTED_ERROR

    @pytest.mark.parametrize("profile", ["WRITE", "READ"])
    def test_quota_is_skipped(self, case_for, profile):
        verdict = reconcile(case_for(Operation.UPLOAD, profile), QUOTA)

        assert verdict.status is ResultStatus.SKIP
        assert verdict.passed is False
        assert "Not enough balance" in verdict.message

    def test_anonymous_read_on_public_bucket(self, case_for):
        verdict = reconcile(case_for(Operation.ANONYMOUS_READ, "PUBLIC"), SUCCESS, VERIFIED)
        assert verdict.status is ResultStatus.PASS

    def test_anonymous_read_on_limited_bucket(self, case_for):
        verdict = reconcile(case_for(Operation.ANONYMOUS_READ, "READ"), SUCCESS, VERIFIED)
        assert verdict.failure_kind is FailureKind.PERMISSION_VIOLATION


class TestVerificationFromOutcome:
    def test_success(self):
        assert verification_from_outcome(SUCCESS).status is VerificationStatus.VERIFIED

    def test_not_found_defaults_to_failed(self):
        assert verification_from_outcome(NOT_FOUND).status is VerificationStatus.FAILED

    def test_not_found_as_expected_absence(self):
        verification = verification_from_outcome(NOT_FOUND, on_not_found=VerificationStatus.VERIFIED)
        assert verification.status is VerificationStatus.VERIFIED

    def test_denied_probe_is_ambiguous(self):
        assert verification_from_outcome(DENIED).status is VerificationStatus.AMBIGUOUS


class TestCombine:
    def test_failed_wins(self):
        assert combine(VERIFIED, AMBIGUOUS, BROKEN) is BROKEN

    def test_ambiguous_over_verified(self):
        assert combine(VERIFIED, AMBIGUOUS) is AMBIGUOUS

    def test_all_verified(self):
        assert combine(VERIFIED, VERIFIED).status is VerificationStatus.VERIFIED

    def test_empty(self):
        assert combine().status is VerificationStatus.NOT_APPLICABLE


class TestSpecialVerdicts:
    def test_skipped(self, case_for):
        verdict = skipped(case_for(Operation.DOWNLOAD, "READ"), "no fixture")

        assert verdict.status is ResultStatus.SKIP
        assert verdict.message == "Skipped: no fixture"

    def test_errored(self, case_for):
        verdict = errored(case_for(Operation.DOWNLOAD, "READ"), RuntimeError("kaboom"))

        assert verdict.status is ResultStatus.ERROR
        assert verdict.failure_kind is FailureKind.UNEXPECTED_ERROR
        assert verdict.message == "RuntimeError: kaboom"
