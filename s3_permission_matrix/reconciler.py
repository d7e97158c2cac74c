"""Expectation reconciler.

Compares what a case did against what its profile's permissions say it
should have done, and turns the comparison into a ``TestVerdict``. This is
the only place where errors become verdicts.
"""

from typing import Optional

from s3_permission_matrix.matrix import MatrixCase
from s3_permission_matrix.models import (
    BucketTier,
    ErrorKind,
    FailureKind,
    OperationOutcome,
    PermissionSet,
    ResultStatus,
    TestVerdict,
    Verification,
    VerificationStatus,
)
from s3_permission_matrix.operations import Operation, required_permissions

EXPECT_SUCCESS = "success"
EXPECT_DENIED = "access_denied"


def expected_success(operation: Operation, permissions: PermissionSet, tier: BucketTier) -> bool:
    """Whether ``operation`` must succeed for a credential.

    Anonymous reads ignore the credential and depend on the bucket tier.
    """
    if operation is Operation.ANONYMOUS_READ:
        return tier is BucketTier.PUBLIC
    return required_permissions(operation) <= permissions.granted()


def verification_from_outcome(
    outcome: OperationOutcome,
    on_success: VerificationStatus = VerificationStatus.VERIFIED,
    on_not_found: VerificationStatus = VerificationStatus.FAILED,
    detail: str = "",
) -> Verification:
    """Turn the outcome of a verification probe into a ``Verification``.

    A probe that was itself denied (or failed for another reason) proves
    nothing either way, so it yields AMBIGUOUS.
    """
    if outcome.succeeded:
        return Verification(on_success, detail)
    if outcome.error_kind is ErrorKind.NOT_FOUND:
        return Verification(on_not_found, detail or outcome.detail)
    return Verification(VerificationStatus.AMBIGUOUS, f"Could not verify: {outcome.detail}")


def combine(*verifications: Verification) -> Verification:
    """Merge several checks: any FAILED wins, then any AMBIGUOUS."""
    for status in (VerificationStatus.FAILED, VerificationStatus.AMBIGUOUS):
        for verification in verifications:
            if verification.status is status:
                return verification
    for verification in verifications:
        if verification.status is VerificationStatus.VERIFIED:
            return verification
    return Verification.not_applicable()


def _verdict(
    case: MatrixCase,
    expected: str,
    outcome: OperationOutcome,
    status: ResultStatus,
    duration_ms: float,
    failure_kind: Optional[FailureKind] = None,
    message: Optional[str] = None,
    unverifiable: bool = False,
) -> TestVerdict:
    return TestVerdict(
        test_id=case.case_id,
        description=case.description,
        operation=case.operation.value,
        profile=case.profile.name,
        expected_outcome=expected,
        actual_outcome=outcome,
        passed=status == ResultStatus.PASS,
        status=status,
        failure_kind=failure_kind,
        unverifiable=unverifiable,
        duration_ms=duration_ms,
        message=message,
    )


def reconcile(
    case: MatrixCase,
    outcome: OperationOutcome,
    verification: Optional[Verification] = None,
    duration_ms: float = 0.0,
) -> TestVerdict:
    """Decide the verdict of one case.

    Args:
        case: The case that ran.
        outcome: What the operation under test did.
        verification: Post-condition check. For successful operations this
            checks the effect; for denied ones it checks that nothing changed.
        duration_ms: Wall time of the case.

    Returns:
        The case verdict.
    """
    verification = verification or Verification.not_applicable()
    profile = case.profile
    should_succeed = expected_success(case.operation, profile.permissions, profile.tier)
    expected = EXPECT_SUCCESS if should_succeed else EXPECT_DENIED

    def verdict(status, failure_kind=None, message=None, unverifiable=False):
        return _verdict(case, expected, outcome, status, duration_ms, failure_kind, message, unverifiable)

    if outcome.error_kind is ErrorKind.QUOTA_EXCEEDED:
        return verdict(ResultStatus.SKIP, message=f"Skipped: {outcome.detail}")

    if should_succeed:
        if not outcome.succeeded:
            return verdict(
                ResultStatus.FAIL,
                FailureKind.SERVICE_MALFUNCTION,
                f"Expected success but got {outcome.label()}: {outcome.detail}",
            )
        if verification.status is VerificationStatus.FAILED:
            return verdict(
                ResultStatus.FAIL,
                FailureKind.VERIFICATION_FAILED,
                f"Operation succeeded but verification failed: {verification.detail}",
            )
        if verification.status is VerificationStatus.AMBIGUOUS:
            return verdict(ResultStatus.PASS, message=verification.detail, unverifiable=True)
        return verdict(ResultStatus.PASS)

    if outcome.succeeded:
        return verdict(
            ResultStatus.FAIL,
            FailureKind.PERMISSION_VIOLATION,
            "Operation succeeded without the required permissions",
        )
    if outcome.error_kind is ErrorKind.ACCESS_DENIED:
        if verification.status is VerificationStatus.FAILED:
            return verdict(
                ResultStatus.FAIL,
                FailureKind.PERMISSION_VIOLATION,
                f"Access was denied but the operation left a trace: {verification.detail}",
            )
        return verdict(ResultStatus.PASS)
    return verdict(
        ResultStatus.FAIL,
        FailureKind.UNEXPECTED_ERROR,
        f"Expected access denied but got {outcome.label()}: {outcome.detail}",
    )


def skipped(case: MatrixCase, reason: str, duration_ms: float = 0.0) -> TestVerdict:
    """Verdict for a case that could not run, e.g. no fixture could be seeded."""
    profile = case.profile
    should_succeed = expected_success(case.operation, profile.permissions, profile.tier)
    return _verdict(
        case,
        EXPECT_SUCCESS if should_succeed else EXPECT_DENIED,
        OperationOutcome(succeeded=False, error_kind=ErrorKind.UNKNOWN, detail=reason),
        ResultStatus.SKIP,
        duration_ms,
        message=f"Skipped: {reason}",
    )


def errored(case: MatrixCase, error: Exception, duration_ms: float = 0.0) -> TestVerdict:
    """Verdict for a case that raised an unexpected exception."""
    profile = case.profile
    should_succeed = expected_success(case.operation, profile.permissions, profile.tier)
    return _verdict(
        case,
        EXPECT_SUCCESS if should_succeed else EXPECT_DENIED,
        OperationOutcome(succeeded=False, error_kind=ErrorKind.UNKNOWN, detail=str(error)),
        ResultStatus.ERROR,
        duration_ms,
        failure_kind=FailureKind.UNEXPECTED_ERROR,
        message=f"{type(error).__name__}: {error}",
    )
