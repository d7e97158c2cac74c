"""Data models for the S3 permission matrix tester."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Permission(Enum):
    """A single access right a credential can hold on a bucket."""

    READ = "read"
    WRITE = "write"
    LIST = "list"
    DELETE = "delete"


class BucketTier(Enum):
    """Access tier of a configured bucket credential."""

    PUBLIC = "public"
    PRIVATE = "private"
    LIMITED = "limited"


class ErrorKind(Enum):
    """Normalized error kinds produced by the storage client."""

    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    OPERATION_FAILED = "operation_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"


class ResultStatus(Enum):
    """Status of a test case or suite."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    ERROR = "error"


class FailureKind(Enum):
    """Why a verdict failed. Reports keep these apart."""

    PERMISSION_VIOLATION = "permission_violation"
    SERVICE_MALFUNCTION = "service_malfunction"
    VERIFICATION_FAILED = "verification_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class VerificationStatus(Enum):
    """Result of checking an operation's post-condition."""

    VERIFIED = "verified"
    FAILED = "failed"
    AMBIGUOUS = "ambiguous"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class Credentials:
    """Access key pair for one credential tier."""

    access_key_id: str
    secret_access_key: str

    def __repr__(self) -> str:
        return f"Credentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


@dataclass(frozen=True)
class BucketIdentity:
    """Where a bucket lives and which credentials reach it."""

    name: str
    region: str
    endpoint: Optional[str]
    credentials: Credentials


@dataclass(frozen=True)
class PermissionSet:
    """Permissions a client declares it holds on a bucket.

    This is the client-side claim; the harness proves that the remote
    service enforces the same thing.
    """

    read: bool = False
    write: bool = False
    list: bool = False
    delete: bool = False

    @classmethod
    def full(cls) -> "PermissionSet":
        return cls(read=True, write=True, list=True, delete=True)

    @classmethod
    def from_names(cls, names) -> "PermissionSet":
        """Build a set from permission names such as ``["read", "list"]``.

        Raises:
            ValueError: If a name is not a known permission.
        """
        flags = {}
        for name in names:
            flags[Permission(name.strip().lower()).value] = True
        return cls(**flags)

    def granted(self) -> frozenset:
        """Return the granted permissions as a frozenset of ``Permission``."""
        return frozenset(p for p in Permission if getattr(self, p.value))

    def allows(self, *permissions: Permission) -> bool:
        return all(getattr(self, p.value) for p in permissions)

    def describe(self) -> str:
        """Comma-separated granted permissions, in canonical order."""
        names = [p.value for p in Permission if getattr(self, p.value)]
        return ",".join(names) if names else "none"

    def to_dict(self) -> dict[str, bool]:
        return {p.value: getattr(self, p.value) for p in Permission}


@dataclass(frozen=True)
class BucketProfile:
    """A named credential tier: one bucket, one permission set.

    ``admin_identity`` is the bucket owner's credential pair. It is only used
    to seed fixtures and to prove that denied operations left no trace.
    """

    name: str
    tier: BucketTier
    identity: BucketIdentity
    permissions: PermissionSet
    admin_identity: Optional[BucketIdentity] = None


@dataclass(frozen=True)
class OperationOutcome:
    """What happened when an operation was attempted."""

    succeeded: bool
    error_kind: Optional[ErrorKind] = None
    detail: str = ""
    denied_locally: bool = False
    transient: bool = False

    @classmethod
    def success(cls, detail: str = "") -> "OperationOutcome":
        return cls(succeeded=True, detail=detail)

    def label(self) -> str:
        """Short text form used in reports: ``success`` or the error kind."""
        if self.succeeded:
            return "success"
        kind = self.error_kind or ErrorKind.UNKNOWN
        return kind.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "detail": self.detail,
            "denied_locally": self.denied_locally,
        }


@dataclass(frozen=True)
class Verification:
    """Outcome of a post-condition check."""

    status: VerificationStatus
    detail: str = ""

    @classmethod
    def not_applicable(cls) -> "Verification":
        return cls(VerificationStatus.NOT_APPLICABLE)


@dataclass
class TestVerdict:
    """Result of a single matrix case."""

    __test__ = False

    test_id: str
    description: str
    operation: str
    profile: str
    expected_outcome: str
    actual_outcome: OperationOutcome
    passed: bool
    status: ResultStatus
    failure_kind: Optional[FailureKind] = None
    unverifiable: bool = False
    duration_ms: float = 0.0
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.test_id,
            "description": self.description,
            "operation": self.operation,
            "profile": self.profile,
            "status": self.status.value,
            "expected": self.expected_outcome,
            "actual": self.actual_outcome.label(),
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "unverifiable": self.unverifiable,
            "duration_ms": round(self.duration_ms, 1),
            "message": self.message,
        }


@dataclass
class SuiteResult:
    """Aggregated results for one operation suite."""

    suite: str
    status: ResultStatus
    verdicts: list[TestVerdict] = field(default_factory=list)
    duration_seconds: float = 0.0
    error_message: Optional[str] = None

    def count(self, status: ResultStatus) -> int:
        return sum(1 for v in self.verdicts if v.status == status)

    def count_failures(self, kind: FailureKind) -> int:
        return sum(1 for v in self.verdicts if v.failure_kind == kind)

    @property
    def unverifiable_count(self) -> int:
        return sum(1 for v in self.verdicts if v.unverifiable)
