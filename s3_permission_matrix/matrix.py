"""Permission matrix: named profiles and the cases built from them.

Every suite runs the same operation once per configured profile. Which of
those runs must succeed is not stored here; the reconciler derives it from
the operation table.
"""

from dataclasses import dataclass

from s3_permission_matrix.models import BucketProfile, PermissionSet
from s3_permission_matrix.operations import OPERATION_TITLES, Operation

# Named profiles in the order cases are numbered
PERMISSION_PROFILES: dict[str, PermissionSet] = {
    "PUBLIC": PermissionSet.full(),
    "PRIVATE": PermissionSet.full(),
    "READ": PermissionSet(read=True),
    "WRITE": PermissionSet(write=True),
    "LIST": PermissionSet(list=True),
    "DELETE": PermissionSet(delete=True),
    "READ_WRITE": PermissionSet(read=True, write=True),
    "READ_DELETE": PermissionSet(read=True, delete=True),
    "LIST_WRITE": PermissionSet(write=True, list=True),
    "LIST_READ": PermissionSet(read=True, list=True),
    "WRITE_DELETE": PermissionSet(write=True, delete=True),
    "LIST_DELETE": PermissionSet(list=True, delete=True),
    "READ_WRITE_LIST": PermissionSet(read=True, write=True, list=True),
    "READ_WRITE_DELETE": PermissionSet(read=True, write=True, delete=True),
    "READ_LIST_DELETE": PermissionSet(read=True, list=True, delete=True),
    "WRITE_LIST_DELETE": PermissionSet(write=True, list=True, delete=True),
    "READ_WRITE_LIST_DELETE": PermissionSet.full(),
}


@dataclass(frozen=True)
class MatrixCase:
    """One (operation, profile) pair to run."""

    case_id: str
    description: str
    operation: Operation
    profile: BucketProfile


def describe_profile(profile: BucketProfile) -> str:
    """Describe a profile for case titles, e.g. ``read, write permissions``."""
    if profile.name in ("PUBLIC", "PRIVATE"):
        return f"{profile.name.lower()} bucket with all permissions"
    perms = profile.permissions.describe().replace(",", ", ")
    return f"{perms} permissions"


def order_profiles(profiles: dict[str, BucketProfile]) -> list[BucketProfile]:
    """Order profiles as in ``PERMISSION_PROFILES``, custom profiles last."""
    known = [profiles[name] for name in PERMISSION_PROFILES if name in profiles]
    custom = [p for name, p in profiles.items() if name not in PERMISSION_PROFILES]
    return known + custom


def build_cases(
    operation: Operation,
    profiles: dict[str, BucketProfile],
) -> list[MatrixCase]:
    """Build the cases of one operation suite.

    Args:
        operation: The operation every case exercises.
        profiles: Configured profiles by name.

    Returns:
        Cases numbered TC01, TC02, ... in profile order.
    """
    title = OPERATION_TITLES[operation]
    cases = []
    for index, profile in enumerate(order_profiles(profiles), start=1):
        cases.append(
            MatrixCase(
                case_id=f"TC{index:02d}",
                description=f"{title} with {describe_profile(profile)}",
                operation=operation,
                profile=profile,
            )
        )
    return cases
