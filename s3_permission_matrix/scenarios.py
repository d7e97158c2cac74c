"""Operation scenarios.

Each matrix case runs one scenario: a pipeline of named steps

    setup -> act -> verify -> cleanup

``setup`` seeds whatever fixture the operation needs, ``act`` performs the
operation through the subject handle (the profile's own credentials) and
returns its outcome, ``verify`` checks the post-condition, and ``cleanup``
removes every key the case touched. Cleanup always runs.

Fixtures are seeded with the admin handle when the profile has owner
credentials, otherwise with the subject handle if it can write. When neither
is possible the case is skipped. For denied operations the admin handle
checks that the bucket was left unchanged.
"""

import logging
import os
import shutil
import tempfile
import time
from typing import Any, Optional

from s3_permission_matrix import public_access
from s3_permission_matrix.config import Settings
from s3_permission_matrix.fixtures import (
    case_key_base,
    content_digest,
    create_test_file,
    file_digest,
    fixture_content,
)
from s3_permission_matrix.matrix import MatrixCase
from s3_permission_matrix.models import (
    ErrorKind,
    OperationOutcome,
    Permission,
    TestVerdict,
    Verification,
    VerificationStatus,
)
from s3_permission_matrix.operations import Operation
from s3_permission_matrix.reconciler import combine, reconcile, skipped, verification_from_outcome
from s3_permission_matrix.storage import PermissionGatedStorage, attempt, folder_key

logger = logging.getLogger(__name__)


class SkipCase(Exception):
    """Raised by a setup step when the case cannot run."""


class Scenario:
    """Base scenario. Subclasses implement ``act`` and usually ``setup``,
    ``verify`` and ``verify_unchanged``.

    Args:
        case: The matrix case.
        subject: Handle built from the profile's credentials.
        admin: Owner handle, or None.
        settings: Service settings.
        run_id: Identifier shared by every case of the run.
    """

    operation: Operation

    def __init__(
        self,
        case: MatrixCase,
        subject: PermissionGatedStorage,
        admin: Optional[PermissionGatedStorage],
        settings: Settings,
        run_id: str,
    ):
        self.case = case
        self.subject = subject
        self.admin = admin
        self.settings = settings
        self.key_base = case_key_base(settings, run_id, case.operation, case.case_id)
        self.workdir: Optional[str] = None
        self.value: Any = None
        self._touched: list[str] = []

    # Handles

    @property
    def seeder(self) -> Optional[PermissionGatedStorage]:
        if self.admin is not None:
            return self.admin
        if self.subject.has_permission(Permission.WRITE):
            return self.subject
        return None

    @property
    def probe(self) -> PermissionGatedStorage:
        """Handle used to check the effect of a successful operation."""
        return self.admin if self.admin is not None else self.subject

    @property
    def cleaner(self) -> Optional[PermissionGatedStorage]:
        if self.admin is not None:
            return self.admin
        if self.subject.has_permission(Permission.DELETE):
            return self.subject
        return None

    # Helpers

    def touch(self, key: str) -> str:
        """Register a key for cleanup."""
        if key not in self._touched:
            self._touched.append(key)
        return key

    def seed(self, key: str, content: bytes, metadata: Optional[dict] = None) -> None:
        seeder = self.seeder
        if seeder is None:
            raise SkipCase("no credential can seed the fixture (no admin credentials, no write permission)")

        self.touch(key)
        outcome, _ = attempt(seeder.upload_file, key, content, metadata=metadata)
        if not outcome.succeeded:
            raise SkipCase(f"could not seed fixture {key}: {outcome.detail}")

    def check_present(self, key: str, handle: Optional[PermissionGatedStorage] = None) -> Verification:
        outcome, _ = attempt((handle or self.probe).get_object_info, key)
        return verification_from_outcome(outcome, detail=f"{key} is missing")

    def check_absent(self, key: str, handle: Optional[PermissionGatedStorage] = None) -> Verification:
        outcome, _ = attempt((handle or self.probe).get_object_info, key)
        if outcome.succeeded:
            return Verification(VerificationStatus.FAILED, f"{key} still exists")
        return verification_from_outcome(
            outcome,
            on_not_found=VerificationStatus.VERIFIED,
        )

    def check_content(
        self,
        key: str,
        expected: bytes,
        handle: Optional[PermissionGatedStorage] = None,
    ) -> Verification:
        outcome, content = attempt((handle or self.probe).get_object_content, key)
        if outcome.succeeded and content_digest(content) != content_digest(expected):
            return Verification(VerificationStatus.FAILED, f"{key} content does not match")
        return verification_from_outcome(outcome, detail=f"{key} is missing")

    # Steps

    def setup(self) -> None:
        pass

    def act(self) -> OperationOutcome:
        raise NotImplementedError

    def verify(self) -> Verification:
        return Verification.not_applicable()

    def verify_unchanged(self) -> Verification:
        """Check that a denied operation left no trace.

        Read-only operations have nothing to check.
        """
        return Verification.not_applicable()

    def cleanup(self) -> None:
        cleaner = self.cleaner
        if self._touched and cleaner is None:
            logger.warning(
                "[%s %s] No credential can delete fixtures, leaving %d keys behind",
                self.case.operation.value,
                self.case.case_id,
                len(self._touched),
            )
        elif cleaner is not None:
            for key in reversed(self._touched):
                outcome, _ = attempt(cleaner.delete_object, key)
                if not outcome.succeeded and outcome.error_kind is not ErrorKind.NOT_FOUND:
                    logger.warning("Cleanup of %s failed: %s", key, outcome.detail)

        if self.workdir and os.path.isdir(self.workdir):
            shutil.rmtree(self.workdir, ignore_errors=True)

    def run(self) -> TestVerdict:
        """Run every step and reconcile the outcome."""
        start = time.monotonic()
        self.workdir = tempfile.mkdtemp(prefix=f"s3perm-{self.case.case_id}-")
        try:
            try:
                self.setup()
            except SkipCase as e:
                logger.info("[%s %s] Skipped: %s", self.case.operation.value, self.case.case_id, e)
                return skipped(self.case, str(e), (time.monotonic() - start) * 1000)

            outcome = self.act()

            if outcome.succeeded:
                verification = self.verify()
            elif outcome.error_kind is ErrorKind.ACCESS_DENIED and self.admin is not None:
                verification = self.verify_unchanged()
            else:
                verification = Verification.not_applicable()

            duration_ms = (time.monotonic() - start) * 1000
            return reconcile(self.case, outcome, verification, duration_ms)
        finally:
            self.cleanup()


class CreateFolderScenario(Scenario):
    operation = Operation.CREATE_FOLDER

    def setup(self) -> None:
        self.folder = self.key_base + "-folder"
        self.touch(folder_key(self.folder))

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.create_folder, self.folder)
        return outcome

    def verify(self) -> Verification:
        return self.check_present(folder_key(self.folder))

    def verify_unchanged(self) -> Verification:
        return self.check_absent(folder_key(self.folder), self.admin)


class UploadScenario(Scenario):
    operation = Operation.UPLOAD

    def setup(self) -> None:
        self.key = self.touch(self.key_base + ".txt")
        self.content = fixture_content(self.case.case_id)

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.upload_file, self.key, self.content)
        return outcome

    def verify(self) -> Verification:
        return self.check_content(self.key, self.content)

    def verify_unchanged(self) -> Verification:
        return self.check_absent(self.key, self.admin)


class UploadLargeScenario(Scenario):
    operation = Operation.UPLOAD_LARGE

    def setup(self) -> None:
        self.key = self.touch(self.key_base + ".bin")
        self.size = self.settings.large_file_size
        self.path = create_test_file(os.path.join(self.workdir, "large.bin"), self.size)

    def act(self) -> OperationOutcome:
        with open(self.path, "rb") as f:
            outcome, _ = attempt(self.subject.upload_large_file, self.key, f, self.size)
        return outcome

    def verify(self) -> Verification:
        outcome, info = attempt(self.probe.get_object_info, self.key)
        if outcome.succeeded and info["content_length"] != self.size:
            return Verification(
                VerificationStatus.FAILED,
                f"Expected {self.size} bytes, found {info['content_length']}",
            )
        return verification_from_outcome(outcome, detail=f"{self.key} is missing")

    def verify_unchanged(self) -> Verification:
        return self.check_absent(self.key, self.admin)


class OverwriteScenario(Scenario):
    operation = Operation.OVERWRITE

    def setup(self) -> None:
        self.key = self.key_base + ".txt"
        self.original = fixture_content(self.case.case_id + "-original")
        self.replacement = fixture_content(self.case.case_id + "-replacement")
        self.seed(self.key, self.original)

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.overwrite_file, self.key, self.replacement)
        return outcome

    def verify(self) -> Verification:
        return self.check_content(self.key, self.replacement)

    def verify_unchanged(self) -> Verification:
        return self.check_content(self.key, self.original, self.admin)


class _SeededReadScenario(Scenario):
    """Read-only operation against one seeded object."""

    def setup(self) -> None:
        self.key = self.key_base + ".txt"
        self.content = fixture_content(self.case.case_id)
        self.seed(self.key, self.content, metadata={"case-id": self.case.case_id})


class DownloadScenario(_SeededReadScenario):
    operation = Operation.DOWNLOAD

    def act(self) -> OperationOutcome:
        self.destination = os.path.join(self.workdir, "download.txt")
        outcome, _ = attempt(self.subject.download_file, self.key, self.destination)
        return outcome

    def verify(self) -> Verification:
        if not os.path.exists(self.destination):
            return Verification(VerificationStatus.FAILED, "Downloaded file was not written")
        if file_digest(self.destination) != content_digest(self.content):
            return Verification(VerificationStatus.FAILED, "Downloaded content does not match")
        return Verification(VerificationStatus.VERIFIED)


class GetContentScenario(_SeededReadScenario):
    operation = Operation.GET_CONTENT

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.get_object_content, self.key)
        return outcome

    def verify(self) -> Verification:
        if self.value != self.content:
            return Verification(VerificationStatus.FAILED, "Returned content does not match")
        return Verification(VerificationStatus.VERIFIED)


class GetInfoScenario(_SeededReadScenario):
    operation = Operation.GET_INFO

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.get_object_info, self.key)
        return outcome

    def verify(self) -> Verification:
        length = self.value.get("content_length")
        if length != len(self.content):
            return Verification(
                VerificationStatus.FAILED,
                f"Expected {len(self.content)} bytes, info reports {length}",
            )
        return Verification(VerificationStatus.VERIFIED)


class GetMetadataScenario(_SeededReadScenario):
    operation = Operation.GET_METADATA

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.get_object_metadata, self.key)
        return outcome

    def verify(self) -> Verification:
        if self.value.get("case-id") != self.case.case_id:
            return Verification(VerificationStatus.FAILED, f"Unexpected metadata: {self.value}")
        return Verification(VerificationStatus.VERIFIED)


class ListScenario(Scenario):
    operation = Operation.LIST

    def setup(self) -> None:
        self.prefix = self.key_base + "/"
        self.key = self.prefix + "listed.txt"
        self.seed(self.key, fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.list_objects, self.prefix)
        return outcome

    def verify(self) -> Verification:
        keys = [obj["Key"] for obj in self.value]
        if self.key not in keys:
            return Verification(VerificationStatus.FAILED, f"{self.key} not in listing")
        return Verification(VerificationStatus.VERIFIED)


class CheckFolderScenario(Scenario):
    operation = Operation.CHECK_FOLDER

    def setup(self) -> None:
        self.folder = self.key_base
        self.seed(folder_key(self.folder) + "marker.txt", fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.check_folder_exists, self.folder)
        return outcome

    def verify(self) -> Verification:
        if self.value is not True:
            return Verification(VerificationStatus.FAILED, "Seeded folder reported missing")
        return Verification(VerificationStatus.VERIFIED)


class DeleteScenario(Scenario):
    operation = Operation.DELETE

    def setup(self) -> None:
        self.key = self.key_base + ".txt"
        self.seed(self.key, fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.delete_object, self.key)
        return outcome

    def verify(self) -> Verification:
        return self.check_absent(self.key)

    def verify_unchanged(self) -> Verification:
        return self.check_present(self.key, self.admin)


class DeleteFolderScenario(Scenario):
    operation = Operation.DELETE_FOLDER

    def setup(self) -> None:
        self.folder = self.key_base
        self.keys = [folder_key(self.folder) + name for name in ("a.txt", "b.txt")]
        for key in self.keys:
            self.seed(key, fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.delete_folder, self.folder)
        return outcome

    def verify(self) -> Verification:
        return combine(*(self.check_absent(key) for key in self.keys))

    def verify_unchanged(self) -> Verification:
        return combine(*(self.check_present(key, self.admin) for key in self.keys))


class MoveScenario(Scenario):
    operation = Operation.MOVE

    def setup(self) -> None:
        self.source = self.key_base + "-source.txt"
        self.destination = self.touch(self.key_base + "-destination.txt")
        self.content = fixture_content(self.case.case_id)
        self.seed(self.source, self.content)

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.move_object, self.source, self.destination)
        return outcome

    def verify(self) -> Verification:
        return combine(
            self.check_absent(self.source),
            self.check_content(self.destination, self.content),
        )

    def verify_unchanged(self) -> Verification:
        return combine(
            self.check_present(self.source, self.admin),
            self.check_absent(self.destination, self.admin),
        )


class CleanBucketScenario(Scenario):
    """Cleans the case's own namespace rather than the whole bucket."""

    operation = Operation.CLEAN_BUCKET

    def setup(self) -> None:
        self.prefix = self.key_base + "/"
        self.keys = [self.prefix + name for name in ("one.txt", "two.txt")]
        for key in self.keys:
            self.seed(key, fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.clean_bucket, self.prefix)
        return outcome

    def verify(self) -> Verification:
        return combine(*(self.check_absent(key) for key in self.keys))

    def verify_unchanged(self) -> Verification:
        return combine(*(self.check_present(key, self.admin) for key in self.keys))


class ListBucketsScenario(Scenario):
    operation = Operation.LIST_BUCKETS

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.list_buckets)
        return outcome

    def verify(self) -> Verification:
        if self.subject.bucket not in self.value:
            return Verification(VerificationStatus.FAILED, f"{self.subject.bucket} not in bucket listing")
        return Verification(VerificationStatus.VERIFIED)


def _has_full_control(acl: dict) -> bool:
    return any(grant.get("Permission") == "FULL_CONTROL" for grant in acl.get("grants", []))


class SetObjectAclScenario(Scenario):
    """Applies the canned ``private`` ACL, which every S3 service accepts."""

    operation = Operation.SET_OBJECT_ACL

    def setup(self) -> None:
        self.key = self.key_base + ".txt"
        self.seed(self.key, fixture_content(self.case.case_id))

    def act(self) -> OperationOutcome:
        outcome, _ = attempt(self.subject.set_object_acl, self.key, "private")
        return outcome

    def verify(self) -> Verification:
        outcome, acl = attempt(self.probe.get_object_acl, self.key)
        if outcome.succeeded and not _has_full_control(acl):
            return Verification(VerificationStatus.FAILED, f"Owner lost FULL_CONTROL on {self.key}")
        return verification_from_outcome(outcome, detail=f"{self.key} is missing")

    def verify_unchanged(self) -> Verification:
        return self.check_present(self.key, self.admin)


class GetObjectAclScenario(_SeededReadScenario):
    operation = Operation.GET_OBJECT_ACL

    def act(self) -> OperationOutcome:
        outcome, self.value = attempt(self.subject.get_object_acl, self.key)
        return outcome

    def verify(self) -> Verification:
        if not self.value.get("grants"):
            return Verification(VerificationStatus.FAILED, "Object ACL has no grants")
        return Verification(VerificationStatus.VERIFIED)


class AnonymousReadScenario(_SeededReadScenario):
    operation = Operation.ANONYMOUS_READ

    def act(self) -> OperationOutcome:
        outcome, self.value = public_access.probe(
            self.subject.identity,
            self.key,
            timeout=self.settings.timeout_seconds,
        )
        return outcome

    def verify(self) -> Verification:
        if self.value != self.content:
            return Verification(VerificationStatus.FAILED, "Anonymous read returned different content")
        return Verification(VerificationStatus.VERIFIED)


SCENARIOS: dict[Operation, type] = {
    scenario.operation: scenario
    for scenario in (
        CreateFolderScenario,
        UploadScenario,
        UploadLargeScenario,
        OverwriteScenario,
        DownloadScenario,
        GetContentScenario,
        GetInfoScenario,
        GetMetadataScenario,
        ListScenario,
        CheckFolderScenario,
        DeleteScenario,
        DeleteFolderScenario,
        MoveScenario,
        CleanBucketScenario,
        ListBucketsScenario,
        SetObjectAclScenario,
        GetObjectAclScenario,
        AnonymousReadScenario,
    )
}


def run_scenario(
    case: MatrixCase,
    settings: Settings,
    run_id: str,
    subject: Optional[PermissionGatedStorage] = None,
    admin: Optional[PermissionGatedStorage] = None,
) -> TestVerdict:
    """Run the scenario for one case.

    Handles are built from the case's profile when not supplied.
    """
    if subject is None:
        subject = PermissionGatedStorage.for_profile(case.profile, settings)
    if admin is None:
        admin = PermissionGatedStorage.admin_for_profile(case.profile, settings)

    scenario_class = SCENARIOS[case.operation]
    logger.debug("[%s %s] %s", case.operation.value, case.case_id, case.description)
    return scenario_class(case, subject, admin, settings, run_id).run()
