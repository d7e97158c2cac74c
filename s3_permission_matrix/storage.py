"""Permission-gated storage client.

``PermissionGatedStorage`` wraps one boto3 S3 client bound to one bucket
identity and one declared ``PermissionSet``. Every operation:

1. Checks locally that the declared permissions cover the operation (see
   ``operations.REQUIRED_PERMISSIONS``) and raises ``AccessDeniedError``
   without touching the network when they do not.
2. Calls the SDK.
3. Re-raises any SDK failure as a normalized ``StorageError``.

The client holds no state besides what it was built with and never retries.
"""

import logging
import math
import mimetypes
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3_permission_matrix.config import Settings
from s3_permission_matrix.errors import (
    AccessDeniedError,
    OperationFailedError,
    StorageError,
    classify_error,
)
from s3_permission_matrix.models import (
    BucketIdentity,
    BucketProfile,
    BucketTier,
    OperationOutcome,
    Permission,
    PermissionSet,
)
from s3_permission_matrix.operations import Operation, required_permissions
from s3_permission_matrix.s3_client import build_s3_client

logger = logging.getLogger(__name__)

SDK_ERRORS = (BotoCoreError, ClientError, Boto3Error)

FOLDER_CONTENT_TYPE = "application/x-directory"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Multipart transfer sizing: S3 parts are at least 5 MiB and at most 10000 per object
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10000
UPLOAD_CONCURRENCY = 4


def guess_content_type(key: str) -> str:
    """Guess a MIME type from the key's extension."""
    content_type, _ = mimetypes.guess_type(key)
    return content_type or DEFAULT_CONTENT_TYPE


def folder_key(folder: str) -> str:
    """Folder markers are keys with a trailing slash."""
    return folder if folder.endswith("/") else folder + "/"


def part_size_for(size: int) -> int:
    """Part size for a multipart transfer of ``size`` bytes."""
    return max(MIN_PART_SIZE, math.ceil(size / MAX_PARTS))


def _as_body(content: Any) -> tuple[Any, int]:
    """Return an upload body and its length.

    Accepts bytes, str (encoded as UTF-8) or a seekable binary file object.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    if isinstance(content, (bytes, bytearray)):
        return bytes(content), len(content)
    if hasattr(content, "read") and hasattr(content, "seek"):
        position = content.tell()
        content.seek(0, os.SEEK_END)
        size = content.tell() - position
        content.seek(position)
        return content, size
    raise TypeError("Content must be bytes, str or a seekable binary file object")


class _ProgressLogger:
    """boto3 transfer callback logging progress in 25% steps."""

    def __init__(self, key: str, size: int):
        self._key = key
        self._size = size
        self._seen = 0
        self._next_mark = 25
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self._seen += bytes_amount
            percent = self._seen * 100 // self._size if self._size else 100
            while percent >= self._next_mark and self._next_mark <= 100:
                logger.debug("Upload progress for %s: %d%%", self._key, self._next_mark)
                self._next_mark += 25


class PermissionGatedStorage:
    """Storage client that only attempts what its permissions allow.

    Args:
        identity: Bucket, region, endpoint and credentials.
        permissions: Declared permissions of the credential.
        settings: Service settings.
        tier: Bucket tier, recorded in object metadata.
        s3_client: Prebuilt boto3 client (built from ``identity`` if omitted).
        local_checks: Whether to refuse disallowed calls locally. When False
            every call reaches the service so its own enforcement is tested.
            Defaults to ``settings.local_checks``.
    """

    def __init__(
        self,
        identity: BucketIdentity,
        permissions: PermissionSet,
        settings: Settings,
        tier: BucketTier = BucketTier.LIMITED,
        s3_client: Any = None,
        local_checks: Optional[bool] = None,
    ):
        self.identity = identity
        self.permissions = permissions
        self.settings = settings
        self.tier = tier
        self.local_checks = settings.local_checks if local_checks is None else local_checks
        self.s3_client = s3_client if s3_client is not None else build_s3_client(identity, settings)

        logger.debug(
            "Storage handle: bucket=%s tier=%s region=%s endpoint=%s permissions=%s",
            identity.name,
            tier.value,
            identity.region,
            identity.endpoint,
            permissions.describe(),
        )

    @classmethod
    def for_profile(cls, profile: BucketProfile, settings: Settings, **kwargs) -> "PermissionGatedStorage":
        """Build the handle a test case acts through."""
        return cls(profile.identity, profile.permissions, settings, tier=profile.tier, **kwargs)

    @classmethod
    def admin_for_profile(
        cls,
        profile: BucketProfile,
        settings: Settings,
        **kwargs,
    ) -> Optional["PermissionGatedStorage"]:
        """Build a full-permission handle from the profile's owner credentials.

        Returns None when the profile has no admin credentials.
        """
        if profile.admin_identity is None:
            return None
        return cls(
            profile.admin_identity,
            PermissionSet.full(),
            settings,
            tier=profile.tier,
            local_checks=True,
            **kwargs,
        )

    @property
    def bucket(self) -> str:
        return self.identity.name

    def has_permission(self, permission: Permission) -> bool:
        return self.permissions.allows(permission)

    def _require(self, operation: Operation) -> None:
        """Local pre-check against the operation table."""
        if not self.local_checks:
            return

        missing = required_permissions(operation) - self.permissions.granted()
        if missing:
            names = " and ".join(sorted(p.value for p in missing))
            logger.debug(
                "Refusing %s on %s locally: missing %s", operation.value, self.bucket, names
            )
            raise AccessDeniedError(
                f"Access denied: {names} permission required",
                denied_locally=True,
            )

    def _call(self, label: str, key: str, func: Callable[..., Any], **params: Any) -> Any:
        """Invoke an SDK method and normalize its failures."""
        try:
            return func(**params)
        except SDK_ERRORS as e:
            error = classify_error(e, label, key, self.bucket)
            logger.debug("%s of %s on %s failed: %s", label, key or "-", self.bucket, error)
            raise error from e

    def _metadata(self, extra: Optional[dict[str, Any]] = None) -> dict[str, str]:
        metadata = {
            "custom-timestamp": datetime.now(timezone.utc).isoformat(),
            "bucket-type": self.tier.value,
        }
        for name, value in (extra or {}).items():
            metadata[str(name).lower()] = str(value)
        return metadata

    def _expires(self) -> Optional[datetime]:
        if self.settings.default_ttl_hours <= 0:
            return None
        return datetime.now(timezone.utc) + timedelta(hours=self.settings.default_ttl_hours)

    def _put(
        self,
        operation: Operation,
        label: str,
        key: str,
        content: Any,
        content_type: Optional[str],
        metadata: Optional[dict[str, Any]],
    ) -> bool:
        self._require(operation)

        body, length = _as_body(content)
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type or guess_content_type(key),
            "ContentLength": length,
            "Metadata": self._metadata(metadata),
        }
        expires = self._expires()
        if expires is not None:
            params["Expires"] = expires

        logger.info("%s %s (%d bytes) to %s", label, key, length, self.bucket)
        self._call(label, key, self.s3_client.put_object, **params)
        return True

    def upload_file(
        self,
        key: str,
        content: Any,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Upload an object in a single request (requires write)."""
        return self._put(Operation.UPLOAD, "Upload", key, content, content_type, metadata)

    def overwrite_file(
        self,
        key: str,
        content: Any,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Replace an existing object's content entirely (requires write)."""
        return self._put(Operation.OVERWRITE, "Overwrite", key, content, content_type, metadata)

    def upload_large_file(
        self,
        key: str,
        fileobj: Any,
        size: int,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Upload a large object as a multipart transfer (requires write).

        Args:
            key: Destination object key.
            fileobj: Readable binary file object.
            size: Total size in bytes, known upfront.
            metadata: Extra user metadata.

        Raises:
            ValueError: If ``size`` is not positive.
        """
        self._require(Operation.UPLOAD_LARGE)

        if not size or size <= 0:
            raise ValueError("File size is required for multipart upload")

        part_size = part_size_for(size)
        config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            max_concurrency=UPLOAD_CONCURRENCY,
        )
        extra_args: dict[str, Any] = {
            "ContentType": guess_content_type(key),
            "Metadata": self._metadata({"file-size": size, **(metadata or {})}),
        }
        expires = self._expires()
        if expires is not None:
            extra_args["Expires"] = expires

        logger.info(
            "Uploading large file %s (%d bytes, %d byte parts) to %s",
            key,
            size,
            part_size,
            self.bucket,
        )
        self._call(
            "Upload",
            key,
            self.s3_client.upload_fileobj,
            Fileobj=fileobj,
            Bucket=self.bucket,
            Key=key,
            ExtraArgs=extra_args,
            Callback=_ProgressLogger(key, size),
            Config=config,
        )
        return True

    def download_file(self, key: str, destination: str) -> dict[str, Any]:
        """Download an object to a local path (requires read).

        Returns:
            Dict with ``metadata``, ``content_type`` and ``content_length``.
        """
        self._require(Operation.DOWNLOAD)

        logger.info("Downloading %s from %s to %s", key, self.bucket, destination)
        response = self._call("Download", key, self.s3_client.get_object, Bucket=self.bucket, Key=key)

        try:
            with open(destination, "wb") as f:
                for chunk in response["Body"].iter_chunks():
                    f.write(chunk)
        except (OSError, *SDK_ERRORS) as e:
            raise classify_error(e, "Download", key, self.bucket) from e

        return {
            "metadata": response.get("Metadata", {}),
            "content_type": response.get("ContentType"),
            "content_length": response.get("ContentLength"),
        }

    def get_object_content(self, key: str) -> bytes:
        """Return an object's full content (requires read)."""
        self._require(Operation.GET_CONTENT)

        response = self._call("Get content", key, self.s3_client.get_object, Bucket=self.bucket, Key=key)
        try:
            return response["Body"].read()
        except SDK_ERRORS as e:
            raise classify_error(e, "Get content", key, self.bucket) from e

    def get_object_info(self, key: str) -> dict[str, Any]:
        """Return an object's size, type, timestamps and metadata (requires read)."""
        self._require(Operation.GET_INFO)

        response = self._call("Get info", key, self.s3_client.head_object, Bucket=self.bucket, Key=key)
        return {
            "content_type": response.get("ContentType"),
            "content_length": response.get("ContentLength"),
            "last_modified": response.get("LastModified"),
            "etag": response.get("ETag"),
            "metadata": response.get("Metadata", {}),
        }

    def get_object_metadata(self, key: str) -> dict[str, str]:
        """Return an object's user metadata (requires read)."""
        self._require(Operation.GET_METADATA)

        response = self._call("Get metadata", key, self.s3_client.head_object, Bucket=self.bucket, Key=key)
        return response.get("Metadata", {})

    def _list(self, prefix: str) -> list[dict[str, Any]]:
        objects: list[dict[str, Any]] = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                objects.extend(page.get("Contents", []))
        except SDK_ERRORS as e:
            raise classify_error(e, "List", prefix, self.bucket) from e
        return objects

    def list_objects(self, prefix: str = "") -> list[dict[str, Any]]:
        """List every object under ``prefix`` (requires list)."""
        self._require(Operation.LIST)

        objects = self._list(prefix)
        logger.info("Found %d objects under '%s' in %s", len(objects), prefix, self.bucket)
        return objects

    def check_folder_exists(self, folder: str) -> bool:
        """Whether any object exists under the folder prefix (requires list)."""
        self._require(Operation.CHECK_FOLDER)

        response = self._call(
            "Check folder",
            folder,
            self.s3_client.list_objects_v2,
            Bucket=self.bucket,
            Prefix=folder_key(folder),
            MaxKeys=1,
        )
        return len(response.get("Contents", [])) > 0

    def create_folder(self, folder: str) -> bool:
        """Create a folder marker object (requires write).

        With list permission the marker is also checked to be listable.

        Raises:
            OperationFailedError: If the folder is missing after creation.
        """
        self._require(Operation.CREATE_FOLDER)

        key = folder_key(folder)
        logger.info("Creating folder %s in %s", key, self.bucket)
        self._call(
            "Create folder",
            key,
            self.s3_client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=b"",
            ContentType=FOLDER_CONTENT_TYPE,
            Metadata=self._metadata({"content-type": "folder"}),
        )

        if self.has_permission(Permission.LIST):
            if not self.check_folder_exists(key):
                raise OperationFailedError(
                    "Create folder failed: folder not found after creation"
                )
        else:
            logger.debug("Skipping folder verification for %s (no list permission)", key)

        return True

    def _delete(self, key: str, label: str = "Delete") -> None:
        self._call(label, key, self.s3_client.delete_object, Bucket=self.bucket, Key=key)

    def delete_object(self, key: str) -> bool:
        """Delete one object (requires delete)."""
        self._require(Operation.DELETE)

        logger.info("Deleting %s from %s", key, self.bucket)
        self._delete(key)
        return True

    def delete_folder(self, folder: str) -> int:
        """Delete a folder and everything under it (requires delete and list).

        Returns:
            Number of objects deleted.
        """
        self._require(Operation.DELETE_FOLDER)

        key = folder_key(folder)
        objects = self._list(key)
        for obj in objects:
            self._delete(obj["Key"], "Delete folder")

        logger.info("Deleted folder %s (%d objects) from %s", key, len(objects), self.bucket)
        return len(objects)

    def move_object(self, source_key: str, destination_key: str) -> bool:
        """Move an object by copying it and deleting the source (requires write and delete).

        When the source cannot be deleted the copy is removed again, so a
        refused move leaves the bucket as it found it.
        """
        self._require(Operation.MOVE)

        logger.info("Moving %s to %s in %s", source_key, destination_key, self.bucket)
        self._call(
            "Move",
            source_key,
            self.s3_client.copy_object,
            Bucket=self.bucket,
            Key=destination_key,
            CopySource={"Bucket": self.bucket, "Key": source_key},
        )
        try:
            self._delete(source_key, "Move")
        except StorageError:
            try:
                self._delete(destination_key, "Move")
            except StorageError as e:
                logger.warning("Could not remove %s after failed move: %s", destination_key, e)
            raise
        return True

    def clean_bucket(self, prefix: str = "") -> int:
        """Delete every object in the bucket, or under ``prefix`` (requires delete and list).

        Returns:
            Number of objects deleted.
        """
        self._require(Operation.CLEAN_BUCKET)

        objects = self._list(prefix)
        for obj in objects:
            self._delete(obj["Key"], "Clean bucket")

        logger.info("Cleaned %d objects under '%s' from %s", len(objects), prefix, self.bucket)
        return len(objects)

    def list_buckets(self) -> list[str]:
        """Names of the buckets the credential can see (requires list)."""
        self._require(Operation.LIST_BUCKETS)

        response = self._call("List buckets", "", self.s3_client.list_buckets)
        names = [bucket["Name"] for bucket in response.get("Buckets", [])]
        logger.info("Credential for %s sees %d buckets", self.bucket, len(names))
        return names

    def set_object_acl(self, key: str, acl: Any = "private") -> bool:
        """Replace an object's ACL (requires write).

        Args:
            key: Object key.
            acl: Canned ACL name (e.g. ``"private"``) or an
                ``AccessControlPolicy`` dict with ``Owner`` and ``Grants``.
        """
        self._require(Operation.SET_OBJECT_ACL)

        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if isinstance(acl, str):
            params["ACL"] = acl
        else:
            params["AccessControlPolicy"] = acl

        logger.info("Setting ACL of %s in %s", key, self.bucket)
        self._call("Set object ACL", key, self.s3_client.put_object_acl, **params)
        return True

    def get_object_acl(self, key: str) -> dict[str, Any]:
        """Return an object's ACL as ``owner`` and ``grants`` (requires read)."""
        self._require(Operation.GET_OBJECT_ACL)

        response = self._call(
            "Get object ACL", key, self.s3_client.get_object_acl, Bucket=self.bucket, Key=key
        )
        return {
            "owner": response.get("Owner", {}),
            "grants": response.get("Grants", []),
        }


def attempt(func: Callable[..., Any], *args: Any, **kwargs: Any) -> tuple[OperationOutcome, Any]:
    """Run a storage call and capture its outcome.

    Returns:
        ``(outcome, value)``; ``value`` is None when the call failed.
    """
    try:
        value = func(*args, **kwargs)
    except StorageError as e:
        return e.to_outcome(), None
    return OperationOutcome.success(), value
