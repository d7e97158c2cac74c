"""Shared fixtures: an in-process S3 (moto) and profile/storage factories."""

import boto3
import pytest
from moto import mock_aws

from s3_permission_matrix.config import Settings
from s3_permission_matrix.matrix import PERMISSION_PROFILES
from s3_permission_matrix.models import (
    BucketIdentity,
    BucketProfile,
    BucketTier,
    Credentials,
    PermissionSet,
)
from s3_permission_matrix.storage import PermissionGatedStorage

BUCKET = "matrix-bucket"
REGION = "us-east-1"


def _identity(settings: Settings, access_key: str = "subject") -> BucketIdentity:
    return BucketIdentity(
        name=BUCKET,
        region=settings.region_name,
        endpoint=settings.endpoint_url,
        credentials=Credentials(access_key, f"{access_key}-secret"),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at moto (no endpoint) with a small large-file size."""
    return Settings(
        endpoint_url=None,
        region_name=REGION,
        key_prefix="pytest",
        timeout_seconds=5.0,
        large_file_size=6 * 1024 * 1024,
    )


@pytest.fixture
def s3(settings):
    """Raw boto3 client on a mocked S3 with one empty bucket."""
    with mock_aws():
        client = boto3.client(
            "s3",
            region_name=REGION,
            aws_access_key_id="admin",
            aws_secret_access_key="admin-secret",
        )
        client.create_bucket(Bucket=BUCKET)
        yield client


@pytest.fixture
def make_profile(settings):
    """Factory for profiles on the test bucket."""

    def _make(name, permissions=None, tier=BucketTier.LIMITED, admin=True):
        if permissions is None:
            permissions = PERMISSION_PROFILES[name]
        return BucketProfile(
            name=name,
            tier=tier,
            identity=_identity(settings, name.lower()),
            permissions=permissions,
            admin_identity=_identity(settings, "admin") if admin else None,
        )

    return _make


@pytest.fixture
def make_storage(settings, s3):
    """Factory for storage handles bound to the mocked bucket."""

    def _make(permissions=None, local_checks=None, tier=BucketTier.LIMITED):
        return PermissionGatedStorage(
            _identity(settings),
            permissions if permissions is not None else PermissionSet.full(),
            settings,
            tier=tier,
            local_checks=local_checks,
        )

    return _make


@pytest.fixture
def make_identity(settings):
    """Factory for identities on the test bucket."""

    def _make(access_key: str = "subject") -> BucketIdentity:
        return _identity(settings, access_key)

    return _make
