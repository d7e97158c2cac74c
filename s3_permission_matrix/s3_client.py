"""S3 client factory for the permission matrix tester.

Creates boto3 S3 clients bound to one bucket identity, with the correct
endpoint, credentials, region, and addressing style.

botocore's own retries are switched off: retry policy belongs to the
runner, which must never retry a permission outcome.
"""

import boto3
from botocore.client import Config

from s3_permission_matrix.config import Settings
from s3_permission_matrix.models import BucketIdentity


def build_s3_client(identity: BucketIdentity, settings: Settings):
    """Build a boto3 S3 client for the given bucket identity.

    Args:
        identity: Bucket identity containing endpoint, credentials and region.
        settings: Service settings (addressing style and timeouts).

    Returns:
        A boto3 S3 client configured for the identity.
    """
    boto_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "path" if settings.force_path_style else "auto"},
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.timeout_seconds,
        retries={"mode": "standard", "max_attempts": 1},
    )

    return boto3.client(
        "s3",
        endpoint_url=identity.endpoint,
        aws_access_key_id=identity.credentials.access_key_id,
        aws_secret_access_key=identity.credentials.secret_access_key,
        region_name=identity.region,
        config=boto_config,
    )
