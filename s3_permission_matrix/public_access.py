"""Anonymous read probe.

Fetches an object over plain HTTP with no credentials, the way a browser
would read from a public bucket. PUBLIC tier buckets must serve the object;
every other tier must refuse it.
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from s3_permission_matrix.errors import (
    AccessDeniedError,
    NotFoundError,
    OperationFailedError,
    StorageError,
)
from s3_permission_matrix.models import BucketIdentity, OperationOutcome

logger = logging.getLogger(__name__)

DENIED_STATUS_CODES = {401, 403}
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


def object_url(identity: BucketIdentity, key: str) -> str:
    """Path-style URL of an object: ``<endpoint>/<bucket>/<key>``."""
    endpoint = identity.endpoint or f"https://s3.{identity.region}.amazonaws.com"
    return f"{endpoint.rstrip('/')}/{identity.name}/{quote(key)}"


def anonymous_get(
    identity: BucketIdentity,
    key: str,
    timeout: float = 30.0,
    http_client: Optional[httpx.Client] = None,
) -> bytes:
    """Download an object without credentials.

    Args:
        identity: Bucket to read from (its credentials are ignored).
        key: Object key.
        timeout: Request timeout in seconds.
        http_client: Existing client to reuse; one is created otherwise.

    Returns:
        The object body.

    Raises:
        AccessDeniedError: On 401/403.
        NotFoundError: On 404.
        OperationFailedError: On any other status or a transport error.
    """
    url = object_url(identity, key)
    owns_client = http_client is None
    client = http_client or httpx.Client(timeout=timeout)

    try:
        logger.debug("Anonymous GET %s", url)
        response = client.get(url)
    except httpx.HTTPError as e:
        raise OperationFailedError(f"Anonymous read failed: {e}", transient=True) from e
    finally:
        if owns_client:
            client.close()

    status = response.status_code
    if status == 200:
        return response.content
    if status in DENIED_STATUS_CODES:
        raise AccessDeniedError(f"Access denied: anonymous read returned HTTP {status}")
    if status == 404:
        raise NotFoundError(f"Object '{key}' not found.")
    raise OperationFailedError(
        f"Anonymous read failed: HTTP {status}",
        transient=status in TRANSIENT_STATUS_CODES,
    )


def probe(identity: BucketIdentity, key: str, timeout: float = 30.0) -> tuple[OperationOutcome, Optional[bytes]]:
    """Run ``anonymous_get`` and capture its outcome."""
    try:
        content = anonymous_get(identity, key, timeout=timeout)
    except StorageError as e:
        return e.to_outcome(), None
    return OperationOutcome.success(), content
