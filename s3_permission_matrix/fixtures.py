"""Test data helpers: generated files, content and object keys."""

import hashlib
import os
import time
import uuid

from s3_permission_matrix.config import Settings
from s3_permission_matrix.operations import Operation

CHUNK_SIZE = 1024 * 1024


def create_test_file(path: str, size: int) -> str:
    """Write ``size`` random bytes to ``path``.

    Args:
        path: Destination file path.
        size: Size of the file in bytes.

    Returns:
        The path written.
    """
    try:
        with open(path, "wb") as f:
            # Write in 1 MiB chunks for efficiency
            remaining = size
            while remaining > 0:
                write_size = min(CHUNK_SIZE, remaining)
                f.write(os.urandom(write_size))
                remaining -= write_size
    except Exception:
        if os.path.exists(path):
            os.remove(path)
        raise
    return path


def fixture_content(label: str) -> bytes:
    """Small unique text payload for single-request uploads."""
    return f"permission matrix fixture {label} {uuid.uuid4().hex}\n".encode("utf-8")


def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_digest(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def new_run_id() -> str:
    """Run identifier: UTC timestamp plus a short random suffix."""
    return f"{time.strftime('%Y%m%dT%H%M%SZ', time.gmtime())}-{uuid.uuid4().hex[:6]}"


def case_key_base(settings: Settings, run_id: str, operation: Operation, case_id: str) -> str:
    """Namespace for every key a case touches.

    ``<key_prefix>/<run_id>/<operation>/<case_id>-<epoch ms>``
    """
    stamp = int(time.time() * 1000)
    prefix = settings.key_prefix.strip("/")
    return f"{prefix}/{run_id}/{operation.value}/{case_id}-{stamp}"
