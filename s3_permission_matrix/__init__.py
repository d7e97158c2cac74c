"""
S3 Permission Matrix Tester.

A tool to verify that an S3-compatible storage service enforces bucket
permissions exactly: every operation must succeed for credentials that hold
the permissions it requires and be denied for every other credential.
"""

__version__ = "1.0.0"

from s3_permission_matrix.cli import main

__all__ = ["main", "__version__"]
