"""Operations under test and the permissions each one requires.

The table below is the contract between the storage client (which refuses
calls the declared permissions do not cover) and the reconciler (which
derives the expected outcome of every case from it).
"""

from enum import Enum

from s3_permission_matrix.models import Permission


class Operation(Enum):
    """Storage operations exercised by the permission matrix."""

    CREATE_FOLDER = "create-folder"
    UPLOAD = "upload"
    UPLOAD_LARGE = "upload-large"
    OVERWRITE = "overwrite"
    DOWNLOAD = "download"
    GET_CONTENT = "get-content"
    GET_INFO = "get-info"
    GET_METADATA = "get-metadata"
    LIST = "list"
    CHECK_FOLDER = "check-folder-exists"
    DELETE = "delete"
    DELETE_FOLDER = "delete-folder"
    MOVE = "move"
    CLEAN_BUCKET = "clean-bucket"
    LIST_BUCKETS = "list-buckets"
    SET_OBJECT_ACL = "set-object-acl"
    GET_OBJECT_ACL = "get-object-acl"
    ANONYMOUS_READ = "anonymous-read"


REQUIRED_PERMISSIONS: dict[Operation, frozenset] = {
    Operation.CREATE_FOLDER: frozenset({Permission.WRITE}),
    Operation.UPLOAD: frozenset({Permission.WRITE}),
    Operation.UPLOAD_LARGE: frozenset({Permission.WRITE}),
    Operation.OVERWRITE: frozenset({Permission.WRITE}),
    Operation.DOWNLOAD: frozenset({Permission.READ}),
    Operation.GET_CONTENT: frozenset({Permission.READ}),
    Operation.GET_INFO: frozenset({Permission.READ}),
    Operation.GET_METADATA: frozenset({Permission.READ}),
    Operation.LIST: frozenset({Permission.LIST}),
    Operation.CHECK_FOLDER: frozenset({Permission.LIST}),
    Operation.DELETE: frozenset({Permission.DELETE}),
    # Folder deletion must enumerate the folder before deleting it
    Operation.DELETE_FOLDER: frozenset({Permission.DELETE, Permission.LIST}),
    # Move is copy + delete
    Operation.MOVE: frozenset({Permission.WRITE, Permission.DELETE}),
    Operation.CLEAN_BUCKET: frozenset({Permission.DELETE, Permission.LIST}),
    Operation.LIST_BUCKETS: frozenset({Permission.LIST}),
    Operation.SET_OBJECT_ACL: frozenset({Permission.WRITE}),
    Operation.GET_OBJECT_ACL: frozenset({Permission.READ}),
    # Anonymous access depends on the bucket tier, not on credentials
    Operation.ANONYMOUS_READ: frozenset(),
}

# Human-readable names used in case descriptions
OPERATION_TITLES = {
    Operation.CREATE_FOLDER: "Create folder",
    Operation.UPLOAD: "Upload file",
    Operation.UPLOAD_LARGE: "Upload large file",
    Operation.OVERWRITE: "Overwrite file",
    Operation.DOWNLOAD: "Download file",
    Operation.GET_CONTENT: "Get object content",
    Operation.GET_INFO: "Get object info",
    Operation.GET_METADATA: "Get object metadata",
    Operation.LIST: "List files",
    Operation.CHECK_FOLDER: "Check folder exists",
    Operation.DELETE: "Delete file",
    Operation.DELETE_FOLDER: "Delete folder",
    Operation.MOVE: "Move file",
    Operation.CLEAN_BUCKET: "Clean bucket",
    Operation.LIST_BUCKETS: "List buckets",
    Operation.SET_OBJECT_ACL: "Set object ACL",
    Operation.GET_OBJECT_ACL: "Get object ACL",
    Operation.ANONYMOUS_READ: "Anonymous read",
}


def required_permissions(operation: Operation) -> frozenset:
    """Return the permissions ``operation`` requires."""
    return REQUIRED_PERMISSIONS[operation]


def parse_operation(name: str) -> Operation:
    """Look up an operation by its suite name (e.g. ``"delete-folder"``).

    Raises:
        ValueError: If no operation has that name.
    """
    normalized = name.strip().lower().replace("_", "-")
    for operation in Operation:
        if operation.value == normalized:
            return operation
    raise ValueError(f"Unknown operation: {name}")
