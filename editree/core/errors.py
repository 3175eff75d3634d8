"""
Workspace error taxonomy.

Storage backends and the path resolver raise these; the mutation engine and
the patch applier catch them at the operation boundary and turn them into
result objects, so none of them is meant to reach the top of the process.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_NAME = "InvalidName"
    ALREADY_EXISTS = "AlreadyExists"
    NOT_FOUND = "NotFound"
    PERMISSION_DENIED = "PermissionDenied"
    ABORTED = "Aborted"
    STORAGE_FAILURE = "StorageFailure"
    DEGRADED_RENAME = "DegradedRename"
    NOT_ALLOWED = "NotAllowed"


class WorkspaceError(Exception):
    """Base error for every recoverable workspace failure."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class InvalidNameError(WorkspaceError):
    """Empty name, or a name containing a path separator."""

    kind = ErrorKind.INVALID_NAME


class AlreadyExistsError(WorkspaceError):
    """An entry with the requested name is already present in the parent."""

    kind = ErrorKind.ALREADY_EXISTS


class NotFoundError(WorkspaceError):
    """Path resolution failed."""

    kind = ErrorKind.NOT_FOUND


class TypeMismatchError(NotFoundError):
    """The entry exists, but as the other kind (file vs. directory)."""


class PermissionDeniedError(WorkspaceError):
    """The storage grant is missing or was revoked."""

    kind = ErrorKind.PERMISSION_DENIED


class AbortedError(WorkspaceError):
    """The user cancelled an interactive prompt. Nothing was mutated."""

    kind = ErrorKind.ABORTED


class StorageFailureError(WorkspaceError):
    """Underlying I/O error not otherwise classified."""

    kind = ErrorKind.STORAGE_FAILURE


class DegradedRenameError(WorkspaceError):
    """Atomic move is unavailable and strict renames are enabled."""

    kind = ErrorKind.DEGRADED_RENAME


class NotAllowedError(WorkspaceError):
    """Operation refused before touching storage (e.g. renaming the root)."""

    kind = ErrorKind.NOT_ALLOWED
