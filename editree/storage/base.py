"""
Storage Handle Interface

Abstract capability objects for one storage entry each. The workspace core
only ever talks to storage through these, so any host (local disk, an
in-process tree, a remote store) can back a workspace by subclassing them.

All operations are coroutines. Implementations must:
- Raise NotFoundError when an entry does not exist
- Raise TypeMismatchError when it exists with the other kind
- Raise PermissionDeniedError when the grant is missing or revoked
- Raise StorageFailureError for any other I/O failure
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Union

from editree.core.errors import StorageFailureError

KIND_FILE = "file"
KIND_DIRECTORY = "directory"

PERMISSION_GRANTED = "granted"
PERMISSION_DENIED = "denied"
PERMISSION_PROMPT = "prompt"


class WritableStream(ABC):
    """Write-then-close stream returned by ``FileHandle.create_writable``."""

    @abstractmethod
    async def write(self, text: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Commit everything written so far to storage."""
        pass


class StorageHandle(ABC):
    """Common part of file and directory handles."""

    kind: str = ""

    def __init__(self, name: str):
        self.name = name

    @property
    def supports_move(self) -> bool:
        """Whether ``move`` performs an atomic rename/move."""
        return False

    async def move(self, new_parent: "DirectoryHandle", new_name: str) -> None:
        """
        Atomically move/rename this entry.

        Backends without the capability leave this default in place; callers
        must check ``supports_move`` or handle NotImplementedError.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support move")

    @abstractmethod
    async def query_permission(self, mode: str = "read") -> str:
        """Return 'granted', 'denied' or 'prompt' without asking the user."""
        pass

    @abstractmethod
    async def request_permission(self, mode: str = "read") -> str:
        """Ask for the grant if needed and return the resulting state."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.kind} {self.name!r}>"


class FileHandle(StorageHandle):
    kind = KIND_FILE

    @abstractmethod
    async def read_text(self) -> str:
        pass

    @abstractmethod
    async def create_writable(self) -> WritableStream:
        pass


class DirectoryHandle(StorageHandle):
    kind = KIND_DIRECTORY

    @abstractmethod
    async def get_directory_handle(self, name: str, create: bool = False) -> "DirectoryHandle":
        pass

    @abstractmethod
    async def get_file_handle(self, name: str, create: bool = False) -> FileHandle:
        pass

    @abstractmethod
    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        pass

    @abstractmethod
    def entries(self) -> AsyncIterator["AnyHandle"]:
        """Yield the immediate child handles, in no particular order."""
        pass


AnyHandle = Union[FileHandle, DirectoryHandle]


async def write_text(handle: FileHandle, text: str) -> None:
    """Write ``text`` through a writable stream, always closing it."""
    stream = await handle.create_writable()
    try:
        await stream.write(text)
    except Exception:
        try:
            await stream.close()
        except StorageFailureError:
            pass
        raise
    await stream.close()
