"""
In-process storage backend.

A tree of handle objects living entirely in memory. Useful for dry runs and
tests: move support and the permission grant can be switched off per tree to
reproduce hosts without an atomic move or with a revoked grant.
"""

import logging
from typing import AsyncIterator, Dict, List, Optional

from editree.core.errors import (
    AlreadyExistsError,
    NotFoundError,
    PermissionDeniedError,
    StorageFailureError,
    TypeMismatchError,
)
from editree.storage.base import (
    PERMISSION_DENIED,
    PERMISSION_GRANTED,
    AnyHandle,
    DirectoryHandle,
    FileHandle,
    WritableStream,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """Shared switches for every handle of one in-memory tree."""

    def __init__(self, supports_move: bool = True, granted: bool = True):
        self.supports_move = supports_move
        self.granted = granted
        self.fail_writes = False
        self.calls: List[str] = []
        self.listings: List[str] = []

    def check_grant(self, path: str) -> None:
        if not self.granted:
            raise PermissionDeniedError(f"Permission denied: {path}", path=path)


class _MemoryEntry:
    store: MemoryStore
    parent: Optional["MemoryDirectoryHandle"]
    name: str
    removed: bool = False

    @property
    def storage_path(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.storage_path}/{self.name}"

    @property
    def supports_move(self) -> bool:
        return self.store.supports_move

    def _check_attached(self) -> None:
        """Raise NotFoundError once this entry or one of its ancestors was removed."""
        entry = self
        while entry is not None:
            parent = entry.parent
            if entry.removed or (parent is not None and parent.children.get(entry.name) is not entry):
                raise NotFoundError(f"Not found: {self.storage_path}", path=self.storage_path)
            entry = parent

    async def move(self, new_parent: "MemoryDirectoryHandle", new_name: str) -> None:
        if not self.store.supports_move:
            raise NotImplementedError("move is disabled for this store")
        self._check_attached()
        new_parent._check_attached()
        self.store.check_grant(self.storage_path)
        if new_name in new_parent.children:
            raise AlreadyExistsError(f"Already exists: {new_parent.storage_path}/{new_name}")
        self.store.calls.append(f"move {self.storage_path} -> {new_parent.storage_path}/{new_name}")
        if self.parent is not None:
            del self.parent.children[self.name]
        self.name = new_name
        self.parent = new_parent
        new_parent.children[new_name] = self

    async def query_permission(self, mode: str = "read") -> str:
        return PERMISSION_GRANTED if self.store.granted else PERMISSION_DENIED

    async def request_permission(self, mode: str = "read") -> str:
        return await self.query_permission(mode)


class _MemoryWritable(WritableStream):
    def __init__(self, handle: "MemoryFileHandle"):
        self.handle = handle
        self._chunks: List[str] = []

    async def write(self, text: str) -> None:
        self._chunks.append(text)

    async def close(self) -> None:
        store = self.handle.store
        if store.fail_writes:
            raise StorageFailureError(f"Write failed: {self.handle.storage_path}")
        store.check_grant(self.handle.storage_path)
        store.calls.append(f"write {self.handle.storage_path}")
        self.handle.data = "".join(self._chunks)


class MemoryFileHandle(_MemoryEntry, FileHandle):
    def __init__(self, name: str, store: MemoryStore, parent: Optional["MemoryDirectoryHandle"] = None, data: str = ""):
        super().__init__(name)
        self.store = store
        self.parent = parent
        self.data = data

    async def read_text(self) -> str:
        self._check_attached()
        self.store.check_grant(self.storage_path)
        return self.data

    async def create_writable(self) -> WritableStream:
        self._check_attached()
        self.store.check_grant(self.storage_path)
        return _MemoryWritable(self)


class MemoryDirectoryHandle(_MemoryEntry, DirectoryHandle):
    def __init__(self, name: str, store: Optional[MemoryStore] = None, parent: Optional["MemoryDirectoryHandle"] = None):
        super().__init__(name)
        self.store = store or MemoryStore()
        self.parent = parent
        self.children: Dict[str, _MemoryEntry] = {}

    async def get_directory_handle(self, name: str, create: bool = False) -> "MemoryDirectoryHandle":
        self._check_attached()
        entry = self.children.get(name)
        if isinstance(entry, MemoryDirectoryHandle):
            return entry
        if entry is not None:
            raise TypeMismatchError(f"Not a directory: {self.storage_path}/{name}")
        if not create:
            raise NotFoundError(f"Directory not found: {self.storage_path}/{name}")
        self.store.check_grant(self.storage_path)
        self.store.calls.append(f"mkdir {self.storage_path}/{name}")
        entry = MemoryDirectoryHandle(name, self.store, parent=self)
        self.children[name] = entry
        return entry

    async def get_file_handle(self, name: str, create: bool = False) -> MemoryFileHandle:
        self._check_attached()
        entry = self.children.get(name)
        if isinstance(entry, MemoryFileHandle):
            return entry
        if entry is not None:
            raise TypeMismatchError(f"Not a file: {self.storage_path}/{name}")
        if not create:
            raise NotFoundError(f"File not found: {self.storage_path}/{name}")
        self.store.check_grant(self.storage_path)
        self.store.calls.append(f"touch {self.storage_path}/{name}")
        entry = MemoryFileHandle(name, self.store, parent=self)
        self.children[name] = entry
        return entry

    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        self._check_attached()
        entry = self.children.get(name)
        if entry is None:
            raise NotFoundError(f"Not found: {self.storage_path}/{name}")
        if isinstance(entry, MemoryDirectoryHandle) and entry.children and not recursive:
            raise StorageFailureError(f"Directory not empty: {entry.storage_path}")
        self.store.check_grant(self.storage_path)
        self.store.calls.append(f"remove {entry.storage_path}")
        del self.children[name]
        entry.removed = True

    async def entries(self) -> AsyncIterator[AnyHandle]:
        self._check_attached()
        self.store.listings.append(self.storage_path)
        for entry in list(self.children.values()):
            yield entry

    # ------------------------------------------------------------------
    # Convenience builders
    # ------------------------------------------------------------------
    def add_file(self, path: str, data: str = "") -> MemoryFileHandle:
        """Create ``path`` (relative to this directory) synchronously."""
        *dirs, name = path.split("/")
        directory = self
        for part in dirs:
            child = directory.children.get(part)
            if child is None:
                child = MemoryDirectoryHandle(part, self.store, parent=directory)
                directory.children[part] = child
            directory = child
        handle = MemoryFileHandle(name, self.store, parent=directory, data=data)
        directory.children[name] = handle
        return handle

    def add_directory(self, path: str) -> "MemoryDirectoryHandle":
        directory = self
        for part in path.split("/"):
            child = directory.children.get(part)
            if child is None:
                child = MemoryDirectoryHandle(part, self.store, parent=directory)
                directory.children[part] = child
            directory = child
        return directory

    def lookup(self, path: str) -> Optional[_MemoryEntry]:
        """Synchronous lookup of ``path`` relative to this directory."""
        entry: Optional[_MemoryEntry] = self
        for part in path.split("/"):
            if not isinstance(entry, MemoryDirectoryHandle):
                return None
            entry = entry.children.get(part)
        return entry
