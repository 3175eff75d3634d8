"""
Local disk backend.

Handles wrap a pathlib.Path; blocking calls run in a worker thread so the
event loop is never held up by I/O. A handle remembers the path it was
created for: after a directory is moved, handles previously obtained for its
descendants keep pointing at the old location and fail with NotFoundError.
"""

import asyncio
import errno
import logging
import os
import shutil
from pathlib import Path
from typing import AsyncIterator, Callable, Tuple, TypeVar, Union

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

T = TypeVar("T")


async def _io(func: Callable[..., T], *args, path: Path) -> T:
    """Run a blocking call off-loop and translate OSError into the taxonomy."""
    try:
        return await asyncio.to_thread(func, *args)
    except FileNotFoundError as e:
        raise NotFoundError(f"Not found: {path}", path=str(path)) from e
    except FileExistsError as e:
        raise AlreadyExistsError(f"Already exists: {path}", path=str(path)) from e
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied: {path}", path=str(path)) from e
    except OSError as e:
        raise StorageFailureError(f"I/O error on {path}: {e.strerror or e}", path=str(path)) from e


def _read_content(path: Path) -> Tuple[str, str]:
    """Text of ``path`` and the encoding that decoded it."""
    try:
        return path.read_text(encoding="utf-8"), "utf-8"
    except UnicodeDecodeError:
        return path.read_text(encoding="latin-1"), "latin-1"


def _write_content(path: Path, content: str, encoding: str) -> None:
    try:
        data = content.encode(encoding)
    except UnicodeEncodeError:
        logger.warning(f"{path} no longer fits {encoding}; writing it as utf-8")
        data = content.encode("utf-8")
    path.write_bytes(data)


def _rename_no_replace(source: Path, target: Path) -> None:
    """
    Rename ``source`` to ``target`` without replacing an existing target.

    Files are hard-linked under the new name and then unlinked, so a target
    that appears concurrently fails with FileExistsError. Directories, and
    filesystems without hard links, only get an exists() check before the
    rename; that check is best-effort against a concurrent writer.
    """
    if source.is_file():
        try:
            os.link(source, target)
        except FileExistsError:
            raise
        except OSError as e:
            logger.debug(f"Hard link unavailable for {source} ({e}); using rename")
        else:
            os.unlink(source)
            return
    if target.exists():
        raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(target))
    os.rename(source, target)


def _check_access(path: Path, mode: str) -> str:
    flags = os.R_OK | os.W_OK if mode == "readwrite" else os.R_OK
    return PERMISSION_GRANTED if os.access(path, flags) else PERMISSION_DENIED


class _LocalPermissions:
    path: Path

    async def query_permission(self, mode: str = "read") -> str:
        return await _io(_check_access, self.path, mode, path=self.path)

    async def request_permission(self, mode: str = "read") -> str:
        # The OS grant cannot be widened from here; asking equals querying.
        return await self.query_permission(mode)

    @property
    def supports_move(self) -> bool:
        return True

    async def move(self, new_parent: "LocalDirectoryHandle", new_name: str) -> None:
        target = new_parent.path / new_name
        await _io(_rename_no_replace, self.path, target, path=target)
        logger.debug(f"Moved {self.path} -> {target}")
        self.path = target
        self.name = new_name


class _LocalWritable(WritableStream):
    """Buffers writes and replaces the file content on close."""

    def __init__(self, path: Path, encoding: str = "utf-8"):
        self.path = path
        self.encoding = encoding
        self._chunks = []
        self._closed = False

    async def write(self, text: str) -> None:
        if self._closed:
            raise StorageFailureError(f"Stream already closed: {self.path}", path=str(self.path))
        self._chunks.append(text)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        content = "".join(self._chunks)
        await _io(_write_content, self.path, content, self.encoding, path=self.path)


class LocalFileHandle(_LocalPermissions, FileHandle):
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.encoding = "utf-8"
        super().__init__(self.path.name)

    async def read_text(self) -> str:
        if not self.path.is_file():
            raise NotFoundError(f"File not found: {self.path}", path=str(self.path))
        text, self.encoding = await _io(_read_content, self.path, path=self.path)
        return text

    async def create_writable(self) -> WritableStream:
        if not self.path.is_file():
            raise NotFoundError(f"File not found: {self.path}", path=str(self.path))
        return _LocalWritable(self.path, self.encoding)


class LocalDirectoryHandle(_LocalPermissions, DirectoryHandle):
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).resolve()
        super().__init__(self.path.name)

    def _child(self, name: str) -> Path:
        return self.path / name

    async def get_directory_handle(self, name: str, create: bool = False) -> "LocalDirectoryHandle":
        child = self._child(name)
        if child.is_dir():
            return LocalDirectoryHandle(child)
        if child.exists():
            raise TypeMismatchError(f"Not a directory: {child}", path=str(child))
        if not create:
            raise NotFoundError(f"Directory not found: {child}", path=str(child))
        await _io(child.mkdir, path=child)
        return LocalDirectoryHandle(child)

    async def get_file_handle(self, name: str, create: bool = False) -> LocalFileHandle:
        child = self._child(name)
        if child.is_file():
            return LocalFileHandle(child)
        if child.exists():
            raise TypeMismatchError(f"Not a file: {child}", path=str(child))
        if not create:
            raise NotFoundError(f"File not found: {child}", path=str(child))
        await _io(child.touch, path=child)
        return LocalFileHandle(child)

    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        child = self._child(name)
        if not child.exists():
            raise NotFoundError(f"Not found: {child}", path=str(child))
        if child.is_dir():
            if recursive:
                await _io(shutil.rmtree, child, path=child)
            else:
                await _io(child.rmdir, path=child)
        else:
            await _io(child.unlink, path=child)

    async def entries(self) -> AsyncIterator[AnyHandle]:
        if not self.path.is_dir():
            raise NotFoundError(f"Directory not found: {self.path}", path=str(self.path))
        children = await _io(lambda: list(self.path.iterdir()), path=self.path)
        for child in children:
            if child.is_dir():
                yield LocalDirectoryHandle(child)
            elif child.is_file():
                yield LocalFileHandle(child)
