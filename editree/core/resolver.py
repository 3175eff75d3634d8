"""
Path Resolver

Maps a logical workspace path (``proj/src/index.ts``) to a live storage
handle by walking the root handle one segment at a time.

When a segment cannot be fetched directly the walk resumes from the handle
held by the in-memory directory node with the same path. This covers handles
gone stale through a non-atomic move, but it is best-effort: after a partial
failure the tree may still hold a handle for a path that storage no longer
has.
"""

import logging
from typing import List, Optional, Tuple

from editree.core.errors import (
    AlreadyExistsError,
    NotFoundError,
    StorageFailureError,
    TypeMismatchError,
)
from editree.storage.base import AnyHandle, DirectoryHandle, FileHandle
from editree.utils.path_utils import base_name, join_path, parent_path, relative_segments
from editree.workspace.node import NodeKind
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)


class PathResolver:
    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def _root(self) -> DirectoryHandle:
        if not self.workspace.is_open:
            raise NotFoundError("No workspace is open")
        return self.workspace.root_handle

    def _segments(self, full_path: str) -> List[str]:
        return relative_segments(full_path, self.workspace.root_name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    async def resolve_directory(self, path: Optional[str]) -> DirectoryHandle:
        """
        Handle of the directory at ``path`` (None or the root name: the root).

        Raises NotFoundError when neither storage nor the tree knows the path.
        """
        ws = self.workspace
        handle = self._root()
        full_path = ws.normalize(path)
        walked = ws.root_name

        for segment in self._segments(full_path):
            walked = join_path(walked, segment)
            try:
                handle = await handle.get_directory_handle(segment)
                continue
            except (NotFoundError, StorageFailureError) as e:
                fallback = ws.find_directory_handle(walked)
                if fallback is None:
                    raise NotFoundError(f"Directory not found: {walked}", path=full_path) from e
                logger.warning(f"Direct lookup of '{walked}' failed ({e}); resuming from tree handle")
                handle = fallback

        return handle

    async def resolve_file(self, path: str) -> FileHandle:
        ws = self.workspace
        full_path = ws.normalize(path)
        parent = parent_path(full_path)
        if parent is None:
            raise TypeMismatchError(f"The workspace root is not a file: {full_path}", path=full_path)

        directory = await self.resolve_directory(parent)
        try:
            return await directory.get_file_handle(base_name(full_path))
        except (NotFoundError, StorageFailureError) as e:
            node = ws.find(full_path)
            if node is None or node.is_directory or node.handle is None:
                raise NotFoundError(f"File not found: {full_path}", path=full_path) from e
            logger.warning(f"Direct lookup of '{full_path}' failed ({e}); using tree handle")
            return node.handle

    async def resolve(self, path: str, kind: Optional[NodeKind] = None) -> AnyHandle:
        """
        Handle of the entry at ``path``. Without ``kind`` a directory is tried
        first, then a file.
        """
        if kind is NodeKind.FILE:
            return await self.resolve_file(path)
        if kind is NodeKind.DIRECTORY:
            return await self.resolve_directory(path)
        try:
            return await self.resolve_directory(path)
        except NotFoundError:
            return await self.resolve_file(path)

    # ------------------------------------------------------------------
    # Creating variant
    # ------------------------------------------------------------------
    async def ensure_directory(self, path: Optional[str]) -> Tuple[DirectoryHandle, Optional[str]]:
        """
        Fetch-or-create every segment of ``path``.

        Returns the directory handle and the path of the first directory that
        had to be created (None when everything already existed). Only
        permission and I/O failures escape; a file sitting where a directory
        is needed raises AlreadyExistsError.
        """
        ws = self.workspace
        handle = self._root()
        full_path = ws.normalize(path)
        walked = ws.root_name
        first_created: Optional[str] = None

        for segment in self._segments(full_path):
            walked = join_path(walked, segment)
            try:
                handle = await handle.get_directory_handle(segment)
            except TypeMismatchError as e:
                raise AlreadyExistsError(
                    f"Cannot create directory '{walked}': a file with that name exists",
                    path=walked,
                ) from e
            except NotFoundError:
                handle = await handle.get_directory_handle(segment, create=True)
                if first_created is None:
                    first_created = walked
                logger.debug(f"Created intermediate directory {walked}")

        return handle, first_created
