"""
Workspace: the explicit context object for one opened root directory.

Holds the root handle, the in-memory tree and the active selection. Every
core component (resolver, mutation engine, patch applier, terminal) receives
a Workspace instead of reaching for global state, so several workspaces can
live side by side.

Only the opening permission check and the initial listing touch storage
here; mutations live in the mutation engine.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from editree.core.errors import InvalidNameError, NotFoundError, PermissionDeniedError
from editree.storage.base import PERMISSION_GRANTED, DirectoryHandle
from editree.utils.path_utils import (
    base_name,
    is_same_or_descendant,
    normalize_path,
    rewrite_prefix,
)
from editree.workspace.loader import read_directory
from editree.workspace.node import NodeKind, WorkspaceNode
from editree.workspace.selection import ActiveSelection

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(self, root_handle: DirectoryHandle, root_name: Optional[str] = None):
        self.root_handle: Optional[DirectoryHandle] = root_handle
        self.root_name: str = root_name or root_handle.name
        self.tree: List[WorkspaceNode] = []
        self.selection: Optional[ActiveSelection] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @classmethod
    async def open(cls, root_handle: DirectoryHandle) -> "Workspace":
        """
        Open ``root_handle`` for editing.

        Asks for a readwrite grant when it is not already held and reads the
        root's immediate children. Deeper levels load on expansion.
        """
        state = await root_handle.query_permission("readwrite")
        if state != PERMISSION_GRANTED:
            state = await root_handle.request_permission("readwrite")
        if state != PERMISSION_GRANTED:
            raise PermissionDeniedError(
                f"Read/write access to '{root_handle.name}' was not granted",
                path=root_handle.name,
            )

        workspace = cls(root_handle)
        workspace.tree = await read_directory(root_handle, workspace.root_name)
        logger.info(f"Workspace opened: {workspace.root_name} ({len(workspace.tree)} top-level entries)")
        return workspace

    def close(self) -> None:
        """Tear the workspace down; it cannot be used afterwards."""
        logger.info(f"Workspace closed: {self.root_name}")
        self.tree = []
        self.selection = None
        self.root_handle = None

    @property
    def is_open(self) -> bool:
        return self.root_handle is not None

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def normalize(self, path: Optional[str]) -> str:
        """Full logical path for ``path``; None or '' means the root."""
        if not path:
            return self.root_name
        try:
            return normalize_path(path, self.root_name)
        except ValueError as e:
            raise InvalidNameError(str(e), path=path) from e

    def is_root(self, path: str) -> bool:
        return path == self.root_name

    # ------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------
    def iter_nodes(self) -> Iterator[WorkspaceNode]:
        for node in self.tree:
            yield from node.walk()

    def find(self, path: str) -> Optional[WorkspaceNode]:
        for node in self.iter_nodes():
            if node.path == path:
                return node
        return None

    def require(self, path: str) -> WorkspaceNode:
        node = self.find(path)
        if node is None:
            raise NotFoundError(f"Not in workspace tree: {path}", path=path)
        return node

    def find_directory_handle(self, path: str) -> Optional[DirectoryHandle]:
        """Handle of the loaded directory node at ``path``, if any."""
        if self.is_root(path):
            return self.root_handle
        node = self.find(path)
        if node is not None and node.is_directory and node.handle is not None:
            return node.handle
        return None

    def children_of(self, path: str) -> Optional[List[WorkspaceNode]]:
        """
        Loaded children of the directory at ``path``; None when the directory
        is unknown, collapsed or not a directory.
        """
        if self.is_root(path):
            return self.tree
        node = self.find(path)
        if node is None or not node.is_directory:
            return None
        return node.children

    def set_children(self, path: str, children: List[WorkspaceNode]) -> None:
        if self.is_root(path):
            self.tree = children
            return
        node = self.require(path)
        node.children = children

    def loaded_files(self) -> List[Tuple[str, str]]:
        """(path, content) of every file whose content is in memory."""
        return [
            (node.path, node.content)
            for node in self.iter_nodes()
            if not node.is_directory and node.content is not None
        ]

    # ------------------------------------------------------------------
    # Reconciliation helpers
    # ------------------------------------------------------------------
    async def refresh_directory(self, path: str, handle: DirectoryHandle) -> List[WorkspaceNode]:
        """Replace the children of ``path`` with a fresh listing of ``handle``."""
        previous = self.children_of(path)
        children = await read_directory(handle, path, previous)
        if not self.is_root(path):
            node = self.require(path)
            node.handle = handle
        self.set_children(path, children)
        return children

    def rewrite_paths(self, old_path: str, new_path: str) -> int:
        """
        Rebase every node at or below ``old_path`` onto ``new_path``.

        The active selection follows when it is the moved node or inside it;
        ancestors and unrelated selections are left alone. Returns the number
        of nodes rewritten.
        """
        count = 0
        for node in list(self.iter_nodes()):
            if is_same_or_descendant(node.path, old_path):
                if node.path == old_path:
                    node.name = base_name(new_path)
                node.path = rewrite_prefix(node.path, old_path, new_path)
                count += 1

        if self.selection and is_same_or_descendant(self.selection.path, old_path):
            new_selection = rewrite_prefix(self.selection.path, old_path, new_path)
            logger.debug(f"Selection follows rename: {self.selection.path} -> {new_selection}")
            self.selection.path = new_selection

        return count

    def clear_selection_under(self, path: str) -> bool:
        """Drop the selection if it is ``path`` or lies underneath it."""
        if self.selection and is_same_or_descendant(self.selection.path, path):
            logger.debug(f"Selection cleared: {self.selection.path} removed with {path}")
            self.selection = None
            return True
        return False

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def select(self, node: WorkspaceNode, content: str = "") -> ActiveSelection:
        self.selection = ActiveSelection(path=node.path, kind=node.kind, buffered_content=content)
        return self.selection

    def edit(self, content: str) -> None:
        """Replace the editor buffer of the active file. Storage is untouched."""
        if self.selection is None or self.selection.kind is not NodeKind.FILE:
            raise NotFoundError("No file is open in the editor")
        self.selection.edit(content)
