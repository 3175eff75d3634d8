"""
Reads directory listings from storage into workspace nodes.
"""

import logging
from typing import Dict, List, Optional

from editree.storage.base import KIND_DIRECTORY, DirectoryHandle
from editree.utils.path_utils import join_path
from editree.workspace.node import NodeKind, WorkspaceNode, sort_nodes

logger = logging.getLogger(__name__)


async def read_directory(
    handle: DirectoryHandle,
    path: str,
    previous: Optional[List[WorkspaceNode]] = None,
) -> List[WorkspaceNode]:
    """
    Build fresh nodes for the immediate children of ``handle``.

    ``previous`` is the old child list of the same directory. Only ``handle``
    itself is listed. Loaded file content and the loaded children of
    expanded directories are carried over to the fresh node with the same
    path; collapsed directories stay collapsed.
    """
    old: Dict[str, WorkspaceNode] = {node.path: node for node in previous or []}
    nodes: List[WorkspaceNode] = []

    async for entry in handle.entries():
        child_path = join_path(path, entry.name)
        prior = old.get(child_path)

        if entry.kind == KIND_DIRECTORY:
            node = WorkspaceNode(
                name=entry.name,
                kind=NodeKind.DIRECTORY,
                path=child_path,
                handle=entry,
            )
            if prior is not None and prior.is_directory and prior.is_loaded:
                node.children = prior.children
        else:
            node = WorkspaceNode(
                name=entry.name,
                kind=NodeKind.FILE,
                path=child_path,
                handle=entry,
            )
            if prior is not None and not prior.is_directory and prior.content is not None:
                node.content = prior.content

        nodes.append(node)

    logger.debug(f"Read {len(nodes)} entries under {path}")
    return sort_nodes(nodes)
