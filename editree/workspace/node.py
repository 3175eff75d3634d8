"""
Workspace tree node model.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

from editree.storage.base import KIND_DIRECTORY, KIND_FILE, AnyHandle


class NodeKind(Enum):
    FILE = KIND_FILE
    DIRECTORY = KIND_DIRECTORY


@dataclass(eq=False)
class WorkspaceNode:
    """
    One entry of the in-memory mirror of the opened directory.

    ``id`` always equals ``path``. ``children`` is None for files and for
    directories that were never expanded; ``content`` is None until a file
    has been read. The node is the only holder of its ``handle``.
    """

    name: str
    kind: NodeKind
    path: str
    handle: Optional[AnyHandle] = None
    children: Optional[List["WorkspaceNode"]] = None
    content: Optional[str] = None

    @property
    def id(self) -> str:
        return self.path

    @property
    def is_directory(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    @property
    def is_loaded(self) -> bool:
        """Directory whose children have been read at least once."""
        return self.is_directory and self.children is not None

    def walk(self) -> Iterator["WorkspaceNode"]:
        """Yield this node and every loaded descendant, depth first."""
        yield self
        for child in self.children or ():
            yield from child.walk()

    def __repr__(self) -> str:
        return f"WorkspaceNode({self.kind.value} {self.path!r})"


def sort_key(node: WorkspaceNode):
    """Directories before files, then lexicographic by name."""
    return (not node.is_directory, node.name)


def sort_nodes(nodes: List[WorkspaceNode]) -> List[WorkspaceNode]:
    return sorted(nodes, key=sort_key)
