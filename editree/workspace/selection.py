"""
Active selection: the node open in the editor plus its unsaved buffer.
"""

from dataclasses import dataclass

from editree.workspace.node import NodeKind


@dataclass
class ActiveSelection:
    path: str
    kind: NodeKind = NodeKind.FILE
    buffered_content: str = ""
    dirty: bool = False

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def edit(self, content: str) -> None:
        self.buffered_content = content
        self.dirty = True

    def mark_saved(self) -> None:
        self.dirty = False
