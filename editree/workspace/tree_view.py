"""
Tree View: text rendering of the workspace tree for the shell.

Only what the tree has loaded is shown; collapsed directories are marked
instead of being read.
"""

from typing import List, Optional

from editree.workspace.node import WorkspaceNode
from editree.workspace.workspace import Workspace


class TreeView:
    def __init__(self, workspace: Workspace, max_depth: int = 12):
        self.workspace = workspace
        self.max_depth = max_depth

    def _marker(self, node: WorkspaceNode) -> str:
        selection = self.workspace.selection
        if selection is None or selection.path != node.path:
            return ""
        return " *" + (" (modified)" if selection.dirty else "")

    def _build_tree(self, nodes: List[WorkspaceNode], prefix: str = "", depth: int = 0) -> List[str]:
        if depth > self.max_depth:
            return [f"{prefix}└── ... (max depth)"]

        lines = []
        for i, node in enumerate(nodes):
            is_last = i == len(nodes) - 1
            branch = "└── " if is_last else "├── "
            extension = "    " if is_last else "│   "

            if node.is_directory:
                name = f"{node.name}/"
                if not node.is_loaded:
                    name += " …"
            else:
                name = node.name
            lines.append(f"{prefix}{branch}{name}{self._marker(node)}")

            if node.is_loaded:
                lines.extend(self._build_tree(node.children, prefix + extension, depth + 1))
        return lines

    def render_lines(self, path: Optional[str] = None) -> List[str]:
        """Lines for the subtree at ``path`` (the root by default)."""
        ws = self.workspace
        full = ws.normalize(path)
        children = ws.children_of(full)
        lines = [f"{full}/"]
        if children is None:
            lines.append("└── … (not loaded)")
            return lines
        lines.extend(self._build_tree(children))
        return lines

    def render(self, path: Optional[str] = None) -> str:
        return "\n".join(self.render_lines(path))
