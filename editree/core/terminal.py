"""
Terminal Command Processor

A read-only interpreter over the workspace tree for navigation feedback.
It never touches storage: ``ls`` shows what the tree has loaded, and ``cd``
only moves within directories the tree knows about.
"""

import logging
import shlex
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from editree.utils.path_utils import (
    SEPARATOR,
    is_same_or_descendant,
    parent_path,
    rewrite_prefix,
    split_path,
)
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class TerminalOutput:
    lines: List[str] = field(default_factory=list)
    clear: bool = False
    error: bool = False


class TerminalCommandProcessor:
    """
    Interpreter for ``help``, ``clear``, ``pwd``, ``echo``, ``ls`` and ``cd``.

    Paths are relative to ``current_path``; a leading ``/`` starts from the
    root. ``..`` pops one segment and is clamped at the root.
    """

    HELP = [
        "Available commands:",
        "  help          Show this help",
        "  clear         Clear the terminal",
        "  pwd           Print the current directory",
        "  echo <args>   Print the arguments",
        "  ls [path]     List a directory",
        "  cd <path>     Change directory",
    ]

    def __init__(self, workspace: Optional[Workspace]):
        self.workspace = workspace
        self.current_path: Optional[str] = workspace.root_name if workspace else None
        self._commands: Dict[str, Callable[[List[str]], TerminalOutput]] = {
            "help": self._help,
            "clear": self._clear,
            "pwd": self._pwd,
            "echo": self._echo,
            "ls": self._ls,
            "cd": self._cd,
        }

    def bind(self, workspace: Optional[Workspace]) -> None:
        """Switch to another workspace (or none), starting at its root."""
        self.workspace = workspace
        self.current_path = workspace.root_name if workspace else None

    def execute(self, line: str) -> TerminalOutput:
        try:
            parts = shlex.split(line)
        except ValueError as e:
            return TerminalOutput([f"parse error: {e}"], error=True)
        if not parts:
            return TerminalOutput()

        command, args = parts[0].lower(), parts[1:]
        handler = self._commands.get(command)
        if handler is None:
            return TerminalOutput([f"command not found: {parts[0]}"], error=True)
        if command not in ("help", "clear", "echo") and not self._has_workspace():
            return TerminalOutput(["No folder open."], error=True)
        return handler(args)

    def _has_workspace(self) -> bool:
        return self.workspace is not None and self.workspace.is_open

    def follow(self, old_path: str, new_path: Optional[str]) -> None:
        """
        Keep ``current_path`` valid after ``old_path`` was renamed to
        ``new_path`` (or removed, when ``new_path`` is None).
        """
        if self.current_path is None or not is_same_or_descendant(self.current_path, old_path):
            return
        if new_path is None:
            self.current_path = parent_path(old_path) or self.workspace.root_name
        else:
            self.current_path = rewrite_prefix(self.current_path, old_path, new_path)

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------
    def resolve_target(self, arg: str) -> str:
        """Full logical path for ``arg``, clamped at the root."""
        root = self.workspace.root_name
        if arg.startswith(SEPARATOR):
            segments = []
        else:
            segments = split_path(self.current_path)[1:]

        for part in split_path(arg):
            if part == ".":
                continue
            if part == "..":
                if segments:
                    segments.pop()
                continue
            segments.append(part)

        if arg.startswith(SEPARATOR) and segments and segments[0] == root:
            segments = segments[1:]
        return SEPARATOR.join([root] + segments)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _help(self, args: List[str]) -> TerminalOutput:
        return TerminalOutput(list(self.HELP))

    def _clear(self, args: List[str]) -> TerminalOutput:
        if self._has_workspace():
            banner = f"Terminal cleared. Current folder: {self.current_path}"
        else:
            banner = "Terminal cleared. No folder open."
        return TerminalOutput([banner], clear=True)

    def _pwd(self, args: List[str]) -> TerminalOutput:
        return TerminalOutput([self.current_path])

    def _echo(self, args: List[str]) -> TerminalOutput:
        return TerminalOutput([" ".join(args)])

    def _ls(self, args: List[str]) -> TerminalOutput:
        ws = self.workspace
        target = self.resolve_target(args[0]) if args else self.current_path

        if not ws.is_root(target):
            node = ws.find(target)
            if node is None:
                return TerminalOutput([f"ls: {args[0] if args else target}: not found"], error=True)
            if not node.is_directory:
                return TerminalOutput([node.name])

        children = ws.children_of(target)
        if children is None:
            return TerminalOutput([f"({target} not loaded; expand it first)"])
        if not children:
            return TerminalOutput([f"({target} is an empty directory)"])
        names = [f"{c.name}/" if c.is_directory else c.name for c in children]
        return TerminalOutput(["  ".join(names)])

    def _cd(self, args: List[str]) -> TerminalOutput:
        ws = self.workspace
        target = self.resolve_target(args[0]) if args else ws.root_name

        if not ws.is_root(target):
            node = ws.find(target)
            if node is None:
                return TerminalOutput([f"cd: {args[0]}: not found"], error=True)
            if not node.is_directory:
                return TerminalOutput([f"cd: {args[0]}: not a directory"], error=True)

        logger.debug(f"Terminal cd: {self.current_path} -> {target}")
        self.current_path = target
        return TerminalOutput()
