"""
editree: interactive workspace shell.

Opens a directory as a workspace and drives the tree mutation engine, the
AI patch applier and the navigation terminal from a line-based prompt.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from editree import __version__
from editree.config.settings import load_config
from editree.core.ai.factory import AIProviderFactory
from editree.core.chat_session import ChatError, ChatSession
from editree.core.errors import AbortedError, NotFoundError, WorkspaceError
from editree.core.mutation_engine import MutationResult, MutationStatus, Prompter, TreeMutationEngine
from editree.core.patch_applier import PatchProposal
from editree.core.terminal import TerminalCommandProcessor
from editree.storage.local import LocalDirectoryHandle
from editree.utils.path_utils import base_name, parent_path
from editree.workspace.node import NodeKind
from editree.workspace.tree_view import TreeView
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)

SHELL_HELP = """Workspace commands:
  tree [path]           Show the loaded tree
  open <path>           Open a file (or select a folder)
  expand <path>         Load a folder's children
  touch [path]          Create a file (prompts for a name without a path)
  mkdir [path]          Create a folder
  mv <path> [name]      Rename an entry
  rm <path> [-y]        Delete an entry
  refresh [path]        Re-read a folder from disk
  show                  Print the editor buffer
  write                 Replace the editor buffer (end input with a single '.')
  save                  Save the editor buffer
  folder [dir]          Open another folder
Assistant commands:
  ask <message>         Ask the assistant; file changes become a pending patch
  gen <comment>         Append generated code to the editor buffer
  complete [offset]     Insert a completion at offset (default: end of buffer)
  pending               Show the pending patch
  apply                 Apply the pending patch
  discard               Discard the pending patch
  exit                  Quit"""


class ConsolePrompter(Prompter):
    """Prompts on the console. EOF or an empty answer cancels."""

    def __init__(self, read_line: Callable[[str], str] = input):
        self.read_line = read_line

    async def _read(self, message: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.read_line, message)
        except EOFError:
            return None

    async def ask_name(self, message: str, default: Optional[str] = None) -> Optional[str]:
        suffix = f" [{default}]" if default else ""
        answer = await self._read(f"{message}{suffix} ")
        if answer is None:
            return None
        answer = answer.strip()
        if not answer:
            return default
        return answer

    async def confirm(self, message: str) -> bool:
        answer = await self._read(f"{message} [y/N] ")
        return answer is not None and answer.strip().lower() in ("y", "yes")


async def open_folder(path: Optional[str], prompter: Prompter) -> Workspace:
    """
    Open ``path`` as a workspace, asking for it when not given.

    Raises:
        AbortedError: The folder prompt was cancelled
        NotFoundError: The folder does not exist
    """
    if not path:
        path = await prompter.ask_name("Folder to open:", default=str(Path.cwd()))
        if not path:
            raise AbortedError("Folder selection cancelled")
    directory = Path(path).expanduser()
    if not directory.is_dir():
        raise NotFoundError(f"Folder not found: {directory}", path=str(directory))
    return await Workspace.open(LocalDirectoryHandle(directory))


class Shell:
    """
    Line-oriented front end over one workspace.

    ``handle`` runs one command line and returns False when the shell should
    exit. Output goes through ``write``.
    """

    def __init__(
        self,
        workspace: Workspace,
        config: Dict[str, Any],
        prompter: Prompter,
        provider=None,
        write: Callable[[str], None] = print,
        read_line: Callable[[str], str] = input,
    ):
        self.config = config
        self.prompter = prompter
        self.provider = provider
        self.write = write
        self.read_line = read_line
        self.pending: Optional[PatchProposal] = None
        self.terminal = TerminalCommandProcessor(workspace)
        self._bind(workspace)
        self._commands: Dict[str, Callable[[List[str]], Any]] = {
            "tree": self.cmd_tree,
            "open": self.cmd_open,
            "expand": self.cmd_expand,
            "touch": self.cmd_touch,
            "mkdir": self.cmd_mkdir,
            "mv": self.cmd_mv,
            "rm": self.cmd_rm,
            "refresh": self.cmd_refresh,
            "show": self.cmd_show,
            "write": self.cmd_write,
            "save": self.cmd_save,
            "folder": self.cmd_folder,
            "ask": self.cmd_ask,
            "gen": self.cmd_gen,
            "complete": self.cmd_complete,
            "pending": self.cmd_pending,
            "apply": self.cmd_apply,
            "discard": self.cmd_discard,
        }

    def _bind(self, workspace: Workspace) -> None:
        ws_cfg = self.config.get("workspace", {})
        self.workspace = workspace
        self.engine = TreeMutationEngine(
            workspace,
            prompter=self.prompter,
            strict_rename=bool(ws_cfg.get("strict_rename", False)),
        )
        self.chat = ChatSession(
            workspace,
            self.provider,
            max_files=int(ws_cfg.get("context_max_files", 20)),
            max_chars=int(ws_cfg.get("context_max_chars", 60000)),
            max_turns=int(ws_cfg.get("context_max_turns", 20)),
        )
        self.terminal.bind(workspace)
        self.tree_view = TreeView(workspace)
        self.pending = None

    @property
    def prompt(self) -> str:
        selection = self.workspace.selection
        marker = ""
        if selection is not None:
            marker = f" [{selection.name}{'*' if selection.dirty else ''}]"
        return f"{self.terminal.current_path}{marker}$ "

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def handle(self, line: str) -> bool:
        line = line.strip()
        if not line:
            return True
        head, _, rest = line.partition(" ")
        if head.lower() in ("ask", "gen"):
            parts = [head] + ([rest.strip()] if rest.strip() else [])
        else:
            try:
                parts = shlex.split(line)
            except ValueError as e:
                self.write(f"parse error: {e}")
                return True

        command, args = parts[0].lower(), parts[1:]
        if command in ("exit", "quit"):
            return False
        if command == "help":
            for out in self.terminal.execute("help").lines:
                self.write(out)
            self.write(SHELL_HELP)
            return True

        handler = self._commands.get(command)
        if handler is None:
            output = self.terminal.execute(line)
            for out in output.lines:
                self.write(out)
            return True

        try:
            await handler(args)
        except (WorkspaceError, ChatError) as e:
            self.write(f"✗ {e}")
        return True

    def _target(self, args: List[str], index: int = 0) -> Optional[str]:
        if len(args) <= index:
            return None
        return self.terminal.resolve_target(args[index])

    def _report(self, result: MutationResult) -> None:
        if result.status is MutationStatus.SUCCESS:
            self.write(f"✓ {result.message}")
        elif result.status is MutationStatus.DEGRADED:
            self.write(f"⚠ {result.message}")
        elif result.status is MutationStatus.ABORTED:
            self.write(f"… {result.message}")
        else:
            self.write(f"✗ {result.message} [{result.error_kind.value if result.error_kind else 'error'}]")

    # ------------------------------------------------------------------
    # Tree commands
    # ------------------------------------------------------------------
    async def cmd_tree(self, args: List[str]) -> None:
        self.write(self.tree_view.render(self._target(args)))

    async def cmd_open(self, args: List[str]) -> None:
        target = self._target(args)
        if target is None:
            self.write("usage: open <path>")
            return
        result = await self.engine.open_file(target)
        self._report(result)

    async def cmd_expand(self, args: List[str]) -> None:
        result = await self.engine.expand(self._target(args) or self.terminal.current_path)
        self._report(result)

    async def _create(self, kind: NodeKind, args: List[str]) -> None:
        target = self._target(args)
        if target is None:
            result = await self.engine.prompt_create(kind, self.terminal.current_path)
        else:
            result = await self.engine.create(kind, base_name(target), parent_path(target))
        self._report(result)

    async def cmd_touch(self, args: List[str]) -> None:
        await self._create(NodeKind.FILE, args)

    async def cmd_mkdir(self, args: List[str]) -> None:
        await self._create(NodeKind.DIRECTORY, args)

    async def cmd_mv(self, args: List[str]) -> None:
        target = self._target(args)
        if target is None:
            self.write("usage: mv <path> [new-name]")
            return
        if len(args) > 1:
            result = await self.engine.rename(target, args[1])
        else:
            result = await self.engine.prompt_rename(target)
        if result.status is MutationStatus.SUCCESS:
            self.terminal.follow(target, result.path)
        elif result.status is MutationStatus.DEGRADED and not result.data["old_exists"]:
            self.terminal.follow(target, result.path if result.data["new_exists"] else None)
        self._report(result)

    async def cmd_rm(self, args: List[str]) -> None:
        flags = [a for a in args if a in ("-y", "--yes")]
        paths = [a for a in args if a not in flags]
        target = self._target(paths)
        if target is None:
            self.write("usage: rm <path> [-y]")
            return
        confirmed = bool(flags) or not self.config.get("workspace", {}).get("confirm_delete", True)
        result = await self.engine.delete(target, confirmed=confirmed)
        if result.ok:
            self.terminal.follow(target, None)
        self._report(result)

    async def cmd_refresh(self, args: List[str]) -> None:
        result = await self.engine.refresh(self._target(args) or self.terminal.current_path)
        self._report(result)

    async def cmd_folder(self, args: List[str]) -> None:
        workspace = await open_folder(args[0] if args else None, self.prompter)
        self.workspace.close()
        self._bind(workspace)
        self.write(f"✓ Opened {workspace.root_name}")

    # ------------------------------------------------------------------
    # Editor commands
    # ------------------------------------------------------------------
    async def cmd_show(self, args: List[str]) -> None:
        selection = self.workspace.selection
        if selection is None:
            self.write("No file is open.")
            return
        self.write(f"--- {selection.path}{' (modified)' if selection.dirty else ''}")
        self.write(selection.buffered_content)

    async def cmd_write(self, args: List[str]) -> None:
        if self.workspace.selection is None:
            raise NotFoundError("No file is open in the editor")
        lines = []
        while True:
            try:
                line = await asyncio.to_thread(self.read_line, "")
            except EOFError:
                break
            if line == ".":
                break
            lines.append(line)
        self.workspace.edit("\n".join(lines))
        self.write(f"Buffer updated ({len(lines)} lines, not saved)")

    async def cmd_save(self, args: List[str]) -> None:
        self._report(await self.engine.save_active())

    # ------------------------------------------------------------------
    # Assistant commands
    # ------------------------------------------------------------------
    async def cmd_ask(self, args: List[str]) -> None:
        if not args:
            self.write("usage: ask <message>")
            return
        reply = await self.chat.ask(args[0])
        if reply.summary:
            self.write(reply.summary)
        if reply.proposal.is_empty and not reply.proposal.rejected:
            return
        if self.pending is not None and self.pending.is_pending:
            self.write("(previous pending patch replaced)")
        self.pending = reply.proposal
        await self.cmd_pending([])

    async def cmd_gen(self, args: List[str]) -> None:
        if not args:
            self.write("usage: gen <comment>")
            return
        suggestion = await self.chat.generate_from_comment(args[0])
        self.write(suggestion)
        self.write("(appended to the editor buffer, not saved)")

    async def cmd_complete(self, args: List[str]) -> None:
        cursor = None
        if args:
            try:
                cursor = int(args[0])
            except ValueError:
                self.write("usage: complete [offset]")
                return
        suggestion = await self.chat.complete_at(cursor)
        if suggestion is None:
            self.write("No completion suggested.")
            return
        self.write(suggestion)
        self.write("(inserted into the editor buffer, not saved)")

    async def cmd_pending(self, args: List[str]) -> None:
        if self.pending is None or not self.pending.is_pending:
            self.write("No pending patch.")
            return
        self.write("Pending patch (apply / discard):")
        for line in self.pending.describe(self.workspace):
            self.write(f"  {line}")

    async def cmd_apply(self, args: List[str]) -> None:
        if self.pending is None or not self.pending.is_pending:
            self.write("No pending patch.")
            return
        proposal, self.pending = self.pending, None
        for item in await proposal.commit(self.engine):
            self._report(item.result)

    async def cmd_discard(self, args: List[str]) -> None:
        if self.pending is None or not self.pending.is_pending:
            self.write("No pending patch.")
            return
        self.pending.discard()
        self.pending = None
        self.write("Patch discarded.")

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def run(self) -> None:
        self.write(f"editree {__version__} - {self.workspace.root_name} (type 'help')")
        self.write(self.tree_view.render())
        while True:
            try:
                line = await asyncio.to_thread(self.read_line, self.prompt)
            except EOFError:
                self.write("")
                break
            except KeyboardInterrupt:
                self.write("")
                continue
            if not await self.handle(line):
                break
        if self.workspace.selection is not None and self.workspace.selection.dirty:
            self.write(f"Unsaved changes in {self.workspace.selection.path} were discarded.")
        self.workspace.close()


def _setup_logging(config: Dict[str, Any], verbose: bool = False) -> None:
    log_cfg = config.get("logging", {})
    level_name = "DEBUG" if verbose else str(log_cfg.get("level") or "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)
    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    if log_cfg.get("file"):
        logging.basicConfig(filename=log_cfg["file"], level=level, format=fmt)
    else:
        logging.basicConfig(stream=sys.stderr, level=level if verbose else max(level, logging.WARNING), format=fmt)


async def _run_shell(args, config: Dict[str, Any]) -> int:
    prompter = ConsolePrompter()
    try:
        workspace = await open_folder(args.dir or str(Path.cwd()), prompter)
    except AbortedError as e:
        print(f"… {e}")
        return 1
    except WorkspaceError as e:
        print(f"✗ Could not open folder: {e}")
        return 1

    try:
        provider = AIProviderFactory.create_from_config(config.get("ai", {}))
    except ValueError as e:
        logger.warning(f"AI provider unavailable: {e}")
        provider = None
    if provider is None:
        print("(assistant disabled: no AI provider configured)")

    shell = Shell(workspace, config, prompter, provider=provider)
    await shell.run()
    return 0


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="editree",
        description="editree: edit a directory tree with an AI assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  editree                      # Open the current directory
  editree --dir ~/src/proj     # Open another directory
  editree --config ./cfg.json  # Use another config file
        """
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"editree {__version__}"
    )
    parser.add_argument(
        "--dir",
        type=str,
        help="Directory to open (default: current directory)"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Config file (default: ~/.editree/config.json)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug output"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"✗ Could not load config: {e}")
        return 1

    _setup_logging(config, verbose=args.verbose)

    try:
        return asyncio.run(_run_shell(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main() or 0)
