"""
Tree Mutation Engine

Create / rename / delete / refresh for the workspace tree. Every mutation
runs the same pipeline to completion before returning:

    Validate -> PreflightCheck -> StorageMutate -> Reconcile

and is followed, in program order, by a reconcile of the narrowest affected
parent directory only. Failures never escape: each public operation returns
a MutationResult naming the stage it stopped at.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from editree.core.errors import (
    AbortedError,
    AlreadyExistsError,
    DegradedRenameError,
    ErrorKind,
    InvalidNameError,
    NotAllowedError,
    NotFoundError,
    PermissionDeniedError,
    StorageFailureError,
    TypeMismatchError,
    WorkspaceError,
)
from editree.core.resolver import PathResolver
from editree.services.validation_service import ValidationService
from editree.storage.base import (
    PERMISSION_GRANTED,
    AnyHandle,
    DirectoryHandle,
    StorageHandle,
    write_text,
)
from editree.utils.path_utils import base_name, join_path, parent_path
from editree.workspace.node import NodeKind
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)


class MutationStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"
    DEGRADED = "degraded"


class MutationStage(Enum):
    VALIDATE = "validate"
    PREFLIGHT = "preflight"
    STORAGE_MUTATE = "storage_mutate"
    RECONCILE = "reconcile"
    DONE = "done"


@dataclass
class MutationResult:
    status: MutationStatus
    message: str
    path: Optional[str] = None
    stage: MutationStage = MutationStage.DONE
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status in (MutationStatus.SUCCESS, MutationStatus.DEGRADED)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "status": self.status.value,
            "message": self.message,
            "stage": self.stage.value,
        }
        if self.path is not None:
            result["path"] = self.path
        if self.error_kind is not None:
            result["error_kind"] = self.error_kind.value
        if self.error is not None:
            result["error"] = self.error
        if self.data is not None:
            result["data"] = self.data
        return result


class Prompter(ABC):
    """Blocking user prompts. Returning None / False cancels the operation."""

    @abstractmethod
    async def ask_name(self, message: str, default: Optional[str] = None) -> Optional[str]:
        pass

    @abstractmethod
    async def confirm(self, message: str) -> bool:
        pass


class TreeMutationEngine:
    """
    Applies structural changes to storage and reconciles the workspace tree.

    Args:
        workspace: The open workspace (explicit context, no globals)
        prompter: Collaborator for name prompts and delete confirmation
        strict_rename: Fail renames that lack an atomic move instead of
            degrading to a refresh-only rename
    """

    def __init__(
        self,
        workspace: Workspace,
        prompter: Optional[Prompter] = None,
        strict_rename: bool = False,
        validator: Optional[ValidationService] = None,
    ):
        self.workspace = workspace
        self.resolver = PathResolver(workspace)
        self.prompter = prompter
        self.strict_rename = strict_rename
        self.validator = validator or ValidationService()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    async def create(
        self,
        kind: Union[NodeKind, str],
        name: str,
        parent_path: Optional[str] = None,
    ) -> MutationResult:
        ws = self.workspace
        stage = MutationStage.VALIDATE
        parent = None
        new_path = None
        try:
            kind = NodeKind(kind) if isinstance(kind, str) else kind
            parent = ws.normalize(parent_path)
            self.validator.validate_entry_name(name)
            new_path = join_path(parent, name)

            stage = MutationStage.PREFLIGHT
            directory = await self.resolver.resolve_directory(parent)
            await self._check_vacant(directory, name, new_path)

            stage = MutationStage.STORAGE_MUTATE
            if kind is NodeKind.DIRECTORY:
                await directory.get_directory_handle(name, create=True)
            else:
                await directory.get_file_handle(name, create=True)
            logger.info(f"Created {kind.value}: {new_path}")

            stage = MutationStage.RECONCILE
            await self._reconcile(parent, directory)
            if kind is NodeKind.DIRECTORY:
                # a fresh directory is known to be empty; no listing needed
                ws.require(new_path).children = []
        except Exception as e:
            return await self._failed("create", e, stage, new_path or parent_path, parent)

        return MutationResult(
            status=MutationStatus.SUCCESS,
            message=f"Created {kind.value}: {new_path}",
            path=new_path,
            data={"kind": kind.value},
        )

    # ------------------------------------------------------------------
    # Rename
    # ------------------------------------------------------------------
    async def rename(self, old_path: str, new_name: str) -> MutationResult:
        ws = self.workspace
        stage = MutationStage.VALIDATE
        parent = None
        old = None
        try:
            old = ws.normalize(old_path)
            if ws.is_root(old):
                raise NotAllowedError("The workspace root cannot be renamed", path=old)
            self.validator.validate_entry_name(new_name)
            await self._ensure_node(old)
            node = ws.require(old)
            parent = parent_path(old)
            new = join_path(parent, new_name)

            stage = MutationStage.PREFLIGHT
            directory = await self.resolver.resolve_directory(parent)
            await self._check_vacant(directory, new_name, new)

            stage = MutationStage.STORAGE_MUTATE
            handle = await self.resolver.resolve(old, node.kind)
            moved = await self._move(handle, directory, new_name, old)
            if moved:
                rewritten = ws.rewrite_paths(old, new)
                logger.info(f"Renamed {old} -> {new} ({rewritten} node paths rewritten)")

            stage = MutationStage.RECONCILE
            await self._reconcile(parent, directory)
        except Exception as e:
            return await self._failed("rename", e, stage, old or old_path, parent)

        if moved:
            return MutationResult(
                status=MutationStatus.SUCCESS,
                message=f"Renamed {old} -> {new}",
                path=new,
                data={"old_path": old},
            )
        return self._degraded_outcome(old, new)

    async def _move(self, handle: StorageHandle, directory: DirectoryHandle, new_name: str, old: str) -> bool:
        """Try the atomic move; False means the rename degraded."""
        reason = None
        if handle.supports_move:
            try:
                await handle.move(directory, new_name)
                return True
            except NotImplementedError as e:
                reason = str(e) or "move is not implemented"
            except StorageFailureError as e:
                reason = str(e)
        else:
            reason = "storage has no atomic move"

        if self.strict_rename:
            raise DegradedRenameError(f"Cannot rename {old}: {reason}", path=old)
        logger.warning(f"Rename of {old} degraded: {reason}; reconciling parent only")
        return False

    def _degraded_outcome(self, old: str, new: str) -> MutationResult:
        """Settle the selection from whatever the reconcile found."""
        ws = self.workspace
        old_exists = ws.find(old) is not None
        new_exists = ws.find(new) is not None
        if not old_exists and new_exists:
            ws.rewrite_paths(old, new)
        elif not old_exists:
            ws.clear_selection_under(old)
        return MutationResult(
            status=MutationStatus.DEGRADED,
            message=f"Rename of {old} degraded; tree refreshed from storage",
            path=new if new_exists else old,
            error_kind=ErrorKind.DEGRADED_RENAME,
            data={"old_path": old, "old_exists": old_exists, "new_exists": new_exists},
        )

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    async def delete(self, path: str, confirmed: bool = False) -> MutationResult:
        ws = self.workspace
        stage = MutationStage.VALIDATE
        parent = None
        full = None
        try:
            full = ws.normalize(path)
            if ws.is_root(full):
                raise NotAllowedError("The workspace root cannot be deleted", path=full)
            node = ws.find(full)
            kind = node.kind if node is not None else NodeKind((await self.resolver.resolve(full)).kind)
            parent = parent_path(full)

            if not confirmed:
                if self.prompter is None:
                    raise AbortedError(f"Deleting {full} needs confirmation", path=full)
                noun = "folder and everything in it" if kind is NodeKind.DIRECTORY else "file"
                if not await self.prompter.confirm(f"Delete {noun} '{full}'?"):
                    raise AbortedError(f"Deletion of {full} cancelled", path=full)

            stage = MutationStage.PREFLIGHT
            directory = await self.resolver.resolve_directory(parent)

            stage = MutationStage.STORAGE_MUTATE
            await directory.remove_entry(base_name(full), recursive=kind is NodeKind.DIRECTORY)
            ws.clear_selection_under(full)
            logger.info(f"Deleted {kind.value}: {full}")

            stage = MutationStage.RECONCILE
            await self._reconcile(parent, directory)
        except Exception as e:
            return await self._failed("delete", e, stage, full or path, parent)

        return MutationResult(
            status=MutationStatus.SUCCESS,
            message=f"Deleted {kind.value}: {full}",
            path=full,
        )

    # ------------------------------------------------------------------
    # Refresh / expand
    # ------------------------------------------------------------------
    async def refresh(self, path: Optional[str] = None) -> MutationResult:
        """Re-read one directory's immediate children from storage."""
        ws = self.workspace
        full = None
        try:
            full = ws.normalize(path)
            await self._ensure_node(full)
            if not ws.is_root(full) and not ws.require(full).is_directory:
                raise TypeMismatchError(f"Not a directory: {full}", path=full)
            await self._reconcile(full)
        except Exception as e:
            return await self._failed("refresh", e, MutationStage.RECONCILE, full or path, None)

        return MutationResult(
            status=MutationStatus.SUCCESS,
            message=f"Refreshed {full}",
            path=full,
            data={"children": len(ws.children_of(full) or [])},
        )

    async def expand(self, path: str) -> MutationResult:
        """Load a collapsed directory; already loaded ones are left as they are."""
        ws = self.workspace
        try:
            full = ws.normalize(path)
        except InvalidNameError as e:
            return await self._failed("expand", e, MutationStage.VALIDATE, path, None)
        if ws.children_of(full) is not None:
            return MutationResult(status=MutationStatus.SUCCESS, message=f"Already loaded: {full}", path=full)
        return await self.refresh(full)

    async def reveal(self, path: str) -> None:
        """Make sure the directory at ``path`` and its ancestors are loaded."""
        full = self.workspace.normalize(path)
        await self._ensure_node(full)
        if self.workspace.children_of(full) is None:
            await self._reconcile(full)

    # ------------------------------------------------------------------
    # Files: open / save / create-or-overwrite
    # ------------------------------------------------------------------
    async def open_file(self, path: str) -> MutationResult:
        """Make ``path`` the active selection, reading file content on first use."""
        ws = self.workspace
        full = None
        try:
            full = ws.normalize(path)
            if ws.is_root(full):
                raise TypeMismatchError("The workspace root cannot be opened in the editor", path=full)
            await self._ensure_node(full)
            node = ws.require(full)

            if node.is_directory:
                ws.select(node)
            else:
                if node.content is None:
                    node.content = await self._read(node.handle, full)
                ws.select(node, node.content)
        except Exception as e:
            return await self._failed("open", e, MutationStage.VALIDATE, full or path, None)

        return MutationResult(
            status=MutationStatus.SUCCESS,
            message=f"Opened {full}",
            path=full,
            data={"kind": node.kind.value},
        )

    async def _read(self, handle: Optional[AnyHandle], full: str) -> str:
        try:
            if handle is None:
                raise NotFoundError(f"No handle for {full}", path=full)
            return await handle.read_text()
        except NotFoundError:
            fresh = await self.resolver.resolve_file(full)
            node = self.workspace.find(full)
            if node is not None:
                node.handle = fresh
            return await fresh.read_text()

    async def save_active(self) -> MutationResult:
        """Persist the editor buffer of the active file."""
        ws = self.workspace
        selection = ws.selection
        path = selection.path if selection else None
        try:
            if selection is None:
                raise NotFoundError("No file is open in the editor")
            if selection.kind is not NodeKind.FILE:
                raise NotAllowedError(f"A directory cannot be saved: {path}", path=path)

            node = ws.find(path)
            handle = node.handle if node is not None and node.handle is not None else None
            if handle is None:
                handle = await self.resolver.resolve_file(path)
            await self._ensure_write_permission(handle, path)
            try:
                await write_text(handle, selection.buffered_content)
            except NotFoundError:
                handle = await self.resolver.resolve_file(path)
                await write_text(handle, selection.buffered_content)
                if node is not None:
                    node.handle = handle

            if node is not None:
                node.content = selection.buffered_content
            selection.mark_saved()
            logger.info(f"Saved {path}")
        except Exception as e:
            return await self._failed("save", e, MutationStage.STORAGE_MUTATE, path, None)

        return MutationResult(status=MutationStatus.SUCCESS, message=f"Saved {path}", path=path)

    async def write_file(self, path: str, content: str) -> MutationResult:
        """
        Create-or-overwrite a file with ``content``.

        Missing intermediate directories are created. The owning directory
        is reconciled afterwards and an open editor buffer for the same path
        is replaced with the written content.
        """
        ws = self.workspace
        stage = MutationStage.VALIDATE
        parent = None
        full = None
        created = False
        try:
            full = ws.normalize(path)
            if ws.is_root(full):
                raise InvalidNameError("The workspace root is not a file", path=full)
            name = base_name(full)
            self.validator.validate_entry_name(name)
            parent = parent_path(full)
            node = ws.find(full)
            if node is not None and node.is_directory:
                raise AlreadyExistsError(f"A directory already exists at {full}", path=full)

            stage = MutationStage.STORAGE_MUTATE
            first_created = None
            if node is not None:
                handle = await self.resolver.resolve_file(full)
            else:
                directory, first_created = await self.resolver.ensure_directory(parent)
                try:
                    handle = await directory.get_file_handle(name)
                except TypeMismatchError as e:
                    raise AlreadyExistsError(f"A directory already exists at {full}", path=full) from e
                except NotFoundError:
                    handle = await directory.get_file_handle(name, create=True)
                    created = True
            await self._ensure_write_permission(handle, full)
            await write_text(handle, content)
            logger.info(f"{'Created' if created else 'Overwrote'} file: {full}")

            stage = MutationStage.RECONCILE
            if first_created is not None:
                await self._reconcile(parent_path(first_created))
                await self.reveal(parent)
            else:
                await self._reconcile(parent)

            written = ws.find(full)
            if written is not None:
                written.content = content
            if ws.selection is not None and ws.selection.path == full:
                ws.selection.buffered_content = content
                ws.selection.mark_saved()
        except Exception as e:
            return await self._failed("write", e, stage, full or path, parent)

        return MutationResult(
            status=MutationStatus.SUCCESS,
            message=f"{'Created' if created else 'Updated'} {full}",
            path=full,
            data={"created": created},
        )

    # ------------------------------------------------------------------
    # Prompted operations
    # ------------------------------------------------------------------
    async def prompt_create(self, kind: Union[NodeKind, str], parent_path: Optional[str] = None) -> MutationResult:
        """Ask for a name, create the entry and open it when it is a file."""
        kind = NodeKind(kind) if isinstance(kind, str) else kind
        noun = "file" if kind is NodeKind.FILE else "folder"
        name = await self._ask(f"Name for the new {noun}:")
        if name is None:
            return self._aborted(f"Creation of {noun} cancelled", parent_path)

        result = await self.create(kind, name, parent_path)
        if result.ok and kind is NodeKind.FILE:
            opened = await self.open_file(result.path)
            if not opened.ok:
                logger.warning(f"Created {result.path} but could not open it: {opened.message}")
        return result

    async def prompt_rename(self, path: str) -> MutationResult:
        current = base_name(path)
        name = await self._ask(f"New name for '{current}':", default=current)
        if name is None or name == current:
            return self._aborted("Rename cancelled", path)
        return await self.rename(path, name)

    async def _ask(self, message: str, default: Optional[str] = None) -> Optional[str]:
        if self.prompter is None:
            return None
        return await self.prompter.ask_name(message, default)

    @staticmethod
    def _aborted(message: str, path: Optional[str]) -> MutationResult:
        return MutationResult(
            status=MutationStatus.ABORTED,
            message=message,
            path=path,
            stage=MutationStage.VALIDATE,
            error_kind=ErrorKind.ABORTED,
        )

    # ------------------------------------------------------------------
    # Pipeline helpers
    # ------------------------------------------------------------------
    async def _check_vacant(self, directory: DirectoryHandle, name: str, path: str) -> None:
        """Preflight: fetch (never create) ``name`` as either kind."""
        for getter in (directory.get_file_handle, directory.get_directory_handle):
            try:
                await getter(name)
            except TypeMismatchError:
                break
            except NotFoundError:
                continue
            break
        else:
            return
        raise AlreadyExistsError(f"An entry named '{name}' already exists", path=path)

    async def _ensure_write_permission(self, handle: StorageHandle, path: str) -> None:
        state = await handle.query_permission("readwrite")
        if state != PERMISSION_GRANTED:
            state = await handle.request_permission("readwrite")
        if state != PERMISSION_GRANTED:
            raise PermissionDeniedError(f"Write permission for {path} was not granted", path=path)

    async def _ensure_node(self, path: str) -> None:
        """Load collapsed ancestors until the node for ``path`` is in the tree."""
        ws = self.workspace
        if ws.is_root(path) or ws.find(path) is not None:
            return
        parent = parent_path(path)
        await self._ensure_node(parent)
        if ws.children_of(parent) is None:
            await self._reconcile(parent)
        if ws.find(path) is None:
            raise NotFoundError(f"Not found: {path}", path=path)

    async def _reconcile(self, path: str, handle: Optional[DirectoryHandle] = None) -> None:
        """Re-read exactly one directory into the tree."""
        await self._ensure_node(path)
        if handle is None:
            handle = await self.resolver.resolve_directory(path)
        await self.workspace.refresh_directory(path, handle)
        logger.debug(f"Reconciled {path}")

    async def _best_effort_refresh(self, path: Optional[str]) -> None:
        if path is None or not self.workspace.is_open:
            return
        try:
            await self._reconcile(path)
        except Exception as e:
            logger.error(f"Best-effort refresh of {path} failed: {e}")

    async def _failed(
        self,
        operation: str,
        error: Exception,
        stage: MutationStage,
        path: Optional[str],
        parent: Optional[str],
    ) -> MutationResult:
        if not isinstance(error, WorkspaceError):
            logger.exception(f"{operation} failed unexpectedly at {stage.value}: {path}")
            error = StorageFailureError(str(error) or type(error).__name__, path=path)

        if stage in (MutationStage.STORAGE_MUTATE, MutationStage.RECONCILE):
            await self._best_effort_refresh(parent)

        if isinstance(error, AbortedError):
            logger.info(f"{operation} aborted: {error}")
            status = MutationStatus.ABORTED
        else:
            logger.error(f"{operation} failed at {stage.value}: {error}")
            status = MutationStatus.FAILURE

        return MutationResult(
            status=status,
            message=str(error),
            path=path,
            stage=stage,
            error_kind=error.kind,
            error=type(error).__name__,
        )
