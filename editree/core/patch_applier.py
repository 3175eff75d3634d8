"""
AI Patch Applier

Two-phase application of extracted file operations. A PatchProposal is
shown to the user and then either committed or discarded as a whole; it can
be settled only once. Committing drives every operation through the
mutation engine's create-or-overwrite, and each one is reported on its own.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from editree.core.mutation_engine import MutationResult, TreeMutationEngine
from editree.core.patch_parser import PatchOperation, extract_operations
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)


class ProposalState(Enum):
    PROPOSED = "proposed"
    COMMITTED = "committed"
    DISCARDED = "discarded"


class ProposalStateError(RuntimeError):
    """Commit or discard of a proposal that was already settled."""


@dataclass
class PatchOperationResult:
    operation: PatchOperation
    result: MutationResult

    @property
    def ok(self) -> bool:
        return self.result.ok

    @property
    def path(self) -> str:
        return self.operation.file_path


class PatchProposal:
    def __init__(
        self,
        operations: List[PatchOperation],
        summary: str = "",
        rejected: Optional[List[str]] = None,
    ):
        self.operations = list(operations)
        self.summary = summary
        self.rejected = list(rejected or [])
        self.state = ProposalState.PROPOSED
        self.results: List[PatchOperationResult] = []

    @classmethod
    def from_response(cls, text: str, workspace: Workspace) -> "PatchProposal":
        extraction = extract_operations(text, workspace.root_name)
        if extraction.operations:
            logger.info(f"Proposed {len(extraction.operations)} file operation(s)")
        return cls(extraction.operations, extraction.summary, extraction.rejected)

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def is_pending(self) -> bool:
        return self.state is ProposalState.PROPOSED

    def describe(self, workspace: Optional[Workspace] = None) -> List[str]:
        """One line per operation, marking whether it creates or overwrites."""
        lines = []
        for op in self.operations:
            verb = "write"
            if workspace is not None:
                verb = "overwrite" if workspace.find(op.file_path) is not None else "create"
            lines.append(f"{verb} {op.file_path} ({len(op.content)} chars)")
        for raw in self.rejected:
            lines.append(f"rejected {raw!r}")
        return lines

    def _settle(self, state: ProposalState) -> None:
        if self.state is not ProposalState.PROPOSED:
            raise ProposalStateError(f"Proposal already {self.state.value}")
        self.state = state

    async def commit(self, engine: TreeMutationEngine) -> List[PatchOperationResult]:
        """
        Apply every operation in order.

        A failing operation does not stop the rest; there is no retry.
        """
        self._settle(ProposalState.COMMITTED)
        results = []
        for op in self.operations:
            result = await engine.write_file(op.file_path, op.content)
            if not result.ok:
                logger.error(f"Patch operation for {op.file_path} failed: {result.message}")
            results.append(PatchOperationResult(operation=op, result=result))

        self.results = results
        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Committed patch: {len(results) - failed} applied, {failed} failed")
        return results

    def discard(self) -> None:
        self._settle(ProposalState.DISCARDED)
        logger.info(f"Discarded patch of {len(self.operations)} operation(s)")
