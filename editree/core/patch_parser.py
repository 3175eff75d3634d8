"""
AI Patch Parser

Scans a free-form response for file blocks:

    [START_FILE:<path>]<content>[END_FILE]

The grammar is a pair of literal markers, so parsing is a single forward
scan. Content is taken verbatim up to the next end marker. Blocks with an
empty path and unterminated blocks yield no operation; every marker is
removed from the returned summary.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from editree.utils.path_utils import normalize_path

logger = logging.getLogger(__name__)

START_MARKER = "[START_FILE:"
END_MARKER = "[END_FILE]"
_HEADER_CLOSE = "]"


@dataclass(frozen=True)
class PatchOperation:
    file_path: str
    content: str


@dataclass
class PatchExtraction:
    operations: List[PatchOperation]
    summary: str
    rejected: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.operations


def _strip_markers(text: str) -> str:
    while START_MARKER in text or END_MARKER in text:
        text = text.replace(START_MARKER, "").replace(END_MARKER, "")
    return text


def extract_operations(text: str, root_name: str) -> PatchExtraction:
    """
    Extract file operations from ``text`` for a workspace rooted at ``root_name``.

    Paths are normalized (leading ``/`` or ``./`` dropped, root prefix
    applied) and deduplicated: a later block for the same path replaces the
    earlier one. Paths that would leave the root are rejected.
    """
    operations: Dict[str, PatchOperation] = {}
    rejected: List[str] = []
    prose: List[str] = []
    pos = 0

    while True:
        start = text.find(START_MARKER, pos)
        if start == -1:
            prose.append(text[pos:])
            break
        prose.append(text[pos:start])

        header_end = text.find(_HEADER_CLOSE, start + len(START_MARKER))
        if header_end == -1:
            logger.warning("Discarding file block with an unterminated header")
            break
        raw_path = text[start + len(START_MARKER):header_end]

        end = text.find(END_MARKER, header_end + 1)
        if end == -1:
            logger.warning(f"Discarding unterminated file block for {raw_path!r}")
            break
        content = text[header_end + 1:end]
        pos = end + len(END_MARKER)

        if not raw_path.strip():
            logger.warning("Discarding file block with an empty path")
            rejected.append(raw_path)
            continue
        try:
            path = normalize_path(raw_path, root_name)
        except ValueError as e:
            logger.warning(f"Rejected patch path: {e}")
            rejected.append(raw_path)
            continue
        if path == root_name:
            logger.warning(f"Rejected patch path naming the workspace root: {raw_path!r}")
            rejected.append(raw_path)
            continue

        if path in operations:
            logger.debug(f"Later block replaces earlier one for {path}")
        operations[path] = PatchOperation(file_path=path, content=content)

    summary = _strip_markers("".join(prose)).strip()
    return PatchExtraction(
        operations=list(operations.values()),
        summary=summary,
        rejected=rejected,
    )
