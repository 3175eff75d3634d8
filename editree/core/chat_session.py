"""
Chat Session

Connects the text-generation provider to the workspace. Replies are scanned
for file blocks; the prose becomes the summary shown to the user and the
blocks become a PatchProposal that waits for an explicit commit or discard.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from editree.core.ai.base import BaseAIProvider
from editree.core.context_manager import ContextManager
from editree.core.errors import NotFoundError
from editree.core.patch_applier import PatchProposal
from editree.core.patch_parser import END_MARKER, START_MARKER
from editree.utils.path_utils import relative_segments
from editree.workspace.node import NodeKind
from editree.workspace.workspace import Workspace

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = f"""You are a programming assistant built into a code editor. You help the user understand, change and write the code of the project that is open in the editor.

Rules:
1. Use the project files and the conversation as your main source of information, but also answer general programming questions.
2. When a file is relevant to the question, mention it and use its content.
3. When the user asks you to create or modify a file, first write a short summary of what you propose. Then give the COMPLETE new content of each file between the markers below. Never ask the user to copy and paste code.

   {START_MARKER}path/relative/to/project/root.ext]
   full file content
   {END_MARKER}

   Use paths relative to the project root, for example `src/components/Button.tsx` or `README.md`. If the user has a folder selected and names no other location, create new files inside it; otherwise create them at the root."""


COMMENT_PROMPT = """You are a code completion assistant. Generate code that implements the request in the comment and fits the existing code. Reply with the code only, without explanations.

Comment: {comment}

Existing code:
{existing}

Code suggestion:"""


COMPLETION_PROMPT = """You are a code completion assistant. Given the current file and possibly other project files for context, suggest code to insert at the cursor.

Programming Language: {language}

Current File Content (cursor at character position {cursor}):
```
{content}
```
{other_files}
Reply with a JSON object of the form {{"suggestions": ["..."]}}, best suggestion first. Each suggestion is the exact text to insert at the cursor.

Suggestions:"""

LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".json": "json",
    ".md": "markdown",
    ".html": "html",
    ".css": "css",
    ".sh": "shell",
}


class ChatError(Exception):
    """The provider request failed or no provider is configured."""


@dataclass
class ChatReply:
    summary: str
    proposal: PatchProposal
    raw: str


def strip_code_fences(text: str) -> str:
    """Drop a surrounding markdown code fence, if the whole reply is one."""
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```") and len(stripped) >= 6:
        body = stripped[3:-3]
        first_newline = body.find("\n")
        if first_newline != -1 and " " not in body[:first_newline].strip():
            body = body[first_newline + 1:]
        return body.strip("\n")
    return stripped


def parse_suggestions(text: str) -> List[str]:
    """
    Suggestions from a completion reply.

    A reply that is not the requested JSON object counts as one suggestion.
    """
    body = strip_code_fences(text)
    try:
        data = json.loads(body)
    except ValueError:
        return [body] if body else []
    if isinstance(data, dict) and isinstance(data.get("suggestions"), list):
        return [s for s in data["suggestions"] if isinstance(s, str) and s]
    return [body] if body else []


class ChatSession:
    def __init__(
        self,
        workspace: Workspace,
        provider: Optional[BaseAIProvider],
        max_files: int = 20,
        max_chars: int = 60000,
        max_turns: int = 20,
    ):
        self.workspace = workspace
        self.provider = provider
        self.max_turns = max_turns
        self.context = ContextManager(
            system_prompt=SYSTEM_PROMPT,
            max_files=max_files,
            max_chars=max_chars,
        )

    def _project_files(self) -> List[Tuple[str, str]]:
        """Loaded files as root-relative ``/path`` plus content; unsaved buffer wins."""
        ws = self.workspace
        files = dict(ws.loaded_files())
        if ws.selection is not None and ws.selection.kind is NodeKind.FILE:
            files[ws.selection.path] = ws.selection.buffered_content
        return [
            ("/" + "/".join(relative_segments(path, ws.root_name)), content)
            for path, content in files.items()
        ]

    def _require_provider(self) -> BaseAIProvider:
        if self.provider is None:
            raise ChatError("No AI provider configured. Set ai.provider and an API key in the config.")
        return self.provider

    async def ask(self, message: str) -> ChatReply:
        """
        Send ``message`` with the history and workspace context.

        The reply is recorded in the history. Nothing is written to storage;
        the returned proposal must be committed separately.
        """
        provider = self._require_provider()
        ws = self.workspace
        self.context.set_workspace_context(
            ws.selection.path if ws.selection else None,
            self._project_files(),
        )
        self.context.add_message("user", message)
        self.context.prune_messages(self.max_turns)

        try:
            response = await provider.complete(self.context.get_messages())
        except Exception as e:
            self.context.pop_message()
            logger.error(f"Chat request failed: {e}", exc_info=True)
            raise ChatError(f"AI request failed: {e}") from e

        proposal = PatchProposal.from_response(response.content, ws)
        self.context.add_message("assistant", response.content)
        logger.info(
            f"Chat reply from {response.model}: {len(response.content)} chars, "
            f"{len(proposal.operations)} proposed file operation(s)"
        )
        return ChatReply(summary=proposal.summary, proposal=proposal, raw=response.content)

    async def generate_from_comment(self, comment: str) -> str:
        """
        Ask for code implementing ``comment`` and append it to the editor
        buffer of the active file. Returns the suggestion.
        """
        provider = self._require_provider()
        selection = self.workspace.selection
        if selection is None or selection.kind is not NodeKind.FILE:
            raise NotFoundError("No file is open in the editor")

        prompt = COMMENT_PROMPT.format(comment=comment, existing=selection.buffered_content)
        try:
            response = await provider.complete([{"role": "user", "content": prompt}])
        except Exception as e:
            logger.error(f"Code generation failed: {e}", exc_info=True)
            raise ChatError(f"AI request failed: {e}") from e

        suggestion = strip_code_fences(response.content)
        self.workspace.edit(f"{selection.buffered_content}\n{suggestion}")
        return suggestion

    async def complete_at(self, cursor: Optional[int] = None) -> Optional[str]:
        """
        Ask for a completion at character offset ``cursor`` of the active
        file and insert the first suggestion there.

        ``cursor`` defaults to the end of the buffer and is clamped to it.
        Returns the inserted text, or None when nothing was suggested.
        """
        provider = self._require_provider()
        selection = self.workspace.selection
        if selection is None or selection.kind is not NodeKind.FILE:
            raise NotFoundError("No file is open in the editor")

        content = selection.buffered_content
        if cursor is None:
            cursor = len(content)
        cursor = max(0, min(cursor, len(content)))

        active = "/" + "/".join(relative_segments(selection.path, self.workspace.root_name))
        others = self.context.limit_files([f for f in self._project_files() if f[0] != active])
        other_files = ""
        if others:
            blocks = [f"---\nFile Path: {path}\nContent:\n```\n{text}\n```\n---" for path, text in others]
            other_files = (
                "\nFor additional context, here are the contents of other relevant files in the project:\n"
                + "\n".join(blocks)
                + "\n"
            )
        prompt = COMPLETION_PROMPT.format(
            language=LANGUAGES.get(PurePosixPath(selection.path).suffix.lower(), "plaintext"),
            cursor=cursor,
            content=content,
            other_files=other_files,
        )
        try:
            response = await provider.complete([{"role": "user", "content": prompt}])
        except Exception as e:
            logger.error(f"Code completion failed: {e}", exc_info=True)
            raise ChatError(f"AI request failed: {e}") from e

        suggestions = parse_suggestions(response.content)
        if not suggestions:
            logger.info(f"No completion suggested for {selection.path}")
            return None
        suggestion = suggestions[0]
        self.workspace.edit(content[:cursor] + suggestion + content[cursor:])
        return suggestion

    def reset(self) -> None:
        self.context.clear_messages()
