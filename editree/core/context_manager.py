"""
Manages the conversation state sent to the text-generation provider:
history, system prompt and the workspace context (selected path and the
project files whose content is loaded).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """
    Internal representation of a chat message.
    Mirrors the OpenAI API message format.
    """
    role: str
    content: str


@dataclass
class ContextManager:
    """
    Tracks the conversation and the workspace context injected into the
    system prompt.
    """
    messages: List[Message] = field(default_factory=list)
    system_prompt: Optional[str] = None
    selected_path: Optional[str] = None
    project_files: List[Tuple[str, str]] = field(default_factory=list)
    max_files: int = 20
    max_chars: int = 60000

    def add_message(self, role: str, content: str) -> None:
        self.messages.append(Message(role=role, content=content))
        logger.debug(f"Added message: role={role}, content_len={len(content)}")

    def pop_message(self) -> Optional[Message]:
        return self.messages.pop() if self.messages else None

    def set_workspace_context(
        self,
        selected_path: Optional[str],
        project_files: List[Tuple[str, str]],
    ) -> None:
        """
        Replace the workspace context.

        Files beyond ``max_files`` are dropped; once ``max_chars`` of content
        has been included, remaining files are dropped too.
        """
        self.selected_path = selected_path
        self.project_files = self.limit_files(project_files)

    def limit_files(self, files: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
        """First files of ``files`` that fit ``max_files`` and ``max_chars``."""
        kept: List[Tuple[str, str]] = []
        budget = self.max_chars
        for path, content in files[: self.max_files]:
            if len(content) > budget:
                logger.debug(f"Context budget exhausted before {path}")
                break
            kept.append((path, content))
            budget -= len(content)
        if len(kept) < len(files):
            logger.info(f"Chat context limited to {len(kept)} of {len(files)} loaded files")
        return kept

    def _system_content(self) -> str:
        system_content = self.system_prompt or ""

        if self.selected_path:
            system_content += (
                "\n\n--- CURRENT SELECTION ---\n"
                f"The user has `{self.selected_path}` selected. Prefer it as the "
                "location for new files when no other location is given."
            )

        if self.project_files:
            blocks = []
            for path, content in self.project_files:
                blocks.append(f"File path: {path}\nContent:\n```\n{content}\n```")
            system_content += (
                "\n\n--- PROJECT FILES ---\n"
                + "\n".join(blocks)
                + "\n--- END PROJECT FILES ---"
            )
        return system_content

    def get_messages(self) -> List[Dict[str, Any]]:
        """Messages in chat format, system prompt first."""
        msgs: List[Dict[str, Any]] = []
        system_content = self._system_content()
        if system_content:
            msgs.append({"role": "system", "content": system_content})
        for msg in self.messages:
            msgs.append({"role": msg.role, "content": msg.content})
        return msgs

    def clear_messages(self) -> None:
        self.messages.clear()
        logger.info("Conversation message history cleared.")

    def prune_messages(self, n: int) -> None:
        """
        Keep only the last N user turns (user + assistant messages).
        If n <= 0, behaves like clear_messages().
        """
        if n <= 0:
            self.clear_messages()
            return

        user_indices = [i for i, m in enumerate(self.messages) if m.role == "user"]
        if len(user_indices) <= n:
            return

        self.messages = self.messages[user_indices[-n]:]
        logger.info(f"Pruned conversation history to last {n} user turns.")

    def get_message_count(self) -> int:
        return len(self.messages)
