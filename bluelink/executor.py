"""Pending chat execution.

Executing a chat file means: parse it, resolve the links in every message
(recursively, inside the caller's resolution context), send the messages to
the endpoint, and append the reply. The resolver calls back into this module
for nested pending chats, so the two are wired together after construction
with ``TranscriptChatExecutor.attach``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Protocol
from typing import runtime_checkable

from bluelink.chat.transcript import DEFAULT_ROLE_HEADER
from bluelink.chat.transcript import ChatMessage
from bluelink.chat.transcript import ChatTranscript
from bluelink.chat.transcript import parse_transcript
from bluelink.chat.transcript import serialize_transcript
from bluelink.config import DEFAULT_SYSTEM_PROMPT
from bluelink.exceptions import ChatExecutionError
from bluelink.models import RequestMessage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from bluelink.resolver import ContentResolver
    from bluelink.store import FileHandle
    from bluelink.store import FileStoreProtocol
    from bluelink.tree import ResolutionContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatExecutionResult:
    """Outcome of running one chat file."""

    newest_reply: str
    full_transcript_markdown: str


@runtime_checkable
class ChatExecutorProtocol(Protocol):
    """Runs a pending chat file and reports its reply."""

    async def execute_pending_chat(self, handle: FileHandle, context: ResolutionContext) -> ChatExecutionResult: ...


class ChatClientProtocol(Protocol):
    """Anything that turns request messages into an assistant reply."""

    async def complete(
        self,
        messages: Sequence[RequestMessage],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


class TranscriptChatExecutor:
    """Executes markdown chat transcripts through a chat client.

    Args:
        store: File store the chats live in.
        client: Chat completions client.
        resolver: Resolver for message links; see ``attach``.
        role_header: Role header template of the transcripts.
        system_prompt: System message used when a file has no role headers.
    """

    def __init__(
        self,
        store: FileStoreProtocol,
        client: ChatClientProtocol,
        resolver: ContentResolver | None = None,
        *,
        role_header: str = DEFAULT_ROLE_HEADER,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.store = store
        self.client = client
        self.resolver = resolver
        self.role_header = role_header
        self.system_prompt = system_prompt

    def attach(self, resolver: ContentResolver) -> None:
        self.resolver = resolver

    def load_transcript(self, markdown: str) -> ChatTranscript:
        """Parse a chat file; a plain note becomes a system prompt plus one user turn."""
        transcript = parse_transcript(markdown, self.role_header)
        if transcript.valid:
            return transcript
        return ChatTranscript(
            messages=[
                ChatMessage(role="system", content=self.system_prompt),
                ChatMessage(role="user", content=transcript.pretext),
            ]
        )

    async def execute_pending_chat(self, handle: FileHandle, context: ResolutionContext) -> ChatExecutionResult:
        """Run the chat stored at ``handle``.

        Args:
            handle: Chat file to execute.
            context: Resolution context the chat's own links resolve in.

        Returns:
            The new reply and the transcript with the reply and a fresh
            user turn appended.

        Raises:
            ChatExecutionError: If no resolver is attached or there is nothing
                to send.
            LLMError: If the endpoint call fails.
        """
        if self.resolver is None:
            raise ChatExecutionError("No resolver attached to chat executor", file_path=handle.path)

        transcript = self.load_transcript(await self.store.read_text(handle))
        transcript.messages = [message for message in transcript.messages if message.content.strip()]
        if not transcript.messages:
            raise ChatExecutionError(f"Chat has no messages to send: {handle.path}", file_path=handle.path)

        request = await self.resolver.resolve_messages(transcript.messages, handle.path, context)
        logger.debug(f"Sending {len(request)} messages for {handle.path}")
        reply = await self.client.complete(request)

        transcript.append_message("assistant", reply).append_message("user", "")
        return ChatExecutionResult(
            newest_reply=transcript.newest_reply,
            full_transcript_markdown=serialize_transcript(transcript, self.role_header),
        )
