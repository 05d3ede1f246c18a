"""Top-level chat flows: resolve a chat file, or complete it."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from bluelink.client import ChatCompletionsClient
from bluelink.config import BlueLinkSettings
from bluelink.config import ChatConfig
from bluelink.config import ResolutionConfig
from bluelink.config import SettingsPaths
from bluelink.events import ResolutionEventBus
from bluelink.executor import ChatClientProtocol
from bluelink.executor import ChatExecutionResult
from bluelink.executor import TranscriptChatExecutor
from bluelink.models import RequestMessage
from bluelink.resolver import ContentResolver
from bluelink.store import FileHandle
from bluelink.store import FileStoreProtocol
from bluelink.store import VaultFileStore
from bluelink.tree import ResolutionContext

logger = logging.getLogger(__name__)


class ChatRunner:
    """Wires store, client, executor and resolver for one vault.

    Usage:
        runner = ChatRunner.from_settings(Path("~/notes").expanduser())
        result = await runner.complete_file(runner.store.handle_for("chat.md"))
    """

    def __init__(
        self,
        store: FileStoreProtocol,
        client: ChatClientProtocol,
        *,
        resolution: ResolutionConfig | None = None,
        chat: ChatConfig | None = None,
        events: ResolutionEventBus | None = None,
    ) -> None:
        chat = chat or ChatConfig()
        self.store = store
        self.client = client
        self.executor = TranscriptChatExecutor(
            store,
            client,
            role_header=chat.role_header,
            system_prompt=chat.system_prompt,
        )
        self.resolver = ContentResolver(
            store,
            self.executor,
            resolution,
            role_header=chat.role_header,
            events=events,
        )
        self.executor.attach(self.resolver)

    @classmethod
    def from_settings(
        cls,
        vault: Path,
        settings: BlueLinkSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        resolution: ResolutionConfig | None = None,
        events: ResolutionEventBus | None = None,
    ) -> ChatRunner:
        """Build a runner over ``vault`` from its scope-merged settings.

        Args:
            vault: Vault root directory.
            settings: Settings to read; defaults to the vault's settings files.
            http_client: Optional shared httpx client for the endpoint.
            resolution: Overrides the configured resolution settings.
            events: Optional event bus for resolution events.
        """
        settings = settings or BlueLinkSettings(SettingsPaths.default(vault))
        return cls(
            VaultFileStore(vault),
            ChatCompletionsClient(settings.endpoint_config(), http_client),
            resolution=resolution or settings.resolution_config(),
            chat=settings.chat_config(),
            events=events,
        )

    def create_context(self, handle: FileHandle) -> ResolutionContext:
        return self.resolver.create_context(handle.path)

    async def resolve_file(
        self,
        handle: FileHandle,
        context: ResolutionContext | None = None,
    ) -> list[RequestMessage]:
        """Resolve every non-empty message of a chat file without sending it.

        Nested pending chats are still executed; their replies are part of
        the resolved request.
        """
        context = context or self.create_context(handle)
        transcript = self.executor.load_transcript(await self.store.read_text(handle))
        messages = [message for message in transcript.messages if message.content.strip()]
        return await self.resolver.resolve_messages(messages, handle.path, context)

    async def resolve_text(
        self,
        handle: FileHandle,
        role: str,
        context: ResolutionContext | None = None,
    ) -> list[RequestMessage]:
        """Resolve a whole file as a single message of ``role``."""
        context = context or self.create_context(handle)
        content = await self.resolver.resolve_message_content(
            await self.store.read_text(handle),
            handle.path,
            role,
            context,
        )
        return [RequestMessage(role=role, content=content)]

    async def complete_file(
        self,
        handle: FileHandle,
        context: ResolutionContext | None = None,
    ) -> ChatExecutionResult:
        """Execute a chat file and write the completed transcript back to it."""
        context = context or self.create_context(handle)
        logger.info(f"Completing chat: {handle.path}")
        result = await self.executor.execute_pending_chat(handle, context.executing())
        await self.store.write_text(handle, result.full_transcript_markdown)
        return result

    async def aclose(self) -> None:
        if isinstance(self.client, ChatCompletionsClient):
            await self.client.aclose()
