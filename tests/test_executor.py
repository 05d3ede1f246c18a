"""Tests for pending chat execution and the top-level runner."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from conftest import FakeChatClient
from conftest import build_runner
from conftest import write_notes

from bluelink.exceptions import AuthenticationError
from bluelink.exceptions import ChatExecutionError
from bluelink.executor import ChatExecutorProtocol
from bluelink.executor import TranscriptChatExecutor
from bluelink.store import FileHandle
from bluelink.store import VaultFileStore
from bluelink.tree import create_root


class TestTranscriptChatExecutor:
    """Tests for TranscriptChatExecutor."""

    @pytest.mark.asyncio
    async def test_executes_and_appends_reply(self, vault: Path) -> None:
        write_notes(vault, {"Chat.md": "# role: system\nBe brief.\n# role: user\nHello\n"})
        client = FakeChatClient(reply=lambda messages: "  Hi!  ")
        runner = build_runner(vault, client)

        result = await runner.executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))

        assert result.newest_reply == "Hi!"
        assert result.full_transcript_markdown == (
            "# role: system\nBe brief.\n\n# role: user\nHello\n\n# role: assistant\nHi!\n\n# role: user\n\n"
        )
        assert [(m.role, m.content) for m in client.requests[0]] == [("system", "Be brief."), ("user", "Hello")]

    @pytest.mark.asyncio
    async def test_empty_trailing_user_turn_not_sent(self, vault: Path) -> None:
        write_notes(vault, {"Chat.md": "# role: user\nHello\n# role: assistant\nHi\n# role: user\n"})
        client = FakeChatClient()
        runner = build_runner(vault, client)

        await runner.executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))

        assert [m.role for m in client.requests[0]] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_messages_are_resolved(self, vault: Path) -> None:
        """Links inside the chat are resolved before sending."""
        write_notes(vault, {"Chat.md": "# role: user\n[[Note]]", "Note.md": "note body"})
        client = FakeChatClient()
        runner = build_runner(vault, client)

        await runner.executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))

        assert client.requests[0][0].content == "note body"

    @pytest.mark.asyncio
    async def test_plain_note_gets_system_prompt(self, vault: Path) -> None:
        write_notes(vault, {"Note.md": "What is 2+2?"})
        client = FakeChatClient()
        runner = build_runner(vault, client)

        await runner.executor.execute_pending_chat(FileHandle("Note.md"), create_root("Note.md"))

        roles = [(m.role, m.content) for m in client.requests[0]]
        assert roles[0][0] == "system"
        assert roles[1] == ("user", "What is 2+2?")

    @pytest.mark.asyncio
    async def test_empty_chat_raises(self, vault: Path) -> None:
        write_notes(vault, {"Chat.md": "# role: user\n"})
        runner = build_runner(vault)
        with pytest.raises(ChatExecutionError) as exc_info:
            await runner.executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))
        assert exc_info.value.file_path == "Chat.md"

    @pytest.mark.asyncio
    async def test_requires_resolver(self, vault: Path) -> None:
        write_notes(vault, {"Chat.md": "# role: user\nHello"})
        executor = TranscriptChatExecutor(VaultFileStore(vault), AsyncMock())
        with pytest.raises(ChatExecutionError, match="resolver"):
            await executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self, vault: Path) -> None:
        write_notes(vault, {"Chat.md": "# role: user\nHello"})
        client = AsyncMock()
        client.complete.side_effect = AuthenticationError("bad key", provider="OpenAI", status_code=401)
        runner = build_runner(vault, client)
        with pytest.raises(AuthenticationError):
            await runner.executor.execute_pending_chat(FileHandle("Chat.md"), create_root("Chat.md"))

    def test_satisfies_protocol(self, vault: Path) -> None:
        executor = TranscriptChatExecutor(VaultFileStore(vault), AsyncMock())
        assert isinstance(executor, ChatExecutorProtocol)


class TestChatRunner:
    """Tests for ChatRunner flows."""

    @pytest.mark.asyncio
    async def test_complete_file_writes_root(self, vault: Path) -> None:
        """End to end: the root's link to a pending child becomes the child's reply."""
        write_notes(vault, {"Root.md": "# role: user\n[[Child]]", "Child.md": "# role: user\nHello"})

        def reply(messages: list) -> str:
            return "Hi there" if messages[-1].content == "Hello" else f"root saw: {messages[-1].content}"

        client = FakeChatClient(reply=reply)
        runner = build_runner(vault, client)

        result = await runner.complete_file(FileHandle("Root.md"))

        assert result.newest_reply == "root saw: Hi there"
        assert (vault / "Root.md").read_text() == (
            "# role: user\n[[Child]]\n\n# role: assistant\nroot saw: Hi there\n\n# role: user\n\n"
        )
        assert (vault / "Child.md").read_text() == "# role: user\nHello"

    @pytest.mark.asyncio
    async def test_resolve_file_does_not_write(self, vault: Path) -> None:
        write_notes(vault, {"Root.md": "# role: system\nsys\n# role: user\n[[Note]]\n", "Note.md": "body"})
        runner = build_runner(vault)

        messages = await runner.resolve_file(FileHandle("Root.md"))

        assert [message.to_request_dict() for message in messages] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "body"},
        ]
        assert (vault / "Root.md").read_text() == "# role: system\nsys\n# role: user\n[[Note]]\n"

    @pytest.mark.asyncio
    async def test_resolve_text_as_single_message(self, vault: Path) -> None:
        write_notes(vault, {"Root.md": "[[Note]]", "Note.md": "body"})
        runner = build_runner(vault)
        messages = await runner.resolve_text(FileHandle("Root.md"), "user")
        assert [(m.role, m.content) for m in messages] == [("user", "body")]

    @pytest.mark.asyncio
    async def test_shared_context_records_tree(self, vault: Path) -> None:
        write_notes(vault, {"Root.md": "# role: user\n[[A]]\n[[B]]", "A.md": "a", "B.md": "b"})
        runner = build_runner(vault)
        handle = FileHandle("Root.md")
        context = runner.create_context(handle)

        await runner.resolve_file(handle, context)

        children = context.tree.children(context.tree.root)
        assert [child.file_path for child in children] == ["A.md", "B.md"]
