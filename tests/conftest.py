"""Shared fixtures: temporary vaults and a scripted chat client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from collections.abc import Sequence
from pathlib import Path

import pytest

from bluelink.config import ResolutionConfig
from bluelink.events import ResolutionEventBus
from bluelink.models import RequestMessage
from bluelink.runner import ChatRunner
from bluelink.store import VaultFileStore


class FakeChatClient:
    """Chat client that answers from a callable and records every request."""

    def __init__(
        self,
        reply: Callable[[list[RequestMessage]], str] | None = None,
        delay: Callable[[list[RequestMessage]], float] | None = None,
    ) -> None:
        self.reply = reply or (lambda messages: f"reply to {messages[-1].content}")
        self.delay = delay
        self.requests: list[list[RequestMessage]] = []

    async def complete(
        self,
        messages: Sequence[RequestMessage],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        messages = list(messages)
        self.requests.append(messages)
        if self.delay is not None:
            await asyncio.sleep(self.delay(messages))
        return self.reply(messages)

    @property
    def calls(self) -> int:
        return len(self.requests)


def write_notes(root: Path, notes: dict[str, str | bytes]) -> None:
    for name, content in notes.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def build_runner(
    root: Path,
    client: FakeChatClient | None = None,
    events: ResolutionEventBus | None = None,
    **resolution: object,
) -> ChatRunner:
    return ChatRunner(
        VaultFileStore(root),
        client or FakeChatClient(),
        resolution=ResolutionConfig(**resolution),
        events=events,
    )


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def client() -> FakeChatClient:
    return FakeChatClient()
