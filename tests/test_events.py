"""Tests for the resolution event bus."""

from __future__ import annotations

import pytest

from bluelink.events import RESOLUTION_COMPLETE
from bluelink.events import RESOLUTION_START
from bluelink.events import ResolutionEvent
from bluelink.events import ResolutionEventBus


def _event() -> ResolutionEvent:
    return ResolutionEvent(file_path="B.md", parent_path="A.md", depth=1, status="resolving")


class TestResolutionEventBus:
    """Tests for ResolutionEventBus."""

    @pytest.mark.asyncio
    async def test_priority_order(self) -> None:
        bus = ResolutionEventBus()
        order: list[str] = []

        async def late(name: str, event: ResolutionEvent) -> None:
            order.append("late")

        async def early(name: str, event: ResolutionEvent) -> None:
            order.append("early")

        bus.register(late, priority=10)
        bus.register(early, priority=0)
        await bus.emit(RESOLUTION_START, _event())
        assert order == ["early", "late"]

    @pytest.mark.asyncio
    async def test_event_filter(self) -> None:
        bus = ResolutionEventBus()
        names: list[str] = []

        async def handler(name: str, event: ResolutionEvent) -> None:
            names.append(name)

        bus.register(handler, events=[RESOLUTION_COMPLETE])
        await bus.emit(RESOLUTION_START, _event())
        await bus.emit(RESOLUTION_COMPLETE, _event())
        assert names == [RESOLUTION_COMPLETE]

    @pytest.mark.asyncio
    async def test_unregister(self) -> None:
        bus = ResolutionEventBus()
        calls: list[str] = []

        async def handler(name: str, event: ResolutionEvent) -> None:
            calls.append(name)

        unregister = bus.register(handler)
        assert bus.has_handlers
        unregister()
        unregister()
        assert not bus.has_handlers
        await bus.emit(RESOLUTION_START, _event())
        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self) -> None:
        bus = ResolutionEventBus()
        calls: list[str] = []

        async def broken(name: str, event: ResolutionEvent) -> None:
            raise RuntimeError("bug")

        async def healthy(name: str, event: ResolutionEvent) -> None:
            calls.append(name)

        bus.register(broken, priority=0)
        bus.register(healthy, priority=1)
        await bus.emit(RESOLUTION_START, _event())
        assert calls == [RESOLUTION_START]
