"""Resolution lifecycle events.

Diagnostic tooling (tree views, graph renderers, the ``bluelink tree``
command) subscribes here to watch a resolution as it runs. Handlers are
observers only: they run sequentially by priority, and a failing handler is
logged and skipped without affecting resolution.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)

RESOLUTION_START = "resolution:start"
RESOLUTION_COMPLETE = "resolution:complete"
RESOLUTION_ERROR = "resolution:error"
RESOLUTION_CYCLE = "resolution:cycle"
RESOLUTION_CACHE_HIT = "resolution:cache_hit"
RESOLUTION_DEPTH_LIMIT = "resolution:depth_limit"

ResolutionStatus = Literal["idle", "resolving", "complete", "error", "cycle-detected", "cached"]


class ResolutionEvent(BaseModel):
    """What happened to one file during resolution."""

    file_path: str
    parent_path: str | None = None
    depth: int = 0
    status: ResolutionStatus
    is_pending_chat: bool = False
    is_chat_file: bool | None = None
    error: str | None = None


EventHandler = Callable[[str, ResolutionEvent], Awaitable[None]]


@dataclass
class _RegisteredHandler:
    handler: EventHandler
    events: frozenset[str] | None  # None = every event
    priority: int = 0
    name: str | None = None

    def __lt__(self, other: _RegisteredHandler) -> bool:
        return self.priority < other.priority


class ResolutionEventBus:
    """Fan-out of resolution events to registered async handlers."""

    def __init__(self) -> None:
        self._handlers: list[_RegisteredHandler] = []

    def register(
        self,
        handler: EventHandler,
        events: list[str] | None = None,
        priority: int = 0,
        name: str | None = None,
    ) -> Callable[[], None]:
        """Register a handler.

        Args:
            handler: Async function called with (event name, event).
            events: Event names to receive; None receives all of them.
            priority: Execution priority (lower = earlier).
            name: Optional handler name for logging.

        Returns:
            Unregister function.
        """
        registered = _RegisteredHandler(
            handler=handler,
            events=frozenset(events) if events is not None else None,
            priority=priority,
            name=name or getattr(handler, "__name__", repr(handler)),
        )
        self._handlers.append(registered)
        self._handlers.sort()
        logger.debug(f"Registered resolution handler '{registered.name}'")

        def unregister() -> None:
            if registered in self._handlers:
                self._handlers.remove(registered)
                logger.debug(f"Unregistered resolution handler '{registered.name}'")

        return unregister

    @property
    def has_handlers(self) -> bool:
        return bool(self._handlers)

    async def emit(self, name: str, event: ResolutionEvent) -> None:
        for registered in list(self._handlers):
            if registered.events is not None and name not in registered.events:
                continue
            try:
                await registered.handler(name, event)
            except Exception as e:
                logger.error(f"Error in resolution handler '{registered.name}' for event '{name}': {e}")
