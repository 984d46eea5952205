"""
Typed in-process event bus.

Each event is a frozen dataclass; handlers subscribe per event class. emit()
schedules every handler as its own task and returns immediately, so the
publisher never waits for (or sees errors from) its listeners.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Type, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageSaved:
    message_id: str
    conversation_jid: str
    sender_jid: str
    timestamp: int
    is_new: bool = True


@dataclass(frozen=True)
class MessageAnalyze:
    message_id: str
    content: str


@dataclass(frozen=True)
class RelationshipUpdate:
    conversation_jid: str
    sender_jid: str
    timestamp: int


Event = MessageSaved | MessageAnalyze | RelationshipUpdate
E = TypeVar("E", MessageSaved, MessageAnalyze, RelationshipUpdate)
EventHandler = Callable[[E], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: Type[E], handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: Type[E], handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: Optional[type] = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(h) for h in self._handlers.values())

    def emit(self, event: Event) -> None:
        """Schedule every handler for event on the running loop."""
        for handler in list(self._handlers.get(type(event), [])):
            task = asyncio.create_task(self._run(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                "Event handler %s failed for %s",
                getattr(handler, "__qualname__", handler),
                type(event).__name__,
            )

    async def drain(self) -> None:
        """Wait until no handler tasks are pending, including ones scheduled meanwhile."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
