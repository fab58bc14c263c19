"""Async pub/sub EventBus decoupling the streaming engine from the UI."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from llm_buffer.types import EventType, JobEvent

_logger = logging.getLogger(__name__)

# Sentinel used for wildcard subscriptions (receive all events)
_WILDCARD = "*"

# Type alias for handlers (sync or async callables taking a JobEvent)
Handler = Callable[[JobEvent], Any]


class EventBus:
    """Lightweight async pub/sub event bus.

    Features:
    - Subscribe to specific EventType or wildcard ``"*"`` for all events.
    - Handlers can be sync or async; sync handlers are auto-wrapped.
    - ``emit()`` fans out to matching handlers concurrently.
    - ``emit_nowait()`` publishes from synchronous code such as task
      done-callbacks; ``drain()`` waits for those deliveries.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._history: list[JobEvent] = []
        self._max_history: int = 200
        self._pending: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        """Register *handler* for *event_type* (or ``"*"`` for all)."""
        key = self._key(event_type)
        self._handlers.setdefault(key, []).append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        """Remove *handler* from *event_type*."""
        key = self._key(event_type)
        handlers = self._handlers.get(key, [])
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    async def emit(self, event: JobEvent) -> None:
        """Emit an event to all matching handlers.

        Handlers for the specific event type AND wildcard handlers are called.
        Exceptions in individual handlers are logged and do not propagate.
        """
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        key = self._key(event.type)
        handlers = list(self._handlers.get(key, []))
        handlers.extend(self._handlers.get(_WILDCARD, []))

        if not handlers:
            return

        tasks = [self._call_handler(handler, event) for handler in handlers]
        await asyncio.gather(*tasks, return_exceptions=True)

    def emit_nowait(self, event: JobEvent) -> None:
        """Schedule :meth:`emit` on the running loop without awaiting it."""
        task = asyncio.get_running_loop().create_task(self.emit(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until every ``emit_nowait`` delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def history(self) -> list[JobEvent]:
        """Return a copy of the event history."""
        return list(self._history)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key(event_type: EventType | str) -> str:
        if isinstance(event_type, EventType):
            return event_type.value
        return str(event_type)

    @staticmethod
    async def _call_handler(handler: Handler, event: JobEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception(
                "EventBus handler %s raised for event %s",
                getattr(handler, "__name__", handler),
                event.type,
            )
