"""Helpers to broadcast realtime events from any execution context."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

from anyio import from_thread

from co2tracker.domain.entities import Identity, RealtimeEvent

from .dispatcher import RealtimeDispatcher

logger = logging.getLogger(__name__)


class RealtimeEventPublisher:
    """Schedule fire-and-forget broadcasts on the dispatcher's event loop.

    Route handlers may run inside the event loop (``async def``) or in the
    worker threads used for synchronous endpoints; both can call the
    ``broadcast_*`` methods without awaiting delivery.
    """

    def __init__(self, dispatcher: RealtimeDispatcher) -> None:
        self._dispatcher = dispatcher
        self._pending: set[asyncio.Task[Any]] = set()

    def broadcast_to_user(
        self, identity: Identity, event_type: str, payload: Any = None
    ) -> None:
        """Schedule an ``event_type`` event for every connection of ``identity``."""

        if identity is None:
            return
        event = RealtimeEvent(event_type, {} if payload is None else payload)
        self._schedule(self._dispatcher.broadcast_to_user, identity, event)

    def broadcast_to_all(self, event_type: str, payload: Any = None) -> None:
        """Schedule an ``event_type`` event for every registered connection."""

        event = RealtimeEvent(event_type, {} if payload is None else payload)
        self._schedule(self._dispatcher.broadcast_to_all, event)

    async def drain(self) -> None:
        """Wait until every scheduled broadcast has finished."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, func: Callable[..., Coroutine[Any, Any, Any]], *args: Any) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            try:
                from_thread.run_sync(self._spawn, func, *args)
            except RuntimeError:
                logger.warning(
                    "Realtime broadcast dropped: no event loop reachable from this thread"
                )
        else:
            self._spawn(func, *args)

    def _spawn(self, func: Callable[..., Coroutine[Any, Any, Any]], *args: Any) -> None:
        task = asyncio.ensure_future(func(*args))
        self._pending.add(task)
        task.add_done_callback(self._finish)

    def _finish(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Realtime broadcast failed", exc_info=task.exception())


__all__ = ["RealtimeEventPublisher"]
