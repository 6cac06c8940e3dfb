"""Local observer registry for events received by the connector."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)

WILDCARD = "message"

Listener = Callable[[Any], Any]


class ListenerRegistry:
    """Map event types to ordered lists of listeners.

    Typed listeners receive the event ``payload`` (or the whole message when
    it carries none); listeners registered under :data:`WILDCARD` receive every
    message whole. A failing listener never stops the others from running.
    Coroutine listeners are scheduled on the running loop, not awaited.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._tasks: set[asyncio.Future[Any]] = set()

    def on(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)
        logger.debug("Registered listener for %s", event_type)

    def off(self, event_type: str, listener: Listener) -> bool:
        listeners = self._listeners.get(event_type)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        if not listeners:
            self._listeners.pop(event_type, None)
        return True

    def count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, ()))

    def emit(self, message: Mapping[str, Any]) -> None:
        event_type = message.get("type")
        payload = message.get("payload")
        argument = payload if payload is not None else message

        for listener in list(self._listeners.get(event_type, ())):
            self._invoke(listener, argument, event_type)

        if event_type != WILDCARD:
            for listener in list(self._listeners.get(WILDCARD, ())):
                self._invoke(listener, message, WILDCARD)

    def _invoke(self, listener: Listener, argument: Any, event_type: Any) -> None:
        try:
            result = listener(argument)
        except Exception:
            logger.exception("Realtime listener for %s failed", event_type)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda done: self._finish(done, event_type))

    def _finish(self, task: asyncio.Future[Any], event_type: Any) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Realtime listener for %s failed", event_type, exc_info=task.exception()
            )


__all__ = ["Listener", "ListenerRegistry", "WILDCARD"]
