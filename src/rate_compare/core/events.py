"""Minimal per-instance event emitter used to notify the host."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

EVENT_READY = "ready"
EVENT_RATES_LOADED = "rates-loaded"
EVENT_ERROR = "error"
EVENT_PROGRESS = "progress"

EVENTS = (EVENT_READY, EVENT_RATES_LOADED, EVENT_ERROR, EVENT_PROGRESS)

EventHandler = Callable[..., Any]


class EventEmitter:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def on(self, event: str, handler: EventHandler) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Known events: {', '.join(EVENTS)}")
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        # Copy so handlers can unsubscribe while being notified.
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for '%s' event failed", event)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))
