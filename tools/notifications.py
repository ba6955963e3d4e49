#!/usr/bin/env python3
"""
notifications.py - Named-event sink for device state changes

UI layers subscribe to the events the device service publishes:

    connected                 transport connected and session observed
    disconnected              transport disconnected
    logged-in  (profile)      session switched to an authenticated profile
    logged-out                authenticated session dropped to anonymous

Any callable with the signature ``publish(event, *args)`` can stand in
for an EventBus.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

CONNECTED = 'connected'
DISCONNECTED = 'disconnected'
LOGGED_IN = 'logged-in'
LOGGED_OUT = 'logged-out'

Handler = Callable[..., Any]
EventSink = Callable[..., None]


class EventBus:
    """
    Synchronous publish/subscribe bus.

    Handlers run in subscription order on the publishing thread. A
    handler that raises is logged and the remaining handlers still run.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def publish(self, event: str, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, []))

        logger.debug("Publishing %s%s to %d handlers", event, args or '', len(handlers))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)

    __call__ = publish


class EventRecorder:
    """Sink that keeps every published event, in order."""

    def __init__(self):
        self.events: List[Tuple[Any, ...]] = []

    def __call__(self, event: str, *args: Any) -> None:
        self.events.append((event,) + args)

    def names(self) -> List[str]:
        return [e[0] for e in self.events]

    def clear(self) -> None:
        self.events.clear()
