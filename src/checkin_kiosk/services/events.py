from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

DECODED = "decoded"
REJECTED = "rejected"
STATE_CHANGED = "state-changed"
NOTIFICATION = "notification"
ANALYTICS = "analytics"
ACTIVATED = "activated"

Handler = Callable[[Any], None]


class EventBus:
    """Tiny synchronous publish/subscribe hub between the controllers and the view layer."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[name].append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[name]:
                    self._handlers[name].remove(handler)

        return _unsubscribe

    def emit(self, name: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(name, ()))

        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %r event failed", name)
