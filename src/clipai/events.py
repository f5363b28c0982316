import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

CLIPBOARD_CHANGE = "clipboard-change"
STREAM_DONE = "[DONE]"
STREAM_ERROR_PREFIX = "ERROR: "

Listener = Callable[[Any], None]


class EventBus:
    """Named channels with any number of listeners.

    Listeners run on the publishing thread. A failing listener is logged and
    does not stop delivery to the others.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, channel: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.setdefault(channel, []).append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(channel, listener)

        return unsubscribe

    def unsubscribe(self, channel: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(channel)
            if not listeners or listener not in listeners:
                return
            listeners.remove(listener)
            if not listeners:
                del self._listeners[channel]

    def close(self, channel: str) -> None:
        with self._lock:
            self._listeners.pop(channel, None)

    def publish(self, channel: str, payload: Any = None) -> int:
        with self._lock:
            listeners = list(self._listeners.get(channel, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener on %s failed", channel)
        return len(listeners)
