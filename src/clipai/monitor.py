import base64
import logging
import threading
from collections.abc import Callable
from enum import Enum

from clipai.clipboard import Clipboard, ClipboardEmpty
from clipai.config import (
    AUTO_CATEGORY,
    CAPTURE_IMAGES,
    EMPTY_LOG_EVERY,
    MAX_CONSECUTIVE_ERRORS,
    MAX_IMAGE_SIZE,
    MAX_TEXT_SIZE,
    POLL_INTERVAL,
)
from clipai.errors import StorageError
from clipai.events import CLIPBOARD_CHANGE, EventBus
from clipai.models import IMAGE_DATA_PREFIX, Category, ClipboardEntry
from clipai.storage import StorageManager
from clipai.utils import compute_hash, detect_category

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"


class ClipboardLost(Exception):
    """The pasteboard handle could not be recreated; polling has to stop."""


class ClipboardMonitor:
    def __init__(
        self,
        storage: StorageManager,
        on_change: Callable[[], None] | None = None,
        bus: EventBus | None = None,
        clipboard_factory: Callable[[], Clipboard] = Clipboard,
        interval: float = POLL_INTERVAL,
        capture_images: bool = CAPTURE_IMAGES,
        auto_category: bool = AUTO_CATEGORY,
    ):
        self._storage = storage
        self._on_change = on_change
        self._bus = bus
        self._clipboard_factory = clipboard_factory
        self._clipboard: Clipboard | None = None
        self._interval = interval
        self._capture_images = capture_images
        self._auto_category = auto_category

        self._lock = threading.Lock()
        self._state = MonitorState.RUNNING
        self._last_seen: str | None = None
        self._error_count = 0
        self._empty_count = 0

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == MonitorState.RUNNING

    def pause(self) -> bool:
        with self._lock:
            self._state = MonitorState.PAUSED
        logger.info("Clipboard capture paused")
        return False

    def resume(self) -> bool:
        with self._lock:
            self._state = MonitorState.RUNNING
        logger.info("Clipboard capture resumed")
        return True

    def toggle(self) -> bool:
        with self._lock:
            self._state = MonitorState.PAUSED if self._state == MonitorState.RUNNING else MonitorState.RUNNING
            running = self._state == MonitorState.RUNNING
        logger.info("Clipboard capture %s", "resumed" if running else "paused")
        return running

    def remember(self, content: str) -> None:
        """Treat *content* as already seen so writing it back is not re-captured."""
        with self._lock:
            self._last_seen = content

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="clipai-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        logger.info("Clipboard monitor started (every %.1fs)", self._interval)
        while not self._stop_event.is_set():
            try:
                self.check_clipboard()
            except ClipboardLost:
                logger.error("Clipboard access lost, clipboard capture has stopped")
                break
            except Exception:
                logger.exception("Unexpected error while polling the clipboard")
            self._stop_event.wait(self._interval)
        logger.info("Clipboard monitor stopped")

    def check_clipboard(self) -> bool:
        """Run one poll. Returns True when a new entry was stored.

        Raises:
            ClipboardLost: If the pasteboard handle could not be (re)created.
        """
        if not self.is_running:
            return False

        if self._clipboard is None:
            self._clipboard = self._open_clipboard()

        try:
            text = self._clipboard.get_text()
        except ClipboardEmpty:
            return self._check_image()
        except Exception as e:
            self._record_error(e)
            return False

        self._error_count = 0
        self._empty_count = 0

        if not text:
            return False
        if not self._mark_seen(text):
            return False
        if len(text.encode("utf-8")) > MAX_TEXT_SIZE:
            logger.warning("Clipboard text too large (%d chars), skipping", len(text))
            return False

        category = detect_category(text) if self._auto_category else None
        return self._store(ClipboardEntry.new(text, category=category))

    def _check_image(self) -> bool:
        if self._capture_images:
            try:
                png = self._clipboard.get_png()
            except ClipboardEmpty:
                pass
            except Exception as e:
                self._record_error(e)
                return False
            else:
                self._error_count = 0
                self._empty_count = 0
                return self._store_image(png)

        self._empty_count += 1
        if self._empty_count == 1 or self._empty_count % EMPTY_LOG_EVERY == 0:
            logger.debug("Pasteboard has no usable content (seen %d times)", self._empty_count)
        return False

    def _store_image(self, png: bytes) -> bool:
        if len(png) > MAX_IMAGE_SIZE:
            logger.warning("Image too large (%d bytes), skipping", len(png))
            return False
        if not self._mark_seen("image:" + compute_hash(png)):
            return False
        content = IMAGE_DATA_PREFIX + base64.b64encode(png).decode("ascii")
        return self._store(ClipboardEntry.new(content, category=Category.IMAGE.value))

    def _mark_seen(self, key: str) -> bool:
        with self._lock:
            if key == self._last_seen:
                return False
            self._last_seen = key
            return True

    def _store(self, entry: ClipboardEntry) -> bool:
        try:
            self._storage.add_entry(entry)
        except StorageError:
            logger.exception("Failed to save clipboard entry")
            return False

        if self._on_change:
            try:
                self._on_change()
            except Exception:
                logger.exception("Clipboard change callback failed")
        if self._bus is not None:
            self._bus.publish(CLIPBOARD_CHANGE, entry.id)
        return True

    def _record_error(self, error: Exception) -> None:
        self._error_count += 1
        logger.warning("Failed to read clipboard: %s (%d/%d)", error, self._error_count, MAX_CONSECUTIVE_ERRORS)
        if self._error_count < MAX_CONSECUTIVE_ERRORS:
            return
        logger.warning("Too many clipboard errors, recreating the pasteboard handle")
        self._clipboard = None
        self._clipboard = self._open_clipboard()
        self._error_count = 0

    def _open_clipboard(self) -> Clipboard:
        try:
            return self._clipboard_factory()
        except Exception as e:
            raise ClipboardLost(f"Could not open the pasteboard: {e}") from e
