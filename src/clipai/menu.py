"""Menu layout for the menu-bar app, kept free of rumps so it can be tested."""

import base64
import binascii
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass

from clipai import __version__
from clipai.config import PREVIEW_LENGTH
from clipai.models import IMAGE_DATA_PREFIX, ClipboardEntry, OperationResult
from clipai.utils import get_image_dimensions, truncate_text

logger = logging.getLogger(__name__)

ENTRY_KEY_PREFIX = "clipai_entry_"

# 32 base64 characters decode to the 24 bytes that hold the PNG header and size
_PNG_HEADER_CHARS = 32


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    entry_id: str | None = None
    state: bool | None = None


@dataclass
class MenuActions:
    on_entry: Callable
    on_toggle_capture: Callable
    on_translate: Callable
    on_summarize: Callable
    on_clear: Callable
    on_quit: Callable


def image_dimensions(entry: ClipboardEntry) -> tuple[int, int]:
    encoded = entry.content[len(IMAGE_DATA_PREFIX):][:_PNG_HEADER_CHARS]
    try:
        header = base64.b64decode(encoded)
    except (binascii.Error, ValueError):
        return (0, 0)
    return get_image_dimensions(header)


def entry_preview(entry: ClipboardEntry) -> str:
    if entry.is_image:
        width, height = image_dimensions(entry)
        text = f"[Image: {width}x{height}]" if width else "[Image]"
    else:
        text = truncate_text(entry.content, PREVIEW_LENGTH)
    if entry.pinned:
        return f"📌 {text}"
    if entry.favorite:
        return f"★ {text}"
    return text


def compute_menu_specs(
    entries: list[ClipboardEntry],
    total: int,
    capturing: bool,
    actions: MenuActions,
) -> list[MenuItemSpec | None]:
    """Compute menu item specifications. ``None`` marks a separator."""
    specs: list[MenuItemSpec | None] = [
        MenuItemSpec(f"ClipAI v{__version__} - Clipboard History"),
        None,
        MenuItemSpec("Capture Clipboard", callback=actions.on_toggle_capture, state=capturing),
        None,
    ]

    if not entries:
        specs.append(MenuItemSpec("(No clipboard history)"))
    else:
        for entry in entries:
            specs.append(MenuItemSpec(entry_preview(entry), callback=actions.on_entry, entry_id=entry.id))
        if total > len(entries):
            specs.append(MenuItemSpec(f"({total - len(entries)} more in history)"))

    latest_is_text = bool(entries) and not entries[0].is_image
    specs.extend([
        None,
        MenuItemSpec("Translate Top Entry", callback=actions.on_translate if latest_is_text else None),
        MenuItemSpec("Summarize Top Entry", callback=actions.on_summarize if latest_is_text else None),
        None,
        MenuItemSpec("Clear History", callback=actions.on_clear),
        None,
        MenuItemSpec("Quit ClipAI", callback=actions.on_quit),
    ])
    return specs


@dataclass
class FinishedTask:
    title: str
    result: OperationResult


class BackgroundTasks:
    """Runs slow backend calls off the main thread.

    Only one task runs at a time. Finished results are queued until the main
    thread collects them with :meth:`drain`.
    """

    def __init__(self):
        self._finished: queue.Queue[FinishedTask] = queue.Queue()
        self._busy = threading.Event()

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def submit(self, title: str, work: Callable[[], OperationResult]) -> bool:
        """Start *work* on a daemon thread. Returns False if a task is already running."""
        if self._busy.is_set():
            return False
        self._busy.set()
        thread = threading.Thread(target=self._run, args=(title, work), name="clipai-task", daemon=True)
        thread.start()
        return True

    def _run(self, title: str, work: Callable[[], OperationResult]) -> None:
        try:
            result = work()
        except Exception as e:
            logger.exception("%s task failed", title)
            result = OperationResult.fail(str(e))
        self._finished.put(FinishedTask(title, result))
        self._busy.clear()

    def drain(self) -> list[FinishedTask]:
        done = []
        while True:
            try:
                done.append(self._finished.get_nowait())
            except queue.Empty:
                return done
