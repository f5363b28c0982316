import logging
import threading

import rumps

from clipai.backend import Backend
from clipai.config import MENU_DISPLAY_COUNT
from clipai.menu import ENTRY_KEY_PREFIX, BackgroundTasks, MenuActions, MenuItemSpec, compute_menu_specs
from clipai.utils import ensure_dirs, truncate_text

logger = logging.getLogger(__name__)

MENU_REFRESH_INTERVAL = 0.5  # seconds
ALERT_PREVIEW_LENGTH = 800


class ClipAIApp(rumps.App):
    def __init__(self):
        super().__init__("ClipAI", title="📋", quit_button=None)
        ensure_dirs()
        self._dirty = threading.Event()
        self._backend = Backend(on_change=self._dirty.set)
        self._entry_ids: dict[str, str] = {}
        self._tasks = BackgroundTasks()
        self._actions = MenuActions(
            on_entry=self._on_entry_click,
            on_toggle_capture=self._on_toggle_capture,
            on_translate=self._on_translate,
            on_summarize=self._on_summarize,
            on_clear=self._on_clear,
            on_quit=self._on_quit,
        )
        self._build_menu()
        self._backend.start()

    def _build_menu(self) -> None:
        self.menu.clear()
        self._entry_ids.clear()
        entries = self._backend.get_entries(limit=MENU_DISPLAY_COUNT)
        specs = compute_menu_specs(
            entries,
            total=self._backend.get_entry_count(),
            capturing=self._backend.get_polling_status(),
            actions=self._actions,
        )
        self.menu = [self._render_spec(spec) for spec in specs]

    def _render_spec(self, spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None
        item = rumps.MenuItem(spec.title, callback=spec.callback)
        if spec.state is not None:
            item.state = int(spec.state)
        if spec.entry_id is not None:
            key = f"{ENTRY_KEY_PREFIX}{spec.entry_id}"
            item._id = key
            self._entry_ids[key] = spec.entry_id
        return item

    # The poller runs on its own thread; menu changes happen here on the main thread.
    @rumps.timer(MENU_REFRESH_INTERVAL)
    def _refresh_if_dirty(self, _sender) -> None:
        if self._dirty.is_set():
            self._dirty.clear()
            self._build_menu()

    def _top_entry_id(self) -> str | None:
        entries = self._backend.get_entries(limit=1)
        return entries[0].id if entries else None

    def _on_entry_click(self, sender) -> None:
        entry_id = self._entry_ids.get(getattr(sender, "_id", ""))
        if entry_id is None:
            return
        entry = self._backend.storage.get_entry(entry_id)
        if entry is None:
            return

        # Option-click toggles the pin instead of copying
        try:
            from AppKit import NSAlternateKeyMask, NSEvent

            if NSEvent.modifierFlags() & NSAlternateKeyMask:
                result = self._backend.toggle_pin(entry_id)
                if result.success:
                    rumps.notification("ClipAI", "", "Pinned" if result.data else "Unpinned", sound=False)
                self._build_menu()
                return
        except ImportError:
            logger.debug("AppKit unavailable, skipping modifier check")

        result = self._backend.copy_to_system_clipboard(entry.content)
        rumps.notification("ClipAI", "", result.message or "", sound=False)

    def _on_toggle_capture(self, sender) -> None:
        sender.state = int(self._backend.toggle_polling())

    def _on_translate(self, _sender) -> None:
        self._start_task("ClipAI Translate", self._backend.translate_entry, "translation")

    def _on_summarize(self, _sender) -> None:
        self._start_task("ClipAI Summarize", self._backend.summarize_entry, "summary")

    def _start_task(self, title: str, command, field: str) -> None:
        entry_id = self._top_entry_id()
        if entry_id is None:
            return

        def work():
            result = command(entry_id)
            if result.success:
                result.data = getattr(result.data, field)
            return result

        if not self._tasks.submit(title, work):
            rumps.notification("ClipAI", "", "Still working on the previous request", sound=False)

    # Translate and summarize requests run on a worker thread; alerts are shown here.
    @rumps.timer(MENU_REFRESH_INTERVAL)
    def _show_finished_tasks(self, _sender) -> None:
        for task in self._tasks.drain():
            if task.result.success:
                self._show_result(task.title, task.result.data)
            else:
                rumps.alert(task.title, task.result.message)

    def _show_result(self, title: str, text: str) -> None:
        if rumps.alert(title, truncate_text(text, ALERT_PREVIEW_LENGTH), ok="Copy", cancel="Close"):
            self._backend.copy_to_system_clipboard(text)

    def _on_clear(self, _sender) -> None:
        if rumps.alert("ClipAI", "Clear all clipboard history?", ok="Clear", cancel="Cancel"):
            self._backend.clear_all()
            self._build_menu()

    def _on_quit(self, _sender) -> None:
        self._backend.shutdown()
        rumps.quit_application()
