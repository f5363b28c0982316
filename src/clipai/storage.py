import logging
import threading
from dataclasses import replace
from pathlib import Path

from clipai.config import DEFAULT_MAX_ITEMS, HISTORY_CONFIG_PATH, HISTORY_PATH, MAX_ITEMS_CEILING
from clipai.errors import NotFoundError, StorageError
from clipai.models import ClipboardEntry, EntryFilter
from clipai.utils import read_json, write_json

logger = logging.getLogger(__name__)


def sort_key(entry: ClipboardEntry) -> tuple[bool, bool, int]:
    """Pinned first, then favorites, then newest first."""
    return (not entry.pinned, not entry.favorite, -entry.created_at)


class StorageManager:
    """Clipboard history kept in memory and written through to a JSON file.

    Every mutating call rewrites the whole history file while holding the lock.
    The capacity setting lives in a separate config file next to it.
    """

    def __init__(self, path: str | Path | None = None, config_path: str | Path | None = None):
        self._path = Path(path) if path else HISTORY_PATH
        if config_path:
            self._config_path = Path(config_path)
        elif path:
            self._config_path = self._path.with_name("history_config.json")
        else:
            self._config_path = HISTORY_CONFIG_PATH
        self._lock = threading.Lock()
        self._entries: dict[str, ClipboardEntry] = {}
        self._max_items = DEFAULT_MAX_ITEMS
        self._load_config()
        self._load()

    def _load_config(self) -> None:
        try:
            data = read_json(self._config_path)
        except StorageError:
            logger.warning("Could not load history config, using defaults", exc_info=True)
            return
        if isinstance(data, dict) and "maxItems" in data:
            try:
                self._max_items = min(int(data["maxItems"]), MAX_ITEMS_CEILING)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid maxItems value: %r", data["maxItems"])

    def _load(self) -> None:
        try:
            data = read_json(self._path)
        except StorageError:
            logger.warning("Could not load clipboard history, starting empty", exc_info=True)
            return
        if not data:
            return
        for raw in data:
            try:
                entry = ClipboardEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed history entry: %r", raw)
                continue
            self._entries[entry.id] = entry

    def _commit(self, entries: dict[str, ClipboardEntry]) -> None:
        # Memory only changes once the file write has succeeded
        write_json(self._path, [e.to_dict() for e in entries.values()])
        self._entries = entries

    def _evict_if_needed(self, entries: dict[str, ClipboardEntry]) -> ClipboardEntry | None:
        if len(entries) <= self._max_items:
            return None
        candidates = [e for e in entries.values() if not e.pinned and not e.favorite]
        if not candidates:
            return None
        oldest = min(candidates, key=lambda e: e.created_at)
        del entries[oldest.id]
        return oldest

    def _require(self, entry_id: str) -> ClipboardEntry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    def _replace_entry(self, entry: ClipboardEntry) -> None:
        entries = dict(self._entries)
        entries[entry.id] = entry
        self._commit(entries)

    def add_entry(self, entry: ClipboardEntry) -> None:
        with self._lock:
            entries = dict(self._entries)
            entries[entry.id] = entry
            evicted = self._evict_if_needed(entries)
            self._commit(entries)
            if evicted:
                logger.debug("Evicted entry %s to stay within %d items", evicted.id, self._max_items)

    def update_entry(self, entry: ClipboardEntry) -> None:
        with self._lock:
            self._require(entry.id)
            self._replace_entry(entry)

    def remove_entry(self, entry_id: str) -> None:
        with self._lock:
            self._require(entry_id)
            entries = dict(self._entries)
            del entries[entry_id]
            self._commit(entries)

    def edit_content(self, entry_id: str, content: str) -> ClipboardEntry:
        with self._lock:
            updated = replace(self._require(entry_id), content=content, translation=None, summary=None)
            self._replace_entry(updated)
            return updated

    def record_analysis(self, entry_id: str, translation: str | None = None, summary: str | None = None) -> ClipboardEntry:
        with self._lock:
            entry = self._require(entry_id)
            updated = replace(
                entry,
                translation=entry.translation if translation is None else translation,
                summary=entry.summary if summary is None else summary,
                analysis_count=(entry.analysis_count or 0) + 1,
            )
            self._replace_entry(updated)
            return updated

    def toggle_pin(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._require(entry_id)
            updated = replace(entry, pinned=not entry.pinned)
            self._replace_entry(updated)
            return updated.pinned

    def toggle_favorite(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._require(entry_id)
            updated = replace(entry, favorite=not entry.favorite)
            self._replace_entry(updated)
            return updated.favorite

    def get_entry(self, entry_id: str) -> ClipboardEntry | None:
        with self._lock:
            return self._entries.get(entry_id)

    def get_all(self) -> list[ClipboardEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=sort_key)

    def get_filtered(self, entry_filter: EntryFilter | None) -> list[ClipboardEntry]:
        with self._lock:
            return self._filtered(entry_filter)

    def get_filtered_paged(self, entry_filter: EntryFilter | None, offset: int, limit: int) -> list[ClipboardEntry]:
        with self._lock:
            items = self._filtered(entry_filter)
        start = min(max(offset, 0), len(items))
        end = min(start + max(limit, 0), len(items))
        return items[start:end]

    def count(self, entry_filter: EntryFilter | None = None) -> int:
        with self._lock:
            if entry_filter is None:
                return len(self._entries)
            return sum(1 for e in self._entries.values() if entry_filter.matches(e))

    def clear_all(self) -> None:
        with self._lock:
            self._commit({})

    def get_max_items(self) -> int:
        return self._max_items

    def set_max_items(self, max_items: int) -> int:
        with self._lock:
            max_items = min(max_items, MAX_ITEMS_CEILING)
            write_json(self._config_path, {"maxItems": max_items})
            self._max_items = max_items
            return self._max_items

    def _filtered(self, entry_filter: EntryFilter | None) -> list[ClipboardEntry]:
        if entry_filter is None:
            items = list(self._entries.values())
        else:
            items = [e for e in self._entries.values() if entry_filter.matches(e)]
        return sorted(items, key=sort_key)
