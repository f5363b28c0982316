"""Command surface used by the menu-bar app and the CLI.

Commands that can fail return an :class:`OperationResult`; plain reads return
their values directly.
"""

import base64
import functools
import logging
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests

from clipai.clipboard import Clipboard
from clipai.config import (
    AI_SETTINGS_PATH,
    HISTORY_CONFIG_PATH,
    HISTORY_PATH,
    MIN_MAX_ITEMS,
    ROLES_PATH,
    TRANSLATION_SETTINGS_PATH,
)
from clipai.errors import ClipAIError, NotFoundError, ValidationError
from clipai.events import EventBus, Listener
from clipai.models import (
    IMAGE_DATA_PREFIX,
    AISettings,
    ClipboardEntry,
    ConnectionTestResult,
    EntryFilter,
    OperationResult,
    ProviderSetting,
    Role,
    TranslationSettings,
)
from clipai.monitor import ClipboardMonitor
from clipai.relay import ApiRelay, build_chat_payload
from clipai.roles import RoleStore
from clipai.settings import ProviderSettingsStore, TranslationSettingsStore
from clipai.storage import StorageManager
from clipai.translation import SUPPORTED_LANGUAGES, TranslationClient
from clipai.utils import compute_hash

logger = logging.getLogger(__name__)

SUMMARIZER_ROLE_ID = "30e69d6e-433a-4543-a7ca-aad1f01d942e"


def _command(func):
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs) -> OperationResult:
        try:
            return func(self, *args, **kwargs)
        except ClipAIError as e:
            logger.warning("%s failed: %s", func.__name__, e)
            return OperationResult.fail(str(e))

    return wrapper


def _as_filter(entry_filter: EntryFilter | dict[str, Any] | None) -> EntryFilter | None:
    if isinstance(entry_filter, dict):
        return EntryFilter.from_dict(entry_filter)
    return entry_filter


class Backend:
    def __init__(
        self,
        data_dir: str | Path | None = None,
        clipboard_factory: Callable[[], Clipboard] = Clipboard,
        session: requests.Session | None = None,
        on_change: Callable[[], None] | None = None,
    ):
        base = Path(data_dir) if data_dir else None

        def located(default: Path) -> Path:
            return base / default.name if base else default

        self.bus = EventBus()
        self.storage = StorageManager(located(HISTORY_PATH), located(HISTORY_CONFIG_PATH))
        self.roles = RoleStore(located(ROLES_PATH))
        self.providers = ProviderSettingsStore(located(AI_SETTINGS_PATH))
        self.translation_settings = TranslationSettingsStore(located(TRANSLATION_SETTINGS_PATH))
        self.relay = ApiRelay(session=session, bus=self.bus)
        self.translator = TranslationClient(session=session)
        self.monitor = ClipboardMonitor(
            self.storage,
            on_change=on_change,
            bus=self.bus,
            clipboard_factory=clipboard_factory,
        )
        self._clipboard_factory = clipboard_factory
        self._clipboard: Clipboard | None = None

    # Lifecycle

    def start(self) -> None:
        self.monitor.start()

    def shutdown(self, timeout: float = 2.0) -> None:
        self.monitor.stop(timeout)

    # Entries

    def get_entries(
        self,
        limit: int | None = None,
        offset: int | None = None,
        filter: EntryFilter | dict[str, Any] | None = None,
    ) -> list[ClipboardEntry]:
        entry_filter = _as_filter(filter)
        if limit is None and offset is None:
            return self.storage.get_filtered(entry_filter)
        if limit is None:
            limit = self.storage.count(entry_filter)
        return self.storage.get_filtered_paged(entry_filter, offset or 0, limit)

    def get_entry_count(self, filter: EntryFilter | dict[str, Any] | None = None) -> int:
        return self.storage.count(_as_filter(filter))

    @_command
    def add_entry(self, entry: ClipboardEntry) -> OperationResult:
        self.storage.add_entry(entry)
        return OperationResult.ok("Entry added", entry)

    @_command
    def update_entry(self, entry: ClipboardEntry) -> OperationResult:
        self.storage.update_entry(entry)
        return OperationResult.ok("Entry updated", entry)

    @_command
    def remove_entry(self, entry_id: str) -> OperationResult:
        self.storage.remove_entry(entry_id)
        return OperationResult.ok("Entry removed")

    @_command
    def clear_all(self) -> OperationResult:
        self.storage.clear_all()
        return OperationResult.ok("History cleared")

    @_command
    def edit_entry_content(self, entry_id: str, content: str) -> OperationResult:
        entry = self.storage.edit_content(entry_id, content)
        return OperationResult.ok("Entry updated", entry)

    @_command
    def toggle_pin(self, entry_id: str) -> OperationResult:
        return OperationResult.ok(data=self.storage.toggle_pin(entry_id))

    @_command
    def toggle_favorite(self, entry_id: str) -> OperationResult:
        return OperationResult.ok(data=self.storage.toggle_favorite(entry_id))

    def copy_to_system_clipboard(self, content: str) -> OperationResult:
        """Write *content* to the pasteboard without capturing it again."""
        try:
            if self._clipboard is None:
                self._clipboard = self._clipboard_factory()
            if content.startswith(IMAGE_DATA_PREFIX):
                png = base64.b64decode(content[len(IMAGE_DATA_PREFIX):], validate=True)
                self.monitor.remember("image:" + compute_hash(png))
                self._clipboard.set_png(png)
            else:
                self.monitor.remember(content)
                self._clipboard.set_text(content)
        except (ImportError, RuntimeError, ValueError) as e:
            logger.warning("Failed to copy to the pasteboard: %s", e)
            self._clipboard = None
            return OperationResult.fail(f"Failed to copy to clipboard: {e}")
        return OperationResult.ok("Copied to clipboard")

    def get_max_items(self) -> int:
        return self.storage.get_max_items()

    @_command
    def set_max_items(self, max_items: int) -> OperationResult:
        if max_items < MIN_MAX_ITEMS:
            raise ValidationError(f"Maximum history size must be at least {MIN_MAX_ITEMS}")
        return OperationResult.ok("History size updated", self.storage.set_max_items(max_items))

    # Roles

    def get_roles(self) -> list[Role]:
        return self.roles.get_all()

    @_command
    def get_role(self, role_id: str) -> OperationResult:
        return OperationResult.ok(data=self.roles.get(role_id))

    @_command
    def add_role(
        self, name: str, description: str, prompt: str, icon: str, avatar: str | None = None
    ) -> OperationResult:
        if not name.strip():
            raise ValidationError("Role name is required")
        role = Role(
            id=str(uuid.uuid4()),
            name=name,
            description=description,
            prompt=prompt,
            icon=icon,
            avatar=avatar,
        )
        return OperationResult.ok("Role added", self.roles.add(role))

    @_command
    def update_role(self, role: Role) -> OperationResult:
        return OperationResult.ok("Role updated", self.roles.update(role))

    @_command
    def delete_role(self, role_id: str) -> OperationResult:
        self.roles.delete(role_id)
        return OperationResult.ok("Role deleted")

    @_command
    def reset_role(self, role_id: str) -> OperationResult:
        return OperationResult.ok("Role reset", self.roles.reset(role_id))

    # Providers

    def get_ai_settings(self) -> AISettings:
        return self.providers.get_settings()

    @_command
    def update_ai_settings(self, settings: AISettings) -> OperationResult:
        self.providers.update_settings(settings)
        return OperationResult.ok("AI settings saved")

    @_command
    def get_provider_setting(self, provider_id: str) -> OperationResult:
        return OperationResult.ok(data=self.providers.get(provider_id))

    @_command
    def update_provider_setting(self, provider_id: str, setting: ProviderSetting) -> OperationResult:
        self.providers.update(provider_id, setting)
        return OperationResult.ok("Provider settings saved")

    @_command
    def delete_provider(self, provider_id: str) -> OperationResult:
        self.providers.delete(provider_id)
        return OperationResult.ok("Provider deleted")

    @_command
    def select_provider(self, provider_id: str) -> OperationResult:
        self.providers.select(provider_id)
        return OperationResult.ok("Provider selected")

    # Translation

    def get_translation_settings(self) -> TranslationSettings:
        return self.translation_settings.get()

    @_command
    def update_translation_settings(self, settings: TranslationSettings) -> OperationResult:
        self.translation_settings.update(settings)
        return OperationResult.ok("Translation settings saved")

    @_command
    def translate_text(self, text: str) -> OperationResult:
        result = self.translator.translate(text, self.translation_settings.get())
        return OperationResult.ok(data=result)

    @_command
    def test_translation_api(self, settings: TranslationSettings | None = None) -> OperationResult:
        self.translator.test(settings or self.translation_settings.get())
        return OperationResult.ok("Translation API is working")

    def get_supported_languages(self) -> list[dict[str, str]]:
        return [{"code": code, "name": name} for code, name in SUPPORTED_LANGUAGES]

    @_command
    def translate_entry(self, entry_id: str) -> OperationResult:
        entry = self._require_text_entry(entry_id)
        result = self.translator.translate(entry.content, self.translation_settings.get())
        return OperationResult.ok(data=self.storage.record_analysis(entry_id, translation=result.text))

    # AI

    def test_connection(
        self, base_url: str, api_key: str | None = None, provider_id: str | None = None
    ) -> ConnectionTestResult:
        result = self.relay.test_connection(base_url, api_key)
        if provider_id:
            try:
                self.providers.record_test(provider_id, result)
            except ClipAIError as e:
                logger.warning("Could not record connection test for %s: %s", provider_id, e)
        return result

    @_command
    def list_models(self, url: str, api_key: str | None = None) -> OperationResult:
        return OperationResult.ok(data=self.relay.list_models(url, api_key))

    @_command
    def get_ai_models(self, provider_id: str) -> OperationResult:
        setting = self.providers.get(provider_id)
        if not setting.base_url:
            raise ValidationError(f"Provider {provider_id} has no base URL")
        url = setting.models_list_url or setting.base_url.rstrip("/") + "/models"
        models = self.relay.list_models(url, setting.api_key, base_url=setting.base_url)
        self.providers.set_models(provider_id, [m.id for m in models])
        return OperationResult.ok(data=models)

    @_command
    def chat_completion(
        self,
        provider_id: str,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool | None = None,
        listener: Listener | None = None,
    ) -> OperationResult:
        """Send a chat request.

        Streaming requests return the correlation channel in ``data``; the
        chunks, then ``"[DONE]"``, arrive on that channel of :attr:`bus`.
        Other requests return the full response body.
        """
        setting = self._provider_for_chat(provider_id)
        use_stream = setting.use_stream if stream is None else stream
        payload = build_chat_payload(
            model or setting.selected_model,
            messages,
            temperature=setting.temperature if temperature is None else temperature,
            max_tokens=setting.max_tokens if max_tokens is None else max_tokens,
            stream=use_stream,
        )
        if use_stream:
            channel = self.relay.start_stream(setting.base_url, setting.api_key, payload, listener=listener)
            return OperationResult.ok(data=channel)
        return OperationResult.ok(data=self.relay.complete(setting.base_url, setting.api_key, payload))

    @_command
    def analyze_with_ai(self, content: str, prompt: str, provider_id: str | None = None) -> OperationResult:
        return OperationResult.ok(data=self._analyze(content, prompt, provider_id))

    @_command
    def summarize_entry(self, entry_id: str, role_id: str | None = None) -> OperationResult:
        entry = self._require_text_entry(entry_id)
        role = self.roles.get(role_id or SUMMARIZER_ROLE_ID)
        summary = self._analyze(entry.content, role.prompt, None)
        return OperationResult.ok(data=self.storage.record_analysis(entry_id, summary=summary))

    def _analyze(self, content: str, prompt: str, provider_id: str | None) -> str:
        if provider_id is None:
            provider_id, _ = self.providers.get_selected()
        setting = self._provider_for_chat(provider_id)
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": content},
        ]
        payload = build_chat_payload(
            setting.selected_model,
            messages,
            temperature=setting.temperature,
            max_tokens=setting.max_tokens,
        )
        return self.relay.complete_text(setting.base_url, setting.api_key, payload)

    def _provider_for_chat(self, provider_id: str) -> ProviderSetting:
        setting = self.providers.get(provider_id)
        if not setting.base_url:
            raise ValidationError(f"Provider {provider_id} has no base URL")
        if not setting.selected_model:
            raise ValidationError(f"Provider {provider_id} has no model selected")
        return setting

    def _require_text_entry(self, entry_id: str) -> ClipboardEntry:
        entry = self.storage.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        if entry.is_image:
            raise ValidationError("Image entries cannot be processed as text")
        return entry

    # Poller

    def pause_polling(self) -> bool:
        return self.monitor.pause()

    def resume_polling(self) -> bool:
        return self.monitor.resume()

    def toggle_polling(self) -> bool:
        return self.monitor.toggle()

    def get_polling_status(self) -> bool:
        return self.monitor.is_running
