import json
import logging
import os
import threading
from dataclasses import replace
from importlib import resources
from pathlib import Path

from clipai.config import AI_SETTINGS_PATH, TRANSLATION_SETTINGS_PATH
from clipai.errors import NotFoundError, PermissionDeniedError, StorageError
from clipai.models import AISettings, ConnectionTestResult, ProviderSetting, TranslationSettings
from clipai.utils import now_ms, read_json, write_json

logger = logging.getLogger(__name__)


def load_default_providers() -> AISettings:
    """Built-in providers shipped with the package.

    API keys are never part of the seed; ``CLIPAI_<PROVIDER>_API_KEY`` in the
    environment fills them in when the settings file is first created.
    """
    raw = resources.files("clipai").joinpath("presets", "providers.json").read_text(encoding="utf-8")
    settings = AISettings.from_dict(json.loads(raw))
    for provider_id, setting in settings.providers.items():
        env_key = os.environ.get(f"CLIPAI_{provider_id.upper()}_API_KEY")
        if env_key:
            setting.api_key = env_key
    return settings


class ProviderSettingsStore:
    def __init__(self, path: str | Path | None = None, defaults: AISettings | None = None):
        self._path = Path(path) if path else AI_SETTINGS_PATH
        self._defaults = defaults if defaults is not None else load_default_providers()
        self._lock = threading.Lock()
        self._settings = self._load()

    def _load(self) -> AISettings:
        try:
            data = read_json(self._path)
        except StorageError:
            logger.warning("Could not load AI settings, using defaults", exc_info=True)
            return self._copy_defaults()

        if not data:
            settings = self._copy_defaults()
            try:
                write_json(self._path, settings.to_dict())
            except StorageError:
                logger.warning("Could not write default AI settings", exc_info=True)
            return settings

        try:
            return AISettings.from_dict(data)
        except (AttributeError, TypeError, ValueError):
            logger.warning("AI settings file is malformed, using defaults", exc_info=True)
            return self._copy_defaults()

    def _copy_defaults(self) -> AISettings:
        return AISettings(
            selected_provider_id=self._defaults.selected_provider_id,
            providers={pid: replace(p) for pid, p in self._defaults.providers.items()},
        )

    def _save(self) -> None:
        write_json(self._path, self._settings.to_dict())

    def get_settings(self) -> AISettings:
        with self._lock:
            return AISettings(
                selected_provider_id=self._settings.selected_provider_id,
                providers={pid: replace(p) for pid, p in self._settings.providers.items()},
            )

    def update_settings(self, settings: AISettings) -> None:
        with self._lock:
            self._settings = settings
            self._save()

    def get(self, provider_id: str) -> ProviderSetting:
        with self._lock:
            setting = self._settings.providers.get(provider_id)
        if setting is None:
            raise NotFoundError(f"No settings for provider: {provider_id}")
        return replace(setting)

    def get_selected(self) -> tuple[str, ProviderSetting]:
        with self._lock:
            provider_id = self._settings.selected_provider_id
        return provider_id, self.get(provider_id)

    def update(self, provider_id: str, setting: ProviderSetting) -> None:
        with self._lock:
            self._settings.providers[provider_id] = setting
            self._save()

    def select(self, provider_id: str) -> None:
        with self._lock:
            if provider_id not in self._settings.providers:
                raise NotFoundError(f"No settings for provider: {provider_id}")
            self._settings.selected_provider_id = provider_id
            self._save()

    def delete(self, provider_id: str) -> None:
        with self._lock:
            if provider_id not in self._settings.providers:
                raise NotFoundError(f"No settings for provider: {provider_id}")
            if provider_id in self._defaults.providers:
                raise PermissionDeniedError(f"Built-in provider cannot be deleted: {provider_id}")
            del self._settings.providers[provider_id]
            if self._settings.selected_provider_id == provider_id:
                self._settings.selected_provider_id = self._defaults.selected_provider_id
            self._save()

    def record_test(self, provider_id: str, result: ConnectionTestResult) -> None:
        with self._lock:
            setting = self._settings.providers.get(provider_id)
            if setting is None:
                raise NotFoundError(f"No settings for provider: {provider_id}")
            setting.last_test_time = now_ms()
            setting.test_success = result.success
            self._save()

    def set_models(self, provider_id: str, models: list[str]) -> None:
        with self._lock:
            setting = self._settings.providers.get(provider_id)
            if setting is None:
                raise NotFoundError(f"No settings for provider: {provider_id}")
            setting.dynamic_models = models
            self._save()


class TranslationSettingsStore:
    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else TRANSLATION_SETTINGS_PATH
        self._lock = threading.Lock()
        self._settings = TranslationSettings()
        try:
            data = read_json(self._path)
        except StorageError:
            logger.warning("Could not load translation settings, using defaults", exc_info=True)
            return
        if isinstance(data, dict):
            self._settings = TranslationSettings.from_dict(data)

    def get(self) -> TranslationSettings:
        with self._lock:
            return replace(self._settings)

    def update(self, settings: TranslationSettings) -> None:
        with self._lock:
            self._settings = replace(settings)
            write_json(self._path, self._settings.to_dict())
