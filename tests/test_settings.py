import json
from unittest.mock import patch

import pytest

from clipai.errors import NotFoundError, PermissionDeniedError
from clipai.models import ConnectionTestResult, ProviderSetting, TranslationSettings
from clipai.settings import ProviderSettingsStore, TranslationSettingsStore, load_default_providers


@pytest.fixture
def providers(tmp_path):
    return ProviderSettingsStore(tmp_path / "ai_settings.json")


class TestDefaults:
    def test_seed_contains_no_api_keys(self):
        with patch.dict("os.environ", {}, clear=True):
            defaults = load_default_providers()
        assert defaults.selected_provider_id == "zhipu"
        assert {"zhipu", "ollama", "openai"} <= set(defaults.providers)
        assert all(p.api_key is None for p in defaults.providers.values())

    def test_env_supplies_api_key(self):
        with patch.dict("os.environ", {"CLIPAI_DEEPSEEK_API_KEY": "sk-test"}):
            defaults = load_default_providers()
        assert defaults.providers["deepseek"].api_key == "sk-test"

    def test_seeded_file_written(self, tmp_path):
        path = tmp_path / "ai_settings.json"
        ProviderSettingsStore(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["selectedProviderId"] == "zhipu"
        assert "baseUrl" in data["providers"]["ollama"]


class TestProviderStore:
    def test_get_missing(self, providers):
        with pytest.raises(NotFoundError):
            providers.get("nope")

    def test_update_inserts_new_provider(self, providers):
        providers.update("local", ProviderSetting(base_url="http://localhost:8080/v1", selected_model="m"))
        assert providers.get("local").selected_model == "m"

    def test_get_returns_copy(self, providers):
        setting = providers.get("ollama")
        setting.selected_model = "changed"
        assert providers.get("ollama").selected_model != "changed"

    def test_select(self, providers):
        providers.select("ollama")
        assert providers.get_selected()[0] == "ollama"

    def test_select_missing(self, providers):
        with pytest.raises(NotFoundError):
            providers.select("nope")

    def test_builtin_cannot_be_deleted(self, providers):
        with pytest.raises(PermissionDeniedError):
            providers.delete("openai")

    def test_custom_provider_deleted_and_selection_falls_back(self, providers):
        providers.update("local", ProviderSetting(base_url="http://localhost:8080/v1"))
        providers.select("local")
        providers.delete("local")
        assert providers.get_selected()[0] == "zhipu"
        with pytest.raises(NotFoundError):
            providers.get("local")

    def test_record_test(self, providers):
        providers.record_test("ollama", ConnectionTestResult(True, "ok", 12))
        setting = providers.get("ollama")
        assert setting.test_success is True
        assert setting.last_test_time is not None

    def test_set_models(self, providers):
        providers.set_models("ollama", ["llama3", "qwen2"])
        assert providers.get("ollama").dynamic_models == ["llama3", "qwen2"]

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "ai_settings.json"
        ProviderSettingsStore(path).update("ollama", ProviderSetting(base_url="http://127.0.0.1:11434/v1", api_key="k"))
        assert ProviderSettingsStore(path).get("ollama").api_key == "k"

    def test_corrupt_file_uses_defaults(self, tmp_path):
        path = tmp_path / "ai_settings.json"
        path.write_text("{", encoding="utf-8")
        assert ProviderSettingsStore(path).get("zhipu").base_url.startswith("https://")


class TestTranslationSettingsStore:
    def test_defaults(self, tmp_path):
        settings = TranslationSettingsStore(tmp_path / "t.json").get()
        assert settings == TranslationSettings(app_id="", key="", source_lang="auto", target_lang="zh")

    def test_update_persists(self, tmp_path):
        path = tmp_path / "t.json"
        TranslationSettingsStore(path).update(TranslationSettings(app_id="X", key="Y", target_lang="en"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"appId": "X", "key": "Y", "sourceLang": "auto", "targetLang": "en"}
        assert TranslationSettingsStore(path).get().app_id == "X"
