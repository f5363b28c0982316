import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from clipai.utils import now_ms

IMAGE_DATA_PREFIX = "data:image/png;base64,"


class Category(str, Enum):
    TEXT = "text"
    CODE = "code"
    LINK = "link"
    EMAIL = "email"
    PASSWORD = "password"
    IMAGE = "image"


@dataclass
class ClipboardEntry:
    id: str
    content: str
    created_at: int
    favorite: bool = False
    pinned: bool = False
    category: str | None = None
    translation: str | None = None
    summary: str | None = None
    analysis_count: int | None = None

    @classmethod
    def new(cls, content: str, category: str | None = None) -> "ClipboardEntry":
        return cls(id=str(uuid.uuid4()), content=content, created_at=now_ms(), category=category)

    @property
    def is_image(self) -> bool:
        return self.category == Category.IMAGE.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "createdAt": self.created_at,
            "favorite": self.favorite,
            "pinned": self.pinned,
        }
        optional = {
            "category": self.category,
            "translation": self.translation,
            "summary": self.summary,
            "analysisCount": self.analysis_count,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClipboardEntry":
        # Older history files used "timestamp" and "aiAnalysisCount"
        created_at = data.get("createdAt", data.get("timestamp"))
        analysis_count = data.get("analysisCount", data.get("aiAnalysisCount"))
        return cls(
            id=str(data["id"]),
            content=data.get("content", ""),
            created_at=int(created_at) if created_at is not None else now_ms(),
            favorite=bool(data.get("favorite", False)),
            pinned=bool(data.get("pinned", False)),
            category=data.get("category"),
            translation=data.get("translation"),
            summary=data.get("summary"),
            analysis_count=int(analysis_count) if analysis_count is not None else None,
        )


@dataclass
class EntryFilter:
    search_text: str | None = None
    favorites_only: bool = False
    pinned_only: bool = False
    category: str | None = None

    def matches(self, entry: ClipboardEntry) -> bool:
        if self.search_text and self.search_text.lower() not in entry.content.lower():
            return False
        if self.favorites_only and not entry.favorite:
            return False
        if self.pinned_only and not entry.pinned:
            return False
        if self.category and entry.category != self.category:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "EntryFilter | None":
        if data is None:
            return None
        return cls(
            search_text=data.get("searchText"),
            favorites_only=bool(data.get("showFavoritesOnly", False)),
            pinned_only=bool(data.get("showPinnedOnly", False)),
            category=data.get("category"),
        )


@dataclass
class OperationResult:
    success: bool
    message: str | None = None
    data: Any = None

    @classmethod
    def ok(cls, message: str | None = None, data: Any = None) -> "OperationResult":
        return cls(True, message, data)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(False, message)


@dataclass
class Role:
    id: str
    name: str
    description: str
    prompt: str
    icon: str
    is_preset: bool = False
    avatar: str | None = None
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "prompt": self.prompt,
            "icon": self.icon,
            "isPreset": self.is_preset,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.avatar is not None:
            data["avatar"] = self.avatar
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Role":
        now = now_ms()
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            prompt=data.get("prompt", ""),
            icon=data.get("icon", ""),
            is_preset=bool(data.get("isPreset", False)),
            avatar=data.get("avatar"),
            created_at=int(data.get("createdAt", now)),
            updated_at=int(data.get("updatedAt", now)),
        )


@dataclass
class ProviderSetting:
    base_url: str | None = None
    selected_model: str = ""
    api_key: str | None = None
    models_list_url: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2048
    use_stream: bool = True
    dynamic_models: list[str] | None = None
    last_test_time: int | None = None
    test_success: bool | None = None

    _KEYS = {
        "base_url": "baseUrl",
        "selected_model": "selectedModel",
        "api_key": "apiKey",
        "models_list_url": "modelsListUrl",
        "temperature": "temperature",
        "max_tokens": "maxTokens",
        "use_stream": "useStream",
        "dynamic_models": "dynamicModels",
        "last_test_time": "lastTestTime",
        "test_success": "testSuccess",
    }

    def to_dict(self) -> dict[str, Any]:
        return {json_key: getattr(self, attr) for attr, json_key in self._KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderSetting":
        kwargs = {attr: data[json_key] for attr, json_key in cls._KEYS.items() if json_key in data}
        return cls(**kwargs)


@dataclass
class AISettings:
    selected_provider_id: str
    providers: dict[str, ProviderSetting] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "selectedProviderId": self.selected_provider_id,
            "providers": {pid: p.to_dict() for pid, p in self.providers.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AISettings":
        return cls(
            selected_provider_id=data.get("selectedProviderId", ""),
            providers={pid: ProviderSetting.from_dict(p) for pid, p in data.get("providers", {}).items()},
        )


@dataclass
class TranslationSettings:
    app_id: str = ""
    key: str = ""
    source_lang: str = "auto"
    target_lang: str = "zh"

    def to_dict(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "key": self.key,
            "sourceLang": self.source_lang,
            "targetLang": self.target_lang,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranslationSettings":
        return cls(
            app_id=data.get("appId", ""),
            key=data.get("key", ""),
            source_lang=data.get("sourceLang", "auto"),
            target_lang=data.get("targetLang", "zh"),
        )


@dataclass
class TranslationResult:
    source: str
    target: str
    items: list[tuple[str, str]]

    @property
    def text(self) -> str:
        return "\n".join(dst for _src, dst in self.items)


@dataclass
class ModelInfo:
    id: str
    name: str | None = None
    description: str | None = None
    max_tokens: int | None = None


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    latency_ms: int | None = None
