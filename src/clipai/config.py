import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("CLIPAI_DATA_DIR", Path.home() / ".local" / "share" / "clipai"))
HISTORY_PATH = DATA_DIR / "history.json"
HISTORY_CONFIG_PATH = DATA_DIR / "history_config.json"
ROLES_PATH = DATA_DIR / "roles.json"
AI_SETTINGS_PATH = DATA_DIR / "ai_settings.json"
TRANSLATION_SETTINGS_PATH = DATA_DIR / "translation_settings.json"
LOG_PATH = DATA_DIR / "clipai.log"

DEFAULT_MAX_ITEMS = 404  # history capacity until the user changes it
MAX_ITEMS_CEILING = 4000
MIN_MAX_ITEMS = 10
MAX_CONSECUTIVE_ERRORS = 10  # pasteboard read failures before the handle is recreated
EMPTY_LOG_EVERY = 100
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
PREVIEW_LENGTH = 60  # characters shown in menu item

TRANSLATE_URL = "https://fanyi-api.baidu.com/api/trans/vip/translate"
TRANSLATION_TIMEOUT = 10  # seconds
TRANSLATION_MAX_CHARS = 2000


def _parse_int(name: str, default: int, low: int, high: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(low, min(high, value))


def _parse_float(name: str, default: float, low: float, high: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(low, min(high, value))


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _parse_menu_display_count() -> int:
    return _parse_int("CLIPAI_MENU_DISPLAY_COUNT", 10, 5, 50)


POLL_INTERVAL = _parse_float("CLIPAI_POLL_INTERVAL", 1.0, 0.2, 10.0)  # seconds between clipboard checks
MENU_DISPLAY_COUNT = _parse_menu_display_count()
HTTP_TIMEOUT = _parse_float("CLIPAI_HTTP_TIMEOUT", 60.0, 1.0, 600.0)  # chat and model calls
CAPTURE_IMAGES = _parse_bool("CLIPAI_CAPTURE_IMAGES", True)
AUTO_CATEGORY = _parse_bool("CLIPAI_AUTO_CATEGORY", True)
