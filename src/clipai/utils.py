import hashlib
import json
import os
import re
import struct
import tempfile
import time
from pathlib import Path
from typing import Any

from clipai.config import DATA_DIR
from clipai.errors import StorageError

_LINK_RE = re.compile(r"^https?://", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[\w.-]+@([\w-]+\.)+[\w-]{2,4}$")
_CODE_RES = (
    re.compile(r"<[^>]*>"),
    re.compile(r"function\s*\("),
    re.compile(r"^\s*(import|from)\s+\w", re.MULTILINE),
    re.compile(r"\{\s*\w+:\s*\w+\s*\}"),
    re.compile(r"^\s*def\s+\w+\s*\(", re.MULTILINE),
)
_PASSWORD_RE = re.compile(r"\b(password|passwd|pwd)\b", re.IGNORECASE)


def compute_hash(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def now_ms() -> int:
    return int(time.time() * 1000)


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def get_image_dimensions(png_bytes: bytes) -> tuple[int, int]:
    if len(png_bytes) < 24 or png_bytes[:8] != b"\x89PNG\r\n\x1a\n":
        return (0, 0)
    width = struct.unpack(">I", png_bytes[16:20])[0]
    height = struct.unpack(">I", png_bytes[20:24])[0]
    return (width, height)


def detect_category(text: str) -> str:
    """Guess a category tag for captured text: link, email, code, password or text."""
    stripped = text.strip()
    if _LINK_RE.match(stripped):
        return "link"
    if _EMAIL_RE.match(stripped):
        return "email"
    if any(pattern.search(text) for pattern in _CODE_RES):
        return "code"
    if _PASSWORD_RE.search(text):
        return "password"
    return "text"


def read_json(path: str | Path) -> Any | None:
    """Load a JSON document, returning None when the file is missing or blank.

    Raises:
        StorageError: If the file cannot be read or is not valid JSON.
    """
    p = Path(path)
    if not p.exists():
        return None
    try:
        contents = p.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Failed to read {p}: {e}") from e
    if not contents.strip():
        return None
    try:
        return json.loads(contents)
    except json.JSONDecodeError as e:
        raise StorageError(f"Failed to parse {p}: {e}") from e


def write_json(path: str | Path, data: Any) -> None:
    """Write *data* as pretty-printed UTF-8 JSON, replacing the file atomically.

    Raises:
        StorageError: If serialization or any filesystem step fails.
    """
    p = Path(path)
    try:
        payload = json.dumps(data, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Failed to serialize data for {p}: {e}") from e

    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=p.parent, prefix=f".{p.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, p)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise StorageError(f"Failed to write {p}: {e}") from e
