import itertools
import struct

import pytest

from clipai.clipboard import ClipboardEmpty
from clipai.models import ClipboardEntry
from clipai.storage import StorageManager

_ids = itertools.count(1)


def _make_png(width: int = 100, height: int = 50) -> bytes:
    """Smallest byte string get_image_dimensions accepts as a PNG."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", width, height) + b"\x08\x06\x00\x00\x00"


class FakeClipboard:
    """Stand-in for clipai.clipboard.Clipboard backed by plain attributes."""

    def __init__(self):
        self.text: str | None = None
        self.png: bytes | None = None
        self.error: Exception | None = None
        self.written: list = []

    def get_text(self) -> str:
        if self.error is not None:
            raise self.error
        if self.text is None:
            raise ClipboardEmpty("no text")
        return self.text

    def get_png(self) -> bytes:
        if self.png is None:
            raise ClipboardEmpty("no png")
        return self.png

    def set_text(self, text: str) -> None:
        self.written.append(text)
        self.text = text
        self.png = None

    def set_png(self, png_bytes: bytes) -> None:
        self.written.append(png_bytes)
        self.png = png_bytes
        self.text = None


@pytest.fixture
def storage(tmp_path):
    return StorageManager(tmp_path / "history.json")


@pytest.fixture
def fake_clipboard():
    return FakeClipboard()


@pytest.fixture
def make_entry():
    """Factory fixture to create ClipboardEntry instances for testing."""

    def _make_entry(
        content: str = "hello world",
        created_at: int | None = None,
        pinned: bool = False,
        favorite: bool = False,
        category: str | None = None,
        entry_id: str | None = None,
    ) -> ClipboardEntry:
        n = next(_ids)
        return ClipboardEntry(
            id=entry_id or f"entry-{n}",
            content=content,
            created_at=created_at if created_at is not None else 1_700_000_000_000 + n,
            pinned=pinned,
            favorite=favorite,
            category=category,
        )

    return _make_entry


@pytest.fixture
def make_png():
    return _make_png
