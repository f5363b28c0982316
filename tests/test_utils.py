import struct
from unittest.mock import patch

import pytest

from clipai.errors import StorageError
from clipai.utils import (
    compute_hash,
    detect_category,
    ensure_dirs,
    get_image_dimensions,
    read_json,
    truncate_text,
    write_json,
)


class TestComputeHash:
    def test_string_input(self):
        h = compute_hash("hello")
        assert isinstance(h, str)
        assert len(h) == 64  # SHA-256 hex digest

    def test_different_content_different_hash(self):
        assert compute_hash("abc") != compute_hash("xyz")

    def test_string_and_bytes_same_hash(self):
        assert compute_hash("hello") == compute_hash(b"hello")


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("hello", 60) == "hello"

    def test_long_text_truncated(self):
        result = truncate_text("a" * 100, 60)
        assert len(result) == 60
        assert result.endswith("...")

    def test_multiline_collapsed(self):
        assert truncate_text("hello\nworld\nfoo", 60) == "hello world foo"

    def test_exact_length_not_truncated(self):
        text = "a" * 60
        assert truncate_text(text, 60) == text


class TestGetImageDimensions:
    def test_valid_png(self):
        png_bytes = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", 1920, 1080) + b"\x00" * 10
        assert get_image_dimensions(png_bytes) == (1920, 1080)

    def test_invalid_data(self):
        assert get_image_dimensions(b"not a png at all, really not") == (0, 0)

    def test_too_short(self):
        assert get_image_dimensions(b"\x89PNG") == (0, 0)


class TestDetectCategory:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("https://example.com/a?b=c", "link"),
            ("  http://localhost:8080  ", "link"),
            ("someone@example.org", "email"),
            ("<div class='x'>hi</div>", "code"),
            ("def main():\n    pass", "code"),
            ("import os\nprint(os.name)", "code"),
            ("const f = function () {}", "code"),
            ("my password is hunter2", "password"),
            ("just some words", "text"),
        ],
    )
    def test_categories(self, text, expected):
        assert detect_category(text) == expected


class TestJsonFiles:
    def test_missing_file_reads_none(self, tmp_path):
        assert read_json(tmp_path / "missing.json") is None

    def test_blank_file_reads_none(self, tmp_path):
        path = tmp_path / "blank.json"
        path.write_text("  \n", encoding="utf-8")
        assert read_json(path) is None

    def test_invalid_json_raises_storage_error(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[1,", encoding="utf-8")
        with pytest.raises(StorageError):
            read_json(path)

    def test_write_is_pretty_utf8(self, tmp_path):
        path = tmp_path / "nested" / "out.json"
        write_json(path, {"text": "你好"})
        raw = path.read_text(encoding="utf-8")
        assert "你好" in raw
        assert "\n  " in raw
        assert read_json(path) == {"text": "你好"}

    def test_write_leaves_no_temp_files(self, tmp_path):
        write_json(tmp_path / "a.json", [1, 2])
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]

    def test_unserializable_raises_storage_error(self, tmp_path):
        with pytest.raises(StorageError):
            write_json(tmp_path / "a.json", {"x": object()})
        assert not (tmp_path / "a.json").exists()


class TestEnsureDirs:
    def test_creates_directories(self, tmp_path):
        data_dir = tmp_path / "data"
        with patch("clipai.utils.DATA_DIR", data_dir):
            ensure_dirs()
            ensure_dirs()  # Should not raise
        assert data_dir.exists()
