"""Tests for the clipai command line."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from clipai.__main__ import build_parser, main, setup_logging
from clipai.backend import Backend

SUMMARIZER_ID = "30e69d6e-433a-4543-a7ca-aad1f01d942e"


@pytest.fixture
def backend(tmp_path, fake_clipboard):
    b = Backend(data_dir=tmp_path, clipboard_factory=lambda: fake_clipboard, session=MagicMock(spec=requests.Session))
    with patch("clipai.__main__._backend", return_value=b), patch("clipai.__main__.setup_logging"):
        yield b


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestCLIParsing:
    def test_history_options(self):
        args = build_parser().parse_args(["history", "-n", "3", "--search", "foo", "--pinned"])
        assert args.limit == 3
        assert args.search == "foo"
        assert args.pinned is True
        assert args.favorites is False

    @patch("clipai.__main__.run_app", return_value=0)
    def test_default_runs_app(self, mock_run):
        assert _run([]) == 0
        mock_run.assert_called_once_with(False)

    @patch("clipai.__main__.run_app", return_value=0)
    def test_run_command_verbose(self, mock_run):
        assert _run(["-v", "run"]) == 0
        mock_run.assert_called_once_with(True)


class TestCommands:
    def test_history_empty(self, backend, capsys):
        assert _run(["history"]) == 0
        assert "No clipboard history." in capsys.readouterr().out

    def test_history_lists_entries(self, backend, make_entry, capsys):
        backend.add_entry(make_entry("alpha", category="text"))
        backend.add_entry(make_entry("beta"))
        assert _run(["history", "--search", "alp"]) == 0
        out = capsys.readouterr().out
        assert "[text] alpha" in out
        assert "beta" not in out

    def test_clear(self, backend, make_entry):
        backend.add_entry(make_entry())
        assert _run(["clear"]) == 0
        assert backend.get_entry_count() == 0

    def test_max_items_show_and_set(self, backend, capsys):
        assert _run(["max-items"]) == 0
        assert capsys.readouterr().out.strip() == "404"
        assert _run(["max-items", "120"]) == 0
        assert backend.get_max_items() == 120

    def test_max_items_below_floor_fails(self, backend, capsys):
        assert _run(["max-items", "3"]) == 1
        assert "at least 10" in capsys.readouterr().err

    def test_roles(self, backend, capsys):
        assert _run(["roles"]) == 0
        out = capsys.readouterr().out
        assert SUMMARIZER_ID in out
        assert "(preset)" in out

    def test_reset_unknown_role(self, backend, capsys):
        assert _run(["reset-role", "nope"]) == 1
        assert "nope" in capsys.readouterr().err

    def test_test_connection_failure_exit_code(self, backend, capsys):
        assert _run(["test-connection", "https://api.example.com/v1"]) == 1
        assert "API key" in capsys.readouterr().out

    def test_models(self, backend, capsys):
        resp = MagicMock(ok=True, status_code=200)
        resp.json.return_value = {"data": [{"id": "llama3"}]}
        backend.relay._session.get.return_value = resp
        assert _run(["models", "http://localhost:11434/v1/models"]) == 0
        assert "llama3" in capsys.readouterr().out

    def test_translate_without_credentials(self, backend, capsys):
        assert _run(["translate", "hello"]) == 1
        assert "credentials" in capsys.readouterr().err


class TestSetupLogging:
    @patch("clipai.__main__.logging.StreamHandler")
    @patch("clipai.__main__.logging.FileHandler")
    @patch("clipai.__main__.logging.basicConfig")
    @patch("clipai.__main__.ensure_dirs")
    def test_file_and_stderr_handlers(self, _mock_dirs, mock_basic, mock_file, mock_stream):
        setup_logging(verbose=True)
        kwargs = mock_basic.call_args.kwargs
        assert kwargs["level"] == 10
        assert kwargs["handlers"] == [mock_file.return_value, mock_stream.return_value]

    @patch("clipai.__main__.logging.StreamHandler")
    @patch("clipai.__main__.logging.FileHandler")
    @patch("clipai.__main__.logging.basicConfig")
    def test_cli_commands_skip_log_file(self, mock_basic, mock_file, _mock_stream):
        setup_logging(log_file=False)
        mock_file.assert_not_called()
        assert mock_basic.call_args.kwargs["level"] == 20
