import json
import threading
from unittest.mock import MagicMock

import pytest
import requests

from clipai.errors import NetworkError, ParseError, UpstreamError, ValidationError
from clipai.events import STREAM_DONE
from clipai.relay import (
    MODEL_LIST_PARSERS,
    ApiRelay,
    build_chat_payload,
    is_local_host,
    is_ollama_host,
    match_bare_array,
    match_models_array,
    match_ollama_tags,
    match_openai,
    ollama_tags_url,
    parse_model_list,
    parse_stream_line,
)


def _response(status: int = 200, body=None, lines: list[bytes] | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    text = body if isinstance(body, str) else json.dumps(body) if body is not None else ""
    resp.text = text
    if isinstance(body, str):
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body
    resp.iter_lines.return_value = iter(lines or [])
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def relay(session):
    return ApiRelay(session=session, timeout=5)


class TestHosts:
    def test_local_hosts(self):
        assert is_local_host("http://localhost:11434/v1")
        assert is_local_host("http://127.0.0.1:8080")
        assert not is_local_host("https://api.openai.com/v1")

    def test_ollama_hosts(self):
        assert is_ollama_host("http://localhost:11434/v1")
        assert is_ollama_host("http://127.0.0.1:11434")
        assert is_ollama_host("https://open.bigmodel.cn/api/paas/v4")
        assert not is_ollama_host("http://localhost:8080/v1")

    def test_tags_url(self):
        assert ollama_tags_url("http://localhost:11434/v1") == "http://localhost:11434/api/tags"


class TestModelListMatchers:
    def test_parsers_in_priority_order(self):
        assert MODEL_LIST_PARSERS == (match_openai, match_models_array, match_bare_array, match_ollama_tags)

    def test_openai_shape(self):
        models = match_openai({"object": "list", "data": [{"id": "gpt-4o"}, {"id": "gpt-4o-mini"}]})
        assert [m.id for m in models] == ["gpt-4o", "gpt-4o-mini"]

    def test_openai_shape_rejects_other_bodies(self):
        assert match_openai({"models": []}) is None
        assert match_openai({"data": []}) is None

    def test_models_array_shape(self):
        models = match_models_array({"models": ["a", {"id": "b", "name": "Model B"}]})
        assert [m.id for m in models] == ["a", "b"]
        assert models[1].name == "Model B"

    def test_bare_array_shape(self):
        models = match_bare_array(["x", {"id": "y"}, {"name": "z"}])
        assert [m.id for m in models] == ["x", "y", "z"]

    def test_ollama_shape(self):
        body = {"models": [{"name": "llama3:latest", "details": {"parameter_size": "8B"}}]}
        models = match_ollama_tags(body)
        assert models[0].id == "llama3:latest"
        assert models[0].description == "8B"

    def test_ollama_body_falls_through_generic_matcher(self):
        body = {"models": [{"name": "qwen2", "model": "qwen2"}]}
        assert match_models_array(body) is None
        assert [m.id for m in parse_model_list(body)] == ["qwen2"]

    def test_no_match_raises(self):
        with pytest.raises(ParseError):
            parse_model_list({"unexpected": True})


class TestStreamLines:
    def test_done(self):
        assert parse_stream_line("data: [DONE]") == STREAM_DONE

    def test_json_chunk(self):
        chunk = parse_stream_line('data: {"choices":[{"delta":{"content":"hi"}}]}')
        assert chunk["choices"][0]["delta"]["content"] == "hi"

    def test_non_data_lines_skipped(self):
        assert parse_stream_line(": keep-alive") is None
        assert parse_stream_line("event: message") is None

    def test_malformed_json_skipped(self):
        assert parse_stream_line("data: {broken") is None


class TestComplete:
    def test_posts_to_chat_completions(self, relay, session):
        session.post.return_value = _response(200, {"choices": [{"message": {"content": "hello"}}]})
        payload = build_chat_payload("m", [{"role": "user", "content": "hi"}])

        body = relay.complete("https://api.example.com/v1/", "key", payload)

        assert json.loads(body)["choices"][0]["message"]["content"] == "hello"
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.example.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer key"
        assert kwargs["timeout"] == 5

    def test_no_auth_header_without_key(self, relay, session):
        session.post.return_value = _response(200, {})
        relay.complete("http://localhost:11434/v1", None, {})
        assert "Authorization" not in session.post.call_args.kwargs["headers"]

    def test_non_2xx_raises_upstream(self, relay, session):
        session.post.return_value = _response(401, "bad key")
        with pytest.raises(UpstreamError) as exc_info:
            relay.complete("https://api.example.com/v1", "key", {})
        assert exc_info.value.status == 401
        assert exc_info.value.body == "bad key"

    def test_transport_failure_raises_network(self, relay, session):
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError):
            relay.complete("https://api.example.com/v1", "key", {})

    def test_complete_text_extracts_content(self, relay, session):
        session.post.return_value = _response(200, {"choices": [{"message": {"content": "hello"}}]})
        assert relay.complete_text("https://api.example.com/v1", "key", {}) == "hello"
        assert session.post.call_args.kwargs["json"]["stream"] is False

    def test_complete_text_bad_shape(self, relay, session):
        session.post.return_value = _response(200, {"choices": []})
        with pytest.raises(ParseError):
            relay.complete_text("https://api.example.com/v1", "key", {})

    def test_payload_omits_unset_fields(self):
        assert build_chat_payload("m", []) == {"model": "m", "messages": []}
        assert build_chat_payload("m", [], temperature=0.2, max_tokens=10, stream=True)["max_tokens"] == 10


class TestStream:
    def _collect(self, relay, channel):
        events = []
        relay.bus.subscribe(channel, events.append)
        return events

    def test_content_then_single_done(self, relay, session):
        session.post.return_value = _response(
            200,
            lines=[b'data: {"choices":[{"delta":{"content":"hi"}}]}', b"", b"data: [DONE]"],
        )
        events = self._collect(relay, "chat_response_test")

        relay.stream("https://api.example.com/v1", "key", {"model": "m"}, "chat_response_test")

        assert len(events) == 2
        assert events[0]["choices"][0]["delta"]["content"] == "hi"
        assert events[1] == STREAM_DONE
        assert session.post.call_args.kwargs["stream"] is True

    def test_lines_after_done_ignored(self, relay, session):
        session.post.return_value = _response(200, lines=[b"data: [DONE]", b'data: {"late": true}'])
        events = self._collect(relay, "c")
        relay.stream("https://api.example.com/v1", "key", {}, "c")
        assert events == [STREAM_DONE]

    def test_missing_done_still_completes_once(self, relay, session):
        session.post.return_value = _response(200, lines=[b'data: {"a": 1}'])
        events = self._collect(relay, "c")
        relay.stream("https://api.example.com/v1", "key", {}, "c")
        assert events == [{"a": 1}, STREAM_DONE]

    def test_invalid_utf8_and_bad_json_do_not_stop_stream(self, relay, session):
        session.post.return_value = _response(200, lines=[b"data: {\xff", b'data: {"ok": 1}', b"data: [DONE]"])
        events = self._collect(relay, "c")
        relay.stream("https://api.example.com/v1", "key", {}, "c")
        assert events == [{"ok": 1}, STREAM_DONE]

    def test_http_error_reported_in_band(self, relay, session):
        session.post.return_value = _response(500, "server exploded")
        events = self._collect(relay, "c")
        relay.stream("https://api.example.com/v1", "key", {}, "c")
        assert len(events) == 2
        assert events[0].startswith("ERROR: ")
        assert "500" in events[0]
        assert events[1] == STREAM_DONE

    def test_transport_error_reported_in_band(self, relay, session):
        session.post.side_effect = requests.ConnectionError("refused")
        events = self._collect(relay, "c")
        relay.stream("https://api.example.com/v1", "key", {}, "c")
        assert events[0].startswith("ERROR: ")
        assert events[1:] == [STREAM_DONE]

    def test_start_stream_subscribes_before_sending(self, relay, session):
        session.post.return_value = _response(
            200, lines=[b'data: {"choices":[{"delta":{"content":"hi"}}]}', b"data: [DONE]"]
        )
        events = []
        done = threading.Event()

        def listener(event):
            events.append(event)
            if event == STREAM_DONE:
                done.set()

        channel = relay.start_stream("https://api.example.com/v1", "key", {"model": "m"}, listener=listener)

        assert channel.startswith("chat_response_")
        assert done.wait(timeout=2)
        assert events[-1] == STREAM_DONE
        assert events.count(STREAM_DONE) == 1


class TestListModels:
    def test_remote_host_requires_key(self, relay, session):
        with pytest.raises(ValidationError):
            relay.list_models("https://api.openai.com/v1/models")
        session.get.assert_not_called()

    def test_blank_key_counts_as_missing(self, relay, session):
        with pytest.raises(ValidationError):
            relay.list_models("https://api.openai.com/v1/models", "   ")
        session.get.assert_not_called()

    def test_openai_listing(self, relay, session):
        session.get.return_value = _response(200, {"data": [{"id": "gpt-4o"}]})
        models = relay.list_models("https://api.openai.com/v1/models", "key")
        assert [m.id for m in models] == ["gpt-4o"]

    def test_ollama_404_falls_back_to_tags(self, relay, session):
        session.get.side_effect = [
            _response(404, "not found"),
            _response(200, {"models": [{"name": "llama3"}]}),
        ]
        models = relay.list_models("http://localhost:11434/v1/models")
        assert [m.id for m in models] == ["llama3"]
        assert session.get.call_args_list[1].args[0] == "http://localhost:11434/api/tags"

    def test_ollama_unrecognised_body_falls_back_to_tags(self, relay, session):
        session.get.side_effect = [
            _response(200, {"weird": 1}),
            _response(200, {"models": [{"name": "llama3"}]}),
        ]
        assert [m.id for m in relay.list_models("http://localhost:11434/v1/models")] == ["llama3"]

    def test_non_ollama_error_not_retried(self, relay, session):
        session.get.return_value = _response(404, "not found")
        with pytest.raises(UpstreamError):
            relay.list_models("http://localhost:8080/v1/models")
        assert session.get.call_count == 1

    def test_unrecognised_body_raises_parse_error(self, relay, session):
        session.get.return_value = _response(200, {"weird": 1})
        with pytest.raises(ParseError):
            relay.list_models("https://api.example.com/v1/models", "key")

    def test_network_failure(self, relay, session):
        session.get.side_effect = requests.Timeout("slow")
        with pytest.raises(NetworkError):
            relay.list_models("https://api.example.com/v1/models", "key")


class TestConnection:
    def test_success_by_keyword(self, relay, session):
        session.get.return_value = _response(200, {"data": [{"id": "m"}]})
        result = relay.test_connection("https://api.example.com/v1", "key")
        assert result.success is True
        assert result.latency_ms is not None
        assert session.get.call_args.args[0] == "https://api.example.com/v1/models"

    def test_remote_without_key_fails_without_request(self, relay, session):
        result = relay.test_connection("https://api.example.com/v1", None)
        assert result.success is False
        session.get.assert_not_called()

    def test_remote_with_blank_key_fails_without_request(self, relay, session):
        assert relay.test_connection("https://api.example.com/v1", " \t").success is False
        session.get.assert_not_called()

    def test_unrecognised_body(self, relay, session):
        session.get.return_value = _response(200, "<html>hello</html>")
        assert relay.test_connection("https://api.example.com/v1", "key").success is False

    def test_http_error(self, relay, session):
        session.get.return_value = _response(401, "unauthorized")
        result = relay.test_connection("https://api.example.com/v1", "key")
        assert result.success is False
        assert "401" in result.message

    def test_ollama_404_retries_tags(self, relay, session):
        session.get.side_effect = [_response(404, "nope"), _response(200, {"models": [{"name": "llama3"}]})]
        result = relay.test_connection("http://localhost:11434/v1")
        assert result.success is True
        assert session.get.call_args.args[0] == "http://localhost:11434/api/tags"

    def test_ollama_transport_failure_retries_tags(self, relay, session):
        session.get.side_effect = [requests.ConnectionError("refused"), _response(200, {"models": []})]
        assert relay.test_connection("http://localhost:11434/v1").success is True

    def test_transport_failure_never_raises(self, relay, session):
        session.get.side_effect = requests.ConnectionError("refused")
        result = relay.test_connection("http://localhost:8080/v1")
        assert result.success is False
        assert "refused" in result.message

    def test_empty_base_url(self, relay):
        assert relay.test_connection("").success is False
