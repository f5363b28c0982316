"""OpenAI-compatible HTTP relay: chat completions, streaming, model listing.

Streaming responses are forwarded line by line onto an :class:`EventBus`
channel named ``chat_response_<uuid4>``. Each channel sees the decoded chunk
objects, then exactly one ``"[DONE]"``. Failures are reported in-band as
``"ERROR: <message>"`` followed by ``"[DONE]"``.
"""

import json
import logging
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any
from urllib.parse import urlparse

import requests

from clipai.config import HTTP_TIMEOUT
from clipai.errors import NetworkError, ParseError, UpstreamError, ValidationError
from clipai.events import STREAM_DONE, STREAM_ERROR_PREFIX, EventBus, Listener
from clipai.models import ConnectionTestResult, ModelInfo

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "chat_response_"
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")
OLLAMA_HOSTS = ("localhost:11434", "127.0.0.1:11434")

MODELS_KEYWORDS = ("models", "data", "id")
TAGS_KEYWORDS = ("models", "name")


def is_local_host(url: str) -> bool:
    return urlparse(url).hostname in LOCAL_HOSTS


def is_ollama_host(url: str) -> bool:
    return urlparse(url).netloc in OLLAMA_HOSTS or "/api/paas/v4" in url


def ollama_tags_url(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/api/tags"


def _join(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path


# Model-list shape matchers. Each returns a non-empty list or None.


def match_openai(body: Any) -> list[ModelInfo] | None:
    """``{"data": [{"id": ...}, ...]}``"""
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        return None
    models = [
        ModelInfo(id=str(item["id"]), name=item.get("name"), description=item.get("description"))
        for item in body["data"]
        if isinstance(item, dict) and item.get("id")
    ]
    return models or None


def match_models_array(body: Any) -> list[ModelInfo] | None:
    """``{"models": ["a", {"id": "b"}, ...]}``"""
    if not isinstance(body, dict) or not isinstance(body.get("models"), list):
        return None
    models = []
    for item in body["models"]:
        if isinstance(item, str) and item:
            models.append(ModelInfo(id=item))
        elif isinstance(item, dict) and item.get("id"):
            models.append(ModelInfo(id=str(item["id"]), name=item.get("name"), description=item.get("description")))
    return models or None


def match_bare_array(body: Any) -> list[ModelInfo] | None:
    """``["a", {"id": "b"}, {"name": "c"}]``"""
    if not isinstance(body, list):
        return None
    models = []
    for item in body:
        if isinstance(item, str) and item:
            models.append(ModelInfo(id=item))
        elif isinstance(item, dict):
            model_id = item.get("id") or item.get("name")
            if model_id:
                models.append(ModelInfo(id=str(model_id), name=item.get("name")))
    return models or None


def match_ollama_tags(body: Any) -> list[ModelInfo] | None:
    """``{"models": [{"name": "llama3:latest", "details": {...}}]}``"""
    if not isinstance(body, dict) or not isinstance(body.get("models"), list):
        return None
    models = []
    for item in body["models"]:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        details = item.get("details") or {}
        size = details.get("parameter_size") if isinstance(details, dict) else None
        models.append(ModelInfo(id=str(item["name"]), name=item["name"], description=size))
    return models or None


MODEL_LIST_PARSERS: tuple[Callable[[Any], list[ModelInfo] | None], ...] = (
    match_openai,
    match_models_array,
    match_bare_array,
    match_ollama_tags,
)


def parse_model_list(body: Any) -> list[ModelInfo]:
    for matcher in MODEL_LIST_PARSERS:
        models = matcher(body)
        if models:
            return models
    raise ParseError("Model list response has no recognised shape")


def parse_stream_line(line: str) -> Any:
    """Decode one SSE line.

    Returns ``"[DONE]"`` for the terminator, the decoded chunk for other
    ``data:`` lines, and None for anything to skip.
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data:
        return None
    if data == STREAM_DONE:
        return STREAM_DONE
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream chunk: %r", data[:200])
        return None


def build_chat_payload(
    model: str,
    messages: list[dict[str, str]],
    temperature: float | None = None,
    max_tokens: int | None = None,
    stream: bool | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"model": model, "messages": messages}
    if temperature is not None:
        payload["temperature"] = temperature
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if stream is not None:
        payload["stream"] = stream
    return payload


class ApiRelay:
    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
        bus: EventBus | None = None,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self.bus = bus or EventBus()

    def _headers(self, api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    def complete(self, base_url: str, api_key: str | None, payload: dict[str, Any]) -> str:
        """POST a non-streaming chat completion and return the raw body text.

        Raises:
            NetworkError: If the request could not be sent.
            UpstreamError: If the API answered with a non-2xx status.
        """
        url = _join(base_url, "chat/completions")
        try:
            resp = self._session.post(url, json=payload, headers=self._headers(api_key), timeout=self._timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"API returned HTTP {resp.status_code}: {resp.text}", status=resp.status_code, body=resp.text)
        return resp.text

    def complete_text(self, base_url: str, api_key: str | None, payload: dict[str, Any]) -> str:
        body = self.complete(base_url, api_key, {**payload, "stream": False})
        try:
            return json.loads(body)["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ParseError(f"Unexpected chat completion response: {body[:200]}") from e

    def start_stream(
        self,
        base_url: str,
        api_key: str | None,
        payload: dict[str, Any],
        listener: Listener | None = None,
    ) -> str:
        """Start a streaming completion on a worker thread and return its channel."""
        channel = f"{CHANNEL_PREFIX}{uuid.uuid4()}"
        if listener is not None:
            self.bus.subscribe(channel, listener)
        thread = threading.Thread(
            target=self._stream_worker,
            args=(base_url, api_key, payload, channel),
            name=f"clipai-stream-{channel[-8:]}",
            daemon=True,
        )
        thread.start()
        return channel

    def _stream_worker(self, base_url: str, api_key: str | None, payload: dict[str, Any], channel: str) -> None:
        try:
            self.stream(base_url, api_key, payload, channel)
        except Exception as e:
            logger.exception("Streaming worker for %s failed", channel)
            self._fail_stream(channel, str(e))

    def stream(self, base_url: str, api_key: str | None, payload: dict[str, Any], channel: str) -> None:
        url = _join(base_url, "chat/completions")
        try:
            resp = self._session.post(
                url,
                json={**payload, "stream": True},
                headers=self._headers(api_key),
                timeout=self._timeout,
                stream=True,
            )
        except requests.RequestException as e:
            self._fail_stream(channel, f"Request to {url} failed: {e}")
            return

        with resp:
            if not resp.ok:
                self._fail_stream(channel, f"API returned HTTP {resp.status_code}: {resp.text}")
                return
            try:
                for raw in resp.iter_lines():
                    if not raw:
                        continue
                    line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
                    event = parse_stream_line(line)
                    if event is None:
                        continue
                    if event == STREAM_DONE:
                        break
                    self.bus.publish(channel, event)
            except requests.RequestException as e:
                self._fail_stream(channel, f"Stream interrupted: {e}")
                return

        self._finish_stream(channel)

    def _fail_stream(self, channel: str, message: str) -> None:
        logger.warning("Chat stream %s failed: %s", channel, message)
        self.bus.publish(channel, STREAM_ERROR_PREFIX + message)
        self._finish_stream(channel)

    def _finish_stream(self, channel: str) -> None:
        self.bus.publish(channel, STREAM_DONE)
        self.bus.close(channel)

    def _get_json(self, url: str, api_key: str | None) -> Any:
        try:
            resp = self._session.get(url, headers=self._headers(api_key), timeout=self._timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"API returned HTTP {resp.status_code}", status=resp.status_code, body=resp.text)
        try:
            return resp.json()
        except ValueError as e:
            raise ParseError(f"Response from {url} is not JSON") from e

    def _fetch_models(self, url: str, api_key: str | None) -> list[ModelInfo]:
        return parse_model_list(self._get_json(url, api_key))

    def list_models(self, url: str, api_key: str | None = None, base_url: str | None = None) -> list[ModelInfo]:
        """Fetch the model list at *url*.

        Raises:
            ValidationError: If a remote host is given without an API key.
            NetworkError, UpstreamError, ParseError: If no listing could be read.
        """
        if not (api_key or "").strip() and not is_local_host(url):
            raise ValidationError("An API key is required for remote providers")

        host_url = base_url or url
        try:
            return self._fetch_models(url, api_key)
        except (UpstreamError, ParseError) as e:
            if not is_ollama_host(host_url):
                raise
            if isinstance(e, UpstreamError) and e.status != 404:
                raise
            tags_url = ollama_tags_url(host_url)
            logger.info("Model listing at %s failed (%s), trying %s", url, e, tags_url)
            return self._fetch_models(tags_url, api_key)

    def test_connection(self, base_url: str, api_key: str | None = None) -> ConnectionTestResult:
        if not base_url:
            return ConnectionTestResult(False, "Base URL is empty")
        if not (api_key or "").strip() and not is_local_host(base_url):
            return ConnectionTestResult(False, "An API key is required for remote providers")

        url = _join(base_url, "models")
        start = time.monotonic()
        try:
            resp = self._session.get(url, headers=self._headers(api_key), timeout=self._timeout)
        except requests.RequestException as e:
            if is_ollama_host(base_url):
                return self._test_tags(base_url, api_key)
            return ConnectionTestResult(False, f"Connection failed: {e}")

        if resp.status_code == 404 and is_ollama_host(base_url):
            return self._test_tags(base_url, api_key)
        return self._classify(resp, start, MODELS_KEYWORDS)

    def _test_tags(self, base_url: str, api_key: str | None) -> ConnectionTestResult:
        url = ollama_tags_url(base_url)
        logger.info("Retrying connection test against %s", url)
        start = time.monotonic()
        try:
            resp = self._session.get(url, headers=self._headers(api_key), timeout=self._timeout)
        except requests.RequestException as e:
            return ConnectionTestResult(False, f"Connection failed: {e}")
        return self._classify(resp, start, TAGS_KEYWORDS)

    def _classify(self, resp: requests.Response, start: float, keywords: tuple[str, ...]) -> ConnectionTestResult:
        latency = int((time.monotonic() - start) * 1000)
        if not resp.ok:
            return ConnectionTestResult(False, f"HTTP {resp.status_code}: {resp.text[:200]}", latency)
        body = resp.text
        if any(keyword in body for keyword in keywords):
            return ConnectionTestResult(True, "Connection successful", latency)
        return ConnectionTestResult(False, "Unrecognised response from the API", latency)
