"""Unit tests for the OAGI/Lux HTTP client.

Tests cover credential and base-URL resolution, the step-completion,
upload and worker calls, retry behaviour (5xx and transport errors are
retried, 4xx are not), status-to-error mapping and uuid extraction.

All HTTP traffic is mocked -- no real API calls are made.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from lux_agent.config.settings import Settings
from lux_agent.core.client import LuxClient, extract_uuid_from_url
from lux_agent.core.errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
    error_for_status,
)

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

_UUID = "0f8fad5b-d9cb-469f-a165-70867728950e"


def _make_settings(**overrides: Any) -> Settings:
    """Return a Settings with fast retries for testing."""
    defaults = {
        "api_timeout_seconds": 5.0,
        "api_max_retries": 2,
        "api_backoff_base_seconds": 0.0,  # no delay in tests
    }
    defaults.update(overrides)
    return Settings.from_dict(defaults)


def _make_client(**overrides: Any) -> LuxClient:
    return LuxClient(_make_settings(**overrides), api_key="test-key", base_url="https://api.test")


def _mock_httpx_response(
    status_code: int = 200,
    json_body: dict | None = None,
    text: str = "",
    headers: dict[str, str] | None = None,
) -> MagicMock:
    """Create a mock that quacks like an httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = text or json.dumps(json_body or {})
    resp.json.return_value = json_body or {}
    resp.headers = headers or {}
    return resp


def _patch_async_client(*results: Any) -> tuple[Any, MagicMock]:
    """Patch httpx.AsyncClient so successive requests yield *results*.

    Each result is either a response mock or an exception to raise.

    Returns:
        The patcher and the inner client whose ``request`` is awaited.
    """
    inner = MagicMock()
    inner.request = AsyncMock(side_effect=list(results))
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=inner)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return patch("httpx.AsyncClient", return_value=ctx), inner


def _chat_body(content: Any = "<|think_start|>hi<|think_end|>") -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


# ==================================================================
# Test classes
# ==================================================================


class TestConstruction:
    """Tests for credential and base-URL resolution."""

    def test_missing_key_raises(self) -> None:
        """No api_key and no env var is a configuration error."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError, match="api-keys"):
                LuxClient()

    def test_key_from_environment(self) -> None:
        """OAGI_API_KEY is used when no key is passed."""
        with patch.dict("os.environ", {"OAGI_API_KEY": "env-key"}, clear=True):
            client = LuxClient()
        assert client._build_headers()["x-api-key"] == "env-key"

    def test_default_base_url(self) -> None:
        """Without overrides the public endpoint is used."""
        with patch.dict("os.environ", {}, clear=True):
            client = LuxClient(api_key="k")
        assert client.base_url == "https://api.agiopen.org"

    def test_env_base_url(self) -> None:
        """OAGI_BASE_URL beats the default."""
        with patch.dict("os.environ", {"OAGI_BASE_URL": "https://env.test/"}, clear=True):
            client = LuxClient(api_key="k")
        assert client.base_url == "https://env.test"

    def test_settings_base_url_beats_env(self) -> None:
        """settings.base_url beats OAGI_BASE_URL."""
        with patch.dict("os.environ", {"OAGI_BASE_URL": "https://env.test"}, clear=True):
            client = LuxClient(Settings(base_url="https://settings.test"), api_key="k")
        assert client.base_url == "https://settings.test"

    def test_argument_base_url_wins(self) -> None:
        """An explicit base_url beats every other source."""
        with patch.dict("os.environ", {"OAGI_BASE_URL": "https://env.test"}, clear=True):
            client = LuxClient(
                Settings(base_url="https://settings.test"),
                api_key="k",
                base_url="https://arg.test",
            )
        assert client.base_url == "https://arg.test"


class TestChatCompletions:
    """Tests for LuxClient.chat_completions."""

    def test_success(self) -> None:
        """Content, usage and request id are extracted."""
        resp = _mock_httpx_response(json_body=_chat_body(), headers={"x-request-id": "req-1"})
        patcher, inner = _patch_async_client(resp)
        with patcher:
            result = asyncio.run(
                _make_client().chat_completions(
                    "lux-actor-1", [{"role": "user", "content": []}], 0.5, "task-1"
                )
            )

        assert result.raw_output == "<|think_start|>hi<|think_end|>"
        assert result.usage is not None
        assert result.usage.total_tokens == 15
        assert result.request_id == "req-1"

        method, url = inner.request.call_args.args
        payload = inner.request.call_args.kwargs["json"]
        assert method == "POST"
        assert url == "https://api.test/v1/chat/completions"
        assert payload["model"] == "lux-actor-1"
        assert payload["task_id"] == "task-1"
        assert payload["temperature"] == 0.5
        assert inner.request.call_args.kwargs["headers"]["x-api-key"] == "test-key"

    def test_list_content_is_flattened(self) -> None:
        """Text parts of list content are joined."""
        body = _chat_body([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}])
        patcher, _ = _patch_async_client(_mock_httpx_response(json_body=body))
        with patcher:
            result = asyncio.run(_make_client().chat_completions("m", []))
        assert result.raw_output == "ab"

    def test_malformed_body_raises(self) -> None:
        """A body without choices is an APIError."""
        patcher, _ = _patch_async_client(_mock_httpx_response(json_body={"foo": 1}))
        with patcher:
            with pytest.raises(APIError, match="Invalid chat completion"):
                asyncio.run(_make_client().chat_completions("m", []))

    def test_non_json_body_raises(self) -> None:
        """A body that is not JSON is an APIError."""
        resp = _mock_httpx_response(text="<html>")
        resp.json.side_effect = ValueError("no json")
        patcher, _ = _patch_async_client(resp)
        with patcher:
            with pytest.raises(APIError, match="not valid JSON"):
                asyncio.run(_make_client().chat_completions("m", []))


class TestRetries:
    """Tests for the retry loop in LuxClient._request."""

    def test_retries_server_error_then_succeeds(self) -> None:
        """A 5xx is retried and a later success is returned."""
        patcher, inner = _patch_async_client(
            _mock_httpx_response(503, {"error": {"message": "busy"}}),
            _mock_httpx_response(json_body={"status": "ok"}),
        )
        with patcher:
            result = asyncio.run(_make_client().health_check())
        assert result == {"status": "ok"}
        assert inner.request.call_count == 2

    def test_server_error_exhausts_retries(self) -> None:
        """After 1 + api_max_retries attempts the ServerError surfaces."""
        patcher, inner = _patch_async_client(
            *[_mock_httpx_response(500, {"error": {"message": "down"}}) for _ in range(3)]
        )
        with patcher:
            with pytest.raises(ServerError) as exc_info:
                asyncio.run(_make_client().health_check())
        assert inner.request.call_count == 3
        assert exc_info.value.status_code == 500
        assert str(exc_info.value) == "HTTP 500: down"

    def test_client_error_is_not_retried(self) -> None:
        """A 4xx is raised on the first attempt."""
        patcher, inner = _patch_async_client(
            _mock_httpx_response(401, {"error": {"message": "bad key"}})
        )
        with patcher:
            with pytest.raises(AuthenticationError, match="bad key"):
                asyncio.run(_make_client().health_check())
        assert inner.request.call_count == 1

    def test_timeout_maps_to_request_timeout(self) -> None:
        """Repeated timeouts become RequestTimeoutError."""
        patcher, inner = _patch_async_client(
            *[httpx.ReadTimeout("slow") for _ in range(3)]
        )
        with patcher:
            with pytest.raises(RequestTimeoutError):
                asyncio.run(_make_client().health_check())
        assert inner.request.call_count == 3

    def test_transport_error_maps_to_network_error(self) -> None:
        """Connection failures become NetworkError."""
        patcher, _ = _patch_async_client(
            *[httpx.ConnectError("refused") for _ in range(3)]
        )
        with patcher:
            with pytest.raises(NetworkError, match="ConnectError"):
                asyncio.run(_make_client().health_check())

    def test_zero_retries_means_single_attempt(self) -> None:
        """api_max_retries=0 makes exactly one attempt."""
        patcher, inner = _patch_async_client(_mock_httpx_response(502, text="gateway"))
        with patcher:
            with pytest.raises(ServerError):
                asyncio.run(_make_client(api_max_retries=0).health_check())
        assert inner.request.call_count == 1


class TestUpload:
    """Tests for the presigned upload flow."""

    def test_put_s3_presigned_url(self) -> None:
        """The slot is requested, then the bytes are PUT to it."""
        slot = {
            "url": "https://s3.test/put?sig=1",
            "uuid": _UUID,
            "download_url": f"https://cdn.test/{_UUID}.png",
            "expires_at": 100,
        }
        patcher, inner = _patch_async_client(
            _mock_httpx_response(json_body=slot),
            _mock_httpx_response(200, text="ok"),
        )
        with patcher:
            upload = asyncio.run(_make_client().put_s3_presigned_url(b"PNG"))

        assert upload.uuid == _UUID
        assert upload.download_url.endswith(".png")
        assert upload.expires_at == 100

        first, second = inner.request.call_args_list
        assert first.args == ("GET", "https://api.test/v1/file/upload")
        assert second.args == ("PUT", "https://s3.test/put?sig=1")
        assert second.kwargs["content"] == b"PNG"

    def test_missing_fields_raise(self) -> None:
        """A slot without uuid is an APIError."""
        patcher, _ = _patch_async_client(_mock_httpx_response(json_body={"url": "x"}))
        with patcher:
            with pytest.raises(APIError, match="presigned"):
                asyncio.run(_make_client().get_s3_presigned_url())


class TestCallWorker:
    """Tests for LuxClient.call_worker."""

    def test_invalid_worker_raises_before_request(self) -> None:
        """Unknown worker ids fail fast without any HTTP traffic."""
        patcher, inner = _patch_async_client()
        with patcher:
            with pytest.raises(ConfigurationError, match="worker_id"):
                asyncio.run(
                    _make_client().call_worker("oagi_bogus", "todo", "task", [])
                )
        inner.request.assert_not_called()

    def test_payload_and_response(self) -> None:
        """None fields are dropped and the reply is parsed."""
        body = {"response": '{"subtask": "x"}', "prompt_tokens": 3, "completion_tokens": 4}
        patcher, inner = _patch_async_client(
            _mock_httpx_response(json_body=body, headers={"x-request-id": "gen-9"})
        )
        with patcher:
            result = asyncio.run(
                _make_client().call_worker(
                    "oagi_first",
                    overall_todo="Open mail",
                    task_description="Inbox zero",
                    todos=[{"index": 0}],
                    current_screenshot=_UUID,
                )
            )

        assert result.response == '{"subtask": "x"}'
        assert (result.prompt_tokens, result.completion_tokens) == (3, 4)
        assert result.request_id == "gen-9"

        payload = inner.request.call_args.kwargs["json"]
        assert inner.request.call_args.args[1] == "https://api.test/v1/generate"
        assert payload["external_worker_id"] == "oagi_first"
        assert payload["current_screenshot"] == _UUID
        assert payload["history"] == []
        assert "prior_notes" not in payload
        assert "window_steps" not in payload

    def test_missing_response_field_raises(self) -> None:
        """A body without 'response' is an APIError."""
        patcher, _ = _patch_async_client(_mock_httpx_response(json_body={"x": 1}))
        with patcher:
            with pytest.raises(APIError, match="response"):
                asyncio.run(_make_client().call_worker("oagi_follow", "t", "d", []))


class TestExtractUuid:
    """Tests for extract_uuid_from_url."""

    def test_with_extension(self) -> None:
        """A uuid followed by an extension is found."""
        assert extract_uuid_from_url(f"https://cdn.test/a/{_UUID}.png") == _UUID

    def test_with_query_string(self) -> None:
        """A query string after the uuid is allowed."""
        assert extract_uuid_from_url(f"https://cdn.test/{_UUID}?X-Sig=abc") == _UUID

    def test_case_insensitive(self) -> None:
        """Upper-case uuids are matched."""
        assert extract_uuid_from_url(f"https://cdn.test/{_UUID.upper()}.JPG") == _UUID.upper()

    def test_no_uuid(self) -> None:
        """URLs without a uuid yield None."""
        assert extract_uuid_from_url("https://cdn.test/screenshot.png") is None

    def test_uuid_not_at_path_end(self) -> None:
        """A uuid in the middle of the path is not taken."""
        assert extract_uuid_from_url(f"https://cdn.test/{_UUID}/file.png") is None


class TestErrorMapping:
    """Tests for error_for_status."""

    @pytest.mark.parametrize(
        ("status", "cls"),
        [
            (401, AuthenticationError),
            (404, NotFoundError),
            (422, ValidationError),
            (429, RateLimitError),
            (500, ServerError),
            (503, ServerError),
            (400, APIError),
        ],
    )
    def test_status_classes(self, status: int, cls: type[APIError]) -> None:
        """Each status maps to its dedicated subclass."""
        assert error_for_status(status) is cls

    def test_str_without_status(self) -> None:
        """An APIError without status prints just the message."""
        assert str(APIError("boom")) == "boom"
