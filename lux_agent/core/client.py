"""HTTP client for the OAGI/Lux API.

Wraps the four remote operations the SDK needs:

* chat-style step completion (``/v1/chat/completions``),
* presigned upload of screenshot bytes (``/v1/file/upload`` + PUT),
* named planning workers (``/v1/generate``),
* a health probe (``/health``).

Every request goes through one retry loop with exponential back-off on
server errors and transport failures.  Client errors (4xx) are raised
immediately as the matching ``APIError`` subclass.

Dependencies: ``httpx``, ``config.settings``, ``core.errors``.

Typical usage::

    from lux_agent.core.client import LuxClient

    client = LuxClient(api_key="sk-...")
    upload = await client.put_s3_presigned_url(png_bytes)
    completion = await client.chat_completions(
        model="lux-actor-1",
        messages=[...],
        task_id="...",
    )
    print(completion.raw_output)
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import httpx

from lux_agent.config.constants import (
    API_HEALTH_ENDPOINT,
    API_KEY_HELP_URL,
    API_V1_CHAT_COMPLETIONS_ENDPOINT,
    API_V1_FILE_UPLOAD_ENDPOINT,
    API_V1_GENERATE_ENDPOINT,
    DEFAULT_BASE_URL,
    ENV_API_KEY,
    ENV_BASE_URL,
    VALID_WORKERS,
)
from lux_agent.config.settings import Settings
from lux_agent.core.errors import (
    APIError,
    ConfigurationError,
    NetworkError,
    OAGIError,
    RequestTimeoutError,
    error_for_status,
)
from lux_agent.models.actions import Usage

logger = logging.getLogger(__name__)

_UUID_IN_URL_RE = re.compile(
    r"/([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})"
    r"(?:\.[a-z]+)?(?:\?|$)",
    re.IGNORECASE,
)


def extract_uuid_from_url(url: str) -> str | None:
    """Return the file uuid embedded in a hosted screenshot URL.

    Matches a uuid path segment, optionally followed by a file
    extension, at the end of the path (before any query string).

    Args:
        url: Download URL returned by the upload endpoint.

    Returns:
        The uuid string, or ``None`` when the URL carries none.
    """
    match = _UUID_IN_URL_RE.search(url)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


@dataclass
class UploadFileResponse:
    """Presigned upload slot returned by ``/v1/file/upload``.

    Attributes:
        url: Presigned PUT URL.
        uuid: Stable identifier of the uploaded file.
        download_url: URL the model can fetch the file from.
        expires_at: Expiry of the presigned URL (epoch seconds).
        file_expires_at: Expiry of the stored file (epoch seconds).
    """

    url: str
    uuid: str
    download_url: str
    expires_at: int | None = None
    file_expires_at: int | None = None


@dataclass
class GenerateResponse:
    """Reply of a planning worker."""

    response: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float | None = None
    request_id: str | None = None


@dataclass
class ChatCompletion:
    """Reply of one step completion.

    Attributes:
        raw_output: Assistant text, to be parsed by ``output_parser``.
        usage: Token usage reported by the server.
        request_id: Server request identifier, if returned.
    """

    raw_output: str
    usage: Usage | None = None
    request_id: str | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LuxClient:
    """Async client for the OAGI/Lux API.

    A fresh ``httpx.AsyncClient`` is opened per request, so instances
    hold no connection state and can be shared freely between the
    Actor, the Planner and the agents.

    Args:
        settings: Controls timeouts, retry counts, back-off and the
            default base URL.
        api_key: API key.  If empty, ``OAGI_API_KEY`` is used.
        base_url: API base URL.  If empty, ``settings.base_url``, then
            ``OAGI_BASE_URL``, then the public endpoint.

    Raises:
        ConfigurationError: If no API key can be found.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        api_key: str = "",
        base_url: str = "",
    ) -> None:
        self._settings = settings or Settings()
        self._api_key: str = api_key or os.environ.get(ENV_API_KEY, "")
        if not self._api_key:
            raise ConfigurationError(
                "OAGI API key must be provided either as 'api_key' or via "
                f"the {ENV_API_KEY} environment variable. "
                f"Get your API key at {API_KEY_HELP_URL}"
            )
        resolved = (
            base_url
            or self._settings.base_url
            or os.environ.get(ENV_BASE_URL, "")
            or DEFAULT_BASE_URL
        )
        self._base_url: str = resolved.rstrip("/")
        logger.info("Client initialised with base_url: %s", self._base_url)

    @property
    def base_url(self) -> str:
        """Resolved API base URL."""
        return self._base_url

    # -- Step completion ------------------------------------------------------

    async def chat_completions(
        self,
        model: str,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
        task_id: str | None = None,
    ) -> ChatCompletion:
        """Request the next step for a conversation.

        Args:
            model: Model identifier.
            messages: OpenAI-style message history, newest last.
            temperature: Sampling temperature, or ``None`` for the
                server default.
            task_id: Task identifier that ties calls of one task
                together.

        Returns:
            The assistant reply and its token usage.

        Raises:
            APIError: On a non-success status or a malformed body.
            RequestTimeoutError: When every attempt timed out.
            NetworkError: When the API could not be reached.
        """
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if task_id is not None:
            payload["task_id"] = task_id

        logger.info("Requesting step completion with model: %s", model)
        resp = await self._request(
            "POST",
            API_V1_CHAT_COMPLETIONS_ENDPOINT,
            json=payload,
            headers=self._build_headers(),
        )
        body = self._json_body(resp)
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise APIError(
                f"Invalid chat completion response: {exc!r}",
                resp.status_code,
            ) from exc

        return ChatCompletion(
            raw_output=self._content_text(content),
            usage=self._parse_usage(body.get("usage")),
            request_id=self._request_id(resp),
        )

    # -- File upload ----------------------------------------------------------

    async def get_s3_presigned_url(self) -> UploadFileResponse:
        """Ask the API for a presigned upload slot.

        Returns:
            The presigned PUT URL and the identifiers of the file.

        Raises:
            APIError: On a non-success status or a malformed body.
        """
        logger.debug("Requesting presigned upload URL")
        resp = await self._request(
            "GET",
            API_V1_FILE_UPLOAD_ENDPOINT,
            headers=self._build_headers(),
        )
        body = self._json_body(resp)
        try:
            return UploadFileResponse(
                url=body["url"],
                uuid=body["uuid"],
                download_url=body["download_url"],
                expires_at=body.get("expires_at"),
                file_expires_at=body.get("file_expires_at"),
            )
        except (KeyError, TypeError) as exc:
            raise APIError(
                f"Invalid presigned upload response: {exc!r}",
                resp.status_code,
            ) from exc

    async def upload_to_s3(self, url: str, content: bytes) -> None:
        """PUT *content* to a presigned URL.

        Raises:
            APIError: If the storage service rejects the upload.
        """
        logger.debug("Uploading %d bytes to presigned URL", len(content))
        await self._request("PUT", url, content=content, absolute=True)

    async def put_s3_presigned_url(self, content: bytes) -> UploadFileResponse:
        """Upload screenshot bytes and return where they live.

        Args:
            content: Encoded image bytes.

        Returns:
            The upload slot, whose ``download_url`` can be sent to the
            model and whose ``uuid`` can be sent to planning workers.
        """
        upload = await self.get_s3_presigned_url()
        await self.upload_to_s3(upload.url, content)
        return upload

    # -- Workers --------------------------------------------------------------

    async def call_worker(
        self,
        worker_id: str,
        overall_todo: str,
        task_description: str,
        todos: list[dict[str, Any]],
        history: list[dict[str, Any]] | None = None,
        current_todo_index: int | None = None,
        task_execution_summary: str | None = None,
        current_screenshot: str | None = None,
        current_subtask_instruction: str | None = None,
        window_steps: list[dict[str, Any]] | None = None,
        window_screenshots: list[str] | None = None,
        result_screenshot: str | None = None,
        prior_notes: str | None = None,
        latest_todo_summary: str | None = None,
    ) -> GenerateResponse:
        """Call a named planning worker.

        Optional fields left as ``None`` are omitted from the payload.

        Args:
            worker_id: One of ``oagi_first``, ``oagi_follow``,
                ``oagi_task_summary``.
            overall_todo: The todo being worked on.
            task_description: The overall workflow task.
            todos: Todo list snapshot.
            history: Execution history snapshot.
            current_todo_index: Index of the current todo.
            task_execution_summary: Rolling workflow summary.
            current_screenshot: Uuid of the current screenshot.
            current_subtask_instruction: Instruction being followed.
            window_steps: Recent actions for reflection.
            window_screenshots: Uuids of screenshots for those actions.
            result_screenshot: Uuid of the screenshot after them.
            prior_notes: Formatted notes from earlier todos.
            latest_todo_summary: Stored summary of the current todo.

        Returns:
            The worker's free-text reply plus accounting data.

        Raises:
            ConfigurationError: If *worker_id* is not a known worker.
            APIError: On a non-success status or a malformed body.
        """
        if worker_id not in VALID_WORKERS:
            raise ConfigurationError(
                f"Invalid worker_id {worker_id!r}. "
                f"Must be one of: {list(VALID_WORKERS)}"
            )
        logger.info("Calling %s with worker_id: %s", API_V1_GENERATE_ENDPOINT, worker_id)

        fields: dict[str, Any] = {
            "external_worker_id": worker_id,
            "overall_todo": overall_todo,
            "task_description": task_description,
            "todos": todos,
            "history": history or [],
            "current_todo_index": current_todo_index,
            "task_execution_summary": task_execution_summary,
            "current_screenshot": current_screenshot,
            "current_subtask_instruction": current_subtask_instruction,
            "window_steps": window_steps,
            "window_screenshots": window_screenshots,
            "result_screenshot": result_screenshot,
            "prior_notes": prior_notes,
            "latest_todo_summary": latest_todo_summary,
        }
        payload = {k: v for k, v in fields.items() if v is not None}

        resp = await self._request(
            "POST",
            API_V1_GENERATE_ENDPOINT,
            json=payload,
            headers=self._build_headers(),
        )
        body = self._json_body(resp)
        if "response" not in body:
            raise APIError(
                "Invalid generate response: missing 'response'",
                resp.status_code,
            )

        result = GenerateResponse(
            response=str(body["response"]),
            prompt_tokens=int(body.get("prompt_tokens") or 0),
            completion_tokens=int(body.get("completion_tokens") or 0),
            cost=body.get("cost"),
            request_id=body.get("request_id") or self._request_id(resp),
        )
        logger.info(
            "Generate request successful - tokens: %d+%d",
            result.prompt_tokens,
            result.completion_tokens,
        )
        return result

    # -- Health ---------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Probe ``/health`` and return its JSON body."""
        logger.debug("Making health check request")
        resp = await self._request("GET", API_HEALTH_ENDPOINT)
        return self._json_body(resp)

    # -- Private helpers ------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        absolute: bool = False,
    ) -> httpx.Response:
        """Send one request with retry and exponential back-off.

        Server errors and transport failures are retried up to
        ``api_max_retries`` extra times; client errors are raised at
        once.

        Raises:
            APIError: Subclass chosen by status code.
            RequestTimeoutError: The last attempt timed out.
            NetworkError: The last attempt failed in transport.
        """
        url = path if absolute else f"{self._base_url}{path}"
        timeout = httpx.Timeout(self._settings.api_timeout_seconds, connect=10.0)
        attempts = max(1, self._settings.api_max_retries + 1)
        last_error: OAGIError | None = None

        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    resp = await client.request(
                        method,
                        url,
                        json=json,
                        content=content,
                        headers=headers,
                    )

                if 200 <= resp.status_code < 300:
                    return resp

                last_error = self._error_from_response(resp)
                logger.warning(
                    "%s %s: attempt %d/%d failed: %s",
                    method,
                    path if not absolute else "<presigned>",
                    attempt + 1,
                    attempts,
                    last_error,
                )
                if resp.status_code < 500:
                    raise last_error

            except httpx.TimeoutException as exc:
                last_error = RequestTimeoutError(
                    f"Request timed out after "
                    f"{self._settings.api_timeout_seconds} seconds: {exc}"
                )
                logger.warning(
                    "%s request: attempt %d/%d timed out",
                    method,
                    attempt + 1,
                    attempts,
                )
            except httpx.HTTPError as exc:
                last_error = NetworkError(f"{type(exc).__name__}: {exc}")
                logger.warning(
                    "%s request: attempt %d/%d error: %s",
                    method,
                    attempt + 1,
                    attempts,
                    last_error,
                )

            if attempt < attempts - 1:
                delay = self._settings.api_backoff_base_seconds * (2**attempt)
                await asyncio.sleep(delay)

        assert last_error is not None
        logger.error("Request failed: %s", last_error)
        raise last_error

    def _build_headers(self) -> dict[str, str]:
        """Build HTTP headers for API calls.

        Returns:
            A dict of header name-value pairs.
        """
        return {
            "x-api-key": self._api_key,
            "content-type": "application/json",
        }

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> APIError:
        """Build the ``APIError`` subclass describing a failed response."""
        message = ""
        try:
            body = resp.json()
            error = body.get("error") if isinstance(body, dict) else None
            if isinstance(error, dict):
                message = str(error.get("message") or "")
            elif isinstance(error, str):
                message = error
        except ValueError:
            pass
        text = resp.text[:200] if isinstance(resp.text, str) else ""
        cls = error_for_status(resp.status_code)
        return cls(message or text or "request failed", resp.status_code, text)

    @staticmethod
    def _json_body(resp: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body or raise ``APIError``."""
        try:
            body = resp.json()
        except ValueError as exc:
            raise APIError(
                f"Response is not valid JSON: {exc}", resp.status_code
            ) from exc
        if not isinstance(body, dict):
            raise APIError("Response JSON is not an object", resp.status_code)
        return body

    @staticmethod
    def _request_id(resp: httpx.Response) -> str | None:
        value = resp.headers.get("x-request-id")
        return value if isinstance(value, str) else None

    @staticmethod
    def _content_text(content: Any) -> str:
        """Flatten OpenAI message content (string or parts) to text."""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                part.get("text", "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )
        return ""

    @staticmethod
    def _parse_usage(data: Any) -> Usage | None:
        if not isinstance(data, dict):
            return None
        prompt = int(data.get("prompt_tokens") or 0)
        completion = int(data.get("completion_tokens") or 0)
        total = int(data.get("total_tokens") or prompt + completion)
        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total,
        )
