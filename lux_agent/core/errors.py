"""Exception hierarchy for the Lux Agent SDK.

Every error raised on purpose by the SDK derives from ``OAGIError`` so
callers can catch the whole family at once.  The classes map onto five
broad categories:

* configuration (``ConfigurationError``): raised before any remote call
  and never retried;
* state (``StateError``): an object was used out of order;
* execution (``ExecutionError``): an action could not be replayed;
* remote (``APIError`` and subclasses, ``RequestTimeoutError``,
  ``NetworkError``): the API could not be reached or refused a request;
* interruption (``AgentInterrupted``): the caller asked the loop to stop.
"""

from __future__ import annotations


class OAGIError(Exception):
    """Base class for all SDK errors."""


class ConfigurationError(OAGIError):
    """Missing credentials, unknown mode, or another invalid setup."""


class StateError(OAGIError):
    """An object was used before initialisation or past its limits."""


class ExecutionError(OAGIError):
    """An action executor failed to replay an action."""


class AgentInterrupted(OAGIError):
    """The agent loop was cancelled between steps."""


class APIError(OAGIError):
    """The API answered with a non-success status.

    Args:
        message: Human-readable description (usually the server's
            ``error.message``).
        status_code: HTTP status code, or ``None`` when unknown.
        response_text: Raw (truncated) response body for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class AuthenticationError(APIError):
    """401: the API key was rejected."""


class NotFoundError(APIError):
    """404: the requested resource does not exist."""


class ValidationError(APIError):
    """422: the request payload was rejected."""


class RateLimitError(APIError):
    """429: too many requests."""


class ServerError(APIError):
    """5xx: the API failed internally."""


class RequestTimeoutError(OAGIError):
    """The request did not complete within the configured timeout."""


class NetworkError(OAGIError):
    """The API could not be reached."""


_STATUS_ERRORS: dict[int, type[APIError]] = {
    401: AuthenticationError,
    404: NotFoundError,
    422: ValidationError,
    429: RateLimitError,
}


def error_for_status(status_code: int) -> type[APIError]:
    """Return the ``APIError`` subclass matching an HTTP status.

    Args:
        status_code: HTTP status code of a failed response.

    Returns:
        ``ServerError`` for any 5xx, a dedicated subclass for 401, 404,
        422 and 429, otherwise plain ``APIError``.
    """
    if status_code >= 500:
        return ServerError
    return _STATUS_ERRORS.get(status_code, APIError)
