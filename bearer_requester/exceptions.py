"""Custom exception classes for the authenticated requester."""

import json
from typing import Any, Optional

EXPIRED_TOKEN_MESSAGE = "Expired Token"


class RequesterError(Exception):
    """Base exception class for all requester errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ConfigurationError(RequesterError):
    """Raised when there are configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.config_file = config_file
        self.field = field


class HttpError(RequesterError):
    """Raised when the server answers with an error status.

    The string form of the error is the server's response body, verbatim
    for text bodies and JSON-encoded for structured ones. When the server
    sent no body the transport message is used instead.
    """

    def __init__(
        self,
        status: int,
        body: Optional[Any] = None,
        url: Optional[str] = None,
        message: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(self._describe(status, body, message), cause)
        self.status = status
        self.body = body
        self.url = url

    @staticmethod
    def _describe(status: int, body: Any, message: Optional[str]) -> str:
        if body is None or body == "":
            return message or f"Request failed with status code {status}"
        if isinstance(body, str):
            return body
        try:
            return json.dumps(body)
        except (TypeError, ValueError):
            return str(body)

    @property
    def server_message(self) -> Optional[str]:
        """The ``message`` field of a JSON error body, if any."""
        if isinstance(self.body, dict):
            message = self.body.get("message")
            if isinstance(message, str):
                return message
        return None


class AuthExpiredError(HttpError):
    """Raised on HTTP 401 whose body reports an expired token."""

    def __init__(
        self,
        body: Optional[Any] = None,
        url: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(401, body, url=url, cause=cause)

    @staticmethod
    def matches(status: int, body: Any) -> bool:
        """Check whether a status and decoded body signal an expired token."""
        return (
            status == 401
            and isinstance(body, dict)
            and body.get("message") == EXPIRED_TOKEN_MESSAGE
        )


class TransportError(RequesterError):
    """Raised when a request fails without an HTTP response."""

    def __init__(self, message: str = "An error occurred", cause: Optional[Exception] = None):
        super().__init__(message, cause)


class NetworkError(TransportError):
    """Raised when network-related errors occur."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(f"Network error: {message}", cause)


class TimeoutError(TransportError):
    """Raised when requests timeout."""

    def __init__(
        self, message: str = "Request timed out", timeout_seconds: Optional[int] = None
    ):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class ResponseDecodeError(RequesterError):
    """Raised when a response body cannot be built into the requested type."""

    def __init__(
        self,
        message: str,
        response_data: Optional[Any] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause)
        self.response_data = response_data
