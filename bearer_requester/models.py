"""Data models for request building and response handling."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

JSON_CONTENT_TYPE = "application/json"


class HttpMethod(str, Enum):
    """HTTP methods supported by the requester."""

    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Union["HttpMethod", str]) -> "HttpMethod":
        """Accept an enum member or a method name in any case."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {value!r}")


class RequestState(str, Enum):
    """States of a single ``send()`` invocation."""

    INITIAL = "initial"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED_AUTH = "failed_auth"
    FAILED_OTHER = "failed_other"
    REFRESH_ATTEMPTED = "refresh_attempted"
    RETRY_DISPATCHED = "retry_dispatched"
    FAILED_TERMINAL = "failed_terminal"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RequestState.SUCCEEDED,
            RequestState.FAILED_OTHER,
            RequestState.FAILED_TERMINAL,
        )


def bearer(token: str) -> str:
    return f"Bearer {token}"


def set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing entry whose name differs only in case."""
    for existing in [key for key in headers if key.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


@dataclass(frozen=True)
class Endpoint:
    """Route/controller pair identifying a server resource."""

    route: str
    controller: str

    def __post_init__(self):
        if not self.route:
            raise ValueError("Endpoint route cannot be empty")

        if not self.controller:
            raise ValueError("Endpoint controller cannot be empty")

    @property
    def path(self) -> str:
        return f"{self.route}/{self.controller}"


@dataclass
class RequestSpec:
    """Everything needed to dispatch one logical call.

    ``headers`` holds only the caller-supplied headers. The merged header
    map is derived from the current token every time it is read.
    """

    base_address: str
    endpoint: Endpoint
    method: HttpMethod
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    access_token: Optional[str] = None
    identifier: Optional[str] = None
    query_string: Optional[str] = None
    token_refreshed: bool = False

    def __post_init__(self):
        self.method = HttpMethod.parse(self.method)
        self.headers = dict(self.headers or {})

    @property
    def endpoint_path(self) -> str:
        return self.endpoint.path

    @property
    def url(self) -> str:
        url = self.base_address + self.endpoint_path
        if self.query_string:
            url += self.query_string if self.query_string.startswith("?") else f"?{self.query_string}"
        return url

    @property
    def authorization(self) -> Optional[str]:
        if not self.access_token:
            return None
        return bearer(self.access_token)

    @property
    def merged_headers(self) -> dict[str, str]:
        """Content type < bearer authorization < caller headers.

        Header names compare case-insensitively. Once the token has been
        refreshed the new bearer value wins over a caller-supplied
        ``Authorization``.
        """
        merged = {"Content-Type": JSON_CONTENT_TYPE}
        if self.authorization:
            merged["Authorization"] = self.authorization
        for name, value in self.headers.items():
            set_header(merged, name, value)
        if self.token_refreshed and self.authorization:
            set_header(merged, "Authorization", self.authorization)
        return merged

    def update_token(self, token: str) -> None:
        if not token:
            raise ValueError("Access token cannot be empty")
        self.access_token = token
        self.token_refreshed = True


@dataclass(frozen=True)
class TokenRefreshRequest:
    """POST that exchanges a caller identifier for a new access token."""

    base_address: str
    token_endpoint_path: str
    identifier: Optional[str]

    @property
    def url(self) -> str:
        return self.base_address + self.token_endpoint_path

    @property
    def headers(self) -> dict[str, str]:
        return {"withCredentials": "true"}

    @property
    def body(self) -> dict[str, Any]:
        return {"id": self.identifier}


@dataclass
class HttpResponse:
    """Decoded response returned by the transport."""

    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.status < 100:
            raise ValueError("Status code must be a valid HTTP status")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300
