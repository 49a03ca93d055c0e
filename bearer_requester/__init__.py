"""Authenticated REST requests with transparent bearer token refresh."""

from .config import ConfigLoader, RequesterConfig
from .exceptions import (
    AuthExpiredError,
    ConfigurationError,
    HttpError,
    NetworkError,
    RequesterError,
    ResponseDecodeError,
    TimeoutError,
    TransportError,
)
from .http import HTTPClient, RetryHandler
from .logging import configure_logging, get_requester_logger
from .models import (
    Endpoint,
    HttpMethod,
    HttpResponse,
    RequestSpec,
    RequestState,
    TokenRefreshRequest,
)
from .requester import Requester

__all__ = [
    "Requester",
    "RequesterConfig",
    "ConfigLoader",
    "HTTPClient",
    "RetryHandler",
    "Endpoint",
    "HttpMethod",
    "HttpResponse",
    "RequestSpec",
    "RequestState",
    "TokenRefreshRequest",
    "RequesterError",
    "ConfigurationError",
    "HttpError",
    "AuthExpiredError",
    "TransportError",
    "NetworkError",
    "TimeoutError",
    "ResponseDecodeError",
    "configure_logging",
    "get_requester_logger",
]
