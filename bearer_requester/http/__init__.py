"""HTTP transport for the requester."""

from bearer_requester.http.client import HTTPClient
from bearer_requester.http.retry import RetryHandler

__all__ = [
    "HTTPClient",
    "RetryHandler",
]
