"""HTTP client with connection pooling and retry logic."""

import asyncio
import json as jsonlib
import time
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientResponse, ClientTimeout, TCPConnector
from aiohttp.client_exceptions import ClientConnectorError, ClientError

from bearer_requester.exceptions import (
  AuthExpiredError,
  HttpError,
  NetworkError,
  TimeoutError,
)
from bearer_requester.http.retry import RetryHandler
from bearer_requester.logging import get_requester_logger
from bearer_requester.models import HttpResponse

logger = get_requester_logger(__name__)


class HTTPClient:
  """HTTP client with connection pooling and automatic retry logic.

  Every request is read to completion and decoded here. Error statuses
  become ``HttpError`` (``AuthExpiredError`` for an expired token) and
  failures without a response become ``TransportError`` subclasses.
  """

  def __init__(
    self,
    max_connections: int = 100,
    timeout: int = 30,
    max_retries: int = 0,
  ):
    """Initialize HTTP client with connection pooling.

    Args:
      max_connections: Maximum number of connections in the pool
      timeout: Request timeout in seconds
      max_retries: Retries for transient failures (0 disables them)
    """
    self.max_connections = max_connections
    self.timeout = timeout
    self.session: Optional[aiohttp.ClientSession] = None
    self.retry_handler = RetryHandler(max_retries=max_retries)

  async def _get_session(self) -> aiohttp.ClientSession:
    """Get or create aiohttp session with connection pooling.

    Returns:
      Configured ClientSession instance
    """
    if self.session is None:
      connector = TCPConnector(limit=self.max_connections)
      timeout = ClientTimeout(total=self.timeout)

      self.session = aiohttp.ClientSession(
        connector=connector,
        timeout=timeout
      )

    return self.session

  async def request(
    self,
    method: str,
    url: str,
    json: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make a request with retry logic.

    Args:
      method: HTTP method
      url: Request URL
      json: JSON data to send in request body
      headers: HTTP headers
      params: Query parameters

    Returns:
      Decoded HTTP response

    Raises:
      HttpError: For responses with status >= 400
      NetworkError: For network-related errors
      TimeoutError: For timeout errors
    """
    return await self.retry_handler.execute(
      self._make_request,
      method,
      url,
      json=json,
      headers=headers,
      params=params,
    )

  async def get(
    self,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make GET request with retry logic."""
    return await self.request("GET", url, headers=headers, params=params)

  async def post(
    self,
    url: str,
    json: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make POST request with retry logic."""
    return await self.request("POST", url, json=json, headers=headers, params=params)

  async def patch(
    self,
    url: str,
    json: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make PATCH request with retry logic."""
    return await self.request("PATCH", url, json=json, headers=headers, params=params)

  async def delete(
    self,
    url: str,
    json: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make DELETE request with retry logic."""
    return await self.request("DELETE", url, json=json, headers=headers, params=params)

  async def _make_request(
    self,
    method: str,
    url: str,
    json: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
  ) -> HttpResponse:
    """Make one HTTP request using the session and decode the response."""
    session = await self._get_session()
    kwargs: Dict[str, Any] = {"headers": headers, "params": params}
    if json is not None:
      kwargs["json"] = json

    start_time = time.monotonic()
    try:
      response = await session.request(method, url, **kwargs)
      try:
        body = await self._read_body(response)
      finally:
        response.release()
    except asyncio.TimeoutError as e:
      raise TimeoutError(f"Request timeout: {str(e)}", timeout_seconds=self.timeout)
    except ClientConnectorError as e:
      raise NetworkError(f"Connection failed: {str(e)}", cause=e)
    except ClientError as e:
      raise NetworkError(f"HTTP request failed: {str(e)}", cause=e)

    logger.log_response(
      status_code=response.status,
      url=url,
      latency_ms=int((time.monotonic() - start_time) * 1000),
      method=method,
    )

    if response.status >= 400:
      if AuthExpiredError.matches(response.status, body):
        raise AuthExpiredError(body, url=url)
      raise HttpError(
        response.status,
        body,
        url=url,
        message=f"Request failed with status code {response.status}",
      )

    return HttpResponse(
      status=response.status,
      body=body,
      headers=dict(response.headers or {}),
    )

  @staticmethod
  async def _read_body(response: ClientResponse) -> Any:
    """Decode a response body as JSON, falling back to text.

    Undecodable bytes are replaced so an error status is never lost.
    """
    raw = await response.read()
    if not raw:
      return None
    encoding = response.charset or "utf-8"
    try:
      text = raw.decode(encoding, errors="replace")
    except LookupError:
      text = raw.decode("utf-8", errors="replace")
    try:
      return jsonlib.loads(text)
    except ValueError:
      return text

  async def close(self) -> None:
    """Close the HTTP session and clean up resources."""
    if self.session is not None:
      await self.session.close()
      self.session = None

  async def __aenter__(self) -> "HTTPClient":
    """Async context manager entry."""
    return self

  async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
    """Async context manager exit with cleanup."""
    await self.close()
