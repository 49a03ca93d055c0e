"""Authenticated request dispatch with one-shot bearer token refresh."""

from typing import Any, Callable, Mapping, NoReturn, Optional, Union

from bearer_requester.config import RequesterConfig
from bearer_requester.exceptions import (
  AuthExpiredError,
  RequesterError,
  ResponseDecodeError,
  TransportError,
)
from bearer_requester.http.client import HTTPClient
from bearer_requester.logging import get_requester_logger
from bearer_requester.models import (
  Endpoint,
  HttpMethod,
  HttpResponse,
  RequestSpec,
  RequestState,
  TokenRefreshRequest,
)


class Requester:
  """Sends one authenticated call and refreshes an expired token.

  A requester is built per logical call. ``send()`` dispatches it; when the
  server answers 401 with ``{"message": "Expired Token"}`` the requester
  exchanges its identifier for a new token at the configured token endpoint
  and dispatches the call again with the new bearer header. The number of
  refreshes per ``send()`` is capped by ``config.max_refresh_attempts``.

  Example:
    config = RequesterConfig(base_url="https://api.example.com/", token_endpoint="auth/refresh")
    async with Requester(config, Endpoint("users", "list"), HttpMethod.GET, access_token=token) as requester:
      users = await requester.send()
  """

  def __init__(
    self,
    config: RequesterConfig,
    endpoint: Union[Endpoint, Mapping[str, str]],
    method: Union[HttpMethod, str],
    payload: Any = None,
    headers: Optional[Mapping[str, str]] = None,
    access_token: Optional[str] = None,
    identifier: Optional[str] = None,
    query_string: Optional[str] = None,
    http_client: Optional[HTTPClient] = None,
  ):
    """Initialize the requester.

    Args:
      config: Base URL, token endpoint and transport settings
      endpoint: Route/controller pair, or a mapping with those keys
      method: HTTP method
      payload: JSON-serializable request body
      headers: Extra headers; they override the defaults
      access_token: Bearer token sent as ``Authorization``
      identifier: Caller id exchanged for a new token on expiry
      query_string: Query appended to the request URL
      http_client: Shared transport; one is created and owned when omitted
    """
    if not isinstance(endpoint, Endpoint):
      endpoint = Endpoint(route=endpoint["route"], controller=endpoint["controller"])

    self.config = config
    self.spec = RequestSpec(
      base_address=config.base_url,
      endpoint=endpoint,
      method=method,
      headers=dict(headers or {}),
      body=payload,
      access_token=access_token,
      identifier=identifier,
      query_string=query_string,
    )
    self._owns_client = http_client is None
    if http_client is None:
      http_client = HTTPClient(
        max_connections=config.max_connections,
        timeout=config.timeout,
        max_retries=config.max_retries,
      )
    self.http_client = http_client
    self.state = RequestState.INITIAL
    self.logger = get_requester_logger(
      __name__,
      endpoint=endpoint.path,
      method=self.spec.method.value,
    )

  @property
  def access_token(self) -> Optional[str]:
    return self.spec.access_token

  @property
  def headers(self) -> dict[str, str]:
    return self.spec.merged_headers

  @property
  def url(self) -> str:
    return self.spec.url

  def set_query_string(self, query_string: Optional[str]) -> None:
    """Store a query string for the next ``send()``; falsy values clear it."""
    self.spec.query_string = query_string or None

  async def send(self, response_type: Optional[Callable[..., Any]] = None) -> Any:
    """Dispatch the call, refreshing an expired token when possible.

    Args:
      response_type: Optional class the decoded body is built into. Mapping
        bodies are passed as keyword arguments, anything else positionally.

    Returns:
      The decoded response body, or an instance of ``response_type``

    Raises:
      AuthExpiredError: Token expired and could not be refreshed, or kept
        expiring after the allowed refreshes
      HttpError: Any other error status, carrying the server's body
      TransportError: The request failed without an HTTP response
      ResponseDecodeError: The body does not fit ``response_type``
    """
    self._transition(RequestState.INITIAL)
    refreshes = 0
    self._transition(RequestState.DISPATCHED)

    while True:
      try:
        response = await self._dispatch()
      except AuthExpiredError as e:
        if refreshes >= self.config.max_refresh_attempts:
          self._fail(e, RequestState.FAILED_TERMINAL)
        self._transition(RequestState.FAILED_AUTH)
        self.logger.info("Access token expired, refreshing", url=self.url)

        self._transition(RequestState.REFRESH_ATTEMPTED)
        refreshes += 1
        new_token = await self._refresh()
        if not new_token:
          self._fail(e, RequestState.FAILED_TERMINAL)

        self._transition(RequestState.RETRY_DISPATCHED)
        continue
      except RequesterError as e:
        self._fail(e, self._failure_state(refreshes))
      except Exception as e:
        self._fail(TransportError(cause=e), self._failure_state(refreshes))

      result = self._decode(response, response_type, refreshes)
      self._transition(RequestState.SUCCEEDED)
      return result

  async def _dispatch(self) -> HttpResponse:
    url = self.url
    headers = self.headers
    self.logger.log_request(self.spec.method.value, url, headers=headers, body=self.spec.body)
    return await self.http_client.request(
      self.spec.method.value,
      url,
      json=self.spec.body,
      headers=headers,
    )

  async def _refresh(self) -> Optional[str]:
    """Exchange the identifier for a new access token.

    Returns the token and stores it, or None when the refresh failed.
    Never raises.
    """
    refresh_request = TokenRefreshRequest(
      base_address=self.config.base_url,
      token_endpoint_path=self.config.token_endpoint,
      identifier=self.spec.identifier,
    )

    if not refresh_request.identifier:
      self.logger.log_refresh(False, refresh_request.url, reason="no identifier")
      return None

    try:
      response = await self.http_client.post(
        refresh_request.url,
        json=refresh_request.body,
        headers=refresh_request.headers,
      )
    except Exception as e:
      self.logger.log_refresh(
        False,
        refresh_request.url,
        error_type=type(e).__name__,
        error=getattr(e, "body", None) or str(e),
      )
      return None

    if response.status != 200:
      self.logger.log_refresh(False, refresh_request.url, status_code=response.status)
      return None

    token = response.body.get("accessToken") if isinstance(response.body, dict) else None
    if not isinstance(token, str) or not token:
      self.logger.log_refresh(False, refresh_request.url, reason="no accessToken in response")
      return None

    self.spec.update_token(token)
    self.logger.log_refresh(True, refresh_request.url)
    return token

  def _decode(
    self,
    response: HttpResponse,
    response_type: Optional[Callable[..., Any]],
    refreshes: int,
  ) -> Any:
    if response_type is None:
      return response.body

    try:
      if isinstance(response.body, Mapping):
        return response_type(**response.body)
      return response_type(response.body)
    except Exception as e:
      error = ResponseDecodeError(
        f"Cannot decode response into {getattr(response_type, '__name__', response_type)}: {e}",
        response_data=response.body,
        cause=e,
      )
      self._fail(error, self._failure_state(refreshes))

  @staticmethod
  def _failure_state(refreshes: int) -> RequestState:
    return RequestState.FAILED_TERMINAL if refreshes else RequestState.FAILED_OTHER

  def _fail(self, error: RequesterError, state: RequestState) -> NoReturn:
    self._transition(state)
    self.logger.log_failure(error, url=self.url)
    raise error

  def _transition(self, state: RequestState) -> None:
    if state is self.state:
      return
    self.logger.log_state(self.state.value, state.value)
    self.state = state

  async def close(self) -> None:
    """Close the transport if this requester created it."""
    if self._owns_client:
      await self.http_client.close()

  async def __aenter__(self) -> "Requester":
    return self

  async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
    await self.close()
