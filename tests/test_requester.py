"""Unit tests for Requester token refresh and retry flow."""

from dataclasses import dataclass
from unittest.mock import AsyncMock, Mock

import pytest

from bearer_requester.config import RequesterConfig
from bearer_requester.exceptions import (
  AuthExpiredError,
  HttpError,
  NetworkError,
  ResponseDecodeError,
  TransportError,
)
from bearer_requester.http.client import HTTPClient
from bearer_requester.logging import RequesterLogger
from bearer_requester.models import Endpoint, HttpMethod, HttpResponse, RequestState
from bearer_requester.requester import Requester

BASE_URL = "https://api.test.com/"
TOKEN_URL = "https://api.test.com/auth/token"
TARGET_URL = "https://api.test.com/route/action"
EXPIRED_BODY = {"message": "Expired Token"}


@dataclass
class User:
  id: int
  name: str


@pytest.fixture
def config():
  return RequesterConfig(base_url=BASE_URL, token_endpoint="auth/token")


@pytest.fixture
def http_client():
  """HTTPClient double; ``request`` serves the call, ``post`` the refresh."""
  client = Mock(spec=HTTPClient)
  client.request = AsyncMock()
  client.post = AsyncMock()
  client.close = AsyncMock()
  return client


def make_requester(config, http_client, **kwargs):
  params = {
    "endpoint": Endpoint("route", "action"),
    "method": HttpMethod.GET,
    "http_client": http_client,
  }
  params.update(kwargs)
  return Requester(config, **params)


def sent_headers(http_client, call_index):
  return http_client.request.call_args_list[call_index].kwargs["headers"]


class TestRequesterConstruction:
  """Test cases for request building."""

  def test_url_without_token(self, config, http_client):
    requester = make_requester(config, http_client)

    assert requester.url == TARGET_URL
    assert requester.headers == {"Content-Type": "application/json"}
    assert requester.state is RequestState.INITIAL

  def test_endpoint_mapping_accepted(self, config, http_client):
    requester = make_requester(
      config, http_client, endpoint={"route": "users", "controller": "list"}
    )

    assert requester.url == "https://api.test.com/users/list"

  def test_caller_authorization_overrides_token(self, config, http_client):
    requester = make_requester(
      config, http_client, access_token="abc", headers={"Authorization": "X"}
    )

    assert requester.headers["Authorization"] == "X"
    assert requester.access_token == "abc"

  def test_set_query_string(self, config, http_client):
    requester = make_requester(config, http_client)

    requester.set_query_string("page=2")
    assert requester.url == TARGET_URL + "?page=2"

    requester.set_query_string("")
    assert requester.url == TARGET_URL

  def test_owns_client_when_not_injected(self, config):
    requester = Requester(config, Endpoint("route", "action"), "GET")

    assert isinstance(requester.http_client, HTTPClient)
    assert requester.http_client.timeout == config.timeout
    assert requester.http_client.max_connections == config.max_connections


class TestRequesterSend:
  """Test cases for send() outcomes."""

  @pytest.mark.asyncio
  async def test_success_returns_body_unmodified(self, config, http_client):
    body = {"items": [1, 2, 3], "next": None}
    http_client.request.return_value = HttpResponse(status=200, body=body)
    requester = make_requester(
      config, http_client, method="POST", payload={"q": "x"}, access_token="abc"
    )

    result = await requester.send()

    assert result is body
    assert requester.state is RequestState.SUCCEEDED
    http_client.request.assert_called_once_with(
      "POST",
      TARGET_URL,
      json={"q": "x"},
      headers={"Content-Type": "application/json", "Authorization": "Bearer abc"},
    )
    http_client.post.assert_not_called()

  @pytest.mark.asyncio
  async def test_success_decoded_into_response_type(self, config, http_client):
    http_client.request.return_value = HttpResponse(status=200, body={"id": 1, "name": "Ada"})
    requester = make_requester(config, http_client)

    user = await requester.send(User)

    assert user == User(id=1, name="Ada")

  @pytest.mark.asyncio
  async def test_response_type_mismatch(self, config, http_client):
    http_client.request.return_value = HttpResponse(status=200, body={"unexpected": True})
    requester = make_requester(config, http_client)

    with pytest.raises(ResponseDecodeError) as exc_info:
      await requester.send(User)

    assert exc_info.value.response_data == {"unexpected": True}
    assert requester.state is RequestState.FAILED_OTHER

  @pytest.mark.asyncio
  async def test_non_mapping_body_passed_positionally(self, config, http_client):
    http_client.request.return_value = HttpResponse(status=200, body=[1, 2])
    requester = make_requester(config, http_client)

    assert await requester.send(tuple) == (1, 2)

  @pytest.mark.asyncio
  async def test_http_error_surfaces_body_verbatim(self, config, http_client):
    error = HttpError(404, "No such resource", url=TARGET_URL)
    http_client.request.side_effect = error
    requester = make_requester(config, http_client, access_token="abc", identifier="user-1")

    with pytest.raises(HttpError) as exc_info:
      await requester.send()

    assert exc_info.value is error
    assert str(exc_info.value) == "No such resource"
    assert requester.state is RequestState.FAILED_OTHER
    http_client.post.assert_not_called()

  @pytest.mark.asyncio
  async def test_other_401_does_not_refresh(self, config, http_client):
    http_client.request.side_effect = HttpError(401, {"message": "Invalid Token"})
    requester = make_requester(config, http_client, access_token="abc", identifier="user-1")

    with pytest.raises(HttpError):
      await requester.send()

    http_client.post.assert_not_called()

  @pytest.mark.asyncio
  async def test_transport_error_is_generic(self, config, http_client):
    http_client.request.side_effect = NetworkError("Connection failed")
    requester = make_requester(config, http_client)

    with pytest.raises(TransportError) as exc_info:
      await requester.send()

    assert not isinstance(exc_info.value, HttpError)
    assert requester.state is RequestState.FAILED_OTHER

  @pytest.mark.asyncio
  async def test_unexpected_error_wrapped(self, config, http_client):
    cause = RuntimeError("boom")
    http_client.request.side_effect = cause
    requester = make_requester(config, http_client)

    with pytest.raises(TransportError, match="An error occurred") as exc_info:
      await requester.send()

    assert exc_info.value.cause is cause


class TestTokenRefresh:
  """Test cases for the expired-token refresh and retry."""

  @pytest.mark.asyncio
  async def test_refresh_then_retry_with_new_token(self, config, http_client):
    http_client.request.side_effect = [
      AuthExpiredError(EXPIRED_BODY, url=TARGET_URL),
      HttpResponse(status=200, body={"ok": True}),
    ]
    http_client.post.return_value = HttpResponse(status=200, body={"accessToken": "T"})
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    result = await requester.send()

    assert result == {"ok": True}
    assert requester.access_token == "T"
    assert requester.state is RequestState.SUCCEEDED
    assert sent_headers(http_client, 0)["Authorization"] == "Bearer old"
    assert sent_headers(http_client, 1)["Authorization"] == "Bearer T"
    http_client.post.assert_called_once_with(
      TOKEN_URL,
      json={"id": "user-1"},
      headers={"withCredentials": "true"},
    )

  @pytest.mark.asyncio
  async def test_refreshed_token_wins_over_caller_header(self, config, http_client):
    http_client.request.side_effect = [
      AuthExpiredError(EXPIRED_BODY),
      HttpResponse(status=200, body={}),
    ]
    http_client.post.return_value = HttpResponse(status=200, body={"accessToken": "T"})
    requester = make_requester(
      config, http_client, access_token="abc", identifier="user-1",
      headers={"Authorization": "X"},
    )

    await requester.send()

    assert sent_headers(http_client, 0)["Authorization"] == "X"
    assert sent_headers(http_client, 1)["Authorization"] == "Bearer T"

  @pytest.mark.asyncio
  async def test_refreshed_token_replaces_lowercase_caller_header(self, config, http_client):
    http_client.request.side_effect = [
      AuthExpiredError(EXPIRED_BODY),
      HttpResponse(status=200, body={}),
    ]
    http_client.post.return_value = HttpResponse(status=200, body={"accessToken": "T"})
    requester = make_requester(
      config, http_client, access_token="abc", identifier="user-1",
      headers={"authorization": "X"},
    )

    await requester.send()

    assert sent_headers(http_client, 0) == {
      "Content-Type": "application/json",
      "authorization": "X",
    }
    assert sent_headers(http_client, 1) == {
      "Content-Type": "application/json",
      "Authorization": "Bearer T",
    }

  @pytest.mark.asyncio
  async def test_refresh_non_200_surfaces_original_error(self, config, http_client):
    original = AuthExpiredError(EXPIRED_BODY, url=TARGET_URL)
    http_client.request.side_effect = original
    http_client.post.return_value = HttpResponse(status=202, body={"accessToken": "T"})
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError) as exc_info:
      await requester.send()

    assert exc_info.value is original
    assert requester.access_token == "old"
    assert requester.state is RequestState.FAILED_TERMINAL
    http_client.request.assert_called_once()

  @pytest.mark.asyncio
  async def test_refresh_raising_surfaces_original_error(self, config, http_client):
    original = AuthExpiredError(EXPIRED_BODY)
    http_client.request.side_effect = original
    http_client.post.side_effect = HttpError(500, "token service down")
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError) as exc_info:
      await requester.send()

    assert exc_info.value is original
    assert str(exc_info.value) == '{"message": "Expired Token"}'

  @pytest.mark.asyncio
  async def test_refresh_network_failure_surfaces_original_error(self, config, http_client):
    original = AuthExpiredError(EXPIRED_BODY)
    http_client.request.side_effect = original
    http_client.post.side_effect = NetworkError("Connection failed")
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError) as exc_info:
      await requester.send()

    assert exc_info.value is original

  @pytest.mark.asyncio
  @pytest.mark.parametrize("body", [{}, {"accessToken": ""}, {"accessToken": 42}, "T"])
  async def test_refresh_without_usable_token(self, config, http_client, body):
    http_client.request.side_effect = AuthExpiredError(EXPIRED_BODY)
    http_client.post.return_value = HttpResponse(status=200, body=body)
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError):
      await requester.send()

    assert requester.access_token == "old"

  @pytest.mark.asyncio
  async def test_no_identifier_skips_refresh(self, config, http_client):
    http_client.request.side_effect = AuthExpiredError(EXPIRED_BODY)
    requester = make_requester(config, http_client, access_token="old")

    with pytest.raises(AuthExpiredError):
      await requester.send()

    http_client.post.assert_not_called()

  @pytest.mark.asyncio
  async def test_repeated_expiry_is_capped(self, config, http_client):
    first = AuthExpiredError(EXPIRED_BODY)
    second = AuthExpiredError(EXPIRED_BODY)
    http_client.request.side_effect = [first, second, HttpResponse(status=200, body={})]
    http_client.post.return_value = HttpResponse(status=200, body={"accessToken": "T"})
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError) as exc_info:
      await requester.send()

    assert exc_info.value is second
    assert http_client.request.call_count == 2
    assert http_client.post.call_count == 1
    assert requester.state is RequestState.FAILED_TERMINAL

  @pytest.mark.asyncio
  async def test_more_refreshes_when_configured(self, http_client):
    config = RequesterConfig(
      base_url=BASE_URL, token_endpoint="auth/token", max_refresh_attempts=2
    )
    http_client.request.side_effect = [
      AuthExpiredError(EXPIRED_BODY),
      AuthExpiredError(EXPIRED_BODY),
      HttpResponse(status=200, body={"ok": True}),
    ]
    http_client.post.side_effect = [
      HttpResponse(status=200, body={"accessToken": "T1"}),
      HttpResponse(status=200, body={"accessToken": "T2"}),
    ]
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    assert await requester.send() == {"ok": True}
    assert sent_headers(http_client, 2)["Authorization"] == "Bearer T2"

  @pytest.mark.asyncio
  async def test_refresh_disabled(self, http_client):
    config = RequesterConfig(
      base_url=BASE_URL, token_endpoint="auth/token", max_refresh_attempts=0
    )
    http_client.request.side_effect = AuthExpiredError(EXPIRED_BODY)
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(AuthExpiredError):
      await requester.send()

    http_client.post.assert_not_called()

  @pytest.mark.asyncio
  async def test_error_after_retry_is_terminal(self, config, http_client):
    http_client.request.side_effect = [
      AuthExpiredError(EXPIRED_BODY),
      HttpError(500, "boom"),
    ]
    http_client.post.return_value = HttpResponse(status=200, body={"accessToken": "T"})
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")

    with pytest.raises(HttpError, match="boom"):
      await requester.send()

    assert requester.state is RequestState.FAILED_TERMINAL


class TestFailureLogging:
  """Test that every failed send() is logged once."""

  @staticmethod
  def with_mock_logger(requester):
    requester.logger = Mock(spec=RequesterLogger)
    return requester.logger

  @pytest.mark.asyncio
  async def test_http_error_logged(self, config, http_client):
    error = HttpError(404, "No such resource", url=TARGET_URL)
    http_client.request.side_effect = error
    requester = make_requester(config, http_client)
    logger = self.with_mock_logger(requester)

    with pytest.raises(HttpError):
      await requester.send()

    logger.log_failure.assert_called_once_with(error, url=TARGET_URL)

  @pytest.mark.asyncio
  async def test_transport_error_logged(self, config, http_client):
    error = NetworkError("Connection failed")
    http_client.request.side_effect = error
    requester = make_requester(config, http_client)
    logger = self.with_mock_logger(requester)

    with pytest.raises(NetworkError):
      await requester.send()

    logger.log_failure.assert_called_once_with(error, url=TARGET_URL)

  @pytest.mark.asyncio
  async def test_failed_refresh_logs_original_error(self, config, http_client):
    original = AuthExpiredError(EXPIRED_BODY, url=TARGET_URL)
    http_client.request.side_effect = original
    http_client.post.return_value = HttpResponse(status=500, body="down")
    requester = make_requester(config, http_client, access_token="old", identifier="user-1")
    logger = self.with_mock_logger(requester)

    with pytest.raises(AuthExpiredError):
      await requester.send()

    logger.log_failure.assert_called_once_with(original, url=TARGET_URL)
    assert logger.log_refresh.call_args.args[0] is False

  @pytest.mark.asyncio
  async def test_decode_failure_of_any_kind_logged(self, config, http_client):
    def strict_type(**fields):
      return fields["required"]

    http_client.request.return_value = HttpResponse(status=200, body={"other": 1})
    requester = make_requester(config, http_client)
    logger = self.with_mock_logger(requester)

    with pytest.raises(ResponseDecodeError) as exc_info:
      await requester.send(strict_type)

    assert isinstance(exc_info.value.cause, KeyError)
    assert requester.state is RequestState.FAILED_OTHER
    logger.log_failure.assert_called_once_with(exc_info.value, url=TARGET_URL)

  @pytest.mark.asyncio
  async def test_success_not_logged_as_failure(self, config, http_client):
    http_client.request.return_value = HttpResponse(status=200, body={})
    requester = make_requester(config, http_client)
    logger = self.with_mock_logger(requester)

    await requester.send()

    logger.log_failure.assert_not_called()


class TestRequesterIsolation:
  """Test cases for independence between requester instances."""

  @staticmethod
  def scripted_client():
    client = Mock(spec=HTTPClient)
    client.request = AsyncMock(side_effect=[
      AuthExpiredError(EXPIRED_BODY),
      HttpResponse(status=200, body={"ok": True}),
    ])
    client.post = AsyncMock(return_value=HttpResponse(status=200, body={"accessToken": "T"}))
    return client

  @pytest.mark.asyncio
  async def test_identical_inputs_identical_outcomes(self, config):
    outcomes = []
    for _ in range(2):
      client = self.scripted_client()
      requester = make_requester(config, client, access_token="old", identifier="user-1")
      result = await requester.send()
      outcomes.append((result, requester.access_token, requester.state, client.request.call_args_list))

    assert outcomes[0] == outcomes[1]

  @pytest.mark.asyncio
  async def test_refresh_does_not_leak_between_instances(self, config):
    client = self.scripted_client()
    refreshed = make_requester(config, client, access_token="old", identifier="user-1")
    untouched = make_requester(config, client, access_token="old", identifier="user-1")

    await refreshed.send()

    assert refreshed.access_token == "T"
    assert untouched.access_token == "old"
    assert untouched.headers["Authorization"] == "Bearer old"


class TestRequesterLifecycle:
  """Test cases for closing the transport."""

  @pytest.mark.asyncio
  async def test_injected_client_left_open(self, config, http_client):
    async with make_requester(config, http_client):
      pass

    http_client.close.assert_not_called()

  @pytest.mark.asyncio
  async def test_owned_client_closed(self, config):
    requester = Requester(config, Endpoint("route", "action"), HttpMethod.GET)
    requester.http_client.close = AsyncMock()

    async with requester:
      pass

    requester.http_client.close.assert_called_once()
