#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Authenticated request pipeline for the JSON:API backend.

Every outbound call gets the current bearer token and, for mutating methods,
the cached CSRF token. When calls fail with 401 the pipeline refreshes the
access token once, no matter how many calls failed concurrently:

- The first caller to see a 401 becomes the refresher and calls the refresh
  function.
- Callers that see a 401 while a refresh is running queue up and wait for
  its outcome.
- On success every waiting caller, and the refresher, replays its request
  once with the new token. On failure they all fail.
- A caller whose token was replaced by a refresh that already finished
  replays with the current token without refreshing again.

A replayed request is never retried again.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional

import httpx

from . import constants
from . import jsonapi
from .exceptions import ApiError
from .exceptions import AuthenticationError
from .exceptions import NetworkError

logger = logging.getLogger(__name__)

TokenGetter = Callable[[], Awaitable[Optional[str]]]
RefreshFn = Callable[[], Awaitable[bool]]


@dataclasses.dataclass(frozen=True)
class _RefreshOutcome:
  succeeded: bool
  token: Optional[str] = None
  error: Optional[BaseException] = None


class AuthenticatedRequestPipeline:
  """Sends authenticated requests and recovers from expired access tokens."""

  def __init__(
      self,
      base_url: str,
      transport: Optional[httpx.AsyncBaseTransport] = None,
      timeout: float = constants.REQUEST_TIMEOUT_SECONDS,
  ):
    self._client = httpx.AsyncClient(
        base_url=base_url,
        headers={
            "Accept": constants.JSON_API_MEDIA_TYPE,
            "Content-Type": constants.JSON_API_MEDIA_TYPE,
        },
        transport=transport,
        timeout=timeout,
    )
    self._token_getter: Optional[TokenGetter] = None
    self._refresh_fn: Optional[RefreshFn] = None
    self._csrf_token: Optional[str] = None
    self._is_refreshing = False
    self._queue: List[asyncio.Future] = []

  async def __aenter__(self) -> "AuthenticatedRequestPipeline":
    return self

  async def __aexit__(self, *exc_info) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    await self._client.aclose()

  @property
  def is_refreshing(self) -> bool:
    return self._is_refreshing

  def configure(
      self, token_getter: TokenGetter, refresh_fn: Optional[RefreshFn] = None
  ) -> None:
    """Sets the identity provider callbacks."""
    self._token_getter = token_getter
    self._refresh_fn = refresh_fn

  def set_csrf_token(self, token: Optional[str]) -> None:
    self._csrf_token = token

  async def request(
      self,
      method: str,
      path: str,
      body: Optional[Any] = None,
      params: Optional[Mapping[str, Any]] = None,
  ) -> httpx.Response:
    """Sends a request and returns the successful response.

    Args:
      method: HTTP method.
      path: Path relative to the API root.
      body: JSON body, if any.
      params: Query parameters, if any.

    Returns:
      The 2xx response.

    Raises:
      AuthenticationError: The request stayed unauthorized after recovery.
      ApiError: The backend rejected the request.
      NetworkError: The backend could not be reached.
    """
    method = method.upper()
    token = await self._current_token()
    response = await self._send(method, path, body, params, token)
    if response.status_code == 401:
      return await self._recover(method, path, body, params, response, token)
    return self._check(response)

  async def get(
      self, path: str, params: Optional[Mapping[str, Any]] = None
  ) -> httpx.Response:
    return await self.request("GET", path, params=params)

  async def post(self, path: str, body: Optional[Any] = None) -> httpx.Response:
    return await self.request("POST", path, body=body)

  async def patch(
      self, path: str, body: Optional[Any] = None
  ) -> httpx.Response:
    return await self.request("PATCH", path, body=body)

  async def _send(
      self,
      method: str,
      path: str,
      body: Optional[Any],
      params: Optional[Mapping[str, Any]],
      token: Optional[str],
  ) -> httpx.Response:
    """Applies the pre-request hook and sends the request once."""
    headers = {}
    if token:
      headers[constants.AUTHORIZATION_HEADER] = f"Bearer {token}"
    if self._csrf_token and method in constants.MUTATING_METHODS:
      headers[constants.CSRF_HEADER] = self._csrf_token

    try:
      return await self._client.request(
          method, path, json=body, params=params, headers=headers
      )
    except httpx.TransportError as e:
      raise NetworkError(str(e) or "Network error") from e

  async def _current_token(self) -> Optional[str]:
    if self._token_getter is None:
      return None
    try:
      return await self._token_getter()
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.warning("Access token lookup failed: %s", e)
      return None

  async def _recover(
      self,
      method: str,
      path: str,
      body: Optional[Any],
      params: Optional[Mapping[str, Any]],
      response: httpx.Response,
      sent_token: Optional[str],
  ) -> httpx.Response:
    """Handles the first 401 of a request sent with `sent_token`."""
    error = self._error_for(response)

    current = await self._current_token()
    if self._is_refreshing:
      future = asyncio.get_running_loop().create_future()
      self._queue.append(future)
      outcome = await future
    elif current and current != sent_token:
      # A refresh finished after this request was sent.
      logger.info("Replaying stale-token request with the current token")
      outcome = _RefreshOutcome(succeeded=True, token=current)
    else:
      outcome = await self._refresh_once()

    if not outcome.succeeded:
      raise error from outcome.error

    replayed = await self._send(method, path, body, params, outcome.token)
    return self._check(replayed)

  async def _refresh_once(self) -> _RefreshOutcome:
    """Runs the refresh as the single refresher and releases the queue."""
    self._is_refreshing = True
    outcome = _RefreshOutcome(succeeded=False)
    try:
      outcome = await self._refresh()
    finally:
      self._is_refreshing = False
      queue, self._queue = self._queue, []
      if queue:
        logger.info(
            "Releasing %d queued requests after token refresh (success=%s)",
            len(queue),
            outcome.succeeded,
        )
      for future in queue:
        if not future.done():
          future.set_result(outcome)
    return outcome

  async def _refresh(self) -> _RefreshOutcome:
    if self._refresh_fn is None:
      logger.warning("Received 401 but no token refresh is configured")
      return _RefreshOutcome(succeeded=False)

    try:
      refreshed = await self._refresh_fn()
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.warning("Access token refresh failed: %s", e)
      return _RefreshOutcome(succeeded=False, error=e)

    if not refreshed:
      logger.info("Access token refresh was rejected")
      return _RefreshOutcome(succeeded=False)

    return _RefreshOutcome(succeeded=True, token=await self._current_token())

  def _check(self, response: httpx.Response) -> httpx.Response:
    if response.is_success:
      return response
    raise self._error_for(response)

  def _error_for(self, response: httpx.Response) -> ApiError:
    try:
      payload = response.json()
    except ValueError:
      payload = None
    detail = jsonapi.error_message(payload)
    message = detail or f"Request failed with status {response.status_code}"
    if response.status_code == 401:
      return AuthenticationError(message, detail=detail)
    return ApiError(message, status_code=response.status_code, detail=detail)
