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

"""Tests for the authenticated request pipeline."""

import asyncio

from absl.testing import absltest
import httpx

from storefront_checkout import constants
from storefront_checkout.exceptions import ApiError
from storefront_checkout.exceptions import AuthenticationError
from storefront_checkout.exceptions import NetworkError
from storefront_checkout.pipeline import AuthenticatedRequestPipeline
from storefront_checkout.testing import BASE_URL
from storefront_checkout.testing import FakeIdentityProvider
from storefront_checkout.testing import FakeStorefrontBackend


class PipelineTest(absltest.TestCase):
  """Tests for token handling and single-flight refresh."""

  def setUp(self) -> None:
    super().setUp()
    self.backend = FakeStorefrontBackend(valid_token="token-1")
    self.backend.add_country("US", "United States")
    self.identity = FakeIdentityProvider(
        token="token-0", refreshed_token="token-1"
    )

  def _pipeline(self, refresh: bool = True) -> AuthenticatedRequestPipeline:
    pipeline = AuthenticatedRequestPipeline(
        BASE_URL, transport=self.backend.transport
    )
    pipeline.configure(
        self.identity.get_valid_access_token,
        self.identity.refresh_access_token if refresh else None,
    )
    return pipeline

  def test_valid_token_is_sent_as_bearer(self) -> None:
    self.identity.token = "token-1"

    async def run():
      async with self._pipeline() as pipeline:
        return await pipeline.get(constants.COUNTRIES_ENDPOINT)

    response = asyncio.run(run())

    self.assertEqual(response.status_code, 200)
    self.assertEqual(self.identity.refresh_calls, 0)
    request = self.backend.requests[0]
    self.assertEqual(request.headers["Authorization"], "Bearer token-1")
    self.assertEqual(request.headers["Accept"], constants.JSON_API_MEDIA_TYPE)

  def test_csrf_header_only_on_mutating_requests(self) -> None:
    self.identity.token = "token-1"

    async def run():
      async with self._pipeline() as pipeline:
        pipeline.set_csrf_token("csrf-123")
        await pipeline.get(constants.COUNTRIES_ENDPOINT)
        await pipeline.post(constants.CUSTOMER_ADDRESSES_ENDPOINT, {
            "data": {"type": "customeraddresses", "attributes": {}}
        })

    asyncio.run(run())

    get_request, post_request = self.backend.requests
    self.assertNotIn(constants.CSRF_HEADER, get_request.headers)
    self.assertEqual(post_request.headers[constants.CSRF_HEADER], "csrf-123")

  def test_concurrent_401s_refresh_once(self) -> None:

    async def run():
      async with self._pipeline() as pipeline:
        return await asyncio.gather(*[
            pipeline.get(constants.COUNTRIES_ENDPOINT) for _ in range(5)
        ])

    responses = asyncio.run(run())

    self.assertEqual(self.identity.refresh_calls, 1)
    self.assertEqual([r.status_code for r in responses], [200] * 5)
    replays = [
        r
        for r in self.backend.requests
        if r.headers.get("Authorization") == "Bearer token-1"
    ]
    self.assertLen(replays, 5)
    self.assertLen(self.backend.requests, 10)

  def test_failed_refresh_fails_every_caller(self) -> None:
    self.identity.succeed = False

    async def run():
      async with self._pipeline() as pipeline:
        results = await asyncio.gather(
            *[pipeline.get(constants.COUNTRIES_ENDPOINT) for _ in range(4)],
            return_exceptions=True,
        )
        return results, pipeline.is_refreshing

    results, refreshing = asyncio.run(run())

    self.assertEqual(self.identity.refresh_calls, 1)
    self.assertFalse(refreshing)
    for result in results:
      self.assertIsInstance(result, AuthenticationError)
      self.assertEqual(result.status_code, 401)
    # Every caller gets its own error.
    self.assertLen({id(r) for r in results}, 4)

  def test_refresh_exception_is_chained(self) -> None:
    self.identity.error = RuntimeError("identity provider down")

    async def run():
      async with self._pipeline() as pipeline:
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(AuthenticationError) as ctx:
      asyncio.run(run())
    self.assertIs(ctx.exception.__cause__, self.identity.error)

  def test_missing_refresh_function_fails(self) -> None:

    async def run():
      async with self._pipeline(refresh=False) as pipeline:
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(AuthenticationError):
      asyncio.run(run())
    self.assertEqual(self.identity.refresh_calls, 0)

  def test_replay_is_attempted_only_once(self) -> None:
    # The refreshed token is still rejected by the backend.
    self.identity.refreshed_token = "token-stale"

    async def run():
      async with self._pipeline() as pipeline:
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(AuthenticationError):
      asyncio.run(run())
    self.assertEqual(self.identity.refresh_calls, 1)
    self.assertLen(self.backend.requests, 2)

  def test_queued_replay_unauthorized_is_terminal(self) -> None:
    self.identity.refreshed_token = "token-stale"

    async def run():
      async with self._pipeline() as pipeline:
        return await asyncio.gather(
            *[pipeline.get(constants.COUNTRIES_ENDPOINT) for _ in range(4)],
            return_exceptions=True,
        )

    results = asyncio.run(run())

    self.assertEqual(self.identity.refresh_calls, 1)
    for result in results:
      self.assertIsInstance(result, AuthenticationError)
    # One original request and one replay per caller.
    self.assertLen(self.backend.requests, 8)
    replays = [
        r
        for r in self.backend.requests
        if r.headers.get("Authorization") == "Bearer token-stale"
    ]
    self.assertLen(replays, 4)

  def test_stale_token_after_finished_refresh_replays_without_refresh(
      self,
  ) -> None:

    def handler(request):
      # Another caller's refresh completes while this request is in flight.
      self.identity.token = "token-1"
      return self.backend.handle(request)

    async def run():
      pipeline = AuthenticatedRequestPipeline(
          BASE_URL, transport=httpx.MockTransport(handler)
      )
      pipeline.configure(
          self.identity.get_valid_access_token,
          self.identity.refresh_access_token,
      )
      async with pipeline:
        return await pipeline.get(constants.COUNTRIES_ENDPOINT)

    response = asyncio.run(run())

    self.assertEqual(response.status_code, 200)
    self.assertEqual(self.identity.refresh_calls, 0)
    self.assertEqual(
        [r.headers.get("Authorization") for r in self.backend.requests],
        ["Bearer token-0", "Bearer token-1"],
    )

  def test_pipeline_recovers_after_failed_refresh(self) -> None:
    self.identity.succeed = False

    async def run():
      async with self._pipeline() as pipeline:
        with self.assertRaises(AuthenticationError):
          await pipeline.get(constants.COUNTRIES_ENDPOINT)
        self.identity.succeed = True
        return await pipeline.get(constants.COUNTRIES_ENDPOINT)

    response = asyncio.run(run())

    self.assertEqual(response.status_code, 200)
    self.assertEqual(self.identity.refresh_calls, 2)

  def test_token_getter_failure_sends_anonymous_request(self) -> None:

    async def broken_getter():
      raise RuntimeError("keychain locked")

    async def run():
      async with self._pipeline() as pipeline:
        pipeline.configure(broken_getter, None)
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(AuthenticationError):
      asyncio.run(run())
    self.assertNotIn("Authorization", self.backend.requests[0].headers)

  def test_error_detail_is_surfaced(self) -> None:
    self.identity.token = "token-1"
    self.backend.fail(
        "GET", constants.COUNTRIES_ENDPOINT, status=422, detail="Bad filter"
    )

    async def run():
      async with self._pipeline() as pipeline:
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(ApiError) as ctx:
      asyncio.run(run())
    self.assertEqual(ctx.exception.status_code, 422)
    self.assertEqual(ctx.exception.detail, "Bad filter")
    self.assertEqual(ctx.exception.message, "Bad filter")

  def test_transport_failure_raises_network_error(self) -> None:

    def handler(request):
      raise httpx.ConnectError("connection refused", request=request)

    async def run():
      pipeline = AuthenticatedRequestPipeline(
          BASE_URL, transport=httpx.MockTransport(handler)
      )
      async with pipeline:
        await pipeline.get(constants.COUNTRIES_ENDPOINT)

    with self.assertRaises(NetworkError):
      asyncio.run(run())


if __name__ == "__main__":
  absltest.main()
