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

"""In-process fakes for exercising the checkout workflow.

`FakeStorefrontBackend` serves the JSON:API resources the workflow uses from
memory through `httpx.MockTransport`, checks bearer tokens and records every
request. `FakeIdentityProvider`, `FakeScheduler` and `FakeClock` stand in for
the identity provider and for wall-clock time.
"""

import asyncio
import dataclasses
import itertools
import json
from typing import Any, Dict, List, Optional

import httpx

from . import constants
from .scheduler import Callback
from .scheduler import ScheduledCall
from .scheduler import Scheduler

API_PREFIX = "/api/"
BASE_URL = "https://shop.test/api/"


def _error_document(status: int, title: str, detail: Optional[str] = None):
  error = {"status": str(status), "title": title}
  if detail:
    error["detail"] = detail
  return {"errors": [error]}


@dataclasses.dataclass
class _Failure:
  method: str
  path: str
  status: int
  payload: Any
  remaining: Optional[int]


class FakeStorefrontBackend:
  """JSON:API backend served from memory.

  Requests are answered only when they carry `Authorization: Bearer
  <valid_token>`; everything else gets 401.
  """

  def __init__(self, valid_token: str = "token-1"):
    self.valid_token = valid_token
    self.checkout_id = "chk-1"
    self.checkout_attributes: Dict[str, Any] = {"currency": "USD"}
    self.checkout_relationships: Dict[str, Any] = {}
    self.order_id = "order-1"
    self.order_identifier = "SO-1001"
    self.line_items: List[Dict[str, Any]] = []
    self.included: List[Dict[str, Any]] = []
    self.addresses: List[Dict[str, Any]] = []
    self.countries: List[Dict[str, Any]] = []
    self.regions: List[Dict[str, Any]] = []
    self.shipping_methods: List[Dict[str, Any]] = []
    self.payment_methods: List[Dict[str, Any]] = []
    self.requests: List[httpx.Request] = []
    self.checkouts_created = 0
    self.payment_calls: List[str] = []
    self._failures: List[_Failure] = []
    self._ids = itertools.count(1)

  @property
  def transport(self) -> httpx.MockTransport:
    return httpx.MockTransport(self.handle)

  # --- Seeding ---

  def add_line_item(
      self,
      item_id: str,
      name: str,
      quantity: float,
      value: str,
      sub_total: Optional[str] = None,
      discount: Optional[str] = None,
      unit: str = "each",
  ) -> None:
    product_id = f"p-{item_id}"
    attributes = {"quantity": quantity, "value": value, "currency": "USD"}
    if sub_total is not None:
      attributes["subTotal"] = sub_total
    if discount is not None:
      attributes["discount"] = discount
    self.line_items.append({
        "type": constants.SHOPPING_LIST_ITEMS_TYPE,
        "id": item_id,
        "attributes": attributes,
        "relationships": {
            "product": {
                "data": {"type": constants.PRODUCTS_TYPE, "id": product_id}
            },
            "unit": {
                "data": {"type": constants.PRODUCT_UNITS_TYPE, "id": unit}
            },
        },
    })
    self.included.append({
        "type": constants.PRODUCTS_TYPE,
        "id": product_id,
        "attributes": {"sku": f"SKU-{item_id}", "name": name},
    })
    if not any(r["id"] == unit for r in self.included):
      self.included.append({
          "type": constants.PRODUCT_UNITS_TYPE,
          "id": unit,
          "attributes": {"code": unit, "label": unit.title()},
      })

  def add_address(
      self,
      address_id: str,
      primary: bool = False,
      country: str = "US",
      region: Optional[str] = None,
      **attributes,
  ) -> None:
    attrs = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "street": "1 Main St",
        "city": "Springfield",
        "postalCode": "12345",
        "primary": primary,
    }
    attrs.update(attributes)
    relationships = {
        "country": {"data": {"type": constants.COUNTRIES_TYPE, "id": country}}
    }
    if region:
      relationships["region"] = {
          "data": {"type": constants.REGIONS_TYPE, "id": region}
      }
    self.addresses.append({
        "type": constants.CUSTOMER_ADDRESSES_TYPE,
        "id": address_id,
        "attributes": attrs,
        "relationships": relationships,
    })

  def add_shipping_method(
      self, method_id: str, label: str, cost: Optional[str]
  ) -> None:
    types = []
    if cost is not None:
      types.append({
          "id": f"{method_id}_primary",
          "label": label,
          "shippingCost": cost,
          "currency": "USD",
      })
    self.shipping_methods.append({
        "type": constants.SHIPPING_METHODS_TYPE,
        "id": method_id,
        "attributes": {"label": label, "types": types},
    })

  def add_payment_method(self, method_id: str, label: str) -> None:
    self.payment_methods.append({
        "type": constants.PAYMENT_METHODS_TYPE,
        "id": method_id,
        "attributes": {"label": label},
    })

  def add_country(self, country_id: str, name: str) -> None:
    self.countries.append({
        "type": constants.COUNTRIES_TYPE,
        "id": country_id,
        "attributes": {"name": name},
    })

  def add_region(
      self, region_id: str, country_id: str, name: str, code: str
  ) -> None:
    self.regions.append({
        "type": constants.REGIONS_TYPE,
        "id": region_id,
        "attributes": {"name": name, "code": code},
        "relationships": {
            "country": {
                "data": {"type": constants.COUNTRIES_TYPE, "id": country_id}
            }
        },
    })

  def fail(
      self,
      method: str,
      path: str,
      status: int = 500,
      detail: Optional[str] = None,
      times: Optional[int] = None,
      payload: Any = None,
  ) -> None:
    """Makes matching requests fail.

    Args:
      method: HTTP method to match.
      path: Path relative to the API root to match.
      status: Status code of the failure.
      detail: Error detail sent in the JSON:API error document.
      times: Number of failures; None fails forever.
      payload: Raw response body, replacing the error document.
    """
    if payload is None:
      payload = _error_document(status, "Request failed", detail)
    self._failures.append(
        _Failure(method.upper(), path.strip("/"), status, payload, times)
    )

  # --- Inspection ---

  def requests_to(self, method: str, path: str) -> List[httpx.Request]:
    return [
        r
        for r in self.requests
        if r.method == method.upper() and self._path(r) == path.strip("/")
    ]

  @staticmethod
  def body(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None

  # --- Handler ---

  def handle(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)

    if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
      return self._json(401, _error_document(401, "Unauthorized"))

    path = self._path(request)
    for failure in self._failures:
      if failure.method == request.method and failure.path == path:
        if failure.remaining is not None:
          if failure.remaining <= 0:
            continue
          failure.remaining -= 1
        return self._json(failure.status, failure.payload)

    return self._route(request, path)

  def _route(self, request: httpx.Request, path: str) -> httpx.Response:
    method = request.method
    parts = path.split("/")

    if method == "GET" and path == constants.SHOPPING_LIST_ITEMS_ENDPOINT:
      return self._json(
          200, {"data": self.line_items, "included": self.included}
      )

    if (
        method == "POST"
        and len(parts) == 3
        and parts[0] == constants.SHOPPING_LISTS_ENDPOINT
        and parts[2] == "checkout"
    ):
      self.checkouts_created += 1
      return self._json(201, {"data": self._checkout()})

    if path == constants.CUSTOMER_ADDRESSES_ENDPOINT:
      if method == "GET":
        return self._json(200, {"data": self.addresses})
      if method == "POST":
        data = self.body(request)["data"]
        created = dict(data, id=f"addr-new-{next(self._ids)}")
        self.addresses.append(created)
        return self._json(201, {"data": created})

    if method == "GET" and path == constants.COUNTRIES_ENDPOINT:
      return self._json(200, {"data": self.countries})

    if method == "GET" and path == constants.REGIONS_ENDPOINT:
      country = request.url.params.get("filter[country]")
      regions = [
          r
          for r in self.regions
          if r["relationships"]["country"]["data"]["id"] == country
      ]
      return self._json(200, {"data": regions})

    if parts[0] == constants.CHECKOUTS_ENDPOINT and len(parts) >= 2:
      if parts[1] != self.checkout_id:
        return self._json(404, _error_document(404, "Checkout not found"))
      if len(parts) == 2 and method == "PATCH":
        return self._patch_checkout(self.body(request))
      if len(parts) == 3 and method == "GET":
        if parts[2] == "availableShippingMethods":
          return self._json(200, {"data": self.shipping_methods})
        if parts[2] == "availablePaymentMethods":
          return self._json(200, {"data": self.payment_methods})
      if len(parts) == 3 and method == "POST" and parts[2].startswith(
          "payment"
      ):
        self.payment_calls.append(parts[2])
        return self._json(
            201,
            {
                "data": {
                    "type": constants.ORDERS_TYPE,
                    "id": self.order_id,
                    "attributes": {"identifier": self.order_identifier},
                }
            },
        )

    return self._json(404, _error_document(404, "Not Found"))

  def _patch_checkout(self, body: Dict[str, Any]) -> httpx.Response:
    data = body["data"]
    self.checkout_attributes.update(data.get("attributes") or {})
    for name, relationship in (data.get("relationships") or {}).items():
      self.checkout_relationships[name] = relationship
    return self._json(200, {"data": self._checkout()})

  def _checkout(self) -> Dict[str, Any]:
    return {
        "type": constants.CHECKOUTS_TYPE,
        "id": self.checkout_id,
        "attributes": dict(self.checkout_attributes),
        "relationships": dict(self.checkout_relationships),
    }

  @staticmethod
  def _path(request: httpx.Request) -> str:
    path = request.url.path
    if path.startswith(API_PREFIX):
      path = path[len(API_PREFIX):]
    return path.strip("/")

  @staticmethod
  def _json(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(
        status,
        json=payload,
        headers={"Content-Type": constants.JSON_API_MEDIA_TYPE},
    )


class FakeIdentityProvider:
  """Identity provider whose refresh swaps in a new access token."""

  def __init__(
      self,
      token: Optional[str] = "token-0",
      refreshed_token: str = "token-1",
      succeed: bool = True,
      error: Optional[Exception] = None,
      delay: float = 0.01,
  ):
    self.token = token
    self.refreshed_token = refreshed_token
    self.succeed = succeed
    self.error = error
    self.delay = delay
    self.refresh_calls = 0

  async def get_valid_access_token(self) -> Optional[str]:
    return self.token

  async def refresh_access_token(self) -> bool:
    self.refresh_calls += 1
    await asyncio.sleep(self.delay)
    if self.error is not None:
      raise self.error
    if not self.succeed:
      return False
    self.token = self.refreshed_token
    return True


class FakeClock:
  """Epoch-milliseconds clock that only moves when told to."""

  def __init__(self, now_millis: int = 1_700_000_000_000):
    self.now_millis = now_millis

  def __call__(self) -> int:
    return self.now_millis

  def advance(self, millis: int) -> None:
    self.now_millis += millis


class _FakeCall(ScheduledCall):

  def __init__(self, due: float, callback: Callback):
    self.due = due
    self.callback = callback
    self.cancelled = False

  def cancel(self) -> None:
    self.cancelled = True


class FakeScheduler(Scheduler):
  """Scheduler on virtual time; callbacks run from `advance`."""

  def __init__(self) -> None:
    self.now = 0.0
    self._calls: List[_FakeCall] = []

  @property
  def pending(self) -> int:
    return sum(1 for call in self._calls if not call.cancelled)

  def schedule(self, delay: float, callback: Callback) -> ScheduledCall:
    call = _FakeCall(self.now + delay, callback)
    self._calls.append(call)
    return call

  async def advance(self, seconds: float) -> None:
    """Moves virtual time forward and runs the callbacks that became due."""
    self.now += seconds
    due = sorted(
        (c for c in self._calls if c.due <= self.now), key=lambda c: c.due
    )
    for call in due:
      self._calls.remove(call)
      if not call.cancelled:
        await call.callback()
    self._calls = [c for c in self._calls if not c.cancelled]
