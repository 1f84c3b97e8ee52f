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

"""Server effects of the checkout steps.

`CheckoutStepExecutor` performs the one server call (or short sequence of
calls) that completes each checkout step, plus the supporting lookups the
workflow needs: creating the checkout, loading line items, addresses,
countries, regions and the available shipping and payment methods.

The executor holds no workflow state. It turns typed inputs into JSON:API
requests through the `AuthenticatedRequestPipeline` and decodes the responses
into domain models; callers decide what to do with the results.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from . import constants
from . import jsonapi
from .enums import CheckoutStep
from .enums import PaymentFamily
from .exceptions import ApiError
from .exceptions import AuthenticationError
from .exceptions import NetworkError
from .exceptions import StepValidationError
from .models import Address
from .models import AddressDraft
from .models import Checkout
from .models import CheckoutSession
from .models import Country
from .models import LineItem
from .models import PaymentMethod
from .models import PlacedOrder
from .models import Region
from .models import ShippingMethod
from .pipeline import AuthenticatedRequestPipeline

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class StepOutcome:
  """Result of a successful step.

  Method lists are None when the step does not load them.
  """

  step: CheckoutStep
  checkout: Optional[Checkout] = None
  shipping_methods: Optional[List[ShippingMethod]] = None
  payment_methods: Optional[List[PaymentMethod]] = None
  order: Optional[PlacedOrder] = None


def payment_family(payment_method_id: str) -> PaymentFamily:
  """Selects the payment execution endpoint for a payment method id."""
  for marker, family in constants.PAYMENT_FAMILY_MARKERS:
    if marker in payment_method_id:
      return family
  return constants.DEFAULT_PAYMENT_FAMILY


def find_address(
    addresses: Sequence[Address], address_id: Optional[str]
) -> Optional[Address]:
  if address_id is None:
    return None
  return next((a for a in addresses if a.id == address_id), None)


def _checkout_address(
    local_id: str, address: Address, default_label: str
) -> Dict[str, Any]:
  """Builds the `checkoutaddresses` snapshot of a customer address."""
  attributes = {
      "label": address.label or default_label,
      "street": address.street or "",
      "city": address.city or "",
      "postalCode": address.postal_code or "",
      "firstName": address.first_name or "",
      "lastName": address.last_name or "",
  }
  if address.street2:
    attributes["street2"] = address.street2
  if address.phone:
    attributes["phone"] = address.phone

  relationships = {
      "country": {
          "data": {
              "type": constants.COUNTRIES_TYPE,
              "id": address.country_id or constants.DEFAULT_COUNTRY_ID,
          }
      }
  }
  if address.region_id:
    relationships["region"] = {
        "data": {"type": constants.REGIONS_TYPE, "id": address.region_id}
    }

  return {
      "type": constants.CHECKOUT_ADDRESSES_TYPE,
      "id": local_id,
      "attributes": attributes,
      "relationships": relationships,
  }


class CheckoutStepExecutor:
  """Performs checkout server calls through the request pipeline."""

  def __init__(self, pipeline: AuthenticatedRequestPipeline):
    self.pipeline = pipeline

  async def perform_step(
      self, session: CheckoutSession, addresses: Sequence[Address]
  ) -> StepOutcome:
    """Performs the server effect of the session's current step.

    The caller is expected to have checked the step's local precondition.

    Args:
      session: The checkout session, positioned on the step to complete.
      addresses: The customer addresses the session's ids refer to.

    Returns:
      The outcome of the step.

    Raises:
      StepValidationError: The session lacks the data the step needs.
      ApiError: The backend rejected a call.
    """
    checkout_id = session.checkout_id
    if checkout_id is None:
      raise StepValidationError("Checkout has not been created yet")

    step = session.current_step
    if step == CheckoutStep.BILLING:
      address = self._require_address(addresses, session.billing_address_id)
      checkout = await self.update_billing_address(checkout_id, address)
      return StepOutcome(step=step, checkout=checkout)

    if step == CheckoutStep.SHIPPING:
      address = self._require_address(
          addresses, session.effective_shipping_address_id
      )
      checkout = await self.update_shipping_address(checkout_id, address)
      shipping_methods = await self.fetch_shipping_methods(checkout_id)
      return StepOutcome(
          step=step, checkout=checkout, shipping_methods=shipping_methods
      )

    if step == CheckoutStep.SHIPPING_METHOD:
      if not session.selected_shipping_method_id:
        raise StepValidationError("Please select a shipping method")
      checkout = await self.update_shipping_method(
          checkout_id, session.selected_shipping_method_id
      )
      try:
        payment_methods = await self.fetch_payment_methods(checkout_id)
      except ApiError as e:
        logger.warning(
            "Could not load payment methods for checkout %s: %s",
            checkout_id,
            e,
        )
        payment_methods = []
      return StepOutcome(
          step=step, checkout=checkout, payment_methods=payment_methods
      )

    if step == CheckoutStep.PAYMENT:
      if not session.selected_payment_method_id:
        raise StepValidationError("Please select a payment method")
      checkout = await self.update_payment_method(
          checkout_id, session.selected_payment_method_id
      )
      return StepOutcome(step=step, checkout=checkout)

    if not session.selected_payment_method_id:
      raise StepValidationError("Please select a payment method")
    order = await self.execute_payment(
        checkout_id, session.selected_payment_method_id
    )
    return StepOutcome(step=step, order=order)

  # --- Step effects ---

  async def update_billing_address(
      self, checkout_id: str, address: Address
  ) -> Checkout:
    """Attaches a snapshot of the customer address as billing address."""
    return await self._update_address(
        checkout_id,
        address,
        relationship="billingAddress",
        local_id=constants.BILLING_ADDRESS_LOCAL_ID,
        default_label="Billing Address",
        failure_message="Failed to update billing address",
    )

  async def update_shipping_address(
      self, checkout_id: str, address: Address
  ) -> Checkout:
    """Attaches a snapshot of the customer address as shipping address."""
    return await self._update_address(
        checkout_id,
        address,
        relationship="shippingAddress",
        local_id=constants.SHIPPING_ADDRESS_LOCAL_ID,
        default_label="Shipping Address",
        failure_message="Failed to update shipping address",
    )

  async def update_shipping_method(
      self, checkout_id: str, shipping_method_id: str
  ) -> Checkout:
    return await self._update_attribute(
        checkout_id,
        "shippingMethod",
        shipping_method_id,
        failure_message="Failed to update shipping method",
    )

  async def update_payment_method(
      self, checkout_id: str, payment_method_id: str
  ) -> Checkout:
    return await self._update_attribute(
        checkout_id,
        "paymentMethod",
        payment_method_id,
        failure_message="Failed to update payment method",
    )

  async def execute_payment(
      self, checkout_id: str, payment_method_id: str
  ) -> PlacedOrder:
    """Executes payment, which turns the checkout into an order."""
    family = payment_family(payment_method_id)
    path = f"{constants.CHECKOUTS_ENDPOINT}/{checkout_id}/{family.value}"
    response = await self._request(
        "POST", path, "Failed to execute payment", body={}
    )

    order = PlacedOrder()
    try:
      document = self._document(response)
    except ApiError:
      logger.warning(
          "Payment for checkout %s returned no order document", checkout_id
      )
    else:
      resource = document.primary_of(jsonapi.OrderResource)
      if resource is None:
        resource = next(
            iter(document.included_by_id(jsonapi.OrderResource).values()),
            None,
        )
      if resource is not None:
        order = resource.to_model()

    logger.info(
        "Placed order %s for checkout %s via %s",
        order.display_number,
        checkout_id,
        family.value,
    )
    return order

  # --- Supporting operations ---

  async def create_checkout(self, shopping_list_id: str) -> Checkout:
    """Creates a checkout from a shopping list."""
    path = (
        f"{constants.SHOPPING_LISTS_ENDPOINT}/{shopping_list_id}/checkout"
    )
    failure_message = "Failed to create checkout from shopping list"
    response = await self._request("POST", path, failure_message, body={})
    checkout = self._checkout(response, failure_message)
    logger.info(
        "Created checkout %s for shopping list %s",
        checkout.id,
        shopping_list_id,
    )
    return checkout

  async def fetch_line_items(self, shopping_list_id: str) -> List[LineItem]:
    response = await self._request(
        "GET",
        constants.SHOPPING_LIST_ITEMS_ENDPOINT,
        "Failed to load shopping list items",
        params={
            "filter[shoppingList]": shopping_list_id,
            "page[number]": 1,
            "page[size]": constants.LINE_ITEMS_PAGE_SIZE,
            "include": constants.LINE_ITEMS_INCLUDE,
        },
    )
    return jsonapi.to_line_items(self._document(response))

  async def fetch_customer_addresses(self) -> List[Address]:
    response = await self._request(
        "GET",
        constants.CUSTOMER_ADDRESSES_ENDPOINT,
        "Failed to get customer addresses",
        params={"include": "country,region"},
    )
    document = self._document(response)
    return [
        r.to_model() for r in document.data_of(jsonapi.CustomerAddressResource)
    ]

  async def create_customer_address(
      self,
      draft: AddressDraft,
      regions: Optional[Sequence[Region]] = None,
  ) -> Address:
    """Creates a customer address from user input.

    Args:
      draft: The entered address.
      regions: Regions of the chosen country. A region is required when the
        country has any.

    Returns:
      The created address.

    Raises:
      StepValidationError: Required fields are missing.
      ApiError: The backend rejected the address.
    """
    if draft.missing_fields():
      raise StepValidationError("Please fill in all required fields")
    if regions and not draft.region_id.strip():
      raise StepValidationError("Please select a region")

    attributes = {
        "firstName": draft.first_name,
        "lastName": draft.last_name,
        "street": draft.street,
        "city": draft.city,
        "postalCode": draft.postal_code,
    }
    for key, value in (
        ("street2", draft.street2),
        ("phone", draft.phone),
        ("label", draft.label),
    ):
      if value:
        attributes[key] = value

    relationships = {
        "country": {
            "data": {"type": constants.COUNTRIES_TYPE, "id": draft.country_id}
        }
    }
    if draft.region_id:
      relationships["region"] = {
          "data": {"type": constants.REGIONS_TYPE, "id": draft.region_id}
      }

    failure_message = "Failed to create address"
    response = await self._request(
        "POST",
        constants.CUSTOMER_ADDRESSES_ENDPOINT,
        failure_message,
        body={
            "data": {
                "type": constants.CUSTOMER_ADDRESSES_TYPE,
                "attributes": attributes,
                "relationships": relationships,
            }
        },
    )
    resource = self._document(response).primary_of(
        jsonapi.CustomerAddressResource
    )
    if resource is None:
      raise ApiError(failure_message, code="MALFORMED_DOCUMENT")
    logger.info("Created customer address %s", resource.id)
    return resource.to_model()

  async def fetch_countries(self) -> List[Country]:
    response = await self._request(
        "GET",
        constants.COUNTRIES_ENDPOINT,
        "Failed to get countries",
        params={
            "page[number]": 1,
            "page[size]": constants.COUNTRIES_PAGE_SIZE,
            "sort": "name",
        },
    )
    document = self._document(response)
    return [r.to_model() for r in document.data_of(jsonapi.CountryResource)]

  async def fetch_regions(self, country_id: str) -> List[Region]:
    response = await self._request(
        "GET",
        constants.REGIONS_ENDPOINT,
        "Failed to get regions",
        params={
            "filter[country]": country_id,
            "page[number]": 1,
            "page[size]": constants.REGIONS_PAGE_SIZE,
            "sort": "name",
        },
    )
    document = self._document(response)
    return [r.to_model() for r in document.data_of(jsonapi.RegionResource)]

  async def fetch_shipping_methods(
      self, checkout_id: str
  ) -> List[ShippingMethod]:
    response = await self._request(
        "GET",
        f"{constants.CHECKOUTS_ENDPOINT}/{checkout_id}"
        "/availableShippingMethods",
        "Failed to get shipping methods",
    )
    document = self._document(response)
    return [
        r.to_model() for r in document.data_of(jsonapi.ShippingMethodResource)
    ]

  async def fetch_payment_methods(
      self, checkout_id: str
  ) -> List[PaymentMethod]:
    response = await self._request(
        "GET",
        f"{constants.CHECKOUTS_ENDPOINT}/{checkout_id}"
        "/availablePaymentMethods",
        "Failed to get payment methods",
    )
    document = self._document(response)
    return [
        r.to_model() for r in document.data_of(jsonapi.PaymentMethodResource)
    ]

  # --- Helpers ---

  def _require_address(
      self, addresses: Sequence[Address], address_id: Optional[str]
  ) -> Address:
    address = find_address(addresses, address_id)
    if address is None:
      raise StepValidationError("Address not found")
    return address

  async def _update_address(
      self,
      checkout_id: str,
      address: Address,
      relationship: str,
      local_id: str,
      default_label: str,
      failure_message: str,
  ) -> Checkout:
    body = {
        "data": {
            "type": constants.CHECKOUTS_TYPE,
            "id": checkout_id,
            "relationships": {
                relationship: {
                    "data": {
                        "type": constants.CHECKOUT_ADDRESSES_TYPE,
                        "id": local_id,
                    }
                }
            },
        },
        "included": [_checkout_address(local_id, address, default_label)],
    }
    response = await self._request(
        "PATCH",
        f"{constants.CHECKOUTS_ENDPOINT}/{checkout_id}",
        failure_message,
        body=body,
    )
    return self._checkout(response, failure_message)

  async def _update_attribute(
      self, checkout_id: str, name: str, value: str, failure_message: str
  ) -> Checkout:
    body = {
        "data": {
            "type": constants.CHECKOUTS_TYPE,
            "id": checkout_id,
            "attributes": {name: value},
        }
    }
    response = await self._request(
        "PATCH",
        f"{constants.CHECKOUTS_ENDPOINT}/{checkout_id}",
        failure_message,
        body=body,
    )
    return self._checkout(response, failure_message)

  async def _request(
      self,
      method: str,
      path: str,
      failure_message: str,
      body: Optional[Any] = None,
      params: Optional[Mapping[str, Any]] = None,
  ) -> httpx.Response:
    """Sends a request, replacing detail-less errors with `failure_message`."""
    try:
      return await self.pipeline.request(method, path, body=body, params=params)
    except (AuthenticationError, NetworkError):
      raise
    except ApiError as e:
      if e.detail:
        raise
      raise ApiError(failure_message, status_code=e.status_code) from e

  def _document(self, response: httpx.Response) -> jsonapi.Document:
    try:
      payload = response.json()
    except ValueError as e:
      raise ApiError(
          "Unexpected response from server", code="MALFORMED_DOCUMENT"
      ) from e
    return jsonapi.parse_document(payload)

  def _checkout(
      self, response: httpx.Response, failure_message: str
  ) -> Checkout:
    resource = self._document(response).primary_of(jsonapi.CheckoutResource)
    if resource is None:
      raise ApiError(failure_message, code="MALFORMED_DOCUMENT")
    return resource.to_model()
