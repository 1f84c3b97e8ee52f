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

"""Domain models for the checkout workflow.

These models are the typed, internal view of the checkout. Raw JSON:API
documents are decoded into them at the boundary (see `jsonapi`), so workflow
logic never inspects untyped data.
"""

from typing import FrozenSet, List, Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from .enums import CheckoutStep


class LineItem(BaseModel):
  """One line of the source shopping list, read-only during checkout."""

  model_config = ConfigDict(frozen=True)

  id: str
  product_id: Optional[str] = None
  product_sku: Optional[str] = None
  product_name: Optional[str] = None
  quantity: float = 0
  unit_code: Optional[str] = None
  unit_label: Optional[str] = None
  inventory_status: Optional[str] = None
  # Numeric values stay as the server sent them; see `totals`.
  unit_price: Optional[str] = None
  subtotal: Optional[str] = None
  discount: Optional[str] = None
  total: Optional[str] = None
  currency: Optional[str] = None

  @property
  def unit_name(self) -> str:
    return self.unit_label or self.unit_code or "unit"


class Address(BaseModel):
  """A customer address that can be attached to a checkout."""

  model_config = ConfigDict(frozen=True)

  id: str
  label: Optional[str] = None
  name_prefix: Optional[str] = None
  first_name: Optional[str] = None
  middle_name: Optional[str] = None
  last_name: Optional[str] = None
  name_suffix: Optional[str] = None
  organization: Optional[str] = None
  street: Optional[str] = None
  street2: Optional[str] = None
  city: Optional[str] = None
  postal_code: Optional[str] = None
  region_text: Optional[str] = None
  country_id: Optional[str] = None
  region_id: Optional[str] = None
  phone: Optional[str] = None
  primary: bool = False


class AddressDraft(BaseModel):
  """User-entered data for a new customer address."""

  first_name: str = ""
  last_name: str = ""
  street: str = ""
  street2: str = ""
  city: str = ""
  postal_code: str = ""
  country_id: str = ""
  region_id: str = ""
  phone: str = ""
  label: str = ""

  def missing_fields(self) -> List[str]:
    required = (
        "first_name",
        "last_name",
        "street",
        "city",
        "postal_code",
        "country_id",
    )
    return [name for name in required if not getattr(self, name).strip()]


class Country(BaseModel):
  id: str
  name: str


class Region(BaseModel):
  id: str
  name: str
  code: str


class ShippingMethodType(BaseModel):
  """A priced variant of a shipping method."""

  id: Optional[str] = None
  label: Optional[str] = None
  shipping_cost: Optional[str] = None
  currency: Optional[str] = None


class ShippingMethod(BaseModel):
  id: str
  label: Optional[str] = None
  types: List[ShippingMethodType] = Field(default_factory=list)

  @property
  def cost(self) -> Optional[str]:
    """Cost of the first type, which is the one the checkout applies."""
    if not self.types:
      return None
    return self.types[0].shipping_cost


class PaymentMethod(BaseModel):
  id: str
  label: Optional[str] = None


class Checkout(BaseModel):
  """Typed view of the server-side checkout resource."""

  id: str
  currency: Optional[str] = None
  subtotal: Optional[str] = None
  total: Optional[str] = None
  completed: bool = False
  billing_address_id: Optional[str] = None
  shipping_address_id: Optional[str] = None
  shipping_method: Optional[str] = None
  payment_method: Optional[str] = None


class PlacedOrder(BaseModel):
  """The order created by a successful payment."""

  id: Optional[str] = None
  identifier: Optional[str] = None

  @property
  def display_number(self) -> Optional[str]:
    return self.identifier or self.id


class Totals(BaseModel):
  """Display totals for the order summary."""

  model_config = ConfigDict(frozen=True)

  item_count: int
  subtotal: str
  discount: str
  shipping: str
  total: str
  has_discount: bool
  has_shipping: bool


class CheckoutSession(BaseModel):
  """Resumable state of one checkout derived from a shopping list.

  The session is immutable; state changes go through
  `state_machine.transition`, which returns a new value. The same model is
  the persisted snapshot.
  """

  model_config = ConfigDict(frozen=True)

  source_list_id: str
  checkout_id: Optional[str] = None
  current_step: CheckoutStep = CheckoutStep.BILLING
  completed_steps: FrozenSet[CheckoutStep] = frozenset()
  furthest_step_reached: CheckoutStep = CheckoutStep.BILLING
  billing_address_id: Optional[str] = None
  shipping_address_id: Optional[str] = None
  ship_to_same_as_billing: bool = True
  selected_shipping_method_id: Optional[str] = None
  cached_shipping_methods: List[ShippingMethod] = Field(default_factory=list)
  selected_payment_method_id: Optional[str] = None
  cached_payment_methods: List[PaymentMethod] = Field(default_factory=list)
  saved_at_epoch_millis: Optional[int] = None

  @property
  def effective_shipping_address_id(self) -> Optional[str]:
    if self.ship_to_same_as_billing:
      return self.billing_address_id
    return self.shipping_address_id

  @property
  def selected_shipping_method(self) -> Optional[ShippingMethod]:
    return next(
        (
            m
            for m in self.cached_shipping_methods
            if m.id == self.selected_shipping_method_id
        ),
        None,
    )

  def is_completed(self, step: CheckoutStep) -> bool:
    return step in self.completed_steps
