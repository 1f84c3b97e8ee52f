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

"""Boundary parser for JSON:API documents.

Raw documents returned by the backend are decoded here into explicit resource
classes, selected by the resource `type` name. Resource types this package
does not know about decode into `GenericResource`. Each known resource can
convert itself into the matching domain model from `models`.
"""

from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Type, Union

import pydantic
from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import BeforeValidator
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

from . import constants
from .exceptions import ApiError
from .models import Address
from .models import Checkout
from .models import Country
from .models import LineItem
from .models import PaymentMethod
from .models import PlacedOrder
from .models import Region
from .models import ShippingMethod
from .models import ShippingMethodType


def _amount_to_str(value: Any) -> Any:
  """Servers send amounts as strings, but numbers are accepted too."""
  if isinstance(value, bool):
    return None
  if isinstance(value, (int, float, Decimal)):
    return str(value)
  return value


Amount = Annotated[Optional[str], BeforeValidator(_amount_to_str)]


class _Attributes(BaseModel):
  model_config = ConfigDict(
      alias_generator=to_camel, populate_by_name=True, extra="ignore"
  )


class ResourceIdentifier(BaseModel):
  type: str
  id: str


class Relationship(BaseModel):
  model_config = ConfigDict(extra="ignore")

  data: Union[ResourceIdentifier, List[ResourceIdentifier], None] = None


class Resource(BaseModel):
  """Common shape of every JSON:API resource object."""

  model_config = ConfigDict(extra="ignore")

  type: str
  id: str
  relationships: Dict[str, Relationship] = Field(default_factory=dict)

  def related_ids(self, name: str) -> List[str]:
    relationship = self.relationships.get(name)
    if relationship is None or relationship.data is None:
      return []
    if isinstance(relationship.data, list):
      return [ref.id for ref in relationship.data]
    return [relationship.data.id]

  def related_id(self, name: str) -> Optional[str]:
    ids = self.related_ids(name)
    return ids[0] if ids else None


class GenericResource(Resource):
  attributes: Dict[str, Any] = Field(default_factory=dict)


# --- Checkouts ---


class CheckoutAttributes(_Attributes):
  currency: Optional[str] = None
  po_number: Optional[str] = None
  customer_notes: Optional[str] = None
  completed: bool = False
  subtotal: Amount = None
  total: Amount = None
  shipping_method: Optional[str] = None
  payment_method: Optional[str] = None


class CheckoutResource(Resource):
  type: Literal["checkouts"]
  attributes: CheckoutAttributes = Field(default_factory=CheckoutAttributes)

  def to_model(self) -> Checkout:
    return Checkout(
        id=self.id,
        currency=self.attributes.currency,
        subtotal=self.attributes.subtotal,
        total=self.attributes.total,
        completed=self.attributes.completed,
        billing_address_id=self.related_id("billingAddress"),
        shipping_address_id=self.related_id("shippingAddress"),
        shipping_method=self.attributes.shipping_method,
        payment_method=self.attributes.payment_method,
    )


# --- Addresses ---


class AddressAttributes(_Attributes):
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
  phone: Optional[str] = None
  primary: bool = False


class _AddressResource(Resource):
  attributes: AddressAttributes = Field(default_factory=AddressAttributes)

  def to_model(self) -> Address:
    attrs = self.attributes
    return Address(
        id=self.id,
        label=attrs.label,
        name_prefix=attrs.name_prefix,
        first_name=attrs.first_name,
        middle_name=attrs.middle_name,
        last_name=attrs.last_name,
        name_suffix=attrs.name_suffix,
        organization=attrs.organization,
        street=attrs.street,
        street2=attrs.street2,
        city=attrs.city,
        postal_code=attrs.postal_code,
        region_text=attrs.region_text,
        country_id=self.related_id("country"),
        region_id=self.related_id("region"),
        phone=attrs.phone,
        primary=attrs.primary,
    )


class CustomerAddressResource(_AddressResource):
  type: Literal["customeraddresses"]


class CheckoutAddressResource(_AddressResource):
  type: Literal["checkoutaddresses"]


class CountryAttributes(_Attributes):
  name: Optional[str] = None


class CountryResource(Resource):
  type: Literal["countries"]
  attributes: CountryAttributes = Field(default_factory=CountryAttributes)

  def to_model(self) -> Country:
    return Country(id=self.id, name=self.attributes.name or self.id)


class RegionAttributes(_Attributes):
  name: Optional[str] = None
  code: Optional[str] = None


class RegionResource(Resource):
  type: Literal["regions"]
  attributes: RegionAttributes = Field(default_factory=RegionAttributes)

  def to_model(self) -> Region:
    return Region(
        id=self.id,
        name=self.attributes.name or self.id,
        code=self.attributes.code or self.id,
    )


# --- Shopping list items and products ---


class ShoppingListItemAttributes(_Attributes):
  quantity: float = 0
  value: Amount = None
  sub_total: Amount = None
  total_value: Amount = None
  discount: Amount = None
  currency: Optional[str] = None
  notes: Optional[str] = None


class ShoppingListItemResource(Resource):
  type: Literal["shoppinglistitems"]
  attributes: ShoppingListItemAttributes = Field(
      default_factory=ShoppingListItemAttributes
  )


class ProductAttributes(_Attributes):
  sku: Optional[str] = None
  name: Optional[str] = None
  inventory_status: Optional[str] = Field(
      default=None,
      validation_alias=AliasChoices("inventory_status", "inventoryStatus"),
  )


class ProductResource(Resource):
  type: Literal["products"]
  attributes: ProductAttributes = Field(default_factory=ProductAttributes)


class ProductUnitAttributes(_Attributes):
  code: Optional[str] = None
  label: Optional[str] = None


class ProductUnitResource(Resource):
  type: Literal["productunits"]
  attributes: ProductUnitAttributes = Field(
      default_factory=ProductUnitAttributes
  )


class ProductImageAttributes(_Attributes):
  url: Optional[str] = None
  files: List[Dict[str, Any]] = Field(default_factory=list)


class ProductImageResource(Resource):
  type: Literal["productimages"]
  attributes: ProductImageAttributes = Field(
      default_factory=ProductImageAttributes
  )


# --- Checkout methods and orders ---


class ShippingMethodTypeAttributes(_Attributes):
  id: Optional[str] = None
  label: Optional[str] = None
  shipping_cost: Amount = None
  currency: Optional[str] = None


class ShippingMethodAttributes(_Attributes):
  label: Optional[str] = None
  types: List[ShippingMethodTypeAttributes] = Field(default_factory=list)


class ShippingMethodResource(Resource):
  type: Literal["checkoutavailableshippingmethods"]
  attributes: ShippingMethodAttributes = Field(
      default_factory=ShippingMethodAttributes
  )

  def to_model(self) -> ShippingMethod:
    return ShippingMethod(
        id=self.id,
        label=self.attributes.label,
        types=[
            ShippingMethodType(
                id=t.id,
                label=t.label,
                shipping_cost=t.shipping_cost,
                currency=t.currency,
            )
            for t in self.attributes.types
        ],
    )


class PaymentMethodAttributes(_Attributes):
  label: Optional[str] = None


class PaymentMethodResource(Resource):
  type: Literal["checkoutavailablepaymentmethods"]
  attributes: PaymentMethodAttributes = Field(
      default_factory=PaymentMethodAttributes
  )

  def to_model(self) -> PaymentMethod:
    return PaymentMethod(id=self.id, label=self.attributes.label)


class OrderAttributes(_Attributes):
  identifier: Optional[str] = None
  po_number: Optional[str] = None
  currency: Optional[str] = None
  total_value: Amount = None


class OrderResource(Resource):
  type: Literal["orders"]
  attributes: OrderAttributes = Field(default_factory=OrderAttributes)

  def to_model(self) -> PlacedOrder:
    return PlacedOrder(id=self.id, identifier=self.attributes.identifier)


RESOURCE_TYPES: Dict[str, Type[Resource]] = {
    constants.CHECKOUTS_TYPE: CheckoutResource,
    constants.CHECKOUT_ADDRESSES_TYPE: CheckoutAddressResource,
    constants.CUSTOMER_ADDRESSES_TYPE: CustomerAddressResource,
    constants.COUNTRIES_TYPE: CountryResource,
    constants.REGIONS_TYPE: RegionResource,
    constants.SHOPPING_LIST_ITEMS_TYPE: ShoppingListItemResource,
    constants.PRODUCTS_TYPE: ProductResource,
    constants.PRODUCT_UNITS_TYPE: ProductUnitResource,
    constants.PRODUCT_IMAGES_TYPE: ProductImageResource,
    constants.SHIPPING_METHODS_TYPE: ShippingMethodResource,
    constants.PAYMENT_METHODS_TYPE: PaymentMethodResource,
    constants.ORDERS_TYPE: OrderResource,
}


class Document(BaseModel):
  """A decoded JSON:API document."""

  data: List[Resource] = Field(default_factory=list)
  included: List[Resource] = Field(default_factory=list)
  meta: Dict[str, Any] = Field(default_factory=dict)

  @property
  def primary(self) -> Optional[Resource]:
    return self.data[0] if self.data else None

  def primary_of(self, resource_type: Type[Resource]) -> Optional[Any]:
    """Returns the primary resource if it has the expected class."""
    primary = self.primary
    if isinstance(primary, resource_type):
      return primary
    return None

  def data_of(self, resource_type: Type[Resource]) -> List[Any]:
    return [r for r in self.data if isinstance(r, resource_type)]

  def included_by_id(self, resource_type: Type[Resource]) -> Dict[str, Any]:
    return {r.id: r for r in self.included if isinstance(r, resource_type)}


def parse_resource(raw: Mapping[str, Any]) -> Resource:
  """Decodes one resource object into the class registered for its type."""
  resource_cls = RESOURCE_TYPES.get(raw.get("type"), GenericResource)
  return resource_cls.model_validate(raw)


def parse_document(payload: Any) -> Document:
  """Decodes a JSON:API document.

  Args:
    payload: The decoded JSON body of a response.

  Returns:
    The document with typed primary data and included resources. A single
    primary resource is returned as a one-element `data` list.

  Raises:
    ApiError: If the payload is not a well-formed JSON:API document.
  """
  if not isinstance(payload, Mapping):
    raise ApiError(
        "Unexpected response from server", code="MALFORMED_DOCUMENT"
    )

  raw_data = payload.get("data")
  if raw_data is None:
    raw_data = []
  elif isinstance(raw_data, Mapping):
    raw_data = [raw_data]

  try:
    return Document(
        data=[parse_resource(r) for r in raw_data],
        included=[parse_resource(r) for r in payload.get("included") or []],
        meta=payload.get("meta") or {},
    )
  except (pydantic.ValidationError, AttributeError, TypeError) as e:
    raise ApiError(
        "Unexpected response from server", code="MALFORMED_DOCUMENT"
    ) from e


def error_message(payload: Any) -> Optional[str]:
  """Extracts the server-provided message from an error document.

  The first error's `detail` wins, then its `title`, then a top-level
  `message`.
  """
  if not isinstance(payload, Mapping):
    return None
  errors = payload.get("errors")
  if isinstance(errors, list) and errors and isinstance(errors[0], Mapping):
    first = errors[0]
    for key in ("detail", "title"):
      if first.get(key):
        return str(first[key])
  if payload.get("message"):
    return str(payload["message"])
  return None


def to_line_items(document: Document) -> List[LineItem]:
  """Builds checkout line items from a shopping list items document."""
  products = document.included_by_id(ProductResource)
  units = document.included_by_id(ProductUnitResource)

  line_items = []
  for item in document.data_of(ShoppingListItemResource):
    product = products.get(item.related_id("product"))
    unit_id = item.related_id("unit")
    unit = units.get(unit_id)
    attrs = item.attributes
    line_items.append(
        LineItem(
            id=item.id,
            product_id=item.related_id("product"),
            product_sku=product.attributes.sku if product else None,
            product_name=product.attributes.name if product else None,
            quantity=attrs.quantity,
            unit_code=(unit.attributes.code or unit.id) if unit else unit_id,
            unit_label=unit.attributes.label if unit else None,
            inventory_status=(
                product.attributes.inventory_status if product else None
            ),
            unit_price=attrs.value,
            subtotal=attrs.sub_total,
            discount=attrs.discount,
            total=attrs.total_value,
            currency=attrs.currency,
        )
    )
  return line_items
