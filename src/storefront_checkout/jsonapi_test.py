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

"""Tests for the JSON:API boundary parser."""

from absl.testing import absltest

from storefront_checkout import jsonapi
from storefront_checkout.exceptions import ApiError
from storefront_checkout.testing import FakeStorefrontBackend


class ParseDocumentTest(absltest.TestCase):

  def test_single_resource_becomes_typed_primary(self) -> None:
    document = jsonapi.parse_document({
        "data": {
            "type": "checkouts",
            "id": "7",
            "attributes": {"currency": "USD", "subtotal": 25, "total": "30.00"},
            "relationships": {
                "billingAddress": {
                    "data": {"type": "checkoutaddresses", "id": "b1"}
                },
                "shippingAddress": {"data": None},
            },
        }
    })

    resource = document.primary_of(jsonapi.CheckoutResource)
    self.assertIsNotNone(resource)
    checkout = resource.to_model()
    self.assertEqual(checkout.id, "7")
    self.assertEqual(checkout.subtotal, "25")
    self.assertEqual(checkout.total, "30.00")
    self.assertEqual(checkout.billing_address_id, "b1")
    self.assertIsNone(checkout.shipping_address_id)

  def test_unknown_types_decode_generically(self) -> None:
    document = jsonapi.parse_document({
        "data": [{"type": "wishlists", "id": "w1", "attributes": {"a": 1}}]
    })

    self.assertIsInstance(document.primary, jsonapi.GenericResource)
    self.assertEqual(document.primary.attributes, {"a": 1})

  def test_shipping_methods_keep_type_order(self) -> None:
    document = jsonapi.parse_document({
        "data": [{
            "type": "checkoutavailableshippingmethods",
            "id": "flat_rate_1",
            "attributes": {
                "label": "Flat Rate",
                "types": [
                    {
                        "id": "primary",
                        "label": "Ground",
                        "shippingCost": "5.00",
                    },
                    {"id": "express", "label": "Express", "shippingCost": 9},
                ],
            },
        }]
    })

    method = document.data_of(jsonapi.ShippingMethodResource)[0].to_model()
    self.assertEqual(method.cost, "5.00")
    self.assertEqual([t.shipping_cost for t in method.types], ["5.00", "9"])

  def test_malformed_document_raises(self) -> None:
    with self.assertRaises(ApiError) as ctx:
      jsonapi.parse_document(["not", "a", "document"])
    self.assertEqual(ctx.exception.code, "MALFORMED_DOCUMENT")

    with self.assertRaises(ApiError):
      jsonapi.parse_document({"data": [{"type": "checkouts"}]})

  def test_line_items_join_products_and_units(self) -> None:
    backend = FakeStorefrontBackend()
    backend.add_line_item("li1", "Rose", 2, "10.00", discount="-1.00")
    backend.add_line_item("li2", "Tulip", 1, "5.00", unit="set")

    document = jsonapi.parse_document(
        {"data": backend.line_items, "included": backend.included}
    )
    items = jsonapi.to_line_items(document)

    self.assertEqual([i.id for i in items], ["li1", "li2"])
    self.assertEqual(items[0].product_name, "Rose")
    self.assertEqual(items[0].product_sku, "SKU-li1")
    self.assertEqual(items[0].quantity, 2)
    self.assertEqual(items[0].unit_price, "10.00")
    self.assertEqual(items[0].discount, "-1.00")
    self.assertEqual(items[1].unit_code, "set")
    self.assertEqual(items[1].unit_name, "Set")


class ErrorMessageTest(absltest.TestCase):

  def test_detail_wins_over_title(self) -> None:
    payload = {"errors": [{"title": "Bad", "detail": "Street is required"}]}
    self.assertEqual(jsonapi.error_message(payload), "Street is required")

  def test_title_then_message(self) -> None:
    self.assertEqual(
        jsonapi.error_message({"errors": [{"title": "Forbidden"}]}),
        "Forbidden",
    )
    self.assertEqual(
        jsonapi.error_message({"message": "Server exploded"}),
        "Server exploded",
    )

  def test_no_message(self) -> None:
    self.assertIsNone(jsonapi.error_message(None))
    self.assertIsNone(jsonapi.error_message({"errors": []}))


if __name__ == "__main__":
  absltest.main()
