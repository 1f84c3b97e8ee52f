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

"""Tests for the order summary totals."""

from absl.testing import absltest

from storefront_checkout import totals
from storefront_checkout.models import LineItem
from storefront_checkout.models import ShippingMethod
from storefront_checkout.models import ShippingMethodType


def _item(item_id, quantity, unit_price, subtotal=None, discount=None):
  return LineItem(
      id=item_id,
      quantity=quantity,
      unit_price=unit_price,
      subtotal=subtotal,
      discount=discount,
  )


def _method(*costs):
  return ShippingMethod(
      id="flat_rate",
      label="Flat Rate",
      types=[
          ShippingMethodType(id=f"t{i}", shipping_cost=c)
          for i, c in enumerate(costs)
      ],
  )


class TotalsTest(absltest.TestCase):

  def test_two_items_without_shipping(self) -> None:
    result = totals.compute([_item("1", 2, "10.00"), _item("2", 1, "5.00")])

    self.assertEqual(result.subtotal, "25.00")
    self.assertEqual(result.shipping, "0.00")
    self.assertEqual(result.total, "25.00")
    self.assertEqual(result.discount, "0.00")
    self.assertFalse(result.has_discount)
    self.assertFalse(result.has_shipping)
    self.assertEqual(result.item_count, 2)

  def test_server_subtotal_of_item_wins_over_unit_price(self) -> None:
    result = totals.compute([_item("1", 3, "10.00", subtotal="27.00")])

    self.assertEqual(result.subtotal, "27.00")

  def test_empty_item_subtotal_falls_back_to_unit_price(self) -> None:
    result = totals.compute([_item("1", 3, "10.00", subtotal="")])

    self.assertEqual(result.subtotal, "30.00")

  def test_negative_discount_is_shown_as_absolute_value(self) -> None:
    result = totals.compute(
        [_item("1", 2, "10.00", discount="-2.50")], _method("5.00")
    )

    self.assertTrue(result.has_discount)
    self.assertEqual(result.discount, "2.50")
    self.assertEqual(result.total, "22.50")

  def test_shipping_uses_first_type(self) -> None:
    result = totals.compute([_item("1", 1, "10.00")], _method("7.5", "20"))

    self.assertTrue(result.has_shipping)
    self.assertEqual(result.shipping, "7.50")
    self.assertEqual(result.total, "17.50")

  def test_method_without_types_costs_nothing(self) -> None:
    result = totals.compute([_item("1", 1, "10.00")], _method())

    self.assertEqual(result.shipping, "0.00")
    self.assertFalse(result.has_shipping)

  def test_server_amounts_win(self) -> None:
    result = totals.compute(
        [_item("1", 1, "10.00")],
        _method("5.00"),
        server_subtotal="12.00",
        server_total="19.99",
    )

    self.assertEqual(result.subtotal, "12.00")
    self.assertEqual(result.total, "19.99")

  def test_unparsable_values_count_as_zero(self) -> None:
    result = totals.compute(
        [
            _item("1", 1, "abc"),
            _item("2", 1, "NaN", discount="oops"),
            _item("3", 2, "4.00"),
        ],
        _method("free"),
    )

    self.assertEqual(result.subtotal, "8.00")
    self.assertEqual(result.discount, "0.00")
    self.assertEqual(result.shipping, "0.00")
    self.assertEqual(result.total, "8.00")

  def test_rounds_half_up_to_precision(self) -> None:
    result = totals.compute([_item("1", 1, "0.125")], precision=2)

    self.assertEqual(result.subtotal, "0.13")

    result = totals.compute([_item("1", 1, "3")], precision=3)

    self.assertEqual(result.total, "3.000")

  def test_compute_is_pure(self) -> None:
    items = [_item("1", 2, "10.00", discount="-1.00")]
    method = _method("4.00")

    first = totals.compute(items, method)
    second = totals.compute(items, method)

    self.assertEqual(first, second)
    self.assertEqual(items[0].unit_price, "10.00")


if __name__ == "__main__":
  absltest.main()
