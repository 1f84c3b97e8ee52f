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

"""Order summary totals for the checkout."""

import decimal
from decimal import Decimal
from typing import Iterable, Optional

from .models import LineItem
from .models import ShippingMethod
from .models import Totals

_ZERO = Decimal(0)


def _to_decimal(value) -> Decimal:
  """Parses a server amount; anything unparsable counts as zero."""
  if value is None or isinstance(value, bool):
    return _ZERO
  try:
    result = Decimal(str(value).strip())
  except (decimal.InvalidOperation, ValueError):
    return _ZERO
  if not result.is_finite():
    return _ZERO
  return result


def _has_amount(value: Optional[str]) -> bool:
  return value is not None and str(value).strip() != ""


def _format(value: Decimal, precision: int) -> str:
  exponent = Decimal(1).scaleb(-precision)
  return str(value.quantize(exponent, rounding=decimal.ROUND_HALF_UP))


def item_subtotal(item: LineItem) -> Decimal:
  """Returns the server subtotal of a line, or unit price times quantity."""
  if _has_amount(item.subtotal):
    return _to_decimal(item.subtotal)
  return _to_decimal(item.unit_price) * _to_decimal(item.quantity)


def compute(
    line_items: Iterable[LineItem],
    selected_shipping_method: Optional[ShippingMethod] = None,
    *,
    server_subtotal: Optional[str] = None,
    server_total: Optional[str] = None,
    precision: int = 2,
) -> Totals:
  """Computes the order summary.

  Server-provided checkout amounts win over values derived from the line
  items. Discounts are reported by the server as negative amounts; the
  summary shows their absolute value.

  Args:
    line_items: The checkout line items.
    selected_shipping_method: The chosen shipping method, if any.
    server_subtotal: The checkout subtotal reported by the server.
    server_total: The checkout total reported by the server.
    precision: Number of decimal places in the returned strings.

  Returns:
    The totals as fixed-precision strings.
  """
  items = list(line_items)

  if _has_amount(server_subtotal):
    subtotal = _to_decimal(server_subtotal)
  else:
    subtotal = sum((item_subtotal(item) for item in items), _ZERO)

  discount = sum((_to_decimal(item.discount) for item in items), _ZERO)

  shipping = _ZERO
  if selected_shipping_method is not None:
    shipping = _to_decimal(selected_shipping_method.cost)

  if _has_amount(server_total):
    total = _to_decimal(server_total)
  else:
    total = subtotal + discount + shipping

  return Totals(
      item_count=len(items),
      subtotal=_format(subtotal, precision),
      discount=_format(abs(discount), precision),
      shipping=_format(shipping, precision),
      total=_format(total, precision),
      has_discount=discount < 0,
      has_shipping=shipping > 0,
  )
