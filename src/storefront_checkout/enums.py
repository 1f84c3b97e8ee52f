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

"""Enumerations for the checkout workflow.

This module defines the ordered checkout steps and the payment method
families that select a payment execution endpoint.
"""

import enum
from typing import Optional


class CheckoutStep(str, enum.Enum):
  """Checkout steps, declared in the order they are completed."""

  BILLING = "billing"
  SHIPPING = "shipping"
  SHIPPING_METHOD = "shipping-method"
  PAYMENT = "payment"
  REVIEW = "review"

  @property
  def index(self) -> int:
    return list(CheckoutStep).index(self)

  def next(self) -> Optional["CheckoutStep"]:
    steps = list(CheckoutStep)
    if self.index + 1 < len(steps):
      return steps[self.index + 1]
    return None

  def previous(self) -> Optional["CheckoutStep"]:
    if self.index == 0:
      return None
    return list(CheckoutStep)[self.index - 1]

  @classmethod
  def later(cls, a: "CheckoutStep", b: "CheckoutStep") -> "CheckoutStep":
    return a if a.index >= b.index else b


class PaymentFamily(str, enum.Enum):
  """Payment execution endpoints, keyed by the method family."""

  PAYMENT_TERM = "paymentPaymentTerm"
  CARD_GATEWAY = "paymentStripe"
  WALLET = "paymentPayPalExpress"
