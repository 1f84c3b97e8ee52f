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

"""Checkout step state machine.

The workflow state is a `CheckoutSession` value. Every change goes through
`transition(state, event)`, a pure function that returns the next state or
raises without touching anything. `CheckoutStateMachine` is the stateful
orchestrator around it: it checks local preconditions, runs the server effect
of a step through the `CheckoutStepExecutor`, commits the resulting events
and schedules a debounced save of the new state.

Steps are ordered Billing < Shipping < ShippingMethod < Payment < Review.
`furthest_step_reached` never decreases, and navigation beyond it is
rejected.
"""

import dataclasses
import logging
from typing import List, Optional, Sequence, Tuple, Union

from . import totals as totals_lib
from .enums import CheckoutStep
from .exceptions import AdvanceInProgressError
from .exceptions import ApiError
from .exceptions import CheckoutError
from .exceptions import SessionClosedError
from .exceptions import StepGatedError
from .exceptions import StepValidationError
from .executor import CheckoutStepExecutor
from .executor import find_address
from .models import Address
from .models import AddressDraft
from .models import Checkout
from .models import CheckoutSession
from .models import LineItem
from .models import PaymentMethod
from .models import PlacedOrder
from .models import Region
from .models import ShippingMethod
from .models import Totals
from .persistence import PersistenceStore

logger = logging.getLogger(__name__)


# --- Events ---


@dataclasses.dataclass(frozen=True)
class CheckoutAssigned:
  checkout_id: str


@dataclasses.dataclass(frozen=True)
class BillingAddressSelected:
  address_id: str


@dataclasses.dataclass(frozen=True)
class ShippingAddressSelected:
  address_id: str


@dataclasses.dataclass(frozen=True)
class ShipToSameAsBillingSet:
  value: bool


@dataclasses.dataclass(frozen=True)
class ShippingMethodsLoaded:
  methods: Tuple[ShippingMethod, ...]


@dataclasses.dataclass(frozen=True)
class ShippingMethodSelected:
  method_id: str


@dataclasses.dataclass(frozen=True)
class PaymentMethodsLoaded:
  methods: Tuple[PaymentMethod, ...]


@dataclasses.dataclass(frozen=True)
class PaymentMethodSelected:
  method_id: str


@dataclasses.dataclass(frozen=True)
class StepCompleted:
  """The server effect of `step` succeeded."""

  step: CheckoutStep


@dataclasses.dataclass(frozen=True)
class NavigatedTo:
  step: CheckoutStep


@dataclasses.dataclass(frozen=True)
class SteppedBack:
  pass


Event = Union[
    CheckoutAssigned,
    BillingAddressSelected,
    ShippingAddressSelected,
    ShipToSameAsBillingSet,
    ShippingMethodsLoaded,
    ShippingMethodSelected,
    PaymentMethodsLoaded,
    PaymentMethodSelected,
    StepCompleted,
    NavigatedTo,
    SteppedBack,
]


def _keep_or_first(selected_id: Optional[str], methods) -> Optional[str]:
  """Keeps a selection that is still offered, else picks the first method."""
  if any(m.id == selected_id for m in methods):
    return selected_id
  return methods[0].id if methods else None


def transition(state: CheckoutSession, event: Event) -> CheckoutSession:
  """Returns the state that follows `event`.

  Args:
    state: The current session.
    event: What happened.

  Returns:
    The next session. `state` itself is never modified.

  Raises:
    StepGatedError: `NavigatedTo` targets a step beyond the furthest one
      reached.
    CheckoutError: `CheckoutAssigned` carries a different id than the one
      already assigned.
    TypeError: The event is not a known event.
  """
  if isinstance(event, CheckoutAssigned):
    if state.checkout_id is not None and state.checkout_id != event.checkout_id:
      raise CheckoutError(
          f"Checkout {state.checkout_id} is already assigned",
          code="CHECKOUT_CONFLICT",
      )
    return state.model_copy(update={"checkout_id": event.checkout_id})

  if isinstance(event, BillingAddressSelected):
    return state.model_copy(update={"billing_address_id": event.address_id})

  if isinstance(event, ShippingAddressSelected):
    return state.model_copy(update={"shipping_address_id": event.address_id})

  if isinstance(event, ShipToSameAsBillingSet):
    return state.model_copy(update={"ship_to_same_as_billing": event.value})

  if isinstance(event, ShippingMethodsLoaded):
    methods = list(event.methods)
    return state.model_copy(
        update={
            "cached_shipping_methods": methods,
            "selected_shipping_method_id": _keep_or_first(
                state.selected_shipping_method_id, methods
            ),
        }
    )

  if isinstance(event, ShippingMethodSelected):
    return state.model_copy(
        update={"selected_shipping_method_id": event.method_id}
    )

  if isinstance(event, PaymentMethodsLoaded):
    methods = list(event.methods)
    return state.model_copy(
        update={
            "cached_payment_methods": methods,
            "selected_payment_method_id": _keep_or_first(
                state.selected_payment_method_id, methods
            ),
        }
    )

  if isinstance(event, PaymentMethodSelected):
    return state.model_copy(
        update={"selected_payment_method_id": event.method_id}
    )

  if isinstance(event, StepCompleted):
    next_step = event.step.next() or event.step
    return state.model_copy(
        update={
            "completed_steps": state.completed_steps | {event.step},
            "current_step": next_step,
            "furthest_step_reached": CheckoutStep.later(
                state.furthest_step_reached, next_step
            ),
        }
    )

  if isinstance(event, NavigatedTo):
    if event.step.index > state.furthest_step_reached.index:
      raise StepGatedError()
    return state.model_copy(update={"current_step": event.step})

  if isinstance(event, SteppedBack):
    previous = state.current_step.previous()
    if previous is None:
      return state
    return state.model_copy(update={"current_step": previous})

  raise TypeError(f"Unknown checkout event: {event!r}")


def restore(snapshot: CheckoutSession) -> CheckoutSession:
  """Normalizes a persisted session so that its step invariants hold."""
  furthest = CheckoutStep.later(
      snapshot.furthest_step_reached, snapshot.current_step
  )
  return snapshot.model_copy(update={"furthest_step_reached": furthest})


def check_precondition(
    session: CheckoutSession, addresses: Sequence[Address]
) -> None:
  """Checks that the current step has what its server effect needs.

  Raises:
    StepValidationError: With a message for the user.
  """
  if session.checkout_id is None:
    raise StepValidationError("Checkout has not been created yet")

  step = session.current_step
  if step == CheckoutStep.BILLING:
    if not session.billing_address_id:
      raise StepValidationError("Please select or create a billing address")
    if find_address(addresses, session.billing_address_id) is None:
      raise StepValidationError("Address not found")

  elif step == CheckoutStep.SHIPPING:
    address_id = session.effective_shipping_address_id
    if not address_id:
      if session.ship_to_same_as_billing:
        raise StepValidationError("Please select or create a billing address")
      raise StepValidationError("Please select or create a shipping address")
    if find_address(addresses, address_id) is None:
      raise StepValidationError("Address not found")

  elif step == CheckoutStep.SHIPPING_METHOD:
    if not session.selected_shipping_method_id:
      raise StepValidationError("Please select a shipping method")

  elif not session.selected_payment_method_id:
    raise StepValidationError("Please select a payment method")


class CheckoutStateMachine:
  """Drives one checkout session for a source shopping list."""

  def __init__(
      self,
      source_list_id: str,
      executor: CheckoutStepExecutor,
      store: PersistenceStore,
      price_precision: int = 2,
  ):
    self.source_list_id = source_list_id
    self._executor = executor
    self._store = store
    self._price_precision = price_precision
    self._session = CheckoutSession(source_list_id=source_list_id)
    self.line_items: List[LineItem] = []
    self.addresses: List[Address] = []
    self.checkout: Optional[Checkout] = None
    self.order: Optional[PlacedOrder] = None
    self._advancing = False
    self._closed = False
    self._attached = True

  @property
  def session(self) -> CheckoutSession:
    return self._session

  @property
  def current_step(self) -> CheckoutStep:
    return self._session.current_step

  @property
  def is_advancing(self) -> bool:
    return self._advancing

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def attached(self) -> bool:
    return self._attached

  @property
  def totals(self) -> Totals:
    checkout = self.checkout
    return totals_lib.compute(
        self.line_items,
        self._session.selected_shipping_method,
        server_subtotal=checkout.subtotal if checkout else None,
        server_total=checkout.total if checkout else None,
        precision=self._price_precision,
    )

  # --- Lifecycle ---

  async def start(self) -> CheckoutSession:
    """Resumes or begins the checkout and loads what the steps need.

    Returns:
      The session after hydration and initial loading.

    Raises:
      StepValidationError: The shopping list has no items.
      ApiError: A required lookup failed.
    """
    self._ensure_open()
    restored = self.hydrate(await self._store.load(self.source_list_id))

    line_items = await self._executor.fetch_line_items(self.source_list_id)
    if not line_items:
      raise StepValidationError("Shopping list is empty")
    addresses = await self._executor.fetch_customer_addresses()
    if not self._attached:
      return self._session
    self.line_items = line_items
    self.addresses = addresses

    if self._session.checkout_id is None:
      checkout = await self._executor.create_checkout(self.source_list_id)
      if not self._attached:
        return self._session
      self.checkout = checkout
      self._commit(transition(self._session, CheckoutAssigned(checkout.id)))

    if self._session.billing_address_id is None:
      primary = next((a for a in addresses if a.primary), None)
      if primary is not None:
        self._commit(
            transition(self._session, BillingAddressSelected(primary.id))
        )

    await self._reload_stale_methods()
    if restored:
      logger.info(
          "Resumed checkout %s at step %s",
          self._session.checkout_id,
          self._session.current_step.value,
      )
    return self._session

  def hydrate(self, snapshot: Optional[CheckoutSession]) -> bool:
    """Restores a persisted session, or starts fresh at Billing.

    Returns:
      Whether the snapshot was restored.
    """
    self._ensure_open()
    if snapshot is None or snapshot.source_list_id != self.source_list_id:
      self._session = CheckoutSession(source_list_id=self.source_list_id)
      return False
    self._session = restore(snapshot)
    return True

  def detach(self) -> None:
    """Marks the owner as gone; results of in-flight calls are discarded."""
    self._attached = False

  async def abandon(self) -> None:
    """Ends the checkout without placing an order."""
    await self._store.clear(self.source_list_id)
    self._closed = True

  # --- Step navigation ---

  async def advance(self) -> Optional[PlacedOrder]:
    """Completes the current step and moves to the next one.

    Returns:
      The placed order when the Review step succeeds, else None.

    Raises:
      AdvanceInProgressError: Another advance has not finished.
      SessionClosedError: The checkout has ended.
      StepValidationError: The step's precondition is not met.
      ApiError: The server effect failed. The state is unchanged.
    """
    self._ensure_open()
    if self._advancing:
      raise AdvanceInProgressError()

    session = self._session
    check_precondition(session, self.addresses)
    step = session.current_step

    self._advancing = True
    try:
      outcome = await self._executor.perform_step(session, self.addresses)
    finally:
      self._advancing = False

    if step == CheckoutStep.REVIEW:
      # The order is placed, so the checkout ends even when detached.
      self._closed = True
      self.order = outcome.order
      await self._store.clear(self.source_list_id)
      if self._attached:
        self._session = transition(self._session, StepCompleted(step))
      return outcome.order

    if not self._attached:
      logger.info(
          "Discarding %s result for detached checkout %s",
          step.value,
          session.checkout_id,
      )
      return None

    if outcome.checkout is not None:
      self.checkout = outcome.checkout
    state = self._session
    if outcome.shipping_methods is not None:
      state = transition(
          state, ShippingMethodsLoaded(tuple(outcome.shipping_methods))
      )
    if outcome.payment_methods is not None:
      state = transition(
          state, PaymentMethodsLoaded(tuple(outcome.payment_methods))
      )
    self._commit(transition(state, StepCompleted(step)))
    logger.info(
        "Completed step %s of checkout %s", step.value, session.checkout_id
    )
    return None

  def navigate_to(self, step: CheckoutStep) -> CheckoutSession:
    """Jumps to a step that has already been reached.

    Raises:
      StepGatedError: The step has not been reached yet.
    """
    self._ensure_open()
    try:
      state = transition(self._session, NavigatedTo(step))
    except StepGatedError:
      logger.warning(
          "Rejected navigation to %s; furthest step is %s",
          step.value,
          self._session.furthest_step_reached.value,
      )
      raise
    self._commit(state)
    return state

  def back(self) -> Optional[CheckoutStep]:
    """Moves to the previous step.

    Returns:
      The new current step, or None when the caller should return to the
      source shopping list.
    """
    self._ensure_open()
    if self._session.current_step.previous() is None:
      return None
    self._commit(transition(self._session, SteppedBack()))
    return self._session.current_step

  # --- Selections ---

  def select_billing_address(self, address_id: str) -> None:
    self._ensure_open()
    self._require_address(address_id)
    self._commit(transition(self._session, BillingAddressSelected(address_id)))

  def select_shipping_address(self, address_id: str) -> None:
    self._ensure_open()
    self._require_address(address_id)
    state = transition(self._session, ShippingAddressSelected(address_id))
    self._commit(transition(state, ShipToSameAsBillingSet(False)))

  def set_ship_to_same_as_billing(self, value: bool) -> None:
    self._ensure_open()
    self._commit(transition(self._session, ShipToSameAsBillingSet(value)))

  def select_shipping_method(self, method_id: str) -> None:
    self._ensure_open()
    self._commit(transition(self._session, ShippingMethodSelected(method_id)))

  def select_payment_method(self, method_id: str) -> None:
    self._ensure_open()
    self._commit(transition(self._session, PaymentMethodSelected(method_id)))

  async def add_address(
      self,
      draft: AddressDraft,
      for_shipping: bool = False,
      regions: Optional[Sequence[Region]] = None,
  ) -> Address:
    """Creates a customer address and selects it for the given role."""
    self._ensure_open()
    address = await self._executor.create_customer_address(draft, regions)
    if not self._attached:
      return address
    self.addresses.append(address)
    if for_shipping:
      self.select_shipping_address(address.id)
    else:
      self.select_billing_address(address.id)
    return address

  async def refresh_shipping_methods(self) -> List[ShippingMethod]:
    self._ensure_open()
    checkout_id = self._require_checkout_id()
    methods = await self._executor.fetch_shipping_methods(checkout_id)
    if self._attached:
      self._commit(
          transition(self._session, ShippingMethodsLoaded(tuple(methods)))
      )
    return methods

  async def refresh_payment_methods(self) -> List[PaymentMethod]:
    self._ensure_open()
    checkout_id = self._require_checkout_id()
    methods = await self._executor.fetch_payment_methods(checkout_id)
    if self._attached:
      self._commit(
          transition(self._session, PaymentMethodsLoaded(tuple(methods)))
      )
    return methods

  # --- Helpers ---

  async def _reload_stale_methods(self) -> None:
    """Re-fetches method lists a resumed session needs but did not keep."""
    session = self._session
    reached = session.furthest_step_reached.index
    try:
      if (
          reached > CheckoutStep.SHIPPING.index
          and not session.cached_shipping_methods
      ):
        await self.refresh_shipping_methods()
      if (
          reached > CheckoutStep.SHIPPING_METHOD.index
          and not session.cached_payment_methods
      ):
        await self.refresh_payment_methods()
    except ApiError as e:
      logger.warning(
          "Could not reload methods for checkout %s: %s",
          session.checkout_id,
          e,
      )

  def _require_address(self, address_id: str) -> None:
    if find_address(self.addresses, address_id) is None:
      raise StepValidationError("Address not found")

  def _require_checkout_id(self) -> str:
    if self._session.checkout_id is None:
      raise StepValidationError("Checkout has not been created yet")
    return self._session.checkout_id

  def _ensure_open(self) -> None:
    if self._closed:
      raise SessionClosedError()

  def _commit(self, state: CheckoutSession) -> None:
    self._session = state
    self._store.save(self.source_list_id, state)
