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

"""Tests for the checkout snapshot store."""

import asyncio
import os
import shutil
import tempfile

from absl.testing import absltest

from storefront_checkout import db
from storefront_checkout.enums import CheckoutStep
from storefront_checkout.models import CheckoutSession
from storefront_checkout.models import ShippingMethod
from storefront_checkout.persistence import PersistenceStore
from storefront_checkout.testing import FakeClock
from storefront_checkout.testing import FakeScheduler

HOUR_MILLIS = 60 * 60 * 1000


class PersistenceStoreTest(absltest.TestCase):
  """Tests for debounced saves, TTL expiry and clearing."""

  def setUp(self) -> None:
    super().setUp()
    self.test_dir = tempfile.mkdtemp()
    self.db_path = os.path.join(self.test_dir, "test_state.db")
    self.clock = FakeClock()
    self.scheduler = FakeScheduler()
    self.snapshot = CheckoutSession(
        source_list_id="list-1",
        checkout_id="chk-1",
        current_step=CheckoutStep.SHIPPING,
        completed_steps=frozenset({CheckoutStep.BILLING}),
        furthest_step_reached=CheckoutStep.SHIPPING,
        billing_address_id="addr-1",
        cached_shipping_methods=[ShippingMethod(id="flat", label="Flat")],
    )

  def tearDown(self) -> None:
    shutil.rmtree(self.test_dir)
    super().tearDown()

  def _run(self, scenario):
    """Runs `scenario(store, manager)` against a fresh snapshot DB."""

    async def run():
      manager = db.DatabaseManager()
      await manager.init_db(self.db_path)
      store = PersistenceStore(
          manager,
          self.scheduler,
          clock=self.clock,
          debounce_seconds=0.5,
          ttl_millis=24 * HOUR_MILLIS,
      )
      try:
        return await scenario(store, manager)
      finally:
        await manager.close()

    return asyncio.run(run())

  async def _stored(self, manager, session_id):
    async with manager.session_factory() as session:
      return await db.get_snapshot(session, session_id)

  def test_saves_are_debounced(self) -> None:

    async def scenario(store, manager):
      store.save("list-1", self.snapshot)
      await self.scheduler.advance(0.3)
      store.save(
          "list-1",
          self.snapshot.model_copy(update={"billing_address_id": "addr-2"}),
      )
      await self.scheduler.advance(0.3)
      before = await self._stored(manager, "list-1")
      await self.scheduler.advance(0.3)
      after = await self._stored(manager, "list-1")
      return before, after

    before, after = self._run(scenario)

    self.assertIsNone(before)
    self.assertEqual(after.data["billing_address_id"], "addr-2")
    self.assertEqual(after.saved_at_epoch_millis, self.clock.now_millis)
    self.assertEqual(self.scheduler.pending, 0)

  def test_round_trip_keeps_selection_fields(self) -> None:

    async def scenario(store, manager):
      del manager
      store.save("list-1", self.snapshot)
      await self.scheduler.advance(0.5)
      return await store.load("list-1")

    loaded = self._run(scenario)

    self.assertEqual(loaded.checkout_id, "chk-1")
    self.assertEqual(loaded.current_step, CheckoutStep.SHIPPING)
    self.assertEqual(loaded.completed_steps, {CheckoutStep.BILLING})
    self.assertEqual(loaded.cached_shipping_methods[0].id, "flat")
    self.assertEqual(loaded.saved_at_epoch_millis, self.clock.now_millis)

  def test_snapshot_just_under_ttl_is_returned(self) -> None:

    async def scenario(store, manager):
      del manager
      store.save("list-1", self.snapshot)
      await self.scheduler.advance(0.5)
      self.clock.advance(23 * HOUR_MILLIS + 59 * 60 * 1000)
      return await store.load("list-1")

    self.assertIsNotNone(self._run(scenario))

  def test_expired_snapshot_is_cleared(self) -> None:

    async def scenario(store, manager):
      store.save("list-1", self.snapshot)
      await self.scheduler.advance(0.5)
      self.clock.advance(24 * HOUR_MILLIS + 1)
      loaded = await store.load("list-1")
      return loaded, await self._stored(manager, "list-1")

    loaded, stored = self._run(scenario)

    self.assertIsNone(loaded)
    self.assertIsNone(stored)

  def test_corrupt_snapshot_is_cleared(self) -> None:

    async def scenario(store, manager):
      async with manager.session_factory() as session:
        await db.save_snapshot(
            session,
            "list-1",
            {"current_step": "checkout-ish"},
            self.clock.now_millis,
        )
        await session.commit()
      loaded = await store.load("list-1")
      return loaded, await self._stored(manager, "list-1")

    loaded, stored = self._run(scenario)

    self.assertIsNone(loaded)
    self.assertIsNone(stored)

  def test_clear_cancels_pending_write(self) -> None:

    async def scenario(store, manager):
      store.save("list-1", self.snapshot)
      await store.clear("list-1")
      await self.scheduler.advance(1)
      return await store.load("list-1"), await self._stored(manager, "list-1")

    loaded, stored = self._run(scenario)

    self.assertIsNone(loaded)
    self.assertIsNone(stored)

  def test_clear_during_in_flight_write_wins(self) -> None:
    review = self.snapshot.model_copy(
        update={
            "current_step": CheckoutStep.REVIEW,
            "furthest_step_reached": CheckoutStep.REVIEW,
        }
    )

    async def scenario(store, manager):
      store.save("list-1", review)
      await asyncio.gather(
          self.scheduler.advance(0.5), store.clear("list-1")
      )
      return await store.load("list-1"), await self._stored(manager, "list-1")

    loaded, stored = self._run(scenario)

    self.assertIsNone(loaded)
    self.assertIsNone(stored)

  def test_load_waits_for_in_flight_write(self) -> None:

    async def scenario(store, manager):
      del manager
      store.save("list-1", self.snapshot)
      _, loaded = await asyncio.gather(
          self.scheduler.advance(0.5), store.load("list-1")
      )
      return loaded

    loaded = self._run(scenario)

    self.assertIsNotNone(loaded)
    self.assertEqual(loaded.checkout_id, "chk-1")

  def test_flush_writes_pending_snapshots(self) -> None:

    async def scenario(store, manager):
      store.save("list-1", self.snapshot)
      await store.flush()
      return await self._stored(manager, "list-1")

    stored = self._run(scenario)

    self.assertEqual(stored.data["checkout_id"], "chk-1")
    self.assertEqual(self.scheduler.pending, 0)

  def test_storage_failures_are_swallowed(self) -> None:

    async def scenario(store, manager):
      await manager.close()
      store.save("list-1", self.snapshot)
      await self.scheduler.advance(0.5)
      loaded = await store.load("list-1")
      await store.clear("list-1")
      return loaded

    self.assertIsNone(self._run(scenario))


if __name__ == "__main__":
  absltest.main()
