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

"""Best-effort persistence of checkout sessions.

`PersistenceStore` keeps one snapshot per source shopping list so that a
checkout can be resumed after the app restarts. Saves are debounced through a
`Scheduler`; snapshots older than the TTL are discarded on load. Storage is a
cache and never a correctness requirement, so every storage failure is
logged and swallowed.
"""

import asyncio
import functools
import logging
import time
from typing import Callable, Dict, Optional

import pydantic

from . import constants
from . import db
from .models import CheckoutSession
from .scheduler import ScheduledCall
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
  """Returns the current time in epoch milliseconds."""
  return int(time.time() * 1000)


class PersistenceStore:
  """Debounced snapshot store for resumable checkout sessions."""

  def __init__(
      self,
      manager: db.DatabaseManager,
      scheduler: Scheduler,
      clock: Clock = system_clock,
      debounce_seconds: float = constants.SAVE_DEBOUNCE_MS / 1000,
      ttl_millis: int = constants.SNAPSHOT_TTL_HOURS * 60 * 60 * 1000,
  ):
    self._manager = manager
    self._scheduler = scheduler
    self._clock = clock
    self._debounce_seconds = debounce_seconds
    self._ttl_millis = ttl_millis
    self._pending: Dict[str, CheckoutSession] = {}
    self._timers: Dict[str, ScheduledCall] = {}
    self._locks: Dict[str, asyncio.Lock] = {}

  def save(self, session_id: str, snapshot: CheckoutSession) -> None:
    """Schedules a write of `snapshot`, replacing any pending one."""
    self._pending[session_id] = snapshot
    self._cancel_timer(session_id)
    try:
      self._timers[session_id] = self._scheduler.schedule(
          self._debounce_seconds,
          functools.partial(self._write_pending, session_id),
      )
    except RuntimeError as e:
      # No running event loop; the snapshot stays pending until flush().
      logger.warning("Could not schedule checkout snapshot save: %s", e)

  async def load(self, session_id: str) -> Optional[CheckoutSession]:
    """Returns the saved snapshot, or None if absent, expired or unreadable."""
    pending = self._pending.get(session_id)
    if pending is not None:
      return pending

    try:
      async with self._lock(session_id), self._session() as session:
        record = await db.get_snapshot(session, session_id)
        saved_at = record.saved_at_epoch_millis if record else None
        data = record.data if record else None
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.warning("Failed to load checkout snapshot %s: %s", session_id, e)
      return None

    if data is None:
      return None

    age = self._clock() - (saved_at or 0)
    if age > self._ttl_millis:
      logger.info(
          "Discarding checkout snapshot %s saved %d ms ago", session_id, age
      )
      await self.clear(session_id)
      return None

    try:
      snapshot = CheckoutSession.model_validate(data)
    except pydantic.ValidationError as e:
      logger.warning(
          "Discarding corrupt checkout snapshot %s: %s", session_id, e
      )
      await self.clear(session_id)
      return None

    if snapshot.source_list_id != session_id:
      logger.warning(
          "Discarding checkout snapshot %s stored for list %s",
          session_id,
          snapshot.source_list_id,
      )
      await self.clear(session_id)
      return None
    return snapshot

  async def clear(self, session_id: str) -> None:
    """Drops the pending write and the stored snapshot of a session."""
    self._cancel_timer(session_id)
    self._pending.pop(session_id, None)
    try:
      async with self._lock(session_id), self._session() as session:
        await db.delete_snapshot(session, session_id)
        await session.commit()
    except Exception as e:  # pylint: disable=broad-exception-caught
      logger.warning("Failed to clear checkout snapshot %s: %s", session_id, e)

  async def flush(self) -> None:
    """Writes every pending snapshot now."""
    for session_id in list(self._pending):
      self._cancel_timer(session_id)
      await self._write_pending(session_id)

  def _cancel_timer(self, session_id: str) -> None:
    timer = self._timers.pop(session_id, None)
    if timer is not None:
      timer.cancel()

  def _lock(self, session_id: str) -> asyncio.Lock:
    # Held across each database round trip so a write that already left
    # _pending cannot commit after a clear of the same session.
    lock = self._locks.get(session_id)
    if lock is None:
      lock = self._locks[session_id] = asyncio.Lock()
    return lock

  def _session(self):
    if self._manager.session_factory is None:
      raise RuntimeError("Snapshot database is not initialized")
    return self._manager.session_factory()

  async def _write_pending(self, session_id: str) -> None:
    self._timers.pop(session_id, None)
    async with self._lock(session_id):
      # A clear that ran while waiting for the lock has dropped the snapshot.
      snapshot = self._pending.pop(session_id, None)
      if snapshot is None:
        return

      saved_at = self._clock()
      data = snapshot.model_copy(
          update={"saved_at_epoch_millis": saved_at}
      ).model_dump(mode="json")
      try:
        async with self._session() as session:
          await db.save_snapshot(session, session_id, data, saved_at)
          await session.commit()
      except Exception as e:  # pylint: disable=broad-exception-caught
        logger.warning(
            "Failed to save checkout snapshot %s: %s", session_id, e
        )
