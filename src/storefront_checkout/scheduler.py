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

"""Scheduling of delayed callbacks.

The persistence layer never touches timers directly. It asks a `Scheduler` to
run a coroutine function after a delay, so tests can substitute a virtual
clock (see `testing.FakeScheduler`).
"""

import abc
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class ScheduledCall(abc.ABC):
  """Handle to a pending callback."""

  @abc.abstractmethod
  def cancel(self) -> None:
    """Prevents the callback from running if it has not started yet."""


class Scheduler(abc.ABC):
  """Runs coroutine functions after a delay."""

  @abc.abstractmethod
  def schedule(self, delay: float, callback: Callback) -> ScheduledCall:
    """Schedules `callback` to run after `delay` seconds."""


class _LoopCall(ScheduledCall):

  def __init__(self) -> None:
    self.timer: Optional[asyncio.TimerHandle] = None

  def cancel(self) -> None:
    if self.timer is not None:
      self.timer.cancel()


class LoopScheduler(Scheduler):
  """Scheduler backed by the running asyncio event loop."""

  def __init__(self) -> None:
    self._tasks: Set[asyncio.Task] = set()

  def schedule(self, delay: float, callback: Callback) -> ScheduledCall:
    loop = asyncio.get_running_loop()
    call = _LoopCall()
    call.timer = loop.call_later(delay, self._start, callback)
    return call

  def _start(self, callback: Callback) -> None:
    task = asyncio.ensure_future(callback())
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def wait_idle(self) -> None:
    """Waits for callbacks that have already started."""
    if self._tasks:
      await asyncio.gather(*self._tasks, return_exceptions=True)
