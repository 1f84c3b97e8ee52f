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

"""Wiring of the checkout workflow components.

This module contains the provider functions an embedding application uses
to build the workflow from `CheckoutSettings`:
- The authenticated request pipeline for the JSON:API backend.
- The snapshot persistence store backed by the shared database manager.
- The step executor and the state machine for one source shopping list.
"""

from typing import Optional

import httpx

from . import db
from .config import CheckoutSettings
from .exceptions import CheckoutError
from .executor import CheckoutStepExecutor
from .persistence import Clock
from .persistence import PersistenceStore
from .persistence import system_clock
from .pipeline import AuthenticatedRequestPipeline
from .scheduler import LoopScheduler
from .scheduler import Scheduler
from .state_machine import CheckoutStateMachine


def get_settings() -> CheckoutSettings:
  """Provider for settings read from flags."""
  return CheckoutSettings.from_flags()


def get_pipeline(
    settings: Optional[CheckoutSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AuthenticatedRequestPipeline:
  """Provider for the request pipeline."""
  settings = settings or get_settings()
  if not settings.api_base_url:
    raise CheckoutError(
        "API base URL is not configured", code="CONFIGURATION_ERROR"
    )
  return AuthenticatedRequestPipeline(
      settings.api_base_url,
      transport=transport,
      timeout=settings.request_timeout_seconds,
  )


async def get_persistence_store(
    settings: Optional[CheckoutSettings] = None,
    manager: Optional[db.DatabaseManager] = None,
    scheduler: Optional[Scheduler] = None,
    clock: Clock = system_clock,
) -> PersistenceStore:
  """Provider for the snapshot store; initializes the database on first use."""
  settings = settings or get_settings()
  manager = manager or db.manager
  if manager.engine is None:
    await manager.init_db(settings.state_db_path)
  return PersistenceStore(
      manager,
      scheduler or LoopScheduler(),
      clock=clock,
      debounce_seconds=settings.save_debounce_seconds,
      ttl_millis=settings.state_ttl_millis,
  )


def get_executor(
    pipeline: AuthenticatedRequestPipeline,
) -> CheckoutStepExecutor:
  """Provider for CheckoutStepExecutor."""
  return CheckoutStepExecutor(pipeline)


def get_state_machine(
    source_list_id: str,
    pipeline: AuthenticatedRequestPipeline,
    store: PersistenceStore,
    settings: Optional[CheckoutSettings] = None,
) -> CheckoutStateMachine:
  """Provider for the state machine of one source shopping list."""
  settings = settings or get_settings()
  return CheckoutStateMachine(
      source_list_id,
      get_executor(pipeline),
      store,
      price_precision=settings.price_precision,
  )
