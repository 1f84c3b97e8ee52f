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

"""Database management for persisted checkout snapshots.

Snapshots live in a single SQLite table accessed through SQLAlchemy's asyncio
extension and aiosqlite. One row per source shopping list holds the JSON
snapshot and the time it was written.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger
from sqlalchemy import Column
from sqlalchemy import delete
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

StateBase = declarative_base()


class DatabaseManager:
  """Manages the snapshot database engine and sessions."""

  def __init__(self) -> None:
    self.engine: Optional[AsyncEngine] = None
    self.session_factory: Optional[sessionmaker] = None

  async def init_db(self, path: str) -> None:
    """Initializes the database engine and creates tables."""
    url = f"sqlite+aiosqlite:///{path}"
    self.engine = create_async_engine(url, echo=False)

    # Enable WAL mode so a dump script can read while the app writes
    async with self.engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.session_factory = sessionmaker(
        self.engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.engine.begin() as conn:
      await conn.run_sync(StateBase.metadata.create_all)

  async def close(self) -> None:
    """Closes the database engine."""
    if self.engine:
      await self.engine.dispose()
      self.engine = None
      self.session_factory = None


manager = DatabaseManager()


class CheckoutSnapshot(StateBase):
  __tablename__ = "checkout_snapshots"

  session_id = Column(String, primary_key=True)
  # SQLAlchemy JSON type handles serialization automatically
  data = Column(JSON)
  saved_at_epoch_millis = Column(BigInteger)


# --- Data Access Helpers ---


async def get_snapshot(
    session: AsyncSession, session_id: str
) -> Optional[CheckoutSnapshot]:
  """Retrieves the snapshot row for a checkout session."""
  return await session.get(CheckoutSnapshot, session_id)


async def save_snapshot(
    session: AsyncSession,
    session_id: str,
    data: Dict[str, Any],
    saved_at_epoch_millis: int,
) -> None:
  """Saves or replaces the snapshot of a checkout session."""
  existing = await session.get(CheckoutSnapshot, session_id)
  if existing:
    existing.data = data
    existing.saved_at_epoch_millis = saved_at_epoch_millis
  else:
    session.add(
        CheckoutSnapshot(
            session_id=session_id,
            data=data,
            saved_at_epoch_millis=saved_at_epoch_millis,
        )
    )


async def delete_snapshot(session: AsyncSession, session_id: str) -> None:
  """Deletes the snapshot of a checkout session, if any."""
  await session.execute(
      delete(CheckoutSnapshot).where(CheckoutSnapshot.session_id == session_id)
  )


async def list_snapshots(session: AsyncSession) -> List[CheckoutSnapshot]:
  """Retrieves all snapshots, most recently saved first."""
  result = await session.execute(
      select(CheckoutSnapshot).order_by(
          CheckoutSnapshot.saved_at_epoch_millis.desc()
      )
  )
  return list(result.scalars().all())
