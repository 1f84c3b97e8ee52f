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

"""Utility script to dump persisted checkout snapshots.

This script reads the checkout snapshots stored in the state DB and prints,
for each source shopping list, the checkout id, the current and furthest
steps and the age of the snapshot. Snapshots older than the TTL are marked
as expired; they are discarded the next time the checkout is opened.

Usage:
  python -m storefront_checkout.dump_snapshots \
      --checkout_state_db_path=... [--show_data]
"""

import asyncio
import json
import logging
import sys
import time

from absl import app as absl_app
from absl import flags

from . import db
from .config import CheckoutSettings

FLAGS = flags.FLAGS
flags.DEFINE_bool("show_data", False, "Print the full snapshot JSON")

logging.basicConfig(level=logging.INFO)


def _format_age(millis: int) -> str:
  minutes, _ = divmod(max(millis, 0) // 1000, 60)
  hours, minutes = divmod(minutes, 60)
  return f"{hours}h{minutes:02d}m"


async def dump_snapshots() -> None:
  """Queries the database and prints checkout snapshots."""
  settings = CheckoutSettings.from_flags()
  if not settings.state_db_path:
    print("Error: --checkout_state_db_path is required.")
    sys.exit(1)

  manager = db.DatabaseManager()
  await manager.init_db(settings.state_db_path)
  try:
    async with manager.session_factory() as session:
      print("=== CHECKOUT SNAPSHOTS ===")
      snapshots = await db.list_snapshots(session)

      if not snapshots:
        print("No checkout snapshots found.")
        return

      now = int(time.time() * 1000)
      for snapshot in snapshots:
        data = snapshot.data or {}
        age = now - (snapshot.saved_at_epoch_millis or 0)
        expired = " (expired)" if age > settings.state_ttl_millis else ""
        print(f"[{snapshot.session_id}] saved {_format_age(age)} ago{expired}")
        print(f"  Checkout ID: {data.get('checkout_id')}")
        print(
            f"  Step: {data.get('current_step')}"
            f" (furthest: {data.get('furthest_step_reached')})"
        )
        completed = ", ".join(sorted(data.get("completed_steps") or []))
        print(f"  Completed: {completed or '-'}")
        if FLAGS.show_data:
          print(f"  Data: {json.dumps(data, indent=2)}")
        print("-" * 40)
  finally:
    await manager.close()


def main(argv):
  """Main entry point for the snapshot dump script."""
  del argv
  asyncio.run(dump_snapshots())


def run():
  absl_app.run(main)


if __name__ == "__main__":
  run()
