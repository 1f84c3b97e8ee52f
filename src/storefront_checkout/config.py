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

"""Shared configuration for the checkout workflow.

Settings are read from absl flags so that an embedding application can set
them on the command line, or built directly by callers that do not parse
flags.
"""

from typing import Optional

from absl import flags
from pydantic import BaseModel

from . import constants

FLAGS = flags.FLAGS

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("api_base_url", None, "Root URL of the JSON:API backend")
  flags.DEFINE_string(
      "checkout_state_db_path",
      "checkout_state.db",
      "Path to the SQLite file holding checkout snapshots",
  )
  flags.DEFINE_integer(
      "checkout_save_debounce_ms",
      constants.SAVE_DEBOUNCE_MS,
      "Window in which checkout snapshot saves are collapsed",
  )
  flags.DEFINE_integer(
      "checkout_state_ttl_hours",
      constants.SNAPSHOT_TTL_HOURS,
      "Age after which a checkout snapshot is discarded",
  )
  flags.DEFINE_integer(
      "price_precision",
      constants.PRICE_PRECISION,
      "Number of decimal places shown for prices",
  )
  flags.DEFINE_float(
      "request_timeout_seconds",
      constants.REQUEST_TIMEOUT_SECONDS,
      "Timeout for backend requests",
  )
except flags.DuplicateFlagError:
  pass


class CheckoutSettings(BaseModel):
  """Resolved settings for one checkout workflow."""

  api_base_url: Optional[str] = None
  state_db_path: str = "checkout_state.db"
  save_debounce_ms: int = constants.SAVE_DEBOUNCE_MS
  state_ttl_hours: int = constants.SNAPSHOT_TTL_HOURS
  price_precision: int = constants.PRICE_PRECISION
  request_timeout_seconds: float = constants.REQUEST_TIMEOUT_SECONDS

  @property
  def save_debounce_seconds(self) -> float:
    return self.save_debounce_ms / 1000

  @property
  def state_ttl_millis(self) -> int:
    return self.state_ttl_hours * 60 * 60 * 1000

  @classmethod
  def from_flags(cls) -> "CheckoutSettings":
    """Builds settings from flag values.

    Values are read through the flag holders, so defaults are returned when
    the flags have not been parsed (for example under a plain test runner).
    """
    return cls(
        api_base_url=FLAGS["api_base_url"].value,
        state_db_path=FLAGS["checkout_state_db_path"].value,
        save_debounce_ms=FLAGS["checkout_save_debounce_ms"].value,
        state_ttl_hours=FLAGS["checkout_state_ttl_hours"].value,
        price_precision=FLAGS["price_precision"].value,
        request_timeout_seconds=FLAGS["request_timeout_seconds"].value,
    )
