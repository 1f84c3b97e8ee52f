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

"""Custom exceptions for the storefront checkout workflow."""

from typing import Optional


class CheckoutError(Exception):
  """Base class for all checkout exceptions."""

  def __init__(
      self,
      message: str,
      code: str = "INTERNAL_ERROR",
      status_code: Optional[int] = None,
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class StepValidationError(CheckoutError):
  """Raised when a step's local precondition is not satisfied."""

  def __init__(self, message: str):
    super().__init__(message, code="VALIDATION_FAILED")


class StepGatedError(CheckoutError):
  """Raised when navigating to a step that has not been reached yet."""

  def __init__(self, message: str = "Please complete previous steps first"):
    super().__init__(message, code="STEP_GATED")


class AdvanceInProgressError(CheckoutError):
  """Raised when a second advance is issued while one is still in flight."""

  def __init__(self, message: str = "A checkout step is already in progress"):
    super().__init__(message, code="ADVANCE_IN_PROGRESS")


class SessionClosedError(CheckoutError):
  """Raised when mutating a checkout session that has ended."""

  def __init__(self, message: str = "Checkout session is closed"):
    super().__init__(message, code="SESSION_CLOSED")


class ApiError(CheckoutError):
  """Raised when the backend rejects a request.

  `detail` holds the message provided by the server, if any. `message` falls
  back to a generic description when the server did not provide one.
  """

  def __init__(
      self,
      message: str,
      status_code: Optional[int] = None,
      detail: Optional[str] = None,
      code: str = "API_ERROR",
  ):
    super().__init__(message, code=code, status_code=status_code)
    self.detail = detail


class AuthenticationError(ApiError):
  """Raised when a request stays unauthorized after token recovery."""

  def __init__(
      self,
      message: str,
      status_code: Optional[int] = 401,
      detail: Optional[str] = None,
  ):
    super().__init__(
        message, status_code=status_code, detail=detail, code="UNAUTHENTICATED"
    )


class NetworkError(ApiError):
  """Raised when a request could not reach the backend at all."""

  def __init__(self, message: str):
    super().__init__(message, code="NETWORK_ERROR")
