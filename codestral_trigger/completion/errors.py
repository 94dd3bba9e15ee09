# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Failure taxonomy for the trigger pipeline.

Automatic triggers only record a FailureReason. Manual triggers raise the
matching TriggerError so the user sees why nothing was suggested.
"""

from enum import Enum


class FailureReason(str, Enum):
    """Why a trigger produced no suggestion."""

    EXCLUDED_CONTEXT = "ExcludedContext"
    TOKEN_TOO_SHORT = "TokenTooShort"
    WRONG_MODE = "WrongMode"
    DISABLED = "Disabled"
    AUTH_MISSING = "AuthMissing"
    AUTH_INVALID = "AuthInvalid"
    REQUEST_TIMEOUT = "RequestTimeout"
    TRANSPORT_FAILURE = "TransportFailure"
    STALE_RESPONSE = "StaleResponse"


class TriggerError(Exception):
    """Base error carrying a FailureReason."""

    reason: FailureReason = FailureReason.TRANSPORT_FAILURE

    def __init__(self, message: str = ""):
        super().__init__(message or self.reason.value)


class ExcludedContextError(TriggerError):
    reason = FailureReason.EXCLUDED_CONTEXT


class AuthMissingError(TriggerError):
    reason = FailureReason.AUTH_MISSING


class AuthInvalidError(TriggerError):
    reason = FailureReason.AUTH_INVALID


class RequestTimeoutError(TriggerError):
    reason = FailureReason.REQUEST_TIMEOUT


class TransportFailureError(TriggerError):
    reason = FailureReason.TRANSPORT_FAILURE


_ERRORS_BY_REASON = {
    cls.reason: cls
    for cls in (
        ExcludedContextError,
        AuthMissingError,
        AuthInvalidError,
        RequestTimeoutError,
        TransportFailureError,
    )
}


def error_for(reason: FailureReason, message: str = "") -> TriggerError:
    """Build the exception matching a failure reason.

    Raises:
        KeyError: If the reason is never raised to callers
    """
    return _ERRORS_BY_REASON[reason](message)
