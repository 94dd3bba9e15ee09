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

"""Data types shared by the trigger pipeline.

Positions follow LSP conventions (0-indexed line and character). Contexts
and suggestions are immutable snapshots; per-buffer mutable state lives in
the engine and the dispatcher.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from codestral_trigger.completion.errors import FailureReason


class Mode(IntEnum):
    """Editor mode of a buffer."""

    INSERT = 1
    NORMAL = 2
    OTHER = 3


class SuggestionSource(IntEnum):
    """Origin of a suggestion.

    The value is the fixed source priority: lower values are shown first.
    """

    LSP = 0
    MISTRAL = 1
    BUFFER = 2
    OTHER = 3


class AuthStatus(str, Enum):
    """State of the provider credentials."""

    OK = "ok"
    MISSING = "missing"
    INVALID = "invalid"


class TimerState(str, Enum):
    """Debounce timer lifecycle."""

    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"


@dataclass(frozen=True)
class Position:
    """Cursor position (0-indexed)."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """Text range; end=None extends to the end of the buffer."""

    start: Position
    end: Optional[Position] = None


@dataclass
class BufferMeta:
    """Buffer metadata consulted by the exclusion filter."""

    buffer_id: int
    filetype: str = ""
    path: str = ""
    disabled: bool = False  # Explicit per-buffer toggle


@dataclass(frozen=True)
class TriggerContext:
    """Snapshot of a buffer taken when a trigger is evaluated."""

    buffer_id: int
    position: Position
    preceding_token: str
    mode: Mode
    edit_epoch: int

    preceding_char: str = ""  # Character right before the cursor
    line: str = ""
    filetype: str = ""
    path: str = ""


@dataclass(frozen=True)
class CompletionRequest:
    """What the provider receives for one completion."""

    context: TriggerContext
    prefix: str  # Text before the cursor
    suffix: str = ""  # Text after the cursor


@dataclass
class PendingRequest:
    """The single live request of a buffer, owned by the dispatcher."""

    epoch: int
    buffer_id: int
    token: str
    started_at: float
    manual: bool = False
    task: Optional["asyncio.Task[Any]"] = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class Suggestion:
    """A single menu entry."""

    text: str
    source: SuggestionSource
    rank: int = 0  # Order returned by the source

    insert_text: Optional[str] = None  # Text inserted after the current token
    detail: Optional[str] = None


@dataclass
class CompletionMetrics:
    """Counters for dispatched requests."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    cancelled_requests: int = 0
    stale_responses: int = 0
    total_latency_ms: float = 0.0

    @property
    def average_latency_ms(self) -> float:
        """Calculate average latency."""
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class BufferDiagnostics:
    """Last outcome recorded for a buffer."""

    last_error: Optional[FailureReason] = None
    last_latency_ms: Optional[float] = None
    stale_responses: int = 0


@dataclass
class DiagnosticReport:
    """Answer to diagnose(buffer_id)."""

    buffer_id: int
    enabled: bool
    excluded: bool
    auth_status: AuthStatus
    timer_state: TimerState = TimerState.IDLE
    request_pending: bool = False
    edit_epoch: int = 0
    preceding_token: str = ""
    exclusion_reason: Optional[str] = None
    last_error: Optional[FailureReason] = None
    last_latency_ms: Optional[float] = None
    stale_responses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "buffer_id": self.buffer_id,
            "enabled": self.enabled,
            "excluded": self.excluded,
            "exclusion_reason": self.exclusion_reason,
            "auth_status": self.auth_status.value,
            "timer_state": self.timer_state.value,
            "request_pending": self.request_pending,
            "edit_epoch": self.edit_epoch,
            "preceding_token": self.preceding_token,
            "last_error": self.last_error.value if self.last_error else None,
            "last_latency_ms": self.last_latency_ms,
            "stale_responses": self.stale_responses,
        }
