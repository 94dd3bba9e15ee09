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

"""Trailing-edge debounce timer.

One timer per buffer. Every arm() replaces the scheduled fire, so a burst of
edits produces exactly one callback, delay_ms after the last edit.

    Idle --arm--> Armed --expiry--> Fired --callback returns--> Idle
                  Armed --arm-----> Armed (fresh deadline)
                  Armed --cancel--> Idle
"""

import asyncio
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

from codestral_trigger.completion.protocol import TimerState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DebounceTimer(Generic[T]):
    """Coalesces rapid calls to arm() into a single delayed callback."""

    def __init__(
        self,
        delay_ms: float,
        callback: Callable[[T], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """Initialize the timer.

        Args:
            delay_ms: Idle delay in milliseconds
            callback: Called with the payload of the last arm() on expiry
            loop: Event loop to schedule on (running loop if not provided)
        """
        self._delay_ms = delay_ms
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._payload: Optional[T] = None
        self._deadline: Optional[float] = None
        self._state = TimerState.IDLE
        self.fire_count = 0

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def deadline(self) -> Optional[float]:
        """Loop time at which the armed timer fires."""
        return self._deadline

    @property
    def delay_ms(self) -> float:
        return self._delay_ms

    @delay_ms.setter
    def delay_ms(self, value: float) -> None:
        self._delay_ms = max(0.0, value)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def arm(self, payload: T) -> None:
        """Schedule a fire delay_ms from now, replacing any pending one."""
        self.cancel()
        loop = self._get_loop()
        delay = self._delay_ms / 1000
        self._payload = payload
        self._deadline = loop.time() + delay
        self._handle = loop.call_later(delay, self._expire)
        self._state = TimerState.ARMED

    def cancel(self) -> None:
        """Drop the scheduled fire. Safe to call at any time."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._payload = None
        self._deadline = None
        if self._state is TimerState.ARMED:
            self._state = TimerState.IDLE

    def _expire(self) -> None:
        payload = self._payload
        self._handle = None
        self._payload = None
        self._deadline = None
        self._state = TimerState.FIRED
        self.fire_count += 1
        try:
            self._callback(payload)
        finally:
            # A re-arm from inside the callback keeps the timer armed
            if self._state is TimerState.FIRED:
                self._state = TimerState.IDLE
