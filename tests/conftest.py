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

"""Shared fixtures: a manually driven clock and a scripted provider."""

import asyncio
from typing import Any, Callable, Optional

import pytest

from codestral_trigger.completion.protocol import AuthStatus, CompletionRequest
from codestral_trigger.completion.provider import BaseCompletionProvider


class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable[[], Any]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop for call_later based timers."""

    def __init__(self):
        self.now = 0.0
        self.handles: list[FakeTimerHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, lambda: callback(*args))
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running due callbacks in deadline order."""
        target = self.now + seconds
        while True:
            due = [h for h in self.handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback()
        self.now = target

    def active_handles(self) -> list[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled]


class FakeProvider(BaseCompletionProvider):
    """Provider returning scripted results after an optional delay."""

    def __init__(
        self,
        results: Optional[list[Any]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        status: AuthStatus = AuthStatus.OK,
    ):
        self.results = list(results or [])
        self.delay = delay
        self.error = error
        self.status = status
        self.requests: list[CompletionRequest] = []
        self.cancelled = 0

    @property
    def name(self) -> str:
        return "fake"

    def auth_status(self) -> AuthStatus:
        return self.status

    async def request_completion(self, request: CompletionRequest) -> Any:
        self.requests.append(request)
        result = self.results.pop(0) if self.results else []
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if self.error is not None:
            raise self.error
        return result


class Menu:
    """Records publish(buffer_id, suggestions) calls."""

    def __init__(self):
        self.calls: list[tuple[int, list]] = []

    def __call__(self, buffer_id: int, suggestions: list) -> None:
        self.calls.append((buffer_id, list(suggestions)))

    @property
    def last(self) -> list:
        return self.calls[-1][1] if self.calls else []


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def menu():
    return Menu()
