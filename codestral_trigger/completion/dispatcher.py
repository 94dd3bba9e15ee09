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

"""Request dispatcher owning the in-flight completion request of each buffer.

Guarantees:
- At most one live request per buffer. Starting a new one cancels the old
  one; its result is abandoned, never queued.
- Every request is bounded by a hard timeout. The provider call is
  cancelled when the deadline wins the race.
- A response is handed on only if its epoch still equals the buffer's live
  edit epoch. Stale responses are dropped and counted.
- Automatic requests never raise to the caller. Failures are logged and
  recorded for diagnostics. Manual requests (force) raise TriggerError.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from codestral_trigger.completion.errors import (
    FailureReason,
    RequestTimeoutError,
    TransportFailureError,
    TriggerError,
)
from codestral_trigger.completion.protocol import (
    BufferDiagnostics,
    CompletionMetrics,
    CompletionRequest,
    PendingRequest,
)
from codestral_trigger.completion.provider import CompletionProvider, normalize_completions

logger = logging.getLogger(__name__)

ResultCallback = Callable[[PendingRequest, list[str]], Any]


class RequestDispatcher:
    """Issues completion requests and enforces ordering, timeout and staleness."""

    def __init__(
        self,
        provider: CompletionProvider,
        current_epoch: Callable[[int], Optional[int]],
        on_result: ResultCallback,
        timeout_ms: float = 2000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the dispatcher.

        Args:
            provider: Remote completion provider
            current_epoch: Returns the live edit epoch of a buffer (None if closed)
            on_result: Receives completions that passed the staleness guard
            timeout_ms: Hard request timeout in milliseconds
            clock: Monotonic clock in seconds, used for latency
        """
        self._provider = provider
        self._current_epoch = current_epoch
        self._on_result = on_result
        self._timeout_ms = timeout_ms
        self._clock = clock
        self._pending: dict[int, PendingRequest] = {}
        self._diagnostics: dict[int, BufferDiagnostics] = {}
        self._metrics = CompletionMetrics()

    @property
    def metrics(self) -> CompletionMetrics:
        return self._metrics

    @property
    def timeout_ms(self) -> float:
        return self._timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: float) -> None:
        self._timeout_ms = value

    def is_pending(self, buffer_id: int) -> bool:
        return buffer_id in self._pending

    def get_pending(self, buffer_id: int) -> Optional[PendingRequest]:
        return self._pending.get(buffer_id)

    def diagnostics(self, buffer_id: int) -> BufferDiagnostics:
        """Get the recorded outcome of a buffer."""
        return self._diagnostics.get(buffer_id) or BufferDiagnostics()

    def _record(self, buffer_id: int) -> BufferDiagnostics:
        return self._diagnostics.setdefault(buffer_id, BufferDiagnostics())

    def record_error(self, buffer_id: int, reason: FailureReason) -> None:
        """Record a failure that happened before dispatch (e.g. missing auth)."""
        self._record(buffer_id).last_error = reason

    def dispatch(self, request: CompletionRequest) -> PendingRequest:
        """Start an automatic request, replacing any live one for the buffer.

        Returns immediately; the outcome is delivered through on_result.
        """
        pending = self._start(request, manual=False)
        pending.task = asyncio.get_running_loop().create_task(self._run(pending, request))
        return pending

    async def force(self, request: CompletionRequest) -> list[str]:
        """Run a manual request and wait for it.

        Returns:
            Completions that were delivered, or [] if superseded or stale

        Raises:
            TriggerError: Timeout, transport or auth failure
        """
        pending = self._start(request, manual=True)
        task = asyncio.get_running_loop().create_task(self._execute(pending, request))
        pending.task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task.cancelled():
            logger.debug(f"Manual request for buffer {request.context.buffer_id} was superseded")
            return []
        return task.result()

    def cancel(self, buffer_id: int) -> bool:
        """Cancel the live request of a buffer.

        Returns:
            True if a live request was cancelled
        """
        pending = self._pending.pop(buffer_id, None)
        if pending is None:
            return False
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()
        logger.debug(f"Cancelled request for buffer {buffer_id} (epoch {pending.epoch})")
        return True

    def cancel_all(self) -> None:
        for buffer_id in list(self._pending):
            self.cancel(buffer_id)

    def forget(self, buffer_id: int) -> None:
        """Drop all state of a closed buffer."""
        self.cancel(buffer_id)
        self._diagnostics.pop(buffer_id, None)

    def _start(self, request: CompletionRequest, manual: bool) -> PendingRequest:
        context = request.context
        self.cancel(context.buffer_id)
        pending = PendingRequest(
            epoch=context.edit_epoch,
            buffer_id=context.buffer_id,
            token=context.preceding_token,
            started_at=self._clock(),
            manual=manual,
        )
        self._pending[context.buffer_id] = pending
        self._metrics.total_requests += 1
        logger.debug(
            f"Dispatching {'manual' if manual else 'automatic'} request for buffer "
            f"{pending.buffer_id} (epoch {pending.epoch}, token {pending.token!r})"
        )
        return pending

    def _is_live(self, pending: PendingRequest) -> bool:
        if self._pending.get(pending.buffer_id) is not pending:
            return False
        return self._current_epoch(pending.buffer_id) == pending.epoch

    def _record_failure(self, pending: PendingRequest, reason: FailureReason) -> None:
        diagnostics = self._record(pending.buffer_id)
        diagnostics.last_error = reason
        diagnostics.last_latency_ms = (self._clock() - pending.started_at) * 1000
        self._metrics.failed_requests += 1

    def _discard_stale(self, pending: PendingRequest) -> list[str]:
        """Count the outcome of a superseded request, success or failure, as stale."""
        self._record(pending.buffer_id).stale_responses += 1
        self._metrics.stale_responses += 1
        logger.debug(
            f"Discarding stale response for buffer {pending.buffer_id} (epoch {pending.epoch})"
        )
        return []

    async def _run(self, pending: PendingRequest, request: CompletionRequest) -> None:
        try:
            await self._execute(pending, request)
        except TriggerError as e:
            logger.debug(f"Automatic request for buffer {pending.buffer_id} failed: {e}")
        except Exception as e:
            logger.warning(f"Completion handling failed for buffer {pending.buffer_id}: {e}")

    async def _execute(self, pending: PendingRequest, request: CompletionRequest) -> list[str]:
        try:
            try:
                result = await asyncio.wait_for(
                    self._provider.request_completion(request),
                    timeout=self._timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                if not self._is_live(pending):
                    return self._discard_stale(pending)
                self._record_failure(pending, FailureReason.REQUEST_TIMEOUT)
                self._metrics.timeouts += 1
                raise RequestTimeoutError(
                    f"No response within {self._timeout_ms:.0f}ms"
                ) from None
            except asyncio.CancelledError:
                self._metrics.cancelled_requests += 1
                raise
            except TriggerError as e:
                if not self._is_live(pending):
                    return self._discard_stale(pending)
                self._record_failure(pending, e.reason)
                logger.warning(f"Provider {self._provider.name} failed: {e}")
                raise
            except Exception as e:
                if not self._is_live(pending):
                    return self._discard_stale(pending)
                self._record_failure(pending, FailureReason.TRANSPORT_FAILURE)
                logger.warning(f"Provider {self._provider.name} failed: {e}")
                raise TransportFailureError(str(e)) from e

            if not self._is_live(pending):
                return self._discard_stale(pending)

            elapsed_ms = (self._clock() - pending.started_at) * 1000
            diagnostics = self._record(pending.buffer_id)
            diagnostics.last_latency_ms = elapsed_ms
            self._metrics.successful_requests += 1
            self._metrics.total_latency_ms += elapsed_ms
            del self._pending[pending.buffer_id]

            completions = normalize_completions(result)
            self._on_result(pending, completions)
            return completions
        finally:
            if self._pending.get(pending.buffer_id) is pending:
                del self._pending[pending.buffer_id]
