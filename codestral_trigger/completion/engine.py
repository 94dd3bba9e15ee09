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

"""Trigger engine wiring the pipeline to editor events.

Provides the high-level API for editor integration following the Facade
pattern:
- Editor events: attach, on_edit, on_mode_change, on_buffer_closed
- Other suggestion sources: update_source
- Commands: force_complete, toggle_enabled, auth_status, diagnose

All handlers run on the editor's event loop. Automatic triggers never raise
into the caller; the worst case is that no suggestion appears.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from codestral_trigger.completion.debounce import DebounceTimer
from codestral_trigger.completion.dispatcher import RequestDispatcher
from codestral_trigger.completion.errors import FailureReason, error_for
from codestral_trigger.completion.exclusion import ExclusionFilter
from codestral_trigger.completion.keyword import extract_token, preceding_char
from codestral_trigger.completion.merger import merge_suggestions
from codestral_trigger.completion.policy import TriggerPolicy
from codestral_trigger.completion.protocol import (
    AuthStatus,
    BufferMeta,
    CompletionMetrics,
    CompletionRequest,
    DiagnosticReport,
    Mode,
    PendingRequest,
    Position,
    Range,
    Suggestion,
    SuggestionSource,
    TimerState,
    TriggerContext,
)
from codestral_trigger.completion.provider import BufferTextSource, CompletionProvider
from codestral_trigger.completion.providers.buffer import BufferWordSource
from codestral_trigger.config import TriggerConfig

logger = logging.getLogger(__name__)

Publisher = Callable[[int, list[Suggestion]], Any]

_AUTH_FAILURES = {
    AuthStatus.MISSING: FailureReason.AUTH_MISSING,
    AuthStatus.INVALID: FailureReason.AUTH_INVALID,
}


@dataclass
class BufferState:
    """Per-buffer state owned by the engine."""

    meta: BufferMeta
    timer: DebounceTimer
    epoch: int = 0
    mode: Mode = Mode.NORMAL
    line: str = ""
    position: Position = Position(0, 0)
    sources: dict[SuggestionSource, list[Suggestion]] = field(default_factory=dict)


class TriggerEngine:
    """Decides when to request completions and publishes merged suggestions."""

    def __init__(
        self,
        config: TriggerConfig,
        provider: CompletionProvider,
        publish: Publisher,
        text_source: Optional[BufferTextSource] = None,
        word_source: Optional[BufferWordSource] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the engine.

        Args:
            config: Shared configuration (holds the global toggle)
            provider: Remote completion provider
            publish: Menu callback receiving (buffer_id, suggestions)
            text_source: Whole-buffer text access (current line used if absent)
            word_source: Buffer-word suggestions refreshed on every fire
            loop: Event loop for debounce timers (running loop if not provided)
            clock: Monotonic clock for request latency
        """
        self._config = config
        self._provider = provider
        self._publish = publish
        self._text_source = text_source
        self._word_source = word_source
        self._loop = loop
        self._exclusion = ExclusionFilter(config)
        self._policy = TriggerPolicy(config)
        self._dispatcher = RequestDispatcher(
            provider,
            current_epoch=self._live_epoch,
            on_result=self._on_completions,
            timeout_ms=config.request_timeout_ms,
            clock=clock,
        )
        self._buffers: dict[int, BufferState] = {}

    @property
    def config(self) -> TriggerConfig:
        return self._config

    @property
    def metrics(self) -> CompletionMetrics:
        """Get request metrics."""
        return self._dispatcher.metrics

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    def get_buffer_state(self, buffer_id: int) -> Optional[BufferState]:
        return self._buffers.get(buffer_id)

    # ------------------------------------------------------------------
    # Editor events
    # ------------------------------------------------------------------

    def attach(self, meta: BufferMeta) -> BufferState:
        """Register or update buffer metadata."""
        state = self._buffers.get(meta.buffer_id)
        if state is None:
            state = BufferState(meta=meta, timer=self._new_timer())
            self._buffers[meta.buffer_id] = state
        else:
            state.meta = meta
        return state

    def on_edit(
        self,
        buffer_id: int,
        epoch: int,
        cursor: Union[Position, tuple[int, int]],
        line: str,
    ) -> None:
        """Handle a text mutation.

        Args:
            buffer_id: Edited buffer
            epoch: Edit epoch after the mutation
            cursor: Cursor position (line, character), 0-indexed
            line: Text of the cursor line
        """
        state = self._get_or_attach(buffer_id)
        if epoch < state.epoch:
            logger.debug(f"Ignoring out-of-order edit for buffer {buffer_id} (epoch {epoch})")
            return

        state.epoch = epoch
        state.line = line
        state.position = cursor if isinstance(cursor, Position) else Position(*cursor)
        # Suggestions computed for older text no longer apply
        if state.sources.pop(SuggestionSource.MISTRAL, None):
            self._republish(state)

        if state.mode != Mode.INSERT:
            return
        if self._exclusion.is_excluded(state.meta):
            state.timer.cancel()
            return

        state.timer.delay_ms = self._config.idle_delay_ms
        state.timer.arm(self._snapshot(state))

    def on_mode_change(self, buffer_id: int, mode: Mode) -> None:
        """Track the buffer mode; leaving INSERT cancels the armed timer."""
        state = self._get_or_attach(buffer_id)
        state.mode = mode
        if mode != Mode.INSERT:
            state.timer.cancel()

    def on_buffer_closed(self, buffer_id: int) -> None:
        """Drop all state of a closed buffer."""
        state = self._buffers.pop(buffer_id, None)
        if state is not None:
            state.timer.cancel()
        self._dispatcher.forget(buffer_id)
        logger.debug(f"Released state of buffer {buffer_id}")

    def update_source(
        self,
        buffer_id: int,
        source: SuggestionSource,
        suggestions: Optional[Iterable[Suggestion]],
    ) -> list[Suggestion]:
        """Replace one source's suggestions and republish the merged menu."""
        state = self._get_or_attach(buffer_id)
        state.sources[source] = list(suggestions or [])
        return self._republish(state)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def force_complete(self, buffer_id: int) -> list[Suggestion]:
        """Request a completion now, bypassing idle wait, mode and length checks.

        Returns:
            Suggestions produced by the provider

        Raises:
            ValueError: If the buffer is unknown
            TriggerError: Exclusion, auth, timeout or transport failure
        """
        state = self._buffers.get(buffer_id)
        if state is None:
            raise ValueError(f"Unknown buffer: {buffer_id}")

        state.timer.cancel()
        context = self._snapshot(state)
        exclusion_reason = self._exclusion.reason(state.meta)
        reason = self._policy.decide(context, exclusion_reason is not None, manual=True)
        if reason is not None:
            self._dispatcher.record_error(buffer_id, reason)
            raise error_for(reason, f"Buffer {buffer_id} is excluded: {exclusion_reason}")

        auth_failure = self._check_auth(buffer_id)
        if auth_failure is not None:
            raise error_for(auth_failure, f"Codestral credentials: {auth_failure.value}")

        self._dispatcher.timeout_ms = self._config.request_timeout_ms
        completions = await self._dispatcher.force(self._build_request(context))
        return self._to_suggestions(context.preceding_token, completions)

    def toggle_enabled(self) -> bool:
        """Flip the global toggle; disabling cancels all timers and requests."""
        enabled = self._config.toggle_enabled()
        if not enabled:
            for state in self._buffers.values():
                state.timer.cancel()
            self._dispatcher.cancel_all()
        return enabled

    def auth_status(self) -> AuthStatus:
        return self._provider.auth_status()

    def diagnose(self, buffer_id: int) -> DiagnosticReport:
        """Report why a buffer does or does not get suggestions."""
        state = self._buffers.get(buffer_id)
        meta = state.meta if state else BufferMeta(buffer_id=buffer_id)
        exclusion_reason = self._exclusion.reason(meta)
        diagnostics = self._dispatcher.diagnostics(buffer_id)

        return DiagnosticReport(
            buffer_id=buffer_id,
            enabled=self._config.enabled,
            excluded=exclusion_reason is not None,
            exclusion_reason=exclusion_reason,
            auth_status=self.auth_status(),
            timer_state=state.timer.state if state else TimerState.IDLE,
            request_pending=self._dispatcher.is_pending(buffer_id),
            edit_epoch=state.epoch if state else 0,
            preceding_token=(
                extract_token(state.line, state.position.character) if state else ""
            ),
            last_error=diagnostics.last_error,
            last_latency_ms=diagnostics.last_latency_ms,
            stale_responses=diagnostics.stale_responses,
        )

    async def shutdown(self) -> None:
        """Cancel everything and close the provider if it supports it."""
        for state in self._buffers.values():
            state.timer.cancel()
        self._dispatcher.cancel_all()
        self._buffers.clear()
        aclose = getattr(self._provider, "aclose", None)
        if aclose is not None:
            await aclose()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _new_timer(self) -> DebounceTimer:
        return DebounceTimer(self._config.idle_delay_ms, self._on_timer_fired, loop=self._loop)

    def _get_or_attach(self, buffer_id: int) -> BufferState:
        state = self._buffers.get(buffer_id)
        if state is None:
            state = self.attach(BufferMeta(buffer_id=buffer_id))
        return state

    def _live_epoch(self, buffer_id: int) -> Optional[int]:
        state = self._buffers.get(buffer_id)
        return state.epoch if state else None

    def _snapshot(self, state: BufferState) -> TriggerContext:
        column = state.position.character
        return TriggerContext(
            buffer_id=state.meta.buffer_id,
            position=state.position,
            preceding_token=extract_token(state.line, column),
            mode=state.mode,
            edit_epoch=state.epoch,
            preceding_char=preceding_char(state.line, column),
            line=state.line,
            filetype=state.meta.filetype,
            path=state.meta.path,
        )

    def _check_auth(self, buffer_id: int) -> Optional[FailureReason]:
        reason = _AUTH_FAILURES.get(self._provider.auth_status())
        if reason is not None:
            self._dispatcher.record_error(buffer_id, reason)
        return reason

    def _on_timer_fired(self, context: TriggerContext) -> None:
        state = self._buffers.get(context.buffer_id)
        if state is None:
            return

        reason = self._policy.decide(context, self._exclusion.is_excluded(state.meta))
        if reason is not None:
            logger.debug(f"No trigger for buffer {context.buffer_id}: {reason.value}")
            return

        if self._word_source is not None:
            words = self._word_source.suggest(
                self._buffer_text(context), context.preceding_token
            )
            state.sources[SuggestionSource.BUFFER] = words
            self._republish(state)

        if self._check_auth(context.buffer_id) is not None:
            logger.debug(f"Skipping request for buffer {context.buffer_id}: no valid credentials")
            return

        self._dispatcher.timeout_ms = self._config.request_timeout_ms
        self._dispatcher.dispatch(self._build_request(context))

    def _get_text(self, buffer_id: int, text_range: Range) -> Optional[str]:
        if self._text_source is None:
            return None
        try:
            return self._text_source.get_text(buffer_id, text_range)
        except Exception as e:
            logger.warning(f"Could not read text of buffer {buffer_id}: {e}")
            return None

    def _buffer_text(self, context: TriggerContext) -> str:
        text = self._get_text(context.buffer_id, Range(start=Position(0, 0)))
        return context.line if text is None else text

    def _build_request(self, context: TriggerContext) -> CompletionRequest:
        cursor = context.position
        prefix = self._get_text(context.buffer_id, Range(start=Position(0, 0), end=cursor))
        suffix = self._get_text(context.buffer_id, Range(start=cursor))
        if prefix is None or suffix is None:
            prefix = context.line[: cursor.character]
            suffix = context.line[cursor.character :]
        return CompletionRequest(context=context, prefix=prefix, suffix=suffix)

    def _to_suggestions(self, token: str, completions: list[str]) -> list[Suggestion]:
        return [
            Suggestion(
                text=token + completion,
                source=SuggestionSource.MISTRAL,
                rank=rank,
                insert_text=completion,
                detail="Codestral",
            )
            for rank, completion in enumerate(completions)
        ]

    def _on_completions(self, pending: PendingRequest, completions: list[str]) -> None:
        state = self._buffers.get(pending.buffer_id)
        if state is None:
            return
        state.sources[SuggestionSource.MISTRAL] = self._to_suggestions(pending.token, completions)
        self._republish(state)

    def _republish(self, state: BufferState) -> list[Suggestion]:
        merged = merge_suggestions(state.sources)
        self._publish(state.meta.buffer_id, merged)
        return merged
