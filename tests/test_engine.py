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

"""End-to-end tests for the trigger engine.

Debounce timers run on a manually advanced FakeLoop while requests run on
the real event loop.
"""

import asyncio
from typing import Optional

import pytest

from codestral_trigger.completion.engine import TriggerEngine
from codestral_trigger.completion.errors import (
    AuthMissingError,
    ExcludedContextError,
    FailureReason,
    RequestTimeoutError,
)
from codestral_trigger.completion.protocol import (
    AuthStatus,
    BufferMeta,
    Mode,
    Position,
    Range,
    Suggestion,
    SuggestionSource,
    TimerState,
)
from codestral_trigger.completion.providers import BufferWordSource
from codestral_trigger.config import TriggerConfig
from tests.conftest import FakeProvider


class Editor:
    """Types into a single-line buffer, bumping the edit epoch per keystroke."""

    def __init__(self, engine: TriggerEngine, buffer_id: int = 1, line: str = ""):
        self.engine = engine
        self.buffer_id = buffer_id
        self.epoch = 0
        self.line = line

    def type(self, text: str) -> None:
        for char in text:
            self.epoch += 1
            self.line += char
            self.engine.on_edit(self.buffer_id, self.epoch, Position(0, len(self.line)), self.line)


class MultiLineText:
    """Whole-buffer text access over a fixed document."""

    def __init__(self, text: str):
        self.text = text

    def _offset(self, position: Position) -> int:
        lines = self.text.split("\n")
        return sum(len(line) + 1 for line in lines[: position.line]) + position.character

    def get_text(self, buffer_id: int, text_range: Range) -> Optional[str]:
        start = self._offset(text_range.start)
        end = len(self.text) if text_range.end is None else self._offset(text_range.end)
        return self.text[start:end]


def make_engine(fake_loop, menu, provider=None, **options):
    config = TriggerConfig.from_mapping(options)
    provider = provider or FakeProvider(results=["urn"])
    engine = TriggerEngine(config, provider, menu, loop=fake_loop)
    return engine, provider


def insert_mode(engine, buffer_id=1, filetype="javascript", path="/src/sum.js"):
    engine.attach(BufferMeta(buffer_id=buffer_id, filetype=filetype, path=path))
    engine.on_mode_change(buffer_id, Mode.INSERT)
    return Editor(engine, buffer_id)


def lsp_items(*texts):
    return [Suggestion(text=t, source=SuggestionSource.LSP, rank=i) for i, t in enumerate(texts)]


async def settle(engine, buffer_id=1):
    pending = engine.dispatcher.get_pending(buffer_id)
    if pending is not None:
        await asyncio.gather(pending.task, return_exceptions=True)


class TestAutomaticTrigger:
    """Idle timer fires, request completes, menu updates."""

    @pytest.mark.asyncio
    async def test_codestral_suggestion_follows_lsp_items(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        engine.update_source(1, SuggestionSource.LSP, lsp_items("a", "b"))

        editor.type("ret")
        fake_loop.advance(0.8)
        assert engine.dispatcher.is_pending(1)
        await settle(engine)

        assert [s.text for s in menu.last] == ["a", "b", "return"]
        ai = menu.last[-1]
        assert ai.source is SuggestionSource.MISTRAL
        assert ai.insert_text == "urn"
        assert provider.requests[0].context.preceding_token == "ret"
        assert provider.requests[0].prefix == "ret"
        assert engine.metrics.successful_requests == 1

    @pytest.mark.asyncio
    async def test_next_keystroke_removes_codestral_items_from_menu(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        engine.update_source(1, SuggestionSource.LSP, lsp_items("a"))

        editor.type("ret")
        fake_loop.advance(0.8)
        await settle(engine)
        assert [s.text for s in menu.last] == ["a", "return"]
        published = len(menu.calls)

        editor.type("x")
        assert len(menu.calls) == published + 1
        assert [s.text for s in menu.last] == ["a"]

        editor.type("y")
        assert len(menu.calls) == published + 1

    @pytest.mark.asyncio
    async def test_typing_burst_fires_once_after_last_keystroke(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu)
        editor = insert_mode(engine)

        editor.type("r")
        fake_loop.advance(0.2)
        editor.type("e")
        fake_loop.advance(0.2)
        editor.type("t")

        fake_loop.advance(0.79)
        assert not engine.dispatcher.is_pending(1)

        fake_loop.advance(0.01)
        assert engine.dispatcher.is_pending(1)
        assert fake_loop.now == pytest.approx(1.2)
        assert engine.get_buffer_state(1).timer.fire_count == 1

        await settle(engine)
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_short_token_sends_nothing(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu)
        editor = insert_mode(engine)

        editor.type("re")
        fake_loop.advance(1.0)
        await asyncio.sleep(0)

        assert not engine.dispatcher.is_pending(1)
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_trigger_character_waives_length(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu, triggerCharacters=["."])
        editor = insert_mode(engine)

        editor.type("a.")
        fake_loop.advance(0.8)
        await settle(engine)

        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_leaving_insert_mode_cancels_timer(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu)
        editor = insert_mode(engine)

        editor.type("ret")
        engine.on_mode_change(1, Mode.NORMAL)
        assert engine.get_buffer_state(1).timer.state is TimerState.IDLE

        fake_loop.advance(1.0)
        assert not engine.dispatcher.is_pending(1)

    def test_edits_outside_insert_mode_arm_nothing(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        engine.attach(BufferMeta(buffer_id=1))
        Editor(engine).type("return")

        assert engine.get_buffer_state(1).mode is Mode.NORMAL
        assert fake_loop.active_handles() == []

    def test_out_of_order_edit_is_ignored(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        insert_mode(engine)
        engine.on_edit(1, 5, Position(0, 6), "return")
        engine.on_edit(1, 4, Position(0, 3), "ret")

        state = engine.get_buffer_state(1)
        assert state.epoch == 5
        assert state.line == "return"

    @pytest.mark.asyncio
    async def test_idle_delay_change_applies_to_next_arm(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        engine.config.idle_delay_ms = 300

        editor.type("ret")
        fake_loop.advance(0.3)
        assert engine.dispatcher.is_pending(1)
        await settle(engine)


class TestExclusion:
    """Excluded buffers never arm timers or reach the provider."""

    @pytest.mark.asyncio
    async def test_excluded_filetype(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu, excludedFiletypes=["markdown"])
        editor = insert_mode(engine, filetype="markdown", path="/notes/todo.md")

        editor.type("return")
        assert engine.get_buffer_state(1).timer.state is TimerState.IDLE
        assert fake_loop.active_handles() == []

        with pytest.raises(ExcludedContextError):
            await engine.force_complete(1)
        assert provider.requests == []

        report = engine.diagnose(1)
        assert report.excluded
        assert report.exclusion_reason == "filetype 'markdown'"
        assert report.last_error is FailureReason.EXCLUDED_CONTEXT

    @pytest.mark.asyncio
    async def test_excluded_path_pattern(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu, excludedPathPatterns=["*.env"])
        editor = insert_mode(engine, filetype="sh", path="/app/.secrets.env")

        editor.type("export")
        fake_loop.advance(1.0)

        assert provider.requests == []
        assert engine.diagnose(1).exclusion_reason == "path pattern '*.env'"

    def test_exclusion_added_while_timer_armed(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        editor.type("ret")

        engine.attach(BufferMeta(buffer_id=1, filetype="javascript", disabled=True))
        fake_loop.advance(1.0)

        assert not engine.dispatcher.is_pending(1)


class TestManualTrigger:
    """force_complete bypasses idle wait, mode and length."""

    @pytest.mark.asyncio
    async def test_works_in_normal_mode_with_short_token(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu, provider=FakeProvider(results=["eturn"]))
        editor = insert_mode(engine)
        editor.type("r")
        engine.on_mode_change(1, Mode.NORMAL)

        suggestions = await engine.force_complete(1)

        assert [s.text for s in suggestions] == ["return"]
        assert [s.text for s in menu.last] == ["return"]
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_cancels_armed_timer(self, fake_loop, menu):
        engine, provider = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        editor.type("ret")

        await engine.force_complete(1)
        fake_loop.advance(1.0)
        await asyncio.sleep(0)

        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_raises(self, fake_loop, menu):
        engine, _ = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=1.0), requestTimeoutMs=20
        )
        insert_mode(engine).type("ret")

        with pytest.raises(RequestTimeoutError):
            await engine.force_complete(1)

    @pytest.mark.asyncio
    async def test_unknown_buffer(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        with pytest.raises(ValueError):
            await engine.force_complete(42)


class TestFailures:
    """Failures leave the menu without AI items and show up in diagnose."""

    @pytest.mark.asyncio
    async def test_timeout_publishes_nothing(self, fake_loop, menu):
        engine, _ = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=1.0), requestTimeoutMs=20
        )
        editor = insert_mode(engine)
        engine.update_source(1, SuggestionSource.LSP, lsp_items("a"))

        editor.type("ret")
        fake_loop.advance(0.8)
        await settle(engine)

        assert [s.text for s in menu.last] == ["a"]
        report = engine.diagnose(1)
        assert report.last_error is FailureReason.REQUEST_TIMEOUT
        assert not report.request_pending

    @pytest.mark.asyncio
    async def test_stale_response_is_counted_and_dropped(self, fake_loop, menu):
        engine, _ = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=0.02)
        )
        editor = insert_mode(engine)

        editor.type("ret")
        fake_loop.advance(0.8)
        pending = engine.dispatcher.get_pending(1)
        editor.type("u")
        await asyncio.gather(pending.task, return_exceptions=True)

        assert all(s.source is not SuggestionSource.MISTRAL for s in menu.last)
        assert engine.diagnose(1).stale_responses == 1

    @pytest.mark.asyncio
    async def test_timeout_after_newer_edit_counts_as_stale(self, fake_loop, menu):
        engine, _ = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=1.0), requestTimeoutMs=30
        )
        editor = insert_mode(engine)

        editor.type("ret")
        fake_loop.advance(0.8)
        pending = engine.dispatcher.get_pending(1)
        editor.type("u")
        await asyncio.gather(pending.task, return_exceptions=True)

        report = engine.diagnose(1)
        assert report.last_error is None
        assert report.stale_responses == 1
        assert not report.request_pending
        assert engine.metrics.timeouts == 0

    @pytest.mark.asyncio
    async def test_missing_credentials(self, fake_loop, menu):
        engine, provider = make_engine(
            fake_loop, menu, provider=FakeProvider(status=AuthStatus.MISSING)
        )
        editor = insert_mode(engine)

        editor.type("ret")
        fake_loop.advance(0.8)

        assert not engine.dispatcher.is_pending(1)
        assert engine.auth_status() is AuthStatus.MISSING
        assert engine.diagnose(1).last_error is FailureReason.AUTH_MISSING

        with pytest.raises(AuthMissingError):
            await engine.force_complete(1)
        assert provider.requests == []


class TestLifecycle:
    """Toggle, close and shutdown."""

    @pytest.mark.asyncio
    async def test_toggle_disables_and_cancels(self, fake_loop, menu):
        engine, provider = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=1.0)
        )
        editor = insert_mode(engine)
        editor.type("ret")
        fake_loop.advance(0.8)
        pending = engine.dispatcher.get_pending(1)

        assert engine.toggle_enabled() is False
        await asyncio.gather(pending.task, return_exceptions=True)
        assert pending.task.cancelled()

        editor.type("urn")
        assert fake_loop.active_handles() == []
        with pytest.raises(ExcludedContextError):
            await engine.force_complete(1)
        assert engine.diagnose(1).exclusion_reason == "disabled globally"

        assert engine.toggle_enabled() is True
        editor.type("s")
        assert engine.get_buffer_state(1).timer.state is TimerState.ARMED

    @pytest.mark.asyncio
    async def test_buffer_close_cancels_everything(self, fake_loop, menu):
        engine, provider = make_engine(
            fake_loop, menu, provider=FakeProvider(results=["urn"], delay=1.0)
        )
        editor = insert_mode(engine)
        editor.type("ret")
        fake_loop.advance(0.8)
        pending = engine.dispatcher.get_pending(1)

        engine.on_buffer_closed(1)
        await asyncio.gather(pending.task, return_exceptions=True)

        assert pending.task.cancelled()
        assert engine.get_buffer_state(1) is None
        assert not engine.dispatcher.is_pending(1)
        assert engine.diagnose(1).edit_epoch == 0

    def test_diagnose_reports_live_state(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        editor = insert_mode(engine)
        editor.type("ret")

        report = engine.diagnose(1).to_dict()
        assert report["enabled"] is True
        assert report["excluded"] is False
        assert report["timer_state"] == "armed"
        assert report["edit_epoch"] == 3
        assert report["preceding_token"] == "ret"
        assert report["auth_status"] == "ok"

    @pytest.mark.asyncio
    async def test_shutdown(self, fake_loop, menu):
        engine, _ = make_engine(fake_loop, menu)
        insert_mode(engine).type("ret")

        await engine.shutdown()

        assert fake_loop.active_handles() == []
        assert engine.get_buffer_state(1) is None


class TestWholeBufferContext:
    """Text source and buffer-word suggestions."""

    @pytest.mark.asyncio
    async def test_prefix_suffix_and_buffer_words(self, fake_loop, menu):
        document = "const result = 1;\nfunction sum(a, b) {\n  re\n}"
        provider = FakeProvider(results=["turn a + b;"])
        engine = TriggerEngine(
            TriggerConfig(min_keyword_length=2),
            provider,
            menu,
            text_source=MultiLineText(document),
            word_source=BufferWordSource(),
            loop=fake_loop,
        )
        engine.attach(BufferMeta(buffer_id=1, filetype="javascript"))
        engine.on_mode_change(1, Mode.INSERT)
        engine.on_edit(1, 1, Position(2, 4), "  re")

        fake_loop.advance(0.8)
        assert [s.text for s in menu.last] == ["result"]
        await settle(engine)

        request = provider.requests[0]
        assert request.prefix == "const result = 1;\nfunction sum(a, b) {\n  re"
        assert request.suffix == "\n}"
        assert [(s.text, s.source) for s in menu.last] == [
            ("return a + b;", SuggestionSource.MISTRAL),
            ("result", SuggestionSource.BUFFER),
        ]
