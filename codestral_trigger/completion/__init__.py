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

"""Inline completion triggering for editor integration.

Pipeline: exclusion filter -> keyword extraction -> debounce -> trigger
policy -> request dispatch -> suggestion merge -> publish.

Example usage:
    from codestral_trigger.config import ProviderConfig, TriggerConfig
    from codestral_trigger.completion import Mode, TriggerEngine
    from codestral_trigger.completion.providers import CodestralProvider

    engine = TriggerEngine(
        config=TriggerConfig(idle_delay_ms=800),
        provider=CodestralProvider(ProviderConfig()),
        publish=lambda buffer_id, items: menu.show(buffer_id, items),
    )

    # Forward editor events (from inside the event loop)
    engine.on_mode_change(1, Mode.INSERT)
    engine.on_edit(1, epoch=7, cursor=(3, 5), line="  ret")

    # Commands
    suggestions = await engine.force_complete(1)
    print(engine.diagnose(1).to_dict())
"""

from codestral_trigger.completion.debounce import DebounceTimer
from codestral_trigger.completion.dispatcher import RequestDispatcher
from codestral_trigger.completion.engine import BufferState, TriggerEngine
from codestral_trigger.completion.errors import (
    AuthInvalidError,
    AuthMissingError,
    ExcludedContextError,
    FailureReason,
    RequestTimeoutError,
    TransportFailureError,
    TriggerError,
)
from codestral_trigger.completion.exclusion import ExclusionFilter
from codestral_trigger.completion.keyword import extract_token, preceding_char
from codestral_trigger.completion.merger import SOURCE_PRIORITY, merge_suggestions
from codestral_trigger.completion.policy import TriggerPolicy
from codestral_trigger.completion.protocol import (
    AuthStatus,
    BufferDiagnostics,
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
from codestral_trigger.completion.provider import (
    BaseCompletionProvider,
    BufferTextSource,
    CompletionProvider,
)

__all__ = [
    # Protocol types
    "AuthStatus",
    "BufferDiagnostics",
    "BufferMeta",
    "CompletionMetrics",
    "CompletionRequest",
    "DiagnosticReport",
    "Mode",
    "PendingRequest",
    "Position",
    "Range",
    "Suggestion",
    "SuggestionSource",
    "TimerState",
    "TriggerContext",
    # Errors
    "AuthInvalidError",
    "AuthMissingError",
    "ExcludedContextError",
    "FailureReason",
    "RequestTimeoutError",
    "TransportFailureError",
    "TriggerError",
    # Pipeline
    "DebounceTimer",
    "ExclusionFilter",
    "RequestDispatcher",
    "SOURCE_PRIORITY",
    "TriggerPolicy",
    "extract_token",
    "merge_suggestions",
    "preceding_char",
    # Providers
    "BaseCompletionProvider",
    "BufferTextSource",
    "CompletionProvider",
    # Engine
    "BufferState",
    "TriggerEngine",
]
