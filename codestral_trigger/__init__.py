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

"""Codestral inline completion trigger engine.

Decides from a live stream of editor events when to request an AI code
suggestion, sends the request to Mistral Codestral, and merges the result
with language-server and buffer-word suggestions.

Package Structure:
    config.py                  - TriggerConfig / ProviderConfig (pydantic)
    completion/protocol.py     - Shared data types
    completion/errors.py       - Failure taxonomy
    completion/exclusion.py    - Buffer exclusion rules
    completion/keyword.py      - Token before the cursor
    completion/debounce.py     - Idle-delay timer
    completion/policy.py       - Fire / no-fire decision
    completion/dispatcher.py   - In-flight request ownership
    completion/merger.py       - Source-priority merge
    completion/engine.py       - Editor-facing facade
    completion/providers/      - Codestral client and buffer words
"""

from codestral_trigger.completion import TriggerEngine
from codestral_trigger.config import ProviderConfig, TriggerConfig

__version__ = "0.1.0"

__all__ = [
    "ProviderConfig",
    "TriggerConfig",
    "TriggerEngine",
    "__version__",
]
