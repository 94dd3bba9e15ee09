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

"""Fire / no-fire decision for a trigger context.

Pure functions of the context and the config: no timers, no network.
"""

from typing import Optional

from codestral_trigger.completion.errors import FailureReason
from codestral_trigger.completion.protocol import Mode, TriggerContext
from codestral_trigger.config import TriggerConfig


class TriggerPolicy:
    """Applies the trigger rules.

    An automatic trigger fires only when all hold:
    - the buffer is not excluded
    - the buffer is in INSERT mode
    - the token is at least min_keyword_length long, or the character
      before the cursor is one of the configured trigger characters

    A manual trigger only requires the buffer not to be excluded.
    """

    def __init__(self, config: TriggerConfig):
        self._config = config

    def decide(
        self,
        context: TriggerContext,
        excluded: bool,
        manual: bool = False,
    ) -> Optional[FailureReason]:
        """Return why the trigger must not fire, or None to fire."""
        if excluded:
            return FailureReason.EXCLUDED_CONTEXT
        if manual:
            return None
        if context.mode != Mode.INSERT:
            return FailureReason.WRONG_MODE
        if len(context.preceding_token) >= self._config.min_keyword_length:
            return None
        if context.preceding_char and context.preceding_char in self._config.trigger_characters:
            return None
        return FailureReason.TOKEN_TOO_SHORT

    def should_trigger(
        self,
        context: TriggerContext,
        excluded: bool,
        manual: bool = False,
    ) -> bool:
        return self.decide(context, excluded, manual=manual) is None
