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

"""Buffer-word suggestion source.

Suggests words already present in the buffer that extend the current token.
"""

import re

from codestral_trigger.completion.protocol import Suggestion, SuggestionSource

_WORD = re.compile(r"\w+")


class BufferWordSource:
    """Collects completions for a token from buffer text."""

    def __init__(self, min_word_length: int = 3, max_items: int = 10):
        """Initialize the source.

        Args:
            min_word_length: Shorter words are never suggested
            max_items: Maximum suggestions returned
        """
        self._min_word_length = min_word_length
        self._max_items = max_items

    @property
    def name(self) -> str:
        return "buffer"

    def suggest(self, text: str, token: str) -> list[Suggestion]:
        """Return buffer words starting with the token.

        Words equal to the token are skipped and duplicates collapse to
        their first occurrence.
        """
        if not token:
            return []

        seen: set[str] = set()
        suggestions: list[Suggestion] = []
        for match in _WORD.finditer(text):
            word = match.group(0)
            if word in seen or word == token:
                continue
            if len(word) < self._min_word_length or not word.startswith(token):
                continue
            seen.add(word)
            suggestions.append(
                Suggestion(
                    text=word,
                    source=SuggestionSource.BUFFER,
                    rank=len(suggestions),
                    insert_text=word[len(token) :],
                    detail="Buffer",
                )
            )
            if len(suggestions) >= self._max_items:
                break
        return suggestions
