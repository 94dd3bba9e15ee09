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

"""Priority merge of suggestions coming from several sources."""

import logging
from typing import Mapping, Optional, Sequence, Union

from codestral_trigger.completion.protocol import Suggestion, SuggestionSource

logger = logging.getLogger(__name__)

# Lower index is shown first
SOURCE_PRIORITY: tuple[SuggestionSource, ...] = tuple(
    sorted(SuggestionSource, key=lambda source: source.value)
)

SourceKey = Union[SuggestionSource, str]


def _coerce_source(key: SourceKey) -> Optional[SuggestionSource]:
    if isinstance(key, SuggestionSource):
        return key
    try:
        return SuggestionSource[str(key).upper()]
    except KeyError:
        return None


def merge_suggestions(
    sources: Optional[Mapping[SourceKey, Optional[Sequence[Suggestion]]]],
) -> list[Suggestion]:
    """Merge per-source suggestion lists into one menu order.

    Sources are concatenated by fixed priority (LSP, MISTRAL, BUFFER, OTHER),
    each keeping the order its provider returned. Missing, None and empty
    sources are skipped.

    Args:
        sources: Mapping of source (enum or name such as "lsp") to suggestions

    Returns:
        Merged suggestions

    Example:
        >>> lsp = [Suggestion("a", SuggestionSource.LSP)]
        >>> ai = [Suggestion("c", SuggestionSource.MISTRAL)]
        >>> [s.text for s in merge_suggestions({SuggestionSource.MISTRAL: ai,
        ...                                     SuggestionSource.LSP: lsp})]
        ['a', 'c']
    """
    if not sources:
        return []

    by_source: dict[SuggestionSource, list[Suggestion]] = {}
    for key, items in sources.items():
        source = _coerce_source(key)
        if source is None:
            logger.debug(f"Treating unknown suggestion source {key!r} as OTHER")
            source = SuggestionSource.OTHER
        if items:
            by_source.setdefault(source, []).extend(items)

    merged: list[Suggestion] = []
    for source in SOURCE_PRIORITY:
        merged.extend(by_source.get(source, ()))
    return merged
