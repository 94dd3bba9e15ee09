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

"""Buffer exclusion rules.

Decides whether a buffer is eligible for triggering at all. A buffer is
excluded when:
1. The global toggle is off
2. The buffer carries its own disable flag
3. Its filetype is in the excluded set (case-insensitive)
4. Its path matches one of the excluded glob patterns

Missing metadata never excludes a buffer.
"""

from fnmatch import fnmatch
from pathlib import PurePath
from typing import Iterable, Optional

from codestral_trigger.completion.protocol import BufferMeta
from codestral_trigger.config import TriggerConfig


def matches_path_pattern(path: str, patterns: Iterable[str]) -> Optional[str]:
    """Return the first pattern matching the path, if any.

    Patterns are matched against the full path and against its base name,
    so "*.min.js" excludes minified files anywhere.

    Example:
        >>> matches_path_pattern("/tmp/app.min.js", {"*.min.js"})
        '*.min.js'
        >>> matches_path_pattern("src/main.py", {"*.min.js"}) is None
        True
    """
    if not path:
        return None
    name = PurePath(path).name
    for pattern in sorted(patterns):
        if fnmatch(path, pattern) or fnmatch(name, pattern):
            return pattern
    return None


class ExclusionFilter:
    """Evaluates exclusion rules against the shared config."""

    def __init__(self, config: TriggerConfig):
        self._config = config

    def reason(self, meta: Optional[BufferMeta]) -> Optional[str]:
        """Describe which rule excludes the buffer, or None if eligible."""
        if not self._config.enabled:
            return "disabled globally"
        if meta is None:
            return None
        if meta.disabled:
            return "disabled for buffer"

        filetype = meta.filetype.lower()
        if filetype and filetype in {ft.lower() for ft in self._config.excluded_filetypes}:
            return f"filetype '{meta.filetype}'"

        pattern = matches_path_pattern(meta.path, self._config.excluded_path_patterns)
        if pattern is not None:
            return f"path pattern '{pattern}'"
        return None

    def is_excluded(self, meta: Optional[BufferMeta]) -> bool:
        return self.reason(meta) is not None
