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

"""Current-token extraction from the line under the cursor."""

import re

_TRAILING_WORD = re.compile(r"\w+$")


def _clamp(line: str, column: int) -> int:
    return max(0, min(column, len(line)))


def extract_token(line: str, column: int) -> str:
    """Return the identifier run ending right before the cursor.

    Args:
        line: Text of the cursor line
        column: Cursor column (0-indexed, clamped to the line)

    Returns:
        The token, or "" when the cursor follows whitespace or a symbol

    Example:
        >>> extract_token("  ret", 5)
        'ret'
        >>> extract_token("return ", 7)
        ''
    """
    match = _TRAILING_WORD.search(line[: _clamp(line, column)])
    return match.group(0) if match else ""


def preceding_char(line: str, column: int) -> str:
    """Return the character right before the cursor ("" at line start)."""
    column = _clamp(line, column)
    return line[column - 1] if column > 0 else ""
