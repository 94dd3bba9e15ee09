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

"""Remote completion provider interface.

Providers are called from an asyncio task owned by the dispatcher.
Cancelling that task is how a request is cancelled, so implementations
must let asyncio.CancelledError propagate.
"""

from abc import ABC, abstractmethod
from typing import Protocol, Sequence, Union, runtime_checkable

from codestral_trigger.completion.protocol import AuthStatus, CompletionRequest, Range

CompletionResult = Union[str, Sequence[str]]


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for remote completion providers."""

    @property
    def name(self) -> str:
        """Unique identifier for this provider."""
        ...

    def auth_status(self) -> AuthStatus:
        """Return the state of the provider credentials."""
        ...

    async def request_completion(self, request: CompletionRequest) -> CompletionResult:
        """Request completions for the text around the cursor.

        Args:
            request: Context snapshot plus prefix / suffix text

        Returns:
            One completion string or a list of them, in provider order

        Raises:
            AuthMissingError: No credentials configured
            AuthInvalidError: Credentials rejected
            TransportFailureError: Network or server failure
        """
        ...


@runtime_checkable
class BufferTextSource(Protocol):
    """Editor-side text access."""

    def get_text(self, buffer_id: int, text_range: Range) -> str:
        """Return the buffer text inside the range."""
        ...


class BaseCompletionProvider(ABC):
    """Abstract base class for completion providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider."""
        ...

    def auth_status(self) -> AuthStatus:
        """Default implementation needs no credentials."""
        return AuthStatus.OK

    @abstractmethod
    async def request_completion(self, request: CompletionRequest) -> CompletionResult:
        """Request completions for the text around the cursor."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def normalize_completions(result: CompletionResult) -> list[str]:
    """Turn a provider result into a list of non-empty completions."""
    if result is None:
        return []
    if isinstance(result, str):
        items: Sequence[str] = [result]
    else:
        items = result
    return [item for item in items if isinstance(item, str) and item]
