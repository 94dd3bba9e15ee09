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

"""Mistral Codestral completion provider.

Sends Fill-In-the-Middle requests to the Codestral FIM endpoint and maps
HTTP failures onto the trigger error taxonomy.
"""

import logging
from typing import Any, Optional

import httpx

from codestral_trigger.completion.errors import (
    AuthInvalidError,
    AuthMissingError,
    TransportFailureError,
)
from codestral_trigger.completion.protocol import AuthStatus, CompletionRequest
from codestral_trigger.completion.provider import BaseCompletionProvider
from codestral_trigger.config import ProviderConfig

logger = logging.getLogger(__name__)

END_TOKENS = ("<|endoftext|>", "</s>", "<|im_end|>", "```", "<|end|>")

# Characters of the suffix compared against the completion tail
SUFFIX_OVERLAP_CHARS = 50


class CodestralProvider(BaseCompletionProvider):
    """Completion provider backed by the Codestral FIM API."""

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_context_lines: int = 100,
    ):
        """Initialize the provider.

        Args:
            config: Endpoint, model and credentials
            client: HTTP client (created lazily if not provided)
            max_context_lines: Lines of prefix / suffix sent with a request
        """
        self._config = config or ProviderConfig()
        self._client = client
        self._owns_client = client is None
        self._max_context_lines = max_context_lines
        self._rejected_key: Optional[str] = None

    @property
    def name(self) -> str:
        return "codestral"

    def auth_status(self) -> AuthStatus:
        api_key = self._config.resolve_api_key()
        if not api_key:
            return AuthStatus.MISSING
        if api_key == self._rejected_key:
            return AuthStatus.INVALID
        return AuthStatus.OK

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request_completion(self, request: CompletionRequest) -> list[str]:
        """Request FIM completions.

        Raises:
            AuthMissingError: No API key configured
            AuthInvalidError: API key rejected (HTTP 401 / 403)
            TransportFailureError: Any other HTTP or network failure
        """
        api_key = self._config.resolve_api_key()
        if not api_key:
            raise AuthMissingError("No Codestral API key configured")

        payload = self._build_payload(request)
        try:
            response = await self._get_client().post(
                self._config.endpoint,
                json=payload,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                self._rejected_key = api_key
                raise AuthInvalidError(f"Codestral rejected the API key (HTTP {status})")
            raise TransportFailureError(f"Codestral API error: HTTP {status}") from e
        except httpx.HTTPError as e:
            raise TransportFailureError(f"Cannot reach Codestral: {e}") from e

        self._rejected_key = None
        try:
            data = response.json()
        except ValueError as e:
            raise TransportFailureError("Codestral returned invalid JSON") from e

        completions = []
        for text in self._extract_completions(data):
            cleaned = self._clean_completion(text, request.suffix)
            if cleaned:
                completions.append(cleaned)
        return completions

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        """Build the FIM request body.

        The prefix is truncated to its last lines and the suffix to its
        first lines.
        """
        prefix_lines = request.prefix.split("\n")
        prefix = "\n".join(prefix_lines[-self._max_context_lines :])
        suffix_lines = request.suffix.split("\n")
        suffix = "\n".join(suffix_lines[: self._max_context_lines])

        payload: dict[str, Any] = {
            "model": self._config.model,
            "prompt": prefix,
            "suffix": suffix,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        if self._config.stop:
            payload["stop"] = list(self._config.stop)
        return payload

    def _extract_completions(self, data: Any) -> list[str]:
        """Extract completion texts from a response body."""
        if not isinstance(data, dict):
            return []
        texts = []
        for choice in data.get("choices") or []:
            if not isinstance(choice, dict):
                continue
            message = choice.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                texts.append(message["content"])
            elif isinstance(choice.get("text"), str):
                texts.append(choice["text"])
        return texts

    def _clean_completion(self, completion: str, suffix: str) -> str:
        """Clean up completion text.

        Removes end tokens, trailing whitespace and any overlap with the
        text already after the cursor.
        """
        for token in END_TOKENS:
            if completion.endswith(token):
                completion = completion[: -len(token)]

        completion = completion.rstrip()

        if suffix:
            suffix_start = suffix.lstrip()[:SUFFIX_OVERLAP_CHARS]
            if suffix_start and suffix_start in completion:
                completion = completion[: completion.find(suffix_start)].rstrip()

        return completion
