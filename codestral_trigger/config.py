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

"""Trigger engine and provider configuration.

A single TriggerConfig instance is created at plugin init and passed by
reference into the engine. The global enable toggle lives on it and is
only mutated through toggle_enabled() / set_enabled().
"""

import logging
import os
from typing import Any, List, Mapping, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

CODESTRAL_FIM_ENDPOINT = "https://codestral.mistral.ai/v1/fim/completions"
API_KEY_ENV_VARS = ("CODESTRAL_API_KEY", "MISTRAL_API_KEY")


class TriggerConfig(BaseModel):
    """Options controlling when a completion request fires."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    enabled: bool = Field(default=True, description="Global enable toggle")
    min_keyword_length: int = Field(
        default=3,
        ge=0,
        alias="minKeywordLength",
        description="Minimum token length before an automatic trigger fires",
    )
    idle_delay_ms: int = Field(
        default=800,
        ge=0,
        alias="idleDelayMs",
        description="Idle time after the last edit before evaluating a trigger",
    )
    request_timeout_ms: int = Field(
        default=2000,
        gt=0,
        alias="requestTimeoutMs",
        description="Hard deadline for a completion request",
    )
    excluded_filetypes: Set[str] = Field(
        default_factory=set,
        alias="excludedFiletypes",
        description="Filetypes never eligible for triggering",
    )
    excluded_path_patterns: Set[str] = Field(
        default_factory=set,
        alias="excludedPathPatterns",
        description="Glob patterns of paths never eligible for triggering",
    )
    trigger_characters: Set[str] = Field(
        default_factory=set,
        alias="triggerCharacters",
        description="Characters that waive the keyword length check (e.g. '.')",
    )

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None) -> "TriggerConfig":
        """Build a config from user options.

        Accepts both snake_case field names and camelCase option names.

        Raises:
            pydantic.ValidationError: If an option has an invalid value
        """
        return cls.model_validate(dict(options or {}))

    def toggle_enabled(self) -> bool:
        """Flip the global toggle and return the new state."""
        self.enabled = not self.enabled
        logger.info(f"Completion triggering {'enabled' if self.enabled else 'disabled'}")
        return self.enabled

    def set_enabled(self, value: bool) -> None:
        self.enabled = value


class ProviderConfig(BaseModel):
    """Connection settings for the Codestral FIM endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey", description="API key")
    endpoint: str = Field(default=CODESTRAL_FIM_ENDPOINT, description="FIM endpoint URL")
    model: str = Field(default="codestral-latest", description="Model name")
    max_tokens: int = Field(default=64, gt=0, alias="maxTokens", description="Max tokens")
    temperature: float = Field(default=0.0, ge=0.0, description="Sampling temperature")
    stop: List[str] = Field(default_factory=list, description="Stop sequences")

    def resolve_api_key(self) -> Optional[str]:
        """Return the configured key, falling back to the environment."""
        if self.api_key:
            return self.api_key
        for name in API_KEY_ENV_VARS:
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None
