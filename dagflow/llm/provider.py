"""LLM Provider abstraction for pluggable model backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class LLMResponse:
    """Response from a model invocation."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    structured: Any = None  # Parsed answer when an output schema was requested
    stop_reason: str = ""
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMProvider(ABC):
    """
    Abstract model-invocation capability.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Token counting
    - Raising ProviderError on transport or auth failure
    """

    @abstractmethod
    async def invoke(
        self,
        messages: list[dict[str, Any]],
        model: str,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """
        Run one completion.

        Args:
            messages: Conversation [{role: "system"|"user"|"assistant", content: str}]
            model: Model reference, e.g. "anthropic/claude-sonnet-4-20250514"
            output_schema: Optional JSON schema; when given, the provider asks
                for structured output and fills ``LLMResponse.structured``

        Returns:
            LLMResponse with content, token usage and the structured answer
        """
