"""LLM provider abstraction."""

from dagflow.llm.litellm import LiteLLMProvider
from dagflow.llm.mock import MockLLMProvider
from dagflow.llm.provider import LLMProvider, LLMResponse

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "MockLLMProvider",
]
