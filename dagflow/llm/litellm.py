"""LiteLLM provider - one interface over every model vendor LiteLLM supports.

Model references use LiteLLM's ``provider/model`` naming, for example
``anthropic/claude-sonnet-4-20250514`` or ``openai/gpt-4o-mini``. Credentials
come from the usual vendor environment variables unless ``api_key`` is given.
"""

import json
import logging
import re
from typing import Any

import litellm

from dagflow.errors import ProviderError
from dagflow.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_json_content(content: str) -> Any:
    """Parse a model's JSON answer, tolerating a surrounding code fence."""
    text = content.strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1)
    return json.loads(text)


class LiteLLMProvider(LLMProvider):
    """
    Model invocation through ``litellm.acompletion``.

    Structured answers are requested with a ``json_schema`` response format
    and parsed from the message content.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float | None = None,
        max_tokens: int = 4096,
        **kwargs: Any,
    ):
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.extra_kwargs = kwargs

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str,
        output_schema: dict[str, Any] | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            **self.extra_kwargs,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if output_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "answer", "schema": output_schema},
            }
        return kwargs

    async def invoke(
        self,
        messages: list[dict[str, Any]],
        model: str,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(messages, model, output_schema)
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise ProviderError(f"{model}: {e}") from e

        choice = response.choices[0]
        content = choice.message.content or ""
        usage = getattr(response, "usage", None)

        structured = None
        if output_schema is not None:
            try:
                structured = parse_json_content(content)
            except json.JSONDecodeError as e:
                raise ProviderError(f"{model} returned invalid JSON: {e}") from e

        logger.debug(
            f"litellm {model}: {getattr(usage, 'prompt_tokens', 0)} in, "
            f"{getattr(usage, 'completion_tokens', 0)} out"
        )
        return LLMResponse(
            content=content,
            model=getattr(response, "model", None) or model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            structured=structured,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )
