"""Mock LLM provider for tests and offline runs."""

import json
from typing import Any

from dagflow.llm.provider import LLMProvider, LLMResponse


class MockLLMProvider(LLMProvider):
    """Plays back scripted responses in order.

    Each script entry may be:
    - a str: returned as the content
    - a dict or list: returned as the structured answer (content is its JSON)
    - an LLMResponse: returned as-is
    - an exception instance: raised

    When the script runs out, ``default_content`` is returned. Every call is
    recorded in ``calls``.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        default_content: str = "mock response",
    ):
        self._responses: list[Any] = list(responses or [])
        self.default_content = default_content
        self.calls: list[dict[str, Any]] = []

    async def invoke(
        self,
        messages: list[dict[str, Any]],
        model: str,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "model": model, "output_schema": output_schema})
        item = self._responses.pop(0) if self._responses else self.default_content

        if isinstance(item, BaseException):
            raise item
        if isinstance(item, LLMResponse):
            return item

        input_tokens = sum(len(str(m.get("content", "")).split()) for m in messages)
        if isinstance(item, str):
            content, structured = item, None
            if output_schema is not None:
                try:
                    structured = json.loads(item)
                except json.JSONDecodeError:
                    structured = item
        else:
            content, structured = json.dumps(item), item

        return LLMResponse(
            content=content,
            model=model,
            input_tokens=input_tokens,
            output_tokens=len(content.split()),
            structured=structured,
            stop_reason="end_turn",
        )
