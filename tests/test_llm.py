"""Tests for the LiteLLM-backed provider and the scripted mock provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from dagflow.errors import ProviderError
from dagflow.llm.litellm import LiteLLMProvider, parse_json_content
from dagflow.llm.mock import MockLLMProvider
from dagflow.llm.provider import LLMResponse


def completion(content: str, prompt_tokens: int = 7, completion_tokens: int = 3):
    return SimpleNamespace(
        model="openai/gpt-4o-mini",
        choices=[
            SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")
        ],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.mark.parametrize(
    "content,expected",
    [
        ('{"a": 1}', {"a": 1}),
        ('```json\n{"a": 1}\n```', {"a": 1}),
        ("```\n[1, 2]\n```", [1, 2]),
    ],
)
def test_parse_json_content(content, expected):
    assert parse_json_content(content) == expected


class TestLiteLLMProvider:
    @pytest.mark.asyncio
    async def test_plain_completion(self):
        provider = LiteLLMProvider(api_key="sk-test", temperature=0.2, max_tokens=256)
        messages = [{"role": "user", "content": "hi"}]

        mock = AsyncMock(return_value=completion("hey"))
        with patch("litellm.acompletion", new=mock) as acompletion:
            response = await provider.invoke(messages, "openai/gpt-4o-mini")

        acompletion.assert_awaited_once_with(
            model="openai/gpt-4o-mini",
            messages=messages,
            max_tokens=256,
            api_key="sk-test",
            temperature=0.2,
        )
        assert response.content == "hey"
        assert response.input_tokens == 7
        assert response.output_tokens == 3
        assert response.total_tokens == 10
        assert response.stop_reason == "stop"
        assert response.structured is None

    @pytest.mark.asyncio
    async def test_structured_completion(self):
        schema = {"type": "object", "properties": {"city": {"type": "string"}}}
        provider = LiteLLMProvider()

        with patch(
            "litellm.acompletion",
            new=AsyncMock(return_value=completion('{"city": "Paris"}')),
        ) as acompletion:
            response = await provider.invoke([{"role": "user", "content": "?"}], "m", schema)

        assert acompletion.await_args.kwargs["response_format"] == {
            "type": "json_schema",
            "json_schema": {"name": "answer", "schema": schema},
        }
        assert response.structured == {"city": "Paris"}

    @pytest.mark.asyncio
    async def test_invalid_structured_content(self):
        with patch(
            "litellm.acompletion",
            new=AsyncMock(return_value=completion("Paris")),
        ):
            with pytest.raises(ProviderError, match="invalid JSON"):
                await LiteLLMProvider().invoke([], "m", {"type": "object"})

    @pytest.mark.asyncio
    async def test_vendor_errors_become_provider_errors(self):
        with patch(
            "litellm.acompletion",
            new=AsyncMock(side_effect=RuntimeError("401 Unauthorized")),
        ):
            with pytest.raises(ProviderError, match="401 Unauthorized"):
                await LiteLLMProvider().invoke([], "m")


class TestMockLLMProvider:
    @pytest.mark.asyncio
    async def test_script_playback(self):
        scripted = LLMResponse(content="raw", model="x", input_tokens=1)
        provider = MockLLMProvider(["first", {"k": "v"}, scripted, ValueError("boom")])

        first = await provider.invoke([{"content": "a b"}], "m")
        second = await provider.invoke([], "m", {"type": "object"})
        third = await provider.invoke([], "m")

        assert (first.content, first.input_tokens, first.output_tokens) == ("first", 2, 1)
        assert second.structured == {"k": "v"}
        assert second.content == '{"k": "v"}'
        assert third is scripted
        with pytest.raises(ValueError):
            await provider.invoke([], "m")
        assert (await provider.invoke([], "m")).content == "mock response"
        assert len(provider.calls) == 5

    @pytest.mark.asyncio
    async def test_string_parsed_when_schema_requested(self):
        provider = MockLLMProvider(['{"n": 1}'])

        response = await provider.invoke([], "m", {"type": "object"})

        assert response.structured == {"n": 1}
