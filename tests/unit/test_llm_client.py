"""Unit tests for the OpenAI-compatible chat adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest
from vaultmind.entities.llm.client import OpenAIChatClient
from vaultmind.entities.shared.errors import ErrorCategory, LlmRequestError
from vaultmind.entities.shared.protocols import ChatCompletionClient


def _mock_openai(message: dict | None = None) -> MagicMock:
    client = MagicMock()
    choices = []
    if message is not None:
        choices = [SimpleNamespace(message=MagicMock(model_dump=MagicMock(return_value=message)))]
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=choices))
    client.close = AsyncMock()
    return client


class TestOpenAIChatClient:
    """Request shaping and reply extraction."""

    async def test_minimal_request(self) -> None:
        openai_client = _mock_openai({"role": "assistant", "content": "hi"})
        client = OpenAIChatClient("gpt-4o-mini", client=openai_client)

        reply = await client.complete([{"role": "user", "content": "q"}])

        assert reply == {"role": "assistant", "content": "hi"}
        openai_client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o-mini", messages=[{"role": "user", "content": "q"}]
        )

    async def test_optional_arguments_forwarded(self) -> None:
        openai_client = _mock_openai({"role": "assistant", "content": "{}"})
        client = OpenAIChatClient("m", client=openai_client)
        functions = [{"name": "sql_query_tool", "parameters": {"type": "object"}}]

        await client.complete(
            [{"role": "user", "content": "q"}],
            functions=functions,
            function_call="auto",
            temperature=0.3,
            max_tokens=150,
        )

        kwargs = openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["functions"] == functions
        assert kwargs["function_call"] == "auto"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 150
        assert "tools" not in kwargs

    async def test_function_call_dropped_without_functions(self) -> None:
        openai_client = _mock_openai({"role": "assistant", "content": "x"})
        await OpenAIChatClient("m", client=openai_client).complete([], function_call="auto")
        assert "function_call" not in openai_client.chat.completions.create.await_args.kwargs

    async def test_no_choices(self) -> None:
        client = OpenAIChatClient("m", client=_mock_openai())
        with pytest.raises(LlmRequestError, match="no choices"):
            await client.complete([{"role": "user", "content": "q"}])

    async def test_transport_error_is_typed(self) -> None:
        openai_client = _mock_openai()
        openai_client.chat.completions.create.side_effect = openai.OpenAIError("Connection error.")
        client = OpenAIChatClient("m", client=openai_client)

        with pytest.raises(LlmRequestError) as exc_info:
            await client.complete([{"role": "user", "content": "q"}])

        assert str(exc_info.value) == "LLM request failed: Connection error."
        assert exc_info.value.category is ErrorCategory.LLM_ERROR
        assert isinstance(exc_info.value.__cause__, openai.OpenAIError)

    async def test_close(self) -> None:
        openai_client = _mock_openai()
        await OpenAIChatClient("m", client=openai_client).close()
        openai_client.close.assert_awaited_once()

    def test_satisfies_protocol(self) -> None:
        assert isinstance(OpenAIChatClient("m", client=_mock_openai()), ChatCompletionClient)
