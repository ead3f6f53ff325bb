"""OpenAI-compatible chat-completions adapter.

Satisfies ``ChatCompletionClient`` over ``openai.AsyncOpenAI`` so any
OpenAI-compatible endpoint can serve the agent. Cancellation reaches the
HTTP request through asyncio task cancellation.
"""

from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from vaultmind.entities.shared.errors import LlmRequestError

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """``ChatCompletionClient`` backed by ``AsyncOpenAI``.

    Args:
        model: Model name sent with every request.
        api_key: API key for the endpoint.
        base_url: Endpoint base URL; the OpenAI API when ``None``.
        timeout: Per-request timeout in seconds.
        client: Prebuilt client, mainly for tests.
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        functions: list[dict[str, Any]] | None = None,
        function_call: str | dict[str, Any] | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Send one chat completion and return ``choices[0].message`` as a dict.

        Optional arguments are only sent when set, so endpoints that reject
        unknown fields still work.

        Raises:
            LlmRequestError: On transport or API errors, or a reply without
                choices.
        """
        request: dict[str, Any] = {"model": self._model, "messages": messages}
        if functions:
            request["functions"] = functions
            if function_call is not None:
                request["function_call"] = function_call
        if tools:
            request["tools"] = tools
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        logger.debug("Chat completion: model=%s messages=%d", self._model, len(messages))
        try:
            response = await self._client.chat.completions.create(**request)
        except OpenAIError as exc:
            logger.warning("Chat completion failed: %s", exc)
            raise LlmRequestError(f"LLM request failed: {exc}") from exc
        if not response.choices:
            raise LlmRequestError("LLM request failed: the completion returned no choices.")
        return response.choices[0].message.model_dump(exclude_none=True)

    async def close(self) -> None:
        await self._client.close()
