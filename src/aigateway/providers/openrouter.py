"""OpenRouter text adapter over its OpenAI-compatible REST API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from aigateway.providers._http import ensure_ok, open_sse
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import require_messages
from aigateway.providers.openai import (
    build_chat_params,
    parse_chat_chunk,
    parse_chat_response,
)
from aigateway.types import (
    ChatMessage,
    ResponseMetadata,
    TextGenerationOptions,
    TextGenerationResponse,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from aigateway.config import ProviderConfig
    from aigateway.types import StreamFragment

OPENROUTER_API_URL = "https://openrouter.ai/api/v1"
_APP_TITLE = "aigateway"


class OpenRouterTextGeneration:
    """Text generation across the models routed by OpenRouter.

    Streams are SSE ``data:`` lines terminated by ``[DONE]``.
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Validate credentials eagerly; the HTTP client is built on first use."""
        self._config = config
        self._api_key = config.require_api_key()
        self._runner = CallRunner(config)
        self._url = f"{(config.base_url or OPENROUTER_API_URL).rstrip('/')}/chat/completions"
        self._client: httpx.AsyncClient | None = None

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": _APP_TITLE,
        }

    def _payload(
        self, messages: Sequence[ChatMessage], options: TextGenerationOptions | None
    ) -> dict[str, Any]:
        require_messages(messages, provider=self.provider)
        return {
            "model": self.model,
            **build_chat_params(messages, options, provider=self.provider),
        }

    async def generate_completion(
        self, prompt: str, options: TextGenerationOptions | None = None
    ) -> TextGenerationResponse:
        return await self.generate_chat_completion(
            [ChatMessage("user", prompt)], options
        )

    async def generate_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: TextGenerationOptions | None = None,
    ) -> TextGenerationResponse:
        payload = self._payload(messages, options)
        client = self._get_client()

        async def call() -> Any:
            response = await client.post(self._url, headers=self._headers, json=payload)
            await ensure_ok(response)
            return response.json()

        data = await self._runner.run(call)
        text, usage, finish_reason, model = parse_chat_response(data)
        return TextGenerationResponse(
            content=text,
            metadata=ResponseMetadata(
                model=model or self.model,
                provider=self.provider,
                usage=usage,
                credits=self._config.metering.text_credits(
                    usage, model=self.model, output_chars=len(text)
                ),
                finish_reason=finish_reason,
            ),
        )

    def stream_completion(
        self, prompt: str, options: TextGenerationOptions | None = None
    ) -> AsyncIterator[StreamFragment]:
        return self.stream_chat_completion([ChatMessage("user", prompt)], options)

    def stream_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: TextGenerationOptions | None = None,
    ) -> AsyncIterator[StreamFragment]:
        payload = {**self._payload(messages, options), "stream": True}
        client = self._get_client()

        async def open_stream() -> Any:
            return await open_sse(client, self._url, headers=self._headers, json=payload)

        return self._runner.stream(
            open_stream, parse_chat_chunk, meter=self._runner.text_meter()
        )

    async def aclose(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()
