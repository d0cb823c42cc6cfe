"""Mistral chat text adapter (mistralai SDK)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aigateway.errors import APIError
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import (
    clamp,
    get_field,
    require_messages,
    usage_value,
)
from aigateway.streaming import StreamUpdate, extract_text
from aigateway.types import (
    ChatMessage,
    ResponseMetadata,
    TextGenerationOptions,
    TextGenerationResponse,
    TokenUsage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from aigateway.config import ProviderConfig
    from aigateway.types import StreamFragment


def parse_event(event: Any) -> StreamUpdate:
    """Reduce one Mistral stream event (``event.data`` is the chunk)."""
    chunk = get_field(event, "data", event)
    choices = get_field(chunk, "choices") or []
    text = ""
    finish_reason = None
    if choices:
        delta = get_field(choices[0], "delta")
        # Content may be a string or a list of typed chunks (text, thinking, ...)
        text = extract_text(get_field(delta, "content"))
        finish_reason = get_field(choices[0], "finish_reason")
    usage = get_field(chunk, "usage")
    return StreamUpdate(
        text=text,
        input_tokens=usage_value(usage, "prompt_tokens"),
        output_tokens=usage_value(usage, "completion_tokens"),
        total_tokens=usage_value(usage, "total_tokens"),
        finish_reason=str(finish_reason) if finish_reason else None,
        model=get_field(chunk, "model"),
    )


class MistralTextGeneration:
    """Mistral chat completions."""

    def __init__(self, config: ProviderConfig) -> None:
        """Validate credentials eagerly; the SDK client is built on first use."""
        self._config = config
        self._api_key = config.require_api_key()
        self._runner = CallRunner(config)
        self._client: Any = None

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    def _get_client(self) -> Any:
        """Lazily initialize and return the Mistral client."""
        if self._client is None:
            try:
                from mistralai import Mistral
                from mistralai.utils import BackoffStrategy, RetryConfig
            except ImportError as e:
                raise APIError(
                    "mistralai package not installed",
                    hint="uv pip install mistralai",
                ) from e
            # SDK backoff is on by default for chat; the gateway owns retries.
            self._client = Mistral(
                api_key=self._api_key,
                server_url=self._config.base_url,
                retry_config=RetryConfig("none", BackoffStrategy(0, 0, 1.0, 0), False),
            )
        return self._client

    def _params(
        self, messages: Sequence[ChatMessage], options: TextGenerationOptions | None
    ) -> dict[str, Any]:
        require_messages(messages, provider=self.provider)
        opts = options or TextGenerationOptions()
        params: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        values = {
            "max_tokens": clamp(
                opts.max_tokens, 1, None, field="max_tokens", provider=self.provider
            ),
            "temperature": clamp(
                opts.temperature, 0.0, 1.5, field="temperature", provider=self.provider
            ),
            "top_p": clamp(opts.top_p, 0.0, 1.0, field="top_p", provider=self.provider),
            "frequency_penalty": clamp(
                opts.frequency_penalty,
                -2.0,
                2.0,
                field="frequency_penalty",
                provider=self.provider,
            ),
            "presence_penalty": clamp(
                opts.presence_penalty,
                -2.0,
                2.0,
                field="presence_penalty",
                provider=self.provider,
            ),
        }
        params.update({k: v for k, v in values.items() if v is not None})
        if opts.stop:
            params["stop"] = list(opts.stop)
        return params

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
        params = self._params(messages, options)
        client = self._get_client()

        response = await self._runner.run(lambda: client.chat.complete_async(**params))

        choices = get_field(response, "choices") or []
        text = ""
        finish_reason = None
        if choices:
            text = extract_text(get_field(get_field(choices[0], "message"), "content"))
            finish_reason = get_field(choices[0], "finish_reason")
        usage_raw = get_field(response, "usage")
        usage = TokenUsage.of(
            usage_value(usage_raw, "prompt_tokens"),
            usage_value(usage_raw, "completion_tokens"),
            usage_value(usage_raw, "total_tokens"),
        )
        return TextGenerationResponse(
            content=text,
            metadata=ResponseMetadata(
                model=get_field(response, "model") or self.model,
                provider=self.provider,
                usage=usage,
                credits=self._config.metering.text_credits(
                    usage, model=self.model, output_chars=len(text)
                ),
                finish_reason=str(finish_reason) if finish_reason else None,
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
        params = self._params(messages, options)
        client = self._get_client()

        async def open_stream() -> Any:
            return await client.chat.stream_async(**params)

        return self._runner.stream(
            open_stream, parse_event, meter=self._runner.text_meter()
        )

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.__aexit__(None, None, None)
