"""Anthropic Messages API text adapter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aigateway.errors import APIError
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import (
    clamp,
    get_field,
    merge_turns,
    require_messages,
    split_system,
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

log = logging.getLogger(__name__)

# Messages API requires an explicit output budget
_DEFAULT_MAX_TOKENS = 1024


def parse_event(event: Any) -> StreamUpdate | None:
    """Reduce one Messages API stream event to a stream update."""
    kind = get_field(event, "type")
    if kind == "message_start":
        message = get_field(event, "message")
        usage = get_field(message, "usage")
        return StreamUpdate(
            input_tokens=usage_value(usage, "input_tokens"),
            output_tokens=usage_value(usage, "output_tokens"),
            model=get_field(message, "model"),
        )
    if kind == "content_block_delta":
        delta = get_field(event, "delta")
        if get_field(delta, "type") != "text_delta":
            return None
        return StreamUpdate(text=get_field(delta, "text") or "")
    if kind == "message_delta":
        delta = get_field(event, "delta")
        usage = get_field(event, "usage")
        return StreamUpdate(
            output_tokens=usage_value(usage, "output_tokens"),
            finish_reason=get_field(delta, "stop_reason"),
        )
    if kind == "message_stop":
        return StreamUpdate(done=True)
    # ping, content_block_start/stop
    return None


class AnthropicTextGeneration:
    """Claude text generation.

    System messages are hoisted into the ``system`` field and consecutive
    same-role turns are merged, since the API requires strict alternation.
    """

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
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise APIError(
                    "anthropic package not installed",
                    hint="uv pip install anthropic",
                ) from e
            self._client = AsyncAnthropic(
                api_key=self._api_key,
                base_url=self._config.base_url,
                max_retries=0,
            )
        return self._client

    def _params(
        self, messages: Sequence[ChatMessage], options: TextGenerationOptions | None
    ) -> dict[str, Any]:
        require_messages(messages, provider=self.provider)
        opts = options or TextGenerationOptions()
        system, rest = split_system(messages)
        turns = merge_turns([(m.role, m.content) for m in rest])

        max_tokens = clamp(
            opts.max_tokens, 1, None, field="max_tokens", provider=self.provider
        )
        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or _DEFAULT_MAX_TOKENS,
            "messages": [{"role": role, "content": content} for role, content in turns],
        }
        if system:
            params["system"] = system
        temperature = clamp(
            opts.temperature, 0.0, 1.0, field="temperature", provider=self.provider
        )
        if temperature is not None:
            params["temperature"] = temperature
        top_p = clamp(opts.top_p, 0.0, 1.0, field="top_p", provider=self.provider)
        if top_p is not None:
            params["top_p"] = top_p
        if opts.stop:
            params["stop_sequences"] = list(opts.stop)
        if opts.frequency_penalty is not None or opts.presence_penalty is not None:
            log.debug("Anthropic ignores frequency/presence penalties")
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

        response = await self._runner.run(lambda: client.messages.create(**params))

        text = extract_text(get_field(response, "content"))
        usage_raw = get_field(response, "usage")
        usage = TokenUsage.of(
            usage_value(usage_raw, "input_tokens"),
            usage_value(usage_raw, "output_tokens"),
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
                finish_reason=get_field(response, "stop_reason"),
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
            return await client.messages.create(stream=True, **params)

        return self._runner.stream(
            open_stream, parse_event, meter=self._runner.text_meter()
        )

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()
