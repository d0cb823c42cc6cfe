"""Google Gemini adapters (google-genai SDK)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aigateway.errors import APIError, NotAvailableError
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import (
    clamp,
    get_field,
    merge_turns,
    require_messages,
    split_system,
    usage_value,
)
from aigateway.streaming import StreamUpdate
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
    from aigateway.types import (
        ImageGenerationOptions,
        ImageGenerationResponse,
        StreamFragment,
    )

log = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "assistant": "model"}


def _candidate_text(response: Any) -> str:
    """Join the answer text of the first candidate, skipping thought parts."""
    candidates = get_field(response, "candidates") or []
    if not candidates:
        return ""
    content = get_field(candidates[0], "content")
    parts = get_field(content, "parts") or []
    texts: list[str] = []
    for part in parts:
        if get_field(part, "thought", False):
            continue
        text = get_field(part, "text")
        if isinstance(text, str):
            texts.append(text)
    return "".join(texts)


def _finish_reason(response: Any) -> str | None:
    candidates = get_field(response, "candidates") or []
    if not candidates:
        return None
    reason = get_field(candidates[0], "finish_reason")
    if reason is None:
        return None
    # SDK enums carry a .name; raw payloads are strings.
    return str(getattr(reason, "name", reason))


def _usage_fields(response: Any) -> dict[str, int | None]:
    um = get_field(response, "usage_metadata")
    return {
        "input_tokens": usage_value(um, "prompt_token_count"),
        "output_tokens": usage_value(um, "candidates_token_count"),
        "total_tokens": usage_value(um, "total_token_count"),
    }


def parse_chunk(chunk: Any) -> StreamUpdate:
    """Reduce one streamed GenerateContentResponse to a stream update."""
    return StreamUpdate(
        text=_candidate_text(chunk),
        finish_reason=_finish_reason(chunk),
        model=get_field(chunk, "model_version"),
        **_usage_fields(chunk),
    )


class GoogleTextGeneration:
    """Gemini text generation.

    System messages become ``system_instruction``; ``assistant`` turns are
    sent with the ``model`` role.
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
        """Lazily initialize and return the google-genai client."""
        if self._client is None:
            try:
                from google import genai
            except ImportError as e:
                raise APIError(
                    "google-genai package not installed",
                    hint="uv pip install google-genai",
                ) from e
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _request(
        self, messages: Sequence[ChatMessage], options: TextGenerationOptions | None
    ) -> dict[str, Any]:
        from google.genai import types

        require_messages(messages, provider=self.provider)
        opts = options or TextGenerationOptions()
        system, rest = split_system(messages)
        turns = merge_turns([(_ROLE_MAP[m.role], m.content) for m in rest])
        contents = [
            {"role": role, "parts": [{"text": content}]} for role, content in turns
        ]

        config_kwargs: dict[str, Any] = {}
        if system:
            config_kwargs["system_instruction"] = system
        values = {
            "max_output_tokens": clamp(
                opts.max_tokens, 1, None, field="max_tokens", provider=self.provider
            ),
            "temperature": clamp(
                opts.temperature, 0.0, 2.0, field="temperature", provider=self.provider
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
        config_kwargs.update({k: v for k, v in values.items() if v is not None})
        if opts.stop:
            config_kwargs["stop_sequences"] = list(opts.stop)

        return {
            "model": self.model,
            "contents": contents,
            "config": types.GenerateContentConfig(**config_kwargs),
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
        request = self._request(messages, options)
        client = self._get_client()

        response = await self._runner.run(
            lambda: client.aio.models.generate_content(**request)
        )
        if not response:
            raise APIError(
                "Gemini returned an empty response.",
                retryable=False,
                provider=self.provider,
                model=self.model,
                phase="generate",
            )

        text = _candidate_text(response)
        usage = TokenUsage.of(**_usage_fields(response))
        return TextGenerationResponse(
            content=text,
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                usage=usage,
                credits=self._config.metering.text_credits(
                    usage, model=self.model, output_chars=len(text)
                ),
                finish_reason=_finish_reason(response),
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
        request = self._request(messages, options)
        client = self._get_client()

        async def open_stream() -> Any:
            return await client.aio.models.generate_content_stream(**request)

        return self._runner.stream(
            open_stream, parse_chunk, meter=self._runner.text_meter()
        )

    async def aclose(self) -> None:
        """Release the client; google-genai holds no explicit async resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        aio = getattr(client, "aio", None)
        closer = getattr(aio, "aclose", None)
        if closer is not None:
            await closer()


class GoogleImageGeneration:
    """Image generation placeholder for Google.

    Imagen requires Vertex AI, which this gateway does not wire up; every call
    raises NotAvailableError rather than silently doing nothing.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        config.require_api_key()

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    def supported_sizes(self) -> list[str]:
        return ["1024x1024"]

    def _unavailable(self) -> NotAvailableError:
        return NotAvailableError(
            "Google image generation requires Vertex AI and is not available",
            provider=self.provider,
            model=self.model,
            hint="Use provider='openai' or provider='pollinations' for images.",
        )

    async def generate_image(
        self, prompt: str, options: ImageGenerationOptions | None = None
    ) -> ImageGenerationResponse:
        raise self._unavailable()

    async def generate_images(
        self,
        prompt: str,
        count: int,
        options: ImageGenerationOptions | None = None,
    ) -> list[ImageGenerationResponse]:
        raise self._unavailable()

    async def aclose(self) -> None:
        return None
