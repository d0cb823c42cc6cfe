"""REST adapters (OpenRouter, Pollinations, Hugging Face) over httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from aigateway.errors import (
    APIError,
    ConfigurationError,
    InvalidRequestError,
    RateLimitError,
)
from aigateway.providers.huggingface import (
    HuggingFaceSpeechSynthesis,
    resolve_model_id,
)
from aigateway.providers.openrouter import OpenRouterTextGeneration
from aigateway.providers.pollinations import PollinationsImageGeneration
from aigateway.types import ImageGenerationOptions, SpeechSynthesisOptions
from tests.conftest import make_config
from tests.helpers import collect

pytestmark = pytest.mark.contract


class Recorder:
    """Scripted MockTransport handler that records requests.

    The last response repeats; each request gets a fresh copy.
    """

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        template = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(
            template.status_code, headers=template.headers, content=template.content
        )


def _install(adapter: Any, handler: Any) -> None:
    adapter._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _sse(*events: dict[str, Any]) -> bytes:
    lines = [": OPENROUTER PROCESSING\n\n"]
    lines += [f"data: {json.dumps(e)}\n\n" for e in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


# =============================================================================
# OpenRouter
# =============================================================================


@pytest.mark.asyncio
async def test_openrouter_completion() -> None:
    adapter = OpenRouterTextGeneration(make_config("openrouter", "meta-llama/llama-3.1-8b-instruct"))
    handler = Recorder(
        httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "hey"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
                "model": "meta-llama/llama-3.1-8b-instruct",
            },
        )
    )
    _install(adapter, handler)

    response = await adapter.generate_completion("hi")

    assert response.content == "hey"
    assert response.metadata.usage.total_tokens == 4
    request = handler.requests[0]
    assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"
    assert request.headers["X-Title"] == "aigateway"
    body = json.loads(request.content)
    assert body["model"] == "meta-llama/llama-3.1-8b-instruct"
    assert body["messages"] == [{"role": "user", "content": "hi"}]
    await adapter.aclose()


@pytest.mark.asyncio
async def test_openrouter_rate_limit_retried() -> None:
    adapter = OpenRouterTextGeneration(make_config("openrouter", "openai/gpt-4o"))
    handler = Recorder(
        httpx.Response(429, headers={"Retry-After": "0"}, text="slow down"),
        httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}),
    )
    _install(adapter, handler)

    response = await adapter.generate_completion("hi")

    assert response.content == "ok"
    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_openrouter_rate_limit_exhausted() -> None:
    adapter = OpenRouterTextGeneration(make_config("openrouter", "openai/gpt-4o"))
    handler = Recorder(httpx.Response(429, text="slow down"))
    _install(adapter, handler)

    with pytest.raises(RateLimitError) as exc_info:
        await adapter.generate_completion("hi")

    assert len(handler.requests) == 3
    assert "slow down" in str(exc_info.value)


@pytest.mark.asyncio
async def test_openrouter_stream() -> None:
    adapter = OpenRouterTextGeneration(make_config("openrouter", "openai/gpt-4o"))
    handler = Recorder(
        httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=_sse(
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
                {"choices": [], "usage": {"prompt_tokens": 2, "completion_tokens": 2, "total_tokens": 4}},
            ),
        )
    )
    _install(adapter, handler)

    fragments = await collect(adapter.stream_completion("hi"))

    assert [f.content for f in fragments] == ["Hel", "lo", ""]
    assert fragments[-1].metadata.usage.total_tokens == 4
    assert fragments[-1].metadata.finish_reason == "stop"
    assert json.loads(handler.requests[0].content)["stream"] is True


@pytest.mark.asyncio
async def test_openrouter_stream_auth_failure() -> None:
    adapter = OpenRouterTextGeneration(make_config("openrouter", "openai/gpt-4o"))
    handler = Recorder(httpx.Response(401, json={"error": "bad key"}))
    _install(adapter, handler)

    with pytest.raises(InvalidRequestError) as exc_info:
        await collect(adapter.stream_completion("hi"))

    assert exc_info.value.status_code == 401
    assert "OPENROUTER_API_KEY" in (exc_info.value.hint or "")
    assert len(handler.requests) == 1


def test_openrouter_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        OpenRouterTextGeneration(make_config("openrouter", "openai/gpt-4o", api_key=None))


# =============================================================================
# Pollinations
# =============================================================================


def _png() -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG")


@pytest.mark.asyncio
async def test_pollinations_image_url() -> None:
    adapter = PollinationsImageGeneration(make_config("pollinations", "flux", api_key=None))
    handler = Recorder(_png())
    _install(adapter, handler)

    image = await adapter.generate_image("a red fox", ImageGenerationOptions(size="512x512"))

    parts = urlsplit(image.url)
    assert parts.path == "/prompt/a%20red%20fox"
    query = parse_qs(parts.query)
    assert query["width"] == ["512"]
    assert query["height"] == ["512"]
    assert query["nologo"] == ["true"]
    assert query["model"] == ["flux"]
    assert 0 <= int(query["seed"][0]) < 1_000_000
    assert (image.width, image.height) == (512, 512)
    assert image.metadata.credits == 3
    assert str(handler.requests[0].url) == image.url


@pytest.mark.asyncio
async def test_pollinations_retries_non_image_payload() -> None:
    adapter = PollinationsImageGeneration(make_config("pollinations", "flux"))
    handler = Recorder(
        httpx.Response(200, headers={"content-type": "text/html"}, text="<html>"),
        _png(),
    )
    _install(adapter, handler)

    image = await adapter.generate_image("fox")
    assert image.width == 1024
    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_pollinations_batch_keeps_successes() -> None:
    adapter = PollinationsImageGeneration(make_config("pollinations", "flux"))
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(400, text="bad prompt")
        return _png()

    _install(adapter, handler)

    images = await adapter.generate_images("fox", 3)
    assert len(images) == 2


@pytest.mark.asyncio
async def test_pollinations_batch_all_failed() -> None:
    adapter = PollinationsImageGeneration(make_config("pollinations", "flux"))
    _install(adapter, Recorder(httpx.Response(400, text="bad prompt")))

    with pytest.raises(APIError, match="Failed to generate any of 2"):
        await adapter.generate_images("fox", 2)


# =============================================================================
# Hugging Face
# =============================================================================


def test_resolve_model_id() -> None:
    assert resolve_model_id("speecht5") == "microsoft/speecht5_tts"
    assert resolve_model_id("espnet/kan-bayashi_ljspeech_vits") == "espnet/kan-bayashi_ljspeech_vits"
    assert resolve_model_id("unknown") == "microsoft/speecht5_tts"


@pytest.mark.asyncio
async def test_huggingface_synthesis_after_model_loading() -> None:
    adapter = HuggingFaceSpeechSynthesis(make_config("huggingface", "mms-tts-eng"))
    handler = Recorder(
        httpx.Response(503, headers={"Retry-After": "0"}, json={"error": "Model is loading"}),
        httpx.Response(200, headers={"content-type": "audio/flac"}, content=b"fLaC"),
    )
    _install(adapter, handler)

    response = await adapter.synthesize_speech("hello world", SpeechSynthesisOptions(speed=2.0))

    assert response.audio == b"fLaC"
    assert response.format == "flac"
    assert response.mime_type == "audio/flac"
    assert response.metadata.credits == 0
    assert len(handler.requests) == 2
    request = handler.requests[-1]
    assert request.url.path.endswith("/facebook/mms-tts-eng")
    assert request.headers["Authorization"] == "Bearer test-key"
    assert json.loads(request.content) == {"inputs": "hello world"}


@pytest.mark.asyncio
async def test_huggingface_without_token() -> None:
    adapter = HuggingFaceSpeechSynthesis(make_config("huggingface", "speecht5", api_key=None))
    handler = Recorder(httpx.Response(200, headers={"content-type": "audio/wav"}, content=b"RIFF"))
    _install(adapter, handler)

    response = await adapter.synthesize_speech("hi")

    assert response.format == "wav"
    assert "Authorization" not in handler.requests[0].headers


@pytest.mark.asyncio
async def test_huggingface_empty_audio() -> None:
    adapter = HuggingFaceSpeechSynthesis(make_config("huggingface", "speecht5"))
    _install(adapter, Recorder(httpx.Response(200, content=b"")))

    with pytest.raises(APIError, match="empty audio"):
        await adapter.synthesize_speech("hi")
