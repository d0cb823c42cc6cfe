"""Gemini adapter contracts against a fake google-genai client."""

from __future__ import annotations

from enum import Enum
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from aigateway.errors import ConfigurationError, NotAvailableError
from aigateway.providers.gemini import GoogleImageGeneration, GoogleTextGeneration
from aigateway.types import ChatMessage, TextGenerationOptions
from tests.conftest import make_config
from tests.helpers import FakeStream, collect, ns

pytestmark = pytest.mark.contract


class FinishReason(Enum):
    STOP = "STOP"


def _response(*parts: Any, finish: Any = None, usage: Any = None) -> Any:
    return ns(
        candidates=[ns(content=ns(parts=list(parts)), finish_reason=finish)],
        usage_metadata=usage,
        model_version="gemini-2.0-flash-001",
    )


def _adapter() -> tuple[GoogleTextGeneration, MagicMock]:
    adapter = GoogleTextGeneration(make_config("google", "gemini-2.0-flash"))
    client = MagicMock()
    client.aio.aclose = AsyncMock()
    adapter._client = client
    return adapter, client


@pytest.mark.asyncio
async def test_generate_maps_roles_and_config() -> None:
    adapter, client = _adapter()
    client.aio.models.generate_content = AsyncMock(
        return_value=_response(
            ns(text="thinking...", thought=True),
            ns(text="Answer"),
            finish=FinishReason.STOP,
            usage=ns(prompt_token_count=7, candidates_token_count=2, total_token_count=9),
        )
    )

    response = await adapter.generate_chat_completion(
        [
            ChatMessage("system", "Be terse."),
            ChatMessage("user", "q"),
            ChatMessage("assistant", "a"),
            ChatMessage("user", "q2"),
        ],
        TextGenerationOptions(max_tokens=50, temperature=2.5),
    )

    assert response.content == "Answer"
    assert response.metadata.finish_reason == "STOP"
    assert response.metadata.usage.total_tokens == 9

    kwargs = client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "gemini-2.0-flash"
    assert [c["role"] for c in kwargs["contents"]] == ["user", "model", "user"]
    config = kwargs["config"]
    assert config.system_instruction == "Be terse."
    assert config.max_output_tokens == 50
    assert config.temperature == 2.0


@pytest.mark.asyncio
async def test_stream_chunks() -> None:
    adapter, client = _adapter()
    source = FakeStream(
        [
            _response(ns(text="Hel")),
            _response(ns(text="lo")),
            _response(
                ns(text=""),
                finish="STOP",
                usage=ns(prompt_token_count=3, candidates_token_count=2, total_token_count=5),
            ),
        ]
    )
    client.aio.models.generate_content_stream = AsyncMock(return_value=source)

    fragments = await collect(adapter.stream_completion("hi"))

    assert [f.content for f in fragments] == ["Hel", "lo", ""]
    assert fragments[-1].metadata.usage.total_tokens == 5
    assert fragments[-1].metadata.finish_reason == "STOP"
    assert fragments[-1].metadata.model == "gemini-2.0-flash-001"


@pytest.mark.asyncio
async def test_aclose_closes_async_client() -> None:
    adapter, client = _adapter()
    await adapter.aclose()
    client.aio.aclose.assert_awaited_once()
    assert adapter._client is None


def test_image_adapter_requires_key() -> None:
    with pytest.raises(ConfigurationError):
        GoogleImageGeneration(make_config("google", "imagen-3", api_key=None))


@pytest.mark.asyncio
async def test_image_generation_is_not_available() -> None:
    adapter = GoogleImageGeneration(make_config("google", "imagen-3"))

    with pytest.raises(NotAvailableError) as exc_info:
        await adapter.generate_image("a fox")
    assert exc_info.value.retryable is False
    assert exc_info.value.hint is not None

    with pytest.raises(NotAvailableError):
        await adapter.generate_images("a fox", 2)
