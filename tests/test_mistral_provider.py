"""Mistral adapter contracts against a fake mistralai client."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aigateway.errors import ProviderTimeoutError
from aigateway.providers.mistral import MistralTextGeneration, parse_event
from aigateway.types import ChatMessage, TextGenerationOptions
from tests.conftest import make_config
from tests.helpers import FakeStream, collect, ns

pytestmark = pytest.mark.contract


def _adapter(**overrides: object) -> tuple[MistralTextGeneration, MagicMock]:
    adapter = MistralTextGeneration(make_config("mistral", "mistral-small-latest", **overrides))
    client = MagicMock()
    client.__aexit__ = AsyncMock(return_value=None)
    adapter._client = client
    return adapter, client


def _event(text: str | None = None, *, finish: str | None = None, usage: dict | None = None):
    choices = [ns(delta=ns(content=text), finish_reason=finish)] if text is not None or finish else []
    return ns(
        data=ns(
            choices=choices,
            usage=ns(**usage) if usage else None,
            model="mistral-small-2409",
        )
    )


@pytest.mark.asyncio
async def test_complete_maps_response() -> None:
    adapter, client = _adapter()
    client.chat.complete_async = AsyncMock(
        return_value=ns(
            choices=[ns(message=ns(content="Bonjour"), finish_reason="stop")],
            usage=ns(prompt_tokens=4, completion_tokens=2, total_tokens=6),
            model="mistral-small-2409",
        )
    )

    response = await adapter.generate_chat_completion(
        [ChatMessage("user", "salut")], TextGenerationOptions(temperature=1.9, stop=("\n",))
    )

    assert response.content == "Bonjour"
    assert response.metadata.model == "mistral-small-2409"
    assert response.metadata.usage.total_tokens == 6
    kwargs = client.chat.complete_async.await_args.kwargs
    assert kwargs["temperature"] == 1.5
    assert kwargs["stop"] == ["\n"]


def test_parse_event_handles_typed_content() -> None:
    event = ns(
        data=ns(
            choices=[
                ns(
                    delta=ns(
                        content=[
                            ns(type="thinking", thinking=[]),
                            ns(type="text", text="visible"),
                        ]
                    ),
                    finish_reason=None,
                )
            ],
            usage=None,
            model=None,
        )
    )
    assert parse_event(event).text == "visible"


@pytest.mark.asyncio
async def test_stream_events() -> None:
    adapter, client = _adapter()
    source = FakeStream(
        [
            _event("Hel"),
            _event("lo"),
            _event("", finish="stop", usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
        ]
    )
    client.chat.stream_async = AsyncMock(return_value=source)

    fragments = await collect(adapter.stream_completion("hi"))

    assert [f.content for f in fragments] == ["Hel", "lo", ""]
    assert fragments[-1].metadata.usage.total_tokens == 5
    assert fragments[-1].metadata.finish_reason == "stop"
    assert source.closed is True


@pytest.mark.asyncio
async def test_slow_call_times_out_per_attempt() -> None:
    adapter, client = _adapter(timeout_s=0.01)

    async def hang(**_kwargs: object) -> None:
        await asyncio.sleep(1)

    client.chat.complete_async = AsyncMock(side_effect=hang)

    with pytest.raises(ProviderTimeoutError):
        await adapter.generate_completion("hi")
    assert client.chat.complete_async.await_count == 3


@pytest.mark.asyncio
async def test_aclose_exits_client_context() -> None:
    adapter, client = _adapter()
    await adapter.aclose()
    client.__aexit__.assert_awaited_once_with(None, None, None)
