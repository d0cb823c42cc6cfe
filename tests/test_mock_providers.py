"""Offline mock adapters: deterministic behavior through the shared runtime."""

from __future__ import annotations

import pytest

from aigateway.errors import InvalidRequestError
from aigateway.providers.mock import (
    MockImageGeneration,
    MockSpeechSynthesis,
    MockTextGeneration,
    MockTranscription,
)
from aigateway.types import (
    AudioFile,
    ChatMessage,
    ImageGenerationOptions,
    SpeechSynthesisOptions,
)
from tests.conftest import make_config
from tests.helpers import collect

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_text_echoes_last_user_message() -> None:
    adapter = MockTextGeneration(make_config("mock", "mock"))
    response = await adapter.generate_chat_completion(
        [
            ChatMessage("system", "be brief"),
            ChatMessage("user", "first"),
            ChatMessage("assistant", "ok"),
            ChatMessage("user", "second"),
        ]
    )
    assert response.content == "echo: second"
    assert response.metadata.provider == "mock"
    assert response.metadata.finish_reason == "stop"
    assert response.metadata.usage.total_tokens > 0


@pytest.mark.asyncio
async def test_stream_matches_blocking_reply() -> None:
    adapter = MockTextGeneration(make_config("mock", "mock"))
    blocking = await adapter.generate_completion("hello there world")

    fragments = await collect(adapter.stream_completion("hello there world"))

    assert "".join(f.content for f in fragments) == blocking.content
    assert [f.content for f in fragments[:-1]] == ["echo:", " hello", " there", " world"]
    terminal = fragments[-1]
    assert terminal.is_complete
    assert terminal.metadata is not None
    assert terminal.metadata.finish_reason == "stop"
    assert terminal.metadata.usage.output_tokens > 0


@pytest.mark.asyncio
async def test_empty_messages_rejected_eagerly() -> None:
    adapter = MockTextGeneration(make_config("mock", "mock"))
    with pytest.raises(InvalidRequestError):
        await adapter.generate_chat_completion([])
    with pytest.raises(InvalidRequestError):
        adapter.stream_chat_completion([])


@pytest.mark.asyncio
async def test_images_are_deterministic() -> None:
    adapter = MockImageGeneration(make_config("mock", "mock"))
    first = await adapter.generate_images("a fox", 3, ImageGenerationOptions(size="512x512"))
    again = await adapter.generate_images("a fox", 3, ImageGenerationOptions(size="512x512"))

    assert [i.url for i in first] == [i.url for i in again]
    assert len({i.url for i in first}) == 3
    assert (first[0].width, first[0].height) == (512, 512)


@pytest.mark.asyncio
async def test_image_validation() -> None:
    adapter = MockImageGeneration(make_config("mock", "mock"))
    with pytest.raises(InvalidRequestError):
        await adapter.generate_image("   ")
    with pytest.raises(InvalidRequestError, match="count"):
        await adapter.generate_images("a fox", 0)


@pytest.mark.asyncio
@pytest.mark.parametrize(("speed", "expected"), [(0.1, 0.25), (10.0, 4.0)])
async def test_speech_speed_is_clamped(speed: float, expected: float) -> None:
    adapter = MockSpeechSynthesis(make_config("mock", "mock"))
    text = " ".join(["word"] * 150)

    response = await adapter.synthesize_speech(text, SpeechSynthesisOptions(speed=speed))

    assert response.duration_s == pytest.approx(60 / expected)
    assert response.audio == text.encode()


def test_speech_duration_estimate() -> None:
    adapter = MockSpeechSynthesis(make_config("mock", "mock"))
    assert adapter.estimate_duration("") == 0.0
    assert adapter.estimate_duration(" ".join(["w"] * 75)) == pytest.approx(30.0)
    assert adapter.estimate_duration(" ".join(["w"] * 75), speed=2.0) == pytest.approx(15.0)


@pytest.mark.asyncio
async def test_transcription_size_limit() -> None:
    adapter = MockTranscription(make_config("mock", "mock"))
    ok = await adapter.transcribe_audio(AudioFile(b"\x00" * 64_000, filename="a.wav"))
    assert ok.text == "mock transcript of a.wav"
    assert ok.duration_s == pytest.approx(2.0)
    assert ok.segments[0].end == pytest.approx(2.0)

    too_big = AudioFile(b"\x00" * (adapter.max_file_size + 1))
    with pytest.raises(InvalidRequestError, match="limit"):
        await adapter.transcribe_audio(too_big)


@pytest.mark.asyncio
async def test_translation_reports_english() -> None:
    adapter = MockTranscription(make_config("mock", "mock"))
    response = await adapter.translate_audio(AudioFile(b"\x00" * 10))
    assert response.language == "en"
