"""Mock adapters for development and tests without API calls."""

from __future__ import annotations

import hashlib
import math
from typing import TYPE_CHECKING, Any

from aigateway.constants import MAX_TRANSCRIPTION_FILE_SIZE
from aigateway.errors import InvalidRequestError
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import (
    clamp,
    estimate_speech_duration,
    parse_size,
    require_count,
    require_messages,
    require_prompt,
)
from aigateway.streaming import StreamUpdate
from aigateway.types import (
    ChatMessage,
    ImageGenerationResponse,
    ResponseMetadata,
    SpeechSynthesisResponse,
    TextGenerationResponse,
    TokenUsage,
    TranscriptionResponse,
    TranscriptionSegment,
    Voice,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from aigateway.config import ProviderConfig
    from aigateway.types import (
        AudioFile,
        ImageGenerationOptions,
        SpeechSynthesisOptions,
        StreamFragment,
        TextGenerationOptions,
        TranscriptionOptions,
    )

# Bytes per second of 16 kHz, 16-bit mono PCM, used for duration estimates
_PCM_BYTES_PER_SECOND = 32_000


def _tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


class _MockAdapter:
    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._runner = CallRunner(config)

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    async def aclose(self) -> None:
        return None


class MockTextGeneration(_MockAdapter):
    """Echoes the last user message; streams it word by word."""

    @staticmethod
    def _reply(messages: Sequence[ChatMessage]) -> str:
        last_user = next(
            (m.content for m in reversed(messages) if m.role == "user"), ""
        )
        return f"echo: {last_user[:100]}"

    async def generate_completion(
        self, prompt: str, options: TextGenerationOptions | None = None
    ) -> TextGenerationResponse:
        return await self.generate_chat_completion([ChatMessage("user", prompt)], options)

    async def generate_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: TextGenerationOptions | None = None,
    ) -> TextGenerationResponse:
        require_messages(messages, provider=self.provider)

        async def call() -> str:
            return self._reply(messages)

        text = await self._runner.run(call)
        usage = TokenUsage.of(
            sum(_tokens(m.content) for m in messages), _tokens(text)
        )
        return TextGenerationResponse(
            content=text,
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                usage=usage,
                credits=self._config.metering.text_credits(usage, model=self.model),
                finish_reason="stop",
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
        require_messages(messages, provider=self.provider)
        text = self._reply(messages)
        input_tokens = sum(_tokens(m.content) for m in messages)

        async def chunks() -> AsyncIterator[StreamUpdate]:
            words = text.split(" ")
            for i, word in enumerate(words):
                yield StreamUpdate(text=word if i == 0 else f" {word}")
            yield StreamUpdate(
                input_tokens=input_tokens,
                output_tokens=_tokens(text),
                finish_reason="stop",
                done=True,
            )

        async def open_stream() -> Any:
            return chunks()

        return self._runner.stream(
            open_stream, lambda update: update, meter=self._runner.text_meter()
        )


class MockImageGeneration(_MockAdapter):
    """Returns deterministic placeholder URLs derived from the prompt."""

    def supported_sizes(self) -> list[str]:
        return ["256x256", "512x512", "1024x1024"]

    def _image(self, prompt: str, size: str, index: int) -> ImageGenerationResponse:
        digest = hashlib.sha256(f"{prompt}:{index}".encode()).hexdigest()[:16]
        width, height = parse_size(size)
        return ImageGenerationResponse(
            url=f"mock://images/{digest}.png",
            width=width,
            height=height,
            revised_prompt=prompt,
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.image_credits(
                    provider=self.provider, size=size
                ),
            ),
        )

    def _size(self, options: ImageGenerationOptions | None) -> str:
        size = (options.size if options else None) or "1024x1024"
        return size if size in self.supported_sizes() else "1024x1024"

    async def generate_image(
        self, prompt: str, options: ImageGenerationOptions | None = None
    ) -> ImageGenerationResponse:
        require_prompt(prompt, provider=self.provider)
        size = self._size(options)

        async def call() -> ImageGenerationResponse:
            return self._image(prompt, size, 0)

        return await self._runner.run(call)

    async def generate_images(
        self,
        prompt: str,
        count: int,
        options: ImageGenerationOptions | None = None,
    ) -> list[ImageGenerationResponse]:
        require_prompt(prompt, provider=self.provider)
        require_count(count, provider=self.provider)
        size = self._size(options)

        async def call() -> list[ImageGenerationResponse]:
            return [self._image(prompt, size, i) for i in range(count)]

        return await self._runner.run(call)


class MockSpeechSynthesis(_MockAdapter):
    """Returns the UTF-8 text as the audio payload."""

    def available_voices(self) -> list[Voice]:
        return [Voice("mock", "Mock Voice")]

    def supported_formats(self) -> list[str]:
        return ["wav"]

    def estimate_duration(self, text: str, speed: float = 1.0) -> float:
        return estimate_speech_duration(text, speed)

    async def synthesize_speech(
        self, text: str, options: SpeechSynthesisOptions | None = None
    ) -> SpeechSynthesisResponse:
        if not text or not text.strip():
            raise InvalidRequestError(
                "text must be non-empty", retryable=False, provider=self.provider
            )
        speed = clamp(
            options.speed if options else None,
            0.25,
            4.0,
            field="speed",
            provider=self.provider,
        )

        async def call() -> bytes:
            return text.encode("utf-8")

        audio = await self._runner.run(call)
        return SpeechSynthesisResponse(
            audio=audio,
            format="wav",
            mime_type="audio/wav",
            duration_s=estimate_speech_duration(text, speed or 1.0),
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.speech_credits(
                    len(text), provider=self.provider
                ),
            ),
        )


class MockTranscription(_MockAdapter):
    """Returns a fixed transcript whose duration follows the payload size."""

    @property
    def max_file_size(self) -> int:
        return MAX_TRANSCRIPTION_FILE_SIZE

    def supported_formats(self) -> list[str]:
        return ["audio/mpeg", "audio/wav"]

    def supported_languages(self) -> list[str]:
        return ["en"]

    async def _transcribe(
        self, audio: AudioFile, language: str | None
    ) -> TranscriptionResponse:
        if audio.size > self.max_file_size:
            raise InvalidRequestError(
                f"Audio file is {audio.size} bytes; the limit is {self.max_file_size}",
                retryable=False,
                provider=self.provider,
            )
        duration = audio.size / _PCM_BYTES_PER_SECOND
        text = f"mock transcript of {audio.filename}"

        async def call() -> TranscriptionResponse:
            return TranscriptionResponse(
                text=text,
                language=language or "en",
                duration_s=duration,
                segments=(TranscriptionSegment(text=text, start=0.0, end=duration),),
                metadata=ResponseMetadata(
                    model=self.model,
                    provider=self.provider,
                    credits=self._config.metering.transcription_credits(duration),
                ),
            )

        return await self._runner.run(call, phase="transcribe")

    async def transcribe_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse:
        return await self._transcribe(audio, options.language if options else None)

    async def translate_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse:
        return await self._transcribe(audio, "en")
