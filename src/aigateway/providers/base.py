"""Capability protocols: the contracts every vendor adapter satisfies."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from aigateway.types import (
        AudioFile,
        ChatMessage,
        ImageGenerationOptions,
        ImageGenerationResponse,
        SpeechSynthesisOptions,
        SpeechSynthesisResponse,
        StreamFragment,
        TextGenerationOptions,
        TextGenerationResponse,
        TranscriptionOptions,
        TranscriptionResponse,
        Voice,
    )


@runtime_checkable
class TextGenerationService(Protocol):
    """Single-prompt and chat text generation, blocking or streamed.

    Streaming methods return a lazy, finite, non-restartable async iterator
    whose last fragment is the only one with ``is_complete=True``.
    """

    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def generate_completion(
        self, prompt: str, options: TextGenerationOptions | None = None
    ) -> TextGenerationResponse: ...

    async def generate_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: TextGenerationOptions | None = None,
    ) -> TextGenerationResponse: ...

    def stream_completion(
        self, prompt: str, options: TextGenerationOptions | None = None
    ) -> AsyncIterator[StreamFragment]: ...

    def stream_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        options: TextGenerationOptions | None = None,
    ) -> AsyncIterator[StreamFragment]: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class ImageGenerationService(Protocol):
    """Prompt-to-image generation."""

    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def generate_image(
        self, prompt: str, options: ImageGenerationOptions | None = None
    ) -> ImageGenerationResponse: ...

    async def generate_images(
        self,
        prompt: str,
        count: int,
        options: ImageGenerationOptions | None = None,
    ) -> list[ImageGenerationResponse]: ...

    def supported_sizes(self) -> list[str]: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class SpeechSynthesisService(Protocol):
    """Text-to-speech."""

    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def synthesize_speech(
        self, text: str, options: SpeechSynthesisOptions | None = None
    ) -> SpeechSynthesisResponse: ...

    def available_voices(self) -> list[Voice]: ...

    def supported_formats(self) -> list[str]: ...

    def estimate_duration(self, text: str, speed: float = 1.0) -> float: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class TranscriptionService(Protocol):
    """Speech-to-text, plus translation into English."""

    @property
    def provider(self) -> str: ...

    @property
    def model(self) -> str: ...

    @property
    def max_file_size(self) -> int: ...

    async def transcribe_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse: ...

    async def translate_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse: ...

    def supported_formats(self) -> list[str]: ...

    def supported_languages(self) -> list[str]: ...

    async def aclose(self) -> None: ...
