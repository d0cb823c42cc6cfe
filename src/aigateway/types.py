"""Value types shared by every capability interface."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """One conversational turn."""

    role: Role
    content: str


# =============================================================================
# Options
# =============================================================================


@dataclass(frozen=True)
class TextGenerationOptions:
    """Optional knobs for text generation; None means vendor default."""

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ImageGenerationOptions:
    """Optional knobs for image generation."""

    size: str | None = None
    quality: Literal["standard", "hd"] | None = None
    style: str | None = None
    response_format: Literal["url", "b64_json"] | None = None


@dataclass(frozen=True)
class SpeechSynthesisOptions:
    """Optional knobs for speech synthesis."""

    voice: str | None = None
    format: str | None = None
    speed: float | None = None


@dataclass(frozen=True)
class TranscriptionOptions:
    """Optional knobs for transcription and translation."""

    language: str | None = None
    prompt: str | None = None
    format: Literal["json", "text", "srt", "verbose_json", "vtt"] | None = None
    temperature: float | None = None
    timestamps: bool = False


# =============================================================================
# Responses
# =============================================================================


@dataclass(frozen=True)
class TokenUsage:
    """Token counts; zero when the vendor did not report them."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(
        cls,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        total_tokens: int | None = None,
    ) -> TokenUsage:
        """Build usage, deriving the total when the vendor omitted it."""
        inp = int(input_tokens or 0)
        out = int(output_tokens or 0)
        total = int(total_tokens) if total_tokens else inp + out
        return cls(input_tokens=inp, output_tokens=out, total_tokens=total)


@dataclass(frozen=True)
class ResponseMetadata:
    """Provenance and cost of one completed call."""

    model: str
    provider: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    credits: int = 0
    finish_reason: str | None = None


@dataclass(frozen=True)
class TextGenerationResponse:
    content: str
    metadata: ResponseMetadata


@dataclass(frozen=True)
class StreamFragment:
    """One incremental piece of a streamed response.

    ``metadata`` is set only on the terminal fragment (``is_complete=True``).
    """

    content: str
    is_complete: bool = False
    metadata: ResponseMetadata | None = None


@dataclass(frozen=True)
class ImageGenerationResponse:
    """A generated image; ``url`` may be a ``data:`` URL for inline payloads."""

    url: str
    width: int
    height: int
    metadata: ResponseMetadata
    revised_prompt: str | None = None


@dataclass(frozen=True)
class SpeechSynthesisResponse:
    audio: bytes
    format: str
    mime_type: str
    duration_s: float
    metadata: ResponseMetadata

    def to_data_url(self) -> str:
        """Return the audio as a base64 ``data:`` URL."""
        encoded = base64.b64encode(self.audio).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class TranscriptionSegment:
    text: str
    start: float
    end: float


@dataclass(frozen=True)
class TranscriptionResponse:
    text: str
    metadata: ResponseMetadata
    language: str | None = None
    duration_s: float | None = None
    segments: tuple[TranscriptionSegment, ...] = ()


# =============================================================================
# Inputs / catalogs
# =============================================================================


@dataclass(frozen=True)
class AudioFile:
    """Audio input for transcription: raw bytes or a local path."""

    data: bytes | Path
    filename: str = "audio.mp3"
    mime_type: str = "audio/mpeg"

    def read_bytes(self) -> bytes:
        if isinstance(self.data, Path):
            return self.data.read_bytes()
        return self.data

    @property
    def size(self) -> int:
        """Payload size in bytes without reading a path into memory."""
        if isinstance(self.data, Path):
            return self.data.stat().st_size
        return len(self.data)


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    language: str = "en"
    gender: Literal["male", "female", "neutral"] = "neutral"
    description: str | None = None
