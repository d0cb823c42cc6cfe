"""OpenAI adapters: chat text, DALL-E/gpt-image images, TTS and Whisper."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from aigateway.constants import MAX_TRANSCRIPTION_FILE_SIZE
from aigateway.errors import APIError, InvalidRequestError
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import (
    clamp,
    estimate_speech_duration,
    get_field,
    parse_size,
    require_count,
    require_messages,
    require_prompt,
    usage_value,
)
from aigateway.streaming import StreamUpdate, extract_text
from aigateway.types import (
    ChatMessage,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ResponseMetadata,
    SpeechSynthesisOptions,
    SpeechSynthesisResponse,
    TextGenerationOptions,
    TextGenerationResponse,
    TokenUsage,
    TranscriptionOptions,
    TranscriptionResponse,
    TranscriptionSegment,
    Voice,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from aigateway.config import ProviderConfig
    from aigateway.types import AudioFile, StreamFragment

log = logging.getLogger(__name__)

_MAX_STOP_SEQUENCES = 4
_DALLE2_MAX_BATCH = 10
_MAX_SPEECH_INPUT_CHARS = 4096
_DEFAULT_IMAGE_SIZE = "1024x1024"

_IMAGE_SIZES: dict[str, tuple[str, ...]] = {
    "dall-e-2": ("256x256", "512x512", "1024x1024"),
    "dall-e-3": ("1024x1024", "1792x1024", "1024x1792"),
    "gpt-image-1": ("1024x1024", "1536x1024", "1024x1536"),
}

# Caller-facing style names mapped onto DALL-E 3's two styles
_STYLE_MAP = {
    "vivid": "vivid",
    "natural": "natural",
    "artistic": "vivid",
    "photographic": "natural",
}

_VOICES: tuple[Voice, ...] = (
    Voice("alloy", "Alloy", gender="neutral", description="Balanced and versatile"),
    Voice("echo", "Echo", gender="male", description="Warm and clear"),
    Voice("fable", "Fable", gender="neutral", description="Expressive storyteller"),
    Voice("onyx", "Onyx", gender="male", description="Deep and authoritative"),
    Voice("nova", "Nova", gender="female", description="Bright and friendly"),
    Voice("shimmer", "Shimmer", gender="female", description="Soft and gentle"),
)

_AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/opus",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}

_TRANSCRIPTION_MIME_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/mp4",
        "audio/m4a",
        "audio/x-m4a",
        "audio/wav",
        "audio/x-wav",
        "audio/webm",
        "audio/flac",
        "audio/ogg",
    }
)

# ISO-639-1 codes accepted by Whisper
_WHISPER_LANGUAGES = (
    "en zh de es ru ko fr ja pt tr pl ca nl ar sv it id hi fi vi he uk el ms "
    "cs ro da hu ta no th ur hr bg lt la mi ml cy sk te fa lv bn sr az sl kn "
    "et mk br eu is hy ne mn bs kk sq sw gl mr pa si km sn yo so af oc ka be "
    "tg sd gu am yi lo uz fo ht ps tk nn mt sa lb my bo tl mg as tt haw ln "
    "ha ba jw su"
).split()


class _OpenAIAdapter:
    """Client lifecycle and identity shared by the OpenAI adapters."""

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
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="uv pip install openai",
                ) from e
            # The gateway owns retries.
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._config.base_url,
                max_retries=0,
            )
        return self._client

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


# =============================================================================
# Text
# =============================================================================


def build_chat_params(
    messages: Sequence[ChatMessage],
    options: TextGenerationOptions | None,
    *,
    provider: str,
) -> dict[str, Any]:
    """Translate options into OpenAI-compatible chat completion parameters."""
    opts = options or TextGenerationOptions()
    params: dict[str, Any] = {
        "messages": [{"role": m.role, "content": m.content} for m in messages],
    }
    values = {
        "max_tokens": clamp(opts.max_tokens, 1, None, field="max_tokens", provider=provider),
        "temperature": clamp(
            opts.temperature, 0.0, 2.0, field="temperature", provider=provider
        ),
        "top_p": clamp(opts.top_p, 0.0, 1.0, field="top_p", provider=provider),
        "frequency_penalty": clamp(
            opts.frequency_penalty, -2.0, 2.0, field="frequency_penalty", provider=provider
        ),
        "presence_penalty": clamp(
            opts.presence_penalty, -2.0, 2.0, field="presence_penalty", provider=provider
        ),
    }
    params.update({k: v for k, v in values.items() if v is not None})
    if opts.stop:
        stop = list(opts.stop)
        if len(stop) > _MAX_STOP_SEQUENCES:
            log.warning(
                "Truncated stop sequences for %s from %d to %d",
                provider,
                len(stop),
                _MAX_STOP_SEQUENCES,
            )
            stop = stop[:_MAX_STOP_SEQUENCES]
        params["stop"] = stop
    return params


def parse_chat_response(response: Any) -> tuple[str, TokenUsage, str | None, str | None]:
    """Extract (text, usage, finish_reason, model) from a chat completion."""
    choices = get_field(response, "choices") or []
    text = ""
    finish_reason = None
    if choices:
        message = get_field(choices[0], "message")
        text = extract_text(get_field(message, "content"))
        finish_reason = get_field(choices[0], "finish_reason")
    usage_raw = get_field(response, "usage")
    usage = TokenUsage.of(
        usage_value(usage_raw, "prompt_tokens"),
        usage_value(usage_raw, "completion_tokens"),
        usage_value(usage_raw, "total_tokens"),
    )
    return text, usage, finish_reason, get_field(response, "model")


def parse_chat_chunk(chunk: Any) -> StreamUpdate:
    """Reduce one chat completion chunk to a stream update.

    Usage arrives on a trailing chunk with no choices.
    """
    choices = get_field(chunk, "choices") or []
    text = ""
    finish_reason = None
    if choices:
        delta = get_field(choices[0], "delta")
        text = extract_text(get_field(delta, "content"))
        finish_reason = get_field(choices[0], "finish_reason")
    usage_raw = get_field(chunk, "usage")
    return StreamUpdate(
        text=text,
        input_tokens=usage_value(usage_raw, "prompt_tokens"),
        output_tokens=usage_value(usage_raw, "completion_tokens"),
        total_tokens=usage_value(usage_raw, "total_tokens"),
        finish_reason=finish_reason,
        model=get_field(chunk, "model"),
    )


class OpenAITextGeneration(_OpenAIAdapter):
    """Chat Completions text generation."""

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
        require_messages(messages, provider=self.provider)
        params = build_chat_params(messages, options, provider=self.provider)
        client = self._get_client()

        response = await self._runner.run(
            lambda: client.chat.completions.create(model=self.model, **params)
        )
        text, usage, finish_reason, model = parse_chat_response(response)
        credits = self._config.metering.text_credits(
            usage, model=self.model, output_chars=len(text)
        )
        return TextGenerationResponse(
            content=text,
            metadata=ResponseMetadata(
                model=model or self.model,
                provider=self.provider,
                usage=usage,
                credits=credits,
                finish_reason=finish_reason,
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
        params = build_chat_params(messages, options, provider=self.provider)
        client = self._get_client()

        async def open_stream() -> Any:
            return await client.chat.completions.create(
                model=self.model,
                stream=True,
                stream_options={"include_usage": True},
                **params,
            )

        return self._runner.stream(
            open_stream, parse_chat_chunk, meter=self._runner.text_meter()
        )


# =============================================================================
# Images
# =============================================================================


class OpenAIImageGeneration(_OpenAIAdapter):
    """Images API generation (dall-e-2, dall-e-3, gpt-image-1)."""

    def supported_sizes(self) -> list[str]:
        return list(_IMAGE_SIZES.get(self.model, _IMAGE_SIZES["dall-e-3"]))

    def _resolve_size(self, size: str | None) -> str:
        supported = self.supported_sizes()
        if size is None:
            return _DEFAULT_IMAGE_SIZE
        if size not in supported:
            log.warning(
                "Unsupported image size %r for %s; using %s",
                size,
                self.model,
                _DEFAULT_IMAGE_SIZE,
            )
            return _DEFAULT_IMAGE_SIZE
        return size

    def _params(self, options: ImageGenerationOptions | None) -> dict[str, Any]:
        opts = options or ImageGenerationOptions()
        params: dict[str, Any] = {"size": self._resolve_size(opts.size)}
        if self.model == "dall-e-3":
            if opts.quality is not None:
                params["quality"] = opts.quality
            style = _STYLE_MAP.get(opts.style or "")
            if style is not None:
                params["style"] = style
        elif self.model == "gpt-image-1" and opts.quality is not None:
            params["quality"] = "high" if opts.quality == "hd" else "medium"
        # gpt-image-1 always answers with base64 and rejects response_format
        if self.model != "gpt-image-1" and opts.response_format is not None:
            params["response_format"] = opts.response_format
        return params

    def _to_response(
        self, item: Any, size: str, quality: str | None
    ) -> ImageGenerationResponse:
        url = get_field(item, "url")
        if not url:
            b64 = get_field(item, "b64_json")
            if not b64:
                raise APIError(
                    "OpenAI image response contained no image",
                    retryable=False,
                    provider=self.provider,
                    model=self.model,
                    phase="generate",
                )
            url = f"data:image/png;base64,{b64}"
        width, height = parse_size(size)
        return ImageGenerationResponse(
            url=url,
            width=width,
            height=height,
            revised_prompt=get_field(item, "revised_prompt"),
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.image_credits(
                    provider=self.provider, size=size, quality=quality
                ),
            ),
        )

    async def _request(
        self, prompt: str, params: dict[str, Any], n: int
    ) -> list[ImageGenerationResponse]:
        client = self._get_client()
        response = await self._runner.run(
            lambda: client.images.generate(
                model=self.model, prompt=prompt, n=n, **params
            )
        )
        quality = params.get("quality")
        if self.model == "gpt-image-1":
            quality = "hd" if quality == "high" else None
        return [
            self._to_response(item, params["size"], quality)
            for item in get_field(response, "data") or []
        ]

    async def generate_image(
        self, prompt: str, options: ImageGenerationOptions | None = None
    ) -> ImageGenerationResponse:
        require_prompt(prompt, provider=self.provider)
        images = await self._request(prompt, self._params(options), 1)
        if not images:
            raise APIError(
                "OpenAI image response contained no image",
                retryable=False,
                provider=self.provider,
                model=self.model,
                phase="generate",
            )
        return images[0]

    async def generate_images(
        self,
        prompt: str,
        count: int,
        options: ImageGenerationOptions | None = None,
    ) -> list[ImageGenerationResponse]:
        """Generate *count* images.

        dall-e-2 accepts batches of up to 10; other models take one image per
        request, so those are issued concurrently.
        """
        require_prompt(prompt, provider=self.provider)
        require_count(count, provider=self.provider)
        params = self._params(options)

        if self.model == "dall-e-2":
            batches = [
                min(_DALLE2_MAX_BATCH, count - start)
                for start in range(0, count, _DALLE2_MAX_BATCH)
            ]
        else:
            batches = [1] * count

        # One failure cancels the in-flight siblings
        tasks = [
            asyncio.create_task(
                self._request(prompt, params, n), name=f"openai_images:{i}"
            )
            for i, n in enumerate(batches)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except (asyncio.CancelledError, Exception):
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [image for batch in results for image in batch]


# =============================================================================
# Speech
# =============================================================================


class OpenAISpeechSynthesis(_OpenAIAdapter):
    """Audio speech (tts-1, tts-1-hd)."""

    def available_voices(self) -> list[Voice]:
        return list(_VOICES)

    def supported_formats(self) -> list[str]:
        return list(_AUDIO_MIME_TYPES)

    def estimate_duration(self, text: str, speed: float = 1.0) -> float:
        return estimate_speech_duration(text, speed)

    async def synthesize_speech(
        self, text: str, options: SpeechSynthesisOptions | None = None
    ) -> SpeechSynthesisResponse:
        if not text or not text.strip():
            raise InvalidRequestError(
                "text must be non-empty", retryable=False, provider=self.provider
            )
        if len(text) > _MAX_SPEECH_INPUT_CHARS:
            raise InvalidRequestError(
                f"text exceeds {_MAX_SPEECH_INPUT_CHARS} characters",
                retryable=False,
                provider=self.provider,
            )
        opts = options or SpeechSynthesisOptions()

        voice = opts.voice or "alloy"
        if voice not in {v.id for v in _VOICES}:
            log.warning("Unknown voice %r for %s; using alloy", voice, self.provider)
            voice = "alloy"
        fmt = opts.format or "mp3"
        if fmt not in _AUDIO_MIME_TYPES:
            log.warning("Unsupported audio format %r for %s; using mp3", fmt, self.provider)
            fmt = "mp3"
        speed = clamp(opts.speed, 0.25, 4.0, field="speed", provider=self.provider)
        if speed is None:
            speed = 1.0

        client = self._get_client()
        response = await self._runner.run(
            lambda: client.audio.speech.create(
                model=self.model,
                voice=voice,
                input=text,
                response_format=fmt,
                speed=speed,
            )
        )
        audio = _read_binary(response, provider=self.provider, model=self.model)

        return SpeechSynthesisResponse(
            audio=audio,
            format=fmt,
            mime_type=_AUDIO_MIME_TYPES[fmt],
            duration_s=estimate_speech_duration(text, speed),
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.speech_credits(
                    len(text), provider=self.provider
                ),
            ),
        )


def _read_binary(response: Any, *, provider: str, model: str) -> bytes:
    content = getattr(response, "content", response)
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    raise APIError(
        "OpenAI speech response contained no audio",
        retryable=False,
        provider=provider,
        model=model,
        phase="generate",
    )


# =============================================================================
# Transcription
# =============================================================================


class OpenAITranscription(_OpenAIAdapter):
    """Whisper transcription and translation."""

    @property
    def max_file_size(self) -> int:
        return MAX_TRANSCRIPTION_FILE_SIZE

    def supported_formats(self) -> list[str]:
        return sorted(_TRANSCRIPTION_MIME_TYPES)

    def supported_languages(self) -> list[str]:
        return list(_WHISPER_LANGUAGES)

    def _validate(self, audio: AudioFile) -> None:
        if audio.mime_type not in _TRANSCRIPTION_MIME_TYPES:
            raise InvalidRequestError(
                f"Unsupported audio format: {audio.mime_type}",
                hint=f"Supported formats: {', '.join(self.supported_formats())}",
                retryable=False,
                provider=self.provider,
                model=self.model,
            )
        size = audio.size
        if size > self.max_file_size:
            raise InvalidRequestError(
                f"Audio file is {size} bytes; the limit is {self.max_file_size}",
                retryable=False,
                provider=self.provider,
                model=self.model,
            )

    def _params(self, options: TranscriptionOptions | None) -> tuple[dict[str, Any], bool]:
        opts = options or TranscriptionOptions()
        verbose = opts.format in (None, "json", "verbose_json")
        params: dict[str, Any] = {
            "response_format": "verbose_json" if verbose else opts.format,
        }
        if opts.prompt:
            params["prompt"] = opts.prompt
        temperature = clamp(
            opts.temperature, 0.0, 1.0, field="temperature", provider=self.provider
        )
        if temperature is not None:
            params["temperature"] = temperature
        if verbose and opts.timestamps:
            params["timestamp_granularities"] = ["segment"]
        return params, verbose

    async def transcribe_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse:
        self._validate(audio)
        params, verbose = self._params(options)
        language = options.language if options else None
        if language:
            params["language"] = language
        payload = (audio.filename, audio.read_bytes(), audio.mime_type)
        client = self._get_client()

        response = await self._runner.run(
            lambda: client.audio.transcriptions.create(
                model=self.model, file=payload, **params
            ),
            phase="transcribe",
        )
        return self._to_response(response, verbose=verbose, language=language)

    async def translate_audio(
        self, audio: AudioFile, options: TranscriptionOptions | None = None
    ) -> TranscriptionResponse:
        """Translate speech in any supported language into English text."""
        self._validate(audio)
        params, verbose = self._params(options)
        params.pop("timestamp_granularities", None)
        payload = (audio.filename, audio.read_bytes(), audio.mime_type)
        client = self._get_client()

        response = await self._runner.run(
            lambda: client.audio.translations.create(
                model=self.model, file=payload, **params
            ),
            phase="translate",
        )
        return self._to_response(response, verbose=verbose, language="en")

    def _to_response(
        self, response: Any, *, verbose: bool, language: str | None
    ) -> TranscriptionResponse:
        if not verbose or isinstance(response, str):
            text = response if isinstance(response, str) else get_field(response, "text", "") or ""
            return TranscriptionResponse(
                text=text,
                language=language,
                metadata=self._metadata(text, None),
            )

        duration = get_field(response, "duration")
        duration_s = float(duration) if isinstance(duration, (int, float)) else None
        segments = tuple(
            TranscriptionSegment(
                text=str(get_field(s, "text", "")).strip(),
                start=float(get_field(s, "start", 0.0)),
                end=float(get_field(s, "end", 0.0)),
            )
            for s in get_field(response, "segments") or []
        )
        text = get_field(response, "text", "") or ""
        return TranscriptionResponse(
            text=text,
            language=get_field(response, "language") or language,
            duration_s=duration_s,
            segments=segments,
            metadata=self._metadata(text, duration_s),
        )

    def _metadata(self, text: str, duration_s: float | None) -> ResponseMetadata:
        # Without a reported duration, bill the time needed to speak the text
        if duration_s is None:
            duration_s = estimate_speech_duration(text)
        return ResponseMetadata(
            model=self.model,
            provider=self.provider,
            credits=self._config.metering.transcription_credits(duration_s),
        )

