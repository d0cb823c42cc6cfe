"""Hugging Face Inference speech adapter (free TTS models)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from aigateway.errors import APIError, InvalidRequestError
from aigateway.providers._http import ensure_ok
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import estimate_speech_duration
from aigateway.types import ResponseMetadata, SpeechSynthesisResponse, Voice

if TYPE_CHECKING:
    from aigateway.config import ProviderConfig
    from aigateway.types import SpeechSynthesisOptions

log = logging.getLogger(__name__)

HF_INFERENCE_URL = "https://router.huggingface.co/hf-inference/models"

# Short model names mapped to Hub repositories
HF_TTS_MODELS: dict[str, str] = {
    "speecht5": "microsoft/speecht5_tts",
    "mms-tts-eng": "facebook/mms-tts-eng",
    "bark-small": "suno/bark-small",
}
_DEFAULT_MODEL = "speecht5"

_FORMAT_BY_CONTENT_TYPE = {"audio/flac": "flac", "audio/x-flac": "flac"}


def resolve_model_id(model: str) -> str:
    """Map a short alias (or a full ``org/name`` id) to a Hub repository id."""
    if model in HF_TTS_MODELS:
        return HF_TTS_MODELS[model]
    if "/" in model:
        return model
    log.warning("Unknown Hugging Face TTS model %r; using %s", model, _DEFAULT_MODEL)
    return HF_TTS_MODELS[_DEFAULT_MODEL]


class HuggingFaceSpeechSynthesis:
    """Text-to-speech through the HF Inference router.

    Works without a token for public models (rate limited); ``HF_TOKEN``
    raises the limits. A 503 means the model is still loading and is retried
    like any other transient failure, honoring Retry-After.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._runner = CallRunner(config)
        self._model_id = resolve_model_id(config.model)
        base = (config.base_url or HF_INFERENCE_URL).rstrip("/")
        self._url = f"{base}/{self._model_id}"
        self._client: httpx.AsyncClient | None = None

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    def available_voices(self) -> list[Voice]:
        # HF TTS models expose a single voice
        return [Voice("default", "Default", language="en")]

    def supported_formats(self) -> list[str]:
        return ["wav", "flac"]

    def estimate_duration(self, text: str, speed: float = 1.0) -> float:
        return estimate_speech_duration(text, speed)

    async def synthesize_speech(
        self, text: str, options: SpeechSynthesisOptions | None = None
    ) -> SpeechSynthesisResponse:
        if not text or not text.strip():
            raise InvalidRequestError(
                "text must be non-empty", retryable=False, provider=self.provider
            )
        if options is not None and options.speed not in (None, 1.0):
            log.debug("Hugging Face TTS ignores speed=%s", options.speed)

        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        client = self._get_client()

        async def call() -> httpx.Response:
            response = await client.post(self._url, headers=headers, json={"inputs": text})
            await ensure_ok(response)
            return response

        response = await self._runner.run(call)
        audio = response.content
        if not audio:
            raise APIError(
                "Hugging Face returned an empty audio payload",
                retryable=False,
                provider=self.provider,
                model=self.model,
                phase="generate",
            )
        content_type = response.headers.get("content-type", "audio/wav").split(";")[0]
        fmt = _FORMAT_BY_CONTENT_TYPE.get(content_type, "wav")

        return SpeechSynthesisResponse(
            audio=audio,
            format=fmt,
            mime_type=f"audio/{fmt}",
            duration_s=estimate_speech_duration(text),
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.speech_credits(
                    len(text), provider=self.provider
                ),
            ),
        )

    async def aclose(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()
