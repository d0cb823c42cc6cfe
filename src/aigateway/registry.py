"""Catalog of known models and the capabilities they serve."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterable

    from aigateway.constants import ProviderName

Capability = Literal["text", "image", "speech", "transcription"]


@dataclass(frozen=True)
class ModelInfo:
    """Static facts about one model."""

    id: str
    name: str
    provider: ProviderName
    capabilities: frozenset[Capability]
    description: str | None = None
    context_window: int | None = None
    max_output_tokens: int | None = None
    deprecated: bool = False
    replacement: str | None = None

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities


def _m(
    model_id: str,
    name: str,
    provider: ProviderName,
    *capabilities: Capability,
    **extra: object,
) -> ModelInfo:
    return ModelInfo(model_id, name, provider, frozenset(capabilities), **extra)  # type: ignore[arg-type]


DEFAULT_MODELS: tuple[ModelInfo, ...] = (
    # OpenAI
    _m("gpt-4o", "GPT-4o", "openai", "text", context_window=128_000, max_output_tokens=4096),
    _m("gpt-4o-mini", "GPT-4o Mini", "openai", "text", context_window=128_000, max_output_tokens=16_384),
    _m("gpt-4-turbo", "GPT-4 Turbo", "openai", "text", context_window=128_000, max_output_tokens=4096),
    _m("dall-e-2", "DALL-E 2", "openai", "image"),
    _m("dall-e-3", "DALL-E 3", "openai", "image"),
    _m("gpt-image-1", "GPT Image 1", "openai", "image"),
    _m("tts-1", "TTS-1", "openai", "speech"),
    _m("tts-1-hd", "TTS-1 HD", "openai", "speech"),
    _m("whisper-1", "Whisper", "openai", "transcription"),
    _m(
        "gpt-4-vision-preview",
        "GPT-4 Vision Preview",
        "openai",
        "text",
        deprecated=True,
        replacement="gpt-4o",
    ),
    # Anthropic
    _m(
        "claude-3-5-sonnet-20241022",
        "Claude 3.5 Sonnet",
        "anthropic",
        "text",
        context_window=200_000,
        max_output_tokens=8192,
    ),
    _m(
        "claude-3-opus-20240229",
        "Claude 3 Opus",
        "anthropic",
        "text",
        context_window=200_000,
        max_output_tokens=4096,
    ),
    _m(
        "claude-3-haiku-20240307",
        "Claude 3 Haiku",
        "anthropic",
        "text",
        context_window=200_000,
        max_output_tokens=4096,
    ),
    # Google
    _m("gemini-1.5-pro", "Gemini 1.5 Pro", "google", "text", context_window=2_000_000, max_output_tokens=8192),
    _m("gemini-1.5-flash", "Gemini 1.5 Flash", "google", "text", context_window=1_000_000, max_output_tokens=8192),
    _m("gemini-2.0-flash", "Gemini 2.0 Flash", "google", "text", context_window=1_000_000, max_output_tokens=8192),
    _m("gemini-2.5-flash", "Gemini 2.5 Flash", "google", "text", context_window=1_000_000, max_output_tokens=65_536),
    _m("gemini-pro", "Gemini Pro", "google", "text", deprecated=True, replacement="gemini-1.5-flash"),
    _m("imagen-3", "Imagen 3", "google", "image", description="Requires Vertex AI"),
    # Mistral
    _m("mistral-large-latest", "Mistral Large", "mistral", "text", context_window=128_000),
    _m("mistral-small-latest", "Mistral Small", "mistral", "text", context_window=32_000),
    # OpenRouter
    _m("openai/gpt-4o", "GPT-4o (via OpenRouter)", "openrouter", "text"),
    _m("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet (via OpenRouter)", "openrouter", "text"),
    _m("meta-llama/llama-3.1-70b-instruct", "Llama 3.1 70B (via OpenRouter)", "openrouter", "text"),
    _m("mistralai/mistral-large", "Mistral Large (via OpenRouter)", "openrouter", "text"),
    # Free tiers
    _m("flux", "Flux (Pollinations)", "pollinations", "image"),
    _m("speecht5", "SpeechT5 (Microsoft)", "huggingface", "speech"),
    _m("mms-tts-eng", "MMS-TTS English", "huggingface", "speech"),
    _m("bark-small", "Bark Small (Suno)", "huggingface", "speech"),
    # Offline
    _m("mock", "Mock", "mock", "text", "image", "speech", "transcription"),
)


class ModelRegistry:
    """Lookup table of ``ModelInfo`` by id.

    Instances are built once and read concurrently; ``register`` is meant for
    setup code, not per-call use.
    """

    def __init__(self, models: Iterable[ModelInfo] = DEFAULT_MODELS) -> None:
        self._models: dict[str, ModelInfo] = {}
        for model in models:
            self.register(model)

    def register(self, model: ModelInfo) -> None:
        self._models[model.id] = model

    def get(self, model_id: str) -> ModelInfo | None:
        return self._models.get(model_id)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def list_models(
        self,
        *,
        capability: Capability | None = None,
        provider: ProviderName | None = None,
        include_deprecated: bool = False,
    ) -> list[ModelInfo]:
        """Return matching models in registration order."""
        return [
            m
            for m in self._models.values()
            if (capability is None or m.supports(capability))
            and (provider is None or m.provider == provider)
            and (include_deprecated or not m.deprecated)
        ]
