"""Adapter selection: provider identifier (or model) -> capability adapter.

Callers program against the four capability protocols and never branch on
vendor identity; this module is the only place that does.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aigateway.config import ProviderConfig, env_api_key, requires_api_key
from aigateway.constants import PROVIDERS, TEXT_FALLBACK_PROVIDERS
from aigateway.errors import ConfigurationError
from aigateway.providers.anthropic import AnthropicTextGeneration
from aigateway.providers.gemini import GoogleImageGeneration, GoogleTextGeneration
from aigateway.providers.huggingface import HuggingFaceSpeechSynthesis
from aigateway.providers.mistral import MistralTextGeneration
from aigateway.providers.mock import (
    MockImageGeneration,
    MockSpeechSynthesis,
    MockTextGeneration,
    MockTranscription,
)
from aigateway.providers.openai import (
    OpenAIImageGeneration,
    OpenAISpeechSynthesis,
    OpenAITextGeneration,
    OpenAITranscription,
)
from aigateway.providers.openrouter import OpenRouterTextGeneration
from aigateway.providers.pollinations import PollinationsImageGeneration
from aigateway.registry import ModelRegistry

if TYPE_CHECKING:
    from collections.abc import Callable

    from aigateway.constants import ProviderName
    from aigateway.providers.base import (
        ImageGenerationService,
        SpeechSynthesisService,
        TextGenerationService,
        TranscriptionService,
    )
    from aigateway.registry import Capability

log = logging.getLogger(__name__)

_TEXT_ADAPTERS: dict[str, Callable[[ProviderConfig], Any]] = {
    "openai": OpenAITextGeneration,
    "anthropic": AnthropicTextGeneration,
    "google": GoogleTextGeneration,
    "mistral": MistralTextGeneration,
    "openrouter": OpenRouterTextGeneration,
    "mock": MockTextGeneration,
}

_IMAGE_ADAPTERS: dict[str, Callable[[ProviderConfig], Any]] = {
    "openai": OpenAIImageGeneration,
    "google": GoogleImageGeneration,
    "pollinations": PollinationsImageGeneration,
    "mock": MockImageGeneration,
}

_SPEECH_ADAPTERS: dict[str, Callable[[ProviderConfig], Any]] = {
    "openai": OpenAISpeechSynthesis,
    "huggingface": HuggingFaceSpeechSynthesis,
    "mock": MockSpeechSynthesis,
}

_TRANSCRIPTION_ADAPTERS: dict[str, Callable[[ProviderConfig], Any]] = {
    "openai": OpenAITranscription,
    "mock": MockTranscription,
}

_ADAPTERS: dict[Capability, dict[str, Callable[[ProviderConfig], Any]]] = {
    "text": _TEXT_ADAPTERS,
    "image": _IMAGE_ADAPTERS,
    "speech": _SPEECH_ADAPTERS,
    "transcription": _TRANSCRIPTION_ADAPTERS,
}

# Ordered (prefix, provider) rules for models missing from the registry
_PREFIX_RULES: tuple[tuple[tuple[str, ...], ProviderName], ...] = (
    (("gpt-", "o1", "o3", "o4", "chatgpt-", "dall-e", "tts-", "whisper"), "openai"),
    (("claude",), "anthropic"),
    (("gemini", "imagen"), "google"),
    (("mistral", "ministral", "codestral", "open-mistral", "pixtral"), "mistral"),
    (("flux", "pollinations"), "pollinations"),
    (("speecht5", "mms-tts", "bark"), "huggingface"),
    (("mock",), "mock"),
)

_default_registry = ModelRegistry()


def infer_provider(model: str, *, registry: ModelRegistry | None = None) -> ProviderName:
    """Infer the vendor from a model identifier.

    Registry entries win; otherwise any ``org/name`` identifier is routed
    through OpenRouter and well-known prefixes decide the rest.
    """
    info = (registry or _default_registry).get(model)
    if info is not None:
        return info.provider
    if "/" in model:
        return "openrouter"
    lowered = model.lower()
    for prefixes, provider in _PREFIX_RULES:
        if lowered.startswith(prefixes):
            return provider
    raise ConfigurationError(
        f"Cannot infer provider for model {model!r}",
        hint="Pass provider=... explicitly.",
    )


def supported_providers(capability: Capability) -> list[str]:
    """Vendors with an adapter for *capability*."""
    return list(_ADAPTERS[capability])


def is_provider_available(provider: str) -> bool:
    """True when *provider* is known and its credentials are configured."""
    if provider not in PROVIDERS:
        return False
    return not requires_api_key(provider) or env_api_key(provider) is not None


def _resolve_config(
    model: str | ProviderConfig,
    provider: ProviderName | None,
    capability: Capability,
    registry: ModelRegistry | None,
    overrides: dict[str, Any],
) -> ProviderConfig:
    if isinstance(model, ProviderConfig):
        if provider is not None or overrides:
            raise ConfigurationError(
                "Pass either a ProviderConfig or model/provider keywords, not both"
            )
        config = model
    else:
        resolved = provider or infer_provider(model, registry=registry)
        config = ProviderConfig.from_env(resolved, model, **overrides)

    info = (registry or _default_registry).get(config.model)
    if info is not None and info.provider == config.provider:
        if info.deprecated:
            hint = f"Use {info.replacement} instead." if info.replacement else None
            raise ConfigurationError(f"Model {info.id} is deprecated", hint=hint)
        if not info.supports(capability):
            raise ConfigurationError(
                f"Model {info.id} does not support {capability}",
                hint=f"Models for {capability}: "
                + ", ".join(
                    m.id
                    for m in (registry or _default_registry).list_models(
                        capability=capability, provider=config.provider
                    )
                ),
            )
    return config


def _create(
    capability: Capability,
    model: str | ProviderConfig,
    provider: ProviderName | None,
    registry: ModelRegistry | None,
    overrides: dict[str, Any],
) -> Any:
    config = _resolve_config(model, provider, capability, registry, overrides)
    adapters = _ADAPTERS[capability]
    adapter_cls = adapters.get(config.provider)
    if adapter_cls is None:
        raise ConfigurationError(
            f"Provider {config.provider} does not support {capability}",
            hint=f"Providers for {capability}: {', '.join(adapters)}",
        )
    log.debug(
        "Creating %s adapter provider=%s model=%s",
        capability,
        config.provider,
        config.model,
    )
    return adapter_cls(config)


def create_text_generation(
    model: str | ProviderConfig,
    *,
    provider: ProviderName | None = None,
    registry: ModelRegistry | None = None,
    fallback: bool = False,
    **overrides: Any,
) -> TextGenerationService:
    """Build a text adapter from a ProviderConfig or a model identifier.

    With a model identifier, the provider is inferred when omitted and the
    API key comes from the environment (``ProviderConfig.from_env``).

    With ``fallback=True``, a primary that cannot be built (missing key,
    unknown model) is replaced by the first registered text model of the
    next vendor that has credentials.
    """
    mixed = isinstance(model, ProviderConfig) and (provider is not None or bool(overrides))
    if not fallback or mixed:
        return _create("text", model, provider, registry, overrides)
    try:
        return _create("text", model, provider, registry, overrides)
    except ConfigurationError as e:
        return _create_text_fallback(e, model, provider, registry, overrides)


def _create_text_fallback(
    error: ConfigurationError,
    model: str | ProviderConfig,
    provider: ProviderName | None,
    registry: ModelRegistry | None,
    overrides: dict[str, Any],
) -> TextGenerationService:
    if isinstance(model, ProviderConfig):
        failed: str | None = model.provider
        carried: dict[str, Any] = {
            "timeout_s": model.timeout_s,
            "stream_idle_timeout_s": model.stream_idle_timeout_s,
            "retry": model.retry,
            "metering": model.metering,
        }
    else:
        failed = provider
        if failed is None:
            try:
                failed = infer_provider(model, registry=registry)
            except ConfigurationError:
                failed = None
        # Credentials and endpoints belong to the primary vendor
        carried = {
            k: v for k, v in overrides.items() if k not in ("api_key", "base_url")
        }

    catalog = registry or _default_registry
    for candidate in TEXT_FALLBACK_PROVIDERS:
        if candidate == failed:
            continue
        models = catalog.list_models(capability="text", provider=candidate)
        if not models:
            continue
        config = ProviderConfig.from_env(candidate, models[0].id, **carried)
        if not config.has_credentials:
            continue
        log.warning(
            "Falling back from %s to %s model=%s: %s",
            failed or "unknown provider",
            candidate,
            config.model,
            error,
        )
        return _create("text", config, None, registry, {})

    raise ConfigurationError(
        f"No text provider available: {error}",
        hint=error.hint
        or "Configure an API key for one of: " + ", ".join(TEXT_FALLBACK_PROVIDERS),
    ) from error


def create_image_generation(
    model: str | ProviderConfig,
    *,
    provider: ProviderName | None = None,
    registry: ModelRegistry | None = None,
    **overrides: Any,
) -> ImageGenerationService:
    return _create("image", model, provider, registry, overrides)


def create_speech_synthesis(
    model: str | ProviderConfig,
    *,
    provider: ProviderName | None = None,
    registry: ModelRegistry | None = None,
    **overrides: Any,
) -> SpeechSynthesisService:
    return _create("speech", model, provider, registry, overrides)


def create_transcription(
    model: str | ProviderConfig = "whisper-1",
    *,
    provider: ProviderName | None = None,
    registry: ModelRegistry | None = None,
    **overrides: Any,
) -> TranscriptionService:
    return _create("transcription", model, provider, registry, overrides)
