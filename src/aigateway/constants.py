"""Project-wide constants for aigateway."""

from __future__ import annotations

from typing import Literal

# ==============================================================================
# Providers
# ==============================================================================

ProviderName = Literal[
    "openai",
    "anthropic",
    "google",
    "mistral",
    "openrouter",
    "pollinations",
    "huggingface",
    "mock",
]

PROVIDERS: tuple[ProviderName, ...] = (
    "openai",
    "anthropic",
    "google",
    "mistral",
    "openrouter",
    "pollinations",
    "huggingface",
    "mock",
)

# Credential environment variables, one per vendor
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_AI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "huggingface": "HF_TOKEN",
}

# Vendors that work without credentials (HF token only raises rate limits)
KEYLESS_PROVIDERS: frozenset[str] = frozenset({"pollinations", "huggingface", "mock"})

# ==============================================================================
# Retry / Transport
# ==============================================================================

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 503})

DEFAULT_TIMEOUT_S = 60.0

# Longest silence tolerated between two chunks of a stream
DEFAULT_STREAM_IDLE_TIMEOUT_S = 30.0

# Fallback order for text generation when the requested vendor is unusable
TEXT_FALLBACK_PROVIDERS: tuple[ProviderName, ...] = (
    "openai",
    "anthropic",
    "google",
    "mistral",
    "openrouter",
)

# ==============================================================================
# Audio
# ==============================================================================

_MB = 1024 * 1024

MAX_TRANSCRIPTION_FILE_SIZE = 25 * _MB

# Average speaking rate used for duration estimates
WORDS_PER_MINUTE = 150
