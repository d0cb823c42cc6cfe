"""Usage-to-credit metering policy.

Credits are an abstract, integer billing unit owned by the host application.
The defaults below are policy parameters, not vendor prices; inject a custom
``MeteringPolicy`` through ``ProviderConfig.metering`` to change them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from aigateway.types import TokenUsage

# Credits per 1k tokens, by model identifier or prefix
DEFAULT_TEXT_RATES: dict[str, float] = {
    "gpt-4": 30,
    "gpt-4-turbo": 20,
    "gpt-4o": 15,
    "gpt-3.5-turbo": 2,
    "claude-3-opus": 30,
    "claude-3-sonnet": 15,
    "claude-3-haiku": 5,
    "claude-3-5-sonnet": 15,
    "gemini-pro": 10,
    "gemini-1.5-pro": 15,
    "gemini-1.5-flash": 5,
    "mistral-large": 20,
    "mistral-medium": 10,
    "mistral-small": 5,
}

# Credits per image at standard quality and 1024x1024
DEFAULT_IMAGE_RATES: dict[str, float] = {
    "openai": 10,
    "google": 15,
    "pollinations": 5,
    "mock": 0,
}

DEFAULT_SIZE_MULTIPLIERS: dict[str, float] = {
    "1792x1024": 1.5,
    "1024x1792": 1.5,
    "512x512": 0.5,
    "256x256": 0.25,
}

DEFAULT_QUALITY_MULTIPLIERS: dict[str, float] = {"hd": 2.0}

# Credits per 1k characters
DEFAULT_SPEECH_RATES: dict[str, float] = {"huggingface": 0, "mock": 0}

# Chars-per-token heuristic used when a vendor reports no usage
CHARS_PER_TOKEN = 4


def _rate(table: Mapping[str, float], key: str) -> float | None:
    """Exact match first, then the longest matching prefix."""
    if key in table:
        return table[key]
    matches = [k for k in table if key.startswith(k)]
    if not matches:
        return None
    return table[max(matches, key=len)]


def _check_units(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite, non-negative number, got {value!r}")


def _credits(amount: float) -> int:
    return max(0, math.ceil(amount))


@dataclass(frozen=True)
class MeteringPolicy:
    """Maps consumed units to an integer credit cost (rounded up)."""

    text_rates: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TEXT_RATES)
    )
    default_text_rate: float = 10
    image_rates: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_IMAGE_RATES)
    )
    default_image_rate: float = 10
    size_multipliers: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SIZE_MULTIPLIERS)
    )
    quality_multipliers: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_QUALITY_MULTIPLIERS)
    )
    speech_rates: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SPEECH_RATES)
    )
    default_speech_rate: float = 5
    transcription_rate_per_minute: float = 3

    def __post_init__(self) -> None:
        rates = [
            self.default_text_rate,
            self.default_image_rate,
            self.default_speech_rate,
            self.transcription_rate_per_minute,
            *self.text_rates.values(),
            *self.image_rates.values(),
            *self.size_multipliers.values(),
            *self.quality_multipliers.values(),
            *self.speech_rates.values(),
        ]
        for r in rates:
            _check_units("rate", r)

    def text_rate(self, model: str) -> float:
        rate = _rate(self.text_rates, model)
        return self.default_text_rate if rate is None else rate

    def text_credits(
        self, usage: TokenUsage, *, model: str, output_chars: int = 0
    ) -> int:
        """Credits for a text call.

        Uses the reported total; when the vendor reported nothing, tokens are
        estimated from the generated character count.
        """
        _check_units("output_chars", output_chars)
        tokens = usage.total_tokens or usage.input_tokens + usage.output_tokens
        _check_units("tokens", tokens)
        if tokens == 0 and output_chars:
            tokens = math.ceil(output_chars / CHARS_PER_TOKEN)
        return _credits(tokens / 1000 * self.text_rate(model))

    def image_credits(
        self,
        *,
        provider: str,
        size: str | None = None,
        quality: str | None = None,
        count: int = 1,
    ) -> int:
        _check_units("count", count)
        base = self.image_rates.get(provider, self.default_image_rate)
        size_mult = self.size_multipliers.get(size or "", 1.0)
        quality_mult = self.quality_multipliers.get(quality or "", 1.0)
        return _credits(base * size_mult * quality_mult * count)

    def speech_credits(self, characters: int, *, provider: str) -> int:
        _check_units("characters", characters)
        rate = self.speech_rates.get(provider, self.default_speech_rate)
        return _credits(characters / 1000 * rate)

    def transcription_credits(self, duration_s: float) -> int:
        _check_units("duration_s", duration_s)
        return _credits(duration_s / 60 * self.transcription_rate_per_minute)
