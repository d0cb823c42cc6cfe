"""Capability protocols and vendor adapters."""

from .anthropic import AnthropicTextGeneration
from .base import (
    ImageGenerationService,
    SpeechSynthesisService,
    TextGenerationService,
    TranscriptionService,
)
from .gemini import GoogleImageGeneration, GoogleTextGeneration
from .huggingface import HuggingFaceSpeechSynthesis
from .mistral import MistralTextGeneration
from .mock import (
    MockImageGeneration,
    MockSpeechSynthesis,
    MockTextGeneration,
    MockTranscription,
)
from .openai import (
    OpenAIImageGeneration,
    OpenAISpeechSynthesis,
    OpenAITextGeneration,
    OpenAITranscription,
)
from .openrouter import OpenRouterTextGeneration
from .pollinations import PollinationsImageGeneration

__all__ = [
    "AnthropicTextGeneration",
    "GoogleImageGeneration",
    "GoogleTextGeneration",
    "HuggingFaceSpeechSynthesis",
    "ImageGenerationService",
    "MistralTextGeneration",
    "MockImageGeneration",
    "MockSpeechSynthesis",
    "MockTextGeneration",
    "MockTranscription",
    "OpenAIImageGeneration",
    "OpenAISpeechSynthesis",
    "OpenAITextGeneration",
    "OpenAITranscription",
    "OpenRouterTextGeneration",
    "PollinationsImageGeneration",
    "SpeechSynthesisService",
    "TextGenerationService",
    "TranscriptionService",
]
