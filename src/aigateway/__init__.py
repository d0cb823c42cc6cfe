"""aigateway: one contract for text, image, speech and transcription vendors.

Public API:
    - create_text_generation / create_image_generation /
      create_speech_synthesis / create_transcription: adapter factory
    - ProviderConfig: per-adapter configuration
    - RetryPolicy, MeteringPolicy: injected policies
    - Capability protocols and value types
"""

from __future__ import annotations

import logging

from aigateway.classification import classify_error, is_retryable
from aigateway.config import ProviderConfig
from aigateway.errors import (
    APIError,
    ConfigurationError,
    GatewayError,
    InvalidRequestError,
    NotAvailableError,
    ProviderTimeoutError,
    RateLimitError,
    StreamInterruptedError,
)
from aigateway.factory import (
    create_image_generation,
    create_speech_synthesis,
    create_text_generation,
    create_transcription,
    infer_provider,
    is_provider_available,
)
from aigateway.metering import MeteringPolicy
from aigateway.providers.base import (
    ImageGenerationService,
    SpeechSynthesisService,
    TextGenerationService,
    TranscriptionService,
)
from aigateway.registry import ModelInfo, ModelRegistry
from aigateway.retry import RetryPolicy, retry_async, with_timeout
from aigateway.streaming import aggregate_stream
from aigateway.types import (
    AudioFile,
    ChatMessage,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ResponseMetadata,
    SpeechSynthesisOptions,
    SpeechSynthesisResponse,
    StreamFragment,
    TextGenerationOptions,
    TextGenerationResponse,
    TokenUsage,
    TranscriptionOptions,
    TranscriptionResponse,
    TranscriptionSegment,
    Voice,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("aigateway")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("aigateway").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AudioFile",
    "ChatMessage",
    "ConfigurationError",
    "GatewayError",
    "ImageGenerationOptions",
    "ImageGenerationResponse",
    "ImageGenerationService",
    "InvalidRequestError",
    "MeteringPolicy",
    "ModelInfo",
    "ModelRegistry",
    "NotAvailableError",
    "ProviderConfig",
    "ProviderTimeoutError",
    "RateLimitError",
    "ResponseMetadata",
    "RetryPolicy",
    "SpeechSynthesisOptions",
    "SpeechSynthesisResponse",
    "SpeechSynthesisService",
    "StreamFragment",
    "StreamInterruptedError",
    "TextGenerationOptions",
    "TextGenerationResponse",
    "TextGenerationService",
    "TokenUsage",
    "TranscriptionOptions",
    "TranscriptionResponse",
    "TranscriptionSegment",
    "TranscriptionService",
    "Voice",
    "aggregate_stream",
    "classify_error",
    "create_image_generation",
    "create_speech_synthesis",
    "create_text_generation",
    "create_transcription",
    "infer_provider",
    "is_provider_available",
    "is_retryable",
    "retry_async",
    "with_timeout",
]
