"""Configuration: frozen per-adapter ProviderConfig."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from aigateway.constants import (
    API_KEY_ENV_VARS,
    DEFAULT_STREAM_IDLE_TIMEOUT_S,
    DEFAULT_TIMEOUT_S,
    KEYLESS_PROVIDERS,
    PROVIDERS,
    ProviderName,
)
from aigateway.errors import ConfigurationError
from aigateway.metering import MeteringPolicy
from aigateway.retry import RetryPolicy


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable configuration for one adapter.

    Credentials are passed explicitly; ``from_env`` is the only place the
    environment is read.

    Example:
        config = ProviderConfig.from_env("anthropic", "claude-3-5-sonnet-latest")
        # API key is resolved from ANTHROPIC_API_KEY (or a .env file)
    """

    provider: ProviderName
    model: str
    api_key: str | None = None
    #: Override for the vendor endpoint (proxies, self-hosted gateways).
    base_url: str | None = None
    #: Per-attempt time budget; None disables the timer.
    timeout_s: float | None = DEFAULT_TIMEOUT_S
    #: Longest wait for the next stream chunk; None disables the timer.
    stream_idle_timeout_s: float | None = DEFAULT_STREAM_IDLE_TIMEOUT_S
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    metering: MeteringPolicy = field(default_factory=MeteringPolicy)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint=f"Supported providers: {', '.join(PROVIDERS)}",
            )
        if not self.model:
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass the vendor model identifier, e.g. model='gpt-4o'.",
            )
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0 or None, got {self.timeout_s}",
                hint="This is the per-attempt time budget in seconds.",
            )
        if self.stream_idle_timeout_s is not None and self.stream_idle_timeout_s <= 0:
            raise ConfigurationError(
                f"stream_idle_timeout_s must be > 0 or None, got {self.stream_idle_timeout_s}",
                hint="This bounds the silence between two stream chunks.",
            )

    @property
    def api_key_env_var(self) -> str | None:
        return API_KEY_ENV_VARS.get(self.provider)

    @classmethod
    def from_env(
        cls,
        provider: ProviderName,
        model: str,
        **overrides: object,
    ) -> ProviderConfig:
        """Build a config whose API key comes from the environment or ``.env``."""
        api_key = overrides.pop("api_key", None)
        if api_key is None:
            api_key = env_api_key(provider)
        return cls(provider=provider, model=model, api_key=api_key, **overrides)  # type: ignore[arg-type]

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError naming its env var."""
        if self.api_key:
            return self.api_key
        env_var = self.api_key_env_var or "an API key"
        raise ConfigurationError(
            f"API key required for {self.provider}",
            hint=f"Set {env_var} environment variable or pass api_key=...",
        )

    @property
    def requires_api_key(self) -> bool:
        return requires_api_key(self.provider)

    @property
    def has_credentials(self) -> bool:
        """True when the adapter can be built: a key is set or none is needed."""
        return bool(self.api_key) or not self.requires_api_key

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderConfig(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r}, timeout_s={self.timeout_s})"
        )

    __repr__ = __str__


def requires_api_key(provider: str) -> bool:
    return provider not in KEYLESS_PROVIDERS


def env_api_key(provider: str) -> str | None:
    """Read the provider's API key from the environment (after loading ``.env``)."""
    load_dotenv()
    env_var = API_KEY_ENV_VARS.get(provider)
    if env_var is None:
        return None
    return os.environ.get(env_var) or None
