"""Call composition shared by every adapter: timeout, retry, wrap, log."""

from __future__ import annotations

from contextlib import aclosing
import logging
import time
from typing import TYPE_CHECKING, Any, TypeVar

from aigateway.errors import GatewayError
from aigateway.retry import retry_async, with_timeout
from aigateway.streaming import normalize_stream

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

    from aigateway.config import ProviderConfig
    from aigateway.streaming import StreamUpdate
    from aigateway.types import StreamFragment, TokenUsage

T = TypeVar("T")

log = logging.getLogger(__name__)


class CallRunner:
    """Runs vendor calls for one adapter under its config.

    Holds only the immutable config, so one runner serves concurrent calls.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    async def run(
        self, factory: Callable[[], Awaitable[T]], *, phase: str = "generate"
    ) -> T:
        """Run *factory* with a per-attempt timeout inside bounded retries.

        Failures surface as ``APIError`` with provider/model/phase context.
        """
        config = self._config

        async def attempt() -> T:
            return await with_timeout(
                factory, config.timeout_s, provider=config.provider
            )

        start = time.perf_counter()
        log.debug(
            "Call start provider=%s model=%s phase=%s",
            config.provider,
            config.model,
            phase,
        )
        try:
            result = await retry_async(
                attempt,
                policy=config.retry,
                provider=config.provider,
                model=config.model,
                phase=phase,
            )
        except GatewayError as e:
            log.debug(
                "Call failed provider=%s model=%s phase=%s duration=%.3fs: %s",
                config.provider,
                config.model,
                phase,
                time.perf_counter() - start,
                e,
            )
            raise
        log.debug(
            "Call done provider=%s model=%s phase=%s duration=%.3fs",
            config.provider,
            config.model,
            phase,
            time.perf_counter() - start,
        )
        return result

    async def stream(
        self,
        open_source: Callable[[], Awaitable[AsyncIterable[Any]]],
        parse: Callable[[Any], StreamUpdate | None],
        *,
        meter: Callable[[TokenUsage, int], int],
    ) -> AsyncIterator[StreamFragment]:
        """Open a vendor stream (retried) and normalize its chunks (not retried).

        Each chunk must arrive within ``stream_idle_timeout_s`` of the last.
        """
        source = await self.run(open_source, phase="stream")
        fragments = normalize_stream(
            source,
            parse,
            provider=self._config.provider,
            model=self._config.model,
            meter=meter,
            idle_timeout_s=self._config.stream_idle_timeout_s,
        )
        async with aclosing(fragments):
            async for fragment in fragments:
                yield fragment

    def text_meter(self) -> Callable[[TokenUsage, int], int]:
        """Return the metering callback for text streams of this model."""
        policy = self._config.metering
        model = self._config.model

        def meter(usage: TokenUsage, output_chars: int) -> int:
            return policy.text_credits(usage, model=model, output_chars=output_chars)

        return meter
