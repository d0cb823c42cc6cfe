"""Bounded async retry with deterministic exponential backoff.

Design goals:
- Small API surface: one policy object, one executor, one timeout helper
- Explicit loop with attempt counters (no recursion)
- Retry decisions delegated to ``aigateway.classification``
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import time
from typing import TYPE_CHECKING, TypeVar

from aigateway.classification import (
    extract_retry_after_s,
    is_retryable,
    wrap_provider_error,
)
from aigateway.errors import ProviderTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

log = logging.getLogger(__name__)

# Indirection so tests can observe delays without sleeping.
_sleep = asyncio.sleep


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and no jitter.

    Retries are bounded and per call, so deterministic delays are safe and
    keep behavior reproducible.
    """

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float = 30.0
    #: Optional wall-clock ceiling for the whole retried call.
    max_elapsed_s: float | None = None
    #: Observer called as ``on_retry(attempt, exc)`` before each re-attempt.
    on_retry: Callable[[int, BaseException], None] | None = field(
        default=None, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("RetryPolicy.backoff_multiplier must be >= 1")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before re-attempting after failed *attempt* (1-based)."""
        base = self.initial_delay_s * (self.backoff_multiplier ** max(0, attempt - 1))
        return max(0.0, min(self.max_delay_s, base))

    def worst_case_s(self, attempt_timeout_s: float | None) -> float | None:
        """Upper bound on wall-clock time for one retried call.

        Returns None when attempts are unbounded (no per-attempt timeout and no
        ``max_elapsed_s``).
        """
        if attempt_timeout_s is None:
            return self.max_elapsed_s
        bound = (
            self.max_attempts * attempt_timeout_s
            + (self.max_attempts - 1) * self.max_delay_s
        )
        if self.max_elapsed_s is not None:
            return min(bound, self.max_elapsed_s + attempt_timeout_s)
        return bound


async def with_timeout(
    factory: Callable[[], Awaitable[T]],
    timeout_s: float | None,
    *,
    provider: str | None = None,
) -> T:
    """Run one unit of work, failing with ProviderTimeoutError on expiry."""
    if timeout_s is None:
        return await factory()
    try:
        return await asyncio.wait_for(factory(), timeout=timeout_s)
    except TimeoutError as e:
        target = f" for {provider}" if provider else ""
        raise ProviderTimeoutError(
            f"Operation timed out after {timeout_s:g}s{target}",
            retryable=True,
            status_code=None,
            provider=provider,
        ) from e


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    provider: str | None = None,
    model: str | None = None,
    phase: str = "generate",
) -> T:
    """Run an async factory with bounded retries.

    When *provider* is given, the surfaced failure is wrapped with
    provider/model/phase context.
    """
    start = time.monotonic()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await factory()
        except Exception as exc:
            retryable = should_retry(exc)
            if not retryable or attempt >= policy.max_attempts:
                if retryable:
                    log.warning(
                        "Giving up after %d attempt(s) provider=%s model=%s: %s",
                        attempt,
                        provider,
                        model,
                        exc,
                    )
                _raise_final(exc, provider=provider, model=model, phase=phase)

            delay = policy.delay_for(attempt)
            retry_after = extract_retry_after_s(exc)
            if retry_after is not None:
                delay = min(policy.max_delay_s, max(delay, retry_after))

            if policy.max_elapsed_s is not None:
                elapsed = time.monotonic() - start
                if elapsed + delay > policy.max_elapsed_s:
                    log.warning(
                        "Retry budget of %.3fs exhausted provider=%s model=%s",
                        policy.max_elapsed_s,
                        provider,
                        model,
                    )
                    _raise_final(exc, provider=provider, model=model, phase=phase)

            log.info(
                "Retrying after error provider=%s model=%s attempt=%d delay=%.3fs: %s",
                provider,
                model,
                attempt,
                delay,
                exc,
            )
            if delay > 0:
                await _sleep(delay)
            if policy.on_retry is not None:
                policy.on_retry(attempt, exc)

    # Loop always returns or raises.
    raise AssertionError("retry_async exhausted without a result")  # pragma: no cover


def _raise_final(
    exc: Exception, *, provider: str | None, model: str | None, phase: str
) -> None:
    if provider is None:
        raise exc
    wrapped = wrap_provider_error(exc, provider=provider, model=model, phase=phase)
    if wrapped is exc:
        raise exc
    raise wrapped from exc
