"""Exception hierarchy for aigateway."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from collections.abc import Iterator

ErrorKind = Literal[
    "configuration",
    "validation",
    "transient",
    "timeout",
    "not_available",
    "stream_interrupted",
    "server",
    "cancelled",
    "unknown",
]


class GatewayError(Exception):
    """Base exception for all aigateway errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(GatewayError):
    """Configuration validation or credential resolution failed.

    Raised from adapter constructors, never from a call.
    """


class APIError(GatewayError):
    """A vendor call failed.

    Carries enough structured context (provider, model, status, kind) for
    callers to log and for tests to match without parsing vendor payloads.
    """

    default_kind: ErrorKind = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        model: str | None = None,
        phase: str | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.model = model
        self.phase = phase
        self.kind: ErrorKind = kind or self.default_kind


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""

    default_kind: ErrorKind = "transient"


class ProviderTimeoutError(APIError):
    """A call did not finish within its time budget."""

    default_kind: ErrorKind = "timeout"


class InvalidRequestError(APIError):
    """The request was rejected by local validation or by the vendor (4xx)."""

    default_kind: ErrorKind = "validation"


class NotAvailableError(APIError):
    """The vendor integration does not support this capability."""

    default_kind: ErrorKind = "not_available"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(
            message,
            hint=hint,
            retryable=False,
            provider=provider,
            model=model,
            phase="generate",
        )


class StreamInterruptedError(APIError):
    """A stream failed after some fragments had already been delivered.

    Fragments already yielded stay valid; no terminal fragment follows.
    """

    default_kind: ErrorKind = "stream_interrupted"

    def __init__(
        self,
        message: str,
        *,
        fragments_emitted: int,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message,
            retryable=False,
            status_code=status_code,
            provider=provider,
            model=model,
            phase="stream",
        )
        self.fragments_emitted = fragments_emitted


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
