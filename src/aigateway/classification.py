"""Failure classification and provider error wrapping.

``classify_error`` is pure: it only reads attributes and messages of the
exception chain it is given, so retry decisions can be tested in isolation.
``wrap_provider_error`` maps any vendor/SDK failure into the package error
hierarchy with stable provider/model/status context.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import re
from typing import TYPE_CHECKING, Any

import httpx

from aigateway.constants import API_KEY_ENV_VARS, RETRYABLE_STATUS_CODES
from aigateway.errors import (
    APIError,
    ConfigurationError,
    InvalidRequestError,
    NotAvailableError,
    ProviderTimeoutError,
    RateLimitError,
    StreamInterruptedError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from aigateway.errors import ErrorKind

_TIMEOUT_MARKERS = ("timeout", "timed out", "etimedout")
_NETWORK_MARKERS = (
    "network",
    "econnreset",
    "connection reset",
    "econnrefused",
    "connection refused",
)
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
_SERVER_MARKERS = ("internal server error", "service unavailable")

_STATUS_408_RE = re.compile(r"\b408\b")
_STATUS_429_RE = re.compile(r"\b429\b")
_SERVER_STATUS_RE = re.compile(r"\b50[03]\b")
# 4xx other than 408 / 429
_CLIENT_STATUS_RE = re.compile(r"\b4(?!08\b|29\b)\d\d\b")


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome of classifying one failure."""

    retryable: bool
    kind: ErrorKind
    status_code: int | None = None


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after_s", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

        response = getattr(e, "response", None)
        headers: Any = getattr(response, "headers", None)
        if headers is None:
            continue
        try:
            raw = headers.get("Retry-After")
        except (AttributeError, TypeError):
            raw = None
        if isinstance(raw, str) and raw.strip():
            try:
                seconds = float(raw)
            except ValueError:
                continue
            if seconds >= 0:
                return seconds
    return None


def _classify_status(status: int) -> ErrorClassification:
    if status == 408:
        return ErrorClassification(True, "timeout", status)
    if status in RETRYABLE_STATUS_CODES:
        return ErrorClassification(True, "transient", status)
    if 400 <= status < 500:
        return ErrorClassification(False, "validation", status)
    if status >= 500:
        return ErrorClassification(False, "server", status)
    return ErrorClassification(False, "unknown", status)


def _classify_unstructured(exc: BaseException) -> ErrorClassification:
    chain = list(_walk_exception_chain(exc))

    for e in chain:
        if isinstance(e, (TimeoutError, httpx.TimeoutException)):
            return ErrorClassification(True, "timeout")
    for e in chain:
        if isinstance(e, (ConnectionError, httpx.TransportError)):
            return ErrorClassification(True, "transient")

    text = " ".join(f"{type(e).__name__} {e}" for e in chain).lower()

    if any(m in text for m in _TIMEOUT_MARKERS) or _STATUS_408_RE.search(text):
        return ErrorClassification(True, "timeout")
    if any(m in text for m in _NETWORK_MARKERS):
        return ErrorClassification(True, "transient")
    if any(m in text for m in _RATE_LIMIT_MARKERS) or _STATUS_429_RE.search(text):
        return ErrorClassification(True, "transient")
    if any(m in text for m in _SERVER_MARKERS) or _SERVER_STATUS_RE.search(text):
        return ErrorClassification(True, "transient")
    if _CLIENT_STATUS_RE.search(text):
        return ErrorClassification(False, "validation")

    return ErrorClassification(False, "unknown")


def classify_error(exc: BaseException) -> ErrorClassification:
    """Classify a failure surfaced by a vendor call.

    Priority:
    - Cancellation and structural package errors (configuration, not
      available, interrupted stream) are never retried.
    - An HTTP status anywhere in the chain decides alone: retryable iff it is
      one of 408, 429, 500, 503.
    - Otherwise exception types and message markers (timeouts, network
      resets/refusals, rate limits, 500/503 text) mark a transient failure;
      explicit 4xx markers mark a validation failure.
    - Everything else fails fast.
    """
    if isinstance(exc, asyncio.CancelledError):
        return ErrorClassification(False, "cancelled")
    if isinstance(exc, ConfigurationError):
        return ErrorClassification(False, "configuration")
    if isinstance(exc, (NotAvailableError, StreamInterruptedError)):
        return ErrorClassification(False, exc.kind, exc.status_code)

    status = extract_status_code(exc)
    if status is not None:
        return _classify_status(status)

    if isinstance(exc, ProviderTimeoutError):
        return ErrorClassification(True, "timeout")
    # Package errors raised with an explicit decision keep it.
    if isinstance(exc, APIError) and exc.retryable is not None:
        return ErrorClassification(exc.retryable, exc.kind)

    return _classify_unstructured(exc)


def is_retryable(exc: BaseException) -> bool:
    """Return True when *exc* is worth re-attempting."""
    return classify_error(exc).retryable


def _auth_hint(provider: str, status_code: int | None) -> str | None:
    if status_code not in {401, 403}:
        return None
    env_var = API_KEY_ENV_VARS.get(provider, "the provider API key")
    return f"Check credentials/permissions (try setting {env_var})."


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    model: str | None = None,
    message: str | None = None,
    hint: str | None = None,
) -> APIError:
    """Map a vendor or SDK failure into APIError with classification metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.model is None:
            exc.model = model
        if exc.phase is None:
            exc.phase = phase
        if hint is not None and exc.hint is None:
            exc.hint = hint
        if exc.retryable is None:
            exc.retryable = is_retryable(exc)
        return exc

    classification = classify_error(exc)
    status_code = classification.status_code

    err_cls: type[APIError] = APIError
    if status_code == 429:
        err_cls = RateLimitError
    elif classification.kind == "timeout":
        err_cls = ProviderTimeoutError
    elif classification.kind == "validation":
        err_cls = InvalidRequestError

    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if status_code is not None else ""
    cause = str(exc)
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=hint if hint is not None else _auth_hint(provider, status_code),
        retryable=classification.retryable,
        status_code=status_code,
        retry_after_s=extract_retry_after_s(exc),
        provider=provider,
        model=model,
        phase=phase,
        kind=classification.kind,
    )
