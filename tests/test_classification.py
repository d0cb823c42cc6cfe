"""Failure classification: which vendor errors are worth retrying."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from aigateway.classification import (
    classify_error,
    extract_retry_after_s,
    extract_status_code,
    is_retryable,
    wrap_provider_error,
)
from aigateway.errors import (
    APIError,
    ConfigurationError,
    InvalidRequestError,
    NotAvailableError,
    ProviderTimeoutError,
    RateLimitError,
    StreamInterruptedError,
)
from tests.helpers import StatusError

pytestmark = pytest.mark.unit


def _http_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.example.test/v1")
    response = httpx.Response(status, headers=headers, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


# =============================================================================
# Status codes
# =============================================================================


@pytest.mark.parametrize("status", [408, 429, 500, 503])
def test_retryable_statuses(status: int) -> None:
    assert is_retryable(StatusError(status)) is True


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422, 502, 504])
def test_non_retryable_statuses(status: int) -> None:
    assert is_retryable(StatusError(status)) is False


def test_status_decides_over_message_markers() -> None:
    """A 404 whose message mentions a timeout still fails fast."""
    assert is_retryable(StatusError(404, "request timed out upstream")) is False


def test_status_found_on_httpx_response() -> None:
    err = _http_error(503)
    assert extract_status_code(err) == 503
    assert classify_error(err).kind == "transient"


def test_status_found_through_cause_chain() -> None:
    try:
        try:
            raise StatusError(429)
        except StatusError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as outer:
        assert extract_status_code(outer) == 429
        assert is_retryable(outer) is True


def test_status_classification_kinds() -> None:
    assert classify_error(StatusError(408)).kind == "timeout"
    assert classify_error(StatusError(429)).kind == "transient"
    assert classify_error(StatusError(404)).kind == "validation"
    assert classify_error(StatusError(502)).kind == "server"


# =============================================================================
# Unstructured failures
# =============================================================================


@pytest.mark.parametrize(
    "exc",
    [
        Exception("ECONNRESET"),
        Exception("socket: connection reset by peer"),
        Exception("network unreachable"),
        Exception("Rate limit reached for requests"),
        Exception("upstream said 503 Service Unavailable"),
        Exception("ETIMEDOUT"),
        TimeoutError(),
        ConnectionRefusedError(),
        httpx.ConnectError("boom"),
        httpx.ReadTimeout("slow"),
    ],
)
def test_transient_unstructured_failures_retry(exc: BaseException) -> None:
    assert is_retryable(exc) is True


@pytest.mark.parametrize(
    "exc",
    [
        Exception("model not found (404)"),
        ValueError("bad json"),
        KeyError("choices"),
    ],
)
def test_other_failures_fail_fast(exc: BaseException) -> None:
    assert is_retryable(exc) is False


def test_timeout_type_beats_markers() -> None:
    assert classify_error(httpx.ReadTimeout("x")).kind == "timeout"
    assert classify_error(Exception("ECONNRESET")).kind == "transient"


# =============================================================================
# Package errors
# =============================================================================


def test_structural_errors_never_retry() -> None:
    assert is_retryable(ConfigurationError("missing key")) is False
    assert is_retryable(NotAvailableError("no images")) is False
    assert is_retryable(StreamInterruptedError("cut", fragments_emitted=2)) is False
    assert is_retryable(asyncio.CancelledError()) is False


def test_explicit_decision_is_kept() -> None:
    assert is_retryable(APIError("not an image", retryable=True, kind="transient")) is True
    assert is_retryable(InvalidRequestError("empty prompt", retryable=False)) is False
    assert is_retryable(ProviderTimeoutError("slow")) is True


# =============================================================================
# Retry-After
# =============================================================================


def test_retry_after_from_header() -> None:
    assert extract_retry_after_s(_http_error(429, {"Retry-After": "7"})) == 7.0


def test_retry_after_from_attribute() -> None:
    assert extract_retry_after_s(RateLimitError("x", retry_after_s=2.5)) == 2.5


def test_retry_after_ignores_http_dates() -> None:
    err = _http_error(503, {"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
    assert extract_retry_after_s(err) is None


# =============================================================================
# Wrapping
# =============================================================================


def test_wrap_rate_limit() -> None:
    err = wrap_provider_error(
        _http_error(429, {"Retry-After": "3"}),
        provider="openai",
        model="gpt-4o",
        phase="generate",
    )
    assert isinstance(err, RateLimitError)
    assert err.retryable is True
    assert err.status_code == 429
    assert err.retry_after_s == 3.0
    assert err.provider == "openai"
    assert err.model == "gpt-4o"
    assert "status=429" in str(err)


def test_wrap_auth_failure_names_env_var() -> None:
    err = wrap_provider_error(StatusError(401), provider="anthropic", phase="generate")
    assert isinstance(err, InvalidRequestError)
    assert err.retryable is False
    assert err.hint is not None
    assert "ANTHROPIC_API_KEY" in err.hint


def test_wrap_timeout() -> None:
    err = wrap_provider_error(TimeoutError(), provider="mistral", phase="stream")
    assert isinstance(err, ProviderTimeoutError)
    assert err.phase == "stream"


def test_wrap_fills_missing_context_only() -> None:
    original = APIError("x", provider="pollinations", retryable=True)
    wrapped = wrap_provider_error(original, provider="other", model="flux", phase="generate")
    assert wrapped is original
    assert wrapped.provider == "pollinations"
    assert wrapped.model == "flux"
    assert wrapped.phase == "generate"


def test_wrap_reraises_cancellation() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_provider_error(asyncio.CancelledError(), provider="openai", phase="generate")
