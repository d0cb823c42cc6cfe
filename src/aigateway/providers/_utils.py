"""Shared utilities for provider adapters."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, TypeVar

from aigateway.constants import WORDS_PER_MINUTE
from aigateway.errors import InvalidRequestError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aigateway.types import ChatMessage

N = TypeVar("N", int, float)

log = logging.getLogger(__name__)


def clamp(
    value: N | None,
    low: N | None,
    high: N | None,
    *,
    field: str,
    provider: str,
) -> N | None:
    """Clamp an optional numeric option into ``[low, high]``.

    None passes through so vendor defaults apply. Clamping is logged.
    """
    if value is None:
        return None
    clamped = value
    if low is not None and clamped < low:
        clamped = low
    if high is not None and clamped > high:
        clamped = high
    if clamped != value:
        log.warning(
            "Clamped %s for %s from %r to %r", field, provider, value, clamped
        )
    return clamped


def split_system(messages: Sequence[ChatMessage]) -> tuple[str | None, list[ChatMessage]]:
    """Hoist every system message (in order, blank-line joined) out of the list."""
    system_parts = [m.content for m in messages if m.role == "system"]
    rest = [m for m in messages if m.role != "system"]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, rest


def merge_turns(turns: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Merge consecutive same-role turns for vendors requiring alternation."""
    merged: list[tuple[str, str]] = []
    for role, content in turns:
        if merged and merged[-1][0] == role:
            prev_role, prev_content = merged[-1]
            merged[-1] = (prev_role, f"{prev_content}\n\n{content}")
        else:
            merged.append((role, content))
    return merged


def require_messages(messages: Sequence[ChatMessage], *, provider: str) -> None:
    if not messages:
        raise InvalidRequestError(
            "messages must contain at least one entry",
            retryable=False,
            provider=provider,
        )


def estimate_speech_duration(text: str, speed: float = 1.0) -> float:
    """Seconds needed to speak *text* at the average speaking rate."""
    words = len(text.split())
    if words == 0:
        return 0.0
    speed = speed if speed > 0 else 1.0
    return words / WORDS_PER_MINUTE * 60 / speed


def parse_size(size: str) -> tuple[int, int]:
    """Parse ``"WIDTHxHEIGHT"`` into integers."""
    width, _, height = size.lower().partition("x")
    return int(width), int(height)


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read *name* from a dict payload or an SDK object alike."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def usage_value(usage: Any, *names: str) -> int | None:
    """Read the first integer token count present on an SDK usage object or dict."""
    if usage is None:
        return None
    for name in names:
        value = get_field(usage, name)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and math.isfinite(value):
            return int(value)
    return None


def require_prompt(prompt: str, *, provider: str) -> None:
    if not prompt or not prompt.strip():
        raise InvalidRequestError(
            "prompt must be non-empty", retryable=False, provider=provider
        )


def require_count(count: int, *, provider: str) -> None:
    if count < 1:
        raise InvalidRequestError(
            f"count must be >= 1, got {count}", retryable=False, provider=provider
        )
