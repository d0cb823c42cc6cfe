"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off fake vendor clients as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any


class StatusError(Exception):
    """Vendor-style exception carrying an HTTP status."""

    def __init__(self, status_code: int, message: str = "vendor error") -> None:
        super().__init__(f"{status_code} {message}")
        self.status_code = status_code


@dataclass
class ScriptedCall:
    """Async unit of work returning a scripted sequence of results/exceptions.

    The last item repeats once the script is exhausted.
    """

    script: list[Any] = field(default_factory=list)
    calls: int = 0

    async def __call__(self, *_args: Any, **_kwargs: Any) -> Any:
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


@dataclass
class FakeStream:
    """Async iterable over scripted chunks; an exception item is raised in place.

    With ``stall=True`` the stream hangs once the script runs out.
    """

    chunks: list[Any] = field(default_factory=list)
    closed: bool = False
    consumed: int = 0
    stall: bool = False

    def __aiter__(self) -> FakeStream:
        return self

    async def __anext__(self) -> Any:
        if self.consumed >= len(self.chunks):
            if self.stall:
                await asyncio.Event().wait()
            raise StopAsyncIteration
        item = self.chunks[self.consumed]
        self.consumed += 1
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


def ns(**kwargs: Any) -> SimpleNamespace:
    """Shorthand for SDK-shaped response objects."""
    return SimpleNamespace(**kwargs)


def openai_chunk(
    text: str | None = None,
    *,
    finish: str | None = None,
    usage: dict[str, int] | None = None,
) -> SimpleNamespace:
    """Chat completion chunk; ``text=None`` with ``usage`` yields a usage-only chunk."""
    choices = []
    if text is not None or finish is not None:
        choices = [ns(delta=ns(content=text), finish_reason=finish)]
    return ns(
        choices=choices,
        usage=ns(**usage) if usage else None,
        model="gpt-4o-2024-08-06",
    )


async def collect(stream: Any) -> list[Any]:
    return [fragment async for fragment in stream]
