"""Normalize vendor streaming protocols into uniform fragments.

Every vendor adapter reduces its raw chunks to ``StreamUpdate`` values with a
small ``parse`` function; ``normalize_stream`` owns the invariants:

- only non-empty text is emitted
- exactly one terminal fragment, always last, carrying metadata
- no synthetic completion after a mid-stream failure
- the vendor source is closed on every exit path
- a source silent for longer than the idle budget fails the stream
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import json
import logging
from typing import TYPE_CHECKING, Any

from aigateway.classification import extract_status_code, wrap_provider_error
from aigateway.errors import StreamInterruptedError
from aigateway.retry import with_timeout
from aigateway.types import (
    ResponseMetadata,
    StreamFragment,
    TextGenerationResponse,
    TokenUsage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable

    import httpx

log = logging.getLogger(__name__)

_TEXT_BLOCK_TYPES = frozenset({"text", "text_delta", "output_text"})


@dataclass(frozen=True)
class StreamUpdate:
    """What one vendor chunk contributed; unset fields contribute nothing."""

    text: str = ""
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    model: str | None = None
    done: bool = False


def extract_text(content: Any) -> str:
    """Concatenate the text blocks of a vendor content payload.

    Accepts a plain string, a list of dict blocks or a list of SDK objects.
    Non-text blocks (images, tool use, thinking) are dropped.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        return "".join(_block_text(block) for block in content)
    return _block_text(content)


def _block_text(block: Any) -> str:
    if isinstance(block, str):
        return block
    if isinstance(block, dict):
        kind = block.get("type", "text")
        text = block.get("text")
    else:
        kind = getattr(block, "type", "text")
        text = getattr(block, "text", None)
    if kind not in _TEXT_BLOCK_TYPES or not isinstance(text, str):
        return ""
    return text


async def normalize_stream(
    source: AsyncIterable[Any],
    parse: Callable[[Any], StreamUpdate | None],
    *,
    provider: str,
    model: str,
    meter: Callable[[TokenUsage, int], int],
    idle_timeout_s: float | None = None,
) -> AsyncIterator[StreamFragment]:
    """Yield fragments from a vendor async iterable.

    ``meter(usage, output_chars)`` computes the credits reported on the
    terminal fragment. ``idle_timeout_s`` bounds the wait for each chunk; the
    timer restarts whenever a chunk arrives.
    """
    emitted = 0
    output_chars = 0
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    reported_model: str | None = None
    chunks = source.__aiter__()

    try:
        try:
            while True:
                try:
                    chunk = await with_timeout(
                        chunks.__anext__, idle_timeout_s, provider=provider
                    )
                except StopAsyncIteration:
                    break
                update = parse(chunk)
                if update is None:
                    continue
                if update.input_tokens is not None:
                    input_tokens = update.input_tokens
                if update.output_tokens is not None:
                    output_tokens = update.output_tokens
                if update.total_tokens is not None:
                    total_tokens = update.total_tokens
                if update.finish_reason:
                    finish_reason = update.finish_reason
                if update.model:
                    reported_model = update.model
                if update.text:
                    emitted += 1
                    output_chars += len(update.text)
                    yield StreamFragment(content=update.text)
                if update.done:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if emitted:
                raise StreamInterruptedError(
                    f"{provider} stream interrupted after {emitted} fragment(s): {exc}",
                    fragments_emitted=emitted,
                    provider=provider,
                    model=model,
                    status_code=extract_status_code(exc),
                ) from exc
            wrapped = wrap_provider_error(
                exc, provider=provider, model=model, phase="stream"
            )
            if wrapped is exc:
                raise
            raise wrapped from exc

        usage = TokenUsage.of(input_tokens, output_tokens, total_tokens)
        metadata = ResponseMetadata(
            model=reported_model or model,
            provider=provider,
            usage=usage,
            credits=meter(usage, output_chars),
            finish_reason=finish_reason,
        )
        log.debug(
            "Stream complete provider=%s model=%s fragments=%d finish=%s",
            provider,
            model,
            emitted,
            finish_reason,
        )
        yield StreamFragment(content="", is_complete=True, metadata=metadata)
    finally:
        await close_quietly(source)


async def aggregate_stream(
    stream: AsyncIterable[StreamFragment],
    *,
    on_fragment: Callable[[StreamFragment], None] | None = None,
) -> TextGenerationResponse:
    """Drain a fragment stream into one response.

    ``on_fragment`` sees every fragment, the terminal one included. A stream
    that ends without a terminal fragment raises ``StreamInterruptedError``.
    """
    parts: list[str] = []
    metadata: ResponseMetadata | None = None
    async for fragment in stream:
        if on_fragment is not None:
            on_fragment(fragment)
        if fragment.is_complete:
            metadata = fragment.metadata
        else:
            parts.append(fragment.content)
    if metadata is None:
        raise StreamInterruptedError(
            "Stream ended without a completion fragment",
            fragments_emitted=len(parts),
        )
    return TextGenerationResponse(content="".join(parts), metadata=metadata)


async def close_quietly(resource: Any) -> None:
    """Close an async or sync resource; cleanup failures are logged, not raised.

    Falls back to ``__aexit__`` for streams that only support ``async with``.
    """
    closer = getattr(resource, "aclose", None) or getattr(resource, "close", None)
    if closer is None:
        exit_ = getattr(resource, "__aexit__", None)
        if exit_ is None:
            return
        closer = lambda: exit_(None, None, None)  # noqa: E731
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.warning("Failed to close stream resource %r: %s", resource, e)


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[Any]:
    """Yield decoded JSON payloads from ``data:`` lines of an SSE response.

    Comments, blank lines and non-JSON payloads are skipped; the literal
    ``[DONE]`` ends the stream.
    """
    async for line in response.aiter_lines():
        line = line.strip()
        if not line or line.startswith(":"):
            continue
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if data == "[DONE]":
            return
        try:
            yield json.loads(data)
        except json.JSONDecodeError:
            log.debug("Skipping non-JSON SSE payload: %.80s", data)
