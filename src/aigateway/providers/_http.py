"""httpx plumbing shared by the REST adapters (OpenRouter, Pollinations, HF)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from aigateway.streaming import iter_sse_data

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_MAX_ERROR_BODY_CHARS = 500


async def ensure_ok(response: httpx.Response) -> None:
    """Raise ``httpx.HTTPStatusError`` (body excerpt included) for non-2xx."""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace").strip()
    detail = body[:_MAX_ERROR_BODY_CHARS] or response.reason_phrase
    raise httpx.HTTPStatusError(
        f"HTTP {response.status_code}: {detail}",
        request=response.request,
        response=response,
    )


class SSEStream:
    """Async iterable over the JSON events of an open SSE response.

    ``aclose`` releases the connection whether or not iteration started.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    def __aiter__(self) -> AsyncIterator[Any]:
        return iter_sse_data(self._response)

    async def aclose(self) -> None:
        await self._response.aclose()


async def open_sse(
    client: httpx.AsyncClient, url: str, *, headers: dict[str, str], json: Any
) -> SSEStream:
    """POST *json* and return the event stream once the status is known good."""
    request = client.build_request("POST", url, headers=headers, json=json)
    response = await client.send(request, stream=True)
    try:
        await ensure_ok(response)
    except BaseException:
        await response.aclose()
        raise
    return SSEStream(response)
