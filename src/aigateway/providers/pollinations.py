"""Pollinations image adapter (free, keyless, generated on GET)."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from aigateway.errors import APIError
from aigateway.providers._http import ensure_ok
from aigateway.providers._runtime import CallRunner
from aigateway.providers._utils import parse_size, require_count, require_prompt
from aigateway.types import (
    ImageGenerationOptions,
    ImageGenerationResponse,
    ResponseMetadata,
)

if TYPE_CHECKING:
    from aigateway.config import ProviderConfig

log = logging.getLogger(__name__)

POLLINATIONS_URL = "https://image.pollinations.ai/prompt"
_DEFAULT_SIZE = "1024x1024"
_SIZES = ("256x256", "512x512", "1024x1024", "1792x1024", "1024x1792")
_MAX_SEED = 1_000_000


class PollinationsImageGeneration:
    """Pollinations renders on demand, so the image URL is fetched once to
    make sure it exists before it is returned."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._runner = CallRunner(config)
        self._base_url = (config.base_url or POLLINATIONS_URL).rstrip("/")
        self._client: httpx.AsyncClient | None = None

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout_s, follow_redirects=True
            )
        return self._client

    def supported_sizes(self) -> list[str]:
        return list(_SIZES)

    def image_url(self, prompt: str, size: str, seed: int) -> str:
        width, height = parse_size(size)
        return (
            f"{self._base_url}/{quote(prompt, safe='')}"
            f"?width={width}&height={height}&seed={seed}&nologo=true&model={self.model}"
        )

    async def generate_image(
        self, prompt: str, options: ImageGenerationOptions | None = None
    ) -> ImageGenerationResponse:
        require_prompt(prompt, provider=self.provider)
        size = (options.size if options else None) or _DEFAULT_SIZE
        if size not in _SIZES:
            log.warning("Unsupported image size %r for pollinations; using %s", size, _DEFAULT_SIZE)
            size = _DEFAULT_SIZE
        url = self.image_url(prompt, size, random.randrange(_MAX_SEED))
        client = self._get_client()

        async def fetch() -> None:
            response = await client.get(url)
            await ensure_ok(response)
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("image/"):
                raise APIError(
                    f"Pollinations returned {content_type or 'no content type'} instead of an image",
                    retryable=True,
                    status_code=None,
                    kind="transient",
                )

        await self._runner.run(fetch)
        width, height = parse_size(size)
        return ImageGenerationResponse(
            url=url,
            width=width,
            height=height,
            metadata=ResponseMetadata(
                model=self.model,
                provider=self.provider,
                credits=self._config.metering.image_credits(
                    provider=self.provider, size=size
                ),
            ),
        )

    async def generate_images(
        self,
        prompt: str,
        count: int,
        options: ImageGenerationOptions | None = None,
    ) -> list[ImageGenerationResponse]:
        """Generate *count* images concurrently with distinct seeds.

        Failed images are dropped; the call fails only if none succeed.
        """
        require_prompt(prompt, provider=self.provider)
        require_count(count, provider=self.provider)
        results = await asyncio.gather(
            *(self.generate_image(prompt, options) for _ in range(count)),
            return_exceptions=True,
        )
        images: list[ImageGenerationResponse] = []
        errors: list[BaseException] = []
        for result in results:
            if isinstance(result, ImageGenerationResponse):
                images.append(result)
            elif isinstance(result, asyncio.CancelledError):
                raise result
            else:
                errors.append(result)
        if not images:
            raise APIError(
                f"Failed to generate any of {count} image(s)",
                retryable=False,
                provider=self.provider,
                model=self.model,
                phase="generate",
            ) from errors[0]
        if errors:
            log.warning(
                "Pollinations generated %d of %d image(s); first error: %s",
                len(images),
                count,
                errors[0],
            )
        return images

    async def aclose(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()
