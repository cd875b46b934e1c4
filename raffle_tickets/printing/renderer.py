"""Client for the external barcode / QR image renderer.

The renderer turns a payload into image bytes (PNG). Pixel generation lives
in that service; this side only says what to encode and how big.
"""

import asyncio
from typing import Protocol

import aiohttp
from loguru import logger

from raffle_tickets.config import settings
from raffle_tickets.exceptions import RenderingFailure
from raffle_tickets.printing.layout import Symbology


class ImageRenderer(Protocol):
    async def render(
        self, payload: str, symbology: Symbology, width: float, height: float
    ) -> bytes:
        ...


class HttpImageRenderer:
    """POSTs render requests to ``RENDERER_URL``.

    Request body: ``{"payload", "symbology", "width", "height"}``; the
    response body is the image.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None):
        self.url = url or settings.RENDERER_URL
        self.timeout = timeout or settings.RENDERER_TIMEOUT_SECONDS
        self._client: aiohttp.ClientSession | None = None

    def _get_client(self) -> aiohttp.ClientSession:
        if self._client is None or self._client.closed:
            self._client = aiohttp.ClientSession(
                headers={"Accept": "image/png"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._client

    async def render(
        self, payload: str, symbology: Symbology, width: float, height: float
    ) -> bytes:
        body = {
            "payload": payload,
            "symbology": symbology.value,
            "width": round(width, 2),
            "height": round(height, 2),
        }
        try:
            async with self._get_client().post(self.url, json=body) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise RenderingFailure(
                        f"Renderer returned {resp.status} for {symbology.value} "
                        f"{payload!r}: {text[:200]}"
                    )
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Renderer transport error for {}: {}", payload, e)
            raise RenderingFailure(f"Renderer unreachable: {e!r}") from e

    async def close(self) -> None:
        if self._client is not None and not self._client.closed:
            await self._client.close()
        self._client = None

    async def __aenter__(self) -> "HttpImageRenderer":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
