"""
HTTP(S) fetcher backed by aiohttp.

Example:
    async with HttpFetcher(timeout=60) as fetcher:
        async with fetcher.open("https://repo.example.com/plugin.jar") as chunks:
            async for chunk in chunks:
                out.write(chunk)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import aiohttp

from filesidecar.exceptions import FetchError
from filesidecar.fetch.base import Fetcher
from filesidecar.utils.logging import get_logger

logger = get_logger("filesidecar.fetch.http")


class HttpFetcher(Fetcher):
    """
    Streams HTTP response bodies.

    Any status >= 400 is a failure; redirects are followed by aiohttp.

    Args:
        timeout: Total time allowed per request, body included (seconds)
        chunk_size: Size of chunks handed to the caller
        headers: Default headers for every request
    """

    def __init__(
        self,
        timeout: float = 300.0,
        chunk_size: int = 64 * 1024,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.default_headers = headers or {}
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        """Initialize HTTP session."""
        if self._session is not None:
            return
        self._session = aiohttp.ClientSession(
            headers=self.default_headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout or None),
        )

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def open(self, source: str) -> AsyncIterator[AsyncIterator[bytes]]:
        if self._session is None:
            await self.connect()

        try:
            async with self._session.get(source) as resp:
                if resp.status >= 400:
                    raise FetchError(source, f"HTTP {resp.status} {resp.reason or ''}".strip(), status=resp.status)
                logger.debug(f"GET {source} -> {resp.status} ({resp.content_length or 'unknown'} bytes)")
                yield resp.content.iter_chunked(self.chunk_size)
        except aiohttp.ClientError as e:
            raise FetchError(source, f"{type(e).__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(source, f"timed out after {self.timeout}s") from e
