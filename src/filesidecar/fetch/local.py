"""
Fetcher for local files: ``file://`` URLs and plain paths.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import unquote, urlparse

from filesidecar.exceptions import FetchError
from filesidecar.fetch.base import Fetcher


class FileFetcher(Fetcher):
    """Reads local files in chunks on a worker thread."""

    def __init__(self, chunk_size: int = 64 * 1024):
        self.chunk_size = chunk_size

    @staticmethod
    def path_for(source: str) -> Path:
        parsed = urlparse(source)
        if parsed.scheme == "file":
            if parsed.netloc not in ("", "localhost"):
                raise FetchError(source, f"remote file host {parsed.netloc!r} is not supported")
            return Path(unquote(parsed.path))
        return Path(source)

    @asynccontextmanager
    async def open(self, source: str) -> AsyncIterator[AsyncIterator[bytes]]:
        path = self.path_for(source)
        try:
            handle = await asyncio.to_thread(open, path, "rb")
        except OSError as e:
            raise FetchError(source, f"{type(e).__name__}: {e.strerror or e}") from e

        async def chunks() -> AsyncIterator[bytes]:
            while True:
                try:
                    chunk = await asyncio.to_thread(handle.read, self.chunk_size)
                except OSError as e:
                    raise FetchError(source, f"read failed: {e}") from e
                if not chunk:
                    return
                yield chunk

        try:
            yield chunks()
        finally:
            await asyncio.to_thread(handle.close)
